"""
Main entry point for the acceptance draft service.

This module loads configuration, prepares the database
and starts the FastAPI server.
"""
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

PROJECT_ROOT = Path(__file__).parent

# Load environment variables from .env file
_env_file = PROJECT_ROOT / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

from core.config import get_settings
from core.db import get_repository
from core.exceptions import ConfigurationError
from core.logger import setup_logger

logger = setup_logger(__name__)


def main():
    """Main application entry point."""
    try:
        # Load and validate configuration
        try:
            settings = get_settings()
        except ValidationError as e:
            raise ConfigurationError(
                "Invalid settings",
                details={"errors": [err["msg"] for err in e.errors()]}
            )
        
        import uvicorn
        from app.api import app
        
        get_repository().init_db()
        
        logger.info(f"Starting {settings.app_name}")
        logger.info(f"Log Level: {settings.log_level}")
        logger.info(f"Database: {settings.database_path}")
        logger.info(f"Storage: {settings.storage_path}")
        logger.info(f"Max Upload Rows: {settings.max_upload_rows}")
        
        logger.info(f"Starting server on {settings.host}:{settings.port}")
        
        uvicorn.run(
            app,
            host=settings.host,
            port=settings.port,
            log_level=settings.log_level.lower()
        )
    
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e.message}")
        if e.details:
            logger.error(f"Details: {e.details}")
        sys.exit(1)
    
    except Exception as e:
        logger.error(f"Failed to start application: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
