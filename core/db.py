import sqlite3
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from core.config import get_settings
from core.logger import setup_logger
from core.schema import LineItem

logger = setup_logger(__name__)

_COLUMNS = (
    "reception_id",
    "reception_date",
    "reception_number",
    "counterparty_name",
    "subdivision_name",
    "position_number",
    "service_name",
    "item_name",
    "work_group",
    "transaction_type",
    "price",
    "quantity",
    "motor_inventory_number",
)


class ReceptionRepository:
    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or get_settings().database_path

    def get_connection(self) -> sqlite3.Connection:
        """Create a database connection."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Initialize database tables."""
        conn = self.get_connection()
        cursor = conn.cursor()
        
        try:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS reception_items (
                    reception_id TEXT PRIMARY KEY,
                    reception_date TEXT NOT NULL,
                    reception_number TEXT NOT NULL,
                    counterparty_name TEXT NOT NULL,
                    subdivision_name TEXT NOT NULL,
                    position_number INTEGER NOT NULL,
                    service_name TEXT NOT NULL,
                    item_name TEXT NOT NULL,
                    work_group TEXT NOT NULL DEFAULT '',
                    transaction_type TEXT NOT NULL CHECK (transaction_type IN ('income', 'expense')),
                    price REAL NOT NULL,
                    quantity REAL NOT NULL,
                    motor_inventory_number TEXT,
                    saved_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.commit()
            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error(f"Database initialization failed: {e}")
            raise
        finally:
            conn.close()

    def save_batch(self, items: Sequence[LineItem]) -> None:
        """Insert all items in one transaction; nothing is written if any row fails."""
        conn = self.get_connection()
        placeholders = ", ".join("?" for _ in _COLUMNS)
        sql = (
            f"INSERT INTO reception_items ({', '.join(_COLUMNS)}, saved_at) "
            f"VALUES ({placeholders}, ?)"
        )
        now = datetime.now(timezone.utc).isoformat()
        
        try:
            with conn:
                conn.executemany(sql, [self._to_params(item) + (now,) for item in items])
            logger.info(f"Saved batch of {len(items)} reception items")
        except Exception as e:
            logger.error(f"Failed to save batch of {len(items)} items: {e}")
            raise
        finally:
            conn.close()

    def count_items(self) -> int:
        """Number of saved reception items."""
        conn = self.get_connection()
        try:
            row = conn.execute("SELECT COUNT(*) AS n FROM reception_items").fetchone()
            return row["n"]
        finally:
            conn.close()

    def get_items_by_reception(self, reception_number: str) -> List[LineItem]:
        """Saved items of one reception, ordered by position."""
        conn = self.get_connection()
        try:
            rows = conn.execute(
                f"SELECT {', '.join(_COLUMNS)} FROM reception_items "
                "WHERE reception_number = ? ORDER BY position_number, rowid",
                (reception_number,)
            ).fetchall()
            return [LineItem.model_validate(dict(row)) for row in rows]
        finally:
            conn.close()

    @staticmethod
    def _to_params(item: LineItem) -> tuple:
        data = item.model_dump()
        data["reception_date"] = item.reception_date.isoformat()
        return tuple(data[column] for column in _COLUMNS)

# Global repository instance
_repository: Optional[ReceptionRepository] = None

def get_repository() -> ReceptionRepository:
    global _repository
    if _repository is None:
        _repository = ReceptionRepository()
    return _repository
