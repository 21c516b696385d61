"""
Custom exceptions for acceptance draft handling.
Every error here is recoverable by the user and leaves the draft intact.
"""
from typing import Any, Dict, Optional


class ReceptionException(Exception):
    """Base exception for all acceptance draft errors."""
    
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize exception.
        
        Args:
            message: Error message
            details: Additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class EmptyDraftError(ReceptionException):
    """Raised when a line item is composed with no rows to inherit from."""
    pass


class PositionNotFoundError(ReceptionException):
    """Raised when no row carries the requested position number."""
    pass


class NothingToSaveError(ReceptionException):
    """Raised when saving an empty draft."""
    pass


class SaveInProgressError(ReceptionException):
    """Raised when a save is requested while another one is in flight."""
    pass


class PersistenceError(ReceptionException):
    """Raised when the batch write is rejected by storage."""
    pass


class ValidationError(ReceptionException):
    """Raised when draft data validation fails."""
    pass


class ParsingError(ReceptionException):
    """Raised when Excel parsing fails."""
    pass


class ExportError(ReceptionException):
    """Raised when Excel export fails."""
    pass


class ConfigurationError(ReceptionException):
    """Raised when configuration is invalid."""
    pass


class DataNotFoundError(ReceptionException):
    """Raised when required data is not found."""
    pass
