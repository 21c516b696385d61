"""
Core modules for acceptance draft handling.

This package contains:
- composer: Building manually entered line items
- config: Application configuration and settings
- db: Database access layer
- exceptions: Custom exception classes
- exporters: Excel export functionality
- logger: Logging configuration
- parsing: Excel file parsing
- positions: Position grouping, duplication and deletion
- schema: Pydantic models for data validation
"""
