"""
Excel file parsing with Cyrillic header support.
Turns an uploaded acceptance sheet into draft line items.
"""
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
from pydantic import ValidationError as PydanticValidationError

from core.config import get_settings
from core.exceptions import DataNotFoundError, ParsingError
from core.logger import setup_logger
from core.positions import new_reception_id
from core.schema import LineItem

logger = setup_logger(__name__)

# Sheet header -> LineItem field
COLUMN_MAP: Dict[str, str] = {
    "Дата приемки": "reception_date",
    "Номер приемки": "reception_number",
    "Контрагент": "counterparty_name",
    "Подразделение": "subdivision_name",
    "№ позиции": "position_number",
    "Услуга": "service_name",
    "Наименование": "item_name",
    "Группа работ": "work_group",
    "Тип операции": "transaction_type",
    "Цена": "price",
    "Количество": "quantity",
    "Инв. номер двигателя": "motor_inventory_number",
}

# Columns that may be absent from the sheet
OPTIONAL_COLUMNS = {"Группа работ", "Инв. номер двигателя"}

NUMERIC_FIELDS = {"price", "quantity"}


def clean_number(value: Any) -> Optional[float]:
    """
    Normalize a numeric cell.
    Removes spaces and non-breaking spaces and accepts a decimal comma.
    
    Args:
        value: Raw cell value (string or number)
    
    Returns:
        Float value or None if empty or invalid
    """
    if value is None or pd.isna(value):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    
    text = str(value).strip().replace(" ", "").replace("\xa0", "").replace(",", ".")
    if not text:
        return None
    
    try:
        return float(text)
    except ValueError:
        logger.warning(f"Failed to parse number: '{value}'")
        return None


def _cell(row: pd.Series, column: str) -> Any:
    value = row.get(column)
    if value is None or pd.isna(value):
        return None
    return value


def row_to_line_item(row: pd.Series, row_number: int) -> LineItem:
    """
    Convert one sheet row to a LineItem with a fresh identity.
    
    Args:
        row: pandas Series keyed by sheet headers
        row_number: 1-based sheet row, used in error details
    
    Returns:
        Validated LineItem
    
    Raises:
        ParsingError: If the row does not form a valid line item
    """
    record: Dict[str, Any] = {"reception_id": new_reception_id()}
    for column, field in COLUMN_MAP.items():
        value = _cell(row, column)
        if field in NUMERIC_FIELDS or field == "position_number":
            value = clean_number(value)
        if field == "position_number" and value is not None:
            if not value.is_integer():
                raise ParsingError(
                    f"Position number must be a whole number in row {row_number}",
                    details={"row": row_number, "column": column, "value": str(_cell(row, column))}
                )
            value = int(value)
        record[field] = value
    
    if record.get("work_group") is None:
        record["work_group"] = ""
    
    try:
        return LineItem.model_validate(record)
    except PydanticValidationError as e:
        raise ParsingError(
            f"Invalid acceptance row {row_number}",
            details={
                "row": row_number,
                "errors": [
                    {"field": ".".join(str(p) for p in err["loc"]), "error": err["msg"]}
                    for err in e.errors()
                ],
            }
        )


def parse_reception_excel(file_path: str) -> List[LineItem]:
    """
    Parse an acceptance sheet into draft rows.
    
    Args:
        file_path: Path to Excel file
    
    Returns:
        Line items in sheet order, each with a fresh identity
    
    Raises:
        DataNotFoundError: If file doesn't exist
        ParsingError: If file format is invalid
    """
    path = Path(file_path)
    if not path.exists():
        raise DataNotFoundError(
            f"File not found: {file_path}",
            details={"file_path": file_path}
        )
    
    engine = "xlrd" if path.suffix.lower() == ".xls" else "openpyxl"
    logger.info(f"Parsing acceptance sheet {path.name} (engine={engine})")
    
    try:
        df = pd.read_excel(file_path, engine=engine)
    except Exception as e:
        logger.error(f"Failed to read {file_path}: {str(e)}")
        raise ParsingError(
            "Invalid Excel format for acceptance sheet",
            details={"file_path": file_path, "error": str(e)}
        )
    
    df.columns = [str(col).strip() for col in df.columns]
    
    # Remove completely empty rows
    df = df.dropna(how="all")
    
    required = set(COLUMN_MAP) - OPTIONAL_COLUMNS
    missing_cols = required - set(df.columns)
    if missing_cols:
        logger.debug(f"Available columns: {list(df.columns)}")
        raise ParsingError(
            "Acceptance sheet is missing required columns",
            details={"file_path": file_path, "missing_columns": sorted(missing_cols)}
        )
    
    if len(df) == 0:
        raise ParsingError(
            "File contains no data after removing empty rows",
            details={"file_path": file_path}
        )
    
    max_rows = get_settings().max_upload_rows
    if len(df) > max_rows:
        raise ParsingError(
            f"Acceptance sheet has too many rows ({len(df)} > {max_rows})",
            details={"file_path": file_path, "rows": len(df), "max_rows": max_rows}
        )
    
    # Header is sheet row 1
    items = [row_to_line_item(row, idx + 2) for idx, row in df.iterrows()]
    
    logger.info(f"Successfully parsed {len(items)} rows from {path.name}")
    return items
