"""
Excel export of an acceptance draft.
Writes the same Cyrillic headers the uploader reads.
"""
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import pandas as pd

from core.config import get_settings
from core.exceptions import ExportError
from core.logger import setup_logger
from core.parsing import COLUMN_MAP
from core.schema import TRANSACTION_TYPE_LABELS, LineItem

logger = setup_logger(__name__)

AMOUNT_COLUMN = "Сумма"


def draft_to_dataframe(draft: List[LineItem]) -> pd.DataFrame:
    """
    Build a DataFrame from draft rows with Russian column headers.
    
    Args:
        draft: Draft rows
    
    Returns:
        DataFrame with one row per line item, plus a line total column
    """
    headers = list(COLUMN_MAP.keys())
    records = []
    for item in draft:
        record = {header: getattr(item, field) for header, field in COLUMN_MAP.items()}
        record["Тип операции"] = TRANSACTION_TYPE_LABELS.get(item.transaction_type, item.transaction_type)
        record[AMOUNT_COLUMN] = item.amount
        records.append(record)
    
    return pd.DataFrame(records, columns=headers + [AMOUNT_COLUMN])


def export_draft_to_excel(
    draft: List[LineItem],
    output_path: str,
    sheet_name: str = "Приемка"
) -> str:
    """
    Export draft rows to Excel.
    
    Args:
        draft: Draft rows
        output_path: Output file path
        sheet_name: Sheet name
    
    Returns:
        Path to created file
    
    Raises:
        ExportError: If export fails
    """
    logger.info(f"Exporting {len(draft)} rows to {output_path}")
    
    output_df = draft_to_dataframe(draft)
    
    # Ensure output directory exists
    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    
    try:
        with pd.ExcelWriter(output_path, engine="xlsxwriter", datetime_format="dd.mm.yyyy", date_format="dd.mm.yyyy") as writer:
            output_df.to_excel(writer, sheet_name=sheet_name, index=False)
            
            worksheet = writer.sheets[sheet_name]
            
            # Auto-fit columns (approximate)
            for idx, col in enumerate(output_df.columns):
                values_len = output_df[col].astype(str).map(len).max() if len(output_df) else 0
                max_len = max(values_len, len(str(col)))
                worksheet.set_column(idx, idx, min(max_len + 2, 50))
        
        logger.info(f"Successfully exported to {output_path}")
        return output_path
    
    except Exception as e:
        logger.error(f"Failed to export Excel: {e}")
        raise ExportError(
            "Failed to export draft to Excel",
            details={"output_path": output_path, "error": str(e)}
        )


def create_output_filename(session_id: str, base_path: Optional[str] = None) -> str:
    """
    Create timestamped output filename.
    
    Args:
        session_id: Draft session identifier
        base_path: Base directory path (defaults to configured storage)
    
    Returns:
        Full output file path
    """
    if base_path is None:
        base_path = get_settings().storage_path
    
    Path(base_path).mkdir(parents=True, exist_ok=True)
    
    timestamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
    filename = f"acceptance_{session_id}_{timestamp}.xlsx"
    
    return str(Path(base_path) / filename)
