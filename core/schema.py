"""
Pydantic schemas for acceptance line items and request/response validation.
"""
from datetime import date, datetime, timedelta
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import BaseModel, BeforeValidator, Field, field_validator


TransactionType = Literal["income", "expense"]

# Spreadsheet/UI labels accepted for each transaction type
_TRANSACTION_TYPE_ALIASES = {
    "income": "income",
    "доходы": "income",
    "доход": "income",
    "expense": "expense",
    "расходы": "expense",
    "расход": "expense",
}

# Label translations for output
TRANSACTION_TYPE_LABELS = {
    "income": "Доходы",
    "expense": "Расходы",
}

# Position-level attributes, duplicated on every row of a position
SHARED_FIELDS = (
    "reception_date",
    "reception_number",
    "counterparty_name",
    "subdivision_name",
    "service_name",
    "motor_inventory_number",
)

# Excel serial dates count days from this epoch
_EXCEL_EPOCH = date(1899, 12, 30)


def normalize_transaction_type(v):
    """Map Russian or English labels onto the income/expense enumeration."""
    if isinstance(v, str):
        return _TRANSACTION_TYPE_ALIASES.get(v.strip().lower(), v)
    return v


def normalize_reception_date(v):
    """Accept dates, datetimes, ISO strings, dd.mm.yyyy strings and Excel serials."""
    if v is None or (isinstance(v, date) and not isinstance(v, datetime)):
        return v
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return _EXCEL_EPOCH + timedelta(days=int(v))
    if isinstance(v, str):
        text = v.strip()
        for fmt in ("%d.%m.%Y", "%Y-%m-%d", "%d.%m.%y"):
            try:
                return datetime.strptime(text, fmt).date()
            except ValueError:
                continue
        # Let pydantic try ISO datetimes and report the failure
        return text.split("T")[0].split(" ")[0]
    return v


def normalize_text(v):
    """Spreadsheet cells may hold numbers where text is expected."""
    if v is None:
        return ""
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v).strip()


def normalize_optional_text(v):
    if v is None:
        return None
    text = normalize_text(v)
    return text or None


Text = Annotated[str, BeforeValidator(normalize_text)]


class LineItem(BaseModel):
    """A single reception line item; one row of the draft table."""
    reception_id: str = Field(..., min_length=1, description="Opaque identity token, unique per item")
    reception_date: Annotated[date, BeforeValidator(normalize_reception_date)]
    reception_number: Text
    counterparty_name: Text
    subdivision_name: Text
    position_number: int = Field(..., description="Grouping key, unique only within one draft")
    service_name: Text
    item_name: Text
    work_group: Text = ""
    transaction_type: Annotated[TransactionType, BeforeValidator(normalize_transaction_type)]
    price: float = Field(..., ge=0.0, description="Unit price")
    quantity: float = Field(..., gt=0.0)
    motor_inventory_number: Annotated[Optional[str], BeforeValidator(normalize_optional_text)] = None
    
    @property
    def amount(self) -> float:
        """Line total (price times quantity)."""
        return self.price * self.quantity


class ServiceInput(BaseModel):
    """User-entered service attributes for a manually added line item."""
    name: str = Field(..., min_length=1)
    price_per_unit: float = Field(..., ge=0.0)
    quantity: float = Field(..., gt=0.0)
    transaction_type: Annotated[TransactionType, BeforeValidator(normalize_transaction_type)]
    
    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        """Service name must not be blank."""
        v = v.strip()
        if not v:
            raise ValueError("Service name must not be empty")
        return v


class ComposeRequest(BaseModel):
    """Request body for adding a service item to a work group."""
    position_number: Optional[int] = Field(
        None,
        description="Target position; defaults to the position of the first row"
    )
    group_name: str = Field(default="", description="Work group label")
    service: ServiceInput


class PositionSummary(BaseModel):
    """Totals for one position of the draft."""
    position_number: int
    item_count: int
    work_groups: List[str] = Field(default_factory=list)
    income_total: float = 0.0
    expense_total: float = 0.0


class DraftSummary(BaseModel):
    """Totals for the whole draft."""
    session_id: str
    row_count: int
    position_count: int
    income_total: float = 0.0
    expense_total: float = 0.0
    positions: List[PositionSummary] = Field(default_factory=list)


class DraftResponse(BaseModel):
    """Current state of a draft session."""
    session_id: str
    rows: List[LineItem] = Field(default_factory=list)
    row_count: int = 0
    position_count: int = 0
    saving: bool = False
    message: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
