"""
Draft session service.
Holds one user's acceptance draft and applies edits through the
position reconciler and line-item composer.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import pandas as pd
from pydantic import ValidationError as PydanticValidationError

from core.composer import compose_line_item
from core.db import get_repository
from core.exceptions import (
    DataNotFoundError,
    EmptyDraftError,
    NothingToSaveError,
    PersistenceError,
    PositionNotFoundError,
    ReceptionException,
    SaveInProgressError,
    ValidationError,
)
from core.logger import setup_logger
from core.positions import (
    delete_position,
    duplicate_position,
    find_duplicate_ids,
    group_by_position,
    has_position,
    next_position_number,
    position_items,
    representative,
    shared_fields,
)
from core.schema import SHARED_FIELDS, DraftResponse, DraftSummary, LineItem, PositionSummary, ServiceInput
from services.save_coordinator import SaveCoordinator

logger = setup_logger(__name__)

ConfirmCallback = Callable[[int], bool]

# User-facing messages
MSG_SAVED = "Данные успешно сохранены в базу данных"
MSG_ITEM_ADDED = 'Добавлена новая позиция в группу "{group}"'
MSG_DUPLICATED = "Позиция {source} продублирована как позиция {target}"
MSG_DELETED = "Позиция {position} успешно удалена"
MSG_CONFIRM_DELETE = "Вы уверены, что хотите удалить позицию {position}? Это действие нельзя отменить."

ERROR_MESSAGES = {
    EmptyDraftError: "Невозможно добавить группу работ. Сначала загрузите данные о приемке.",
    PositionNotFoundError: "Не найдена позиция",
    NothingToSaveError: "Нет данных для сохранения",
    SaveInProgressError: "Сохранение уже выполняется",
    PersistenceError: "Ошибка сохранения данных",
}


def error_message(exc: ReceptionException) -> str:
    """Dismissible message shown to the user for a draft error."""
    for exc_type, message in ERROR_MESSAGES.items():
        if isinstance(exc, exc_type):
            return message
    return exc.message


class DraftSession:
    """An acceptance draft owned by one editing session."""
    
    def __init__(
        self,
        session_id: Optional[str] = None,
        coordinator: Optional[SaveCoordinator] = None
    ):
        """
        Initialize an empty draft session.
        
        Args:
            session_id: Session identifier (generated if omitted)
            coordinator: Save coordinator (defaults to the SQLite repository)
        """
        self.session_id = session_id or str(uuid.uuid4())
        self.rows: List[LineItem] = []
        self.created_at = datetime.now(timezone.utc)
        self.coordinator = coordinator or SaveCoordinator(get_repository().save_batch)
    
    @property
    def saving(self) -> bool:
        return self.coordinator.saving
    
    def _check_unique_ids(self, rows: List[LineItem]) -> None:
        duplicates = find_duplicate_ids(rows)
        if duplicates:
            raise ValidationError(
                "Draft contains repeated reception ids",
                details={"reception_ids": duplicates}
            )
    
    def _ensure_not_saving(self) -> None:
        if self.saving:
            raise SaveInProgressError(
                "Draft cannot be edited while it is being saved",
                details={"session_id": self.session_id}
            )
    
    def load(self, rows: List[LineItem]) -> None:
        """Replace the draft with freshly uploaded rows."""
        self.replace_rows(rows)
        logger.info(f"Session {self.session_id}: loaded {len(rows)} uploaded rows")
    
    def replace_rows(self, rows: List[LineItem]) -> None:
        """
        Replace the draft wholesale.
        
        Args:
            rows: New draft rows
        
        Raises:
            ValidationError: If an identity token repeats
            SaveInProgressError: If a save is in flight
        """
        self._ensure_not_saving()
        rows = list(rows)
        self._check_unique_ids(rows)
        self.rows = rows
    
    def update_row(self, reception_id: str, changes: Dict[str, Any]) -> LineItem:
        """
        Apply an inline edit to one row.
        
        Shared fields are position-level, so editing one of them rewrites it
        on every row of the position. Moving a row into another existing
        position makes it adopt that position's shared fields.
        
        Args:
            reception_id: Identity of the row to edit
            changes: Field values to overwrite
        
        Returns:
            The updated row
        
        Raises:
            DataNotFoundError: If no row has that identity
            ValidationError: If the edit touches the identity, an unknown field, or is invalid
            SaveInProgressError: If a save is in flight
        """
        self._ensure_not_saving()
        index = next(
            (i for i, item in enumerate(self.rows) if item.reception_id == reception_id),
            None
        )
        if index is None:
            raise DataNotFoundError(
                f"Row {reception_id} not found in draft",
                details={"reception_id": reception_id}
            )
        
        if "reception_id" in changes:
            raise ValidationError("Reception id cannot be edited", details={"reception_id": reception_id})
        
        unknown = sorted(set(changes) - set(LineItem.model_fields))
        if unknown:
            raise ValidationError("Unknown fields in row edit", details={"fields": unknown})
        
        current = self.rows[index]
        shared_changes = {k: v for k, v in changes.items() if k in SHARED_FIELDS}
        
        try:
            updated = LineItem.model_validate({**current.model_dump(), **changes})
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid row edit",
                details={"reception_id": reception_id, "errors": [err["msg"] for err in e.errors()]}
            )
        
        siblings: Dict[str, LineItem] = {}
        if updated.position_number != current.position_number:
            target_rows = [
                item for item in position_items(self.rows, updated.position_number)
                if item.reception_id != reception_id
            ]
            if target_rows:
                if shared_changes:
                    raise ValidationError(
                        "Cannot move a row into another position and edit its shared fields at once",
                        details={"reception_id": reception_id, "fields": sorted(shared_changes)}
                    )
                updated = updated.model_copy(update=shared_fields(representative(target_rows)))
        elif shared_changes:
            validated_shared = {field: getattr(updated, field) for field in shared_changes}
            siblings = {
                item.reception_id: item.model_copy(update=validated_shared)
                for item in position_items(self.rows, current.position_number)
                if item.reception_id != reception_id
            }
        
        self.rows = [
            updated if item.reception_id == reception_id else siblings.get(item.reception_id, item)
            for item in self.rows
        ]
        return updated
    
    def add_item(
        self,
        position_number: Optional[int],
        group_name: str,
        service: ServiceInput
    ) -> Tuple[LineItem, str]:
        """
        Compose a service item into a work group and append it.
        
        Args:
            position_number: Target position, or None for the first row's position
            group_name: Work group label
            service: User-entered service attributes
        
        Returns:
            Tuple of (new row, user message)
        """
        self._ensure_not_saving()
        item = compose_line_item(self.rows, position_number, group_name, service)
        self.rows = self.rows + [item]
        return item, MSG_ITEM_ADDED.format(group=group_name)
    
    def duplicate(self, position_number: int) -> Tuple[int, str]:
        """
        Duplicate a position under the next free number.
        
        Raises:
            PositionNotFoundError: If the position is not in the draft
        """
        self._ensure_not_saving()
        if not has_position(self.rows, position_number):
            raise PositionNotFoundError(
                f"Position {position_number} not found in draft",
                details={"position_number": position_number}
            )
        
        new_number = next_position_number(self.rows)
        self.rows = duplicate_position(self.rows, position_number)
        return new_number, MSG_DUPLICATED.format(source=position_number, target=new_number)
    
    def delete(self, position_number: int, confirm: ConfirmCallback) -> Optional[str]:
        """
        Delete a position once the user confirms.
        
        Args:
            position_number: Position to delete
            confirm: Asked with the position number; False leaves the draft alone
        
        Returns:
            User message, or None if the user declined
        
        Raises:
            PositionNotFoundError: If the position is not in the draft
        """
        self._ensure_not_saving()
        if not has_position(self.rows, position_number):
            raise PositionNotFoundError(
                f"Position {position_number} not found in draft",
                details={"position_number": position_number}
            )
        
        if not confirm(position_number):
            logger.info(f"Session {self.session_id}: deletion of position {position_number} declined")
            return None
        
        self.rows = delete_position(self.rows, position_number)
        return MSG_DELETED.format(position=position_number)
    
    def cancel(self) -> None:
        """Discard the draft."""
        self._ensure_not_saving()
        self.rows = []
    
    async def save(self) -> str:
        """
        Save the draft as one batch and clear it on success.
        
        On any error the draft is left exactly as it was.
        """
        await self.coordinator.save(self.rows)
        self.rows = []
        logger.info(f"Session {self.session_id}: draft saved and cleared")
        return MSG_SAVED
    
    def summary(self) -> DraftSummary:
        """
        Per-position income and expense totals.
        
        Returns:
            DraftSummary with positions in order of first appearance
        """
        groups = group_by_position(self.rows)
        if not groups:
            return DraftSummary(session_id=self.session_id, row_count=0, position_count=0)
        
        df = pd.DataFrame([
            {
                "position_number": item.position_number,
                "transaction_type": item.transaction_type,
                "amount": item.amount,
            }
            for item in self.rows
        ])
        totals = df.groupby(["position_number", "transaction_type"])["amount"].sum()
        
        positions = []
        for number, items in groups.items():
            positions.append(PositionSummary(
                position_number=number,
                item_count=len(items),
                work_groups=list(dict.fromkeys(item.work_group for item in items if item.work_group)),
                income_total=float(totals.get((number, "income"), 0.0)),
                expense_total=float(totals.get((number, "expense"), 0.0)),
            ))
        
        return DraftSummary(
            session_id=self.session_id,
            row_count=len(self.rows),
            position_count=len(positions),
            income_total=sum(p.income_total for p in positions),
            expense_total=sum(p.expense_total for p in positions),
            positions=positions,
        )
    
    def to_response(self, message: Optional[str] = None) -> DraftResponse:
        return DraftResponse(
            session_id=self.session_id,
            rows=self.rows,
            row_count=len(self.rows),
            position_count=len(group_by_position(self.rows)),
            saving=self.saving,
            message=message,
        )


class DraftRegistry:
    """In-memory draft sessions keyed by session id."""
    
    def __init__(self, coordinator_factory: Optional[Callable[[], SaveCoordinator]] = None):
        self.sessions: Dict[str, DraftSession] = {}
        self.coordinator_factory = coordinator_factory
    
    def create(self) -> DraftSession:
        coordinator = self.coordinator_factory() if self.coordinator_factory else None
        session = DraftSession(coordinator=coordinator)
        self.sessions[session.session_id] = session
        logger.info(f"Created draft session {session.session_id}")
        return session
    
    def get(self, session_id: str) -> DraftSession:
        """
        Look up a session.
        
        Raises:
            DataNotFoundError: If the session does not exist
        """
        session = self.sessions.get(session_id)
        if session is None:
            raise DataNotFoundError(
                f"Draft session {session_id} not found",
                details={"session_id": session_id}
            )
        return session
    
    def drop(self, session_id: str) -> None:
        self.get(session_id)
        del self.sessions[session_id]
        logger.info(f"Dropped draft session {session_id}")
