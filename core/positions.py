"""
Position reconciliation over an acceptance draft.

A position is not stored anywhere: it is the set of rows sharing one
position number. Every function here is a pure transformation of an
explicit draft (a list of LineItem) and never mutates its input.
"""
import uuid
from collections import Counter
from typing import Any, Callable, Dict, List

from core.exceptions import PositionNotFoundError
from core.logger import setup_logger
from core.schema import SHARED_FIELDS, LineItem

logger = setup_logger(__name__)

Draft = List[LineItem]
IdFactory = Callable[[], str]


def new_reception_id() -> str:
    """Mint a fresh identity token for a line item."""
    return str(uuid.uuid4())


def group_by_position(draft: Draft) -> Dict[int, List[LineItem]]:
    """
    Partition the draft by position number.
    
    Groups appear in order of first occurrence; rows keep their draft order
    inside a group.
    
    Args:
        draft: Current draft rows
    
    Returns:
        Mapping of position number to the rows of that position
    """
    groups: Dict[int, List[LineItem]] = {}
    for item in draft:
        groups.setdefault(item.position_number, []).append(item)
    return groups


def position_items(draft: Draft, position_number: int) -> List[LineItem]:
    """Rows belonging to one position, in draft order."""
    return [item for item in draft if item.position_number == position_number]


def position_numbers(draft: Draft) -> List[int]:
    """Distinct position numbers in order of first occurrence."""
    return list(group_by_position(draft).keys())


def has_position(draft: Draft, position_number: int) -> bool:
    return any(item.position_number == position_number for item in draft)


def representative(items: List[LineItem]) -> LineItem:
    """
    Pick the row that supplies a position's shared fields.
    
    Shared fields are identical across a position, so the first row is as
    good as any other.
    
    Args:
        items: Rows of a single position
    
    Returns:
        First row of the position
    
    Raises:
        PositionNotFoundError: If the position has no rows
    """
    if not items:
        raise PositionNotFoundError("Position has no rows")
    return items[0]


def shared_fields(item: LineItem) -> Dict[str, Any]:
    """Position-level attributes of a row."""
    return {field: getattr(item, field) for field in SHARED_FIELDS}


def next_position_number(draft: Draft) -> int:
    """One past the highest position number; gaps left by deletions are never reused."""
    if not draft:
        return 1
    return max(item.position_number for item in draft) + 1


def duplicate_position(
    draft: Draft,
    position_number: int,
    id_factory: IdFactory = new_reception_id
) -> Draft:
    """
    Copy a whole position under a new position number.
    
    Every clone gets a fresh identity and the number max + 1; all other
    fields, work group included, are copied verbatim. The source position
    is left untouched. An absent position is a no-op.
    
    Args:
        draft: Current draft rows
        position_number: Position to copy
        id_factory: Identity generator for the clones
    
    Returns:
        New draft with the clones appended
    """
    source = position_items(draft, position_number)
    if not source:
        logger.debug(f"Duplicate skipped: position {position_number} not in draft")
        return list(draft)
    
    new_number = next_position_number(draft)
    clones = [
        item.model_copy(update={"reception_id": id_factory(), "position_number": new_number})
        for item in source
    ]
    
    logger.info(
        f"Duplicated position {position_number} as {new_number} "
        f"({len(clones)} rows)"
    )
    return list(draft) + clones


def delete_position(draft: Draft, position_number: int) -> Draft:
    """
    Remove every row of a position.
    
    Irreversible; confirmation is the caller's job.
    
    Args:
        draft: Current draft rows
        position_number: Position to remove
    
    Returns:
        New draft without that position
    """
    remaining = [item for item in draft if item.position_number != position_number]
    logger.info(
        f"Deleted position {position_number} "
        f"({len(draft) - len(remaining)} rows removed)"
    )
    return remaining


def find_duplicate_ids(draft: Draft) -> List[str]:
    """Identity tokens occurring more than once."""
    counts = Counter(item.reception_id for item in draft)
    return sorted(rid for rid, count in counts.items() if count > 1)
