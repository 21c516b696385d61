"""
Composition of manually entered line items.
A new item inherits its position's shared fields and takes the rest
from the user-entered service.
"""
from typing import Optional

from core.exceptions import EmptyDraftError, PositionNotFoundError
from core.logger import setup_logger
from core.positions import Draft, IdFactory, new_reception_id, position_items, representative, shared_fields
from core.schema import LineItem, ServiceInput

logger = setup_logger(__name__)


def resolve_target_position(draft: Draft, target_position_number: Optional[int]) -> int:
    """
    Resolve the position a new item goes into.
    
    Without an explicit target the position of the draft's first row is used.
    
    Raises:
        EmptyDraftError: If the draft has no rows
    """
    if not draft:
        raise EmptyDraftError(
            "Cannot add a line item to an empty draft",
            details={"target_position_number": target_position_number}
        )
    if target_position_number is None:
        return draft[0].position_number
    return target_position_number


def compose_line_item(
    draft: Draft,
    target_position_number: Optional[int],
    group_name: str,
    service: ServiceInput,
    id_factory: IdFactory = new_reception_id
) -> LineItem:
    """
    Build a new line item for a position and work group.
    
    The draft is not modified; appending the result is up to the caller.
    
    Args:
        draft: Current draft rows
        target_position_number: Position to add to, or None for the first row's position
        group_name: Work group label for the new item
        service: User-entered name, unit price, quantity and transaction type
        id_factory: Identity generator for the new item
    
    Returns:
        The composed LineItem
    
    Raises:
        EmptyDraftError: If the draft has no rows
        PositionNotFoundError: If no row has the resolved position number
    """
    position_number = resolve_target_position(draft, target_position_number)
    
    items = position_items(draft, position_number)
    if not items:
        raise PositionNotFoundError(
            f"Position {position_number} not found in draft",
            details={"position_number": position_number}
        )
    
    source = representative(items)
    new_item = LineItem(
        reception_id=id_factory(),
        position_number=position_number,
        work_group=group_name,
        item_name=service.name,
        price=service.price_per_unit,
        quantity=service.quantity,
        transaction_type=service.transaction_type,
        **shared_fields(source),
    )
    
    logger.info(f"Composed {service.transaction_type} item for position {position_number}, group '{group_name}'")
    return new_item
