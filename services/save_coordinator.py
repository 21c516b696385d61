"""
Single-flight batch save of an acceptance draft.
"""
import asyncio
from typing import Callable, List, Sequence

from core.exceptions import NothingToSaveError, PersistenceError, SaveInProgressError
from core.logger import setup_logger
from core.schema import LineItem

logger = setup_logger(__name__)

SaveBatch = Callable[[Sequence[LineItem]], None]


class SaveCoordinator:
    """Hands the whole draft to the persistence collaborator, one save at a time."""
    
    def __init__(self, save_batch: SaveBatch):
        """
        Initialize save coordinator.
        
        Args:
            save_batch: All-or-nothing batch writer; raises on failure
        """
        self.save_batch = save_batch
        self.saving = False
    
    async def save(self, draft: List[LineItem]) -> None:
        """
        Persist the draft as a single batch.
        
        The draft is never modified here; clearing it on success is the
        caller's job.
        
        Args:
            draft: Current draft rows
        
        Raises:
            NothingToSaveError: If the draft is empty
            SaveInProgressError: If another save has not finished yet
            PersistenceError: If the batch write fails
        """
        if not draft:
            raise NothingToSaveError("Draft is empty, nothing to save")
        
        if self.saving:
            raise SaveInProgressError("A save is already in progress")
        
        self.saving = True
        batch = list(draft)
        try:
            logger.info(f"Saving batch of {len(batch)} rows")
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self.save_batch, batch)
            logger.info(f"Batch of {len(batch)} rows saved")
        except Exception as e:
            logger.error(f"Batch save failed: {e}", exc_info=True)
            raise PersistenceError(
                "Failed to save acceptance data",
                details={"rows": len(batch), "error": str(e)}
            )
        finally:
            self.saving = False
