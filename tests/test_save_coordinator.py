"""
Unit tests for the single-flight save coordinator.
"""
import asyncio
import threading

import pytest

from core.exceptions import NothingToSaveError, PersistenceError, SaveInProgressError
from services.save_coordinator import SaveCoordinator


class RecordingBatchWriter:
    """Persistence stand-in that records every batch it receives."""
    
    def __init__(self, error=None):
        self.calls = []
        self.error = error
    
    def __call__(self, items):
        self.calls.append(list(items))
        if self.error:
            raise self.error


def test_save_empty_draft_skips_persistence():
    writer = RecordingBatchWriter()
    coordinator = SaveCoordinator(writer)
    
    with pytest.raises(NothingToSaveError):
        asyncio.run(coordinator.save([]))
    assert writer.calls == []
    assert coordinator.saving is False


def test_save_passes_full_draft_as_one_batch(sample_draft):
    writer = RecordingBatchWriter()
    coordinator = SaveCoordinator(writer)
    
    asyncio.run(coordinator.save(sample_draft))
    
    assert writer.calls == [sample_draft]
    assert coordinator.saving is False


def test_save_failure_wraps_error_and_releases_flag(sample_draft):
    writer = RecordingBatchWriter(error=RuntimeError("disk full"))
    coordinator = SaveCoordinator(writer)
    before = list(sample_draft)
    
    with pytest.raises(PersistenceError) as exc_info:
        asyncio.run(coordinator.save(sample_draft))
    
    assert "disk full" in exc_info.value.details["error"]
    assert coordinator.saving is False
    assert sample_draft == before


def test_concurrent_save_is_rejected(sample_draft):
    release = threading.Event()
    started = threading.Event()
    
    def slow_writer(items):
        started.set()
        release.wait(timeout=5)
    
    coordinator = SaveCoordinator(slow_writer)
    
    async def scenario():
        first = asyncio.create_task(coordinator.save(sample_draft))
        while not started.is_set():
            await asyncio.sleep(0.01)
        assert coordinator.saving is True
        with pytest.raises(SaveInProgressError):
            await coordinator.save(sample_draft)
        release.set()
        await first
    
    asyncio.run(scenario())
    assert coordinator.saving is False
