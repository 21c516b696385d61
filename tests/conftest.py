"""
Shared fixtures for acceptance draft tests.
"""
import os
import tempfile
from datetime import date
from itertools import count

import pytest

# Keep files and the database out of the working tree
_TEST_ROOT = tempfile.mkdtemp(prefix="acceptance_tests_")
os.environ.setdefault("STORAGE_PATH", os.path.join(_TEST_ROOT, "files"))
os.environ.setdefault("DATABASE_PATH", os.path.join(_TEST_ROOT, "acceptance.db"))

from core.config import reset_settings  # noqa: E402
from core.schema import LineItem  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_settings():
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def make_item():
    """Factory for line items with sensible defaults."""
    ids = count(1)
    
    def _make(**overrides) -> LineItem:
        data = {
            "reception_id": f"row-{next(ids)}",
            "reception_date": date(2025, 3, 14),
            "reception_number": "ПР-0042",
            "counterparty_name": "ТОО Энергомаш",
            "subdivision_name": "Цех 1",
            "position_number": 1,
            "service_name": "Ремонт двигателя",
            "item_name": "Разборка",
            "work_group": "",
            "transaction_type": "income",
            "price": 1000.0,
            "quantity": 1,
            "motor_inventory_number": "INV-77",
        }
        data.update(overrides)
        return LineItem(**data)
    
    return _make


@pytest.fixture
def sample_draft(make_item):
    """Two positions; position 2 has two work groups."""
    return [
        make_item(reception_id="a", position_number=1, work_group="Механика"),
        make_item(
            reception_id="b",
            position_number=2,
            counterparty_name="АО Турбина",
            service_name="Перемотка",
            motor_inventory_number="INV-90",
            work_group="Обмотка",
            item_name="Провод",
            transaction_type="expense",
            price=250.0,
            quantity=4,
        ),
        make_item(
            reception_id="c",
            position_number=2,
            counterparty_name="АО Турбина",
            service_name="Перемотка",
            motor_inventory_number="INV-90",
            work_group="Сборка",
            item_name="Сборка статора",
            price=3000.0,
        ),
    ]
