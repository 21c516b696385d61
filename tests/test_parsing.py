"""
Unit tests for acceptance sheet parsing.
"""
from datetime import date

import pandas as pd
import pytest

from core.exceptions import DataNotFoundError, ParsingError
from core.parsing import clean_number, parse_reception_excel, row_to_line_item
from core.positions import group_by_position


def _sheet_rows():
    return [
        {
            "Дата приемки": "14.03.2025",
            "Номер приемки": 42,
            "Контрагент": "ТОО Энергомаш",
            "Подразделение": "Цех 1",
            "№ позиции": 1,
            "Услуга": "Ремонт двигателя",
            "Наименование": "Разборка",
            "Группа работ": "Механика",
            "Тип операции": "Доходы",
            "Цена": "1 500,50",
            "Количество": 2,
            "Инв. номер двигателя": "INV-77",
        },
        {
            "Дата приемки": "14.03.2025",
            "Номер приемки": 42,
            "Контрагент": "ТОО Энергомаш",
            "Подразделение": "Цех 1",
            "№ позиции": 1,
            "Услуга": "Ремонт двигателя",
            "Наименование": "Подшипник",
            "Группа работ": None,
            "Тип операции": "Расходы",
            "Цена": 300,
            "Количество": 1,
            "Инв. номер двигателя": "INV-77",
        },
        {
            "Дата приемки": "15.03.2025",
            "Номер приемки": 43,
            "Контрагент": "АО Турбина",
            "Подразделение": "Цех 2",
            "№ позиции": 2,
            "Услуга": "Перемотка",
            "Наименование": "Провод",
            "Группа работ": "Обмотка",
            "Тип операции": "Расходы",
            "Цена": 250,
            "Количество": 4,
            "Инв. номер двигателя": None,
        },
    ]


def _write_sheet(path, rows):
    pd.DataFrame(rows).to_excel(path, index=False, engine="openpyxl")
    return str(path)


def test_parse_reception_excel(tmp_path):
    path = _write_sheet(tmp_path / "acceptance.xlsx", _sheet_rows())
    
    items = parse_reception_excel(path)
    
    assert len(items) == 3
    first = items[0]
    assert first.reception_date == date(2025, 3, 14)
    assert first.reception_number == "42"
    assert first.price == 1500.5
    assert first.transaction_type == "income"
    assert first.work_group == "Механика"
    assert items[1].work_group == ""
    assert items[1].transaction_type == "expense"
    assert items[2].motor_inventory_number is None
    assert len({item.reception_id for item in items}) == 3
    assert list(group_by_position(items)) == [1, 2]


def test_parse_skips_empty_rows(tmp_path):
    rows = _sheet_rows()
    rows.insert(1, {key: None for key in rows[0]})
    path = _write_sheet(tmp_path / "acceptance.xlsx", rows)
    
    assert len(parse_reception_excel(path)) == 3


def test_parse_missing_file(tmp_path):
    with pytest.raises(DataNotFoundError):
        parse_reception_excel(str(tmp_path / "missing.xlsx"))


def test_parse_missing_columns(tmp_path):
    rows = [{k: v for k, v in row.items() if k != "Цена"} for row in _sheet_rows()]
    path = _write_sheet(tmp_path / "acceptance.xlsx", rows)
    
    with pytest.raises(ParsingError) as exc_info:
        parse_reception_excel(path)
    assert exc_info.value.details["missing_columns"] == ["Цена"]


def test_parse_invalid_row_reports_sheet_row(tmp_path):
    rows = _sheet_rows()
    rows[2]["Количество"] = 0
    path = _write_sheet(tmp_path / "acceptance.xlsx", rows)
    
    with pytest.raises(ParsingError) as exc_info:
        parse_reception_excel(path)
    assert exc_info.value.details["row"] == 4


def test_parse_not_an_excel_file(tmp_path):
    path = tmp_path / "broken.xlsx"
    path.write_text("not a workbook", encoding="utf-8")
    
    with pytest.raises(ParsingError):
        parse_reception_excel(str(path))


def test_parse_rejects_oversized_sheet(tmp_path, monkeypatch):
    monkeypatch.setenv("MAX_UPLOAD_ROWS", "2")
    path = _write_sheet(tmp_path / "acceptance.xlsx", _sheet_rows())
    
    with pytest.raises(ParsingError) as exc_info:
        parse_reception_excel(path)
    assert exc_info.value.details["max_rows"] == 2


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1 500,50", 1500.5),
        ("2\xa0000", 2000.0),
        (7, 7.0),
        ("", None),
        (None, None),
        ("abc", None),
    ],
)
def test_clean_number(raw, expected):
    assert clean_number(raw) == expected


@pytest.mark.parametrize("position", ["1,5", 1.5])
def test_parse_rejects_fractional_position_number(tmp_path, position):
    rows = _sheet_rows()
    rows[1]["№ позиции"] = position
    path = _write_sheet(tmp_path / "acceptance.xlsx", rows)
    
    with pytest.raises(ParsingError) as exc_info:
        parse_reception_excel(path)
    assert exc_info.value.details["row"] == 3
    assert exc_info.value.details["column"] == "№ позиции"


def test_row_to_line_item_rejects_fractional_position_number():
    row = pd.Series({**_sheet_rows()[0], "№ позиции": "1,5"})
    
    with pytest.raises(ParsingError) as exc_info:
        row_to_line_item(row, 2)
    assert exc_info.value.details["row"] == 2


def test_row_to_line_item_accepts_whole_float_position():
    row = pd.Series({**_sheet_rows()[0], "№ позиции": 3.0})
    assert row_to_line_item(row, 2).position_number == 3
