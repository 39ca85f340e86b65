import pytest
from datetime import date
from decimal import Decimal

from rentalpro.utils.ui import (
    format_amount, format_date, format_reading, number_to_words, amount_in_words,
    get_status_label, get_status_badge, MENU_BUTTONS, UIKeyboards,
)


@pytest.mark.parametrize("amount,expected", [
    (1_234_567, "1.234.567 ₫"),
    (0, "0 ₫"),
    (500, "500 ₫"),
    (None, "—"),
])
def test_format_amount(amount, expected):
    assert format_amount(amount) == expected


def test_format_date():
    assert format_date(date(2025, 9, 5)) == "05/09/2025"
    assert format_date(None) == "—"


@pytest.mark.parametrize("value,expected", [
    (130, "130"),
    (Decimal("130.00"), "130"),
    (Decimal("12.50"), "12,5"),
    ("0.25", "0,25"),
    (None, "—"),
])
def test_format_reading(value, expected):
    assert format_reading(value) == expected


@pytest.mark.parametrize("number,expected", [
    (0, "không"),
    (5, "năm"),
    (10, "mười"),
    (15, "mười lăm"),
    (21, "hai mươi mốt"),
    (45, "bốn mươi lăm"),
    (105, "một trăm linh năm"),
    (1000, "một nghìn"),
    (1_000_005, "một triệu không trăm linh năm"),
    (3_400_000, "ba triệu bốn trăm nghìn"),
    (1_000_000_000, "một tỷ"),
    (2_500_000_000, "hai tỷ năm trăm triệu"),
    (-50_000, "âm năm mươi nghìn"),
])
def test_number_to_words(number, expected):
    assert number_to_words(number) == expected


def test_amount_in_words():
    assert amount_in_words(3_400_000) == "Ba triệu bốn trăm nghìn đồng"
    assert amount_in_words(0) == "Không đồng"


def test_status_labels():
    assert get_status_label("overdue") == "Quá hạn"
    assert get_status_label("unknown") == "unknown"
    assert get_status_badge("paid") == "✅"
    assert get_status_badge("unknown") == "⚪"


def test_main_keyboard_has_every_menu_button():
    keyboard = UIKeyboards.main_reply_keyboard()
    assert [len(row) for row in keyboard.keyboard] == [2, 2, 2]
    assert tuple(b.text for row in keyboard.keyboard for b in row) == MENU_BUTTONS
