import pytest
from datetime import date
from decimal import Decimal

from rentalpro.errors import ValidationFailed
from rentalpro.schemas.validation import (
    parse_vnd, parse_reading, parse_date, validate_form,
    AmountModel, DayOfMonthModel, ReadingModel, ContractForm, ColorSettingsForm, ColorThemeForm,
)


@pytest.mark.parametrize("value,expected", [
    ("3.000.000", 3_000_000),
    ("3 000 000", 3_000_000),
    ("3,000,000", 3_000_000),
    ("3000000đ", 3_000_000),
    ("", 0),
    (None, 0),
    (2500, 2500),
    (Decimal("99.6"), 100),
])
def test_parse_vnd(value, expected):
    assert parse_vnd(value) == expected


@pytest.mark.parametrize("value", ["ba triệu", "12a", True])
def test_parse_vnd_rejects_garbage(value):
    with pytest.raises(ValueError):
        parse_vnd(value)


def test_parse_reading():
    assert parse_reading("12,5") == Decimal("12.5")
    assert parse_reading(" 130 ") == Decimal("130")
    assert parse_reading("") == Decimal(0)
    with pytest.raises(ValueError):
        parse_reading("mười")


def test_parse_date():
    assert parse_date(" 24/08/2025 ") == date(2025, 8, 24)
    with pytest.raises(ValueError) as exc:
        parse_date("2025-08-24")
    assert str(exc.value) == "Ngày không hợp lệ, nhập theo dạng dd/mm/yyyy"


def test_scalar_models():
    assert validate_form(AmountModel, {"amount": "50.000"}).amount == 50_000
    assert validate_form(DayOfMonthModel, {"day": "25"}).day == 25
    assert validate_form(ReadingModel, {"reading": "1450,5"}).reading == Decimal("1450.5")

    with pytest.raises(ValidationFailed):
        validate_form(AmountModel, {"amount": "-1"})
    with pytest.raises(ValidationFailed):
        validate_form(DayOfMonthModel, {"day": "32"})
    with pytest.raises(ValidationFailed):
        validate_form(ReadingModel, {"reading": "abc"})


def test_missing_field_message():
    with pytest.raises(ValidationFailed) as exc:
        validate_form(ContractForm, {"start_date": date(2025, 1, 1)})
    assert exc.value.errors == {"monthly_rent": "Trường này là bắt buộc"}


def test_contract_dates_checked_together():
    with pytest.raises(ValidationFailed) as exc:
        validate_form(ContractForm, {
            "start_date": date(2025, 6, 1), "end_date": date(2025, 5, 31), "monthly_rent": "3.000.000",
        })
    assert exc.value.errors == {"form": "Ngày kết thúc phải sau ngày bắt đầu"}
    assert exc.value.message == "Ngày kết thúc phải sau ngày bắt đầu"


def test_contract_form():
    form = validate_form(ContractForm, {
        "start_date": "2025-06-01", "end_date": "", "monthly_rent": "3.000.000", "deposit_amount": "",
    })
    assert form.start_date == date(2025, 6, 1)
    assert form.end_date is None
    assert form.deposit_amount is None
    assert form.monthly_rent == 3_000_000


def test_contract_negative_rent():
    with pytest.raises(ValidationFailed) as exc:
        validate_form(ContractForm, {"start_date": date(2025, 6, 1), "monthly_rent": "-1"})
    assert exc.value.errors == {"monthly_rent": "Tiền thuê không được âm"}


def test_color_forms():
    settings = validate_form(ColorSettingsForm, {"header_bg": "#AABBCC", "total_bg": ""})
    assert settings.header_bg == "#aabbcc"
    assert settings.total_bg is None

    with pytest.raises(ValidationFailed) as exc:
        validate_form(ColorThemeForm, {
            "name": "Đỏ", "header_bg": "#ff0000", "header_text": "white",
            "total_bg": "#ffeeee", "total_text": "#990000",
        })
    assert exc.value.errors == {"header_text": "Mã màu phải có dạng #RRGGBB"}
