import pytest
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

from rentalpro.handlers.invoices import (
    apply_reading, apply_fee_lines, apply_setting_lines, draft_summary, parse_collect_args
)
from rentalpro.services import billing_service
from rentalpro.states import FORM_TEXT

TODAY = date(2025, 9, 20)


@pytest.fixture
def draft():
    draft = billing_service.open_draft(TODAY, rent_amount=3_000_000)
    return billing_service.set_metered_field(draft, "electricity", previous_reading=100, unit_price=3500)


def test_reading_sets_meter(draft):
    updated = apply_reading(draft, "electricity", "130")
    assert updated.electricity.current_reading == Decimal("130")
    assert updated.electricity.amount == 105_000
    assert draft.electricity.current_reading == Decimal(0)


def test_reading_with_decimal_comma(draft):
    updated = apply_reading(draft, "electricity", "110,5")
    assert updated.electricity.amount == 36_750


def test_reading_below_previous_refused(draft):
    with pytest.raises(ValueError) as exc:
        apply_reading(draft, "electricity", "99")
    assert str(exc.value) == "Chỉ số mới phải lớn hơn hoặc bằng chỉ số cũ"


def test_flat_amount(draft):
    updated = apply_reading(draft, "water", "= 150.000")
    assert updated.water.calculation_type == "flat"
    assert updated.water.amount == 150_000


def test_fee_lines(draft):
    updated = apply_fee_lines(draft, "Phí gửi xe; 100.000\n\nSửa vòi nước; 70000; tháng 9")
    assert [(f.name, f.amount, f.note) for f in updated.additional_fees] == [
        ("Phí gửi xe", 100_000, None),
        ("Sửa vòi nước", 70_000, "tháng 9"),
    ]


@pytest.mark.parametrize("text", ["Phí gửi xe", "; 5000", "Phí; -5000"])
def test_bad_fee_line(draft, text):
    with pytest.raises(ValueError):
        apply_fee_lines(draft, text)


def test_draft_summary(draft):
    draft = apply_reading(draft, "electricity", "130")
    text = draft_summary(draft, "phòng #1")

    assert "Thu tiền phòng #1" in text
    assert "100 → 130 = 30 kWh" in text
    assert f"TỔNG CỘNG: {draft.total:,} ₫".replace(",", ".") in text


@pytest.mark.parametrize("args,expected", [
    ("12", (12, None, True)),
    ("12 5", (12, 5, True)),
    ("12 mới", (12, None, False)),
    ("12 mới 24", (12, 24, False)),
])
def test_collect_args(args, expected):
    assert parse_collect_args(args) == expected


@pytest.mark.parametrize("args", [None, "", "phòng", "12 32", "12 5 6", "12 nhanh"])
def test_bad_collect_args(args):
    with pytest.raises(ValueError):
        parse_collect_args(args)


def test_setting_lines(draft):
    updated = apply_setting_lines(
        draft,
        "Phòng 3.200.000\ninternet 100.000; gói 100Mb\nrác 20000\nghi chú Thanh toán tiền mặt",
        TODAY,
    )
    assert updated.rent_amount == 3_200_000
    assert (updated.internet_amount, updated.internet_note) == (100_000, "gói 100Mb")
    assert (updated.trash_amount, updated.trash_note) == (20_000, None)
    assert updated.notes == "Thanh toán tiền mặt"
    assert updated.total == 3_200_000 + 100_000 + 20_000
    assert draft.rent_amount == 3_000_000


def test_setting_lines_period(draft):
    manual = apply_setting_lines(draft, "kỳ 01/08/2025 - 31/08/2025", TODAY)
    assert not manual.auto_period
    assert (manual.period_start, manual.period_end) == (date(2025, 8, 1), date(2025, 8, 31))

    auto = apply_setting_lines(manual, "kỳ tự động\nngày thu 10", TODAY)
    assert auto.auto_period
    assert auto.collection_day == 10
    assert (auto.period_start, auto.period_end) == (date(2025, 8, 11), date(2025, 9, 10))


@pytest.mark.parametrize("text,message", [
    ("phòng -5", "Số tiền không được âm"),
    ("internet", "Thiếu số tiền"),
    ("ngày thu 40", "Ngày thu tiền phải từ 1 đến 31"),
    ("kỳ 31/08/2025 - 01/08/2025", "Ngày kết thúc kỳ phải sau ngày bắt đầu"),
    ("kỳ 01/08/2025", "Kỳ thu tiền: dd/mm/yyyy - dd/mm/yyyy"),
    ("gas 50000", "Dòng không hợp lệ: gas 50000"),
])
def test_bad_setting_line(draft, text, message):
    with pytest.raises(ValueError) as exc:
        apply_setting_lines(draft, text, TODAY)
    assert str(exc.value) == message


@pytest.mark.parametrize("text,accepted", [
    ("130", True),
    ("Phí gửi xe; 100.000", True),
    ("/invoices", False),
    ("/cancel", False),
    ("🧾 Hóa đơn", False),
])
def test_form_steps_leave_commands_alone(text, accepted):
    assert bool(FORM_TEXT.resolve(SimpleNamespace(text=text))) is accepted
