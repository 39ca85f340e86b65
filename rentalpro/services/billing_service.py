"""
Billing calculation engine for the monthly collection form.

The draft is an immutable NamedTuple; every edit goes through a reducer that returns
a new draft with all derived fields (metered amounts, period) already recomputed.
Nothing here touches the database.
"""
import calendar
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, NamedTuple, Optional, Tuple

from rentalpro.config import config
from rentalpro.database.models import CalculationType, ContractStatus, InvoiceStatus, InvoiceTemplate
from rentalpro.errors import NoActiveTenantError, ValidationFailed

METERED_SERVICES = ("electricity", "water")

# Fields that trigger recomputation of a metered amount
_METER_INPUTS = {"calculation_type", "previous_reading", "current_reading", "unit_price"}


class MeteredService(NamedTuple):
    calculation_type: str = CalculationType.meter.value
    previous_reading: Decimal = Decimal(0)
    current_reading: Decimal = Decimal(0)
    unit_price: int = 0
    amount: int = 0
    note: Optional[str] = None

    @property
    def usage(self) -> Decimal:
        return max(Decimal(0), Decimal(self.current_reading) - Decimal(self.previous_reading))


class AdditionalFee(NamedTuple):
    name: str = ""
    amount: int = 0
    note: Optional[str] = None


class BillingDraft(NamedTuple):
    period_start: date
    period_end: date
    rent_amount: int = 0
    electricity: MeteredService = MeteredService()
    water: MeteredService = MeteredService()
    internet_amount: int = 0
    internet_note: Optional[str] = None
    trash_amount: int = 0
    trash_note: Optional[str] = None
    additional_fees: Tuple[AdditionalFee, ...] = ()
    collection_day: int = 24
    auto_period: bool = True
    auto_load_readings: bool = True
    notes: Optional[str] = None

    @property
    def total(self) -> int:
        return compute_total(self)


# --- Metered services ---

def metered_amount(service: MeteredService) -> int:
    """usage * unit_price, rounded to whole VND. Usage never goes below zero."""
    value = service.usage * Decimal(service.unit_price)
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def recompute_metered(service: MeteredService) -> MeteredService:
    if service.calculation_type != CalculationType.meter.value:
        # Flat: amount is whatever the user typed
        return service
    return service._replace(amount=metered_amount(service))


def set_metered_field(draft: BillingDraft, service_name: str, **changes: Any) -> BillingDraft:
    """
    Edit electricity or water. In meter mode the amount is always derived,
    so a typed amount only sticks in flat mode.
    """
    if service_name not in METERED_SERVICES:
        raise ValueError(f"Unknown metered service: {service_name}")

    unknown = set(changes) - set(MeteredService._fields)
    if unknown:
        raise ValueError(f"Unknown fields: {', '.join(sorted(unknown))}")

    if "calculation_type" in changes:
        changes["calculation_type"] = CalculationType(changes["calculation_type"]).value
    for key in ("previous_reading", "current_reading"):
        if key in changes:
            changes[key] = Decimal(str(changes[key] if changes[key] is not None else 0))
    for key in ("unit_price", "amount"):
        if key in changes:
            changes[key] = int(changes[key] or 0)

    service: MeteredService = getattr(draft, service_name)._replace(**changes)
    if _METER_INPUTS & set(changes) or "amount" in changes:
        service = recompute_metered(service)

    return draft._replace(**{service_name: service})


# --- Additional fees ---

def add_fee(draft: BillingDraft, name: str = "", amount: int = 0, note: Optional[str] = None) -> BillingDraft:
    fee = AdditionalFee(name=name, amount=int(amount or 0), note=note)
    return draft._replace(additional_fees=draft.additional_fees + (fee,))


def remove_fee(draft: BillingDraft, index: int) -> BillingDraft:
    fees = list(draft.additional_fees)
    if not 0 <= index < len(fees):
        raise IndexError(f"Fee index {index} out of range")
    del fees[index]
    return draft._replace(additional_fees=tuple(fees))


def update_fee(draft: BillingDraft, index: int, **changes: Any) -> BillingDraft:
    fees = list(draft.additional_fees)
    if not 0 <= index < len(fees):
        raise IndexError(f"Fee index {index} out of range")
    if "amount" in changes:
        changes["amount"] = int(changes["amount"] or 0)
    fees[index] = fees[index]._replace(**changes)
    return draft._replace(additional_fees=tuple(fees))


def set_flat_fields(draft: BillingDraft, **changes: Any) -> BillingDraft:
    """rent_amount, internet_*, trash_* and notes."""
    allowed = {"rent_amount", "internet_amount", "internet_note", "trash_amount", "trash_note", "notes"}
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"Unknown fields: {', '.join(sorted(unknown))}")
    for key in ("rent_amount", "internet_amount", "trash_amount"):
        if key in changes:
            changes[key] = int(changes[key] or 0)
    return draft._replace(**changes)


# --- Billing period ---

def _anchor(year: int, month: int, day: int) -> date:
    """Collection day in the given month, clamped to the month's last day (e.g. 31 -> 30 Apr)."""
    while month < 1:
        month += 12
        year -= 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def derive_period(today: date, collection_day: int) -> Tuple[date, date]:
    """
    One-month window ending on the most recent collection day.

    collection_day=24, today=2025-09-20 -> (2025-07-25, 2025-08-24)
    collection_day=24, today=2025-09-25 -> (2025-08-25, 2025-09-24)
    """
    if not 1 <= collection_day <= 31:
        raise ValueError("Ngày thu tiền phải từ 1 đến 31")

    this_anchor = _anchor(today.year, today.month, collection_day)
    if today >= this_anchor:
        end_month = today.month
    else:
        end_month = today.month - 1

    period_end = _anchor(today.year, end_month, collection_day)
    period_start = _anchor(today.year, end_month - 1, collection_day) + timedelta(days=1)
    return period_start, period_end


def legacy_period(today: date) -> Tuple[date, date]:
    """Manual-mode default: month to date from the 28th on, otherwise the last 30 days."""
    if today.day >= 28:
        return today.replace(day=1), today
    return today - timedelta(days=29), today


def refresh_period(draft: BillingDraft, today: date) -> BillingDraft:
    if draft.auto_period:
        start, end = derive_period(today, draft.collection_day)
    else:
        start, end = legacy_period(today)
    return draft._replace(period_start=start, period_end=end)


def set_collection_day(draft: BillingDraft, collection_day: int, today: date) -> BillingDraft:
    if not 1 <= int(collection_day) <= 31:
        raise ValidationFailed({"collection_day": "Ngày thu tiền phải từ 1 đến 31"})
    draft = draft._replace(collection_day=int(collection_day))
    if draft.auto_period:
        draft = refresh_period(draft, today)
    return draft


def set_auto_period(draft: BillingDraft, enabled: bool, today: date) -> BillingDraft:
    return refresh_period(draft._replace(auto_period=bool(enabled)), today)


def set_period(draft: BillingDraft, period_start: date, period_end: date) -> BillingDraft:
    """Manual period entry, only while auto_period is off."""
    if draft.auto_period:
        raise ValidationFailed({"period_start": "Kỳ thu tiền đang được tính tự động"})
    if period_start > period_end:
        raise ValidationFailed({"period_end": "Ngày kết thúc kỳ phải sau ngày bắt đầu"})
    return draft._replace(period_start=period_start, period_end=period_end)


# --- Seeding from the previous invoice ---

def seed_readings(draft: BillingDraft, last_invoice) -> BillingDraft:
    """
    Carry the previous invoice's closing readings and unit prices forward.
    Without a previous invoice the draft is returned untouched.
    """
    if last_invoice is None:
        return draft

    electricity = draft.electricity._replace(
        previous_reading=Decimal(last_invoice.electricity_current_reading or 0),
        unit_price=int(last_invoice.electricity_unit_price or draft.electricity.unit_price),
    )
    water = draft.water._replace(
        previous_reading=Decimal(last_invoice.water_current_reading or 0),
        unit_price=int(last_invoice.water_unit_price or draft.water.unit_price),
    )
    return draft._replace(
        electricity=recompute_metered(electricity),
        water=recompute_metered(water),
    )


def set_auto_load_readings(draft: BillingDraft, enabled: bool, last_invoice=None) -> BillingDraft:
    draft = draft._replace(auto_load_readings=bool(enabled))
    if enabled:
        draft = seed_readings(draft, last_invoice)
    return draft


# --- Total ---

def compute_total(draft: BillingDraft) -> int:
    return (
        int(draft.rent_amount)
        + int(draft.electricity.amount)
        + int(draft.water.amount)
        + int(draft.internet_amount)
        + int(draft.trash_amount)
        + sum(int(fee.amount) for fee in draft.additional_fees)
    )


# --- Draft construction and save payload ---

def open_draft(
    today: date,
    rent_amount: int = 0,
    collection_day: Optional[int] = None,
    auto_period: bool = True,
    auto_load_readings: bool = True,
    last_invoice=None,
) -> BillingDraft:
    """Fresh collection form with default prices and fees, period and readings filled in."""
    start, end = legacy_period(today)
    draft = BillingDraft(
        period_start=start,
        period_end=end,
        rent_amount=int(rent_amount or 0),
        electricity=MeteredService(unit_price=config.DEFAULT_ELECTRICITY_PRICE),
        water=MeteredService(unit_price=config.DEFAULT_WATER_PRICE),
        internet_amount=config.DEFAULT_INTERNET_AMOUNT,
        trash_amount=config.DEFAULT_TRASH_AMOUNT,
        collection_day=collection_day or config.DEFAULT_COLLECTION_DAY,
        auto_period=auto_period,
        auto_load_readings=auto_load_readings,
    )
    draft = refresh_period(draft, today)
    if auto_load_readings:
        draft = seed_readings(draft, last_invoice)
    return draft


def build_invoice_payload(draft: BillingDraft, room_id: int, contract) -> Dict[str, Any]:
    """
    Invoice fields for a room's active contract.
    Raises NoActiveTenantError when the room has nobody to bill.
    """
    if contract is None or contract.status != ContractStatus.active.value or not contract.tenant_id:
        raise NoActiveTenantError()

    if draft.period_start > draft.period_end:
        raise ValidationFailed({"period_end": "Ngày kết thúc kỳ phải sau ngày bắt đầu"})

    electricity = recompute_metered(draft.electricity)
    water = recompute_metered(draft.water)
    draft = draft._replace(electricity=electricity, water=water)

    return {
        "room_id": room_id,
        "tenant_id": contract.tenant_id,
        "contract_id": contract.id,
        "period_start": draft.period_start,
        "period_end": draft.period_end,
        "rent_amount": int(draft.rent_amount),
        "electricity_calculation_type": electricity.calculation_type,
        "electricity_previous_reading": electricity.previous_reading,
        "electricity_current_reading": electricity.current_reading,
        "electricity_unit_price": electricity.unit_price,
        "electricity_amount": electricity.amount,
        "electricity_note": electricity.note,
        "water_calculation_type": water.calculation_type,
        "water_previous_reading": water.previous_reading,
        "water_current_reading": water.current_reading,
        "water_unit_price": water.unit_price,
        "water_amount": water.amount,
        "water_note": water.note,
        "internet_amount": int(draft.internet_amount),
        "internet_note": draft.internet_note,
        "trash_amount": int(draft.trash_amount),
        "trash_note": draft.trash_note,
        "other_fees": [
            {"name": fee.name, "amount": int(fee.amount), "note": fee.note}
            for fee in draft.additional_fees
        ],
        "total_amount": compute_total(draft),
        "notes": draft.notes,
        "status": InvoiceStatus.draft.value,
        "template_type": InvoiceTemplate.professional.value,
    }


# --- FSM storage (JSON friendly) ---

def dump_draft(draft: BillingDraft) -> Dict[str, Any]:
    def service(s: MeteredService) -> Dict[str, Any]:
        return {
            "calculation_type": s.calculation_type,
            "previous_reading": str(s.previous_reading),
            "current_reading": str(s.current_reading),
            "unit_price": s.unit_price,
            "amount": s.amount,
            "note": s.note,
        }

    data = draft._asdict()
    data["period_start"] = draft.period_start.isoformat()
    data["period_end"] = draft.period_end.isoformat()
    data["electricity"] = service(draft.electricity)
    data["water"] = service(draft.water)
    data["additional_fees"] = [fee._asdict() for fee in draft.additional_fees]
    return data


def load_draft(data: Dict[str, Any]) -> BillingDraft:
    def service(raw: Dict[str, Any]) -> MeteredService:
        return MeteredService(
            calculation_type=raw["calculation_type"],
            previous_reading=Decimal(raw["previous_reading"]),
            current_reading=Decimal(raw["current_reading"]),
            unit_price=int(raw["unit_price"]),
            amount=int(raw["amount"]),
            note=raw.get("note"),
        )

    values = dict(data)
    values["period_start"] = date.fromisoformat(data["period_start"])
    values["period_end"] = date.fromisoformat(data["period_end"])
    values["electricity"] = service(data["electricity"])
    values["water"] = service(data["water"])
    values["additional_fees"] = tuple(AdditionalFee(**fee) for fee in data.get("additional_fees", []))
    return BillingDraft(**values)
