"""
Rental invoices: saving a billing draft, numbering, listing and the status lifecycle.

Persisted status moves draft -> sent -> paid (or cancelled). "overdue" is never written by
this module, it is derived from due_date by derive_display_status().
"""
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, NamedTuple, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rentalpro.config import config
from rentalpro.database.models import (
    CalculationType, RentalInvoice, InvoiceStatus, InvoiceTemplate, Room, Property, Tenant
)
from rentalpro.errors import NoActiveTenantError, PreconditionError, StoreError, ValidationFailed
from rentalpro.schemas.validation import ColorSettingsForm, validate_form, parse_reading, parse_vnd
from rentalpro.services import billing_service
from rentalpro.services.billing_service import BillingDraft
from rentalpro.services.crud import get_or_raise, delete_record

logger = logging.getLogger(__name__)

NOT_FOUND = "Không tìm thấy hóa đơn"
NUMBER_ATTEMPTS = 3

AMOUNT_FIELDS = (
    "rent_amount", "electricity_amount", "water_amount", "internet_amount", "trash_amount",
)
READING_FIELDS = (
    "electricity_previous_reading", "electricity_current_reading",
    "water_previous_reading", "water_current_reading",
)
PRICE_FIELDS = ("electricity_unit_price", "water_unit_price")
TYPE_FIELDS = ("electricity_calculation_type", "water_calculation_type")
NOTE_FIELDS = ("electricity_note", "water_note", "internet_note", "trash_note", "notes")
EDITABLE_FIELDS = AMOUNT_FIELDS + READING_FIELDS + PRICE_FIELDS + TYPE_FIELDS + NOTE_FIELDS + (
    "other_fees", "period_start", "period_end", "due_date", "template_type",
)


class InvoiceDetails(NamedTuple):
    """Invoice with what its weak references still point to (any of them may be gone)"""
    invoice: RentalInvoice
    room: Optional[Room]
    property: Optional[Property]
    tenant: Optional[Tenant]


# --- Derived values ---

def compute_invoice_total(invoice: RentalInvoice) -> int:
    fees = sum(int(fee.get("amount") or 0) for fee in (invoice.other_fees or []))
    return (
        int(invoice.rent_amount or 0)
        + int(invoice.electricity_amount or 0)
        + int(invoice.water_amount or 0)
        + int(invoice.internet_amount or 0)
        + int(invoice.trash_amount or 0)
        + fees
    )


def derive_display_status(invoice: RentalInvoice, today: Optional[date] = None) -> str:
    """Unpaid invoices past their due date show as overdue; the stored status is left alone."""
    today = today or date.today()
    if (
        invoice.status in (InvoiceStatus.draft.value, InvoiceStatus.sent.value)
        and invoice.due_date is not None
        and invoice.due_date < today
    ):
        return InvoiceStatus.overdue.value
    return invoice.status


# --- Numbering ---

async def generate_invoice_number(session: AsyncSession, issue_date: date) -> str:
    """INV-YYYYMM-NNNN, sequential within the issue month."""
    prefix = f"INV-{issue_date.year}{issue_date.month:02d}-"
    stmt = (
        select(RentalInvoice.invoice_number)
        .where(RentalInvoice.invoice_number.like(f"{prefix}%"))
    )
    result = await session.execute(stmt)

    last = 0
    for number in result.scalars().all():
        suffix = number[len(prefix):]
        if suffix.isdigit():
            last = max(last, int(suffix))
    return f"{prefix}{last + 1:04d}"


# --- Create ---

async def create_invoice(
    session: AsyncSession,
    payload: Dict[str, Any],
    issue_date: Optional[date] = None,
) -> RentalInvoice:
    """
    Persist an invoice payload. Number, issue and due dates are filled in when missing
    and total_amount is always recomputed from the components.
    """
    data = dict(payload)
    issue = data.pop("issue_date", None) or issue_date or date.today()
    requested_number = data.pop("invoice_number", None)
    data.setdefault("due_date", issue + timedelta(days=config.INVOICE_DUE_DAYS))
    data.setdefault("status", InvoiceStatus.draft.value)
    data.setdefault("template_type", InvoiceTemplate.professional.value)

    for attempt in range(1, NUMBER_ATTEMPTS + 1):
        number = requested_number or await generate_invoice_number(session, issue)
        invoice = RentalInvoice(invoice_number=number, issue_date=issue, **data)
        invoice.total_amount = compute_invoice_total(invoice)
        session.add(invoice)
        try:
            await session.commit()
        except IntegrityError as e:
            await session.rollback()
            logger.warning(f"Invoice number {number} taken (attempt {attempt}): {e.orig}")
            if requested_number:
                raise ValidationFailed({"invoice_number": "Mã hóa đơn đã tồn tại"})
            continue

        logger.info(
            f"Invoice {invoice.invoice_number} created for room {invoice.room_id}: "
            f"{invoice.total_amount} VND"
        )
        return invoice

    raise StoreError("Không thể tạo mã hóa đơn, vui lòng thử lại")


async def _load_room(session: AsyncSession, room_id: int) -> Room:
    return await get_or_raise(
        session, Room, room_id, "Không tìm thấy phòng",
        options=[selectinload(Room.contracts), selectinload(Room.property)],
    )


async def open_collection_draft(
    session: AsyncSession,
    room_id: int,
    today: Optional[date] = None,
    collection_day: Optional[int] = None,
    auto_period: bool = True,
    auto_load_readings: bool = True,
) -> BillingDraft:
    """Collection form for an occupied room: contract rent, period and last readings filled in."""
    today = today or date.today()
    room = await _load_room(session, room_id)
    contract = room.active_contract
    if contract is None:
        raise NoActiveTenantError()

    last_invoice = await get_last_invoice_for_room(session, room_id) if auto_load_readings else None
    return billing_service.open_draft(
        today,
        rent_amount=contract.monthly_rent,
        collection_day=collection_day,
        auto_period=auto_period,
        auto_load_readings=auto_load_readings,
        last_invoice=last_invoice,
    )


async def save_draft(
    session: AsyncSession,
    room_id: int,
    draft: BillingDraft,
    template_type: Optional[str] = None,
    issue_date: Optional[date] = None,
) -> RentalInvoice:
    room = await _load_room(session, room_id)
    # Raises before anything is written when the room has no tenant
    payload = billing_service.build_invoice_payload(draft, room.id, room.active_contract)
    if template_type:
        payload["template_type"] = InvoiceTemplate(template_type).value
    return await create_invoice(session, payload, issue_date=issue_date)


# --- Read ---

async def get_invoice(session: AsyncSession, invoice_id: int) -> RentalInvoice:
    return await get_or_raise(session, RentalInvoice, invoice_id, NOT_FOUND)


async def get_invoice_details(session: AsyncSession, invoice_id: int) -> InvoiceDetails:
    invoice = await get_invoice(session, invoice_id)

    room_stmt = select(Room).where(Room.id == invoice.room_id).options(selectinload(Room.property))
    room = (await session.execute(room_stmt)).scalar_one_or_none()
    tenant = (await session.execute(select(Tenant).where(Tenant.id == invoice.tenant_id))).scalar_one_or_none()

    return InvoiceDetails(invoice, room, room.property if room else None, tenant)


async def list_invoices(
    session: AsyncSession,
    status: Optional[str] = None,
    room_id: Optional[int] = None,
    today: Optional[date] = None,
) -> List[RentalInvoice]:
    """Newest first. status filters on the displayed status, so "overdue" works."""
    stmt = select(RentalInvoice).order_by(RentalInvoice.created_at.desc(), RentalInvoice.id.desc())
    if room_id:
        stmt = stmt.where(RentalInvoice.room_id == room_id)
    result = await session.execute(stmt)
    invoices = list(result.scalars().all())
    if status:
        invoices = [inv for inv in invoices if derive_display_status(inv, today) == status]
    return invoices


async def list_invoices_by_room(
    session: AsyncSession,
    room_id: int,
    limit: Optional[int] = None,
) -> List[RentalInvoice]:
    stmt = (
        select(RentalInvoice)
        .where(RentalInvoice.room_id == room_id)
        .order_by(RentalInvoice.created_at.desc(), RentalInvoice.id.desc())
    )
    if limit:
        stmt = stmt.limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_last_invoice_for_room(session: AsyncSession, room_id: int) -> Optional[RentalInvoice]:
    invoices = await list_invoices_by_room(session, room_id, limit=1)
    return invoices[0] if invoices else None


# --- Status transitions ---

async def mark_paid(session: AsyncSession, invoice_id: int) -> RentalInvoice:
    """Set status to paid. Calling it on a paid invoice changes nothing."""
    invoice = await get_invoice(session, invoice_id)

    if invoice.status == InvoiceStatus.paid.value:
        logger.info(f"Invoice {invoice.invoice_number} already paid")
        return invoice

    invoice.status = InvoiceStatus.paid.value
    await session.commit()
    logger.info(f"Invoice {invoice.invoice_number} marked paid")
    return invoice


async def mark_sent(session: AsyncSession, invoice_id: int) -> RentalInvoice:
    invoice = await get_invoice(session, invoice_id)
    if invoice.status == InvoiceStatus.sent.value:
        return invoice
    if invoice.status != InvoiceStatus.draft.value:
        raise PreconditionError("Chỉ gửi được hóa đơn nháp")

    invoice.status = InvoiceStatus.sent.value
    await session.commit()
    logger.info(f"Invoice {invoice.invoice_number} sent")
    return invoice


async def cancel_invoice(session: AsyncSession, invoice_id: int) -> RentalInvoice:
    invoice = await get_invoice(session, invoice_id)
    if invoice.status == InvoiceStatus.cancelled.value:
        return invoice
    if invoice.status == InvoiceStatus.paid.value:
        raise PreconditionError("Hóa đơn đã thanh toán, không thể hủy")

    invoice.status = InvoiceStatus.cancelled.value
    await session.commit()
    logger.info(f"Invoice {invoice.invoice_number} cancelled")
    return invoice


async def delete_invoice(session: AsyncSession, invoice_id: int) -> None:
    invoice = await get_invoice(session, invoice_id)
    number = invoice.invoice_number
    await delete_record(session, invoice)
    logger.info(f"Invoice {number} deleted")


# --- Edits ---

async def update_color_settings(session: AsyncSession, invoice_id: int, settings: dict) -> RentalInvoice:
    """Patch only color_settings; amounts and status are untouched."""
    form = validate_form(ColorSettingsForm, settings)
    invoice = await get_invoice(session, invoice_id)

    merged = dict(invoice.color_settings or {})
    merged.update(form.model_dump(exclude_none=True))
    # Reassign: in-place mutation of a JSON column is not tracked
    invoice.color_settings = merged

    await session.commit()
    return invoice


def _recompute_metered(invoice: RentalInvoice, service: str) -> None:
    metered = billing_service.MeteredService(
        previous_reading=Decimal(getattr(invoice, f"{service}_previous_reading") or 0),
        current_reading=Decimal(getattr(invoice, f"{service}_current_reading") or 0),
        unit_price=int(getattr(invoice, f"{service}_unit_price") or 0),
    )
    setattr(invoice, f"{service}_amount", billing_service.metered_amount(metered))


async def update_invoice_amounts(session: AsyncSession, invoice_id: int, changes: dict) -> RentalInvoice:
    """
    Edit amounts, readings, prices, fees or notes of an unpaid invoice.
    A changed reading or price recomputes a metered service amount unless the amount
    itself is in the same edit. Flat amounts only change when edited directly.
    total_amount is always recomputed.
    """
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Fields cannot be changed: {', '.join(sorted(unknown))}")

    invoice = await get_invoice(session, invoice_id)
    if invoice.status in (InvoiceStatus.paid.value, InvoiceStatus.cancelled.value):
        raise PreconditionError("Hóa đơn đã đóng, không thể sửa")

    errors = {}
    cleaned = {}
    for key, value in changes.items():
        try:
            if key in AMOUNT_FIELDS or key in PRICE_FIELDS:
                value = parse_vnd(value)
                if value < 0:
                    raise ValueError("Số tiền không được âm")
            elif key in READING_FIELDS:
                value = parse_reading(value)
                if value < 0:
                    raise ValueError("Chỉ số không được âm")
            elif key == "other_fees":
                value = [
                    {"name": fee.get("name", ""), "amount": parse_vnd(fee.get("amount")), "note": fee.get("note")}
                    for fee in (value or [])
                ]
            elif key in TYPE_FIELDS:
                value = CalculationType(value).value
            elif key == "template_type":
                value = InvoiceTemplate(value).value
        except ValueError as e:
            errors[key] = str(e)
            continue
        cleaned[key] = value
    if errors:
        raise ValidationFailed(errors)

    if cleaned.get("period_start", invoice.period_start) > cleaned.get("period_end", invoice.period_end):
        raise ValidationFailed({"period_end": "Ngày kết thúc kỳ phải sau ngày bắt đầu"})

    for key, value in cleaned.items():
        setattr(invoice, key, value)

    for service in billing_service.METERED_SERVICES:
        # A flat amount is what the landlord typed; readings never touch it
        if getattr(invoice, f"{service}_calculation_type") == CalculationType.flat.value:
            continue
        inputs = {
            f"{service}_calculation_type", f"{service}_previous_reading",
            f"{service}_current_reading", f"{service}_unit_price",
        }
        if inputs & set(changes) and f"{service}_amount" not in changes:
            _recompute_metered(invoice, service)

    invoice.total_amount = compute_invoice_total(invoice)
    await session.commit()
    logger.info(f"Invoice {invoice.invoice_number} amounts updated: total {invoice.total_amount} VND")
    return invoice
