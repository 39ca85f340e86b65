"""
Landlord-side utility accounts (điện, nước, internet...) and their bills.
Independent of tenant invoices.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rentalpro.database.models import Property, Room, Utility, UtilityBill, BillStatus
from rentalpro.errors import ValidationFailed
from rentalpro.schemas.validation import UtilityForm, UtilityBillForm, validate_form
from rentalpro.services.crud import get_or_raise, apply_changes

logger = logging.getLogger(__name__)

NOT_FOUND = "Không tìm thấy dịch vụ"

EDITABLE_FIELDS = ("room_id", "name", "type", "provider", "customer_code", "monthly_due_date", "notes")
BILL_FIELDS = (
    "amount", "due_date", "period_start", "period_end",
    "previous_reading", "current_reading", "rate_per_unit", "attachment_url", "notes",
)
BILL_NOT_FOUND = "Không tìm thấy hóa đơn dịch vụ"


def bill_display_status(bill: UtilityBill, today: Optional[date] = None) -> str:
    today = today or date.today()
    if bill.status == BillStatus.pending.value and bill.due_date < today:
        return BillStatus.overdue.value
    return bill.status


async def _check_room(session: AsyncSession, property_id: int, room_id: Optional[int]) -> None:
    if not room_id:
        return
    room = await get_or_raise(session, Room, room_id, "Không tìm thấy phòng")
    if room.property_id != property_id:
        raise ValidationFailed({"room_id": "Phòng không thuộc nhà cho thuê này"})


async def create_utility(session: AsyncSession, data: dict) -> Utility:
    form = validate_form(UtilityForm, data)
    await get_or_raise(session, Property, form.property_id, "Không tìm thấy nhà cho thuê")

    await _check_room(session, form.property_id, form.room_id)

    utility = Utility(**form.model_dump())
    session.add(utility)
    await session.commit()
    logger.info(f"Utility {utility.id} ({utility.type}) created for property {utility.property_id}")
    return utility


async def update_utility(session: AsyncSession, utility_id: int, changes: dict) -> Utility:
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Fields cannot be changed: {', '.join(sorted(unknown))}")

    utility = await get_or_raise(session, Utility, utility_id, NOT_FOUND)
    merged = {name: getattr(utility, name) for name in EDITABLE_FIELDS}
    merged["property_id"] = utility.property_id
    merged.update(changes)
    form = validate_form(UtilityForm, merged)
    if "room_id" in changes:
        await _check_room(session, utility.property_id, form.room_id)

    apply_changes(utility, {k: getattr(form, k) for k in changes}, EDITABLE_FIELDS)
    await session.commit()
    return utility


async def list_utilities_by_property(session: AsyncSession, property_id: int) -> List[Utility]:
    stmt = (
        select(Utility)
        .where(Utility.property_id == property_id)
        .options(selectinload(Utility.bills))
        .order_by(Utility.type, Utility.name)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


def _usage(form: UtilityBillForm) -> Optional[Decimal]:
    if form.previous_reading is None or form.current_reading is None:
        return None
    return form.current_reading - form.previous_reading


async def create_bill(session: AsyncSession, utility_id: int, data: dict) -> UtilityBill:
    utility = await get_or_raise(session, Utility, utility_id, NOT_FOUND)
    form = validate_form(UtilityBillForm, {"utility_type": utility.type, **data})

    if form.period_start > form.period_end:
        raise ValidationFailed({"period_end": "Ngày kết thúc kỳ phải sau ngày bắt đầu"})

    usage = _usage(form)

    bill = UtilityBill(
        utility_id=utility.id,
        property_id=utility.property_id,
        amount=form.amount,
        due_date=form.due_date,
        period_start=form.period_start,
        period_end=form.period_end,
        previous_reading=form.previous_reading,
        current_reading=form.current_reading,
        usage_amount=usage,
        rate_per_unit=form.rate_per_unit,
        attachment_url=form.attachment_url,
        notes=form.notes,
        status=BillStatus.pending.value,
    )
    session.add(bill)
    await session.commit()
    logger.info(f"Utility bill {bill.id} for utility {utility_id}: {bill.amount} VND")
    return bill


async def update_bill(session: AsyncSession, bill_id: int, changes: dict) -> UtilityBill:
    """Edit a bill; the whole bill is validated again and usage follows the readings."""
    unknown = set(changes) - set(BILL_FIELDS)
    if unknown:
        raise ValueError(f"Fields cannot be changed: {', '.join(sorted(unknown))}")

    bill = await get_or_raise(
        session, UtilityBill, bill_id, BILL_NOT_FOUND, options=[selectinload(UtilityBill.utility)]
    )
    merged = {name: getattr(bill, name) for name in BILL_FIELDS}
    merged["utility_type"] = bill.utility.type
    merged.update(changes)
    form = validate_form(UtilityBillForm, merged)

    if form.period_start > form.period_end:
        raise ValidationFailed({"period_end": "Ngày kết thúc kỳ phải sau ngày bắt đầu"})

    for name in BILL_FIELDS:
        setattr(bill, name, getattr(form, name))
    bill.usage_amount = _usage(form)

    await session.commit()
    logger.info(f"Utility bill {bill_id} updated: {bill.amount} VND")
    return bill


async def list_bills(
    session: AsyncSession,
    property_id: Optional[int] = None,
    utility_id: Optional[int] = None,
    status: Optional[str] = None,
    today: Optional[date] = None,
) -> List[UtilityBill]:
    """Latest due first. status filters on the displayed status."""
    stmt = (
        select(UtilityBill)
        .options(selectinload(UtilityBill.utility))
        .order_by(UtilityBill.due_date.desc(), UtilityBill.id.desc())
    )
    if property_id:
        stmt = stmt.where(UtilityBill.property_id == property_id)
    if utility_id:
        stmt = stmt.where(UtilityBill.utility_id == utility_id)
    result = await session.execute(stmt)
    bills = list(result.scalars().all())
    if status:
        bills = [b for b in bills if bill_display_status(b, today) == status]
    return bills


async def mark_bill_paid(session: AsyncSession, bill_id: int, paid_date: Optional[date] = None) -> UtilityBill:
    bill = await get_or_raise(session, UtilityBill, bill_id, BILL_NOT_FOUND)
    if bill.status == BillStatus.paid.value:
        return bill

    bill.status = BillStatus.paid.value
    bill.paid_date = paid_date or date.today()
    await session.commit()
    logger.info(f"Utility bill {bill_id} paid on {bill.paid_date}")
    return bill
