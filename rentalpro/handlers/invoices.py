from datetime import date
from typing import Optional, Tuple

from aiogram import Router, F
from aiogram.types import Message, CallbackQuery, BufferedInputFile
from aiogram.filters import Command, CommandObject
from aiogram.fsm.context import FSMContext
from sqlalchemy.ext.asyncio import AsyncSession

from rentalpro.errors import RentalError
from rentalpro.schemas.validation import parse_vnd, parse_reading, parse_date
from rentalpro.services import billing_service, invoice_service, export_service
from rentalpro.services.billing_service import BillingDraft, MeteredService, CalculationType
from rentalpro.states import FORM_TEXT, CollectionFormState
from rentalpro.utils.ui import (
    UIEmojis, UIMessages, UIKeyboards,
    format_amount, format_date, format_reading, get_status_badge, get_status_label
)

router = Router()

DONE_WORDS = {"xong", "done", "bỏ qua", "-"}
FRESH_WORDS = {"mới", "moi"}
SETTING_KEYS = ("ngày thu", "ghi chú", "phòng", "internet", "rác", "kỳ")
COLLECT_USAGE = "Cú pháp: /collect mã_phòng [ngày thu 1-31] [mới]"


def _metered_line(label: str, emoji: str, service: MeteredService, unit: str) -> str:
    if service.calculation_type == CalculationType.flat.value:
        return UIMessages.field(label, f"{format_amount(service.amount)} (trọn gói)", emoji)
    return UIMessages.field(
        label,
        f"{format_reading(service.previous_reading)} → {format_reading(service.current_reading)} "
        f"= {format_reading(service.usage)} {unit} x {format_amount(service.unit_price)} "
        f"= <b>{format_amount(service.amount)}</b>",
        emoji
    )


def draft_summary(draft: BillingDraft, room_label: str) -> str:
    text = UIMessages.header(f"Thu tiền {room_label}", UIEmojis.INVOICE)
    period = f"{format_date(draft.period_start)} - {format_date(draft.period_end)}"
    if draft.auto_period:
        period += f" (ngày thu {draft.collection_day})"
    text += UIMessages.field("Kỳ", period, UIEmojis.CALENDAR)
    text += UIMessages.field("Tiền phòng", format_amount(draft.rent_amount), UIEmojis.HOME)
    text += _metered_line("Điện", UIEmojis.ELECTRIC, draft.electricity, "kWh")
    text += _metered_line("Nước", UIEmojis.WATER, draft.water, "m³")
    if draft.internet_amount:
        text += UIMessages.field("Internet", format_amount(draft.internet_amount), UIEmojis.INTERNET)
    if draft.trash_amount:
        text += UIMessages.field("Rác", format_amount(draft.trash_amount), UIEmojis.TRASH)
    for fee in draft.additional_fees:
        text += UIMessages.field(fee.name or "Phí khác", format_amount(fee.amount), UIEmojis.FEE)
    if draft.notes:
        text += UIMessages.field("Ghi chú", draft.notes, UIEmojis.DOCUMENT)
    text += f"{UIMessages.DIVIDER_HALF}\n{UIEmojis.MONEY} <b>TỔNG CỘNG: {format_amount(draft.total)}</b>\n"
    return text


def _reading_prompt(label: str, service: MeteredService) -> str:
    return (
        f"Nhập chỉ số {label} mới (chỉ số cũ: <b>{format_reading(service.previous_reading)}</b>).\n"
        f"Tính trọn gói: gõ <code>= số tiền</code>, ví dụ <code>= 150000</code>."
    )


SETTINGS_PROMPT = (
    f"{UIEmojis.EDIT} Sửa các khoản cố định, mỗi dòng một mục:\n"
    "<code>phòng 3.200.000</code>\n"
    "<code>internet 100.000; ghi chú</code>\n"
    "<code>rác 20.000</code>\n"
    "<code>ngày thu 24</code>\n"
    "<code>kỳ 25/07/2025 - 24/08/2025</code> hoặc <code>kỳ tự động</code>\n"
    "<code>ghi chú ...</code>\n"
    "Gõ <b>xong</b> để tiếp tục."
)

FEES_PROMPT = (
    f"{UIEmojis.FEE} Phí khác: mỗi dòng <code>Tên; số tiền</code> (có thể thêm <code>; ghi chú</code>).\n"
    "Gõ <b>xong</b> khi không còn phí nào."
)


def _amount(text: str) -> int:
    if not text.strip():
        raise ValueError("Thiếu số tiền")
    amount = parse_vnd(text)
    if amount < 0:
        raise ValueError("Số tiền không được âm")
    return amount


def parse_collect_args(args: Optional[str]) -> Tuple[int, Optional[int], bool]:
    """
    "12 24 mới" -> room 12, collection day 24, previous readings not carried over.
    Raises ValueError with a message for the user.
    """
    parts = (args or "").split()
    if not parts:
        raise ValueError(COLLECT_USAGE)
    try:
        room_id = int(parts[0])
    except ValueError:
        raise ValueError(COLLECT_USAGE)

    collection_day = None
    auto_load_readings = True
    for part in parts[1:]:
        if part.isdigit() and collection_day is None:
            collection_day = int(part)
            if not 1 <= collection_day <= 31:
                raise ValueError("Ngày thu phải từ 1 đến 31")
        elif part.lower() in FRESH_WORDS:
            auto_load_readings = False
        else:
            raise ValueError(f"Tùy chọn không hợp lệ: {part}")
    return room_id, collection_day, auto_load_readings


def apply_reading(draft: BillingDraft, service_name: str, text: str) -> BillingDraft:
    """
    "130" or "130,5" sets the new meter reading; "= 150000" switches to a flat amount.
    Raises ValueError with a message for the user.
    """
    text = text.strip()
    if text.startswith("="):
        return billing_service.set_metered_field(
            draft, service_name,
            calculation_type=CalculationType.flat.value,
            amount=_amount(text[1:]),
        )

    current = parse_reading(text)
    service: MeteredService = getattr(draft, service_name)
    if current < service.previous_reading:
        raise ValueError("Chỉ số mới phải lớn hơn hoặc bằng chỉ số cũ")
    return billing_service.set_metered_field(
        draft, service_name,
        calculation_type=CalculationType.meter.value,
        current_reading=current,
    )


def _split_setting(line: str) -> Tuple[str, str]:
    lowered = line.lower()
    for key in SETTING_KEYS:
        if lowered == key or lowered.startswith(key + " "):
            return key, line[len(key):].strip()
    raise ValueError(f"Dòng không hợp lệ: {line}")


def apply_setting_lines(draft: BillingDraft, text: str, today: date) -> BillingDraft:
    """
    One setting per line (see SETTINGS_PROMPT): rent, internet, trash,
    collection day, a manual period or "kỳ tự động", and the invoice note.
    Raises ValueError with a message for the user.
    """
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        key, value = _split_setting(line)

        if key == "ghi chú":
            draft = billing_service.set_flat_fields(draft, notes=value or None)
        elif key == "ngày thu":
            if not value.isdigit():
                raise ValueError("Ngày thu phải từ 1 đến 31")
            draft = billing_service.set_collection_day(draft, int(value), today)
        elif key == "kỳ":
            if value.lower() == "tự động":
                draft = billing_service.set_auto_period(draft, True, today)
                continue
            start_text, sep, end_text = value.partition("-")
            if not sep:
                raise ValueError("Kỳ thu tiền: dd/mm/yyyy - dd/mm/yyyy")
            start, end = parse_date(start_text), parse_date(end_text)
            draft = billing_service.set_auto_period(draft, False, today)
            draft = billing_service.set_period(draft, start, end)
        else:
            amount_text, _, note = value.partition(";")
            amount = _amount(amount_text)
            note = note.strip() or None
            if key == "phòng":
                draft = billing_service.set_flat_fields(draft, rent_amount=amount)
            elif key == "internet":
                draft = billing_service.set_flat_fields(draft, internet_amount=amount, internet_note=note)
            else:
                draft = billing_service.set_flat_fields(draft, trash_amount=amount, trash_note=note)
    return draft


def apply_fee_lines(draft: BillingDraft, text: str) -> BillingDraft:
    """Each line is "Tên; số tiền" with an optional "; ghi chú"."""
    for line in text.splitlines():
        if not line.strip():
            continue
        parts = [p.strip() for p in line.split(";")]
        if len(parts) < 2 or not parts[0]:
            raise ValueError(f"Dòng không hợp lệ: {line}")
        amount = _amount(parts[1])
        draft = billing_service.add_fee(draft, parts[0], amount, parts[2] if len(parts) > 2 and parts[2] else None)
    return draft


async def _load_state(state: FSMContext):
    data = await state.get_data()
    return data["room_id"], data.get("room_label", ""), billing_service.load_draft(data["draft"])


# === Invoices ===

@router.message(Command("invoices"))
@router.message(F.text == "🧾 Hóa đơn")
async def cmd_invoices(message: Message, session: AsyncSession, command: CommandObject = None):
    room_id = None
    if command and command.args:
        try:
            room_id = int(command.args.strip())
        except ValueError:
            await message.answer(UIMessages.warning("Cú pháp: /invoices [mã phòng]"))
            return

    if room_id:
        invoices = await invoice_service.list_invoices_by_room(session, room_id, limit=20)
    else:
        invoices = (await invoice_service.list_invoices(session))[:20]
    if not invoices:
        await message.answer("Chưa có hóa đơn nào.")
        return

    text = UIMessages.header("Hóa đơn", UIEmojis.INVOICE)
    for invoice in invoices:
        status = invoice_service.derive_display_status(invoice)
        text += (
            f"\n{get_status_badge(status)} <b>#{invoice.id} {invoice.invoice_number}</b> - "
            f"{format_amount(invoice.total_amount)}\n"
            f"   {format_date(invoice.period_start)} - {format_date(invoice.period_end)}, "
            f"{get_status_label(status)}\n"
        )
    await message.answer(text)


def _invoice_id(command: CommandObject):
    try:
        return int((command.args or "").split()[0])
    except (IndexError, ValueError):
        return None


@router.message(Command("paid"))
async def cmd_paid(message: Message, command: CommandObject, session: AsyncSession):
    invoice_id = _invoice_id(command)
    if invoice_id is None:
        await message.answer(UIMessages.warning("Cú pháp: /paid mã_hóa_đơn"))
        return

    try:
        invoice = await invoice_service.mark_paid(session, invoice_id)
    except RentalError as e:
        await message.answer(UIMessages.error(e.message))
        return

    await message.answer(UIMessages.success(
        f"Hóa đơn {invoice.invoice_number} đã thanh toán ({format_amount(invoice.total_amount)})."
    ))


@router.message(Command("delete_invoice"))
async def cmd_delete_invoice(message: Message, command: CommandObject, session: AsyncSession):
    invoice_id = _invoice_id(command)
    if invoice_id is None:
        await message.answer(UIMessages.warning("Cú pháp: /delete_invoice mã_hóa_đơn"))
        return

    try:
        await invoice_service.delete_invoice(session, invoice_id)
    except RentalError as e:
        await message.answer(UIMessages.error(e.message))
        return

    await message.answer(UIMessages.success(f"Đã xóa hóa đơn #{invoice_id}."))


@router.message(Command("receipt"))
async def cmd_receipt(message: Message, command: CommandObject, session: AsyncSession):
    parts = (command.args or "").split()
    invoice_id = _invoice_id(command)
    fmt = parts[1].lower() if len(parts) > 1 else "png"
    if invoice_id is None or fmt not in export_service.FORMATS:
        await message.answer(UIMessages.warning("Cú pháp: /receipt mã_hóa_đơn [png|pdf]"))
        return

    try:
        exported = await export_service.export_receipt(session, invoice_id, fmt)
    except RentalError as e:
        await message.answer(UIMessages.error(e.message))
        return

    file = BufferedInputFile(exported.content, filename=exported.filename)
    if fmt == "png":
        await message.answer_photo(file, caption=f"{UIEmojis.INVOICE} {exported.filename}")
    else:
        await message.answer_document(file)


# === Collection form (electricity -> water -> fixed charges -> fees -> confirm) ===

@router.message(Command("collect"))
async def cmd_collect(message: Message, command: CommandObject, session: AsyncSession, state: FSMContext):
    try:
        room_id, collection_day, auto_load_readings = parse_collect_args(command.args)
    except ValueError as e:
        await message.answer(UIMessages.warning(str(e)))
        return

    try:
        draft = await invoice_service.open_collection_draft(
            session, room_id, today=date.today(),
            collection_day=collection_day, auto_load_readings=auto_load_readings,
        )
    except RentalError as e:
        await message.answer(UIMessages.error(e.message))
        return

    room_label = f"phòng #{room_id}"
    await state.set_state(CollectionFormState.waiting_for_electricity)
    await state.update_data(room_id=room_id, room_label=room_label, draft=billing_service.dump_draft(draft))

    await message.answer(draft_summary(draft, room_label))
    await message.answer(f"{UIEmojis.ELECTRIC} " + _reading_prompt("điện", draft.electricity))


@router.message(CollectionFormState.waiting_for_electricity, FORM_TEXT)
async def process_electricity(message: Message, state: FSMContext):
    room_id, room_label, draft = await _load_state(state)
    try:
        draft = apply_reading(draft, "electricity", message.text)
    except ValueError as e:
        await message.answer(UIMessages.error(str(e)))
        return

    await state.update_data(draft=billing_service.dump_draft(draft))
    await state.set_state(CollectionFormState.waiting_for_water)
    await message.answer(
        UIMessages.field("Tiền điện", format_amount(draft.electricity.amount), UIEmojis.ELECTRIC)
        + f"\n{UIEmojis.WATER} " + _reading_prompt("nước", draft.water)
    )


@router.message(CollectionFormState.waiting_for_water, FORM_TEXT)
async def process_water(message: Message, state: FSMContext):
    room_id, room_label, draft = await _load_state(state)
    try:
        draft = apply_reading(draft, "water", message.text)
    except ValueError as e:
        await message.answer(UIMessages.error(str(e)))
        return

    await state.update_data(draft=billing_service.dump_draft(draft))
    await state.set_state(CollectionFormState.waiting_for_settings)
    await message.answer(
        UIMessages.field("Tiền nước", format_amount(draft.water.amount), UIEmojis.WATER)
        + "\n" + SETTINGS_PROMPT
    )


@router.message(CollectionFormState.waiting_for_settings, FORM_TEXT)
async def process_settings(message: Message, state: FSMContext):
    room_id, room_label, draft = await _load_state(state)

    if message.text.strip().lower() in DONE_WORDS:
        await state.set_state(CollectionFormState.waiting_for_fees)
        await message.answer(FEES_PROMPT)
        return

    try:
        draft = apply_setting_lines(draft, message.text, date.today())
    except ValueError as e:
        await message.answer(UIMessages.error(str(e)))
        return

    await state.update_data(draft=billing_service.dump_draft(draft))
    await message.answer(draft_summary(draft, room_label) + "\nSửa tiếp hoặc gõ <b>xong</b>.")


@router.message(CollectionFormState.waiting_for_fees, FORM_TEXT)
async def process_fees(message: Message, state: FSMContext):
    room_id, room_label, draft = await _load_state(state)

    if message.text.strip().lower() not in DONE_WORDS:
        try:
            draft = apply_fee_lines(draft, message.text)
        except ValueError as e:
            await message.answer(UIMessages.error(str(e)))
            return
        await state.update_data(draft=billing_service.dump_draft(draft))
        await message.answer(
            UIMessages.success(f"Đã thêm. Tổng hiện tại: {format_amount(draft.total)}")
            + "\nNhập thêm phí hoặc gõ <b>xong</b>."
        )
        return

    await state.set_state(CollectionFormState.confirm)
    await message.answer(
        draft_summary(draft, room_label),
        reply_markup=UIKeyboards.confirm_cancel(
            confirm_text="Lưu hóa đơn",
            confirm_callback="collect_confirm",
            cancel_callback="collect_cancel"
        )
    )


@router.callback_query(CollectionFormState.confirm, F.data == "collect_confirm")
async def confirm_collection(call: CallbackQuery, session: AsyncSession, state: FSMContext):
    room_id, room_label, draft = await _load_state(state)
    try:
        invoice = await invoice_service.save_draft(session, room_id, draft, issue_date=date.today())
    except RentalError as e:
        await call.message.edit_text(UIMessages.error(e.message))
        await state.clear()
        return

    await state.clear()
    await call.message.edit_text(
        UIMessages.success(f"Đã lưu hóa đơn <b>{invoice.invoice_number}</b>")
        + f"\n{UIEmojis.MONEY} {format_amount(invoice.total_amount)}, hạn {format_date(invoice.due_date)}\n"
        f"Xuất phiếu thu: <code>/receipt {invoice.id}</code>"
    )
    await call.answer()


@router.callback_query(F.data == "collect_cancel")
async def cancel_collection(call: CallbackQuery, state: FSMContext):
    await state.clear()
    await call.message.edit_text("❌ Đã hủy lập hóa đơn.")
    await call.answer()
