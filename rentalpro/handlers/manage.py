from datetime import date
from typing import List, Optional, Tuple

from aiogram import Router, F
from aiogram.types import Message, CallbackQuery, InlineKeyboardMarkup, InlineKeyboardButton
from aiogram.filters import Command, CommandObject
from aiogram.fsm.context import FSMContext
from sqlalchemy.ext.asyncio import AsyncSession

from rentalpro.database.models import ColorTheme
from rentalpro.errors import RentalError, ValidationFailed
from rentalpro.schemas.validation import TenantForm, parse_date, parse_vnd, validate_form
from rentalpro.services import (
    contract_service, property_service, room_service, tenant_service, theme_service
)
from rentalpro.states import FORM_TEXT, AddPropertyState, AddTenantState
from rentalpro.utils.ui import UIEmojis, UIMessages, format_amount, format_date

router = Router()

SKIP_WORDS = {"-", "bỏ qua"}

ROOM_USAGE = "Cú pháp: /add_room mã_nhà số_phòng giá_thuê [tiền_cọc]"
RENEW_USAGE = "Cú pháp: /renew mã_hợp_đồng dd/mm/yyyy [tiền thuê]"
THEME_ADD_USAGE = "Cú pháp: /theme_add Tên màu_tiêu_đề màu_chữ_tiêu_đề màu_tổng màu_chữ_tổng"


def optional_text(text: str) -> Optional[str]:
    text = (text or "").strip()
    if not text or text.lower() in SKIP_WORDS:
        return None
    return text


def parse_room_args(args: Optional[str]) -> dict:
    parts = (args or "").split()
    if len(parts) not in (3, 4):
        raise ValueError(ROOM_USAGE)
    try:
        property_id = int(parts[0])
    except ValueError:
        raise ValueError(ROOM_USAGE)
    return {
        "property_id": property_id,
        "room_number": parts[1],
        "rent_amount": parse_vnd(parts[2]),
        "deposit_amount": parse_vnd(parts[3]) if len(parts) == 4 else None,
    }


def parse_renew_args(args: Optional[str]) -> Tuple[int, date, Optional[int]]:
    parts = (args or "").split()
    if len(parts) not in (2, 3):
        raise ValueError(RENEW_USAGE)
    try:
        contract_id = int(parts[0])
    except ValueError:
        raise ValueError(RENEW_USAGE)
    rent = parse_vnd(parts[2]) if len(parts) == 3 else None
    return contract_id, parse_date(parts[1]), rent


def parse_room_choice(text: str) -> Tuple[int, Optional[int]]:
    """ "12" or "12 2.800.000" -> room id and an optional rent """
    parts = text.split()
    if len(parts) not in (1, 2):
        raise ValueError("Nhập mã phòng (có thể kèm tiền thuê) hoặc '-' để bỏ qua")
    try:
        room_id = int(parts[0])
    except ValueError:
        raise ValueError("Mã phòng phải là số")
    return room_id, parse_vnd(parts[1]) if len(parts) == 2 else None


def parse_theme_args(args: Optional[str]) -> dict:
    """The last four words are the colours, everything before them is the name."""
    parts = (args or "").split()
    if len(parts) < 5:
        raise ValueError(THEME_ADD_USAGE)
    return {
        "name": " ".join(parts[:-4]),
        "header_bg": parts[-4],
        "header_text": parts[-3],
        "total_bg": parts[-2],
        "total_text": parts[-1],
    }


def theme_keyboard(invoice_id: int, themes: List[ColorTheme]) -> InlineKeyboardMarkup:
    rows = []
    for theme in themes:
        label = f"⭐ {theme.name}" if theme.is_default else theme.name
        rows.append([InlineKeyboardButton(text=label, callback_data=f"theme_{invoice_id}_{theme.id}")])
    return InlineKeyboardMarkup(inline_keyboard=rows)


# === Property (name -> address -> city -> district) ===

@router.message(Command("add_property"))
async def cmd_add_property(message: Message, state: FSMContext):
    await state.clear()
    await state.set_state(AddPropertyState.waiting_for_name)
    await message.answer(f"{UIEmojis.BUILDING} Nhập tên nhà cho thuê (hoặc /cancel để hủy):")


@router.message(AddPropertyState.waiting_for_name, FORM_TEXT)
async def process_property_name(message: Message, state: FSMContext):
    await state.update_data(name=message.text.strip())
    await state.set_state(AddPropertyState.waiting_for_address)
    await message.answer("📍 Nhập địa chỉ (số nhà, đường):")


@router.message(AddPropertyState.waiting_for_address, FORM_TEXT)
async def process_property_address(message: Message, state: FSMContext):
    await state.update_data(address=message.text.strip())
    await state.set_state(AddPropertyState.waiting_for_city)
    await message.answer("🏙 Nhập tỉnh/thành phố:")


@router.message(AddPropertyState.waiting_for_city, FORM_TEXT)
async def process_property_city(message: Message, state: FSMContext):
    await state.update_data(city=message.text.strip())
    await state.set_state(AddPropertyState.waiting_for_district)
    await message.answer("Nhập quận/huyện (hoặc '-' để bỏ qua):")


@router.message(AddPropertyState.waiting_for_district, FORM_TEXT)
async def process_property_district(message: Message, state: FSMContext, session: AsyncSession):
    data = await state.get_data()
    data["district"] = optional_text(message.text)
    await state.clear()

    try:
        prop = await property_service.create_property(session, data)
    except RentalError as e:
        await message.answer(UIMessages.error(e.message) + "\nThử lại với /add_property")
        return

    await message.answer(UIMessages.success(
        f"Đã thêm nhà <b>#{prop.id} {prop.name}</b>.\n"
        f"Thêm phòng: <code>/add_room {prop.id} số_phòng giá_thuê</code>"
    ))


# === Room ===

@router.message(Command("add_room"))
async def cmd_add_room(message: Message, command: CommandObject, session: AsyncSession):
    try:
        data = parse_room_args(command.args)
    except ValueError as e:
        await message.answer(UIMessages.warning(str(e)))
        return

    try:
        room = await room_service.create_room(session, data)
    except RentalError as e:
        await message.answer(UIMessages.error(e.message))
        return

    await message.answer(UIMessages.success(
        f"Đã thêm phòng <b>#{room.id} {room.room_number}</b>, {format_amount(room.rent_amount)}/tháng."
    ))


# === Tenant (name -> phone -> optional room) ===

@router.message(Command("add_tenant"))
async def cmd_add_tenant(message: Message, state: FSMContext):
    await state.clear()
    await state.set_state(AddTenantState.waiting_for_name)
    await message.answer(f"{UIEmojis.TENANT} Nhập họ tên người thuê (hoặc /cancel để hủy):")


@router.message(AddTenantState.waiting_for_name, FORM_TEXT)
async def process_tenant_name(message: Message, state: FSMContext):
    try:
        form = validate_form(TenantForm, {"full_name": message.text})
    except ValidationFailed as e:
        await message.answer(UIMessages.error(e.message))
        return

    await state.update_data(full_name=form.full_name)
    await state.set_state(AddTenantState.waiting_for_phone)
    await message.answer("📞 Nhập số điện thoại (hoặc '-' để bỏ qua):")


@router.message(AddTenantState.waiting_for_phone, FORM_TEXT)
async def process_tenant_phone(message: Message, state: FSMContext):
    data = await state.get_data()
    phone = optional_text(message.text)
    try:
        validate_form(TenantForm, {"full_name": data["full_name"], "phone": phone})
    except ValidationFailed as e:
        await message.answer(UIMessages.error(e.message) + "\nNhập lại hoặc gửi '-' để bỏ qua.")
        return

    await state.update_data(phone=phone)
    await state.set_state(AddTenantState.waiting_for_room)
    await message.answer(
        f"{UIEmojis.ROOM} Cho thuê ngay? Nhập <code>mã_phòng [tiền thuê]</code>, "
        "hoặc '-' để chỉ lưu người thuê."
    )


@router.message(AddTenantState.waiting_for_room, FORM_TEXT)
async def process_tenant_room(message: Message, state: FSMContext, session: AsyncSession):
    choice = optional_text(message.text)
    room_id = rent = None
    if choice is not None:
        try:
            room_id, rent = parse_room_choice(choice)
        except ValueError as e:
            await message.answer(UIMessages.error(str(e)))
            return

    data = await state.get_data()
    tenant_data = {"full_name": data["full_name"], "phone": data.get("phone")}
    await state.clear()

    try:
        if room_id is None:
            tenant = await tenant_service.create_tenant(session, tenant_data)
            await message.answer(UIMessages.success(f"Đã thêm người thuê <b>#{tenant.id} {tenant.full_name}</b>."))
            return

        room = await room_service.get_room(session, room_id)
        tenant, contract = await tenant_service.create_tenant_with_contract(
            session, tenant_data, room_id, {
                "start_date": date.today(),
                "monthly_rent": room.rent_amount if rent is None else rent,
                "deposit_amount": room.deposit_amount,
            }
        )
    except RentalError as e:
        await message.answer(UIMessages.error(e.message) + "\nThử lại với /add_tenant")
        return

    await message.answer(UIMessages.success(
        f"Đã thêm người thuê <b>#{tenant.id} {tenant.full_name}</b> vào phòng #{room_id}.\n"
        f"Hợp đồng #{contract.id}: {format_amount(contract.monthly_rent)}/tháng "
        f"từ {format_date(contract.start_date)}."
    ))


# === Contract renewal ===

@router.message(Command("renew"))
async def cmd_renew(message: Message, command: CommandObject, session: AsyncSession):
    try:
        contract_id, end_date, rent = parse_renew_args(command.args)
    except ValueError as e:
        await message.answer(UIMessages.warning(str(e)))
        return

    try:
        contract = await contract_service.renew_contract(session, contract_id, end_date, monthly_rent=rent)
    except RentalError as e:
        await message.answer(UIMessages.error(e.message))
        return

    await message.answer(UIMessages.success(
        f"Đã gia hạn hợp đồng #{contract.id} đến {format_date(contract.end_date)} "
        f"(lần {contract.renewal_count}), {format_amount(contract.monthly_rent)}/tháng."
    ))


# === Receipt colour themes ===

@router.message(Command("themes"))
async def cmd_themes(message: Message, session: AsyncSession):
    themes = await theme_service.list_color_themes(session)
    if not themes:
        await message.answer("Chưa có bảng màu nào. Tạo mới: /theme_add")
        return

    text = UIMessages.header("Bảng màu hóa đơn", "🎨")
    for theme in themes:
        default = " ⭐ mặc định" if theme.is_default else ""
        text += f"#{theme.id} <b>{theme.name}</b> {theme.header_bg} / {theme.total_bg}{default}\n"
    await message.answer(text)


@router.message(Command("theme"))
async def cmd_theme(message: Message, command: CommandObject, session: AsyncSession):
    parts = (command.args or "").split()
    try:
        ids = [int(p) for p in parts]
    except ValueError:
        ids = []
    if len(ids) not in (1, 2):
        await message.answer(UIMessages.warning("Cú pháp: /theme mã_hóa_đơn [mã_bảng_màu]"))
        return

    if len(ids) == 1:
        themes = await theme_service.list_color_themes(session)
        if not themes:
            await message.answer("Chưa có bảng màu nào. Tạo mới: /theme_add")
            return
        await message.answer("🎨 Chọn bảng màu cho hóa đơn:", reply_markup=theme_keyboard(ids[0], themes))
        return

    try:
        invoice = await theme_service.apply_color_theme(session, ids[0], ids[1])
    except RentalError as e:
        await message.answer(UIMessages.error(e.message))
        return
    await message.answer(UIMessages.success(f"Đã đổi màu hóa đơn {invoice.invoice_number}."))


@router.callback_query(F.data.startswith("theme_"))
async def apply_theme_callback(call: CallbackQuery, session: AsyncSession):
    _, invoice_id, theme_id = call.data.split("_")
    try:
        invoice = await theme_service.apply_color_theme(session, int(invoice_id), int(theme_id))
    except RentalError as e:
        await call.answer(e.message, show_alert=True)
        return

    await call.message.edit_text(UIMessages.success(f"Đã đổi màu hóa đơn {invoice.invoice_number}."))
    await call.answer()


@router.message(Command("theme_add"))
async def cmd_theme_add(message: Message, command: CommandObject, session: AsyncSession):
    try:
        data = parse_theme_args(command.args)
    except ValueError as e:
        await message.answer(UIMessages.warning(str(e)))
        return

    try:
        theme = await theme_service.create_color_theme(session, data)
    except RentalError as e:
        await message.answer(UIMessages.error(e.message))
        return
    await message.answer(UIMessages.success(f"Đã tạo bảng màu #{theme.id} {theme.name}."))


@router.message(Command("theme_default"))
async def cmd_theme_default(message: Message, command: CommandObject, session: AsyncSession):
    try:
        theme_id = int((command.args or "").strip())
    except ValueError:
        await message.answer(UIMessages.warning("Cú pháp: /theme_default mã_bảng_màu"))
        return

    try:
        theme = await theme_service.set_default_theme(session, theme_id)
    except RentalError as e:
        await message.answer(UIMessages.error(e.message))
        return
    await message.answer(UIMessages.success(f"{theme.name} là bảng màu mặc định."))
