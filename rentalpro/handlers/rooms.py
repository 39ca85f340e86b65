from aiogram import Router, F
from aiogram.types import Message
from aiogram.filters import Command, CommandObject
from sqlalchemy.ext.asyncio import AsyncSession

from rentalpro.errors import RentalError
from rentalpro.schemas.validation import parse_vnd
from rentalpro.services import property_service, room_service, tenant_service, contract_service
from rentalpro.utils.ui import (
    UIEmojis, UIMessages, format_amount, format_date, get_status_badge, get_status_label
)

router = Router()


def _int_args(command: CommandObject, minimum: int, maximum: int):
    """Split command args into ints; None when the count or a value is wrong."""
    parts = (command.args or "").split()
    if not minimum <= len(parts) <= maximum:
        return None
    try:
        return [int(p) for p in parts]
    except ValueError:
        return None


@router.message(Command("properties"))
@router.message(F.text == "🏢 Nhà cho thuê")
async def cmd_properties(message: Message, session: AsyncSession):
    summaries = await property_service.list_properties(session)
    if not summaries:
        await message.answer("Chưa có nhà cho thuê nào.")
        return

    text = UIMessages.header("Nhà cho thuê", UIEmojis.BUILDING)
    for prop, stats in summaries:
        text += f"\n<b>#{prop.id} {prop.name}</b> {get_status_badge(prop.status)}\n"
        text += f"📍 {prop.address}"
        if prop.district:
            text += f", {prop.district}"
        text += f", {prop.city}\n"
        text += (
            f"{UIEmojis.ROOM} {stats.occupied_rooms}/{stats.total_rooms} phòng đã thuê "
            f"({stats.occupancy_rate:.0f}%)"
        )
        if stats.maintenance_rooms:
            text += f", {stats.maintenance_rooms} đang sửa"
        text += "\n"
    await message.answer(text)


@router.message(Command("rooms"))
@router.message(F.text == "🚪 Phòng")
async def cmd_rooms(message: Message, session: AsyncSession, command: CommandObject = None):
    property_id = None
    if command and command.args:
        args = _int_args(command, 1, 1)
        if not args:
            await message.answer(UIMessages.warning("Cú pháp: /rooms [mã nhà]"))
            return
        property_id = args[0]

    rooms = await room_service.list_rooms(session, property_id=property_id)
    if not rooms:
        await message.answer("Không có phòng nào.")
        return

    text = UIMessages.header("Danh sách phòng", UIEmojis.ROOM)
    current_property = None
    for room in rooms:
        if room.property_id != current_property:
            current_property = room.property_id
            text += f"\n{UIEmojis.BUILDING} <b>{room.property.name}</b>\n"

        line = (
            f"{get_status_badge(room.status)} #{room.id} Phòng {room.room_number}"
            f" - {format_amount(room.rent_amount)}"
        )
        contract = room.active_contract
        if contract and contract.tenant:
            line += f" - {UIEmojis.TENANT} {contract.tenant.full_name}"
        else:
            line += f" - {get_status_label(room.status)}"
        text += line + "\n"
    await message.answer(text)


@router.message(Command("tenants"))
@router.message(F.text == "👥 Người thuê")
async def cmd_tenants(message: Message, session: AsyncSession, command: CommandObject = None):
    search = command.args.strip() if command and command.args else None
    tenants = await tenant_service.list_tenants(session, search=search)
    if not tenants:
        await message.answer("Không tìm thấy người thuê nào.")
        return

    text = UIMessages.header("Người thuê", UIEmojis.GROUP)
    for tenant in tenants:
        text += f"\n<b>#{tenant.id} {tenant.full_name}</b>"
        if tenant.phone:
            text += f" · {tenant.phone}"
        text += "\n"
        contract = tenant.current_contract
        if contract:
            text += (
                f"   {UIEmojis.KEY} HĐ #{contract.id}, phòng {contract.room.room_number} - {contract.room.property.name}"
                f" từ {format_date(contract.start_date)}, {format_amount(contract.monthly_rent)}/tháng\n"
            )
        else:
            text += "   Chưa thuê phòng\n"
    await message.answer(text)


@router.message(Command("assign"))
async def cmd_assign(message: Message, command: CommandObject, session: AsyncSession):
    parts = (command.args or "").split()
    if len(parts) not in (2, 3):
        await message.answer(UIMessages.warning("Cú pháp: /assign mã_phòng mã_người_thuê [tiền thuê]"))
        return

    try:
        room_id, tenant_id = int(parts[0]), int(parts[1])
        rent = parse_vnd(parts[2]) if len(parts) == 3 else None
    except ValueError:
        await message.answer(UIMessages.error("Giá trị không hợp lệ"))
        return

    try:
        contract = await contract_service.assign_tenant_to_room(session, room_id, tenant_id, monthly_rent=rent)
    except RentalError as e:
        await message.answer(UIMessages.error(e.message))
        return

    await message.answer(UIMessages.success(
        f"Đã cho thuê phòng #{room_id}. Hợp đồng #{contract.id}, "
        f"{format_amount(contract.monthly_rent)}/tháng từ {format_date(contract.start_date)}."
    ))


@router.message(Command("unassign"))
async def cmd_unassign(message: Message, command: CommandObject, session: AsyncSession):
    args = _int_args(command, 1, 1)
    if not args:
        await message.answer(UIMessages.warning("Cú pháp: /unassign mã_phòng"))
        return

    try:
        contract = await contract_service.unassign_tenant_from_room(session, args[0])
    except RentalError as e:
        await message.answer(UIMessages.error(e.message))
        return

    await message.answer(UIMessages.success(
        f"Đã trả phòng #{args[0]}. Hợp đồng #{contract.id} kết thúc ngày {format_date(contract.end_date)}."
    ))


@router.message(Command("transfer"))
async def cmd_transfer(message: Message, command: CommandObject, session: AsyncSession):
    parts = (command.args or "").split()
    if len(parts) not in (3, 4):
        await message.answer(UIMessages.warning(
            "Cú pháp: /transfer mã_người_thuê phòng_cũ phòng_mới [tiền thuê]"
        ))
        return

    try:
        tenant_id, from_room, to_room = (int(p) for p in parts[:3])
        rent = parse_vnd(parts[3]) if len(parts) == 4 else None
    except ValueError:
        await message.answer(UIMessages.error("Giá trị không hợp lệ"))
        return

    try:
        contract = await contract_service.transfer_tenant(
            session, tenant_id, from_room, to_room, new_rent=rent
        )
    except RentalError as e:
        await message.answer(UIMessages.error(e.message))
        return

    await message.answer(UIMessages.success(
        f"Đã chuyển người thuê #{tenant_id} từ phòng #{from_room} sang phòng #{to_room}.\n"
        f"Hợp đồng mới #{contract.id}: {format_amount(contract.monthly_rent)}/tháng."
    ))
