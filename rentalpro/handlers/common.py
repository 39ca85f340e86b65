import logging

from aiogram import Router, F
from aiogram.types import Message
from aiogram.filters import CommandStart, Command, CommandObject
from aiogram.fsm.context import FSMContext
from sqlalchemy.ext.asyncio import AsyncSession

from rentalpro.errors import RentalError
from rentalpro.services.auth_service import AuthService, link_session, unlink_session
from rentalpro.services.analytics_service import get_dashboard_stats
from rentalpro.utils.ui import UIEmojis, UIMessages, UIKeyboards, format_amount

router = Router()
auth = AuthService()

HELP_TEXT = (
    UIMessages.header("RentalPro - Trợ giúp", UIEmojis.INFO)
    + "<b>Tài khoản</b>\n"
    "/login email mật_khẩu - đăng nhập\n"
    "/signup email mật_khẩu Họ tên - đăng ký\n"
    "/magic email - nhận link đăng nhập qua email\n"
    "/profile Họ tên - đổi tên hiển thị\n"
    "/password mật_khẩu_mới - đổi mật khẩu\n"
    "/logout - đăng xuất\n\n"
    "<b>Quản lý</b>\n"
    "/dashboard - tổng quan\n"
    "/properties - danh sách nhà cho thuê\n"
    "/rooms [mã nhà] - danh sách phòng\n"
    "/tenants [từ khóa] - danh sách người thuê\n"
    "/assign mã_phòng mã_người_thuê [tiền thuê] - cho thuê phòng\n"
    "/unassign mã_phòng - trả phòng\n"
    "/transfer mã_người_thuê phòng_cũ phòng_mới [tiền thuê] - chuyển phòng\n"
    "/add_property - thêm nhà cho thuê\n"
    "/add_room mã_nhà số_phòng giá_thuê [tiền_cọc] - thêm phòng\n"
    "/add_tenant - thêm người thuê (có thể cho thuê ngay)\n"
    "/renew mã_hợp_đồng dd/mm/yyyy [tiền thuê] - gia hạn hợp đồng\n"
    "/cancel - hủy thao tác đang nhập\n\n"
    "<b>Thu tiền</b>\n"
    "/collect mã_phòng [ngày thu] [mới] - lập hóa đơn thu tiền (mới: không lấy chỉ số kỳ trước)\n"
    "/invoices [mã phòng] - danh sách hóa đơn\n"
    "/paid mã_hóa_đơn - đánh dấu đã thanh toán\n"
    "/delete_invoice mã_hóa_đơn - xóa hóa đơn\n"
    "/receipt mã_hóa_đơn [png|pdf] - xuất phiếu thu\n"
    "/themes - bảng màu hóa đơn\n"
    "/theme mã_hóa_đơn [mã_bảng_màu] - đổi màu hóa đơn\n"
    "/theme_add Tên #màu1 #màu2 #màu3 #màu4 - tạo bảng màu\n"
    "/theme_default mã_bảng_màu - đặt bảng màu mặc định\n"
)


@router.message(CommandStart())
async def cmd_start(message: Message, state: FSMContext, landlord=None):
    await state.clear()
    text = UIMessages.header("Chào mừng đến với RentalPro!", UIEmojis.HOME)
    if landlord:
        text += f"Xin chào, <b>{landlord.full_name or landlord.email}</b>!\n"
        text += "Dùng menu bên dưới hoặc /help để xem các lệnh."
        await message.answer(text, reply_markup=UIKeyboards.main_reply_keyboard())
        return

    text += "Ứng dụng quản lý nhà trọ, phòng cho thuê và hóa đơn thu tiền.\n\n"
    text += "🔑 Đăng nhập: <code>/login email mật_khẩu</code>\n"
    text += "✉️ Hoặc nhận link qua email: <code>/magic email</code>"
    await message.answer(text)


@router.message(Command("help"))
@router.message(F.text == "❔ Trợ giúp")
async def cmd_help(message: Message):
    await message.answer(HELP_TEXT)


@router.message(Command("cancel"))
async def cmd_cancel(message: Message, state: FSMContext):
    if await state.get_state() is None:
        await message.answer("Không có thao tác nào đang thực hiện.")
        return
    await state.clear()
    await message.answer(UIMessages.success("Đã hủy."))



@router.message(Command("login"))
async def cmd_login(message: Message, command: CommandObject, session: AsyncSession):
    parts = (command.args or "").split()
    if len(parts) != 2:
        await message.answer(UIMessages.warning("Cú pháp: /login email mật_khẩu"))
        return

    # The message holds a password: remove it from the chat
    try:
        await message.delete()
    except Exception as e:
        logging.warning(f"Could not delete login message: {e}")

    try:
        auth_session = await auth.sign_in(parts[0], parts[1])
    except RentalError as e:
        await message.answer(UIMessages.error(e.message))
        return

    user = await link_session(session, message.from_user.id, auth_session)
    await message.answer(
        UIMessages.success(f"Đăng nhập thành công: <b>{user.full_name or user.email}</b>"),
        reply_markup=UIKeyboards.main_reply_keyboard()
    )


@router.message(Command("signup"))
async def cmd_signup(message: Message, command: CommandObject, session: AsyncSession):
    parts = (command.args or "").split(maxsplit=2)
    if len(parts) != 3:
        await message.answer(UIMessages.warning("Cú pháp: /signup email mật_khẩu Họ tên"))
        return

    email, password, full_name = parts
    try:
        await message.delete()
    except Exception as e:
        logging.warning(f"Could not delete signup message: {e}")

    try:
        auth_session = await auth.sign_up(email, password, full_name.strip())
    except RentalError as e:
        await message.answer(UIMessages.error(e.message))
        return

    if not auth_session.access_token:
        await message.answer(UIMessages.success(
            "Đăng ký thành công! Hãy kiểm tra email để xác nhận tài khoản, sau đó dùng /login."
        ))
        return

    await link_session(session, message.from_user.id, auth_session)
    await message.answer(
        UIMessages.success(f"Đăng ký thành công. Xin chào, <b>{full_name}</b>!"),
        reply_markup=UIKeyboards.main_reply_keyboard()
    )


@router.message(Command("magic"))
async def cmd_magic(message: Message, command: CommandObject):
    email = (command.args or "").strip()
    if not email:
        await message.answer(UIMessages.warning("Cú pháp: /magic email"))
        return

    try:
        await auth.sign_in_with_email(email)
    except RentalError as e:
        await message.answer(UIMessages.error(e.message))
        return

    await message.answer(
        f"✉️ Chúng tôi đã gửi link đăng nhập đến <b>{email}</b>.\n"
        "Không thấy email? Kiểm tra thư mục spam hoặc gửi lại."
    )


@router.message(Command("logout"))
async def cmd_logout(message: Message, session: AsyncSession, state: FSMContext, landlord=None):
    await state.clear()
    if landlord and landlord.access_token:
        try:
            await auth.sign_out(landlord.access_token)
        except RentalError as e:
            # The local link is removed anyway
            logging.warning(f"Provider sign out failed for {landlord.email}: {e.message}")

    await unlink_session(session, message.from_user.id)
    await message.answer(UIMessages.success("Đã đăng xuất."))


@router.message(Command("profile"))
async def cmd_profile(message: Message, command: CommandObject, session: AsyncSession, landlord=None):
    full_name = (command.args or "").strip()
    if not full_name:
        await message.answer(UIMessages.warning("Cú pháp: /profile Họ tên"))
        return

    try:
        user = await auth.update_profile(landlord.access_token, full_name)
    except RentalError as e:
        await message.answer(UIMessages.error(e.message))
        return

    landlord.full_name = user.full_name or full_name
    await session.commit()
    await message.answer(UIMessages.success(f"Đã cập nhật tên: <b>{landlord.full_name}</b>"))


@router.message(Command("password"))
async def cmd_password(message: Message, command: CommandObject, landlord=None):
    new_password = (command.args or "").strip()
    try:
        await message.delete()
    except Exception as e:
        logging.warning(f"Could not delete password message: {e}")

    if len(new_password) < 6:
        await message.answer(UIMessages.warning("Mật khẩu phải có ít nhất 6 ký tự"))
        return

    try:
        await auth.update_password(landlord.access_token, new_password)
    except RentalError as e:
        await message.answer(UIMessages.error(e.message))
        return

    await message.answer(UIMessages.success("Đã đổi mật khẩu."))


@router.message(Command("dashboard"))
@router.message(F.text == "📊 Tổng quan")
async def cmd_dashboard(message: Message, session: AsyncSession):
    stats = await get_dashboard_stats(session)

    text = UIMessages.header("Tổng quan", UIEmojis.CHART)
    text += UIMessages.field("Nhà cho thuê", str(stats.total_properties), UIEmojis.BUILDING)
    text += UIMessages.field("Tổng số phòng", str(stats.total_rooms), UIEmojis.ROOM)
    text += UIMessages.field("Đã cho thuê", str(stats.occupied_rooms), "🔵")
    text += UIMessages.field("Còn trống", str(stats.available_rooms), "🟢")
    text += UIMessages.field("Tỷ lệ lấp đầy", f"{stats.occupancy_rate:.1f}%")
    text += UIMessages.field("Người thuê", str(stats.total_tenants), UIEmojis.GROUP)
    text += UIMessages.field("Hợp đồng đang hiệu lực", str(stats.active_contracts))
    text += UIMessages.field("Doanh thu hàng tháng", format_amount(stats.monthly_revenue), UIEmojis.MONEY)
    await message.answer(text)
