"""
Domain errors.

Every error carries a short Vietnamese message that handlers show to the user as is.
All of them derive from ValueError so older call sites that catch ValueError keep working.
"""
from typing import Dict, Optional


class RentalError(ValueError):
    default_message = "Có lỗi xảy ra, vui lòng thử lại"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# --- Form validation ---
class ValidationFailed(RentalError):
    default_message = "Dữ liệu không hợp lệ"

    def __init__(self, errors: Dict[str, str]):
        self.errors = errors
        first = next(iter(errors.values()), None)
        super().__init__(first or self.default_message)


# --- Domain preconditions ---
class PreconditionError(RentalError):
    default_message = "Không thể thực hiện thao tác này"


class NoActiveTenantError(PreconditionError):
    default_message = "Phòng này chưa có người thuê."


class RoomUnavailableError(PreconditionError):
    default_message = "Phòng này đã có người thuê"


class TenantHasContractError(PreconditionError):
    default_message = "Người thuê này đã có hợp đồng đang hoạt động"


class NoActiveContractError(PreconditionError):
    default_message = "Không tìm thấy hợp đồng đang hoạt động cho phòng này"


class NotFoundError(RentalError):
    default_message = "Không tìm thấy dữ liệu"


# --- Collaborators ---
class StoreError(RentalError):
    default_message = "Không thể lưu dữ liệu, vui lòng thử lại"


class AuthError(RentalError):
    default_message = "Đăng nhập thất bại"


class ExportError(RentalError):
    default_message = "Không thể xuất hóa đơn"
