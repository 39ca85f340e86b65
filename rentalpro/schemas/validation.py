import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, Field, field_validator, model_validator, ValidationError

from rentalpro.errors import ValidationFailed

PHONE_RE = re.compile(r'^[0-9]{10,11}$')
EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
ID_NUMBER_RE = re.compile(r'^[0-9]{9,12}$')
COLOR_RE = re.compile(r'^#[0-9a-fA-F]{6}$')

MAX_RENT = 100_000_000
MAX_DEPOSIT = 1_000_000_000

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_vnd(value: Any) -> int:
    """Parse a VND amount typed by a user: "3.000.000", "3 000 000", "3,000,000" -> 3000000"""
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValueError("Số tiền không hợp lệ")
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        return int(round(value))
    cleaned = str(value).strip().replace(" ", "").replace(".", "").replace(",", "")
    cleaned = cleaned.removesuffix("đ").removesuffix("₫").removesuffix("VND")
    if not cleaned.lstrip("-").isdigit():
        raise ValueError("Số tiền không hợp lệ")
    return int(cleaned)


def parse_reading(value: Any) -> Decimal:
    """Meter readings accept a decimal comma: "12,5" -> Decimal("12.5")"""
    if value is None or value == "":
        return Decimal(0)
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip().replace(" ", "").replace(",", "."))
    except InvalidOperation:
        raise ValueError("Chỉ số không hợp lệ")


def parse_date(value: Any) -> date:
    """Dates typed in chat are dd/mm/yyyy: "24/08/2025" -> date(2025, 8, 24)"""
    try:
        return datetime.strptime(str(value).strip(), "%d/%m/%Y").date()
    except ValueError:
        raise ValueError("Ngày không hợp lệ, nhập theo dạng dd/mm/yyyy")


def _blank_to_none(v):
    if isinstance(v, str) and not v.strip():
        return None
    return v


def validate_form(model: Type[ModelT], data: Dict[str, Any]) -> ModelT:
    """Build a form model or raise ValidationFailed with one Vietnamese message per field."""
    try:
        return model(**data)
    except ValidationError as e:
        errors: Dict[str, str] = {}
        for err in e.errors():
            field = str(err["loc"][0]) if err["loc"] else "form"
            if field in errors:
                continue
            ctx_error = (err.get("ctx") or {}).get("error")
            if isinstance(ctx_error, ValueError):
                errors[field] = str(ctx_error)
            elif err["type"] == "missing":
                errors[field] = "Trường này là bắt buộc"
            else:
                errors[field] = "Giá trị không hợp lệ"
        raise ValidationFailed(errors)


# --- Scalar inputs (one value typed into a chat) ---

class AmountModel(BaseModel):
    amount: int = Field(ge=0, description="Non-negative VND amount")

    @field_validator('amount', mode='before')
    def parse_amount(cls, v):
        return parse_vnd(v)


class DayOfMonthModel(BaseModel):
    day: int = Field(ge=1, le=31, description="Day of month (1-31)")

    @field_validator('day', mode='before')
    def parse_int(cls, v):
        if isinstance(v, str):
            assert v.strip().isdigit(), "Must be a number"
        return int(v)


class ReadingModel(BaseModel):
    reading: Decimal = Field(ge=0)

    @field_validator('reading', mode='before')
    def parse_value(cls, v):
        return parse_reading(v)


# --- Forms ---

class PropertyForm(BaseModel):
    name: str
    address: str
    city: str
    district: Optional[str] = None
    description: Optional[str] = None

    @field_validator('name', mode='before')
    def check_name(cls, v):
        if not v or not str(v).strip():
            raise ValueError("Tên nhà cho thuê là bắt buộc")
        return str(v).strip()

    @field_validator('address', mode='before')
    def check_address(cls, v):
        if not v or not str(v).strip():
            raise ValueError("Địa chỉ là bắt buộc")
        return str(v).strip()

    @field_validator('city', mode='before')
    def check_city(cls, v):
        if not v or not str(v).strip():
            raise ValueError("Thành phố là bắt buộc")
        return str(v).strip()

    @field_validator('district', 'description', mode='before')
    def blank_optional(cls, v):
        return _blank_to_none(v)


class RoomForm(BaseModel):
    property_id: int
    room_number: str
    floor: Optional[str] = None
    area_sqm: Optional[Decimal] = None
    rent_amount: int = 0
    deposit_amount: Optional[int] = None
    status: str = "available"
    utilities: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    images: List[str] = Field(default_factory=list)

    @field_validator('property_id', mode='before')
    def check_property(cls, v):
        if v in (None, "", 0):
            raise ValueError("Vui lòng chọn nhà cho thuê")
        return v

    @field_validator('room_number', mode='before')
    def check_room_number(cls, v):
        if v is None or not str(v).strip():
            raise ValueError("Vui lòng nhập số phòng")
        return str(v).strip()

    @field_validator('area_sqm', mode='before')
    def check_area(cls, v):
        v = _blank_to_none(v)
        if v is None:
            return None
        area = parse_reading(v)
        if area < 1:
            raise ValueError("Diện tích phải lớn hơn 0")
        if area > 1000:
            raise ValueError("Diện tích không được vượt quá 1000m²")
        return area

    @field_validator('rent_amount', mode='before')
    def check_rent(cls, v):
        amount = parse_vnd(v)
        if amount < 0:
            raise ValueError("Giá thuê không được âm")
        if amount > MAX_RENT:
            raise ValueError("Giá thuê không được vượt quá 100 triệu VNĐ")
        return amount

    @field_validator('deposit_amount', mode='before')
    def check_deposit(cls, v):
        v = _blank_to_none(v)
        if v is None:
            return None
        amount = parse_vnd(v)
        if amount < 0:
            raise ValueError("Tiền cọc không được âm")
        if amount > MAX_DEPOSIT:
            raise ValueError("Tiền cọc không được vượt quá 1 tỷ VNĐ")
        return amount

    @field_validator('status')
    def check_status(cls, v):
        if v not in ("available", "occupied", "maintenance"):
            raise ValueError("Trạng thái phòng không hợp lệ")
        return v

    @field_validator('floor', 'description', mode='before')
    def blank_optional(cls, v):
        return _blank_to_none(v)


class TenantForm(BaseModel):
    full_name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    id_number: Optional[str] = None
    birth_date: Optional[date] = None
    address: Optional[str] = None
    occupation: Optional[str] = None
    emergency_contact: Optional[str] = None
    emergency_phone: Optional[str] = None
    notes: Optional[str] = None

    @field_validator('full_name', mode='before')
    def check_full_name(cls, v):
        if v is None or not str(v).strip():
            raise ValueError("Họ tên là bắt buộc")
        v = str(v).strip()
        if len(v) > 100:
            raise ValueError("Họ tên không được vượt quá 100 ký tự")
        return v

    @field_validator('phone', 'emergency_phone', mode='before')
    def check_phone(cls, v):
        v = _blank_to_none(v)
        if v is None:
            return None
        v = str(v).strip()
        if not PHONE_RE.match(v):
            raise ValueError("Số điện thoại phải có 10-11 số")
        return v

    @field_validator('email', mode='before')
    def check_email(cls, v):
        v = _blank_to_none(v)
        if v is None:
            return None
        v = str(v).strip()
        if not EMAIL_RE.match(v):
            raise ValueError("Email không hợp lệ")
        return v

    @field_validator('id_number', mode='before')
    def check_id_number(cls, v):
        v = _blank_to_none(v)
        if v is None:
            return None
        v = str(v).strip()
        if not ID_NUMBER_RE.match(v):
            raise ValueError("CMND/CCCD phải có 9-12 số")
        return v

    @field_validator('birth_date', 'address', 'occupation', 'emergency_contact', 'notes', mode='before')
    def blank_optional(cls, v):
        return _blank_to_none(v)


class ContractForm(BaseModel):
    start_date: date
    end_date: Optional[date] = None
    monthly_rent: int
    deposit_amount: Optional[int] = None

    @field_validator('start_date', mode='before')
    def check_start(cls, v):
        if v in (None, ""):
            raise ValueError("Ngày bắt đầu là bắt buộc")
        return v

    @field_validator('end_date', mode='before')
    def blank_end(cls, v):
        return _blank_to_none(v)

    @field_validator('monthly_rent', mode='before')
    def check_rent(cls, v):
        amount = parse_vnd(v)
        if amount < 0:
            raise ValueError("Tiền thuê không được âm")
        return amount

    @field_validator('deposit_amount', mode='before')
    def check_deposit(cls, v):
        v = _blank_to_none(v)
        if v is None:
            return None
        amount = parse_vnd(v)
        if amount < 0:
            raise ValueError("Tiền cọc phải lớn hơn hoặc bằng 0")
        return amount

    @model_validator(mode='after')
    def check_dates(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("Ngày kết thúc phải sau ngày bắt đầu")
        return self


class UtilityForm(BaseModel):
    property_id: int
    room_id: Optional[int] = None
    name: str
    type: str = "other"
    provider: str
    customer_code: Optional[str] = None
    monthly_due_date: Optional[int] = None
    notes: Optional[str] = None

    @field_validator('name', mode='before')
    def check_name(cls, v):
        if v is None or not str(v).strip():
            raise ValueError("Tên dịch vụ là bắt buộc")
        return str(v).strip()

    @field_validator('provider', mode='before')
    def check_provider(cls, v):
        if v is None or not str(v).strip():
            raise ValueError("Nhà cung cấp là bắt buộc")
        return str(v).strip()

    @field_validator('type')
    def check_type(cls, v):
        if v not in ("electricity", "water", "internet", "tv", "gas", "trash", "other"):
            raise ValueError("Loại dịch vụ không hợp lệ")
        return v

    @field_validator('monthly_due_date', mode='before')
    def check_due_day(cls, v):
        v = _blank_to_none(v)
        if v is None:
            return None
        day = int(v)
        if day < 1 or day > 31:
            raise ValueError("Ngày đến hạn phải từ 1 đến 31")
        return day

    @field_validator('customer_code', 'notes', mode='before')
    def blank_optional(cls, v):
        return _blank_to_none(v)


class UtilityBillForm(BaseModel):
    utility_type: str = "other"
    amount: int
    due_date: date
    period_start: date
    period_end: date
    previous_reading: Optional[Decimal] = None
    current_reading: Optional[Decimal] = None
    rate_per_unit: Optional[int] = None
    attachment_url: Optional[str] = None
    notes: Optional[str] = None

    @field_validator('amount', mode='before')
    def check_amount(cls, v):
        amount = parse_vnd(v) if v not in (None, "") else 0
        if amount <= 0:
            raise ValueError("Số tiền phải lớn hơn 0")
        return amount

    @field_validator('period_start', mode='before')
    def check_period_start(cls, v):
        if v in (None, ""):
            raise ValueError("Ngày bắt đầu kỳ là bắt buộc")
        return v

    @field_validator('period_end', mode='before')
    def check_period_end(cls, v):
        if v in (None, ""):
            raise ValueError("Ngày kết thúc kỳ là bắt buộc")
        return v

    @field_validator('due_date', mode='before')
    def check_due_date(cls, v):
        if v in (None, ""):
            raise ValueError("Ngày đáo hạn là bắt buộc")
        return v

    @field_validator('previous_reading', 'current_reading', mode='before')
    def parse_readings(cls, v):
        v = _blank_to_none(v)
        return None if v is None else parse_reading(v)

    @field_validator('rate_per_unit', mode='before')
    def parse_rate(cls, v):
        v = _blank_to_none(v)
        return None if v is None else parse_vnd(v)

    @model_validator(mode='after')
    def check_readings(self):
        if self.utility_type in ("electricity", "water"):
            if self.previous_reading is not None and self.current_reading is not None:
                if self.current_reading < self.previous_reading:
                    raise ValueError("Chỉ số hiện tại phải lớn hơn chỉ số trước")
        return self


class ColorSettingsForm(BaseModel):
    header_bg: Optional[str] = None
    header_text: Optional[str] = None
    total_bg: Optional[str] = None
    total_text: Optional[str] = None
    theme_name: Optional[str] = None

    @field_validator('header_bg', 'header_text', 'total_bg', 'total_text', mode='before')
    def check_color(cls, v):
        v = _blank_to_none(v)
        if v is None:
            return None
        if not COLOR_RE.match(str(v)):
            raise ValueError("Mã màu phải có dạng #RRGGBB")
        return str(v).lower()


class ColorThemeForm(BaseModel):
    name: str
    header_bg: str
    header_text: str
    total_bg: str
    total_text: str
    is_default: bool = False

    @field_validator('name', mode='before')
    def check_name(cls, v):
        if v is None or not str(v).strip():
            raise ValueError("Tên bảng màu là bắt buộc")
        return str(v).strip()

    @field_validator('header_bg', 'header_text', 'total_bg', 'total_text', mode='before')
    def check_color(cls, v):
        if v is None or not COLOR_RE.match(str(v)):
            raise ValueError("Mã màu phải có dạng #RRGGBB")
        return str(v).lower()
