import enum
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List
from sqlalchemy import BigInteger, String, Boolean, ForeignKey, Integer, Numeric, DateTime, JSON, Text, DATE, Index, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from rentalpro.database.core import Base

# Enums
class PropertyStatus(str, enum.Enum):
    active = "active"
    inactive = "inactive"

class RoomStatus(str, enum.Enum):
    available = "available"
    occupied = "occupied"
    maintenance = "maintenance"

class ContractStatus(str, enum.Enum):
    active = "active"
    expired = "expired"
    terminated = "terminated"

class InvoiceStatus(str, enum.Enum):
    draft = "draft"
    sent = "sent"
    paid = "paid"
    overdue = "overdue"
    cancelled = "cancelled"

class InvoiceTemplate(str, enum.Enum):
    simple = "simple"
    professional = "professional"

class UtilityType(str, enum.Enum):
    electricity = "electricity"
    water = "water"
    internet = "internet"
    tv = "tv"
    gas = "gas"
    trash = "trash"
    other = "other"

class CalculationType(str, enum.Enum):
    meter = "meter"
    flat = "flat"

class BillStatus(str, enum.Enum):
    pending = "pending"
    paid = "paid"
    overdue = "overdue"


# Property (nhà cho thuê)
class Property(Base):
    __tablename__ = "properties"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String)
    address: Mapped[str] = mapped_column(String)
    city: Mapped[str] = mapped_column(String, index=True)
    district: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[PropertyStatus] = mapped_column(String, default=PropertyStatus.active.value)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    rooms: Mapped[List["Room"]] = relationship(back_populates="property", cascade="all, delete-orphan", passive_deletes=True)
    utilities: Mapped[List["Utility"]] = relationship(back_populates="property", cascade="all, delete-orphan", passive_deletes=True)


# Room (phòng)
class Room(Base):
    __tablename__ = "rooms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id", ondelete="CASCADE"), index=True)
    room_number: Mapped[str] = mapped_column(String)
    floor: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    area_sqm: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2), nullable=True)
    rent_amount: Mapped[int] = mapped_column(BigInteger, default=0)
    deposit_amount: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    status: Mapped[RoomStatus] = mapped_column(String, default=RoomStatus.available.value)
    utilities: Mapped[List[str]] = mapped_column(JSON, default=list)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    images: Mapped[List[str]] = mapped_column(JSON, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def active_contract(self) -> Optional["RentalContract"]:
        """Active contract (requires contracts to be loaded)"""
        for contract in self.contracts:
            if contract.status == ContractStatus.active.value:
                return contract
        return None

    # Declared after the computed properties: the name shadows the builtin in the class body
    property: Mapped["Property"] = relationship(back_populates="rooms")
    contracts: Mapped[List["RentalContract"]] = relationship(back_populates="room", cascade="all, delete-orphan", passive_deletes=True)


# Tenant (người thuê)
class Tenant(Base):
    __tablename__ = "tenants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    full_name: Mapped[str] = mapped_column(String)
    phone: Mapped[Optional[str]] = mapped_column(String)
    email: Mapped[Optional[str]] = mapped_column(String)
    id_number: Mapped[Optional[str]] = mapped_column(String)  # CMND/CCCD
    birth_date: Mapped[Optional[date]] = mapped_column(DATE, nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String)
    occupation: Mapped[Optional[str]] = mapped_column(String)
    emergency_contact: Mapped[Optional[str]] = mapped_column(String)
    emergency_phone: Mapped[Optional[str]] = mapped_column(String)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    contracts: Mapped[List["RentalContract"]] = relationship(back_populates="tenant", cascade="all, delete-orphan", passive_deletes=True)

    @property
    def current_contract(self) -> Optional["RentalContract"]:
        for contract in self.contracts:
            if contract.status == ContractStatus.active.value:
                return contract
        return None


# RentalContract (hợp đồng thuê) - join/lifecycle entity between Room and Tenant
class RentalContract(Base):
    __tablename__ = "rental_contracts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    room_id: Mapped[int] = mapped_column(ForeignKey("rooms.id", ondelete="CASCADE"), index=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), index=True)

    start_date: Mapped[date] = mapped_column(DATE)
    end_date: Mapped[Optional[date]] = mapped_column(DATE, nullable=True)

    monthly_rent: Mapped[int] = mapped_column(BigInteger)
    deposit_amount: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    renewal_count: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[ContractStatus] = mapped_column(String, default=ContractStatus.active.value)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    room: Mapped["Room"] = relationship(back_populates="contracts")
    tenant: Mapped["Tenant"] = relationship(back_populates="contracts")

    # At most one active contract per room and per tenant, enforced by the store
    __table_args__ = (
        Index(
            "uq_active_contract_room", "room_id", unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index(
            "uq_active_contract_tenant", "tenant_id", unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )


# RentalInvoice (hóa đơn thu tiền phòng)
# room_id / tenant_id / contract_id are weak references: the invoice outlives its contract.
class RentalInvoice(Base):
    __tablename__ = "rental_invoices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    room_id: Mapped[int] = mapped_column(Integer, index=True)
    tenant_id: Mapped[int] = mapped_column(Integer, index=True)
    contract_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    invoice_number: Mapped[str] = mapped_column(String, unique=True, index=True)
    period_start: Mapped[date] = mapped_column(DATE)
    period_end: Mapped[date] = mapped_column(DATE)
    issue_date: Mapped[date] = mapped_column(DATE)
    due_date: Mapped[date] = mapped_column(DATE)
    template_type: Mapped[InvoiceTemplate] = mapped_column(String, default=InvoiceTemplate.professional.value)
    status: Mapped[InvoiceStatus] = mapped_column(String, default=InvoiceStatus.draft.value)

    rent_amount: Mapped[int] = mapped_column(BigInteger, default=0)

    # Tiền điện
    electricity_calculation_type: Mapped[CalculationType] = mapped_column(String, default=CalculationType.meter.value)
    electricity_previous_reading: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    electricity_current_reading: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    electricity_unit_price: Mapped[int] = mapped_column(BigInteger, default=0)
    electricity_amount: Mapped[int] = mapped_column(BigInteger, default=0)
    electricity_note: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    # Tiền nước
    water_calculation_type: Mapped[CalculationType] = mapped_column(String, default=CalculationType.meter.value)
    water_previous_reading: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    water_current_reading: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    water_unit_price: Mapped[int] = mapped_column(BigInteger, default=0)
    water_amount: Mapped[int] = mapped_column(BigInteger, default=0)
    water_note: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    internet_amount: Mapped[int] = mapped_column(BigInteger, default=0)
    internet_note: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    trash_amount: Mapped[int] = mapped_column(BigInteger, default=0)
    trash_note: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    # [{"name": ..., "amount": ..., "note": ...}] in display order
    other_fees: Mapped[List[dict]] = mapped_column(JSON, default=list)
    # {"header_bg", "header_text", "total_bg", "total_text", "theme_name"}
    color_settings: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    total_amount: Mapped[int] = mapped_column(BigInteger, default=0)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    pdf_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


# ColorTheme (bảng màu hóa đơn)
class ColorTheme(Base):
    __tablename__ = "color_themes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String)
    header_bg: Mapped[str] = mapped_column(String)
    header_text: Mapped[str] = mapped_column(String)
    total_bg: Mapped[str] = mapped_column(String)
    total_text: Mapped[str] = mapped_column(String)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


# Utility (landlord-facing service account: điện, nước, internet...)
class Utility(Base):
    __tablename__ = "utilities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id", ondelete="CASCADE"), index=True)
    # Set when the account belongs to a single room rather than the whole property
    room_id: Mapped[Optional[int]] = mapped_column(ForeignKey("rooms.id", ondelete="CASCADE"), nullable=True)

    name: Mapped[str] = mapped_column(String)
    type: Mapped[UtilityType] = mapped_column(String, default=UtilityType.other.value)
    provider: Mapped[str] = mapped_column(String)
    customer_code: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    monthly_due_date: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # 1-31
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    property: Mapped["Property"] = relationship(back_populates="utilities")
    bills: Mapped[List["UtilityBill"]] = relationship(back_populates="utility", cascade="all, delete-orphan", passive_deletes=True)


class UtilityBill(Base):
    __tablename__ = "utility_bills"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    utility_id: Mapped[int] = mapped_column(ForeignKey("utilities.id", ondelete="CASCADE"), index=True)
    property_id: Mapped[int] = mapped_column(Integer, index=True)

    amount: Mapped[int] = mapped_column(BigInteger)
    due_date: Mapped[date] = mapped_column(DATE)
    paid_date: Mapped[Optional[date]] = mapped_column(DATE, nullable=True)
    status: Mapped[BillStatus] = mapped_column(String, default=BillStatus.pending.value)

    period_start: Mapped[Optional[date]] = mapped_column(DATE, nullable=True)
    period_end: Mapped[Optional[date]] = mapped_column(DATE, nullable=True)
    previous_reading: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    current_reading: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    usage_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    rate_per_unit: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    attachment_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    utility: Mapped["Utility"] = relationship(back_populates="bills")


# SignedInUser (Telegram account linked to an identity-provider session)
class SignedInUser(Base):
    __tablename__ = "signed_in_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tg_id: Mapped[int] = mapped_column(BigInteger, unique=True, index=True)
    auth_user_id: Mapped[str] = mapped_column(String)
    email: Mapped[str] = mapped_column(String)
    full_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    access_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())