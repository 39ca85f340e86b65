import logging
from typing import List, NamedTuple, Optional

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rentalpro.database.models import (
    Property, Room, RoomStatus, RentalContract, ContractStatus, Tenant
)
from rentalpro.errors import PreconditionError, ValidationFailed
from rentalpro.schemas.validation import RoomForm, validate_form
from rentalpro.services.crud import get_or_raise, apply_changes, delete_record

logger = logging.getLogger(__name__)

NOT_FOUND = "Không tìm thấy phòng"

EDITABLE_FIELDS = (
    "room_number", "floor", "area_sqm", "rent_amount", "deposit_amount",
    "status", "utilities", "description", "images",
)


class PropertyRooms(NamedTuple):
    property: Property
    rooms: List[Room]


class OccupiedRoom(NamedTuple):
    room: Room
    property: Property
    contract: RentalContract
    tenant: Tenant


def _room_options():
    return [
        selectinload(Room.property),
        selectinload(Room.contracts).selectinload(RentalContract.tenant),
    ]


async def list_rooms(
    session: AsyncSession,
    property_id: Optional[int] = None,
    status: Optional[str] = None,
    rent_min: Optional[int] = None,
    rent_max: Optional[int] = None,
) -> List[Room]:
    stmt = select(Room).options(*_room_options()).order_by(Room.property_id, Room.room_number)
    if property_id:
        stmt = stmt.where(Room.property_id == property_id)
    if status:
        stmt = stmt.where(Room.status == status)
    if rent_min is not None:
        stmt = stmt.where(Room.rent_amount >= rent_min)
    if rent_max is not None:
        stmt = stmt.where(Room.rent_amount <= rent_max)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_room(session: AsyncSession, room_id: int) -> Room:
    return await get_or_raise(session, Room, room_id, NOT_FOUND, options=_room_options())


async def create_room(session: AsyncSession, data: dict) -> Room:
    form = validate_form(RoomForm, data)
    if form.status == RoomStatus.occupied.value:
        # Occupied is reached only through a contract
        raise ValidationFailed({"status": "Phòng mới chưa có người thuê"})

    await get_or_raise(session, Property, form.property_id, "Không tìm thấy nhà cho thuê")

    room = Room(**form.model_dump())
    session.add(room)
    await session.commit()
    logger.info(f"Room {room.id} ({room.room_number}) created in property {room.property_id}")
    return room


async def update_room(session: AsyncSession, room_id: int, changes: dict) -> Room:
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Fields cannot be changed: {', '.join(sorted(unknown))}")

    room = await get_room(session, room_id)

    merged = {name: getattr(room, name) for name in EDITABLE_FIELDS}
    merged["property_id"] = room.property_id
    merged.update(changes)
    form = validate_form(RoomForm, merged)

    if "status" in changes and form.status != room.status:
        if form.status == RoomStatus.occupied.value:
            raise PreconditionError("Hãy gán người thuê để chuyển phòng sang trạng thái đã thuê")
        if room.active_contract is not None:
            raise PreconditionError("Phòng đang có người thuê, hãy trả phòng trước")

    apply_changes(room, {k: getattr(form, k) for k in changes}, EDITABLE_FIELDS)
    await session.commit()
    return room


async def delete_room(session: AsyncSession, room_id: int) -> None:
    room = await get_room(session, room_id)
    if room.active_contract is not None:
        raise PreconditionError("Không thể xóa phòng đang có người thuê")
    await delete_record(session, room)
    logger.info(f"Room {room_id} deleted")


async def get_rooms_grouped_by_property(
    session: AsyncSession,
    tenant_id: Optional[int] = None,
) -> List[PropertyRooms]:
    """
    Selectable rooms grouped by property for a property -> room picker.
    A room is selectable if it is available or it is the given tenant's current room.
    """
    current_room_id = None
    if tenant_id:
        stmt = select(RentalContract.room_id).where(
            RentalContract.tenant_id == tenant_id,
            RentalContract.status == ContractStatus.active.value,
        )
        result = await session.execute(stmt)
        current_room_id = result.scalar_one_or_none()

    condition = Room.status == RoomStatus.available.value
    if current_room_id:
        condition = or_(condition, Room.id == current_room_id)

    stmt = (
        select(Room)
        .join(Property, Room.property_id == Property.id)
        .where(condition)
        .options(selectinload(Room.property))
        .order_by(Property.name, Property.id, Room.room_number)
    )
    result = await session.execute(stmt)

    groups: List[PropertyRooms] = []
    for room in result.scalars().all():
        if not groups or groups[-1].property.id != room.property_id:
            groups.append(PropertyRooms(room.property, []))
        groups[-1].rooms.append(room)
    return groups


async def get_occupied_rooms_with_tenant(
    session: AsyncSession,
    property_id: Optional[int] = None,
) -> List[OccupiedRoom]:
    """Occupied rooms joined with property, active contract and tenant (collection screen)."""
    stmt = (
        select(RentalContract)
        .join(Room, RentalContract.room_id == Room.id)
        .where(RentalContract.status == ContractStatus.active.value)
        .options(
            selectinload(RentalContract.room).selectinload(Room.property),
            selectinload(RentalContract.tenant),
        )
        .order_by(Room.property_id, Room.room_number)
    )
    if property_id:
        stmt = stmt.where(Room.property_id == property_id)
    result = await session.execute(stmt)

    return [
        OccupiedRoom(contract.room, contract.room.property, contract, contract.tenant)
        for contract in result.scalars().all()
    ]
