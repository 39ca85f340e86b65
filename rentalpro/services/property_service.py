import logging
from typing import Dict, List, NamedTuple, Optional

from sqlalchemy import select, func, case, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rentalpro.database.models import Property, Room, RoomStatus, PropertyStatus
from rentalpro.schemas.validation import PropertyForm, validate_form
from rentalpro.services.crud import get_or_raise, apply_changes, delete_record

logger = logging.getLogger(__name__)

NOT_FOUND = "Không tìm thấy nhà cho thuê"

EDITABLE_FIELDS = ("name", "address", "city", "district", "description", "status")


class PropertyStats(NamedTuple):
    """Room counts derived from rooms, never stored on the property"""
    property_id: int
    total_rooms: int
    occupied_rooms: int
    available_rooms: int
    maintenance_rooms: int
    occupancy_rate: float  # percent, 0 when there are no rooms


class PropertySummary(NamedTuple):
    property: Property
    stats: PropertyStats


def _occupancy(total: int, occupied: int) -> float:
    if not total:
        return 0.0
    return round(occupied * 100.0 / total, 1)


async def _room_counts(session: AsyncSession, property_ids: Optional[List[int]] = None) -> Dict[int, PropertyStats]:
    stmt = (
        select(
            Room.property_id,
            func.count(Room.id),
            func.sum(case((Room.status == RoomStatus.occupied.value, 1), else_=0)),
            func.sum(case((Room.status == RoomStatus.available.value, 1), else_=0)),
            func.sum(case((Room.status == RoomStatus.maintenance.value, 1), else_=0)),
        )
        .group_by(Room.property_id)
    )
    if property_ids is not None:
        stmt = stmt.where(Room.property_id.in_(property_ids))
    result = await session.execute(stmt)

    stats = {}
    for property_id, total, occupied, available, maintenance in result.all():
        total, occupied = int(total or 0), int(occupied or 0)
        stats[property_id] = PropertyStats(
            property_id=property_id,
            total_rooms=total,
            occupied_rooms=occupied,
            available_rooms=int(available or 0),
            maintenance_rooms=int(maintenance or 0),
            occupancy_rate=_occupancy(total, occupied),
        )
    return stats


def _empty_stats(property_id: int) -> PropertyStats:
    return PropertyStats(property_id, 0, 0, 0, 0, 0.0)


async def list_properties(
    session: AsyncSession,
    search: Optional[str] = None,
    city: Optional[str] = None,
    district: Optional[str] = None,
    status: Optional[str] = None,
    occupancy_min: Optional[float] = None,
    occupancy_max: Optional[float] = None,
) -> List[PropertySummary]:
    """
    Properties newest first with derived room counts.
    The occupancy range filter works on the derived rate, so it runs after the query.
    """
    stmt = select(Property).order_by(Property.created_at.desc(), Property.id.desc())
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(Property.name.ilike(pattern), Property.address.ilike(pattern)))
    if city:
        stmt = stmt.where(Property.city == city)
    if district:
        stmt = stmt.where(Property.district == district)
    if status:
        stmt = stmt.where(Property.status == status)

    result = await session.execute(stmt)
    properties = list(result.scalars().all())
    if not properties:
        return []

    counts = await _room_counts(session, [p.id for p in properties])
    summaries = []
    for prop in properties:
        stats = counts.get(prop.id) or _empty_stats(prop.id)
        if occupancy_min is not None and stats.occupancy_rate < occupancy_min:
            continue
        if occupancy_max is not None and stats.occupancy_rate > occupancy_max:
            continue
        summaries.append(PropertySummary(prop, stats))
    return summaries


async def get_property(session: AsyncSession, property_id: int) -> Property:
    return await get_or_raise(session, Property, property_id, NOT_FOUND)


async def get_property_with_rooms(session: AsyncSession, property_id: int) -> Property:
    return await get_or_raise(
        session, Property, property_id, NOT_FOUND,
        options=[selectinload(Property.rooms).selectinload(Room.contracts)],
    )


async def get_property_stats(session: AsyncSession, property_id: int) -> PropertyStats:
    await get_property(session, property_id)
    counts = await _room_counts(session, [property_id])
    return counts.get(property_id) or _empty_stats(property_id)


async def create_property(session: AsyncSession, data: dict) -> Property:
    form = validate_form(PropertyForm, data)
    prop = Property(**form.model_dump(), status=PropertyStatus.active.value)
    session.add(prop)
    await session.commit()
    logger.info(f"Property {prop.id} created: {prop.name}")
    return prop


async def update_property(session: AsyncSession, property_id: int, changes: dict) -> Property:
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Fields cannot be changed: {', '.join(sorted(unknown))}")

    prop = await get_property(session, property_id)

    # Re-validate the merged record so partial updates obey the same rules
    merged = {
        "name": prop.name, "address": prop.address, "city": prop.city,
        "district": prop.district, "description": prop.description,
    }
    merged.update({k: v for k, v in changes.items() if k != "status"})
    form = validate_form(PropertyForm, merged)

    cleaned = {k: getattr(form, k) for k in changes if k != "status"}
    if "status" in changes:
        cleaned["status"] = PropertyStatus(changes["status"]).value
    apply_changes(prop, cleaned, EDITABLE_FIELDS)

    await session.commit()
    return prop


async def delete_property(session: AsyncSession, property_id: int) -> None:
    """Deletes the property together with its rooms, their contracts and utility accounts."""
    prop = await get_property(session, property_id)
    await delete_record(session, prop)
    logger.info(f"Property {property_id} deleted")
