from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from rentalpro.database.models import (
    Property, Room, RoomStatus, Tenant, RentalContract, ContractStatus
)


class DashboardStats:
    def __init__(self, total_properties, total_rooms, occupied_rooms, available_rooms,
                 total_tenants, active_contracts, monthly_revenue):
        self.total_properties = int(total_properties or 0)
        self.total_rooms = int(total_rooms or 0)
        self.occupied_rooms = int(occupied_rooms or 0)
        self.available_rooms = int(available_rooms or 0)
        self.total_tenants = int(total_tenants or 0)
        self.active_contracts = int(active_contracts or 0)
        self.monthly_revenue = int(monthly_revenue or 0)

        if self.total_rooms:
            self.occupancy_rate = round(self.occupied_rooms * 100.0 / self.total_rooms, 1)
        else:
            self.occupancy_rate = 0.0


async def _count(session: AsyncSession, stmt) -> int:
    result = await session.execute(stmt)
    return int(result.scalar() or 0)


async def get_dashboard_stats(session: AsyncSession) -> DashboardStats:
    """
    Portfolio overview.
    Monthly revenue is the sum of active contracts' rent, not what was collected.
    """
    total_properties = await _count(session, select(func.count(Property.id)))
    total_rooms = await _count(session, select(func.count(Room.id)))
    occupied_rooms = await _count(
        session, select(func.count(Room.id)).where(Room.status == RoomStatus.occupied.value)
    )
    available_rooms = await _count(
        session, select(func.count(Room.id)).where(Room.status == RoomStatus.available.value)
    )
    total_tenants = await _count(session, select(func.count(Tenant.id)))

    active_stmt = select(
        func.count(RentalContract.id),
        func.coalesce(func.sum(RentalContract.monthly_rent), 0),
    ).where(RentalContract.status == ContractStatus.active.value)
    active_contracts, monthly_revenue = (await session.execute(active_stmt)).one()

    return DashboardStats(
        total_properties, total_rooms, occupied_rooms, available_rooms,
        total_tenants, active_contracts, monthly_revenue,
    )
