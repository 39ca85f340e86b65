"""
Room / tenant assignment.

Invariants kept by every function here:
- a room has at most one active contract, a tenant has at most one active contract;
- room.status == occupied exactly when the room has an active contract.

The partial unique indexes on rental_contracts back the first rule in the database,
the row locks below only narrow the window for a friendly error message.
"""
import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rentalpro.database.models import (
    Room, RoomStatus, Tenant, RentalContract, ContractStatus
)
from rentalpro.errors import (
    NotFoundError, NoActiveContractError, PreconditionError, RoomUnavailableError,
    StoreError, TenantHasContractError, ValidationFailed
)
from rentalpro.schemas.validation import ContractForm, validate_form
from rentalpro.services.crud import get_or_raise

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("start_date", "end_date", "monthly_rent", "deposit_amount", "renewal_count", "status")


def effective_contract_status(contract: RentalContract, today: Optional[date] = None) -> str:
    """Active contracts past their end date read as expired; the stored status is not changed."""
    today = today or date.today()
    if (
        contract.status == ContractStatus.active.value
        and contract.end_date is not None
        and contract.end_date < today
    ):
        return ContractStatus.expired.value
    return contract.status


# --- Store helpers ---

async def lock_room(session: AsyncSession, room_id: int) -> Room:
    stmt = select(Room).where(Room.id == room_id).with_for_update()
    result = await session.execute(stmt)
    room = result.scalar_one_or_none()
    if not room:
        raise NotFoundError("Không tìm thấy phòng")
    return room


async def _active_contract_for_room(session: AsyncSession, room_id: int) -> Optional[RentalContract]:
    stmt = select(RentalContract).where(
        RentalContract.room_id == room_id,
        RentalContract.status == ContractStatus.active.value,
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def _active_contract_for_tenant(session: AsyncSession, tenant_id: int) -> Optional[RentalContract]:
    stmt = select(RentalContract).where(
        RentalContract.tenant_id == tenant_id,
        RentalContract.status == ContractStatus.active.value,
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def _set_room_status(session: AsyncSession, room_id: int, status: RoomStatus) -> None:
    await session.execute(
        update(Room).where(Room.id == room_id).values(status=status.value)
    )


async def commit_changes(session: AsyncSession) -> None:
    """Commit, turning a lost race on the active-contract indexes into a domain error."""
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        text = str(e.orig) if e.orig is not None else str(e)
        if "uq_active_contract_room" in text or "rental_contracts.room_id" in text:
            raise RoomUnavailableError()
        if "uq_active_contract_tenant" in text or "rental_contracts.tenant_id" in text:
            raise TenantHasContractError()
        logger.error(f"Contract commit failed: {text}")
        raise StoreError()


async def open_contract(
    session: AsyncSession,
    room: Room,
    tenant_id: int,
    start_date: date,
    monthly_rent: int,
    deposit_amount: Optional[int] = None,
    end_date: Optional[date] = None,
) -> RentalContract:
    """
    Add an active contract and mark the room occupied, without committing.
    The caller holds the room lock and owns the transaction.
    """
    if room.status == RoomStatus.maintenance.value:
        raise RoomUnavailableError("Phòng đang bảo trì")
    if room.status == RoomStatus.occupied.value or await _active_contract_for_room(session, room.id):
        raise RoomUnavailableError()
    if await _active_contract_for_tenant(session, tenant_id):
        raise TenantHasContractError()

    contract = RentalContract(
        room_id=room.id,
        tenant_id=tenant_id,
        start_date=start_date,
        end_date=end_date,
        monthly_rent=monthly_rent,
        deposit_amount=deposit_amount,
        renewal_count=0,
        status=ContractStatus.active.value,
    )
    session.add(contract)
    await _set_room_status(session, room.id, RoomStatus.occupied)
    return contract


async def _close_contract(session: AsyncSession, contract: RentalContract, end_date: date) -> None:
    contract.status = ContractStatus.terminated.value
    contract.end_date = end_date
    await _set_room_status(session, contract.room_id, RoomStatus.available)
    # Flush now so a replacement contract in the same transaction does not collide on the indexes
    await session.flush()


# --- Operations ---

async def create_contract(session: AsyncSession, room_id: int, tenant_id: int, data: dict) -> RentalContract:
    """Attach an existing tenant to a room with explicit dates and amounts."""
    form = validate_form(ContractForm, data)
    await get_or_raise(session, Tenant, tenant_id, "Không tìm thấy người thuê")
    room = await lock_room(session, room_id)

    contract = await open_contract(
        session, room, tenant_id,
        start_date=form.start_date,
        monthly_rent=form.monthly_rent,
        deposit_amount=form.deposit_amount,
        end_date=form.end_date,
    )
    await commit_changes(session)
    logger.info(f"Contract {contract.id}: tenant {tenant_id} -> room {room_id}")
    return contract


async def assign_tenant_to_room(
    session: AsyncSession,
    room_id: int,
    tenant_id: int,
    monthly_rent: Optional[int] = None,
    start_date: Optional[date] = None,
) -> RentalContract:
    """Start a contract today at the given rent (room rent if omitted)."""
    await get_or_raise(session, Tenant, tenant_id, "Không tìm thấy người thuê")
    room = await lock_room(session, room_id)

    if monthly_rent is None:
        monthly_rent = room.rent_amount
    if monthly_rent < 0:
        raise ValidationFailed({"monthly_rent": "Tiền thuê không được âm"})

    contract = await open_contract(
        session, room, tenant_id,
        start_date=start_date or date.today(),
        monthly_rent=monthly_rent,
        deposit_amount=room.deposit_amount,
    )
    await commit_changes(session)
    logger.info(f"Tenant {tenant_id} assigned to room {room_id} (contract {contract.id})")
    return contract


async def unassign_tenant_from_room(
    session: AsyncSession,
    room_id: int,
    end_date: Optional[date] = None,
) -> RentalContract:
    """Terminate the room's active contract and free the room."""
    await lock_room(session, room_id)
    contract = await _active_contract_for_room(session, room_id)
    if not contract:
        raise NoActiveContractError()

    await _close_contract(session, contract, end_date or date.today())
    await commit_changes(session)
    logger.info(f"Room {room_id} unassigned (contract {contract.id} terminated)")
    return contract


async def transfer_tenant(
    session: AsyncSession,
    tenant_id: int,
    from_room_id: int,
    to_room_id: int,
    new_rent: Optional[int] = None,
    transfer_date: Optional[date] = None,
) -> RentalContract:
    """
    Move a tenant between rooms in one transaction: the old contract is terminated
    and the new one created together, or nothing changes.
    """
    if from_room_id == to_room_id:
        raise ValidationFailed({"to_room_id": "Phòng mới phải khác phòng hiện tại"})

    transfer_date = transfer_date or date.today()

    try:
        # Lock in id order so two transfers over the same rooms cannot deadlock
        rooms = {}
        for room_id in sorted((from_room_id, to_room_id)):
            rooms[room_id] = await lock_room(session, room_id)
        to_room = rooms[to_room_id]

        old = await _active_contract_for_tenant(session, tenant_id)
        if not old or old.room_id != from_room_id:
            raise NoActiveContractError()

        if to_room.status == RoomStatus.maintenance.value:
            raise RoomUnavailableError("Phòng đang bảo trì")
        if await _active_contract_for_room(session, to_room_id):
            raise RoomUnavailableError()

        await _close_contract(session, old, transfer_date)
        # Status was changed with a bulk UPDATE; re-read it before the checks in open_contract
        await session.refresh(to_room)

        new = await open_contract(
            session, to_room, tenant_id,
            start_date=transfer_date,
            monthly_rent=new_rent if new_rent is not None else to_room.rent_amount,
            deposit_amount=old.deposit_amount,
        )
    except Exception:
        await session.rollback()
        raise

    await commit_changes(session)
    logger.info(f"Tenant {tenant_id} moved: room {from_room_id} -> room {to_room_id} (contract {new.id})")
    return new


async def terminate_contract(session: AsyncSession, contract_id: int) -> RentalContract:
    contract = await get_or_raise(session, RentalContract, contract_id, "Không tìm thấy hợp đồng")

    if contract.status != ContractStatus.active.value:
        logger.info(f"Contract {contract_id} already {contract.status}")
        return contract

    await lock_room(session, contract.room_id)
    await _close_contract(session, contract, date.today())
    await commit_changes(session)
    logger.info(f"Contract {contract_id} terminated")
    return contract


async def update_contract(session: AsyncSession, contract_id: int, changes: dict) -> RentalContract:
    """Edit rent, dates, deposit, renewal count or status, keeping the room status in step."""
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Fields cannot be changed: {', '.join(sorted(unknown))}")

    contract = await get_or_raise(session, RentalContract, contract_id, "Không tìm thấy hợp đồng")

    merged = {
        "start_date": contract.start_date,
        "end_date": contract.end_date,
        "monthly_rent": contract.monthly_rent,
        "deposit_amount": contract.deposit_amount,
    }
    merged.update({k: v for k, v in changes.items() if k in merged})
    form = validate_form(ContractForm, merged)
    for key in ("start_date", "end_date", "monthly_rent", "deposit_amount"):
        if key in changes:
            setattr(contract, key, getattr(form, key))

    if "renewal_count" in changes:
        renewal_count = int(changes["renewal_count"])
        if renewal_count < 0:
            raise ValidationFailed({"renewal_count": "Số lần gia hạn không được âm"})
        contract.renewal_count = renewal_count

    if "status" in changes:
        new_status = ContractStatus(changes["status"]).value
        old_status = contract.status
        if new_status != old_status:
            room = await lock_room(session, contract.room_id)
            if old_status == ContractStatus.active.value:
                contract.status = new_status
                if contract.end_date is None:
                    contract.end_date = date.today()
                await _set_room_status(session, room.id, RoomStatus.available)
            elif new_status == ContractStatus.active.value:
                if room.status != RoomStatus.available.value or await _active_contract_for_room(session, room.id):
                    raise RoomUnavailableError()
                if await _active_contract_for_tenant(session, contract.tenant_id):
                    raise TenantHasContractError()
                contract.status = new_status
                await _set_room_status(session, room.id, RoomStatus.occupied)
            else:
                contract.status = new_status

    await commit_changes(session)
    return contract


async def renew_contract(
    session: AsyncSession,
    contract_id: int,
    new_end_date: date,
    monthly_rent: Optional[int] = None,
) -> RentalContract:
    contract = await get_or_raise(session, RentalContract, contract_id, "Không tìm thấy hợp đồng")
    if contract.status != ContractStatus.active.value:
        raise PreconditionError("Chỉ gia hạn được hợp đồng đang hoạt động")

    current_end = contract.end_date or contract.start_date
    if new_end_date <= current_end:
        raise ValidationFailed({"end_date": "Ngày kết thúc mới phải sau ngày kết thúc hiện tại"})
    if monthly_rent is not None and monthly_rent < 0:
        raise ValidationFailed({"monthly_rent": "Tiền thuê không được âm"})

    contract.end_date = new_end_date
    contract.renewal_count = (contract.renewal_count or 0) + 1
    if monthly_rent is not None:
        contract.monthly_rent = monthly_rent

    await commit_changes(session)
    logger.info(f"Contract {contract_id} renewed until {new_end_date} (#{contract.renewal_count})")
    return contract


async def get_contract(session: AsyncSession, contract_id: int) -> RentalContract:
    return await get_or_raise(
        session, RentalContract, contract_id, "Không tìm thấy hợp đồng",
        options=[
            selectinload(RentalContract.room).selectinload(Room.property),
            selectinload(RentalContract.tenant),
        ],
    )


async def list_contracts(
    session: AsyncSession,
    status: Optional[str] = None,
    property_id: Optional[int] = None,
    today: Optional[date] = None,
) -> List[RentalContract]:
    """Newest first. status filters on the effective status (expired included)."""
    stmt = (
        select(RentalContract)
        .options(
            selectinload(RentalContract.room).selectinload(Room.property),
            selectinload(RentalContract.tenant),
        )
        .order_by(RentalContract.start_date.desc(), RentalContract.id.desc())
    )
    if property_id:
        stmt = stmt.join(Room, RentalContract.room_id == Room.id).where(Room.property_id == property_id)

    result = await session.execute(stmt)
    contracts = list(result.scalars().all())
    if status:
        contracts = [c for c in contracts if effective_contract_status(c, today) == status]
    return contracts
