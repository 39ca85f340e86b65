import logging
from typing import List, Optional, Tuple

from sqlalchemy import select, or_, exists, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rentalpro.database.models import Tenant, RentalContract, ContractStatus, Room
from rentalpro.errors import PreconditionError
from rentalpro.schemas.validation import TenantForm, ContractForm, validate_form
from rentalpro.services.crud import get_or_raise, apply_changes, delete_record
from rentalpro.services.contract_service import lock_room, commit_changes, open_contract

logger = logging.getLogger(__name__)

NOT_FOUND = "Không tìm thấy người thuê"

EDITABLE_FIELDS = tuple(TenantForm.model_fields)


def _tenant_options():
    return [
        selectinload(Tenant.contracts)
        .selectinload(RentalContract.room)
        .selectinload(Room.property)
    ]


async def list_tenants(
    session: AsyncSession,
    search: Optional[str] = None,
    contract_status: Optional[str] = None,
    property_id: Optional[int] = None,
) -> List[Tenant]:
    """
    contract_status="active" keeps tenants with an active contract,
    contract_status="none" keeps tenants without one.
    """
    stmt = select(Tenant).options(*_tenant_options()).order_by(Tenant.created_at.desc(), Tenant.id.desc())

    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(
            Tenant.full_name.ilike(pattern),
            Tenant.phone.ilike(pattern),
            Tenant.email.ilike(pattern),
        ))

    has_active = exists().where(
        RentalContract.tenant_id == Tenant.id,
        RentalContract.status == ContractStatus.active.value,
    )
    if contract_status == "none":
        stmt = stmt.where(~has_active)
    elif contract_status:
        stmt = stmt.where(exists().where(
            RentalContract.tenant_id == Tenant.id,
            RentalContract.status == contract_status,
        ))

    if property_id:
        stmt = stmt.where(exists().where(and_(
            RentalContract.tenant_id == Tenant.id,
            RentalContract.status == ContractStatus.active.value,
            RentalContract.room_id == Room.id,
            Room.property_id == property_id,
        )))

    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_tenant(session: AsyncSession, tenant_id: int) -> Tenant:
    """Tenant with contracts -> room -> property loaded (see Tenant.current_contract)."""
    return await get_or_raise(session, Tenant, tenant_id, NOT_FOUND, options=_tenant_options())


async def create_tenant(session: AsyncSession, data: dict) -> Tenant:
    form = validate_form(TenantForm, data)
    tenant = Tenant(**form.model_dump())
    session.add(tenant)
    await session.commit()
    logger.info(f"Tenant {tenant.id} created: {tenant.full_name}")
    return tenant


async def update_tenant(session: AsyncSession, tenant_id: int, changes: dict) -> Tenant:
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Fields cannot be changed: {', '.join(sorted(unknown))}")

    tenant = await get_tenant(session, tenant_id)
    merged = {name: getattr(tenant, name) for name in EDITABLE_FIELDS}
    merged.update(changes)
    form = validate_form(TenantForm, merged)

    apply_changes(tenant, {k: getattr(form, k) for k in changes}, EDITABLE_FIELDS)
    await session.commit()
    return tenant


async def delete_tenant(session: AsyncSession, tenant_id: int) -> None:
    tenant = await get_tenant(session, tenant_id)
    if tenant.current_contract is not None:
        raise PreconditionError("Người thuê đang có hợp đồng, hãy trả phòng trước")
    await delete_record(session, tenant)
    logger.info(f"Tenant {tenant_id} deleted")


async def create_tenant_with_contract(
    session: AsyncSession,
    tenant_data: dict,
    room_id: int,
    contract_data: dict,
) -> Tuple[Tenant, RentalContract]:
    """New tenant moving straight into a room. Both rows are written or neither."""
    tenant_form = validate_form(TenantForm, tenant_data)
    contract_form = validate_form(ContractForm, contract_data)

    try:
        room = await lock_room(session, room_id)
        tenant = Tenant(**tenant_form.model_dump())
        session.add(tenant)
        await session.flush()

        contract = await open_contract(
            session, room, tenant.id,
            start_date=contract_form.start_date,
            monthly_rent=contract_form.monthly_rent,
            deposit_amount=contract_form.deposit_amount,
            end_date=contract_form.end_date,
        )
    except Exception:
        await session.rollback()
        raise

    await commit_changes(session)
    logger.info(f"Tenant {tenant.id} created and assigned to room {room_id} (contract {contract.id})")
    return tenant, contract
