import pytest
from datetime import date
from sqlalchemy import select, func

from rentalpro.database.models import Tenant, Room
from rentalpro.errors import PreconditionError, RoomUnavailableError, ValidationFailed
from rentalpro.services import tenant_service


@pytest.mark.asyncio
async def test_create_tenant(async_session):
    tenant = await tenant_service.create_tenant(async_session, {
        "full_name": " Lê Thị Cúc ",
        "phone": "0987654321",
        "email": "cuc@example.com",
        "id_number": "079123456789",
        "birth_date": "1995-04-12",
        "occupation": "",
    })
    assert tenant.full_name == "Lê Thị Cúc"
    assert tenant.birth_date == date(1995, 4, 12)
    assert tenant.occupation is None


@pytest.mark.asyncio
@pytest.mark.parametrize("data,field,message", [
    ({"full_name": ""}, "full_name", "Họ tên là bắt buộc"),
    ({"full_name": "A" * 101}, "full_name", "Họ tên không được vượt quá 100 ký tự"),
    ({"full_name": "An", "phone": "09012"}, "phone", "Số điện thoại phải có 10-11 số"),
    ({"full_name": "An", "email": "an@"}, "email", "Email không hợp lệ"),
    ({"full_name": "An", "id_number": "12345"}, "id_number", "CMND/CCCD phải có 9-12 số"),
])
async def test_create_tenant_validation(async_session, data, field, message):
    with pytest.raises(ValidationFailed) as exc:
        await tenant_service.create_tenant(async_session, data)
    assert exc.value.errors[field] == message


@pytest.mark.asyncio
async def test_update_tenant(async_session, tenant):
    updated = await tenant_service.update_tenant(async_session, tenant.id, {"phone": "0911222333"})
    assert updated.phone == "0911222333"
    assert updated.full_name == "Nguyễn Văn An"

    with pytest.raises(ValidationFailed):
        await tenant_service.update_tenant(async_session, tenant.id, {"email": "nope"})


@pytest.mark.asyncio
async def test_list_tenants(async_session, occupied_room, tenant, make_tenant):
    free = await make_tenant("Phạm Minh Đức", "0933444555")

    assert {t.id for t in await tenant_service.list_tenants(async_session)} == {tenant.id, free.id}
    assert [t.id for t in await tenant_service.list_tenants(async_session, search="0933")] == [free.id]
    assert [t.id for t in await tenant_service.list_tenants(async_session, contract_status="active")] == [tenant.id]
    assert [t.id for t in await tenant_service.list_tenants(async_session, contract_status="none")] == [free.id]

    housed = await tenant_service.list_tenants(async_session, property_id=occupied_room.property_id)
    assert [t.id for t in housed] == [tenant.id]
    assert housed[0].current_contract.room.room_number == "101"


@pytest.mark.asyncio
async def test_delete_tenant_with_contract_refused(async_session, occupied_room, tenant):
    with pytest.raises(PreconditionError):
        await tenant_service.delete_tenant(async_session, tenant.id)


@pytest.mark.asyncio
async def test_delete_tenant(async_session, make_tenant):
    tenant = await make_tenant()
    await tenant_service.delete_tenant(async_session, tenant.id)
    assert (await async_session.execute(select(func.count(Tenant.id)))).scalar() == 0


@pytest.mark.asyncio
async def test_create_tenant_with_contract(async_session, room):
    tenant, contract = await tenant_service.create_tenant_with_contract(
        async_session,
        {"full_name": "Võ Văn Em", "phone": "0909000111"},
        room.id,
        {"start_date": date(2025, 9, 1), "monthly_rent": "3.000.000", "deposit_amount": "3.000.000"},
    )
    assert contract.tenant_id == tenant.id
    assert contract.status == "active"
    status = (await async_session.execute(select(Room.status).where(Room.id == room.id))).scalar()
    assert status == "occupied"


@pytest.mark.asyncio
async def test_create_tenant_with_contract_is_atomic(async_session, occupied_room, tenant):
    with pytest.raises(RoomUnavailableError):
        await tenant_service.create_tenant_with_contract(
            async_session,
            {"full_name": "Người Mới"},
            occupied_room.id,
            {"start_date": date(2025, 9, 1), "monthly_rent": 1},
        )
    # The tenant row was flushed, then rolled back with the contract
    assert (await async_session.execute(select(func.count(Tenant.id)))).scalar() == 1
