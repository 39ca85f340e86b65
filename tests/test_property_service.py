import pytest
from sqlalchemy import select, func

from rentalpro.database.models import Room, RentalContract
from rentalpro.errors import NotFoundError, PreconditionError, ValidationFailed
from rentalpro.services import property_service, room_service, contract_service
from rentalpro.services.analytics_service import get_dashboard_stats


# === Properties ===

@pytest.mark.asyncio
async def test_create_property(async_session):
    prop = await property_service.create_property(async_session, {
        "name": "  Chung cư mini Phú Nhuận ",
        "address": "45 Phan Xích Long",
        "city": "TP.HCM",
        "district": "",
    })
    assert prop.id is not None
    assert prop.name == "Chung cư mini Phú Nhuận"
    assert prop.district is None
    assert prop.status == "active"


@pytest.mark.asyncio
async def test_create_property_requires_fields(async_session):
    with pytest.raises(ValidationFailed) as exc:
        await property_service.create_property(async_session, {"name": "", "address": "x"})
    assert set(exc.value.errors) == {"name", "city"}
    assert exc.value.errors["name"] == "Tên nhà cho thuê là bắt buộc"


@pytest.mark.asyncio
async def test_update_property(async_session, rental_property):
    updated = await property_service.update_property(
        async_session, rental_property.id, {"district": "Quận 3", "status": "inactive"}
    )
    assert updated.district == "Quận 3"
    assert updated.status == "inactive"
    assert updated.name == "Nhà trọ Hòa Bình"

    with pytest.raises(ValidationFailed):
        await property_service.update_property(async_session, rental_property.id, {"city": " "})
    with pytest.raises(ValueError):
        await property_service.update_property(async_session, rental_property.id, {"id": 5})


@pytest.mark.asyncio
async def test_property_stats_are_derived(async_session, rental_property, occupied_room, make_room):
    await make_room("102")
    await make_room("103", status="maintenance")

    stats = await property_service.get_property_stats(async_session, rental_property.id)
    assert stats.total_rooms == 3
    assert stats.occupied_rooms == 1
    assert stats.available_rooms == 1
    assert stats.maintenance_rooms == 1
    assert stats.occupancy_rate == 33.3


@pytest.mark.asyncio
async def test_list_properties_filters(async_session, rental_property, occupied_room):
    empty = await property_service.create_property(async_session, {
        "name": "Nhà Gò Vấp", "address": "7 Quang Trung", "city": "TP.HCM",
    })

    everything = await property_service.list_properties(async_session)
    assert {s.property.id for s in everything} == {rental_property.id, empty.id}

    found = await property_service.list_properties(async_session, search="gò vấp")
    assert [s.property.id for s in found] == [empty.id]

    full = await property_service.list_properties(async_session, occupancy_min=50)
    assert [s.property.id for s in full] == [rental_property.id]
    assert full[0].stats.occupancy_rate == 100.0

    no_rooms = await property_service.list_properties(async_session, occupancy_max=0)
    assert [s.property.id for s in no_rooms] == [empty.id]
    assert no_rooms[0].stats.total_rooms == 0


@pytest.mark.asyncio
async def test_delete_property_cascades(async_session, rental_property, occupied_room):
    await property_service.delete_property(async_session, rental_property.id)

    rooms = (await async_session.execute(select(func.count(Room.id)))).scalar()
    contracts = (await async_session.execute(select(func.count(RentalContract.id)))).scalar()
    assert rooms == 0
    assert contracts == 0

    with pytest.raises(NotFoundError):
        await property_service.get_property(async_session, rental_property.id)


@pytest.mark.asyncio
async def test_property_with_rooms(async_session, rental_property, occupied_room, make_room):
    await make_room("102")
    prop = await property_service.get_property_with_rooms(async_session, rental_property.id)

    assert sorted(r.room_number for r in prop.rooms) == ["101", "102"]
    occupied = next(r for r in prop.rooms if r.id == occupied_room.id)
    assert [c.status for c in occupied.contracts] == ["active"]


# === Rooms ===

@pytest.mark.asyncio
async def test_create_room(async_session, rental_property):
    room = await room_service.create_room(async_session, {
        "property_id": rental_property.id,
        "room_number": "301",
        "area_sqm": "25,5",
        "rent_amount": "3.500.000",
        "deposit_amount": "3.500.000",
    })
    assert room.rent_amount == 3_500_000
    assert room.status == "available"
    assert str(room.area_sqm) == "25.5"


@pytest.mark.asyncio
@pytest.mark.parametrize("data,field", [
    ({"room_number": "", "rent_amount": 1}, "room_number"),
    ({"room_number": "1", "area_sqm": "0,5"}, "area_sqm"),
    ({"room_number": "1", "area_sqm": "1001"}, "area_sqm"),
    ({"room_number": "1", "rent_amount": "100.000.001"}, "rent_amount"),
    ({"room_number": "1", "deposit_amount": "-1"}, "deposit_amount"),
    ({"room_number": "1", "status": "closed"}, "status"),
])
async def test_create_room_validation(async_session, rental_property, data, field):
    with pytest.raises(ValidationFailed) as exc:
        await room_service.create_room(async_session, {"property_id": rental_property.id, **data})
    assert field in exc.value.errors


@pytest.mark.asyncio
async def test_new_room_cannot_start_occupied(async_session, rental_property):
    with pytest.raises(ValidationFailed):
        await room_service.create_room(async_session, {
            "property_id": rental_property.id, "room_number": "9", "status": "occupied",
        })


@pytest.mark.asyncio
async def test_room_status_locked_while_rented(async_session, occupied_room):
    with pytest.raises(PreconditionError):
        await room_service.update_room(async_session, occupied_room.id, {"status": "maintenance"})

    updated = await room_service.update_room(async_session, occupied_room.id, {"rent_amount": "3.200.000"})
    assert updated.rent_amount == 3_200_000


@pytest.mark.asyncio
async def test_room_cannot_be_marked_occupied_by_hand(async_session, room):
    with pytest.raises(PreconditionError):
        await room_service.update_room(async_session, room.id, {"status": "occupied"})


@pytest.mark.asyncio
async def test_delete_occupied_room_refused(async_session, occupied_room):
    with pytest.raises(PreconditionError) as exc:
        await room_service.delete_room(async_session, occupied_room.id)
    assert exc.value.message == "Không thể xóa phòng đang có người thuê"


@pytest.mark.asyncio
async def test_delete_free_room(async_session, room):
    await room_service.delete_room(async_session, room.id)
    with pytest.raises(NotFoundError):
        await room_service.get_room(async_session, room.id)


@pytest.mark.asyncio
async def test_list_rooms_filters(async_session, rental_property, room, make_room):
    await make_room("102", rent=5_000_000)
    await make_room("103", rent=2_000_000, status="maintenance")

    assert len(await room_service.list_rooms(async_session, property_id=rental_property.id)) == 3
    assert [r.room_number for r in await room_service.list_rooms(async_session, status="maintenance")] == ["103"]

    mid = await room_service.list_rooms(async_session, rent_min=2_500_000, rent_max=4_000_000)
    assert [r.room_number for r in mid] == ["101"]


@pytest.mark.asyncio
async def test_rooms_grouped_for_picker(async_session, occupied_room, tenant, make_room, make_tenant):
    free = await make_room("102")

    groups = await room_service.get_rooms_grouped_by_property(async_session)
    assert [r.id for g in groups for r in g.rooms] == [free.id]

    # A tenant's own room stays selectable when editing that tenant
    groups = await room_service.get_rooms_grouped_by_property(async_session, tenant_id=tenant.id)
    assert {r.id for g in groups for r in g.rooms} == {occupied_room.id, free.id}


@pytest.mark.asyncio
async def test_occupied_rooms_with_tenant(async_session, occupied_room, tenant, make_room):
    await make_room("102")
    rows = await room_service.get_occupied_rooms_with_tenant(async_session)

    assert len(rows) == 1
    assert rows[0].room.id == occupied_room.id
    assert rows[0].tenant.id == tenant.id
    assert rows[0].contract.monthly_rent == 3_000_000
    assert rows[0].property.name == "Nhà trọ Hòa Bình"


# === Dashboard ===

@pytest.mark.asyncio
async def test_dashboard_empty(async_session):
    stats = await get_dashboard_stats(async_session)
    assert stats.total_rooms == 0
    assert stats.occupancy_rate == 0.0
    assert stats.monthly_revenue == 0


@pytest.mark.asyncio
async def test_dashboard(async_session, occupied_room, make_room, make_tenant):
    second = await make_room("102")
    other = await make_tenant()
    await contract_service.assign_tenant_to_room(async_session, second.id, other.id, monthly_rent=2_500_000)
    await make_room("103")
    await make_room("104", status="maintenance")

    stats = await get_dashboard_stats(async_session)
    assert stats.total_properties == 1
    assert stats.total_rooms == 4
    assert stats.occupied_rooms == 2
    assert stats.available_rooms == 1
    assert stats.total_tenants == 2
    assert stats.active_contracts == 2
    assert stats.monthly_revenue == 5_500_000
    assert stats.occupancy_rate == 50.0


@pytest.mark.asyncio
async def test_rooms_grouped_when_property_names_match(async_session, rental_property, room, make_room):
    twin = await property_service.create_property(async_session, {
        "name": "Nhà trọ Hòa Bình", "address": "99 Lê Lợi", "city": "TP.HCM",
    })
    await make_room("101", prop=twin)
    await make_room("102")

    groups = await room_service.get_rooms_grouped_by_property(async_session)
    assert [(g.property.id, [r.room_number for r in g.rooms]) for g in groups] == [
        (rental_property.id, ["101", "102"]),
        (twin.id, ["101"]),
    ]
