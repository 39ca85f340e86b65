import pytest
from datetime import date, timedelta
from decimal import Decimal
from sqlalchemy import select, func

from rentalpro.database.models import RentalInvoice
from rentalpro.errors import NoActiveTenantError, PreconditionError, ValidationFailed, NotFoundError
from rentalpro.services import billing_service, invoice_service, theme_service

TODAY = date(2025, 9, 20)


async def invoice_count(session):
    return (await session.execute(select(func.count(RentalInvoice.id)))).scalar()


async def save_scenario_a(session, room_id, issue_date=TODAY):
    draft = await invoice_service.open_collection_draft(session, room_id, today=issue_date)
    draft = billing_service.set_metered_field(
        draft, "electricity", previous_reading=100, current_reading=130, unit_price=3500
    )
    draft = billing_service.set_metered_field(
        draft, "water", previous_reading=10, current_reading=15, unit_price=25000
    )
    draft = billing_service.set_flat_fields(draft, internet_amount=50_000, trash_amount=20_000)
    draft = billing_service.add_fee(draft, "Phí gửi xe", 100_000)
    return await invoice_service.save_draft(session, room_id, draft, issue_date=issue_date)


@pytest.mark.asyncio
async def test_save_draft(async_session, occupied_room, tenant):
    invoice = await save_scenario_a(async_session, occupied_room.id)

    assert invoice.invoice_number == "INV-202509-0001"
    assert invoice.tenant_id == tenant.id
    assert invoice.status == "draft"
    assert invoice.template_type == "professional"
    assert invoice.period_start == date(2025, 7, 25)
    assert invoice.period_end == date(2025, 8, 24)
    assert invoice.issue_date == TODAY
    assert invoice.due_date == TODAY + timedelta(days=7)
    assert invoice.electricity_amount == 105_000
    assert invoice.water_amount == 125_000
    assert invoice.total_amount == 3_400_000
    assert invoice.other_fees == [{"name": "Phí gửi xe", "amount": 100_000, "note": None}]


@pytest.mark.asyncio
async def test_save_without_tenant_writes_nothing(async_session, room):
    with pytest.raises(NoActiveTenantError):
        await invoice_service.open_collection_draft(async_session, room.id, today=TODAY)

    draft = billing_service.open_draft(TODAY, rent_amount=3_000_000)
    with pytest.raises(NoActiveTenantError):
        await invoice_service.save_draft(async_session, room.id, draft)
    assert await invoice_count(async_session) == 0


@pytest.mark.asyncio
async def test_invoice_numbers_are_sequential_per_month(async_session, occupied_room):
    first = await save_scenario_a(async_session, occupied_room.id)
    second = await save_scenario_a(async_session, occupied_room.id)
    october = await save_scenario_a(async_session, occupied_room.id, issue_date=date(2025, 10, 2))

    assert first.invoice_number == "INV-202509-0001"
    assert second.invoice_number == "INV-202509-0002"
    assert october.invoice_number == "INV-202510-0001"


@pytest.mark.asyncio
async def test_requested_number_must_be_unique(async_session, occupied_room, tenant):
    invoice = await save_scenario_a(async_session, occupied_room.id)
    payload = {
        "room_id": occupied_room.id,
        "tenant_id": tenant.id,
        "invoice_number": invoice.invoice_number,
        "period_start": date(2025, 8, 25),
        "period_end": date(2025, 9, 24),
        "rent_amount": 1,
    }
    with pytest.raises(ValidationFailed):
        await invoice_service.create_invoice(async_session, payload, issue_date=TODAY)
    assert await invoice_count(async_session) == 1


@pytest.mark.asyncio
async def test_create_invoice_recomputes_total(async_session, occupied_room, tenant):
    payload = {
        "room_id": occupied_room.id,
        "tenant_id": tenant.id,
        "period_start": date(2025, 8, 25),
        "period_end": date(2025, 9, 24),
        "rent_amount": 1_000_000,
        "internet_amount": 50_000,
        "other_fees": [{"name": "Sửa vòi nước", "amount": 70_000}],
        "total_amount": 5,
    }
    invoice = await invoice_service.create_invoice(async_session, payload, issue_date=TODAY)
    assert invoice.total_amount == 1_120_000


@pytest.mark.asyncio
async def test_next_draft_is_seeded_from_last_invoice(async_session, occupied_room):
    await save_scenario_a(async_session, occupied_room.id)

    draft = await invoice_service.open_collection_draft(async_session, occupied_room.id, today=date(2025, 10, 20))
    assert draft.electricity.previous_reading == Decimal("130")
    assert draft.electricity.unit_price == 3500
    assert draft.water.previous_reading == Decimal("15")
    assert draft.water.unit_price == 25000
    assert draft.rent_amount == 3_000_000


@pytest.mark.asyncio
async def test_mark_paid_is_idempotent(async_session, occupied_room):
    invoice = await save_scenario_a(async_session, occupied_room.id)

    first = await invoice_service.mark_paid(async_session, invoice.id)
    second = await invoice_service.mark_paid(async_session, invoice.id)

    assert first.status == second.status == "paid"
    assert second.total_amount == 3_400_000
    assert second.invoice_number == "INV-202509-0001"


@pytest.mark.asyncio
async def test_mark_paid_unknown_invoice(async_session):
    with pytest.raises(NotFoundError):
        await invoice_service.mark_paid(async_session, 404)


@pytest.mark.asyncio
async def test_overdue_is_derived(async_session, occupied_room):
    invoice = await save_scenario_a(async_session, occupied_room.id)
    late = invoice.due_date + timedelta(days=1)

    assert invoice_service.derive_display_status(invoice, invoice.due_date) == "draft"
    assert invoice_service.derive_display_status(invoice, late) == "overdue"
    assert invoice.status == "draft"

    overdue = await invoice_service.list_invoices(async_session, status="overdue", today=late)
    assert [i.id for i in overdue] == [invoice.id]

    await invoice_service.mark_paid(async_session, invoice.id)
    assert invoice_service.derive_display_status(invoice, late) == "paid"


@pytest.mark.asyncio
async def test_status_transitions(async_session, occupied_room):
    invoice = await save_scenario_a(async_session, occupied_room.id)

    sent = await invoice_service.mark_sent(async_session, invoice.id)
    assert sent.status == "sent"

    cancelled = await invoice_service.cancel_invoice(async_session, invoice.id)
    assert cancelled.status == "cancelled"
    with pytest.raises(PreconditionError):
        await invoice_service.mark_sent(async_session, invoice.id)


@pytest.mark.asyncio
async def test_paid_invoice_cannot_be_cancelled(async_session, occupied_room):
    invoice = await save_scenario_a(async_session, occupied_room.id)
    await invoice_service.mark_paid(async_session, invoice.id)
    with pytest.raises(PreconditionError):
        await invoice_service.cancel_invoice(async_session, invoice.id)


@pytest.mark.asyncio
async def test_delete_invoice(async_session, occupied_room):
    invoice = await save_scenario_a(async_session, occupied_room.id)
    await invoice_service.delete_invoice(async_session, invoice.id)
    assert await invoice_count(async_session) == 0


@pytest.mark.asyncio
async def test_color_settings_patch_leaves_amounts(async_session, occupied_room):
    invoice = await save_scenario_a(async_session, occupied_room.id)

    await invoice_service.update_color_settings(async_session, invoice.id, {"header_bg": "#FF0000"})
    updated = await invoice_service.update_color_settings(async_session, invoice.id, {"total_bg": "#00ff00"})

    assert updated.color_settings == {"header_bg": "#ff0000", "total_bg": "#00ff00"}
    assert updated.total_amount == 3_400_000
    assert updated.status == "draft"


@pytest.mark.asyncio
async def test_color_settings_reject_bad_color(async_session, occupied_room):
    invoice = await save_scenario_a(async_session, occupied_room.id)
    with pytest.raises(ValidationFailed) as exc:
        await invoice_service.update_color_settings(async_session, invoice.id, {"header_bg": "red"})
    assert "header_bg" in exc.value.errors


@pytest.mark.asyncio
async def test_apply_theme_and_resolve(async_session, occupied_room):
    invoice = await save_scenario_a(async_session, occupied_room.id)
    assert (await theme_service.resolve_color_settings(async_session, invoice)) == theme_service.FALLBACK_THEME

    theme = await theme_service.create_color_theme(async_session, {
        "name": "Xanh lá", "header_bg": "#166534", "header_text": "#ffffff",
        "total_bg": "#dcfce7", "total_text": "#14532d", "is_default": True,
    })
    resolved = await theme_service.resolve_color_settings(async_session, invoice)
    assert resolved["header_bg"] == "#166534"

    await invoice_service.update_color_settings(async_session, invoice.id, {"header_bg": "#000000"})
    resolved = await theme_service.resolve_color_settings(async_session, invoice)
    assert resolved["header_bg"] == "#000000"
    assert resolved["theme_name"] == "Xanh lá"

    applied = await theme_service.apply_color_theme(async_session, invoice.id, theme.id)
    assert applied.color_settings["header_bg"] == "#166534"


@pytest.mark.asyncio
async def test_single_default_theme(async_session):
    first = await theme_service.create_color_theme(async_session, {
        "name": "A", "header_bg": "#111111", "header_text": "#ffffff",
        "total_bg": "#eeeeee", "total_text": "#000000", "is_default": True,
    })
    second = await theme_service.create_color_theme(async_session, {
        "name": "B", "header_bg": "#222222", "header_text": "#ffffff",
        "total_bg": "#eeeeee", "total_text": "#000000",
    })
    await theme_service.set_default_theme(async_session, second.id)

    default = await theme_service.get_default_theme(async_session)
    assert default.id == second.id
    assert first.is_default is False


@pytest.mark.asyncio
async def test_update_readings_recomputes_amount_and_total(async_session, occupied_room):
    invoice = await save_scenario_a(async_session, occupied_room.id)

    updated = await invoice_service.update_invoice_amounts(
        async_session, invoice.id, {"electricity_current_reading": "140"}
    )
    assert updated.electricity_amount == 140_000
    assert updated.total_amount == 3_435_000

    updated = await invoice_service.update_invoice_amounts(
        async_session, invoice.id, {"other_fees": [], "internet_amount": "0"}
    )
    assert updated.total_amount == 3_435_000 - 100_000 - 50_000


@pytest.mark.asyncio
async def test_invalid_edit_leaves_invoice_untouched(async_session, occupied_room):
    invoice = await save_scenario_a(async_session, occupied_room.id)
    with pytest.raises(ValidationFailed):
        await invoice_service.update_invoice_amounts(
            async_session, invoice.id, {"rent_amount": "2000000", "water_amount": "-5"}
        )
    assert invoice.rent_amount == 3_000_000


@pytest.mark.asyncio
async def test_paid_invoice_amounts_are_frozen(async_session, occupied_room):
    invoice = await save_scenario_a(async_session, occupied_room.id)
    await invoice_service.mark_paid(async_session, invoice.id)
    with pytest.raises(PreconditionError):
        await invoice_service.update_invoice_amounts(async_session, invoice.id, {"rent_amount": 1})


@pytest.mark.asyncio
async def test_invoice_survives_contract_end(async_session, occupied_room):
    from rentalpro.services import contract_service

    invoice = await save_scenario_a(async_session, occupied_room.id)
    await contract_service.unassign_tenant_from_room(async_session, occupied_room.id)

    details = await invoice_service.get_invoice_details(async_session, invoice.id)
    assert details.invoice.total_amount == 3_400_000
    assert details.room.id == occupied_room.id
    assert details.tenant is not None


@pytest.mark.asyncio
async def test_list_and_delete_themes(async_session):
    plain = await theme_service.create_color_theme(async_session, {
        "name": "Xám", "header_bg": "#374151", "header_text": "#ffffff",
        "total_bg": "#f3f4f6", "total_text": "#111827",
    })
    default = await theme_service.create_color_theme(async_session, {
        "name": "Xanh dương", "header_bg": "#1e40af", "header_text": "#ffffff",
        "total_bg": "#dbeafe", "total_text": "#1e3a8a", "is_default": True,
    })

    themes = await theme_service.list_color_themes(async_session)
    assert [t.id for t in themes] == [default.id, plain.id]

    await theme_service.delete_color_theme(async_session, plain.id)
    assert [t.id for t in await theme_service.list_color_themes(async_session)] == [default.id]
    with pytest.raises(NotFoundError):
        await theme_service.delete_color_theme(async_session, plain.id)


@pytest.mark.asyncio
async def test_flat_amount_survives_reading_edit(async_session, occupied_room):
    draft = await invoice_service.open_collection_draft(async_session, occupied_room.id, today=TODAY)
    draft = billing_service.set_metered_field(draft, "electricity", calculation_type="flat", amount=200_000)
    invoice = await invoice_service.save_draft(async_session, occupied_room.id, draft, issue_date=TODAY)
    assert invoice.electricity_calculation_type == "flat"
    total = invoice.total_amount

    updated = await invoice_service.update_invoice_amounts(
        async_session, invoice.id, {"electricity_previous_reading": 5, "electricity_unit_price": "3500"}
    )
    assert updated.electricity_amount == 200_000
    assert updated.total_amount == total

    # Back to the meter: readings drive the amount again
    updated = await invoice_service.update_invoice_amounts(async_session, invoice.id, {
        "electricity_calculation_type": "meter",
        "electricity_previous_reading": "100",
        "electricity_current_reading": "120",
    })
    assert updated.electricity_amount == 70_000
    assert updated.total_amount == total - 200_000 + 70_000
