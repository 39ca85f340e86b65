"""initial

Revision ID: 001_initial
Revises:
Create Date: 2025-09-01 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # Properties
    op.create_table('properties',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('address', sa.String(), nullable=False),
        sa.Column('city', sa.String(), nullable=False),
        sa.Column('district', sa.String(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_properties_city'), 'properties', ['city'], unique=False)

    # Rooms
    op.create_table('rooms',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('property_id', sa.Integer(), nullable=False),
        sa.Column('room_number', sa.String(), nullable=False),
        sa.Column('floor', sa.String(), nullable=True),
        sa.Column('area_sqm', sa.Numeric(precision=8, scale=2), nullable=True),
        sa.Column('rent_amount', sa.BigInteger(), nullable=False),
        sa.Column('deposit_amount', sa.BigInteger(), nullable=True),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('utilities', sa.JSON(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('images', sa.JSON(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_rooms_property_id'), 'rooms', ['property_id'], unique=False)

    # Tenants
    op.create_table('tenants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('full_name', sa.String(), nullable=False),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('id_number', sa.String(), nullable=True),
        sa.Column('birth_date', sa.Date(), nullable=True),
        sa.Column('address', sa.String(), nullable=True),
        sa.Column('occupation', sa.String(), nullable=True),
        sa.Column('emergency_contact', sa.String(), nullable=True),
        sa.Column('emergency_phone', sa.String(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )

    # Rental contracts
    op.create_table('rental_contracts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('room_id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('monthly_rent', sa.BigInteger(), nullable=False),
        sa.Column('deposit_amount', sa.BigInteger(), nullable=True),
        sa.Column('renewal_count', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['room_id'], ['rooms.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_rental_contracts_room_id'), 'rental_contracts', ['room_id'], unique=False)
    op.create_index(op.f('ix_rental_contracts_tenant_id'), 'rental_contracts', ['tenant_id'], unique=False)
    # One active contract per room and per tenant
    op.create_index('uq_active_contract_room', 'rental_contracts', ['room_id'], unique=True,
                    postgresql_where=sa.text("status = 'active'"),
                    sqlite_where=sa.text("status = 'active'"))
    op.create_index('uq_active_contract_tenant', 'rental_contracts', ['tenant_id'], unique=True,
                    postgresql_where=sa.text("status = 'active'"),
                    sqlite_where=sa.text("status = 'active'"))

    # Rental invoices (room/tenant/contract ids are not foreign keys: invoices outlive contracts)
    op.create_table('rental_invoices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('room_id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('contract_id', sa.Integer(), nullable=True),
        sa.Column('invoice_number', sa.String(), nullable=False),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('period_end', sa.Date(), nullable=False),
        sa.Column('issue_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('template_type', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('rent_amount', sa.BigInteger(), nullable=False),
        sa.Column('electricity_calculation_type', sa.String(), server_default='meter', nullable=False),
        sa.Column('electricity_previous_reading', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('electricity_current_reading', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('electricity_unit_price', sa.BigInteger(), nullable=False),
        sa.Column('electricity_amount', sa.BigInteger(), nullable=False),
        sa.Column('electricity_note', sa.String(), nullable=True),
        sa.Column('water_calculation_type', sa.String(), server_default='meter', nullable=False),
        sa.Column('water_previous_reading', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('water_current_reading', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('water_unit_price', sa.BigInteger(), nullable=False),
        sa.Column('water_amount', sa.BigInteger(), nullable=False),
        sa.Column('water_note', sa.String(), nullable=True),
        sa.Column('internet_amount', sa.BigInteger(), nullable=False),
        sa.Column('internet_note', sa.String(), nullable=True),
        sa.Column('trash_amount', sa.BigInteger(), nullable=False),
        sa.Column('trash_note', sa.String(), nullable=True),
        sa.Column('other_fees', sa.JSON(), nullable=False),
        sa.Column('color_settings', sa.JSON(), nullable=True),
        sa.Column('total_amount', sa.BigInteger(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('pdf_url', sa.String(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_rental_invoices_invoice_number'), 'rental_invoices', ['invoice_number'], unique=True)
    op.create_index(op.f('ix_rental_invoices_room_id'), 'rental_invoices', ['room_id'], unique=False)
    op.create_index(op.f('ix_rental_invoices_tenant_id'), 'rental_invoices', ['tenant_id'], unique=False)

    # Color themes
    op.create_table('color_themes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('header_bg', sa.String(), nullable=False),
        sa.Column('header_text', sa.String(), nullable=False),
        sa.Column('total_bg', sa.String(), nullable=False),
        sa.Column('total_text', sa.String(), nullable=False),
        sa.Column('is_default', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )

    # Utilities and their bills
    op.create_table('utilities',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('property_id', sa.Integer(), nullable=False),
        sa.Column('room_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('provider', sa.String(), nullable=False),
        sa.Column('customer_code', sa.String(), nullable=True),
        sa.Column('monthly_due_date', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['room_id'], ['rooms.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_utilities_property_id'), 'utilities', ['property_id'], unique=False)

    op.create_table('utility_bills',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('utility_id', sa.Integer(), nullable=False),
        sa.Column('property_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('paid_date', sa.Date(), nullable=True),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('period_start', sa.Date(), nullable=True),
        sa.Column('period_end', sa.Date(), nullable=True),
        sa.Column('previous_reading', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('current_reading', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('usage_amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('rate_per_unit', sa.BigInteger(), nullable=True),
        sa.Column('attachment_url', sa.String(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['utility_id'], ['utilities.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_utility_bills_utility_id'), 'utility_bills', ['utility_id'], unique=False)
    op.create_index(op.f('ix_utility_bills_property_id'), 'utility_bills', ['property_id'], unique=False)

    # Telegram accounts linked to identity-provider sessions
    op.create_table('signed_in_users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tg_id', sa.BigInteger(), nullable=False),
        sa.Column('auth_user_id', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('full_name', sa.String(), nullable=True),
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_signed_in_users_tg_id'), 'signed_in_users', ['tg_id'], unique=True)


def downgrade() -> None:
    op.drop_index(op.f('ix_signed_in_users_tg_id'), table_name='signed_in_users')
    op.drop_table('signed_in_users')
    op.drop_index(op.f('ix_utility_bills_property_id'), table_name='utility_bills')
    op.drop_index(op.f('ix_utility_bills_utility_id'), table_name='utility_bills')
    op.drop_table('utility_bills')
    op.drop_index(op.f('ix_utilities_property_id'), table_name='utilities')
    op.drop_table('utilities')
    op.drop_table('color_themes')
    op.drop_index(op.f('ix_rental_invoices_tenant_id'), table_name='rental_invoices')
    op.drop_index(op.f('ix_rental_invoices_room_id'), table_name='rental_invoices')
    op.drop_index(op.f('ix_rental_invoices_invoice_number'), table_name='rental_invoices')
    op.drop_table('rental_invoices')
    op.drop_index('uq_active_contract_tenant', table_name='rental_contracts')
    op.drop_index('uq_active_contract_room', table_name='rental_contracts')
    op.drop_index(op.f('ix_rental_contracts_tenant_id'), table_name='rental_contracts')
    op.drop_index(op.f('ix_rental_contracts_room_id'), table_name='rental_contracts')
    op.drop_table('rental_contracts')
    op.drop_table('tenants')
    op.drop_index(op.f('ix_rooms_property_id'), table_name='rooms')
    op.drop_table('rooms')
    op.drop_index(op.f('ix_properties_city'), table_name='properties')
    op.drop_table('properties')
