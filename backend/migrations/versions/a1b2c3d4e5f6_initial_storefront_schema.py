"""initial storefront schema

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete print-shop schema:
- users, session_tokens: accounts and hashed bearer sessions
- filament_types, filament_colors, printing_options, printing_option_values,
  pricing_tables, pricing_rows: catalog and per-gram price tables
- temp_files, user_files: pre-checkout uploads and permanent model files
- profile_pictures: owner-scoped avatar images
- addresses: saved shipping addresses with rate-API destinations
- courier_settings, shipping_rate_cache: shipping configuration and cache
- orders, order_items, order_status_history: orders with snapshots
- finalize_files_jobs: outbox for moving order uploads to permanent files
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1b2c3d4e5f6'
down_revision = None
branch_labels = None
depends_on = None


def _created_at():
    return sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                     server_default=sa.text('CURRENT_TIMESTAMP'))


def _updated_at():
    return sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                     server_default=sa.text('CURRENT_TIMESTAMP'))


def upgrade():
    """
    Create all tables from scratch.

    WHY: Orders carry their own pricing, shipping and file snapshots, so the
    catalog tables can change freely after an order exists.
    """

    # ============================================================================
    # Accounts
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('phone_number', sa.String(length=32), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='customer'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_email', 'users', ['email'])

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=120), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token_hash'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'])

    # ============================================================================
    # Catalog
    # ============================================================================
    op.create_table(
        'filament_types',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_filament_types_name', 'filament_types', ['name'])

    op.create_table(
        'filament_colors',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('filament_type_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('hex_code', sa.String(length=7), nullable=False),
        sa.ForeignKeyConstraint(['filament_type_id'], ['filament_types.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_filament_colors_filament_type_id', 'filament_colors', ['filament_type_id'])

    op.create_table(
        'printing_options',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('option_type', sa.String(length=16), nullable=False),
        sa.Column('title', sa.String(length=120), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('max_value', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('option_type'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'printing_option_values',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('option_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('label', sa.String(length=64), nullable=False),
        sa.Column('value', sa.String(length=32), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.ForeignKeyConstraint(['option_id'], ['printing_options.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_printing_option_values_option_id', 'printing_option_values', ['option_id'])

    op.create_table(
        'pricing_tables',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('filament_type_id', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        _updated_at(),
        sa.ForeignKeyConstraint(['filament_type_id'], ['filament_types.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('filament_type_id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_pricing_tables_filament_type_id', 'pricing_tables', ['filament_type_id'])

    op.create_table(
        'pricing_rows',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('table_id', sa.Integer(), nullable=False),
        sa.Column('layer_height', sa.Float(), nullable=False),
        sa.Column('price_per_gram', sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(['table_id'], ['pricing_tables.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('table_id', 'layer_height', name='uq_pricing_rows_table_layer'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_pricing_rows_table_id', 'pricing_rows', ['table_id'])

    # ============================================================================
    # Files
    # ============================================================================
    op.create_table(
        'temp_files',
        sa.Column('id', sa.String(length=40), nullable=False),
        sa.Column('file_name', sa.String(length=255), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=False),
        sa.Column('mime_type', sa.String(length=120), nullable=False),
        sa.Column('file_type', sa.String(length=16), nullable=False),
        sa.Column('data', sa.LargeBinary(), nullable=False),
        sa.Column('uploaded_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['uploaded_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_temp_files_uploaded_by_user_id', 'temp_files', ['uploaded_by_user_id'])
    op.create_index('ix_temp_files_expires_at', 'temp_files', ['expires_at'])

    op.create_table(
        'user_files',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uploaded_by_user_id', sa.Integer(), nullable=False),
        sa.Column('file_name', sa.String(length=255), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=False),
        sa.Column('mime_type', sa.String(length=120), nullable=False),
        sa.Column('file_type', sa.String(length=16), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('data', sa.LargeBinary(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(['uploaded_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_user_files_uploaded_by_user_id', 'user_files', ['uploaded_by_user_id'])

    op.create_table(
        'profile_pictures',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uploaded_by_user_id', sa.Integer(), nullable=False),
        sa.Column('file_name', sa.String(length=255), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=False),
        sa.Column('mime_type', sa.String(length=120), nullable=False),
        sa.Column('data', sa.LargeBinary(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(['uploaded_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_profile_pictures_uploaded_by_user_id', 'profile_pictures', ['uploaded_by_user_id'])

    # ============================================================================
    # Addresses and shipping
    # ============================================================================
    op.create_table(
        'addresses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('recipient_name', sa.String(length=120), nullable=False),
        sa.Column('phone_number', sa.String(length=32), nullable=False),
        sa.Column('address_line1', sa.String(length=255), nullable=False),
        sa.Column('address_line2', sa.String(length=255), nullable=True),
        sa.Column('province_code', sa.String(length=16), nullable=False),
        sa.Column('regency_code', sa.String(length=16), nullable=False),
        sa.Column('district_code', sa.String(length=16), nullable=False),
        sa.Column('village_code', sa.String(length=16), nullable=True),
        sa.Column('province_name', sa.String(length=120), nullable=True),
        sa.Column('regency_name', sa.String(length=120), nullable=True),
        sa.Column('district_name', sa.String(length=120), nullable=True),
        sa.Column('village_name', sa.String(length=120), nullable=True),
        sa.Column('postal_code', sa.String(length=5), nullable=False),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('rajaongkir_destination_id', sa.Integer(), nullable=True),
        sa.Column('rajaongkir_location_label', sa.String(length=255), nullable=True),
        sa.Column('rajaongkir_zip_code', sa.String(length=10), nullable=True),
        sa.Column('rajaongkir_last_verified', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rajaongkir_province_name', sa.String(length=120), nullable=True),
        sa.Column('rajaongkir_city_name', sa.String(length=120), nullable=True),
        sa.Column('rajaongkir_district_name', sa.String(length=120), nullable=True),
        sa.Column('rajaongkir_subdistrict_name', sa.String(length=120), nullable=True),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_addresses_user_id', 'addresses', ['user_id'])

    op.create_table(
        'courier_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('warehouse_id', sa.Integer(), nullable=False),
        sa.Column('warehouse_name', sa.String(length=120), nullable=True),
        sa.Column('warehouse_address', sa.Text(), nullable=True),
        sa.Column('enabled_couriers', sa.JSON(), nullable=False),
        sa.Column('free_shipping_threshold', sa.Float(), nullable=True),
        sa.Column('default_courier', sa.String(length=16), nullable=True),
        sa.Column('estimated_processing_days', sa.Integer(), nullable=False, server_default='1'),
        _updated_at(),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'shipping_rate_cache',
        sa.Column('cache_key', sa.String(length=120), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('cache_key')
    )
    op.create_index('ix_shipping_rate_cache_expires_at', 'shipping_rate_cache', ['expires_at'])

    # ============================================================================
    # Orders
    # ============================================================================
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(length=40), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=24), nullable=False, server_default='unpaid'),
        sa.Column('payment_method', sa.String(length=32), nullable=True),
        sa.Column('payment_gateway_method', sa.String(length=32), nullable=True),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('transaction_id', sa.String(length=64), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('midtrans_order_id', sa.String(length=64), nullable=True),
        sa.Column('snap_token', sa.String(length=255), nullable=True),
        sa.Column('snap_url', sa.String(length=512), nullable=True),
        sa.Column('payment_expiry', sa.DateTime(timezone=True), nullable=True),
        sa.Column('subtotal', sa.Float(), nullable=False, server_default='0'),
        sa.Column('shipping_cost', sa.Float(), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('total_weight', sa.Float(), nullable=False, server_default='0'),
        sa.Column('total_print_time', sa.Float(), nullable=False, server_default='0'),
        sa.Column('recipient_name', sa.String(length=120), nullable=True),
        sa.Column('phone_number', sa.String(length=32), nullable=True),
        sa.Column('address_line1', sa.String(length=255), nullable=True),
        sa.Column('address_line2', sa.String(length=255), nullable=True),
        sa.Column('province_name', sa.String(length=120), nullable=True),
        sa.Column('regency_name', sa.String(length=120), nullable=True),
        sa.Column('district_name', sa.String(length=120), nullable=True),
        sa.Column('village_name', sa.String(length=120), nullable=True),
        sa.Column('postal_code', sa.String(length=5), nullable=True),
        sa.Column('destination_id', sa.Integer(), nullable=True),
        sa.Column('courier', sa.String(length=32), nullable=True),
        sa.Column('courier_name', sa.String(length=120), nullable=True),
        sa.Column('courier_service', sa.String(length=64), nullable=True),
        sa.Column('service_description', sa.String(length=255), nullable=True),
        sa.Column('estimated_delivery', sa.String(length=64), nullable=True),
        sa.Column('tracking_number', sa.String(length=64), nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('customer_notes', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_orders_order_number', 'orders', ['order_number'])
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_user_created', 'orders', ['user_id', 'created_at'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('file_ref', sa.String(length=40), nullable=False),
        sa.Column('file_finalized', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('file_name', sa.String(length=255), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('material', sa.String(length=64), nullable=False),
        sa.Column('color', sa.String(length=64), nullable=True),
        sa.Column('layer_height', sa.String(length=16), nullable=False),
        sa.Column('infill', sa.String(length=8), nullable=False),
        sa.Column('wall_count', sa.String(length=8), nullable=False),
        sa.Column('print_time', sa.Float(), nullable=True),
        sa.Column('filament_weight', sa.Float(), nullable=False),
        sa.Column('price_per_gram', sa.Float(), nullable=False),
        sa.Column('total_price', sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    op.create_table(
        'order_status_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=24), nullable=False),
        sa.Column('changed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('changed_by_user_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['changed_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_order_status_history_order_id', 'order_status_history', ['order_id'])

    op.create_table(
        'finalize_files_jobs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=24), nullable=False, server_default='pending'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('next_attempt_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('finalized_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('missing_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        _created_at(),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_finalize_jobs_due', 'finalize_files_jobs', ['status', 'next_attempt_at'])


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('finalize_files_jobs')
    op.drop_table('order_status_history')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('shipping_rate_cache')
    op.drop_table('courier_settings')
    op.drop_table('addresses')
    op.drop_table('profile_pictures')
    op.drop_table('user_files')
    op.drop_table('temp_files')
    op.drop_table('pricing_rows')
    op.drop_table('pricing_tables')
    op.drop_table('printing_option_values')
    op.drop_table('printing_options')
    op.drop_table('filament_colors')
    op.drop_table('filament_types')
    op.drop_table('session_tokens')
    op.drop_table('users')
