"""initial warehouse schema

Revision ID: b0d3a0000001
Revises:
Create Date: 2026-10-17 00:00:00.000000

Creates the Bodega schema from scratch:
- users, session_tokens: accounts, capability grants, server-side sessions
- warehouses: cost-center hierarchy (one main + sub-warehouses)
- products, product_prices, product_serials: catalog, monthly prices, units
- inventory_movements: append-only stock ledger
- inventory: materialized balance per (product, warehouse)
- transfer_orders, document_sequences: OT-NNN orders and their daily counter
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b0d3a0000001'
down_revision = None
branch_labels = None
depends_on = None


NOW = sa.text('CURRENT_TIMESTAMP')


def upgrade():
    # ============================================================================
    # users: accounts with role defaults plus explicit grants
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=50), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('cost_center', sa.String(length=100), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('permissions', sa.JSON(), nullable=False),
        sa.Column('managed_warehouses', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)

    # ============================================================================
    # warehouses: main warehouse per cost center, subs point at it
    # ============================================================================
    op.create_table(
        'warehouses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('location', sa.Text(), nullable=True),
        sa.Column('cost_center', sa.String(length=100), nullable=False),
        sa.Column('warehouse_type', sa.String(length=16), nullable=False),
        sa.Column('sub_warehouse_type', sa.String(length=32), nullable=True),
        sa.Column('parent_warehouse_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.ForeignKeyConstraint(['parent_warehouse_id'], ['warehouses.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_warehouses_cost_center', 'warehouses', ['cost_center'])
    op.create_index('ix_warehouses_parent_warehouse_id', 'warehouses', ['parent_warehouse_id'])
    op.create_index('ix_warehouses_cost_center_type', 'warehouses', ['cost_center', 'warehouse_type'])

    # ============================================================================
    # products: catalog; barcode uniqueness among active rows is enforced in code
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('sku', sa.String(length=50), nullable=False),
        sa.Column('barcode', sa.String(length=128), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('product_type', sa.String(length=20), nullable=False),
        sa.Column('requires_serial', sa.Boolean(), nullable=False),
        sa.Column('min_stock', sa.Integer(), nullable=False),
        sa.Column('max_stock', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_barcode_active', 'products', ['barcode', 'is_active'])
    op.create_index('ix_products_name', 'products', ['name'])

    op.create_table(
        'product_prices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.CheckConstraint('month >= 1 AND month <= 12', name='ck_product_prices_month'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'year', 'month', name='uq_product_prices_period'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_product_prices_product_id', 'product_prices', ['product_id'])

    # ============================================================================
    # transfer_orders + document_sequences
    # ============================================================================
    op.create_table(
        'transfer_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(length=32), nullable=False),
        sa.Column('order_date', sa.Date(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('source_warehouse_id', sa.Integer(), nullable=False),
        sa.Column('destination_warehouse_id', sa.Integer(), nullable=False),
        sa.Column('cost_center', sa.String(length=100), nullable=False),
        sa.Column('requester_id', sa.Integer(), nullable=False),
        sa.Column('project_manager_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.Column('decided_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('quantity > 0', name='ck_transfer_orders_quantity_positive'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['source_warehouse_id'], ['warehouses.id']),
        sa.ForeignKeyConstraint(['destination_warehouse_id'], ['warehouses.id']),
        sa.ForeignKeyConstraint(['requester_id'], ['users.id']),
        sa.ForeignKeyConstraint(['project_manager_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_date', 'order_number', name='uq_transfer_orders_date_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transfer_orders_product_id', 'transfer_orders', ['product_id'])
    op.create_index('ix_transfer_orders_cost_center', 'transfer_orders', ['cost_center'])
    op.create_index('ix_transfer_orders_status', 'transfer_orders', ['status'])

    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('sequence_date', sa.Date(), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_type', 'sequence_date', name='uq_document_sequences_type_date'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # inventory_movements: append-only ledger (source of truth)
    # ============================================================================
    op.create_table(
        'inventory_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('warehouse_id', sa.Integer(), nullable=False),
        sa.Column('movement_type', sa.String(length=10), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('applied_price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('serial_numbers', sa.JSON(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('transfer_order_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.CheckConstraint('quantity > 0', name='ck_movements_quantity_positive'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['warehouse_id'], ['warehouses.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['transfer_order_id'], ['transfer_orders.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_movements_product_id', 'inventory_movements', ['product_id'])
    op.create_index('ix_inventory_movements_warehouse_id', 'inventory_movements', ['warehouse_id'])
    op.create_index('ix_inventory_movements_user_id', 'inventory_movements', ['user_id'])
    op.create_index('ix_inventory_movements_transfer_order_id', 'inventory_movements', ['transfer_order_id'])
    op.create_index('ix_movements_product_warehouse', 'inventory_movements', ['product_id', 'warehouse_id'])
    op.create_index('ix_movements_created', 'inventory_movements', ['created_at'])

    op.create_table(
        'product_serials',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('serial_number', sa.String(length=128), nullable=False),
        sa.Column('movement_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['movement_id'], ['inventory_movements.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'serial_number', name='uq_product_serials_product_serial'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_product_serials_product_id', 'product_serials', ['product_id'])
    op.create_index('ix_product_serials_movement_id', 'product_serials', ['movement_id'])
    op.create_index('ix_product_serials_status', 'product_serials', ['status'])

    # ============================================================================
    # inventory: materialized max(0, ledger balance) per (product, warehouse)
    # ============================================================================
    op.create_table(
        'inventory',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('warehouse_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['warehouse_id'], ['warehouses.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'warehouse_id', name='uq_inventory_product_warehouse'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_product_id', 'inventory', ['product_id'])
    op.create_index('ix_inventory_warehouse', 'inventory', ['warehouse_id'])


def downgrade():
    op.drop_table('inventory')
    op.drop_table('product_serials')
    op.drop_table('inventory_movements')
    op.drop_table('document_sequences')
    op.drop_table('transfer_orders')
    op.drop_table('product_prices')
    op.drop_table('products')
    op.drop_table('warehouses')
    op.drop_table('session_tokens')
    op.drop_table('users')
