"""Initial schema: products, quantity ledger, sales, costs, outbox

Revision ID: 20261018_costledger
Revises:
Create Date: 2026-10-18

This migration creates:
1. products (with version_id for conditional quantity writes) and product_cost_history
2. sale_transactions and sale_lines
3. ledger_entries (append-only quantity ledger)
4. cost_operations and cost_expenses
5. outbox_messages (post-commit side effects)

Decimal columns are stored as exact strings (String(64)).
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_costledger'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. PRODUCTS
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('metric', sa.String(length=32), nullable=False, server_default='pcs'),
        sa.Column('current_quantity', sa.String(length=64), nullable=False, server_default='0'),
        sa.Column('min_stock_level', sa.String(length=64), nullable=False, server_default='0'),
        sa.Column('cost_price', sa.String(length=64), nullable=True),
        sa.Column('selling_price', sa.String(length=64), nullable=True),
        sa.Column('stock_tracking_enabled', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('allocation_inventory_pct', sa.String(length=64), nullable=False, server_default='100'),
        sa.Column('allocation_operational_pct', sa.String(length=64), nullable=False, server_default='0'),
        sa.Column('allocation_overhead_pct', sa.String(length=64), nullable=False, server_default='0'),
        sa.Column('allocation_updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_products_type'), ['type'], unique=False)
        batch_op.create_index('ix_products_type_name', ['type', 'name'], unique=False)

    op.create_table('product_cost_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('cost_price', sa.String(length=64), nullable=False),
        sa.Column('previous_cost_price', sa.String(length=64), nullable=True),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('actor_id', sa.String(length=64), nullable=True),
        sa.Column('recorded_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'sequence', name='uq_cost_history_product_seq'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('product_cost_history', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_product_cost_history_product_id'), ['product_id'], unique=False)

    # ==========================================================================
    # 2. SALES
    # ==========================================================================
    op.create_table('sale_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('total_amount', sa.String(length=64), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('actor_id', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sale_transactions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_sale_transactions_payment_method'), ['payment_method'], unique=False)
        batch_op.create_index(batch_op.f('ix_sale_transactions_actor_id'), ['actor_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_sale_transactions_created_at'), ['created_at'], unique=False)
        batch_op.create_index('ix_sales_created_payment', ['created_at', 'payment_method'], unique=False)

    op.create_table('sale_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.String(length=64), nullable=False),
        sa.Column('unit_price', sa.String(length=64), nullable=False),
        sa.Column('total_price', sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(['sale_id'], ['sale_transactions.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sale_id', 'position', name='uq_sale_lines_sale_position'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sale_lines', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_sale_lines_sale_id'), ['sale_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_sale_lines_product_id'), ['product_id'], unique=False)

    # ==========================================================================
    # 3. QUANTITY LEDGER
    # ==========================================================================
    op.create_table('ledger_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('quantity_delta', sa.String(length=64), nullable=False),
        sa.Column('previous_quantity', sa.String(length=64), nullable=False),
        sa.Column('new_quantity', sa.String(length=64), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('actor_id', sa.String(length=64), nullable=True),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['sale_id'], ['sale_transactions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('ledger_entries', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_ledger_entries_product_id'), ['product_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_ledger_entries_sale_id'), ['sale_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_ledger_entries_occurred_at'), ['occurred_at'], unique=False)
        batch_op.create_index('ix_ledger_product_id', ['product_id', 'id'], unique=False)
        batch_op.create_index('ix_ledger_kind_occurred', ['kind', 'occurred_at'], unique=False)

    # ==========================================================================
    # 4. COSTS
    # ==========================================================================
    op.create_table('cost_operations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('amount', sa.String(length=64), nullable=False),
        sa.Column('category', sa.String(length=16), nullable=False),
        sa.Column('expense_type', sa.String(length=16), nullable=False, server_default='other'),
        sa.Column('recurrence', sa.String(length=16), nullable=False, server_default='one-time'),
        sa.Column('recurring_period', sa.String(length=16), nullable=True),
        sa.Column('related_entity_type', sa.String(length=32), nullable=True),
        sa.Column('related_entity_id', sa.Integer(), nullable=True),
        sa.Column('incurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('actor_id', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('cost_operations', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_cost_operations_incurred_at'), ['incurred_at'], unique=False)
        batch_op.create_index('ix_costops_category_incurred', ['category', 'incurred_at'], unique=False)
        batch_op.create_index('ix_costops_related', ['related_entity_type', 'related_entity_id'], unique=False)

    op.create_table('cost_expenses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('cost_price', sa.String(length=64), nullable=False),
        sa.Column('previous_cost_price', sa.String(length=64), nullable=True),
        sa.Column('quantity', sa.String(length=64), nullable=False),
        sa.Column('total_amount', sa.String(length=64), nullable=False),
        sa.Column('category', sa.String(length=16), nullable=False, server_default='inventory'),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('actor_id', sa.String(length=64), nullable=True),
        sa.Column('source_message_id', sa.Integer(), nullable=True),
        sa.Column('recorded_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('source_message_id', name='uq_cost_expenses_source_message_id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('cost_expenses', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_cost_expenses_product_id'), ['product_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_cost_expenses_recorded_at'), ['recorded_at'], unique=False)
        batch_op.create_index('ix_cost_expenses_product_recorded', ['product_id', 'recorded_at'], unique=False)
        batch_op.create_index('ix_cost_expenses_category_recorded', ['category', 'recorded_at'], unique=False)

    # ==========================================================================
    # 5. OUTBOX
    # ==========================================================================
    op.create_table('outbox_messages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('topic', sa.String(length=64), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('outbox_messages', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_outbox_messages_topic'), ['topic'], unique=False)
        batch_op.create_index('ix_outbox_status_id', ['status', 'id'], unique=False)


def downgrade():
    op.drop_table('outbox_messages')
    op.drop_table('cost_expenses')
    op.drop_table('cost_operations')
    op.drop_table('ledger_entries')
    op.drop_table('sale_lines')
    op.drop_table('sale_transactions')
    op.drop_table('product_cost_history')
    op.drop_table('products')
