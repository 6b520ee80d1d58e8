"""Initial migration - create products table

Revision ID: 001_initial
Revises:
Create Date: 2024-01-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Status is stored as a constrained string, not a native ENUM type
    op.create_table(
        'products',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('chain_id', sa.String(80), nullable=True, unique=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('manufacturer', sa.String(200), nullable=True),
        sa.Column(
            'status',
            sa.Enum('Created', 'InTransit', 'Delivered', name='productstatus',
                    native_enum=False, length=20, create_constraint=True),
            nullable=False,
            server_default='Created',
        ),
        sa.Column('last_tx_hash', sa.String(66), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_products_created_at', 'products', ['created_at'])
    op.create_index('ix_products_status', 'products', ['status'])


def downgrade() -> None:
    op.drop_index('ix_products_status', table_name='products')
    op.drop_index('ix_products_created_at', table_name='products')
    op.drop_table('products')
