"""Client store table

Revision ID: 001
Revises: 
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'client_store',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.String(), nullable=False),
        sa.Column('key', sa.String(), nullable=False),
        sa.Column('value', sa.Text(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('session_id', 'key', name='uq_client_store_session_key'),
    )
    op.create_index(op.f('ix_client_store_id'), 'client_store', ['id'], unique=False)
    op.create_index(op.f('ix_client_store_session_id'), 'client_store', ['session_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_client_store_session_id'), table_name='client_store')
    op.drop_index(op.f('ix_client_store_id'), table_name='client_store')
    op.drop_table('client_store')
