"""Bind operation journal entries to the request that opened them

Revision ID: d7e19a4b2c60
Revises: c1a0d2e3f4b5
Create Date: 2026-11-02 14:03:27.540912

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'd7e19a4b2c60'
down_revision = 'c1a0d2e3f4b5'
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table('operation_records', schema=None) as batch_op:
        batch_op.add_column(sa.Column('request_hash', sa.String(length=64), nullable=True))


def downgrade():
    with op.batch_alter_table('operation_records', schema=None) as batch_op:
        batch_op.drop_column('request_hash')
