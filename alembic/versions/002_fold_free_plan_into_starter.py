# alembic/versions/002_fold_free_plan_into_starter.py
"""Fold the retired FREE plan into STARTER

Revision ID: 002
Revises: 001
Create Date: 2026-02-01 00:00:00.000000

FREE is no longer a plan. Rows written before it was retired are moved to
STARTER, the default tier, so every stored plan parses as a PlanId.
"""
from alembic import op

revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None

PLAN_COLUMNS = (
    ('businesses', 'subscription_plan'),
    ('users', 'plan'),
    ('subscriptions', 'plan'),
)


def upgrade() -> None:
    for table, column in PLAN_COLUMNS:
        op.execute(f"UPDATE {table} SET {column} = 'STARTER' WHERE {column} = 'FREE'")


def downgrade() -> None:
    # Which STARTER rows were FREE is not recorded; nothing to restore
    pass
