# alembic/versions/001_initial_migration.py
"""Initial migration

Revision ID: 001
Revises: 
Create Date: 2026-01-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'businesses',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('subscription_plan', sa.String(20), server_default='STARTER', nullable=False),
        sa.Column('subscription_status', sa.String(20), server_default='ACTIVE', nullable=False),
        sa.Column('trial_ends_at', sa.DateTime),
        sa.Column('grace_ends_at', sa.DateTime),
        sa.Column('is_active', sa.Boolean, server_default=sa.true(), nullable=False),
        sa.Column('deactivated_at', sa.DateTime),
        sa.Column('deactivation_reason', sa.Text),
        sa.Column('test_mode', sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column('onboarding_completed', sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column('onboarding_completed_at', sa.DateTime),
        sa.Column('last_stripe_sync', sa.DateTime),
        sa.Column('stripe_sync_status', sa.String(30)),
        sa.Column('stripe_sync_locked_until', sa.DateTime),
        *_timestamps(),
    )
    op.create_index('ix_businesses_subscription_plan', 'businesses', ['subscription_plan'])

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('stripe_id', sa.String(255), unique=True, nullable=False),
        sa.Column('status', sa.String(30), nullable=False),
        sa.Column('price_id', sa.String(255), nullable=False),
        sa.Column('plan', sa.String(20), nullable=False),
        sa.Column('current_period_start', sa.DateTime),
        sa.Column('current_period_end', sa.DateTime),
        sa.Column('cancel_at_period_end', sa.Boolean, server_default=sa.false(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), unique=True, nullable=False, index=True),
        sa.Column('name', sa.String(255)),
        sa.Column('role', sa.String(30), server_default='BUSINESS_OWNER', nullable=False),
        sa.Column('stripe_customer_id', sa.String(255), unique=True),
        sa.Column('subscription_id', sa.String(36), sa.ForeignKey('subscriptions.id')),
        sa.Column('plan', sa.String(20)),
        sa.Column('trial_ends_at', sa.DateTime),
        sa.Column('grace_ends_at', sa.DateTime),
        *_timestamps(),
    )

    op.create_table(
        'business_users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('business_id', sa.String(36), sa.ForeignKey('businesses.id'), nullable=False, index=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('role', sa.String(20), server_default='OWNER', nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'products',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('business_id', sa.String(36), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'customers',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('business_id', sa.String(36), nullable=False, index=True),
        sa.Column('name', sa.String(255)),
        sa.Column('phone', sa.String(50)),
        *_timestamps(),
    )

    op.create_table(
        'orders',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('business_id', sa.String(36), sa.ForeignKey('businesses.id'), nullable=False, index=True),
        sa.Column('customer_id', sa.String(36), sa.ForeignKey('customers.id'), index=True),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('status', sa.String(30), nullable=False),
        sa.Column('payment_status', sa.String(20), nullable=False),
        sa.Column('total', sa.Float, server_default='0', nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'order_items',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('order_id', sa.String(36), sa.ForeignKey('orders.id'), nullable=False, index=True),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('quantity', sa.Integer, server_default='1', nullable=False),
        sa.Column('price', sa.Float, server_default='0', nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'analytics',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('business_id', sa.String(36), nullable=False, index=True),
        sa.Column('date', sa.DateTime, nullable=False, index=True),
        sa.Column('visitors', sa.Integer, server_default='0', nullable=False),
        sa.Column('source', sa.String(255)),
        sa.Column('medium', sa.String(255)),
        sa.Column('campaign', sa.String(255)),
        sa.Column('placement', sa.String(255)),
        *_timestamps(),
    )

    op.create_table(
        'visitor_sessions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('business_id', sa.String(36), nullable=False, index=True),
        sa.Column('ip_address', sa.String(64), index=True),
        sa.Column('visited_at', sa.DateTime, nullable=False, index=True),
        sa.Column('source', sa.String(255)),
        sa.Column('medium', sa.String(255)),
        sa.Column('campaign', sa.String(255)),
        sa.Column('placement', sa.String(255)),
        sa.Column('country', sa.String(100)),
        sa.Column('city', sa.String(100)),
        *_timestamps(),
    )

    op.create_table(
        'business_feedbacks',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('business_id', sa.String(36), sa.ForeignKey('businesses.id'), nullable=False, index=True),
        sa.Column('type', sa.String(30), nullable=False, index=True),
        sa.Column('rating', sa.Integer, nullable=False),
        sa.Column('comment', sa.Text),
        *_timestamps(),
    )

    op.create_table(
        'support_tickets',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('business_id', sa.String(36), sa.ForeignKey('businesses.id'), nullable=False, index=True),
        sa.Column('type', sa.String(30), server_default='GENERAL', nullable=False),
        sa.Column('status', sa.String(20), server_default='OPEN', nullable=False, index=True),
        sa.Column('subject', sa.String(255)),
        *_timestamps(),
    )

    op.create_table(
        'ticket_comments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('ticket_id', sa.String(36), sa.ForeignKey('support_tickets.id'), nullable=False, index=True),
        sa.Column('author_id', sa.String(36)),
        sa.Column('body', sa.Text),
        *_timestamps(),
    )

    op.create_table(
        'system_logs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('log_type', sa.String(50), nullable=False, index=True),
        sa.Column('severity', sa.String(20), server_default='info', nullable=False),
        sa.Column('endpoint', sa.String(255)),
        sa.Column('method', sa.String(10)),
        sa.Column('url', sa.Text),
        sa.Column('business_id', sa.String(36), index=True),
        sa.Column('metadata', sa.JSON),
        *_timestamps(),
    )


def downgrade() -> None:
    for table in (
        'system_logs', 'ticket_comments', 'support_tickets', 'business_feedbacks',
        'visitor_sessions', 'analytics', 'order_items', 'orders', 'customers',
        'products', 'business_users', 'users', 'subscriptions', 'businesses',
    ):
        op.drop_table(table)
