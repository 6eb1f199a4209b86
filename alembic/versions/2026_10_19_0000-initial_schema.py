"""initial schema

Revision ID: 2026_10_19_0000
Revises:
Create Date: 2026-10-19 08:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = '2026_10_19_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# tier -> (1_month, 2_weeks, 1_week) prices in KSH
PACKAGE_PRICES = {
    'vip_elite': (10000, 6000, 3500),
    'prime_plus': (5000, 3000, 1800),
    'basic_pro': (2000, 1200, 700),
    'starter': (500, 300, 200),
}
DURATIONS = ('1_month', '2_weeks', '1_week')


def upgrade() -> None:
    """Create initial database schema."""

    # ========================================================================
    # Create celebrity_profiles table
    # ========================================================================
    op.create_table(
        'celebrity_profiles',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('stage_name', sa.String(255), nullable=False),
        sa.Column('phone_number', sa.String(32), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )

    # ========================================================================
    # Create subscription_packages table
    # ========================================================================
    packages = op.create_table(
        'subscription_packages',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('tier_name', sa.String(50), nullable=False),
        sa.Column('duration_type', sa.String(20), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint('price >= 0', name='ck_package_price_non_negative'),
        sa.UniqueConstraint('tier_name', 'duration_type', name='uq_package_tier_duration'),
    )

    # ========================================================================
    # Create payment_verifications table
    # ========================================================================
    op.create_table(
        'payment_verifications',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('celebrity_id', UUID(as_uuid=True), nullable=False),
        sa.Column('phone_number', sa.String(32), nullable=False),
        sa.Column('mpesa_code', sa.String(128), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('expected_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('payment_status', sa.String(20), nullable=False),
        sa.Column('credit_balance', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('subscription_tier', sa.String(50), nullable=True),
        sa.Column('duration_type', sa.String(20), nullable=True),
        sa.Column('payment_type', sa.String(30), nullable=False, server_default='standard'),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('verified_by', sa.String(255), nullable=True),
        sa.Column('payment_date', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.ForeignKeyConstraint(['celebrity_id'], ['celebrity_profiles.id'], ondelete='CASCADE'),
        sa.CheckConstraint('amount >= 0', name='ck_payment_amount_non_negative'),
        sa.CheckConstraint('expected_amount >= 0', name='ck_payment_expected_non_negative'),
        sa.CheckConstraint('credit_balance >= 0', name='ck_payment_credit_non_negative'),
        sa.CheckConstraint(
            "payment_status IN ('underpaid', 'paid', 'overpaid')",
            name='ck_payment_status_valid',
        ),
    )
    op.create_index('idx_payments_celebrity_id', 'payment_verifications', ['celebrity_id'])
    op.create_index('idx_payments_created_at', 'payment_verifications', ['created_at'])
    op.create_index('idx_payments_is_verified', 'payment_verifications', ['is_verified'])

    # ========================================================================
    # Create celebrity_subscriptions table
    # ========================================================================
    op.create_table(
        'celebrity_subscriptions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('celebrity_id', UUID(as_uuid=True), nullable=False),
        sa.Column('subscription_tier', sa.String(50), nullable=True),
        sa.Column('duration_type', sa.String(20), nullable=True),
        sa.Column('subscription_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('subscription_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('amount_paid', sa.Numeric(12, 2), nullable=True),
        sa.Column('last_payment_id', UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.ForeignKeyConstraint(['celebrity_id'], ['celebrity_profiles.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['last_payment_id'], ['payment_verifications.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('celebrity_id', name='uq_subscription_celebrity'),
    )
    op.create_index('idx_subscriptions_end', 'celebrity_subscriptions', ['subscription_end'])
    op.create_index('idx_subscriptions_active', 'celebrity_subscriptions', ['is_active'])

    # ========================================================================
    # Create admin_users table
    # ========================================================================
    op.create_table(
        'admin_users',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.Text(), nullable=False),
        sa.Column('is_super_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('email', name='uq_admin_users_email'),
    )

    # ========================================================================
    # Create subscription_reminder_logs table
    # ========================================================================
    op.create_table(
        'subscription_reminder_logs',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('celebrity_id', UUID(as_uuid=True), nullable=False),
        sa.Column('subscription_id', UUID(as_uuid=True), nullable=False),
        sa.Column('reminder_type', sa.String(20), nullable=False),
        sa.Column('phone_number', sa.String(32), nullable=False),
        sa.Column('message_sent', sa.Text(), nullable=False),
        sa.Column('twilio_message_sid', sa.String(64), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.ForeignKeyConstraint(['celebrity_id'], ['celebrity_profiles.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['subscription_id'], ['celebrity_subscriptions.id'], ondelete='CASCADE'),
        sa.CheckConstraint("status IN ('sent', 'failed')", name='ck_reminder_status_valid'),
    )
    op.create_index(
        'idx_reminder_logs_subscription',
        'subscription_reminder_logs',
        ['subscription_id', 'reminder_type'],
    )

    # ========================================================================
    # Seed package prices
    # ========================================================================
    rows = []
    order = 0
    for tier, prices in PACKAGE_PRICES.items():
        for duration, price in zip(DURATIONS, prices):
            order += 1
            rows.append(
                {
                    'tier_name': tier,
                    'duration_type': duration,
                    'price': price,
                    'is_active': True,
                    'display_order': order,
                }
            )
    op.bulk_insert(packages, rows)


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('subscription_reminder_logs')
    op.drop_table('admin_users')
    op.drop_table('celebrity_subscriptions')
    op.drop_table('payment_verifications')
    op.drop_table('subscription_packages')
    op.drop_table('celebrity_profiles')
