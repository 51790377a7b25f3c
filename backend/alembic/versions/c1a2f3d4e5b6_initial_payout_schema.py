"""initial payout schema

Revision ID: c1a2f3d4e5b6
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = 'c1a2f3d4e5b6'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _payout_columns():
    return [
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('requested_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('gross_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('fees', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('net_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='USD'),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('payout_provider', sa.String(50), nullable=False),
        sa.Column('reference', sa.String(64), nullable=False, unique=True),
        sa.Column('bank_name', sa.String(255), nullable=True),
        sa.Column('account_number', sa.String(64), nullable=True),
        sa.Column('account_name', sa.String(255), nullable=True),
        sa.Column('bank_code', sa.String(10), nullable=True),
        sa.Column('bank_country', sa.String(2), nullable=True),
        sa.Column('routing_number', sa.String(32), nullable=True),
        sa.Column('swift_bic', sa.String(16), nullable=True),
        sa.Column('recipient_code', sa.String(64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('approved_by', sa.Uuid(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('transaction_id', sa.String(255), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('failure_code', sa.String(32), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('role', sa.Enum('user', 'admin', name='userrole'), nullable=True),
        sa.Column('account_number', sa.String(20), nullable=True),
        sa.Column('bank_code', sa.String(10), nullable=True),
        sa.Column('bank_name', sa.String(255), nullable=True),
        sa.Column('account_name', sa.String(255), nullable=True),
        sa.Column('account_verified', sa.Boolean(), nullable=True),
        sa.Column('account_locked', sa.Boolean(), nullable=True),
        sa.Column('international_account_number', sa.String(64), nullable=True),
        sa.Column('international_routing_number', sa.String(32), nullable=True),
        sa.Column('international_swift_bic', sa.String(16), nullable=True),
        sa.Column('international_bank_country', sa.String(2), nullable=True),
        sa.Column('international_bank_name', sa.String(255), nullable=True),
        sa.Column('international_account_name', sa.String(255), nullable=True),
        sa.Column('international_account_verified', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'campaigns',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('creator_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('currency', sa.String(32), nullable=False, server_default='USD'),
        sa.Column('goal_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('current_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        'chainers',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('campaign_id', sa.Uuid(), sa.ForeignKey('campaigns.id', ondelete='CASCADE'), nullable=False),
        sa.Column('referral_code', sa.String(32), nullable=False),
        sa.Column('commission_rate', sa.Numeric(5, 2), nullable=False, server_default='5'),
        sa.Column('commission_earned', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total_raised', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total_referrals', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_chainers_referral_code', 'chainers', ['referral_code'], unique=True)

    op.create_table(
        'donations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('campaign_id', sa.Uuid(), sa.ForeignKey('campaigns.id', ondelete='CASCADE'), nullable=False),
        sa.Column('chainer_id', sa.Uuid(), sa.ForeignKey('chainers.id'), nullable=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(32), nullable=False, server_default='USD'),
        sa.Column('payment_status', sa.String(20), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_donations_campaign_id', 'donations', ['campaign_id'])

    op.create_table(
        'campaign_payouts',
        *_payout_columns(),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('campaign_id', sa.Uuid(), sa.ForeignKey('campaigns.id', ondelete='CASCADE'), nullable=False),
    )
    op.create_index('ix_campaign_payouts_status', 'campaign_payouts', ['status'])
    op.create_index('ix_campaign_payouts_user_id', 'campaign_payouts', ['user_id'])
    op.create_index('ix_campaign_payouts_campaign_id', 'campaign_payouts', ['campaign_id'])

    op.create_table(
        'commission_payouts',
        *_payout_columns(),
        sa.Column('chainer_id', sa.Uuid(), sa.ForeignKey('chainers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('campaign_id', sa.Uuid(), sa.ForeignKey('campaigns.id', ondelete='CASCADE'), nullable=False),
    )
    op.create_index('ix_commission_payouts_status', 'commission_payouts', ['status'])
    op.create_index('ix_commission_payouts_chainer_id', 'commission_payouts', ['chainer_id'])
    op.create_index('ix_commission_payouts_campaign_id', 'commission_payouts', ['campaign_id'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=True),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=True),
        sa.Column('email_to', sa.String(255), nullable=True),
        sa.Column('email_subject', sa.String(255), nullable=True),
        sa.Column('email_html', sa.Text(), nullable=True),
        sa.Column('email_status', sa.String(20), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_email_status', 'notifications', ['email_status'])


def downgrade() -> None:
    op.drop_table('notifications')
    op.drop_table('commission_payouts')
    op.drop_table('campaign_payouts')
    op.drop_table('donations')
    op.drop_table('chainers')
    op.drop_table('campaigns')
    op.drop_table('users')
    sa.Enum(name='userrole').drop(op.get_bind(), checkfirst=True)
