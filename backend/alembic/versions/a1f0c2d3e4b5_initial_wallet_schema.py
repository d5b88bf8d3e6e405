"""initial wallet, payout and notification schema

Revision ID: a1f0c2d3e4b5
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = 'a1f0c2d3e4b5'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(precision=12, scale=2)


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('role', sa.Enum('user', 'moderator', 'admin', name='userrole'), nullable=False),
        sa.Column('is_suspended', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('referral_code', sa.String(32), nullable=True, unique=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'courses',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', MONEY, nullable=False),
        sa.Column('referral_reward', MONEY, server_default='0'),
        sa.Column('pdf_url', sa.String(500), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        'purchases',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('course_id', sa.String(36), sa.ForeignKey('courses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('payment_id', sa.String(100), nullable=True),
        sa.Column('payment_status', sa.Enum('pending', 'completed', 'failed', name='paymentstatus'), nullable=False),
        sa.Column('used_referral_code', sa.String(32), nullable=True),
        sa.Column('purchased_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_purchases_user_id', 'purchases', ['user_id'])
    op.create_index('ix_purchases_course_id', 'purchases', ['course_id'])

    op.create_table(
        'wallet',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('balance', MONEY, nullable=False, server_default='0'),
        sa.Column('total_earned', MONEY, nullable=False, server_default='0'),
        sa.Column('total_withdrawn', MONEY, nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint('balance >= 0', name='ck_wallet_balance_non_negative'),
    )

    op.create_table(
        'wallet_transactions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('type', sa.Enum('credit', 'debit', name='transactiontype'), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('status', sa.Enum('pending', 'completed', 'failed', name='transactionstatus'), nullable=False),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('reference_id', sa.String(36), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint('amount > 0', name='ck_wallet_transactions_amount_positive'),
    )
    op.create_index('ix_wallet_transactions_user_id', 'wallet_transactions', ['user_id'])
    op.create_index('ix_wallet_transactions_reference_id', 'wallet_transactions', ['reference_id'])

    op.create_table(
        'payout_methods',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('method_type', sa.Enum('UPI', 'BANK', name='payoutmethodtype'), nullable=False),
        sa.Column('upi_id', sa.String(100), nullable=True),
        sa.Column('account_number', sa.String(34), nullable=True),
        sa.Column('ifsc_code', sa.String(11), nullable=True),
        sa.Column('account_holder_name', sa.String(255), nullable=True),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_payout_methods_user_id', 'payout_methods', ['user_id'])
    # at most one default method per user
    op.create_index(
        'uq_payout_methods_default', 'payout_methods', ['user_id'],
        unique=True, postgresql_where=sa.text('is_default'),
    )

    op.create_table(
        'payout_requests',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('payout_method_id', sa.String(36), sa.ForeignKey('payout_methods.id'), nullable=True),
        sa.Column('status', sa.Enum('pending', 'completed', 'failed', name='payoutstatus'), nullable=False),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('processed_by', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_payout_requests_user_id', 'payout_requests', ['user_id'])
    # one pending payout per user, enforced under concurrent requests
    op.create_index(
        'uq_payout_requests_pending', 'payout_requests', ['user_id'],
        unique=True, postgresql_where=sa.text("status = 'pending'"),
    )

    op.create_table(
        'notifications',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('type', sa.Enum('info', 'success', 'warning', 'error', 'payment', 'referral', name='notificationtype'), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('action_url', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])


def downgrade() -> None:
    op.drop_table('notifications')
    op.drop_table('payout_requests')
    op.drop_table('payout_methods')
    op.drop_table('wallet_transactions')
    op.drop_table('wallet')
    op.drop_table('purchases')
    op.drop_table('courses')
    op.drop_table('users')
    for enum_name in ('notificationtype', 'payoutstatus', 'payoutmethodtype', 'transactionstatus',
                      'transactiontype', 'paymentstatus', 'userrole'):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
