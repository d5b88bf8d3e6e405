"""gateway payout id, referral commissions and course referral codes

Revision ID: b7c9d1e2f3a4
Revises: a1f0c2d3e4b5
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = 'b7c9d1e2f3a4'
down_revision: Union[str, None] = 'a1f0c2d3e4b5'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column('payout_requests', sa.Column('razorpay_payout_id', sa.String(64), nullable=True))
    op.create_unique_constraint('uq_payout_requests_razorpay_payout_id', 'payout_requests', ['razorpay_payout_id'])

    op.create_table(
        'referrals',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('referred_user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('course_id', sa.String(36), sa.ForeignKey('courses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('purchase_id', sa.String(36), sa.ForeignKey('purchases.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('referral_code', sa.String(32), nullable=False),
        sa.Column('commission_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('status', sa.Enum('pending', 'completed', name='referralstatus'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_referrals_user_id', 'referrals', ['user_id'])

    op.create_table(
        'course_referral_codes',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('course_id', sa.String(36), sa.ForeignKey('courses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('referral_code', sa.String(32), nullable=False, unique=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'course_id', name='uq_course_referral_codes_user_course'),
    )
    op.create_index('ix_course_referral_codes_user_id', 'course_referral_codes', ['user_id'])


def downgrade() -> None:
    op.drop_table('course_referral_codes')
    op.drop_table('referrals')
    sa.Enum(name='referralstatus').drop(op.get_bind(), checkfirst=True)
    op.drop_constraint('uq_payout_requests_razorpay_payout_id', 'payout_requests', type_='unique')
    op.drop_column('payout_requests', 'razorpay_payout_id')
