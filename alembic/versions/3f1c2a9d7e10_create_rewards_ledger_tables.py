"""Create rewards ledger tables

Revision ID: 3f1c2a9d7e10
Revises:
Create Date: 2026-10-19 09:12:41.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f1c2a9d7e10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Created explicitly so ledgerreason can be shared by two tables
accountrole_enum = postgresql.ENUM('customer', 'staff', 'admin', name='accountrole', create_type=False)
referralstatus_enum = postgresql.ENUM(
    'pending', 'qualified', 'rewarded', 'fraud_flagged', 'expired', name='referralstatus', create_type=False
)
rewardstatus_enum = postgresql.ENUM('pending', 'issued', 'reversed', name='rewardstatus', create_type=False)
ledgerreason_enum = postgresql.ENUM(
    'referral_reward', 'referral_bonus', 'purchase', 'admin_award', 'admin_adjustment', 'redemption',
    'reward_reversal',
    name='ledgerreason', create_type=False,
)
fraudtype_enum = postgresql.ENUM(
    'shared_fingerprint', 'referral_velocity', 'rapid_qualification', name='fraudtype', create_type=False
)
fraudseverity_enum = postgresql.ENUM('low', 'medium', 'high', 'critical', name='fraudseverity', create_type=False)
fraudflagstatus_enum = postgresql.ENUM(
    'pending_review', 'confirmed', 'false_positive', name='fraudflagstatus', create_type=False
)
scanrunstatus_enum = postgresql.ENUM(
    'running', 'completed', 'cancelled', 'failed', name='scanrunstatus', create_type=False
)

ALL_ENUMS = (
    accountrole_enum, referralstatus_enum, rewardstatus_enum, ledgerreason_enum,
    fraudtype_enum, fraudseverity_enum, fraudflagstatus_enum, scanrunstatus_enum,
)


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ALL_ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        'accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('full_name', sa.String(), nullable=True),
        sa.Column('role', accountrole_enum, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('referral_code', sa.String(length=15), nullable=True),
        sa.Column('points_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('referral_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_referral_earnings', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('device_fingerprint', sa.String(), nullable=True),
        sa.Column('signup_ip', sa.String(length=45), nullable=True),
        sa.Column('first_paid_order_id', sa.String(), nullable=True),
        sa.Column('first_paid_order_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_accounts_id'), 'accounts', ['id'], unique=False)
    op.create_index(op.f('ix_accounts_email'), 'accounts', ['email'], unique=True)
    op.create_index(op.f('ix_accounts_referral_code'), 'accounts', ['referral_code'], unique=True)
    op.create_index(op.f('ix_accounts_device_fingerprint'), 'accounts', ['device_fingerprint'], unique=False)
    op.create_index(op.f('ix_accounts_signup_ip'), 'accounts', ['signup_ip'], unique=False)

    op.create_table(
        'referrals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('referrer_id', sa.Integer(), nullable=False),
        sa.Column('referred_account_id', sa.Integer(), nullable=False),
        sa.Column('referral_code_used', sa.String(length=15), nullable=False),
        sa.Column('status', referralstatus_enum, nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('qualified_at', sa.DateTime(), nullable=True),
        sa.Column('qualifying_order_id', sa.String(), nullable=True),
        sa.Column('qualifying_order_amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('rewarded_at', sa.DateTime(), nullable=True),
        sa.Column('flagged_at', sa.DateTime(), nullable=True),
        sa.Column('expired_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['referrer_id'], ['accounts.id']),
        sa.ForeignKeyConstraint(['referred_account_id'], ['accounts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('referred_account_id'),
    )
    op.create_index(op.f('ix_referrals_id'), 'referrals', ['id'], unique=False)
    op.create_index(op.f('ix_referrals_referrer_id'), 'referrals', ['referrer_id'], unique=False)
    op.create_index(op.f('ix_referrals_status'), 'referrals', ['status'], unique=False)
    op.create_index(op.f('ix_referrals_qualified_at'), 'referrals', ['qualified_at'], unique=False)

    op.create_table(
        'rewards',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('idempotency_key', sa.String(), nullable=False),
        sa.Column('beneficiary_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('reason', ledgerreason_enum, nullable=False),
        sa.Column('status', rewardstatus_enum, nullable=False),
        sa.Column('referral_id', sa.Integer(), nullable=True),
        sa.Column('source_reference', sa.String(), nullable=True),
        sa.Column('ledger_entry_id', sa.Integer(), nullable=True),
        sa.Column('reversal_entry_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('issued_at', sa.DateTime(), nullable=True),
        sa.Column('reversed_at', sa.DateTime(), nullable=True),
        sa.Column('reversal_reason', sa.String(), nullable=True),
        sa.CheckConstraint('amount > 0', name='ck_rewards_amount_positive'),
        sa.ForeignKeyConstraint(['beneficiary_id'], ['accounts.id']),
        sa.ForeignKeyConstraint(['referral_id'], ['referrals.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key'),
    )
    op.create_index(op.f('ix_rewards_id'), 'rewards', ['id'], unique=False)
    op.create_index(op.f('ix_rewards_beneficiary_id'), 'rewards', ['beneficiary_id'], unique=False)
    op.create_index(op.f('ix_rewards_status'), 'rewards', ['status'], unique=False)
    op.create_index(op.f('ix_rewards_referral_id'), 'rewards', ['referral_id'], unique=False)

    op.create_table(
        'ledger_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('delta', sa.Integer(), nullable=False),
        sa.Column('reason', ledgerreason_enum, nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('idempotency_key', sa.String(), nullable=True),
        sa.Column('reward_id', sa.Integer(), nullable=True),
        sa.Column('reference_entry_id', sa.Integer(), nullable=True),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('delta <> 0', name='ck_ledger_entries_delta_nonzero'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id']),
        sa.ForeignKeyConstraint(['reward_id'], ['rewards.id']),
        sa.ForeignKeyConstraint(['reference_entry_id'], ['ledger_entries.id']),
        sa.ForeignKeyConstraint(['created_by'], ['accounts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key'),
    )
    op.create_index(op.f('ix_ledger_entries_id'), 'ledger_entries', ['id'], unique=False)
    op.create_index(op.f('ix_ledger_entries_account_id'), 'ledger_entries', ['account_id'], unique=False)
    op.create_index(op.f('ix_ledger_entries_reason'), 'ledger_entries', ['reason'], unique=False)
    op.create_index(op.f('ix_ledger_entries_reward_id'), 'ledger_entries', ['reward_id'], unique=False)

    op.create_table(
        'referral_fraud_flags',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('referral_id', sa.Integer(), nullable=True),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('fraud_type', fraudtype_enum, nullable=False),
        sa.Column('severity', fraudseverity_enum, nullable=False),
        sa.Column('status', fraudflagstatus_enum, nullable=False),
        sa.Column('evidence', sa.JSON(), nullable=False),
        sa.Column('evidence_summary', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('reviewed_by', sa.Integer(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('admin_notes', sa.String(), nullable=True),
        sa.ForeignKeyConstraint(['referral_id'], ['referrals.id']),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id']),
        sa.ForeignKeyConstraint(['reviewed_by'], ['accounts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('referral_id', 'fraud_type', name='_referral_fraud_type_uc'),
    )
    op.create_index(op.f('ix_referral_fraud_flags_id'), 'referral_fraud_flags', ['id'], unique=False)
    op.create_index(op.f('ix_referral_fraud_flags_referral_id'), 'referral_fraud_flags', ['referral_id'], unique=False)
    op.create_index(op.f('ix_referral_fraud_flags_account_id'), 'referral_fraud_flags', ['account_id'], unique=False)
    op.create_index(op.f('ix_referral_fraud_flags_fraud_type'), 'referral_fraud_flags', ['fraud_type'], unique=False)
    op.create_index(op.f('ix_referral_fraud_flags_severity'), 'referral_fraud_flags', ['severity'], unique=False)
    op.create_index(op.f('ix_referral_fraud_flags_status'), 'referral_fraud_flags', ['status'], unique=False)

    op.create_table(
        'fraud_scan_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('lock_key', sa.String(), nullable=True),
        sa.Column('status', scanrunstatus_enum, nullable=False),
        sa.Column('triggered_by', sa.Integer(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
        sa.Column('referrals_scanned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('flags_created', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('summary', sa.JSON(), nullable=False),
        sa.ForeignKeyConstraint(['triggered_by'], ['accounts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('lock_key'),
    )
    op.create_index(op.f('ix_fraud_scan_runs_id'), 'fraud_scan_runs', ['id'], unique=False)

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('message', sa.String(), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False),
        sa.Column('reference', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_notifications_id'), 'notifications', ['id'], unique=False)
    op.create_index(op.f('ix_notifications_account_id'), 'notifications', ['account_id'], unique=False)
    op.create_index(op.f('ix_notifications_type'), 'notifications', ['type'], unique=False)
    op.create_index(op.f('ix_notifications_reference'), 'notifications', ['reference'], unique=False)


def downgrade() -> None:
    op.drop_table('notifications')
    op.drop_table('fraud_scan_runs')
    op.drop_table('referral_fraud_flags')
    op.drop_table('ledger_entries')
    op.drop_table('rewards')
    op.drop_table('referrals')
    op.drop_table('accounts')

    bind = op.get_bind()
    for enum_type in reversed(ALL_ENUMS):
        enum_type.drop(bind, checkfirst=True)
