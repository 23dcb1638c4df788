"""create settlement tables

Revision ID: 1a2b3c4d5e6f
Revises:
Create Date: 2026-10-19 00:01:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '1a2b3c4d5e6f'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create quotes table
    op.create_table(
        'quotes',
        sa.Column('quote_id', sa.String(64), primary_key=True),
        sa.Column('chain', sa.String(16), nullable=False),
        sa.Column('token', sa.String(16), nullable=False),
        sa.Column('send_amount_usd', sa.Numeric(20, 8), nullable=False),
        sa.Column('fee_usd', sa.Numeric(20, 8), nullable=False),
        sa.Column('fx_rate_usd_to_etb', sa.Numeric(20, 8), nullable=False),
        sa.Column('recipient_amount_etb', sa.Numeric(20, 2), nullable=False),
        sa.Column('expires_at', sa.TIMESTAMP, nullable=False),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )

    # Create receiver_kyc_profile table
    op.create_table(
        'receiver_kyc_profile',
        sa.Column('receiver_id', sa.String(64), primary_key=True),
        sa.Column('kyc_status', sa.String(16), nullable=False, server_default='pending'),
        sa.Column('national_id_verified', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('updated_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )

    # Create transfers table
    op.create_table(
        'transfers',
        sa.Column('transfer_id', sa.String(64), primary_key=True),
        sa.Column('quote_id', sa.String(64), sa.ForeignKey('quotes.quote_id'), nullable=False, unique=True),
        sa.Column('sender_id', sa.String(64), nullable=False),
        sa.Column('receiver_id', sa.String(64), nullable=False),
        sa.Column('sender_kyc_status', sa.String(16), nullable=False),
        sa.Column('receiver_kyc_status', sa.String(16), nullable=False),
        sa.Column('receiver_national_id_verified', sa.Boolean, nullable=False),
        sa.Column('chain', sa.String(16), nullable=False),
        sa.Column('token', sa.String(16), nullable=False),
        sa.Column('send_amount_usd', sa.Numeric(20, 8), nullable=False),
        sa.Column('status', sa.String(32), nullable=False, server_default='AWAITING_FUNDING'),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_transfers_sender_id', 'transfers', ['sender_id'])
    op.create_index('ix_transfers_receiver_id', 'transfers', ['receiver_id'])
    op.create_index('ix_transfers_status', 'transfers', ['status'])
    op.create_index('ix_transfers_created_at', 'transfers', ['created_at'])

    # Create deposit_routes table
    op.create_table(
        'deposit_routes',
        sa.Column('route_id', sa.String(64), primary_key=True),
        sa.Column('transfer_id', sa.String(64), sa.ForeignKey('transfers.transfer_id', ondelete='CASCADE'), nullable=False),
        sa.Column('chain', sa.String(16), nullable=False),
        sa.Column('token', sa.String(16), nullable=False),
        sa.Column('deposit_address', sa.String(128), nullable=False),
        sa.Column('deposit_memo', sa.String(64), nullable=True),
        sa.Column('derivation_path', sa.String(128), nullable=True),
        sa.Column('status', sa.String(16), nullable=False, server_default='active'),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_deposit_routes_transfer_id', 'deposit_routes', ['transfer_id'])
    op.create_index(
        'uq_deposit_routes_active_address',
        'deposit_routes',
        ['chain', 'token', 'deposit_address'],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
        sqlite_where=sa.text("status = 'active'"),
    )
    op.create_index(
        'uq_deposit_routes_active_transfer',
        'deposit_routes',
        ['transfer_id'],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
        sqlite_where=sa.text("status = 'active'"),
    )

    # Create transfer_transition table
    op.create_table(
        'transfer_transition',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('transfer_id', sa.String(64), sa.ForeignKey('transfers.transfer_id', ondelete='CASCADE'), nullable=False),
        sa.Column('from_state', sa.String(32), nullable=True),
        sa.Column('to_state', sa.String(32), nullable=False),
        sa.Column('metadata', sa.JSON, nullable=False),
        sa.Column('occurred_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_transfer_transition_transfer_id', 'transfer_transition', ['transfer_id'])
    op.create_index('ix_transfer_transition_occurred_at', 'transfer_transition', ['occurred_at'])

    # Create onchain_funding_event table
    op.create_table(
        'onchain_funding_event',
        sa.Column('event_id', sa.String(128), primary_key=True),
        sa.Column('chain', sa.String(16), nullable=False),
        sa.Column('token', sa.String(16), nullable=False),
        sa.Column('tx_hash', sa.String(128), nullable=False),
        sa.Column('log_index', sa.Integer, nullable=False),
        sa.Column('transfer_id', sa.String(64), sa.ForeignKey('transfers.transfer_id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('deposit_address', sa.String(128), nullable=False),
        sa.Column('amount_usd', sa.Numeric(20, 8), nullable=False),
        sa.Column('confirmed_at', sa.TIMESTAMP, nullable=False),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.UniqueConstraint('chain', 'tx_hash', 'log_index', name='uq_funding_event_chain_tx_log'),
    )

    # Create payout_instruction table
    op.create_table(
        'payout_instruction',
        sa.Column('payout_id', sa.String(64), primary_key=True),
        sa.Column('transfer_id', sa.String(64), sa.ForeignKey('transfers.transfer_id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('method', sa.String(16), nullable=False),
        sa.Column('recipient_account_ref', sa.Text, nullable=False),
        sa.Column('amount_etb', sa.Numeric(20, 2), nullable=False),
        sa.Column('status', sa.String(32), nullable=False, server_default='PAYOUT_PENDING'),
        sa.Column('provider_reference', sa.String(128), nullable=True),
        sa.Column('attempt_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text, nullable=True),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_payout_instruction_status', 'payout_instruction', ['status'])

    # Create payout_status_event table
    op.create_table(
        'payout_status_event',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('payout_id', sa.String(64), sa.ForeignKey('payout_instruction.payout_id', ondelete='CASCADE'), nullable=False),
        sa.Column('transfer_id', sa.String(64), nullable=False),
        sa.Column('from_status', sa.String(32), nullable=True),
        sa.Column('to_status', sa.String(32), nullable=False),
        sa.Column('metadata', sa.JSON, nullable=False),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_payout_status_event_payout_id', 'payout_status_event', ['payout_id'])
    op.create_index('ix_payout_status_event_transfer_id', 'payout_status_event', ['transfer_id'])

    # Create ledger tables
    op.create_table(
        'ledger_journal',
        sa.Column('journal_id', sa.String(64), primary_key=True),
        sa.Column('transfer_id', sa.String(64), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_ledger_journal_transfer_id', 'ledger_journal', ['transfer_id'])

    op.create_table(
        'ledger_entry',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('journal_id', sa.String(64), sa.ForeignKey('ledger_journal.journal_id', ondelete='CASCADE'), nullable=False),
        sa.Column('transfer_id', sa.String(64), nullable=False),
        sa.Column('account_code', sa.String(64), nullable=False),
        sa.Column('entry_type', sa.String(8), nullable=False),
        sa.Column('amount_usd', sa.Numeric(20, 2), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_ledger_entry_journal_id', 'ledger_entry', ['journal_id'])
    op.create_index('ix_ledger_entry_transfer_id', 'ledger_entry', ['transfer_id'])

    # Create idempotency_record table
    op.create_table(
        'idempotency_record',
        sa.Column('key', sa.String(255), primary_key=True),
        sa.Column('request_hash', sa.String(64), nullable=False),
        sa.Column('response_status', sa.Integer, nullable=False, server_default='-1'),
        sa.Column('response_body', sa.JSON, nullable=False),
        sa.Column('expires_at', sa.TIMESTAMP, nullable=False),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_idempotency_record_expires_at', 'idempotency_record', ['expires_at'])

    # Create reconciliation tables
    op.create_table(
        'reconciliation_run',
        sa.Column('run_id', sa.String(64), primary_key=True),
        sa.Column('status', sa.String(16), nullable=False, server_default='running'),
        sa.Column('reason', sa.Text, nullable=True),
        sa.Column('triggered_by', sa.String(128), nullable=True),
        sa.Column('total_transfers', sa.Integer, nullable=True),
        sa.Column('total_issues', sa.Integer, nullable=True),
        sa.Column('started_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('finished_at', sa.TIMESTAMP, nullable=True),
    )
    op.create_index('ix_reconciliation_run_status', 'reconciliation_run', ['status'])

    op.create_table(
        'reconciliation_issue',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('run_id', sa.String(64), sa.ForeignKey('reconciliation_run.run_id', ondelete='CASCADE'), nullable=False),
        sa.Column('transfer_id', sa.String(64), nullable=False),
        sa.Column('issue_code', sa.String(64), nullable=False),
        sa.Column('details', sa.JSON, nullable=False),
        sa.Column('detected_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_reconciliation_issue_run_id', 'reconciliation_issue', ['run_id'])
    op.create_index('ix_reconciliation_issue_transfer_id', 'reconciliation_issue', ['transfer_id'])
    op.create_index('ix_reconciliation_issue_issue_code', 'reconciliation_issue', ['issue_code'])
    op.create_index('ix_reconciliation_issue_detected_at', 'reconciliation_issue', ['detected_at'])

    # Create audit_log table
    op.create_table(
        'audit_log',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('actor_type', sa.String(32), nullable=False),
        sa.Column('actor_id', sa.String(128), nullable=False),
        sa.Column('action', sa.String(64), nullable=False),
        sa.Column('entity_type', sa.String(32), nullable=False),
        sa.Column('entity_id', sa.String(64), nullable=False),
        sa.Column('reason', sa.Text, nullable=True),
        sa.Column('metadata', sa.JSON, nullable=False),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_audit_log_action', 'audit_log', ['action'])
    op.create_index('ix_audit_log_created_at', 'audit_log', ['created_at'])
    op.create_index('idx_audit_entity', 'audit_log', ['entity_type', 'entity_id'])


def downgrade() -> None:
    op.drop_table('audit_log')
    op.drop_table('reconciliation_issue')
    op.drop_table('reconciliation_run')
    op.drop_table('idempotency_record')
    op.drop_table('ledger_entry')
    op.drop_table('ledger_journal')
    op.drop_table('payout_status_event')
    op.drop_table('payout_instruction')
    op.drop_table('onchain_funding_event')
    op.drop_table('transfer_transition')
    op.drop_table('deposit_routes')
    op.drop_table('transfers')
    op.drop_table('receiver_kyc_profile')
    op.drop_table('quotes')
