"""contract migration target schema

Revision ID: 0001_contract_migration_schema
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = '0001_contract_migration_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'contracts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('legacy_contract_id', sa.Integer(), nullable=False),
        sa.Column('contract_number', sa.String(length=100), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('contract_content', sa.Text(), nullable=True),
        sa.Column('document_url', sa.String(length=500), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='signed'),
        sa.Column('client_ref', sa.String(length=64), nullable=False),
        sa.Column('total_amount', sa.Numeric(18, 3), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('migrated_at', sa.DateTime(), nullable=False),
        sa.Column('migrated_by', sa.String(length=128), nullable=False, server_default='system'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ux_contracts_legacy_contract_id', 'contracts', ['legacy_contract_id'], unique=True)
    op.create_index('ix_contracts_status', 'contracts', ['status'])
    op.create_index('ix_contracts_client_ref', 'contracts', ['client_ref'])

    op.create_table(
        'installments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('contract_id', sa.Integer(), nullable=False),
        sa.Column('sequence_number', sa.Integer(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('amount', sa.Numeric(18, 3), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['contract_id'], ['contracts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ux_installments_contract_sequence', 'installments', ['contract_id', 'sequence_number'], unique=True)
    op.create_index('ix_installments_contract_id', 'installments', ['contract_id'])
    op.create_index('ix_installments_due_date', 'installments', ['due_date'])
    op.create_index('ix_installments_status', 'installments', ['status'])

    op.create_table(
        'negotiations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('contract_id', sa.Integer(), nullable=False),
        sa.Column('action_type', sa.String(length=32), nullable=False),
        sa.Column('terms_summary', sa.Text(), nullable=False),
        sa.Column('installment_numbers_json', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('submitted_by', sa.String(length=128), nullable=False, server_default='system'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['contract_id'], ['contracts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_negotiations_contract_id', 'negotiations', ['contract_id'])

    op.create_table(
        'migration_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('legacy_contract_id', sa.Integer(), nullable=False),
        sa.Column('target_contract_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('error_kind', sa.String(length=32), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('actor', sa.String(length=128), nullable=False, server_default='system'),
        sa.Column('attempted_at', sa.DateTime(), nullable=False),
        sa.Column('migrated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ux_migration_records_legacy_contract_id', 'migration_records', ['legacy_contract_id'], unique=True)
    op.create_index('ix_migration_records_status', 'migration_records', ['status'])
    op.create_index('ix_migration_records_status_attempted', 'migration_records', ['status', 'attempted_at'])


def downgrade() -> None:
    op.drop_index('ix_migration_records_status_attempted', table_name='migration_records')
    op.drop_index('ix_migration_records_status', table_name='migration_records')
    op.drop_index('ux_migration_records_legacy_contract_id', table_name='migration_records')
    op.drop_table('migration_records')

    op.drop_index('ix_negotiations_contract_id', table_name='negotiations')
    op.drop_table('negotiations')

    op.drop_index('ix_installments_status', table_name='installments')
    op.drop_index('ix_installments_due_date', table_name='installments')
    op.drop_index('ix_installments_contract_id', table_name='installments')
    op.drop_index('ux_installments_contract_sequence', table_name='installments')
    op.drop_table('installments')

    op.drop_index('ix_contracts_client_ref', table_name='contracts')
    op.drop_index('ix_contracts_status', table_name='contracts')
    op.drop_index('ux_contracts_legacy_contract_id', table_name='contracts')
    op.drop_table('contracts')
