"""Create ledger, recurrence and banking schema

Revision ID: 001_ledger
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers
revision = '001_ledger'
down_revision = None
branch_labels = None
depends_on = None


def _money(name, nullable=True, default='0'):
    return sa.Column(name, sa.Numeric(15, 2), server_default=default, nullable=nullable)


def _rate(name):
    return sa.Column(name, sa.Numeric(5, 2), server_default='0', nullable=True)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    ]


def _schedule_columns():
    """Cadence and lifecycle columns shared by recurring templates."""
    return [
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('tenant_id', UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('frequency', sa.String(20), nullable=False),
        sa.Column('interval_count', sa.Integer, server_default='1', nullable=False),
        sa.Column('start_date', sa.Date, nullable=False),
        sa.Column('end_date', sa.Date, nullable=True),
        sa.Column('max_occurrences', sa.Integer, nullable=True),
        sa.Column('occurrence_count', sa.Integer, server_default='0', nullable=False),
        sa.Column('next_run_date', sa.Date, nullable=False),
        sa.Column('last_run_date', sa.Date, nullable=True),
        sa.Column('status', sa.String(50), server_default='ACTIVE', nullable=False),
        sa.Column('version', sa.Integer, server_default='0', nullable=False),
        sa.Column('created_by', UUID(as_uuid=True), nullable=True),
    ] + _timestamps()


def upgrade():
    """Create the ledger tables, skipping any that already exist"""
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing = set(inspector.get_table_names())

    if 'accounts' in existing:
        print("Ledger tables already exist, skipping")
        return

    # ====================
    # CHART OF ACCOUNTS
    # ====================
    op.create_table(
        'accounts',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('tenant_id', UUID(as_uuid=True), nullable=False),
        sa.Column('code', sa.String(20), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('account_type', sa.String(50), nullable=False),
        sa.Column('sub_type', sa.String(50), nullable=True),
        sa.Column('parent_id', UUID(as_uuid=True), sa.ForeignKey('accounts.id', ondelete='RESTRICT'), nullable=True),
        _money('opening_balance'),
        _money('current_balance'),
        sa.Column('is_active', sa.Boolean, server_default='true', nullable=True),
        sa.Column('is_system', sa.Boolean, server_default='false', nullable=True),
        *_timestamps(),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('tenant_id', 'code', name='uq_accounts_tenant_code'),
    )
    op.create_index('ix_accounts_tenant_id', 'accounts', ['tenant_id'])
    op.create_index('ix_accounts_account_type', 'accounts', ['account_type'])
    op.create_index('ix_accounts_parent_id', 'accounts', ['parent_id'])

    op.create_table(
        'quick_entry_accounts',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('tenant_id', UUID(as_uuid=True), nullable=False),
        sa.Column('role', sa.String(50), nullable=False),
        sa.Column('account_id', UUID(as_uuid=True), sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.UniqueConstraint('tenant_id', 'role', name='uq_quick_entry_tenant_role'),
    )
    op.create_index('ix_quick_entry_accounts_tenant_id', 'quick_entry_accounts', ['tenant_id'])

    op.create_table(
        'transaction_sequences',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('tenant_id', UUID(as_uuid=True), nullable=False),
        sa.Column('prefix', sa.String(10), nullable=False),
        sa.Column('year', sa.Integer, nullable=False),
        sa.Column('current_number', sa.Integer, server_default='0', nullable=False),
        sa.UniqueConstraint('tenant_id', 'prefix', 'year', name='uq_sequence_tenant_prefix_year'),
    )
    print("Created accounts, quick_entry_accounts, transaction_sequences")

    # ====================
    # TRANSACTIONS
    # ====================
    op.create_table(
        'transactions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('tenant_id', UUID(as_uuid=True), nullable=False),
        sa.Column('transaction_number', sa.String(30), nullable=False),
        sa.Column('transaction_date', sa.Date, nullable=False),
        sa.Column('transaction_type', sa.String(50), nullable=False),
        sa.Column('reference_type', sa.String(50), nullable=True),
        sa.Column('reference_id', UUID(as_uuid=True), nullable=True),
        sa.Column('party_id', UUID(as_uuid=True), nullable=True),
        sa.Column('party_type', sa.String(20), nullable=True),
        sa.Column('party_name', sa.String(200), nullable=True),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        _money('subtotal'),
        _money('tax_amount'),
        _money('discount_amount'),
        _money('total_amount'),
        sa.Column('payment_mode', sa.String(20), nullable=True),
        sa.Column('payment_reference', sa.String(100), nullable=True),
        sa.Column('status', sa.String(50), server_default='POSTED', nullable=False),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('voided_by', UUID(as_uuid=True), nullable=True),
        sa.Column('void_reason', sa.Text, nullable=True),
        sa.Column('created_by', UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('tenant_id', 'transaction_number', name='uq_transactions_tenant_number'),
    )
    op.create_index('ix_transactions_tenant_id', 'transactions', ['tenant_id'])
    op.create_index('ix_transactions_status', 'transactions', ['status'])
    op.create_index('ix_transactions_tenant_date', 'transactions', ['tenant_id', 'transaction_date'])

    op.create_table(
        'transaction_lines',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('transaction_id', UUID(as_uuid=True), sa.ForeignKey('transactions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('account_id', UUID(as_uuid=True), sa.ForeignKey('accounts.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        _money('debit', nullable=False),
        _money('credit', nullable=False),
        _money('tax_amount'),
        sa.Column('line_order', sa.Integer, server_default='0', nullable=True),
    )
    op.create_index('ix_transaction_lines_transaction_id', 'transaction_lines', ['transaction_id'])
    op.create_index('ix_transaction_lines_account_id', 'transaction_lines', ['account_id'])
    print("Created transactions, transaction_lines")

    # ====================
    # INVOICES
    # ====================
    op.create_table(
        'invoices',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('tenant_id', UUID(as_uuid=True), nullable=False),
        sa.Column('invoice_number', sa.String(30), nullable=False),
        sa.Column('customer_id', UUID(as_uuid=True), nullable=True),
        sa.Column('customer_name', sa.String(200), nullable=False),
        sa.Column('customer_gstin', sa.String(15), nullable=True),
        sa.Column('customer_address', sa.Text, nullable=True),
        sa.Column('customer_state', sa.String(50), nullable=True),
        sa.Column('customer_email', sa.String(255), nullable=True),
        sa.Column('customer_phone', sa.String(20), nullable=True),
        sa.Column('invoice_date', sa.Date, nullable=False),
        sa.Column('due_date', sa.Date, nullable=False),
        sa.Column('status', sa.String(50), server_default='DRAFT', nullable=False),
        _money('subtotal'),
        sa.Column('discount_type', sa.String(20), nullable=True),
        _money('discount_value'),
        _money('discount_amount'),
        _money('taxable_amount'),
        _money('cgst_amount'),
        _money('sgst_amount'),
        _money('igst_amount'),
        _money('cess_amount'),
        _money('total_tax'),
        _money('total_amount'),
        _money('amount_paid'),
        _money('balance_due'),
        sa.Column('transaction_id', UUID(as_uuid=True), sa.ForeignKey('transactions.id', ondelete='SET NULL'), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('terms', sa.Text, nullable=True),
        sa.Column('created_by', UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('tenant_id', 'invoice_number', name='uq_invoices_tenant_number'),
    )
    op.create_index('ix_invoices_tenant_id', 'invoices', ['tenant_id'])
    op.create_index('ix_invoices_customer_id', 'invoices', ['customer_id'])

    op.create_table(
        'invoice_items',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('invoice_id', UUID(as_uuid=True), sa.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', UUID(as_uuid=True), nullable=True),
        sa.Column('description', sa.String(500), nullable=False),
        sa.Column('hsn_code', sa.String(10), nullable=True),
        sa.Column('quantity', sa.Numeric(12, 3), nullable=False),
        sa.Column('unit', sa.String(20), server_default='pcs', nullable=True),
        _money('rate', nullable=False, default=None),
        _money('amount', nullable=False, default=None),
        _rate('cgst_rate'),
        _rate('sgst_rate'),
        _rate('igst_rate'),
        _rate('cess_rate'),
        _money('cgst_amount'),
        _money('sgst_amount'),
        _money('igst_amount'),
        _money('cess_amount'),
        _money('total_amount', nullable=False, default=None),
        sa.Column('line_order', sa.Integer, server_default='0', nullable=True),
    )
    op.create_index('ix_invoice_items_invoice_id', 'invoice_items', ['invoice_id'])
    print("Created invoices, invoice_items")

    # ====================
    # RECURRING JOURNALS
    # ====================
    op.create_table(
        'recurring_journals',
        *_schedule_columns(),
        sa.Column('transaction_type', sa.String(50), server_default='JOURNAL', nullable=False),
        _money('total_amount'),
    )
    op.create_index('ix_recurring_journals_due', 'recurring_journals', ['status', 'next_run_date'])

    op.create_table(
        'recurring_journal_lines',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('recurring_journal_id', UUID(as_uuid=True), sa.ForeignKey('recurring_journals.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('account_id', UUID(as_uuid=True), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        _money('debit', nullable=False),
        _money('credit', nullable=False),
        sa.Column('line_order', sa.Integer, server_default='0', nullable=True),
    )

    op.create_table(
        'generated_journals',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('recurring_journal_id', UUID(as_uuid=True), sa.ForeignKey('recurring_journals.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('transaction_id', UUID(as_uuid=True), sa.ForeignKey('transactions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('occurrence_number', sa.Integer, nullable=False),
        sa.Column('generated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.UniqueConstraint('recurring_journal_id', 'occurrence_number', name='uq_generated_journal_occurrence'),
    )
    print("Created recurring_journals, recurring_journal_lines, generated_journals")

    # ====================
    # RECURRING INVOICES
    # ====================
    op.create_table(
        'recurring_invoices',
        *_schedule_columns(),
        sa.Column('customer_id', UUID(as_uuid=True), nullable=True),
        sa.Column('customer_name', sa.String(200), nullable=False),
        sa.Column('customer_gstin', sa.String(15), nullable=True),
        sa.Column('customer_address', sa.Text, nullable=True),
        sa.Column('customer_state', sa.String(50), nullable=True),
        sa.Column('customer_email', sa.String(255), nullable=True),
        sa.Column('customer_phone', sa.String(20), nullable=True),
        sa.Column('days_until_due', sa.Integer, server_default='30', nullable=False),
        sa.Column('auto_send', sa.Boolean, server_default='false', nullable=True),
        sa.Column('discount_type', sa.String(20), nullable=True),
        _money('discount_value'),
        _money('subtotal'),
        _money('total_tax'),
        _money('total_amount'),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('terms', sa.Text, nullable=True),
    )
    op.create_index('ix_recurring_invoices_due', 'recurring_invoices', ['status', 'next_run_date'])

    op.create_table(
        'recurring_invoice_items',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('recurring_invoice_id', UUID(as_uuid=True), sa.ForeignKey('recurring_invoices.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('product_id', UUID(as_uuid=True), nullable=True),
        sa.Column('description', sa.String(500), nullable=False),
        sa.Column('hsn_code', sa.String(10), nullable=True),
        sa.Column('quantity', sa.Numeric(12, 3), nullable=False),
        sa.Column('unit', sa.String(20), server_default='pcs', nullable=True),
        _money('rate', nullable=False, default=None),
        _rate('cgst_rate'),
        _rate('sgst_rate'),
        _rate('igst_rate'),
        _rate('cess_rate'),
        sa.Column('line_order', sa.Integer, server_default='0', nullable=True),
    )

    op.create_table(
        'generated_invoices',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('recurring_invoice_id', UUID(as_uuid=True), sa.ForeignKey('recurring_invoices.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('invoice_id', UUID(as_uuid=True), sa.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False),
        sa.Column('occurrence_number', sa.Integer, nullable=False),
        sa.Column('generated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.UniqueConstraint('recurring_invoice_id', 'occurrence_number', name='uq_generated_invoice_occurrence'),
    )
    print("Created recurring_invoices, recurring_invoice_items, generated_invoices")

    # ====================
    # BANKING
    # ====================
    op.create_table(
        'bank_accounts',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('tenant_id', UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('account_name', sa.String(200), nullable=False),
        sa.Column('account_number', sa.String(50), nullable=False),
        sa.Column('bank_name', sa.String(200), nullable=False),
        sa.Column('branch_name', sa.String(200), nullable=True),
        sa.Column('ifsc_code', sa.String(20), nullable=True),
        sa.Column('account_type', sa.String(50), server_default='CURRENT', nullable=True),
        _money('opening_balance'),
        _money('current_balance'),
        sa.Column('ledger_account_id', UUID(as_uuid=True), sa.ForeignKey('accounts.id'), nullable=True),
        sa.Column('is_primary', sa.Boolean, server_default='false', nullable=True),
        sa.Column('is_active', sa.Boolean, server_default='true', nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=True),
    )

    op.create_table(
        'bank_transactions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('tenant_id', UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('bank_account_id', UUID(as_uuid=True), sa.ForeignKey('bank_accounts.id'), nullable=False),
        sa.Column('transaction_date', sa.Date, nullable=False, index=True),
        sa.Column('description', sa.Text, nullable=False),
        sa.Column('reference', sa.String(100), nullable=True),
        _money('debit_amount'),
        _money('credit_amount'),
        _money('balance', default=None),
        sa.Column('is_reconciled', sa.Boolean, server_default='false', nullable=True),
        sa.Column('reconciled_transaction_id', UUID(as_uuid=True), sa.ForeignKey('transactions.id'), nullable=True),
        sa.Column('reconciled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reconciled_by', UUID(as_uuid=True), nullable=True),
        sa.Column('import_batch_id', UUID(as_uuid=True), nullable=True, index=True),
        sa.Column('import_reference', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=True),
    )
    op.create_index(
        'ix_bank_transactions_account_reconciled',
        'bank_transactions',
        ['bank_account_id', 'is_reconciled'],
    )
    print("Created bank_accounts, bank_transactions")


def downgrade():
    """Drop all ledger tables"""
    op.drop_table('bank_transactions')
    op.drop_table('bank_accounts')
    op.drop_table('generated_invoices')
    op.drop_table('recurring_invoice_items')
    op.drop_table('recurring_invoices')
    op.drop_table('generated_journals')
    op.drop_table('recurring_journal_lines')
    op.drop_table('recurring_journals')
    op.drop_table('invoice_items')
    op.drop_table('invoices')
    op.drop_table('transaction_lines')
    op.drop_table('transactions')
    op.drop_table('transaction_sequences')
    op.drop_table('quick_entry_accounts')
    op.drop_table('accounts')
