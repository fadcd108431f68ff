"""Create invoice ledger tables

Revision ID: 001
Revises:
Create Date: 2026-10-17

WHAT: Creates the invoice aggregate: invoices, line items, payments and
sent reminders.

WHY: The invoice ledger needs:
1. Derived money fields stored next to their inputs
2. An append-only payment ledger with reference idempotency
3. A sent-reminder log that can't hold the same cadence point twice
4. A version counter for optimistic concurrency

HOW: Enum-like columns are VARCHAR (non-native enums) so the schema is the
same on PostgreSQL and SQLite. Child tables cascade on invoice delete.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """
    Create invoice ledger tables.
    """
    op.create_table(
        'invoices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column(
            'invoice_number',
            sa.String(length=50),
            nullable=False,
            comment='Unique invoice number (e.g., INV-2024-0001)'
        ),
        sa.Column(
            'owner_id',
            sa.Integer(),
            nullable=False,
            comment='Owner (freelancer) for access control'
        ),
        sa.Column('title', sa.String(length=255), nullable=False),
        # Snapshots
        sa.Column(
            'client',
            sa.JSON(),
            nullable=False,
            comment='Client name/email/company/address at invoice time'
        ),
        sa.Column(
            'project',
            sa.JSON(),
            nullable=True,
            comment='Project id and title at invoice time'
        ),
        sa.Column('branding', sa.JSON(), nullable=True),
        # Dates
        sa.Column('issue_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        # Money inputs
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column(
            'tax_rate',
            sa.Numeric(7, 4),
            nullable=False,
            server_default='0',
            comment='Tax percentage, 0-100, kept to four decimal places'
        ),
        sa.Column(
            'discount',
            sa.Numeric(12, 2),
            nullable=False,
            server_default='0',
            comment='Absolute discount amount'
        ),
        # Derived money fields
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('tax_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('amount_paid', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column(
            'amount_due',
            sa.Numeric(12, 2),
            nullable=False,
            server_default='0',
            comment='Negative when overpaid (credit owed to the client)'
        ),
        sa.Column('discount_clamped', sa.Boolean(), nullable=False, server_default=sa.false()),
        # Lifecycle
        sa.Column('stage', sa.String(length=32), nullable=False, server_default='draft'),
        sa.Column(
            'status',
            sa.String(length=32),
            nullable=False,
            server_default='draft',
            comment='Derived status'
        ),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.Column('viewed_at', sa.DateTime(), nullable=True),
        sa.Column(
            'paid_at',
            sa.DateTime(),
            nullable=True,
            comment='Set once when payments first cover the total'
        ),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        # Reminders
        sa.Column('reminder_settings', sa.JSON(), nullable=False),
        sa.Column('last_reminder_error', sa.Text(), nullable=True),
        sa.Column('last_reminder_error_at', sa.DateTime(), nullable=True),
        # Free text
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('terms', sa.Text(), nullable=True),
        # Concurrency
        sa.Column('version', sa.Integer(), nullable=False),
        # Timestamps
        sa.Column(
            'created_at',
            sa.DateTime(),
            nullable=False,
            server_default=sa.text('CURRENT_TIMESTAMP')
        ),
        sa.Column(
            'updated_at',
            sa.DateTime(),
            nullable=False,
            server_default=sa.text('CURRENT_TIMESTAMP')
        ),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_index('ix_invoices_id', 'invoices', ['id'])
    op.create_index('ix_invoices_invoice_number', 'invoices', ['invoice_number'], unique=True)
    op.create_index('ix_invoices_owner_id', 'invoices', ['owner_id'])
    op.create_index('ix_invoices_due_date', 'invoices', ['due_date'])
    op.create_index('ix_invoices_status', 'invoices', ['status'])

    op.create_table(
        'invoice_line_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column(
            'position',
            sa.Integer(),
            nullable=False,
            server_default='0',
            comment='Zero-based order of the item on the invoice'
        ),
        sa.Column('description', sa.String(length=500), nullable=False),
        sa.Column('quantity', sa.Numeric(12, 3), nullable=False, server_default='0'),
        sa.Column('rate', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column(
            'amount',
            sa.Numeric(12, 2),
            nullable=False,
            server_default='0',
            comment='quantity x rate, rounded half up to cents'
        ),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_invoice_line_items_id', 'invoice_line_items', ['id'])
    op.create_index('ix_invoice_line_items_invoice_id', 'invoice_line_items', ['invoice_id'])

    op.create_table(
        'invoice_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('payment_date', sa.DateTime(), nullable=False),
        sa.Column(
            'payment_method',
            sa.String(length=32),
            nullable=False,
            server_default='bank_transfer'
        ),
        sa.Column(
            'transaction_reference',
            sa.String(length=255),
            nullable=True,
            comment='Processor/bank reference used for idempotency'
        ),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column(
            'created_at',
            sa.DateTime(),
            nullable=False,
            server_default=sa.text('CURRENT_TIMESTAMP')
        ),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'invoice_id',
            'transaction_reference',
            name='uq_invoice_payments_invoice_reference'
        )
    )
    op.create_index('ix_invoice_payments_id', 'invoice_payments', ['id'])
    op.create_index('ix_invoice_payments_invoice_id', 'invoice_payments', ['invoice_id'])

    op.create_table(
        'invoice_reminders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('reminder_type', sa.String(length=32), nullable=False),
        sa.Column(
            'offset_days',
            sa.Integer(),
            nullable=False,
            server_default='0',
            comment='Post-due offset in days; 0 for pre_due and on_due'
        ),
        sa.Column('sent_at', sa.DateTime(), nullable=False),
        sa.Column('sent_by', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'invoice_id',
            'reminder_type',
            'offset_days',
            name='uq_invoice_reminders_invoice_type_offset'
        )
    )
    op.create_index('ix_invoice_reminders_id', 'invoice_reminders', ['id'])
    op.create_index('ix_invoice_reminders_invoice_id', 'invoice_reminders', ['invoice_id'])


def downgrade() -> None:
    """
    Drop invoice ledger tables.
    """
    op.drop_index('ix_invoice_reminders_invoice_id', table_name='invoice_reminders')
    op.drop_index('ix_invoice_reminders_id', table_name='invoice_reminders')
    op.drop_table('invoice_reminders')

    op.drop_index('ix_invoice_payments_invoice_id', table_name='invoice_payments')
    op.drop_index('ix_invoice_payments_id', table_name='invoice_payments')
    op.drop_table('invoice_payments')

    op.drop_index('ix_invoice_line_items_invoice_id', table_name='invoice_line_items')
    op.drop_index('ix_invoice_line_items_id', table_name='invoice_line_items')
    op.drop_table('invoice_line_items')

    op.drop_index('ix_invoices_status', table_name='invoices')
    op.drop_index('ix_invoices_due_date', table_name='invoices')
    op.drop_index('ix_invoices_owner_id', table_name='invoices')
    op.drop_index('ix_invoices_invoice_number', table_name='invoices')
    op.drop_index('ix_invoices_id', table_name='invoices')
    op.drop_table('invoices')
