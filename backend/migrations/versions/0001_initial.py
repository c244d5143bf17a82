"""initial freightdesk schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def _deleted_at():
    return sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True)


def upgrade():
    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=128), nullable=False, unique=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False, server_default='VIEWER'),
        sa.Column('phone', sa.String(length=32)),
        sa.Column('department', sa.String(length=100)),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('last_login_at', sa.DateTime(timezone=True)),
        sa.Column('last_login_ip', sa.String(length=64)),
        sa.Column('password_changed_at', sa.DateTime(timezone=True)),
        sa.Column('token_version', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        _deleted_at(),
    )
    op.create_index('ix_users_email', 'users', ['email'])
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_deleted_at', 'users', ['deleted_at'])

    op.create_table('companies',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=32), nullable=False, unique=True),
        sa.Column('legal_name', sa.String(length=100), nullable=False),
        sa.Column('trade_name', sa.String(length=100)),
        sa.Column('vat_number', sa.String(length=32), nullable=False),
        sa.Column('registration_no', sa.String(length=64)),
        sa.Column('address_line1', sa.String(length=200), nullable=False, server_default=''),
        sa.Column('address_line2', sa.String(length=200)),
        sa.Column('city', sa.String(length=100), nullable=False, server_default=''),
        sa.Column('state', sa.String(length=100)),
        sa.Column('postal_code', sa.String(length=20), nullable=False, server_default=''),
        sa.Column('country', sa.String(length=2), nullable=False, server_default='ES'),
        sa.Column('phone', sa.String(length=32), nullable=False, server_default=''),
        sa.Column('email', sa.String(length=150), nullable=False, server_default=''),
        sa.Column('website', sa.String(length=200)),
        sa.Column('bank_name', sa.String(length=100)),
        sa.Column('bank_account', sa.String(length=64)),
        sa.Column('swift_code', sa.String(length=16)),
        sa.Column('iban', sa.String(length=40)),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='EUR'),
        sa.Column('timezone', sa.String(length=64), nullable=False, server_default='Europe/Madrid'),
        sa.Column('invoice_prefix', sa.String(length=16)),
        sa.Column('logo_url', sa.String(length=500)),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        *_timestamps(),
        _deleted_at(),
    )
    op.create_index('ix_companies_deleted_at', 'companies', ['deleted_at'])

    op.create_table('clients',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('client_code', sa.String(length=32), nullable=False, unique=True),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('trade_name', sa.String(length=200)),
        sa.Column('vat_number', sa.String(length=32)),
        sa.Column('billing_address', sa.JSON(), nullable=False),
        sa.Column('shipping_address', sa.JSON(), nullable=True),
        sa.Column('billing_email', sa.String(length=150), nullable=False),
        sa.Column('traffic_email', sa.String(length=150)),
        sa.Column('contact_person', sa.String(length=100)),
        sa.Column('contact_phone', sa.String(length=32)),
        sa.Column('contact_mobile', sa.String(length=32)),
        sa.Column('credit_limit_cents', sa.Integer()),
        sa.Column('payment_terms', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('discount', sa.Float()),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='EUR'),
        sa.Column('language', sa.String(length=5), nullable=False, server_default='es'),
        sa.Column('send_reminders', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('auto_invoice', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('notes', sa.Text()),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        *_timestamps(),
        _deleted_at(),
    )
    op.create_index('ix_clients_client_code', 'clients', ['client_code'])
    op.create_index('ix_clients_name', 'clients', ['name'])
    op.create_index('ix_clients_vat_number', 'clients', ['vat_number'])
    op.create_index('ix_clients_is_active', 'clients', ['is_active'])
    op.create_index('ix_clients_deleted_at', 'clients', ['deleted_at'])

    op.create_table('suppliers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('supplier_code', sa.String(length=32), nullable=False, unique=True),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('trade_name', sa.String(length=200)),
        sa.Column('vat_number', sa.String(length=32)),
        sa.Column('address_line1', sa.String(length=200), nullable=False),
        sa.Column('address_line2', sa.String(length=200)),
        sa.Column('city', sa.String(length=100), nullable=False),
        sa.Column('state', sa.String(length=100)),
        sa.Column('postal_code', sa.String(length=20), nullable=False),
        sa.Column('country', sa.String(length=2), nullable=False, server_default='ES'),
        sa.Column('email', sa.String(length=150), nullable=False),
        sa.Column('phone', sa.String(length=32)),
        sa.Column('contact_person', sa.String(length=100)),
        sa.Column('contact_mobile', sa.String(length=32)),
        sa.Column('irpf_rate', sa.Float()),
        sa.Column('vat_rate', sa.Float(), nullable=False, server_default='21'),
        sa.Column('payment_terms', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('payment_method', sa.String(length=32)),
        sa.Column('bank_name', sa.String(length=100)),
        sa.Column('bank_account', sa.String(length=64)),
        sa.Column('swift_code', sa.String(length=16)),
        sa.Column('iban', sa.String(length=40)),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='EUR'),
        sa.Column('auto_approve', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('require_po', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('notes', sa.Text()),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        *_timestamps(),
        _deleted_at(),
    )
    op.create_index('ix_suppliers_supplier_code', 'suppliers', ['supplier_code'])
    op.create_index('ix_suppliers_name', 'suppliers', ['name'])
    op.create_index('ix_suppliers_vat_number', 'suppliers', ['vat_number'])
    op.create_index('ix_suppliers_country', 'suppliers', ['country'])
    op.create_index('ix_suppliers_is_active', 'suppliers', ['is_active'])
    op.create_index('ix_suppliers_deleted_at', 'suppliers', ['deleted_at'])

    op.create_table('services',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('service_number', sa.String(length=32), nullable=False, unique=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('client_id', sa.Integer(), sa.ForeignKey('clients.id'), nullable=False),
        sa.Column('supplier_id', sa.Integer(), sa.ForeignKey('suppliers.id'), nullable=False),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('assigned_to', sa.Integer(), sa.ForeignKey('users.id')),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('reference', sa.String(length=100)),
        sa.Column('origin', sa.String(length=200), nullable=False),
        sa.Column('destination', sa.String(length=200), nullable=False),
        sa.Column('distance', sa.Integer()),
        sa.Column('vehicle_type', sa.String(length=64)),
        sa.Column('vehicle_plate', sa.String(length=32)),
        sa.Column('driver_name', sa.String(length=100)),
        sa.Column('cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cost_currency', sa.String(length=3), nullable=False, server_default='EUR'),
        sa.Column('sale_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sale_currency', sa.String(length=3), nullable=False, server_default='EUR'),
        sa.Column('margin_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('margin_percentage', sa.Float(), nullable=False, server_default='0'),
        sa.Column('cost_vat_rate', sa.Float(), nullable=False, server_default='21'),
        sa.Column('cost_vat_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sale_vat_rate', sa.Float(), nullable=False, server_default='21'),
        sa.Column('sale_vat_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='DRAFT'),
        sa.Column('completed_at', sa.DateTime(timezone=True)),
        sa.Column('cancelled_at', sa.DateTime(timezone=True)),
        sa.Column('cancellation_reason', sa.Text()),
        sa.Column('notes', sa.Text()),
        sa.Column('internal_notes', sa.Text()),
        sa.Column('custom_fields', sa.JSON(), nullable=True),
        *_timestamps(),
        _deleted_at(),
    )
    op.create_index('ix_services_service_number', 'services', ['service_number'])
    op.create_index('ix_services_date', 'services', ['date'])
    op.create_index('ix_services_client_id', 'services', ['client_id'])
    op.create_index('ix_services_supplier_id', 'services', ['supplier_id'])
    op.create_index('ix_services_vehicle_plate', 'services', ['vehicle_plate'])
    op.create_index('ix_services_driver_name', 'services', ['driver_name'])
    op.create_index('ix_services_status', 'services', ['status'])
    op.create_index('ix_services_deleted_at', 'services', ['deleted_at'])

    op.create_table('service_status_history',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('service_id', sa.Integer(), sa.ForeignKey('services.id', ondelete='CASCADE'), nullable=False),
        sa.Column('from_status', sa.String(length=32)),
        sa.Column('to_status', sa.String(length=32), nullable=False),
        sa.Column('reason', sa.Text()),
        sa.Column('changed_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('changed_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_service_status_history_service_id', 'service_status_history', ['service_id'])

    op.create_table('loading_orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_number', sa.String(length=32), nullable=False, unique=True),
        sa.Column('generated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('generated_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('client_id', sa.Integer(), sa.ForeignKey('clients.id')),
        sa.Column('notes', sa.Text()),
        sa.Column('meta', sa.JSON(), nullable=True),
        *_timestamps(),
        _deleted_at(),
    )
    op.create_index('ix_loading_orders_order_number', 'loading_orders', ['order_number'])
    op.create_index('ix_loading_orders_deleted_at', 'loading_orders', ['deleted_at'])

    op.create_table('service_loading_orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('service_id', sa.Integer(), sa.ForeignKey('services.id'), nullable=False),
        sa.Column('loading_order_id', sa.Integer(), sa.ForeignKey('loading_orders.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.UniqueConstraint('loading_order_id', 'service_id', name='uq_loading_order_service'),
    )
    op.create_index('ix_service_loading_orders_service_id', 'service_loading_orders', ['service_id'])

    op.create_table('invoices',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('invoice_number', sa.String(length=32), nullable=False, unique=True),
        sa.Column('invoice_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('supplier_id', sa.Integer(), sa.ForeignKey('suppliers.id'), nullable=False),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('irpf_rate', sa.Float()),
        sa.Column('irpf_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='EUR'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='DRAFT'),
        sa.Column('payment_status', sa.String(length=32), nullable=False, server_default='PENDING'),
        sa.Column('paid_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('paid_at', sa.DateTime(timezone=True)),
        sa.Column('description', sa.Text()),
        sa.Column('notes', sa.Text()),
        sa.Column('sent_at', sa.DateTime(timezone=True)),
        sa.Column('sent_to', sa.String(length=150)),
        sa.Column('viewed_at', sa.DateTime(timezone=True)),
        sa.Column('meta', sa.JSON(), nullable=True),
        *_timestamps(),
        _deleted_at(),
    )
    op.create_index('ix_invoices_invoice_number', 'invoices', ['invoice_number'])
    op.create_index('ix_invoices_invoice_date', 'invoices', ['invoice_date'])
    op.create_index('ix_invoices_supplier_id', 'invoices', ['supplier_id'])
    op.create_index('ix_invoices_status', 'invoices', ['status'])
    op.create_index('ix_invoices_deleted_at', 'invoices', ['deleted_at'])

    op.create_table('invoice_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('invoice_id', sa.Integer(), sa.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False),
        sa.Column('service_id', sa.Integer(), sa.ForeignKey('services.id')),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('tax_rate', sa.Float(), nullable=False),
        sa.Column('tax_cents', sa.Integer(), nullable=False),
    )
    op.create_index('ix_invoice_items_invoice_id', 'invoice_items', ['invoice_id'])
    op.create_index('ix_invoice_items_service_id', 'invoice_items', ['service_id'])

    op.create_table('payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('payment_number', sa.String(length=32), nullable=False, unique=True),
        sa.Column('invoice_id', sa.Integer(), sa.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='EUR'),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('payment_method', sa.String(length=32), nullable=False),
        sa.Column('reference', sa.String(length=100)),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='COMPLETED'),
        sa.Column('notes', sa.Text()),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id')),
        *_timestamps(),
    )
    op.create_index('ix_payments_payment_number', 'payments', ['payment_number'])
    op.create_index('ix_payments_invoice_id', 'payments', ['invoice_id'])

    op.create_table('documents',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('document_number', sa.String(length=64)),
        sa.Column('client_id', sa.Integer(), sa.ForeignKey('clients.id')),
        sa.Column('supplier_id', sa.Integer(), sa.ForeignKey('suppliers.id')),
        sa.Column('service_id', sa.Integer(), sa.ForeignKey('services.id')),
        sa.Column('file_name', sa.String(length=255), nullable=False),
        sa.Column('file_path', sa.String(length=500), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=False),
        sa.Column('mime_type', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('uploaded_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('uploaded_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
        _deleted_at(),
    )
    op.create_index('ix_documents_document_type', 'documents', ['document_type'])
    op.create_index('ix_documents_client_id', 'documents', ['client_id'])
    op.create_index('ix_documents_supplier_id', 'documents', ['supplier_id'])
    op.create_index('ix_documents_service_id', 'documents', ['service_id'])
    op.create_index('ix_documents_deleted_at', 'documents', ['deleted_at'])

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=16), nullable=False),
        sa.Column('table_name', sa.String(length=64), nullable=False),
        sa.Column('record_id', sa.String(length=255), nullable=False),
        sa.Column('old_values', sa.JSON(), nullable=True),
        sa.Column('new_values', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=64)),
        sa.Column('user_agent', sa.String(length=255)),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_table_name', 'audit_logs', ['table_name'])
    op.create_index('ix_audit_logs_record_id', 'audit_logs', ['record_id'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])

    op.create_table('system_settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('key', sa.String(length=64), nullable=False, unique=True),
        sa.Column('value', sa.JSON(), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        *_timestamps(),
    )
    op.create_index('ix_system_settings_key', 'system_settings', ['key'])

    op.create_table('notifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False, server_default='info'),
        sa.Column('category', sa.String(length=32), nullable=False),
        sa.Column('action_url', sa.String(length=255)),
        sa.Column('action_label', sa.String(length=64)),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('read_at', sa.DateTime(timezone=True)),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_is_read', 'notifications', ['is_read'])


def downgrade():
    for table in ('notifications', 'system_settings', 'audit_logs', 'documents', 'payments', 'invoice_items',
                  'invoices', 'service_loading_orders', 'loading_orders', 'service_status_history', 'services',
                  'suppliers', 'clients', 'companies', 'users'):
        op.drop_table(table)
