from __future__ import annotations
from datetime import date
from flask import Blueprint, request, abort
from sqlalchemy import select, func, cast, String
from freightdesk import get_db
from freightdesk.config.defaults import SUPPLIER_CODE_FORMAT
from freightdesk.models.supplier import Supplier
from freightdesk.models.service import Service
from freightdesk.models.invoice import Invoice, PAYMENT_METHODS
from freightdesk.decorators.auth import require_permission
from freightdesk.decorators.audit import audit_log
from freightdesk.services.audit import add_audit
from freightdesk.services.settings import general_setting
from freightdesk.utils.export import csv_response
from freightdesk.utils.filters import apply_filters, search_op
from freightdesk.utils.listing import apply_pagination, latest_timestamp, list_response, single_response
from freightdesk.utils.money import from_cents
from freightdesk.utils.numbering import next_number
from freightdesk.utils.serialize import iso, model_snapshot, changed_values
from freightdesk.utils.sorting import apply_multi_sort, sort_from_args
from freightdesk.utils.validation import Fields, CURRENCIES, IBAN_RE, PHONE_RE, VAT_RE, parse_bool_arg

suppliers_bp = Blueprint('suppliers', __name__)


def _supplier_json(s: Supplier) -> dict:
    return {
        'id': s.id,
        'supplier_code': s.supplier_code,
        'name': s.name,
        'trade_name': s.trade_name,
        'vat_number': s.vat_number,
        'address_line1': s.address_line1,
        'address_line2': s.address_line2,
        'city': s.city,
        'state': s.state,
        'postal_code': s.postal_code,
        'country': s.country,
        'email': s.email,
        'phone': s.phone,
        'contact_person': s.contact_person,
        'contact_mobile': s.contact_mobile,
        'irpf_rate': s.irpf_rate,
        'vat_rate': s.vat_rate,
        'payment_terms': s.payment_terms,
        'payment_method': s.payment_method,
        'bank_name': s.bank_name,
        'bank_account': s.bank_account,
        'swift_code': s.swift_code,
        'iban': s.iban,
        'currency': s.currency,
        'auto_approve': s.auto_approve,
        'require_po': s.require_po,
        'notes': s.notes,
        'tags': s.tags or [],
        'is_active': s.is_active,
        'created_at': iso(s.created_at),
        'updated_at': iso(s.updated_at),
    }


def _get_live_supplier(supplier_id: int) -> Supplier:
    s = get_db().get(Supplier, supplier_id)
    if not s or s.deleted_at is not None:
        abort(404, description='Supplier not found')
    return s


def _filtered_query():
    q = get_db().query(Supplier).filter(Supplier.deleted_at.is_(None))
    filter_specs = {
        'search': {'op': search_op(Supplier.name, Supplier.trade_name, Supplier.supplier_code, Supplier.vat_number,
                                   Supplier.email)},
        'country': {'op': lambda qu, v: qu.filter(Supplier.country == v.upper())},
        'is_active': {'coerce': parse_bool_arg, 'op': lambda qu, v: qu.filter(Supplier.is_active.is_(v))},
        'currency': {'op': lambda qu, v: qu.filter(Supplier.currency == v), 'validate': lambda v: v in CURRENCIES},
        'tag': {'op': lambda qu, v: qu.filter(cast(Supplier.tags, String).like(f'%"{v}"%'))},
    }
    return apply_filters(q, filter_specs, request.args)


@suppliers_bp.route('', methods=['GET', 'HEAD'])
@require_permission('suppliers', 'view')
def list_suppliers():
    q = _filtered_query()
    allowed = {
        'name': Supplier.name,
        'supplier_code': Supplier.supplier_code,
        'country': Supplier.country,
        'payment_terms': Supplier.payment_terms,
        'created_at': Supplier.created_at,
        'updated_at': Supplier.updated_at,
        'id': Supplier.id,
    }
    q = apply_multi_sort(q, sort_from_args(request.args), allowed, Supplier.id, default='name')
    paged_q, total, limit, offset = apply_pagination(q)
    rows = paged_q.all()
    return list_response([_supplier_json(s) for s in rows], total, limit, offset, latest_timestamp(rows))


@suppliers_bp.get('/export')
@require_permission('suppliers', 'export')
def export_suppliers():
    session = get_db()
    rows = _filtered_query().order_by(Supplier.name.asc(), Supplier.id.asc()).all()
    counts = dict(session.execute(
        select(Service.supplier_id, func.count(Service.id)).where(Service.deleted_at.is_(None))
        .group_by(Service.supplier_id)
    ).all())
    columns = ['Supplier Code', 'Name', 'Trade Name', 'VAT Number', 'Email', 'Phone', 'Contact Person', 'Address',
               'City', 'Postal Code', 'Country', 'Currency', 'Payment Terms', 'Payment Method', 'VAT %', 'IRPF %',
               'Active', 'Services Count', 'Created At']
    lines = [
        [s.supplier_code, s.name, s.trade_name, s.vat_number, s.email, s.phone, s.contact_person,
         ', '.join(p for p in (s.address_line1, s.address_line2) if p), s.city, s.postal_code, s.country,
         s.currency, s.payment_terms, s.payment_method, s.vat_rate, s.irpf_rate, 'Yes' if s.is_active else 'No',
         counts.get(s.id, 0), s.created_at.date() if s.created_at else None]
        for s in rows
    ]
    add_audit('EXPORT', 'suppliers', 'export', metadata={'count': len(rows), 'filters': dict(request.args)})
    session.commit()
    return csv_response(f'suppliers_export_{date.today().isoformat()}.csv', columns, lines)


@suppliers_bp.route('/<int:supplier_id>', methods=['GET', 'HEAD'])
@require_permission('suppliers', 'view')
def get_supplier(supplier_id: int):
    session = get_db()
    s = _get_live_supplier(supplier_id)
    count, cost = session.execute(
        select(func.count(Service.id), func.coalesce(func.sum(Service.cost_cents), 0))
        .where(Service.supplier_id == s.id, Service.deleted_at.is_(None))
    ).one()
    invoiced = session.execute(
        select(func.coalesce(func.sum(Invoice.total_cents), 0))
        .where(Invoice.supplier_id == s.id, Invoice.deleted_at.is_(None), Invoice.status != Invoice.STATUS_CANCELLED)
    ).scalar_one()
    body = _supplier_json(s)
    body['stats'] = {
        'total_services': count,
        'total_cost': from_cents(int(cost)),
        'total_invoiced': from_cents(int(invoiced)),
    }
    return single_response(body, s.updated_at)


@suppliers_bp.get('/<int:supplier_id>/dependencies')
@require_permission('suppliers', 'view')
def supplier_dependencies(supplier_id: int):
    _get_live_supplier(supplier_id)
    count = get_db().execute(
        select(func.count(Service.id)).where(
            Service.supplier_id == supplier_id,
            Service.deleted_at.is_(None),
            Service.status != Service.STATUS_CANCELLED,
        )
    ).scalar_one()
    return {'has_services': count > 0, 'services_count': count}


def _read_payload(f: Fields) -> dict:
    fields = {
        'name': lambda: f.str('name', required=True, min_len=2, max_len=200),
        'trade_name': lambda: f.str('trade_name', max_len=200),
        'vat_number': lambda: f.str('vat_number', max_len=32, upper=True, pattern=VAT_RE,
                                    message='Invalid VAT number format'),
        'address_line1': lambda: f.str('address_line1', required=True, max_len=200),
        'address_line2': lambda: f.str('address_line2', max_len=200),
        'city': lambda: f.str('city', required=True, max_len=100),
        'state': lambda: f.str('state', max_len=100),
        'postal_code': lambda: f.str('postal_code', required=True, max_len=20),
        'country': lambda: f.str('country', default='ES', min_len=2, max_len=2, upper=True),
        'email': lambda: f.email('email', required=True),
        'phone': lambda: f.str('phone', pattern=PHONE_RE, message='Invalid phone number'),
        'contact_person': lambda: f.str('contact_person', max_len=100),
        'contact_mobile': lambda: f.str('contact_mobile', pattern=PHONE_RE, message='Invalid phone number'),
        'irpf_rate': lambda: f.number('irpf_rate', min_value=0, max_value=100),
        'vat_rate': lambda: f.number('vat_rate', default=general_setting('default_vat_rate'), min_value=0,
                                     max_value=100),
        'payment_terms': lambda: f.int('payment_terms', default=30, min_value=0, max_value=365),
        'payment_method': lambda: f.choice('payment_method', PAYMENT_METHODS),
        'bank_name': lambda: f.str('bank_name', max_len=100),
        'bank_account': lambda: f.str('bank_account', max_len=64),
        'swift_code': lambda: f.str('swift_code', max_len=16, upper=True),
        'iban': lambda: f.str('iban', max_len=40, upper=True, pattern=IBAN_RE, message='Invalid IBAN'),
        'currency': lambda: f.choice('currency', CURRENCIES, default=general_setting('default_currency') or 'EUR'),
        'auto_approve': lambda: f.bool('auto_approve', default=False),
        'require_po': lambda: f.bool('require_po', default=False),
        'notes': lambda: f.str('notes', max_len=2000),
        'tags': lambda: f.str_list('tags', default=[]),
        'is_active': lambda: f.bool('is_active', default=True),
    }
    out = {name: read() for name, read in fields.items() if f.present(name)}
    f.check()
    return out


def _assert_vat_free(vat_number, exclude_id=None):
    if not vat_number:
        return
    q = select(Supplier.id).where(Supplier.vat_number == vat_number, Supplier.deleted_at.is_(None))
    if exclude_id is not None:
        q = q.where(Supplier.id != exclude_id)
    if get_db().execute(q).first():
        abort(409, description='A supplier with this VAT number already exists')


@suppliers_bp.post('')
@require_permission('suppliers', 'create')
@audit_log('CREATE', 'suppliers', new_value_keys=['supplier_code', 'name', 'vat_number', 'email'])
def create_supplier():
    session = get_db()
    values = _read_payload(Fields(request.get_json(silent=True)))
    _assert_vat_free(values.get('vat_number'))
    s = Supplier(supplier_code=next_number(session, Supplier.supplier_code, SUPPLIER_CODE_FORMAT), **values)
    session.add(s)
    session.flush()
    return _supplier_json(s), 201


@suppliers_bp.put('/<int:supplier_id>')
@require_permission('suppliers', 'edit')
def update_supplier(supplier_id: int):
    session = get_db()
    s = _get_live_supplier(supplier_id)
    values = _read_payload(Fields(request.get_json(silent=True), partial=True))
    if values.get('vat_number') and values['vat_number'] != s.vat_number:
        _assert_vat_free(values['vat_number'], exclude_id=s.id)
    before = model_snapshot(s)
    for k, v in values.items():
        setattr(s, k, v)
    session.flush()
    old_values, new_values = changed_values(before, model_snapshot(s, exclude=('updated_at',)))
    add_audit('UPDATE', 'suppliers', s.id, old_values, new_values)
    session.commit()
    return _supplier_json(s)


@suppliers_bp.delete('/<int:supplier_id>')
@require_permission('suppliers', 'delete')
def delete_supplier(supplier_id: int):
    session = get_db()
    s = _get_live_supplier(supplier_id)
    services_count = session.execute(
        select(func.count(Service.id)).where(Service.supplier_id == s.id, Service.deleted_at.is_(None))
    ).scalar_one()
    before = model_snapshot(s)
    s.soft_delete()
    add_audit('DELETE', 'suppliers', s.id, old_values=before, metadata={'services_count': services_count})
    session.commit()
    return '', 204


@suppliers_bp.post('/bulk-delete')
@require_permission('suppliers', 'delete')
def bulk_delete_suppliers():
    session = get_db()
    f = Fields(request.get_json(silent=True))
    ids = f.id_list('ids')
    f.check()
    rows = session.execute(select(Supplier).where(Supplier.id.in_(ids), Supplier.deleted_at.is_(None))).scalars().all()
    for s in rows:
        s.soft_delete()
    add_audit('DELETE', 'suppliers', 'bulk', metadata={'ids': ids, 'count': len(rows)})
    session.commit()
    return {'deleted': len(rows)}
