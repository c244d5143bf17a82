from __future__ import annotations
from datetime import date
from flask import Blueprint, request, abort
from sqlalchemy import select, func, cast, String
from freightdesk import get_db
from freightdesk.config.defaults import CLIENT_CODE_FORMAT
from freightdesk.models.client import Client
from freightdesk.models.service import Service
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
from freightdesk.utils.validation import Fields, CURRENCIES, PHONE_RE, VAT_RE, parse_bool_arg

clients_bp = Blueprint('clients', __name__)

ACTIVE_SERVICE_STATUSES = (Service.STATUS_DRAFT, Service.STATUS_CONFIRMED, Service.STATUS_IN_PROGRESS)
DONE_SERVICE_STATUSES = (Service.STATUS_COMPLETED, Service.STATUS_INVOICED)
LANGUAGES = ('es', 'en', 'fr', 'de', 'it', 'pt')


def _client_json(c: Client) -> dict:
    return {
        'id': c.id,
        'client_code': c.client_code,
        'name': c.name,
        'trade_name': c.trade_name,
        'vat_number': c.vat_number,
        'billing_address': c.billing_address,
        'shipping_address': c.shipping_address,
        'billing_email': c.billing_email,
        'traffic_email': c.traffic_email,
        'contact_person': c.contact_person,
        'contact_phone': c.contact_phone,
        'contact_mobile': c.contact_mobile,
        'credit_limit': from_cents(c.credit_limit_cents),
        'payment_terms': c.payment_terms,
        'discount': c.discount,
        'currency': c.currency,
        'language': c.language,
        'send_reminders': c.send_reminders,
        'auto_invoice': c.auto_invoice,
        'notes': c.notes,
        'tags': c.tags or [],
        'is_active': c.is_active,
        'created_at': iso(c.created_at),
        'updated_at': iso(c.updated_at),
    }


def _get_live_client(client_id: int) -> Client:
    c = get_db().get(Client, client_id)
    if not c or c.deleted_at is not None:
        abort(404, description='Client not found')
    return c


def _client_stats(client_id: int) -> dict:
    rows = get_db().execute(
        select(Service.status, Service.sale_cents, Service.cost_cents, Service.margin_cents,
               Service.margin_percentage, Service.date)
        .where(Service.client_id == client_id, Service.deleted_at.is_(None))
    ).all()
    total = len(rows)
    return {
        'total_services': total,
        'active_services': sum(1 for r in rows if r.status in ACTIVE_SERVICE_STATUSES),
        'completed_services': sum(1 for r in rows if r.status in DONE_SERVICE_STATUSES),
        'cancelled_services': sum(1 for r in rows if r.status == Service.STATUS_CANCELLED),
        'total_revenue': from_cents(sum(r.sale_cents or 0 for r in rows)),
        'total_cost': from_cents(sum(r.cost_cents or 0 for r in rows)),
        'total_margin': from_cents(sum(r.margin_cents or 0 for r in rows)),
        'average_margin_percentage': round(sum(r.margin_percentage or 0 for r in rows) / total, 2) if total else 0,
        'last_service_date': iso(max((r.date for r in rows), default=None)),
    }


def _filtered_query():
    session = get_db()
    q = session.query(Client).filter(Client.deleted_at.is_(None))
    filter_specs = {
        'search': {'op': search_op(Client.name, Client.trade_name, Client.client_code, Client.vat_number,
                                   Client.billing_email)},
        'country': {'op': lambda qu, v: qu.filter(Client.billing_address['country'].as_string() == v.upper())},
        'is_active': {'coerce': parse_bool_arg, 'op': lambda qu, v: qu.filter(Client.is_active.is_(v))},
        'currency': {'op': lambda qu, v: qu.filter(Client.currency == v), 'validate': lambda v: v in CURRENCIES},
        # tags are a JSON list; match the quoted entry in its serialized form
        'tag': {'op': lambda qu, v: qu.filter(cast(Client.tags, String).like(f'%"{v}"%'))},
    }
    return apply_filters(q, filter_specs, request.args)


@clients_bp.route('', methods=['GET', 'HEAD'])
@require_permission('clients', 'view')
def list_clients():
    q = _filtered_query()
    allowed = {
        'name': Client.name,
        'client_code': Client.client_code,
        'vat_number': Client.vat_number,
        'payment_terms': Client.payment_terms,
        'created_at': Client.created_at,
        'updated_at': Client.updated_at,
        'id': Client.id,
    }
    q = apply_multi_sort(q, sort_from_args(request.args), allowed, Client.id, default='name')
    paged_q, total, limit, offset = apply_pagination(q)
    rows = paged_q.all()
    return list_response([_client_json(c) for c in rows], total, limit, offset, latest_timestamp(rows))


@clients_bp.get('/countries')
@require_permission('clients', 'view')
def list_countries():
    addresses = get_db().execute(
        select(Client.billing_address).where(Client.deleted_at.is_(None))
    ).scalars()
    countries = {a.get('country') for a in addresses if isinstance(a, dict) and a.get('country')}
    return {'data': sorted(countries)}


@clients_bp.get('/export')
@require_permission('clients', 'export')
def export_clients():
    session = get_db()
    rows = _filtered_query().order_by(Client.name.asc(), Client.id.asc()).all()
    counts = dict(session.execute(
        select(Service.client_id, func.count(Service.id)).where(Service.deleted_at.is_(None)).group_by(Service.client_id)
    ).all())
    columns = ['Client Code', 'Name', 'Trade Name', 'VAT Number', 'Billing Email', 'Traffic Email', 'Contact Person',
               'Phone', 'Mobile', 'Address', 'City', 'Postal Code', 'Country', 'Currency', 'Payment Terms',
               'Credit Limit', 'Discount %', 'Active', 'Services Count', 'Created At']
    lines = []
    for c in rows:
        addr = c.billing_address or {}
        lines.append([
            c.client_code, c.name, c.trade_name, c.vat_number, c.billing_email, c.traffic_email, c.contact_person,
            c.contact_phone, c.contact_mobile, ', '.join(p for p in (addr.get('line1'), addr.get('line2')) if p),
            addr.get('city'), addr.get('postal_code'), addr.get('country'), c.currency, c.payment_terms,
            from_cents(c.credit_limit_cents), c.discount, 'Yes' if c.is_active else 'No', counts.get(c.id, 0),
            c.created_at.date() if c.created_at else None,
        ])
    add_audit('EXPORT', 'clients', 'export', metadata={'count': len(rows), 'filters': dict(request.args)})
    session.commit()
    return csv_response(f'clients_export_{date.today().isoformat()}.csv', columns, lines)


@clients_bp.route('/<int:client_id>', methods=['GET', 'HEAD'])
@require_permission('clients', 'view')
def get_client(client_id: int):
    c = _get_live_client(client_id)
    body = _client_json(c)
    body['stats'] = _client_stats(c.id)
    return single_response(body, c.updated_at)


@clients_bp.get('/<int:client_id>/dependencies')
@require_permission('clients', 'view')
def client_dependencies(client_id: int):
    _get_live_client(client_id)
    count = get_db().execute(
        select(func.count(Service.id)).where(
            Service.client_id == client_id,
            Service.deleted_at.is_(None),
            Service.status != Service.STATUS_CANCELLED,
        )
    ).scalar_one()
    return {'has_services': count > 0, 'services_count': count}


@clients_bp.route('/<int:client_id>/services', methods=['GET', 'HEAD'])
@require_permission('clients', 'view')
def client_services(client_id: int):
    _get_live_client(client_id)
    q = get_db().query(Service).filter(Service.client_id == client_id, Service.deleted_at.is_(None))
    q = apply_filters(q, {
        'status': {'op': lambda qu, v: qu.filter(Service.status == v), 'validate': lambda v: v in Service.ALL_STATUSES},
    }, request.args)
    q = q.order_by(Service.date.desc(), Service.id.desc())
    paged_q, total, limit, offset = apply_pagination(q)
    rows = paged_q.all()
    data = [
        {
            'id': s.id,
            'service_number': s.service_number,
            'date': iso(s.date),
            'origin': s.origin,
            'destination': s.destination,
            'status': s.status,
            'sale_amount': from_cents(s.sale_cents),
            'margin': from_cents(s.margin_cents),
            'margin_percentage': s.margin_percentage,
        }
        for s in rows
    ]
    return list_response(data, total, limit, offset, latest_timestamp(rows))


def _read_payload(f: Fields, client: Client = None) -> dict:
    out = {}
    if f.present('name'):
        out['name'] = f.str('name', required=True, min_len=2, max_len=200)
    if f.present('trade_name'):
        out['trade_name'] = f.str('trade_name', max_len=200)
    if f.present('vat_number'):
        required = client is None and bool(general_setting('require_client_vat'))
        out['vat_number'] = f.str('vat_number', required=required, max_len=32, upper=True, pattern=VAT_RE,
                                  message='Invalid VAT number format')
    if f.present('billing_address'):
        out['billing_address'] = f.address('billing_address', required=True)
    if f.present('shipping_address'):
        out['shipping_address'] = f.address('shipping_address')
    if f.present('billing_email'):
        out['billing_email'] = f.email('billing_email', required=True)
    if f.present('traffic_email'):
        out['traffic_email'] = f.email('traffic_email')
    if f.present('contact_person'):
        out['contact_person'] = f.str('contact_person', max_len=100)
    if f.present('contact_phone'):
        out['contact_phone'] = f.str('contact_phone', pattern=PHONE_RE, message='Invalid phone number')
    if f.present('contact_mobile'):
        out['contact_mobile'] = f.str('contact_mobile', pattern=PHONE_RE, message='Invalid phone number')
    if f.present('credit_limit'):
        out['credit_limit_cents'] = f.money('credit_limit')
    if f.present('payment_terms'):
        out['payment_terms'] = f.int('payment_terms', default=30, min_value=0, max_value=365)
    if f.present('discount'):
        out['discount'] = f.number('discount', min_value=0, max_value=100)
    if f.present('currency'):
        out['currency'] = f.choice('currency', CURRENCIES, default=general_setting('default_currency') or 'EUR')
    if f.present('language'):
        out['language'] = f.choice('language', LANGUAGES, default='es')
    if f.present('send_reminders'):
        out['send_reminders'] = f.bool('send_reminders', default=True)
    if f.present('auto_invoice'):
        out['auto_invoice'] = f.bool('auto_invoice', default=False)
    if f.present('notes'):
        out['notes'] = f.str('notes', max_len=2000)
    if f.present('tags'):
        out['tags'] = f.str_list('tags', default=[])
    if f.present('is_active'):
        out['is_active'] = f.bool('is_active', default=True)
    f.check()
    return out


def _assert_vat_free(vat_number, exclude_id=None):
    if not vat_number:
        return
    q = select(Client.id).where(Client.vat_number == vat_number, Client.deleted_at.is_(None))
    if exclude_id is not None:
        q = q.where(Client.id != exclude_id)
    if get_db().execute(q).first():
        abort(409, description='A client with this VAT number already exists')


@clients_bp.post('')
@require_permission('clients', 'create')
@audit_log('CREATE', 'clients', new_value_keys=['client_code', 'name', 'vat_number', 'billing_email'])
def create_client():
    session = get_db()
    values = _read_payload(Fields(request.get_json(silent=True)))
    _assert_vat_free(values.get('vat_number'))
    c = Client(client_code=next_number(session, Client.client_code, CLIENT_CODE_FORMAT), **values)
    session.add(c)
    session.flush()
    return _client_json(c), 201


@clients_bp.put('/<int:client_id>')
@require_permission('clients', 'edit')
def update_client(client_id: int):
    session = get_db()
    c = _get_live_client(client_id)
    values = _read_payload(Fields(request.get_json(silent=True), partial=True), client=c)
    if values.get('vat_number') and values['vat_number'] != c.vat_number:
        _assert_vat_free(values['vat_number'], exclude_id=c.id)
    before = model_snapshot(c)
    for k, v in values.items():
        setattr(c, k, v)
    session.flush()
    old_values, new_values = changed_values(before, model_snapshot(c, exclude=('updated_at',)))
    add_audit('UPDATE', 'clients', c.id, old_values, new_values)
    session.commit()
    return _client_json(c)


@clients_bp.delete('/<int:client_id>')
@require_permission('clients', 'delete')
def delete_client(client_id: int):
    session = get_db()
    c = _get_live_client(client_id)
    services_count = session.execute(
        select(func.count(Service.id)).where(Service.client_id == c.id, Service.deleted_at.is_(None))
    ).scalar_one()
    before = model_snapshot(c)
    c.soft_delete()
    add_audit('DELETE', 'clients', c.id, old_values=before, metadata={'services_count': services_count})
    session.commit()
    return '', 204


@clients_bp.post('/bulk-delete')
@require_permission('clients', 'delete')
def bulk_delete_clients():
    session = get_db()
    f = Fields(request.get_json(silent=True))
    ids = f.id_list('ids')
    f.check()
    rows = session.execute(select(Client).where(Client.id.in_(ids), Client.deleted_at.is_(None))).scalars().all()
    for c in rows:
        c.soft_delete()
    add_audit('DELETE', 'clients', 'bulk', metadata={'ids': ids, 'count': len(rows)})
    session.commit()
    return {'deleted': len(rows)}
