from __future__ import annotations
from datetime import date
from flask import Blueprint, request, abort
from flask_jwt_extended import jwt_required
from sqlalchemy import select
from freightdesk import get_db
from freightdesk.models.service import Service, ServiceStatusHistory
from freightdesk.models.client import Client
from freightdesk.models.supplier import Supplier
from freightdesk.models.user import User
from freightdesk.decorators.auth import require_permission
from freightdesk.services import policy
from freightdesk.services.audit import add_audit
from freightdesk.services.lifecycle import SERVICE_FSM, apply_pricing, change_service_status, record_history
from freightdesk.services.settings import general_setting, number_format, sequence_reset
from freightdesk.utils.export import csv_response
from freightdesk.utils.filters import apply_filters, search_op, date_spec
from freightdesk.utils.listing import apply_pagination, latest_timestamp, list_response, single_response
from freightdesk.utils.money import from_cents
from freightdesk.utils.numbering import next_number
from freightdesk.utils.serialize import iso, model_snapshot, changed_values
from freightdesk.utils.sorting import apply_multi_sort, sort_from_args
from freightdesk.utils.validation import Fields, CURRENCIES

services_bp = Blueprint('services', __name__)

# action -> (target status, required services permission, statuses it may start from; None = whatever the graph allows)
TRANSITIONS = {
    'confirm': (Service.STATUS_CONFIRMED, 'edit', None),
    'unconfirm': (Service.STATUS_DRAFT, 'edit', None),
    'start': (Service.STATUS_IN_PROGRESS, 'edit', (Service.STATUS_CONFIRMED,)),
    'complete': (Service.STATUS_COMPLETED, 'mark_completed', None),
    'cancel': (Service.STATUS_CANCELLED, 'cancel', None),
    'reopen': (Service.STATUS_IN_PROGRESS, 'edit_completed', (Service.STATUS_COMPLETED,)),
    'archive': (Service.STATUS_ARCHIVED, 'archive', None),
}
# permission needed to move a service into each status in bulk
TARGET_PERMISSIONS = {
    Service.STATUS_DRAFT: 'edit',
    Service.STATUS_CONFIRMED: 'edit',
    Service.STATUS_IN_PROGRESS: 'edit',
    Service.STATUS_COMPLETED: 'mark_completed',
    Service.STATUS_CANCELLED: 'cancel',
    Service.STATUS_ARCHIVED: 'archive',
}
UNDELETABLE_STATUSES = (Service.STATUS_INVOICED, Service.STATUS_ARCHIVED)
AUDITED_FIELDS = ('date', 'client_id', 'supplier_id', 'assigned_to', 'description', 'reference', 'origin',
                  'destination', 'distance', 'vehicle_type', 'vehicle_plate', 'driver_name', 'cost_cents',
                  'cost_currency', 'sale_cents', 'sale_currency', 'margin_cents', 'margin_percentage',
                  'cost_vat_rate', 'cost_vat_cents', 'sale_vat_rate', 'sale_vat_cents', 'status', 'notes',
                  'internal_notes')


def _service_json(s: Service) -> dict:
    return {
        'id': s.id,
        'service_number': s.service_number,
        'date': iso(s.date),
        'client_id': s.client_id,
        'client_name': s.client.name if s.client else None,
        'client_code': s.client.client_code if s.client else None,
        'supplier_id': s.supplier_id,
        'supplier_name': s.supplier.name if s.supplier else None,
        'supplier_code': s.supplier.supplier_code if s.supplier else None,
        'created_by': s.created_by,
        'assigned_to': s.assigned_to,
        'description': s.description,
        'reference': s.reference,
        'origin': s.origin,
        'destination': s.destination,
        'distance': s.distance,
        'vehicle_type': s.vehicle_type,
        'vehicle_plate': s.vehicle_plate,
        'driver_name': s.driver_name,
        'cost_amount': from_cents(s.cost_cents),
        'cost_currency': s.cost_currency,
        'sale_amount': from_cents(s.sale_cents),
        'sale_currency': s.sale_currency,
        'margin': from_cents(s.margin_cents),
        'margin_percentage': s.margin_percentage,
        'cost_vat_rate': s.cost_vat_rate,
        'cost_vat_amount': from_cents(s.cost_vat_cents),
        'sale_vat_rate': s.sale_vat_rate,
        'sale_vat_amount': from_cents(s.sale_vat_cents),
        'status': s.status,
        'allowed_transitions': list(SERVICE_FSM.targets(s.status)),
        'completed_at': iso(s.completed_at),
        'cancelled_at': iso(s.cancelled_at),
        'cancellation_reason': s.cancellation_reason,
        'notes': s.notes,
        'internal_notes': s.internal_notes,
        'created_at': iso(s.created_at),
        'updated_at': iso(s.updated_at),
    }


def _history_json(h: ServiceStatusHistory) -> dict:
    return {
        'id': h.id,
        'from_status': h.from_status,
        'to_status': h.to_status,
        'reason': h.reason,
        'changed_by': h.changed_by,
        'changed_at': iso(h.changed_at),
    }


def _audit_snapshot(s: Service) -> dict:
    return {k: v for k, v in model_snapshot(s).items() if k in AUDITED_FIELDS}


def _get_live_service(service_id: int) -> Service:
    s = get_db().get(Service, service_id)
    if not s or s.deleted_at is not None:
        abort(404, description='Service not found')
    return s


def _filtered_query():
    q = (get_db().query(Service)
         .join(Client, Client.id == Service.client_id)
         .join(Supplier, Supplier.id == Service.supplier_id)
         .filter(Service.deleted_at.is_(None)))
    filter_specs = {
        'search': {'op': search_op(Service.service_number, Client.name, Service.driver_name, Service.vehicle_plate)},
        'date_from': date_spec(Service.date, 'gte'),
        'date_to': date_spec(Service.date, 'lte'),
        'status': {'op': lambda qu, v: qu.filter(Service.status == v), 'validate': lambda v: v in Service.ALL_STATUSES},
        'client_id': {'coerce': int, 'op': lambda qu, v: qu.filter(Service.client_id == v)},
        'supplier_id': {'coerce': int, 'op': lambda qu, v: qu.filter(Service.supplier_id == v)},
        'assigned_to': {'coerce': int, 'op': lambda qu, v: qu.filter(Service.assigned_to == v)},
        'driver': {'op': search_op(Service.driver_name)},
    }
    return apply_filters(q, filter_specs, request.args)


@services_bp.route('', methods=['GET', 'HEAD'])
@require_permission('services', 'view')
def list_services():
    q = _filtered_query()
    allowed = {
        'date': Service.date,
        'client': Client.name,
        'supplier': Supplier.name,
        'client_code': Client.client_code,
        'supplier_code': Supplier.supplier_code,
        'driver': Service.driver_name,
        'margin': Service.margin_cents,
        'cost': Service.cost_cents,
        'sale': Service.sale_cents,
        'margin_percentage': Service.margin_percentage,
        'status': Service.status,
        'service_number': Service.service_number,
        'created_at': Service.created_at,
        'id': Service.id,
    }
    q = apply_multi_sort(q, sort_from_args(request.args), allowed, Service.id, default='-date')
    paged_q, total, limit, offset = apply_pagination(q)
    rows = paged_q.all()
    return list_response([_service_json(s) for s in rows], total, limit, offset, latest_timestamp(rows))


@services_bp.get('/options')
@require_permission('services', 'view')
def service_options():
    session = get_db()
    clients = session.execute(
        select(Client.id, Client.name, Client.client_code)
        .where(Client.deleted_at.is_(None), Client.is_active.is_(True)).order_by(Client.name)
    ).all()
    suppliers = session.execute(
        select(Supplier.id, Supplier.name, Supplier.supplier_code, Supplier.vat_rate)
        .where(Supplier.deleted_at.is_(None), Supplier.is_active.is_(True)).order_by(Supplier.name)
    ).all()
    return {
        'clients': [{'id': c.id, 'name': c.name, 'client_code': c.client_code} for c in clients],
        'suppliers': [{'id': s.id, 'name': s.name, 'supplier_code': s.supplier_code, 'vat_rate': s.vat_rate}
                      for s in suppliers],
        'statuses': list(Service.ALL_STATUSES),
    }


@services_bp.get('/export')
@require_permission('services', 'export')
def export_services():
    session = get_db()
    rows = _filtered_query().order_by(Service.date.desc(), Service.id.desc()).all()
    columns = ['Service Number', 'Date', 'Client', 'Supplier', 'Origin', 'Destination', 'Driver', 'Vehicle Plate',
               'Cost', 'Sale', 'Margin', 'Margin %', 'Currency', 'Status']
    lines = [
        [s.service_number, s.date, s.client.name, s.supplier.name, s.origin, s.destination, s.driver_name,
         s.vehicle_plate, from_cents(s.cost_cents), from_cents(s.sale_cents), from_cents(s.margin_cents),
         s.margin_percentage, s.sale_currency, s.status]
        for s in rows
    ]
    add_audit('EXPORT', 'services', 'export', metadata={'count': len(rows), 'filters': dict(request.args)})
    session.commit()
    return csv_response(f'services_export_{date.today().isoformat()}.csv', columns, lines)


def _check_party(f: Fields, values: dict, field: str, model, label: str):
    party_id = values.get(field)
    if f.errors.get(field) or party_id is None:
        return
    party = get_db().get(model, party_id)
    if not party or party.deleted_at is not None or not party.is_active:
        f.error(field, f'{label} not found or inactive')


def _read_payload(f: Fields) -> dict:
    default_vat = general_setting('default_vat_rate')
    default_currency = general_setting('default_currency') or 'EUR'
    fields = {
        'date': lambda: f.date('date', required=True),
        'client_id': lambda: f.int('client_id', required=True, min_value=1),
        'supplier_id': lambda: f.int('supplier_id', required=True, min_value=1),
        'assigned_to': lambda: f.int('assigned_to', min_value=1),
        'description': lambda: f.str('description', required=True, max_len=1000),
        'reference': lambda: f.str('reference', max_len=100),
        'origin': lambda: f.str('origin', required=True, max_len=200),
        'destination': lambda: f.str('destination', required=True, max_len=200),
        'distance': lambda: f.int('distance', min_value=0),
        'vehicle_type': lambda: f.str('vehicle_type', max_len=64),
        'vehicle_plate': lambda: f.str('vehicle_plate', max_len=32, upper=True),
        'driver_name': lambda: f.str('driver_name', max_len=100),
        'cost_cents': lambda: f.money('cost_amount', required=True),
        'cost_currency': lambda: f.choice('cost_currency', CURRENCIES, default=default_currency),
        'sale_cents': lambda: f.money('sale_amount', required=True),
        'sale_currency': lambda: f.choice('sale_currency', CURRENCIES, default=default_currency),
        'cost_vat_rate': lambda: f.number('cost_vat_rate', default=default_vat, min_value=0, max_value=100),
        'sale_vat_rate': lambda: f.number('sale_vat_rate', default=default_vat, min_value=0, max_value=100),
        'notes': lambda: f.str('notes', max_len=2000),
        'internal_notes': lambda: f.str('internal_notes', max_len=2000),
    }
    payload_names = {'cost_cents': 'cost_amount', 'sale_cents': 'sale_amount'}
    out = {name: read() for name, read in fields.items() if f.present(payload_names.get(name, name))}
    _check_party(f, out, 'client_id', Client, 'Client')
    _check_party(f, out, 'supplier_id', Supplier, 'Supplier')
    if out.get('assigned_to') is not None and not f.errors.get('assigned_to'):
        assignee = get_db().get(User, out['assigned_to'])
        if not assignee or assignee.deleted_at is not None or not assignee.is_active:
            f.error('assigned_to', 'Assignee not found or inactive')
    return out


@services_bp.post('')
@require_permission('services', 'create')
def create_service():
    session = get_db()
    f = Fields(request.get_json(silent=True))
    values = _read_payload(f)
    status = f.choice('status', Service.CREATE_STATUSES, default=Service.STATUS_DRAFT)
    f.check()
    user_id = policy.current_user_id()
    on = values['date']
    s = Service(
        service_number=next_number(session, Service.service_number, number_format('service'), on,
                                   reset=sequence_reset()),
        status=status,
        created_by=user_id,
        **values,
    )
    apply_pricing(s)
    session.add(s)
    session.flush()
    record_history(s, None, status, user_id)
    add_audit('CREATE', 'services', s.id, new_values=_audit_snapshot(s),
              metadata={'service_number': s.service_number})
    session.commit()
    return _service_json(s), 201


@services_bp.route('/<int:service_id>', methods=['GET', 'HEAD'])
@require_permission('services', 'view')
def get_service(service_id: int):
    s = _get_live_service(service_id)
    body = _service_json(s)
    body['history'] = [_history_json(h) for h in s.history]
    return single_response(body, s.updated_at)


@services_bp.put('/<int:service_id>')
@require_permission('services', 'edit')
def update_service(service_id: int):
    session = get_db()
    s = _get_live_service(service_id)
    if s.status in Service.LOCKED_STATUSES:
        abort(422, description=f'Services in status {s.status} cannot be edited')
    if s.status == Service.STATUS_COMPLETED and not policy.check_permission('services', 'edit_completed'):
        abort(403, description='Cannot edit completed services')
    policy.require_resource_permission('services', 'edit', s.id)
    f = Fields(request.get_json(silent=True), partial=True)
    if 'status' in f and f.data.get('status') != s.status:
        f.error('status', 'Use the status endpoints to change the status')
    values = _read_payload(f)
    f.check()
    before = _audit_snapshot(s)
    for k, v in values.items():
        setattr(s, k, v)
    apply_pricing(s)
    session.flush()
    old_values, new_values = changed_values(before, _audit_snapshot(s))
    add_audit('UPDATE', 'services', s.id, old_values, new_values)
    session.commit()
    return _service_json(s)


@services_bp.post('/<int:service_id>/<string:action>')
@jwt_required()
def transition_service(service_id: int, action: str):
    if action not in TRANSITIONS:
        abort(404)
    target, permission, sources = TRANSITIONS[action]
    policy.require_permission('services', permission)
    session = get_db()
    s = _get_live_service(service_id)
    if permission == 'edit':
        policy.require_resource_permission('services', 'edit', s.id)
    if sources is not None and s.status not in sources:
        abort(422, description=f'Invalid status transition {s.status} -> {target}')
    reason = None
    if target == Service.STATUS_CANCELLED:
        f = Fields(request.get_json(silent=True))
        reason = f.str('reason', required=True, min_len=3, max_len=500)
        f.check()
    previous = change_service_status(s, target, policy.current_user_id(), reason)
    add_audit('UPDATE', 'services', s.id, {'status': previous}, {'status': target},
              metadata={'transition': action, 'reason': reason})
    session.commit()
    return _service_json(s)


@services_bp.get('/<int:service_id>/history')
@require_permission('services', 'view')
def service_history(service_id: int):
    s = _get_live_service(service_id)
    return {'data': [_history_json(h) for h in s.history]}


def _delete_blocker(s: Service):
    """Reason s cannot be deleted by the caller, or None."""
    if s.status in UNDELETABLE_STATUSES:
        return f'Services in status {s.status} cannot be deleted'
    if s.status == Service.STATUS_COMPLETED and not policy.check_permission('services', 'delete_completed'):
        return 'Cannot delete completed services'
    return None


@services_bp.delete('/<int:service_id>')
@require_permission('services', 'delete')
def delete_service(service_id: int):
    session = get_db()
    s = _get_live_service(service_id)
    if s.status in UNDELETABLE_STATUSES:
        abort(422, description=_delete_blocker(s))
    blocker = _delete_blocker(s)
    if blocker:
        abort(403, description=blocker)
    s.soft_delete()
    add_audit('DELETE', 'services', s.id, old_values=_audit_snapshot(s),
              metadata={'service_number': s.service_number})
    session.commit()
    return '', 204


def _may_move(s: Service, target: str) -> bool:
    if not policy.check_resource_permission('services', 'edit', s.id):
        return False
    # COMPLETED -> IN_PROGRESS is a reopen
    if s.status == Service.STATUS_COMPLETED and target == Service.STATUS_IN_PROGRESS:
        return policy.check_permission('services', TRANSITIONS['reopen'][1])
    return True


@services_bp.post('/bulk-status')
@require_permission('services', 'edit')
def bulk_update_status():
    session = get_db()
    f = Fields(request.get_json(silent=True))
    ids = f.id_list('ids')
    target = f.choice('status', tuple(TARGET_PERMISSIONS), required=True)
    reason = f.str('reason', max_len=500)
    if target == Service.STATUS_CANCELLED and not reason:
        f.error('reason', 'reason is required')
    f.check()
    policy.require_permission('services', TARGET_PERMISSIONS[target])
    user_id = policy.current_user_id()
    rows = {s.id: s for s in session.execute(
        select(Service).where(Service.id.in_(ids), Service.deleted_at.is_(None))
    ).scalars()}
    updated, skipped = [], []
    for sid in ids:
        s = rows.get(sid)
        if s is None:
            skipped.append({'id': sid, 'reason': 'not found'})
        elif not SERVICE_FSM.can_transition(s.status, target):
            skipped.append({'id': sid, 'reason': f'invalid transition {s.status} -> {target}'})
        elif not _may_move(s, target):
            skipped.append({'id': sid, 'reason': 'insufficient permissions'})
        else:
            change_service_status(s, target, user_id, reason)
            updated.append(sid)
    if updated:
        add_audit('UPDATE', 'services', ','.join(str(i) for i in updated), new_values={'status': target},
                  metadata={'bulk': True, 'skipped': skipped})
    session.commit()
    return {'updated': updated, 'skipped': skipped}


@services_bp.post('/bulk-delete')
@require_permission('services', 'delete')
def bulk_delete_services():
    session = get_db()
    f = Fields(request.get_json(silent=True))
    ids = f.id_list('ids')
    f.check()
    rows = {s.id: s for s in session.execute(
        select(Service).where(Service.id.in_(ids), Service.deleted_at.is_(None))
    ).scalars()}
    deleted, skipped = [], []
    for sid in ids:
        s = rows.get(sid)
        blocker = 'not found' if s is None else _delete_blocker(s)
        if blocker:
            skipped.append({'id': sid, 'reason': blocker})
            continue
        s.soft_delete()
        deleted.append(sid)
    if deleted:
        add_audit('DELETE', 'services', ','.join(str(i) for i in deleted), metadata={'bulk': True, 'skipped': skipped})
    session.commit()
    return {'deleted': deleted, 'skipped': skipped}
