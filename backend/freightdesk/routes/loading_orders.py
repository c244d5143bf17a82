from __future__ import annotations
from flask import Blueprint, request, abort
from sqlalchemy import select
from freightdesk import get_db
from freightdesk.models.loading_order import LoadingOrder, ServiceLoadingOrder
from freightdesk.models.service import Service
from freightdesk.decorators.auth import require_permission
from freightdesk.decorators.audit import audit_log
from freightdesk.services import policy
from freightdesk.services.audit import add_audit
from freightdesk.services.settings import number_format, sequence_reset
from freightdesk.utils.filters import apply_filters, search_op
from freightdesk.utils.listing import apply_pagination, latest_timestamp, list_response, single_response
from freightdesk.utils.money import from_cents
from freightdesk.utils.numbering import next_number
from freightdesk.utils.serialize import iso
from freightdesk.utils.sorting import apply_multi_sort, sort_from_args
from freightdesk.utils.validation import Fields

lo_bp = Blueprint('loading_orders', __name__)


def _lo_json(lo: LoadingOrder, with_services: bool = False) -> dict:
    body = {
        'id': lo.id,
        'order_number': lo.order_number,
        'generated_at': iso(lo.generated_at),
        'generated_by': lo.generated_by,
        'client_id': lo.client_id,
        'notes': lo.notes,
        'service_count': len(lo.items),
        'created_at': iso(lo.created_at),
        'updated_at': iso(lo.updated_at),
    }
    if with_services:
        body['services'] = [
            {
                'position': item.position,
                'service_id': item.service_id,
                'service_number': item.service.service_number,
                'date': iso(item.service.date),
                'origin': item.service.origin,
                'destination': item.service.destination,
                'driver_name': item.service.driver_name,
                'vehicle_plate': item.service.vehicle_plate,
                'sale_amount': from_cents(item.service.sale_cents),
                'status': item.service.status,
            }
            for item in lo.items
        ]
    return body


def _get_live_order(order_id: int) -> LoadingOrder:
    lo = get_db().get(LoadingOrder, order_id)
    if not lo or lo.deleted_at is not None:
        abort(404, description='Loading order not found')
    return lo


@lo_bp.route('', methods=['GET', 'HEAD'])
@require_permission('loading_orders', 'view')
def list_loading_orders():
    q = get_db().query(LoadingOrder).filter(LoadingOrder.deleted_at.is_(None))
    filter_specs = {
        'search': {'op': search_op(LoadingOrder.order_number, LoadingOrder.notes)},
        'client_id': {'coerce': int, 'op': lambda qu, v: qu.filter(LoadingOrder.client_id == v)},
        'service_id': {'coerce': int, 'op': lambda qu, v: qu.filter(
            LoadingOrder.items.any(ServiceLoadingOrder.service_id == v))},
    }
    q = apply_filters(q, filter_specs, request.args)
    allowed = {
        'order_number': LoadingOrder.order_number,
        'generated_at': LoadingOrder.generated_at,
        'id': LoadingOrder.id,
    }
    q = apply_multi_sort(q, sort_from_args(request.args), allowed, LoadingOrder.id, default='-generated_at')
    paged_q, total, limit, offset = apply_pagination(q)
    rows = paged_q.all()
    return list_response([_lo_json(lo) for lo in rows], total, limit, offset, latest_timestamp(rows))


@lo_bp.post('')
@require_permission('loading_orders', 'create')
@audit_log('CREATE', 'loading_orders', new_value_keys=['order_number', 'client_id', 'service_count'])
def create_loading_order():
    session = get_db()
    f = Fields(request.get_json(silent=True))
    ids = f.id_list('service_ids')
    notes = f.str('notes', max_len=2000)
    if len(set(ids)) != len(ids):
        f.error('service_ids', 'service_ids must not contain duplicates')
    f.check()
    services = {s.id: s for s in session.execute(
        select(Service).where(Service.id.in_(ids), Service.deleted_at.is_(None))
    ).scalars()}
    missing = [i for i in ids if i not in services]
    if missing:
        abort(404, description=f'Services not found: {", ".join(str(i) for i in missing)}')
    cancelled = [services[i].service_number for i in ids if services[i].status == Service.STATUS_CANCELLED]
    if cancelled:
        abort(422, description=f'Cancelled services cannot be loaded: {", ".join(cancelled)}')
    client_ids = {s.client_id for s in services.values()}
    lo = LoadingOrder(
        order_number=next_number(session, LoadingOrder.order_number, number_format('loading_order'),
                                 reset=sequence_reset()),
        generated_by=policy.current_user_id(),
        client_id=client_ids.pop() if len(client_ids) == 1 else None,
        notes=notes,
    )
    for position, sid in enumerate(ids, start=1):
        lo.items.append(ServiceLoadingOrder(service_id=sid, position=position))
    session.add(lo)
    session.flush()
    return _lo_json(lo, with_services=True), 201


@lo_bp.route('/<int:order_id>', methods=['GET', 'HEAD'])
@require_permission('loading_orders', 'view')
def get_loading_order(order_id: int):
    lo = _get_live_order(order_id)
    return single_response(_lo_json(lo, with_services=True), lo.updated_at)


@lo_bp.put('/<int:order_id>')
@require_permission('loading_orders', 'edit')
def update_loading_order(order_id: int):
    session = get_db()
    lo = _get_live_order(order_id)
    f = Fields(request.get_json(silent=True))
    notes = f.str('notes', max_len=2000)
    f.check()
    previous = lo.notes
    lo.notes = notes
    session.flush()
    add_audit('UPDATE', 'loading_orders', lo.id, {'notes': previous}, {'notes': notes})
    session.commit()
    return _lo_json(lo, with_services=True)


@lo_bp.delete('/<int:order_id>')
@require_permission('loading_orders', 'delete')
def delete_loading_order(order_id: int):
    session = get_db()
    lo = _get_live_order(order_id)
    lo.soft_delete()
    add_audit('DELETE', 'loading_orders', lo.id, old_values={'order_number': lo.order_number},
              metadata={'service_ids': [item.service_id for item in lo.items]})
    session.commit()
    return '', 204
