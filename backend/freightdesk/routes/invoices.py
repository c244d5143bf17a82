from __future__ import annotations
import logging
from datetime import date, timedelta
from flask import Blueprint, request, abort
from sqlalchemy import select
from freightdesk import get_db
from freightdesk.models.invoice import (
    Invoice, InvoiceItem, Payment, PAYMENT_COMPLETED, PAYMENT_PROCESSING, PAYMENT_STATUSES, PAYMENT_METHODS,
)
from freightdesk.models.service import Service
from freightdesk.models.supplier import Supplier
from freightdesk.models.base import utcnow
from freightdesk.decorators.auth import require_permission
from freightdesk.services import policy
from freightdesk.services.audit import add_audit
from freightdesk.services.lifecycle import INVOICE_FSM, change_service_status
from freightdesk.services.settings import number_format, sequence_reset
from freightdesk.utils.filters import apply_filters, search_op, date_spec
from freightdesk.utils.listing import apply_pagination, latest_timestamp, list_response, single_response
from freightdesk.utils.money import from_cents, percent_of
from freightdesk.utils.numbering import next_number
from freightdesk.utils.serialize import iso
from freightdesk.utils.sorting import apply_multi_sort, sort_from_args
from freightdesk.utils.validation import Fields

logger = logging.getLogger(__name__)

invoices_bp = Blueprint('invoices', __name__)


def _item_json(item: InvoiceItem) -> dict:
    return {
        'id': item.id,
        'service_id': item.service_id,
        'description': item.description,
        'quantity': item.quantity,
        'unit_price': from_cents(item.unit_price_cents),
        'amount': from_cents(item.amount_cents),
        'tax_rate': item.tax_rate,
        'tax_amount': from_cents(item.tax_cents),
    }


def _payment_json(p: Payment) -> dict:
    return {
        'id': p.id,
        'payment_number': p.payment_number,
        'invoice_id': p.invoice_id,
        'amount': from_cents(p.amount_cents),
        'currency': p.currency,
        'payment_date': iso(p.payment_date),
        'payment_method': p.payment_method,
        'reference': p.reference,
        'status': p.status,
        'notes': p.notes,
        'created_by': p.created_by,
        'created_at': iso(p.created_at),
    }


def _invoice_json(inv: Invoice, detail: bool = False) -> dict:
    body = {
        'id': inv.id,
        'invoice_number': inv.invoice_number,
        'invoice_date': iso(inv.invoice_date),
        'due_date': iso(inv.due_date),
        'supplier_id': inv.supplier_id,
        'supplier_name': inv.supplier.name if inv.supplier else None,
        'subtotal': from_cents(inv.subtotal_cents),
        'tax_amount': from_cents(inv.tax_cents),
        'irpf_rate': inv.irpf_rate,
        'irpf_amount': from_cents(inv.irpf_cents),
        'total': from_cents(inv.total_cents),
        'currency': inv.currency,
        'status': inv.status,
        'payment_status': inv.payment_status,
        'paid_amount': from_cents(inv.paid_amount_cents),
        'outstanding': from_cents(inv.outstanding_cents),
        'paid_at': iso(inv.paid_at),
        'sent_at': iso(inv.sent_at),
        'sent_to': inv.sent_to,
        'viewed_at': iso(inv.viewed_at),
        'description': inv.description,
        'notes': inv.notes,
        'created_by': inv.created_by,
        'created_at': iso(inv.created_at),
        'updated_at': iso(inv.updated_at),
    }
    if detail:
        body['items'] = [_item_json(i) for i in inv.items]
        body['payments'] = [_payment_json(p) for p in inv.payments]
    return body


def _get_live_invoice(invoice_id: int) -> Invoice:
    inv = get_db().get(Invoice, invoice_id)
    if not inv or inv.deleted_at is not None:
        abort(404, description='Invoice not found')
    return inv


def _release_services(inv: Invoice, reason: str, detach: bool = False, release: bool = True):
    """Return invoiced services of inv to COMPLETED; detach also unlinks the items.

    A cancelled invoice already released its services, which may since sit on a newer invoice,
    so deleting it only detaches (release=False).
    """
    user_id = policy.current_user_id()
    for item in inv.items:
        if item.service_id is None:
            continue
        svc = get_db().get(Service, item.service_id)
        if release and svc is not None and svc.status == Service.STATUS_INVOICED:
            change_service_status(svc, Service.STATUS_COMPLETED, user_id, reason)
        if detach:
            item.service_id = None


@invoices_bp.route('', methods=['GET', 'HEAD'])
@require_permission('invoices', 'view')
def list_invoices():
    q = (get_db().query(Invoice)
         .join(Supplier, Supplier.id == Invoice.supplier_id)
         .filter(Invoice.deleted_at.is_(None)))
    filter_specs = {
        'search': {'op': search_op(Invoice.invoice_number, Supplier.name)},
        'status': {'op': lambda qu, v: qu.filter(Invoice.status == v), 'validate': lambda v: v in Invoice.ALL_STATUSES},
        'payment_status': {'op': lambda qu, v: qu.filter(Invoice.payment_status == v),
                           'validate': lambda v: v in PAYMENT_STATUSES},
        'supplier_id': {'coerce': int, 'op': lambda qu, v: qu.filter(Invoice.supplier_id == v)},
        'date_from': date_spec(Invoice.invoice_date, 'gte'),
        'date_to': date_spec(Invoice.invoice_date, 'lte'),
    }
    q = apply_filters(q, filter_specs, request.args)
    allowed = {
        'invoice_date': Invoice.invoice_date,
        'due_date': Invoice.due_date,
        'invoice_number': Invoice.invoice_number,
        'supplier': Supplier.name,
        'total': Invoice.total_cents,
        'status': Invoice.status,
        'id': Invoice.id,
    }
    q = apply_multi_sort(q, sort_from_args(request.args), allowed, Invoice.id, default='-invoice_date')
    paged_q, total, limit, offset = apply_pagination(q)
    rows = paged_q.all()
    return list_response([_invoice_json(i) for i in rows], total, limit, offset, latest_timestamp(rows))


@invoices_bp.post('')
@require_permission('invoices', 'create')
@require_permission('services', 'mark_billed')
def create_invoice():
    session = get_db()
    f = Fields(request.get_json(silent=True))
    ids = f.id_list('service_ids')
    invoice_date = f.date('invoice_date', default=date.today())
    description = f.str('description', max_len=1000)
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
    ordered = [services[i] for i in ids]
    not_completed = [s.service_number for s in ordered if s.status != Service.STATUS_COMPLETED]
    if not_completed:
        abort(422, description=f'Only completed services can be invoiced: {", ".join(not_completed)}')
    already = session.execute(
        select(InvoiceItem.service_id)
        .join(Invoice, Invoice.id == InvoiceItem.invoice_id)
        .where(InvoiceItem.service_id.in_(ids), Invoice.deleted_at.is_(None),
               Invoice.status != Invoice.STATUS_CANCELLED)
    ).scalars().all()
    if already:
        abort(409, description=f'Services already invoiced: {", ".join(str(i) for i in sorted(set(already)))}')
    supplier_ids = {s.supplier_id for s in ordered}
    if len(supplier_ids) != 1:
        abort(422, description='All services must belong to the same supplier')
    supplier = session.get(Supplier, supplier_ids.pop())

    inv = Invoice(
        invoice_number=next_number(session, Invoice.invoice_number, number_format('invoice'), invoice_date,
                                   reset=sequence_reset()),
        invoice_date=invoice_date,
        due_date=invoice_date + timedelta(days=supplier.payment_terms or 0),
        supplier_id=supplier.id,
        created_by=policy.current_user_id(),
        currency=supplier.currency,
        irpf_rate=supplier.irpf_rate or 0.0,
        description=description,
        notes=notes,
    )
    for s in ordered:
        inv.items.append(InvoiceItem(
            service_id=s.id,
            description=f'{s.service_number}: {s.origin} - {s.destination}',
            quantity=1,
            unit_price_cents=s.cost_cents,
            amount_cents=s.cost_cents,
            tax_rate=s.cost_vat_rate,
            tax_cents=percent_of(s.cost_cents, s.cost_vat_rate),
        ))
    inv.subtotal_cents = sum(i.amount_cents for i in inv.items)
    inv.tax_cents = sum(i.tax_cents for i in inv.items)
    inv.irpf_cents = percent_of(inv.subtotal_cents, inv.irpf_rate)
    inv.total_cents = inv.subtotal_cents + inv.tax_cents - inv.irpf_cents
    session.add(inv)
    session.flush()
    for s in ordered:
        change_service_status(s, Service.STATUS_INVOICED, inv.created_by, f'Invoiced on {inv.invoice_number}')
    add_audit('CREATE', 'invoices', inv.id,
              new_values={'invoice_number': inv.invoice_number, 'supplier_id': inv.supplier_id,
                          'total_cents': inv.total_cents},
              metadata={'service_ids': ids})
    session.commit()
    logger.info('invoice %s created for supplier %s with %d services', inv.invoice_number, supplier.id, len(ids))
    return _invoice_json(inv, detail=True), 201


@invoices_bp.route('/<int:invoice_id>', methods=['GET', 'HEAD'])
@require_permission('invoices', 'view')
def get_invoice(invoice_id: int):
    inv = _get_live_invoice(invoice_id)
    return single_response(_invoice_json(inv, detail=True), inv.updated_at)


@invoices_bp.put('/<int:invoice_id>')
@require_permission('invoices', 'edit')
def update_invoice(invoice_id: int):
    session = get_db()
    inv = _get_live_invoice(invoice_id)
    if inv.status != Invoice.STATUS_DRAFT:
        abort(422, description='Only draft invoices can be edited')
    f = Fields(request.get_json(silent=True), partial=True)
    changes = {}
    if f.present('due_date'):
        changes['due_date'] = f.date('due_date', required=True)
        if changes['due_date'] and changes['due_date'] < inv.invoice_date:
            f.error('due_date', 'due_date cannot be before invoice_date')
    if f.present('description'):
        changes['description'] = f.str('description', max_len=1000)
    if f.present('notes'):
        changes['notes'] = f.str('notes', max_len=2000)
    f.check()
    old_values, new_values = {}, {}
    for k, v in changes.items():
        if getattr(inv, k) != v:
            old_values[k], new_values[k] = getattr(inv, k), v
            setattr(inv, k, v)
    session.flush()
    add_audit('UPDATE', 'invoices', inv.id, old_values, new_values)
    session.commit()
    return _invoice_json(inv, detail=True)


def _transition(inv: Invoice, target: str, metadata: dict = None):
    previous = inv.status
    INVOICE_FSM.assert_can_transition(previous, target)
    inv.status = target
    add_audit('UPDATE', 'invoices', inv.id, {'status': previous}, {'status': target}, metadata=metadata)


@invoices_bp.post('/<int:invoice_id>/send')
@require_permission('invoices', 'send')
def send_invoice(invoice_id: int):
    session = get_db()
    inv = _get_live_invoice(invoice_id)
    f = Fields(request.get_json(silent=True))
    sent_to = f.email('sent_to', default=inv.supplier.email if inv.supplier else None)
    f.check()
    _transition(inv, Invoice.STATUS_SENT, {'sent_to': sent_to})
    inv.sent_at = utcnow()
    inv.sent_to = sent_to
    session.commit()
    return _invoice_json(inv)


@invoices_bp.post('/<int:invoice_id>/mark-viewed')
@require_permission('invoices', 'edit')
def mark_viewed(invoice_id: int):
    session = get_db()
    inv = _get_live_invoice(invoice_id)
    _transition(inv, Invoice.STATUS_VIEWED)
    inv.viewed_at = utcnow()
    session.commit()
    return _invoice_json(inv)


@invoices_bp.post('/<int:invoice_id>/mark-overdue')
@require_permission('invoices', 'edit')
def mark_overdue(invoice_id: int):
    session = get_db()
    inv = _get_live_invoice(invoice_id)
    INVOICE_FSM.assert_can_transition(inv.status, Invoice.STATUS_OVERDUE)
    if inv.due_date >= date.today():
        abort(422, description='Invoice is not past its due date')
    _transition(inv, Invoice.STATUS_OVERDUE)
    session.commit()
    return _invoice_json(inv)


@invoices_bp.post('/<int:invoice_id>/cancel')
@require_permission('invoices', 'approve')
def cancel_invoice(invoice_id: int):
    session = get_db()
    inv = _get_live_invoice(invoice_id)
    INVOICE_FSM.assert_can_transition(inv.status, Invoice.STATUS_CANCELLED)
    if inv.paid_amount_cents:
        abort(422, description='Invoices with registered payments cannot be cancelled')
    f = Fields(request.get_json(silent=True))
    reason = f.str('reason', max_len=500)
    f.check()
    _transition(inv, Invoice.STATUS_CANCELLED, {'reason': reason})
    _release_services(inv, f'Invoice {inv.invoice_number} cancelled')
    session.commit()
    return _invoice_json(inv, detail=True)


@invoices_bp.delete('/<int:invoice_id>')
@require_permission('invoices', 'delete')
def delete_invoice(invoice_id: int):
    session = get_db()
    inv = _get_live_invoice(invoice_id)
    if inv.status not in (Invoice.STATUS_DRAFT, Invoice.STATUS_CANCELLED):
        abort(422, description='Only draft or cancelled invoices can be deleted')
    service_ids = [i.service_id for i in inv.items if i.service_id is not None]
    _release_services(inv, f'Invoice {inv.invoice_number} deleted', detach=True,
                      release=inv.status == Invoice.STATUS_DRAFT)
    inv.soft_delete()
    add_audit('DELETE', 'invoices', inv.id, old_values={'invoice_number': inv.invoice_number, 'status': inv.status},
              metadata={'service_ids': service_ids})
    session.commit()
    return '', 204


@invoices_bp.get('/<int:invoice_id>/payments')
@require_permission('payments', 'view')
def list_payments(invoice_id: int):
    inv = _get_live_invoice(invoice_id)
    return {'data': [_payment_json(p) for p in inv.payments], 'outstanding': from_cents(inv.outstanding_cents)}


@invoices_bp.post('/<int:invoice_id>/payments')
@require_permission('payments', 'create')
def register_payment(invoice_id: int):
    session = get_db()
    inv = _get_live_invoice(invoice_id)
    f = Fields(request.get_json(silent=True))
    amount = f.money('amount', required=True, min_cents=1)
    payment_date = f.date('payment_date', default=date.today())
    method = f.choice('payment_method', PAYMENT_METHODS, required=True)
    reference = f.str('reference', max_len=100)
    notes = f.str('notes', max_len=2000)
    f.check()
    if inv.status not in Invoice.PAYABLE_STATUSES:
        abort(422, description=f'Payments cannot be registered on {inv.status.lower()} invoices')
    if amount > inv.outstanding_cents:
        abort(422, description='Payment exceeds the outstanding balance')
    payment = Payment(
        payment_number=next_number(session, Payment.payment_number, number_format('payment'), payment_date,
                                   reset=sequence_reset()),
        amount_cents=amount,
        currency=inv.currency,
        payment_date=payment_date,
        payment_method=method,
        reference=reference,
        notes=notes,
        created_by=policy.current_user_id(),
    )
    inv.payments.append(payment)
    inv.paid_amount_cents = (inv.paid_amount_cents or 0) + amount
    if inv.paid_amount_cents >= inv.total_cents:
        _transition(inv, Invoice.STATUS_PAID, {'payment_number': payment.payment_number})
        inv.payment_status = PAYMENT_COMPLETED
        inv.paid_at = utcnow()
    else:
        inv.payment_status = PAYMENT_PROCESSING
    session.flush()
    add_audit('CREATE', 'payments', payment.id,
              new_values={'payment_number': payment.payment_number, 'amount_cents': amount, 'invoice_id': inv.id})
    session.commit()
    return {'payment': _payment_json(payment), 'invoice': _invoice_json(inv)}, 201
