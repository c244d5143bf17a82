from __future__ import annotations
"""Status lifecycles of services and invoices, plus service pricing.

Both route modules move services between states (invoicing pushes them to
INVOICED, cancelling an invoice brings them back), so the graphs and the
history bookkeeping live here rather than in a single blueprint.
"""
import logging
from typing import Optional
from freightdesk import get_db
from freightdesk.models.base import utcnow
from freightdesk.models.invoice import Invoice
from freightdesk.models.service import Service, ServiceStatusHistory
from freightdesk.services.notifications import notify
from freightdesk.utils.fsm import TransitionValidator
from freightdesk.utils.money import margin, percent_of

logger = logging.getLogger(__name__)

SERVICE_FSM = TransitionValidator({
    Service.STATUS_DRAFT: {Service.STATUS_CONFIRMED, Service.STATUS_CANCELLED},
    Service.STATUS_CONFIRMED: {Service.STATUS_IN_PROGRESS, Service.STATUS_DRAFT, Service.STATUS_CANCELLED},
    Service.STATUS_IN_PROGRESS: {Service.STATUS_COMPLETED, Service.STATUS_CANCELLED},
    Service.STATUS_COMPLETED: {Service.STATUS_IN_PROGRESS, Service.STATUS_INVOICED, Service.STATUS_ARCHIVED},
    Service.STATUS_INVOICED: {Service.STATUS_ARCHIVED, Service.STATUS_COMPLETED},
    Service.STATUS_CANCELLED: {Service.STATUS_ARCHIVED},
    Service.STATUS_ARCHIVED: set(),
})

INVOICE_FSM = TransitionValidator({
    Invoice.STATUS_DRAFT: {Invoice.STATUS_SENT, Invoice.STATUS_CANCELLED},
    Invoice.STATUS_SENT: {Invoice.STATUS_VIEWED, Invoice.STATUS_PAID, Invoice.STATUS_OVERDUE, Invoice.STATUS_CANCELLED},
    Invoice.STATUS_VIEWED: {Invoice.STATUS_PAID, Invoice.STATUS_OVERDUE, Invoice.STATUS_CANCELLED},
    Invoice.STATUS_OVERDUE: {Invoice.STATUS_PAID, Invoice.STATUS_CANCELLED},
    Invoice.STATUS_PAID: set(),
    Invoice.STATUS_CANCELLED: set(),
})


def apply_pricing(svc: Service):
    """Recompute margin and VAT amounts from cost/sale cents and rates."""
    svc.margin_cents, svc.margin_percentage = margin(svc.cost_cents or 0, svc.sale_cents or 0)
    svc.cost_vat_cents = percent_of(svc.cost_cents or 0, svc.cost_vat_rate or 0)
    svc.sale_vat_cents = percent_of(svc.sale_cents or 0, svc.sale_vat_rate or 0)


def record_history(svc: Service, from_status: Optional[str], to_status: str, user_id: int,
                   reason: Optional[str] = None) -> ServiceStatusHistory:
    row = ServiceStatusHistory(service_id=svc.id, from_status=from_status, to_status=to_status,
                               reason=reason, changed_by=user_id, changed_at=utcnow())
    get_db().add(row)
    return row


def change_service_status(svc: Service, target: str, user_id: int, reason: Optional[str] = None) -> str:
    """Move svc to target (422 when the graph forbids it); returns the previous status."""
    previous = svc.status
    SERVICE_FSM.assert_can_transition(previous, target)
    svc.status = target
    if target == Service.STATUS_COMPLETED:
        svc.completed_at = utcnow()
    elif target == Service.STATUS_CANCELLED:
        svc.cancelled_at = utcnow()
        svc.cancellation_reason = reason
    elif target == Service.STATUS_IN_PROGRESS and previous == Service.STATUS_COMPLETED:
        # reopened
        svc.completed_at = None
    record_history(svc, previous, target, user_id, reason)
    if target == Service.STATUS_COMPLETED and svc.created_by and svc.created_by != user_id:
        notify(svc.created_by, 'Service completed', f'Service {svc.service_number} was marked as completed.',
               'service', type='success', action_url=f'/services/{svc.id}', action_label='View service')
    logger.debug('service %s %s -> %s', svc.service_number, previous, target)
    return previous


__all__ = ['SERVICE_FSM', 'INVOICE_FSM', 'apply_pricing', 'record_history', 'change_service_status']
