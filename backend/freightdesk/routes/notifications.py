from __future__ import annotations
from flask import Blueprint, request, abort
from sqlalchemy import select, func, update
from freightdesk import get_db
from freightdesk.models.notification import Notification
from freightdesk.models.base import utcnow
from freightdesk.decorators.auth import require_permission
from freightdesk.services.policy import current_user_id
from freightdesk.utils.filters import apply_filters
from freightdesk.utils.listing import apply_pagination, build_list_payload
from freightdesk.utils.serialize import iso
from freightdesk.utils.validation import parse_bool_arg

notifications_bp = Blueprint('notifications', __name__)


def _notification_json(n: Notification) -> dict:
    return {
        'id': n.id,
        'title': n.title,
        'message': n.message,
        'type': n.type,
        'category': n.category,
        'action_url': n.action_url,
        'action_label': n.action_label,
        'is_read': n.is_read,
        'read_at': iso(n.read_at),
        'created_at': iso(n.created_at),
    }


@notifications_bp.route('', methods=['GET', 'HEAD'])
@require_permission('notifications', 'view')
def list_notifications():
    session = get_db()
    user_id = current_user_id()
    q = session.query(Notification).filter(Notification.user_id == user_id)
    q = apply_filters(q, {
        'unread': {'coerce': parse_bool_arg,
                   'op': lambda qu, v: qu.filter(Notification.is_read.is_(False)) if v else qu},
        'category': {'op': lambda qu, v: qu.filter(Notification.category == v)},
    }, request.args)
    q = q.order_by(Notification.created_at.desc(), Notification.id.desc())
    paged_q, total, limit, offset = apply_pagination(q)
    rows = paged_q.all()
    unread = session.execute(
        select(func.count(Notification.id)).where(Notification.user_id == user_id, Notification.is_read.is_(False))
    ).scalar_one()
    # read state changes without a timestamp bump, so this list carries no ETag
    return build_list_payload([_notification_json(n) for n in rows], total, limit, offset, {'unread_count': unread})


@notifications_bp.post('/<int:notification_id>/read')
@require_permission('notifications', 'manage')
def mark_read(notification_id: int):
    session = get_db()
    n = session.get(Notification, notification_id)
    if not n or n.user_id != current_user_id():
        abort(404, description='Notification not found')
    if not n.is_read:
        n.is_read = True
        n.read_at = utcnow()
        session.commit()
    return _notification_json(n)


@notifications_bp.post('/read-all')
@require_permission('notifications', 'manage')
def mark_all_read():
    session = get_db()
    result = session.execute(
        update(Notification)
        .where(Notification.user_id == current_user_id(), Notification.is_read.is_(False))
        .values(is_read=True, read_at=utcnow())
    )
    session.commit()
    return {'updated': result.rowcount}
