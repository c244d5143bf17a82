from __future__ import annotations
from datetime import date, datetime, time, timedelta
from flask import Blueprint, request
from sqlalchemy import cast, String
from freightdesk import get_db
from freightdesk.models.audit import AuditLog, AUDIT_ACTIONS
from freightdesk.decorators.auth import require_permission
from freightdesk.services.audit import add_audit
from freightdesk.utils.export import csv_response
from freightdesk.utils.filters import apply_filters, search_op
from freightdesk.utils.listing import apply_pagination, latest_timestamp, list_response
from freightdesk.utils.serialize import iso
from freightdesk.utils.sorting import apply_multi_sort, sort_from_args
from freightdesk.utils.validation import parse_date

audit_bp = Blueprint('audit', __name__)

EXPORT_LIMIT = 10000


def _log_json(log: AuditLog) -> dict:
    return {
        'id': log.id,
        'user_id': log.user_id,
        'action': log.action,
        'table_name': log.table_name,
        'record_id': log.record_id,
        'old_values': log.old_values,
        'new_values': log.new_values,
        'ip_address': log.ip_address,
        'user_agent': log.user_agent,
        'metadata': log.meta,
        'created_at': iso(log.created_at),
    }


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min)


def _filtered_query():
    q = get_db().query(AuditLog)
    filter_specs = {
        'user_id': {'coerce': int, 'op': lambda qu, v: qu.filter(AuditLog.user_id == v)},
        'action': {'op': lambda qu, v: qu.filter(AuditLog.action == v), 'validate': lambda v: v in AUDIT_ACTIONS},
        'table_name': {'op': lambda qu, v: qu.filter(AuditLog.table_name == v)},
        'record_id': {'op': lambda qu, v: qu.filter(AuditLog.record_id == v)},
        # created_at is a timestamp; date_to covers the whole day
        'date_from': {'coerce': parse_date, 'op': lambda qu, v: qu.filter(AuditLog.created_at >= _day_start(v))},
        'date_to': {'coerce': parse_date,
                    'op': lambda qu, v: qu.filter(AuditLog.created_at < _day_start(v + timedelta(days=1)))},
        'search': {'op': search_op(AuditLog.table_name, AuditLog.record_id, cast(AuditLog.new_values, String),
                                   cast(AuditLog.old_values, String))},
    }
    return apply_filters(q, filter_specs, request.args)


@audit_bp.route('/logs', methods=['GET', 'HEAD'])
@require_permission('audit_logs', 'view')
def list_logs():
    q = _filtered_query()
    allowed = {
        'created_at': AuditLog.created_at,
        'action': AuditLog.action,
        'table_name': AuditLog.table_name,
        'user_id': AuditLog.user_id,
        'id': AuditLog.id,
    }
    q = apply_multi_sort(q, sort_from_args(request.args), allowed, AuditLog.id, default='-created_at')
    paged_q, total, limit, offset = apply_pagination(q)
    rows = paged_q.all()
    return list_response([_log_json(r) for r in rows], total, limit, offset, latest_timestamp(rows, 'created_at'))


@audit_bp.get('/logs/export')
@require_permission('audit_logs', 'export')
def export_logs():
    session = get_db()
    rows = _filtered_query().order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(EXPORT_LIMIT).all()
    columns = ['ID', 'Created At', 'User ID', 'Action', 'Table', 'Record ID', 'IP Address', 'User Agent']
    lines = [[r.id, r.created_at, r.user_id, r.action, r.table_name, r.record_id, r.ip_address, r.user_agent]
             for r in rows]
    add_audit('EXPORT', 'audit_logs', 'export', metadata={'count': len(rows), 'filters': dict(request.args)})
    session.commit()
    return csv_response(f'audit_logs_{date.today().isoformat()}.csv', columns, lines)
