from __future__ import annotations
import logging
from typing import Any, Dict, Optional
from flask import request, has_request_context
from flask_jwt_extended import get_jwt_identity
from freightdesk import get_db
from freightdesk.models.audit import AuditLog, AUDIT_ACTIONS
from freightdesk.models.base import utcnow
from freightdesk.utils.serialize import json_safe

logger = logging.getLogger(__name__)


def _caller_id() -> Optional[int]:
    try:
        ident = get_jwt_identity()
    except RuntimeError:
        # no JWT verified in this context (login, scripts)
        return None
    return int(ident) if ident is not None else None


def _client_ip() -> Optional[str]:
    forwarded = request.headers.get('X-Forwarded-For', '')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.headers.get('X-Real-IP') or request.remote_addr


def add_audit(
    action: str,
    table_name: str,
    record_id: Any,
    old_values: Optional[Dict[str, Any]] = None,
    new_values: Optional[Dict[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
    user_id: Optional[int] = None,
):
    """Persist an audit log entry within the current DB session.

    Parameters:
      action: one of AUDIT_ACTIONS (CREATE, UPDATE, DELETE, RESTORE, LOGIN, LOGOUT, EXPORT, IMPORT)
      table_name: affected table, e.g. services
      record_id: primary key (or comma separated keys for bulk operations)
      old_values / new_values: snapshots, converted to JSON-safe values
      metadata: extra context; always receives a ``timestamp``
      user_id: actor, defaults to the JWT identity of the request
    """
    if action not in AUDIT_ACTIONS:
        raise ValueError(f'unknown audit action {action}')
    meta = dict(metadata or {})
    meta.setdefault('timestamp', utcnow().isoformat() + 'Z')
    ip_address = user_agent = None
    if has_request_context():
        ip_address = _client_ip()
        user_agent = (request.headers.get('User-Agent') or '')[:255] or None
    log = AuditLog(
        user_id=user_id if user_id is not None else _caller_id(),
        action=action,
        table_name=table_name,
        record_id=str(record_id),
        old_values=json_safe(old_values) if old_values is not None else None,
        new_values=json_safe(new_values) if new_values is not None else None,
        ip_address=ip_address,
        user_agent=user_agent,
        meta=json_safe(meta),
    )
    get_db().add(log)
    logger.debug('audit %s %s:%s', action, table_name, record_id)
    # No commit here; caller's transaction boundary controls durability.
    return log
