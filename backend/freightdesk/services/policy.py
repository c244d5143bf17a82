from __future__ import annotations
from typing import Dict, Iterable, List, Optional, Tuple
from flask import abort
from flask_jwt_extended import get_jwt, get_jwt_identity
from sqlalchemy import select
from freightdesk import get_db
from freightdesk.constants.permissions import has_permission, OPERATOR, permission_code
from freightdesk.models.service import Service
from freightdesk.models.invoice import Invoice
from freightdesk.models.loading_order import LoadingOrder

# Statuses an operator may no longer touch even with services:edit
OPERATOR_LOCKED_SERVICE_STATUSES = (Service.STATUS_COMPLETED, Service.STATUS_INVOICED)


def current_role() -> Optional[str]:
    claims = get_jwt()
    return claims.get('role')


def current_user_id() -> Optional[int]:
    ident = get_jwt_identity()
    return int(ident) if ident is not None else None


def check_permission(resource: str, action: str) -> bool:
    return has_permission(current_role(), resource, action)


def require_permission(resource: str, action: str):
    if not check_permission(resource, action):
        abort(403, description=f'Insufficient permissions: {permission_code(resource, action)} required')
    return True


def check_multiple_permissions(checks: Iterable[Tuple[str, str]]) -> Dict[str, bool]:
    role = current_role()
    return {permission_code(r, a): has_permission(role, r, a) for r, a in checks}


def has_any_permission(checks: Iterable[Tuple[str, str]]) -> bool:
    return any(check_multiple_permissions(checks).values())


def has_all_permissions(checks: Iterable[Tuple[str, str]]) -> bool:
    results = check_multiple_permissions(checks)
    return bool(results) and all(results.values())


def require_role(*roles: str):
    if current_role() not in roles:
        abort(403, description='Insufficient role')
    return True


def check_resource_ownership(resource: str, record_id: int, user_id: Optional[int] = None) -> bool:
    """Whether user_id (default: caller) owns the record.

    services: creator or assignee; invoices: creator; loading_orders: generator.
    Unknown resources are never owned.
    """
    user_id = user_id if user_id is not None else current_user_id()
    if user_id is None:
        return False
    session = get_db()
    if resource == 'services':
        svc = session.get(Service, record_id)
        return bool(svc) and user_id in (svc.created_by, svc.assigned_to)
    if resource == 'invoices':
        inv = session.get(Invoice, record_id)
        return bool(inv) and inv.created_by == user_id
    if resource == 'loading_orders':
        lo = session.get(LoadingOrder, record_id)
        return bool(lo) and lo.generated_by == user_id
    return False


def check_resource_permission(resource: str, action: str, record_id: Optional[int] = None) -> bool:
    if not check_permission(resource, action):
        return False
    if record_id is None:
        return True
    if resource == 'services' and action == 'edit' and current_role() == OPERATOR:
        status = get_db().execute(select(Service.status).where(Service.id == record_id)).scalar_one_or_none()
        if status in OPERATOR_LOCKED_SERVICE_STATUSES:
            return False
    return True


def require_resource_permission(resource: str, action: str, record_id: Optional[int] = None):
    if not check_resource_permission(resource, action, record_id):
        abort(403, description=f'Insufficient permissions: {permission_code(resource, action)} required')
    return True


def parse_checks(raw: Optional[str]) -> List[Tuple[str, str]]:
    """``services:edit,invoices:view`` -> [('services','edit'), ('invoices','view')]."""
    out = []
    for token in (raw or '').split(','):
        token = token.strip()
        if not token:
            continue
        if ':' not in token:
            abort(400, description=f'Invalid permission check {token}')
        resource, action = token.split(':', 1)
        out.append((resource, action))
    return out
