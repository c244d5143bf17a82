from __future__ import annotations
import logging
from datetime import timedelta
from flask import Blueprint, request, abort
from sqlalchemy import select, func
from freightdesk import get_db
from freightdesk.constants.permissions import ADMIN, ADMIN_ROLES, ROLES, SUPER_ADMIN, role_display_name
from freightdesk.models.user import User
from freightdesk.models.service import Service
from freightdesk.models.invoice import Invoice
from freightdesk.models.audit import AuditLog
from freightdesk.models.base import utcnow
from freightdesk.decorators.auth import require_permission, require_role
from freightdesk.decorators.audit import audit_log
from freightdesk.services.audit import add_audit
from freightdesk.services.notifications import notify
from freightdesk.services.policy import current_user_id, current_role
from freightdesk.utils.filters import apply_filters, search_op
from freightdesk.utils.listing import apply_pagination, latest_timestamp, list_response, single_response
from freightdesk.utils.sorting import apply_multi_sort, sort_from_args
from freightdesk.utils.serialize import iso
from freightdesk.utils.validation import Fields, PHONE_RE, parse_bool_arg

logger = logging.getLogger(__name__)

users_bp = Blueprint('users', __name__)

USER_MANAGERS = (SUPER_ADMIN, ADMIN)
EDITABLE_FIELDS = ('name', 'role', 'department', 'phone', 'is_active')


def user_json(u: User) -> dict:
    return {
        'id': u.id,
        'name': u.name,
        'email': u.email,
        'role': u.role,
        'role_name': role_display_name(u.role),
        'phone': u.phone,
        'department': u.department,
        'is_active': u.is_active,
        'last_login_at': iso(u.last_login_at),
        'password_changed_at': iso(u.password_changed_at),
        'created_at': iso(u.created_at),
        'updated_at': iso(u.updated_at),
    }


def _get_live_user(user_id: int) -> User:
    u = get_db().get(User, user_id)
    if not u or u.deleted_at is not None:
        abort(404, description='User not found')
    return u


def _guard_super_admin(target: User):
    if target.role == SUPER_ADMIN and current_role() != SUPER_ADMIN:
        abort(403, description='Only super administrators can modify super admin accounts')


def _user_stats(session) -> dict:
    live = User.deleted_at.is_(None)
    since = utcnow() - timedelta(hours=24)
    return {
        'total': session.execute(select(func.count(User.id)).where(live)).scalar_one(),
        'active': session.execute(select(func.count(User.id)).where(live, User.is_active.is_(True))).scalar_one(),
        'admins': session.execute(select(func.count(User.id)).where(live, User.role.in_(ADMIN_ROLES))).scalar_one(),
        'recently_active': session.execute(
            select(func.count(User.id)).where(live, User.last_login_at >= since)
        ).scalar_one(),
    }


@users_bp.route('', methods=['GET', 'HEAD'])
@require_permission('users', 'view')
@require_role(*USER_MANAGERS)
def list_users():
    session = get_db()
    q = session.query(User).filter(User.deleted_at.is_(None))
    filter_specs = {
        'search': {'op': search_op(User.name, User.email)},
        'role': {'op': lambda qu, v: qu.filter(User.role == v), 'validate': lambda v: v in ROLES},
        'is_active': {'coerce': parse_bool_arg, 'op': lambda qu, v: qu.filter(User.is_active.is_(v))},
        'department': {'op': lambda qu, v: qu.filter(User.department == v)},
    }
    q = apply_filters(q, filter_specs, request.args)
    allowed = {
        'name': User.name,
        'email': User.email,
        'role': User.role,
        'last_login_at': User.last_login_at,
        'created_at': User.created_at,
        'id': User.id,
    }
    q = apply_multi_sort(q, sort_from_args(request.args), allowed, User.id, default='-created_at')
    paged_q, total, limit, offset = apply_pagination(q)
    rows = paged_q.all()
    return list_response([user_json(u) for u in rows], total, limit, offset, latest_timestamp(rows),
                         extra={'stats': _user_stats(session)})


@users_bp.route('/<int:user_id>', methods=['GET', 'HEAD'])
@require_permission('users', 'view')
@require_role(*USER_MANAGERS)
def get_user(user_id: int):
    session = get_db()
    u = _get_live_user(user_id)
    body = user_json(u)
    body['counts'] = {
        'services': session.execute(select(func.count(Service.id)).where(Service.created_by == u.id)).scalar_one(),
        'invoices': session.execute(select(func.count(Invoice.id)).where(Invoice.created_by == u.id)).scalar_one(),
        'audit_logs': session.execute(select(func.count(AuditLog.id)).where(AuditLog.user_id == u.id)).scalar_one(),
    }
    return single_response(body, u.updated_at)


@users_bp.post('')
@require_permission('users', 'create')
@require_role(*USER_MANAGERS)
@audit_log('CREATE', 'users', new_value_keys=['email', 'name', 'role'])
def create_user():
    session = get_db()
    f = Fields(request.get_json(silent=True))
    name = f.str('name', required=True, min_len=2, max_len=100)
    email = f.email('email', required=True)
    password = f.str('password', required=True, min_len=8, max_len=128)
    role = f.choice('role', ROLES, required=True)
    phone = f.str('phone', pattern=PHONE_RE, message='Invalid phone number')
    department = f.str('department', max_len=100)
    f.check()
    if role == SUPER_ADMIN and current_role() != SUPER_ADMIN:
        abort(403, description='Only super administrators can create super admin accounts')
    if session.execute(select(User.id).where(func.lower(User.email) == email)).first():
        abort(409, description='A user with this email already exists')
    u = User(name=name, email=email, role=role, phone=phone, department=department, is_active=True)
    u.set_password(password)
    u.password_changed_at = utcnow()
    session.add(u)
    session.flush()
    logger.info('user %s created with role %s', u.email, u.role)
    return user_json(u), 201


@users_bp.put('/<int:user_id>')
@require_permission('users', 'edit')
@require_role(*USER_MANAGERS)
def update_user(user_id: int):
    session = get_db()
    u = _get_live_user(user_id)
    _guard_super_admin(u)
    f = Fields(request.get_json(silent=True), partial=True)
    changes = {}
    if f.present('name'):
        changes['name'] = f.str('name', required=True, min_len=2, max_len=100)
    if f.present('role'):
        changes['role'] = f.choice('role', ROLES, required=True)
    if f.present('department'):
        changes['department'] = f.str('department', max_len=100)
    if f.present('phone'):
        changes['phone'] = f.str('phone', pattern=PHONE_RE, message='Invalid phone number')
    if f.present('is_active'):
        changes['is_active'] = f.bool('is_active', default=u.is_active)
    f.check()
    if 'role' in changes and changes['role'] != u.role:
        if u.id == current_user_id():
            abort(403, description='You cannot change your own role')
        if changes['role'] == SUPER_ADMIN and current_role() != SUPER_ADMIN:
            abort(403, description='Only super administrators can grant the super admin role')
    before = {k: getattr(u, k) for k in EDITABLE_FIELDS}
    for k, v in changes.items():
        setattr(u, k, v)
    after = {k: getattr(u, k) for k in EDITABLE_FIELDS}
    old_values = {k: before[k] for k in EDITABLE_FIELDS if before[k] != after[k]}
    new_values = {k: after[k] for k in old_values}
    if before['role'] != after['role'] or (before['is_active'] and not after['is_active']):
        u.revoke_tokens()
    session.flush()
    add_audit('UPDATE', 'users', u.id, old_values, new_values)
    session.commit()
    return user_json(u)


@users_bp.delete('/<int:user_id>')
@require_permission('users', 'delete')
@require_role(SUPER_ADMIN)
def delete_user(user_id: int):
    session = get_db()
    u = _get_live_user(user_id)
    if u.id == current_user_id():
        abort(403, description='You cannot delete your own account')
    if u.role == SUPER_ADMIN:
        abort(403, description='Cannot delete super administrator accounts')
    u.soft_delete()
    u.is_active = False
    u.revoke_tokens()
    add_audit('DELETE', 'users', u.id, old_values={'email': u.email, 'name': u.name, 'role': u.role})
    session.commit()
    logger.info('user %s deleted by %s', u.email, current_user_id())
    return '', 204


@users_bp.post('/<int:user_id>/reset-password')
@require_permission('users', 'edit')
@require_role(*USER_MANAGERS)
def reset_password(user_id: int):
    session = get_db()
    u = _get_live_user(user_id)
    _guard_super_admin(u)
    f = Fields(request.get_json(silent=True))
    password = f.str('password', required=True, min_len=8, max_len=128)
    f.check()
    u.set_password(password)
    u.password_changed_at = utcnow()
    u.revoke_tokens()
    add_audit('UPDATE', 'users', u.id, new_values={'action': 'password_reset_by_admin'})
    notify(u.id, 'Password reset', 'Your password was reset by an administrator.', 'security',
           type='warning')
    session.commit()
    return {'id': u.id, 'password_reset': True}


@users_bp.post('/<int:user_id>/toggle-status')
@require_permission('users', 'edit')
@require_role(*USER_MANAGERS)
def toggle_status(user_id: int):
    session = get_db()
    u = _get_live_user(user_id)
    if u.id == current_user_id():
        abort(403, description='You cannot change your own status')
    _guard_super_admin(u)
    previous = u.is_active
    u.is_active = not previous
    if previous:
        u.revoke_tokens()
    add_audit('UPDATE', 'users', u.id, old_values={'is_active': previous}, new_values={'is_active': u.is_active})
    session.commit()
    return user_json(u)
