from __future__ import annotations
import logging
from flask import Blueprint, request, abort
from flask_jwt_extended import jwt_required, get_jwt
from sqlalchemy import select, func
from freightdesk import get_db
from freightdesk.constants.permissions import role_permissions, accessible_resources
from freightdesk.models.user import User
from freightdesk.models.base import utcnow
from freightdesk.services.audit import add_audit
from freightdesk.services.auth import issue_token, login_limiter, limiter_key
from freightdesk.services.policy import current_user_id, check_multiple_permissions, parse_checks
from freightdesk.routes.users import user_json
from freightdesk.utils.validation import Fields

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)


def _current_user() -> User:
    u = get_db().get(User, current_user_id())
    if not u or u.deleted_at is not None:
        abort(401, description='Session is no longer valid')
    return u


@auth_bp.post('/login')
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    if not email or not password:
        abort(400, description='email and password required')
    key = limiter_key(email, request.remote_addr)
    allowed, retry_after = login_limiter.check(key)
    if not allowed:
        abort(429, description=f'Too many login attempts, retry in {retry_after} seconds')
    session = get_db()
    user = session.execute(select(User).where(func.lower(User.email) == email)).scalar_one_or_none()
    if not user or user.deleted_at is not None or not user.verify_password(password):
        login_limiter.record_failure(key)
        logger.info('failed login for %s from %s', email, request.remote_addr)
        abort(401, description='Invalid credentials')
    if not user.is_active:
        logger.info('login refused for inactive user %s', email)
        abort(401, description='Invalid credentials')
    login_limiter.reset(key)
    user.last_login_at = utcnow()
    user.last_login_ip = request.remote_addr
    add_audit('LOGIN', 'users', user.id, metadata={'email': user.email}, user_id=user.id)
    session.commit()
    return {'access_token': issue_token(user), 'user': user_json(user)}


@auth_bp.get('/me')
@jwt_required()
def me():
    user = _current_user()
    body = user_json(user)
    body['permissions'] = role_permissions(user.role)
    body['accessible_resources'] = accessible_resources(user.role)
    return body


@auth_bp.post('/logout')
@jwt_required()
def logout():
    session = get_db()
    user = _current_user()
    # every outstanding token of this user stops validating
    user.revoke_tokens()
    add_audit('LOGOUT', 'users', user.id, user_id=user.id)
    session.commit()
    return '', 204


@auth_bp.post('/change-password')
@jwt_required()
def change_password():
    session = get_db()
    user = _current_user()
    f = Fields(request.get_json(silent=True))
    current = f.str('current_password', required=True)
    new = f.str('new_password', required=True, min_len=8, max_len=128)
    confirm = f.str('confirm_password', required=True)
    f.check()
    if not user.verify_password(current):
        abort(400, description='Current password is incorrect')
    if new == current:
        abort(400, description='New password must be different from the current password')
    if new != confirm:
        abort(400, description='Passwords do not match')
    user.set_password(new)
    user.password_changed_at = utcnow()
    user.revoke_tokens()
    add_audit('UPDATE', 'users', user.id, new_values={'action': 'password_changed'}, user_id=user.id)
    session.commit()
    return {'access_token': issue_token(user)}


@auth_bp.get('/permissions')
@jwt_required()
def permissions():
    role = get_jwt().get('role')
    body = {
        'role': role,
        'permissions': role_permissions(role),
        'accessible_resources': accessible_resources(role),
    }
    checks = parse_checks(request.args.get('checks'))
    if checks:
        body['checks'] = check_multiple_permissions(checks)
    return body
