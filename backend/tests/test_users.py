from freightdesk import get_db
from freightdesk.models.audit import AuditLog
from freightdesk.models.notification import Notification
from freightdesk.models.user import User
from sqlalchemy import select
from tests.test_utils_seed import ensure_user, auth_headers, user_with_headers, unique


def _new_user_body(role='OPERATOR', **extra):
    body = {'name': 'New Person', 'email': f'{unique("nu")}@example.com', 'password': 'secret-123', 'role': role}
    body.update(extra)
    return body


def test_list_users_with_stats_and_filters(client):
    _, headers = user_with_headers('ADMIN')
    ensure_user(f'{unique("acct")}@example.com', role='ACCOUNTANT')
    resp = client.get('/users?role=ACCOUNTANT', headers=headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['data'] and all(u['role'] == 'ACCOUNTANT' for u in body['data'])
    assert set(body['stats']) == {'total', 'active', 'admins', 'recently_active'}
    assert body['stats']['admins'] >= 1
    assert resp.headers.get('ETag')


def test_users_endpoints_forbidden_for_managers(client):
    _, headers = user_with_headers('MANAGER')
    assert client.get('/users', headers=headers).status_code == 403
    assert client.post('/users', json=_new_user_body(), headers=headers).status_code == 403


def test_create_user_and_duplicate_email(client):
    _, headers = user_with_headers('ADMIN')
    body = _new_user_body()
    resp = client.post('/users', json=body, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    created = resp.get_json()
    assert created['role'] == 'OPERATOR'
    assert 'password' not in created and 'password_hash' not in created
    dup = client.post('/users', json={**body, 'email': body['email'].upper()}, headers=headers)
    assert dup.status_code == 409
    log = get_db().execute(
        select(AuditLog).where(AuditLog.table_name == 'users', AuditLog.record_id == str(created['id']),
                               AuditLog.action == 'CREATE')
    ).scalar_one()
    assert log.new_values['email'] == body['email']


def test_create_user_validation_errors(client):
    _, headers = user_with_headers('ADMIN')
    resp = client.post('/users', json={'name': 'A', 'email': 'not-an-email', 'password': 'short', 'role': 'KING'},
                       headers=headers)
    assert resp.status_code == 400
    errors = resp.get_json()['error']['errors']
    assert set(errors) >= {'name', 'email', 'password', 'role'}


def test_only_super_admin_creates_super_admin(client):
    _, admin_headers = user_with_headers('ADMIN')
    assert client.post('/users', json=_new_user_body('SUPER_ADMIN'), headers=admin_headers).status_code == 403
    _, root_headers = user_with_headers('SUPER_ADMIN')
    assert client.post('/users', json=_new_user_body('SUPER_ADMIN'), headers=root_headers).status_code == 201


def test_cannot_change_own_role(client):
    admin, headers = user_with_headers('ADMIN')
    resp = client.put(f'/users/{admin.id}', json={'role': 'VIEWER'}, headers=headers)
    assert resp.status_code == 403
    assert resp.get_json()['error']['detail'] == 'You cannot change your own role'
    # other fields are fine
    assert client.put(f'/users/{admin.id}', json={'department': 'Ops'}, headers=headers).status_code == 200


def test_admin_cannot_touch_super_admin(client):
    _, headers = user_with_headers('ADMIN')
    root = ensure_user(f'{unique("root")}@example.com', role='SUPER_ADMIN')
    resp = client.put(f'/users/{root.id}', json={'name': 'Renamed'}, headers=headers)
    assert resp.status_code == 403
    assert client.post(f'/users/{root.id}/toggle-status', headers=headers).status_code == 403


def test_role_change_revokes_tokens_and_audits(client):
    _, headers = user_with_headers('ADMIN')
    target = ensure_user(f'{unique("tgt")}@example.com', role='VIEWER')
    target_headers = auth_headers(target)
    assert client.get('/auth/me', headers=target_headers).status_code == 200
    resp = client.put(f'/users/{target.id}', json={'role': 'OPERATOR'}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()['role'] == 'OPERATOR'
    assert client.get('/auth/me', headers=target_headers).status_code == 401
    log = get_db().execute(
        select(AuditLog).where(AuditLog.table_name == 'users', AuditLog.record_id == str(target.id),
                               AuditLog.action == 'UPDATE').order_by(AuditLog.id)
    ).scalars().all()[-1]
    assert log.old_values == {'role': 'VIEWER'}
    assert log.new_values == {'role': 'OPERATOR'}


def test_delete_user_rules(client):
    root, root_headers = user_with_headers('SUPER_ADMIN')
    _, admin_headers = user_with_headers('ADMIN')
    victim = ensure_user(f'{unique("del")}@example.com', role='VIEWER')
    other_root = ensure_user(f'{unique("root")}@example.com', role='SUPER_ADMIN')
    assert client.delete(f'/users/{victim.id}', headers=admin_headers).status_code == 403
    own = client.delete(f'/users/{root.id}', headers=root_headers)
    assert own.status_code == 403
    assert own.get_json()['error']['detail'] == 'You cannot delete your own account'
    assert client.delete(f'/users/{other_root.id}', headers=root_headers).status_code == 403
    assert client.delete(f'/users/{victim.id}', headers=root_headers).status_code == 204
    gone = get_db().get(User, victim.id)
    assert gone.deleted_at is not None and not gone.is_active
    assert client.get(f'/users/{victim.id}', headers=root_headers).status_code == 404


def test_reset_password_notifies_user(client):
    _, headers = user_with_headers('ADMIN')
    target = ensure_user(f'{unique("rst")}@example.com')
    short = client.post(f'/users/{target.id}/reset-password', json={'password': 'x'}, headers=headers)
    assert short.status_code == 400
    resp = client.post(f'/users/{target.id}/reset-password', json={'password': 'fresh-pass-1'}, headers=headers)
    assert resp.status_code == 200
    assert client.post('/auth/login', json={'email': target.email, 'password': 'fresh-pass-1'}).status_code == 200
    notes = get_db().execute(select(Notification).where(Notification.user_id == target.id)).scalars().all()
    assert [n.category for n in notes] == ['security']


def test_toggle_status(client):
    admin, headers = user_with_headers('ADMIN')
    target = ensure_user(f'{unique("tog")}@example.com')
    assert client.post(f'/users/{admin.id}/toggle-status', headers=headers).status_code == 403
    off = client.post(f'/users/{target.id}/toggle-status', headers=headers)
    assert off.status_code == 200 and off.get_json()['is_active'] is False
    on = client.post(f'/users/{target.id}/toggle-status', headers=headers)
    assert on.get_json()['is_active'] is True


def test_get_user_counts(client):
    _, headers = user_with_headers('ADMIN')
    target = ensure_user(f'{unique("cnt")}@example.com')
    resp = client.get(f'/users/{target.id}', headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()['counts'] == {'services': 0, 'invoices': 0, 'audit_logs': 0}
