from freightdesk import get_db
from freightdesk.models.audit import AuditLog
from freightdesk.models.user import User
from sqlalchemy import select
from tests.test_utils_seed import ensure_user, unique


def _login(client, email, password='password123'):
    return client.post('/auth/login', json={'email': email, 'password': password})


def test_login_and_me(client):
    email = f'{unique("login")}@example.com'
    u = ensure_user(email, role='MANAGER')
    resp = _login(client, email.upper())
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body['user']['email'] == email
    assert 'password_hash' not in body['user']
    token = body['access_token']

    me = client.get('/auth/me', headers={'Authorization': f'Bearer {token}'})
    assert me.status_code == 200
    data = me.get_json()
    assert data['role'] == 'MANAGER'
    assert 'services:view' in data['permissions']
    assert 'dashboard' in data['accessible_resources']

    refreshed = get_db().get(User, u.id)
    assert refreshed.last_login_at is not None
    login_logs = get_db().execute(
        select(AuditLog).where(AuditLog.action == 'LOGIN', AuditLog.record_id == str(u.id))
    ).scalars().all()
    assert len(login_logs) == 1
    assert login_logs[0].user_id == u.id


def test_login_requires_both_fields(client):
    assert client.post('/auth/login', json={'email': 'a@b.c'}).status_code == 400


def test_invalid_credentials_are_indistinguishable(client):
    email = f'{unique("bad")}@example.com'
    ensure_user(email)
    wrong = _login(client, email, 'nope-nope')
    unknown = _login(client, f'{unique("ghost")}@example.com', 'nope-nope')
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.get_json()['error']['detail'] == unknown.get_json()['error']['detail'] == 'Invalid credentials'


def test_inactive_user_cannot_login(client):
    email = f'{unique("off")}@example.com'
    ensure_user(email, is_active=False)
    resp = _login(client, email)
    assert resp.status_code == 401
    # same answer as a wrong password
    assert resp.get_json()['error']['detail'] == 'Invalid credentials'


def test_login_rate_limited_after_repeated_failures(client, app_instance):
    email = f'{unique("rl")}@example.com'
    ensure_user(email)
    attempts = app_instance.config['LOGIN_MAX_ATTEMPTS']
    for _ in range(attempts):
        assert _login(client, email, 'wrong-password').status_code == 401
    locked = _login(client, email)
    assert locked.status_code == 429
    assert 'Too many login attempts' in locked.get_json()['error']['detail']


def test_rate_limiter_window_and_reset():
    from freightdesk.services.auth import LoginRateLimiter
    now = [1000.0]
    limiter = LoginRateLimiter(max_attempts=2, window_seconds=60, clock=lambda: now[0])
    assert limiter.check('k') == (True, 0)
    assert not limiter.record_failure('k')
    assert limiter.record_failure('k')
    allowed, retry = limiter.check('k')
    assert not allowed and retry > 0
    now[0] += 61
    assert limiter.check('k') == (True, 0)
    limiter.record_failure('k')
    limiter.reset('k')
    assert not limiter.record_failure('k')


def test_rate_limiter_forgets_stale_keys():
    from freightdesk.services.auth import LoginRateLimiter
    now = [1000.0]
    limiter = LoginRateLimiter(max_attempts=2, window_seconds=60, clock=lambda: now[0])
    for i in range(50):
        limiter.record_failure(f'user{i}@example.com|10.0.0.1')
    limiter.record_failure('locked')
    limiter.record_failure('locked')
    assert len(limiter._attempts) == 51
    now[0] += 61
    limiter.record_failure('fresh')
    assert set(limiter._attempts) == {'fresh'}
    assert limiter._locked_until == {}


def test_logout_revokes_outstanding_tokens(client):
    email = f'{unique("out")}@example.com'
    ensure_user(email)
    token = _login(client, email).get_json()['access_token']
    headers = {'Authorization': f'Bearer {token}'}
    assert client.post('/auth/logout', headers=headers).status_code == 204
    again = client.get('/auth/me', headers=headers)
    assert again.status_code == 401
    assert again.get_json()['error']['status'] == 401


def test_change_password_flow(client):
    email = f'{unique("pw")}@example.com'
    ensure_user(email)
    token = _login(client, email).get_json()['access_token']
    headers = {'Authorization': f'Bearer {token}'}
    bad = client.post('/auth/change-password', headers=headers, json={
        'current_password': 'wrong-one', 'new_password': 'brand-new-pass', 'confirm_password': 'brand-new-pass'})
    assert bad.status_code == 400
    assert bad.get_json()['error']['detail'] == 'Current password is incorrect'
    mismatch = client.post('/auth/change-password', headers=headers, json={
        'current_password': 'password123', 'new_password': 'brand-new-pass', 'confirm_password': 'other-pass'})
    assert mismatch.get_json()['error']['detail'] == 'Passwords do not match'
    short = client.post('/auth/change-password', headers=headers, json={
        'current_password': 'password123', 'new_password': 'short', 'confirm_password': 'short'})
    assert short.status_code == 400
    assert 'new_password' in short.get_json()['error']['errors']
    ok = client.post('/auth/change-password', headers=headers, json={
        'current_password': 'password123', 'new_password': 'brand-new-pass', 'confirm_password': 'brand-new-pass'})
    assert ok.status_code == 200
    new_token = ok.get_json()['access_token']
    # old token was revoked, the returned one works
    assert client.get('/auth/me', headers=headers).status_code == 401
    assert client.get('/auth/me', headers={'Authorization': f'Bearer {new_token}'}).status_code == 200
    assert _login(client, email, 'brand-new-pass').status_code == 200


def test_permissions_endpoint_with_checks(client):
    email = f'{unique("perm")}@example.com'
    ensure_user(email, role='OPERATOR')
    token = _login(client, email).get_json()['access_token']
    resp = client.get('/auth/permissions?checks=services:create,services:delete',
                      headers={'Authorization': f'Bearer {token}'})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['role'] == 'OPERATOR'
    assert body['checks'] == {'services:create': True, 'services:delete': False}


def test_missing_token_uses_error_shape(client):
    resp = client.get('/auth/me')
    assert resp.status_code == 401
    assert resp.get_json()['error']['title'] == 'Unauthorized'
