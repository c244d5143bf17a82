from freightdesk import get_db
from freightdesk.services.notifications import notify
from tests.test_utils_seed import user_with_headers


def _seed(user, count=2, category='system'):
    rows = [notify(user.id, f'Note {i}', 'Something happened', category) for i in range(count)]
    get_db().commit()
    return rows


def test_list_only_own_notifications(client):
    user, headers = user_with_headers('VIEWER')
    other, _ = user_with_headers('VIEWER')
    _seed(user, 2)
    _seed(other, 3)
    body = client.get('/notifications', headers=headers).get_json()
    assert body['pagination']['total'] == 2
    assert body['unread_count'] == 2
    assert {n['title'] for n in body['data']} == {'Note 0', 'Note 1'}


def test_mark_read_and_read_all(client):
    user, headers = user_with_headers('OPERATOR')
    other, other_headers = user_with_headers('OPERATOR')
    first, _second, _third = _seed(user, 3)
    resp = client.post(f'/notifications/{first.id}/read', headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()['is_read'] is True
    assert resp.get_json()['read_at'] is not None
    # someone else's notification looks missing
    assert client.post(f'/notifications/{first.id}/read', headers=other_headers).status_code == 404
    unread = client.get('/notifications?unread=true', headers=headers).get_json()
    assert unread['pagination']['total'] == 2
    assert client.post('/notifications/read-all', headers=headers).get_json() == {'updated': 2}
    assert client.get('/notifications', headers=headers).get_json()['unread_count'] == 0


def test_category_filter(client):
    user, headers = user_with_headers('ACCOUNTANT')
    _seed(user, 1, category='security')
    _seed(user, 2, category='service')
    body = client.get('/notifications?category=security', headers=headers).get_json()
    assert [n['category'] for n in body['data']] == ['security']
    assert client.get('/notifications?unread=maybe', headers=headers).status_code == 400
