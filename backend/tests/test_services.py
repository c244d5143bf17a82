from datetime import date
from freightdesk import get_db
from freightdesk.models.audit import AuditLog
from freightdesk.models.notification import Notification
from freightdesk.models.service import Service
from sqlalchemy import select
from tests.test_utils_seed import (
    create_service, ensure_client, ensure_supplier, ensure_user, service_payload, unique, user_with_headers,
)


def test_create_service_computes_pricing_and_number(client):
    user, headers = user_with_headers('OPERATOR')
    c, s = ensure_client(), ensure_supplier()
    resp = client.post('/services', json=service_payload(c, s, cost_amount=1000, sale_amount=1250.50,
                                                         vehicle_plate='1234abc'), headers=headers)
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    assert body['service_number'].startswith(f'SRV-{date.today().year}-')
    assert body['status'] == 'DRAFT'
    assert body['margin'] == 250.5
    assert body['margin_percentage'] == 25.05
    assert body['cost_vat_amount'] == 210.0
    assert body['sale_vat_amount'] == 262.61
    assert body['vehicle_plate'] == '1234ABC'
    assert body['client_name'] == c.name
    assert body['created_by'] == user.id
    assert body['allowed_transitions'] == ['CANCELLED', 'CONFIRMED']
    detail = client.get(f"/services/{body['id']}", headers=headers).get_json()
    assert [(h['from_status'], h['to_status']) for h in detail['history']] == [(None, 'DRAFT')]


def test_zero_cost_margin_percentage(client):
    _, headers = user_with_headers('MANAGER')
    resp = client.post('/services', json=service_payload(ensure_client(), ensure_supplier(), cost_amount=0,
                                                         sale_amount=80), headers=headers)
    assert resp.get_json()['margin_percentage'] == 0
    assert resp.get_json()['margin'] == 80


def test_create_validation_and_inactive_parties(client):
    _, headers = user_with_headers('MANAGER')
    inactive = ensure_client(is_active=False)
    resp = client.post('/services', json=service_payload(inactive, ensure_supplier(), cost_amount=-5,
                                                         status='COMPLETED'), headers=headers)
    assert resp.status_code == 400
    errors = resp.get_json()['error']['errors']
    assert errors['client_id'] == ['Client not found or inactive']
    assert 'cost_amount' in errors
    assert 'status' in errors
    missing = client.post('/services', json={}, headers=headers).get_json()['error']['errors']
    for field in ('date', 'client_id', 'supplier_id', 'description', 'origin', 'destination', 'cost_amount',
                  'sale_amount'):
        assert field in missing, field


def test_create_confirmed_service(client):
    _, headers = user_with_headers('MANAGER')
    resp = client.post('/services', json=service_payload(ensure_client(), ensure_supplier(), status='CONFIRMED'),
                       headers=headers)
    assert resp.get_json()['status'] == 'CONFIRMED'


def test_full_lifecycle_with_history(client):
    creator, op_headers = user_with_headers('OPERATOR')
    _, mgr_headers = user_with_headers('MANAGER')
    sid = client.post('/services', json=service_payload(ensure_client(), ensure_supplier()),
                      headers=op_headers).get_json()['id']
    assert client.post(f'/services/{sid}/confirm', headers=op_headers).get_json()['status'] == 'CONFIRMED'
    assert client.post(f'/services/{sid}/start', headers=op_headers).get_json()['status'] == 'IN_PROGRESS'
    # operators lack services:mark_completed
    assert client.post(f'/services/{sid}/complete', headers=op_headers).status_code == 403
    done = client.post(f'/services/{sid}/complete', headers=mgr_headers)
    assert done.status_code == 200
    assert done.get_json()['completed_at'] is not None
    history = client.get(f'/services/{sid}/history', headers=op_headers).get_json()['data']
    assert [h['to_status'] for h in history] == ['DRAFT', 'CONFIRMED', 'IN_PROGRESS', 'COMPLETED']
    # creator hears about the completion by someone else
    notes = get_db().execute(select(Notification).where(Notification.user_id == creator.id)).scalars().all()
    assert [n.category for n in notes] == ['service']
    logs = get_db().execute(select(AuditLog).where(AuditLog.table_name == 'services',
                                                   AuditLog.record_id == str(sid)).order_by(AuditLog.id)).scalars().all()
    assert [log.action for log in logs] == ['CREATE', 'UPDATE', 'UPDATE', 'UPDATE']
    assert logs[-1].meta['transition'] == 'complete'


def test_invalid_transitions_are_422(client):
    admin, headers = user_with_headers('ADMIN')
    draft = create_service(admin)
    resp = client.post(f'/services/{draft.id}/start', headers=headers)
    assert resp.status_code == 422
    assert client.post(f'/services/{draft.id}/complete', headers=headers).status_code == 422
    assert client.post(f'/services/{draft.id}/teleport', headers=headers).status_code == 404
    archived = create_service(admin, status=Service.STATUS_ARCHIVED)
    assert client.post(f'/services/{archived.id}/cancel', json={'reason': 'too late'}, headers=headers).status_code == 422


def test_cancel_requires_reason(client):
    admin, headers = user_with_headers('MANAGER')
    s = create_service(admin, status=Service.STATUS_CONFIRMED)
    assert client.post(f'/services/{s.id}/cancel', json={}, headers=headers).status_code == 400
    assert client.post(f'/services/{s.id}/cancel', json={'reason': 'no'}, headers=headers).status_code == 400
    resp = client.post(f'/services/{s.id}/cancel', json={'reason': 'Client called off'}, headers=headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['status'] == 'CANCELLED'
    assert body['cancellation_reason'] == 'Client called off'
    assert body['cancelled_at'] is not None


def test_reopen_needs_edit_completed(client):
    admin, admin_headers = user_with_headers('ADMIN')
    _, mgr_headers = user_with_headers('MANAGER')
    s = create_service(admin, status=Service.STATUS_COMPLETED)
    assert client.post(f'/services/{s.id}/reopen', headers=mgr_headers).status_code == 403
    resp = client.post(f'/services/{s.id}/reopen', headers=admin_headers)
    assert resp.status_code == 200
    assert resp.get_json()['status'] == 'IN_PROGRESS'
    assert resp.get_json()['completed_at'] is None


def test_update_recomputes_pricing_and_audits_diff(client):
    admin, headers = user_with_headers('ADMIN')
    s = create_service(admin, cost_cents=10000, sale_cents=15000)
    resp = client.put(f'/services/{s.id}', json={'sale_amount': 200, 'driver_name': 'Ana'}, headers=headers)
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body['margin'] == 100
    assert body['margin_percentage'] == 100
    assert body['sale_vat_amount'] == 42
    log = get_db().execute(select(AuditLog).where(AuditLog.table_name == 'services', AuditLog.record_id == str(s.id),
                                                  AuditLog.action == 'UPDATE').order_by(AuditLog.id)).scalars().all()[-1]
    assert log.old_values['sale_cents'] == 15000
    assert log.new_values['sale_cents'] == 20000
    assert log.new_values['driver_name'] == 'Ana'
    assert 'description' not in log.new_values


def test_update_rejects_status_field(client):
    admin, headers = user_with_headers('ADMIN')
    s = create_service(admin)
    resp = client.put(f'/services/{s.id}', json={'status': 'COMPLETED'}, headers=headers)
    assert resp.status_code == 400
    assert 'status' in resp.get_json()['error']['errors']


def test_locked_and_completed_services_cannot_be_edited(client):
    admin, admin_headers = user_with_headers('ADMIN')
    operator, op_headers = user_with_headers('OPERATOR')
    _, mgr_headers = user_with_headers('MANAGER')
    invoiced = create_service(admin, status=Service.STATUS_INVOICED)
    assert client.put(f'/services/{invoiced.id}', json={'notes': 'x'}, headers=admin_headers).status_code == 422
    completed = create_service(admin, status=Service.STATUS_COMPLETED)
    denied = client.put(f'/services/{completed.id}', json={'notes': 'x'}, headers=op_headers)
    assert denied.status_code == 403
    assert denied.get_json()['error']['detail'] == 'Cannot edit completed services'
    assert client.put(f'/services/{completed.id}', json={'notes': 'x'}, headers=mgr_headers).status_code == 403
    assert client.put(f'/services/{completed.id}', json={'notes': 'x'}, headers=admin_headers).status_code == 200


def test_viewer_cannot_create_or_edit(client):
    admin, _ = user_with_headers('ADMIN')
    _, headers = user_with_headers('VIEWER')
    s = create_service(admin)
    assert client.post('/services', json=service_payload(ensure_client(), ensure_supplier()),
                       headers=headers).status_code == 403
    assert client.put(f'/services/{s.id}', json={'notes': 'x'}, headers=headers).status_code == 403
    assert client.post(f'/services/{s.id}/confirm', headers=headers).status_code == 403


def test_delete_rules(client):
    admin, admin_headers = user_with_headers('ADMIN')
    _, mgr_headers = user_with_headers('MANAGER')
    _, op_headers = user_with_headers('OPERATOR')
    draft = create_service(admin)
    assert client.delete(f'/services/{draft.id}', headers=op_headers).status_code == 403
    assert client.delete(f'/services/{draft.id}', headers=mgr_headers).status_code == 204
    assert client.get(f'/services/{draft.id}', headers=mgr_headers).status_code == 404
    completed = create_service(admin, status=Service.STATUS_COMPLETED)
    resp = client.delete(f'/services/{completed.id}', headers=mgr_headers)
    assert resp.status_code == 403
    assert resp.get_json()['error']['detail'] == 'Cannot delete completed services'
    assert client.delete(f'/services/{completed.id}', headers=admin_headers).status_code == 204
    invoiced = create_service(admin, status=Service.STATUS_INVOICED)
    assert client.delete(f'/services/{invoiced.id}', headers=admin_headers).status_code == 422


def test_list_filters_sorting_and_search(client):
    admin, headers = user_with_headers('ADMIN')
    c = ensure_client(name=unique('Listing Client '))
    driver = unique('Driver')
    create_service(admin, client=c, on=date(2025, 1, 10), sale_cents=1000, driver_name=driver)
    create_service(admin, client=c, on=date(2025, 2, 10), sale_cents=3000, status=Service.STATUS_CONFIRMED)
    create_service(admin, client=c, on=date(2025, 3, 10), sale_cents=2000)
    base = f'/services?client_id={c.id}'
    dates = [s['date'] for s in client.get(base, headers=headers).get_json()['data']]
    assert dates == ['2025-03-10', '2025-02-10', '2025-01-10']
    by_sale = [s['sale_amount'] for s in client.get(f'{base}&sort=-sale', headers=headers).get_json()['data']]
    assert by_sale == [30, 20, 10]
    ranged = client.get(f'{base}&date_from=2025-02-01&date_to=2025-03-10', headers=headers).get_json()
    assert ranged['pagination']['total'] == 2
    confirmed = client.get(f'{base}&status=CONFIRMED', headers=headers).get_json()['data']
    assert [s['status'] for s in confirmed] == ['CONFIRMED']
    found = client.get(f'/services?search={driver.lower()}', headers=headers).get_json()['data']
    assert [s['driver_name'] for s in found] == [driver]
    assert client.get(f'{base}&status=LOST', headers=headers).status_code == 400
    assert client.get(f'{base}&sort_by=client&sort_order=sideways', headers=headers).status_code == 400


def test_options_and_export(client):
    admin, headers = user_with_headers('ADMIN')
    hidden = ensure_client(is_active=False)
    shown = ensure_client()
    opts = client.get('/services/options', headers=headers).get_json()
    ids = {c['id'] for c in opts['clients']}
    assert shown.id in ids and hidden.id not in ids
    assert 'ARCHIVED' in opts['statuses']
    create_service(admin, client=shown)
    export = client.get(f'/services/export?client_id={shown.id}', headers=headers)
    assert export.status_code == 200
    lines = export.get_data(as_text=True).strip().splitlines()
    assert lines[0].startswith('Service Number,Date,Client')
    assert len(lines) == 2


def test_bulk_status_reports_skips(client):
    admin, headers = user_with_headers('MANAGER')
    a = create_service(admin, status=Service.STATUS_IN_PROGRESS)
    b = create_service(admin, status=Service.STATUS_DRAFT)
    resp = client.post('/services/bulk-status', json={'ids': [a.id, b.id, 999999], 'status': 'COMPLETED'},
                       headers=headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['updated'] == [a.id]
    skipped = {row['id']: row['reason'] for row in body['skipped']}
    assert skipped[b.id] == 'invalid transition DRAFT -> COMPLETED'
    assert skipped[999999] == 'not found'
    assert get_db().get(Service, a.id).status == 'COMPLETED'
    no_reason = client.post('/services/bulk-status', json={'ids': [b.id], 'status': 'CANCELLED'}, headers=headers)
    assert no_reason.status_code == 400


def test_bulk_status_operator_restrictions(client):
    admin, _ = user_with_headers('ADMIN')
    _, op_headers = user_with_headers('OPERATOR')
    s = create_service(admin, status=Service.STATUS_IN_PROGRESS)
    assert client.post('/services/bulk-status', json={'ids': [s.id], 'status': 'COMPLETED'},
                       headers=op_headers).status_code == 403



def test_bulk_status_reopen_needs_edit_completed(client):
    admin, admin_headers = user_with_headers('ADMIN')
    _, mgr_headers = user_with_headers('MANAGER')
    s = create_service(admin, status=Service.STATUS_COMPLETED)
    assert client.post(f'/services/{s.id}/reopen', headers=mgr_headers).status_code == 403
    resp = client.post('/services/bulk-status', json={'ids': [s.id], 'status': 'IN_PROGRESS'}, headers=mgr_headers)
    assert resp.status_code == 200
    assert resp.get_json() == {'updated': [], 'skipped': [{'id': s.id, 'reason': 'insufficient permissions'}]}
    assert get_db().get(Service, s.id).status == 'COMPLETED'
    resp = client.post('/services/bulk-status', json={'ids': [s.id], 'status': 'IN_PROGRESS'}, headers=admin_headers)
    assert resp.get_json()['updated'] == [s.id]
    assert get_db().get(Service, s.id).status == 'IN_PROGRESS'


def test_bulk_delete(client):
    admin, headers = user_with_headers('MANAGER')
    a = create_service(admin)
    b = create_service(admin, status=Service.STATUS_INVOICED)
    resp = client.post('/services/bulk-delete', json={'ids': [a.id, b.id]}, headers=headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['deleted'] == [a.id]
    assert body['skipped'][0]['id'] == b.id


def test_assignee_must_be_active_user(client):
    _, headers = user_with_headers('MANAGER')
    inactive = ensure_user(f'{unique("asg")}@example.com', role='OPERATOR', is_active=False)
    resp = client.post('/services', json=service_payload(ensure_client(), ensure_supplier(), assigned_to=inactive.id),
                       headers=headers)
    assert resp.status_code == 400
    assert 'assigned_to' in resp.get_json()['error']['errors']
