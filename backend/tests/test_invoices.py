from datetime import date, timedelta
from freightdesk import get_db
from freightdesk.models.audit import AuditLog
from freightdesk.models.invoice import Invoice
from freightdesk.models.service import Service
from sqlalchemy import select
from tests.test_utils_seed import create_service, ensure_supplier, user_with_headers


def _completed(creator, supplier, cost_cents=10000, **kw):
    return create_service(creator, supplier=supplier, status=Service.STATUS_COMPLETED, cost_cents=cost_cents, **kw)


def _invoice(client, headers, services, **extra):
    return client.post('/invoices', json={'service_ids': [s.id for s in services], **extra}, headers=headers)


def test_create_invoice_totals_with_irpf(client):
    admin, headers = user_with_headers('ADMIN')
    supplier = ensure_supplier(irpf_rate=15, payment_terms=45)
    a = _completed(admin, supplier, cost_cents=10000)
    b = _completed(admin, supplier, cost_cents=5000)
    resp = _invoice(client, headers, [a, b], invoice_date='2025-05-01')
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    assert body['invoice_number'].startswith('INV-2025-')
    assert body['due_date'] == '2025-06-15'
    assert body['subtotal'] == 150
    assert body['tax_amount'] == 31.5
    assert body['irpf_amount'] == 22.5
    assert body['total'] == 159
    assert body['status'] == 'DRAFT'
    assert body['payment_status'] == 'PENDING'
    assert [i['service_id'] for i in body['items']] == [a.id, b.id]
    assert get_db().get(Service, a.id).status == 'INVOICED'
    assert get_db().get(Service, b.id).history[-1].to_status == 'INVOICED'


def test_invoice_requires_billing_rights(client):
    admin, _ = user_with_headers('ADMIN')
    _, headers = user_with_headers('ACCOUNTANT')
    s = _completed(admin, ensure_supplier())
    # accountants hold invoices:create but not services:mark_billed
    assert _invoice(client, headers, [s]).status_code == 403


def test_invoice_rejections(client):
    admin, headers = user_with_headers('MANAGER')
    supplier = ensure_supplier()
    draft = create_service(admin, supplier=supplier)
    done = _completed(admin, supplier)
    other = _completed(admin, ensure_supplier())
    missing = client.post('/invoices', json={'service_ids': [done.id, 999999]}, headers=headers)
    assert missing.status_code == 404
    not_done = _invoice(client, headers, [done, draft])
    assert not_done.status_code == 422
    assert draft.service_number in not_done.get_json()['error']['detail']
    mixed = _invoice(client, headers, [done, other])
    assert mixed.status_code == 422
    assert mixed.get_json()['error']['detail'] == 'All services must belong to the same supplier'
    assert client.post('/invoices', json={'service_ids': []}, headers=headers).status_code == 400


def test_service_on_live_invoice_conflicts(client):
    admin, headers = user_with_headers('ADMIN')
    s = _completed(admin, ensure_supplier())
    assert _invoice(client, headers, [s]).status_code == 201
    # force the service back without releasing it from the invoice
    svc = get_db().get(Service, s.id)
    svc.status = Service.STATUS_COMPLETED
    get_db().commit()
    resp = _invoice(client, headers, [s])
    assert resp.status_code == 409
    assert str(s.id) in resp.get_json()['error']['detail']


def test_send_view_and_overdue(client):
    admin, headers = user_with_headers('ADMIN')
    supplier = ensure_supplier(payment_terms=30)
    past = _invoice(client, headers, [_completed(admin, supplier)],
                    invoice_date=(date.today() - timedelta(days=90)).isoformat()).get_json()
    sent = client.post(f"/invoices/{past['id']}/send", json={'sent_to': 'Billing@Carrier.test'}, headers=headers)
    assert sent.status_code == 200
    assert sent.get_json()['status'] == 'SENT'
    assert sent.get_json()['sent_to'] == 'billing@carrier.test'
    assert client.post(f"/invoices/{past['id']}/send", headers=headers).status_code == 422
    viewed = client.post(f"/invoices/{past['id']}/mark-viewed", headers=headers)
    assert viewed.get_json()['status'] == 'VIEWED'
    overdue = client.post(f"/invoices/{past['id']}/mark-overdue", headers=headers)
    assert overdue.status_code == 200
    assert overdue.get_json()['status'] == 'OVERDUE'

    current = _invoice(client, headers, [_completed(admin, supplier)]).get_json()
    client.post(f"/invoices/{current['id']}/send", headers=headers)
    not_due = client.post(f"/invoices/{current['id']}/mark-overdue", headers=headers)
    assert not_due.status_code == 422
    assert not_due.get_json()['error']['detail'] == 'Invoice is not past its due date'


def test_draft_update_rules(client):
    admin, headers = user_with_headers('ADMIN')
    inv = _invoice(client, headers, [_completed(admin, ensure_supplier())], invoice_date='2025-02-01').get_json()
    early = client.put(f"/invoices/{inv['id']}", json={'due_date': '2025-01-01'}, headers=headers)
    assert early.status_code == 400
    ok = client.put(f"/invoices/{inv['id']}", json={'due_date': '2025-04-01', 'notes': 'Net 60'}, headers=headers)
    assert ok.status_code == 200
    assert ok.get_json()['due_date'] == '2025-04-01'
    client.post(f"/invoices/{inv['id']}/send", headers=headers)
    assert client.put(f"/invoices/{inv['id']}", json={'notes': 'late'}, headers=headers).status_code == 422


def test_partial_then_full_payment(client):
    admin, headers = user_with_headers('ADMIN')
    _, acct_headers = user_with_headers('ACCOUNTANT')
    _, mgr_headers = user_with_headers('MANAGER')
    inv = _invoice(client, headers, [_completed(admin, ensure_supplier(), cost_cents=10000)]).get_json()
    assert inv['total'] == 121
    draft_pay = client.post(f"/invoices/{inv['id']}/payments", json={'amount': 10, 'payment_method': 'transfer'},
                            headers=acct_headers)
    assert draft_pay.status_code == 422
    client.post(f"/invoices/{inv['id']}/send", headers=acct_headers)
    assert client.post(f"/invoices/{inv['id']}/payments", json={'amount': 10, 'payment_method': 'transfer'},
                       headers=mgr_headers).status_code == 403
    bad = client.post(f"/invoices/{inv['id']}/payments", json={'amount': 0, 'payment_method': 'barter'},
                      headers=acct_headers)
    assert bad.status_code == 400
    assert set(bad.get_json()['error']['errors']) == {'amount', 'payment_method'}

    first = client.post(f"/invoices/{inv['id']}/payments", json={'amount': 100, 'payment_method': 'transfer'},
                        headers=acct_headers)
    assert first.status_code == 201
    body = first.get_json()
    assert body['payment']['payment_number'].startswith(f'PAY-{date.today().year}-')
    assert body['invoice']['status'] == 'SENT'
    assert body['invoice']['payment_status'] == 'PROCESSING'
    assert body['invoice']['outstanding'] == 21
    too_much = client.post(f"/invoices/{inv['id']}/payments", json={'amount': 21.01, 'payment_method': 'cash'},
                           headers=acct_headers)
    assert too_much.status_code == 422
    final = client.post(f"/invoices/{inv['id']}/payments", json={'amount': 21, 'payment_method': 'cash'},
                        headers=acct_headers).get_json()
    assert final['invoice']['status'] == 'PAID'
    assert final['invoice']['payment_status'] == 'COMPLETED'
    assert final['invoice']['paid_at'] is not None
    listed = client.get(f"/invoices/{inv['id']}/payments", headers=mgr_headers).get_json()
    assert [p['amount'] for p in listed['data']] == [100, 21]
    assert listed['outstanding'] == 0
    logs = get_db().execute(select(AuditLog).where(AuditLog.table_name == 'payments',
                                                   AuditLog.action == 'CREATE',
                                                   AuditLog.record_id.in_([str(p['id']) for p in listed['data']]))
                            ).scalars().all()
    assert len(logs) == 2


def test_cancel_releases_services(client):
    admin, headers = user_with_headers('ADMIN')
    _, acct_headers = user_with_headers('ACCOUNTANT')
    s = _completed(admin, ensure_supplier())
    inv = _invoice(client, headers, [s]).get_json()
    client.post(f"/invoices/{inv['id']}/send", headers=headers)
    assert client.post(f"/invoices/{inv['id']}/cancel", headers=acct_headers).status_code == 403
    resp = client.post(f"/invoices/{inv['id']}/cancel", json={'reason': 'Wrong rates'}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()['status'] == 'CANCELLED'
    assert get_db().get(Service, s.id).status == 'COMPLETED'
    # released services can go on a new invoice
    assert _invoice(client, headers, [s]).status_code == 201


def test_cannot_cancel_with_payments(client):
    admin, headers = user_with_headers('ADMIN')
    inv = _invoice(client, headers, [_completed(admin, ensure_supplier())]).get_json()
    client.post(f"/invoices/{inv['id']}/send", headers=headers)
    client.post(f"/invoices/{inv['id']}/payments", json={'amount': 5, 'payment_method': 'card'}, headers=headers)
    resp = client.post(f"/invoices/{inv['id']}/cancel", headers=headers)
    assert resp.status_code == 422
    assert get_db().get(Invoice, inv['id']).status == 'SENT'


def test_delete_only_draft_or_cancelled(client):
    admin, headers = user_with_headers('ADMIN')
    _, mgr_headers = user_with_headers('MANAGER')
    s = _completed(admin, ensure_supplier())
    inv = _invoice(client, headers, [s]).get_json()
    assert client.delete(f"/invoices/{inv['id']}", headers=mgr_headers).status_code == 403
    assert client.delete(f"/invoices/{inv['id']}", headers=headers).status_code == 204
    assert get_db().get(Service, s.id).status == 'COMPLETED'
    assert client.get(f"/invoices/{inv['id']}", headers=headers).status_code == 404

    sent = _invoice(client, headers, [s]).get_json()
    client.post(f"/invoices/{sent['id']}/send", headers=headers)
    assert client.delete(f"/invoices/{sent['id']}", headers=headers).status_code == 422



def test_delete_cancelled_keeps_reinvoiced_services(client):
    admin, headers = user_with_headers('ADMIN')
    s = _completed(admin, ensure_supplier())
    first = _invoice(client, headers, [s]).get_json()
    client.post(f"/invoices/{first['id']}/send", headers=headers)
    client.post(f"/invoices/{first['id']}/cancel", json={'reason': 'Wrong rates'}, headers=headers)
    second = _invoice(client, headers, [s])
    assert second.status_code == 201
    assert client.delete(f"/invoices/{first['id']}", headers=headers).status_code == 204
    assert get_db().get(Service, s.id).status == 'INVOICED'
    live = client.get(f"/invoices/{second.get_json()['id']}", headers=headers).get_json()
    assert [i['service_id'] for i in live['items']] == [s.id]


def test_list_filters(client):
    admin, headers = user_with_headers('ADMIN')
    supplier = ensure_supplier()
    first = _invoice(client, headers, [_completed(admin, supplier)], invoice_date='2024-03-01').get_json()
    second = _invoice(client, headers, [_completed(admin, supplier)], invoice_date='2024-04-01').get_json()
    client.post(f"/invoices/{second['id']}/send", headers=headers)
    base = f'/invoices?supplier_id={supplier.id}'
    ids = [i['id'] for i in client.get(base, headers=headers).get_json()['data']]
    assert ids == [second['id'], first['id']]
    sent = client.get(f'{base}&status=SENT', headers=headers).get_json()['data']
    assert [i['id'] for i in sent] == [second['id']]
    ranged = client.get(f'{base}&date_to=2024-03-15', headers=headers).get_json()['data']
    assert [i['id'] for i in ranged] == [first['id']]
    assert client.get(f'{base}&status=LOST', headers=headers).status_code == 400
    _, op_headers = user_with_headers('OPERATOR')
    assert client.get('/invoices', headers=op_headers).status_code == 403
