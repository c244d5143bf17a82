from freightdesk import get_db
from freightdesk.models.audit import AuditLog
from sqlalchemy import select
from tests.test_utils_seed import create_service, ensure_client, ensure_supplier, unique, user_with_headers


def _doc_body(**extra):
    body = {
        'document_type': 'DELIVERY_NOTE',
        'file_name': f'{unique("cmr")}.pdf',
        'file_path': '/uploads/cmr.pdf',
        'file_size': 2048,
        'mime_type': 'application/pdf',
    }
    body.update(extra)
    return body


def test_create_document_attached_to_service(client):
    admin, _ = user_with_headers('ADMIN')
    user, headers = user_with_headers('OPERATOR')
    s = create_service(admin)
    resp = client.post('/documents', json=_doc_body(service_id=s.id, tags=['cmr', 'cmr']), headers=headers)
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    assert body['service_id'] == s.id
    assert body['uploaded_by'] == user.id
    assert body['tags'] == ['cmr']
    log = get_db().execute(select(AuditLog).where(AuditLog.table_name == 'documents',
                                                  AuditLog.record_id == str(body['id']))).scalar_one()
    assert log.new_values['file_name'] == body['file_name']


def test_document_needs_an_owner_and_valid_fields(client):
    _, headers = user_with_headers('MANAGER')
    orphan = client.post('/documents', json=_doc_body(), headers=headers)
    assert orphan.status_code == 400
    assert 'client_id' in orphan.get_json()['error']['errors']
    resp = client.post('/documents', json=_doc_body(client_id=999999, document_type='SELFIE',
                                                    file_size=50 * 1024 * 1024 + 1), headers=headers)
    errors = resp.get_json()['error']['errors']
    assert errors['client_id'] == ['Client not found']
    assert 'document_type' in errors
    assert 'file_size' in errors


def test_roles_for_documents(client):
    c = ensure_client()
    for role in ('ACCOUNTANT', 'VIEWER'):
        _, headers = user_with_headers(role)
        assert client.post('/documents', json=_doc_body(client_id=c.id), headers=headers).status_code == 403
    _, viewer_headers = user_with_headers('VIEWER')
    assert client.get('/documents', headers=viewer_headers).status_code == 200


def test_list_filter_and_delete(client):
    _, headers = user_with_headers('MANAGER')
    _, op_headers = user_with_headers('OPERATOR')
    supplier = ensure_supplier()
    doc = client.post('/documents', json=_doc_body(supplier_id=supplier.id, document_type='CONTRACT'),
                      headers=headers).get_json()
    listed = client.get(f'/documents?supplier_id={supplier.id}', headers=op_headers).get_json()['data']
    assert [d['id'] for d in listed] == [doc['id']]
    typed = client.get(f'/documents?supplier_id={supplier.id}&document_type=INVOICE', headers=op_headers)
    assert typed.get_json()['data'] == []
    assert client.get('/documents?document_type=SELFIE', headers=op_headers).status_code == 400
    assert client.delete(f"/documents/{doc['id']}", headers=op_headers).status_code == 403
    assert client.delete(f"/documents/{doc['id']}", headers=headers).status_code == 204
    assert client.get(f"/documents/{doc['id']}", headers=headers).status_code == 404
    assert client.delete(f"/documents/{doc['id']}", headers=headers).status_code == 404
