from __future__ import annotations
from flask import Blueprint, request, abort
from freightdesk import get_db
from freightdesk.models.document import Document
from freightdesk.models.client import Client
from freightdesk.models.supplier import Supplier
from freightdesk.models.service import Service
from freightdesk.decorators.auth import require_permission
from freightdesk.decorators.audit import audit_log
from freightdesk.services import policy
from freightdesk.services.audit import add_audit
from freightdesk.utils.filters import apply_filters, search_op
from freightdesk.utils.listing import apply_pagination, latest_timestamp, list_response, single_response
from freightdesk.utils.serialize import iso
from freightdesk.utils.sorting import apply_multi_sort, sort_from_args
from freightdesk.utils.validation import Fields

documents_bp = Blueprint('documents', __name__)

MAX_FILE_SIZE = 50 * 1024 * 1024
OWNERS = (('client_id', Client, 'Client'), ('supplier_id', Supplier, 'Supplier'), ('service_id', Service, 'Service'))


def _document_json(d: Document) -> dict:
    return {
        'id': d.id,
        'document_type': d.document_type,
        'document_number': d.document_number,
        'client_id': d.client_id,
        'supplier_id': d.supplier_id,
        'service_id': d.service_id,
        'file_name': d.file_name,
        'file_path': d.file_path,
        'file_size': d.file_size,
        'mime_type': d.mime_type,
        'description': d.description,
        'tags': d.tags or [],
        'uploaded_by': d.uploaded_by,
        'uploaded_at': iso(d.uploaded_at),
    }


@documents_bp.route('', methods=['GET', 'HEAD'])
@require_permission('documents', 'view')
def list_documents():
    q = get_db().query(Document).filter(Document.deleted_at.is_(None))
    filter_specs = {
        'client_id': {'coerce': int, 'op': lambda qu, v: qu.filter(Document.client_id == v)},
        'supplier_id': {'coerce': int, 'op': lambda qu, v: qu.filter(Document.supplier_id == v)},
        'service_id': {'coerce': int, 'op': lambda qu, v: qu.filter(Document.service_id == v)},
        'document_type': {'op': lambda qu, v: qu.filter(Document.document_type == v),
                          'validate': lambda v: v in Document.ALL_TYPES},
        'search': {'op': search_op(Document.file_name, Document.document_number, Document.description)},
    }
    q = apply_filters(q, filter_specs, request.args)
    allowed = {
        'uploaded_at': Document.uploaded_at,
        'file_name': Document.file_name,
        'document_type': Document.document_type,
        'id': Document.id,
    }
    q = apply_multi_sort(q, sort_from_args(request.args), allowed, Document.id, default='-uploaded_at')
    paged_q, total, limit, offset = apply_pagination(q)
    rows = paged_q.all()
    return list_response([_document_json(d) for d in rows], total, limit, offset,
                         latest_timestamp(rows, 'uploaded_at'))


@documents_bp.post('')
@require_permission('documents', 'create')
@audit_log('CREATE', 'documents', new_value_keys=['document_type', 'file_name', 'client_id', 'supplier_id',
                                                  'service_id'])
def create_document():
    session = get_db()
    f = Fields(request.get_json(silent=True))
    values = {
        'document_type': f.choice('document_type', Document.ALL_TYPES, required=True),
        'document_number': f.str('document_number', max_len=64),
        'file_name': f.str('file_name', required=True, max_len=255),
        'file_path': f.str('file_path', required=True, max_len=500),
        'file_size': f.int('file_size', required=True, min_value=0, max_value=MAX_FILE_SIZE),
        'mime_type': f.str('mime_type', required=True, max_len=100),
        'description': f.str('description', max_len=1000),
        'tags': f.str_list('tags', default=[]),
    }
    for field, model, label in OWNERS:
        values[field] = f.int(field, min_value=1)
        if values[field] is not None and not f.errors.get(field):
            owner = session.get(model, values[field])
            if not owner or owner.deleted_at is not None:
                f.error(field, f'{label} not found')
    if not any(values[field] for field, _, _ in OWNERS):
        f.error('client_id', 'A document must be attached to a client, supplier or service')
    f.check()
    d = Document(uploaded_by=policy.current_user_id(), **values)
    session.add(d)
    session.flush()
    return _document_json(d), 201


@documents_bp.route('/<int:document_id>', methods=['GET', 'HEAD'])
@require_permission('documents', 'view')
def get_document(document_id: int):
    d = get_db().get(Document, document_id)
    if not d or d.deleted_at is not None:
        abort(404, description='Document not found')
    return single_response(_document_json(d), d.uploaded_at)


@documents_bp.delete('/<int:document_id>')
@require_permission('documents', 'delete')
def delete_document(document_id: int):
    session = get_db()
    d = session.get(Document, document_id)
    if not d or d.deleted_at is not None:
        abort(404, description='Document not found')
    d.soft_delete()
    add_audit('DELETE', 'documents', d.id, old_values={'file_name': d.file_name, 'document_type': d.document_type})
    session.commit()
    return '', 204
