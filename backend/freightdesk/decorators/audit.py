from __future__ import annotations
"""Audit logging decorator to reduce repetitive add_audit() calls in route handlers.

The wrapped view mutates and flushes but does not commit; the decorator appends the
AuditLog row and commits both together, so a mutation never lands without its audit.

Usage examples:

@audit_log('CREATE', 'clients', new_value_keys=['client_code', 'name'])
def create_client():
    ... return {'id': client.id, 'name': client.name}, 201

@audit_log('UPDATE', 'clients', record_id_arg='client_id', diff_keys=['name', 'email'],
           pre_fetch=lambda args, kwargs: _client_snapshot(kwargs['client_id']))
def update_client(client_id): ...

Parameters:
  action: audit action (CREATE, UPDATE, DELETE, EXPORT, ...)
  table_name: affected table
  record_id_key: key in the returned JSON object whose value becomes record_id.
  record_id_arg: view argument used when the payload has no record_id_key.
  new_value_keys: keys projected from the returned JSON into new_values.
  diff_keys + pre_fetch: pre_fetch(args, kwargs) snapshots the record before the view runs;
    keys whose value changed are written as old_values/new_values.
  meta_keys: keys projected from the returned JSON into metadata.
  meta_builder: callable returning metadata; receives (data, original_return_value, args, kwargs).
    If provided it overrides meta_keys.

Return handling:
  Flask view functions commonly return one of:
    dict
    (dict, status)
    (dict, status, headers)
  The decorator extracts the first element as the JSON payload while preserving the original return value.
  Error statuses (>= 400) are returned untouched and not audited.
"""

from functools import wraps
from typing import Any, Callable, Iterable, Optional, Dict

from freightdesk.services.audit import add_audit
from freightdesk import get_db


def _extract_payload(rv: Any):
    """Return (data, status) where data is the JSON-able dict for inspection."""
    if isinstance(rv, tuple) and rv:
        status = rv[1] if len(rv) > 1 and isinstance(rv[1], int) else 200
        return rv[0], status
    return rv, 200


def audit_log(
    action: str,
    table_name: str,
    *,
    record_id_key: Optional[str] = 'id',
    record_id_arg: Optional[str] = None,
    new_value_keys: Optional[Iterable[str]] = None,
    meta_keys: Optional[Iterable[str]] = None,
    meta_builder: Optional[Callable[[dict, Any, tuple, dict], dict]] = None,
    commit: bool = True,
    # Diff support
    diff_keys: Optional[Iterable[str]] = None,
    pre_fetch: Optional[Callable[[tuple, dict], Dict[str, Any]]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            before_snapshot = None
            if diff_keys and pre_fetch:
                before_snapshot = pre_fetch(args, kwargs)
            rv = fn(*args, **kwargs)
            data, status = _extract_payload(rv)
            if status >= 400:
                return rv
            if not isinstance(data, dict):  # nothing to inspect
                data = {}
            record_id = None
            if record_id_key and record_id_key in data:
                record_id = data.get(record_id_key)
            elif record_id_arg and record_id_arg in kwargs:
                record_id = kwargs.get(record_id_arg)
            new_values = None
            if new_value_keys:
                new_values = {k: data.get(k) for k in new_value_keys if k in data}
            old_values = None
            if diff_keys and before_snapshot:
                old_values, changed = {}, {}
                for k in diff_keys:
                    if k in before_snapshot and k in data and before_snapshot.get(k) != data.get(k):
                        old_values[k] = before_snapshot.get(k)
                        changed[k] = data.get(k)
                new_values = {**(new_values or {}), **changed}
            meta = None
            if meta_builder:
                meta = meta_builder(data, rv, args, kwargs)
            elif meta_keys:
                meta = {k: data.get(k) for k in meta_keys if k in data}
            add_audit(action, table_name, record_id if record_id is not None else '', old_values, new_values, meta)
            if commit:
                get_db().commit()
            return rv
        return wrapper
    return outer
