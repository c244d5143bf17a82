from __future__ import annotations
from typing import Any, Dict
from flask import abort
from sqlalchemy import or_

from .validation import parse_date


def apply_filters(query, specs: Dict[str, Dict[str, Any]], params: Dict[str, Any]):
    """Generic filter builder.

    specs: { param_name: { 'op': callable(query, value)->query, 'coerce': type/func, 'validate': callable(optional) } }
    Empty query-string values are ignored.
    """
    for name, meta in specs.items():
        if name not in params or params[name] is None or params[name] == '':
            continue
        val = params[name]
        if 'coerce' in meta:
            try:
                val = meta['coerce'](val)
            except (TypeError, ValueError):
                abort(400, description=f'{name} invalid')
            if val is None:
                abort(400, description=f'{name} invalid')
        if 'validate' in meta and not meta['validate'](val):
            abort(400, description=f'{name} invalid')
        query = meta['op'](query, val)
    return query


def search_op(*columns):
    """Case-insensitive substring match over any of columns."""
    def op(query, value):
        pattern = f'%{value.strip()}%'
        return query.filter(or_(*[c.ilike(pattern) for c in columns]))
    return op


def date_spec(column, bound: str):
    """Spec for an inclusive ``date_from`` (bound='gte') or ``date_to`` (bound='lte') filter."""
    if bound == 'gte':
        op = lambda q, v: q.filter(column >= v)
    else:
        op = lambda q, v: q.filter(column <= v)
    return {'coerce': parse_date, 'op': op}
