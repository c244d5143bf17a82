from __future__ import annotations
from typing import Optional
from flask import abort


def apply_multi_sort(query, sort_expr: Optional[str], allowed: dict, tie_breaker, default: Optional[str] = None):
    """Apply multi-field sort to a SQLAlchemy query.
    sort_expr: comma-separated tokens, each optionally prefixed with '-' (e.g. ``-date,client``).
    allowed: mapping of field key -> column object (or labelled expression).
    tie_breaker: column to append for deterministic ordering.
    default: sort expression used when the caller sends none.
    """
    sort_expr = sort_expr or default
    if not sort_expr:
        return query.order_by(tie_breaker.asc())
    clauses = []
    for raw in sort_expr.split(','):
        token = raw.strip()
        if not token:
            continue
        desc = token.startswith('-')
        key = token[1:] if desc else token
        col = allowed.get(key)
        if col is None:
            abort(400, description=f'Invalid sort field {key}')
        clauses.append(col.desc() if desc else col.asc())
    clauses.append(tie_breaker.desc() if sort_expr.lstrip().startswith('-') else tie_breaker.asc())
    return query.order_by(*clauses)


def sort_from_args(args, default: Optional[str] = None) -> Optional[str]:
    """Accept either ``sort=-date`` or the ``sort_by=date&sort_order=desc`` pair."""
    sort_expr = args.get('sort')
    if sort_expr:
        return sort_expr
    sort_by = args.get('sort_by')
    if not sort_by:
        return default
    order = (args.get('sort_order') or 'asc').lower()
    if order not in ('asc', 'desc'):
        abort(400, description='sort_order must be asc or desc')
    return f'-{sort_by}' if order == 'desc' else sort_by
