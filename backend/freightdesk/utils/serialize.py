from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional
from sqlalchemy import inspect

# never copied into audit snapshots
SENSITIVE_FIELDS = ('password_hash',)


def iso(value: Optional[date]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat().replace('+00:00', 'Z')
    return value.isoformat()


def json_safe(value: Any) -> Any:
    """Recursively convert to JSON-storable primitives (dates -> ISO strings, Decimal -> float)."""
    if isinstance(value, (date, datetime)):
        return iso(value)
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {str(k): json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [json_safe(v) for v in value]
    return value


def model_snapshot(obj, exclude: Iterable[str] = ()) -> Dict[str, Any]:
    """Column values of a mapped instance as a JSON-safe dict."""
    skip = set(exclude) | set(SENSITIVE_FIELDS)
    mapper = inspect(obj).mapper
    return {
        attr.key: json_safe(getattr(obj, attr.key))
        for attr in mapper.column_attrs
        if attr.key not in skip
    }


def changed_values(before: Dict[str, Any], after: Dict[str, Any]):
    """Return (old, new) restricted to keys whose value differs."""
    old, new = {}, {}
    for key, value in after.items():
        if before.get(key) != value:
            old[key] = before.get(key)
            new[key] = value
    return old, new
