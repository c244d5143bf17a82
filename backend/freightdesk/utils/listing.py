from __future__ import annotations
import hashlib
from datetime import datetime, timezone, timedelta
from email.utils import parsedate_to_datetime, format_datetime
from typing import Tuple, Iterable, Optional
from flask import request, abort, make_response
from sqlalchemy.orm import Query
from freightdesk.config.pagination import normalize_pagination
from freightdesk.services.settings import general_setting

# If-Modified-Since only has whole-second precision
TIMESTAMP_TOLERANCE = timedelta(seconds=1)


def _to_utc_second(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0)


def _iso_z(dt: Optional[datetime]) -> str:
    return dt.isoformat().replace('+00:00', 'Z') if dt else ''


def apply_pagination(q: Query) -> Tuple[Query, int, int, int]:
    """Apply ?limit/?offset to q; returns (page query, total, limit, offset)."""
    try:
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'),
                                             general_setting('items_per_page'))
    except ValueError as e:
        abort(400, description=str(e))
    total = q.count()
    return q.offset(offset).limit(limit), total, limit, offset


def compute_etag(ids: Iterable[int], total: int, limit: int, offset: int, stamp: str = '') -> str:
    raw = '|'.join((repr(list(ids)), str(total), str(limit), str(offset), stamp or ''))
    return hashlib.sha256(raw.encode()).hexdigest()[:32]


def build_list_payload(rows: list, total: int, limit: int, offset: int, extra: Optional[dict] = None) -> dict:
    payload = {'data': rows,
               'pagination': {'total': total, 'limit': limit, 'offset': offset, 'returned': len(rows)}}
    payload.update(extra or {})
    return payload


def latest_timestamp(rows, attr: str = 'updated_at') -> Optional[datetime]:
    stamps = [s for s in (getattr(r, attr, None) for r in rows) if isinstance(s, datetime)]
    return max(stamps) if stamps else None


def _parse_since(value: str) -> Optional[datetime]:
    # HTTP-date per RFC 9110; ISO 8601 is accepted too
    try:
        return _to_utc_second(parsedate_to_datetime(value))
    except (TypeError, ValueError):
        pass
    try:
        return _to_utc_second(datetime.fromisoformat(value.replace('Z', '+00:00')))
    except ValueError:
        return None


def _not_modified(etag: str, modified: Optional[datetime]) -> bool:
    inm = request.headers.get('If-None-Match')
    if inm:
        return inm.strip().strip('"') == etag
    since = request.headers.get('If-Modified-Since')
    if not since or modified is None:
        return False
    since_dt = _parse_since(since)
    return since_dt is not None and modified <= since_dt + TIMESTAMP_TOLERANCE


def _respond(body, etag: str, modified: Optional[datetime]):
    """Attach validators and answer 304 / HEAD without a body."""
    if _not_modified(etag, modified):
        resp = make_response('', 304)
    else:
        resp = make_response(body)
        if request.method == 'HEAD':
            resp.set_data(b'')
    resp.headers['ETag'] = etag
    if modified is not None:
        resp.headers['Last-Modified'] = format_datetime(modified, usegmt=True)
    return resp


def list_response(rows_json: list, total: int, limit: int, offset: int, latest_ts: Optional[datetime] = None,
                  extra: Optional[dict] = None):
    """Paginated list body with ETag/Last-Modified; honours conditional headers and HEAD."""
    modified = _to_utc_second(latest_ts) if isinstance(latest_ts, datetime) else None
    etag = compute_etag([r.get('id') for r in rows_json], total, limit, offset, _iso_z(modified))
    return _respond(build_list_payload(rows_json, total, limit, offset, extra), etag, modified)


def single_response(body: dict, latest_ts: Optional[datetime] = None):
    """Single resource body with the same validators and conditional semantics as lists."""
    modified = _to_utc_second(latest_ts) if isinstance(latest_ts, datetime) else None
    etag = compute_etag([body.get('id')], 1, 1, 0, _iso_z(modified))
    return _respond(body, etag, modified)
