DEFAULT_LIMIT = 50
MAX_LIMIT = 100

def normalize_pagination(limit_raw, offset_raw, default_limit=DEFAULT_LIMIT):
    """default_limit applies when ?limit is absent (the items_per_page setting)."""
    try:
        limit = int(limit_raw) if limit_raw is not None else int(default_limit or DEFAULT_LIMIT)
        offset = int(offset_raw) if offset_raw is not None else 0
    except ValueError:
        raise ValueError('limit/offset must be int')
    limit = max(1, min(limit, MAX_LIMIT))
    offset = max(0, offset)
    return limit, offset
