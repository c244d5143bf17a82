from __future__ import annotations
import csv
import io
from datetime import date
from typing import Any, Iterable, Sequence
from flask import Response

from .serialize import iso


def _cell(value: Any) -> Any:
    if value is None:
        return ''
    if isinstance(value, date):
        return iso(value)
    if isinstance(value, (list, tuple)):
        return ';'.join(str(v) for v in value)
    return value


def csv_response(filename: str, columns: Sequence[str], rows: Iterable[Sequence]) -> Response:
    """Render rows as a CSV attachment; the first line carries the column names."""
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(columns)
    for row in rows:
        writer.writerow([_cell(v) for v in row])
    return Response(
        buf.getvalue(),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename={filename}'},
    )
