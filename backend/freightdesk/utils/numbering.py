"""Document number sequences (SRV-2025-00042 style).

A format mixes literal text with tokens:
  YYYY / YY  year, MM month, DD day, NNN..NNNNN zero padded counter (exactly one run).
Single letters are literal, so prefixes like ``INV`` are fine.

The next number is one above the highest existing number of the running sequence.
The ``sequence_reset`` setting decides which date tokens scope a sequence: ``yearly``
keeps counting through months and days of a year, ``monthly`` through the days of a
month, ``never`` and ``manual`` across all dates.
"""
from __future__ import annotations
import re
from datetime import date
from typing import List, Optional, Pattern, Tuple
from sqlalchemy import select

_RUN_RE = re.compile(r'Y+|M+|D+|N+')
_VALID_RUNS = {'Y': (2, 4), 'M': (2,), 'D': (2,), 'N': (3, 4, 5)}

SEQUENCE_RESETS = ('yearly', 'monthly', 'never', 'manual')
# date token kinds that stay fixed within one sequence
_KEPT_TOKENS = {'yearly': 'Y', 'monthly': 'YM', 'never': '', 'manual': ''}


def validate_number_format(fmt: Optional[str], reset: Optional[str] = None) -> List[str]:
    """Return a list of problems; empty list means the format is usable."""
    if not fmt or not fmt.strip():
        return ['Format is required']
    errors = []
    counters = 0
    kinds = set()
    for m in _RUN_RE.finditer(fmt):
        run = m.group(0)
        if len(run) == 1:
            continue
        if len(run) not in _VALID_RUNS[run[0]]:
            errors.append(f'Invalid token {run}. Use YYYY, YY, MM, DD, NNN, NNNN or NNNNN')
        elif run[0] == 'N':
            counters += 1
        else:
            kinds.add(run[0])
    if counters == 0 and not errors:
        errors.append('Format must contain a number token (NNN, NNNN, or NNNNN)')
    elif counters > 1:
        errors.append('Format must contain a single number token')
    if len(fmt) > 30:
        errors.append('Format must be at most 30 characters')
    # numbers of different periods must not collide
    if reset == 'yearly' and 'Y' not in kinds:
        errors.append('Format must contain a year token (YYYY or YY) to reset yearly')
    elif reset == 'monthly' and not {'Y', 'M'} <= kinds:
        errors.append('Format must contain year and month tokens (YYYY or YY, and MM) to reset monthly')
    return errors


def _render_run(run: str, on: date) -> str:
    if run[0] == 'Y':
        return f'{on.year:04d}' if len(run) == 4 else f'{on.year % 100:02d}'
    return f'{on.month:02d}' if run[0] == 'M' else f'{on.day:02d}'


def split_format(fmt: str, on: date) -> Tuple[str, str, int]:
    """Render date tokens and return (prefix, suffix, counter_width)."""
    prefix, suffix, width = [], [], 0
    target = prefix
    pos = 0
    for m in _RUN_RE.finditer(fmt):
        target.append(fmt[pos:m.start()])
        run = m.group(0)
        if len(run) == 1:
            target.append(run)
        elif run[0] == 'N':
            width = len(run)
            target = suffix
        else:
            target.append(_render_run(run, on))
        pos = m.end()
    target.append(fmt[pos:])
    if not width:
        raise ValueError(f'number format {fmt!r} has no counter token')
    return ''.join(prefix), ''.join(suffix), width


def render_number(fmt: str, counter: int, on: Optional[date] = None) -> str:
    prefix, suffix, width = split_format(fmt, on or date.today())
    return f'{prefix}{counter:0{width}d}{suffix}'


def _sequence_pattern(fmt: str, on: date, kept: str) -> Tuple[Pattern, str]:
    """Regex for numbers of the running sequence and the fixed text they all start with.

    Date tokens whose kind is in ``kept`` are rendered for ``on``; the others match any digits.
    """
    regex, fixed, lead = [], [], None
    pos = 0
    for m in _RUN_RE.finditer(fmt):
        run = m.group(0)
        text = fmt[pos:m.start()]
        pos = m.end()
        if len(run) == 1 or run[0] in kept:
            text += run if len(run) == 1 else _render_run(run, on)
            regex.append(re.escape(text))
            fixed.append(text)
            continue
        regex.append(re.escape(text))
        fixed.append(text)
        if lead is None:
            lead = ''.join(fixed)
        regex.append(r'(\d+)' if run[0] == 'N' else r'\d{%d}' % len(run))
    regex.append(re.escape(fmt[pos:]))
    return re.compile(''.join(regex) + '$'), lead or ''


def next_number(session, column, fmt: str, on: Optional[date] = None, reset: Optional[str] = None) -> str:
    """Next free number for ``column`` (a mapped String column) under ``fmt``.

    ``reset`` is the sequence_reset setting. Without it every date token in the format
    scopes the sequence. Soft-deleted rows keep their numbers, so they are counted too.
    """
    on = on or date.today()
    prefix, suffix, width = split_format(fmt, on)
    pattern, lead = _sequence_pattern(fmt, on, _KEPT_TOKENS.get(reset, 'YMD'))
    highest = 0
    for existing in session.execute(select(column).where(column.like(f'{lead}%'))).scalars():
        m = pattern.match(existing or '')
        if m:
            highest = max(highest, int(m.group(1)))
    return f'{prefix}{highest + 1:0{width}d}{suffix}'

__all__ = ['validate_number_format', 'split_format', 'render_number', 'next_number', 'SEQUENCE_RESETS']
