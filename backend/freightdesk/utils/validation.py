from __future__ import annotations
"""Reusable validation helpers for request payloads.

Handlers build a ``Fields`` wrapper around the JSON body, pull cleaned values out
field by field and finally call ``check()``; every problem found is reported at
once as a 400 with an ``errors`` map (field -> list of messages).

    f = Fields(request.json)
    name = f.str('name', required=True, min_len=2, max_len=200)
    terms = f.int('payment_terms', default=30, min_value=0, max_value=365)
    f.check()
"""
import re
from datetime import date
from typing import Any, Dict, Iterable, List, Optional
from flask import abort
from werkzeug.exceptions import BadRequest

from .money import to_cents

EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
PHONE_RE = re.compile(r'^\+?[1-9]\d{7,14}$')
VAT_RE = re.compile(r'^[A-Z]{2}[0-9A-Z]+$')
IBAN_RE = re.compile(r'^[A-Z]{2}\d{2}[A-Z0-9]+$')
CURRENCIES = ('EUR', 'USD', 'GBP')

_MISSING = object()


class ValidationError(BadRequest):
    """400 carrying per-field messages; rendered by the app error handler."""

    def __init__(self, errors: Dict[str, List[str]], description: str = 'Validation failed'):
        super().__init__(description=description)
        self.errors = errors


def is_email(value: str) -> bool:
    return bool(EMAIL_RE.match(value or ''))


class Fields:
    def __init__(self, data: Optional[Dict[str, Any]], partial: bool = False):
        if data is not None and not isinstance(data, dict):
            abort(400, description='JSON object body required')
        self.data = data or {}
        # partial: absent fields are skipped (PATCH-like updates)
        self.partial = partial
        self.errors: Dict[str, List[str]] = {}

    def __contains__(self, name: str) -> bool:
        return name in self.data

    def error(self, name: str, message: str):
        self.errors.setdefault(name, []).append(message)

    def check(self):
        if self.errors:
            raise ValidationError(self.errors)

    def _raw(self, name: str, required: bool):
        value = self.data.get(name, _MISSING)
        if value is _MISSING or value is None or (isinstance(value, str) and not value.strip()):
            if required and not (self.partial and name not in self.data):
                self.error(name, f'{name} is required')
            return _MISSING
        return value

    def present(self, name: str) -> bool:
        """True when the field should be applied (always on create, when sent on update)."""
        return not self.partial or name in self.data

    def str(self, name: str, required: bool = False, default: Any = None, min_len: int = None,
            max_len: int = None, pattern=None, message: str = None, upper: bool = False, lower: bool = False):
        value = self._raw(name, required)
        if value is _MISSING:
            return default
        if not isinstance(value, str):
            self.error(name, f'{name} must be a string')
            return default
        value = value.strip()
        if upper:
            value = value.upper()
        if lower:
            value = value.lower()
        if min_len is not None and len(value) < min_len:
            self.error(name, f'{name} must be at least {min_len} characters')
        if max_len is not None and len(value) > max_len:
            self.error(name, f'{name} must be at most {max_len} characters')
        if pattern is not None and not pattern.match(value):
            self.error(name, message or f'{name} has an invalid format')
        return value

    def email(self, name: str, required: bool = False, default: Any = None):
        value = self.str(name, required=required, default=default, max_len=150, lower=True)
        if value and not is_email(value):
            self.error(name, 'Invalid email address')
        return value

    def int(self, name: str, required: bool = False, default: Any = None, min_value: int = None, max_value: int = None):
        value = self._raw(name, required)
        if value is _MISSING:
            return default
        if isinstance(value, bool):
            self.error(name, f'{name} must be a whole number')
            return default
        try:
            as_float = float(value)
        except (TypeError, ValueError):
            self.error(name, f'{name} must be a whole number')
            return default
        if not as_float.is_integer():
            self.error(name, f'{name} must be a whole number')
            return default
        value = int(as_float)
        self._range(name, value, min_value, max_value)
        return value

    def number(self, name: str, required: bool = False, default: Any = None, min_value: float = None, max_value: float = None):
        value = self._raw(name, required)
        if value is _MISSING:
            return default
        if isinstance(value, bool):
            self.error(name, f'{name} must be a number')
            return default
        try:
            value = float(value)
        except (TypeError, ValueError):
            self.error(name, f'{name} must be a number')
            return default
        self._range(name, value, min_value, max_value)
        return value

    def money(self, name: str, required: bool = False, default: Any = None, min_cents: int = 0):
        """Decimal amount in the payload -> integer cents."""
        value = self._raw(name, required)
        if value is _MISSING:
            return default
        try:
            cents = to_cents(value)
        except ValueError:
            self.error(name, f'{name} must be a number')
            return default
        if min_cents is not None and cents < min_cents:
            self.error(name, f'{name} cannot be negative' if min_cents == 0 else f'{name} must be positive')
        return cents

    def bool(self, name: str, default: Any = None):
        value = self.data.get(name, _MISSING)
        if value is _MISSING or value is None:
            return default
        if not isinstance(value, bool):
            self.error(name, f'{name} must be a boolean')
            return default
        return value

    def choice(self, name: str, choices: Iterable[Any], required: bool = False, default: Any = None):
        value = self._raw(name, required)
        if value is _MISSING:
            return default
        choices = tuple(choices)
        if value not in choices:
            self.error(name, f'{name} must be one of {", ".join(str(c) for c in choices)}')
            return default
        return value

    def date(self, name: str, required: bool = False, default: Any = None):
        value = self._raw(name, required)
        if value is _MISSING:
            return default
        parsed = parse_date(value)
        if parsed is None:
            self.error(name, f'{name} must be an ISO date (YYYY-MM-DD)')
            return default
        return parsed

    def str_list(self, name: str, default: Any = None, max_items: int = 50):
        value = self.data.get(name, _MISSING)
        if value is _MISSING or value is None:
            return default
        if not isinstance(value, list) or any(not isinstance(v, str) for v in value):
            self.error(name, f'{name} must be a list of strings')
            return default
        if len(value) > max_items:
            self.error(name, f'{name} accepts at most {max_items} entries')
        cleaned = []
        for v in value:
            v = v.strip()
            if v and v not in cleaned:
                cleaned.append(v)
        return cleaned

    def id_list(self, name: str, required: bool = True):
        value = self.data.get(name)
        if not isinstance(value, list) or not value:
            if required:
                self.error(name, f'{name} must be a non-empty list of ids')
            return []
        if any(isinstance(v, bool) or not isinstance(v, int) for v in value):
            self.error(name, f'{name} must be a non-empty list of ids')
            return []
        return value

    def address(self, name: str, required: bool = False):
        value = self.data.get(name)
        if value is None:
            if required and self.present(name):
                self.error(name, f'{name} is required')
            return None
        if not isinstance(value, dict):
            self.error(name, f'{name} must be an object')
            return None
        sub = Fields(value)
        out = {
            'line1': sub.str('line1', required=True, max_len=200),
            'line2': sub.str('line2', max_len=200),
            'city': sub.str('city', required=True, max_len=100),
            'state': sub.str('state', max_len=100),
            'postal_code': sub.str('postal_code', required=True, max_len=20),
            'country': sub.str('country', required=True, max_len=100, upper=True),
        }
        for field, messages in sub.errors.items():
            for msg in messages:
                self.error(f'{name}.{field}', msg)
        return {k: v for k, v in out.items() if v is not None}

    def _range(self, name, value, min_value, max_value):
        if min_value is not None and value < min_value:
            self.error(name, f'{name} must be >= {min_value}')
        if max_value is not None and value > max_value:
            self.error(name, f'{name} must be <= {max_value}')


def parse_date(value: Any) -> Optional[date]:
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def parse_bool_arg(value: Optional[str]) -> Optional[bool]:
    """Query-string boolean (true/false/1/0); None when absent."""
    if value is None or value == '':
        return None
    lowered = value.lower()
    if lowered in ('true', '1', 'yes'):
        return True
    if lowered in ('false', '0', 'no'):
        return False
    abort(400, description=f'invalid boolean {value}')

__all__ = ['ValidationError', 'Fields', 'parse_date', 'parse_bool_arg', 'is_email',
           'EMAIL_RE', 'PHONE_RE', 'VAT_RE', 'IBAN_RE', 'CURRENCIES']
