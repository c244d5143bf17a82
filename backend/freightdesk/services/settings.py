from __future__ import annotations
import copy
from typing import Any, Dict, Optional, Tuple
from sqlalchemy import select
from freightdesk import get_db
from freightdesk.config.defaults import (
    DEFAULT_SYSTEM_SETTINGS, SETTING_DESCRIPTIONS, SETTING_GENERAL, SETTING_NUMBER_SEQUENCES, SETTING_PDF,
)
from freightdesk.models.setting import SystemSetting
from freightdesk.utils.numbering import SEQUENCE_RESETS, validate_number_format
from freightdesk.utils.validation import Fields, CURRENCIES

NUMBER_FORMAT_KEYS = {
    'service': 'service_format',
    'invoice': 'invoice_format',
    'loading_order': 'loading_order_format',
    'payment': 'payment_number_format',
}


def get_setting(key: str) -> Dict[str, Any]:
    """Stored blob merged over the defaults for key."""
    merged = copy.deepcopy(DEFAULT_SYSTEM_SETTINGS.get(key, {}))
    row = get_db().execute(select(SystemSetting).where(SystemSetting.key == key)).scalar_one_or_none()
    if row and isinstance(row.value, dict):
        merged.update(row.value)
    return merged


def get_system_settings() -> Dict[str, Dict[str, Any]]:
    return {key: get_setting(key) for key in DEFAULT_SYSTEM_SETTINGS}


def number_format(kind: str) -> str:
    return get_setting(SETTING_NUMBER_SEQUENCES)[NUMBER_FORMAT_KEYS[kind]]


def sequence_reset() -> str:
    return get_setting(SETTING_NUMBER_SEQUENCES)['sequence_reset']


def general_setting(name: str) -> Any:
    return get_setting(SETTING_GENERAL).get(name)


def _validate_pdf(f: Fields) -> Dict[str, Any]:
    return {
        'paper_size': f.choice('paper_size', ('A4', 'Letter', 'Legal'), required=True),
        'include_logo': f.bool('include_logo', default=True),
        'logo_position': f.choice('logo_position', ('left', 'center', 'right'), required=True),
        'footer_text': f.str('footer_text', default='', max_len=200),
    }


def _validate_sequences(f: Fields) -> Dict[str, Any]:
    reset = f.choice('sequence_reset', SEQUENCE_RESETS, required=True)
    out = {}
    for field in NUMBER_FORMAT_KEYS.values():
        fmt = f.str(field, required=True)
        if fmt:
            for problem in validate_number_format(fmt, reset):
                f.error(field, problem)
        out[field] = fmt
    out['sequence_reset'] = reset
    return out


def _validate_general(f: Fields) -> Dict[str, Any]:
    return {
        'default_currency': f.choice('default_currency', CURRENCIES, required=True),
        'date_format': f.choice('date_format', ('DD/MM/YYYY', 'MM/DD/YYYY', 'YYYY-MM-DD', 'DD.MM.YYYY'), required=True),
        'time_format': f.choice('time_format', ('24', '12'), required=True),
        'default_vat_rate': f.number('default_vat_rate', required=True, min_value=0, max_value=100),
        'default_irpf_rate': f.number('default_irpf_rate', required=True, min_value=0, max_value=100),
        'items_per_page': f.int('items_per_page', required=True, min_value=10, max_value=100),
        'enable_two_factor': f.bool('enable_two_factor', default=False),
        'enable_notifications': f.bool('enable_notifications', default=True),
        'enable_auto_backup': f.bool('enable_auto_backup', default=True),
        'require_client_vat': f.bool('require_client_vat', default=False),
        'auto_archive_months': f.int('auto_archive_months', required=True, min_value=0, max_value=120),
    }


_VALIDATORS = {
    SETTING_PDF: _validate_pdf,
    SETTING_NUMBER_SEQUENCES: _validate_sequences,
    SETTING_GENERAL: _validate_general,
}


def validate_setting(key: str, value: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Validate a full blob for key; missing fields fall back to the current value."""
    if not isinstance(value, dict):
        value = {}
    current = get_setting(key)
    f = Fields({**current, **value})
    cleaned = _VALIDATORS[key](f)
    f.check()
    return cleaned


def upsert_setting(key: str, value: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], SystemSetting]:
    """Insert or replace the stored blob; returns (previous stored value or None, row)."""
    session = get_db()
    row = session.execute(select(SystemSetting).where(SystemSetting.key == key)).scalar_one_or_none()
    previous = None
    if row is None:
        row = SystemSetting(key=key, value=value, description=SETTING_DESCRIPTIONS.get(key), is_public=False)
        session.add(row)
    else:
        previous = dict(row.value or {})
        row.value = value
    session.flush()
    return previous, row
