"""Defaults for key/value system settings.

Stored blobs are merged over these on read, so a partially saved setting never
hides a key added in a later release.
"""
from __future__ import annotations
from typing import Any, Dict

SETTING_PDF = 'pdf'
SETTING_NUMBER_SEQUENCES = 'number_sequences'
SETTING_GENERAL = 'general'
SETTING_KEYS = (SETTING_PDF, SETTING_NUMBER_SEQUENCES, SETTING_GENERAL)

SETTING_DESCRIPTIONS = {
    SETTING_PDF: 'PDF generation settings',
    SETTING_NUMBER_SEQUENCES: 'Document number formatting and sequences',
    SETTING_GENERAL: 'General application settings',
}

DEFAULT_SYSTEM_SETTINGS: Dict[str, Dict[str, Any]] = {
    SETTING_PDF: {
        'paper_size': 'A4',
        'include_logo': True,
        'logo_position': 'left',
        'footer_text': '',
    },
    SETTING_NUMBER_SEQUENCES: {
        'service_format': 'SRV-YYYY-NNNNN',
        'invoice_format': 'INV-YYYY-NNNNN',
        'loading_order_format': 'LO-YYYY-NNNNN',
        'payment_number_format': 'PAY-YYYY-NNNNN',
        'sequence_reset': 'yearly',
    },
    SETTING_GENERAL: {
        'default_currency': 'EUR',
        'date_format': 'DD/MM/YYYY',
        'time_format': '24',
        'default_vat_rate': 21,
        'default_irpf_rate': 15,
        'items_per_page': 50,
        'enable_two_factor': False,
        'enable_notifications': True,
        'enable_auto_backup': True,
        'require_client_vat': False,
        'auto_archive_months': 12,
    },
}

CLIENT_CODE_FORMAT = 'CLI-YYYY-NNNNN'
SUPPLIER_CODE_FORMAT = 'SUP-YYYY-NNNNN'
