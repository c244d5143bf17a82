from __future__ import annotations
from flask import Blueprint, request, abort
from sqlalchemy import select
from freightdesk import get_db
from freightdesk.config.defaults import SETTING_KEYS, SETTING_DESCRIPTIONS
from freightdesk.constants.permissions import build_matrix_table, ROLES, role_display_name, PERMISSION_DESCRIPTIONS
from freightdesk.models.company import Company
from freightdesk.decorators.auth import require_permission
from freightdesk.services.audit import add_audit
from freightdesk.services.settings import get_system_settings, upsert_setting, validate_setting
from freightdesk.utils.listing import single_response
from freightdesk.utils.serialize import iso, model_snapshot, changed_values
from freightdesk.utils.validation import Fields, CURRENCIES, IBAN_RE, PHONE_RE, VAT_RE

settings_bp = Blueprint('settings', __name__)

DEFAULT_COMPANY_CODE = 'DEFAULT'


def _company_json(c: Company) -> dict:
    return {
        'id': c.id,
        'code': c.code,
        'legal_name': c.legal_name,
        'trade_name': c.trade_name,
        'vat_number': c.vat_number,
        'registration_no': c.registration_no,
        'address_line1': c.address_line1,
        'address_line2': c.address_line2,
        'city': c.city,
        'state': c.state,
        'postal_code': c.postal_code,
        'country': c.country,
        'phone': c.phone,
        'email': c.email,
        'website': c.website,
        'bank_name': c.bank_name,
        'bank_account': c.bank_account,
        'swift_code': c.swift_code,
        'iban': c.iban,
        'currency': c.currency,
        'timezone': c.timezone,
        'invoice_prefix': c.invoice_prefix,
        'logo_url': c.logo_url,
        'updated_at': iso(c.updated_at),
    }


def _default_company():
    return get_db().execute(
        select(Company).where(Company.code == DEFAULT_COMPANY_CODE, Company.deleted_at.is_(None))
    ).scalar_one_or_none()


@settings_bp.route('/company', methods=['GET', 'HEAD'])
@require_permission('settings', 'view')
def get_company():
    c = _default_company()
    if c is None:
        return {'data': None}
    return single_response({'data': _company_json(c)}, c.updated_at)


@settings_bp.put('/company')
@require_permission('settings', 'edit')
def update_company():
    session = get_db()
    f = Fields(request.get_json(silent=True))
    values = {
        'legal_name': f.str('legal_name', required=True, min_len=2, max_len=100),
        'trade_name': f.str('trade_name', max_len=100),
        'vat_number': f.str('vat_number', required=True, max_len=32, upper=True, pattern=VAT_RE,
                            message='Invalid VAT number format'),
        'registration_no': f.str('registration_no', max_len=64),
        'address_line1': f.str('address_line1', required=True, max_len=200),
        'address_line2': f.str('address_line2', max_len=200),
        'city': f.str('city', default='', max_len=100),
        'state': f.str('state', max_len=100),
        'postal_code': f.str('postal_code', default='', max_len=20),
        'country': f.str('country', default='ES', min_len=2, max_len=2, upper=True),
        'email': f.email('email', required=True),
        'phone': f.str('phone', required=True, pattern=PHONE_RE, message='Invalid phone number'),
        'website': f.str('website', max_len=200),
        'bank_name': f.str('bank_name', max_len=100),
        'bank_account': f.str('bank_account', max_len=64),
        'swift_code': f.str('swift_code', max_len=16, upper=True),
        'iban': f.str('iban', max_len=40, upper=True, pattern=IBAN_RE, message='Invalid IBAN'),
        'currency': f.choice('currency', CURRENCIES, default='EUR'),
        'timezone': f.str('timezone', default='Europe/Madrid', max_len=64),
        'invoice_prefix': f.str('invoice_prefix', max_len=16),
        'logo_url': f.str('logo_url', max_len=500),
    }
    f.check()
    c = _default_company()
    if c is None:
        c = Company(code=DEFAULT_COMPANY_CODE, **values)
        session.add(c)
        session.flush()
        add_audit('CREATE', 'companies', c.id, new_values=values, metadata={'action': 'company_settings_create'})
        status = 201
    else:
        before = model_snapshot(c)
        for k, v in values.items():
            setattr(c, k, v)
        session.flush()
        old_values, new_values = changed_values(before, model_snapshot(c, exclude=('updated_at',)))
        add_audit('UPDATE', 'companies', c.id, old_values, new_values, metadata={'action': 'company_settings_update'})
        status = 200
    session.commit()
    return {'data': _company_json(c)}, status


@settings_bp.get('/system')
@require_permission('settings', 'view')
def system_settings():
    return {'data': get_system_settings(), 'descriptions': SETTING_DESCRIPTIONS}


@settings_bp.put('/system/<string:key>')
@require_permission('settings', 'edit')
def update_system_setting(key: str):
    if key not in SETTING_KEYS:
        abort(404, description=f'Unknown setting {key}')
    session = get_db()
    cleaned = validate_setting(key, request.get_json(silent=True))
    previous, row = upsert_setting(key, cleaned)
    add_audit('UPDATE' if previous is not None else 'CREATE', 'system_settings', key,
              old_values=previous, new_values=cleaned, metadata={'section': key})
    session.commit()
    return {'key': key, 'value': row.value}


@settings_bp.get('/permissions')
@require_permission('settings', 'view')
def permission_matrix():
    return {
        'roles': [{'role': r, 'name': role_display_name(r)} for r in ROLES],
        'resources': PERMISSION_DESCRIPTIONS,
        'matrix': build_matrix_table(),
    }
