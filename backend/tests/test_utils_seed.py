"""Test seeding utilities to reduce duplication.

These helpers centralize creation of users (one per role), tokens, clients, suppliers
and services while preserving the project invariants (pricing, numbering).
"""
from datetime import date
from itertools import count
from typing import Optional
from freightdesk import get_db
from freightdesk.models.user import User
from freightdesk.models.client import Client
from freightdesk.models.supplier import Supplier
from freightdesk.models.service import Service
from freightdesk.services.auth import issue_token
from freightdesk.services.lifecycle import apply_pricing

_seq = count(1)


def unique(prefix: str) -> str:
    return f'{prefix}{next(_seq):05d}'


def ensure_user(email: str, role: str = 'VIEWER', name: Optional[str] = None, password: str = 'password123',
                is_active: bool = True) -> User:
    session = get_db()
    u = session.query(User).filter_by(email=email).one_or_none()
    if not u:
        u = User(name=name or email.split('@')[0], email=email, role=role, is_active=is_active, password_hash='')
        u.set_password(password)
        session.add(u); session.commit(); session.refresh(u)
    return u


def auth_headers(user: User) -> dict:
    return {'Authorization': f'Bearer {issue_token(user)}'}


def user_with_headers(role: str, prefix: Optional[str] = None):
    """Fresh user of role plus its bearer header."""
    u = ensure_user(f'{unique(prefix or role.lower())}@example.com', role=role)
    return u, auth_headers(u)


def ensure_client(name: Optional[str] = None, vat_number: Optional[str] = None, is_active: bool = True,
                  country: str = 'ES') -> Client:
    session = get_db()
    code = unique('CLI-T-')
    c = Client(
        client_code=code,
        name=name or f'Client {code}',
        vat_number=vat_number,
        billing_address={'line1': 'Calle Mayor 1', 'city': 'Madrid', 'postal_code': '28001', 'country': country},
        billing_email=f'{code.lower()}@client.test',
        tags=[],
        is_active=is_active,
    )
    session.add(c); session.commit()
    return c


def ensure_supplier(name: Optional[str] = None, irpf_rate: Optional[float] = None, payment_terms: int = 30,
                    vat_rate: float = 21.0, is_active: bool = True) -> Supplier:
    session = get_db()
    code = unique('SUP-T-')
    s = Supplier(
        supplier_code=code,
        name=name or f'Carrier {code}',
        address_line1='Poligono 3',
        city='Valencia',
        postal_code='46001',
        country='ES',
        email=f'{code.lower()}@carrier.test',
        irpf_rate=irpf_rate,
        vat_rate=vat_rate,
        payment_terms=payment_terms,
        tags=[],
        is_active=is_active,
    )
    session.add(s); session.commit()
    return s


def create_service(creator: User, client: Optional[Client] = None, supplier: Optional[Supplier] = None,
                   status: str = Service.STATUS_DRAFT, cost_cents: int = 10000, sale_cents: int = 15000,
                   on: Optional[date] = None, assigned_to: Optional[int] = None, driver_name: Optional[str] = None,
                   vat_rate: float = 21.0) -> Service:
    """Create a service directly in the given status (non-idempotent)."""
    session = get_db()
    client = client or ensure_client()
    supplier = supplier or ensure_supplier()
    s = Service(
        service_number=unique('SRV-T-'),
        date=on or date.today(),
        client_id=client.id,
        supplier_id=supplier.id,
        created_by=creator.id,
        assigned_to=assigned_to,
        description='Pallets',
        origin='Madrid',
        destination='Barcelona',
        driver_name=driver_name,
        cost_cents=cost_cents,
        sale_cents=sale_cents,
        cost_vat_rate=vat_rate,
        sale_vat_rate=vat_rate,
        status=status,
    )
    apply_pricing(s)
    session.add(s); session.commit()
    return s


def service_payload(client: Client, supplier: Supplier, **overrides) -> dict:
    body = {
        'date': date.today().isoformat(),
        'client_id': client.id,
        'supplier_id': supplier.id,
        'description': 'Full truck load',
        'origin': 'Madrid',
        'destination': 'Sevilla',
        'cost_amount': 100,
        'sale_amount': 150,
    }
    body.update(overrides)
    return body


__all__ = [
    'unique', 'ensure_user', 'auth_headers', 'user_with_headers', 'ensure_client', 'ensure_supplier',
    'create_service', 'service_payload',
]
