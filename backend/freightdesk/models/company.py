from __future__ import annotations
from typing import Optional, Dict, Any
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Boolean, JSON

from .base import Base, TimestampMixin, SoftDeleteMixin


class Company(TimestampMixin, SoftDeleteMixin, Base):
    """Profile of the company operating the back office (a single active row)."""
    __tablename__ = 'companies'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    legal_name: Mapped[str] = mapped_column(String(100), nullable=False)
    trade_name: Mapped[Optional[str]] = mapped_column(String(100))
    vat_number: Mapped[str] = mapped_column(String(32), nullable=False)
    registration_no: Mapped[Optional[str]] = mapped_column(String(64))
    address_line1: Mapped[str] = mapped_column(String(200), nullable=False, default='')
    address_line2: Mapped[Optional[str]] = mapped_column(String(200))
    city: Mapped[str] = mapped_column(String(100), nullable=False, default='')
    state: Mapped[Optional[str]] = mapped_column(String(100))
    postal_code: Mapped[str] = mapped_column(String(20), nullable=False, default='')
    country: Mapped[str] = mapped_column(String(2), nullable=False, default='ES')
    phone: Mapped[str] = mapped_column(String(32), nullable=False, default='')
    email: Mapped[str] = mapped_column(String(150), nullable=False, default='')
    website: Mapped[Optional[str]] = mapped_column(String(200))
    bank_name: Mapped[Optional[str]] = mapped_column(String(100))
    bank_account: Mapped[Optional[str]] = mapped_column(String(64))
    swift_code: Mapped[Optional[str]] = mapped_column(String(16))
    iban: Mapped[Optional[str]] = mapped_column(String(40))
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default='EUR')
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default='Europe/Madrid')
    invoice_prefix: Mapped[Optional[str]] = mapped_column(String(16))
    logo_url: Mapped[Optional[str]] = mapped_column(String(500))
    meta: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

__all__ = ['Company']
