from __future__ import annotations
from typing import Optional, List
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Boolean, Float, Text, JSON

from .base import Base, TimestampMixin, SoftDeleteMixin


class Supplier(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = 'suppliers'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    supplier_code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    trade_name: Mapped[Optional[str]] = mapped_column(String(200))
    vat_number: Mapped[Optional[str]] = mapped_column(String(32), index=True)
    address_line1: Mapped[str] = mapped_column(String(200), nullable=False)
    address_line2: Mapped[Optional[str]] = mapped_column(String(200))
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[Optional[str]] = mapped_column(String(100))
    postal_code: Mapped[str] = mapped_column(String(20), nullable=False)
    country: Mapped[str] = mapped_column(String(2), nullable=False, default='ES', index=True)
    email: Mapped[str] = mapped_column(String(150), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(32))
    contact_person: Mapped[Optional[str]] = mapped_column(String(100))
    contact_mobile: Mapped[Optional[str]] = mapped_column(String(32))
    irpf_rate: Mapped[Optional[float]] = mapped_column(Float)
    vat_rate: Mapped[float] = mapped_column(Float, nullable=False, default=21.0)
    payment_terms: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    payment_method: Mapped[Optional[str]] = mapped_column(String(32))
    bank_name: Mapped[Optional[str]] = mapped_column(String(100))
    bank_account: Mapped[Optional[str]] = mapped_column(String(64))
    swift_code: Mapped[Optional[str]] = mapped_column(String(16))
    iban: Mapped[Optional[str]] = mapped_column(String(40))
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default='EUR')
    auto_approve: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    require_po: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    tags: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)

__all__ = ['Supplier']
