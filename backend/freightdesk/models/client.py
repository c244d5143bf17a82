from __future__ import annotations
from typing import Optional, Dict, Any, List
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Boolean, Float, Text, JSON

from .base import Base, TimestampMixin, SoftDeleteMixin


class Client(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = 'clients'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    client_code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    trade_name: Mapped[Optional[str]] = mapped_column(String(200))
    # upper-cased; uniqueness among live rows is checked in the route
    vat_number: Mapped[Optional[str]] = mapped_column(String(32), index=True)
    billing_address: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    shipping_address: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)
    billing_email: Mapped[str] = mapped_column(String(150), nullable=False)
    traffic_email: Mapped[Optional[str]] = mapped_column(String(150))
    contact_person: Mapped[Optional[str]] = mapped_column(String(100))
    contact_phone: Mapped[Optional[str]] = mapped_column(String(32))
    contact_mobile: Mapped[Optional[str]] = mapped_column(String(32))
    credit_limit_cents: Mapped[Optional[int]] = mapped_column(Integer)
    payment_terms: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    discount: Mapped[Optional[float]] = mapped_column(Float)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default='EUR')
    language: Mapped[str] = mapped_column(String(5), nullable=False, default='es')
    send_reminders: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    auto_invoice: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    tags: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)

    @property
    def country(self) -> Optional[str]:
        return (self.billing_address or {}).get('country')

__all__ = ['Client']
