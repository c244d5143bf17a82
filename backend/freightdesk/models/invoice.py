from __future__ import annotations
import datetime as dt
from datetime import datetime
from typing import Optional, Dict, Any
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Float, Text, Date, DateTime, JSON, ForeignKey

from .base import Base, TimestampMixin, SoftDeleteMixin

PAYMENT_PENDING = 'PENDING'
PAYMENT_PROCESSING = 'PROCESSING'
PAYMENT_COMPLETED = 'COMPLETED'
PAYMENT_FAILED = 'FAILED'
PAYMENT_REFUNDED = 'REFUNDED'
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_PROCESSING, PAYMENT_COMPLETED, PAYMENT_FAILED, PAYMENT_REFUNDED)
PAYMENT_METHODS = ('transfer', 'direct_debit', 'check', 'cash', 'card')


class Invoice(TimestampMixin, SoftDeleteMixin, Base):
    """Carrier invoice grouping completed services of a single supplier."""
    __tablename__ = 'invoices'
    STATUS_DRAFT = 'DRAFT'
    STATUS_SENT = 'SENT'
    STATUS_VIEWED = 'VIEWED'
    STATUS_PAID = 'PAID'
    STATUS_OVERDUE = 'OVERDUE'
    STATUS_CANCELLED = 'CANCELLED'
    ALL_STATUSES = (STATUS_DRAFT, STATUS_SENT, STATUS_VIEWED, STATUS_PAID, STATUS_OVERDUE, STATUS_CANCELLED)
    PAYABLE_STATUSES = (STATUS_SENT, STATUS_VIEWED, STATUS_OVERDUE)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    invoice_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    invoice_date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    due_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    supplier_id: Mapped[int] = mapped_column(ForeignKey('suppliers.id'), nullable=False, index=True)
    created_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    subtotal_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tax_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    irpf_rate: Mapped[Optional[float]] = mapped_column(Float)
    irpf_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default='EUR')
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=STATUS_DRAFT, index=True)
    payment_status: Mapped[str] = mapped_column(String(32), nullable=False, default=PAYMENT_PENDING)
    paid_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    description: Mapped[Optional[str]] = mapped_column(Text)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    sent_to: Mapped[Optional[str]] = mapped_column(String(150))
    viewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    meta: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)

    supplier = relationship('Supplier')
    items = relationship('InvoiceItem', back_populates='invoice', cascade='all, delete-orphan', order_by='InvoiceItem.id')
    payments = relationship('Payment', back_populates='invoice', cascade='all, delete-orphan', order_by='Payment.id')

    @property
    def outstanding_cents(self) -> int:
        return max(0, (self.total_cents or 0) - (self.paid_amount_cents or 0))


class InvoiceItem(Base):
    __tablename__ = 'invoice_items'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    invoice_id: Mapped[int] = mapped_column(ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False, index=True)
    # nulled when the invoice is deleted and its services released
    service_id: Mapped[Optional[int]] = mapped_column(ForeignKey('services.id'), index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    unit_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    tax_rate: Mapped[float] = mapped_column(Float, nullable=False)
    tax_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    invoice = relationship('Invoice', back_populates='items')


class Payment(TimestampMixin, Base):
    __tablename__ = 'payments'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    payment_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    invoice_id: Mapped[int] = mapped_column(ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False, index=True)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default='EUR')
    payment_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    payment_method: Mapped[str] = mapped_column(String(32), nullable=False)
    reference: Mapped[Optional[str]] = mapped_column(String(100))
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=PAYMENT_COMPLETED)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id'))

    invoice = relationship('Invoice', back_populates='payments')

__all__ = ['Invoice', 'InvoiceItem', 'Payment', 'PAYMENT_STATUSES', 'PAYMENT_METHODS']
