from __future__ import annotations
import datetime as dt
from datetime import datetime
from typing import Optional, Dict, Any
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Float, Text, Date, DateTime, JSON, ForeignKey, func

from .base import Base, TimestampMixin, SoftDeleteMixin


class Service(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = 'services'
    # Status constants
    STATUS_DRAFT = 'DRAFT'
    STATUS_CONFIRMED = 'CONFIRMED'
    STATUS_IN_PROGRESS = 'IN_PROGRESS'
    STATUS_COMPLETED = 'COMPLETED'
    STATUS_INVOICED = 'INVOICED'
    STATUS_CANCELLED = 'CANCELLED'
    STATUS_ARCHIVED = 'ARCHIVED'
    ALL_STATUSES = (STATUS_DRAFT, STATUS_CONFIRMED, STATUS_IN_PROGRESS, STATUS_COMPLETED,
                    STATUS_INVOICED, STATUS_CANCELLED, STATUS_ARCHIVED)
    CREATE_STATUSES = (STATUS_DRAFT, STATUS_CONFIRMED)
    LOCKED_STATUSES = (STATUS_CANCELLED, STATUS_INVOICED, STATUS_ARCHIVED)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    service_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    client_id: Mapped[int] = mapped_column(ForeignKey('clients.id'), nullable=False, index=True)
    supplier_id: Mapped[int] = mapped_column(ForeignKey('suppliers.id'), nullable=False, index=True)
    created_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    assigned_to: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id'))
    description: Mapped[str] = mapped_column(Text, nullable=False)
    reference: Mapped[Optional[str]] = mapped_column(String(100))
    origin: Mapped[str] = mapped_column(String(200), nullable=False)
    destination: Mapped[str] = mapped_column(String(200), nullable=False)
    distance: Mapped[Optional[int]] = mapped_column(Integer)
    vehicle_type: Mapped[Optional[str]] = mapped_column(String(64))
    vehicle_plate: Mapped[Optional[str]] = mapped_column(String(32), index=True)
    driver_name: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    cost_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cost_currency: Mapped[str] = mapped_column(String(3), nullable=False, default='EUR')
    sale_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sale_currency: Mapped[str] = mapped_column(String(3), nullable=False, default='EUR')
    margin_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    margin_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    cost_vat_rate: Mapped[float] = mapped_column(Float, nullable=False, default=21.0)
    cost_vat_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sale_vat_rate: Mapped[float] = mapped_column(Float, nullable=False, default=21.0)
    sale_vat_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=STATUS_DRAFT, index=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    internal_notes: Mapped[Optional[str]] = mapped_column(Text)
    custom_fields: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)

    client = relationship('Client')
    supplier = relationship('Supplier')
    history = relationship('ServiceStatusHistory', back_populates='service', cascade='all, delete-orphan',
                           order_by='ServiceStatusHistory.id')


class ServiceStatusHistory(Base):
    __tablename__ = 'service_status_history'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    service_id: Mapped[int] = mapped_column(ForeignKey('services.id', ondelete='CASCADE'), nullable=False, index=True)
    from_status: Mapped[Optional[str]] = mapped_column(String(32))
    to_status: Mapped[str] = mapped_column(String(32), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text)
    changed_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    service = relationship('Service', back_populates='history')

__all__ = ['Service', 'ServiceStatusHistory']
