from __future__ import annotations
from datetime import datetime
from typing import Optional, Dict, Any
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, DateTime, JSON, ForeignKey, UniqueConstraint, func

from .base import Base, TimestampMixin, SoftDeleteMixin


class LoadingOrder(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = 'loading_orders'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    generated_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    client_id: Mapped[Optional[int]] = mapped_column(ForeignKey('clients.id'))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    meta: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)

    items = relationship('ServiceLoadingOrder', back_populates='loading_order', cascade='all, delete-orphan',
                         order_by='ServiceLoadingOrder.position')


class ServiceLoadingOrder(Base):
    __tablename__ = 'service_loading_orders'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    service_id: Mapped[int] = mapped_column(ForeignKey('services.id'), nullable=False, index=True)
    loading_order_id: Mapped[int] = mapped_column(ForeignKey('loading_orders.id', ondelete='CASCADE'), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    loading_order = relationship('LoadingOrder', back_populates='items')
    service = relationship('Service')

    __table_args__ = (UniqueConstraint('loading_order_id', 'service_id', name='uq_loading_order_service'),)

__all__ = ['LoadingOrder', 'ServiceLoadingOrder']
