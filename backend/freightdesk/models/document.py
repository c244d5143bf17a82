from __future__ import annotations
from datetime import datetime
from typing import Optional, Dict, Any, List
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Text, DateTime, JSON, ForeignKey, func

from .base import Base, SoftDeleteMixin


class Document(SoftDeleteMixin, Base):
    """Metadata of a file attached to a client, supplier or service. Bytes live elsewhere."""
    __tablename__ = 'documents'
    TYPE_LOADING_ORDER = 'LOADING_ORDER'
    TYPE_INVOICE = 'INVOICE'
    TYPE_RECEIPT = 'RECEIPT'
    TYPE_DELIVERY_NOTE = 'DELIVERY_NOTE'
    TYPE_CONTRACT = 'CONTRACT'
    TYPE_OTHER = 'OTHER'
    ALL_TYPES = (TYPE_LOADING_ORDER, TYPE_INVOICE, TYPE_RECEIPT, TYPE_DELIVERY_NOTE, TYPE_CONTRACT, TYPE_OTHER)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    document_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    document_number: Mapped[Optional[str]] = mapped_column(String(64))
    client_id: Mapped[Optional[int]] = mapped_column(ForeignKey('clients.id'), index=True)
    supplier_id: Mapped[Optional[int]] = mapped_column(ForeignKey('suppliers.id'), index=True)
    service_id: Mapped[Optional[int]] = mapped_column(ForeignKey('services.id'), index=True)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[str] = mapped_column(String(500), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    tags: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    meta: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)
    uploaded_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

__all__ = ['Document']
