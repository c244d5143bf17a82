from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Boolean, DateTime

from .base import Base, TimestampMixin, SoftDeleteMixin
from freightdesk.constants.permissions import ROLES, VIEWER, SUPER_ADMIN, ADMIN_ROLES


class User(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = 'users'
    ALL_ROLES = ROLES

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default=VIEWER, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32))
    department: Mapped[Optional[str]] = mapped_column(String(100))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_login_ip: Mapped[Optional[str]] = mapped_column(String(64))
    password_changed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    # bumped to invalidate every token issued before a role change, deactivation or password reset
    token_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def set_password(self, raw: str):
        from werkzeug.security import generate_password_hash
        self.password_hash = generate_password_hash(raw)

    def verify_password(self, raw: str) -> bool:
        from werkzeug.security import check_password_hash
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, raw)

    def revoke_tokens(self):
        self.token_version = (self.token_version or 0) + 1

    @property
    def is_super_admin(self) -> bool:
        return self.role == SUPER_ADMIN

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

__all__ = ['User']
