"""
Relational RBAC Schema

SQLAlchemy declarative tables backing the relational data source. Role
membership lives in a ``role_permissions`` join table instead of an embedded
array, and active user-role assignments are guarded by a partial unique index
so the storage layer rejects a second active grant for the same pair.

Cross-entity references (``role_permissions.permission_id`` and
``user_roles.role_id``) carry no foreign key so deleting a permission or role
leaves the same dangling ids the document backend leaves; the resolver drops
them on read.
"""

from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Index, Integer, String,
    UniqueConstraint, text,
)
from sqlalchemy.orm import declarative_base, relationship

from qa_rbac.utils.datetime import now_utc


Base = declarative_base()


class TimestampMixin:
    """Store-managed creation and update timestamps (UTC)."""

    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc, nullable=False)


class PermissionRecord(Base, TimestampMixin):
    __tablename__ = 'permissions'

    id = Column(String(36), primary_key=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(String(500), nullable=False, default='')
    resource = Column(String(50), nullable=False, index=True)
    action = Column(String(50), nullable=False)
    category = Column(String(20), nullable=False, default='content', index=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    def __repr__(self):
        return f"<PermissionRecord {self.name} (ID: {self.id})>"


class RoleRecord(Base, TimestampMixin):
    __tablename__ = 'roles'

    id = Column(String(36), primary_key=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(String(500), nullable=False, default='')
    is_system = Column(Boolean, nullable=False, default=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    permission_links = relationship(
        'RolePermissionRecord',
        back_populates='role',
        cascade='all, delete-orphan',
        order_by='RolePermissionRecord.id',
        lazy='selectin',
    )

    @property
    def permission_ids(self):
        return [link.permission_id for link in self.permission_links]

    def __repr__(self):
        return f"<RoleRecord {self.name} (ID: {self.id})>"


class RolePermissionRecord(Base):
    """One membership of a permission id in a role."""

    __tablename__ = 'role_permissions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    role_id = Column(String(36), ForeignKey('roles.id', ondelete='CASCADE'), nullable=False)
    permission_id = Column(String(36), nullable=False, index=True)
    granted_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)

    role = relationship('RoleRecord', back_populates='permission_links')

    __table_args__ = (
        UniqueConstraint('role_id', 'permission_id', name='uq_role_permission'),
    )


class UserRoleRecord(Base, TimestampMixin):
    __tablename__ = 'user_roles'

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), nullable=False)
    role_id = Column(String(36), nullable=False, index=True)
    assigned_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
    assigned_by = Column(String(36), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        # At most one active assignment per (user, role)
        Index(
            'uq_user_roles_active_pair', 'user_id', 'role_id',
            unique=True,
            postgresql_where=text('is_active'),
            sqlite_where=text('is_active'),
        ),
        Index('idx_user_roles_user_active', 'user_id', 'is_active'),
        Index('idx_user_roles_expiry', 'expires_at', 'is_active'),
    )

    def __repr__(self):
        return f"<UserRoleRecord user={self.user_id} role={self.role_id} (Active: {self.is_active})>"


__all__ = [
    'Base',
    'PermissionRecord',
    'RoleRecord',
    'RolePermissionRecord',
    'UserRoleRecord',
]
