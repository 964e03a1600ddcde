"""UserTenant model - membership of a user in a tenant, with its role."""
import enum
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from quotevoice.database import Base


class UserRole(enum.Enum):
    OWNER = 'OWNER'
    ADMIN = 'ADMIN'
    STAFF = 'STAFF'


class UserTenant(Base):
    __tablename__ = 'user_tenant'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('app_user.id'), nullable=False)
    tenant_id = Column(Integer, ForeignKey('tenant.id'), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.STAFF.value)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint('user_id', 'tenant_id', name='uq_user_tenant'),
    )

    user = relationship('AppUser', back_populates='memberships')
    tenant = relationship('Tenant', back_populates='memberships')

    def __repr__(self):
        return f"<UserTenant(user_id={self.user_id}, tenant_id={self.tenant_id}, role='{self.role}')>"
