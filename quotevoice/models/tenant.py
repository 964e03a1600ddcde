"""Tenant model - one artisan business and its billing workspace."""
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from quotevoice.database import Base


class Tenant(Base):
    __tablename__ = 'tenant'

    id = Column(Integer, primary_key=True, autoincrement=True)
    slug = Column(String(80), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    # Locale of rendered documents when a request does not pick one
    default_locale = Column(String(10), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    is_suspended = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    memberships = relationship('UserTenant', back_populates='tenant')
    company = relationship('Company', uselist=False, back_populates='tenant')

    @property
    def is_accessible(self):
        return bool(self.active) and not self.is_suspended

    def __repr__(self):
        return f"<Tenant(id={self.id}, slug='{self.slug}')>"
