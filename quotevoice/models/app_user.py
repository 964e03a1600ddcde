"""AppUser model - people signing in to a tenant's workspace."""
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from quotevoice.database import Base


class AppUser(Base):
    """
    Artisan or staff member.

    Sign-in happens upstream; requests carry the user and tenant ids in the
    signed session cookie.
    """

    __tablename__ = 'app_user'

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    full_name = Column(String(200), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    memberships = relationship('UserTenant', back_populates='user')

    def __repr__(self):
        return f"<AppUser(id={self.id}, email='{self.email}')>"
