"""Company model - the tenant's legal and banking identity, plus stored branding."""
from sqlalchemy import Column, Integer, String, Boolean, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from quotevoice.database import Base


class Company(Base):
    """
    Legal entity issuing quotes and invoices for a tenant.

    Banking fields feed the EPC QR payload and the Peppol export. Branding
    fields hold what the tenant asked for; what is actually rendered depends
    on the subscription tier (see services.branding_service).
    """

    __tablename__ = 'company'

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey('tenant.id', ondelete='CASCADE'), nullable=False, unique=True)

    name = Column(String(200), nullable=False)
    vat_number = Column(String(32), nullable=True)
    address = Column(Text, nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    iban = Column(String(34), nullable=True)
    bic = Column(String(11), nullable=True)

    # Branding preferences
    logo_url = Column(String(500), nullable=True)
    primary_color = Column(String(7), nullable=True)
    secondary_color = Column(String(7), nullable=True)
    accent_color = Column(String(7), nullable=True)
    footer_text = Column(String(255), nullable=True)
    white_label = Column(Boolean, nullable=False, default=False)
    show_watermark = Column(Boolean, nullable=True)  # None: tier default

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    tenant = relationship('Tenant', back_populates='company')

    def __repr__(self):
        return f"<Company(id={self.id}, tenant_id={self.tenant_id}, name='{self.name}')>"
