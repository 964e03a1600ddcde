"""Quote model for devis/offertes."""
import enum
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from quotevoice.database import Base


class QuoteStatus(str, enum.Enum):
    """Quote status enum."""
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    FINALIZED = "finalized"
    EXPORTED = "exported"
    ARCHIVED = "archived"


# Content can no longer change once the quote reaches one of these
IMMUTABLE_QUOTE_STATUSES = frozenset({
    QuoteStatus.FINALIZED.value,
    QuoteStatus.EXPORTED.value,
    QuoteStatus.ARCHIVED.value,
})


class Quote(Base):
    """
    Quote (Devis).

    subtotal, tax_amount and total are derived from the items and tax_rate;
    services recompute them on every item mutation.
    """

    __tablename__ = 'quote'

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey('tenant.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('app_user.id'), nullable=True)
    quote_number = Column(String(64), nullable=False)
    status = Column(String(20), nullable=False, default=QuoteStatus.DRAFT.value)

    client_name = Column(String(255), nullable=False)
    client_email = Column(String(255), nullable=True)
    client_phone = Column(String(50), nullable=True)
    client_address = Column(Text, nullable=True)
    client_vat_number = Column(String(32), nullable=True)

    subtotal = Column(Numeric(14, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=21)
    tax_amount = Column(Numeric(14, 2), nullable=False, default=0)
    total = Column(Numeric(14, 2), nullable=False, default=0)

    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('tenant_id', 'quote_number', name='uq_quote_number_per_tenant'),
    )

    # Relationships
    tenant = relationship('Tenant')
    items = relationship(
        'QuoteItem',
        back_populates='quote',
        cascade='all, delete-orphan',
        order_by='QuoteItem.order_index'
    )
    invoices = relationship('Invoice', back_populates='quote')

    def __repr__(self):
        return f"<Quote(id={self.id}, number='{self.quote_number}', status='{self.status}', total={self.total})>"

    @property
    def is_immutable(self):
        return self.status in IMMUTABLE_QUOTE_STATUSES

    def to_dict(self):
        return {
            'id': self.id,
            'quote_number': self.quote_number,
            'status': self.status,
            'client_name': self.client_name,
            'client_email': self.client_email,
            'client_phone': self.client_phone,
            'client_address': self.client_address,
            'client_vat_number': self.client_vat_number,
            'subtotal': str(self.subtotal),
            'tax_rate': str(self.tax_rate),
            'tax_amount': str(self.tax_amount),
            'total': str(self.total),
            'notes': self.notes,
            'items': [item.to_dict() for item in self.items],
        }
