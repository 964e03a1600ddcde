"""Invoice model - customer invoices derived from quotes."""
import enum
from sqlalchemy import (
    Column, Integer, String, Date, Numeric, DateTime, Text, ForeignKey,
    Index, UniqueConstraint, text
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from quotevoice.database import Base


class InvoiceType(str, enum.Enum):
    """Invoice type enum."""
    STANDARD = "standard"
    DEPOSIT = "deposit"
    BALANCE = "balance"
    CREDIT_NOTE = "credit_note"


class InvoiceStatus(str, enum.Enum):
    """Invoice status enum."""
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class Invoice(Base):
    """Invoice (Facture)."""

    __tablename__ = 'invoice'

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey('tenant.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('app_user.id'), nullable=True)
    quote_id = Column(Integer, ForeignKey('quote.id'), nullable=True, index=True)
    invoice_number = Column(String(64), nullable=False)
    invoice_type = Column(String(20), nullable=False, default=InvoiceType.STANDARD.value)
    status = Column(String(20), nullable=False, default=InvoiceStatus.DRAFT.value)

    # Client snapshot
    client_name = Column(String(255), nullable=False)
    client_email = Column(String(255), nullable=True)
    client_phone = Column(String(50), nullable=True)
    client_address = Column(Text, nullable=True)
    client_vat_number = Column(String(32), nullable=True)

    # Amounts
    subtotal = Column(Numeric(14, 2), nullable=False)
    tax_rate = Column(Numeric(5, 2), nullable=False)
    tax_amount = Column(Numeric(14, 2), nullable=False)
    total = Column(Numeric(14, 2), nullable=False)
    amount_paid = Column(Numeric(14, 2), nullable=False, default=0)
    amount_due = Column(Numeric(14, 2), nullable=False)

    # Payment metadata
    structured_reference = Column(String(32), nullable=True)
    qr_code_data = Column(Text, nullable=True)

    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    payment_terms = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('tenant_id', 'invoice_number', name='uq_invoice_number_per_tenant'),
        # One standard invoice per quote, enforced by the database
        Index(
            'uq_invoice_standard_per_quote',
            'quote_id',
            unique=True,
            postgresql_where=text("invoice_type = 'standard'"),
            sqlite_where=text("invoice_type = 'standard'"),
        ),
    )

    # Relationships
    tenant = relationship('Tenant')
    quote = relationship('Quote', back_populates='invoices')
    items = relationship(
        'InvoiceItem',
        back_populates='invoice',
        cascade='all, delete-orphan',
        order_by='InvoiceItem.order_index'
    )

    def __repr__(self):
        return f"<Invoice(id={self.id}, number='{self.invoice_number}', type='{self.invoice_type}', status='{self.status}')>"

    def to_dict(self):
        return {
            'id': self.id,
            'quote_id': self.quote_id,
            'invoice_number': self.invoice_number,
            'invoice_type': self.invoice_type,
            'status': self.status,
            'client_name': self.client_name,
            'client_email': self.client_email,
            'client_vat_number': self.client_vat_number,
            'subtotal': str(self.subtotal),
            'tax_rate': str(self.tax_rate),
            'tax_amount': str(self.tax_amount),
            'total': str(self.total),
            'amount_paid': str(self.amount_paid),
            'amount_due': str(self.amount_due),
            'structured_reference': self.structured_reference,
            'qr_code_data': self.qr_code_data,
            'issue_date': self.issue_date.isoformat() if self.issue_date else None,
            'due_date': self.due_date.isoformat() if self.due_date else None,
            'paid_at': self.paid_at.isoformat() if self.paid_at else None,
            'payment_terms': self.payment_terms,
            'notes': self.notes,
            'items': [item.to_dict() for item in self.items],
        }
