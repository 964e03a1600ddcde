"""InvoiceItem model for invoice line items."""
from sqlalchemy import Column, Integer, String, Numeric, Text, ForeignKey
from sqlalchemy.orm import relationship
from quotevoice.database import Base


class InvoiceItem(Base):
    """
    Invoice line item.

    Copied from the quote item with the same order_index; prices are scaled
    for partial (deposit/balance) invoices.
    """

    __tablename__ = 'invoice_item'

    id = Column(Integer, primary_key=True, autoincrement=True)
    invoice_id = Column(Integer, ForeignKey('invoice.id', ondelete='CASCADE'), nullable=False, index=True)
    description = Column(Text, nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False)
    unit = Column(String(16), nullable=True)
    unit_price = Column(Numeric(14, 2), nullable=False)
    tax_rate = Column(Numeric(5, 2), nullable=False)
    total = Column(Numeric(14, 2), nullable=False)
    order_index = Column(Integer, nullable=False, default=0)

    # Relationships
    invoice = relationship('Invoice', back_populates='items')

    def __repr__(self):
        return f"<InvoiceItem(id={self.id}, invoice_id={self.invoice_id}, total={self.total})>"

    def to_dict(self):
        return {
            'id': self.id,
            'description': self.description,
            'quantity': str(self.quantity),
            'unit': self.unit,
            'unit_price': str(self.unit_price),
            'tax_rate': str(self.tax_rate),
            'total': str(self.total),
            'order_index': self.order_index,
        }
