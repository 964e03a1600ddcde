"""QuoteItem model for quote line items."""
from sqlalchemy import Column, Integer, String, Numeric, Text, ForeignKey
from sqlalchemy.orm import relationship
from quotevoice.database import Base


class QuoteItem(Base):
    """
    Quote line item.

    order_index is contiguous (0..n-1) within a quote and defines display order.
    """

    __tablename__ = 'quote_item'

    id = Column(Integer, primary_key=True, autoincrement=True)
    quote_id = Column(Integer, ForeignKey('quote.id', ondelete='CASCADE'), nullable=False, index=True)
    description = Column(Text, nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False)
    unit = Column(String(16), nullable=True)
    unit_price = Column(Numeric(14, 2), nullable=False)
    total = Column(Numeric(14, 2), nullable=False)
    order_index = Column(Integer, nullable=False, default=0)

    # Relationships
    quote = relationship('Quote', back_populates='items')

    def __repr__(self):
        return f"<QuoteItem(id={self.id}, quote_id={self.quote_id}, qty={self.quantity}, total={self.total})>"

    def to_dict(self):
        return {
            'id': self.id,
            'description': self.description,
            'quantity': str(self.quantity),
            'unit': self.unit,
            'unit_price': str(self.unit_price),
            'total': str(self.total),
            'order_index': self.order_index,
        }
