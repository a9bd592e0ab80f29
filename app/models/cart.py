"""Cart models"""

import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Float, Text, Index, Uuid, text
from sqlalchemy.orm import relationship

from app.core.timeutils import utcnow
from app.database import Base


class Cart(Base):
    """In-progress order for one business, branch and customer"""
    __tablename__ = "carts"
    __table_args__ = (
        # One active cart per customer
        Index(
            "uq_carts_active_customer",
            "business_id",
            "branch_id",
            "customer_identifier",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, ForeignKey("businesses.id"), nullable=False)
    branch_id = Column(Uuid, nullable=False)  # Business id when no branch
    customer_identifier = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False, default="active")  # active, completed
    
    # Totals, always derived from lines
    subtotal_cents = Column(Integer, nullable=False, default=0)
    delivery_price_cents = Column(Integer, nullable=False, default=0)
    total_cents = Column(Integer, nullable=False, default=0)
    
    # Fulfilment
    delivery_type = Column(String(20))  # takeaway, delivery, on_site
    delivery_address = Column(Text)
    latitude = Column(Float)
    longitude = Column(Float)
    location_name = Column(String(255))
    scheduled_for = Column(DateTime)  # Naive UTC; null means immediate
    
    # Customer details
    customer_name = Column(String(255))
    language = Column(String(10))
    notes = Column(Text)
    
    # Set once confirmed
    order_id = Column(Uuid)
    
    # Timestamps (updated_at only moves on mutations)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
    
    # Relationships
    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.position",
        lazy="selectin",
    )


class CartItem(Base):
    """Line in a cart with price snapshot"""
    __tablename__ = "cart_items"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    cart_id = Column(Uuid, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False)
    item_id = Column(Uuid, ForeignKey("items.id"), nullable=False)
    name = Column(String(255), nullable=False)
    unit_price_cents = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    notes = Column(Text)
    position = Column(Integer, nullable=False, default=0)
    
    # Relationships
    cart = relationship("Cart", back_populates="items")
    
    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity
