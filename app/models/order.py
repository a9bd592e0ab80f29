"""Order models"""

import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Float, Text, Uuid
from sqlalchemy.orm import relationship

from app.core.timeutils import utcnow
from app.database import Base


class Order(Base):
    """Confirmed order promoted from a cart"""
    __tablename__ = "orders"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, ForeignKey("businesses.id"), nullable=False, index=True)
    branch_id = Column(Uuid, nullable=False)
    cart_id = Column(Uuid, unique=True, nullable=False)  # One order per cart
    customer_identifier = Column(String(100), nullable=False, index=True)
    
    # Customer information
    customer_name = Column(String(255))
    language = Column(String(10))
    
    # Pricing
    subtotal_cents = Column(Integer, nullable=False, default=0)
    delivery_price_cents = Column(Integer, nullable=False, default=0)
    total_cents = Column(Integer, nullable=False, default=0)
    
    # Fulfilment
    delivery_type = Column(String(20), nullable=False)
    delivery_address = Column(Text)
    latitude = Column(Float)
    longitude = Column(Float)
    location_name = Column(String(255))
    scheduled_for = Column(DateTime, index=True)
    
    # Status
    status = Column(String(50), nullable=False, default="accepted")  # accepted, delivering, completed, rejected, cancelled
    order_source = Column(String(50))  # whatsapp, telegram, web
    created_via = Column(String(50))  # assistant, staff
    
    # Notes
    notes = Column(Text)
    
    # Metadata
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    
    # Relationships
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
        lazy="selectin",
    )
    history = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.changed_at",
        lazy="selectin",
    )
    
    @property
    def order_number(self) -> str:
        return str(self.id)[:8].upper()


class OrderItem(Base):
    """Order line, also used as the capacity booking for schedulable items"""
    __tablename__ = "order_items"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    item_id = Column(Uuid, ForeignKey("items.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    unit_price_cents = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    notes = Column(Text)
    position = Column(Integer, nullable=False, default=0)
    
    # Relationships
    order = relationship("Order", back_populates="items")


class OrderStatusHistory(Base):
    """Append-only log of order status changes"""
    __tablename__ = "order_status_history"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(50), nullable=False)
    changed_by = Column(String(50), nullable=False)  # customer, system, staff
    note = Column(Text)
    changed_at = Column(DateTime, nullable=False, default=utcnow)
    
    # Relationships
    order = relationship("Order", back_populates="history")
