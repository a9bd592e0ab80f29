"""Catalog models"""

import uuid
from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, JSON, Text, Time, Uuid
from sqlalchemy.orm import relationship

from app.core.timeutils import utcnow
from app.database import Base


class Item(Base):
    """Orderable catalog item"""
    __tablename__ = "items"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, ForeignKey("businesses.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    price_cents = Column(Integer, nullable=False)  # Price in cents to avoid float issues
    category = Column(String(100))
    is_active = Column(Boolean, default=True)
    is_available = Column(Boolean, default=True)  # Temporary availability
    sort_order = Column(Integer, default=0)
    
    # Scheduling constraints
    is_schedulable = Column(Boolean, default=False)
    min_schedule_hours = Column(Integer, default=0)
    available_from = Column(Time)
    available_to = Column(Time)
    days_available = Column(JSON)  # ["monday", "friday"]; null means every day
    duration_minutes = Column(Integer)  # Capacity occupied by one booking
    quantity = Column(Integer)  # Concurrent instances; null means single unless concurrent allowed
    allow_concurrent_bookings = Column(Boolean, default=False)
    
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    
    # Relationships
    business = relationship("Business", back_populates="items")
