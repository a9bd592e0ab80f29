"""Business-related models"""

import uuid
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Integer, Float, Time, Uuid
from sqlalchemy.orm import relationship

from app.core.timeutils import utcnow
from app.database import Base


class Business(Base):
    """Restaurant or service business"""
    __tablename__ = "businesses"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    timezone = Column(String(50), default="Asia/Beirut")
    is_active = Column(Boolean, default=True)
    
    # Ordering policy
    allow_scheduled_orders = Column(Boolean, default=True)
    delivery_price_cents = Column(Integer, default=0)  # Flat delivery fee
    currency_symbol = Column(String(8), default="$")
    
    # Home coordinate and delivery radius (radius check skipped when unset)
    latitude = Column(Float)
    longitude = Column(Float)
    delivery_radius_km = Column(Float)
    
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    
    # Relationships
    branches = relationship("Branch", back_populates="business")
    staff_contacts = relationship("StaffContact", back_populates="business")
    items = relationship("Item", back_populates="business")


class Branch(Base):
    """Physical branch of a business"""
    __tablename__ = "branches"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, ForeignKey("businesses.id"), nullable=False)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
    
    # Relationships
    business = relationship("Business", back_populates="branches")


class OpeningHours(Base):
    """Opening hours for one owner (business or branch) and weekday"""
    __tablename__ = "opening_hours"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_type = Column(String(20), nullable=False)  # business, branch
    owner_id = Column(Uuid, nullable=False, index=True)
    day_of_week = Column(String(10), nullable=False)  # monday .. sunday
    is_closed = Column(Boolean, default=False)
    open_time = Column(Time)
    close_time = Column(Time)  # 00:00 means midnight at end of day
    last_order_before_closing_minutes = Column(Integer, default=0)


class StaffContact(Base):
    """Staff contacts for notifications"""
    __tablename__ = "staff_contacts"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, ForeignKey("businesses.id"), nullable=False)
    name = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=False)
    role = Column(String(50))  # manager, kitchen, delivery
    notify_on_order = Column(Boolean, default=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
    
    # Relationships
    business = relationship("Business", back_populates="staff_contacts")
