"""Cart schemas"""

from datetime import datetime
from typing import Optional, List
from uuid import UUID
from pydantic import BaseModel


class CartLineResponse(BaseModel):
    """Cart line"""
    item_id: UUID
    name: str
    quantity: int
    unit_price_cents: int
    line_total_cents: int
    notes: Optional[str] = None
    
    class Config:
        from_attributes = True


class CartResponse(BaseModel):
    """Cart state returned with every function result"""
    id: Optional[UUID] = None
    status: str = "active"
    items: List[CartLineResponse] = []
    subtotal_cents: int = 0
    delivery_price_cents: int = 0
    total_cents: int = 0
    delivery_type: Optional[str] = None
    delivery_address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    location_name: Optional[str] = None
    scheduled_for: Optional[datetime] = None  # UTC
    scheduled_for_local: Optional[str] = None
    customer_name: Optional[str] = None
    language: Optional[str] = None
    notes: Optional[str] = None
    summary: Optional[str] = None
    
    class Config:
        from_attributes = True
