"""Order schemas"""

from datetime import datetime
from typing import Optional, List
from uuid import UUID
from pydantic import BaseModel


class OrderItemResponse(BaseModel):
    """Order line"""
    item_id: UUID
    name: str
    quantity: int
    unit_price_cents: int
    notes: Optional[str] = None
    
    class Config:
        from_attributes = True


class OrderSummary(BaseModel):
    """Order as listed to the customer"""
    id: UUID
    order_number: str
    status: str
    total_cents: int
    delivery_type: str
    scheduled_for: Optional[datetime] = None
    created_at: datetime
    items: List[OrderItemResponse] = []
    
    class Config:
        from_attributes = True
