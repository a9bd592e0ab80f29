"""Function dispatch request and result schemas"""

from typing import Any, Dict, Optional
from uuid import UUID
from pydantic import BaseModel, Field

from app.schemas.cart import CartResponse


class ToolDefinition(BaseModel):
    """Function definition advertised to the driver"""
    name: str
    description: str
    parameters: Dict[str, Any]


class DispatchContext(BaseModel):
    """Identity and message metadata sent with every call"""
    business_id: UUID
    branch_id: Optional[UUID] = None
    customer_identifier: str = Field(min_length=1, max_length=100)
    language_preference: Optional[str] = None
    message_id: Optional[str] = None  # Inbound message id, used for deduplication
    call_id: Optional[str] = None  # Tool call id within the message
    channel: Optional[str] = None  # whatsapp, telegram, web


class FunctionResult(BaseModel):
    """Tagged result of a dispatched function; extra fields are function specific"""
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    code: Optional[str] = None
    retryable: bool = False
    duplicate: bool = False
    requires_scheduling: bool = False
    ready_to_confirm: bool = False
    cart: Optional[CartResponse] = None
    details: Dict[str, Any] = {}
    
    class Config:
        extra = "allow"


class ExecuteRequest(BaseModel):
    """Execute one function"""
    function_name: str
    arguments: Dict[str, Any] = {}
    context: DispatchContext


class CommitOrderRequest(BaseModel):
    """Commit the validated cart into an order"""
    context: DispatchContext
    cart_id: Optional[UUID] = None
    order_source: Optional[str] = None
    created_via: str = "assistant"
