"""Pydantic schemas for request/response validation"""

from app.schemas.cart import CartResponse, CartLineResponse
from app.schemas.order import OrderSummary, OrderItemResponse
from app.schemas.tools import (
    DispatchContext,
    ToolDefinition,
    FunctionResult,
    ExecuteRequest,
    CommitOrderRequest,
)

__all__ = [
    "CartResponse",
    "CartLineResponse",
    "OrderSummary",
    "OrderItemResponse",
    "ToolDefinition",
    "DispatchContext",
    "FunctionResult",
    "ExecuteRequest",
    "CommitOrderRequest",
]
