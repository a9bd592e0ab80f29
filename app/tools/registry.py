"""Catalog of functions the conversation driver may call"""

from typing import Awaitable, Callable, Dict, List, Type
from pydantic import BaseModel

from app.schemas.tools import ToolDefinition
from app.services.availability import AvailabilityEvaluator
from app.services.cart import CartStore
from app.services.confirmation import OrderConfirmationTransition


class NoArguments(BaseModel):
    """Function takes no arguments"""
    pass


class FunctionSpec:
    """A named, schema-validated operation"""
    
    def __init__(
        self,
        name: str,
        description: str,
        arguments: Type[BaseModel],
        handler: Callable[..., Awaitable],
        mutates: bool,
    ):
        self.name = name
        self.description = description
        self.arguments = arguments
        self.handler = handler
        self.mutates = mutates
    
    def definition(self) -> ToolDefinition:
        schema = self.arguments.model_json_schema()
        schema.pop("title", None)
        schema.pop("description", None)
        schema.setdefault("properties", {})
        schema.setdefault("required", [])
        return ToolDefinition(name=self.name, description=self.description, parameters=schema)


FUNCTIONS: Dict[str, FunctionSpec] = {}


def function(name: str, description: str, arguments: Type[BaseModel] = NoArguments, mutates: bool = False):
    """Register a handler under a function name"""
    def decorator(handler):
        if name in FUNCTIONS:
            raise ValueError(f"Function already registered: {name}")
        FUNCTIONS[name] = FunctionSpec(name, description, arguments, handler, mutates)
        return handler
    return decorator


def definitions() -> List[ToolDefinition]:
    return [spec.definition() for spec in FUNCTIONS.values()]


class FunctionCall:
    """Everything a handler needs for one dispatched call"""
    
    def __init__(self, db, business, context, clock):
        self.db = db
        self.business = business
        self.context = context
        self.clock = clock
        self.branch_id = context.branch_id or business.id
        self.customer_identifier = context.customer_identifier
        self.language = context.language_preference
    
    def cart_store(self) -> CartStore:
        return CartStore(
            self.db,
            self.business,
            self.customer_identifier,
            branch_id=self.branch_id,
            clock=self.clock,
            language=self.language,
        )
    
    def evaluator(self) -> AvailabilityEvaluator:
        return AvailabilityEvaluator(self.db, self.business, self.branch_id, self.clock)
    
    def transition(self) -> OrderConfirmationTransition:
        return OrderConfirmationTransition(self.db, self.business, self.clock)
