"""Domain errors raised by cart, scheduling and order services"""

from typing import Any, Dict, Optional


class CartError(Exception):
    """Recoverable failure surfaced to the conversation driver as a result"""
    
    code = "CartError"
    requires_scheduling = False
    
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, requires_scheduling: Optional[bool] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if requires_scheduling is not None:
            self.requires_scheduling = requires_scheduling
    
    def to_result(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.message,
            "code": self.code,
            "requires_scheduling": self.requires_scheduling,
            "details": self.details,
        }


class ItemNotFound(CartError):
    code = "ItemNotFound"


class ItemUnavailable(CartError):
    code = "ItemUnavailable"


class ItemNotInCart(CartError):
    code = "ItemNotInCart"


class InvalidArguments(CartError):
    code = "InvalidArguments"


class EmptyCart(CartError):
    code = "EmptyCart"


class DeliveryTypeRequired(CartError):
    code = "DeliveryTypeRequired"


class AddressRequired(CartError):
    code = "AddressRequired"


class SchedulingRequired(CartError):
    code = "SchedulingRequired"
    requires_scheduling = True


class PastLastOrderCutoff(CartError):
    code = "PastLastOrderCutoff"
    requires_scheduling = True


class BusinessClosed(CartError):
    code = "Closed"
    requires_scheduling = True


class SchedulingDisabled(CartError):
    code = "SchedulingDisabled"


class InvalidScheduleWindow(CartError):
    """Proposed time breaks a schedule rule; details["rule"] names it"""
    code = "InvalidScheduleWindow"


class CapacityConflict(CartError):
    code = "CapacityConflict"


class OutOfDeliveryRadius(CartError):
    code = "OutOfDeliveryRadius"


class InvalidLocation(CartError):
    code = "InvalidLocation"


class BusinessNotFound(CartError):
    code = "BusinessNotFound"


class OrderNotFound(CartError):
    code = "OrderNotFound"


class CancellationWindowPassed(CartError):
    code = "CancellationWindowPassed"


class StorageFailure(Exception):
    """Persistence failed; nothing from the operation was committed"""
    pass


class TransactionAborted(StorageFailure):
    """Transaction lost a race and was rolled back; retry the whole operation"""
    pass
