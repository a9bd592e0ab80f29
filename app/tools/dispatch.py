"""Schema-validated execution of driver function calls"""

import asyncio
import hashlib
import json
from datetime import timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.config import settings
from app.core.errors import BusinessNotFound, CartError, EmptyCart, StorageFailure, TransactionAborted
from app.core.timeutils import Clock, SystemClock
from app.models.business import Business
from app.models.cart import Cart
from app.models.processed_message import ProcessedMessage
from app.schemas.tools import DispatchContext, FunctionResult, ToolDefinition
from app.services.cart import mask_customer
from app.services.notifications import build_order_summary
from app.tools import functions  # noqa: F401  registers the handlers
from app.tools.functions import cart_view
from app.tools.registry import FUNCTIONS, FunctionCall, definitions

logger = structlog.get_logger()

COMMIT_ORDER = "commit_order"


def dedup_key(context: DispatchContext, name: str, arguments: Dict[str, Any]) -> Optional[str]:
    """Key identifying one call within one inbound message"""
    if not context.message_id:
        return None
    if context.call_id:
        return f"{context.message_id}:{context.call_id}"
    digest = hashlib.sha256(json.dumps(arguments or {}, sort_keys=True, default=str).encode()).hexdigest()
    return f"{context.message_id}:{name}:{digest[:16]}"


class FunctionDispatch:
    """
    Runs catalog functions for the conversation driver.

    Each call is one transaction: the handler runs under a time budget,
    and its mutations are committed together with the deduplication
    record, or rolled back entirely. Recoverable failures come back as
    tagged results; storage failures raise StorageFailure.
    """

    def __init__(self, db: AsyncSession, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or SystemClock()

    def definitions(self) -> List[ToolDefinition]:
        return definitions()

    async def _load_business(self, context: DispatchContext) -> Business:
        business = await self.db.get(Business, context.business_id)
        if business is None or not business.is_active:
            raise BusinessNotFound("Sorry, this business is not available right now.")
        return business

    async def _replay(self, context: DispatchContext, key: str) -> Optional[FunctionResult]:
        cutoff = self.clock.now() - timedelta(hours=settings.message_dedup_ttl_hours)
        result = await self.db.execute(
            select(ProcessedMessage).where(
                ProcessedMessage.business_id == context.business_id,
                ProcessedMessage.customer_identifier == context.customer_identifier,
                ProcessedMessage.dedup_key == key,
                ProcessedMessage.created_at >= cutoff,
            )
        )
        record = result.scalar_one_or_none()
        if record is None:
            return None

        logger.info(
            "Duplicate call replayed",
            function=record.function_name,
            business_id=str(context.business_id),
            customer=mask_customer(context.customer_identifier),
        )
        replayed = FunctionResult(**record.response_json)
        replayed.duplicate = True
        return replayed

    async def _record(self, context: DispatchContext, key: str, name: str, result: FunctionResult) -> None:
        # Expired records with the same key would block the insert
        await self.db.execute(
            delete(ProcessedMessage).where(
                ProcessedMessage.business_id == context.business_id,
                ProcessedMessage.customer_identifier == context.customer_identifier,
                ProcessedMessage.dedup_key == key,
            )
        )
        self.db.add(
            ProcessedMessage(
                business_id=context.business_id,
                customer_identifier=context.customer_identifier,
                dedup_key=key,
                function_name=name,
                response_json=result.model_dump(mode="json"),
                created_at=self.clock.now(),
            )
        )

    async def _run(self, name: str, context: DispatchContext, key: Optional[str], mutates: bool, work) -> FunctionResult:
        """Run work(business) as one transaction with the shared failure policy"""
        log = logger.bind(
            function=name,
            business_id=str(context.business_id),
            customer=mask_customer(context.customer_identifier),
        )

        try:
            if key:
                replayed = await self._replay(context, key)
                if replayed is not None:
                    return replayed

            business = await self._load_business(context)
            result = await asyncio.wait_for(work(business), timeout=settings.function_timeout_seconds)

            if mutates and key and result.success:
                await self._record(context, key, name, result)
            await self.db.commit()

        except CartError as e:
            await self.db.rollback()
            log.info("Function rejected", code=e.code, error=e.message)
            return FunctionResult(**e.to_result())

        except asyncio.TimeoutError:
            await self.db.rollback()
            log.warning("Function timed out", timeout=settings.function_timeout_seconds)
            return FunctionResult(
                success=False,
                error="That took too long. Please try again.",
                code="Timeout",
                retryable=True,
            )

        except IntegrityError as e:
            await self.db.rollback()
            if key:
                replayed = await self._replay(context, key)
                if replayed is not None:
                    return replayed
            log.warning("Transaction aborted", error=str(e.orig))
            raise TransactionAborted(f"{name} conflicted with a concurrent update") from e

        except SQLAlchemyError as e:
            await self.db.rollback()
            log.error("Storage failure", error=str(e))
            raise StorageFailure(f"{name} failed to reach storage") from e

        log.info("Function executed", success=result.success)
        return result

    async def execute(self, name: str, arguments: Optional[Dict[str, Any]], context: DispatchContext) -> FunctionResult:
        """Validate arguments and run one catalog function"""
        spec = FUNCTIONS.get(name)
        if spec is None:
            logger.warning("Unknown function", function=name)
            return FunctionResult(
                success=False,
                error="Sorry, I can't do that.",
                code="UnknownFunction",
                details={"function": name},
            )

        try:
            args = spec.arguments.model_validate(arguments or {})
        except ValidationError as e:
            fields = [".".join(str(part) for part in error["loc"]) for error in e.errors()]
            logger.info("Invalid function arguments", function=name, fields=fields)
            return FunctionResult(
                success=False,
                error="I couldn't understand some details of that request. Could you rephrase?",
                code="InvalidArguments",
                details={"fields": fields},
            )

        key = dedup_key(context, name, arguments) if spec.mutates else None

        async def work(business: Business) -> FunctionResult:
            call = FunctionCall(self.db, business, context, self.clock)
            return await spec.handler(call, args)

        return await self._run(name, context, key, spec.mutates, work)

    async def commit_order(
        self,
        context: DispatchContext,
        cart_id: Optional[UUID] = None,
        order_source: Optional[str] = None,
        created_via: Optional[str] = "assistant",
    ) -> FunctionResult:
        """
        Promote the customer's validated cart into an accepted order.

        Safe to repeat: a cart that was already promoted returns the same
        order with already_confirmed set.
        """
        key = dedup_key(context, COMMIT_ORDER, {"cart_id": str(cart_id) if cart_id else None})

        async def work(business: Business) -> FunctionResult:
            call = FunctionCall(self.db, business, context, self.clock)

            target = cart_id
            if target is None:
                store = call.cart_store()
                # A repeated commit finds the cart it already promoted
                cart = await store.peek() or await store.last_completed()
                if cart is None:
                    raise EmptyCart("Your cart is empty. What would you like to order?")
                target = cart.id
            else:
                owned = await self.db.execute(
                    select(Cart.id).where(
                        Cart.id == target,
                        Cart.business_id == business.id,
                        Cart.customer_identifier == context.customer_identifier,
                    )
                )
                if owned.scalar_one_or_none() is None:
                    raise EmptyCart("Your cart is empty. What would you like to order?")

            order, created = await call.transition().confirm(
                target,
                order_source=order_source or context.channel,
                created_via=created_via,
            )
            return FunctionResult(
                success=True,
                message=build_order_summary(order, business),
                order_id=str(order.id),
                order_number=order.order_number,
                status=order.status,
                already_confirmed=not created,
                cart=cart_view(None, business),
            )

        return await self._run(COMMIT_ORDER, context, key, True, work)
