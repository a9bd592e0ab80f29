"""Tool execution API endpoints for the conversation driver"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.config import settings
from app.core.errors import StorageFailure, TransactionAborted
from app.core.timeutils import Clock, SystemClock
from app.database import get_db
from app.schemas.tools import CommitOrderRequest, ExecuteRequest, FunctionResult, ToolDefinition
from app.tools.dispatch import FunctionDispatch

router = APIRouter()
logger = structlog.get_logger()


def get_clock() -> Clock:
    """Clock dependency, overridden in tests"""
    return SystemClock()


def get_dispatch(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> FunctionDispatch:
    return FunctionDispatch(db, clock)


@router.get("/definitions", response_model=List[ToolDefinition])
async def list_definitions(dispatch: FunctionDispatch = Depends(get_dispatch)):
    """Function catalog in function-calling format"""
    return dispatch.definitions()


@router.post("/execute", response_model=FunctionResult)
async def execute(
    request: ExecuteRequest,
    dispatch: FunctionDispatch = Depends(get_dispatch),
):
    """Execute one function for a customer"""
    logger.info(
        "Tool: execute",
        function=request.function_name,
        business_id=str(request.context.business_id),
    )
    
    try:
        return await dispatch.execute(request.function_name, request.arguments, request.context)
    except TransactionAborted as e:
        logger.warning("Function aborted", function=request.function_name, error=str(e))
        raise HTTPException(status_code=409, detail="Concurrent update, please retry")
    except StorageFailure as e:
        logger.error("Function storage failure", function=request.function_name, error=str(e))
        raise HTTPException(status_code=503, detail="Storage unavailable")


@router.post("/commit_order", response_model=FunctionResult)
async def commit_order(
    request: CommitOrderRequest,
    dispatch: FunctionDispatch = Depends(get_dispatch),
):
    """Commit the customer's validated cart into an accepted order"""
    logger.info("Tool: commit_order", business_id=str(request.context.business_id))
    
    try:
        result = await dispatch.commit_order(
            request.context,
            cart_id=request.cart_id,
            order_source=request.order_source,
            created_via=request.created_via,
        )
    except TransactionAborted as e:
        logger.warning("Commit aborted", error=str(e))
        raise HTTPException(status_code=409, detail="Concurrent update, please retry")
    except StorageFailure as e:
        logger.error("Commit storage failure", error=str(e))
        raise HTTPException(status_code=503, detail="Storage unavailable")
    
    if result.success and not result.duplicate and not getattr(result, "already_confirmed", False):
        _enqueue_staff_notification(getattr(result, "order_id"))
    
    return result


def _enqueue_staff_notification(order_id: str) -> None:
    """Hand the staff SMS to the worker"""
    if not settings.notify_staff_on_order:
        return
    try:
        from app.jobs.celery_app import celery_app
        celery_app.send_task("notify_staff_new_order", args=[order_id])
    except Exception as e:
        logger.error("Failed to enqueue staff notification", order_id=order_id, error=str(e))
