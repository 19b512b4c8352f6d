"""Internal budget API: service-token gated, every mutation needs an Idempotency-Key header.

POST /internal/v1/budget/{credit|debit|lock|unlock|transfer|adjust}
GET  /internal/v1/budget/{user_id}
GET  /internal/v1/budget/{user_id}/logs
"""

from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_common.database import get_db_session
from src.bp_common.response import ApiResponse, success_response
from src.bp_gateway.auth.dependencies import require_idempotency_key, require_internal_service
from src.bp_ledger.application.schemas import (
    AdjustRequest,
    BudgetOperationRequest,
    TransferRequest,
)
from src.bp_ledger.application.service import BudgetApplicationService

router = APIRouter(
    prefix="/budget",
    tags=["internal-budget"],
    dependencies=[Depends(require_internal_service)],
)

_service = BudgetApplicationService()


@router.post("/transfer")
async def transfer(
    body: TransferRequest,
    idempotency_key: Annotated[str, Depends(require_idempotency_key)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.transfer(db, body, idempotency_key)
    return success_response(data.model_dump(), request)


@router.post("/adjust")
async def adjust(
    body: AdjustRequest,
    idempotency_key: Annotated[str, Depends(require_idempotency_key)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.adjust(db, body, idempotency_key)
    return success_response(data.model_dump(), request)


@router.post("/{operation}")
async def apply_operation(
    operation: Literal["credit", "debit", "lock", "unlock"],
    body: BudgetOperationRequest,
    idempotency_key: Annotated[str, Depends(require_idempotency_key)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.apply(db, operation, body, idempotency_key)
    return success_response(data.model_dump(), request)


@router.get("/{user_id}")
async def get_budget(
    user_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_budget(db, user_id)
    return success_response(data.model_dump(), request)


@router.get("/{user_id}/logs")
async def list_logs(
    user_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    cursor: str | None = Query(None, description="Pagination cursor (opaque Base64)"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    operation_type: str | None = Query(None, description="Filter by operation type"),
) -> ApiResponse:
    data = await _service.list_logs(db, user_id, cursor, limit, operation_type)
    return success_response(data.model_dump(), request)
