"""Promotion review endpoints for trainers."""

from typing import Any

from fastapi import APIRouter, Query

from training.core.promotion_service import PromotionRecord
from training.web.schemas import (
    ApproveRequest,
    PromotionListResponse,
    PromotionResponse,
    RejectRequest,
)
from training.web.sessions import get_promotion_service

router = APIRouter(prefix="/api/promotions", tags=["promotions"])


def to_response(record: PromotionRecord) -> PromotionResponse:
    return PromotionResponse(**record.to_dict())


def to_list_response(records: list[PromotionRecord]) -> PromotionListResponse:
    return PromotionListResponse(
        promotions=[to_response(r) for r in records], count=len(records)
    )


@router.get("/pending", response_model=PromotionListResponse)
async def list_pending(curriculum: str | None = None) -> PromotionListResponse:
    """Promotions waiting for a trainer decision."""
    return to_list_response(await get_promotion_service().pending(curriculum))


@router.get("/stats")
async def promotion_statistics(
    days: int = Query(default=30, ge=1, le=3650),
    curriculum: str | None = None,
) -> dict[str, Any]:
    return await get_promotion_service().statistics(days=days, curriculum=curriculum)


@router.post("/{promotion_id}/approve", response_model=PromotionResponse)
async def approve_promotion(promotion_id: str, request: ApproveRequest) -> PromotionResponse:
    """Approve a pending promotion and apply the level change."""
    record = await get_promotion_service().approve(
        promotion_id, request.trainer_id, request.notes
    )
    return to_response(record)


@router.post("/{promotion_id}/reject", response_model=PromotionResponse)
async def reject_promotion(promotion_id: str, request: RejectRequest) -> PromotionResponse:
    record = await get_promotion_service().reject(
        promotion_id, request.trainer_id, request.reason
    )
    return to_response(record)
