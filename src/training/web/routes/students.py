"""Student promotion endpoints."""

from typing import Any

from fastapi import APIRouter

from training.web.routes.promotions import to_list_response
from training.web.schemas import PromotionListResponse
from training.web.sessions import get_promotion_service

router = APIRouter(prefix="/api/students", tags=["students"])


@router.get("/{student_id}/promotions", response_model=PromotionListResponse)
async def promotion_history(
    student_id: str, curriculum: str | None = None
) -> PromotionListResponse:
    """Recorded promotions of a student, newest first."""
    return to_list_response(await get_promotion_service().history(student_id, curriculum))


@router.get("/{student_id}/promotion-check")
async def promotion_check(student_id: str, curriculum: str) -> dict[str, Any]:
    """Evaluate eligibility at the student's current level without recording it."""
    decision = await get_promotion_service().check_student(student_id, curriculum)
    return decision.to_dict()
