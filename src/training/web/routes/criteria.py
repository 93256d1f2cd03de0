"""Promotion criteria lookup."""

from fastapi import APIRouter, HTTPException, status

from training.web.schemas import CriteriaResponse
from training.web.sessions import get_promotion_service

router = APIRouter(prefix="/api/criteria", tags=["criteria"])


@router.get("/{curriculum}", response_model=CriteriaResponse)
async def get_curriculum_criteria(curriculum: str) -> CriteriaResponse:
    table = get_promotion_service().criteria()
    if curriculum not in table.curricula:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Curriculum '{curriculum}' not found",
        )
    return CriteriaResponse(
        curriculum=curriculum,
        progression=list(table.progression(curriculum)),
        levels={level: c.to_dict() for level, c in table.levels(curriculum).items()},
    )
