from __future__ import annotations

from fastapi import APIRouter, Depends

from ...application.services import DeliveryGuard
from ...domain.value_objects import Category
from ..dependencies import get_delivery_guard
from ..schemas import RateLimitResponse

router = APIRouter(prefix="/rate-limits", tags=["Rate limits"])


@router.get("/{subject_id}/{category}", response_model=RateLimitResponse, response_model_by_alias=True)
async def get_rate_limit(
    subject_id: str,
    category: Category,
    guard: DeliveryGuard = Depends(get_delivery_guard),
):
    status = await guard.status(subject_id, category)
    return RateLimitResponse.from_status(status)
