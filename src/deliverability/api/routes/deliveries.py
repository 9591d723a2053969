from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...application.services import DeliveryGuard
from ..dependencies import get_delivery_guard
from ..schemas import DeliveryRequest, DeliveryResponse

router = APIRouter(prefix="/deliveries", tags=["Deliveries"])


@router.post(
    "",
    response_model=DeliveryResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_202_ACCEPTED,
)
async def send(body: DeliveryRequest, guard: DeliveryGuard = Depends(get_delivery_guard)):
    receipt = await guard.send(body.subject_id, body.recipient, body.channel, body.category, body.payload)
    return DeliveryResponse.from_receipt(receipt)
