from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Response, status

from shared.exceptions import NotFoundError

from ...application.services import SmsOptOutService, SuppressionRegistry
from ...domain.value_objects import Channel
from ..dependencies import get_opt_out_service, get_suppression_registry
from ..schemas import OptOutRequest, SuppressionCreate, SuppressionResponse

router = APIRouter(tags=["Suppressions"])


@router.get("/suppressions/{channel}", response_model=List[SuppressionResponse], response_model_by_alias=True)
async def list_suppressions(channel: Channel, registry: SuppressionRegistry = Depends(get_suppression_registry)):
    return [SuppressionResponse.from_entry(e) for e in await registry.list(channel)]


@router.get(
    "/suppressions/{channel}/{recipient}",
    response_model=SuppressionResponse,
    response_model_by_alias=True,
)
async def get_suppression(
    channel: Channel,
    recipient: str,
    registry: SuppressionRegistry = Depends(get_suppression_registry),
):
    entry = await registry.get(recipient, channel)
    if entry is None:
        raise NotFoundError("Recipient is not suppressed", details={"recipient": recipient, "channel": channel.value})
    return SuppressionResponse.from_entry(entry)


@router.post(
    "/suppressions",
    response_model=SuppressionResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
async def create_suppression(body: SuppressionCreate, registry: SuppressionRegistry = Depends(get_suppression_registry)):
    entry = await registry.suppress(body.recipient, body.channel, body.reason, body.source, body.ttl_seconds)
    return SuppressionResponse.from_entry(entry)


@router.delete("/suppressions/{channel}/{recipient}", status_code=status.HTTP_204_NO_CONTENT)
async def lift_suppression(
    channel: Channel,
    recipient: str,
    registry: SuppressionRegistry = Depends(get_suppression_registry),
):
    if not await registry.lift(recipient, channel):
        raise NotFoundError("Recipient is not suppressed", details={"recipient": recipient, "channel": channel.value})
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/sms/opt-out",
    response_model=SuppressionResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
async def sms_opt_out(body: OptOutRequest, service: SmsOptOutService = Depends(get_opt_out_service)):
    if body.carrier:
        entry = await service.process_carrier_opt_out(body.phone, body.carrier)
    else:
        entry = await service.process_opt_out(body.phone)
    return SuppressionResponse.from_entry(entry)
