from __future__ import annotations

import json
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, status

from shared.exceptions import UnauthorizedError, ValidationError
from shared.infrastructure.observability.logger import get_logger

from ...application.services import WebhookService
from ..dependencies import get_webhook_service
from ..schemas import BatchResultResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/events", response_model=BatchResultResponse, status_code=status.HTTP_200_OK)
async def receive_events(
    request: Request,
    x_webhook_token: Optional[str] = Header(None, alias="X-Webhook-Token"),
    service: WebhookService = Depends(get_webhook_service),
):
    """Provider failure-event batch. Per-event problems never fail the batch."""
    if not service.verify_token(x_webhook_token):
        logger.warning("Webhook rejected: bad token", client=request.client.host if request.client else None)
        raise UnauthorizedError("Invalid webhook token")

    raw = await request.body()
    try:
        body = json.loads(raw or b"null")
    except ValueError:
        raise ValidationError("Body is not valid JSON", code="invalid_request_format", status_code=status.HTTP_400_BAD_REQUEST)
    if not isinstance(body, list):
        raise ValidationError(
            "Body must be a JSON array of events",
            code="invalid_request_format",
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    result = await service.process_batch(body)
    return BatchResultResponse(**result.as_dict())
