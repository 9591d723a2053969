from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from ...domain.protocols.quota_store import QuotaStore
from ..dependencies import get_quota_store

router = APIRouter(tags=["Health"])


@router.get("/_health/redis")
async def health_redis(store: QuotaStore = Depends(get_quota_store)):
    if await store.ping():
        return {"service": "redis", "status": "ok"}
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"service": "redis", "status": "unavailable"},
    )
