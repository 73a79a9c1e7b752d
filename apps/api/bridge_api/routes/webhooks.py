"""Provider webhook routes."""

import logging

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from bridge_api.dependencies import get_webhook_ingest_service
from bridge_api.exceptions import UpstreamError
from bridge_api.utils.metrics import webhook_deliveries
from bridge_api.webhooks.service import WebhookIngestService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["webhooks"])

RETRY_AFTER_SECONDS = "30"


@router.post("/webhooks/circle")
async def receive_provider_webhook(
    request: Request,
    service: WebhookIngestService = Depends(get_webhook_ingest_service),
):
    """Ingest a provider notification.

    The raw body is read before any parsing so the signature is checked
    over the exact bytes the provider signed.
    """
    raw_body = await request.body()
    try:
        result = await run_in_threadpool(service.handle, raw_body, request.headers)
    except UpstreamError as e:
        logger.warning(f"Public key lookup failed, asking provider to retry: {e}")
        webhook_deliveries.labels(outcome="key_fetch_failed").inc()
        return JSONResponse(
            content={"error": "Public key lookup failed"},
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            headers={"Retry-After": RETRY_AFTER_SECONDS},
        )
    except Exception as e:
        logger.error(f"Unexpected webhook processing error: {e}", exc_info=True)
        webhook_deliveries.labels(outcome="error").inc()
        return JSONResponse(
            content={"error": "Internal server error"},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return JSONResponse(content=result.body, status_code=result.status_code)


@router.head("/webhooks/circle")
async def provider_webhook_reachability():
    """Reachability check used when the subscription is registered."""
    return Response(status_code=status.HTTP_200_OK)
