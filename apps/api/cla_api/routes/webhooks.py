"""GitHub webhook receiver."""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from cla_api.db.session import get_db
from cla_api.errors import ClaBotError
from cla_api.github.factory import GitHubClientFactory, get_github_factory
from cla_api.settings import Settings, get_settings
from cla_api.utils.metrics import webhook_deliveries
from cla_api.webhooks.dispatcher import WebhookDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhook", tags=["webhooks"])


@router.post("/github")
async def github_webhook(
    request: Request,
    db: Session = Depends(get_db),
    factory: GitHubClientFactory = Depends(get_github_factory),
    settings: Settings = Depends(get_settings),
):
    """Receive a GitHub App webhook delivery."""
    # Signature verification needs the exact bytes GitHub signed
    raw_body = await request.body()
    event = request.headers.get("x-github-event")
    delivery_id = request.headers.get("x-github-delivery")

    dispatcher = WebhookDispatcher(db, factory, settings)
    try:
        result = await run_in_threadpool(
            dispatcher.handle,
            event=event,
            delivery_id=delivery_id,
            signature=request.headers.get("x-hub-signature-256"),
            raw_body=raw_body,
        )
    except ClaBotError as e:
        webhook_deliveries.labels(event=event or "unknown", outcome=f"error_{e.status_code}").inc()
        logger.warning(
            f"Webhook rejected with {e.status_code}: {e.message}",
            extra={"event": event, "delivery_id": delivery_id},
        )
        return JSONResponse(status_code=e.status_code, content=e.to_dict())
    except Exception as e:
        webhook_deliveries.labels(event=event or "unknown", outcome="error_500").inc()
        logger.error(
            f"Unhandled error processing webhook {event}: {e}",
            extra={"event": event, "delivery_id": delivery_id},
            exc_info=True,
        )
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    return result
