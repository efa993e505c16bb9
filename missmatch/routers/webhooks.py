import json
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from starlette.concurrency import run_in_threadpool

from missmatch.core.container import Container
from missmatch.core.security import verify_cron_authorization, verify_webhook_signature
from missmatch.models.common import utcnow
from missmatch.routers.deps import get_container
from missmatch.schemas.cleanup import SweepResponse
from missmatch.services.errors import NotFoundError, ValidationError
from missmatch.services.webhooks import normalize, provider_key

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])
logger = logging.getLogger(__name__)

SIGNED_PROVIDERS = {"flux"}


@router.post("/tryon/{provider}")
async def tryon_webhook(provider: str, request: Request, container: Container = Depends(get_container)) -> dict:
    body = await request.body()
    if provider_key(provider) in SIGNED_PROVIDERS and not verify_webhook_signature(
        body, request.headers.get("x-flux-signature"), container.settings.webhook_secret
    ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")
    try:
        payload = json.loads(body or b"null")
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body") from exc

    try:
        event = normalize(provider, payload)
    except (NotFoundError, ValidationError):
        raise
    except Exception:  # noqa: BLE001
        logger.exception("webhook_payload_unreadable", extra={"provider": provider})
        return {"received": True}

    try:
        await run_in_threadpool(container.orchestrator.handle_webhook, provider, event)
    except Exception as exc:  # noqa: BLE001
        logger.exception(
            "webhook_processing_failed",
            extra={"provider": provider, "external_job_id": event.external_job_id, "error": str(exc)},
        )
    return {"received": True}


@router.post("/cleanup", response_model=SweepResponse)
def cleanup(
    authorization: str | None = Header(default=None),
    container: Container = Depends(get_container),
) -> SweepResponse:
    if not verify_cron_authorization(authorization, container.settings.cron_secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    result = container.sweeper.run()
    return SweepResponse(
        success=result.ok,
        timed_out_jobs=result.timed_out_jobs,
        deleted_jobs=result.deleted_jobs,
        deleted_uploads=result.deleted_uploads,
        deleted_artifacts=result.deleted_artifacts,
        deleted_orphans=result.deleted_orphans,
        deleted_failed_jobs=result.deleted_failed_jobs,
        errors=result.errors,
        timestamp=utcnow(),
    )
