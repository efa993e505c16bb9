import logging
from dataclasses import asdict

from missmatch.core.container import get_container
from missmatch.services.orchestrator import CompletionSignal
from missmatch.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="missmatch.workers.tasks.finalize_job")
def finalize_job(payload: dict) -> str | None:
    """Run the completion transition for a job. Errors end as a FAILED job, never a task failure."""
    signal = CompletionSignal.from_payload(payload)
    job = get_container().orchestrator.run_completion(signal)
    return job.status if job else None


@celery_app.task(name="missmatch.workers.tasks.moderate_upload")
def moderate_upload(upload_id: str) -> str | None:
    try:
        upload = get_container().moderation.moderate_upload(upload_id)
    except Exception as exc:  # noqa: BLE001
        logger.exception("moderation_task_failed", extra={"upload_id": upload_id, "error": str(exc)})
        return None
    return upload.status if upload else None


@celery_app.task(name="missmatch.workers.tasks.retention_sweep")
def retention_sweep() -> dict:
    result = get_container().sweeper.run()
    return asdict(result)
