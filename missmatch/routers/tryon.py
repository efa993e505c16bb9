from fastapi import APIRouter, Depends, Response, status

from missmatch.core.container import Container
from missmatch.models.job import TryOnJob
from missmatch.routers.deps import generation_rate_limit, get_container
from missmatch.schemas.job import RelatedImage, TryOnCreate, TryOnCreateResponse, TryOnStatusRead

router = APIRouter(prefix="/api/tryon", tags=["tryon"])


@router.post(
    "/generate",
    response_model=TryOnCreateResponse,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(generation_rate_limit)],
)
def generate(payload: TryOnCreate, response: Response, container: Container = Depends(get_container)) -> TryOnCreateResponse:
    submission = container.orchestrator.create_job(
        upload_id=payload.upload_id,
        garment_id=payload.garment_id,
        session_ref=payload.session_id,
        options=payload.options.to_options(),
        driver_name=payload.driver,
    )
    if submission.duplicate:
        response.status_code = status.HTTP_200_OK
    return TryOnCreateResponse(
        result_id=submission.job.id,
        status=submission.job.status,
        estimated_time=submission.estimated_seconds,
        message="Job already in progress" if submission.duplicate else "Processing started",
    )


@router.get("/status/{job_id}", response_model=TryOnStatusRead)
def get_status(job_id: str, container: Container = Depends(get_container)) -> TryOnStatusRead:
    job = container.orchestrator.refresh_status(job_id)
    return _status_payload(job, container)


def _status_payload(job: TryOnJob, container: Container) -> TryOnStatusRead:
    upload = container.catalog.get_upload(job.upload_id)
    garment = container.catalog.get_garment(job.garment_id)
    return TryOnStatusRead(
        id=job.id,
        status=job.status,
        driver_name=job.driver_name,
        result_url=job.result_url,
        thumbnail_url=job.result_thumbnail_url,
        processing_time_ms=job.processing_time_ms,
        error_detail=job.error_detail,
        webhook_received=job.webhook_received,
        created_at=job.created_at,
        upload=RelatedImage(id=upload.id, thumbnail_url=upload.thumbnail_url) if upload else None,
        garment=RelatedImage(id=garment.id, thumbnail_url=garment.thumbnail_url, name=garment.name) if garment else None,
    )
