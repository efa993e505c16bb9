import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status

from missmatch.core.container import Container
from missmatch.models.common import utcnow
from missmatch.models.upload import Upload, UploadStatus
from missmatch.routers.deps import client_ip, get_container, upload_rate_limit
from missmatch.schemas.upload import UploadCreateResponse, UploadRead
from missmatch.services.errors import ValidationError
from missmatch.services.imaging import create_thumbnail, strip_exif_and_optimize, validate_image
from missmatch.workers.tasks import moderate_upload

router = APIRouter(prefix="/api", tags=["uploads"])
logger = logging.getLogger(__name__)

SUPPORTED_CONTENT_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/webp"}


@router.post(
    "/images/upload",
    response_model=UploadCreateResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(upload_rate_limit)],
)
async def upload_image(
    request: Request,
    file: UploadFile = File(...),
    consent: str = Form(default="false"),
    session_id: str = Form(default="anonymous"),
    container: Container = Depends(get_container),
) -> UploadCreateResponse:
    settings = container.settings
    if consent.strip().lower() != "true":
        raise ValidationError("consent", "Consent is required to process your photo")
    if not session_id.strip():
        raise ValidationError("session_id", "Session id is required")
    if (file.content_type or "").lower() not in SUPPORTED_CONTENT_TYPES:
        raise ValidationError("file", "Unsupported file type. Please upload a JPEG, PNG or WebP image")

    try:
        raw = await file.read()
    finally:
        await file.close()
    if not raw:
        raise ValidationError("file", "Uploaded file is empty")

    validation = validate_image(raw, settings.max_upload_size_mb * 1024 * 1024)
    if not validation.is_valid:
        raise ValidationError("file", validation.errors[0])

    processed = strip_exif_and_optimize(raw)
    thumbnail = create_thumbnail(processed, settings.upload_thumbnail_size)
    name = file.filename or "upload"
    stored = container.artifacts.put(processed, "image/jpeg", "uploads", name)
    try:
        thumb = container.artifacts.put(thumbnail, "image/jpeg", "thumbnails", f"thumb-{name}")
    except Exception:
        container.artifacts.delete_many([stored.url])
        raise

    upload = container.catalog.create_upload(
        original_name=name[:255],
        file_name=stored.url.rsplit("/", 1)[-1],
        file_size=stored.size,
        mime_type="image/jpeg",
        width=validation.info.width,
        height=validation.info.height,
        blob_url=stored.url,
        thumbnail_url=thumb.url,
        status=UploadStatus.PROCESSING,
        ip_address=client_ip(request),
        user_agent=(request.headers.get("user-agent") or "")[:500] or None,
        exif_stripped=True,
        expires_at=utcnow() + timedelta(days=settings.retention_days),
    )
    logger.info("upload_stored", extra={"upload_id": upload.id, "size": stored.size})

    if settings.celery_task_always_eager:
        upload = container.moderation.moderate_upload(upload.id) or upload
    else:
        moderate_upload.delay(upload.id)
    return UploadCreateResponse(upload=UploadRead.model_validate(upload))


@router.get("/uploads/{upload_id}", response_model=UploadRead)
def get_upload(upload_id: str, container: Container = Depends(get_container)) -> Upload:
    upload = container.catalog.get_upload(upload_id)
    if not upload:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Upload not found")
    return upload
