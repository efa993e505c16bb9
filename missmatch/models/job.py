from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from missmatch.db.base import Base
from missmatch.models.common import TimestampMixin, UUIDPrimaryKeyMixin, utcnow


class JobStatus:
    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    NON_TERMINAL = (QUEUED, PROCESSING)
    TERMINAL = (COMPLETED, FAILED)


def inflight_key_for(upload_id: str, garment_id: str) -> str:
    return f"{upload_id}:{garment_id}"


class TryOnJob(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "tryon_jobs"

    upload_id: Mapped[str] = mapped_column(ForeignKey("uploads.id", ondelete="CASCADE"), nullable=False, index=True)
    garment_id: Mapped[str] = mapped_column(ForeignKey("garments.id", ondelete="CASCADE"), nullable=False, index=True)
    session_ref: Mapped[str | None] = mapped_column(String(128), nullable=True)

    status: Mapped[str] = mapped_column(String(32), default=JobStatus.QUEUED, nullable=False, index=True)
    driver_name: Mapped[str] = mapped_column(String(64), nullable=False)
    external_job_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    processing_params: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    result_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    result_thumbnail_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    processing_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_detail: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Schema bookkeeping only; nothing in the state machine reads or increments these.
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_retries: Mapped[int] = mapped_column(Integer, default=3, nullable=False)

    webhook_received: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    dispatched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # Set by the single completion attempt allowed to fetch the provider result.
    completion_token: Mapped[str | None] = mapped_column(String(36), nullable=True)
    # "<upload>:<garment>" while non-terminal, NULL once terminal; unique.
    inflight_key: Mapped[str | None] = mapped_column(String(80), nullable=True, unique=True)

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in JobStatus.TERMINAL
