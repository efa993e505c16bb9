"""
Reads and writes for uploads and the garment catalog.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any

from sqlalchemy import String, cast, delete, func, or_, select, update
from sqlalchemy.orm import Session

from missmatch.models.garment import Garment
from missmatch.models.upload import Upload, UploadStatus

SessionFactory = Callable[[], Session]


class CatalogStore:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def create_upload(self, **fields: Any) -> Upload:
        upload = Upload(**fields)
        with self._session_factory() as session:
            session.add(upload)
            session.commit()
            return upload

    def get_upload(self, upload_id: str) -> Upload | None:
        with self._session_factory() as session:
            return session.get(Upload, upload_id)

    def record_moderation(self, upload_id: str, *, score: float, approved: bool) -> Upload | None:
        """Settle moderation for an upload still awaiting it."""
        stmt = (
            update(Upload)
            .where(Upload.id == upload_id, Upload.status.in_((UploadStatus.PENDING, UploadStatus.PROCESSING)))
            .values(
                nsfw_score=score,
                nsfw_checked=True,
                status=UploadStatus.APPROVED if approved else UploadStatus.REJECTED,
            )
            .execution_options(synchronize_session=False)
        )
        with self._session_factory() as session:
            result = session.execute(stmt)
            session.commit()
            if result.rowcount != 1:
                return None
            return session.get(Upload, upload_id, populate_existing=True)

    def list_expired_uploads(self, before: datetime) -> list[Upload]:
        with self._session_factory() as session:
            return list(session.scalars(select(Upload).where(Upload.expires_at < before)).all())

    def delete_upload(self, upload_id: str) -> bool:
        with self._session_factory() as session:
            result = session.execute(delete(Upload).where(Upload.id == upload_id))
            session.commit()
            return result.rowcount == 1

    def referenced_urls(self) -> set[str]:
        with self._session_factory() as session:
            rows = session.execute(select(Upload.blob_url, Upload.thumbnail_url)).all()
            rows += session.execute(select(Garment.image_url, Garment.thumbnail_url)).all()
        return {url for row in rows for url in row if url}

    def get_garment(self, garment_id: str) -> Garment | None:
        with self._session_factory() as session:
            return session.get(Garment, garment_id)

    def add_garment(self, **fields: Any) -> Garment:
        garment = Garment(**fields)
        with self._session_factory() as session:
            session.add(garment)
            session.commit()
            return garment

    def list_garments(
        self,
        *,
        category: str | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Garment], int]:
        conditions = [Garment.is_active.is_(True)]
        if category:
            conditions.append(Garment.category == category.upper())
        if search:
            pattern = f"%{search}%"
            conditions.append(
                or_(
                    Garment.name.ilike(pattern),
                    Garment.description.ilike(pattern),
                    cast(Garment.tags, String).ilike(pattern),
                )
            )
        page = max(1, page)
        limit = max(1, min(limit, 100))
        stmt = (
            select(Garment)
            .where(*conditions)
            .order_by(Garment.display_order.asc(), Garment.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        with self._session_factory() as session:
            items = list(session.scalars(stmt).all())
            total = session.scalar(select(func.count(Garment.id)).where(*conditions)) or 0
        return items, int(total)
