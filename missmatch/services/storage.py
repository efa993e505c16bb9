import logging
import re
import time
import uuid
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

import httpx

from missmatch.core.config import Settings
from missmatch.services.errors import ArtifactStoreError

logger = logging.getLogger(__name__)

FOLDERS = {"uploads", "thumbnails", "results", "garments"}

EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}


@dataclass(slots=True)
class StoredArtifact:
    url: str
    size: int
    content_type: str = "image/jpeg"


@dataclass(slots=True)
class DeleteReport:
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def sanitize_filename(name: str) -> str:
    stem = Path(name).stem
    cleaned = re.sub(r"[^a-zA-Z0-9_-]+", "-", stem).strip("-").lower()
    return cleaned[:60] or "image"


class ArtifactStore(ABC):
    """Content store for images addressed by URL."""

    @abstractmethod
    def put(self, data: bytes, content_type: str, folder: str, filename: str = "image") -> StoredArtifact: ...

    @abstractmethod
    def put_from_url(self, source_url: str, folder: str, filename: str = "image") -> StoredArtifact: ...

    @abstractmethod
    def get(self, url: str) -> bytes: ...

    @abstractmethod
    def delete(self, url: str) -> bool: ...

    @abstractmethod
    def list_older_than(self, days: int) -> list[str]: ...

    batch_size = 10

    def delete_many(self, urls: list[str]) -> DeleteReport:
        """Delete in batches of ``batch_size`` concurrent calls."""
        report = DeleteReport()
        unique = list(dict.fromkeys(url for url in urls if url))
        for start in range(0, len(unique), self.batch_size):
            batch = unique[start : start + self.batch_size]
            with ThreadPoolExecutor(max_workers=len(batch)) as pool:
                outcomes = list(pool.map(self._safe_delete, batch))
            for url, ok in zip(batch, outcomes):
                (report.succeeded if ok else report.failed).append(url)
        return report

    def _safe_delete(self, url: str) -> bool:
        try:
            return self.delete(url)
        except Exception:  # noqa: BLE001
            logger.exception("artifact_delete_failed", extra={"url": url})
            return False


class LocalArtifactStore(ArtifactStore):
    """Filesystem-backed store publishing files under ``base_url``."""

    def __init__(
        self,
        root: str | Path,
        base_url: str,
        batch_size: int = 10,
        timeout: float = 60.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")
        self.batch_size = max(1, batch_size)
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocalArtifactStore":
        return cls(
            settings.artifact_dir,
            settings.artifact_base_url,
            batch_size=settings.delete_batch_size,
            timeout=settings.provider_http_timeout_seconds,
        )

    def ensure_root(self) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root

    def path_for_url(self, url: str) -> Path | None:
        prefix = f"{self.base_url}/"
        if not url.startswith(prefix):
            return None
        root = self.root.resolve()
        candidate = (root / url[len(prefix) :]).resolve()
        if not candidate.is_relative_to(root) or candidate == root:
            return None
        return candidate

    def put(self, data: bytes, content_type: str, folder: str, filename: str = "image") -> StoredArtifact:
        if folder not in FOLDERS:
            raise ArtifactStoreError(f"Unknown artifact folder: {folder}")
        ext = EXTENSIONS.get(content_type, "jpg")
        key = f"{folder}/{uuid.uuid4().hex}-{sanitize_filename(filename)}.{ext}"
        target = self.ensure_root() / key
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise ArtifactStoreError(f"Failed to store artifact {key}") from exc
        return StoredArtifact(url=f"{self.base_url}/{key}", size=len(data), content_type=content_type)

    def put_from_url(self, source_url: str, folder: str, filename: str = "image") -> StoredArtifact:
        local = self.path_for_url(source_url)
        if local is not None:
            data = self.get(source_url)
            content_type = next((ct for ct, ext in EXTENSIONS.items() if local.suffix == f".{ext}"), "image/jpeg")
            return self.put(data, content_type, folder, filename)

        try:
            response = self._client.get(source_url)
        except httpx.HTTPError as exc:
            raise ArtifactStoreError(f"Failed to fetch image: {exc}") from exc
        if response.status_code != 200:
            raise ArtifactStoreError(f"Failed to fetch image: {response.status_code}")
        content_type = response.headers.get("content-type", "image/jpeg").split(";")[0].strip()
        return self.put(response.content, content_type, folder, filename)

    def get(self, url: str) -> bytes:
        path = self.path_for_url(url)
        if path is None:
            raise ArtifactStoreError(f"Not an artifact of this store: {url}")
        try:
            return path.read_bytes()
        except OSError as exc:
            raise ArtifactStoreError(f"Artifact not readable: {url}") from exc

    def delete(self, url: str) -> bool:
        path = self.path_for_url(url)
        if path is None:
            logger.warning("artifact_delete_foreign_url", extra={"url": url})
            return False
        path.unlink(missing_ok=True)
        return True

    def list_older_than(self, days: int) -> list[str]:
        if not self.root.exists():
            return []
        cutoff = time.time() - days * 86400
        urls = []
        for path in self.root.rglob("*"):
            if path.is_file() and path.stat().st_mtime < cutoff:
                urls.append(f"{self.base_url}/{path.relative_to(self.root).as_posix()}")
        return urls
