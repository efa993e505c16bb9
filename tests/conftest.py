import io
import os
import threading
import time
from datetime import timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from PIL import Image

os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["AUTO_CREATE_TABLES"] = "true"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["ARTIFACT_DIR"] = "./test-artifacts"
os.environ["TRYON_DRIVER"] = "mock"
os.environ["UPLOAD_RATE_LIMIT"] = "1000"
os.environ["GENERATION_RATE_LIMIT"] = "1000"
os.environ["RATE_LIMIT_PER_MINUTE"] = "10000"
os.environ["WEBHOOK_SECRET"] = ""
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["NSFW_API_KEY"] = ""

import missmatch.models  # noqa: E402,F401
from missmatch.core.config import get_settings  # noqa: E402
from missmatch.core.container import build_container  # noqa: E402
from missmatch.db.base import Base  # noqa: E402
from missmatch.db.session import SessionLocal, engine  # noqa: E402
from missmatch.main import create_app  # noqa: E402
from missmatch.models.common import utcnow  # noqa: E402
from missmatch.models.upload import UploadStatus  # noqa: E402
from missmatch.services.drivers.base import TryOnDriver  # noqa: E402
from missmatch.services.drivers.mock import MockTryOnDriver  # noqa: E402
from missmatch.services.drivers.registry import DriverRegistry  # noqa: E402
from missmatch.services.drivers.types import TryOnResponse  # noqa: E402
from missmatch.services.errors import ArtifactStoreError  # noqa: E402
from missmatch.services.moderation import NsfwClassifier  # noqa: E402
from missmatch.services.storage import ArtifactStore, StoredArtifact  # noqa: E402

BASE_URL = "http://testserver/artifacts"
PROVIDER_RESULT_URL = "https://provider.example/results/out.png"
PROVIDER_THUMB_URL = "https://provider.example/results/out-thumb.png"


def make_image(width: int = 512, height: int = 768, color: str = "navy", fmt: str = "JPEG") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format=fmt)
    return buffer.getvalue()


class MemoryArtifactStore(ArtifactStore):
    """Dict-backed store that records every call it receives."""

    batch_size = 10

    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.created_at: dict[str, float] = {}
        self.remote: dict[str, bytes] = {}
        self.fetches: list[str] = []
        self.deleted: list[str] = []
        self.fail_fetch = False
        self.fail_delete: set[str] = set()
        self._counter = 0
        self._lock = threading.Lock()

    def put(self, data: bytes, content_type: str, folder: str, filename: str = "image") -> StoredArtifact:
        with self._lock:
            self._counter += 1
            counter = self._counter
        url = f"{BASE_URL}/{folder}/{counter:04d}-{filename}"
        self.objects[url] = (data, content_type)
        self.created_at[url] = time.time()
        return StoredArtifact(url=url, size=len(data), content_type=content_type)

    def put_from_url(self, source_url: str, folder: str, filename: str = "image") -> StoredArtifact:
        self.fetches.append(source_url)
        if self.fail_fetch:
            raise ArtifactStoreError(f"Failed to fetch image: {source_url}")
        if source_url in self.objects:
            data, content_type = self.objects[source_url]
        elif source_url in self.remote:
            data, content_type = self.remote[source_url], "image/png"
        else:
            raise ArtifactStoreError(f"Failed to fetch image: 404 {source_url}")
        return self.put(data, content_type, folder, filename)

    def get(self, url: str) -> bytes:
        if url not in self.objects:
            raise ArtifactStoreError(f"Artifact not readable: {url}")
        return self.objects[url][0]

    def delete(self, url: str) -> bool:
        if url in self.fail_delete:
            raise ArtifactStoreError(f"delete failed: {url}")
        self.deleted.append(url)
        self.objects.pop(url, None)
        self.created_at.pop(url, None)
        return True

    def list_older_than(self, days: int) -> list[str]:
        cutoff = time.time() - days * 86400
        return [url for url, created in self.created_at.items() if created < cutoff]

    def age(self, url: str, days: int) -> None:
        self.created_at[url] = time.time() - days * 86400


class ScriptedDriver(TryOnDriver):
    """Driver whose responses are set by the test."""

    name = "scripted"
    estimated_processing_time = 20

    def __init__(self) -> None:
        self.generate_response = TryOnResponse(job_id="ext-1", status="processing")
        self.status_response = TryOnResponse(job_id="ext-1", status="processing")
        self.status_error: Exception | None = None
        self.generate_calls = 0
        self.status_calls = 0
        self.close_calls = 0

    def generate(self, request):
        self.generate_calls += 1
        return self.generate_response

    def get_status(self, job_id: str) -> TryOnResponse:
        self.status_calls += 1
        if self.status_error is not None:
            raise self.status_error
        return self.status_response

    def close(self) -> None:
        self.close_calls += 1


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    path = Path("test.db")
    if path.exists():
        path.unlink()


@pytest.fixture()
def settings():
    return get_settings().model_copy(update={"artifact_base_url": BASE_URL})


@pytest.fixture()
def artifacts():
    store = MemoryArtifactStore()
    store.remote[PROVIDER_RESULT_URL] = make_image(640, 960, "teal", "PNG")
    store.remote[PROVIDER_THUMB_URL] = make_image(300, 300, "teal", "PNG")
    return store


@pytest.fixture()
def scripted():
    return ScriptedDriver()


@pytest.fixture()
def registry(scripted):
    registry = DriverRegistry(default_name="mock")
    registry.register_driver("mock", MockTryOnDriver)
    registry.register_driver("scripted", lambda: scripted, ScriptedDriver.estimated_processing_time)
    return registry


@pytest.fixture()
def container(settings, artifacts, registry):
    return build_container(
        settings,
        session_factory=SessionLocal,
        artifacts=artifacts,
        registry=registry,
        classifier=NsfwClassifier(api_key="", api_url=""),
    )


@pytest.fixture()
def client(container):
    app = create_app(container)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def make_upload(container, artifacts):
    def _make(status: str = UploadStatus.APPROVED, expires_in: timedelta = timedelta(days=30)):
        original = artifacts.put(make_image(), "image/jpeg", "uploads", "person.jpg")
        thumb = artifacts.put(make_image(300, 300), "image/jpeg", "thumbnails", "person-thumb.jpg")
        return container.catalog.create_upload(
            original_name="person.jpg",
            file_name=original.url.rsplit("/", 1)[-1],
            file_size=original.size,
            mime_type="image/jpeg",
            width=512,
            height=768,
            blob_url=original.url,
            thumbnail_url=thumb.url,
            status=status,
            exif_stripped=True,
            expires_at=utcnow() + expires_in,
        )

    return _make


@pytest.fixture()
def make_garment(container):
    def _make(name: str = "Linen Shirt", category: str = "TOPS", is_active: bool = True, **fields):
        return container.catalog.add_garment(
            name=name,
            category=category,
            image_url=f"https://catalog.example/{name.lower().replace(' ', '-')}.jpg",
            thumbnail_url=f"https://catalog.example/{name.lower().replace(' ', '-')}-thumb.jpg",
            is_active=is_active,
            **fields,
        )

    return _make
