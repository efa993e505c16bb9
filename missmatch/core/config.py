from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    app_name: str = "Miss Match Try-On API"
    environment: Literal["dev", "test", "prod"] = "dev"
    debug: bool = False

    database_url: str = "sqlite:///./missmatch.db"
    auto_create_tables: bool = True

    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"])
    public_app_url: str = "http://localhost:8000"

    artifact_dir: str = "data/artifacts"
    artifact_base_url: str = "http://localhost:8000/artifacts"
    delete_batch_size: int = 10

    max_upload_size_mb: int = 10
    upload_thumbnail_size: int = 300
    result_thumbnail_size: int = 400

    retention_days: int = 30
    failed_job_retention_hours: int = 24
    processing_timeout_seconds: int = 5 * 60
    max_retries: int = 3

    tryon_driver: str = ""
    provider_http_timeout_seconds: float = 30.0
    mock_delay_seconds: float = 0.0
    flux_api_key: str = ""
    flux_api_url: str = ""
    nanobanana_api_key: str = ""
    nanobanana_api_url: str = ""
    kontext_api_key: str = ""
    kontext_api_url: str = "https://api.bfl.ai"

    webhook_secret: str = ""
    cron_secret: str = ""

    nsfw_api_key: str = ""
    nsfw_api_url: str = "https://api.nsfwdetection.com/v1/analyze"
    nsfw_threshold: float = 0.7

    rate_limit_per_minute: int = 100
    upload_rate_limit: int = 10
    upload_rate_window_seconds: int = 15 * 60
    generation_rate_limit: int = 5
    generation_rate_window_seconds: int = 5 * 60

    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = ""
    celery_task_always_eager: bool = False

    def get_celery_broker_url(self) -> str:
        return self.celery_broker_url

    def get_celery_result_backend(self) -> str:
        return self.celery_result_backend or self.celery_broker_url

    def webhook_url(self, provider: str) -> str:
        return f"{self.public_app_url.rstrip('/')}/api/webhooks/tryon/{provider}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
