from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field, StringConstraints

from missmatch.services.drivers.types import TryOnOptions


class TryOnOptionsIn(BaseModel):
    preserve_background: bool = True
    quality: Literal["standard", "high", "ultra"] = "high"
    style: Literal["realistic", "artistic"] = "realistic"
    fit_adjustment: float = Field(default=0.0, ge=-1.0, le=1.0)

    def to_options(self) -> TryOnOptions:
        return TryOnOptions(**self.model_dump())


class TryOnCreate(BaseModel):
    upload_id: str = Field(min_length=1)
    garment_id: str = Field(min_length=1)
    session_id: str = Field(default="anonymous", min_length=1, max_length=128)
    driver: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=64)] | None = None
    options: TryOnOptionsIn = Field(default_factory=TryOnOptionsIn)


class TryOnCreateResponse(BaseModel):
    success: bool = True
    result_id: str
    status: str
    estimated_time: int
    message: str


class RelatedImage(BaseModel):
    id: str
    thumbnail_url: str | None
    name: str | None = None


class TryOnStatusRead(BaseModel):
    id: str
    status: str
    driver_name: str
    result_url: str | None
    thumbnail_url: str | None
    processing_time_ms: int | None
    error_detail: str | None
    webhook_received: bool
    created_at: datetime
    upload: RelatedImage | None = None
    garment: RelatedImage | None = None
