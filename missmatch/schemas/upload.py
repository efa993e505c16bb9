from datetime import datetime

from pydantic import BaseModel


class UploadRead(BaseModel):
    id: str
    status: str
    blob_url: str
    thumbnail_url: str | None
    file_name: str
    width: int
    height: int
    nsfw_checked: bool
    created_at: datetime
    expires_at: datetime

    model_config = {"from_attributes": True}


class UploadCreateResponse(BaseModel):
    success: bool = True
    upload: UploadRead
