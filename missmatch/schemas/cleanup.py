from datetime import datetime

from pydantic import BaseModel


class SweepResponse(BaseModel):
    success: bool
    timed_out_jobs: int
    deleted_jobs: int
    deleted_uploads: int
    deleted_artifacts: int
    deleted_orphans: int
    deleted_failed_jobs: int
    errors: list[str]
    timestamp: datetime
