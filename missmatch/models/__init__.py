from missmatch.models.garment import Garment
from missmatch.models.job import JobStatus, TryOnJob
from missmatch.models.upload import Upload, UploadStatus

__all__ = ["Upload", "UploadStatus", "Garment", "TryOnJob", "JobStatus"]
