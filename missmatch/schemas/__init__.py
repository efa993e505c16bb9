from missmatch.schemas.cleanup import SweepResponse
from missmatch.schemas.garment import GarmentListResponse, GarmentRead, Pagination
from missmatch.schemas.job import TryOnCreate, TryOnCreateResponse, TryOnOptionsIn, TryOnStatusRead
from missmatch.schemas.upload import UploadCreateResponse, UploadRead

__all__ = [
    "UploadRead",
    "UploadCreateResponse",
    "GarmentRead",
    "GarmentListResponse",
    "Pagination",
    "TryOnOptionsIn",
    "TryOnCreate",
    "TryOnCreateResponse",
    "TryOnStatusRead",
    "SweepResponse",
]
