import math

from fastapi import APIRouter, Depends, Query

from missmatch.core.container import Container
from missmatch.routers.deps import get_container
from missmatch.schemas.garment import GarmentListResponse, GarmentRead, Pagination

router = APIRouter(prefix="/api/garments", tags=["garments"])


@router.get("", response_model=GarmentListResponse)
def list_garments(
    category: str | None = None,
    search: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    container: Container = Depends(get_container),
) -> GarmentListResponse:
    garments, total = container.catalog.list_garments(category=category, search=search, page=page, limit=limit)
    return GarmentListResponse(
        garments=[GarmentRead.model_validate(garment) for garment in garments],
        pagination=Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit)),
    )
