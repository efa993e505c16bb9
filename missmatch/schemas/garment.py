from pydantic import BaseModel


class GarmentRead(BaseModel):
    id: str
    name: str
    description: str | None
    category: str
    subcategory: str | None
    image_url: str
    thumbnail_url: str | None
    brand: str | None
    color: str | None
    tags: list[str]

    model_config = {"from_attributes": True}


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class GarmentListResponse(BaseModel):
    garments: list[GarmentRead]
    pagination: Pagination
