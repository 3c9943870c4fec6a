from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from ..models import Asset


class ImageMetadata(BaseModel):
    width: int | None = Field(None, description="Image width in pixels")
    height: int | None = Field(None, description="Image height in pixels")
    format: str | None = Field(None, description="Sniffed image format")
    has_alpha: bool = Field(False, description="Whether the image has transparency")


class VariantSummary(BaseModel):
    """Stored rendition of one size"""

    width: int | None = None
    height: int | None = None
    byte_size: int = Field(..., description="Encoded size in bytes")
    format: str | None = None


class ImageClassification(BaseModel):
    category: str
    tags: list[str]
    alt: str
    title: str
    entity_id: str | None = None
    entity_type: str | None = None
    product_id: str | None = None


class ImageUploadResponse(ImageClassification):
    """Response model for a successfully ingested image"""

    image_id: UUID = Field(..., description="Asset identifier")
    original_name: str = Field(..., description="Filename as uploaded")
    filename: str = Field(..., description="Sanitized storage filename")
    size: int = Field(..., description="Original size in bytes")
    mime_type: str
    uploaded_at: datetime
    metadata: ImageMetadata
    variants: dict[str, VariantSummary]
    variants_skipped: bool = Field(
        False, description="True when resized variants could not be generated"
    )
    is_public: bool
    access_url: str
    access_token: str = Field(..., description="Signed token valid for one hour")
    urls: dict[str, str] = Field(..., description="Per-size URLs carrying the token")
    public_urls: dict[str, str] | None = Field(
        None, description="Token-less URLs, only for public images"
    )


class BulkUploadFailure(BaseModel):
    filename: str
    error: str


class BulkUploadSummary(BaseModel):
    total: int
    successful: int
    failed: int


class BulkUploadResponse(BaseModel):
    uploaded: list[ImageUploadResponse]
    errors: list[BulkUploadFailure]
    summary: BulkUploadSummary


class VariantAvailability(BaseModel):
    served_size: str = Field(..., description="Size actually served for this name")
    width: int | None = None
    height: int | None = None
    byte_size: int
    mime_type: str


class ImageInfoResponse(ImageClassification):
    """Metadata-only view of an image"""

    image_id: UUID
    original_name: str
    size: int
    mime_type: str
    metadata: ImageMetadata
    variants: dict[str, VariantAvailability]
    is_public: bool
    access_count: int
    last_accessed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    versions_count: int = 0
    urls: dict[str, str]
    public_urls: dict[str, str] | None = None
    access_token: str | None = Field(
        None, description="Fresh token minted for owner reads of private images"
    )


class ImageSummary(ImageClassification):
    image_id: UUID
    original_name: str
    size: int
    mime_type: str
    metadata: ImageMetadata
    is_public: bool
    access_count: int
    last_accessed_at: datetime | None = None
    created_at: datetime
    urls: dict[str, str]


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class ImageListResponse(BaseModel):
    images: list[ImageSummary]
    pagination: Pagination
    filters: dict[str, Any]


class CategoryListResponse(BaseModel):
    categories: list[str]


class MetadataUpdateRequest(BaseModel):
    category: str | None = Field(None, max_length=100)
    tags: list[str] | str | None = Field(
        None, description="List of tags or a comma-separated string"
    )
    alt: str | None = Field(None, max_length=500)
    title: str | None = Field(None, max_length=255)
    is_public: bool | None = None


class ImageDeleteResponse(BaseModel):
    image_id: UUID
    message: str


def image_metadata(asset: Asset) -> ImageMetadata:
    return ImageMetadata(
        width=asset.width,
        height=asset.height,
        format=asset.format,
        has_alpha=asset.has_alpha,
    )


def classification_fields(asset: Asset) -> dict:
    return {
        "category": asset.category,
        "tags": asset.tags or [],
        "alt": asset.alt,
        "title": asset.title,
        "entity_id": asset.entity_id,
        "entity_type": asset.entity_type,
        "product_id": asset.product_id,
    }
