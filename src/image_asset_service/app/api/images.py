from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile
from loguru import logger

from ..core.dependencies import (
    get_access_broker,
    get_asset_catalog,
    get_ingestion_pipeline,
    get_token_service,
    get_url_builder,
)
from ..core.errors import ValidationError
from ..core.security import TokenService
from ..models import Asset, Tenant
from ..schemas import (
    BulkUploadResponse,
    CategoryListResponse,
    Envelope,
    ErrorResponse,
    ImageDeleteResponse,
    ImageInfoResponse,
    ImageListResponse,
    ImageSummary,
    ImageUploadResponse,
    MetadataUpdateRequest,
)
from ..schemas.image import classification_fields, image_metadata
from ..services.access_broker import AccessBroker
from ..services.asset_catalog import SORT_ORDERINGS, AssetCatalog, AssetQuery
from ..services.asset_urls import AssetUrlBuilder
from ..services.domain import AccessGrant, AssetClassification, UploadOutcome, UploadRequest
from ..services.ingestion_pipeline import IngestionPipeline
from .auth import optional_tenant, require_tenant

router = APIRouter()

IDENTIFIER_PATTERN = r"^[A-Za-z0-9_-]+$"

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    413: {"model": ErrorResponse},
}


def _upload_response(outcome: UploadOutcome) -> ImageUploadResponse:
    asset = outcome.asset
    return ImageUploadResponse(
        image_id=asset.id,
        original_name=asset.original_filename,
        filename=asset.filename,
        size=asset.file_size,
        mime_type=asset.mime_type,
        uploaded_at=asset.created_at,
        metadata=image_metadata(asset),
        variants=asset.variants or {},
        variants_skipped=outcome.variants_skipped,
        is_public=asset.is_public,
        access_url=outcome.access_url,
        access_token=outcome.access_token,
        urls=outcome.urls,
        public_urls=outcome.public_urls,
        **classification_fields(asset),
    )


async def _read_upload(file: UploadFile) -> UploadRequest:
    if not file.filename:
        raise ValidationError("No file provided")
    return UploadRequest(
        file_data=await file.read(),
        original_filename=file.filename,
        content_type=file.content_type,
    )


def _classification(
    category: str | None = Form(None, max_length=100),
    tags: str | None = Form(None, description="Comma-separated tags"),
    alt: str | None = Form(None, max_length=500),
    title: str | None = Form(None, max_length=255),
    entity_id: str | None = Form(None, max_length=100, pattern=IDENTIFIER_PATTERN),
    entity_type: str | None = Form(None, max_length=50, pattern=IDENTIFIER_PATTERN),
    product_id: str | None = Form(None, max_length=100, pattern=IDENTIFIER_PATTERN),
) -> AssetClassification:
    return AssetClassification(
        category=category,
        tags=tags,
        alt=alt,
        title=title,
        entity_id=entity_id,
        entity_type=entity_type,
        product_id=product_id,
    )


@router.post(
    "/upload",
    response_model=Envelope[ImageUploadResponse],
    status_code=201,
    responses=ERROR_RESPONSES,
)
async def upload_image(
    file: UploadFile = File(...),
    classification: AssetClassification = Depends(_classification),
    tenant: Tenant = Depends(require_tenant),
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),
):
    """
    Upload one image and generate its resized variants.

    Returns per-size URLs carrying a signed token, and token-less URLs when the
    image is public.
    """
    logger.info(f"Received image upload request: {file.filename}")
    request = await _read_upload(file)
    outcome = await pipeline.upload(tenant, request, classification)
    return Envelope(data=_upload_response(outcome))


@router.post(
    "/bulk-upload",
    response_model=Envelope[BulkUploadResponse],
    status_code=201,
    responses=ERROR_RESPONSES,
)
async def bulk_upload_images(
    files: list[UploadFile] = File(...),
    classification: AssetClassification = Depends(_classification),
    tenant: Tenant = Depends(require_tenant),
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),
):
    logger.info(f"Received bulk upload request with {len(files)} files")
    requests = [await _read_upload(file) for file in files]
    result = await pipeline.upload_bulk(tenant, requests, classification)
    return Envelope(
        data=BulkUploadResponse(
            uploaded=[_upload_response(outcome) for outcome in result.uploaded],
            errors=[
                {"filename": error.filename, "error": error.error}
                for error in result.errors
            ],
            summary=result.summary,
        )
    )


@router.get("", response_model=Envelope[ImageListResponse], responses=ERROR_RESPONSES)
async def list_images(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    entity_id: str | None = Query(None, max_length=100),
    entity_type: str | None = Query(None, max_length=50),
    product_id: str | None = Query(None, max_length=100),
    category: str | None = Query(None, max_length=100),
    tags: str | None = Query(None, description="Comma-separated tags, all must match"),
    search: str | None = Query(None, max_length=100),
    sort: str = Query("newest", description=f"One of: {', '.join(SORT_ORDERINGS)}"),
    tenant: Tenant = Depends(require_tenant),
    catalog: AssetCatalog = Depends(get_asset_catalog),
    token_service: TokenService = Depends(get_token_service),
    url_builder: AssetUrlBuilder = Depends(get_url_builder),
):
    query = AssetQuery(
        page=page,
        limit=limit,
        entity_id=entity_id,
        entity_type=entity_type,
        product_id=product_id,
        category=category,
        tags=tags.split(",") if tags else None,
        search=search,
        sort=sort,
    )
    result = await catalog.list_assets(tenant, query)

    images = []
    for asset in result.items:
        token = (
            None
            if asset.is_public and tenant.enable_public_access
            else token_service.issue_asset_token(str(asset.id), str(asset.tenant_id))
        )
        images.append(_summary(asset, url_builder.urls(asset.id, token)))

    return Envelope(
        data=ImageListResponse(
            images=images,
            pagination={
                "page": result.page,
                "limit": result.limit,
                "total": result.total,
                "total_pages": result.total_pages,
                "has_next": result.has_next,
                "has_prev": result.has_prev,
            },
            filters={
                key: value
                for key, value in {
                    "entity_id": entity_id,
                    "entity_type": entity_type,
                    "product_id": product_id,
                    "category": category,
                    "tags": query.tags,
                    "search": search,
                    "sort": sort,
                }.items()
                if value is not None
            },
        )
    )


def _summary(asset: Asset, urls: dict[str, str]) -> ImageSummary:
    return ImageSummary(
        image_id=asset.id,
        original_name=asset.original_filename,
        size=asset.file_size,
        mime_type=asset.mime_type,
        metadata=image_metadata(asset),
        is_public=asset.is_public,
        access_count=asset.access_count,
        last_accessed_at=asset.last_accessed_at,
        created_at=asset.created_at,
        urls=urls,
        **classification_fields(asset),
    )


@router.get("/categories/list", response_model=Envelope[CategoryListResponse])
async def list_categories(
    tenant: Tenant = Depends(require_tenant),
    catalog: AssetCatalog = Depends(get_asset_catalog),
):
    categories = await catalog.categories(tenant)
    return Envelope(data=CategoryListResponse(categories=categories))


@router.get(
    "/{image_id}/info",
    response_model=Envelope[ImageInfoResponse],
    responses=ERROR_RESPONSES,
)
async def get_image_info(
    image_id: str,
    token: str | None = Query(None),
    tenant: Tenant | None = Depends(optional_tenant),
    broker: AccessBroker = Depends(get_access_broker),
):
    decision, view = await broker.describe(image_id, tenant, token)
    asset = decision.asset
    return Envelope(
        data=ImageInfoResponse(
            image_id=asset.id,
            original_name=asset.original_filename,
            size=asset.file_size,
            mime_type=asset.mime_type,
            metadata=image_metadata(asset),
            variants=view["variants"],
            is_public=asset.is_public,
            access_count=asset.access_count,
            last_accessed_at=asset.last_accessed_at,
            created_at=asset.created_at,
            updated_at=asset.updated_at,
            versions_count=len(asset.versions or []),
            urls=view["urls"],
            public_urls=view["public_urls"],
            access_token=decision.access_token,
            **classification_fields(asset),
        )
    )


@router.get("/{image_id}", responses=ERROR_RESPONSES)
async def get_image(
    image_id: str,
    size: str | None = Query(None, description="thumbnail, small, medium, large or original"),
    token: str | None = Query(None),
    tenant: Tenant | None = Depends(optional_tenant),
    broker: AccessBroker = Depends(get_access_broker),
):
    """
    Serve image bytes for the requested size.

    Sizes without a stored variant are served from the original bytes.
    """
    decision, content, data = await broker.read(image_id, size, tenant, token)
    headers = {
        "ETag": content.etag,
        "Cache-Control": "public, max-age=31536000"
        if decision.grant == AccessGrant.PUBLIC
        else "private, max-age=3600",
        "X-Served-Size": content.served_size,
    }
    return Response(content=data, media_type=content.mime_type, headers=headers)


@router.patch(
    "/{image_id}/metadata",
    response_model=Envelope[ImageSummary],
    responses=ERROR_RESPONSES,
)
async def update_image_metadata(
    image_id: str,
    request: MetadataUpdateRequest,
    tenant: Tenant = Depends(require_tenant),
    catalog: AssetCatalog = Depends(get_asset_catalog),
    token_service: TokenService = Depends(get_token_service),
    url_builder: AssetUrlBuilder = Depends(get_url_builder),
):
    asset = await catalog.get_owned(image_id, tenant)
    asset = await catalog.update_metadata(asset, **request.model_dump(exclude_unset=True))
    token = token_service.issue_asset_token(str(asset.id), str(asset.tenant_id))
    return Envelope(data=_summary(asset, url_builder.urls(asset.id, token)))


@router.put(
    "/{image_id}",
    response_model=Envelope[ImageUploadResponse],
    responses=ERROR_RESPONSES,
)
async def replace_image(
    image_id: str,
    file: UploadFile = File(...),
    tenant: Tenant = Depends(require_tenant),
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),
):
    """Replace an image's content, keeping its id and archiving the old version."""
    request = await _read_upload(file)
    outcome = await pipeline.replace(tenant, image_id, request)
    return Envelope(data=_upload_response(outcome))


@router.delete(
    "/{image_id}",
    response_model=Envelope[ImageDeleteResponse],
    responses=ERROR_RESPONSES,
)
async def delete_image(
    image_id: str,
    tenant: Tenant = Depends(require_tenant),
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),
):
    asset = await pipeline.delete(tenant, image_id)
    return Envelope(
        data=ImageDeleteResponse(image_id=asset.id, message="Image deleted successfully")
    )
