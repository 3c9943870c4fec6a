from image_variant_engine import ORIGINAL, VARIANT_MIME_TYPE, size_names
from loguru import logger

from ..core.errors import AuthenticationRequired, Forbidden, NotFound, ValidationError
from ..core.security import TokenService
from ..models import Asset, Tenant
from .asset_catalog import AssetCatalog
from .asset_urls import AssetUrlBuilder
from .blob_store import BlobNotFound, BlobStore
from .domain import AccessDecision, AccessGrant, ResolvedContent


def validate_size_name(size: str | None) -> str:
    size = size or ORIGINAL
    if size not in size_names():
        raise ValidationError(
            f"Unknown size: {size}",
            details=[f"Allowed: {', '.join(size_names())}"],
        )
    return size


class AccessBroker:
    """Decides who may read an asset and which stored bytes answer a read.

    Public assets need nothing. Otherwise a signed asset token, when present,
    is the only thing evaluated; without one the owning tenant's bearer grants
    access and gets a fresh token back.
    """

    def __init__(
        self,
        catalog: AssetCatalog,
        blob_store: BlobStore,
        token_service: TokenService,
        url_builder: AssetUrlBuilder,
    ):
        self.catalog = catalog
        self.blob_store = blob_store
        self.token_service = token_service
        self.url_builder = url_builder

    async def authorize(
        self,
        asset_id,
        tenant: Tenant | None = None,
        token: str | None = None,
    ) -> AccessDecision:
        asset = await self.catalog.get_active(asset_id)

        if await self.served_publicly(asset):
            decision = AccessDecision(asset=asset, grant=AccessGrant.PUBLIC)
        elif token:
            claims = self.token_service.verify_asset_token(token)
            if claims.asset_id != str(asset.id):
                raise Forbidden("Token not valid for this image")
            decision = AccessDecision(asset=asset, grant=AccessGrant.SIGNED_TOKEN)
        elif tenant is not None:
            if str(tenant.id) != str(asset.tenant_id):
                raise Forbidden("Access denied")
            decision = AccessDecision(
                asset=asset,
                grant=AccessGrant.OWNER,
                access_token=self.token_service.issue_asset_token(
                    str(asset.id), str(asset.tenant_id)
                ),
            )
        else:
            raise AuthenticationRequired("Access token required for private images")

        await self.catalog.record_access(asset)
        return decision

    async def served_publicly(self, asset: Asset) -> bool:
        """Public assets are only served bare while their tenant allows it."""
        if not asset.is_public:
            return False
        enabled = (
            await Tenant.filter(id=asset.tenant_id)
            .first()
            .values_list("enable_public_access", flat=True)
        )
        return bool(enabled)

    def resolve_content(self, asset: Asset, size: str | None = None) -> ResolvedContent:
        """Pick the blob for a size, falling back to the original bytes."""
        requested = validate_size_name(size)
        variant = asset.variant(requested) if requested != ORIGINAL else None

        if variant and variant.get("handle"):
            served, handle, mime_type = requested, variant["handle"], VARIANT_MIME_TYPE
        else:
            served, handle, mime_type = ORIGINAL, asset.storage_handle, asset.mime_type

        version_stamp = int(asset.updated_at.timestamp()) if asset.updated_at else 0
        return ResolvedContent(
            asset_id=str(asset.id),
            requested_size=requested,
            served_size=served,
            handle=handle,
            mime_type=mime_type,
            etag=f'"{asset.id}-{served}-{version_stamp}"',
        )

    async def read(
        self,
        asset_id,
        size: str | None = None,
        tenant: Tenant | None = None,
        token: str | None = None,
    ) -> tuple[AccessDecision, ResolvedContent, bytes]:
        validate_size_name(size)
        decision = await self.authorize(asset_id, tenant, token)
        content = self.resolve_content(decision.asset, size)

        try:
            data = await self.blob_store.get(content.handle)
        except BlobNotFound:
            logger.error(f"Blob {content.handle} of asset {content.asset_id} is missing")
            raise NotFound("Image file not found on storage")
        return decision, content, data

    async def describe(
        self,
        asset_id,
        tenant: Tenant | None = None,
        token: str | None = None,
    ) -> tuple[AccessDecision, dict]:
        """Info view of an asset; reading it counts as an access."""
        decision = await self.authorize(asset_id, tenant, token)
        asset = decision.asset

        variants = {}
        for size_name in size_names():
            content = self.resolve_content(asset, size_name)
            if content.is_fallback or content.served_size == ORIGINAL:
                width, height, byte_size = asset.width, asset.height, asset.file_size
            else:
                entry = asset.variant(content.served_size)
                width, height, byte_size = entry["width"], entry["height"], entry["byte_size"]
            variants[size_name] = {
                "served_size": content.served_size,
                "width": width,
                "height": height,
                "byte_size": byte_size,
                "mime_type": content.mime_type,
            }

        link_token = token if decision.grant == AccessGrant.SIGNED_TOKEN else decision.access_token
        return decision, {
            "variants": variants,
            "urls": self.url_builder.urls(asset.id, link_token),
            "public_urls": self.url_builder.urls(asset.id)
            if decision.grant == AccessGrant.PUBLIC
            else None,
        }
