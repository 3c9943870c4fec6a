import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from loguru import logger
from tortoise import timezone
from tortoise.expressions import F, Q

from ..core.errors import NotFound, ValidationError
from ..models import Asset, Tenant
from .domain import Page

SORT_ORDERINGS = {
    "newest": ("-created_at",),
    "oldest": ("created_at",),
    "name": ("original_filename", "-created_at"),
    "size": ("-file_size", "-created_at"),
    "accessed": ("-last_accessed_at", "-created_at"),
}

MAX_PAGE_SIZE = 100
MAX_TAGS = 20
MAX_TAG_LENGTH = 50


@dataclass
class AssetQuery:
    page: int = 1
    limit: int = 20
    entity_id: str | None = None
    entity_type: str | None = None
    product_id: str | None = None
    category: str | None = None
    tags: list[str] | None = None
    search: str | None = None
    sort: str = "newest"


def parse_asset_id(asset_id) -> uuid.UUID:
    if isinstance(asset_id, uuid.UUID):
        return asset_id
    try:
        return uuid.UUID(str(asset_id))
    except (TypeError, ValueError):
        raise NotFound("Image not found")


def normalize_tags(tags: list[str] | str | None) -> list[str]:
    """Accept a list or a comma-separated string; trim, drop empties, dedupe."""
    if tags is None:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")

    normalized: list[str] = []
    for tag in tags:
        cleaned = str(tag).strip()[:MAX_TAG_LENGTH]
        if cleaned and cleaned not in normalized:
            normalized.append(cleaned)
    return normalized[:MAX_TAGS]


def build_tag_index(tags: list[str]) -> str:
    if not tags:
        return ""
    return "," + ",".join(tag.lower() for tag in tags) + ","


class AssetCatalog:
    async def create(self, **fields) -> Asset:
        tags = normalize_tags(fields.pop("tags", None))
        return await Asset.create(tags=tags, tag_index=build_tag_index(tags), **fields)

    async def get_active(self, asset_id) -> Asset:
        asset = await Asset.get_or_none(id=parse_asset_id(asset_id), is_deleted=False)
        if asset is None:
            raise NotFound("Image not found")
        return asset

    async def get_owned(self, asset_id, tenant: Tenant) -> Asset:
        asset = await Asset.get_or_none(
            id=parse_asset_id(asset_id), tenant_id=tenant.id, is_deleted=False
        )
        if asset is None:
            raise NotFound("Image not found or access denied")
        return asset

    def _filtered(self, tenant: Tenant, query: AssetQuery):
        queryset = Asset.filter(tenant_id=tenant.id, is_deleted=False)

        if query.entity_id:
            queryset = queryset.filter(entity_id=query.entity_id)
        if query.entity_type:
            queryset = queryset.filter(entity_type=query.entity_type)
        if query.product_id:
            queryset = queryset.filter(product_id=query.product_id)
        if query.category:
            queryset = queryset.filter(category=query.category)
        for tag in normalize_tags(query.tags):
            queryset = queryset.filter(tag_index__contains=f",{tag.lower()},")
        if query.search and query.search.strip():
            term = query.search.strip()
            queryset = queryset.filter(
                Q(original_filename__icontains=term)
                | Q(title__icontains=term)
                | Q(alt__icontains=term)
                | Q(tag_index__contains=term.lower())
            )
        return queryset

    async def list_assets(self, tenant: Tenant, query: AssetQuery) -> Page:
        if query.sort not in SORT_ORDERINGS:
            raise ValidationError(
                f"Unknown sort order: {query.sort}",
                details=[f"Allowed: {', '.join(SORT_ORDERINGS)}"],
            )
        page = max(1, query.page)
        limit = min(max(1, query.limit), MAX_PAGE_SIZE)

        queryset = self._filtered(tenant, query)
        total = await queryset.count()
        items = (
            await queryset.order_by(*SORT_ORDERINGS[query.sort])
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return Page(items=items, page=page, limit=limit, total=total)

    async def categories(self, tenant: Tenant) -> list[str]:
        rows = (
            await Asset.filter(tenant_id=tenant.id, is_deleted=False)
            .distinct()
            .values_list("category", flat=True)
        )
        return sorted({row for row in rows if row})

    async def update_metadata(
        self,
        asset: Asset,
        *,
        category: str | None = None,
        tags: list[str] | str | None = None,
        alt: str | None = None,
        title: str | None = None,
        is_public: bool | None = None,
    ) -> Asset:
        update_fields = []
        if category is not None:
            asset.category = category.strip() or "uncategorized"
            update_fields.append("category")
        if tags is not None:
            asset.tags = normalize_tags(tags)
            asset.tag_index = build_tag_index(asset.tags)
            update_fields.extend(["tags", "tag_index"])
        if alt is not None:
            asset.alt = alt
            update_fields.append("alt")
        if title is not None:
            asset.title = title
            update_fields.append("title")
        if is_public is not None:
            asset.is_public = is_public
            update_fields.append("is_public")

        if update_fields:
            update_fields.append("updated_at")
            await asset.save(update_fields=update_fields)
            logger.info(f"Updated metadata of asset {asset.id}: {update_fields}")
        return asset

    async def replace_content(self, asset: Asset, **content) -> Asset:
        """Archive the current blobs as a version and point at new content."""
        archived = {
            "filename": asset.filename,
            "storage_handle": asset.storage_handle,
            "variants": asset.variants,
            "archived_at": timezone.now().isoformat(),
        }
        versions = [*(asset.versions or []), archived]

        # Only a live row is updated; counters and delete flags are left alone
        updated = await Asset.filter(id=asset.id, is_deleted=False).update(
            versions=versions, updated_at=timezone.now(), **content
        )
        if not updated:
            raise NotFound("Image not found")
        await asset.refresh_from_db()
        return asset

    async def record_access(self, asset: Asset) -> None:
        now = timezone.now()
        await Asset.filter(id=asset.id).update(
            access_count=F("access_count") + 1, last_accessed_at=now
        )
        await asset.refresh_from_db(fields=["access_count", "last_accessed_at"])

    async def soft_delete(self, asset: Asset) -> Asset:
        asset.is_deleted = True
        asset.deleted_at = timezone.now()
        await asset.save(update_fields=["is_deleted", "deleted_at", "updated_at"])
        return asset

    async def pending_purge(self, older_than: timedelta, limit: int = 100) -> list[Asset]:
        cutoff = timezone.now() - older_than
        return (
            await Asset.filter(
                is_deleted=True, purged_at__isnull=True, deleted_at__lte=cutoff
            )
            .order_by("deleted_at")
            .limit(limit)
        )

    async def mark_purged(self, asset: Asset, when: datetime | None = None) -> bool:
        updated = await Asset.filter(id=asset.id, purged_at__isnull=True).update(
            purged_at=when or timezone.now()
        )
        return bool(updated)
