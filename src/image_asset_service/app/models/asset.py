from tortoise import fields
from tortoise.models import Model


class Asset(Model):
    id = fields.UUIDField(primary_key=True)
    tenant = fields.ForeignKeyField(
        "models.Tenant", related_name="assets", on_delete=fields.RESTRICT
    )

    original_filename = fields.CharField(
        max_length=255, description="Filename as uploaded by the client"
    )
    filename = fields.CharField(
        max_length=255, description="Generated, sanitized storage filename"
    )
    storage_handle = fields.CharField(
        max_length=500, description="Blob store handle of the original bytes"
    )
    mime_type = fields.CharField(max_length=32)
    file_size = fields.BigIntField(description="File size in bytes")
    width = fields.IntField(null=True, description="Image width in pixels")
    height = fields.IntField(null=True, description="Image height in pixels")
    format = fields.CharField(max_length=10, null=True, description="Sniffed format")
    has_alpha = fields.BooleanField(default=False)

    category = fields.CharField(max_length=100, default="uncategorized", index=True)
    tags = fields.JSONField(default=list)
    # ",tag1,tag2," lower-cased mirror of ``tags`` for filtering
    tag_index = fields.TextField(default="")
    alt = fields.CharField(max_length=500, default="")
    title = fields.CharField(max_length=255, default="")
    entity_id = fields.CharField(max_length=100, null=True, index=True)
    entity_type = fields.CharField(max_length=50, null=True, index=True)
    product_id = fields.CharField(max_length=100, null=True, index=True)

    is_public = fields.BooleanField(default=False, index=True)

    # {size_name: {"handle", "byte_size", "width", "height", "format"}}
    variants = fields.JSONField(default=dict)
    # [{"filename", "storage_handle", "variants", "archived_at"}], append-only
    versions = fields.JSONField(default=list)

    access_count = fields.IntField(default=0)
    last_accessed_at = fields.DatetimeField(null=True)

    is_deleted = fields.BooleanField(default=False, index=True)
    deleted_at = fields.DatetimeField(null=True)
    purged_at = fields.DatetimeField(null=True)

    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "assets"

    def variant(self, size_name: str) -> dict | None:
        return (self.variants or {}).get(size_name)

    def blob_handles(self) -> set[str]:
        """Every blob this asset references, across all archived versions."""
        handles = {self.storage_handle}
        manifests = [self.variants or {}]
        for version in self.versions or []:
            if version.get("storage_handle"):
                handles.add(version["storage_handle"])
            manifests.append(version.get("variants") or {})

        for manifest in manifests:
            for entry in manifest.values():
                if entry and entry.get("handle"):
                    handles.add(entry["handle"])
        return handles

    def __str__(self) -> str:
        return f"<Asset(id={self.id}, filename='{self.filename}', size={self.file_size} bytes)>"
