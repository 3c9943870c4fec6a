from tortoise import fields
from tortoise.models import Model

from ..core.config import Plan


def _default_formats() -> list[str]:
    return ["jpeg", "png", "webp"]


class Tenant(Model):
    """A registered application owning assets and a usage ledger.

    Usage counters only grow, except ``current_month_uploads`` which the
    ledger zeroes at a calendar-month boundary. Tenants are never hard-deleted;
    ``is_active`` is the only off switch.
    """

    id = fields.UUIDField(primary_key=True)
    name = fields.CharField(max_length=50, unique=True)
    description = fields.CharField(max_length=200, null=True)
    domain = fields.CharField(max_length=100)
    allowed_origins = fields.JSONField(default=list)

    api_key = fields.CharField(max_length=64, unique=True)
    api_secret_hash = fields.CharField(
        max_length=255, description="PBKDF2 hash; the plaintext is never stored"
    )
    is_active = fields.BooleanField(default=True)

    plan = fields.CharEnumField(Plan, default=Plan.FREE)
    max_file_size = fields.BigIntField(description="Per-file limit in bytes")
    max_images_per_month = fields.IntField()
    max_storage_size = fields.BigIntField(description="Total storage limit in bytes")

    total_images = fields.IntField(default=0)
    total_storage_used = fields.BigIntField(default=0)
    current_month_uploads = fields.IntField(default=0)
    last_reset_date = fields.DatetimeField()

    enable_public_access = fields.BooleanField(default=True)
    default_image_quality = fields.IntField(default=85)
    allowed_formats = fields.JSONField(default=_default_formats)

    # [{"jti": str, "expires_at": int}], newest last
    refresh_tokens = fields.JSONField(default=list)

    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    assets = fields.ReverseRelation["Asset"]

    class Meta:
        table = "tenants"

    def limits(self) -> dict:
        return {
            "max_file_size": self.max_file_size,
            "max_images_per_month": self.max_images_per_month,
            "max_storage_size": self.max_storage_size,
        }

    def usage(self) -> dict:
        return {
            "total_images": self.total_images,
            "total_storage_used": self.total_storage_used,
            "current_month_uploads": self.current_month_uploads,
            "last_reset_date": self.last_reset_date,
        }

    def __str__(self) -> str:
        return f"<Tenant(id={self.id}, name='{self.name}', plan={self.plan.value})>"
