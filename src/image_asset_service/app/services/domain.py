from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..models import Asset


class UploadStage(str, Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    ADMITTED = "admitted"
    VARIANTS_BUILT = "variants_built"
    VARIANTS_SKIPPED = "variants_skipped"
    PERSISTED = "persisted"
    TOKEN_ISSUED = "token_issued"


@dataclass(frozen=True)
class AdmissionReasons:
    within_monthly_count: bool
    within_storage_budget: bool
    within_per_file_size_limit: bool


@dataclass(frozen=True)
class RemainingBudget:
    monthly_remaining: int
    storage_remaining: int
    max_file_size: int


@dataclass(frozen=True)
class AdmissionDecision:
    allowed: bool
    reasons: AdmissionReasons
    remaining: RemainingBudget

    def failure_messages(self, limits: dict) -> list[str]:
        messages = []
        if not self.reasons.within_monthly_count:
            messages.append(
                f"Monthly upload limit exceeded ({limits['max_images_per_month']} images)"
            )
        if not self.reasons.within_storage_budget:
            messages.append(
                f"Storage limit exceeded ({limits['max_storage_size'] // (1024 * 1024)}MB)"
            )
        if not self.reasons.within_per_file_size_limit:
            messages.append(
                f"File size exceeds limit ({limits['max_file_size'] // (1024 * 1024)}MB)"
            )
        return messages


@dataclass
class UploadRequest:
    file_data: bytes
    original_filename: str
    content_type: str | None = None

    @property
    def file_size_bytes(self) -> int:
        return len(self.file_data)


@dataclass
class AssetClassification:
    category: str | None = None
    tags: list[str] | str | None = None
    alt: str | None = None
    title: str | None = None
    entity_id: str | None = None
    entity_type: str | None = None
    product_id: str | None = None


@dataclass
class UploadOutcome:
    asset: Asset
    access_token: str
    urls: dict[str, str]
    public_urls: dict[str, str] | None
    stage: UploadStage = UploadStage.TOKEN_ISSUED
    variants_skipped: bool = False

    @property
    def access_url(self) -> str:
        if self.public_urls:
            return self.public_urls["original"]
        return self.urls["original"]


@dataclass
class BulkUploadError:
    filename: str
    error: str


@dataclass
class BulkUploadResult:
    uploaded: list[UploadOutcome] = field(default_factory=list)
    errors: list[BulkUploadError] = field(default_factory=list)

    @property
    def summary(self) -> dict[str, int]:
        return {
            "total": len(self.uploaded) + len(self.errors),
            "successful": len(self.uploaded),
            "failed": len(self.errors),
        }


class AccessGrant(str, Enum):
    PUBLIC = "public"
    SIGNED_TOKEN = "signed_token"
    OWNER = "owner"


@dataclass
class AccessDecision:
    asset: Asset
    grant: AccessGrant
    # Minted for owner reads of private assets
    access_token: str | None = None


@dataclass(frozen=True)
class ResolvedContent:
    asset_id: str
    requested_size: str
    served_size: str
    handle: str
    mime_type: str
    etag: str

    @property
    def is_fallback(self) -> bool:
        return self.requested_size != self.served_size


@dataclass
class PurgeReport:
    asset_id: str
    deleted: int
    failed: list[str] = field(default_factory=list)


@dataclass
class Page:
    items: list[Any]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return (self.total + self.limit - 1) // self.limit

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1
