import asyncio
import os
import uuid
from dataclasses import asdict

from image_variant_engine import ORIGINAL
from loguru import logger

from ..core.config import Settings
from ..core.errors import InternalError, QuotaExceeded, ServiceError, ValidationError
from ..core.security import TokenService
from ..models import Asset, Tenant
from .asset_catalog import AssetCatalog
from .asset_urls import AssetUrlBuilder
from .blob_store import BlobStore, build_original_key
from .domain import (
    AdmissionDecision,
    AssetClassification,
    BulkUploadError,
    BulkUploadResult,
    UploadOutcome,
    UploadRequest,
    UploadStage,
)
from .purge_sweeper import PurgeSweeper
from .tenant_ledger import TenantLedger
from .upload_validation import UploadValidator, ValidatedUpload
from .variant_generation import VariantGenerationService
from .visibility import derive_visibility


class IngestionPipeline:
    """Runs an upload through validation, admission, storage and persistence.

    Blobs written before the asset row exists are deleted again if any later
    step fails or the request is cancelled. Usage is recorded exactly once, after
    the row is persisted.
    """

    def __init__(
        self,
        blob_store: BlobStore,
        variant_generator: VariantGenerationService,
        validator: UploadValidator,
        ledger: TenantLedger,
        catalog: AssetCatalog,
        token_service: TokenService,
        url_builder: AssetUrlBuilder,
        purge_sweeper: PurgeSweeper | None = None,
        settings: Settings = None,
    ):
        from ..core.config import get_settings

        self.settings = settings or get_settings()
        self.blob_store = blob_store
        self.variant_generator = variant_generator
        self.validator = validator
        self.ledger = ledger
        self.catalog = catalog
        self.token_service = token_service
        self.url_builder = url_builder
        self.purge_sweeper = purge_sweeper

    async def _validate(self, tenant: Tenant, request: UploadRequest) -> ValidatedUpload:
        return await asyncio.to_thread(
            self.validator.validate, request, tenant.allowed_formats
        )

    def _quality(self, tenant: Tenant) -> int:
        return tenant.default_image_quality or self.settings.DEFAULT_IMAGE_QUALITY

    @staticmethod
    def _check_file_size(tenant: Tenant, byte_size: int) -> None:
        if byte_size > tenant.max_file_size:
            raise QuotaExceeded(
                "Upload limit exceeded",
                details=[
                    f"File size exceeds limit ({tenant.max_file_size // (1024 * 1024)}MB)"
                ],
                extra={"limits": tenant.limits()},
            )

    @staticmethod
    def _quota_extra(tenant: Tenant, decision: AdmissionDecision) -> dict:
        return {
            "reasons": asdict(decision.reasons),
            "remaining": asdict(decision.remaining),
            "limits": tenant.limits(),
        }

    async def _admit(self, tenant: Tenant, byte_size: int) -> None:
        decision = await self.ledger.can_upload(tenant, byte_size)
        if not decision.allowed:
            logger.info(f"Upload rejected for tenant {tenant.id}: quota exceeded")
            raise QuotaExceeded(
                "Upload limit exceeded",
                details=decision.failure_messages(tenant.limits()),
                extra=self._quota_extra(tenant, decision),
            )

    async def _store_content(
        self, tenant: Tenant, asset_id: str, validated: ValidatedUpload, written: list[str]
    ) -> dict:
        revision = uuid.uuid4().hex[:12]
        stem = os.path.splitext(validated.sanitized_name)[0]
        filename = f"{uuid.uuid4()}_{stem}{validated.extension}"

        original_handle = await self.blob_store.put(
            validated.data,
            build_original_key(asset_id, revision, filename),
            validated.mime_type,
        )
        written.append(original_handle)

        manifest, skipped = await self.variant_generator.generate_variants(
            validated.data,
            asset_id,
            revision,
            original_handle,
            validated.descriptor,
            self._quality(tenant),
        )
        written.extend(
            entry["handle"] for name, entry in manifest.items() if name != ORIGINAL
        )

        descriptor = validated.descriptor
        return {
            "filename": filename,
            "storage_handle": original_handle,
            "mime_type": validated.mime_type,
            "file_size": validated.byte_size,
            "width": descriptor.width,
            "height": descriptor.height,
            "format": descriptor.format,
            "has_alpha": descriptor.has_alpha,
            "variants": manifest,
            "_skipped": skipped,
        }

    async def _ingest(
        self,
        tenant: Tenant,
        request: UploadRequest,
        classification: AssetClassification,
        admit: bool = True,
    ) -> UploadOutcome:
        stage = UploadStage.RECEIVED
        validated = await self._validate(tenant, request)
        stage = UploadStage.VALIDATED

        async with self.ledger.admission_guard(tenant):
            if admit:
                await self._admit(tenant, validated.byte_size)
            else:
                self._check_file_size(tenant, validated.byte_size)
            stage = UploadStage.ADMITTED

            asset_id = str(uuid.uuid4())
            written: list[str] = []
            try:
                content = await self._store_content(tenant, asset_id, validated, written)
                skipped = content.pop("_skipped")
                stage = UploadStage.VARIANTS_SKIPPED if skipped else UploadStage.VARIANTS_BUILT

                is_public = derive_visibility(
                    classification.category,
                    classification.entity_type,
                    classification.product_id,
                )
                asset = await self.catalog.create(
                    id=asset_id,
                    tenant_id=tenant.id,
                    original_filename=request.original_filename,
                    category=(classification.category or "").strip() or "uncategorized",
                    tags=classification.tags,
                    alt=classification.alt or "",
                    title=classification.title or "",
                    entity_id=classification.entity_id,
                    entity_type=classification.entity_type,
                    product_id=classification.product_id,
                    is_public=is_public,
                    **content,
                )
                stage = UploadStage.PERSISTED
            except (ServiceError, asyncio.CancelledError):
                logger.warning(
                    f"Upload of {request.original_filename} aborted after stage {stage.value}"
                )
                await self.variant_generator.discard(written)
                raise
            except Exception as e:
                logger.error(
                    f"Upload of {request.original_filename} failed after stage "
                    f"{stage.value}: {e}"
                )
                await self.variant_generator.discard(written)
                raise InternalError("Failed to store image") from e

            await self.ledger.record_upload(tenant, validated.byte_size)

        outcome = self._outcome(tenant, asset, skipped)
        logger.info(
            f"Uploaded asset {asset.id} for tenant {tenant.id} "
            f"({asset.file_size} bytes, public={asset.is_public})"
        )
        return outcome

    def _outcome(self, tenant: Tenant, asset: Asset, skipped: bool) -> UploadOutcome:
        token = self.token_service.issue_asset_token(str(asset.id), str(asset.tenant_id))
        served_publicly = asset.is_public and tenant.enable_public_access
        return UploadOutcome(
            asset=asset,
            access_token=token,
            urls=self.url_builder.urls(asset.id, token),
            public_urls=self.url_builder.urls(asset.id) if served_publicly else None,
            stage=UploadStage.TOKEN_ISSUED,
            variants_skipped=skipped,
        )

    async def upload(
        self,
        tenant: Tenant,
        request: UploadRequest,
        classification: AssetClassification | None = None,
    ) -> UploadOutcome:
        return await self._ingest(tenant, request, classification or AssetClassification())

    async def upload_bulk(
        self,
        tenant: Tenant,
        requests: list[UploadRequest],
        classification: AssetClassification | None = None,
    ) -> BulkUploadResult:
        """Admit the batch once against its total size, then ingest each file.

        One file failing does not affect the others; each failure is reported
        by filename.
        """
        if not requests:
            raise ValidationError("No files provided")
        if len(requests) > self.settings.MAX_BULK_FILES:
            raise ValidationError(
                f"Too many files. Maximum {self.settings.MAX_BULK_FILES} files allowed."
            )

        classification = classification or AssetClassification()
        total_size = sum(request.file_size_bytes for request in requests)
        decision = await self.ledger.can_upload(tenant, total_size)
        if not (decision.reasons.within_monthly_count and decision.reasons.within_storage_budget):
            raise QuotaExceeded(
                "Upload limit exceeded",
                details=[
                    message
                    for message in decision.failure_messages(tenant.limits())
                    if not message.startswith("File size")
                ],
                extra=self._quota_extra(tenant, decision),
            )

        result = BulkUploadResult()
        for request in requests:
            try:
                outcome = await self._ingest(tenant, request, classification, admit=False)
                result.uploaded.append(outcome)
            except ServiceError as e:
                result.errors.append(BulkUploadError(request.original_filename, e.message))
            except Exception as e:
                logger.error(f"Bulk upload of {request.original_filename} failed: {e}")
                result.errors.append(
                    BulkUploadError(request.original_filename, "Failed to upload image")
                )

        logger.info(f"Bulk upload for tenant {tenant.id}: {result.summary}")
        return result

    async def replace(self, tenant: Tenant, asset_id, request: UploadRequest) -> UploadOutcome:
        """Swap an asset's content in place, archiving the previous revision."""
        asset = await self.catalog.get_owned(asset_id, tenant)
        validated = await self._validate(tenant, request)
        self._check_file_size(tenant, validated.byte_size)

        written: list[str] = []
        try:
            content = await self._store_content(tenant, str(asset.id), validated, written)
            skipped = content.pop("_skipped")
            asset = await self.catalog.replace_content(
                asset, original_filename=request.original_filename, **content
            )
        except (ServiceError, asyncio.CancelledError):
            await self.variant_generator.discard(written)
            raise
        except Exception as e:
            logger.error(f"Replacing asset {asset.id} failed: {e}")
            await self.variant_generator.discard(written)
            raise InternalError("Failed to store image") from e

        logger.info(f"Replaced content of asset {asset.id} ({len(asset.versions)} versions)")
        return self._outcome(tenant, asset, skipped)

    async def delete(self, tenant: Tenant, asset_id) -> Asset:
        asset = await self.catalog.get_owned(asset_id, tenant)
        await self.catalog.soft_delete(asset)
        if self.purge_sweeper is not None:
            self.purge_sweeper.schedule(asset.id)
        logger.info(f"Soft-deleted asset {asset.id} of tenant {tenant.id}")
        return asset
