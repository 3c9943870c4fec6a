import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, Mock, patch

import pytest
from image_variant_engine import VariantEngine

from src.image_asset_service.app.core.errors import (
    InternalError,
    NotFound,
    QuotaExceeded,
    ValidationError,
)
from src.image_asset_service.app.models import Asset, Tenant
from src.image_asset_service.app.services.domain import (
    AssetClassification,
    UploadRequest,
    UploadStage,
)


def stored_files(settings) -> list[Path]:
    return [path for path in Path(settings.absolute_storage_dir).rglob("*") if path.is_file()]


@pytest.fixture
async def pipeline(db, test_container):
    yield test_container.ingestion_pipeline
    await test_container.purge_sweeper.stop()


class TestSingleUpload:
    async def test_product_upload_is_public(
        self, pipeline, tenant, photo_upload, test_container
    ):
        outcome = await pipeline.upload(
            tenant, photo_upload, AssetClassification(category="product", tags="red, sale")
        )
        asset = outcome.asset

        assert outcome.stage == UploadStage.TOKEN_ISSUED
        assert asset.is_public is True
        assert asset.tags == ["red", "sale"]
        assert outcome.public_urls["original"] == f"/api/images/{asset.id}"
        assert outcome.public_urls["thumbnail"] == f"/api/images/{asset.id}?size=thumbnail"
        assert f"token={outcome.access_token}" in outcome.urls["thumbnail"]
        assert outcome.access_url == outcome.public_urls["original"]

        claims = test_container.token_service.verify_asset_token(outcome.access_token)
        assert claims.asset_id == str(asset.id)
        assert claims.tenant_id == str(tenant.id)

    async def test_personal_upload_is_private(self, pipeline, tenant, photo_upload):
        outcome = await pipeline.upload(
            tenant, photo_upload, AssetClassification(category="personal")
        )

        assert outcome.asset.is_public is False
        assert outcome.public_urls is None
        assert "token=" in outcome.access_url

    async def test_public_access_toggle_only_withholds_public_urls(
        self, pipeline, tenant, photo_upload
    ):
        tenant.enable_public_access = False
        await tenant.save()

        outcome = await pipeline.upload(
            tenant, photo_upload, AssetClassification(category="product")
        )

        assert outcome.asset.is_public is True
        assert outcome.public_urls is None
        assert "token=" in outcome.access_url

    async def test_asset_record_and_blobs(self, pipeline, tenant, photo_upload, test_container):
        outcome = await pipeline.upload(tenant, photo_upload)
        asset = await Asset.get(id=outcome.asset.id)

        assert asset.original_filename == "product photo.jpg"
        assert asset.filename.endswith("_product_photo.jpg")
        assert asset.mime_type == "image/jpeg"
        assert asset.file_size == len(photo_upload.file_data)
        assert (asset.width, asset.height) == (800, 600)
        assert asset.category == "uncategorized"
        assert set(asset.variants) == {"thumbnail", "small", "medium", "large", "original"}

        blob_store = test_container.blob_store
        for handle in asset.blob_handles():
            assert await blob_store.exists(handle)
        assert await blob_store.get(asset.storage_handle) == photo_upload.file_data

    async def test_usage_is_recorded_once(self, pipeline, tenant, photo_upload, small_jpeg):
        await pipeline.upload(tenant, photo_upload)
        await pipeline.upload(tenant, UploadRequest(small_jpeg, "tiny.jpg", "image/jpeg"))

        stored = await Tenant.get(id=tenant.id)
        assert stored.total_images == 2
        assert stored.current_month_uploads == 2
        assert stored.total_storage_used == len(photo_upload.file_data) + len(small_jpeg)

    async def test_tenant_quality_setting_is_used(self, pipeline, tenant, photo_upload, test_container):
        tenant.default_image_quality = 60
        await tenant.save()

        with patch.object(
            test_container.variant_generator,
            "generate_variants",
            wraps=test_container.variant_generator.generate_variants,
        ) as generate:
            await pipeline.upload(tenant, photo_upload)

        assert generate.call_args.args[5] == 60


class TestRejections:
    async def test_invalid_file_writes_nothing(self, pipeline, tenant, gif_bytes, test_settings):
        with pytest.raises(ValidationError):
            await pipeline.upload(tenant, UploadRequest(gif_bytes, "a.png", "image/png"))

        assert stored_files(test_settings) == []
        assert await Asset.all().count() == 0

    async def test_quota_rejection_writes_nothing(
        self, pipeline, tenant, photo_upload, test_settings
    ):
        await Tenant.filter(id=tenant.id).update(
            max_images_per_month=1, current_month_uploads=1
        )

        with pytest.raises(QuotaExceeded) as exc_info:
            await pipeline.upload(tenant, photo_upload)

        error = exc_info.value
        assert error.status_code == 413
        assert error.details == ["Monthly upload limit exceeded (1 images)"]
        assert error.extra["limits"]["max_images_per_month"] == 1
        assert stored_files(test_settings) == []

    async def test_catalog_failure_removes_blobs_and_skips_ledger(
        self, pipeline, tenant, photo_upload, test_container, test_settings
    ):
        with patch.object(
            test_container.catalog, "create", AsyncMock(side_effect=RuntimeError("db down"))
        ):
            with pytest.raises(InternalError):
                await pipeline.upload(tenant, photo_upload)

        assert stored_files(test_settings) == []
        assert (await Tenant.get(id=tenant.id)).total_images == 0

    async def test_cancellation_removes_blobs_and_skips_ledger(
        self, pipeline, tenant, photo_upload, test_container, test_settings
    ):
        with patch.object(
            test_container.catalog,
            "create",
            AsyncMock(side_effect=asyncio.CancelledError()),
        ):
            with pytest.raises(asyncio.CancelledError):
                await pipeline.upload(tenant, photo_upload)

        assert stored_files(test_settings) == []
        assert await Asset.all().count() == 0
        assert (await Tenant.get(id=tenant.id)).total_images == 0


class TestDegradedVariants:
    async def test_engine_failure_still_persists_the_asset(
        self, pipeline, tenant, photo_upload, test_container
    ):
        engine = Mock(spec=VariantEngine)
        engine.render.side_effect = MemoryError("too big")
        with patch.object(test_container.variant_generator, "engine", engine):
            outcome = await pipeline.upload(tenant, photo_upload)

        assert outcome.variants_skipped is True
        assert list(outcome.asset.variants) == ["original"]
        assert (await Tenant.get(id=tenant.id)).total_images == 1


class TestBulkUpload:
    async def test_per_file_failures_do_not_abort_siblings(
        self, pipeline, tenant, photo_upload, gif_bytes, transparent_png
    ):
        result = await pipeline.upload_bulk(
            tenant,
            [
                photo_upload,
                UploadRequest(gif_bytes, "fake.png", "image/png"),
                UploadRequest(transparent_png, "logo.png", "image/png"),
            ],
            AssetClassification(entity_type="product", entity_id="sku-1"),
        )

        assert result.summary == {"total": 3, "successful": 2, "failed": 1}
        assert result.errors[0].filename == "fake.png"
        assert result.errors[0].error == "Invalid image format detected."
        assert all(outcome.asset.is_public for outcome in result.uploaded)
        assert (await Tenant.get(id=tenant.id)).total_images == 2

    async def test_too_many_files(self, pipeline, tenant, small_jpeg):
        requests = [UploadRequest(small_jpeg, f"{i}.jpg", "image/jpeg") for i in range(11)]

        with pytest.raises(ValidationError, match="Maximum 10 files"):
            await pipeline.upload_bulk(tenant, requests)

    async def test_empty_batch(self, pipeline, tenant):
        with pytest.raises(ValidationError, match="No files"):
            await pipeline.upload_bulk(tenant, [])

    async def test_batch_total_is_checked_against_storage(
        self, pipeline, tenant, photo_upload, test_settings
    ):
        await Tenant.filter(id=tenant.id).update(
            max_storage_size=len(photo_upload.file_data) + 10
        )

        with pytest.raises(QuotaExceeded):
            await pipeline.upload_bulk(tenant, [photo_upload, photo_upload])

        assert stored_files(test_settings) == []

    async def test_each_file_is_checked_against_the_size_limit(
        self, pipeline, tenant, photo_upload, small_jpeg
    ):
        await Tenant.filter(id=tenant.id).update(max_file_size=len(small_jpeg) + 1)

        result = await pipeline.upload_bulk(
            tenant,
            [UploadRequest(small_jpeg, "tiny.jpg", "image/jpeg"), photo_upload],
        )

        assert [outcome.asset.original_filename for outcome in result.uploaded] == ["tiny.jpg"]
        assert [error.filename for error in result.errors] == ["product photo.jpg"]


class TestReplaceAndDelete:
    async def test_replace_keeps_id_and_archives_previous_version(
        self, pipeline, tenant, photo_upload, transparent_png, test_container
    ):
        original = (await pipeline.upload(tenant, photo_upload)).asset
        old_handles = original.blob_handles()

        outcome = await pipeline.replace(
            tenant, str(original.id), UploadRequest(transparent_png, "logo.png", "image/png")
        )
        replaced = await Asset.get(id=original.id)

        assert outcome.asset.id == original.id
        assert replaced.mime_type == "image/png"
        assert replaced.original_filename == "logo.png"
        assert replaced.storage_handle != original.storage_handle
        assert len(replaced.versions) == 1
        assert replaced.versions[0]["storage_handle"] == original.storage_handle
        assert old_handles < replaced.blob_handles()
        for handle in old_handles:
            assert await test_container.blob_store.exists(handle)
        assert (await Tenant.get(id=tenant.id)).total_images == 1

    async def test_replace_requires_ownership(
        self, pipeline, tenant, other_tenant, photo_upload, small_jpeg
    ):
        asset = (await pipeline.upload(tenant, photo_upload)).asset

        with pytest.raises(NotFound):
            await pipeline.replace(
                other_tenant, asset.id, UploadRequest(small_jpeg, "x.jpg", "image/jpeg")
            )

    async def test_delete_is_soft(self, pipeline, tenant, photo_upload, test_container):
        asset = (await pipeline.upload(tenant, photo_upload)).asset

        await pipeline.delete(tenant, asset.id)

        stored = await Asset.get(id=asset.id)
        assert stored.is_deleted is True
        assert stored.deleted_at is not None
        with pytest.raises(NotFound):
            await test_container.catalog.get_active(asset.id)
        with pytest.raises(NotFound):
            await pipeline.delete(tenant, asset.id)

    async def test_delete_during_replace_wins(
        self, pipeline, tenant, photo_upload, transparent_png, test_container
    ):
        asset = (await pipeline.upload(tenant, photo_upload)).asset
        generator = test_container.variant_generator
        original_generate = generator.generate_variants
        rendering = asyncio.Event()
        release = asyncio.Event()

        async def slow_generate(*args, **kwargs):
            rendering.set()
            await release.wait()
            return await original_generate(*args, **kwargs)

        with patch.object(generator, "generate_variants", side_effect=slow_generate):
            task = asyncio.create_task(
                pipeline.replace(
                    tenant, asset.id, UploadRequest(transparent_png, "logo.png", "image/png")
                )
            )
            await asyncio.wait_for(rendering.wait(), timeout=5)
            await test_container.catalog.record_access(asset)
            await pipeline.delete(tenant, asset.id)
            release.set()

            with pytest.raises(NotFound):
                await task

        stored = await Asset.get(id=asset.id)
        assert stored.is_deleted is True
        assert stored.access_count == 1
        assert not stored.versions
        assert stored.storage_handle == asset.storage_handle
        assert stored.mime_type == "image/jpeg"
