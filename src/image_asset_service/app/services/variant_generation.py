import asyncio
from concurrent.futures import ThreadPoolExecutor
from functools import partial

from image_variant_engine import ORIGINAL, ImageDescriptor, VariantEngine
from image_variant_engine import variant_engine as default_engine
from loguru import logger

from ..core.config import Settings
from .blob_store import BlobStore, build_variant_key


class VariantGenerationService:
    """Renders resized variants on a bounded worker pool and stores them.

    Generation is best-effort: a failure leaves the manifest with only the
    passthrough ``original`` entry and reports the variants as skipped, so the
    upload itself can still succeed.
    """

    def __init__(
        self,
        blob_store: BlobStore | None = None,
        engine: VariantEngine | None = None,
        settings: Settings = None,
        executor: ThreadPoolExecutor | None = None,
    ):
        from ..core.config import get_settings

        self.settings = settings or get_settings()

        if blob_store is None:
            raise ValueError("BlobStore must be provided via dependency injection")

        self.blob_store = blob_store
        self.engine = engine or default_engine
        self._executor = executor or ThreadPoolExecutor(
            max_workers=self.settings.VARIANT_WORKERS,
            thread_name_prefix="variant-worker",
        )

    @staticmethod
    def original_entry(
        handle: str, byte_size: int, descriptor: ImageDescriptor
    ) -> dict:
        return {
            "handle": handle,
            "byte_size": byte_size,
            "width": None,
            "height": None,
            "format": descriptor.format,
        }

    async def generate_variants(
        self,
        source: bytes,
        asset_id: str,
        revision: str,
        original_handle: str,
        descriptor: ImageDescriptor,
        quality: int | None = None,
    ) -> tuple[dict, bool]:
        """Return ``(manifest, skipped)`` for one revision of an asset."""
        quality = quality or self.settings.DEFAULT_IMAGE_QUALITY
        manifest = {ORIGINAL: self.original_entry(original_handle, len(source), descriptor)}

        loop = asyncio.get_running_loop()
        try:
            rendered = await loop.run_in_executor(
                self._executor, partial(self.engine.render, source, quality)
            )
        except Exception as e:
            logger.warning(f"Variant rendering failed for asset {asset_id}: {e}")
            return manifest, True

        written: list[str] = []
        try:
            for size_name, variant in rendered.items():
                key = build_variant_key(asset_id, revision, size_name, variant.format)
                handle = await self.blob_store.put(variant.data, key, variant.mime_type)
                written.append(handle)
                manifest[size_name] = {
                    "handle": handle,
                    "byte_size": variant.byte_size,
                    "width": variant.width,
                    "height": variant.height,
                    "format": variant.format,
                }
        except asyncio.CancelledError:
            await self.discard(written)
            raise
        except Exception as e:
            logger.warning(f"Storing variants failed for asset {asset_id}: {e}")
            await self.discard(written)
            return {ORIGINAL: manifest[ORIGINAL]}, True

        logger.info(
            f"Generated {len(written)} variants for asset {asset_id} (revision {revision})"
        )
        return manifest, False

    async def discard(self, handles) -> None:
        for handle in handles:
            try:
                await self.blob_store.delete(handle)
            except Exception as cleanup_error:
                logger.warning(f"Failed to delete blob {handle}: {cleanup_error}")

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
