import asyncio
from datetime import timedelta

from loguru import logger

from ..core.config import Settings
from ..models import Asset
from .asset_catalog import AssetCatalog
from .blob_store import BlobStore
from .domain import PurgeReport


class PurgeSweeper:
    """Deletes the blobs of soft-deleted assets once the purge delay passes.

    Deletion schedules a fast-path task per asset; the periodic sweep picks up
    anything those tasks missed, including assets deleted before a restart.
    """

    def __init__(
        self,
        catalog: AssetCatalog,
        blob_store: BlobStore,
        settings: Settings = None,
    ):
        from ..core.config import get_settings

        self.settings = settings or get_settings()
        self.catalog = catalog
        self.blob_store = blob_store
        self._loop_task: asyncio.Task | None = None
        self._scheduled: set[asyncio.Task] = set()

    @property
    def delay(self) -> timedelta:
        return timedelta(seconds=self.settings.PURGE_DELAY_SECONDS)

    async def purge_asset(self, asset: Asset) -> PurgeReport:
        report = PurgeReport(asset_id=str(asset.id), deleted=0)
        for handle in sorted(asset.blob_handles()):
            try:
                if await self.blob_store.delete(handle):
                    report.deleted += 1
            except Exception as e:
                logger.warning(f"Failed to purge blob {handle} of asset {asset.id}: {e}")
                report.failed.append(handle)

        await self.catalog.mark_purged(asset)
        logger.info(
            f"Purged asset {asset.id}: {report.deleted} blobs deleted, "
            f"{len(report.failed)} failed"
        )
        return report

    async def sweep_once(self) -> list[PurgeReport]:
        reports = []
        for asset in await self.catalog.pending_purge(self.delay):
            reports.append(await self.purge_asset(asset))
        return reports

    def schedule(self, asset_id) -> asyncio.Task:
        task = asyncio.create_task(self._purge_after_delay(str(asset_id)))
        self._scheduled.add(task)
        task.add_done_callback(self._scheduled.discard)
        return task

    async def _purge_after_delay(self, asset_id: str) -> None:
        await asyncio.sleep(self.settings.PURGE_DELAY_SECONDS)
        try:
            asset = await Asset.get_or_none(
                id=asset_id, is_deleted=True, purged_at__isnull=True
            )
            if asset is not None:
                await self.purge_asset(asset)
        except Exception as e:
            logger.error(f"Scheduled purge failed for asset {asset_id}: {e}")

    async def _run(self) -> None:
        while True:
            try:
                await self.sweep_once()
            except Exception as e:
                logger.error(f"Purge sweep failed: {e}")
            await asyncio.sleep(self.settings.PURGE_SWEEP_INTERVAL_SECONDS)

    def start(self) -> None:
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.create_task(self._run())
            logger.info("Purge sweeper started")

    async def stop(self) -> None:
        tasks = list(self._scheduled)
        if self._loop_task is not None:
            tasks.append(self._loop_task)
            self._loop_task = None

        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Purge sweeper stopped")
