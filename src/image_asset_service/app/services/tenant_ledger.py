import asyncio
import contextlib
import weakref
from datetime import datetime
from typing import Callable

from loguru import logger
from tortoise import timezone
from tortoise.expressions import F

from ..core.config import Settings
from ..models import Tenant
from .domain import AdmissionDecision, AdmissionReasons, RemainingBudget

_USAGE_FIELDS = [
    "total_images",
    "total_storage_used",
    "current_month_uploads",
    "last_reset_date",
]


class TenantLedger:
    """Per-tenant quota bookkeeping: admission checks and usage counters.

    Counters are always moved with ``F()`` expressions so concurrent uploads
    never lose an increment. Admission itself is advisory unless
    ``STRICT_QUOTA_ENFORCEMENT`` serializes each tenant's uploads.
    """

    def __init__(
        self,
        settings: Settings = None,
        clock: Callable[[], datetime] = timezone.now,
    ):
        from ..core.config import get_settings

        self.settings = settings or get_settings()
        self._clock = clock
        # Entries disappear once no admission holds or awaits the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    async def reset_monthly_usage(self, tenant: Tenant) -> bool:
        now = self._clock()
        last_reset = tenant.last_reset_date
        if last_reset and (last_reset.year, last_reset.month) == (now.year, now.month):
            return False

        # Conditional on the stored date so only one caller zeroes the month
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        updated = await Tenant.filter(
            id=tenant.id, last_reset_date__lt=month_start
        ).update(current_month_uploads=0, last_reset_date=now)
        if updated:
            logger.info(f"Reset monthly upload counter for tenant {tenant.id}")
        await tenant.refresh_from_db(fields=_USAGE_FIELDS)
        return bool(updated)

    async def can_upload(
        self, tenant: Tenant, candidate_byte_size: int = 0
    ) -> AdmissionDecision:
        # Reload limits as well as usage counters
        await tenant.refresh_from_db()
        await self.reset_monthly_usage(tenant)

        size = max(0, candidate_byte_size)
        reasons = AdmissionReasons(
            within_monthly_count=tenant.current_month_uploads < tenant.max_images_per_month,
            within_storage_budget=tenant.total_storage_used + size <= tenant.max_storage_size,
            within_per_file_size_limit=size <= tenant.max_file_size,
        )
        remaining = RemainingBudget(
            monthly_remaining=max(
                0, tenant.max_images_per_month - tenant.current_month_uploads
            ),
            storage_remaining=max(0, tenant.max_storage_size - tenant.total_storage_used),
            max_file_size=tenant.max_file_size,
        )
        allowed = (
            reasons.within_monthly_count
            and reasons.within_storage_budget
            and reasons.within_per_file_size_limit
        )
        return AdmissionDecision(allowed=allowed, reasons=reasons, remaining=remaining)

    async def record_upload(self, tenant: Tenant, byte_size: int) -> None:
        await self.reset_monthly_usage(tenant)
        await Tenant.filter(id=tenant.id).update(
            total_images=F("total_images") + 1,
            total_storage_used=F("total_storage_used") + max(0, byte_size),
            current_month_uploads=F("current_month_uploads") + 1,
        )
        await tenant.refresh_from_db(fields=_USAGE_FIELDS)
        logger.debug(
            f"Recorded upload of {byte_size} bytes for tenant {tenant.id} "
            f"({tenant.current_month_uploads} this month)"
        )

    def admission_guard(self, tenant: Tenant):
        """Lock held from admission to persistence in strict mode, else a no-op."""
        if not self.settings.STRICT_QUOTA_ENFORCEMENT:
            return contextlib.nullcontext()
        return self._locks.setdefault(str(tenant.id), asyncio.Lock())
