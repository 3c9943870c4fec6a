import asyncio
from dataclasses import dataclass

from loguru import logger
from tortoise import timezone

from ..core.config import PLAN_LIMITS, Plan, Settings
from ..core.errors import AuthenticationRequired, Conflict, InvalidToken, ValidationError
from ..core.security import (
    TokenService,
    generate_api_key,
    generate_api_secret,
    hash_secret,
    verify_secret,
)
from ..models import Tenant
from .tenant_ledger import TenantLedger


@dataclass
class Registration:
    tenant: Tenant
    api_secret: str


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "Bearer"


class TenantRegistry:
    def __init__(
        self,
        token_service: TokenService,
        ledger: TenantLedger,
        settings: Settings = None,
    ):
        from ..core.config import get_settings

        self.settings = settings or get_settings()
        self.token_service = token_service
        self.ledger = ledger

    async def register(
        self,
        name: str,
        domain: str,
        allowed_origins: list[str] | None = None,
        description: str | None = None,
        plan: Plan = Plan.FREE,
    ) -> Registration:
        """Create a tenant; the plaintext secret is only ever returned here."""
        if await Tenant.filter(name=name).exists():
            raise Conflict("Application name already exists")

        max_file_size, max_images_per_month, max_storage_size = PLAN_LIMITS[plan]
        api_secret = generate_api_secret()
        secret_hash = await asyncio.to_thread(hash_secret, api_secret)

        tenant = await Tenant.create(
            name=name,
            description=description,
            domain=domain,
            allowed_origins=allowed_origins or [],
            api_key=generate_api_key(),
            api_secret_hash=secret_hash,
            plan=plan,
            max_file_size=max_file_size,
            max_images_per_month=max_images_per_month,
            max_storage_size=max_storage_size,
            default_image_quality=self.settings.DEFAULT_IMAGE_QUALITY,
            last_reset_date=timezone.now(),
        )
        logger.info(f"Registered tenant {tenant.name} ({tenant.id}) on plan {plan.value}")
        return Registration(tenant=tenant, api_secret=api_secret)

    async def authenticate(self, api_key: str, api_secret: str) -> TokenPair:
        tenant = await Tenant.get_or_none(api_key=api_key, is_active=True)
        if tenant is None or not await asyncio.to_thread(
            verify_secret, api_secret, tenant.api_secret_hash
        ):
            logger.info(f"Rejected credentials for API key {api_key[:10]}...")
            raise AuthenticationRequired("Invalid API credentials")

        refresh_token, claims = self.token_service.issue_refresh_token(str(tenant.id))
        now = claims.issued_at
        live_tokens = [
            entry
            for entry in tenant.refresh_tokens or []
            if entry.get("expires_at", 0) > now
        ]
        live_tokens.append({"jti": claims.token_id, "expires_at": claims.expires_at})
        tenant.refresh_tokens = live_tokens[-self.settings.MAX_REFRESH_TOKENS :]
        await tenant.save(update_fields=["refresh_tokens", "updated_at"])

        return TokenPair(
            access_token=self.token_service.issue_access_token(str(tenant.id)),
            refresh_token=refresh_token,
            expires_in=self.settings.ACCESS_TOKEN_TTL_SECONDS,
        )

    async def refresh(self, refresh_token: str) -> TokenPair:
        claims = self.token_service.verify_refresh_token(refresh_token)
        tenant = await Tenant.get_or_none(id=claims.tenant_id, is_active=True)
        if tenant is None or not any(
            entry.get("jti") == claims.token_id for entry in tenant.refresh_tokens or []
        ):
            raise InvalidToken("Invalid refresh token")

        return TokenPair(
            access_token=self.token_service.issue_access_token(str(tenant.id)),
            refresh_token=refresh_token,
            expires_in=self.settings.ACCESS_TOKEN_TTL_SECONDS,
        )

    async def logout(self, tenant: Tenant, refresh_token: str | None) -> None:
        if not refresh_token:
            return
        try:
            claims = self.token_service.verify_refresh_token(refresh_token)
        except InvalidToken:
            return

        tenant.refresh_tokens = [
            entry
            for entry in tenant.refresh_tokens or []
            if entry.get("jti") != claims.token_id
        ]
        await tenant.save(update_fields=["refresh_tokens", "updated_at"])

    async def logout_all(self, tenant: Tenant) -> None:
        tenant.refresh_tokens = []
        await tenant.save(update_fields=["refresh_tokens", "updated_at"])
        logger.info(f"Revoked all refresh tokens of tenant {tenant.id}")

    async def resolve_bearer(self, token: str | None) -> Tenant:
        if not token:
            raise AuthenticationRequired("Access token required")

        claims = self.token_service.verify_access_token(token)
        tenant = await Tenant.get_or_none(id=claims.tenant_id)
        if tenant is None or not tenant.is_active:
            raise InvalidToken("Invalid or inactive application")
        return tenant

    async def profile(self, tenant: Tenant) -> Tenant:
        await tenant.refresh_from_db()
        await self.ledger.reset_monthly_usage(tenant)
        return tenant

    async def update_settings(
        self,
        tenant: Tenant,
        *,
        enable_public_access: bool | None = None,
        default_image_quality: int | None = None,
        allowed_formats: list[str] | None = None,
        description: str | None = None,
        allowed_origins: list[str] | None = None,
    ) -> Tenant:
        update_fields = []
        if enable_public_access is not None:
            tenant.enable_public_access = enable_public_access
            update_fields.append("enable_public_access")
        if default_image_quality is not None:
            tenant.default_image_quality = default_image_quality
            update_fields.append("default_image_quality")
        if allowed_formats is not None:
            formats = [fmt.lower() for fmt in allowed_formats]
            unknown = set(formats) - set(self.settings.ALLOWED_IMAGE_FORMATS)
            if not formats or unknown:
                raise ValidationError(
                    "Invalid allowed formats",
                    details=[f"Allowed: {', '.join(self.settings.ALLOWED_IMAGE_FORMATS)}"],
                )
            tenant.allowed_formats = formats
            update_fields.append("allowed_formats")
        if description is not None:
            tenant.description = description
            update_fields.append("description")
        if allowed_origins is not None:
            tenant.allowed_origins = allowed_origins
            update_fields.append("allowed_origins")

        if update_fields:
            update_fields.append("updated_at")
            await tenant.save(update_fields=update_fields)
        return tenant

    async def deactivate(self, tenant: Tenant) -> None:
        tenant.is_active = False
        tenant.refresh_tokens = []
        await tenant.save(update_fields=["is_active", "refresh_tokens", "updated_at"])
        logger.info(f"Deactivated tenant {tenant.name} ({tenant.id})")
