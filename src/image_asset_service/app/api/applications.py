from fastapi import APIRouter, Depends, status
from loguru import logger

from ..core.dependencies import get_tenant_registry
from ..models import Tenant
from ..schemas import (
    ApplicationSummary,
    AuthenticateRequest,
    Envelope,
    LogoutRequest,
    MessageData,
    ProfileResponse,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    SettingsUpdateRequest,
    TokenResponse,
)
from ..services.tenant_registry import TenantRegistry, TokenPair
from .auth import require_tenant

router = APIRouter()


def _token_response(pair: TokenPair) -> TokenResponse:
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        token_type=pair.token_type,
        expires_in=pair.expires_in,
    )


def _profile(tenant: Tenant) -> ProfileResponse:
    return ProfileResponse(
        id=tenant.id,
        name=tenant.name,
        description=tenant.description,
        domain=tenant.domain,
        allowed_origins=tenant.allowed_origins or [],
        plan=tenant.plan,
        is_active=tenant.is_active,
        limits=tenant.limits(),
        usage=tenant.usage(),
        settings={
            "enable_public_access": tenant.enable_public_access,
            "default_image_quality": tenant.default_image_quality,
            "allowed_formats": tenant.allowed_formats or [],
        },
        created_at=tenant.created_at,
    )


@router.post(
    "/register",
    response_model=Envelope[RegisterResponse],
    status_code=status.HTTP_201_CREATED,
)
async def register_application(
    request: RegisterRequest,
    registry: TenantRegistry = Depends(get_tenant_registry),
):
    """
    Register a new application.

    The API secret is returned in this response only; it is stored hashed.
    """
    registration = await registry.register(
        name=request.name,
        domain=request.domain,
        allowed_origins=request.allowed_origins,
        description=request.description,
        plan=request.plan,
    )
    tenant = registration.tenant
    return Envelope(
        data=RegisterResponse(
            application=ApplicationSummary(
                id=tenant.id,
                name=tenant.name,
                description=tenant.description,
                domain=tenant.domain,
                plan=tenant.plan,
                allowed_origins=tenant.allowed_origins,
                created_at=tenant.created_at,
            ),
            api_key=tenant.api_key,
            api_secret=registration.api_secret,
        )
    )


@router.post("/authenticate", response_model=Envelope[TokenResponse])
async def authenticate_application(
    request: AuthenticateRequest,
    registry: TenantRegistry = Depends(get_tenant_registry),
):
    pair = await registry.authenticate(request.api_key, request.api_secret)
    return Envelope(data=_token_response(pair))


@router.post("/refresh-token", response_model=Envelope[TokenResponse])
async def refresh_access_token(
    request: RefreshRequest,
    registry: TenantRegistry = Depends(get_tenant_registry),
):
    pair = await registry.refresh(request.refresh_token)
    return Envelope(data=_token_response(pair))


@router.get("/profile", response_model=Envelope[ProfileResponse])
async def get_profile(
    tenant: Tenant = Depends(require_tenant),
    registry: TenantRegistry = Depends(get_tenant_registry),
):
    tenant = await registry.profile(tenant)
    return Envelope(data=_profile(tenant))


@router.patch("/settings", response_model=Envelope[ProfileResponse])
async def update_settings(
    request: SettingsUpdateRequest,
    tenant: Tenant = Depends(require_tenant),
    registry: TenantRegistry = Depends(get_tenant_registry),
):
    tenant = await registry.update_settings(
        tenant, **request.model_dump(exclude_none=True)
    )
    logger.info(f"Updated settings of tenant {tenant.id}")
    return Envelope(data=_profile(tenant))


@router.post("/logout", response_model=Envelope[MessageData])
async def logout(
    request: LogoutRequest,
    tenant: Tenant = Depends(require_tenant),
    registry: TenantRegistry = Depends(get_tenant_registry),
):
    await registry.logout(tenant, request.refresh_token)
    return Envelope(data=MessageData(message="Logged out successfully"))


@router.post("/logout-all", response_model=Envelope[MessageData])
async def logout_all(
    tenant: Tenant = Depends(require_tenant),
    registry: TenantRegistry = Depends(get_tenant_registry),
):
    await registry.logout_all(tenant)
    return Envelope(data=MessageData(message="Logged out from all sessions"))


@router.post("/deactivate", response_model=Envelope[MessageData])
async def deactivate_application(
    tenant: Tenant = Depends(require_tenant),
    registry: TenantRegistry = Depends(get_tenant_registry),
):
    await registry.deactivate(tenant)
    return Envelope(data=MessageData(message="Application deactivated"))
