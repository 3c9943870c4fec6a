from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger

from ..core.dependencies import get_tenant_registry
from ..core.errors import AuthenticationRequired, ServiceError
from ..models import Tenant
from ..services.tenant_registry import TenantRegistry

bearer_scheme = HTTPBearer(auto_error=False)


async def require_tenant(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    registry: TenantRegistry = Depends(get_tenant_registry),
) -> Tenant:
    if credentials is None:
        raise AuthenticationRequired("Access token required")
    return await registry.resolve_bearer(credentials.credentials)


async def optional_tenant(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    registry: TenantRegistry = Depends(get_tenant_registry),
) -> Tenant | None:
    """Bearer identity for routes that also serve public or token reads.

    An unusable bearer is treated as absent so that a public image or a valid
    asset token still works.
    """
    if credentials is None:
        return None
    try:
        return await registry.resolve_bearer(credentials.credentials)
    except ServiceError as e:
        logger.debug(f"Ignoring unusable bearer on optional route: {e.message}")
        return None
