from .asset import Asset
from .tenant import Tenant

__all__ = [
    "Tenant",
    "Asset",
]
