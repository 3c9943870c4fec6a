from .access_broker import AccessBroker
from .asset_catalog import AssetCatalog, AssetQuery
from .asset_urls import AssetUrlBuilder
from .blob_store import BlobStore, LocalBlobStore, S3BlobStore, create_blob_store
from .ingestion_pipeline import IngestionPipeline
from .purge_sweeper import PurgeSweeper
from .tenant_ledger import TenantLedger
from .tenant_registry import TenantRegistry
from .upload_validation import UploadValidator
from .variant_generation import VariantGenerationService

__all__ = [
    "AccessBroker",
    "AssetCatalog",
    "AssetQuery",
    "AssetUrlBuilder",
    "BlobStore",
    "LocalBlobStore",
    "S3BlobStore",
    "create_blob_store",
    "IngestionPipeline",
    "PurgeSweeper",
    "TenantLedger",
    "TenantRegistry",
    "UploadValidator",
    "VariantGenerationService",
]
