from ..core.config import Settings, get_settings
from ..core.security import TokenService
from ..services.access_broker import AccessBroker
from ..services.asset_catalog import AssetCatalog
from ..services.asset_urls import AssetUrlBuilder
from ..services.blob_store import BlobStore, create_blob_store
from ..services.ingestion_pipeline import IngestionPipeline
from ..services.purge_sweeper import PurgeSweeper
from ..services.tenant_ledger import TenantLedger
from ..services.tenant_registry import TenantRegistry
from ..services.upload_validation import UploadValidator
from ..services.variant_generation import VariantGenerationService


class ServiceContainer:
    """Lazily wires the service graph; setters replace a piece before first use."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._blob_store: BlobStore | None = None
        self._token_service: TokenService | None = None
        self._ledger: TenantLedger | None = None
        self._catalog: AssetCatalog | None = None
        self._variant_generator: VariantGenerationService | None = None
        self._purge_sweeper: PurgeSweeper | None = None
        self._ingestion_pipeline: IngestionPipeline | None = None
        self._access_broker: AccessBroker | None = None
        self._tenant_registry: TenantRegistry | None = None

    @property
    def blob_store(self) -> BlobStore:
        if self._blob_store is None:
            self._blob_store = create_blob_store(self.settings)
        return self._blob_store

    def set_blob_store(self, blob_store: BlobStore) -> None:
        self._blob_store = blob_store

    @property
    def token_service(self) -> TokenService:
        if self._token_service is None:
            self._token_service = TokenService(self.settings)
        return self._token_service

    def set_token_service(self, token_service: TokenService) -> None:
        self._token_service = token_service

    @property
    def ledger(self) -> TenantLedger:
        if self._ledger is None:
            self._ledger = TenantLedger(self.settings)
        return self._ledger

    def set_ledger(self, ledger: TenantLedger) -> None:
        self._ledger = ledger

    @property
    def catalog(self) -> AssetCatalog:
        if self._catalog is None:
            self._catalog = AssetCatalog()
        return self._catalog

    @property
    def url_builder(self) -> AssetUrlBuilder:
        return AssetUrlBuilder(self.settings.PUBLIC_BASE_PATH)

    @property
    def validator(self) -> UploadValidator:
        return UploadValidator(self.settings)

    @property
    def variant_generator(self) -> VariantGenerationService:
        if self._variant_generator is None:
            self._variant_generator = VariantGenerationService(
                blob_store=self.blob_store, settings=self.settings
            )
        return self._variant_generator

    def set_variant_generator(self, variant_generator: VariantGenerationService) -> None:
        self._variant_generator = variant_generator

    @property
    def purge_sweeper(self) -> PurgeSweeper:
        if self._purge_sweeper is None:
            self._purge_sweeper = PurgeSweeper(
                catalog=self.catalog, blob_store=self.blob_store, settings=self.settings
            )
        return self._purge_sweeper

    @property
    def ingestion_pipeline(self) -> IngestionPipeline:
        if self._ingestion_pipeline is None:
            self._ingestion_pipeline = IngestionPipeline(
                blob_store=self.blob_store,
                variant_generator=self.variant_generator,
                validator=self.validator,
                ledger=self.ledger,
                catalog=self.catalog,
                token_service=self.token_service,
                url_builder=self.url_builder,
                purge_sweeper=self.purge_sweeper,
                settings=self.settings,
            )
        return self._ingestion_pipeline

    @property
    def access_broker(self) -> AccessBroker:
        if self._access_broker is None:
            self._access_broker = AccessBroker(
                catalog=self.catalog,
                blob_store=self.blob_store,
                token_service=self.token_service,
                url_builder=self.url_builder,
            )
        return self._access_broker

    @property
    def tenant_registry(self) -> TenantRegistry:
        if self._tenant_registry is None:
            self._tenant_registry = TenantRegistry(
                token_service=self.token_service, ledger=self.ledger, settings=self.settings
            )
        return self._tenant_registry

    def shutdown(self) -> None:
        if self._variant_generator is not None:
            self._variant_generator.shutdown()


_container: ServiceContainer | None = None
_default_container: ServiceContainer | None = None


def get_service_container() -> ServiceContainer:
    global _container
    if _container is None:
        _container = ServiceContainer()
    return _container


def override_container_for_testing(container: ServiceContainer) -> None:
    global _container, _default_container
    _default_container = _container
    _container = container


def restore_container() -> None:
    global _container, _default_container
    _container = _default_container
    _default_container = None


def get_token_service() -> TokenService:
    return get_service_container().token_service


def get_asset_catalog() -> AssetCatalog:
    return get_service_container().catalog


def get_ingestion_pipeline() -> IngestionPipeline:
    return get_service_container().ingestion_pipeline


def get_access_broker() -> AccessBroker:
    return get_service_container().access_broker


def get_tenant_registry() -> TenantRegistry:
    return get_service_container().tenant_registry


def get_url_builder() -> AssetUrlBuilder:
    return get_service_container().url_builder
