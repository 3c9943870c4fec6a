import pytest
from fastapi.testclient import TestClient
from tortoise import Tortoise

from src.image_asset_service.app.core.config import Settings
from src.image_asset_service.app.core.dependencies import (
    ServiceContainer,
    override_container_for_testing,
    restore_container,
)
from src.image_asset_service.app.db.database import MODEL_MODULES
from src.image_asset_service.app.services.domain import UploadRequest
from tests.image_asset_service.api_helpers import login, register_application
from tests.shared_fixtures import SharedImageFixtures


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        DATABASE_URL="sqlite://:memory:",
        STORAGE_DIR=str(tmp_path / "blobs"),
        TEMP_DIR=str(tmp_path / "temp"),
        LOG_FILE=str(tmp_path / "logs" / "test.log"),
        TOKEN_SECRET="test-token-secret",
        REFRESH_TOKEN_SECRET="test-refresh-secret",
        VARIANT_WORKERS=2,
        PURGE_DELAY_SECONDS=0.2,
        PURGE_SWEEP_INTERVAL_SECONDS=0.1,
    )


@pytest.fixture
def test_container(test_settings):
    """Create a fresh service container for each test."""
    container = ServiceContainer(settings=test_settings)
    override_container_for_testing(container)
    yield container
    container.shutdown()
    restore_container()


@pytest.fixture
async def db():
    await Tortoise.init(
        db_url="sqlite://:memory:",
        modules={"models": MODEL_MODULES},
    )
    await Tortoise.generate_schemas()
    yield
    await Tortoise.close_connections()


@pytest.fixture
async def tenant(db, test_container):
    registration = await test_container.tenant_registry.register(
        name="acme", domain="acme.example.com"
    )
    return registration.tenant


@pytest.fixture
async def other_tenant(db, test_container):
    registration = await test_container.tenant_registry.register(
        name="globex", domain="globex.example.com"
    )
    return registration.tenant


@pytest.fixture
def photo_jpeg():
    data, _ = SharedImageFixtures.load_photo_jpeg()
    return data


@pytest.fixture
def small_jpeg():
    data, _ = SharedImageFixtures.load_small_rgb_image()
    return data


@pytest.fixture
def transparent_png():
    data, _ = SharedImageFixtures.load_transparent_png()
    return data


@pytest.fixture
def gif_bytes():
    data, _ = SharedImageFixtures.load_gif()
    return data


@pytest.fixture
def photo_upload(photo_jpeg):
    return UploadRequest(
        file_data=photo_jpeg,
        original_filename="product photo.jpg",
        content_type="image/jpeg",
    )


@pytest.fixture
def test_client(test_container):
    from src.image_asset_service.main import create_app

    app = create_app()
    with TestClient(app) as client:
        yield client


@pytest.fixture
def acme_headers(test_client):
    tokens = login(test_client, register_application(test_client, "acme"))
    return {"Authorization": f"Bearer {tokens['access_token']}"}


@pytest.fixture
def globex_headers(test_client):
    tokens = login(test_client, register_application(test_client, "globex"))
    return {"Authorization": f"Bearer {tokens['access_token']}"}
