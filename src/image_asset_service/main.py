from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from src.image_asset_service.app.api import applications, images
from src.image_asset_service.app.core.config import StorageBackend
from src.image_asset_service.app.core.dependencies import get_service_container
from src.image_asset_service.app.core.errors import register_exception_handlers
from src.image_asset_service.app.core.logging import configure_logging
from src.image_asset_service.app.db.database import (
    check_database_health,
    close_db,
    init_db,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    container = get_service_container()
    settings = container.settings
    configure_logging(settings)
    logger.info("Starting Image Asset Service...")

    storage_dirs = [settings.absolute_temp_dir]
    if settings.STORAGE_BACKEND == StorageBackend.LOCAL:
        storage_dirs.append(settings.absolute_storage_dir)
    if settings.absolute_database_url.startswith("sqlite:///"):
        storage_dirs.append(
            str(Path(settings.absolute_database_url.replace("sqlite:///", "")).parent)
        )
    for dir_path in storage_dirs:
        Path(dir_path).mkdir(parents=True, exist_ok=True)

    logger.info("Storage directories initialized")

    await init_db(settings)
    container.purge_sweeper.start()
    logger.info("Image Asset Service startup complete")

    yield

    logger.info("Shutting down Image Asset Service...")
    await container.purge_sweeper.stop()
    container.shutdown()
    await close_db()


def create_app() -> FastAPI:
    settings = get_service_container().settings
    app = FastAPI(
        title=settings.APP_NAME,
        lifespan=lifespan,
        debug=settings.DEBUG,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(
        applications.router, prefix="/api/applications", tags=["applications"]
    )
    app.include_router(images.router, prefix="/api/images", tags=["images"])

    @app.get("/api/health")
    async def health_check():
        database_ok = await check_database_health()
        return {
            "status": "healthy" if database_ok else "degraded",
            "service": "image-asset",
            "database": database_ok,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_service_container().settings
    uvicorn.run(
        "src.image_asset_service.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info",
    )
