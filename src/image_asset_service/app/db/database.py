from loguru import logger
from tortoise import Tortoise

from ..core.config import Settings, get_settings

MODEL_MODULES = [
    "src.image_asset_service.app.models.tenant",
    "src.image_asset_service.app.models.asset",
]


def tortoise_db_url(settings: Settings) -> str:
    database_url = settings.absolute_database_url

    # Tortoise expects sqlite://<path>
    if database_url.startswith("sqlite:///"):
        database_url = database_url.replace("sqlite:///", "sqlite://")
    return database_url


async def init_db(settings: Settings | None = None, modules: list[str] | None = None):
    settings = settings or get_settings()

    try:
        await Tortoise.init(
            db_url=tortoise_db_url(settings),
            modules={"models": modules or MODEL_MODULES},
        )

        # Generate database schema
        await Tortoise.generate_schemas(safe=True)

        logger.info("Database initialized successfully")

    except Exception as e:
        logger.error(f"Error initializing database: {e}")
        raise


async def close_db():
    try:
        await Tortoise.close_connections()
        logger.info("Database connections closed")
    except Exception as e:
        logger.error(f"Error closing database: {e}")
        raise


async def check_database_health() -> bool:
    try:
        from tortoise import connections

        conn = connections.get("default")
        await conn.execute_query("SELECT 1")

        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False
