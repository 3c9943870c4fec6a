from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

MIB = 1024 * 1024
GIB = 1024 * MIB


def get_project_root() -> Path:
    current_path = Path(__file__).parent
    while current_path != current_path.parent:
        if (current_path / "pyproject.toml").exists():
            return current_path
        current_path = current_path.parent
    return Path(".")


class Plan(str, Enum):
    FREE = "free"
    BASIC = "basic"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


# Default quotas per plan: (max file size, max images per month, max storage)
PLAN_LIMITS: dict[Plan, tuple[int, int, int]] = {
    Plan.FREE: (5 * MIB, 1000, 1 * GIB),
    Plan.BASIC: (10 * MIB, 5000, 10 * GIB),
    Plan.PREMIUM: (25 * MIB, 25000, 100 * GIB),
    Plan.ENTERPRISE: (50 * MIB, 100000, 1024 * GIB),
}


class StorageBackend(str, Enum):
    LOCAL = "local"
    S3 = "s3"


class Settings(BaseSettings):
    # Application Settings
    APP_NAME: str = Field(default="Image Asset Service")
    DEBUG: bool = Field(default=False)
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8001)

    # CORS Settings
    ALLOWED_ORIGINS: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:8000"]
    )

    # DB Settings
    DATABASE_URL: str = Field(default="sqlite:///./storage/databases/image_assets.db")

    # Storage Settings
    STORAGE_BACKEND: StorageBackend = Field(default=StorageBackend.LOCAL)
    STORAGE_DIR: str = Field(default="./storage/blobs")
    TEMP_DIR: str = Field(default="./storage/temp")
    S3_BUCKET: str | None = Field(default=None)
    S3_ENDPOINT_URL: str | None = Field(default=None)
    S3_REGION: str | None = Field(default=None)

    # Token Settings
    TOKEN_SECRET: str = Field(default="change-me-token-secret")
    REFRESH_TOKEN_SECRET: str = Field(default="change-me-refresh-secret")
    ASSET_TOKEN_TTL_SECONDS: int = Field(default=60 * 60)  # 1 hour
    ACCESS_TOKEN_TTL_SECONDS: int = Field(default=24 * 60 * 60)  # 24 hours
    REFRESH_TOKEN_TTL_SECONDS: int = Field(default=30 * 24 * 60 * 60)  # 30 days
    MAX_REFRESH_TOKENS: int = Field(default=5)

    # Upload Settings
    ALLOWED_MIME_TYPES: list[str] = Field(
        default=["image/jpeg", "image/jpg", "image/png", "image/webp"]
    )
    ALLOWED_IMAGE_FORMATS: list[str] = Field(default=["jpeg", "png", "webp"])
    MAX_FILENAME_LENGTH: int = Field(default=100)
    MAX_BULK_FILES: int = Field(default=10)

    # Image Processing Settings
    DEFAULT_IMAGE_QUALITY: int = Field(default=85, ge=50, le=100)
    VARIANT_WORKERS: int = Field(default=4)

    # Quota Settings
    STRICT_QUOTA_ENFORCEMENT: bool = Field(default=False)

    # Purge Settings
    PURGE_DELAY_SECONDS: float = Field(default=5.0)
    PURGE_SWEEP_INTERVAL_SECONDS: float = Field(default=5.0)

    # URL Settings
    PUBLIC_BASE_PATH: str = Field(default="/api/images")

    # Logging Settings
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FILE: str = Field(default="./logs/image_asset_service.log")

    model_config = {
        "env_file": get_project_root() / ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore",
    }

    @property
    def absolute_database_url(self) -> str:
        """Get absolute database URL based on project root."""
        if self.DATABASE_URL.startswith("sqlite:///./"):
            relative_path = self.DATABASE_URL.replace("sqlite:///./", "")
            absolute_path = get_project_root() / relative_path
            return f"sqlite:///{absolute_path}"
        return self.DATABASE_URL

    @property
    def absolute_storage_dir(self) -> str:
        """Get absolute path for the local blob directory."""
        return str(get_project_root() / self.STORAGE_DIR)

    @property
    def absolute_temp_dir(self) -> str:
        """Get absolute path for temp directory."""
        return str(get_project_root() / self.TEMP_DIR)

    @property
    def absolute_log_file(self) -> str:
        return str(get_project_root() / self.LOG_FILE)


@lru_cache()
def get_settings() -> Settings:
    return Settings()
