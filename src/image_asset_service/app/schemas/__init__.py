from .application import (
    ApplicationSummary,
    AuthenticateRequest,
    LogoutRequest,
    ProfileResponse,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    SettingsUpdateRequest,
    TokenResponse,
)
from .common import Envelope, ErrorResponse, MessageData
from .image import (
    BulkUploadResponse,
    CategoryListResponse,
    ImageDeleteResponse,
    ImageInfoResponse,
    ImageListResponse,
    ImageSummary,
    ImageUploadResponse,
    MetadataUpdateRequest,
)

__all__ = [
    "ApplicationSummary",
    "AuthenticateRequest",
    "LogoutRequest",
    "ProfileResponse",
    "RefreshRequest",
    "RegisterRequest",
    "RegisterResponse",
    "SettingsUpdateRequest",
    "TokenResponse",
    "Envelope",
    "ErrorResponse",
    "MessageData",
    "BulkUploadResponse",
    "CategoryListResponse",
    "ImageDeleteResponse",
    "ImageInfoResponse",
    "ImageListResponse",
    "ImageSummary",
    "ImageUploadResponse",
    "MetadataUpdateRequest",
]
