import os
import re
from dataclasses import dataclass

from image_variant_engine import ImageDescriptor, UnsupportedImageError, sniff_image
from loguru import logger

from ..core.config import Settings
from ..core.errors import ValidationError
from .domain import UploadRequest

_DISALLOWED_CHARS = re.compile(r"[^A-Za-z0-9.-]")
_REPEATED_UNDERSCORES = re.compile(r"_{2,}")
_TRAVERSAL_MARKERS = ("..", "/", "\\", "\x00")

_EXTENSION_BY_FORMAT = {
    "jpeg": ".jpg",
    "png": ".png",
    "webp": ".webp",
}

_MIME_ALIASES = {"image/jpg": "image/jpeg", "image/pjpeg": "image/jpeg"}


@dataclass(frozen=True)
class ValidatedUpload:
    data: bytes
    original_filename: str
    sanitized_name: str
    descriptor: ImageDescriptor

    @property
    def byte_size(self) -> int:
        return len(self.data)

    @property
    def mime_type(self) -> str:
        return self.descriptor.mime_type

    @property
    def extension(self) -> str:
        return _EXTENSION_BY_FORMAT.get(
            self.descriptor.format, f".{self.descriptor.format}"
        )


def normalize_mime_type(content_type: str | None) -> str:
    mime = (content_type or "").split(";", 1)[0].strip().lower()
    return _MIME_ALIASES.get(mime, mime)


def sanitize_filename(filename: str | None, max_length: int = 100) -> str:
    """Return a storage-safe version of a client filename.

    Path traversal is rejected outright rather than cleaned up.
    """
    if not filename or not filename.strip():
        raise ValidationError("Filename is required")

    if any(marker in filename for marker in _TRAVERSAL_MARKERS):
        raise ValidationError(
            "Invalid filename. Path traversal attempts are not allowed."
        )

    stem, extension = os.path.splitext(filename.strip())
    stem = _DISALLOWED_CHARS.sub("_", stem)
    stem = _REPEATED_UNDERSCORES.sub("_", stem).strip("_")
    extension = _DISALLOWED_CHARS.sub("", extension.lower())

    stem = stem[: max(1, max_length - len(extension))] or "image"
    return f"{stem}{extension}"[:max_length]


class UploadValidator:
    def __init__(self, settings: Settings):
        self.settings = settings

    def validate(
        self, request: UploadRequest, allowed_formats: list[str] | None = None
    ) -> ValidatedUpload:
        if not request.file_data:
            raise ValidationError("Empty file provided")

        sanitized = sanitize_filename(
            request.original_filename, self.settings.MAX_FILENAME_LENGTH
        )

        declared_mime = normalize_mime_type(request.content_type)
        allowed_mimes = {
            normalize_mime_type(mime) for mime in self.settings.ALLOWED_MIME_TYPES
        }
        if declared_mime not in allowed_mimes:
            raise ValidationError(
                "Invalid file type. Only JPG, PNG, and WebP images are allowed.",
                details=[f"Declared type: {request.content_type or 'none'}"],
            )

        try:
            descriptor = sniff_image(request.file_data)
        except UnsupportedImageError as e:
            logger.warning(
                f"Content sniffing rejected {request.original_filename}: {e}"
            )
            raise ValidationError("Invalid image file or corrupted data.")

        permitted = set(self.settings.ALLOWED_IMAGE_FORMATS)
        if allowed_formats is not None:
            permitted &= {fmt.lower() for fmt in allowed_formats}
        if descriptor.format not in permitted:
            raise ValidationError(
                "Invalid image format detected.",
                details=[f"Detected format: {descriptor.format}"],
            )

        return ValidatedUpload(
            data=request.file_data,
            original_filename=request.original_filename,
            sanitized_name=os.path.splitext(sanitized)[0],
            descriptor=descriptor,
        )
