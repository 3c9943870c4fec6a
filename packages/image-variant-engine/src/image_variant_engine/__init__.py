__version__ = "0.1.0"

from .sniffing import UnsupportedImageError, sniff_image
from .types import (
    DEFAULT_QUALITY,
    MAX_QUALITY,
    MIN_QUALITY,
    ORIGINAL,
    SIZE_TABLE,
    VARIANT_FORMAT,
    VARIANT_MIME_TYPE,
    ImageDescriptor,
    RenderedVariant,
    VariantSize,
    size_names,
)
from .variant_engine import VariantEngine, variant_engine

__all__ = [
    "VariantEngine",
    "variant_engine",
    "VariantSize",
    "RenderedVariant",
    "ImageDescriptor",
    "UnsupportedImageError",
    "sniff_image",
    "size_names",
    "SIZE_TABLE",
    "ORIGINAL",
    "VARIANT_FORMAT",
    "VARIANT_MIME_TYPE",
    "DEFAULT_QUALITY",
    "MIN_QUALITY",
    "MAX_QUALITY",
]
