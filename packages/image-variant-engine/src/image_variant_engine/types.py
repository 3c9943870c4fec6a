from dataclasses import dataclass

ORIGINAL = "original"

VARIANT_FORMAT = "webp"
VARIANT_MIME_TYPE = "image/webp"

DEFAULT_QUALITY = 85
MIN_QUALITY = 50
MAX_QUALITY = 100


@dataclass(frozen=True)
class VariantSize:
    name: str
    max_width: int | None = None
    max_height: int | None = None

    @property
    def is_passthrough(self) -> bool:
        return self.max_width is None or self.max_height is None

    @property
    def box(self) -> tuple[int, int]:
        if self.is_passthrough:
            raise ValueError(f"Size '{self.name}' has no bounding box")
        return (self.max_width, self.max_height)


# Longest-edge boxes; images are shrunk to fit inside and never enlarged.
SIZE_TABLE: tuple[VariantSize, ...] = (
    VariantSize("thumbnail", 150, 150),
    VariantSize("small", 300, 300),
    VariantSize("medium", 600, 600),
    VariantSize("large", 1200, 1200),
    VariantSize(ORIGINAL),
)


def size_names() -> list[str]:
    return [size.name for size in SIZE_TABLE]


@dataclass(frozen=True)
class ImageDescriptor:
    """What content sniffing learned about an uploaded image."""

    format: str  # lowercase Pillow format name: "jpeg", "png", "webp"
    mime_type: str
    width: int
    height: int
    has_alpha: bool
    mode: str


@dataclass(frozen=True)
class RenderedVariant:
    size_name: str
    data: bytes
    width: int
    height: int
    format: str = VARIANT_FORMAT

    @property
    def byte_size(self) -> int:
        return len(self.data)

    @property
    def mime_type(self) -> str:
        return f"image/{self.format}"
