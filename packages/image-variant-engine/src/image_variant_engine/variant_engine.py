import io

from PIL import Image

from .types import (
    DEFAULT_QUALITY,
    MAX_QUALITY,
    MIN_QUALITY,
    SIZE_TABLE,
    VARIANT_FORMAT,
    RenderedVariant,
    VariantSize,
)

# Fixed encoder settings. Changing any of these changes every variant's bytes.
_WEBP_METHOD = 4
_RESAMPLE = Image.Resampling.LANCZOS


class VariantEngine:
    def __init__(self, sizes: tuple[VariantSize, ...] = SIZE_TABLE):
        self._sizes = sizes

    @property
    def sizes(self) -> tuple[VariantSize, ...]:
        return self._sizes

    def get_size(self, name: str) -> VariantSize:
        for size in self._sizes:
            if size.name == name:
                return size
        raise ValueError(f"Unknown size: {name}")

    def render(
        self, source: bytes, quality: int = DEFAULT_QUALITY
    ) -> dict[str, RenderedVariant]:
        """Resize and re-encode ``source`` into every bounded size.

        Passthrough sizes (``original``) are not rendered; callers reference
        the uploaded bytes for those. Output is a pure function of ``source``,
        the size table and ``quality``.
        """
        self._validate_quality(quality)

        base = self._decode(source)
        try:
            variants = {}
            for size in self._sizes:
                if size.is_passthrough:
                    continue
                variants[size.name] = self._render_one(base, size, quality)
            return variants
        finally:
            base.close()

    def render_size(
        self, source: bytes, size_name: str, quality: int = DEFAULT_QUALITY
    ) -> RenderedVariant:
        self._validate_quality(quality)
        size = self.get_size(size_name)
        if size.is_passthrough:
            raise ValueError(f"Size '{size_name}' is a passthrough and is not rendered")

        base = self._decode(source)
        try:
            return self._render_one(base, size, quality)
        finally:
            base.close()

    @staticmethod
    def _validate_quality(quality: int) -> None:
        if not MIN_QUALITY <= quality <= MAX_QUALITY:
            raise ValueError(
                f"Quality must be between {MIN_QUALITY} and {MAX_QUALITY}, got {quality}"
            )

    @staticmethod
    def _decode(source: bytes) -> Image.Image:
        with Image.open(io.BytesIO(source)) as img:
            img.load()
            if img.mode in ("RGBA", "LA", "PA") or (
                img.mode == "P" and "transparency" in img.info
            ):
                return img.convert("RGBA")
            if img.mode != "RGB":
                return img.convert("RGB")
            return img.copy()

    @staticmethod
    def _render_one(
        base: Image.Image, size: VariantSize, quality: int
    ) -> RenderedVariant:
        frame = base.copy()
        try:
            # thumbnail() only ever shrinks and keeps the aspect ratio
            frame.thumbnail(size.box, _RESAMPLE)

            buffer = io.BytesIO()
            frame.save(
                buffer,
                format=VARIANT_FORMAT.upper(),
                quality=quality,
                method=_WEBP_METHOD,
            )

            return RenderedVariant(
                size_name=size.name,
                data=buffer.getvalue(),
                width=frame.width,
                height=frame.height,
                format=VARIANT_FORMAT,
            )
        finally:
            frame.close()


variant_engine = VariantEngine()
