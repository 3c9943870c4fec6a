import io

from PIL import Image, UnidentifiedImageError

from .types import ImageDescriptor

_MIME_BY_FORMAT = {
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "tiff": "image/tiff",
}

_ALPHA_MODES = {"RGBA", "LA", "PA", "RGBa", "La"}


class UnsupportedImageError(ValueError):
    pass


def _has_alpha(img: Image.Image) -> bool:
    if img.mode in _ALPHA_MODES:
        return True
    return img.mode == "P" and "transparency" in img.info


def sniff_image(data: bytes) -> ImageDescriptor:
    """Identify an image from its bytes alone.

    The declared MIME type and file extension are ignored; only the decoder's
    view of the content counts. Raises UnsupportedImageError when the bytes are
    not a decodable image.
    """
    if not data:
        raise UnsupportedImageError("Empty image data")

    try:
        with Image.open(io.BytesIO(data)) as img:
            image_format = img.format.lower() if img.format else None
            width, height = img.size
            mode = img.mode
            has_alpha = _has_alpha(img)
            img.verify()
    except UnidentifiedImageError as e:
        raise UnsupportedImageError(f"Invalid image file: {e}") from e
    except Image.DecompressionBombError as e:
        raise UnsupportedImageError(f"Image dimensions too large: {e}") from e
    except (OSError, SyntaxError, ValueError) as e:
        raise UnsupportedImageError(f"Corrupted image data: {e}") from e

    if not image_format:
        raise UnsupportedImageError("Unable to determine image format")

    return ImageDescriptor(
        format=image_format,
        mime_type=_MIME_BY_FORMAT.get(image_format, f"image/{image_format}"),
        width=width,
        height=height,
        has_alpha=has_alpha,
        mode=mode,
    )
