"""Camera frame -> compact JPEG data URI for attendance submissions."""

import base64
import io

from PIL import Image

from ems.core.config import settings
from ems.core.errors import InvalidInputError

_DATA_URI_PREFIX = "data:image/jpeg;base64,"


def encode_photo(
    frame: Image.Image | bytes,
    max_dimension: int | None = None,
    quality: int | None = None,
) -> str:
    """Downscale so the longest side fits ``max_dimension`` and encode as JPEG.

    Aspect ratio is preserved and smaller frames are never upscaled.
    """
    max_dimension = max_dimension or settings.PHOTO_MAX_DIMENSION
    quality = quality or settings.PHOTO_JPEG_QUALITY

    if isinstance(frame, (bytes, bytearray)):
        try:
            frame = Image.open(io.BytesIO(frame))
            frame.load()
        except OSError as exc:
            raise InvalidInputError(f"Unreadable camera frame: {exc}") from exc

    image = frame.convert("RGB")
    image.thumbnail((max_dimension, max_dimension))

    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality)
    return _DATA_URI_PREFIX + base64.b64encode(buffer.getvalue()).decode()


def decode_photo(data_uri: str) -> Image.Image:
    """Decode a ``data:image/...;base64,`` URI (or bare base64) to an image."""
    payload = data_uri.split(",", 1)[1] if data_uri.startswith("data:") else data_uri
    try:
        image = Image.open(io.BytesIO(base64.b64decode(payload)))
        image.load()
    except (ValueError, OSError) as exc:
        raise InvalidInputError(f"Invalid photo data: {exc}") from exc
    return image
