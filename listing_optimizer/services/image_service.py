import io
import logging

import httpx
from PIL import Image as PILImage

from listing_optimizer.errors import RemoteCallError

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MB
JPEG_QUALITY = 90


def validate_image(image_bytes):
    """Check a downloaded listing photo and hand it back as JPEG.

    Listing CDNs serve WebP, PNG and JPEG alike; the AI stages always receive
    JPEG. Decoding through Pillow also drops EXIF metadata.

    Raises:
        ValueError if the photo is oversized or cannot be decoded
    """
    size = len(image_bytes)
    if size > MAX_FILE_SIZE:
        raise ValueError(f"Image too large: {size} bytes (max {MAX_FILE_SIZE})")

    try:
        PILImage.open(io.BytesIO(image_bytes)).verify()
    except Exception as e:
        raise ValueError("Invalid image file") from e

    # verify() consumes the file; decode a fresh copy to re-encode
    photo = PILImage.open(io.BytesIO(image_bytes))
    if photo.mode not in ("RGB", "L"):
        photo = photo.convert("RGB")

    out = io.BytesIO()
    photo.save(out, format="JPEG", quality=JPEG_QUALITY)
    return out.getvalue()


def download_image(url, timeout=30):
    """Fetch a listing photo and return sanitized JPEG bytes.

    Raises:
        RemoteCallError, transient for timeouts, transport errors and 5xx.
    """
    try:
        resp = httpx.get(url, timeout=timeout, follow_redirects=True)
    except httpx.TransportError as e:
        raise RemoteCallError(f"Failed to download image: {e}", transient=True) from e

    if resp.status_code >= 500 or resp.status_code == 429:
        raise RemoteCallError(
            f"Failed to download image: HTTP {resp.status_code}", transient=True
        )
    if resp.status_code >= 400:
        raise RemoteCallError(f"Failed to download image: HTTP {resp.status_code}")

    try:
        return validate_image(resp.content)
    except ValueError as e:
        raise RemoteCallError(f"Downloaded file is not usable: {e}") from e
