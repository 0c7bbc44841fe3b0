import io
from unittest.mock import MagicMock, patch

import httpx
import pytest
from PIL import Image as PILImage

from listing_optimizer.errors import RemoteCallError
from listing_optimizer.services.image_service import MAX_FILE_SIZE, download_image, validate_image


def _png_bytes():
    buffer = io.BytesIO()
    PILImage.new("RGBA", (4, 4)).save(buffer, format="PNG")
    return buffer.getvalue()


def _response(status_code=200, content=b""):
    resp = MagicMock()
    resp.status_code = status_code
    resp.content = content
    return resp


def test_validate_converts_to_jpeg():
    assert PILImage.open(io.BytesIO(validate_image(_png_bytes()))).format == "JPEG"


def test_validate_rejects_oversized_and_invalid():
    with pytest.raises(ValueError, match="too large"):
        validate_image(b"0" * (MAX_FILE_SIZE + 1))
    with pytest.raises(ValueError, match="Invalid image"):
        validate_image(b"not an image")


@patch("listing_optimizer.services.image_service.httpx.get")
def test_download_returns_sanitized_bytes(mock_get):
    mock_get.return_value = _response(content=_png_bytes())

    data = download_image("https://img.example.com/a.png", timeout=5)

    assert data[:2] == b"\xff\xd8"
    assert mock_get.call_args.kwargs["timeout"] == 5


@pytest.mark.parametrize(
    "response, transient",
    [
        (_response(status_code=503), True),
        (_response(status_code=429), True),
        (_response(status_code=404), False),
        (_response(content=b"<html>"), False),
    ],
)
def test_download_error_classification(response, transient):
    with patch("listing_optimizer.services.image_service.httpx.get", return_value=response):
        with pytest.raises(RemoteCallError) as info:
            download_image("https://img.example.com/a.jpg")
    assert info.value.transient is transient


@patch("listing_optimizer.services.image_service.httpx.get")
def test_download_transport_error_is_transient(mock_get):
    mock_get.side_effect = httpx.ConnectError("refused")

    with pytest.raises(RemoteCallError) as info:
        download_image("https://img.example.com/a.jpg")
    assert info.value.transient is True
