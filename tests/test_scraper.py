"""Tests for listing URL validation and Apify response parsing (httpx mocked)."""
from unittest.mock import MagicMock, patch

import httpx
import pytest

from fakes import LISTING_URL
from listing_optimizer.errors import ScrapeError, ValidationError
from listing_optimizer.services.scraper_service import (
    ApifyScraper,
    extract_image_urls,
    normalize_listing_url,
)


@pytest.mark.parametrize(
    "url",
    [
        "https://www.airbnb.com/rooms/12345678",
        "http://airbnb.com/rooms/12345678?adults=2#photos",
        "https://fr.airbnb.com/rooms/12345678",
        "https://www.airbnb.co.uk/rooms/12345678",
    ],
)
def test_valid_urls_normalize(url):
    assert normalize_listing_url(url) == LISTING_URL


@pytest.mark.parametrize(
    "url",
    [
        None,
        "",
        "ftp://www.airbnb.com/rooms/12345678",
        "https://www.vrbo.com/rooms/12345678",
        "https://airbnb.com.evil.example/rooms/12345678",
        "https://www.airbnb.com/experiences/12345678",
        "https://www.airbnb.com/rooms/1234567",
    ],
)
def test_invalid_urls_rejected(url):
    with pytest.raises(ValidationError):
        normalize_listing_url(url)


def test_extract_image_urls_shapes():
    assert extract_image_urls({"images": ["a", "b"]}) == ["a", "b"]
    assert extract_image_urls({"photos": [{"url": "a"}, {"src": "b"}, {"caption": "x"}]}) == ["a", "b"]
    assert extract_image_urls({"images": [], "gallery": [{"imageUrl": "g"}]}) == ["g"]
    assert extract_image_urls({"title": "no pictures"}) == []


def _response(status_code=200, json_data=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = json_data
    resp.text = "error body"
    return resp


@patch("listing_optimizer.services.scraper_service.httpx.post")
def test_scrape_listing_parses_first_item(mock_post):
    mock_post.return_value = _response(
        json_data=[{"id": "12345678", "propertyType": "Entire home", "images": [{"imageUrl": "a"}]}]
    )
    scraper = ApifyScraper("token", actor="owner/actor", base_url="https://apify.test/v2/")

    listing = scraper.scrape_listing(LISTING_URL)

    assert listing.images == ["a"]
    assert listing.room_type == "Entire home"
    args, kwargs = mock_post.call_args
    assert args[0] == "https://apify.test/v2/acts/owner~actor/run-sync-get-dataset-items"
    assert kwargs["params"] == {"token": "token"}
    assert kwargs["json"] == {"startUrls": [{"url": LISTING_URL}]}


@pytest.mark.parametrize(
    "response, message",
    [
        (_response(json_data=[]), "No data found"),
        (_response(json_data=[{"images": []}]), "No images found"),
        (_response(status_code=502), "HTTP 502"),
    ],
)
def test_scrape_listing_errors(response, message):
    with patch("listing_optimizer.services.scraper_service.httpx.post", return_value=response):
        with pytest.raises(ScrapeError, match=message):
            ApifyScraper("token").scrape_listing(LISTING_URL)


@patch("listing_optimizer.services.scraper_service.httpx.post")
def test_scrape_timeout(mock_post):
    mock_post.side_effect = httpx.ReadTimeout("slow")

    with pytest.raises(ScrapeError, match="timed out"):
        ApifyScraper("token").scrape_listing(LISTING_URL)
