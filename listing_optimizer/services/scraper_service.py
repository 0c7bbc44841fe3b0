"""Apify-backed listing scraper."""
import logging
import re
from urllib.parse import urlsplit

import httpx

from listing_optimizer.errors import ScrapeError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_ACTOR = "tri_angle/airbnb-rooms-urls-scraper"
DEFAULT_BASE_URL = "https://api.apify.com/v2"

IMAGE_FIELDS = ("images", "imageUrls", "photos", "gallery", "media")
IMAGE_URL_KEYS = ("imageUrl", "url", "src", "originalUrl")

ROOM_ID_RE = re.compile(r"/rooms/(\d+)")
# airbnb.com, regional subdomains and country domains such as airbnb.co.uk or airbnb.fr
HOST_RE = re.compile(r"(^|\.)airbnb\.(com|co\.[a-z]{2}|com\.[a-z]{2}|[a-z]{2})$")


class ScrapedListing:
    def __init__(self, images, room_type=None, listing_id=None, title=None):
        self.images = images
        self.room_type = room_type
        self.listing_id = listing_id
        self.title = title

    def __repr__(self):
        return f"<ScrapedListing {self.listing_id} images={len(self.images)}>"


def normalize_listing_url(url):
    """Validate a listing URL and return its canonical form.

    Accepts airbnb hosts with a ``/rooms/<id>`` path where the id has at
    least 8 digits. Query strings and fragments are dropped.

    Raises:
        ValidationError
    """
    if not url or not isinstance(url, str):
        raise ValidationError("Listing URL is required.")

    parts = urlsplit(url.strip())
    host = (parts.hostname or "").lower()
    if parts.scheme not in ("http", "https"):
        raise ValidationError("Listing URL must use http or https.")
    if not HOST_RE.search(host):
        raise ValidationError("URL is not an Airbnb listing.")

    match = ROOM_ID_RE.search(parts.path)
    if not match or len(match.group(1)) < 8:
        raise ValidationError(
            "URL must point to a specific listing, e.g. "
            "https://www.airbnb.com/rooms/1234567890123456"
        )
    return f"https://www.airbnb.com/rooms/{match.group(1)}"


def extract_image_urls(item):
    """Pull image URLs out of one dataset item, whatever shape it uses."""
    for name in IMAGE_FIELDS:
        entries = item.get(name)
        if not isinstance(entries, list):
            continue
        urls = []
        for entry in entries:
            if isinstance(entry, str):
                urls.append(entry)
            elif isinstance(entry, dict):
                url = next((entry[k] for k in IMAGE_URL_KEYS if entry.get(k)), None)
                if url:
                    urls.append(url)
        if urls:
            return urls
    return []


class ApifyScraper:
    def __init__(self, token, actor=DEFAULT_ACTOR, base_url=DEFAULT_BASE_URL, timeout=120):
        self.token = token
        self.actor = actor
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def validate_listing_url(self, url):
        return normalize_listing_url(url)

    def scrape_listing(self, url):
        """Run the actor synchronously against one listing.

        Raises:
            ScrapeError with a human-readable reason.
        """
        endpoint = f"{self.base_url}/acts/{self.actor.replace('/', '~')}/run-sync-get-dataset-items"
        try:
            resp = httpx.post(
                endpoint,
                params={"token": self.token},
                json={"startUrls": [{"url": url}]},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise ScrapeError("Scraping timed out") from e
        except httpx.TransportError as e:
            raise ScrapeError(f"Scraper unreachable: {e}") from e

        if resp.status_code >= 400:
            logger.error("Apify error %s: %s", resp.status_code, resp.text[:500])
            raise ScrapeError(f"Scraper returned HTTP {resp.status_code}")

        try:
            items = resp.json()
        except ValueError as e:
            raise ScrapeError("Scraper returned an unreadable response") from e

        if not isinstance(items, list) or not items:
            raise ScrapeError(
                "No data found for the provided URL - this might not be a valid listing"
            )

        item = items[0]
        if not isinstance(item, dict):
            raise ScrapeError("Scraper returned an unexpected item format")
        images = extract_image_urls(item)
        if not images:
            logger.info("No images in listing item; fields: %s", sorted(item.keys()))
            raise ScrapeError(
                "No images found in the listing - it might be private or unavailable"
            )

        listing = ScrapedListing(
            images=images,
            room_type=item.get("propertyType") or item.get("roomType"),
            listing_id=item.get("id"),
            title=item.get("title") or item.get("name"),
        )
        logger.info("Scraped %s", listing)
        return listing
