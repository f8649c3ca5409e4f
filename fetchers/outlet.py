import json
import os
import re
from pathlib import Path
from typing import Any, List, Optional, Protocol, Tuple
from urllib.parse import urlparse

from bs4 import BeautifulSoup
from bs4.element import Tag

from core.logger import get_logger
from core.models import Product, ScrapeResult, now_utc_iso
from core.normalizer import (
    RawTile,
    SizeData,
    build_product,
    filter_by_size,
    find_price_strings,
    resolve_stock,
)

logger = get_logger(__name__)

OUTLET_BASE_URL = os.getenv("OUTLET_BASE_URL", "https://outlet.arcteryx.com").rstrip("/")
CAPTURE_DIR = os.getenv("CAPTURE_DIR", "/data/captures")

TILE_SELECTOR = '[id^="mens-"], [id^="womens-"]'
LINK_SELECTOR = 'a[href*="/shop/"]'


class SourceUnavailable(Exception):
    """The extraction source has nothing for the requested category."""


class ExtractionSource(Protocol):
    def fetch_listing(self, category: str) -> str:
        ...

    def fetch_size_data(self, build_id: str, product_path: str) -> Optional[Any]:
        ...


class CaptureSource:
    """
    Reads pages captured by the external browser worker.

    Layout under capture_dir:
      <category>.html                       listing page ("/" in a slug becomes "_")
      data/<buildId><productPath>.json      Next.js data route per product
    """

    def __init__(self, capture_dir: str = CAPTURE_DIR):
        self.capture_dir = Path(capture_dir)

    def _listing_path(self, category: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_.-]+", "_", category.strip("/"))
        return self.capture_dir / f"{safe}.html"

    def fetch_listing(self, category: str) -> str:
        path = self._listing_path(category)
        if not path.is_file():
            raise SourceUnavailable(f"No captured listing for '{category}' at {path}")
        logger.info("Reading listing for %s from %s", category, path)
        return path.read_text(encoding="utf-8")

    def fetch_size_data(self, build_id: str, product_path: str) -> Optional[Any]:
        path = self.capture_dir / "data" / f"{build_id}{product_path}.json"
        if not path.is_file():
            logger.debug("No size data captured at %s", path)
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)


def _tile_lines(tile: Tag) -> List[str]:
    text = tile.get_text("\n")
    return [l.strip() for l in text.split("\n") if l.strip()]


def _tile_image(tile: Tag) -> str:
    img = tile.find("img")
    if img is None:
        return ""
    for attr in ("src", "data-src"):
        val = img.get(attr)
        if isinstance(val, str) and val:
            return val
    return ""


def extract_build_id(soup: BeautifulSoup) -> str:
    script = soup.find("script", id="__NEXT_DATA__")
    if not script or not script.string:
        return ""
    try:
        data = json.loads(script.string)
    except ValueError:
        return ""
    if not isinstance(data, dict):
        return ""
    return str(data.get("buildId") or "")


def parse_listing(html: str) -> Tuple[str, List[RawTile]]:
    """
    Split a category listing page into (buildId, raw tiles).
    Tiles without a /shop/ link are dropped here.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    build_id = extract_build_id(soup)

    tiles: List[RawTile] = []
    for el in soup.select(TILE_SELECTOR):
        link = el.select_one(LINK_SELECTOR)
        if link is None:
            continue
        href = link.get("href")
        if not isinstance(href, str) or not href:
            continue
        lines = _tile_lines(el)
        tiles.append(
            RawTile(
                name_lines=lines,
                price_strings=find_price_strings("\n".join(lines)),
                link=href,
                image_url=_tile_image(el),
            )
        )

    logger.debug("Parsed %d tiles (buildId=%r)", len(tiles), build_id)
    return build_id, tiles


def parse_size_payload(data: Any) -> Optional[SizeData]:
    """
    Decode a product data route payload into in-stock sizes.
    pageProps.product is usually a JSON string, sometimes already an object.
    Returns None when the payload has no usable product.
    """
    if not isinstance(data, dict):
        return None
    page_props = data.get("pageProps")
    if not isinstance(page_props, dict):
        return None
    product = page_props.get("product")
    if isinstance(product, str):
        try:
            product = json.loads(product)
        except ValueError:
            return None
    if not isinstance(product, dict):
        return None

    size_options = product.get("sizeOptions")
    options = size_options.get("options") if isinstance(size_options, dict) else None
    return resolve_stock(options, product.get("variants"))


def _lookup_sizes(source: ExtractionSource, build_id: str, product_path: str) -> Optional[SizeData]:
    try:
        data = source.fetch_size_data(build_id, product_path)
    except Exception as e:
        logger.warning("Error fetching size data for %s: %s", product_path, e)
        return None
    if data is None:
        return None
    size_data = parse_size_payload(data)
    if size_data is None:
        logger.warning("No product data for %s", product_path)
    return size_data


def scrape_category(
    source: ExtractionSource,
    category: str,
    base_url: str = OUTLET_BASE_URL,
    size_filter: str | None = None,
) -> List[Product]:
    html = source.fetch_listing(category)
    build_id, tiles = parse_listing(html)
    first_seen = now_utc_iso()

    found: List[Tuple[Product, str]] = []
    for tile in tiles:
        product = build_product(tile, category, base_url, first_seen=first_seen)
        if product is not None:
            found.append((product, urlparse(product.url).path))

    logger.info("Found %d products in %s, buildId: %s", len(found), category, build_id or "-")

    if not build_id:
        logger.warning("Could not extract buildId for %s; skipping size data", category)
    else:
        for product, path in found:
            size_data = _lookup_sizes(source, build_id, path)
            if size_data is None:
                continue
            product.sizes = size_data.sizes
            logger.debug(
                "%s: %d/%d sizes in stock [%s]",
                product.name, len(size_data.sizes), len(size_data.all_sizes),
                ", ".join(size_data.sizes),
            )

    return filter_by_size([p for p, _ in found], size_filter)


def scrape_all_categories(
    source: ExtractionSource,
    categories: List[str],
    base_url: str = OUTLET_BASE_URL,
    size_filter: str | None = None,
) -> List[ScrapeResult]:
    """
    Scrape every category in order. A category that fails yields an empty
    result instead of aborting the others.
    """
    logger.info(
        "Scraping %d categories%s",
        len(categories),
        f", filtering for size {size_filter}" if size_filter else "",
    )
    results: List[ScrapeResult] = []
    for category in categories:
        try:
            products = scrape_category(source, category, base_url, size_filter)
            logger.info("%d products in %s", len(products), category)
            results.append(ScrapeResult(category=category, products=products))
        except Exception as e:
            logger.error("Failed to scrape %s: %s", category, e)
            results.append(ScrapeResult(category=category, products=[]))
    return results
