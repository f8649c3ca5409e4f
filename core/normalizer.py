# core/normalizer.py
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .logger import get_logger
from .models import Product, compute_discount, now_utc_iso
from .sizes import size_matches

logger = get_logger(__name__)

IN_STOCK_STATUSES = {"InStock", "LowStock"}

PRICE_RE = re.compile(r"\$[\d,]+(?:\.\d{2})?")
NAME_SUFFIX_RE = re.compile(r"(?:Men|Women)['’]s$", re.IGNORECASE)
SKIP_LINE_RE = re.compile(r"^(compare|veilance|fairtradecertified|new|sale)$", re.IGNORECASE)
SLUG_RE = re.compile(r"/shop/(?:mens/|womens/)?(.+?)(?:\?|#|$)")

MIN_NAME_LENGTH = 3


@dataclass
class RawTile:
    """
    One product tile as pulled off a category listing page, before any cleanup.
    """
    name_lines: List[str] = field(default_factory=list)
    price_strings: List[str] = field(default_factory=list)
    link: str = ""
    image_url: str = ""


@dataclass
class SizeData:
    sizes: List[str] = field(default_factory=list)
    all_sizes: List[str] = field(default_factory=list)


def _is_price_line(line: str) -> bool:
    return line.startswith("$")


def find_price_strings(text: str) -> List[str]:
    return PRICE_RE.findall(text or "")


def extract_name(lines: List[str]) -> str:
    """
    Pick the product name out of the tile's text lines.

    Preference goes to the first line ending in "Men's"/"Women's" that is not a
    price. Otherwise the first line that is neither a price nor a badge
    ("Compare", "New", "Sale", ...). Returns "" when nothing qualifies.
    """
    cleaned = [l.strip() for l in lines if l and l.strip()]
    for line in cleaned:
        if NAME_SUFFIX_RE.search(line) and not _is_price_line(line):
            return line
    for line in cleaned:
        if not _is_price_line(line) and not SKIP_LINE_RE.match(line):
            return line
    return ""


def parse_prices(price_strings: List[str]) -> Tuple[float, float]:
    """
    Returns (price, original_price).

    Values are sorted high to low: the highest is the original price and the
    second highest the current one. A single value is used for both. Tiles with
    more than two prices collapse to the two largest.
    """
    values: List[float] = []
    for raw in price_strings:
        s = raw.replace("$", "").replace(",", "").strip()
        try:
            values.append(float(s))
        except ValueError:
            logger.debug("Ignoring unparseable price string %r", raw)
    values.sort(reverse=True)

    original_price = values[0] if values else 0.0
    price = values[1] if len(values) > 1 else original_price
    return price, original_price


def slug_from_url(url: str) -> Optional[str]:
    m = SLUG_RE.search(url or "")
    if not m:
        return None
    return m.group(1)


def absolute_url(href: str, base_url: str) -> str:
    if href.startswith("http://") or href.startswith("https://"):
        return href
    return f"{base_url.rstrip('/')}{href}"


def build_product(
    tile: RawTile,
    category: str,
    base_url: str,
    first_seen: str | None = None,
) -> Optional[Product]:
    """
    Turn a raw tile into a Product, or None when the tile is noise
    (no /shop/ link, or no usable name).
    """
    product_id = slug_from_url(tile.link)
    if not product_id:
        logger.debug("Skipping tile without a product slug: %s", tile.link)
        return None

    name = extract_name(tile.name_lines)
    if len(name) < MIN_NAME_LENGTH:
        logger.debug("Skipping tile %s with unusable name %r", product_id, name)
        return None

    price, original_price = parse_prices(tile.price_strings)

    return Product(
        id=product_id,
        name=name,
        price=price,
        original_price=original_price,
        discount=compute_discount(price, original_price),
        url=absolute_url(tile.link, base_url),
        image=tile.image_url or "",
        sizes=[],
        colors=[],
        category=category,
        first_seen=first_seen or now_utc_iso(),
    )


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def resolve_stock(size_options: Any, variants: Any) -> SizeData:
    """
    Map variant size ids back to their labels and keep the in-stock ones.

    size_options: [{"label": "L-R", "value": "<sizeId>"}, ...]
    variants:     [{"sizeId": "<sizeId>", "stockStatus": "InStock"}, ...]
    Labels keep first-seen order and appear once.
    """
    id_to_label: Dict[str, str] = {}
    all_sizes: List[str] = []
    for opt in _as_list(size_options):
        if not isinstance(opt, dict):
            continue
        label = opt.get("label")
        if not label:
            continue
        all_sizes.append(str(label))
        if opt.get("value") is not None:
            id_to_label[str(opt["value"])] = str(label)

    in_stock: List[str] = []
    for variant in _as_list(variants):
        if not isinstance(variant, dict):
            continue
        if variant.get("stockStatus") not in IN_STOCK_STATUSES:
            continue
        label = id_to_label.get(str(variant.get("sizeId")))
        if label and label not in in_stock:
            in_stock.append(label)

    return SizeData(sizes=in_stock, all_sizes=all_sizes)


def product_has_size(product: Product, size_filter: str) -> bool:
    if not product.sizes:
        return True
    return any(size_matches(s, size_filter) for s in product.sizes)


def filter_by_size(products: List[Product], size_filter: str | None) -> List[Product]:
    """
    Keep products with the wanted size in stock. Products without size data are
    kept, since their stock is unknown. A blank filter disables filtering.
    """
    if not size_filter or not size_filter.strip():
        return list(products)

    kept: List[Product] = []
    for p in products:
        if product_has_size(p, size_filter):
            if not p.sizes:
                logger.debug("Including %s - no size data available", p.name)
            kept.append(p)
        else:
            logger.debug(
                "Filtered out %s - size %s not in stock (in stock: %s)",
                p.name, size_filter, ", ".join(p.sizes),
            )

    logger.info(
        "Size filter: %d/%d products have size %s in stock",
        len(kept), len(products), size_filter,
    )
    return kept
