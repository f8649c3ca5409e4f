# core/models.py
import datetime
import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

import pytz


def now_utc_iso() -> str:
    return datetime.datetime.now(tz=pytz.UTC).isoformat()


def compute_discount(price: float, original_price: float) -> int:
    """
    Whole percentage off the original price, rounding halves up (12.5 -> 13).
    0 when there is no markdown or no original price.
    """
    if original_price <= 0 or original_price <= price:
        return 0
    return int(math.floor((original_price - price) / original_price * 100 + 0.5))


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _as_str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None]


@dataclass
class Product:
    """
    Canonical representation of one outlet catalog item.
    Prices are stored in dollars as scraped; discount is a whole percentage.
    An empty sizes list means no size data was available for the item.
    """
    id: str
    name: str
    price: float = 0.0
    original_price: float = 0.0
    discount: int = 0
    url: str = ""
    image: str = ""
    sizes: List[str] = field(default_factory=list)
    colors: List[str] = field(default_factory=list)
    category: str = ""
    first_seen: str = ""

    def with_first_seen(self, first_seen: str) -> "Product":
        return replace(
            self,
            first_seen=first_seen,
            sizes=list(self.sizes),
            colors=list(self.colors),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "originalPrice": self.original_price,
            "discount": self.discount,
            "url": self.url,
            "image": self.image,
            "sizes": list(self.sizes),
            "colors": list(self.colors),
            "category": self.category,
            "firstSeen": self.first_seen,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Product":
        # discount is derived from the prices, never trusted from the blob
        price = _as_float(data.get("price"))
        original_price = _as_float(data.get("originalPrice"))
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            price=price,
            original_price=original_price,
            discount=compute_discount(price, original_price),
            url=str(data.get("url") or ""),
            image=str(data.get("image") or ""),
            sizes=_as_str_list(data.get("sizes")),
            colors=_as_str_list(data.get("colors")),
            category=str(data.get("category") or ""),
            first_seen=str(data.get("firstSeen") or ""),
        )


@dataclass
class PriceDrop:
    product: Product
    previous_price: float


@dataclass
class InventoryState:
    last_updated: str
    products: List[Product] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lastUpdated": self.last_updated,
            "products": [p.to_dict() for p in self.products],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InventoryState":
        raw_products = data.get("products")
        if not isinstance(raw_products, list):
            raw_products = []
        return cls(
            last_updated=str(data.get("lastUpdated") or ""),
            products=[Product.from_dict(p) for p in raw_products if isinstance(p, dict)],
        )


@dataclass
class InventoryChanges:
    new_products: List[Product] = field(default_factory=list)
    price_drops: List[PriceDrop] = field(default_factory=list)
    removed_products: List[Product] = field(default_factory=list)

    def summary(self) -> str:
        return (
            f"{len(self.new_products)} new, {len(self.price_drops)} price drops, "
            f"{len(self.removed_products)} removed"
        )


@dataclass
class ScrapeResult:
    category: str
    products: List[Product] = field(default_factory=list)
    scraped_at: str = field(default_factory=now_utc_iso)


@dataclass
class RunResult:
    success: bool
    message: str


def flatten_results(results: Optional[List[ScrapeResult]]) -> List[Product]:
    return [p for r in (results or []) for p in r.products]
