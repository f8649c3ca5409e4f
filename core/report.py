from pathlib import Path
from typing import Any, Dict, List

from jinja2 import Environment, FileSystemLoader

from core.models import InventoryChanges, Product, now_utc_iso

# Resolve template directory relative to this file
TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"
env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
)


def format_price(price: float) -> str:
    return f"${price:.0f}"


def _discount_note(p: Product) -> str:
    if p.original_price > p.price and p.discount:
        return f" (reg. {format_price(p.original_price)}, {p.discount}% off)"
    return ""


def _product_data(p: Product) -> Dict[str, Any]:
    return {
        "name": p.name,
        "price_str": format_price(p.price),
        "discount_note": _discount_note(p),
        "sizes": ", ".join(p.sizes),
        "url": p.url,
    }


def notification_subject(changes: InventoryChanges) -> str:
    parts: List[str] = []
    if changes.new_products:
        parts.append(f"{len(changes.new_products)} new")
    if changes.price_drops:
        parts.append(f"{len(changes.price_drops)} price drop{'s' if len(changes.price_drops) > 1 else ''}")
    return f"[Outlet Monitor] {', '.join(parts) or 'Inventory update'}"


def build_plaintext_report(changes: InventoryChanges) -> str:
    template = env.get_template("notification.txt")

    price_drop_data = []
    for drop in changes.price_drops:
        data = _product_data(drop.product)
        data["previous_price_str"] = format_price(drop.previous_price)
        price_drop_data.append(data)

    ctx = {
        "summary_text": (
            f"{len(changes.new_products)} new · {len(changes.price_drops)} price drops · "
            f"{len(changes.removed_products)} removed"
        ),
        "new_products": [_product_data(p) for p in changes.new_products],
        "price_drops": price_drop_data,
        "removed_products": [{"name": p.name} for p in changes.removed_products],
    }

    return template.render(**ctx)


def build_alert_report(error: str, categories: List[str], throttle_hours: int) -> str:
    template = env.get_template("alert.txt")
    return template.render(
        error=error,
        timestamp=now_utc_iso(),
        categories=", ".join(categories) or "-",
        throttle_hours=throttle_hours,
    )
