import datetime
import json
import os
import random
import time
from typing import Any, Dict, List, Optional

import pytz

from core.logger import get_logger
from core import storage
from core.diff import diff_inventory, has_changes, merge_inventory
from core.emailer import send_alert_email, send_notification
from core.models import RunResult, flatten_results, now_utc_iso
from fetchers import SOURCES
from fetchers.outlet import OUTLET_BASE_URL, ExtractionSource, scrape_all_categories

logger = get_logger(__name__)

POLL_MINUTES = int(os.getenv("POLL_MINUTES", "60"))
MODE = os.getenv("MODE", "daemon").lower()  # "daemon", "once", "inventory" or "status"
SOURCE = os.getenv("SOURCE", "capture").strip().lower()
CATEGORIES = os.getenv("CATEGORIES", "mens,womens")
SIZE_FILTER = os.getenv("SIZE_FILTER", "").strip()
ALERT_THROTTLE_HOURS = int(os.getenv("ALERT_THROTTLE_HOURS", "6"))


def parse_categories(raw: str) -> List[str]:
    return [c.strip() for c in (raw or "").split(",") if c.strip()]


def jitter_sleep_minutes(minutes: int) -> None:
    base = max(1, minutes)
    jitter = random.uniform(-0.1 * base, 0.1 * base)
    total = base + jitter
    logger.info("Sleeping %.1f minutes before next cycle.", total)
    time.sleep(total * 60)


def _parse_ts(value: Optional[str]) -> Optional[datetime.datetime]:
    if not value:
        return None
    try:
        ts = datetime.datetime.fromisoformat(value)
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = pytz.UTC.localize(ts)
    return ts


def send_throttled_alert(error: str, categories: Optional[List[str]] = None) -> bool:
    """
    Send a failure alert unless one went out within ALERT_THROTTLE_HOURS.
    Never raises; alerting must not hide the failure being reported.
    """
    try:
        last_alert = _parse_ts(storage.get_value(storage.LAST_ALERT_KEY))
        if last_alert is not None:
            elapsed = datetime.datetime.now(tz=pytz.UTC) - last_alert
            if elapsed < datetime.timedelta(hours=ALERT_THROTTLE_HOURS):
                logger.info(
                    "Alert throttled (last sent %dm ago)",
                    int(elapsed.total_seconds() // 60),
                )
                return False
        sent = send_alert_email(
            error, categories or parse_categories(CATEGORIES), ALERT_THROTTLE_HOURS
        )
        storage.put_value(storage.LAST_ALERT_KEY, now_utc_iso())
        if sent:
            logger.info("Alert email sent")
        return sent
    except Exception as e:
        logger.error("Failed to send alert: %s", e)
        return False


def run_monitor(
    source: Optional[ExtractionSource] = None,
    categories: Optional[List[str]] = None,
    size_filter: Optional[str] = None,
    base_url: str = OUTLET_BASE_URL,
) -> RunResult:
    """
    One monitoring pass: scrape, diff against the stored snapshot, notify on
    new products or price drops, then persist the merged snapshot.

    Store errors propagate; notification errors are logged and do not stop
    the snapshot from being saved.
    """
    if source is None:
        source = SOURCES[SOURCE]()
    if categories is None:
        categories = parse_categories(CATEGORIES)
    if size_filter is None:
        size_filter = SIZE_FILTER
    size_filter = size_filter.strip() or None

    logger.info("Starting monitor for categories: %s", ", ".join(categories))

    results = scrape_all_categories(source, categories, base_url, size_filter)
    current = flatten_results(results)
    total = len(current)
    logger.info("Scraped %d products across %d categories", total, len(categories))

    if total == 0 and not size_filter:
        msg = "No products found - scraping may have been blocked or site structure changed"
        logger.error(msg)
        send_throttled_alert(msg, categories)
        return RunResult(success=False, message=msg)

    if total == 0:
        logger.info("No products found with size %s - this may be normal", size_filter)

    stored = storage.get_inventory()
    changes = diff_inventory(stored, current)
    logger.info("Changes: %s", changes.summary())

    if has_changes(changes):
        try:
            if send_notification(changes):
                logger.info("Email notification sent")
        except Exception as e:
            logger.error("Failed to send notification: %s", e)
    else:
        logger.info("No meaningful changes, skipping notification")

    updated = merge_inventory(stored, current)
    storage.save_inventory(updated)
    storage.record_success()

    return RunResult(
        success=True,
        message=(
            f"Scraped {total} products. {len(changes.new_products)} new, "
            f"{len(changes.price_drops)} price drops."
        ),
    )


def run_once() -> int:
    storage.ensure_db()
    try:
        result = run_monitor()
    except Exception as e:
        logger.exception("Monitor failed: %s", e)
        send_throttled_alert(f"Unhandled error: {e}")
        return 1

    logger.info(result.message)
    return 0 if result.success else 1


def run_daemon() -> None:
    logger.info("Starting daemon; poll every %d minutes.", POLL_MINUTES)
    while True:
        try:
            run_once()
        except Exception as e:
            logger.exception("Unhandled error in daemon loop: %s", e)

        jitter_sleep_minutes(POLL_MINUTES)


def show_inventory() -> int:
    storage.ensure_db()
    stored = storage.get_inventory()
    if stored is None:
        print(json.dumps({"message": "No inventory data yet"}))
        return 1
    print(json.dumps(stored.to_dict(), indent=2))
    return 0


def build_status() -> Dict[str, Any]:
    return {
        "service": "outlet-monitor",
        "status": "running",
        "categories": parse_categories(CATEGORIES),
        "sizeFilter": SIZE_FILTER or None,
        "lastSuccessfulScrape": storage.get_value(storage.LAST_SUCCESS_KEY),
        "lastAlertSent": storage.get_value(storage.LAST_ALERT_KEY),
    }


def show_status() -> int:
    storage.ensure_db()
    print(json.dumps(build_status(), indent=2))
    return 0


if __name__ == "__main__":
    try:
        if MODE == "once":
            raise SystemExit(run_once())
        elif MODE == "inventory":
            raise SystemExit(show_inventory())
        elif MODE == "status":
            raise SystemExit(show_status())
        else:
            run_daemon()
    except Exception as e:
        logger.exception("Fatal monitor error: %s", e)
        raise SystemExit(2)
