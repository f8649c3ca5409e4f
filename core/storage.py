# core/storage.py
import json
import os
import sqlite3
from typing import Optional

from .models import InventoryState, now_utc_iso
from .logger import get_logger

logger = get_logger(__name__)

DB_PATH = os.getenv("DB_PATH", "/data/outlet_state.sqlite3")

INVENTORY_KEY = "outlet-inventory"
LAST_ALERT_KEY = "last-alert-sent"
LAST_SUCCESS_KEY = "last-successful-scrape"


def _connect():
    db_dir = os.path.dirname(DB_PATH)
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)
    return sqlite3.connect(DB_PATH)


def ensure_db():
    with _connect() as con:
        cur = con.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT,
                updated_at TEXT
            )
        """
        )
        con.commit()


def get_value(key: str) -> Optional[str]:
    with _connect() as con:
        cur = con.cursor()
        cur.execute("SELECT value FROM kv WHERE key=?", (key,))
        row = cur.fetchone()
    return row[0] if row else None


def put_value(key: str, value: str) -> None:
    """
    Overwrite the value stored under key. A single statement, so a failed
    write leaves the previous value in place.
    """
    with _connect() as con:
        cur = con.cursor()
        cur.execute(
            """
            INSERT INTO kv (key, value, updated_at)
            VALUES (?,?,?)
            ON CONFLICT(key) DO UPDATE SET
                value=excluded.value,
                updated_at=excluded.updated_at
        """,
            (key, value, now_utc_iso()),
        )
        con.commit()


def get_inventory() -> Optional[InventoryState]:
    """
    Return the stored snapshot, or None when nothing was saved yet or the
    stored blob cannot be decoded.
    """
    raw = get_value(INVENTORY_KEY)
    if raw is None:
        return None
    try:
        data = json.loads(raw)
    except ValueError as e:
        logger.error("Stored inventory is not valid JSON; treating as empty: %s", e)
        return None
    if not isinstance(data, dict):
        logger.error("Stored inventory has unexpected shape %s; treating as empty.", type(data).__name__)
        return None
    return InventoryState.from_dict(data)


def save_inventory(state: InventoryState) -> None:
    put_value(INVENTORY_KEY, json.dumps(state.to_dict()))
    logger.info("Inventory updated: %d products stored", len(state.products))


def record_success() -> None:
    put_value(LAST_SUCCESS_KEY, now_utc_iso())
