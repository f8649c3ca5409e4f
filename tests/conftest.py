import os

os.environ.setdefault("LOG_TO_FILE", "false")

import pytest

from core import storage
from core.models import Product


@pytest.fixture
def db(tmp_path, monkeypatch):
    monkeypatch.setattr(storage, "DB_PATH", str(tmp_path / "state.sqlite3"))
    storage.ensure_db()
    return storage


@pytest.fixture
def make_product():
    def _make(pid, price=100.0, first_seen="t0", **kw):
        kw.setdefault("name", f"Product {pid}")
        kw.setdefault("original_price", price)
        return Product(id=pid, price=price, first_seen=first_seen, **kw)

    return _make
