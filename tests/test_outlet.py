import json

import pytest

from fetchers.outlet import (
    CaptureSource,
    SourceUnavailable,
    parse_listing,
    parse_size_payload,
    scrape_all_categories,
    scrape_category,
)

BASE = "https://outlet.example.com"

LISTING = """
<html><body>
<div id="mens-alpha-pant">
  <a href="/us/en/shop/mens/alpha-pant"><img src="https://img/alpha.jpg"></a>
  <span>New</span>
  <p>Alpha Pant Men's</p>
  <span>$300.00</span><span>$210.00</span>
</div>
<div id="womens-atom-hoody">
  <a href="https://outlet.example.com/us/en/shop/womens/atom-hoody?c=1">
    <img data-src="https://img/atom.jpg">
  </a>
  <span>Compare</span>
  <p>Atom Hoody Women's</p>
  <span>$260</span>
</div>
<div id="mens-promo"><span>Shop the sale</span></div>
<div id="other-thing"><a href="/us/en/shop/mens/nope">Nope Men's</a></div>
<script id="__NEXT_DATA__" type="application/json">{"buildId": "build123"}</script>
</body></html>
"""


def _size_payload(options, variants, encode=True):
    product = {"sizeOptions": {"options": options}, "variants": variants}
    return {"pageProps": {"product": json.dumps(product) if encode else product}}


class FakeSource:
    def __init__(self, listings, size_data=None, fail_sizes=()):
        self.listings = listings
        self.size_data = size_data or {}
        self.fail_sizes = set(fail_sizes)

    def fetch_listing(self, category):
        if category not in self.listings:
            raise SourceUnavailable(category)
        return self.listings[category]

    def fetch_size_data(self, build_id, product_path):
        assert build_id == "build123"
        if product_path in self.fail_sizes:
            raise OSError("connection reset")
        return self.size_data.get(product_path)


class TestParseListing:
    def test_tiles_and_build_id(self):
        build_id, tiles = parse_listing(LISTING)
        assert build_id == "build123"
        assert [t.link for t in tiles] == [
            "/us/en/shop/mens/alpha-pant",
            "https://outlet.example.com/us/en/shop/womens/atom-hoody?c=1",
        ]
        assert tiles[0].price_strings == ["$300.00", "$210.00"]
        assert "Alpha Pant Men's" in tiles[0].name_lines
        assert tiles[0].image_url == "https://img/alpha.jpg"
        assert tiles[1].image_url == "https://img/atom.jpg"

    @pytest.mark.parametrize(
        "html",
        [
            "",
            "<html></html>",
            '<script id="__NEXT_DATA__">not json</script>',
        ],
    )
    def test_garbage_yields_nothing(self, html):
        assert parse_listing(html) == ("", [])


class TestParseSizePayload:
    def test_string_encoded_product(self):
        data = _size_payload(
            [{"label": "M", "value": "1"}, {"label": "L", "value": "2"}],
            [{"sizeId": "2", "stockStatus": "InStock"}, {"sizeId": "1", "stockStatus": "NoStock"}],
        )
        result = parse_size_payload(data)
        assert result.sizes == ["L"]
        assert result.all_sizes == ["M", "L"]

    def test_object_product(self):
        data = _size_payload([{"label": "M", "value": "1"}], [{"sizeId": "1", "stockStatus": "LowStock"}], encode=False)
        assert parse_size_payload(data).sizes == ["M"]

    @pytest.mark.parametrize(
        "data",
        [None, [], {}, {"pageProps": None}, {"pageProps": {"product": "{broken"}}, {"pageProps": {}}],
    )
    def test_unusable(self, data):
        assert parse_size_payload(data) is None


class TestScrapeCategory:
    SIZES = {
        "/us/en/shop/mens/alpha-pant": _size_payload(
            [{"label": "L-R", "value": "a"}, {"label": "M-R", "value": "b"}],
            [{"sizeId": "b", "stockStatus": "InStock"}],
        ),
        "/us/en/shop/womens/atom-hoody": _size_payload(
            [{"label": "L", "value": "x"}],
            [{"sizeId": "x", "stockStatus": "InStock"}],
        ),
    }

    def test_products_with_sizes(self):
        source = FakeSource({"mens": LISTING}, self.SIZES)
        products = scrape_category(source, "mens", BASE)
        assert [(p.id, p.price, p.original_price, p.discount, p.sizes) for p in products] == [
            ("alpha-pant", 210.0, 300.0, 30, ["M-R"]),
            ("atom-hoody", 260.0, 260.0, 0, ["L"]),
        ]
        assert products[0].url == "https://outlet.example.com/us/en/shop/mens/alpha-pant"
        assert all(p.category == "mens" and p.first_seen for p in products)

    def test_size_filter(self):
        source = FakeSource({"mens": LISTING}, self.SIZES)
        products = scrape_category(source, "mens", BASE, size_filter="L")
        assert [p.id for p in products] == ["atom-hoody"]

    def test_size_lookup_failure_keeps_product(self):
        source = FakeSource({"mens": LISTING}, self.SIZES, fail_sizes=["/us/en/shop/womens/atom-hoody"])
        products = scrape_category(source, "mens", BASE, size_filter="L")
        assert [(p.id, p.sizes) for p in products] == [("atom-hoody", [])]

    def test_missing_build_id_skips_sizes(self):
        html = LISTING.replace('"buildId": "build123"', '"other": 1')
        source = FakeSource({"mens": html}, self.SIZES)
        products = scrape_category(source, "mens", BASE)
        assert [p.sizes for p in products] == [[], []]


def test_scrape_all_categories_isolates_failures():
    source = FakeSource({"mens": LISTING})
    results = scrape_all_categories(source, ["mens", "womens"], BASE)
    assert [r.category for r in results] == ["mens", "womens"]
    assert len(results[0].products) == 2
    assert results[1].products == []


class TestCaptureSource:
    def test_reads_captured_files(self, tmp_path):
        (tmp_path / "mens_jackets.html").write_text(LISTING, encoding="utf-8")
        route = tmp_path / "data" / "build123" / "us" / "en" / "shop" / "mens"
        route.mkdir(parents=True)
        (route / "alpha-pant.json").write_text(json.dumps({"pageProps": {}}), encoding="utf-8")

        source = CaptureSource(str(tmp_path))
        assert source.fetch_listing("mens/jackets") == LISTING
        assert source.fetch_size_data("build123", "/us/en/shop/mens/alpha-pant") == {"pageProps": {}}
        assert source.fetch_size_data("build123", "/us/en/shop/mens/other") is None

    def test_missing_listing(self, tmp_path):
        with pytest.raises(SourceUnavailable):
            CaptureSource(str(tmp_path)).fetch_listing("mens")
