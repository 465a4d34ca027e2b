from conftest import FakeResponse, FakeSession
from storelift.extractors.footprints import PublicExtensionDetector, scan_for_extensions, version_hint

BASE = "https://shop.example.com"

HOME_HTML = """
<html><head>
<link rel="stylesheet" href="/wp-content/themes/storefront/style.css?ver=4.5.2">
<script src="/wp-content/plugins/woocommerce/assets/js/frontend/cart.min.js?ver=8.5.1"></script>
<script src="https://shop.example.com/wp-content/mu-plugins/loader/loader.js"></script>
</head><body></body></html>
"""


def _html(status=200, body=""):
    return FakeResponse(status, body, headers={"Content-Type": "text/html"})


def test_version_hint_from_query_or_filename():
    assert version_hint("https://x.test/wp-content/plugins/a/a.js?ver=1.2.3") == "1.2.3"
    assert version_hint("https://x.test/wp-content/plugins/a/a-2.0.1.min.js") == "2.0.1"
    assert version_hint("https://x.test/wp-content/plugins/a/a.js") is None


def test_scan_merges_repeated_slugs():
    findings = {}
    content = (
        '<script src="/wp-content/plugins/akismet/a.js"></script>'
        '<script src="/wp-content/plugins/akismet/b.js?ver=5.3"></script>'
    )
    scan_for_extensions(f"{BASE}/", content, findings)

    assert list(findings) == [("plugin", "akismet")]
    assert findings[("plugin", "akismet")].version_hint == "5.3"


def test_detects_plugins_themes_and_mu_plugins():
    session = FakeSession({f"{BASE}/": _html(body=HOME_HTML)})

    result = PublicExtensionDetector(session).detect(BASE)

    found = {(f.type, f.slug): f for f in result.footprints}
    assert set(found) == {("theme", "storefront"), ("plugin", "woocommerce"), ("mu-plugin", "loader")}
    assert found[("plugin", "woocommerce")].version_hint == "8.5.1"
    assert result.summary.processed_page_count == 1
    assert not result.summary.limit_reached


def test_page_limit_stops_crawl_and_is_reported():
    scripts = "".join(
        f'<script src="/wp-content/plugins/plugin-{i}/main.js"></script>' for i in range(100)
    )
    routes = {f"{BASE}/": _html(body=f"<html><head>{scripts}</head></html>")}
    for i in range(100):
        routes[f"{BASE}/wp-content/plugins/plugin-{i}/main.js"] = FakeResponse(200, "var x = 1;")
    session = FakeSession(routes)

    result = PublicExtensionDetector(session).detect(BASE, max_pages=75)

    summary = result.summary
    assert summary.processed_page_count == 75
    assert summary.page_limit_reached
    assert not summary.byte_limit_reached
    assert len(session.calls) == 75
    assert "75-page cap" in summary.describe_limits()


def test_byte_limit_stops_crawl():
    routes = {
        f"{BASE}/": _html(body=HOME_HTML),
        f"{BASE}/wp-content/themes/storefront/style.css": FakeResponse(200, "x" * 5000),
    }
    session = FakeSession(routes)

    result = PublicExtensionDetector(session).detect(BASE, max_pages=None, max_bytes=100)

    assert result.summary.byte_limit_reached
    assert result.summary.processed_page_count == 1


def test_missing_pages_do_not_count():
    session = FakeSession({f"{BASE}/": _html(404)})

    result = PublicExtensionDetector(session).detect(BASE, additional_entry_urls=["/shop/"])

    assert result.footprints == []
    assert result.summary.processed_page_count == 0
    assert session.calls_to(f"{BASE}/shop/") == 1
