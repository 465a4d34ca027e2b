import json

from conftest import FakeResponse, FakeSession, image_response
from storelift.extractors.design import DesignSnapshotScanner, count_colors, css_references, parse_breakpoints
from storelift.services.design_assets import MANIFEST_FILENAME, DesignAssetCapture, design_asset_filename

HOME = "https://shop.example.com/"
CSS_URL = "https://shop.example.com/wp-content/themes/astra/style.css"

HOME_HTML = """
<html><head>
<link rel="stylesheet" href="/wp-content/themes/astra/style.css">
<link rel="icon" href="/favicon.ico" sizes="32x32">
<style>.hero { color: #FFF; }</style>
</head><body>
<img src="/wp-content/uploads/logo.png" alt="Logo">
<img src="data:image/gif;base64,R0lGOD">
</body></html>
"""

STYLESHEET = """
@font-face { font-family: 'Inter'; src: url(fonts/inter.woff2) format('woff2'); }
body { color: #333333; background: url('../img/bg.png'); }
a { color: #333; }
"""


def test_filename_includes_prefix_index_and_hash():
    name = design_asset_filename("image", 1, "https://cdn.example.com/a/logo.png", ".png")
    assert name.startswith("image-001-")
    assert name.endswith(".png")
    assert name != design_asset_filename("image", 1, "https://cdn.example.com/b/logo.png", ".png")


def test_same_named_assets_get_distinct_files(tmp_path):
    first = "https://cdn.example.com/a/logo.png"
    second = "https://cdn.example.com/b/logo.png"
    session = FakeSession({first: image_response(b"a"), second: image_response(b"b")})
    capture = DesignAssetCapture(session, tmp_path)

    a = capture.capture(first, "image")
    b = capture.capture(second, "image")

    assert a["file"] != b["file"]
    assert (tmp_path / a["file"]).read_bytes() == b"a"
    assert (tmp_path / b["file"]).read_bytes() == b"b"


def test_existing_files_are_not_overwritten(tmp_path):
    url = "https://cdn.example.com/logo.png"
    taken = design_asset_filename("image", 1, url, ".png")
    (tmp_path / "assets").mkdir()
    (tmp_path / "assets" / taken).write_bytes(b"keep")

    entry = DesignAssetCapture(FakeSession({url: image_response(b"new")}), tmp_path).capture(url, "image")

    assert entry["file"] != f"assets/{taken}"
    assert (tmp_path / "assets" / taken).read_bytes() == b"keep"


def test_capture_deduplicates_by_url_and_records_failures(tmp_path):
    ok = "https://cdn.example.com/logo.png"
    broken = "https://cdn.example.com/missing.png"
    session = FakeSession({ok: image_response()})
    capture = DesignAssetCapture(session, tmp_path)

    assert capture.capture(ok, "image") is capture.capture(ok, "image")
    assert capture.capture(broken, "image") is None
    assert session.calls_to(ok) == 1
    assert capture.failed_urls == [broken]

    manifest = json.loads(capture.write_manifest().read_text())
    assert len(manifest["assets"]) == 1
    assert manifest["assets"][0]["sourceUrl"] == ok
    assert len(manifest["assets"][0]["contentHash"]) == 64


def test_css_references_split_fonts_and_images():
    fonts, images = css_references(STYLESHEET, CSS_URL)
    assert fonts == [("https://shop.example.com/wp-content/themes/astra/fonts/inter.woff2", "Inter")]
    assert images == ["https://shop.example.com/wp-content/themes/img/bg.png"]


def test_colors_are_normalized_and_counted():
    colors = count_colors([STYLESHEET, ".x { color: #fff }"])
    assert colors[0] == {"value": "#333333", "count": 2}
    assert {"value": "#ffffff", "count": 1} in colors


def test_invalid_breakpoints_are_skipped():
    assert parse_breakpoints(["desktop:1440x900", "tablet", "mobile:390x844"]) == [
        ("desktop", 1440, 900),
        ("mobile", 390, 844),
    ]


def test_snapshot_writes_manifest_colors_and_assets(tmp_path):
    session = FakeSession({
        HOME: FakeResponse(200, HOME_HTML, headers={"Content-Type": "text/html"}),
        CSS_URL: FakeResponse(200, STYLESHEET, headers={"Content-Type": "text/css"}),
        "https://shop.example.com/wp-content/themes/astra/fonts/inter.woff2": FakeResponse(
            200, b"font", headers={"Content-Type": "font/woff2"}
        ),
        "https://shop.example.com/wp-content/themes/img/bg.png": image_response(),
        "https://shop.example.com/favicon.ico": image_response(b"ico", "image/x-icon"),
        "https://shop.example.com/wp-content/uploads/logo.png": image_response(),
    })
    design = tmp_path / "design"

    result = DesignSnapshotScanner(session, design).snapshot("https://shop.example.com")

    types = sorted(entry["type"] for entry in result.assets)
    assert types == ["font", "icon", "image", "image", "page", "stylesheet"]
    assert (design / MANIFEST_FILENAME).is_file()
    icon = next(e for e in result.assets if e["type"] == "icon")
    assert icon["file"].startswith("icons/")
    colors = json.loads((design / "colors.json").read_text())["colors"]
    assert {"value": "#333333", "count": 2} in colors
    assert result.screenshots == []


def test_stylesheet_shared_by_pages_is_counted_once(tmp_path):
    about = "https://shop.example.com/about"
    page = '<html><head><link rel="stylesheet" href="/wp-content/themes/astra/style.css"></head></html>'
    session = FakeSession({
        HOME: FakeResponse(200, page, headers={"Content-Type": "text/html"}),
        about: FakeResponse(200, page, headers={"Content-Type": "text/html"}),
        CSS_URL: FakeResponse(200, "body { color: #123456; }", headers={"Content-Type": "text/css"}),
    })

    result = DesignSnapshotScanner(session, tmp_path / "design").snapshot(
        "https://shop.example.com", additional_page_urls=["/about"]
    )

    assert result.pages == [HOME, about]
    assert result.colors == [{"value": "#123456", "count": 1}]
    assert session.calls_to(CSS_URL) == 1
