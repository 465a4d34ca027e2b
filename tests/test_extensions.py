import hashlib
import json
from pathlib import Path

from conftest import FakeResponse, FakeSession, image_response
from storelift.models.record import InstalledExtension
from storelift.services.extensions import ExtensionBundleWriter

ASSET = "https://shop.example.com/wp-content/plugins/akismet/logo.png"
ARCHIVE = "https://downloads.wordpress.org/plugin/akismet.5.3.zip"


def test_bundle_folder_holds_options_manifest_and_archive(tmp_path):
    session = FakeSession({
        ASSET: image_response(b"logo"),
        ARCHIVE: FakeResponse(200, b"PK zip", headers={"Content-Type": "application/zip"}),
    })
    extension = InstalledExtension(
        type="plugin",
        name="Akismet",
        plugin_file="akismet/akismet.php",
        version="5.3",
        options={"akismet_strictness": "1"},
        asset_urls=[ASSET, ASSET],
        download_url=ARCHIVE,
    )

    artifact = ExtensionBundleWriter(session, tmp_path).write(extension, 1)

    assert artifact.slug == "akismet"
    assert Path(artifact.directory_path) == tmp_path / "plugins" / "akismet"
    options = json.loads(Path(artifact.options_path).read_text(encoding="utf-8"))
    assert options["options"] == {"akismet_strictness": "1"}

    manifest = json.loads(Path(artifact.manifest_path).read_text(encoding="utf-8"))
    assert len(manifest["assets"]) == 1
    assert manifest["assets"][0]["sha256"] == hashlib.sha256(b"logo").hexdigest()
    assert Path(artifact.archive_path).read_bytes() == b"PK zip"
    assert session.calls_to(ASSET) == 1


def test_failed_asset_is_listed_without_file(tmp_path):
    session = FakeSession({})
    extension = InstalledExtension(type="theme", name="Storefront", stylesheet="storefront", asset_urls=[ASSET])

    artifact = ExtensionBundleWriter(session, tmp_path).write(extension, 1)

    assert Path(artifact.directory_path) == tmp_path / "themes" / "storefront"
    manifest = json.loads(Path(artifact.manifest_path).read_text(encoding="utf-8"))
    assert manifest["assets"] == [{"url": ASSET, "file": None, "error": "download failed"}]
    assert not Path(artifact.archive_path).exists()


def test_duplicate_slugs_get_index_suffix(tmp_path):
    writer = ExtensionBundleWriter(FakeSession({}), tmp_path)
    first = InstalledExtension(type="plugin", name="Shipping")
    second = InstalledExtension(type="plugin", name="Shipping")
    theme = InstalledExtension(type="theme", name="Shipping")

    assert writer.unique_slug(first, 1) == "shipping"
    assert writer.unique_slug(second, 2) == "shipping-2"
    assert writer.unique_slug(theme, 3) == "shipping"
