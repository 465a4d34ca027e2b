import logging
import zipfile
from pathlib import Path

import pytest

from conftest import FakeSession, image_response, make_product
from storelift.extractors.base import BaseStoreExtractor
from storelift.models.migration import (
    ExportOptions,
    MigrationStatus,
    MigrationStep,
    NoProductsFoundError,
    Platform,
    StageStatus,
    WordPressCredentials,
)
from storelift.models.record import InstalledExtension, SiteContent, StoreRecord
from storelift.orchestrator import MigrationOrchestrator, isolate_stage
from storelift.services.bundle import REPORT_FILENAME
from storelift.services.cancellation import CancellationToken, RunCancelled

BASE = "https://shop.example.com"
IMAGE = "https://shop.example.com/wp-content/uploads/tee.png"


class FakeExtractor(BaseStoreExtractor):
    """Extractor serving canned catalog data."""

    platform = "woocommerce"

    def __init__(self, products=None, variations=None, fail_on=None):
        super().__init__(BASE, FakeSession())
        self.products = products if products is not None else []
        self.variations = variations or []
        self.fail_on = fail_on or set()
        self.calls = []

    def _call(self, name):
        self.calls.append(name)
        if name in self.fail_on:
            raise RuntimeError(f"{name} exploded")

    def fetch_products(self, categories=None, tags=None):
        self._call("fetch_products")
        return list(self.products)

    def fetch_products_basic(self):
        self._call("fetch_products_basic")
        return []

    def fetch_variations(self, parent_ids):
        self._call("fetch_variations")
        return [v for v in self.variations if v.parent_id in parent_ids]

    def fetch_reviews(self, product_ids):
        self._call("fetch_reviews")
        return [StoreRecord(id="r1", entity="reviews", data={"rating": 5})]

    def fetch_plugins(self):
        self._call("fetch_plugins")
        return [InstalledExtension(type="plugin", name="Akismet", slug="akismet")]

    def fetch_themes(self):
        self._call("fetch_themes")
        return []

    def fetch_extension_details(self, extension, slug):
        self._call("fetch_extension_details")

    def fetch_customers(self):
        self._call("fetch_customers")
        return [StoreRecord(id="7", entity="customers", data={"email": "a@example.com"})]

    def fetch_orders(self):
        self._call("fetch_orders")
        return []

    def fetch_site_content(self):
        self._call("fetch_site_content")
        return SiteContent(
            pages=[{"id": 5, "link": f"{BASE}/about/", "content": {"rendered": '<p><img src="/wp-content/uploads/tee.png"></p>'}}],
            media=[{"id": 9, "source_url": IMAGE, "media_details": {"file": "2023/05/tee.png"}}],
            menus=[{"id": 1, "name": "Main"}],
        )


def _orchestrator(make_config, extractor, session=None, **config_overrides):
    config = make_config(**config_overrides)
    return MigrationOrchestrator(
        config,
        session=session or FakeSession(),
        extractor=extractor,
        sleep=lambda seconds: None,
    )


def test_no_products_fails_the_run_without_report(make_config, caplog):
    orchestrator = _orchestrator(make_config, FakeExtractor(products=[]))

    with caplog.at_level(logging.INFO):
        result = orchestrator.run_migration()

    run = result.run
    assert run.status == MigrationStatus.FAILED
    assert not result.has_snapshot
    assert run.report_path is None
    assert [s.name for s in run.steps] == ["Fetch products"]
    assert caplog.text.count("No products found") == 1
    assert orchestrator.extractor.calls == ["fetch_products", "fetch_products_basic"]


def test_full_run_writes_exports_report_and_archive(make_config):
    session = FakeSession({IMAGE: image_response()})
    product = make_product(1, "Tee", images=[IMAGE])
    orchestrator = _orchestrator(make_config, FakeExtractor(products=[product]), session=session)

    result = orchestrator.run_migration()

    run = result.run
    assert run.status == MigrationStatus.COMPLETED
    assert result.has_snapshot
    assert Path(run.report_path).name == REPORT_FILENAME
    assert Path(run.report_path).is_file()
    assert run.artifact_path("products", "csv").is_file()

    with zipfile.ZipFile(run.archive_path) as zf:
        names = set(zf.namelist())
    assert f"{run.file_prefix}_products.csv" in names
    assert REPORT_FILENAME in names

    assert result.snapshot.products[0].image_paths
    assert Path(result.snapshot.products[0].local_image_paths[0]).is_file()


def test_shared_image_is_downloaded_once(make_config):
    session = FakeSession({IMAGE: image_response()})
    products = [make_product(1, images=[IMAGE]), make_product(2, images=[IMAGE])]
    orchestrator = _orchestrator(make_config, FakeExtractor(products=products), session=session)

    result = orchestrator.run_migration()

    assert session.calls_to(IMAGE) == 1
    paths = [p.image_paths for p in result.snapshot.products]
    assert paths[0] == paths[1]


def test_variations_are_fetched_for_variable_parents(make_config):
    parent = make_product(10, "Tee", "variable")
    child = make_product(101, "Tee Small", "variation", parent_id=10)
    extractor = FakeExtractor(products=[parent], variations=[child])
    orchestrator = _orchestrator(make_config, extractor, options=ExportOptions(download_product_images=False))

    result = orchestrator.run_migration()

    assert [v.id for v in result.snapshot.variations] == [101]
    assert len(result.snapshot.variable_products) == 1


def test_plugin_export_without_credentials_is_noted(make_config):
    options = ExportOptions(export_plugins_csv=True, download_product_images=False)
    orchestrator = _orchestrator(make_config, FakeExtractor(products=[make_product(1)]), options=options)

    result = orchestrator.run_migration()

    run = result.run
    step = run.get_step("Capture plugins and themes")
    assert step.status == StageStatus.SKIPPED
    assert step.skip_reason == "missing credentials"
    assert "Plugin and theme inventory exports" in run.missing_credentials
    assert not (run.store_folder / "plugins").exists()
    assert "fetch_plugins" not in orchestrator.extractor.calls
    report = Path(run.report_path).read_text(encoding="utf-8")
    assert "Plugin and theme inventory exports" in report


def test_credentials_force_public_detection_off(make_config, caplog):
    session = FakeSession()
    options = ExportOptions(export_public_extension_footprints=True, download_product_images=False)
    orchestrator = _orchestrator(
        make_config,
        FakeExtractor(products=[make_product(1)]),
        session=session,
        options=options,
        wordpress=WordPressCredentials(username="admin", application_password="abcd efgh"),
    )

    with caplog.at_level(logging.INFO):
        result = orchestrator.run_migration()

    step = result.run.get_step("Detect public extensions")
    assert step.status == StageStatus.SKIPPED
    assert step.skip_reason.startswith("forced off")
    assert "Skipping stage 'Detect public extensions': forced off" in caplog.text
    assert session.calls_to(f"{BASE}/") == 0


def test_authenticated_plugins_are_bundled(make_config):
    options = ExportOptions(export_plugins_jsonl=True, download_product_images=False)
    orchestrator = _orchestrator(
        make_config,
        FakeExtractor(products=[make_product(1)]),
        options=options,
        wordpress=WordPressCredentials(username="admin", application_password="abcd efgh"),
    )

    result = orchestrator.run_migration()

    run = result.run
    assert (run.store_folder / "plugins" / "akismet" / "options.json").is_file()
    assert run.artifact_path("plugins", "jsonl").is_file()
    assert not run.artifact_path("plugins", "csv").exists()
    assert result.snapshot.has_extension_bundles


def test_failed_stage_does_not_stop_the_run(make_config):
    options = ExportOptions(export_customers=True, export_orders=True, download_product_images=False)
    extractor = FakeExtractor(products=[make_product(1)], fail_on={"fetch_customers"})
    orchestrator = _orchestrator(
        make_config,
        extractor,
        options=options,
        wordpress=WordPressCredentials(username="admin", application_password="abcd efgh"),
    )

    result = orchestrator.run_migration()

    run = result.run
    assert run.status == MigrationStatus.COMPLETED
    customers = run.get_step("Fetch customers")
    assert customers.status == StageStatus.FAILED
    assert customers.errors == ["fetch_customers exploded"]
    assert run.get_step("Fetch orders").status == StageStatus.COMPLETED
    assert run.report_path is not None


def test_shopify_skips_woocommerce_only_stages(make_config):
    options = ExportOptions(export_reviews=True, download_product_images=False)
    orchestrator = _orchestrator(
        make_config, FakeExtractor(products=[make_product(1)]), options=options, platform=Platform.SHOPIFY
    )

    result = orchestrator.run_migration()

    step = result.run.get_step("Fetch reviews")
    assert step.skip_reason == "not supported for shopify"
    assert "fetch_reviews" not in orchestrator.extractor.calls


def test_cancellation_stops_the_run(make_config):
    token = CancellationToken()

    class CancellingExtractor(FakeExtractor):
        def fetch_categories(self):
            token.cancel()
            return []

    config = make_config()
    orchestrator = MigrationOrchestrator(
        config,
        session=FakeSession(),
        cancellation=token,
        extractor=CancellingExtractor(products=[make_product(1)]),
    )

    result = orchestrator.run_migration()

    assert result.run.status == MigrationStatus.CANCELLED
    assert result.run.get_step("Download product images") is None
    assert not orchestrator.is_running


def test_isolate_stage_reraises_fatal_errors():
    step = MigrationStep(name="Fetch products")

    def fatal():
        raise NoProductsFoundError("nothing here")

    with pytest.raises(NoProductsFoundError):
        isolate_stage(step, fatal)
    assert step.status == StageStatus.FAILED
    assert step.completed_at is not None

    def cancelled():
        raise RunCancelled("stopped")

    with pytest.raises(RunCancelled):
        isolate_stage(MigrationStep(name="Fetch orders"), cancelled)


def test_isolate_stage_records_processed_count():
    step = MigrationStep(name="Fetch orders")
    assert isolate_stage(step, lambda: 12)
    assert step.status == StageStatus.COMPLETED
    assert step.records_processed == 12


def test_site_content_reuses_library_downloads(make_config):
    session = FakeSession({IMAGE: image_response()})
    options = ExportOptions(export_site_content=True, download_product_images=False)
    orchestrator = _orchestrator(
        make_config,
        FakeExtractor(products=[make_product(1)]),
        session=session,
        options=options,
        wordpress=WordPressCredentials(username="admin", application_password="abcd efgh"),
    )

    result = orchestrator.run_migration()

    run = result.run
    content = result.snapshot.site_content
    assert content.media_paths[IMAGE] == "media/2023/05/tee.png"
    assert session.calls_to(IMAGE) == 1
    assert (run.store_folder / "media" / "2023" / "05" / "tee.png").is_file()
    assert (run.store_folder / "content" / "menus.json").is_file()
    assert run.artifact_path("pages", "csv").is_file()


def test_cancel_during_directory_delay_stops_the_run(make_config):
    token = CancellationToken()

    class CancellingDirectory:
        def __init__(self):
            self.calls = []

        def get_plugin(self, slug):
            self.calls.append(slug)
            token.cancel()
            return None

    directory = CancellingDirectory()
    config = make_config(
        options=ExportOptions(export_plugins_csv=True, download_product_images=False),
        wordpress=WordPressCredentials(username="admin", application_password="abcd efgh"),
        directory_delay_seconds=3600,
    )
    orchestrator = MigrationOrchestrator(
        config,
        session=FakeSession(),
        cancellation=token,
        extractor=FakeExtractor(products=[make_product(1)]),
        directory_client=directory,
    )

    result = orchestrator.run_migration()

    assert directory.calls == ["akismet"]
    assert result.run.status == MigrationStatus.CANCELLED
    assert result.run.get_step("Capture plugins and themes").status == StageStatus.FAILED
    assert result.run.get_step("Write report") is None


def test_directory_lookup_uses_slug_without_folder_suffix(make_config):
    class DuplicatePluginExtractor(FakeExtractor):
        def fetch_plugins(self):
            self._call("fetch_plugins")
            return [
                InstalledExtension(type="plugin", name="Akismet", slug="akismet"),
                InstalledExtension(type="plugin", name="Akismet", slug="akismet"),
            ]

    class RecordingDirectory:
        def __init__(self):
            self.calls = []

        def get_plugin(self, slug):
            self.calls.append(slug)
            return None

    directory = RecordingDirectory()
    config = make_config(
        options=ExportOptions(export_plugins_csv=True, download_product_images=False),
        wordpress=WordPressCredentials(username="admin", application_password="abcd efgh"),
    )
    orchestrator = MigrationOrchestrator(
        config,
        session=FakeSession(),
        extractor=DuplicatePluginExtractor(products=[make_product(1)]),
        directory_client=directory,
        sleep=lambda seconds: None,
    )

    result = orchestrator.run_migration()

    assert [a.slug for a in result.snapshot.plugin_bundles] == ["akismet", "akismet-2"]
    assert directory.calls == ["akismet"]
