import dataclasses
import logging

from storelift.models.migration import (
    ExportOptions,
    MigrationConfig,
    MigrationRun,
    Platform,
    RetrySettings,
    RunResult,
    derive_store_id,
    parse_limit,
)
from storelift.models.record import DetectionSummary, InstalledExtension


def test_store_id_joins_host_and_path_segments():
    assert derive_store_id("https://Shop.Example.com/en/store/") == "shop.example.com_en_store"
    assert derive_store_id("shop.example.com") == "shop.example.com"
    assert derive_store_id("https://shop.example.com/a b/") == "shop.example.com_a-b"


def test_run_paths_follow_store_and_timestamp():
    run = MigrationRun(source_url="https://shop.example.com", output_root="/out", timestamp="20240101_120000")
    assert str(run.store_folder) == "/out/shop.example.com"
    assert run.artifact_path("products", "csv").name == "shop.example.com_20240101_120000_products.csv"


def test_parse_limit_falls_back_to_unlimited(caplog):
    assert parse_limit("75", "page limit") == 75
    assert parse_limit(None, "page limit") is None
    assert parse_limit("  ", "page limit") is None
    with caplog.at_level(logging.WARNING):
        assert parse_limit("lots", "page limit") is None
        assert parse_limit(-3, "page limit") is None
    assert "Invalid page limit value 'lots'" in caplog.text
    assert "Non-positive page limit" in caplog.text


def test_disabled_retries_mean_zero_attempts():
    assert RetrySettings(enabled=False, attempts=5).effective_attempts == 0
    assert RetrySettings(attempts=5).effective_attempts == 5


def test_config_round_trip_omits_secrets():
    config = MigrationConfig.from_dict({
        "target_url": "https://shop.example.com",
        "platform": "shopify",
        "options": {"export_orders": True, "unknown_flag": True},
        "shopify": {"admin_access_token": "shpat_secret"},
        "public_extension_max_pages": "abc",
    })

    assert config.platform == Platform.SHOPIFY
    assert config.options.export_orders
    assert config.shopify.has_admin_access
    assert config.public_extension_max_pages is None
    assert "shpat_secret" not in str(config.to_dict())


def test_environment_fills_blank_credentials(monkeypatch):
    monkeypatch.setenv("STORELIFT_WP_USERNAME", "admin")
    monkeypatch.setenv("STORELIFT_WP_APP_PASSWORD", "abcd efgh")
    config = MigrationConfig(target_url="https://shop.example.com")

    config.apply_environment()

    assert config.wordpress.is_complete


def test_plugin_and_theme_wants():
    options = ExportOptions(export_plugins_jsonl=True)
    assert options.wants_plugins
    assert not options.wants_themes


def test_extension_slug_resolution_order():
    assert InstalledExtension(type="plugin", name="Akismet", slug="akismet").resolve_slug(1) == "akismet"
    assert InstalledExtension(type="plugin", name="X", plugin_file="hello-dolly/hello.php").resolve_slug(1) == "hello-dolly"
    assert InstalledExtension(type="theme", name="Storefront Child").resolve_slug(1) == "storefront-child"
    assert InstalledExtension(type="plugin").resolve_slug(4) == "plugin-4"


def test_limit_description_only_when_reached():
    summary = DetectionSummary(processed_page_count=10, total_bytes_downloaded=2048, max_pages=75)
    assert summary.describe_limits() is None
    summary.byte_limit_reached = True
    summary.max_bytes = 2048
    assert summary.describe_limits() == (
        "Public extension detection stopped at the 2048-byte cap after processing 10 pages (2048 bytes downloaded)."
    )


def test_run_result_dict_reports_snapshot_availability():
    run = MigrationRun(source_url="https://shop.example.com", output_root="/out")
    result = RunResult(run=run)

    data = result.to_dict()

    assert data["has_snapshot"] is False
    assert data["store_id"] == "shop.example.com"
    assert [f.name for f in dataclasses.fields(RunResult)] == ["run", "snapshot"]
