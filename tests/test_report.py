from storelift.models.migration import MigrationConfig, MigrationRun, Platform, RetrySettings, StageStatus
from storelift.models.record import DetectionSummary, ExtensionFootprint, InstalledExtension
from storelift.services.report import ManualReportBuilder, ReportContext


def _context(**kwargs):
    run = MigrationRun(source_url="https://shop.example.com", output_root="/out", timestamp="20240101_120000")
    config = kwargs.pop("config", MigrationConfig(target_url="https://shop.example.com"))
    return ReportContext(run=run, config=config, **kwargs)


def test_report_lists_stages_and_counts():
    context = _context(counts={"products": 3, "orders": 0})
    step = context.run.add_step("Fetch reviews")
    step.status = StageStatus.SKIPPED
    step.skip_reason = "not selected"

    text = ManualReportBuilder().build(context)

    assert text.startswith("# Manual Migration Report\n")
    assert "- **Store Identifier:** `shop.example.com`" in text
    assert "- Fetch reviews: **skipped** (not selected)" in text
    assert "- Products: 3" in text
    assert "Orders" not in text
    assert "- **HTTP retries:** 3 attempts, 1s base delay, 30s max delay" in text


def test_report_describes_extensions_and_limits():
    summary = DetectionSummary(processed_page_count=75, page_limit_reached=True, max_pages=75)
    context = _context(
        plugins=[InstalledExtension(type="plugin", name="Akismet", version="5.3", status="active")],
        footprints=[ExtensionFootprint(type="plugin", slug="woocommerce", directory_status="resolved")],
        detection_summary=summary,
    )

    text = ManualReportBuilder().build(context)

    assert "- Akismet 5.3 (active)" in text
    assert "- plugin `woocommerce`: resolved" in text
    assert "> Public extension detection stopped at the 75-page cap" in text


def test_credential_notes_per_platform():
    context = _context()
    context.run.add_missing_credential("Order exports (WordPress application password)")
    assert "- Order exports (WordPress application password)" in ManualReportBuilder().build(context)

    shopify = _context(config=MigrationConfig(target_url="https://shop.example.com", platform=Platform.SHOPIFY))
    assert "Shopify mode does not require WordPress credentials." in ManualReportBuilder().build(shopify)


def test_disabled_retries_are_reported(tmp_path):
    context = _context(config=MigrationConfig(target_url="https://shop.example.com", retry=RetrySettings(enabled=False)))
    path = ManualReportBuilder().write(context, tmp_path / "report.md")
    assert "- **HTTP retries:** disabled" in path.read_text(encoding="utf-8")
