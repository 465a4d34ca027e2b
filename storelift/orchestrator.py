"""Migration orchestrator - drives the stage sequence of one run."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

from .models.migration import (
    FatalRunError,
    MigrationConfig,
    MigrationRun,
    MigrationStatus,
    MigrationStep,
    NoProductsFoundError,
    Platform,
    RunResult,
    StageStatus,
)
from .models.record import (
    DetectionSummary,
    DirectoryLookupStatus,
    ExtensionFootprint,
    InstalledExtension,
    StoreRecord,
)
from .extractors.base import BaseStoreExtractor
from .extractors.design import DesignSnapshotResult, DesignSnapshotScanner
from .extractors.footprints import PublicExtensionDetector
from .extractors.shopify import ShopifyExtractor
from .extractors.woocommerce import WooCommerceExtractor
from .services.bundle import ManualBundlePackager
from .services.cancellation import CancellationToken, RunCancelled
from .services.directory import DirectoryEnricher, WordPressDirectoryClient
from .services.extensions import ExtensionBundleWriter
from .services.media_cache import MediaCache, WordPressMediaCache
from .services.report import ManualReportBuilder, ReportContext
from .services.retry import create_session
from .services.snapshot import CapturedEntities, ProvisioningSnapshot, ProvisioningSnapshotBuilder
from .services.writers import (
    extension_rows,
    footprint_rows,
    product_rows,
    record_rows,
    write_formats,
    write_json,
)

logger = logging.getLogger(__name__)

BOTH_PLATFORMS = (Platform.WOOCOMMERCE, Platform.SHOPIFY)
WOOCOMMERCE_ONLY = (Platform.WOOCOMMERCE,)


@dataclass
class Stage:
    """
    One optional or mandatory unit of work within a run.

    ``enabled`` reflects the user's export flags, ``has_credentials`` the
    credential gate and ``forced_off`` returns a reason when another stage
    makes this one redundant. ``action`` returns the number of records
    processed.
    """
    name: str
    action: Callable[[], Optional[int]]
    enabled: Callable[[], bool] = lambda: True
    has_credentials: Callable[[], bool] = lambda: True
    missing_note: Optional[str] = None
    forced_off: Callable[[], Optional[str]] = lambda: None
    platforms: tuple = BOTH_PLATFORMS


def isolate_stage(step: MigrationStep, action: Callable[[], Optional[int]]) -> bool:
    """
    Run ``action`` for ``step``, containing any failure in the step.

    Only :class:`FatalRunError` and :class:`RunCancelled` propagate; every
    other exception marks the step failed and returns False.
    """
    step.status = StageStatus.RUNNING
    step.started_at = datetime.now(timezone.utc)
    try:
        processed = action()
        step.records_processed = processed or 0
        step.status = StageStatus.COMPLETED
        return True
    except (FatalRunError, RunCancelled):
        step.status = StageStatus.FAILED
        raise
    except Exception as e:
        step.status = StageStatus.FAILED
        step.errors.append(str(e))
        logger.error(f"Stage '{step.name}' failed: {e}")
        return False
    finally:
        step.completed_at = datetime.now(timezone.utc)


class MigrationOrchestrator:
    """
    Orchestrates one migration run.

    Handles:
    - Catalog capture (fatal when no products are found)
    - Optional capture stages gated by export flags and credentials
    - Product image and media library downloads through the media cache
    - Public extension detection and directory enrichment
    - Format exports, manual report and bundle archive
    - The provisioning snapshot handed to replay
    """

    def __init__(
        self,
        config: MigrationConfig,
        session: Optional[requests.Session] = None,
        cancellation: Optional[CancellationToken] = None,
        extractor: Optional[BaseStoreExtractor] = None,
        directory_client: Optional[WordPressDirectoryClient] = None,
        sleep: Optional[Callable[[float], None]] = None,
        run_id: Optional[str] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Run configuration
            session: HTTP session; created from the retry settings when omitted
            cancellation: Run-scoped cancellation token
            extractor: Platform extractor; created from the platform when omitted
            directory_client: WordPress.org directory client
            sleep: Delay function used between directory lookups; defaults to the
                cancellation token's wait, which wakes early on cancel
            run_id: Identifier given to the run record
        """
        self.config = config
        self._owns_session = session is None
        self.session = session or create_session(config.retry)
        self.cancellation = cancellation or CancellationToken()
        self.extractor = extractor or self._create_extractor()
        self.directory_client = directory_client or WordPressDirectoryClient(self.session)
        self.sleep = sleep or self.cancellation.wait
        self.run_id = run_id

        # Runtime state
        self.run: Optional[MigrationRun] = None
        self.captured = CapturedEntities()
        self.reviews: List[StoreRecord] = []
        self.plugins: List[InstalledExtension] = []
        self.themes: List[InstalledExtension] = []
        self.footprints: List[ExtensionFootprint] = []
        self.detection_summary: Optional[DetectionSummary] = None
        self.design: Optional[DesignSnapshotResult] = None
        self.media_cache: Optional[MediaCache] = None
        self.enricher: Optional[DirectoryEnricher] = None
        self.is_running = False

    def _create_extractor(self) -> BaseStoreExtractor:
        if self.config.platform == Platform.SHOPIFY:
            return ShopifyExtractor(
                self.config.target_url, self.session, self.config.shopify, self.cancellation
            )
        return WooCommerceExtractor(
            self.config.target_url, self.session, self.config.wordpress, self.cancellation
        )

    # Credential gates

    @property
    def has_wordpress_credentials(self) -> bool:
        return self.config.platform == Platform.WOOCOMMERCE and self.config.wordpress.is_complete

    def _has_record_credentials(self) -> bool:
        if self.config.platform == Platform.SHOPIFY:
            return self.config.shopify.has_admin_access
        return self.config.wordpress.is_complete

    def _record_note(self, label: str) -> str:
        if self.config.platform == Platform.SHOPIFY:
            return f"{label} (Shopify admin access token)"
        return f"{label} (WordPress application password)"

    def _public_footprints_forced_off(self) -> Optional[str]:
        if self.has_wordpress_credentials:
            return "authenticated plugin and theme export made public detection redundant"
        return None

    def stages(self) -> List[Stage]:
        """The ordered stage sequence for this run."""
        options = self.config.options
        woo_credentials = lambda: self.has_wordpress_credentials  # noqa: E731

        return [
            Stage("Fetch products", self._fetch_products),
            Stage(
                "Fetch variations",
                self._fetch_variations,
                enabled=lambda: any(p.has_variations for p in self.captured.products),
            ),
            Stage("Fetch categories and tags", self._fetch_terms),
            Stage(
                "Download product images",
                self._download_product_images,
                enabled=lambda: options.download_product_images,
            ),
            Stage(
                "Fetch reviews",
                self._fetch_reviews,
                enabled=lambda: options.export_reviews,
                platforms=WOOCOMMERCE_ONLY,
            ),
            Stage(
                "Capture plugins and themes",
                self._capture_extensions,
                enabled=lambda: options.wants_plugins or options.wants_themes,
                has_credentials=woo_credentials,
                missing_note="Plugin and theme inventory exports",
                platforms=WOOCOMMERCE_ONLY,
            ),
            Stage(
                "Detect public extensions",
                self._detect_public_extensions,
                enabled=lambda: options.export_public_extension_footprints,
                forced_off=self._public_footprints_forced_off,
                platforms=WOOCOMMERCE_ONLY,
            ),
            Stage(
                "Enrich extension footprints",
                self._enrich_footprints,
                enabled=lambda: bool(self.footprints),
                platforms=WOOCOMMERCE_ONLY,
            ),
            Stage(
                "Capture design snapshot",
                self._capture_design,
                enabled=lambda: options.export_public_design_snapshot,
            ),
            Stage(
                "Capture site content",
                self._capture_site_content,
                enabled=lambda: options.export_site_content,
                has_credentials=woo_credentials,
                missing_note="WordPress pages, posts, media, menus and widgets",
                platforms=WOOCOMMERCE_ONLY,
            ),
            Stage(
                "Capture store configuration",
                self._capture_configuration,
                enabled=lambda: options.export_store_configuration,
                has_credentials=woo_credentials,
                missing_note="Store settings, shipping zones and payment gateways",
                platforms=WOOCOMMERCE_ONLY,
            ),
            Stage(
                "Fetch customers",
                lambda: self._fetch_records("customers"),
                enabled=lambda: options.export_customers,
                has_credentials=self._has_record_credentials,
                missing_note=self._record_note("Customer exports"),
            ),
            Stage(
                "Fetch orders",
                lambda: self._fetch_records("orders"),
                enabled=lambda: options.export_orders,
                has_credentials=self._has_record_credentials,
                missing_note=self._record_note("Order exports"),
            ),
            Stage(
                "Fetch coupons",
                lambda: self._fetch_records("coupons"),
                enabled=lambda: options.export_coupons,
                has_credentials=woo_credentials,
                missing_note=self._record_note("Coupon exports"),
                platforms=WOOCOMMERCE_ONLY,
            ),
            Stage(
                "Fetch subscriptions",
                lambda: self._fetch_records("subscriptions"),
                enabled=lambda: options.export_subscriptions,
                has_credentials=woo_credentials,
                missing_note=self._record_note("Subscription exports"),
                platforms=WOOCOMMERCE_ONLY,
            ),
            Stage("Write exports", self._write_exports),
            Stage("Write report", self._write_report),
            Stage("Package manual bundle", self._package_bundle),
        ]

    def run_migration(self) -> RunResult:
        """
        Run every stage in order.

        Returns:
            RunResult carrying the run record and, when at least one product
            was captured, the provisioning snapshot
        """
        config = self.config
        self.run = MigrationRun(source_url=config.target_url, output_root=config.output_root)
        if self.run_id:
            self.run.id = self.run_id
        self.run.started_at = datetime.now(timezone.utc)
        self.run.status = MigrationStatus.RUNNING
        self.is_running = True
        result = RunResult(run=self.run)

        logger.info(f"Starting {config.platform.value} run for {config.target_url} (store id {self.run.store_id})")
        try:
            for stage in self.stages():
                self._run_stage(stage)

            if self.captured.products:
                logger.info("=== STAGE: Build provisioning snapshot ===")
                result.snapshot = self.build_snapshot()

            self.run.status = MigrationStatus.COMPLETED
            logger.info("=== RUN COMPLETED ===")

        except NoProductsFoundError as e:
            self.run.status = MigrationStatus.FAILED
            self.run.errors.append(self._error_entry(e))
            logger.error(str(e))

        except RunCancelled:
            self.run.status = MigrationStatus.CANCELLED
            self.run.errors.append({"error": "cancelled", "timestamp": datetime.now(timezone.utc).isoformat()})
            logger.warning("Run cancelled by user")

        except FatalRunError as e:
            self.run.status = MigrationStatus.FAILED
            self.run.errors.append(self._error_entry(e))
            logger.error(f"Run aborted: {e}")

        except Exception as e:
            # The run still counts as completed; the crash is visible in errors and logs.
            self.run.status = MigrationStatus.COMPLETED
            self.run.errors.append(self._error_entry(e))
            logger.error(f"Run crashed: {e}")

        finally:
            self.run.completed_at = datetime.now(timezone.utc)
            self.is_running = False
            if self._owns_session:
                self.session.close()

        return result

    def _error_entry(self, error: Exception) -> Dict[str, Any]:
        return {"error": str(error), "timestamp": datetime.now(timezone.utc).isoformat()}

    def _run_stage(self, stage: Stage) -> MigrationStep:
        self.cancellation.raise_if_cancelled()
        step = self.run.add_step(stage.name)

        reason = None
        if self.config.platform not in stage.platforms:
            reason = f"not supported for {self.config.platform.value}"
        elif not stage.enabled():
            reason = "not selected"
        else:
            forced = stage.forced_off()
            if forced:
                reason = f"forced off: {forced}"
            elif not stage.has_credentials():
                reason = "missing credentials"
                if stage.missing_note:
                    self.run.add_missing_credential(stage.missing_note)

        if reason:
            step.status = StageStatus.SKIPPED
            step.skip_reason = reason
            logger.info(f"Skipping stage '{stage.name}': {reason}")
            return step

        logger.info(f"=== STAGE: {stage.name} ===")
        isolate_stage(step, stage.action)
        return step

    # Catalog

    def _fetch_products(self) -> int:
        extractor = self.extractor
        products = extractor.fetch_products(self.config.categories, self.config.tags)
        if not products:
            logger.info("Primary catalog returned no products; trying basic catalog fetch")
            products = extractor.fetch_products_basic()
        if not products:
            raise NoProductsFoundError(f"No products found at {self.config.target_url}; aborting run")

        self.captured.products = products
        logger.info(f"Fetched {len(products)} products")
        return len(products)

    def _fetch_variations(self) -> int:
        parent_ids = [p.id for p in self.captured.products if p.has_variations]
        self.captured.variations = self.extractor.fetch_variations(parent_ids)
        logger.info(f"Fetched {len(self.captured.variations)} variations for {len(parent_ids)} products")
        return len(self.captured.variations)

    def _fetch_terms(self) -> int:
        self.captured.categories = self.extractor.fetch_categories()
        self.captured.tags = self.extractor.fetch_tags()
        return len(self.captured.categories) + len(self.captured.tags)

    def _download_product_images(self) -> int:
        cache = self._media_cache()
        for product in self.captured.products + self.captured.variations:
            self.cancellation.raise_if_cancelled()
            for url in product.images:
                reference = cache.resolve(url, "images")
                if reference is None:
                    continue
                if reference.relative_path not in product.image_paths:
                    product.image_paths.append(reference.relative_path)
                    product.local_image_paths.append(reference.absolute_path)
        logger.info(f"Product images: {len(cache)} cached files, {cache.download_count} downloads")
        return len(cache)

    def _media_cache(self) -> MediaCache:
        if self.media_cache is None:
            if self.config.platform == Platform.WOOCOMMERCE:
                self.media_cache = WordPressMediaCache(self.session, self.run.store_folder, self.cancellation)
            else:
                self.media_cache = MediaCache(self.session, self.run.store_folder, self.cancellation)
        return self.media_cache

    def _fetch_reviews(self) -> int:
        self.reviews = self.extractor.fetch_reviews([p.id for p in self.captured.products])
        return len(self.reviews)

    # Extensions

    def _capture_extensions(self) -> int:
        options = self.config.options
        extractor = self.extractor
        writer = ExtensionBundleWriter(self.session, self.run.store_folder, self.cancellation)

        if options.wants_plugins:
            self.plugins = extractor.fetch_plugins()
        if options.wants_themes:
            self.themes = extractor.fetch_themes()

        for index, extension in enumerate(self.plugins + self.themes, start=1):
            self.cancellation.raise_if_cancelled()
            slug = writer.unique_slug(extension, index)
            try:
                extractor.fetch_extension_details(extension, slug)
            except requests.RequestException as e:
                logger.warning(f"Could not read details for {extension.type} '{slug}': {e}")
            if not extension.download_url and extension.type in ("plugin", "theme"):
                found = self._directory_enricher().lookup(extension.type, extension.resolve_slug(index))
                if found.entry is not None and found.entry.download_url:
                    extension.download_url = found.entry.download_url

            artifact = writer.write(extension, index, slug=slug)
            if extension.type == "theme":
                self.captured.theme_bundles.append(artifact)
            else:
                self.captured.plugin_bundles.append(artifact)

        logger.info(f"Captured {len(self.plugins)} plugins and {len(self.themes)} themes")
        return len(self.plugins) + len(self.themes)

    def _detect_public_extensions(self) -> int:
        config = self.config
        detector = PublicExtensionDetector(self.session, self.cancellation)
        detection = detector.detect(
            config.target_url,
            additional_entry_urls=config.additional_extension_entry_urls,
            max_pages=config.public_extension_max_pages,
            max_bytes=config.public_extension_max_bytes,
        )
        self.footprints = detection.footprints
        self.detection_summary = detection.summary
        note = detection.summary.describe_limits()
        if note:
            self.run.notes.append(note)
        return len(self.footprints)

    def _directory_enricher(self) -> DirectoryEnricher:
        if self.enricher is None:
            self.enricher = DirectoryEnricher(
                self.directory_client, delay_seconds=self.config.directory_delay_seconds, sleep=self.sleep
            )
        return self.enricher

    def _enrich_footprints(self) -> int:
        enricher = self._directory_enricher()
        resolved = 0
        for footprint in self.footprints:
            self.cancellation.raise_if_cancelled()
            if enricher.enrich(footprint) == DirectoryLookupStatus.RESOLVED:
                resolved += 1
        logger.info(
            f"Directory enrichment resolved {resolved}/{len(self.footprints)} footprints "
            f"({enricher.lookup_count} lookups)"
        )
        return resolved

    # Design

    def _capture_design(self) -> int:
        config = self.config
        scanner = DesignSnapshotScanner(self.session, self.run.store_folder / "design", self.cancellation)
        self.design = scanner.snapshot(
            config.target_url,
            additional_page_urls=config.additional_design_page_urls,
            breakpoints=config.screenshot_breakpoints,
            take_screenshots=config.options.export_design_screenshots,
        )
        return len(self.design.assets)

    # Site content and configuration

    def _capture_site_content(self) -> int:
        content = self.extractor.fetch_site_content()
        cache = self._media_cache()

        for item in content.media:
            self.cancellation.raise_if_cancelled()
            reference = cache.resolve_library_item(item, "media")
            if reference is not None:
                content.media_paths[reference.source_url] = reference.relative_path

        # Library downloads complete before content references are resolved
        for item in content.pages + content.posts:
            for url in self._content_media_urls(item):
                self.cancellation.raise_if_cancelled()
                reference = cache.resolve(url, "media/content")
                if reference is not None:
                    content.media_paths[url] = reference.relative_path

        self.captured.site_content = content
        logger.info(
            f"Captured {len(content.pages)} pages, {len(content.posts)} posts, "
            f"{len(content.media)} media items ({len(content.media_paths)} files)"
        )
        return len(content.pages) + len(content.posts) + len(content.media)

    def _content_media_urls(self, item: Dict[str, Any]) -> List[str]:
        content = item.get("content")
        if isinstance(content, dict):
            content = content.get("raw") or content.get("rendered")
        if not content:
            return []
        base = item.get("link") or self.config.target_url
        soup = BeautifulSoup(content, "html.parser")
        urls = []
        for img in soup.find_all("img", src=True):
            src = img["src"].strip()
            if src and not src.startswith("data:"):
                urls.append(urljoin(base, src))
        return list(dict.fromkeys(urls))

    def _capture_configuration(self) -> int:
        configuration = self.extractor.fetch_store_configuration()
        self.captured.configuration = configuration
        return len(configuration.settings) + len(configuration.shipping_zones) + len(configuration.payment_gateways)

    def _fetch_records(self, entity: str) -> int:
        records = getattr(self.extractor, f"fetch_{entity}")()
        setattr(self.captured, entity, records)
        logger.info(f"Fetched {len(records)} {entity}")
        return len(records)

    # Deliverables

    def _formats(self) -> List[str]:
        options = self.config.options
        return [
            ext for ext, wanted in (
                ("csv", options.export_csv), ("xlsx", options.export_xlsx), ("jsonl", options.export_jsonl)
            ) if wanted
        ]

    def _write_exports(self) -> int:
        run = self.run
        folder = run.store_folder
        folder.mkdir(parents=True, exist_ok=True)
        options = self.config.options
        formats = self._formats()
        captured = self.captured
        written = []

        def export(artifact: str, rows, formats=formats):
            written.extend(write_formats(folder, run.file_prefix, artifact, rows, formats))

        export("products", product_rows(captured.products))
        export("variations", product_rows(captured.variations))
        if options.export_reviews:
            export("reviews", record_rows(self.reviews))

        plugin_formats = [f for f, on in (("csv", options.export_plugins_csv), ("jsonl", options.export_plugins_jsonl)) if on]
        theme_formats = [f for f, on in (("csv", options.export_themes_csv), ("jsonl", options.export_themes_jsonl)) if on]
        if self.plugins:
            export("plugins", extension_rows(self.plugins), plugin_formats)
        if self.themes:
            export("themes", extension_rows(self.themes), theme_formats)
        if self.footprints:
            export("public_extensions", footprint_rows(self.footprints))

        for entity in ("customers", "orders", "coupons", "subscriptions"):
            if getattr(options, f"export_{entity}"):
                export(entity, record_rows(getattr(captured, entity)))

        if captured.site_content is not None:
            content = captured.site_content
            export("pages", content.pages)
            export("posts", content.posts)
            content_folder = folder / "content"
            for name, document in (
                ("menus", content.menus),
                ("widgets", content.widgets),
                ("media", {"items": content.media, "files": content.media_paths}),
            ):
                written.append(write_json(content_folder / f"{name}.json", document))
        if captured.configuration is not None:
            written.append(write_json(run.artifact_path("store_configuration", "json"), captured.configuration.to_dict()))

        logger.info(f"Wrote {len(written)} export files to {folder}")
        return len(written)

    def _counts(self) -> Dict[str, int]:
        captured = self.captured
        counts = {
            "products": len(captured.products),
            "variations": len(captured.variations),
            "categories": len(captured.categories),
            "tags": len(captured.tags),
            "reviews": len(self.reviews),
            "product_images": len(self.media_cache) if self.media_cache is not None else 0,
            "customers": len(captured.customers),
            "orders": len(captured.orders),
            "coupons": len(captured.coupons),
            "subscriptions": len(captured.subscriptions),
        }
        if captured.site_content is not None:
            counts["pages"] = len(captured.site_content.pages)
            counts["posts"] = len(captured.site_content.posts)
            counts["media_items"] = len(captured.site_content.media)
        return counts

    def _write_report(self) -> int:
        design = self.design or DesignSnapshotResult()
        context = ReportContext(
            run=self.run,
            config=self.config,
            counts=self._counts(),
            plugins=self.plugins,
            themes=self.themes,
            footprints=self.footprints,
            detection_summary=self.detection_summary,
            design_assets=design.assets,
            colors=design.colors,
            screenshots=design.screenshots,
        )
        packager = ManualBundlePackager(self.run.store_folder, self.run.file_prefix)
        path = ManualReportBuilder().write(context, packager.report_path)
        self.run.report_path = str(path)
        return 1

    def _package_bundle(self) -> int:
        archive = ManualBundlePackager(self.run.store_folder, self.run.file_prefix).package()
        if archive is None:
            return 0
        self.run.archive_path = str(archive)
        return 1

    def build_snapshot(self) -> ProvisioningSnapshot:
        """Clone everything captured so far into an immutable snapshot."""
        return ProvisioningSnapshotBuilder().build(self.run.source_url, self.run.store_id, self.captured)
