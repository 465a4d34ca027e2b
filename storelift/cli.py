"""Command line entry point for storelift."""

import argparse
import json
import logging
import sys
from pathlib import Path

from .models.migration import MigrationConfig, MigrationStatus, Platform, RetrySettings, parse_limit
from .models.record import DirectoryLookupStatus
from .loaders.replay import ReplayDriver
from .loaders.woocommerce_loader import WooCommerceProvisioner
from .orchestrator import MigrationOrchestrator
from .services.bundle import ManualBundlePackager
from .services.directory import DirectoryEnricher, WordPressDirectoryClient
from .services.retry import create_session

logger = logging.getLogger(__name__)


def main(argv=None):
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="storelift - capture an e-commerce store into a portable snapshot"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Capture run
    run_parser = subparsers.add_parser("run", help="Capture a store")
    _add_run_arguments(run_parser)

    # Capture and replay
    replay_parser = subparsers.add_parser("replay", help="Capture a store and replay it onto a target store")
    _add_run_arguments(replay_parser)
    replay_parser.add_argument("--target-store", help="Target WooCommerce store URL")
    replay_parser.add_argument("--consumer-key", help="Target store consumer key")
    replay_parser.add_argument("--consumer-secret", help="Target store consumer secret")
    replay_parser.add_argument("--include-configuration", action="store_true", help="Apply store configuration")
    replay_parser.add_argument("--dry-run", action="store_true", help="Simulate without changes")

    # Re-package an existing store folder
    package_parser = subparsers.add_parser("package", help="Bundle manual follow-up deliverables")
    package_parser.add_argument("--store-folder", required=True, help="Store-scoped output folder")
    package_parser.add_argument("--prefix", required=True, help="Run file prefix ({storeId}_{timestamp})")
    package_parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    # Directory lookups
    enrich_parser = subparsers.add_parser("enrich", help="Look up plugin/theme slugs in the WordPress.org directory")
    enrich_parser.add_argument("--plugin", action="append", default=[], help="Plugin slug (repeatable)")
    enrich_parser.add_argument("--theme", action="append", default=[], help="Theme slug (repeatable)")
    enrich_parser.add_argument("--delay", type=float, default=1.0, help="Seconds between lookups")
    enrich_parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    # HTTP API
    serve_parser = subparsers.add_parser("serve", help="Serve the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")
    serve_parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    args = parser.parse_args(argv)

    # Set up logging
    log_level = logging.DEBUG if getattr(args, "verbose", False) else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    if args.command == "run":
        return run_capture(args)
    elif args.command == "replay":
        return run_replay(args)
    elif args.command == "package":
        return run_package(args)
    elif args.command == "enrich":
        return run_enrich(args)
    elif args.command == "serve":
        return run_server(args)
    parser.print_help()
    return 1


def _add_run_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("url", nargs="?", help="Source store URL")
    parser.add_argument("--config", help="Path to a JSON run config file")
    parser.add_argument("--platform", choices=[p.value for p in Platform], help="Source platform")
    parser.add_argument("--output", help="Output root folder")
    parser.add_argument("--category", action="append", default=[], help="Category slug filter (repeatable)")
    parser.add_argument("--tag", action="append", default=[], help="Tag slug filter (repeatable)")
    parser.add_argument("--export", action="append", default=[], metavar="FLAG",
                        help="Enable an export flag, e.g. --export reviews --export plugins_csv")
    parser.add_argument("--max-pages", help="Public extension crawl page limit")
    parser.add_argument("--max-bytes", help="Public extension crawl byte limit")
    parser.add_argument("--retries", type=int, help="HTTP retry attempts (0 disables retries)")
    parser.add_argument("--no-retry", action="store_true", help="Disable HTTP retries")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")


def load_config(args) -> MigrationConfig:
    """Build the run config from the config file and command line overrides."""
    data = {}
    if args.config:
        with open(args.config) as f:
            data = json.load(f)

    config = MigrationConfig.from_dict(data)
    if args.url:
        config.target_url = args.url
    if args.platform:
        config.platform = Platform(args.platform)
    if args.output:
        config.output_root = args.output
    if args.category:
        config.categories = args.category
    if args.tag:
        config.tags = args.tag

    for flag in args.export:
        name = flag if flag.startswith("export_") or flag == "download_product_images" else f"export_{flag}"
        if not hasattr(config.options, name):
            raise SystemExit(f"Unknown export flag: {flag}")
        setattr(config.options, name, True)

    if args.max_pages is not None:
        config.public_extension_max_pages = parse_limit(args.max_pages, "public extension page limit")
    if args.max_bytes is not None:
        config.public_extension_max_bytes = parse_limit(args.max_bytes, "public extension byte limit")
    if args.no_retry:
        config.retry = RetrySettings(enabled=False)
    elif args.retries is not None:
        config.retry.attempts = args.retries

    config.apply_environment()
    if not config.target_url:
        raise SystemExit("A source store URL is required (positional argument or target_url in --config)")
    return config


def _print_summary(result) -> None:
    run = result.run
    print("\n" + "=" * 60)
    print("RUN COMPLETE")
    print("=" * 60)
    print(f"Status: {run.status.value}")
    print(f"Store folder: {run.store_folder}")
    for step in run.steps:
        print(f"  {step.name}: {step.status.value}")
    for note in run.missing_credentials:
        print(f"Missing credentials: {note}")
    if run.report_path:
        print(f"Report: {run.report_path}")
    if run.archive_path:
        print(f"Archive: {run.archive_path}")
    if run.duration_seconds:
        print(f"Duration: {run.duration_seconds:.2f} seconds")


def run_capture(args) -> int:
    """Capture a store from the command line."""
    config = load_config(args)
    result = MigrationOrchestrator(config).run_migration()
    _print_summary(result)
    return 0 if result.run.status == MigrationStatus.COMPLETED else 1


def run_replay(args) -> int:
    """Capture a store, then replay its snapshot onto the target store."""
    config = load_config(args)
    if args.target_store:
        config.target.base_url = args.target_store
    if args.consumer_key:
        config.target.consumer_key = args.consumer_key
    if args.consumer_secret:
        config.target.consumer_secret = args.consumer_secret
    if not config.target.is_complete:
        raise SystemExit("Target store URL, consumer key and consumer secret are required for replay")

    result = MigrationOrchestrator(config).run_migration()
    _print_summary(result)
    if not result.has_snapshot:
        print("No snapshot was produced; nothing to replay")
        return 1

    session = create_session(config.retry)
    try:
        provisioner = WooCommerceProvisioner(config.target, session, dry_run=args.dry_run)
        replay = ReplayDriver(provisioner).replay(result.snapshot, include_configuration=args.include_configuration)
    finally:
        session.close()

    print(json.dumps(replay.to_dict(), indent=2, default=str))
    return 0 if replay.total_failed == 0 else 1


def run_package(args) -> int:
    """Re-build the manual bundle of an existing store folder."""
    packager = ManualBundlePackager(Path(args.store_folder), args.prefix)
    archive = packager.package()
    if archive is None:
        print("Nothing to bundle")
        return 1
    print(f"Archive: {archive}")
    return 0


def run_enrich(args) -> int:
    """Look up slugs in the WordPress.org directory."""
    session = create_session()
    try:
        enricher = DirectoryEnricher(WordPressDirectoryClient(session), delay_seconds=args.delay)
        results = []
        for extension_type, slugs in (("plugin", args.plugin), ("theme", args.theme)):
            for slug in slugs:
                found = enricher.lookup(extension_type, slug)
                entry = found.entry
                results.append({
                    "type": extension_type,
                    "slug": slug,
                    "status": found.status.value,
                    "title": entry.title if entry else None,
                    "author": entry.author if entry else None,
                    "version": entry.version if entry else None,
                    "download_url": entry.download_url if entry else None,
                    "error": found.error,
                })
    finally:
        session.close()

    print(json.dumps(results, indent=2))
    return 0 if all(r["status"] != DirectoryLookupStatus.LOOKUP_ERROR.value for r in results) else 1


def run_server(args) -> int:
    """Serve the HTTP API with uvicorn."""
    import uvicorn

    uvicorn.run("storelift.api.main:app", host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
