"""Migration execution models."""

import logging
import os
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


class MigrationError(Exception):
    """Base error for migration runs."""


class FatalRunError(MigrationError):
    """An error that aborts the whole run."""


class NoProductsFoundError(FatalRunError):
    """The catalog and its fallback both returned zero items."""


class Platform(str, Enum):
    """Source platform capability sets."""
    WOOCOMMERCE = "woocommerce"  # Store API, WordPress REST, plugin/theme introspection
    SHOPIFY = "shopify"  # Storefront API with admin/token auth


class MigrationStatus(str, Enum):
    """Status of a migration run."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class StageStatus(str, Enum):
    """Status of a single stage."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


_TOKEN_INVALID = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_token(value: str) -> str:
    """Reduce a string to a filesystem-safe token."""
    return _TOKEN_INVALID.sub("-", value or "").strip("-._")


def derive_store_id(url: str) -> str:
    """
    Build the store identifier from a source URL.

    Host and path segments are sanitized independently and joined with
    underscores, so https://shop.example.com/en/store/ becomes
    "shop.example.com_en_store".
    """
    candidate = url.strip()
    if "://" not in candidate:
        candidate = f"https://{candidate}"

    parsed = urlparse(candidate)
    parts = [sanitize_token(parsed.netloc.lower())]
    parts.extend(sanitize_token(segment) for segment in parsed.path.split("/"))
    token = "_".join(p for p in parts if p)
    return token or "store"


def parse_limit(value: Any, name: str) -> Optional[int]:
    """
    Parse a numeric crawl limit.

    Empty, non-numeric or non-positive input means unlimited (None); invalid
    input is logged as a configuration warning.
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None

    try:
        parsed = int(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid {name} value '{value}'; treating it as unlimited")
        return None

    if parsed <= 0:
        logger.warning(f"Non-positive {name} value '{value}'; treating it as unlimited")
        return None

    return parsed


@dataclass
class WordPressCredentials:
    """WordPress application password credentials."""
    username: str = ""
    application_password: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.username.strip() and self.application_password.strip())


@dataclass
class ShopifyCredentials:
    """Shopify API tokens."""
    admin_access_token: str = ""
    storefront_access_token: str = ""

    @property
    def has_admin_access(self) -> bool:
        return bool(self.admin_access_token.strip())


@dataclass
class TargetStoreCredentials:
    """WooCommerce REST credentials for the store being provisioned."""
    base_url: str = ""
    consumer_key: str = ""
    consumer_secret: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.base_url.strip() and self.consumer_key.strip() and self.consumer_secret.strip())


@dataclass
class RetrySettings:
    """Per-request HTTP retry settings."""
    enabled: bool = True
    attempts: int = 3
    base_delay: float = 1.0  # Seconds
    max_delay: float = 30.0  # Seconds

    @property
    def effective_attempts(self) -> int:
        return self.attempts if self.enabled else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "attempts": self.attempts,
            "base_delay": self.base_delay,
            "max_delay": self.max_delay,
        }


@dataclass
class ExportOptions:
    """Export flags selected for a run."""
    export_csv: bool = True
    download_product_images: bool = True
    export_xlsx: bool = False
    export_jsonl: bool = False
    export_reviews: bool = False
    export_plugins_csv: bool = False
    export_plugins_jsonl: bool = False
    export_themes_csv: bool = False
    export_themes_jsonl: bool = False
    export_public_extension_footprints: bool = False
    export_public_design_snapshot: bool = False
    export_design_screenshots: bool = False
    export_site_content: bool = False
    export_store_configuration: bool = False
    export_customers: bool = False
    export_orders: bool = False
    export_coupons: bool = False
    export_subscriptions: bool = False

    @property
    def wants_plugins(self) -> bool:
        return self.export_plugins_csv or self.export_plugins_jsonl

    @property
    def wants_themes(self) -> bool:
        return self.export_themes_csv or self.export_themes_jsonl

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExportOptions":
        known = {k: bool(v) for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class MigrationConfig:
    """Configuration for a migration run."""
    target_url: str
    platform: Platform = Platform.WOOCOMMERCE
    options: ExportOptions = field(default_factory=ExportOptions)
    retry: RetrySettings = field(default_factory=RetrySettings)
    output_root: str = "./output"

    # Filters
    categories: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)

    # Credentials
    wordpress: WordPressCredentials = field(default_factory=WordPressCredentials)
    shopify: ShopifyCredentials = field(default_factory=ShopifyCredentials)
    target: TargetStoreCredentials = field(default_factory=TargetStoreCredentials)

    # Crawl and enrichment options
    additional_extension_entry_urls: List[str] = field(default_factory=list)
    additional_design_page_urls: List[str] = field(default_factory=list)
    screenshot_breakpoints: List[str] = field(default_factory=lambda: ["desktop:1440x900", "mobile:390x844"])
    public_extension_max_pages: Optional[int] = 75
    public_extension_max_bytes: Optional[int] = None
    directory_delay_seconds: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation (secrets omitted)."""
        return {
            "target_url": self.target_url,
            "platform": self.platform.value,
            "options": self.options.to_dict(),
            "retry": self.retry.to_dict(),
            "output_root": self.output_root,
            "categories": self.categories,
            "tags": self.tags,
            "has_wordpress_credentials": self.wordpress.is_complete,
            "has_shopify_admin_token": self.shopify.has_admin_access,
            "additional_extension_entry_urls": self.additional_extension_entry_urls,
            "additional_design_page_urls": self.additional_design_page_urls,
            "screenshot_breakpoints": self.screenshot_breakpoints,
            "public_extension_max_pages": self.public_extension_max_pages,
            "public_extension_max_bytes": self.public_extension_max_bytes,
            "directory_delay_seconds": self.directory_delay_seconds,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MigrationConfig":
        """Create from dictionary representation."""
        retry_data = data.get("retry", {})
        wp_data = data.get("wordpress", {})
        shopify_data = data.get("shopify", {})
        target_data = data.get("target", {})

        return cls(
            target_url=data.get("target_url", ""),
            platform=Platform(data.get("platform", "woocommerce")),
            options=ExportOptions.from_dict(data.get("options", {})),
            retry=RetrySettings(
                enabled=retry_data.get("enabled", True),
                attempts=int(retry_data.get("attempts", 3)),
                base_delay=float(retry_data.get("base_delay", 1.0)),
                max_delay=float(retry_data.get("max_delay", 30.0)),
            ),
            output_root=data.get("output_root", "./output"),
            categories=list(data.get("categories", [])),
            tags=list(data.get("tags", [])),
            wordpress=WordPressCredentials(
                username=wp_data.get("username", ""),
                application_password=wp_data.get("application_password", ""),
            ),
            shopify=ShopifyCredentials(
                admin_access_token=shopify_data.get("admin_access_token", ""),
                storefront_access_token=shopify_data.get("storefront_access_token", ""),
            ),
            target=TargetStoreCredentials(
                base_url=target_data.get("base_url", ""),
                consumer_key=target_data.get("consumer_key", ""),
                consumer_secret=target_data.get("consumer_secret", ""),
            ),
            additional_extension_entry_urls=list(data.get("additional_extension_entry_urls", [])),
            additional_design_page_urls=list(data.get("additional_design_page_urls", [])),
            screenshot_breakpoints=list(
                data.get("screenshot_breakpoints", ["desktop:1440x900", "mobile:390x844"])
            ),
            public_extension_max_pages=parse_limit(
                data.get("public_extension_max_pages", 75), "public extension page limit"
            ),
            public_extension_max_bytes=parse_limit(
                data.get("public_extension_max_bytes"), "public extension byte limit"
            ),
            directory_delay_seconds=float(data.get("directory_delay_seconds", 1.0)),
        )

    def apply_environment(self) -> None:
        """Fill blank credentials from STORELIFT_* environment variables."""
        self.wordpress.username = self.wordpress.username or os.environ.get("STORELIFT_WP_USERNAME", "")
        self.wordpress.application_password = (
            self.wordpress.application_password or os.environ.get("STORELIFT_WP_APP_PASSWORD", "")
        )
        self.shopify.admin_access_token = (
            self.shopify.admin_access_token or os.environ.get("STORELIFT_SHOPIFY_ADMIN_TOKEN", "")
        )
        self.shopify.storefront_access_token = (
            self.shopify.storefront_access_token or os.environ.get("STORELIFT_SHOPIFY_STOREFRONT_TOKEN", "")
        )
        self.target.base_url = self.target.base_url or os.environ.get("STORELIFT_TARGET_URL", "")
        self.target.consumer_key = self.target.consumer_key or os.environ.get("STORELIFT_TARGET_CONSUMER_KEY", "")
        self.target.consumer_secret = (
            self.target.consumer_secret or os.environ.get("STORELIFT_TARGET_CONSUMER_SECRET", "")
        )


@dataclass
class MigrationStep:
    """A single stage of a migration run."""
    name: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: StageStatus = StageStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    records_processed: int = 0
    skip_reason: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "records_processed": self.records_processed,
            "skip_reason": self.skip_reason,
            "errors": self.errors,
            "warnings": self.warnings,
        }

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None


@dataclass
class MigrationRun:
    """One execution of the pipeline against one source store."""
    source_url: str
    output_root: str
    store_id: str = ""
    timestamp: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: MigrationStatus = MigrationStatus.PENDING

    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    steps: List[MigrationStep] = field(default_factory=list)
    missing_credentials: List[str] = field(default_factory=list)  # MissingCredentialNote entries
    notes: List[str] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    report_path: Optional[str] = None
    archive_path: Optional[str] = None

    def __post_init__(self):
        if not self.store_id:
            self.store_id = derive_store_id(self.source_url)
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")

    @property
    def store_folder(self) -> Path:
        return Path(self.output_root) / self.store_id

    @property
    def file_prefix(self) -> str:
        return f"{self.store_id}_{self.timestamp}"

    def artifact_path(self, artifact: str, ext: str) -> Path:
        """Path of a generated deliverable: {storeId}_{timestamp}_{artifact}.{ext}"""
        return self.store_folder / f"{self.file_prefix}_{artifact}.{ext}"

    def add_step(self, name: str) -> MigrationStep:
        """Add a new step to the run."""
        step = MigrationStep(name=name)
        self.steps.append(step)
        return step

    def get_step(self, name: str) -> Optional[MigrationStep]:
        """Get a step by name."""
        for step in self.steps:
            if step.name == name:
                return step
        return None

    def add_missing_credential(self, note: str) -> None:
        if note not in self.missing_credentials:
            self.missing_credentials.append(note)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "source_url": self.source_url,
            "store_id": self.store_id,
            "timestamp": self.timestamp,
            "output_root": self.output_root,
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "steps": [s.to_dict() for s in self.steps],
            "missing_credentials": self.missing_credentials,
            "notes": self.notes,
            "errors": self.errors,
            "report_path": self.report_path,
            "archive_path": self.archive_path,
        }


@dataclass
class RunResult:
    """Outcome of a completed orchestrator run."""
    run: MigrationRun
    snapshot: Optional[Any] = None  # ProvisioningSnapshot when at least one product was captured

    @property
    def has_snapshot(self) -> bool:
        return self.snapshot is not None

    def to_dict(self) -> Dict[str, Any]:
        data = self.run.to_dict()
        data["has_snapshot"] = self.has_snapshot
        return data
