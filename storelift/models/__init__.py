"""Data models for the migration pipeline."""

from .migration import (
    MigrationConfig,
    MigrationRun,
    MigrationStep,
    MigrationStatus,
    StageStatus,
    Platform,
    ExportOptions,
    RetrySettings,
    WordPressCredentials,
    ShopifyCredentials,
    TargetStoreCredentials,
    RunResult,
    MigrationError,
    FatalRunError,
    NoProductsFoundError,
    derive_store_id,
    parse_limit,
)
from .record import (
    StoreProduct,
    StoreRecord,
    TermItem,
    MediaReference,
    StoreConfiguration,
    SiteContent,
    InstalledExtension,
    ExtensionArtifact,
    ExtensionFootprint,
    DirectoryLookupStatus,
    DirectoryLookupResult,
    DirectoryEntry,
    DetectionSummary,
    slugify,
)

__all__ = [
    "MigrationConfig",
    "MigrationRun",
    "MigrationStep",
    "MigrationStatus",
    "StageStatus",
    "Platform",
    "ExportOptions",
    "RetrySettings",
    "WordPressCredentials",
    "ShopifyCredentials",
    "TargetStoreCredentials",
    "RunResult",
    "MigrationError",
    "FatalRunError",
    "NoProductsFoundError",
    "derive_store_id",
    "parse_limit",
    "StoreProduct",
    "StoreRecord",
    "TermItem",
    "MediaReference",
    "StoreConfiguration",
    "SiteContent",
    "InstalledExtension",
    "ExtensionArtifact",
    "ExtensionFootprint",
    "DirectoryLookupStatus",
    "DirectoryLookupResult",
    "DirectoryEntry",
    "DetectionSummary",
    "slugify",
]
