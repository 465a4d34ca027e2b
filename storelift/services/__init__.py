"""Service layer for the migration pipeline."""

from .cancellation import CancellationToken, RunCancelled
from .retry import RetryPolicy, create_session
from .media_cache import MediaCache, WordPressMediaCache
from .directory import DirectoryEnricher, WordPressDirectoryClient
from .design_assets import DesignAssetCapture
from .extensions import ExtensionBundleWriter
from .snapshot import ProvisioningSnapshot, ProvisioningSnapshotBuilder, VariableProduct
from .bundle import ManualBundlePackager
from .report import ManualReportBuilder, ReportContext

__all__ = [
    "CancellationToken",
    "RunCancelled",
    "RetryPolicy",
    "create_session",
    "MediaCache",
    "WordPressMediaCache",
    "DirectoryEnricher",
    "WordPressDirectoryClient",
    "DesignAssetCapture",
    "ExtensionBundleWriter",
    "ProvisioningSnapshot",
    "ProvisioningSnapshotBuilder",
    "VariableProduct",
    "ManualBundlePackager",
    "ManualReportBuilder",
    "ReportContext",
]
