"""Fetch collaborators for source stores and public pages."""

from .base import BaseStoreExtractor
from .woocommerce import WooCommerceExtractor
from .shopify import ShopifyExtractor
from .footprints import PublicExtensionDetector, DetectionResult
from .design import DesignSnapshotScanner, DesignSnapshotResult

__all__ = [
    "BaseStoreExtractor",
    "WooCommerceExtractor",
    "ShopifyExtractor",
    "PublicExtensionDetector",
    "DetectionResult",
    "DesignSnapshotScanner",
    "DesignSnapshotResult",
]
