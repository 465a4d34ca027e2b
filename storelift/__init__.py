"""
Storelift

A storefront migration toolkit that captures an e-commerce store's catalog,
extensions, design and content into a portable snapshot, and replays that
snapshot onto a target store.

Supports:
- WooCommerce sources (Store API, WordPress REST, plugin/theme introspection)
- Shopify sources (storefront catalog, admin-gated customers and orders)
- Content-addressed media caching
- Public plugin/theme footprint detection with directory enrichment
- Design snapshots with asset manifests
- Manual follow-up bundles and replay onto WooCommerce targets
"""

__version__ = "0.1.0"
