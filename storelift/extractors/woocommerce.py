"""WooCommerce / WordPress fetch collaborator."""

import logging
from typing import Any, Dict, Iterator, List, Optional

import requests
from requests.auth import HTTPBasicAuth

from .base import BaseStoreExtractor
from ..models.migration import WordPressCredentials
from ..models.record import (
    InstalledExtension,
    SiteContent,
    StoreConfiguration,
    StoreProduct,
    StoreRecord,
    TermItem,
)
from ..services.cancellation import CancellationToken

logger = logging.getLogger(__name__)


def map_term(item: Dict[str, Any]) -> TermItem:
    return TermItem(
        id=int(item.get("id") or 0),
        name=item.get("name") or "",
        slug=item.get("slug") or "",
        parent=int(item.get("parent") or 0),
        count=int(item.get("count") or 0),
    )


def map_store_product(item: Dict[str, Any]) -> StoreProduct:
    """Map a Store API product payload."""
    prices = item.get("prices") or {}
    parent = item.get("parent")
    return StoreProduct(
        id=int(item.get("id") or 0),
        name=item.get("name") or "",
        slug=item.get("slug") or "",
        type=item.get("type") or "simple",
        parent_id=int(parent) if parent else None,
        sku=item.get("sku") or "",
        permalink=item.get("permalink") or "",
        price=prices.get("price"),
        images=[img["src"] for img in item.get("images") or [] if img.get("src")],
        categories=[map_term(c) for c in item.get("categories") or []],
        tags=[map_term(t) for t in item.get("tags") or []],
        data=item,
    )


def map_wp_product(item: Dict[str, Any]) -> StoreProduct:
    """Map a WordPress REST ``product`` post (basic fallback)."""
    images = []
    media = (item.get("_embedded") or {}).get("wp:featuredmedia") or []
    if media and media[0].get("source_url"):
        images.append(media[0]["source_url"])

    return StoreProduct(
        id=int(item.get("id") or 0),
        name=(item.get("title") or {}).get("rendered") or "",
        slug=item.get("slug") or "",
        type="simple",
        permalink=item.get("link") or "",
        images=images,
        data=item,
    )


class WooCommerceExtractor(BaseStoreExtractor):
    """
    Extractor for WooCommerce sources.

    Supports:
    - Store API catalog, variations, categories, tags and reviews
    - WordPress REST fallback catalog
    - Authenticated plugin/theme introspection (application passwords)
    - Pages, posts, media, menus and widgets
    - Settings, shipping zones and payment gateways
    - Customers, orders, coupons and subscriptions
    """

    platform = "woocommerce"

    STORE_API = "/wp-json/wc/store/v1"
    WP_API = "/wp-json/wp/v2"
    WC_API = "/wp-json/wc/v3"
    EXTENSION_API = "/wp-json/storelift/v1"

    PER_PAGE = 100
    MAX_PAGES = 100
    VARIATION_CHUNK = 20
    REVIEW_CHUNK = 20
    SETTINGS_GROUPS = ("general", "products", "tax", "shipping", "checkout", "account", "email")

    def __init__(
        self,
        base_url: str,
        session: requests.Session,
        credentials: Optional[WordPressCredentials] = None,
        cancellation: Optional[CancellationToken] = None,
        timeout: float = 30.0,
    ):
        super().__init__(base_url, session, cancellation, timeout)
        self.credentials = credentials or WordPressCredentials()

    @property
    def has_credentials(self) -> bool:
        return self.credentials.is_complete

    @property
    def auth(self) -> Optional[HTTPBasicAuth]:
        if not self.has_credentials:
            return None
        return HTTPBasicAuth(self.credentials.username.strip(), self.credentials.application_password.strip())

    def _require_auth(self, capability: str) -> HTTPBasicAuth:
        auth = self.auth
        if auth is None:
            raise PermissionError(f"WordPress credentials are required for {capability}")
        return auth

    def _paged(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        auth: Optional[HTTPBasicAuth] = None,
        per_page: Optional[int] = None,
    ) -> Iterator[Dict[str, Any]]:
        """Yield items across ``page=1..n`` until a short or empty page."""
        per_page = per_page or self.PER_PAGE
        for page in range(1, self.MAX_PAGES + 1):
            query = dict(params or {})
            query.update({"per_page": per_page, "page": page})

            response = self.get(path, params=query, auth=auth)
            if response.status_code == 404 or (response.status_code == 400 and page > 1):
                break
            response.raise_for_status()

            items = response.json() if response.content else []
            if not isinstance(items, list) or not items:
                break

            yield from items

            if len(items) < per_page:
                break

    # Catalog

    def fetch_products(self, categories: Optional[List[str]] = None, tags: Optional[List[str]] = None) -> List[StoreProduct]:
        params = {}
        if categories:
            params["category"] = ",".join(categories)
        if tags:
            params["tag"] = ",".join(tags)

        products: List[StoreProduct] = []
        try:
            for item in self._paged(f"{self.STORE_API}/products", params):
                products.append(map_store_product(item))
        except (requests.RequestException, ValueError) as e:
            self.add_error(f"Store API request failed: {e}")

        logger.info(f"Fetched {len(products)} products from the Store API")
        return products

    def fetch_products_basic(self) -> List[StoreProduct]:
        products: List[StoreProduct] = []
        try:
            for item in self._paged(f"{self.WP_API}/product", {"_embed": 1}):
                products.append(map_wp_product(item))
        except (requests.RequestException, ValueError) as e:
            self.add_error(f"WP REST request failed: {e}")

        logger.info(f"Fetched {len(products)} products from the WordPress REST fallback")
        return products

    def fetch_variations(self, parent_ids: List[int]) -> List[StoreProduct]:
        ids = list(dict.fromkeys(parent_ids))
        variations: List[StoreProduct] = []
        for start in range(0, len(ids), self.VARIATION_CHUNK):
            chunk = ids[start:start + self.VARIATION_CHUNK]
            params = {"type": "variation", "parent": ",".join(str(i) for i in chunk)}
            for item in self._paged(f"{self.STORE_API}/products", params):
                variation = map_store_product(item)
                if variation.parent_id is None and len(chunk) == 1:
                    variation.parent_id = chunk[0]
                variations.append(variation)
        return variations

    def fetch_categories(self) -> List[TermItem]:
        items = self.get_json(f"{self.STORE_API}/products/categories") or []
        return [map_term(item) for item in items]

    def fetch_tags(self) -> List[TermItem]:
        items = self.get_json(f"{self.STORE_API}/products/tags") or []
        return [map_term(item) for item in items]

    def fetch_reviews(self, product_ids: List[int]) -> List[StoreRecord]:
        ids = list(dict.fromkeys(product_ids))
        reviews: List[StoreRecord] = []
        for start in range(0, len(ids), self.REVIEW_CHUNK):
            chunk = ids[start:start + self.REVIEW_CHUNK]
            params = {"product_id": ",".join(str(i) for i in chunk), "per_page": self.PER_PAGE}
            response = self.get(f"{self.STORE_API}/products/reviews", params=params)
            if not response.ok:
                self.add_warning(f"Reviews request for products {params['product_id']} returned HTTP {response.status_code}")
                continue
            for item in response.json() or []:
                reviews.append(StoreRecord(id=str(item.get("id", "")), entity="review", data=item))
        return reviews

    # Extensions

    def fetch_plugins(self) -> List[InstalledExtension]:
        auth = self._require_auth("plugin inventory")
        items = self.get_json(f"{self.WP_API}/plugins", auth=auth) or []

        plugins = []
        for item in items:
            plugin_file = item.get("plugin") or ""
            plugin_type = "mu-plugin" if item.get("status") == "must-use" else "plugin"
            plugins.append(InstalledExtension(
                type=plugin_type,
                name=_rendered(item.get("name")),
                plugin_file=plugin_file if plugin_file.endswith(".php") else f"{plugin_file}.php",
                version=item.get("version") or "",
                status=item.get("status") or "",
                data=item,
            ))
        return plugins

    def fetch_themes(self) -> List[InstalledExtension]:
        auth = self._require_auth("theme inventory")
        items = self.get_json(f"{self.WP_API}/themes", auth=auth) or []

        themes = []
        for item in items:
            themes.append(InstalledExtension(
                type="theme",
                name=_rendered(item.get("name")),
                stylesheet=item.get("stylesheet") or "",
                version=item.get("version") or "",
                status=item.get("status") or "",
                data=item,
            ))
        return themes

    def fetch_extension_details(self, extension: InstalledExtension, slug: str) -> None:
        """
        Load options and asset URLs for an extension from the companion endpoint.

        Sites without the companion plugin answer 404; the extension is left
        with empty options in that case.
        """
        auth = self._require_auth("extension options")
        scope = "themes" if extension.type == "theme" else "plugins"
        response = self.get(f"{self.EXTENSION_API}/{scope}/{slug}", auth=auth)
        if response.status_code == 404:
            logger.debug(f"No companion details for {extension.type} '{slug}'")
            return
        response.raise_for_status()

        data = response.json() or {}
        extension.options = dict(data.get("options") or {})
        extension.asset_urls = [u for u in data.get("assets") or [] if isinstance(u, str)]
        extension.download_url = data.get("download_url") or extension.download_url

    # Site content

    def fetch_site_content(self) -> SiteContent:
        auth = self._require_auth("site content")
        content = SiteContent(
            pages=list(self._paged(f"{self.WP_API}/pages", {"context": "edit"}, auth=auth)),
            posts=list(self._paged(f"{self.WP_API}/posts", {"context": "edit"}, auth=auth)),
            media=list(self._paged(f"{self.WP_API}/media", auth=auth)),
        )
        content.menus = self._optional_list(f"{self.WP_API}/menus", auth)
        content.widgets = self._optional_list(f"{self.WP_API}/widgets", auth)
        return content

    def _optional_list(self, path: str, auth: HTTPBasicAuth) -> List[Dict[str, Any]]:
        response = self.get(path, auth=auth)
        if response.status_code in (401, 403, 404):
            self.add_warning(f"{path} unavailable (HTTP {response.status_code})")
            return []
        response.raise_for_status()
        items = response.json()
        return items if isinstance(items, list) else []

    # Store configuration

    def fetch_store_configuration(self) -> StoreConfiguration:
        auth = self._require_auth("store configuration")
        configuration = StoreConfiguration()

        for group in self.SETTINGS_GROUPS:
            response = self.get(f"{self.WC_API}/settings/{group}", auth=auth)
            if not response.ok:
                self.add_warning(f"Settings group '{group}' unavailable (HTTP {response.status_code})")
                continue
            configuration.settings[group] = response.json() or []

        zones = self.get_json(f"{self.WC_API}/shipping/zones", auth=auth) or []
        for zone in zones:
            zone_id = zone.get("id")
            zone["locations"] = self.get_json(f"{self.WC_API}/shipping/zones/{zone_id}/locations", auth=auth) or []
            zone["methods"] = self.get_json(f"{self.WC_API}/shipping/zones/{zone_id}/methods", auth=auth) or []
        configuration.shipping_zones = zones
        configuration.payment_gateways = self.get_json(f"{self.WC_API}/payment_gateways", auth=auth) or []
        return configuration

    # Customers, orders, coupons, subscriptions

    def _records(self, path: str, entity: str) -> List[StoreRecord]:
        auth = self._require_auth(f"{entity} export")
        return [
            StoreRecord(id=str(item.get("id", "")), entity=entity, data=item)
            for item in self._paged(path, auth=auth)
        ]

    def fetch_customers(self) -> List[StoreRecord]:
        return self._records(f"{self.WC_API}/customers", "customer")

    def fetch_orders(self) -> List[StoreRecord]:
        return self._records(f"{self.WC_API}/orders", "order")

    def fetch_coupons(self) -> List[StoreRecord]:
        return self._records(f"{self.WC_API}/coupons", "coupon")

    def fetch_subscriptions(self) -> List[StoreRecord]:
        return self._records(f"{self.WC_API}/subscriptions", "subscription")


def _rendered(value: Any) -> str:
    """Plugin/theme names arrive either as strings or as ``{"rendered": ...}``."""
    if isinstance(value, dict):
        return value.get("rendered") or value.get("raw") or ""
    return value or ""
