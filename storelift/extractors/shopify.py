"""Shopify fetch collaborator."""

import logging
from typing import Any, Dict, Iterator, List, Optional

import requests

from .base import BaseStoreExtractor
from ..models.migration import ShopifyCredentials
from ..models.record import StoreProduct, StoreRecord, TermItem, slugify
from ..services.cancellation import CancellationToken

logger = logging.getLogger(__name__)


def map_shopify_product(item: Dict[str, Any]) -> StoreProduct:
    """Map a Shopify product; products with more than one variant are variable."""
    variants = item.get("variants") or []
    first_price = variants[0].get("price") if variants else None
    tags = item.get("tags") or []
    if isinstance(tags, str):
        tags = [t.strip() for t in tags.split(",") if t.strip()]

    product_type = item.get("product_type") or ""
    return StoreProduct(
        id=int(item.get("id") or 0),
        name=item.get("title") or "",
        slug=item.get("handle") or slugify(item.get("title")),
        type="variable" if len(variants) > 1 else "simple",
        sku=(variants[0].get("sku") or "") if len(variants) == 1 else "",
        price=str(first_price) if first_price is not None else None,
        images=[img["src"] for img in item.get("images") or [] if img.get("src")],
        categories=[TermItem(id=0, name=product_type, slug=slugify(product_type))] if product_type else [],
        tags=[TermItem(id=0, name=t, slug=slugify(t)) for t in tags],
        data=item,
    )


def map_shopify_variant(product: Dict[str, Any], variant: Dict[str, Any]) -> StoreProduct:
    image_src = None
    image_id = variant.get("image_id")
    for image in product.get("images") or []:
        if image_id and image.get("id") == image_id:
            image_src = image.get("src")

    return StoreProduct(
        id=int(variant.get("id") or 0),
        name=f"{product.get('title') or ''} - {variant.get('title') or ''}".strip(" -"),
        slug=f"{product.get('handle') or ''}-{variant.get('id')}",
        type="variation",
        parent_id=int(product.get("id") or 0),
        sku=variant.get("sku") or "",
        price=str(variant["price"]) if variant.get("price") is not None else None,
        images=[image_src] if image_src else [],
        data=variant,
    )


class ShopifyExtractor(BaseStoreExtractor):
    """
    Extractor for Shopify sources.

    The public ``products.json`` catalog is used unless an admin token is
    configured, in which case the Admin REST API (cursor pagination through
    ``Link`` headers) is used and customers/orders become available.
    """

    platform = "shopify"

    API_VERSION = "2024-01"
    PAGE_SIZE = 250
    MAX_PAGES = 200

    def __init__(
        self,
        base_url: str,
        session: requests.Session,
        credentials: Optional[ShopifyCredentials] = None,
        cancellation: Optional[CancellationToken] = None,
        timeout: float = 30.0,
    ):
        super().__init__(base_url, session, cancellation, timeout)
        self.credentials = credentials or ShopifyCredentials()
        self._raw_products: List[Dict[str, Any]] = []

    @property
    def has_admin_access(self) -> bool:
        return self.credentials.has_admin_access

    def _admin_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.has_admin_access:
            headers["X-Shopify-Access-Token"] = self.credentials.admin_access_token.strip()
        return headers

    def _admin_url(self, resource: str) -> str:
        return f"{self.base_url}/admin/api/{self.API_VERSION}/{resource}.json"

    def _admin_paged(self, resource: str, key: str, params: Optional[Dict[str, Any]] = None) -> Iterator[Dict[str, Any]]:
        url = self._admin_url(resource)
        query: Optional[Dict[str, Any]] = dict(params or {}, limit=self.PAGE_SIZE)
        for _ in range(self.MAX_PAGES):
            response = self.get(url, params=query, headers=self._admin_headers())
            response.raise_for_status()
            items = (response.json() or {}).get(key) or []
            if not items:
                break
            yield from items

            next_link = response.links.get("next", {}).get("url")
            if not next_link:
                break
            url, query = next_link, None

    def _public_paged(self, path: str, key: str) -> Iterator[Dict[str, Any]]:
        for page in range(1, self.MAX_PAGES + 1):
            response = self.get(path, params={"limit": self.PAGE_SIZE, "page": page})
            if response.status_code == 404:
                break
            response.raise_for_status()
            items = (response.json() or {}).get(key) or []
            if not items:
                break
            yield from items
            if len(items) < self.PAGE_SIZE:
                break

    def fetch_products(self, categories: Optional[List[str]] = None, tags: Optional[List[str]] = None) -> List[StoreProduct]:
        try:
            if self.has_admin_access:
                raw = list(self._admin_paged("products", "products"))
            else:
                raw = list(self._public_paged("/products.json", "products"))
        except (requests.RequestException, ValueError) as e:
            self.add_error(f"Shopify products request failed: {e}")
            raw = []

        products = [map_shopify_product(item) for item in raw]
        if categories:
            wanted = {slugify(c) for c in categories}
            products = [p for p in products if any(c.slug in wanted for c in p.categories)]
        if tags:
            wanted = {slugify(t) for t in tags}
            products = [p for p in products if any(t.slug in wanted for t in p.tags)]

        kept = {p.id for p in products}
        self._raw_products = [item for item in raw if int(item.get("id") or 0) in kept]
        logger.info(f"Fetched {len(products)} Shopify products")
        return products

    def fetch_variations(self, parent_ids: List[int]) -> List[StoreProduct]:
        """Variants are embedded in the product payload; no extra request is made."""
        wanted = set(parent_ids)
        variations = []
        for product in self._raw_products:
            if int(product.get("id") or 0) not in wanted:
                continue
            for variant in product.get("variants") or []:
                variations.append(map_shopify_variant(product, variant))
        return variations

    def fetch_categories(self) -> List[TermItem]:
        collections = list(self._public_paged("/collections.json", "collections"))
        return [
            TermItem(
                id=int(c.get("id") or 0),
                name=c.get("title") or "",
                slug=c.get("handle") or slugify(c.get("title")),
                count=int(c.get("products_count") or 0),
            )
            for c in collections
        ]

    def fetch_tags(self) -> List[TermItem]:
        seen: Dict[str, TermItem] = {}
        for product in self._raw_products:
            for tag in map_shopify_product(product).tags:
                term = seen.setdefault(tag.slug, TermItem(id=0, name=tag.name, slug=tag.slug))
                term.count += 1
        return list(seen.values())

    def _require_admin(self, capability: str) -> None:
        if not self.has_admin_access:
            raise PermissionError(f"A Shopify admin access token is required for {capability}")

    def fetch_customers(self) -> List[StoreRecord]:
        self._require_admin("customer export")
        return [
            StoreRecord(id=str(item.get("id", "")), entity="customer", data=item)
            for item in self._admin_paged("customers", "customers")
        ]

    def fetch_orders(self) -> List[StoreRecord]:
        self._require_admin("order export")
        return [
            StoreRecord(id=str(item.get("id", "")), entity="order", data=item)
            for item in self._admin_paged("orders", "orders", {"status": "any"})
        ]
