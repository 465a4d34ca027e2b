"""WooCommerce REST provisioner for target stores."""

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import requests
from requests.auth import HTTPBasicAuth

from .base import BaseProvisioner
from ..extractors.base import clean_base_url
from ..models.migration import TargetStoreCredentials
from ..models.record import ExtensionArtifact, StoreConfiguration, StoreProduct, StoreRecord, TermItem
from ..services.cancellation import CancellationToken

logger = logging.getLogger(__name__)

# Fields the WooCommerce REST API rejects or computes on write
READ_ONLY_FIELDS = (
    "id", "_links", "date_created", "date_created_gmt", "date_modified", "date_modified_gmt",
    "is_paying_customer", "avatar_url", "usage_count", "used_by", "order_key", "cart_hash",
    "number", "date_completed", "date_paid", "date_completed_gmt", "date_paid_gmt",
)

WRITABLE_PRODUCT_TYPES = ("simple", "variable", "grouped", "external")


def writable(data: Dict[str, Any], extra: tuple = ()) -> Dict[str, Any]:
    """Copy of ``data`` without read-only fields."""
    dropped = set(READ_ONLY_FIELDS) | set(extra)
    return {k: v for k, v in data.items() if k not in dropped}


def store_price(product: StoreProduct) -> Optional[str]:
    """Convert a Store API minor-unit price into a decimal string."""
    if product.price in (None, ""):
        return None
    prices = product.data.get("prices") or {}
    minor_unit = prices.get("currency_minor_unit")
    if minor_unit is None:
        return str(product.price)
    try:
        value = int(product.price) / (10 ** int(minor_unit))
    except (TypeError, ValueError):
        return str(product.price)
    return f"{value:.{int(minor_unit)}f}"


class WooCommerceProvisioner(BaseProvisioner):
    """
    Provisioner writing to a WooCommerce store through ``/wp-json/wc/v3``.

    Existing records are matched before writing (products by SKU then slug,
    customers by email, coupons by code, orders by number) so replays update
    rather than duplicate.
    """

    WC_API = "/wp-json/wc/v3"
    INSTALL_ENDPOINTS = {
        "plugin": ("/wp-json/storelift/v1/plugins/install", "/?rest_route=/storelift/v1/plugins/install"),
        "theme": ("/wp-json/storelift/v1/themes/install", "/?rest_route=/storelift/v1/themes/install"),
    }

    def __init__(
        self,
        credentials: TargetStoreCredentials,
        session: requests.Session,
        dry_run: bool = False,
        cancellation: Optional[CancellationToken] = None,
        progress: Optional[Callable[[str], None]] = None,
        timeout: float = 60.0,
    ):
        super().__init__(dry_run, cancellation, progress)
        if not credentials.is_complete:
            raise ValueError("Target store URL, consumer key and consumer secret are required")
        self.base_url = clean_base_url(credentials.base_url)
        self.auth = HTTPBasicAuth(credentials.consumer_key.strip(), credentials.consumer_secret.strip())
        self.session = session
        self.timeout = timeout

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        if self.cancellation:
            self.cancellation.raise_if_cancelled()
        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {url}")
        return self.session.request(method, url, auth=self.auth, timeout=self.timeout, **kwargs)

    def _json(self, method: str, path: str, **kwargs) -> Any:
        response = self._request(method, path, **kwargs)
        response.raise_for_status()
        return response.json() if response.content else None

    def _find_one(self, path: str, **params) -> Optional[Dict[str, Any]]:
        params["per_page"] = 1
        items = self._json("GET", path, params=params) or []
        return items[0] if items else None

    def _save(self, path: str, existing: Optional[Dict[str, Any]], payload: Dict[str, Any]) -> Optional[int]:
        if existing:
            saved = self._json("PUT", f"{path}/{existing['id']}", json=payload)
        else:
            saved = self._json("POST", path, json=payload)
        return (saved or {}).get("id")

    # Catalog

    def upsert_term(self, taxonomy: str, term: TermItem, parent_id: Optional[int] = None) -> Optional[int]:
        path = f"{self.WC_API}/products/{taxonomy}"
        if term.slug:
            existing = self._find_one(path, slug=term.slug)
            if existing:
                return existing.get("id")

        payload = {"name": term.name or term.slug, "slug": term.slug}
        if parent_id and taxonomy == "categories":
            payload["parent"] = parent_id
        return (self._json("POST", path, json=payload) or {}).get("id")

    def upsert_product(self, product: StoreProduct, term_ids: Dict[str, Dict[int, int]]) -> Optional[int]:
        path = f"{self.WC_API}/products"
        existing = None
        if product.sku:
            existing = self._find_one(path, sku=product.sku)
        if existing is None and product.slug:
            existing = self._find_one(path, slug=product.slug)

        product_type = "variable" if product.has_variations else product.type
        payload: Dict[str, Any] = {
            "name": product.name,
            "slug": product.slug,
            "type": product_type if product_type in WRITABLE_PRODUCT_TYPES else "simple",
            "sku": product.sku,
            "images": [{"src": src} for src in product.images],
            "categories": self._term_refs(product.categories, term_ids.get("categories", {})),
            "tags": self._term_refs(product.tags, term_ids.get("tags", {})),
        }
        price = store_price(product)
        if price is not None and not product.has_variations:
            payload["regular_price"] = price
        for key in ("description", "short_description"):
            if product.data.get(key):
                payload[key] = product.data[key]

        return self._save(path, existing, payload)

    @staticmethod
    def _term_refs(terms: List[TermItem], mapping: Dict[int, int]) -> List[Dict[str, Any]]:
        refs = []
        for term in terms:
            if term.id in mapping:
                refs.append({"id": mapping[term.id]})
            elif term.slug:
                refs.append({"slug": term.slug})
        return refs

    def upsert_variation(self, parent_target_id: int, variation: StoreProduct) -> Optional[int]:
        path = f"{self.WC_API}/products/{parent_target_id}/variations"
        existing = None
        if variation.sku:
            existing = self._find_one(path, sku=variation.sku)

        payload: Dict[str, Any] = {"sku": variation.sku}
        price = store_price(variation)
        if price is not None:
            payload["regular_price"] = price
        attributes = variation.data.get("variation") or variation.data.get("attributes") or []
        payload["attributes"] = [
            {"name": a.get("attribute") or a.get("name"), "option": a.get("value") or a.get("option")}
            for a in attributes
            if isinstance(a, dict)
        ]
        if variation.images:
            payload["image"] = {"src": variation.images[0]}

        return self._save(path, existing, payload)

    # Customers, coupons, orders, subscriptions

    def upsert_customer(self, record: StoreRecord) -> Optional[int]:
        path = f"{self.WC_API}/customers"
        email = record.data.get("email")
        existing = self._find_one(path, email=email) if email else None
        return self._save(path, existing, writable(record.data, extra=("role",)))

    def upsert_coupon(self, record: StoreRecord) -> Optional[int]:
        path = f"{self.WC_API}/coupons"
        code = record.data.get("code")
        existing = self._find_one(path, code=code) if code else None
        return self._save(path, existing, writable(record.data))

    def create_order(self, record: StoreRecord) -> Optional[int]:
        path = f"{self.WC_API}/orders"
        number = record.data.get("number")
        if number and self._find_one(path, search=str(number)):
            logger.info(f"Order {number} already exists on target; skipping")
            return None
        payload = writable(record.data, extra=("customer_id",))
        payload["line_items"] = [
            writable(item, extra=("product_id", "variation_id", "price"))
            for item in record.data.get("line_items") or []
        ]
        return (self._json("POST", path, json=payload) or {}).get("id")

    def create_subscription(self, record: StoreRecord) -> Optional[int]:
        payload = writable(record.data, extra=("customer_id", "parent_id"))
        return (self._json("POST", f"{self.WC_API}/subscriptions", json=payload) or {}).get("id")

    # Configuration

    def apply_configuration(self, configuration: StoreConfiguration) -> None:
        for group, options in configuration.settings.items():
            updates = [{"id": o["id"], "value": o.get("value")} for o in options if isinstance(o, dict) and "id" in o]
            if updates:
                self._json("POST", f"{self.WC_API}/settings/{group}/batch", json={"update": updates})
                self.report(f"Applied {len(updates)} '{group}' settings")

        for zone in configuration.shipping_zones:
            if not zone.get("id"):
                continue  # "Locations not covered" zone
            created = self._json("POST", f"{self.WC_API}/shipping/zones", json={"name": zone.get("name")}) or {}
            zone_id = created.get("id")
            if not zone_id:
                continue
            locations = [{"code": loc.get("code"), "type": loc.get("type")} for loc in zone.get("locations") or []]
            if locations:
                self._json("PUT", f"{self.WC_API}/shipping/zones/{zone_id}/locations", json=locations)
            for method in zone.get("methods") or []:
                self._json(
                    "POST",
                    f"{self.WC_API}/shipping/zones/{zone_id}/methods",
                    json={"method_id": method.get("method_id"), "enabled": method.get("enabled", True)},
                )

        for gateway in configuration.payment_gateways:
            gateway_id = gateway.get("id")
            if gateway_id:
                self._json(
                    "PUT",
                    f"{self.WC_API}/payment_gateways/{gateway_id}",
                    json={"enabled": gateway.get("enabled", False), "title": gateway.get("title")},
                )

    # Extensions

    def upload_extension(self, scope: str, artifact: ExtensionArtifact) -> bool:
        directory = Path(artifact.directory_path)
        if not directory.is_dir():
            self.report(f"Skipping {scope} '{artifact.slug}': directory not found ({directory})")
            return False

        options = Path(artifact.options_path)
        manifest = Path(artifact.manifest_path)
        archive = Path(artifact.archive_path)
        if not (options.is_file() or manifest.is_file() or archive.is_file()):
            self.report(f"Skipping {scope} '{artifact.slug}': no bundle files found in {directory}")
            return False

        data = {"slug": artifact.slug}
        if options.is_file():
            data["options"] = json.dumps(json.loads(options.read_text(encoding="utf-8")))
        if manifest.is_file():
            data["manifest"] = json.dumps(json.loads(manifest.read_text(encoding="utf-8")))

        for endpoint in self.INSTALL_ENDPOINTS[scope]:
            files = None
            handle = None
            try:
                if archive.is_file():
                    handle = open(archive, "rb")
                    files = {"archive": (archive.name, handle, "application/zip")}
                response = self._request("POST", endpoint, data=data, files=files)
            finally:
                if handle:
                    handle.close()

            if response.ok:
                self.report(f"Uploaded {scope} '{artifact.slug}'")
                return True
            if response.status_code not in (404, 405):
                logger.warning(f"{scope} upload of '{artifact.slug}' to {endpoint} failed: HTTP {response.status_code}")

        self.report(f"No {scope} upload endpoint accepted '{artifact.slug}'")
        return False
