"""Replay a provisioning snapshot onto a target store."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .base import BaseProvisioner, LoadResult
from ..models.record import TermItem
from ..services.cancellation import RunCancelled
from ..services.snapshot import ProvisioningSnapshot

logger = logging.getLogger(__name__)


@dataclass
class ReplayResult:
    """Per-entity outcome of a replay."""
    results: Dict[str, LoadResult] = field(default_factory=dict)
    uploaded_plugins: List[str] = field(default_factory=list)
    uploaded_themes: List[str] = field(default_factory=list)
    configuration_applied: bool = False

    @property
    def total_failed(self) -> int:
        return sum(r.total_failed for r in self.results.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": {k: v.to_dict() for k, v in self.results.items()},
            "uploaded_plugins": self.uploaded_plugins,
            "uploaded_themes": self.uploaded_themes,
            "configuration_applied": self.configuration_applied,
            "total_failed": self.total_failed,
        }


def parents_first(terms: List[TermItem]) -> List[TermItem]:
    """Order categories so every parent precedes its children."""
    by_id = {t.id: t for t in terms}
    ordered: List[TermItem] = []
    placed = set()

    def place(term: TermItem, trail: set) -> None:
        if term.id in placed or term.id in trail:
            return
        parent = by_id.get(term.parent)
        if parent is not None:
            place(parent, trail | {term.id})
        placed.add(term.id)
        ordered.append(term)

    for term in terms:
        place(term, set())
    return ordered


class ReplayDriver:
    """
    Feeds a :class:`ProvisioningSnapshot` into a provisioner.

    Plugin and theme bundles are uploaded first, then categories, tags,
    products, variable products, customers, coupons, orders and
    subscriptions. Store configuration is applied only when requested and
    non-empty. The snapshot is only read.
    """

    def __init__(self, provisioner: BaseProvisioner):
        self.provisioner = provisioner

    def replay(self, snapshot: ProvisioningSnapshot, include_configuration: bool = False) -> ReplayResult:
        provisioner = self.provisioner
        result = ReplayResult()
        provisioner.report(f"Replaying snapshot of {snapshot.source_url} ({snapshot.summary()})")

        if snapshot.plugin_bundles:
            result.uploaded_plugins = self._upload("plugin", snapshot.plugin_bundles)
        if snapshot.theme_bundles:
            result.uploaded_themes = self._upload("theme", snapshot.theme_bundles)

        category_map: Dict[int, int] = {}

        def upsert_category(term: TermItem) -> Optional[int]:
            target_id = provisioner.upsert_term("categories", term, category_map.get(term.parent))
            if target_id is not None:
                category_map[term.id] = target_id
            return target_id

        result.results["categories"] = provisioner.load_batch(
            "categories", parents_first(list(snapshot.categories)), upsert_category
        )
        tags = provisioner.load_batch("tags", snapshot.tags, lambda t: provisioner.upsert_term("tags", t))
        result.results["tags"] = tags
        term_ids = {
            "categories": category_map,
            "tags": {int(k): v for k, v in tags.id_map.items()},
        }

        products = provisioner.load_batch(
            "products", snapshot.products, lambda p: provisioner.upsert_product(p, term_ids)
        )
        result.results["products"] = products

        variations = LoadResult(entity="variations")
        for group in snapshot.variable_products:
            parent_target_id = products.id_map.get(str(group.parent.id))
            if parent_target_id is None:
                logger.warning(f"Skipping variations of product {group.parent.id}: parent was not provisioned")
                variations.total_skipped += len(group.variations)
                continue
            batch = provisioner.load_batch(
                "variations",
                group.variations,
                lambda v, pid=parent_target_id: provisioner.upsert_variation(pid, v),
            )
            _merge(variations, batch)
        result.results["variations"] = variations

        if include_configuration and snapshot.configuration is not None and snapshot.configuration.has_data:
            if not provisioner.dry_run:
                provisioner.apply_configuration(snapshot.configuration)
            result.configuration_applied = True
            provisioner.report("Store configuration applied")

        result.results["customers"] = provisioner.load_batch("customers", snapshot.customers, provisioner.upsert_customer)
        result.results["coupons"] = provisioner.load_batch("coupons", snapshot.coupons, provisioner.upsert_coupon)
        result.results["orders"] = provisioner.load_batch("orders", snapshot.orders, provisioner.create_order)
        result.results["subscriptions"] = provisioner.load_batch(
            "subscriptions", snapshot.subscriptions, provisioner.create_subscription
        )

        provisioner.report(f"Replay finished with {result.total_failed} failures")
        return result

    def _upload(self, scope: str, artifacts) -> List[str]:
        uploaded = []
        for artifact in artifacts:
            if self.provisioner.cancellation:
                self.provisioner.cancellation.raise_if_cancelled()
            if self.provisioner.dry_run:
                uploaded.append(artifact.slug)
                continue
            try:
                if self.provisioner.upload_extension(scope, artifact):
                    uploaded.append(artifact.slug)
            except RunCancelled:
                raise
            except Exception as e:
                logger.error(f"Failed to upload {scope} '{artifact.slug}': {e}")
        return uploaded


def _merge(total: LoadResult, batch: LoadResult) -> None:
    total.total_attempted += batch.total_attempted
    total.total_succeeded += batch.total_succeeded
    total.total_failed += batch.total_failed
    total.total_skipped += batch.total_skipped
    total.errors.extend(batch.errors)
    total.id_map.update(batch.id_map)
