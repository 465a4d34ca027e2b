"""Immutable provisioning snapshot built at the end of a run."""

import copy
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from ..models.record import (
    ExtensionArtifact,
    SiteContent,
    StoreConfiguration,
    StoreProduct,
    StoreRecord,
    TermItem,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CapturedEntities:
    """Mutable collections accumulated by the orchestrator during a run."""
    products: List[StoreProduct] = field(default_factory=list)
    variations: List[StoreProduct] = field(default_factory=list)
    categories: List[TermItem] = field(default_factory=list)
    tags: List[TermItem] = field(default_factory=list)
    configuration: Optional[StoreConfiguration] = None
    plugin_bundles: List[ExtensionArtifact] = field(default_factory=list)
    theme_bundles: List[ExtensionArtifact] = field(default_factory=list)
    customers: List[StoreRecord] = field(default_factory=list)
    orders: List[StoreRecord] = field(default_factory=list)
    coupons: List[StoreRecord] = field(default_factory=list)
    subscriptions: List[StoreRecord] = field(default_factory=list)
    site_content: Optional[SiteContent] = None


@dataclass(frozen=True)
class VariableProduct:
    """A parent product together with its child variations."""
    parent: StoreProduct
    variations: Tuple[StoreProduct, ...] = ()


@dataclass(frozen=True)
class ProvisioningSnapshot:
    """Cloned, read-only payload consumed by the replay driver."""
    source_url: str
    store_id: str
    products: Tuple[StoreProduct, ...] = ()
    variations: Tuple[StoreProduct, ...] = ()
    variable_products: Tuple[VariableProduct, ...] = ()
    categories: Tuple[TermItem, ...] = ()
    tags: Tuple[TermItem, ...] = ()
    configuration: Optional[StoreConfiguration] = None
    plugin_bundles: Tuple[ExtensionArtifact, ...] = ()
    theme_bundles: Tuple[ExtensionArtifact, ...] = ()
    customers: Tuple[StoreRecord, ...] = ()
    orders: Tuple[StoreRecord, ...] = ()
    coupons: Tuple[StoreRecord, ...] = ()
    subscriptions: Tuple[StoreRecord, ...] = ()
    site_content: Optional[SiteContent] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def has_extension_bundles(self) -> bool:
        return bool(self.plugin_bundles or self.theme_bundles)

    def summary(self) -> Dict[str, int]:
        return {
            "products": len(self.products),
            "variations": len(self.variations),
            "variable_products": len(self.variable_products),
            "categories": len(self.categories),
            "customers": len(self.customers),
            "orders": len(self.orders),
            "coupons": len(self.coupons),
            "subscriptions": len(self.subscriptions),
            "plugin_bundles": len(self.plugin_bundles),
            "theme_bundles": len(self.theme_bundles),
        }


def clone_items(
    items: Sequence[T],
    to_dict: Callable[[T], Dict[str, Any]],
    from_dict: Callable[[Dict[str, Any]], T],
) -> List[T]:
    """
    Deep-clone a collection through a JSON round trip.

    When the round trip does not return one clone per source item, each
    item is cloned individually instead.
    """
    if not items:
        return []

    payload = json.loads(json.dumps([to_dict(item) for item in items], default=str))
    clones = [from_dict(data) for data in payload]
    if len(clones) == len(items):
        return clones

    logger.warning(f"Snapshot clone count mismatch ({len(clones)} != {len(items)}); cloning items individually")
    return [from_dict(copy.deepcopy(to_dict(item))) for item in items]


def patch_local_paths(originals: Sequence[StoreProduct], clones: Sequence[StoreProduct]) -> None:
    """Copy machine-local image paths, which are never serialized, onto the clones."""
    for original, clone in zip(originals, clones):
        clone.local_image_paths = list(original.local_image_paths)


def group_variable_products(
    products: Sequence[StoreProduct],
    variations: Sequence[StoreProduct],
) -> List[VariableProduct]:
    """
    Group variations under their parent product.

    Variations whose parent is not among ``products`` are left out of every
    group; they stay in the flat variation list.
    """
    parents = {p.id: p for p in products}
    grouped: Dict[int, List[StoreProduct]] = {}
    for variation in variations:
        if variation.parent_id is None or variation.parent_id not in parents:
            continue
        grouped.setdefault(variation.parent_id, []).append(variation)

    return [
        VariableProduct(parent=parents[parent_id], variations=tuple(children))
        for parent_id, children in grouped.items()
    ]


class ProvisioningSnapshotBuilder:
    """Builds a :class:`ProvisioningSnapshot` from captured entities."""

    def build(self, source_url: str, store_id: str, captured: CapturedEntities) -> ProvisioningSnapshot:
        products = clone_items(captured.products, StoreProduct.to_dict, StoreProduct.from_dict)
        patch_local_paths(captured.products, products)

        variations = clone_items(captured.variations, StoreProduct.to_dict, StoreProduct.from_dict)
        patch_local_paths(captured.variations, variations)

        configuration = None
        if captured.configuration is not None:
            configuration = clone_items(
                [captured.configuration], StoreConfiguration.to_dict, StoreConfiguration.from_dict
            )[0]

        site_content = None
        if captured.site_content is not None:
            site_content = clone_items([captured.site_content], SiteContent.to_dict, SiteContent.from_dict)[0]

        def records(items: List[StoreRecord]) -> Tuple[StoreRecord, ...]:
            return tuple(clone_items(items, StoreRecord.to_dict, StoreRecord.from_dict))

        def terms(items: List[TermItem]) -> Tuple[TermItem, ...]:
            return tuple(clone_items(items, TermItem.to_dict, TermItem.from_dict))

        snapshot = ProvisioningSnapshot(
            source_url=source_url,
            store_id=store_id,
            products=tuple(products),
            variations=tuple(variations),
            variable_products=tuple(group_variable_products(products, variations)),
            categories=terms(captured.categories),
            tags=terms(captured.tags),
            configuration=configuration,
            plugin_bundles=tuple(
                clone_items(captured.plugin_bundles, ExtensionArtifact.to_dict, ExtensionArtifact.from_dict)
            ),
            theme_bundles=tuple(
                clone_items(captured.theme_bundles, ExtensionArtifact.to_dict, ExtensionArtifact.from_dict)
            ),
            customers=records(captured.customers),
            orders=records(captured.orders),
            coupons=records(captured.coupons),
            subscriptions=records(captured.subscriptions),
            site_content=site_content,
        )
        logger.info(f"Provisioning snapshot ready: {snapshot.summary()}")
        return snapshot
