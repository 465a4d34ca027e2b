"""Record models for captured store data."""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


_SLUG_INVALID = re.compile(r"[^a-z0-9]+")


def slugify(value: Optional[str]) -> str:
    """Lower-case a display value into a filesystem-safe, hyphenated slug."""
    if not value:
        return ""
    return _SLUG_INVALID.sub("-", value.strip().lower()).strip("-")


@dataclass
class TermItem:
    """A product category or tag."""
    id: int
    name: str = ""
    slug: str = ""
    parent: int = 0
    count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "parent": self.parent,
            "count": self.count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TermItem":
        return cls(
            id=int(data.get("id") or 0),
            name=data.get("name") or "",
            slug=data.get("slug") or "",
            parent=int(data.get("parent") or 0),
            count=int(data.get("count") or 0),
        )


@dataclass
class StoreProduct:
    """A catalog item or one of its variations."""
    id: int
    name: str = ""
    slug: str = ""
    type: str = "simple"
    parent_id: Optional[int] = None
    sku: str = ""
    permalink: str = ""
    price: Optional[str] = None
    images: List[str] = field(default_factory=list)  # Source image URLs
    image_paths: List[str] = field(default_factory=list)  # Relative to the store folder
    categories: List[TermItem] = field(default_factory=list)
    tags: List[TermItem] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)  # Raw platform payload

    # Absolute paths on this machine; never serialized.
    local_image_paths: List[str] = field(default_factory=list)

    VARIABLE_TYPES = ("variable", "variable-subscription", "composite", "grouped")

    @property
    def has_variations(self) -> bool:
        """Check whether the item is a parent of child variants."""
        if self.type in self.VARIABLE_TYPES:
            return True
        variations = self.data.get("variations")
        return isinstance(variations, list) and len(variations) > 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation (local paths excluded)."""
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "type": self.type,
            "parent_id": self.parent_id,
            "sku": self.sku,
            "permalink": self.permalink,
            "price": self.price,
            "images": list(self.images),
            "image_paths": list(self.image_paths),
            "categories": [c.to_dict() for c in self.categories],
            "tags": [t.to_dict() for t in self.tags],
            "data": self.data,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StoreProduct":
        """Create from dictionary representation."""
        parent_id = data.get("parent_id")
        return cls(
            id=int(data.get("id") or 0),
            name=data.get("name") or "",
            slug=data.get("slug") or "",
            type=data.get("type") or "simple",
            parent_id=int(parent_id) if parent_id else None,
            sku=data.get("sku") or "",
            permalink=data.get("permalink") or "",
            price=data.get("price"),
            images=list(data.get("images") or []),
            image_paths=list(data.get("image_paths") or []),
            categories=[TermItem.from_dict(c) for c in data.get("categories") or []],
            tags=[TermItem.from_dict(t) for t in data.get("tags") or []],
            data=dict(data.get("data") or {}),
        )


@dataclass
class StoreRecord:
    """A generic captured entity (customer, order, coupon, subscription, review)."""
    id: str
    entity: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "entity": self.entity, "data": self.data}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StoreRecord":
        return cls(
            id=str(data.get("id", "")),
            entity=data.get("entity") or "",
            data=dict(data.get("data") or {}),
        )


@dataclass(frozen=True)
class MediaReference:
    """A remote asset materialized once inside the run's store folder."""
    source_url: str
    relative_path: str
    absolute_path: str


@dataclass
class StoreConfiguration:
    """Store-level settings captured from the source platform."""
    settings: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)  # group -> options
    shipping_zones: List[Dict[str, Any]] = field(default_factory=list)
    payment_gateways: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def has_data(self) -> bool:
        return bool(self.settings or self.shipping_zones or self.payment_gateways)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "settings": self.settings,
            "shipping_zones": self.shipping_zones,
            "payment_gateways": self.payment_gateways,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StoreConfiguration":
        return cls(
            settings=dict(data.get("settings") or {}),
            shipping_zones=list(data.get("shipping_zones") or []),
            payment_gateways=list(data.get("payment_gateways") or []),
        )


@dataclass
class SiteContent:
    """WordPress pages, posts, media library, menus and widgets."""
    pages: List[Dict[str, Any]] = field(default_factory=list)
    posts: List[Dict[str, Any]] = field(default_factory=list)
    media: List[Dict[str, Any]] = field(default_factory=list)
    menus: List[Dict[str, Any]] = field(default_factory=list)
    widgets: List[Dict[str, Any]] = field(default_factory=list)
    media_paths: Dict[str, str] = field(default_factory=dict)  # source URL -> relative path

    @property
    def is_empty(self) -> bool:
        return not (self.pages or self.posts or self.media or self.menus or self.widgets)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pages": self.pages,
            "posts": self.posts,
            "media": self.media,
            "menus": self.menus,
            "widgets": self.widgets,
            "media_paths": self.media_paths,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SiteContent":
        return cls(
            pages=list(data.get("pages") or []),
            posts=list(data.get("posts") or []),
            media=list(data.get("media") or []),
            menus=list(data.get("menus") or []),
            widgets=list(data.get("widgets") or []),
            media_paths=dict(data.get("media_paths") or {}),
        )


@dataclass
class InstalledExtension:
    """A plugin or theme reported by authenticated introspection."""
    type: str  # plugin, mu-plugin, theme
    name: str = ""
    slug: str = ""
    plugin_file: str = ""  # e.g. "woocommerce/woocommerce.php"
    stylesheet: str = ""  # Theme stylesheet id
    version: str = ""
    status: str = ""
    download_url: str = ""
    options: Dict[str, Any] = field(default_factory=dict)
    asset_urls: List[str] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)

    def resolve_slug(self, fallback_index: int) -> str:
        """
        Resolve the folder slug for this extension.

        Order: explicit slug, identifier derived from the plugin file or
        stylesheet, sanitized display name, generated fallback.
        """
        explicit = slugify(self.slug)
        if explicit:
            return explicit

        identifier = self.plugin_file or self.stylesheet
        if identifier:
            head = identifier.replace("\\", "/").strip("/").split("/")[0]
            if head.endswith(".php"):
                head = head[:-4]
            derived = slugify(head)
            if derived:
                return derived

        from_name = slugify(self.name)
        if from_name:
            return from_name

        return f"{self.type or 'extension'}-{fallback_index}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "name": self.name,
            "slug": self.slug,
            "plugin_file": self.plugin_file,
            "stylesheet": self.stylesheet,
            "version": self.version,
            "status": self.status,
            "download_url": self.download_url,
        }


@dataclass(frozen=True)
class ExtensionArtifact:
    """A captured plugin or theme bundle folder."""
    slug: str
    directory_path: str

    def __post_init__(self):
        if not self.slug or not self.slug.strip():
            raise ValueError("Slug is required")
        if not self.directory_path or not self.directory_path.strip():
            raise ValueError("Directory path is required")

    @property
    def options_path(self) -> str:
        return f"{self.directory_path}/options.json"

    @property
    def manifest_path(self) -> str:
        return f"{self.directory_path}/manifest.json"

    @property
    def archive_path(self) -> str:
        return f"{self.directory_path}/archive.zip"

    def to_dict(self) -> Dict[str, Any]:
        return {"slug": self.slug, "directory_path": self.directory_path}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtensionArtifact":
        return cls(slug=data["slug"], directory_path=data["directory_path"])


class DirectoryLookupStatus(str, Enum):
    """Outcome of a public directory lookup."""
    RESOLVED = "resolved"
    NOT_FOUND = "not_found"
    LOOKUP_ERROR = "lookup_error"
    MISSING_SLUG = "missing_slug"
    SKIPPED_MU_PLUGIN = "skipped_mu_plugin"
    SKIPPED_NON_DIRECTORY_SLUG = "skipped_non_directory_slug"


@dataclass
class DirectoryEntry:
    """Metadata published by the public plugin/theme directory."""
    slug: Optional[str] = None
    title: Optional[str] = None
    author: Optional[str] = None
    homepage: Optional[str] = None
    version: Optional[str] = None
    download_url: Optional[str] = None


@dataclass(frozen=True)
class DirectoryLookupResult:
    """Cached lookup outcome keyed by (extension type, slug)."""
    status: DirectoryLookupStatus
    entry: Optional[DirectoryEntry] = None
    error: Optional[str] = None


@dataclass
class ExtensionFootprint:
    """A plugin or theme slug detected from public page assets."""
    type: str  # plugin, theme, mu-plugin
    slug: str
    source_url: str = ""
    asset_url: str = ""
    version_hint: Optional[str] = None

    directory_status: Optional[str] = None
    directory_title: Optional[str] = None
    directory_author: Optional[str] = None
    directory_homepage: Optional[str] = None
    directory_version: Optional[str] = None
    directory_download_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "slug": self.slug,
            "source_url": self.source_url,
            "asset_url": self.asset_url,
            "version_hint": self.version_hint,
            "directory_status": self.directory_status,
            "directory_title": self.directory_title,
            "directory_author": self.directory_author,
            "directory_homepage": self.directory_homepage,
            "directory_version": self.directory_version,
            "directory_download_url": self.directory_download_url,
        }


@dataclass
class DetectionSummary:
    """Crawl accounting for public footprint detection."""
    processed_page_count: int = 0
    total_bytes_downloaded: int = 0
    page_limit_reached: bool = False
    byte_limit_reached: bool = False
    max_pages: Optional[int] = None
    max_bytes: Optional[int] = None

    @property
    def limit_reached(self) -> bool:
        return self.page_limit_reached or self.byte_limit_reached

    def describe_limits(self) -> Optional[str]:
        """Human-readable note when a crawl cap stopped detection."""
        if not self.limit_reached:
            return None

        caps = []
        if self.page_limit_reached:
            caps.append(f"{self.max_pages}-page cap")
        if self.byte_limit_reached:
            caps.append(f"{self.max_bytes}-byte cap")
        return (
            f"Public extension detection stopped at the {' and '.join(caps)} "
            f"after processing {self.processed_page_count} pages "
            f"({self.total_bytes_downloaded} bytes downloaded)."
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed_page_count": self.processed_page_count,
            "total_bytes_downloaded": self.total_bytes_downloaded,
            "page_limit_reached": self.page_limit_reached,
            "byte_limit_reached": self.byte_limit_reached,
            "max_pages": self.max_pages,
            "max_bytes": self.max_bytes,
        }
