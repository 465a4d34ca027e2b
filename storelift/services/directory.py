"""WordPress.org plugin/theme directory lookups with per-run caching."""

import logging
import re
import time
from typing import Any, Callable, Dict, Optional, Tuple

import requests
from bs4 import BeautifulSoup

from ..models.record import (
    DirectoryEntry,
    DirectoryLookupResult,
    DirectoryLookupStatus,
    ExtensionFootprint,
)

logger = logging.getLogger(__name__)

_DIRECTORY_SLUG = re.compile(r"^[a-z0-9-]+$")
_PREMIUM_MARKERS = ("nulled", "gpl", "codecanyon", "themeforest")


def is_likely_directory_slug(slug: Optional[str]) -> bool:
    """Check whether a slug could belong to the public directory."""
    if not slug or not slug.strip():
        return False
    slug = slug.strip()
    if not _DIRECTORY_SLUG.match(slug):
        return False
    return not any(marker in slug for marker in _PREMIUM_MARKERS)


def normalize_author(value: Optional[str]) -> Optional[str]:
    """Strip HTML tags and entities from a directory author value."""
    if not value:
        return None
    text = BeautifulSoup(value, "html.parser").get_text(" ", strip=True)
    return text or None


class WordPressDirectoryClient:
    """Client for the WordPress.org plugin and theme information APIs."""

    PLUGIN_ENDPOINT = "https://api.wordpress.org/plugins/info/1.2/"
    THEME_ENDPOINT = "https://api.wordpress.org/themes/info/1.2/"

    # Heavy fields disabled on every request
    DISABLED_FIELDS = ("sections", "description", "requires", "rating", "active_installs", "downloaded")

    def __init__(self, session: requests.Session, timeout: float = 30.0):
        self.session = session
        self.timeout = timeout

    def get_plugin(self, slug: str) -> Optional[DirectoryEntry]:
        return self._get(self.PLUGIN_ENDPOINT, "plugin_information", slug, self._parse_plugin)

    def get_theme(self, slug: str) -> Optional[DirectoryEntry]:
        return self._get(self.THEME_ENDPOINT, "theme_information", slug, self._parse_theme)

    def _get(
        self,
        endpoint: str,
        action: str,
        slug: str,
        parser: Callable[[Dict[str, Any]], DirectoryEntry],
    ) -> Optional[DirectoryEntry]:
        if not slug or not slug.strip():
            return None

        params = {"action": action, "request[slug]": slug}
        for name in self.DISABLED_FIELDS:
            params[f"request[fields][{name}]"] = 0

        logger.debug(f"GET {endpoint} ({action} '{slug}')")
        response = self.session.get(endpoint, params=params, timeout=self.timeout)
        if response.status_code == 404:
            return None
        response.raise_for_status()

        data = response.json()
        if not isinstance(data, dict) or "error" in data:
            return None
        return parser(data)

    @staticmethod
    def _parse_plugin(data: Dict[str, Any]) -> DirectoryEntry:
        return DirectoryEntry(
            slug=data.get("slug"),
            title=data.get("name"),
            author=normalize_author(data.get("author")),
            homepage=data.get("homepage") or data.get("plugin_url"),
            version=data.get("version"),
            download_url=data.get("download_link"),
        )

    @staticmethod
    def _parse_theme(data: Dict[str, Any]) -> DirectoryEntry:
        author = data.get("author")
        if isinstance(author, dict):
            author = author.get("author") or author.get("display_name")
        return DirectoryEntry(
            slug=data.get("slug"),
            title=data.get("name"),
            author=normalize_author(author if isinstance(author, str) else None),
            homepage=data.get("homepage"),
            version=data.get("version"),
            download_url=data.get("download_link"),
        )


class DirectoryEnricher:
    """
    Annotates footprints with directory metadata.

    Results, failures included, are cached per ``(type, slug)`` for the run so
    each pair costs at most one lookup. Every network lookup is followed by a
    fixed delay, which throttles the phase to one call per interval.
    """

    def __init__(
        self,
        client: WordPressDirectoryClient,
        delay_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.delay_seconds = delay_seconds
        self.sleep = sleep
        self._cache: Dict[Tuple[str, str], DirectoryLookupResult] = {}
        self.lookup_count = 0

    def lookup(self, extension_type: str, slug: Optional[str]) -> DirectoryLookupResult:
        """Resolve a ``(type, slug)`` pair, consulting the run cache first."""
        slug = (slug or "").strip()
        if not slug:
            return DirectoryLookupResult(DirectoryLookupStatus.MISSING_SLUG)
        if extension_type == "mu-plugin":
            return DirectoryLookupResult(DirectoryLookupStatus.SKIPPED_MU_PLUGIN)
        if not is_likely_directory_slug(slug):
            return DirectoryLookupResult(DirectoryLookupStatus.SKIPPED_NON_DIRECTORY_SLUG)

        key = (extension_type, slug)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        result = self._fetch(extension_type, slug)
        self._cache[key] = result
        return result

    def _fetch(self, extension_type: str, slug: str) -> DirectoryLookupResult:
        self.lookup_count += 1
        try:
            if extension_type == "theme":
                entry = self.client.get_theme(slug)
            else:
                entry = self.client.get_plugin(slug)
        except (requests.RequestException, ValueError, OSError) as e:
            logger.warning(f"Directory lookup for {extension_type} '{slug}' failed: {e}")
            return DirectoryLookupResult(DirectoryLookupStatus.LOOKUP_ERROR, error=str(e))
        finally:
            if self.delay_seconds > 0:
                self.sleep(self.delay_seconds)

        if entry is None:
            return DirectoryLookupResult(DirectoryLookupStatus.NOT_FOUND)
        return DirectoryLookupResult(DirectoryLookupStatus.RESOLVED, entry=entry)

    def enrich(self, footprint: ExtensionFootprint) -> DirectoryLookupStatus:
        """Annotate ``footprint`` in place and return its lookup status."""
        result = self.lookup(footprint.type, footprint.slug)
        footprint.directory_status = result.status.value

        if result.entry is not None:
            entry = result.entry
            footprint.directory_title = entry.title
            footprint.directory_author = entry.author
            footprint.directory_homepage = entry.homepage
            footprint.directory_version = entry.version
            footprint.directory_download_url = entry.download_url

        return result.status

    @property
    def cache_size(self) -> int:
        return len(self._cache)
