"""Public plugin/theme footprint detection from page assets."""

import logging
import re
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import parse_qs, urljoin, urlparse

import requests
from bs4 import BeautifulSoup

from .base import clean_base_url
from ..models.record import DetectionSummary, ExtensionFootprint
from ..services.cancellation import CancellationToken

logger = logging.getLogger(__name__)

EXTENSION_PATH = re.compile(
    r"(?P<url>[^\s\"'()<>]*?/wp-content/(?P<type>plugins|themes|mu-plugins)/(?P<slug>[A-Za-z0-9._-]+)/[^\s\"'()<>]*)",
    re.IGNORECASE,
)
VERSION_TOKEN = re.compile(r"(?:^|[-_.])(?:v(?:ersion)?[-_.]?)?(?P<version>\d+(?:\.\d+)+)(?=$|[-_.])", re.IGNORECASE)
VERSION_QUERY_KEYS = ("ver", "version", "v")

_TYPE_NAMES = {"plugins": "plugin", "themes": "theme", "mu-plugins": "mu-plugin"}


@dataclass
class DetectionResult:
    """Footprints found by a crawl plus its accounting."""
    footprints: List[ExtensionFootprint] = field(default_factory=list)
    summary: DetectionSummary = field(default_factory=DetectionSummary)


def version_hint(asset_url: str) -> Optional[str]:
    """Read a version from ``ver=``-style query values or a version token in the file name."""
    parsed = urlparse(asset_url)
    query = parse_qs(parsed.query)
    for key in VERSION_QUERY_KEYS:
        values = [v for v in query.get(key, []) if v.strip()]
        if values:
            return values[0]

    filename = parsed.path.rstrip("/").rsplit("/", 1)[-1]
    match = VERSION_TOKEN.search(filename)
    return match.group("version") if match else None


def scan_for_extensions(source_url: str, content: str, findings: Dict[Tuple[str, str], ExtensionFootprint]) -> None:
    """Add footprints for every ``/wp-content/(plugins|themes)/<slug>/`` reference in ``content``."""
    for match in EXTENSION_PATH.finditer(content):
        extension_type = _TYPE_NAMES[match.group("type").lower()]
        slug = match.group("slug").strip().strip(".").lower()
        if not slug:
            continue

        asset_url = urljoin(source_url, match.group("url"))
        hint = version_hint(asset_url)
        key = (extension_type, slug)

        footprint = findings.get(key)
        if footprint is None:
            findings[key] = ExtensionFootprint(
                type=extension_type,
                slug=slug,
                source_url=source_url,
                asset_url=asset_url,
                version_hint=hint,
            )
            continue

        if not footprint.asset_url:
            footprint.asset_url = asset_url
        if not footprint.version_hint and hint:
            footprint.version_hint = hint


def linked_assets(html: str, page_url: str) -> List[str]:
    """Stylesheet and script URLs referenced by a page."""
    soup = BeautifulSoup(html, "html.parser")
    assets = []
    for link in soup.find_all("link", href=True):
        rel = link.get("rel") or []
        if isinstance(rel, str):
            rel = rel.split()
        if "stylesheet" in [r.lower() for r in rel]:
            assets.append(urljoin(page_url, link["href"]))
    for script in soup.find_all("script", src=True):
        assets.append(urljoin(page_url, script["src"]))
    return [a for a in dict.fromkeys(assets) if a.startswith(("http://", "https://"))]


class PublicExtensionDetector:
    """
    Detects plugin and theme slugs from public pages without credentials.

    Crawls the home page and any additional entry URLs, following their
    linked stylesheets and scripts. The crawl stops at ``max_pages`` processed
    pages or ``max_bytes`` downloaded bytes, whichever comes first.
    """

    def __init__(
        self,
        session: requests.Session,
        cancellation: Optional[CancellationToken] = None,
        timeout: float = 30.0,
    ):
        self.session = session
        self.cancellation = cancellation
        self.timeout = timeout

    def detect(
        self,
        base_url: str,
        additional_entry_urls: Iterable[str] = (),
        max_pages: Optional[int] = None,
        max_bytes: Optional[int] = None,
        follow_linked_assets: bool = True,
    ) -> DetectionResult:
        base_url = clean_base_url(base_url)
        if not base_url:
            raise ValueError("Base URL cannot be empty")

        entry_urls = [f"{base_url}/"]
        entry_urls.extend(urljoin(f"{base_url}/", u.strip()) for u in additional_entry_urls if u and u.strip())
        entry_set = set(entry_urls)

        summary = DetectionSummary(max_pages=max_pages, max_bytes=max_bytes)
        findings: Dict[Tuple[str, str], ExtensionFootprint] = {}
        queue = deque(entry_urls)
        seen = set()

        while queue:
            if self.cancellation:
                self.cancellation.raise_if_cancelled()

            if max_pages is not None and summary.processed_page_count >= max_pages:
                summary.page_limit_reached = True
                break
            if max_bytes is not None and summary.total_bytes_downloaded >= max_bytes:
                summary.byte_limit_reached = True
                break

            url = queue.popleft()
            if url in seen:
                continue
            seen.add(url)

            content = self._download(url, summary)
            if content is None:
                continue

            scan_for_extensions(url, content, findings)

            if follow_linked_assets and url in entry_set:
                for asset in linked_assets(content, url):
                    if asset not in seen:
                        queue.append(asset)

        if max_pages is not None and summary.processed_page_count >= max_pages:
            summary.page_limit_reached = True
        if max_bytes is not None and summary.total_bytes_downloaded >= max_bytes:
            summary.byte_limit_reached = True

        logger.info(
            f"Public extension detection processed {summary.processed_page_count} pages "
            f"({summary.total_bytes_downloaded} bytes), found {len(findings)} footprints"
        )
        note = summary.describe_limits()
        if note:
            logger.info(note)

        return DetectionResult(footprints=list(findings.values()), summary=summary)

    def _download(self, url: str, summary: DetectionSummary) -> Optional[str]:
        logger.debug(f"GET {url}")
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"Public extension detection request failed for {url}: {e}")
            return None

        if response.status_code == 404:
            logger.info(f"Public extension detection received 404 for {url}")
            return None
        if not response.ok:
            logger.warning(f"Public extension detection got HTTP {response.status_code} for {url}")
            return None

        summary.processed_page_count += 1
        summary.total_bytes_downloaded += len(response.content)
        return response.text
