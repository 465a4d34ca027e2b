"""Public design snapshot: page HTML, stylesheets, fonts, images, icons and colors."""

import json
import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

from .base import clean_base_url
from ..services.cancellation import CancellationToken
from ..services.design_assets import DesignAssetCapture
from ..services.media_cache import sanitize_stem

logger = logging.getLogger(__name__)

FONT_FACE = re.compile(r"@font-face\s*\{(?P<body>[^}]*)\}", re.IGNORECASE)
FONT_FAMILY = re.compile(r"font-family\s*:\s*(?P<family>[^;]+)", re.IGNORECASE)
CSS_URL = re.compile(r"url\(\s*(['\"]?)(?P<url>.*?)\1\s*\)", re.IGNORECASE)
HEX_COLOR = re.compile(r"#(?P<hex>[0-9a-fA-F]{8}|[0-9a-fA-F]{6}|[0-9a-fA-F]{3,4})\b")
BREAKPOINT = re.compile(r"^(?P<label>[^:]+):(?P<width>\d+)x(?P<height>\d+)$")

FONT_EXTENSIONS = (".woff", ".woff2", ".ttf", ".otf", ".eot")


@dataclass
class DesignSnapshotResult:
    """Outcome of a design snapshot."""
    pages: List[str] = field(default_factory=list)
    assets: List[Dict[str, Any]] = field(default_factory=list)
    colors: List[Dict[str, Any]] = field(default_factory=list)
    screenshots: List[Dict[str, Any]] = field(default_factory=list)
    manifest_path: Optional[str] = None


def parse_breakpoints(values: Iterable[str]) -> List[Tuple[str, int, int]]:
    """Parse ``label:WIDTHxHEIGHT`` breakpoint strings, skipping invalid ones."""
    breakpoints = []
    for value in values:
        match = BREAKPOINT.match((value or "").strip())
        if not match:
            logger.warning(f"Ignoring invalid screenshot breakpoint '{value}'")
            continue
        breakpoints.append((match.group("label"), int(match.group("width")), int(match.group("height"))))
    return breakpoints


def normalize_color(value: str) -> str:
    value = value.lower()
    if len(value) in (3, 4):
        value = "".join(c * 2 for c in value)
    return f"#{value}"


def count_colors(texts: Iterable[str]) -> List[Dict[str, Any]]:
    """Hex color swatches ordered by frequency."""
    counter: Counter = Counter()
    for text in texts:
        for match in HEX_COLOR.finditer(text):
            counter[normalize_color(match.group("hex"))] += 1
    return [{"value": value, "count": count} for value, count in counter.most_common()]


def css_references(css: str, css_url: str) -> Tuple[List[Tuple[str, Optional[str]]], List[str]]:
    """
    Split ``url(...)`` references in a stylesheet into fonts and images.

    Returns:
        (fonts as (url, family) pairs, image urls)
    """
    fonts: List[Tuple[str, Optional[str]]] = []
    font_urls = set()
    for face in FONT_FACE.finditer(css):
        body = face.group("body")
        family_match = FONT_FAMILY.search(body)
        family = family_match.group("family").strip().strip("'\"") if family_match else None
        for ref in CSS_URL.finditer(body):
            url = ref.group("url").strip()
            if not url or url.startswith("data:"):
                continue
            absolute = urljoin(css_url, url)
            font_urls.add(absolute)
            fonts.append((absolute, family))

    images = []
    for ref in CSS_URL.finditer(css):
        url = ref.group("url").strip()
        if not url or url.startswith(("data:", "#")):
            continue
        absolute = urljoin(css_url, url)
        if absolute in font_urls or absolute.split("?")[0].lower().endswith(FONT_EXTENSIONS):
            continue
        images.append(absolute)
    return fonts, list(dict.fromkeys(images))


class DesignSnapshotScanner:
    """
    Captures the public look of a store into ``design/``.

    Writes page HTML and assets through :class:`DesignAssetCapture`, the
    manifest at ``design/assets-manifest.json`` and color swatches at
    ``design/colors.json``. Screenshots are taken with Playwright when
    requested.
    """

    def __init__(
        self,
        session: requests.Session,
        design_folder: Path,
        cancellation: Optional[CancellationToken] = None,
        timeout: float = 30.0,
    ):
        self.session = session
        self.design_folder = Path(design_folder)
        self.cancellation = cancellation
        self.timeout = timeout
        self.capture = DesignAssetCapture(session, self.design_folder, cancellation)
        self._collected_stylesheets: Set[str] = set()

    def snapshot(
        self,
        base_url: str,
        additional_page_urls: Iterable[str] = (),
        breakpoints: Iterable[str] = (),
        take_screenshots: bool = False,
    ) -> DesignSnapshotResult:
        base_url = clean_base_url(base_url)
        pages = [f"{base_url}/"]
        pages.extend(urljoin(f"{base_url}/", u.strip()) for u in additional_page_urls if u and u.strip())
        pages = list(dict.fromkeys(pages))

        result = DesignSnapshotResult()
        css_texts: List[str] = []

        for page_url in pages:
            if self.cancellation:
                self.cancellation.raise_if_cancelled()

            html = self._fetch_page(page_url)
            if html is None:
                continue
            result.pages.append(page_url)
            self.capture.save_content(
                html.encode("utf-8"), "page", ".html", seed=page_url, prefix="page",
                content_type="text/html", pageUrl=page_url,
            )
            css_texts.extend(self._capture_page_assets(page_url, html))

        result.colors = count_colors(css_texts)
        self.design_folder.mkdir(parents=True, exist_ok=True)
        with open(self.design_folder / "colors.json", "w", encoding="utf-8") as f:
            json.dump({"colors": result.colors}, f, indent=2)

        if take_screenshots and result.pages:
            result.screenshots = self.take_screenshots(result.pages[0], parse_breakpoints(breakpoints))

        result.assets = list(self.capture.entries)
        result.manifest_path = str(self.capture.write_manifest())
        logger.info(
            f"Design snapshot captured {len(result.pages)} pages, {len(result.assets)} assets, "
            f"{len(result.colors)} colors"
        )
        return result

    def _fetch_page(self, url: str) -> Optional[str]:
        logger.debug(f"GET {url}")
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"Design page {url} failed: {e}")
            return None
        if not response.ok:
            logger.warning(f"Design page {url} returned HTTP {response.status_code}")
            return None
        return response.text

    def _capture_page_assets(self, page_url: str, html: str) -> List[str]:
        """Capture stylesheets, fonts, images and icons referenced by a page; return CSS texts."""
        soup = BeautifulSoup(html, "html.parser")
        css_texts = []

        for link in soup.find_all("link", href=True):
            rels = [r.lower() for r in (link.get("rel") or [])]
            href = urljoin(page_url, link["href"])
            if "stylesheet" in rels:
                entry = self.capture.capture(href, "stylesheet", pageUrl=page_url, media=link.get("media"))
                # Shared stylesheets count once per snapshot
                if entry is not None and entry["file"] not in self._collected_stylesheets:
                    self._collected_stylesheets.add(entry["file"])
                    css = (self.design_folder / entry["file"]).read_text(encoding="utf-8", errors="replace")
                    css_texts.append(css)
                    self._capture_css_references(css, entry.get("resolvedUrl") or href)
            elif any("icon" in r for r in rels):
                self.capture.capture(
                    href, "icon", subfolder="icons", rel=" ".join(rels), sizes=link.get("sizes"),
                )

        for style in soup.find_all("style"):
            css = style.get_text()
            if css.strip():
                css_texts.append(css)
                self._capture_css_references(css, page_url)

        for img in soup.find_all("img", src=True):
            src = img["src"].strip()
            if src and not src.startswith("data:"):
                self.capture.capture(urljoin(page_url, src), "image", origin="html", alt=img.get("alt"), pageUrl=page_url)

        return css_texts

    def _capture_css_references(self, css: str, css_url: str) -> None:
        fonts, images = css_references(css, css_url)
        for url, family in fonts:
            self.capture.capture(url, "font", fontFamily=family, referencedFrom=css_url)
        for url in images:
            self.capture.capture(url, "image", origin="css", referencedFrom=css_url)

    def take_screenshots(self, page_url: str, breakpoints: List[Tuple[str, int, int]]) -> List[Dict[str, Any]]:
        """Full-page screenshots per breakpoint into ``design/screenshots/<label>.png``."""
        if not breakpoints:
            return []

        try:
            from playwright.sync_api import sync_playwright
        except ImportError:
            logger.warning("playwright not installed; skipping design screenshots")
            return []

        folder = self.design_folder / "screenshots"
        folder.mkdir(parents=True, exist_ok=True)
        screenshots = []

        with sync_playwright() as p:
            browser = p.chromium.launch(headless=True)
            try:
                for label, width, height in breakpoints:
                    if self.cancellation:
                        self.cancellation.raise_if_cancelled()
                    page = browser.new_page(viewport={"width": width, "height": height})
                    page.goto(page_url)
                    page.wait_for_load_state("networkidle")
                    path = folder / f"{sanitize_stem(label, 'screenshot')}.png"
                    page.screenshot(path=str(path), full_page=True)
                    page.close()
                    screenshots.append({
                        "label": label,
                        "width": width,
                        "height": height,
                        "file": f"screenshots/{path.name}",
                    })
                    logger.info(f"Captured {label} screenshot ({width}x{height})")
            finally:
                browser.close()

        return screenshots
