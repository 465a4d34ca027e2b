"""Run-scoped, content-addressed media download cache."""

import hashlib
import logging
import mimetypes
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, Optional, Set
from urllib.parse import unquote, urlparse

import requests

from ..models.record import MediaReference
from .cancellation import CancellationToken

logger = logging.getLogger(__name__)

CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/avif": ".avif",
    "image/svg+xml": ".svg",
    "image/x-icon": ".ico",
    "image/vnd.microsoft.icon": ".ico",
    "text/css": ".css",
    "font/woff": ".woff",
    "font/woff2": ".woff2",
    "font/ttf": ".ttf",
    "font/otf": ".otf",
    "application/font-woff": ".woff",
    "application/font-woff2": ".woff2",
    "application/vnd.ms-fontobject": ".eot",
    "application/pdf": ".pdf",
    "video/mp4": ".mp4",
}

_STEM_INVALID = re.compile(r"[^A-Za-z0-9_-]+")
_EXTENSION_PATTERN = re.compile(r"^\.[A-Za-z0-9]{1,5}$")
_MAX_STEM_LENGTH = 60


def url_hash(value: str, length: int = 10) -> str:
    """Short deterministic hash of a string."""
    return hashlib.sha1(value.encode("utf-8")).hexdigest()[:length]


def sanitize_stem(value: str, fallback: str = "file") -> str:
    """Reduce a filename stem to a filesystem-safe token."""
    cleaned = _STEM_INVALID.sub("-", value).strip("-_")[:_MAX_STEM_LENGTH].strip("-_")
    return cleaned or fallback


def extension_for(url: str, content_type: Optional[str] = None) -> str:
    """Pick a file extension from the URL path, falling back to the content type."""
    suffix = PurePosixPath(unquote(urlparse(url).path)).suffix
    if suffix and _EXTENSION_PATTERN.match(suffix):
        return suffix.lower()

    if content_type:
        media_type = content_type.split(";")[0].strip().lower()
        if media_type in CONTENT_TYPE_EXTENSIONS:
            return CONTENT_TYPE_EXTENSIONS[media_type]
        guessed = mimetypes.guess_extension(media_type)
        if guessed:
            return guessed

    return ".bin"


def cached_filename(url: str, content_type: Optional[str] = None, fallback: str = "file") -> str:
    """
    Build the cache filename for a URL.

    The stem comes from the last path segment, the URL hash keeps distinct
    URLs from sharing a name.
    """
    stem = PurePosixPath(unquote(urlparse(url).path)).stem
    return f"{sanitize_stem(stem, fallback)}-{url_hash(url)}{extension_for(url, content_type)}"


@dataclass
class DownloadedContent:
    """Body and headers of a successful download."""
    url: str
    final_url: str
    content: bytes
    content_type: Optional[str] = None

    @property
    def size_bytes(self) -> int:
        return len(self.content)


def download(
    session: requests.Session,
    url: str,
    cancellation: Optional[CancellationToken] = None,
    timeout: float = 30.0,
    chunk_size: int = 64 * 1024,
) -> Optional[DownloadedContent]:
    """
    Download a URL in chunks.

    Returns None (after logging a warning) on a non-success status or a
    transport error. Cancellation is checked between chunks and raises.
    """
    logger.debug(f"GET {url}")
    try:
        with session.get(url, stream=True, timeout=timeout) as response:
            if not response.ok:
                logger.warning(f"Download of {url} failed: HTTP {response.status_code}")
                return None

            chunks = []
            for chunk in response.iter_content(chunk_size=chunk_size):
                if cancellation:
                    cancellation.raise_if_cancelled()
                if chunk:
                    chunks.append(chunk)

            return DownloadedContent(
                url=url,
                final_url=response.url or url,
                content=b"".join(chunks),
                content_type=response.headers.get("Content-Type"),
            )
    except requests.RequestException as e:
        logger.warning(f"Download of {url} failed: {e}")
        return None


class MediaCache:
    """
    Maps source URLs to files materialized once per run.

    Lookups use the exact URL string. Only successful downloads are cached,
    so a failed URL is attempted again on its next reference.
    """

    def __init__(
        self,
        session: requests.Session,
        store_folder: Path,
        cancellation: Optional[CancellationToken] = None,
    ):
        self.session = session
        self.store_folder = Path(store_folder)
        self.cancellation = cancellation
        self._references: Dict[str, MediaReference] = {}
        self._used_paths: Set[str] = set()
        self.download_count = 0

    def __len__(self) -> int:
        return len(self._references)

    def __contains__(self, url: str) -> bool:
        return url in self._references

    def get(self, url: str) -> Optional[MediaReference]:
        return self._references.get(url)

    def resolve(self, url: str, folder: str = "images") -> Optional[MediaReference]:
        """
        Return the reference for ``url``, downloading it into ``folder`` on a miss.

        Args:
            url: Source URL
            folder: Destination folder relative to the store folder

        Returns:
            MediaReference, or None when the download failed
        """
        if not url:
            return None

        cached = self._references.get(url)
        if cached is not None:
            return cached

        downloaded = self._download(url)
        if downloaded is None:
            return None

        filename = cached_filename(url, downloaded.content_type, fallback="media")
        relative = PurePosixPath(folder) / filename
        return self._store(url, relative, downloaded)

    def _download(self, url: str) -> Optional[DownloadedContent]:
        self.download_count += 1
        return download(self.session, url, self.cancellation)

    def _store(self, url: str, relative: PurePosixPath, downloaded: DownloadedContent) -> Optional[MediaReference]:
        absolute = self.store_folder.joinpath(*relative.parts)
        try:
            absolute.parent.mkdir(parents=True, exist_ok=True)
            absolute.write_bytes(downloaded.content)
        except OSError as e:
            logger.warning(f"Failed to write {absolute} for {url}: {e}")
            return None

        reference = MediaReference(
            source_url=url,
            relative_path=relative.as_posix(),
            absolute_path=str(absolute),
        )
        self._references[url] = reference
        self._used_paths.add(reference.relative_path)
        logger.debug(f"Cached {url} -> {reference.relative_path}")
        return reference


class WordPressMediaCache(MediaCache):
    """Media cache for WordPress library items that mirrors upload-date folders."""

    def resolve_library_item(self, item: Dict, folder: str = "media") -> Optional[MediaReference]:
        """
        Resolve a WordPress media item.

        When ``media_details.file`` carries a folder hint (e.g. ``2023/05/x.jpg``)
        the relative path mirrors it under ``folder``, taking the URL hash as a
        suffix when another URL already holds that name; otherwise the flat
        hashed scheme is used.
        """
        url = item.get("source_url") or ""
        if not url:
            return None

        cached = self._references.get(url)
        if cached is not None:
            return cached

        hint = (item.get("media_details") or {}).get("file") or ""
        relative = self._hinted_path(folder, hint)
        if relative is None:
            return self.resolve(url, folder)
        if relative.as_posix() in self._used_paths:
            # Another URL already owns this name
            relative = relative.with_name(f"{relative.stem}-{url_hash(url)}{relative.suffix}")

        downloaded = self._download(url)
        if downloaded is None:
            return None
        return self._store(url, relative, downloaded)

    @staticmethod
    def _hinted_path(folder: str, hint: str) -> Optional[PurePosixPath]:
        parts = [p for p in hint.replace("\\", "/").split("/") if p]
        if len(parts) < 2 or any(p in (".", "..") for p in parts):
            return None

        *directories, filename = parts
        stem = PurePosixPath(filename).stem
        suffix = PurePosixPath(filename).suffix
        if not _EXTENSION_PATTERN.match(suffix or ""):
            return None

        safe_dirs = [sanitize_stem(d, "folder") for d in directories]
        return PurePosixPath(folder, *safe_dirs, f"{sanitize_stem(stem, 'media')}{suffix.lower()}")
