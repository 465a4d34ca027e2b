"""Design snapshot asset capture and manifest construction."""

import hashlib
import json
import logging
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Set

import requests

from .cancellation import CancellationToken
from .media_cache import download, extension_for, sanitize_stem

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "assets-manifest.json"


def design_asset_filename(prefix: str, index: int, url: Optional[str], ext: str, fallback_seed: str = "") -> str:
    """
    Name a design asset file.

    The hash covers ``(prefix, index, url-or-seed)`` so distinct assets never
    share a name even when their URLs end in the same segment.
    """
    seed = url or fallback_seed or f"{prefix}-{index}"
    digest = hashlib.sha1(f"{prefix}|{index}|{seed}".encode("utf-8")).hexdigest()[:10]
    return f"{sanitize_stem(prefix, 'asset')}-{index:03d}-{digest}{ext}"


class DesignAssetCapture:
    """
    Downloads stylesheets, fonts, images and icons for a design snapshot.

    Each source URL is downloaded at most once; entries accumulate into the
    manifest written by :meth:`write_manifest`. File names are unique within
    the capture and existing files are never overwritten.
    """

    def __init__(
        self,
        session: requests.Session,
        design_folder: Path,
        cancellation: Optional[CancellationToken] = None,
    ):
        self.session = session
        self.design_folder = Path(design_folder)
        self.cancellation = cancellation
        self.entries: List[Dict[str, Any]] = []
        self._by_url: Dict[str, Dict[str, Any]] = {}
        self._used_names: Set[str] = set()
        self._counters: Dict[str, int] = {}
        self.failed_urls: List[str] = []

    def capture(
        self,
        url: str,
        asset_type: str,
        prefix: Optional[str] = None,
        subfolder: str = "assets",
        **fields: Any,
    ) -> Optional[Dict[str, Any]]:
        """
        Download ``url`` and record a manifest entry.

        Args:
            url: Absolute asset URL
            asset_type: Manifest type (stylesheet, font, image, icon)
            prefix: File name prefix; defaults to the asset type
            subfolder: Folder under the design folder (assets or icons)
            **fields: Type-specific manifest fields

        Returns:
            The manifest entry, or None when the download failed
        """
        if url in self._by_url:
            return self._by_url[url]

        downloaded = download(self.session, url, self.cancellation)
        if downloaded is None:
            self.failed_urls.append(url)
            return None

        entry = self._write(
            content=downloaded.content,
            asset_type=asset_type,
            prefix=prefix or asset_type,
            subfolder=subfolder,
            source_url=url,
            resolved_url=downloaded.final_url,
            content_type=downloaded.content_type,
            ext=extension_for(downloaded.final_url or url, downloaded.content_type),
            fallback_seed=url,
            fields=fields,
        )
        self._by_url[url] = entry
        return entry

    def save_content(
        self,
        content: bytes,
        asset_type: str,
        ext: str,
        seed: str,
        prefix: Optional[str] = None,
        subfolder: str = "assets",
        content_type: Optional[str] = None,
        **fields: Any,
    ) -> Dict[str, Any]:
        """Record already-fetched content (page HTML, inline styles)."""
        return self._write(
            content=content,
            asset_type=asset_type,
            prefix=prefix or asset_type,
            subfolder=subfolder,
            source_url=None,
            resolved_url=None,
            content_type=content_type,
            ext=ext,
            fallback_seed=seed,
            fields=fields,
        )

    def _write(
        self,
        content: bytes,
        asset_type: str,
        prefix: str,
        subfolder: str,
        source_url: Optional[str],
        resolved_url: Optional[str],
        content_type: Optional[str],
        ext: str,
        fallback_seed: str,
        fields: Dict[str, Any],
    ) -> Dict[str, Any]:
        filename = self._unique_name(prefix, source_url, ext, fallback_seed)
        relative = PurePosixPath(subfolder) / filename
        target = self.design_folder.joinpath(*relative.parts)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)

        entry = {
            "type": asset_type,
            "file": relative.as_posix(),
            "sourceUrl": source_url,
            "resolvedUrl": resolved_url,
            "contentType": content_type,
            "sizeBytes": len(content),
            "contentHash": hashlib.sha256(content).hexdigest(),
        }
        entry.update(fields)
        self.entries.append(entry)
        logger.debug(f"Captured {asset_type} {source_url or fallback_seed} -> {entry['file']}")
        return entry

    def _unique_name(self, prefix: str, url: Optional[str], ext: str, fallback_seed: str) -> str:
        index = self._counters.get(prefix, 0)
        while True:
            index += 1
            name = design_asset_filename(prefix, index, url, ext, fallback_seed)
            if name not in self._used_names and not self._exists(name):
                break
        self._counters[prefix] = index
        self._used_names.add(name)
        return name

    def _exists(self, name: str) -> bool:
        return any((self.design_folder / folder / name).exists() for folder in ("assets", "icons"))

    def entries_of_type(self, asset_type: str) -> List[Dict[str, Any]]:
        return [e for e in self.entries if e["type"] == asset_type]

    def write_manifest(self) -> Path:
        """Write ``assets-manifest.json`` into the design folder."""
        self.design_folder.mkdir(parents=True, exist_ok=True)
        path = self.design_folder / MANIFEST_FILENAME
        with open(path, "w", encoding="utf-8") as f:
            json.dump({"assets": self.entries}, f, indent=2)
        return path
