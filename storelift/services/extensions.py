"""Per-extension bundle folders for captured plugins and themes."""

import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import requests

from ..models.record import ExtensionArtifact, InstalledExtension
from .cancellation import CancellationToken
from .media_cache import cached_filename, download

logger = logging.getLogger(__name__)


class ExtensionBundleWriter:
    """
    Writes ``plugins/{slug}/`` and ``themes/{slug}/`` bundle folders.

    Each folder holds ``options.json``, ``manifest.json`` (downloaded assets
    with sha256 hashes) and ``archive.zip`` when a download URL is known.
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
        self._used: Set[str] = set()

    def folder_for(self, extension: InstalledExtension) -> str:
        return "themes" if extension.type == "theme" else "plugins"

    def unique_slug(self, extension: InstalledExtension, index: int) -> str:
        slug = extension.resolve_slug(index)
        key = f"{self.folder_for(extension)}/{slug}"
        if key in self._used:
            slug = f"{slug}-{index}"
            key = f"{self.folder_for(extension)}/{slug}"
        self._used.add(key)
        return slug

    def write(self, extension: InstalledExtension, index: int, slug: Optional[str] = None) -> ExtensionArtifact:
        slug = slug or self.unique_slug(extension, index)
        directory = self.store_folder / self.folder_for(extension) / slug
        directory.mkdir(parents=True, exist_ok=True)
        artifact = ExtensionArtifact(slug=slug, directory_path=directory.as_posix())

        options = {
            "slug": slug,
            "type": extension.type,
            "name": extension.name,
            "version": extension.version,
            "status": extension.status,
            "options": extension.options,
        }
        self._write_json(Path(artifact.options_path), options)

        manifest = {
            "slug": slug,
            "type": extension.type,
            "version": extension.version,
            "assets": self._download_assets(extension.asset_urls, directory / "assets"),
        }
        self._write_json(Path(artifact.manifest_path), manifest)

        if extension.download_url:
            downloaded = download(self.session, extension.download_url, self.cancellation)
            if downloaded is not None:
                Path(artifact.archive_path).write_bytes(downloaded.content)
            else:
                logger.warning(f"Archive for {extension.type} '{slug}' could not be downloaded")

        logger.info(f"Captured {extension.type} bundle '{slug}' ({len(manifest['assets'])} assets)")
        return artifact

    def _download_assets(self, urls: List[str], folder: Path) -> List[Dict[str, Any]]:
        assets = []
        for url in dict.fromkeys(urls):
            downloaded = download(self.session, url, self.cancellation)
            if downloaded is None:
                assets.append({"url": url, "file": None, "error": "download failed"})
                continue

            filename = cached_filename(url, downloaded.content_type, fallback="asset")
            folder.mkdir(parents=True, exist_ok=True)
            (folder / filename).write_bytes(downloaded.content)
            assets.append({
                "url": url,
                "file": f"assets/{filename}",
                "contentType": downloaded.content_type,
                "sizeBytes": downloaded.size_bytes,
                "sha256": hashlib.sha256(downloaded.content).hexdigest(),
            })
        return assets

    @staticmethod
    def _write_json(path: Path, document: Dict[str, Any]) -> None:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2, ensure_ascii=False, default=str)
