"""Base store extractor interface."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
import logging

import requests

from ..models.record import StoreProduct, TermItem
from ..services.cancellation import CancellationToken

logger = logging.getLogger(__name__)


class BaseStoreExtractor(ABC):
    """
    Base class for platform fetch collaborators.

    Extractors pull one entity type per call from a source store and return
    plain model objects. Every platform supports the catalog; other
    capabilities are overridden where the platform offers them.
    """

    platform: str = ""

    def __init__(
        self,
        base_url: str,
        session: requests.Session,
        cancellation: Optional[CancellationToken] = None,
        timeout: float = 30.0,
    ):
        """
        Initialize the extractor.

        Args:
            base_url: Store root URL
            session: Session carrying the retry policy
            cancellation: Run cancellation token
            timeout: Per-request timeout in seconds
        """
        self.base_url = clean_base_url(base_url)
        self.session = session
        self.cancellation = cancellation
        self.timeout = timeout
        self._errors: List[Dict[str, Any]] = []
        self._warnings: List[str] = []

    @abstractmethod
    def fetch_products(self, categories: Optional[List[str]] = None, tags: Optional[List[str]] = None) -> List[StoreProduct]:
        """Fetch the primary catalog, optionally filtered by category/tag slugs."""
        pass

    def fetch_products_basic(self) -> List[StoreProduct]:
        """Secondary catalog path used when the primary returns nothing."""
        return []

    @abstractmethod
    def fetch_variations(self, parent_ids: List[int]) -> List[StoreProduct]:
        """Fetch child variants for the given parent product ids."""
        pass

    def fetch_categories(self) -> List[TermItem]:
        return []

    def fetch_tags(self) -> List[TermItem]:
        return []

    def get(self, path_or_url: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> requests.Response:
        """Issue a GET against the store, checking cancellation first."""
        if self.cancellation:
            self.cancellation.raise_if_cancelled()
        url = path_or_url if path_or_url.startswith(("http://", "https://")) else f"{self.base_url}{path_or_url}"
        logger.debug(f"GET {url} {params or ''}".rstrip())
        return self.session.get(url, params=params, timeout=self.timeout, **kwargs)

    def get_json(self, path_or_url: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        response = self.get(path_or_url, params=params, **kwargs)
        response.raise_for_status()
        if not response.content:
            return None
        return response.json()

    def add_error(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        """Record a fetch error."""
        error = {
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if details:
            error.update(details)
        self._errors.append(error)
        logger.error(f"Extraction error: {message}")

    def add_warning(self, message: str) -> None:
        """Record a fetch warning."""
        self._warnings.append(message)
        logger.warning(f"Extraction warning: {message}")

    @property
    def errors(self) -> List[Dict[str, Any]]:
        return list(self._errors)

    @property
    def warnings(self) -> List[str]:
        return list(self._warnings)

    def reset(self) -> None:
        """Reset the extractor state."""
        self._errors = []
        self._warnings = []


def clean_base_url(url: str) -> str:
    """Normalize a store URL: add a scheme when missing and drop trailing slashes."""
    url = (url or "").strip()
    if url and "://" not in url:
        url = f"https://{url}"
    return url.rstrip("/")
