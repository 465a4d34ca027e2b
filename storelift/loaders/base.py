"""Base provisioner interface for target stores."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar
from datetime import datetime, timezone
import logging

from ..models.record import ExtensionArtifact, StoreConfiguration, StoreProduct, StoreRecord, TermItem
from ..services.cancellation import CancellationToken, RunCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class LoadResult:
    """Result of provisioning one entity type."""
    entity: str
    total_attempted: int = 0
    total_succeeded: int = 0
    total_failed: int = 0
    total_skipped: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    id_map: Dict[str, Any] = field(default_factory=dict)  # source id -> target id

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def success_rate(self) -> float:
        if self.total_attempted == 0:
            return 0.0
        return self.total_succeeded / self.total_attempted

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity": self.entity,
            "total_attempted": self.total_attempted,
            "total_succeeded": self.total_succeeded,
            "total_failed": self.total_failed,
            "total_skipped": self.total_skipped,
            "success_rate": self.success_rate,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "errors": self.errors,
        }


class BaseProvisioner(ABC):
    """
    Base class for target store provisioners.

    Provisioners create or update one record at a time; :meth:`load_batch`
    applies one operation over a collection and isolates per-record failures.
    """

    def __init__(
        self,
        dry_run: bool = False,
        cancellation: Optional[CancellationToken] = None,
        progress: Optional[Callable[[str], None]] = None,
    ):
        """
        Initialize the provisioner.

        Args:
            dry_run: If True, simulate without making changes
            cancellation: Cancellation token checked between records
            progress: Optional callback receiving progress messages
        """
        self.dry_run = dry_run
        self.cancellation = cancellation
        self.progress = progress

    def report(self, message: str) -> None:
        logger.info(message)
        if self.progress:
            self.progress(message)

    @abstractmethod
    def upsert_term(self, taxonomy: str, term: TermItem, parent_id: Optional[int] = None) -> Optional[int]:
        """Create or reuse a category/tag; returns the target term id."""
        pass

    @abstractmethod
    def upsert_product(self, product: StoreProduct, term_ids: Dict[str, Dict[int, int]]) -> Optional[int]:
        """Create or update a product; returns the target product id."""
        pass

    @abstractmethod
    def upsert_variation(self, parent_target_id: int, variation: StoreProduct) -> Optional[int]:
        pass

    @abstractmethod
    def upsert_customer(self, record: StoreRecord) -> Optional[int]:
        pass

    @abstractmethod
    def upsert_coupon(self, record: StoreRecord) -> Optional[int]:
        pass

    @abstractmethod
    def create_order(self, record: StoreRecord) -> Optional[int]:
        pass

    @abstractmethod
    def create_subscription(self, record: StoreRecord) -> Optional[int]:
        pass

    @abstractmethod
    def apply_configuration(self, configuration: StoreConfiguration) -> None:
        pass

    @abstractmethod
    def upload_extension(self, scope: str, artifact: ExtensionArtifact) -> bool:
        """Upload a plugin/theme bundle folder; returns True when accepted."""
        pass

    def load_batch(
        self,
        entity: str,
        items: Iterable[T],
        operation: Callable[[T], Optional[Any]],
        key: Callable[[T], Any] = lambda item: getattr(item, "id", None),
    ) -> LoadResult:
        """
        Apply ``operation`` to every item, recording successes and failures.

        Args:
            entity: Entity name used in logs and results
            items: Items to provision
            operation: Callable returning the target id (None counts as skipped)
            key: Source id of an item

        Returns:
            LoadResult with per-entity statistics
        """
        result = LoadResult(entity=entity)
        result.started_at = datetime.now(timezone.utc)

        for item in items:
            if self.cancellation:
                self.cancellation.raise_if_cancelled()

            source_id = key(item)
            result.total_attempted += 1

            if self.dry_run:
                result.total_succeeded += 1
                result.id_map[str(source_id)] = source_id
                continue

            try:
                target_id = operation(item)
            except RunCancelled:
                raise
            except Exception as e:
                result.total_failed += 1
                result.errors.append({"record_id": source_id, "error": str(e)})
                logger.error(f"Failed to provision {entity} {source_id}: {e}")
                continue

            if target_id is None:
                result.total_skipped += 1
            else:
                result.total_succeeded += 1
                result.id_map[str(source_id)] = target_id

        result.completed_at = datetime.now(timezone.utc)
        self.report(f"Provisioned {entity}: {result.total_succeeded}/{result.total_attempted} succeeded")
        return result
