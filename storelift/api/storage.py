"""In-process registry of runs started through the API."""

import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..models.migration import MigrationConfig, MigrationStatus, RunResult
from ..services.cancellation import CancellationToken


@dataclass
class RunEntry:
    """Registry entry for one run; the snapshot is held by reference on ``result``."""
    id: str
    config: MigrationConfig
    cancellation: CancellationToken = field(default_factory=CancellationToken)
    orchestrator: Optional[Any] = None
    result: Optional[RunResult] = None
    replay: Optional[Dict[str, Any]] = None

    @property
    def has_snapshot(self) -> bool:
        return self.result is not None and self.result.has_snapshot

    def to_dict(self) -> Dict[str, Any]:
        if self.result is not None:
            data = self.result.to_dict()
        elif self.orchestrator is not None and self.orchestrator.run is not None:
            data = self.orchestrator.run.to_dict()
            data["has_snapshot"] = False
        else:
            data = {
                "id": self.id,
                "source_url": self.config.target_url,
                "store_id": "",
                "status": MigrationStatus.PENDING.value,
                "has_snapshot": False,
            }
        data["id"] = self.id
        data["replay"] = self.replay
        return data


class RunStorage:
    """Thread-safe map of run id to :class:`RunEntry`."""

    def __init__(self):
        self._runs: Dict[str, RunEntry] = {}
        self._lock = threading.Lock()

    def create(self, config: MigrationConfig) -> RunEntry:
        entry = RunEntry(id=str(uuid.uuid4()), config=config)
        with self._lock:
            self._runs[entry.id] = entry
        return entry

    def get(self, run_id: str) -> Optional[RunEntry]:
        with self._lock:
            return self._runs.get(run_id)

    def list_all(self) -> List[RunEntry]:
        with self._lock:
            return list(self._runs.values())

    def clear(self) -> None:
        with self._lock:
            self._runs.clear()


run_storage = RunStorage()
