from __future__ import annotations

from dataclasses import replace
import logging
import threading
from typing import Dict, List, Optional, Protocol

from weld_rig_analyzer.models.catalog import ExperimentRecord

logger = logging.getLogger(__name__)


class ExperimentRepository(Protocol):
    """Index store consumed by the directory scanner."""

    def experiment_exists(self, experiment_id: str) -> bool: ...

    def upsert_experiment(self, record: ExperimentRecord) -> ExperimentRecord: ...


class InMemoryExperimentRepository:
    """
    Process-local ExperimentRepository.

    Upserting an existing id keeps its original ``created_at``.
    """

    def __init__(self):
        self._records: Dict[str, ExperimentRecord] = {}
        self._lock = threading.Lock()

    def experiment_exists(self, experiment_id: str) -> bool:
        with self._lock:
            return experiment_id in self._records

    def upsert_experiment(self, record: ExperimentRecord) -> ExperimentRecord:
        with self._lock:
            prev = self._records.get(record.experiment_id)
            if prev is not None:
                record = replace(record, created_at=prev.created_at)
            self._records[record.experiment_id] = record
        logger.debug("Upserted experiment %s", record.experiment_id)
        return record

    def get(self, experiment_id: str) -> Optional[ExperimentRecord]:
        with self._lock:
            return self._records.get(experiment_id)

    def all(self) -> List[ExperimentRecord]:
        with self._lock:
            return sorted(self._records.values(), key=lambda r: r.experiment_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
