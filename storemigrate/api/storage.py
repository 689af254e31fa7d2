"""In-process storage of migration runs started through the API."""

import threading
from typing import Dict, List, Optional

from ..models.migration import MigrationRun


class MigrationRunStorage:
    """Keeps every run started by this process, newest last."""

    def __init__(self):
        self._runs: Dict[str, MigrationRun] = {}
        self._lock = threading.Lock()

    def add(self, run: MigrationRun) -> MigrationRun:
        with self._lock:
            self._runs[run.id] = run
        return run

    def get(self, run_id: str) -> Optional[MigrationRun]:
        with self._lock:
            return self._runs.get(run_id)

    def list_all(self) -> List[MigrationRun]:
        with self._lock:
            return list(self._runs.values())

    def clear(self) -> None:
        with self._lock:
            self._runs.clear()


migration_storage = MigrationRunStorage()
