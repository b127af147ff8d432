import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from ldt_gateway.commons.logger import logger
from ldt_gateway.parsers.models import Result


class ResultNotFound(KeyError):
    pass


class InMemoryResultRepository:
    """Result store behind the repository interface used by the pipeline.

    ``append`` is idempotent on ``source_message_id``: a second append for the
    same source message returns the stored result instead of a duplicate.
    ``transaction()`` exposes the lock so match-then-insert runs atomically.
    """

    def __init__(self):
        self._results: Dict[str, Result] = {}
        self._by_source: Dict[str, str] = {}
        self._lock = threading.RLock()

    def transaction(self):
        return self._lock

    def append(self, result: Result) -> Result:
        with self._lock:
            existing_id = self._by_source.get(result.source_message_id)
            if existing_id is not None:
                return self._results[existing_id]
            self._results[result.id] = result
            self._by_source[result.source_message_id] = result.id
            return result

    def get(self, result_id: str) -> Optional[Result]:
        with self._lock:
            return self._results.get(result_id)

    def find_by_source_message(self, source_message_id: str) -> Optional[Result]:
        with self._lock:
            rid = self._by_source.get(source_message_id)
            return self._results.get(rid) if rid else None

    def list_all(self) -> List[Result]:
        with self._lock:
            return list(self._results.values())

    def list_unassigned(self) -> List[Result]:
        with self._lock:
            return [r for r in self._results.values() if r.assigned_recipient_id is None]

    def reassign(
        self,
        result_id: str,
        recipient_id: str,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> Result:
        # Accion explicita de admin; el pipeline nunca la invoca
        with self._lock:
            result = self._results.get(result_id)
            if result is None:
                raise ResultNotFound(result_id)
            result.assigned_recipient_id = recipient_id
            result.updated_at = now()
            logger.info(f"Resultado {result_id} reasignado a {recipient_id}")
            return result

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)
