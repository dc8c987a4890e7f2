"""Short-lived single-use records (pending signups, OAuth authorization codes)."""
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class EphemeralRecord:
    key: str
    payload: Dict[str, Any] = field(default_factory=dict)
    expires_at: float = 0.0
    consumed: bool = False

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def is_usable(self, now: float) -> bool:
        return not self.consumed and not self.is_expired(now)


class EphemeralStore:
    """Time-boxed, consume-once records on top of any get/set/delete backend.

    The backend is normally the Flask-Caching ``cache`` object; tests may
    pass a plain object with the same three methods and a fake clock.
    Expiry is enforced here from ``expires_at`` rather than trusting the
    backend's own eviction.
    """

    def __init__(self, backend, namespace: str, ttl: int,
                 clock: Callable[[], float] = time.time):
        self.backend = backend
        self.namespace = namespace
        self.ttl = ttl
        self.clock = clock

    def _cache_key(self, key: str) -> str:
        return f"{self.namespace}_{key}"

    def put(self, key: str, payload: Dict[str, Any]) -> EphemeralRecord:
        record = EphemeralRecord(key=key, payload=dict(payload),
                                 expires_at=self.clock() + self.ttl)
        self.backend.set(self._cache_key(key), asdict(record), timeout=self.ttl)
        return record

    def _load(self, key: str) -> Optional[EphemeralRecord]:
        if not key:
            return None
        raw = self.backend.get(self._cache_key(key))
        if not raw:
            return None
        return EphemeralRecord(**raw)

    def peek(self, key: str) -> Optional[EphemeralRecord]:
        """Return the record if it is still usable, without consuming it."""
        record = self._load(key)
        if record is None or not record.is_usable(self.clock()):
            return None
        return record

    def consume(self, key: str) -> Optional[EphemeralRecord]:
        """Remove the record and return it if it was usable.

        The record is gone after this call whatever the outcome, so a
        second consume of the same key always returns None. Ownership
        goes to the caller whose ``delete`` actually removed the entry;
        a concurrent consumer that read the same record gets None.
        """
        record = self._load(key)
        if record is None:
            return None
        if not self.backend.delete(self._cache_key(key)):
            logger.info(f"{self.namespace} record already consumed")
            return None
        if not record.is_usable(self.clock()):
            logger.info(f"Discarded expired {self.namespace} record")
            return None
        record.consumed = True
        return record

    def discard(self, key: str) -> None:
        self.backend.delete(self._cache_key(key))
