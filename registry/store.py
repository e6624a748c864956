import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import ContextManager, Dict, Iterable, Iterator, List, Optional

from registry.identity import Identity
from registry.locks import IdentityLocks
from registry.models import NewRegistration, Registration


class RegistrationStore(ABC):
    """Persistence boundary for committed registrations."""

    @abstractmethod
    def find_matching(self, identity: Identity) -> List[Registration]:
        """Registrations whose aadhar OR voter id equals the identity's, oldest first."""

    @abstractmethod
    def get(self, registration_id: int) -> Optional[Registration]: ...

    @abstractmethod
    def insert(self, new: NewRegistration) -> Registration: ...

    @abstractmethod
    def serialized(self, keys: Iterable[str]) -> ContextManager[None]:
        """Mutual exclusion for check-then-insert sequences on the given identity keys."""


class InMemoryRegistrationStore(RegistrationStore):
    def __init__(self) -> None:
        self._rows: Dict[int, Registration] = {}
        self._next_id = 1
        self._lock = threading.Lock()
        self.locks = IdentityLocks()

    def find_matching(self, identity: Identity) -> List[Registration]:
        with self._lock:
            rows = [r for r in self._rows.values() if identity.matches(r.identity)]
        return sorted(rows, key=lambda r: (r.created_at, r.id))

    def get(self, registration_id: int) -> Optional[Registration]:
        with self._lock:
            return self._rows.get(registration_id)

    def insert(self, new: NewRegistration) -> Registration:
        with self._lock:
            registration = Registration(
                id=self._next_id,
                created_at=datetime.now(timezone.utc),
                **dict(new),
            )
            self._rows[registration.id] = registration
            self._next_id += 1
        return registration

    @contextmanager
    def serialized(self, keys: Iterable[str]) -> Iterator[None]:
        with self.locks.hold(keys):
            yield

    def all(self) -> List[Registration]:
        with self._lock:
            return sorted(self._rows.values(), key=lambda r: r.id)
