import os
import threading
from pathlib import Path
from typing import Dict, Protocol


class DocumentStorage(Protocol):
    def save(self, bundle_key: str, slot: str, filename: str, content: bytes) -> str:
        """Persist bytes once and return a stable reference."""
        ...

    def read(self, reference: str) -> bytes: ...

    def delete(self, reference: str) -> None: ...


def _reference(bundle_key: str, slot: str, filename: str) -> str:
    ext = os.path.splitext(filename or "")[1].lower() or ".bin"
    return f"registrations/{bundle_key}/{slot}{ext}"


class InMemoryDocumentStorage:
    def __init__(self) -> None:
        self._blobs: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def save(self, bundle_key: str, slot: str, filename: str, content: bytes) -> str:
        ref = _reference(bundle_key, slot, filename)
        with self._lock:
            if ref in self._blobs:
                raise FileExistsError(ref)
            self._blobs[ref] = bytes(content)
        return ref

    def read(self, reference: str) -> bytes:
        with self._lock:
            return self._blobs[reference]

    def delete(self, reference: str) -> None:
        with self._lock:
            self._blobs.pop(reference, None)

    def __len__(self) -> int:
        return len(self._blobs)


class LocalDocumentStorage:
    def __init__(self, base_dir: str):
        self.base_dir = Path(base_dir)

    def save(self, bundle_key: str, slot: str, filename: str, content: bytes) -> str:
        ref = _reference(bundle_key, slot, filename)
        path = self.base_dir / ref
        path.parent.mkdir(parents=True, exist_ok=True)
        # "xb" keeps documents write-once
        with open(path, "xb") as fh:
            fh.write(content)
        return ref

    def read(self, reference: str) -> bytes:
        return (self.base_dir / reference).read_bytes()

    def delete(self, reference: str) -> None:
        (self.base_dir / reference).unlink(missing_ok=True)

