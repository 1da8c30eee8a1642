"""
Contract storage.

Every contract instance owns one bucket of a shared key-value backend.
Backends support nested savepoints so the host can give each handler
invocation all-or-nothing semantics:

    with backend.savepoint():
        ...  # any exception undoes every write made inside the block

MemoryBackend keeps an undo journal per open savepoint. SQLiteBackend
(sqlite_backend.py) maps savepoints onto SQLite SAVEPOINT statements.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel

from sbap.core.errors import NotFound

M = TypeVar("M", bound=BaseModel)


# =============================================================================
# Backends
# =============================================================================


class KVBackend(ABC):
    """Bucketed key-value store with nested savepoints."""

    @abstractmethod
    def get(self, bucket: str, key: str) -> Optional[bytes]:
        ...

    @abstractmethod
    def set(self, bucket: str, key: str, value: bytes) -> None:
        ...

    @abstractmethod
    def remove(self, bucket: str, key: str) -> None:
        ...

    @abstractmethod
    def keys(self, bucket: str, prefix: str = "") -> List[str]:
        """Keys of a bucket starting with prefix, in ascending order."""

    @abstractmethod
    def begin(self) -> None:
        ...

    @abstractmethod
    def commit(self) -> None:
        ...

    @abstractmethod
    def rollback(self) -> None:
        ...

    @property
    @abstractmethod
    def depth(self) -> int:
        """Number of open savepoints."""

    @contextmanager
    def savepoint(self) -> Iterator[None]:
        self.begin()
        try:
            yield
        except BaseException:
            self.rollback()
            raise
        else:
            self.commit()

    def close(self) -> None:
        pass


class MemoryBackend(KVBackend):
    """In-process backend; state lives as long as the object."""

    def __init__(self):
        self._data: Dict[Tuple[str, str], bytes] = {}
        # One undo list per open savepoint: (slot, previous value or None)
        self._journal: List[List[Tuple[Tuple[str, str], Optional[bytes]]]] = []

    def _record(self, slot: Tuple[str, str]) -> None:
        if self._journal:
            self._journal[-1].append((slot, self._data.get(slot)))

    def get(self, bucket: str, key: str) -> Optional[bytes]:
        return self._data.get((bucket, key))

    def set(self, bucket: str, key: str, value: bytes) -> None:
        slot = (bucket, key)
        self._record(slot)
        self._data[slot] = value

    def remove(self, bucket: str, key: str) -> None:
        slot = (bucket, key)
        if slot in self._data:
            self._record(slot)
            del self._data[slot]

    def keys(self, bucket: str, prefix: str = "") -> List[str]:
        return sorted(k for (b, k) in self._data if b == bucket and k.startswith(prefix))

    def begin(self) -> None:
        self._journal.append([])

    def commit(self) -> None:
        undo = self._journal.pop()
        if self._journal:
            # The enclosing savepoint may still roll these writes back
            self._journal[-1].extend(undo)

    def rollback(self) -> None:
        undo = self._journal.pop()
        for slot, previous in reversed(undo):
            if previous is None:
                self._data.pop(slot, None)
            else:
                self._data[slot] = previous

    @property
    def depth(self) -> int:
        return len(self._journal)

    def __len__(self) -> int:
        return len(self._data)


# =============================================================================
# Contract view
# =============================================================================


class Storage:
    """One bucket of a backend, with helpers for pydantic records."""

    def __init__(self, backend: KVBackend, bucket: str):
        self.backend = backend
        self.bucket = bucket

    def get(self, key: str) -> Optional[bytes]:
        return self.backend.get(self.bucket, key)

    def set(self, key: str, value: bytes) -> None:
        self.backend.set(self.bucket, key, value)

    def remove(self, key: str) -> None:
        self.backend.remove(self.bucket, key)

    def keys(self, prefix: str = "") -> List[str]:
        return self.backend.keys(self.bucket, prefix)

    def save(self, key: str, record: BaseModel) -> None:
        self.set(key, record.model_dump_json(by_alias=True).encode("utf-8"))

    def may_load(self, key: str, model: Type[M]) -> Optional[M]:
        raw = self.get(key)
        if raw is None:
            return None
        return model.model_validate_json(raw)

    def load(self, key: str, model: Type[M]) -> M:
        record = self.may_load(key, model)
        if record is None:
            raise NotFound(f"No {model.__name__} stored under {key!r}")
        return record


class ReadonlyStorage(Storage):
    """Storage handed to query handlers."""

    def set(self, key: str, value: bytes) -> None:
        raise RuntimeError("Queries cannot write to storage")

    def remove(self, key: str) -> None:
        raise RuntimeError("Queries cannot write to storage")
