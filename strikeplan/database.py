import threading
import uuid
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from typing import Generic, TypeVar

K = TypeVar("K")
V = TypeVar("V")
T = TypeVar("T")


class InMemoryKeyValueDatabase(Generic[K, V]):
    """
    In-memory key/value store shared by every planner operation.

    Records are keyed ``"<entity>:<id>"``. Mutations that read state,
    validate it and write back must run inside ``transaction()`` so that no
    other writer can interleave between the check and the write.
    """

    def __init__(self) -> None:
        self._store: MutableMapping[K, V] = {}
        self._lock = threading.RLock()

    def put(self, key: K, value: V) -> None:
        self._store[key] = value

    def get(self, key: K) -> V | None:
        return self._store.get(key)

    def get_as(self, key: K, cls: type[T]) -> T | None:
        value = self.get(key)
        if isinstance(value, cls):
            return value
        return None

    def delete(self, key: K) -> None:
        self._store.pop(key, None)

    def all(self) -> list[V]:
        return list(self._store.values())

    def of_type(self, cls: type[T]) -> list[T]:
        return [v for v in self.all() if isinstance(v, cls)]

    def __len__(self) -> int:
        return len(self._store)

    @staticmethod
    def new_id() -> str:
        return uuid.uuid4().hex

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Serialise a read-modify-write sequence against other writers.
        Re-entrant, so an operation may call another transactional helper.
        """
        with self._lock:
            yield


def key(entity: str, record_id: str) -> str:
    return f"{entity}:{record_id}"
