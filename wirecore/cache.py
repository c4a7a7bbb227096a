"""
Concurrent lookup cache for published singletons.

LookupCache is a fixed-capacity open-addressing table (linear probing,
power-of-two size, hash masked with size - 1). Each slot holds one
(id, instance) tuple, so a reader either sees no entry or a complete one:
publication is a single reference store. Writers serialize on one lock;
readers never lock.

WorkerCache is a small per-worker front cache, checked before the shared
table and refilled round-robin. Bindings never change once published, so
neither cache needs invalidation; clear() only happens at container close.
"""

from threading import Lock
from typing import Any, Callable, Optional

MISSING = object()

LOAD_FACTOR = 0.75
MIN_CAPACITY = 16
MAX_CAPACITY = 1 << 30
WORKER_SLOTS = 8


def table_size_for(expected: int) -> int:
    """
    Next power of two above expected / 0.75, clamped to [16, 2**30].
    """
    needed = int(expected / LOAD_FACTOR) + 1
    size = 1
    while size < needed:
        size <<= 1
    return max(MIN_CAPACITY, min(size, MAX_CAPACITY))


class LookupCache:
    __slots__ = ('_slots', '_mask', '_count', '_write_lock')

    def __init__(self, expected_size: int):
        size = table_size_for(expected_size)
        self._slots: list = [None] * size
        self._mask = size - 1
        self._count = 0
        self._write_lock = Lock()

    @property
    def capacity(self) -> int:
        return len(self._slots)

    def __len__(self) -> int:
        return self._count

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not MISSING

    def get(self, key: str, default: Any = MISSING) -> Any:
        slots = self._slots
        mask = self._mask
        index = hash(key) & mask
        for _ in range(len(slots)):
            entry = slots[index]
            if entry is None:
                return default
            if entry[0] == key:
                return entry[1]
            index = (index + 1) & mask
        return default

    def put(self, key: str, instance: Any) -> None:
        """
        Publish a binding. A key may only be published once.
        """
        with self._write_lock:
            slots = self._slots
            mask = self._mask
            index = hash(key) & mask
            for _ in range(len(slots)):
                entry = slots[index]
                if entry is None:
                    # Single reference store: readers see nothing or the whole tuple
                    slots[index] = (key, instance)
                    self._count += 1
                    return
                if entry[0] == key:
                    raise KeyError(f"'{key}' is already published")
                index = (index + 1) & mask
            raise OverflowError(f'Lookup table is full ({len(slots)} slots)')

    def items(self) -> list:
        return [entry for entry in self._slots if entry is not None]

    def clear(self) -> None:
        with self._write_lock:
            self._slots = [None] * len(self._slots)
            self._count = 0


class WorkerCache:
    """
    Per-worker front cache over a LookupCache.

    Not shared between threads: each worker creates (or is handed) its own
    instance and passes it along its call path.

    Args:
        shared: the container's LookupCache.
        loader: called on a miss in both caches, e.g. Container.get.
        guard:  called before every lookup, e.g. to reject a closed container.
    """

    __slots__ = ('_shared', '_loader', '_guard', '_keys', '_values', '_next')

    def __init__(self, shared: LookupCache, loader: Callable[[str], Any],
                 guard: Optional[Callable[[], None]] = None, slots: int = WORKER_SLOTS):
        self._shared = shared
        self._loader = loader
        self._guard = guard
        self._keys: list = [None] * slots
        self._values: list = [None] * slots
        self._next = 0

    def get(self, key: str) -> Any:
        if self._guard is not None:
            self._guard()

        keys = self._keys
        for i in range(len(keys)):
            if keys[i] == key:
                return self._values[i]

        instance = self._shared.get(key)
        if instance is MISSING:
            instance = self._loader(key)
            # Only singletons land in the shared table; prototypes stay uncached
            if self._shared.get(key) is not instance:
                return instance

        position = self._next % len(keys)
        keys[position] = key
        self._values[position] = instance
        self._next += 1
        return instance

    def clear(self) -> None:
        self._keys = [None] * len(self._keys)
        self._values = [None] * len(self._values)
        self._next = 0
