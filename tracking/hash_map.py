"""TrackedHashMap: a separate-chaining hash table that records writes as Steps."""

from __future__ import annotations

import copy
from collections.abc import Iterable, Mapping
from typing import Any

from .base import InvalidRange, TrackedContainer
from .steps import Clock, ObserverLike

DEFAULT_CAPACITY = 16
DEFAULT_LOAD_FACTOR = 0.75


def string_hash(key: Any) -> int:
    """32-bit rolling hash of ``str(key)``; stable across interpreter runs."""
    value = 0
    for char in str(key):
        value = ((value << 5) - value + ord(char)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return value


class TrackedHashMap(TrackedContainer):
    """
    Hash map with visible buckets.

    Keys are placed with ``string_hash`` rather than the builtin ``hash`` so
    bucket positions (and therefore step logs) are reproducible. The table
    doubles its capacity once ``size / capacity`` exceeds the load factor;
    the resize is reported on the ``set`` step that caused it.

    ``to_list`` returns ``[key, value]`` pairs in bucket order.
    """

    target = "hashMap"

    def __init__(
        self,
        initial_data: Mapping[Any, Any] | Iterable[Any] | None = None,
        observer: ObserverLike | None = None,
        clock: Clock | None = None,
        capacity: int = DEFAULT_CAPACITY,
        load_factor: float = DEFAULT_LOAD_FACTOR,
    ) -> None:
        super().__init__(observer=observer, clock=clock)
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
            raise InvalidRange(f"capacity must be a positive integer, got {capacity!r}")
        if not 0 < load_factor <= 1:
            raise InvalidRange(f"load_factor must be in (0, 1], got {load_factor!r}")
        self._initial_capacity = capacity
        self._load_factor = load_factor
        self._buckets: list[list[list[Any]]] = [[] for _ in range(capacity)]
        self._count = 0
        self._replace(self._coerce(initial_data))

    @staticmethod
    def _coerce(values: Any) -> list[Any]:
        if values is None:
            return []
        if isinstance(values, TrackedHashMap):
            return values.to_list()
        if isinstance(values, Mapping):
            return [[key, value] for key, value in copy.deepcopy(dict(values)).items()]
        pairs = []
        for item in copy.deepcopy(list(values)):
            if not isinstance(item, (list, tuple)) or len(item) != 2:
                raise InvalidRange(f"hash map entries must be [key, value] pairs, got {item!r}")
            pairs.append([item[0], item[1]])
        return pairs

    def _replace(self, values: list[Any]) -> None:
        self._buckets = [[] for _ in range(self._initial_capacity)]
        self._count = 0
        for key, value in values:
            entry = self._find(key)
            if entry is not None:
                entry[1] = value
                continue
            self._buckets[self._index_for(key)].append([key, value])
            self._count += 1
            if self._over_threshold():
                self._resize()

    def to_list(self) -> list[Any]:
        return [[key, value] for bucket in self._buckets for key, value in bucket]

    def __len__(self) -> int:
        return self._count

    def __contains__(self, key: object) -> bool:
        return self.has(key)

    @property
    def capacity(self) -> int:
        return len(self._buckets)

    @property
    def load_factor(self) -> float:
        return self._count / len(self._buckets)

    def _index_for(self, key: Any) -> int:
        return abs(string_hash(key)) % len(self._buckets)

    def _find(self, key: Any) -> list[Any] | None:
        for entry in self._buckets[self._index_for(key)]:
            if entry[0] == key:
                return entry
        return None

    def _over_threshold(self) -> bool:
        return self._count / len(self._buckets) > self._load_factor

    def _resize(self) -> None:
        entries = [entry for bucket in self._buckets for entry in bucket]
        self._buckets = [[] for _ in range(len(self._buckets) * 2)]
        for entry in entries:
            self._buckets[self._index_for(entry[0])].append(entry)

    def get(self, key: Any, default: Any = None) -> Any:
        entry = self._find(key)
        return default if entry is None else entry[1]

    def has(self, key: Any) -> bool:
        return self._find(key) is not None

    def keys(self) -> list[Any]:
        return [key for key, _ in self.to_list()]

    def values(self) -> list[Any]:
        return [value for _, value in self.to_list()]

    def entries(self) -> list[Any]:
        return self.to_list()

    def buckets(self) -> list[list[Any]]:
        """Copy of the bucket table, one list of ``[key, value]`` pairs per slot."""
        return copy.deepcopy(self._buckets)

    def set(self, key: Any, value: Any) -> None:
        index = self._index_for(key)
        bucket = self._buckets[index]
        entry = self._find(key)
        metadata: dict[str, Any] = {
            "key": key,
            "value": value,
            "index": index,
            "hash_value": string_hash(key),
        }
        if entry is not None:
            metadata.update(updated=True, old_value=entry[1])
            entry[1] = value
        else:
            bucket.append([key, value])
            self._count += 1
            metadata["updated"] = False
        metadata["collision"] = len(bucket) > 1
        metadata["resized"] = False
        if self._over_threshold():
            old_capacity = len(self._buckets)
            self._resize()
            metadata.update(resized=True, old_capacity=old_capacity, new_capacity=len(self._buckets))
        self._emit("set", [key, value], metadata)

    def delete(self, key: Any) -> bool:
        """Remove ``key``; returns False, with no step, when it is absent."""
        index = self._index_for(key)
        bucket = self._buckets[index]
        for position, (existing, value) in enumerate(bucket):
            if existing == key:
                del bucket[position]
                self._count -= 1
                self._emit("delete", [key], {"key": key, "index": index, "deleted_value": value})
                return True
        return False

    def clear(self) -> None:
        cleared = self._count
        self._buckets = [[] for _ in range(self._initial_capacity)]
        self._count = 0
        self._emit("clear", [], {"cleared": cleared, "capacity": self._initial_capacity})
