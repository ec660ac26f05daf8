"""Concurrency-safe keyed state store.

Notes:
- Keys are spread over a fixed number of shards, each with its own lock, so
  lookups for different keys rarely contend.
- Every slot carries its own lock. Callers hold it while mutating the state.
- A slot removed from the store is flagged ``evicted``; a caller that looked
  it up before the removal must fetch a fresh slot instead of mutating it.
- The store grows without bound unless something calls ``remove``.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, Generic, Iterator, TypeVar

StateT = TypeVar("StateT")

DEFAULT_SHARDS = 16


@dataclass
class StateSlot(Generic[StateT]):
    """One key's state plus the lock that serializes access to it."""

    key: str
    state: StateT
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)
    evicted: bool = False


class _Shard(Generic[StateT]):
    __slots__ = ("lock", "slots")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.slots: dict[str, StateSlot[StateT]] = {}


class KeyedStateStore(Generic[StateT]):
    """Mapping from client key to per-key state with lazy insertion."""

    def __init__(self, *, shards: int = DEFAULT_SHARDS) -> None:
        if shards < 1:
            raise ValueError("shards must be >= 1")
        self._shards: list[_Shard[StateT]] = [_Shard() for _ in range(shards)]

    def __len__(self) -> int:
        return self.size()

    def _shard_for(self, key: str) -> _Shard[StateT]:
        return self._shards[hash(key) % len(self._shards)]

    def get_or_create(
        self, key: str, default_factory: Callable[[], StateT]
    ) -> StateSlot[StateT]:
        """Return the slot for ``key``, installing a default on first use.

        Concurrent first touches of the same key observe the same slot; the
        factory runs at most once per installed slot.

        Args:
            key: Client key. Any string, including the empty string.
            default_factory: Builds the initial state for a new key.

        Returns:
            The live slot for ``key``.
        """

        shard = self._shard_for(key)
        with shard.lock:
            slot = shard.slots.get(key)
            if slot is None:
                slot = StateSlot(key=key, state=default_factory())
                shard.slots[key] = slot
            return slot

    def get(self, key: str) -> StateSlot[StateT] | None:
        shard = self._shard_for(key)
        with shard.lock:
            return shard.slots.get(key)

    def remove(self, key: str) -> bool:
        """Remove ``key`` and flag its slot as evicted.

        Waits for any caller currently holding the slot lock, so a slot is
        never removed mid-mutation.

        Returns:
            True if the key was present.
        """

        shard = self._shard_for(key)
        with shard.lock:
            slot = shard.slots.get(key)
            if slot is None:
                return False
            with slot.lock:
                slot.evicted = True
                del shard.slots[key]
            return True

    def for_each(self, visitor: Callable[[StateSlot[StateT]], None]) -> None:
        """Call ``visitor`` for every slot, one shard at a time.

        Each shard is visited over a snapshot of its slots while holding the
        shard lock, so the visitor may call ``remove`` and other shards keep
        serving lookups. Slots added to an already visited shard are not
        seen.
        """

        for shard in self._shards:
            with shard.lock:
                for slot in list(shard.slots.values()):
                    visitor(slot)

    def snapshot(self) -> list[StateSlot[StateT]]:
        """Return the current slots without holding any lock afterwards."""
        slots: list[StateSlot[StateT]] = []
        for shard in self._shards:
            with shard.lock:
                slots.extend(shard.slots.values())
        return slots

    def keys(self) -> Iterator[str]:
        for slot in self.snapshot():
            yield slot.key

    def size(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.slots)
        return total
