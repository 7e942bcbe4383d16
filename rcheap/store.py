"""Value store: the id-indexed arena behind every handle.

Slot table design:
- each slot holds one value, its live count and a generation number
- freed slots go on a free list and are reused LIFO
- reclaiming bumps the slot's generation, so ids issued before the reclaim
  no longer resolve (stale handles fail loudly instead of aliasing the
  slot's next occupant)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator

from .errors import DanglingReference, FinalizationError
from .values import Handle, StreamHandle, Value, ValueId

if TYPE_CHECKING:
    from .diagnostics import DiagnosticsSink

logger = logging.getLogger(__name__)


@dataclass
class _Slot:
    value: Value | None
    refcount: int
    generation: int


@dataclass
class StoreStats:
    allocations: int = 0
    reclaims: int = 0
    live: int = 0
    peak_live: int = 0
    free_slots: int = 0
    finalize_failures: int = 0


class ValueStore:
    def __init__(self, diagnostics: DiagnosticsSink, *, trace: bool = False):
        self._slots: list[_Slot] = []
        self._free: list[int] = []
        self._diagnostics = diagnostics
        self._trace = trace
        self._stats = StoreStats()

    # ---- Allocation --------------------------------------------------------

    def allocate(self, value: Value) -> ValueId:
        """Place a value in a free slot with a count of 1."""
        if self._free:
            slot_no = self._free.pop()
            slot = self._slots[slot_no]
            slot.value = value
            slot.refcount = 1
        else:
            slot_no = len(self._slots)
            slot = _Slot(value, 1, 0)
            self._slots.append(slot)
        value_id = ValueId(slot_no, slot.generation)
        self._stats.allocations += 1
        self._stats.live += 1
        self._stats.peak_live = max(self._stats.peak_live, self._stats.live)
        if self._trace:
            logger.debug("allocate %s kind=%s", value_id.display(), value.kind.name)
        return value_id

    # ---- Lookup ------------------------------------------------------------

    def _slot_for(self, value_id: ValueId) -> _Slot:
        if not 0 <= value_id.slot < len(self._slots):
            raise DanglingReference(value_id)
        slot = self._slots[value_id.slot]
        if slot.value is None or slot.generation != value_id.generation:
            raise DanglingReference(value_id)
        return slot

    def get(self, value_id: ValueId) -> Value:
        value = self._slot_for(value_id).value
        assert value is not None
        return value

    def refcount(self, value_id: ValueId) -> int:
        return self._slot_for(value_id).refcount

    def is_live(self, value_id: ValueId) -> bool:
        try:
            self._slot_for(value_id)
        except DanglingReference:
            return False
        return True

    def live_ids(self) -> Iterator[ValueId]:
        for slot_no, slot in enumerate(self._slots):
            if slot.value is not None:
                yield ValueId(slot_no, slot.generation)

    def stats(self) -> StoreStats:
        return StoreStats(
            allocations=self._stats.allocations,
            reclaims=self._stats.reclaims,
            live=self._stats.live,
            peak_live=self._stats.peak_live,
            free_slots=len(self._free),
            finalize_failures=self._stats.finalize_failures,
        )

    # ---- Count adjustment (refcount engine only) ---------------------------

    def _adjust(self, value_id: ValueId, delta: int) -> int:
        slot = self._slot_for(value_id)
        slot.refcount += delta
        return slot.refcount

    def _finalize_and_free(self, value_id: ValueId) -> list[Handle]:
        """Reclaim a value whose count reached zero.

        The slot is released before the finalizer runs, so nothing the
        finalizer or the caller's cascade does can reach this id again.
        Returns the handles the value owned; the caller drops them. An
        exception other than OSError from a stream finalizer propagates
        with the slot already free.
        """
        slot = self._slot_for(value_id)
        value = slot.value
        assert value is not None
        slot.value = None
        slot.refcount = 0
        slot.generation += 1
        self._free.append(value_id.slot)
        self._stats.reclaims += 1
        self._stats.live -= 1
        if self._trace:
            logger.debug("reclaim %s kind=%s", value_id.display(), value.kind.name)
        owned = list(value.owned_handles())
        if isinstance(value, StreamHandle):
            self._finalize_stream(value_id, value)
        return owned

    def _finalize_stream(self, value_id: ValueId, value: StreamHandle) -> None:
        try:
            value.resource.finalize(value.token)
        except OSError as e:
            self._stats.finalize_failures += 1
            err = FinalizationError(f"finalize failed: {e}", value_id)
            err.__cause__ = e
            self._diagnostics.report(err)
