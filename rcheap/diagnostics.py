"""Diagnostics sink and heap inspection.

Sinks receive errors the store must not raise: failed stream finalizers and,
when enabled, values still live after the outermost frame exits.

Inspection helpers:
- dump_heap: one line per live value plus a total
- dump_frames: bindings per open frame
- validate_heap: structural checks, returns a list of problems
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from .errors import RcheapError
from .values import Handle, ValueId

if TYPE_CHECKING:
    from .scope import ScopeTracker
    from .store import ValueStore

logger = logging.getLogger(__name__)


class DiagnosticsSink(Protocol):
    def report(self, error: RcheapError) -> None: ...


class LoggingDiagnostics:
    """Default sink: log every report at ERROR level."""

    def __init__(self, log: logging.Logger | None = None):
        self._log = log if log is not None else logger

    def report(self, error: RcheapError) -> None:
        self._log.error("%s: %s", type(error).__name__, error, exc_info=error.__cause__)


class CollectingDiagnostics:
    """Keeps reports in order, for tests and embedding hosts."""

    def __init__(self) -> None:
        self.reports: list[RcheapError] = []

    def report(self, error: RcheapError) -> None:
        self.reports.append(error)

    def clear(self) -> None:
        self.reports.clear()


# ============================================================
# Heap inspection
# ============================================================


def dump_heap(store: ValueStore) -> list[str]:
    lines = ["[RC:HEAP] === Heap Dump ==="]
    total = 0
    for value_id in store.live_ids():
        value = store.get(value_id)
        lines.append(
            f"[RC:HEAP] {value_id.display()} kind={value.kind.name} "
            f"refs={store.refcount(value_id)}"
        )
        total += 1
    lines.append(f"[RC:HEAP] Total values: {total}")
    return lines


def dump_frames(tracker: ScopeTracker) -> list[str]:
    lines = [f"[RC:FRAMES] === Frame Dump (depth={tracker.depth}) ==="]
    for frame in tracker.frames:
        lines.append(f"[RC:FRAMES] Frame {frame.depth}: {len(frame.bindings)} bindings")
        for binding in frame.bindings:
            lines.append(f"[RC:FRAMES]   {binding.name} -> {binding.handle!r}")
    return lines


def validate_heap(store: ValueStore) -> list[str]:
    """Check that owned handles resolve and no value is held by more owners than its count."""
    problems: list[str] = []
    owners: dict[ValueId, int] = {}
    for value_id in store.live_ids():
        value = store.get(value_id)
        refs = store.refcount(value_id)
        if refs <= 0:
            problems.append(f"{value_id.display()} is live with refs={refs}")
        for handle in value.owned_handles():
            if not isinstance(handle, Handle) or not store.is_live(handle.value_id):
                problems.append(f"{value_id.display()} holds dangling {handle!r}")
                continue
            target = store.get(handle.value_id)
            if target.kind is not handle.kind:
                problems.append(
                    f"{value_id.display()} holds {handle!r} naming a {target.kind.name}"
                )
            owners[handle.value_id] = owners.get(handle.value_id, 0) + 1
    for target_id, count in owners.items():
        refs = store.refcount(target_id)
        if count > refs:
            problems.append(
                f"{target_id.display()} has {count} owning values but refs={refs}"
            )
    return problems
