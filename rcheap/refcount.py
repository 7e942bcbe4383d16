"""Refcount engine: the only code that moves counts.

`decref` is the single path to reclamation. A reclaimed value hands back the
handles it owned, and those are dropped from an explicit worklist rather than
by recursion, so long chains (a linked list of sequences, a closure capturing
a closure capturing a closure) unwind in constant stack depth.
"""

from __future__ import annotations

import logging

from .store import ValueStore
from .values import ValueId

logger = logging.getLogger(__name__)


class RefcountEngine:
    def __init__(self, store: ValueStore):
        self.store = store

    def incref(self, value_id: ValueId) -> int:
        """Add one count. Reclaimed ids raise DanglingReference (no resurrection)."""
        return self.store._adjust(value_id, 1)

    def decref(self, value_id: ValueId) -> bool:
        """Drop one count, reclaiming on zero. Returns True if value_id was reclaimed.

        A failure part way through a cascade does not strand the rest of it:
        every pending handle is still dropped and the first error is raised
        at the end.
        """
        reclaimed = False
        first_error: Exception | None = None
        pending = [value_id]
        while pending:
            current = pending.pop()
            try:
                if self.store._adjust(current, -1) > 0:
                    continue
                if current == value_id:
                    reclaimed = True
                owned = self.store._finalize_and_free(current)
            except Exception as e:
                if first_error is None:
                    first_error = e
                continue
            # Pop order matches the order the value listed them in.
            pending.extend(h.value_id for h in reversed(owned))
        if first_error is not None:
            raise first_error
        return reclaimed

    def break_reference(self, value_id: ValueId) -> int:
        """Strip every handle a value owns and drop their counts.

        Sits outside scope disposal; it is the only way to free values
        caught in a reference cycle. The value itself stays alive with its
        handle slots emptied to None. Returns how many counts were dropped.
        """
        value = self.store.get(value_id)
        detached = value.detach_handles()
        logger.warning(
            "breaking %d reference(s) held by %s",
            len(detached),
            value_id.display(),
        )
        first_error: Exception | None = None
        for handle in detached:
            try:
                self.decref(handle.value_id)
            except Exception as e:
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error
        return len(detached)
