"""Error hierarchy for the reference-counted value store."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .values import Kind, ValueId


class RcheapError(Exception):
    """Base error for store, scope and access failures."""

    def __init__(self, msg: str, value_id: ValueId | None = None):
        if value_id is None:
            super().__init__(msg)
        else:
            super().__init__(f"{msg} (value #{value_id.slot}.{value_id.generation})")
        self.msg = msg
        self.value_id = value_id


class TypeMismatch(RcheapError):
    """An access or expected kind does not fit the target value's variant."""

    def __init__(
        self,
        expected: Kind | str,
        found: Kind,
        value_id: ValueId | None = None,
    ):
        want = expected if isinstance(expected, str) else expected.name
        super().__init__(f"expected {want}, found {found.name}", value_id)
        self.expected = expected
        self.found = found


class NotFound(RcheapError):
    """Index or key is absent from an aggregate."""

    def __init__(self, what: object, value_id: ValueId | None = None):
        super().__init__(f"no element at {what!r}", value_id)
        self.what = what


class DanglingReference(RcheapError):
    """A handle names a value that has already been reclaimed.

    Always a logic defect: some count was dropped without a matching
    increment, or a handle outlived the binding that owned it.
    """

    def __init__(self, value_id: ValueId):
        super().__init__("dangling reference", value_id)


class FinalizationError(RcheapError):
    """A stream's external finalize failed. Reported, never raised by decref."""


class ScopeError(RcheapError):
    """Frame misuse: out-of-order exit, binding into a closed frame, unknown name."""


class InvocationError(RcheapError):
    """Arguments passed to a callable do not match its parameters."""


class LeakedValue(RcheapError):
    """A value outlived the outermost frame, typically because of a reference cycle."""
