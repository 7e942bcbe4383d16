"""Dereference resolver: checked access to the value behind a handle.

Every access is a small frozen dataclass. The resolver checks, in order,
that the handle still resolves, that the handle's expected kind equals the
value's kind, and that the access shape is one that kind accepts. Nothing is
coerced.

Ownership of items moving in and out of containers:
- storing a handle (WriteScalar, IndexedSet, KeyedSet, Append) takes a new
  count on its target; the caller keeps its own
- an overwritten handle loses the container's count
- gets return borrowed items; take a reference to keep a handle
- Pop and KeyedDelete hand the container's count on a removed handle to
  the caller, who must release or bind it
- a handle nested inside plain data (a list, tuple, set or dict) is
  rejected with TypeError, as is one used as a mapping key
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .errors import InvocationError, NotFound, TypeMismatch
from .resources import STREAM_OPS
from .values import (
    Callable,
    Handle,
    Kind,
    Mapping,
    Scalar,
    Sequence,
    StreamHandle,
    ValueId,
    check_plain,
)

if TYPE_CHECKING:
    from .runtime import Runtime


# ============================================================
# Access shapes
# ============================================================


class Access:
    """Base for access shapes."""


@dataclass(frozen=True)
class ReadScalar(Access):
    pass


@dataclass(frozen=True)
class WriteScalar(Access):
    value: Any


@dataclass(frozen=True)
class IndexedGet(Access):
    index: int


@dataclass(frozen=True)
class IndexedSet(Access):
    index: int
    value: Any


@dataclass(frozen=True)
class Append(Access):
    value: Any


@dataclass(frozen=True)
class Pop(Access):
    pass


@dataclass(frozen=True)
class KeyedGet(Access):
    key: Any


@dataclass(frozen=True)
class KeyedSet(Access):
    key: Any
    value: Any


@dataclass(frozen=True)
class KeyedDelete(Access):
    key: Any


@dataclass(frozen=True)
class KeyedExists(Access):
    key: Any


@dataclass(frozen=True)
class Keys(Access):
    pass


@dataclass(frozen=True)
class Length(Access):
    pass


@dataclass(frozen=True)
class Elements(Access):
    """Snapshot of an aggregate's items: a list for sequences, a dict for mappings."""


@dataclass(frozen=True)
class Invoke(Access):
    args: tuple[Any, ...] = ()


@dataclass(frozen=True)
class StreamOp(Access):
    op: str
    args: tuple[Any, ...] = ()


_ACCEPTS: dict[type[Access], frozenset[Kind]] = {
    ReadScalar: frozenset({Kind.SCALAR}),
    WriteScalar: frozenset({Kind.SCALAR}),
    IndexedGet: frozenset({Kind.SEQUENCE}),
    IndexedSet: frozenset({Kind.SEQUENCE}),
    Append: frozenset({Kind.SEQUENCE}),
    Pop: frozenset({Kind.SEQUENCE}),
    KeyedGet: frozenset({Kind.MAPPING}),
    KeyedSet: frozenset({Kind.MAPPING}),
    KeyedDelete: frozenset({Kind.MAPPING}),
    KeyedExists: frozenset({Kind.MAPPING}),
    Keys: frozenset({Kind.MAPPING}),
    Length: frozenset({Kind.SEQUENCE, Kind.MAPPING}),
    Elements: frozenset({Kind.SEQUENCE, Kind.MAPPING}),
    Invoke: frozenset({Kind.CALLABLE}),
    StreamOp: frozenset({Kind.STREAM}),
}


def _kinds_display(kinds: frozenset[Kind]) -> str:
    return " or ".join(sorted(k.name for k in kinds))


# ============================================================
# Resolver
# ============================================================


class Resolver:
    def __init__(self, rt: Runtime):
        self.rt = rt

    def dereference(self, handle: Handle, access: Access) -> Any:
        value_id = handle.value_id
        value = self.rt.store.get(value_id)
        if handle.kind is not value.kind:
            raise TypeMismatch(handle.kind, value.kind, value_id)
        accepts = _ACCEPTS.get(type(access))
        if accepts is None:
            raise TypeError(f"not an access shape: {access!r}")
        if value.kind not in accepts:
            raise TypeMismatch(_kinds_display(accepts), value.kind, value_id)
        if isinstance(value, Scalar):
            return self._scalar(value, access)
        if isinstance(value, Sequence):
            return self._sequence(value_id, value, access)
        if isinstance(value, Mapping):
            return self._mapping(value_id, value, access)
        if isinstance(value, Callable):
            return self._invoke(handle, value, access)
        if isinstance(value, StreamHandle):
            return self._stream(value_id, value, access)
        raise AssertionError(f"unknown value variant {type(value).__name__}")

    # ---- Item ownership ----------------------------------------------------

    def _store_item(self, item: Any) -> Any:
        if isinstance(item, Handle):
            self.rt.engine.incref(item.value_id)
        else:
            check_plain(item)
        return item

    def _drop_item(self, item: Any) -> None:
        if isinstance(item, Handle):
            self.rt.engine.decref(item.value_id)

    # ---- Variants ----------------------------------------------------------

    def _scalar(self, value: Scalar, access: Access) -> Any:
        if isinstance(access, ReadScalar):
            return value.payload
        assert isinstance(access, WriteScalar)
        # New count first, then overwrite, then drop the old count: the
        # slot must never name a handle whose count is already gone.
        old = value.payload
        value.payload = self._store_item(access.value)
        self._drop_item(old)
        return None

    def _sequence(self, value_id: ValueId, value: Sequence, access: Access) -> Any:
        elements = value.elements
        if isinstance(access, IndexedGet):
            return elements[_index(value_id, elements, access.index)]
        if isinstance(access, IndexedSet):
            index = access.index
            if index >= len(elements):
                stored = self._store_item(access.value)
                elements.extend([None] * (index - len(elements)))
                elements.append(stored)
                return None
            index = _index(value_id, elements, index)
            old = elements[index]
            elements[index] = self._store_item(access.value)
            self._drop_item(old)
            return None
        if isinstance(access, Append):
            elements.append(self._store_item(access.value))
            return None
        if isinstance(access, Pop):
            if not elements:
                raise NotFound(-1, value_id)
            return elements.pop()
        if isinstance(access, Length):
            return len(elements)
        assert isinstance(access, Elements)
        return list(elements)

    def _mapping(self, value_id: ValueId, value: Mapping, access: Access) -> Any:
        entries = value.entries
        if isinstance(access, KeyedGet):
            if access.key not in entries:
                raise NotFound(access.key, value_id)
            return entries[access.key]
        if isinstance(access, KeyedSet):
            check_plain(access.key)
            old = entries.get(access.key)
            entries[access.key] = self._store_item(access.value)
            self._drop_item(old)
            return None
        if isinstance(access, KeyedDelete):
            if access.key not in entries:
                raise NotFound(access.key, value_id)
            return entries.pop(access.key)
        if isinstance(access, KeyedExists):
            return access.key in entries
        if isinstance(access, Keys):
            return list(entries)
        if isinstance(access, Length):
            return len(entries)
        assert isinstance(access, Elements)
        return dict(entries)

    def _invoke(self, handle: Handle, fn: Callable, access: Access) -> Any:
        """Run a callable's body in a nested frame.

        The frame is seeded with a fresh reference to every capture, then one
        binding per parameter. A handle returned by the body gets one extra
        count for the caller before the frame's bindings are dropped.
        """
        assert isinstance(access, Invoke)
        rt = self.rt
        if len(access.args) != len(fn.params):
            raise InvocationError(
                f"{fn.name or '<anon>'} takes {len(fn.params)} argument(s), "
                f"got {len(access.args)}",
                handle.value_id,
            )
        # Keep the callable alive for the duration of the call.
        rt.engine.incref(handle.value_id)
        result: Any = None
        counted = False
        try:
            with rt.scopes.frame(notify=False) as frame:
                for binding in fn.captures:
                    rt.engine.incref(binding.handle.value_id)
                    rt.scopes.bind(binding.name, binding.handle)
                for name, arg in zip(fn.params, access.args):
                    if isinstance(arg, Handle):
                        rt.engine.incref(arg.value_id)
                        rt.scopes.bind(name, arg)
                    else:
                        rt.scopes.bind(name, rt.construct(Kind.SCALAR, arg))
                result = fn.body(rt, frame)
                if isinstance(result, Handle):
                    rt.engine.incref(result.value_id)
                    counted = True
        except Exception:
            # The caller never sees the result, so its count goes too.
            if counted:
                rt.engine.decref(result.value_id)
            raise
        finally:
            rt.engine.decref(handle.value_id)
        return result

    def _stream(self, value_id: ValueId, value: StreamHandle, access: Access) -> Any:
        assert isinstance(access, StreamOp)
        if access.op not in STREAM_OPS:
            raise TypeMismatch(
                "one of " + ", ".join(sorted(STREAM_OPS)), Kind.STREAM, value_id
            )
        return getattr(value.token, access.op)(*access.args)


def _index(value_id: ValueId, elements: list[Any], index: int) -> int:
    size = len(elements)
    if index < 0:
        index += size
    if not 0 <= index < size:
        raise NotFound(index, value_id)
    return index
