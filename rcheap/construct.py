"""Anonymous constructor: fresh, uniquely owned values.

Contents are copied in, never aliased as a whole. Given a handle to a named
aggregate (or the Elements() snapshot of one) the constructor flattens it:
plain items are deep-copied into the new value and handle items get a new
count, so the inner values they name are shared while the new container is
not. Compare `Runtime.take_reference`, which aliases the container itself.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any, Iterable

from .access import Elements
from .errors import TypeMismatch
from .values import (
    Binding,
    Body,
    Callable,
    Handle,
    Kind,
    Mapping,
    Scalar,
    Sequence,
    Value,
    check_plain,
)

if TYPE_CHECKING:
    from .runtime import Runtime


class Constructor:
    def __init__(self, rt: Runtime):
        self.rt = rt

    def construct(
        self,
        kind: Kind,
        contents: Any = None,
        *,
        params: Iterable[str] = (),
        captures: Iterable[Binding | tuple[str, Handle]] = (),
        name: str | None = None,
    ) -> Handle:
        """Build a new value of `kind` with a count of 1 owned by the caller.

        SCALAR takes the payload; SEQUENCE an iterable or a sequence handle;
        MAPPING a dict, an iterable of pairs, or a mapping handle; CALLABLE
        the body, with `params`, `captures` and an optional `name`.
        """
        value: Value
        if kind is Kind.SCALAR:
            self._check([contents])
            value = Scalar(self._own(contents))
        elif kind is Kind.SEQUENCE:
            items = self._sequence_items(contents)
            self._check(items)
            value = Sequence([self._own(item) for item in items])
        elif kind is Kind.MAPPING:
            pairs = self._mapping_items(contents)
            for key, _ in pairs:
                check_plain(key)
            self._check([v for _, v in pairs])
            value = Mapping({k: self._own(v) for k, v in pairs})
        elif kind is Kind.CALLABLE:
            value = self._callable(contents, params, captures, name)
        elif kind is Kind.STREAM:
            raise ValueError("stream values are created by open_stream")
        else:
            raise AssertionError(f"unknown kind {kind!r}")
        return Handle(self.rt.store.allocate(value), kind)

    def _check(self, items: list[Any]) -> None:
        """Validate every item before any count is taken."""
        for item in items:
            if isinstance(item, Handle):
                self.rt.store.get(item.value_id)
            else:
                check_plain(item)

    def _own(self, item: Any) -> Any:
        if isinstance(item, Handle):
            self.rt.engine.incref(item.value_id)
            return item
        return copy.deepcopy(item)

    def _sequence_items(self, contents: Any) -> list[Any]:
        if contents is None:
            return []
        if isinstance(contents, Handle):
            if contents.kind is not Kind.SEQUENCE:
                raise TypeMismatch(Kind.SEQUENCE, contents.kind, contents.value_id)
            return self.rt.dereference(contents, Elements())
        return list(contents)

    def _mapping_items(self, contents: Any) -> list[tuple[Any, Any]]:
        if contents is None:
            return []
        if isinstance(contents, Handle):
            if contents.kind is not Kind.MAPPING:
                raise TypeMismatch(Kind.MAPPING, contents.kind, contents.value_id)
            return list(self.rt.dereference(contents, Elements()).items())
        if isinstance(contents, dict):
            return list(contents.items())
        return [(k, v) for k, v in contents]

    def _callable(
        self,
        body: Body,
        params: Iterable[str],
        captures: Iterable[Binding | tuple[str, Handle]],
        name: str | None,
    ) -> Callable:
        if not callable(body):
            raise TypeError(f"callable body expected, got {type(body).__name__}")
        owned = [
            capture if isinstance(capture, Binding) else Binding(*capture)
            for capture in captures
        ]
        self._check([binding.handle for binding in owned])
        for binding in owned:
            self.rt.engine.incref(binding.handle.value_id)
        return Callable(body, tuple(params), owned, name)
