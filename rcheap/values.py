"""Value variants, handles and bindings.

A value is one of five closed variants. Items stored inside a value (scalar
payloads, sequence elements, mapping values, closure captures) are either
plain Python data or `Handle`s; a stored handle owns one count on its target.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable as PyCallable, Iterator, NamedTuple

if TYPE_CHECKING:
    from .resources import Resource
    from .runtime import Runtime
    from .scope import Frame


class Kind(Enum):
    SCALAR = "scalar"
    SEQUENCE = "sequence"
    MAPPING = "mapping"
    CALLABLE = "callable"
    STREAM = "stream"


AGGREGATE_KINDS = frozenset({Kind.SEQUENCE, Kind.MAPPING})


class ValueId(NamedTuple):
    """Arena slot plus the generation it was allocated in."""

    slot: int
    generation: int

    def display(self) -> str:
        return f"#{self.slot}.{self.generation}"


@dataclass(frozen=True)
class Handle:
    """Alias token naming one value by id and the kind it expects."""

    value_id: ValueId
    kind: Kind

    def __repr__(self) -> str:
        return f"Handle({self.value_id.display()}, {self.kind.name})"


@dataclass(frozen=True)
class Binding:
    name: str
    handle: Handle


# ============================================================
# Variants
# ============================================================


class Value:
    """A store-resident unit of mutable state."""

    kind: Kind

    def owned_handles(self) -> Iterator[Handle]:
        """Handles this value holds a count on, dropped when it is reclaimed."""
        raise NotImplementedError

    def detach_handles(self) -> list[Handle]:
        """Empty every handle slot to None and return the handles removed."""
        raise NotImplementedError


def _handles_in(items: Any) -> Iterator[Handle]:
    for item in items:
        if isinstance(item, Handle):
            yield item


def check_plain(item: Any) -> None:
    """Reject handles buried in plain data.

    A value owns only the handles it holds directly; one nested inside a
    list, tuple, set or dict would be stored without a count.
    """
    stack = [item]
    while stack:
        current = stack.pop()
        if isinstance(current, Handle):
            raise TypeError(f"{current!r} nested in plain data; store it directly")
        if isinstance(current, dict):
            stack.extend(current.keys())
            stack.extend(current.values())
        elif isinstance(current, (list, tuple, set, frozenset)):
            stack.extend(current)


@dataclass(eq=False)
class Scalar(Value):
    payload: Any = None
    kind = Kind.SCALAR

    def owned_handles(self) -> Iterator[Handle]:
        if isinstance(self.payload, Handle):
            yield self.payload

    def detach_handles(self) -> list[Handle]:
        if isinstance(self.payload, Handle):
            handle, self.payload = self.payload, None
            return [handle]
        return []


@dataclass(eq=False)
class Sequence(Value):
    elements: list[Any] = field(default_factory=list)
    kind = Kind.SEQUENCE

    def owned_handles(self) -> Iterator[Handle]:
        return _handles_in(self.elements)

    def detach_handles(self) -> list[Handle]:
        detached = list(_handles_in(self.elements))
        self.elements[:] = [None if isinstance(e, Handle) else e for e in self.elements]
        return detached


@dataclass(eq=False)
class Mapping(Value):
    entries: dict[Any, Any] = field(default_factory=dict)
    kind = Kind.MAPPING

    def owned_handles(self) -> Iterator[Handle]:
        return _handles_in(self.entries.values())

    def detach_handles(self) -> list[Handle]:
        detached = list(_handles_in(self.entries.values()))
        for key, item in list(self.entries.items()):
            if isinstance(item, Handle):
                self.entries[key] = None
        return detached


Body = PyCallable[["Runtime", "Frame"], Any]


@dataclass(eq=False)
class Callable(Value):
    body: Body
    params: tuple[str, ...] = ()
    captures: list[Binding] = field(default_factory=list)
    name: str | None = None
    kind = Kind.CALLABLE

    def owned_handles(self) -> Iterator[Handle]:
        # Captures are released newest first, like a frame.
        for binding in reversed(self.captures):
            yield binding.handle

    def detach_handles(self) -> list[Handle]:
        detached = list(self.owned_handles())
        self.captures = []
        return detached


@dataclass(eq=False)
class StreamHandle(Value):
    token: Any
    resource: Resource
    kind = Kind.STREAM

    def owned_handles(self) -> Iterator[Handle]:
        return iter(())

    def detach_handles(self) -> list[Handle]:
        return []
