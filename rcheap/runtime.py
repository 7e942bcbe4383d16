"""Runtime: one value store with its engine, scopes, resolver and constructor.

Every operation runs synchronously on the caller's thread. Callers must not
drive one Runtime from several threads at once.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Any, Iterable

from .access import Access, Invoke, Resolver
from .config import Options
from .construct import Constructor
from .diagnostics import DiagnosticsSink, LoggingDiagnostics
from .errors import LeakedValue, TypeMismatch
from .refcount import RefcountEngine
from .resources import FileResource, Resource
from .scope import Frame, ScopeTracker
from .store import StoreStats, ValueStore
from .values import Binding, Handle, Kind, StreamHandle, ValueId


class Runtime:
    def __init__(
        self,
        options: Options | None = None,
        *,
        diagnostics: DiagnosticsSink | None = None,
    ):
        self.options = options if options is not None else Options()
        self.diagnostics: DiagnosticsSink = (
            diagnostics if diagnostics is not None else LoggingDiagnostics()
        )
        self.store = ValueStore(self.diagnostics, trace=self.options.trace)
        self.engine = RefcountEngine(self.store)
        self.scopes = ScopeTracker(
            self.store,
            self.engine,
            trace=self.options.trace,
            on_outermost_exit=(
                self._report_leaks if self.options.check_leaks_on_exit else None
            ),
        )
        self.resolver = Resolver(self)
        self.constructor = Constructor(self)

    # ---- Handles -----------------------------------------------------------

    def take_reference(self, target: Handle | ValueId, kind: Kind | None = None) -> Handle:
        """Alias an existing value: one more count, same value_id.

        `kind` defaults to the value's actual kind; asking for any other kind
        raises TypeMismatch and leaves the count alone.
        """
        value_id = target.value_id if isinstance(target, Handle) else target
        actual = self.store.get(value_id).kind
        if kind is None:
            kind = actual
        elif kind is not actual:
            raise TypeMismatch(kind, actual, value_id)
        self.engine.incref(value_id)
        return Handle(value_id, kind)

    def release(self, handle: Handle) -> bool:
        """Drop the count a handle accounts for. Returns True if it reclaimed the value."""
        return self.engine.decref(handle.value_id)

    def break_reference(self, handle: Handle) -> int:
        """Drop every count held by the value behind `handle` (cycle breaking)."""
        return self.engine.break_reference(handle.value_id)

    def dereference(self, handle: Handle, access: Access) -> Any:
        return self.resolver.dereference(handle, access)

    def call(self, handle: Handle, *args: Any) -> Any:
        return self.resolver.dereference(handle, Invoke(tuple(args)))

    # ---- Construction ------------------------------------------------------

    def construct(
        self,
        kind: Kind,
        contents: Any = None,
        *,
        params: Iterable[str] = (),
        captures: Iterable[Binding | tuple[str, Handle]] = (),
        name: str | None = None,
    ) -> Handle:
        return self.constructor.construct(
            kind, contents, params=params, captures=captures, name=name
        )

    def open_stream(self, token: Any, resource: Resource | None = None) -> Handle:
        """Wrap an already-open resource token; finalized when the count hits zero."""
        value = StreamHandle(token, resource if resource is not None else FileResource())
        return Handle(self.store.allocate(value), Kind.STREAM)

    # ---- Scopes ------------------------------------------------------------

    def frame(self) -> AbstractContextManager[Frame]:
        return self.scopes.frame()

    def bind(self, name: str, handle: Handle) -> Binding:
        return self.scopes.bind(name, handle)

    def unbind(self, name: str) -> None:
        self.scopes.unbind(name)

    def lookup(self, name: str) -> Handle:
        return self.scopes.lookup(name)

    # ---- Introspection -----------------------------------------------------

    def refcount(self, target: Handle | ValueId) -> int:
        value_id = target.value_id if isinstance(target, Handle) else target
        return self.store.refcount(value_id)

    def is_live(self, target: Handle | ValueId) -> bool:
        value_id = target.value_id if isinstance(target, Handle) else target
        return self.store.is_live(value_id)

    def kind_of(self, handle: Handle) -> Kind:
        """Actual kind of the value behind a handle."""
        return self.store.get(handle.value_id).kind

    def stats(self) -> StoreStats:
        return self.store.stats()

    def leaks(self) -> list[ValueId]:
        """Values still live. Once every frame and caller handle is gone these are cycle members."""
        return list(self.store.live_ids())

    def _report_leaks(self) -> None:
        for value_id in self.store.live_ids():
            self.diagnostics.report(
                LeakedValue(
                    f"{self.store.get(value_id).kind.name} still live after outermost "
                    f"frame exit (refs={self.store.refcount(value_id)})",
                    value_id,
                )
            )
