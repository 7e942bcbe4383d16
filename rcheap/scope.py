"""Scope tracker: frames of bindings, disposed last-bound-first on exit.

Each frame goes OPEN -> CLOSING -> CLOSED. A binding owns exactly one count
on the value its handle names; that count is dropped once, either when the
name is rebound or unbound, or when the frame exits.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Callable, Iterator

from .errors import ScopeError
from .refcount import RefcountEngine
from .store import ValueStore
from .values import Binding, Handle

logger = logging.getLogger(__name__)


class FrameState(Enum):
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class Frame:
    def __init__(self, depth: int):
        self.depth = depth
        self.state = FrameState.OPEN
        self._bindings: list[Binding] = []

    @property
    def bindings(self) -> tuple[Binding, ...]:
        """Live bindings in creation order."""
        return tuple(self._bindings)

    def find(self, name: str) -> Binding | None:
        for binding in self._bindings:
            if binding.name == name:
                return binding
        return None

    def __repr__(self) -> str:
        return f"Frame(depth={self.depth}, {self.state.name}, {len(self._bindings)} bindings)"


class ScopeTracker:
    def __init__(
        self,
        store: ValueStore,
        engine: RefcountEngine,
        *,
        trace: bool = False,
        on_outermost_exit: Callable[[], None] | None = None,
    ):
        self._store = store
        self._engine = engine
        self._trace = trace
        self._on_outermost_exit = on_outermost_exit
        self._frames: list[Frame] = []

    @property
    def depth(self) -> int:
        return len(self._frames)

    @property
    def frames(self) -> tuple[Frame, ...]:
        return tuple(self._frames)

    @property
    def current(self) -> Frame:
        if not self._frames:
            raise ScopeError("no open frame")
        return self._frames[-1]

    # ---- Frame lifecycle ---------------------------------------------------

    def enter_frame(self) -> Frame:
        frame = Frame(len(self._frames))
        self._frames.append(frame)
        if self._trace:
            logger.debug("enter frame depth=%d", frame.depth)
        return frame

    def exit_frame(self, frame: Frame | None = None, *, notify: bool = True) -> None:
        """Dispose every binding of the innermost frame, newest first.

        A failing release does not stop the drain: the remaining bindings are
        still released and the first error is raised once the frame is
        closed. `notify=False` skips the outermost-exit hook, for frames the
        runtime opens on its own behalf.
        """
        if not self._frames:
            raise ScopeError("exit with no open frame")
        top = self._frames[-1]
        if frame is not None and frame is not top:
            raise ScopeError(
                f"frame at depth {frame.depth} exited before depth {top.depth}"
            )
        if top.state is not FrameState.OPEN:
            raise ScopeError(f"frame at depth {top.depth} is {top.state.value}")
        top.state = FrameState.CLOSING
        first_error: Exception | None = None
        disposed = 0
        while top._bindings:
            binding = top._bindings.pop()
            try:
                self._engine.decref(binding.handle.value_id)
            except Exception as e:
                if first_error is None:
                    first_error = e
            disposed += 1
        top.state = FrameState.CLOSED
        self._frames.pop()
        if self._trace:
            logger.debug("exit frame depth=%d disposed=%d", top.depth, disposed)
        if first_error is not None:
            raise first_error
        if notify and not self._frames and self._on_outermost_exit is not None:
            self._on_outermost_exit()

    @contextmanager
    def frame(self, *, notify: bool = True) -> Iterator[Frame]:
        """Open a frame that is exited on fallthrough, return, or exception."""
        frame = self.enter_frame()
        try:
            yield frame
        finally:
            self.exit_frame(frame, notify=notify)

    # ---- Bindings ----------------------------------------------------------

    def bind(self, name: str, handle: Handle) -> Binding:
        """Record name -> handle in the innermost frame.

        The binding takes over one count the caller already holds. A previous
        binding of the same name in this frame is released first.
        """
        frame = self.current
        if frame.state is not FrameState.OPEN:
            raise ScopeError(f"bind '{name}' into {frame.state.value} frame")
        # Validates the id before anything is released.
        self._store.get(handle.value_id)
        old = frame.find(name)
        if old is not None:
            frame._bindings.remove(old)
            self._engine.decref(old.handle.value_id)
        binding = Binding(name, handle)
        frame._bindings.append(binding)
        return binding

    def unbind(self, name: str) -> None:
        """Dispose a binding of the innermost frame ahead of frame exit."""
        frame = self.current
        old = frame.find(name)
        if old is None:
            raise ScopeError(f"unknown name '{name}'")
        frame._bindings.remove(old)
        self._engine.decref(old.handle.value_id)

    def lookup(self, name: str) -> Handle:
        for frame in reversed(self._frames):
            binding = frame.find(name)
            if binding is not None:
                return binding.handle
        raise ScopeError(f"unknown name '{name}'")
