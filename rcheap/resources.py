"""Resource collaborator boundary for stream values."""

from __future__ import annotations

from typing import IO, Any, Protocol


class Resource(Protocol):
    """Finalizes the opaque token behind a stream value.

    Called exactly once, when the stream's count reaches zero. Failure is
    signalled by raising `OSError`.
    """

    def finalize(self, token: Any) -> None: ...


class FileResource:
    """Flushes and closes a Python file object."""

    def finalize(self, token: IO[Any]) -> None:
        if token.closed:
            return
        try:
            token.flush()
        finally:
            token.close()


# Stream operations a token must answer synchronously.
STREAM_OPS = frozenset({"read", "readline", "write", "flush", "seek", "tell"})
