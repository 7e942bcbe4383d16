"""Runtime options."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

_TRUTHY = frozenset({"1", "true", "yes", "on"})


def _flag(environ: Mapping[str, str], name: str) -> bool:
    return environ.get(name, "").strip().lower() in _TRUTHY


@dataclass(frozen=True)
class Options:
    trace: bool = False  # debug-log allocate/reclaim/frame traffic
    check_leaks_on_exit: bool = False  # report live values when the outermost frame exits

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Options:
        """Read RCHEAP_TRACE and RCHEAP_CHECK_LEAKS."""
        env = os.environ if environ is None else environ
        return cls(
            trace=_flag(env, "RCHEAP_TRACE"),
            check_leaks_on_exit=_flag(env, "RCHEAP_CHECK_LEAKS"),
        )
