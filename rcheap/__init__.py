"""rcheap: reference-counted values with scoped, deterministic reclamation."""

from __future__ import annotations

from .access import (
    Access,
    Append,
    Elements,
    IndexedGet,
    IndexedSet,
    Invoke,
    KeyedDelete,
    KeyedExists,
    KeyedGet,
    KeyedSet,
    Keys,
    Length,
    Pop,
    ReadScalar,
    StreamOp,
    WriteScalar,
)
from .config import Options
from .diagnostics import (
    CollectingDiagnostics,
    DiagnosticsSink,
    LoggingDiagnostics,
    dump_frames,
    dump_heap,
    validate_heap,
)
from .errors import (
    DanglingReference,
    FinalizationError,
    InvocationError,
    LeakedValue,
    NotFound,
    RcheapError,
    ScopeError,
    TypeMismatch,
)
from .resources import FileResource, Resource
from .runtime import Runtime
from .scope import Frame, FrameState
from .values import Binding, Handle, Kind, ValueId

__all__ = [
    "Access",
    "Append",
    "Binding",
    "CollectingDiagnostics",
    "DanglingReference",
    "DiagnosticsSink",
    "Elements",
    "FileResource",
    "FinalizationError",
    "Frame",
    "FrameState",
    "Handle",
    "IndexedGet",
    "IndexedSet",
    "InvocationError",
    "Invoke",
    "KeyedDelete",
    "KeyedExists",
    "KeyedGet",
    "KeyedSet",
    "Keys",
    "Kind",
    "LeakedValue",
    "Length",
    "LoggingDiagnostics",
    "NotFound",
    "Options",
    "Pop",
    "RcheapError",
    "ReadScalar",
    "Resource",
    "Runtime",
    "ScopeError",
    "StreamOp",
    "TypeMismatch",
    "ValueId",
    "WriteScalar",
    "dump_frames",
    "dump_heap",
    "validate_heap",
]
