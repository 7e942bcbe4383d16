"""Tests for diagnostics sinks, heap inspection and options."""

import logging

from rcheap import (
    Kind,
    LoggingDiagnostics,
    Options,
    Runtime,
    dump_frames,
    dump_heap,
    validate_heap,
)


# ── Sinks ──


def test_logging_sink_reports_finalize_failure(resource, caplog):
    rt = Runtime(diagnostics=LoggingDiagnostics())
    resource.fail = True
    fh = rt.open_stream("tok", resource)
    with caplog.at_level(logging.ERROR, logger="rcheap.diagnostics"):
        rt.release(fh)
    assert "FinalizationError" in caplog.text
    assert "flush failed" in caplog.text
    assert not rt.is_live(fh)


def test_default_sink_is_logging():
    assert isinstance(Runtime().diagnostics, LoggingDiagnostics)


# ── Heap inspection ──


def test_dump_heap(rt):
    rt.construct(Kind.SCALAR, 1)
    seq = rt.construct(Kind.SEQUENCE)
    rt.take_reference(seq)
    lines = dump_heap(rt.store)
    assert lines[0] == "[RC:HEAP] === Heap Dump ==="
    assert lines[1] == "[RC:HEAP] #0.0 kind=SCALAR refs=1"
    assert lines[2] == "[RC:HEAP] #1.0 kind=SEQUENCE refs=2"
    assert lines[-1] == "[RC:HEAP] Total values: 2"


def test_dump_frames(rt):
    with rt.frame():
        rt.bind("x", rt.construct(Kind.SCALAR, 1))
        lines = dump_frames(rt.scopes)
    assert lines[0] == "[RC:FRAMES] === Frame Dump (depth=1) ==="
    assert "[RC:FRAMES] Frame 0: 1 bindings" in lines
    assert "[RC:FRAMES]   x -> Handle(#0.0, SCALAR)" in lines


def test_validate_clean_heap(rt):
    leaf = rt.construct(Kind.SCALAR, 1)
    rt.construct(Kind.SEQUENCE, [leaf, leaf])
    assert validate_heap(rt.store) == []


def test_validate_finds_dangling_element(rt):
    leaf = rt.construct(Kind.SCALAR, 1)
    rt.construct(Kind.SEQUENCE, [leaf])
    rt.release(leaf)
    rt.release(leaf)
    problems = validate_heap(rt.store)
    assert len(problems) == 1
    assert "holds dangling" in problems[0]


# ── Options ──


def test_options_from_env():
    opts = Options.from_env({"RCHEAP_TRACE": "yes", "RCHEAP_CHECK_LEAKS": "0"})
    assert opts.trace is True
    assert opts.check_leaks_on_exit is False
    assert Options.from_env({}) == Options()


def test_trace_logs_store_traffic(caplog):
    rt = Runtime(Options(trace=True))
    with caplog.at_level(logging.DEBUG, logger="rcheap"):
        with rt.frame():
            rt.bind("x", rt.construct(Kind.SCALAR, 1))
    assert "allocate #0.0 kind=SCALAR" in caplog.text
    assert "reclaim #0.0 kind=SCALAR" in caplog.text
    assert "exit frame depth=0 disposed=1" in caplog.text
