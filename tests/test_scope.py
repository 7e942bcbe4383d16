"""Tests for frames: disposal order, rebinding, and every way out of a frame."""

import pytest

from rcheap import DanglingReference, FrameState, Kind, ScopeError


def _open(rt, resource, name, token=None):
    h = rt.open_stream(token if token is not None else name, resource)
    rt.bind(name, h)
    return h


# ── Disposal order ──


def test_bindings_disposed_last_first(rt, resource):
    with rt.frame():
        for name in ("a", "b", "c"):
            _open(rt, resource, name)
    assert resource.finalized == ["c", "b", "a"]


def test_child_frame_disposed_before_parent_continues(rt, resource):
    with rt.frame():
        _open(rt, resource, "outer")
        with rt.frame():
            _open(rt, resource, "inner")
        assert resource.finalized == ["inner"]
    assert resource.finalized == ["inner", "outer"]


def test_frame_is_closing_during_disposal(rt, resource):
    seen = []
    with rt.frame() as frame:
        _open(rt, resource, "a")
        resource.on_finalize = lambda token: seen.append(frame.state)
        assert frame.state is FrameState.OPEN
    assert seen == [FrameState.CLOSING]
    assert frame.state is FrameState.CLOSED


def test_disposing_binding_drops_exactly_one_count(rt):
    h = rt.construct(Kind.SEQUENCE)
    with rt.frame():
        rt.bind("x", rt.take_reference(h))
        rt.bind("y", rt.take_reference(h))
        assert rt.refcount(h) == 3
    assert rt.refcount(h) == 1


# ── Rebinding ──


def test_rebinding_releases_previous_handle_first(rt, resource):
    with rt.frame() as frame:
        _open(rt, resource, "a", token="a1")
        _open(rt, resource, "b")
        _open(rt, resource, "a", token="a2")
        assert resource.finalized == ["a1"]
        assert [b.name for b in frame.bindings] == ["b", "a"]
    assert resource.finalized == ["a1", "a2", "b"]


def test_rebinding_same_value_keeps_it_alive(rt):
    h = rt.construct(Kind.SCALAR, 1)
    with rt.frame():
        rt.bind("x", h)
        rt.bind("x", rt.take_reference(h))
        assert rt.refcount(h) == 1
    assert not rt.is_live(h)


def test_unbind_disposes_early(rt, resource):
    with rt.frame() as frame:
        _open(rt, resource, "a")
        _open(rt, resource, "b")
        rt.unbind("a")
        assert resource.finalized == ["a"]
        assert [b.name for b in frame.bindings] == ["b"]
    assert resource.finalized == ["a", "b"]


def test_unbind_unknown_name(rt):
    with rt.frame():
        with pytest.raises(ScopeError):
            rt.unbind("missing")


# ── Exits ──


def test_exception_exit_disposes(rt, resource):
    with pytest.raises(RuntimeError):
        with rt.frame():
            _open(rt, resource, "a")
            raise RuntimeError("boom")
    assert resource.finalized == ["a"]
    assert rt.scopes.depth == 0


def test_early_return_disposes(rt, resource):
    def work():
        with rt.frame():
            h = _open(rt, resource, "a")
            if rt.is_live(h):
                return "early"
            _open(rt, resource, "never")
        return "late"

    assert work() == "early"
    assert resource.finalized == ["a"]


def test_explicit_enter_and_exit(rt, resource):
    frame = rt.scopes.enter_frame()
    _open(rt, resource, "a")
    rt.scopes.exit_frame(frame)
    assert frame.state is FrameState.CLOSED
    assert resource.finalized == ["a"]


def test_parent_cannot_exit_before_child(rt):
    outer = rt.scopes.enter_frame()
    inner = rt.scopes.enter_frame()
    with pytest.raises(ScopeError):
        rt.scopes.exit_frame(outer)
    assert outer.state is FrameState.OPEN
    rt.scopes.exit_frame(inner)
    rt.scopes.exit_frame(outer)
    assert rt.scopes.depth == 0


def test_exit_without_frame(rt):
    with pytest.raises(ScopeError):
        rt.scopes.exit_frame()


def test_bind_without_frame(rt):
    h = rt.construct(Kind.SCALAR, 1)
    with pytest.raises(ScopeError):
        rt.bind("x", h)
    assert rt.refcount(h) == 1


def test_bind_during_disposal_is_rejected(rt, resource):
    attempts = []

    def rebind(token):
        try:
            rt.bind("late", rt.construct(Kind.SCALAR, 0))
        except ScopeError as e:
            attempts.append(e)
            raise

    with pytest.raises(ScopeError):
        with rt.frame():
            _open(rt, resource, "a")
            resource.on_finalize = rebind
    assert len(attempts) == 1
    assert rt.scopes.depth == 0


def test_failed_release_does_not_stop_drain(rt, resource):
    with pytest.raises(DanglingReference):
        with rt.frame():
            _open(rt, resource, "a")
            bad = rt.construct(Kind.SCALAR, 0)
            rt.bind("bad", bad)
            rt.release(bad)
            _open(rt, resource, "c")
    assert resource.finalized == ["c", "a"]
    assert rt.scopes.depth == 0


def test_bind_dangling_handle(rt):
    h = rt.construct(Kind.SCALAR, 0)
    rt.release(h)
    with rt.frame() as frame:
        with pytest.raises(DanglingReference):
            rt.bind("x", h)
        assert frame.bindings == ()


def _raise_on_bad(token):
    if token == "bad":
        raise ValueError("finalizer bug")


def test_finalizer_bug_still_closes_frame(rt, resource):
    resource.on_finalize = _raise_on_bad
    with pytest.raises(ValueError):
        with rt.frame() as frame:
            _open(rt, resource, "good")
            _open(rt, resource, "bad")
    assert frame.state is FrameState.CLOSED
    assert rt.scopes.depth == 0
    assert resource.finalized == ["bad", "good"]
    assert rt.stats().live == 0


# ── Lookup ──


def test_lookup_prefers_innermost(rt):
    with rt.frame():
        outer = rt.construct(Kind.SCALAR, "outer")
        rt.bind("x", outer)
        with rt.frame():
            inner = rt.construct(Kind.SCALAR, "inner")
            rt.bind("x", inner)
            assert rt.lookup("x") == inner
        assert rt.lookup("x") == outer
        with pytest.raises(ScopeError):
            rt.lookup("y")
