"""Pytest configuration for the rcheap test suite."""

import sys
from pathlib import Path

import pytest

# Add project root to path so tests run without an install
sys.path.insert(0, str(Path(__file__).parent.parent))

from rcheap import CollectingDiagnostics, Runtime  # noqa: E402


class FakeResource:
    """Records finalize calls in order; can be told to fail or to run a hook."""

    def __init__(self):
        self.finalized: list = []
        self.fail = False
        self.on_finalize = None

    def finalize(self, token) -> None:
        self.finalized.append(token)
        if self.on_finalize is not None:
            self.on_finalize(token)
        if self.fail:
            raise OSError(f"flush failed for {token!r}")


@pytest.fixture
def diagnostics():
    return CollectingDiagnostics()


@pytest.fixture
def rt(diagnostics):
    return Runtime(diagnostics=diagnostics)


@pytest.fixture
def resource():
    return FakeResource()
