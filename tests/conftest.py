"""
Shared pytest fixtures for reconverge tests.

This module provides:
- Settings cache reset for test isolation
- Recording operations that count invocations
- A small local engine sized for deterministic partitioning
"""

import os
import sys
import threading
from pathlib import Path

import pytest
import structlog

# Ensure reconverge package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from reconverge.core.logging import clear_context
from reconverge.core.result import Err, Ok
from reconverge.core.settings import clear_settings_cache
from reconverge.execution import LocalCollectionEngine


@pytest.fixture(autouse=True)
def reset_settings(monkeypatch):
    """Drop cached settings, RECONVERGE_* overrides and logging config around every test."""
    for key in list(os.environ):
        if key.startswith("RECONVERGE_"):
            monkeypatch.delenv(key, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()
    clear_context()
    structlog.reset_defaults()


class CountingOperation:
    """Fails the first ``failures`` invocations per key, then succeeds.

    ``failures=None`` fails forever. Thread-safe so it can be shared across
    partitions.
    """

    def __init__(self, failures=None, value="ok", raises=False):
        self.failures = failures
        self.value = value
        self.raises = raises
        self.calls: dict = {}
        self._lock = threading.Lock()

    def __call__(self, key=None):
        with self._lock:
            count = self.calls.get(key, 0) + 1
            self.calls[key] = count
        if self.failures is None or count <= self.failures:
            error = ConnectionError(f"failure {count} for {key}")
            if self.raises:
                raise error
            return Err(error)
        return Ok(self.value if key is None else (key, self.value))

    @property
    def total_calls(self) -> int:
        with self._lock:
            return sum(self.calls.values())


@pytest.fixture
def counting_operation():
    """Factory for CountingOperation instances."""
    return CountingOperation


@pytest.fixture
def always_failing():
    return CountingOperation(failures=None)


@pytest.fixture
def engine():
    return LocalCollectionEngine(parallelism=2, num_partitions=3)
