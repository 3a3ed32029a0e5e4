"""Shared pytest fixtures for the service-flow test suite."""

from __future__ import annotations

import os
from typing import Any, Dict, List

import pytest

from service_flow.config import get_settings
from service_flow.services.service_config import reset_config


@pytest.fixture(autouse=True)
def isolated_configuration(monkeypatch):
    """Ensure environment, cached settings and global config never bleed between tests."""
    for key in list(os.environ):
        if key.startswith("SERVICE_FLOW_"):
            monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    reset_config()
    yield
    reset_config()
    get_settings.cache_clear()


class FakeTransaction:
    """Transaction double recording how it was closed."""

    def __init__(self, provider: "FakeTransactionProvider", depth: int):
        self.provider = provider
        self.depth = depth
        self.state = "open"

    def commit(self) -> None:
        self.state = "committed"
        self.provider.log.append(("commit", self.depth))
        self.provider.depth -= 1

    def rollback(self) -> None:
        self.state = "rolled_back"
        self.provider.log.append(("rollback", self.depth))
        self.provider.depth -= 1


class FakeTransactionProvider:
    """Provider double; nested begins are tracked by depth like savepoints."""

    def __init__(self):
        self.depth = 0
        self.log: List[Any] = []
        self.transactions: List[FakeTransaction] = []

    def begin(self) -> FakeTransaction:
        self.depth += 1
        self.log.append(("begin", self.depth))
        transaction = FakeTransaction(self, self.depth)
        self.transactions.append(transaction)
        return transaction


class CaptureLogger:
    """Stand-in for a structlog logger that records events."""

    def __init__(self, events: List[Dict[str, Any]] = None, bound: Dict[str, Any] = None):
        self.events = events if events is not None else []
        self.bound = bound or {}

    def bind(self, **kwargs):
        return CaptureLogger(self.events, {**self.bound, **kwargs})

    def _record(self, level: str, event: str, **kwargs):
        self.events.append({"level": level, "event": event, "bound": self.bound, "payload": kwargs})

    def debug(self, event: str, **kwargs):
        self._record("debug", event, **kwargs)

    def info(self, event: str, **kwargs):
        self._record("info", event, **kwargs)

    def warning(self, event: str, **kwargs):
        self._record("warning", event, **kwargs)

    def error(self, event: str, **kwargs):
        self._record("error", event, **kwargs)

    def names(self) -> List[str]:
        return [entry["event"] for entry in self.events]


@pytest.fixture
def provider() -> FakeTransactionProvider:
    return FakeTransactionProvider()


@pytest.fixture
def capture_logger(monkeypatch) -> CaptureLogger:
    """Replace the service module logger so emitted events can be asserted."""
    from service_flow.services import base as base_module

    capture = CaptureLogger()
    monkeypatch.setattr(base_module, "logger", capture)
    return capture
