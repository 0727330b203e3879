from unittest.mock import AsyncMock, MagicMock

import pytest

from ot_debug.config import Settings
from ot_debug.context import DiagnosticContext
from ot_debug.harness import DebugSession
from ot_debug.models import NavigationResult
from ot_debug.phases import Toolkit
from ot_debug.prober import HeaderProber

DEVICE_URL = "http://192.168.1.100:8080"


class FakeInspector:
    """In-memory page inspector. `probes` maps probe script → result (or exception)."""

    def __init__(self, navigation=None, probes=None):
        self.navigation = navigation if navigation is not None else NavigationResult(
            status=200, final_url=DEVICE_URL
        )
        self.probes = probes or {}
        self.navigations = []
        self.opened = 0
        self.closed = 0
        self.sink = None
        self._open = False

    @property
    def is_open(self):
        return self._open

    async def open(self, sink):
        self.sink = sink
        self.opened += 1
        self._open = True

    async def navigate(self, url, wait_until="domcontentloaded", timeout_ms=None):
        self.navigations.append((url, wait_until, timeout_ms))
        if isinstance(self.navigation, Exception):
            raise self.navigation
        return self.navigation

    async def evaluate(self, probe):
        value = self.probes[probe]
        if isinstance(value, Exception):
            raise value
        return value

    async def close(self):
        self.closed += 1
        self._open = False


@pytest.fixture
def settings():
    return Settings(disable_thought_logging=True)


@pytest.fixture
def ctx():
    context = DiagnosticContext()
    context.set_target(DEVICE_URL)
    return context


@pytest.fixture
def inspector():
    return FakeInspector()


@pytest.fixture
def prober():
    mock = MagicMock(spec=HeaderProber)
    mock.probe = AsyncMock()
    return mock


@pytest.fixture
def toolkit(settings, prober, inspector):
    kit = Toolkit(settings, prober, lambda: inspector)
    kit.inspector = inspector
    return kit


@pytest.fixture
def session(settings, prober, inspector):
    return DebugSession(settings=settings, prober=prober, inspector_factory=lambda: inspector)
