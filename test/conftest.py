import asyncio
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from ambulance_tracker.models import PollingConfig, RequestKind
from dispatch_server import DispatchServer

BASE_URL_TEMPLATE = "http://localhost:{}"
TOKEN = "abc"


@pytest_asyncio.fixture
async def server(unused_tcp_port_factory) -> AsyncGenerator[tuple, None]:
    """Start and yield a DispatchServer instance and its base URL on a random port."""
    port = unused_tcp_port_factory()
    server_instance = DispatchServer(token=TOKEN)
    await server_instance.start(port=port)
    try:
        yield server_instance, BASE_URL_TEMPLATE.format(port)
    finally:
        await server_instance.stop()


@pytest.fixture
def config() -> PollingConfig:
    """Booking preset with intervals short enough for tests."""
    return PollingConfig.for_kind(
        RequestKind.booking,
        interval=0.05,
        phase_interval=0.02,
        request_timeout=2.0,
        success_redirect_delay=0.05,
    )


@pytest.fixture
def report_config() -> PollingConfig:
    return PollingConfig.for_kind(
        RequestKind.report,
        interval=0.05,
        phase_interval=0.02,
        request_timeout=2.0,
    )


class PageRecorder:
    """Collects navigation targets and notifications emitted by a tracker."""

    def __init__(self):
        self.navigations = []
        self.notifications = []

    async def navigate(self, destination: str) -> None:
        self.navigations.append(destination)

    async def notify(self, notification) -> None:
        self.notifications.append(notification)


@pytest.fixture
def page() -> PageRecorder:
    return PageRecorder()


@pytest.fixture
def eventually():
    """Wait until a condition holds, failing after a timeout."""

    async def _eventually(predicate, timeout: float = 3.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition was not met in time")
            await asyncio.sleep(0.01)

    return _eventually
