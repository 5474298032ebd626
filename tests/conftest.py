"""Shared test fixtures."""
from typing import Any, Callable
from unittest.mock import Mock

import pytest
import requests

from http_observability.config import Config
from http_observability.records import ServiceIdentity


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_response(status_code: int = 200) -> Mock:
    """Mock requests.Response whose raise_for_status mirrors the status code."""
    response = Mock(spec=requests.Response)
    response.status_code = status_code
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} Error")
    else:
        response.raise_for_status.return_value = None
    return response


@pytest.fixture
def config() -> Config:
    return Config(
        service_name="checkout",
        service_version="2.1.0",
        environment="test",
        repository_url="https://git.example.com/shop/checkout",
        backend_url="https://collector.example.com/",
        api_key="key-123",
        organisation_id="org-1",
        project_id="proj-9",
        transmission_enabled=True,
        retry_attempts=1,
        retry_delay_ms=0,
    )


@pytest.fixture
def identity(config: Config) -> ServiceIdentity:
    return config.identity


@pytest.fixture
def session() -> Mock:
    """HTTP session answering 200 to every request."""
    session = Mock(spec=requests.Session)
    session.headers = {}
    session.post.return_value = make_response(200)
    session.get.return_value = make_response(200)
    return session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def payloads(session: Mock) -> Callable[[], list[dict[str, Any]]]:
    """JSON bodies posted through the mock session, in order."""
    def _payloads() -> list[dict[str, Any]]:
        return [c.kwargs['json'] for c in session.post.call_args_list]
    return _payloads
