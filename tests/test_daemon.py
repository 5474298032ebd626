"""Tests for ObservabilityAgent wiring."""
import dataclasses
import logging
from unittest.mock import patch

import pytest
import requests
import structlog

from http_observability.daemon import ObservabilityAgent, main
from http_observability.log_config import configure_logging
from http_observability.transmission.circuit_breaker import CircuitState

from .conftest import make_response


@pytest.fixture
def agent(config, session):
    agent = ObservabilityAgent(config, session=session)
    yield agent
    agent.stop()


def endpoints(session):
    return [c.args[0].rsplit('/', 1)[-1] for c in session.post.call_args_list]


def test_start_validates_and_pushes_health(agent, session):
    agent.start()

    session.get.assert_called_once()
    assert endpoints(session) == ['health']


def test_requests_flow_to_batch_endpoint(agent, session, payloads):
    for n in range(5):
        agent.record_request("GET", "/api/users", 200, 0.01, trace_id=f"t{n}")

    # 5 metrics + 5 summaries reach the batch size of 10
    agent.buffer.close(timeout_s=2.0)

    assert endpoints(session) == ['batch']
    payload = payloads()[0]
    assert len(payload['metrics']) == 5
    assert len(payload['traces']) == 5
    assert payload['logs'] == []


def test_request_log_is_forwarded_into_batch(agent, session, payloads):
    configure_logging('info', forwarder=agent.log_forwarder)
    try:
        agent.record_request("GET", "/api/users", 200, 0.01, trace_id="t1", url="/api/users?page=2")
    finally:
        structlog.reset_defaults()
    agent.buffer.close(timeout_s=2.0)

    payload = payloads()[0]
    assert len(payload['metrics']) == 1
    assert len(payload['traces']) == 1
    assert len(payload['logs']) == 1
    log = payload['logs'][0]
    assert log['message'] == 'request_completed'
    assert log['url'] == '/api/users?page=2'
    assert log['status_code'] == 200
    assert log['traceId'] == 't1'
    assert log['environment'] == 'test'


def test_forwarder_follows_configured_log_level(config, session):
    config = dataclasses.replace(config, log_level="warning")
    agent = ObservabilityAgent(config, session=session)
    try:
        assert agent.log_forwarder.min_level == logging.WARNING
    finally:
        agent.stop()


def test_stop_flushes_remaining_records(agent, session, payloads):
    agent.record_request("GET", "/", 200, 0.01)

    assert agent.stop() is True

    assert endpoints(session) == ['batch']
    assert len(payloads()[0]['metrics']) == 1
    session.close.assert_called_once()


def test_failed_batches_are_retried_then_dropped(config, session):
    config = dataclasses.replace(config, retry_attempts=3, retry_delay_ms=0)
    session.post.return_value = make_response(500)
    agent = ObservabilityAgent(config, session=session)

    agent.record_request("GET", "/", 200, 0.01)
    agent.stop()

    assert endpoints(session) == ['batch', 'batch', 'batch']
    assert agent.client.breaker.failure_count == 3


def test_open_circuit_skips_batches(config, session):
    config = dataclasses.replace(config, retry_attempts=1, circuit_breaker_threshold=1)
    session.post.side_effect = requests.ConnectionError("down")
    agent = ObservabilityAgent(config, session=session)

    agent.record_request("GET", "/", 200, 0.01)
    agent.buffer.flush().result(timeout=2)
    assert agent.client.breaker.state is CircuitState.OPEN

    agent.record_request("GET", "/", 200, 0.01)
    agent.stop()

    assert session.post.call_count == 1


def test_report_health_returns_status_even_when_push_fails(agent, session):
    session.post.side_effect = requests.ConnectionError("down")

    status = agent.report_health()

    assert status['status'] == 'healthy'
    assert endpoints(session) == ['health']


def test_disabled_agent_sends_nothing(config, session):
    config = dataclasses.replace(config, transmission_enabled=False)
    agent = ObservabilityAgent(config, session=session)

    agent.start()
    agent.record_request("GET", "/", 200, 0.01)
    status = agent.report_health()
    agent.stop()

    assert agent.recorder is None
    assert agent.log_forwarder is None
    assert status['status'] == 'healthy'
    session.post.assert_not_called()
    session.get.assert_not_called()


def test_main_exits_when_required_settings_missing(monkeypatch):
    monkeypatch.setenv("HTTP_TRANSMISSION_ENABLED", "true")
    for var in ("OBSERVABILITY_API_KEY", "ORGANISATION_ID", "PROJECT_ID"):
        monkeypatch.delenv(var, raising=False)

    with patch("http_observability.daemon.ObservabilityAgent") as agent_cls:
        with pytest.raises(SystemExit) as exc_info:
            main()

    assert exc_info.value.code == 1
    agent_cls.assert_not_called()
