"""Tests for request instrumentation."""
from unittest.mock import Mock

import pytest
from structlog.testing import capture_logs

from http_observability.instrumentation import REQUEST_DURATION_METRIC, RequestRecorder
from http_observability.records import MetricRecord, TraceRecord
from http_observability.transmission.buffer import EventBuffer


@pytest.fixture
def buffer():
    return Mock(spec=EventBuffer)


def test_request_without_trace_records_metric_only(buffer):
    RequestRecorder(buffer).record_request("GET", "/api/users", 200, 0.125)

    metric = buffer.add_metric.call_args.args[0]
    assert isinstance(metric, MetricRecord)
    assert metric.name == REQUEST_DURATION_METRIC
    assert metric.value == 0.125
    assert dict(metric.labels) == {'method': 'GET', 'route': '/api/users', 'status_code': '200'}
    buffer.add_trace.assert_not_called()


def test_traced_request_adds_summary(buffer):
    RequestRecorder(buffer).record_request("POST", "/api/orders", 201, 0.5,
                                           trace_id="t-1", url="/api/orders?x=1")

    summary = buffer.add_trace.call_args.args[0]
    assert isinstance(summary, TraceRecord)
    assert summary.is_summary
    assert summary.trace_id == "t-1"
    assert summary.attributes['url'] == "/api/orders?x=1"


def test_record_spans_single_append(buffer):
    spans = [
        TraceRecord.from_span(trace_id="t", span_id=f"s{n}", name="op", start_time_ns=0, duration_ns=10)
        for n in range(3)
    ]

    RequestRecorder(buffer).record_spans(iter(spans))

    buffer.add_trace.assert_called_once_with(spans)


def test_record_no_spans(buffer):
    RequestRecorder(buffer).record_spans([])
    buffer.add_trace.assert_not_called()


def test_request_emits_completed_log(buffer):
    with capture_logs() as logs:
        RequestRecorder(buffer).record_request("GET", "/api/users", 404, 0.05,
                                               trace_id="t-2", url="/api/users?id=7")

    assert logs == [{
        'event': 'request_completed',
        'log_level': 'info',
        'method': 'GET',
        'url': '/api/users?id=7',
        'status_code': 404,
        'duration_s': 0.05,
        'trace_id': 't-2',
    }]
