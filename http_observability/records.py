"""
Telemetry record types handed from producers to the buffer.

Records are frozen once created. Each one knows its own wire form
(to_dict) so the transmission client can ship batches verbatim.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Union


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def isoformat(value: datetime) -> str:
    """Serialize a datetime as ISO-8601 with millisecond precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec='milliseconds')


def to_jsonable(value: Any) -> Any:
    """Convert an attribute value to something json.dumps accepts; unknown types become strings."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, datetime):
        return isoformat(value)
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    return str(value)


@dataclass(frozen=True)
class ServiceIdentity:
    """Static metadata attached to every outbound payload."""

    service: str
    version: str
    repository_url: str = ""
    organisation_id: str = ""
    project_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            'service': self.service,
            'version': self.version,
            'repository_url': self.repository_url,
            'organisation_id': self.organisation_id,
            'project_id': self.project_id,
        }


@dataclass(frozen=True)
class LogRecord:
    """A single log event."""

    level: str
    message: str
    timestamp: datetime = field(default_factory=utcnow)
    attributes: Mapping[str, Any] = field(default_factory=dict)
    trace_id: Optional[str] = None
    span_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'attributes', dict(self.attributes))

    def to_dict(self) -> dict[str, Any]:
        # Core keys win over attributes of the same name
        data = to_jsonable(self.attributes)
        data.update({
            'timestamp': isoformat(self.timestamp),
            'level': self.level,
            'message': self.message,
        })
        if self.trace_id:
            data['traceId'] = self.trace_id
        if self.span_id:
            data['spanId'] = self.span_id
        return data


@dataclass(frozen=True)
class MetricRecord:
    """
    A metric sample.

    Labels are kept as an ordered tuple of (key, value) pairs. A mapping
    is accepted on construction and normalized in insertion order.
    """

    name: str
    value: float
    labels: tuple[tuple[str, str], ...] = ()
    timestamp: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        labels = self.labels
        if isinstance(labels, Mapping):
            labels = labels.items()
        object.__setattr__(
            self, 'labels', tuple((str(k), str(v)) for k, v in labels)
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            'name': self.name,
            'value': self.value,
            'labels': dict(self.labels),
            'timestamp': isoformat(self.timestamp),
        }


@dataclass(frozen=True)
class TraceRecord:
    """
    A trace span, or a request-level trace summary.

    Summaries are synthetic spans covering a whole request; raw spans come
    from tracing instrumentation. Duration is in microseconds.
    """

    trace_id: str
    span_id: str
    operation_name: str
    start_time: datetime
    duration_us: float
    parent_span_id: Optional[str] = None
    attributes: Mapping[str, Any] = field(default_factory=dict)
    is_summary: bool = False

    def __post_init__(self):
        object.__setattr__(self, 'attributes', dict(self.attributes))

    @classmethod
    def from_span(
        cls,
        trace_id: str,
        span_id: str,
        name: str,
        start_time_ns: int,
        duration_ns: int,
        parent_span_id: Optional[str] = None,
        attributes: Optional[Mapping[str, Any]] = None
    ) -> "TraceRecord":
        """
        Build a raw span record from nanosecond timings.

        Args:
            trace_id: Trace identifier (hex)
            span_id: Span identifier (hex)
            name: Operation name
            start_time_ns: Span start as nanoseconds since the epoch
            duration_ns: Span duration in nanoseconds
            parent_span_id: Parent span, if any
            attributes: Span attributes

        Returns:
            TraceRecord with is_summary False
        """
        return cls(
            trace_id=trace_id,
            span_id=span_id,
            operation_name=name,
            start_time=datetime.fromtimestamp(start_time_ns / 1e9, tz=timezone.utc),
            duration_us=duration_ns / 1000,
            parent_span_id=parent_span_id,
            attributes=attributes or {},
        )

    @classmethod
    def summary(
        cls,
        trace_id: str,
        method: str,
        path: str,
        duration_s: float,
        url: Optional[str] = None,
        spans: int = 1,
        timestamp: Optional[datetime] = None
    ) -> "TraceRecord":
        """
        Build a request-level trace summary.

        The summary reuses the trace id as its span id since it stands for
        the request as a whole.
        """
        return cls(
            trace_id=trace_id,
            span_id=trace_id,
            operation_name=f"{method} {path}",
            start_time=timestamp or utcnow(),
            duration_us=duration_s * 1_000_000,
            attributes={
                'url': url or path,
                'path': path,
                'method': method,
                'spans': spans,
            },
            is_summary=True,
        )

    def to_dict(self) -> dict[str, Any]:
        data = {
            'traceId': self.trace_id,
            'spanId': self.span_id,
            'parentSpanId': self.parent_span_id,
            'operationName': self.operation_name,
            'startTime': isoformat(self.start_time),
            'duration': self.duration_us,
            'tags': to_jsonable(self.attributes),
        }
        if self.is_summary:
            data['is_trace_summary'] = True
        else:
            data['is_span'] = True
        return data


Record = Union[LogRecord, MetricRecord, TraceRecord]


@dataclass(frozen=True)
class Batch:
    """Snapshot of buffered records taken atomically at flush time."""

    logs: tuple[LogRecord, ...]
    metrics: tuple[MetricRecord, ...]
    traces: tuple[TraceRecord, ...]
    identity: ServiceIdentity
    flushed_at: datetime = field(default_factory=utcnow)

    @property
    def size(self) -> int:
        return len(self.logs) + len(self.metrics) + len(self.traces)

    @property
    def is_empty(self) -> bool:
        return self.size == 0

    def to_payload(self) -> dict[str, list[dict[str, Any]]]:
        """Record sequences in wire form, each possibly empty."""
        return {
            'logs': [r.to_dict() for r in self.logs],
            'metrics': [r.to_dict() for r in self.metrics],
            'traces': [r.to_dict() for r in self.traces],
        }
