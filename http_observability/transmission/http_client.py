"""
HTTP client for sending telemetry to the observability backend.

Every call is a single attempt. Retries are composed by the caller
(see retry.send_with_retry) so the circuit breaker sees each attempt.
"""
from enum import Enum
from typing import Any, Optional, Sequence, Union
import pybreaker
import requests
import structlog

from ..config import Config
from ..records import Batch, LogRecord, MetricRecord, Record, ServiceIdentity, TraceRecord, isoformat, utcnow
from .circuit_breaker import CircuitBreaker

logger = structlog.get_logger(component="transmission")

API_PREFIX = '/v1/observability'


class SendResult(str, Enum):
    """Outcome of a single transmission attempt."""

    SENT = "sent"
    FAILED = "failed"
    # Circuit open, no request made
    SKIPPED = "skipped"

    @property
    def ok(self) -> bool:
        return self is SendResult.SENT


def build_headers(config: Config) -> dict[str, str]:
    """Identity headers sent with every request; unset values are omitted."""
    headers = {
        'Content-Type': 'application/json',
        'User-Agent': f'{config.service_name}/{config.service_version}',
        'X-API-Key': config.api_key,
        'X-Organisation-ID': config.organisation_id,
        'X-Project-ID': config.project_id,
    }
    return {name: value for name, value in headers.items() if value}


class TransmissionClient:
    """
    Delivers batches, record lists and health status to the backend.

    Owns the circuit breaker guarding telemetry sends. Health pushes and
    connection checks bypass it.
    """

    def __init__(
        self,
        config: Config,
        session: Optional[requests.Session] = None,
        breaker: Optional[CircuitBreaker] = None
    ):
        """
        Initialize client.

        Args:
            config: Agent configuration
            session: HTTP session to use (a new one if omitted)
            breaker: Circuit breaker to use (built from config if omitted)
        """
        self.backend_url = config.backend_url.rstrip('/')
        self.identity = config.identity
        self.timeout_s = config.http_timeout_ms / 1000
        self.breaker = breaker or CircuitBreaker(
            failure_threshold=config.circuit_breaker_threshold,
            cooldown_s=config.circuit_breaker_cooldown_ms / 1000
        )
        self.session = session if session is not None else requests.Session()
        self.session.headers.update(build_headers(config))

    def send_batch(self, batch: Batch) -> SendResult:
        """
        Send a flushed batch with all three record sequences.

        Args:
            batch: Batch snapshot from the buffer

        Returns:
            SENT, FAILED, or SKIPPED when the circuit is open
        """
        if not self.breaker.allow_request():
            logger.warning(
                "circuit_open_skipping_transmission",
                data_type='batch',
                items=batch.size
            )
            return SendResult.SKIPPED

        payload = self._envelope('batch', batch.identity)
        payload.update(batch.to_payload())
        return self._post_guarded('batch', payload, items=batch.size)

    def send_logs(self, logs: Union[LogRecord, Sequence[LogRecord]]) -> SendResult:
        return self._send_records('logs', logs)

    def send_metrics(self, metrics: Union[MetricRecord, Sequence[MetricRecord]]) -> SendResult:
        return self._send_records('metrics', metrics)

    def send_traces(self, traces: Union[TraceRecord, Sequence[TraceRecord]]) -> SendResult:
        return self._send_records('traces', traces)

    def send_health_status(self, status: dict[str, Any]) -> bool:
        """
        Push a health status record.

        Best-effort: not guarded by the circuit breaker and never raises.

        Returns:
            True if the backend accepted it
        """
        payload = self._envelope('health')
        payload['status'] = status

        try:
            response = self.session.post(
                self._url('health'),
                json=payload,
                timeout=self.timeout_s
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning("health_status_send_failed", error=str(e))
            return False

        logger.debug("health_status_sent", status=response.status_code)
        return True

    def validate_connection(self) -> bool:
        """
        Check the backend is reachable and accepts our credentials.

        Blocks for one round trip; call outside request handling.

        Returns:
            True if the validate endpoint answered with success
        """
        try:
            response = self.session.get(self._url('validate'), timeout=self.timeout_s)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error("backend_connection_validation_failed", url=self.backend_url, error=str(e))
            return False

        logger.info("backend_connection_validated", url=self.backend_url, status=response.status_code)
        return True

    def get_status(self) -> dict[str, Any]:
        """Client and circuit breaker status for diagnostics."""
        breaker = self.breaker.snapshot()
        return {
            'backend_url': self.backend_url,
            'circuit_state': breaker['state'],
            'circuit_open': breaker['state'] == 'open',
            'failure_count': breaker['failure_count'],
            'last_failure_at': breaker['last_failure_at'],
            'service': self.identity.service,
            'organisation_id': self.identity.organisation_id,
            'project_id': self.identity.project_id,
        }

    def close(self) -> None:
        self.breaker.shutdown()
        self.session.close()

    def _send_records(self, data_type: str, records: Union[Record, Sequence[Record]]) -> SendResult:
        if isinstance(records, (LogRecord, MetricRecord, TraceRecord)):
            records = [records]

        if not self.breaker.allow_request():
            logger.warning(
                "circuit_open_skipping_transmission",
                data_type=data_type,
                items=len(records)
            )
            return SendResult.SKIPPED

        payload = self._envelope(data_type)
        payload[data_type] = [r.to_dict() for r in records]
        return self._post_guarded(data_type, payload, items=len(records))

    def _post(self, data_type: str, payload: dict[str, Any]) -> requests.Response:
        response = self.session.post(
            self._url(data_type),
            json=payload,
            timeout=self.timeout_s
        )
        response.raise_for_status()
        return response

    def _post_guarded(self, data_type: str, payload: dict[str, Any], items: int) -> SendResult:
        """Single POST whose outcome feeds the circuit breaker."""
        try:
            response = self.breaker.call(self._post, data_type, payload)

        except (requests.RequestException, pybreaker.CircuitBreakerError) as e:
            # CircuitBreakerError here means this failure tripped the breaker
            logger.warning(
                "transmission_failed",
                data_type=data_type,
                items=items,
                error=str(e)
            )
            return SendResult.FAILED

        logger.debug(
            "transmission_sent",
            data_type=data_type,
            items=items,
            status=response.status_code
        )
        return SendResult.SENT

    def _envelope(self, data_type: str, identity: Optional[ServiceIdentity] = None) -> dict[str, Any]:
        payload = {'data_type': data_type}
        payload.update((identity or self.identity).to_dict())
        payload['timestamp'] = isoformat(utcnow())
        return payload

    def _url(self, endpoint: str) -> str:
        return f"{self.backend_url}{API_PREFIX}/{endpoint}"
