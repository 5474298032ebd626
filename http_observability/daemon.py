"""
HTTP Observability Agent.

Wires the telemetry pipeline together:
1. Producers append logs, metrics and traces to the buffer
2. The buffer flushes batches to the backend with retry and circuit breaker
3. Health status is pushed periodically
4. Shutdown performs a best-effort final flush
"""
import signal
import sys
import threading
import time
from typing import Any, Optional
import requests
import structlog

from .config import Config, load_config, validate_config
from .health import collect_health_status
from .instrumentation import RequestRecorder
from .log_config import BufferLogForwarder, configure_logging
from .records import Batch
from .transmission import EventBuffer, RetryPolicy, SendResult, TransmissionClient, send_with_retry

logger = structlog.get_logger()


class ObservabilityAgent:
    """
    HTTP observability agent.

    Owns one transmission client and one buffer. Producers reach the
    buffer through `recorder` and `log_forwarder`; both are None while
    transmission is disabled.
    """

    def __init__(self, config: Config, session: Optional[requests.Session] = None):
        """
        Initialize agent.

        Args:
            config: Agent configuration
            session: HTTP session for the client (tests)
        """
        self.config = config
        self.enabled = config.transmission_enabled
        self.started_at = time.time()
        self.running = False
        self._shutdown_event = threading.Event()

        self.client = TransmissionClient(config, session=session)
        self.retry_policy = RetryPolicy.from_config(config)
        self.buffer = EventBuffer(
            deliver=self._deliver,
            identity=config.identity,
            max_batch_size=config.batch_max_size,
            max_batch_wait_s=config.batch_max_wait_ms / 1000
        )

        self.recorder: Optional[RequestRecorder] = None
        self.log_forwarder: Optional[BufferLogForwarder] = None
        if self.enabled:
            self.recorder = RequestRecorder(self.buffer)
            self.log_forwarder = BufferLogForwarder(
                self.buffer,
                min_level=config.log_level,
                environment=config.environment
            )

    def _deliver(self, batch: Batch) -> SendResult:
        return send_with_retry(self.client.send_batch, batch, self.retry_policy)

    def start(self) -> None:
        """Validate the backend connection and push an initial health status."""
        logger.info(
            "agent_starting",
            service=self.config.service_name,
            version=self.config.service_version,
            backend_url=self.config.backend_url,
            transmission_enabled=self.enabled
        )

        if not self.enabled:
            logger.info("transmission_disabled")
            return

        connected = self.client.validate_connection()
        logger.info("backend_connection_check", connected=connected)
        self.report_health()

    def record_request(
        self,
        method: str,
        path: str,
        status_code: int,
        duration_s: float,
        trace_id: Optional[str] = None,
        url: Optional[str] = None
    ) -> None:
        """Record a completed request; a no-op while transmission is disabled."""
        if self.recorder is not None:
            self.recorder.record_request(method, path, status_code, duration_s, trace_id=trace_id, url=url)

    def report_health(self) -> dict[str, Any]:
        """
        Build the health status and push it to the backend.

        The push never affects the returned status.
        """
        status = collect_health_status(self.config.identity, self.config.environment, self.started_at)
        if self.enabled:
            self.client.send_health_status(status)
        return status

    def run(self) -> None:
        """Push health status every health_interval_s until shutdown."""
        signal.signal(signal.SIGTERM, self._handle_shutdown)
        signal.signal(signal.SIGINT, self._handle_shutdown)

        self.start()
        self.running = True

        while not self._shutdown_event.wait(timeout=self.config.health_interval_s):
            try:
                self.report_health()
            except Exception as e:
                logger.error("health_report_failed", error=str(e))

        logger.info("agent_loop_stopped")

    def _handle_shutdown(self, signum, frame):
        """Handle SIGTERM/SIGINT for graceful shutdown."""
        sig_name = signal.Signals(signum).name
        logger.info("shutdown_signal_received", signal=sig_name)
        self.running = False
        self._shutdown_event.set()

    def stop(self) -> bool:
        """
        Stop the agent gracefully.

        Returns:
            True if the final flush was delivered within the shutdown timeout
        """
        logger.info("agent_stopping")
        self.running = False
        self._shutdown_event.set()

        delivered = self.buffer.close(timeout_s=self.config.shutdown_timeout_ms / 1000)
        self.client.close()

        logger.info("agent_stopped", final_flush_delivered=delivered, **self.client.get_status())
        return delivered


def main(config_path: Optional[str] = None):
    """
    Main entry point.

    Args:
        config_path: Path to configuration file (optional)
    """
    configure_logging()

    config = load_config(config_path)
    configure_logging(config.log_level)

    if config.transmission_enabled:
        missing = validate_config(config)
        if missing:
            logger.error("required_settings_missing", settings=missing)
            sys.exit(1)

    agent = ObservabilityAgent(config)
    if agent.log_forwarder is not None:
        configure_logging(config.log_level, forwarder=agent.log_forwarder)

    try:
        agent.run()
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt")
    except Exception as e:
        logger.error("agent_failed", error=str(e))
        sys.exit(1)
    finally:
        agent.stop()
