"""
In-process telemetry buffer with size and time flush triggers.

Producers append records; the buffer flushes as soon as the combined
count reaches max_batch_size, or max_batch_wait_s after the first record
of a batch arrived. Delivery runs on a single background worker so no
producer ever waits on the network.

Nothing is persisted: a batch that cannot be delivered is dropped.
"""
import itertools
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Iterable, Optional, Union
import structlog

from ..records import Batch, LogRecord, MetricRecord, ServiceIdentity, TraceRecord, utcnow

logger = structlog.get_logger(component="transmission")


class EventBuffer:
    """
    Buffered telemetry collector for batch delivery.

    Appending, the threshold check and flush-and-clear all happen under
    one lock, so concurrent producers can neither lose records nor flush
    the same record twice.
    """

    def __init__(
        self,
        deliver: Callable[[Batch], Any],
        identity: ServiceIdentity,
        max_batch_size: int = 10,
        max_batch_wait_s: float = 5.0
    ):
        """
        Initialize buffer.

        Args:
            deliver: Called with each flushed batch on the delivery worker
            identity: Service metadata stamped on every batch
            max_batch_size: Combined record count that triggers a flush
            max_batch_wait_s: Seconds after the first record before a timed flush
        """
        self.max_batch_size = max_batch_size
        self.max_batch_wait_s = max_batch_wait_s
        self._deliver = deliver
        self._identity = identity
        self._lock = threading.Lock()
        self._logs: list[LogRecord] = []
        self._metrics: list[MetricRecord] = []
        self._traces: list[TraceRecord] = []
        self._timer: Optional[threading.Timer] = None
        self._timer_ids = itertools.count(1)
        self._timer_id = 0
        self._closed = False
        self._in_flight: set = set()
        self._in_flight_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="telemetry-flush")

    def add_log(self, record: LogRecord) -> None:
        self._append(self._logs, (record,))

    def add_metric(self, record: MetricRecord) -> None:
        self._append(self._metrics, (record,))

    def add_trace(self, records: Union[TraceRecord, Iterable[TraceRecord]]) -> None:
        """Add one span or summary, or several spans as a single append."""
        if isinstance(records, TraceRecord):
            records = (records,)
        self._append(self._traces, tuple(records))

    def flush(self) -> Optional["Future[Any]"]:
        """
        Drain the buffer into a batch and hand it to the delivery worker.

        Returns:
            Future of the delivery, or None if there was nothing to send
        """
        with self._lock:
            return self._flush_locked("manual")

    def close(self, timeout_s: float = 2.0) -> bool:
        """
        Final flush on shutdown, waiting at most timeout_s for delivery.

        Returns:
            True if everything handed to the worker was delivered in time
        """
        with self._lock:
            self._closed = True
            self._flush_locked("shutdown")
            with self._in_flight_lock:
                in_flight = list(self._in_flight)

        delivered = True
        if in_flight:
            _, not_done = wait(in_flight, timeout=timeout_s)
            delivered = not not_done
            if not delivered:
                logger.warning("final_flush_incomplete", timeout_s=timeout_s, batches=len(not_done))

        self._executor.shutdown(wait=False)
        logger.info("buffer_closed", delivered=delivered)
        return delivered

    @property
    def pending_count(self) -> int:
        with self._lock:
            return self._count()

    @property
    def has_pending_timer(self) -> bool:
        with self._lock:
            return self._timer is not None

    def _count(self) -> int:
        return len(self._logs) + len(self._metrics) + len(self._traces)

    def _append(self, target: list, records: tuple) -> None:
        if not records:
            return

        with self._lock:
            if self._closed:
                logger.debug("buffer_closed_dropping_records", count=len(records))
                return

            target.extend(records)

            if self._count() >= self.max_batch_size:
                self._flush_locked("size")
            elif self._timer is None:
                self._start_timer()

    def _flush_locked(self, reason: str) -> Optional["Future[Any]"]:
        self._cancel_timer()

        if not (self._logs or self._metrics or self._traces):
            return None

        batch = Batch(
            logs=tuple(self._logs),
            metrics=tuple(self._metrics),
            traces=tuple(self._traces),
            identity=self._identity,
            flushed_at=utcnow(),
        )
        self._logs = []
        self._metrics = []
        self._traces = []

        logger.debug(
            "buffer_flushing",
            reason=reason,
            logs=len(batch.logs),
            metrics=len(batch.metrics),
            traces=len(batch.traces)
        )
        future = self._executor.submit(self._deliver_batch, batch)
        with self._in_flight_lock:
            self._in_flight.add(future)
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: "Future[Any]") -> None:
        with self._in_flight_lock:
            self._in_flight.discard(future)

    def _deliver_batch(self, batch: Batch) -> Any:
        try:
            result = self._deliver(batch)
        except Exception as e:
            logger.error("batch_delivery_error", items=batch.size, error=str(e))
            return None

        if not getattr(result, 'ok', bool(result)):
            logger.warning(
                "batch_dropped",
                items=batch.size,
                result=getattr(result, 'value', result),
                flushed_at=batch.flushed_at.isoformat()
            )
        return result

    def _start_timer(self) -> None:
        self._timer_id = next(self._timer_ids)
        self._timer = threading.Timer(self.max_batch_wait_s, self._on_timeout, args=(self._timer_id,))
        self._timer.daemon = True
        self._timer.start()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timeout(self, timer_id: int) -> None:
        with self._lock:
            # A flush since this timer started has already taken its records
            if timer_id != self._timer_id or self._timer is None:
                return
            self._timer = None
            self._flush_locked("timeout")
