"""Transmission layer for sending telemetry to the observability backend."""
from .buffer import EventBuffer
from .circuit_breaker import CircuitBreaker, CircuitState
from .http_client import SendResult, TransmissionClient
from .retry import RetryPolicy, send_with_retry

__all__ = [
    'EventBuffer',
    'CircuitBreaker',
    'CircuitState',
    'SendResult',
    'TransmissionClient',
    'RetryPolicy',
    'send_with_retry',
]
