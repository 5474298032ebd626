"""Buffered HTTP transmission of logs, metrics and traces."""
from .config import Config, load_config, validate_config
from .daemon import ObservabilityAgent
from .records import Batch, LogRecord, MetricRecord, ServiceIdentity, TraceRecord

__version__ = "1.0.0"

__all__ = [
    'Config',
    'load_config',
    'validate_config',
    'ObservabilityAgent',
    'Batch',
    'LogRecord',
    'MetricRecord',
    'ServiceIdentity',
    'TraceRecord',
]
