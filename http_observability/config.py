"""
Configuration loader for the HTTP observability agent.

Supports INI file and environment variable overrides.
Defaults keep transmission off until explicitly enabled.
"""
import os
import configparser
from dataclasses import dataclass
from typing import Any, Callable, Optional
import structlog

from .records import ServiceIdentity

logger = structlog.get_logger()


def parse_bool(value: str) -> bool:
    """Interpret common truthy strings (1/true/yes/on)."""
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class Config:
    """Agent configuration with safe defaults."""

    # Service identity
    service_name: str = "http-observability"
    service_version: str = "1.0.0"
    environment: str = "development"
    repository_url: str = ""

    # Backend connection
    backend_url: str = "http://localhost:4000"
    api_key: str = ""
    organisation_id: str = ""
    project_id: str = ""
    http_timeout_ms: int = 10000

    # Batching and retry
    transmission_enabled: bool = False
    batch_max_size: int = 10
    batch_max_wait_ms: int = 5000
    retry_attempts: int = 3
    retry_delay_ms: int = 1000

    # Circuit breaker
    circuit_breaker_threshold: int = 5
    circuit_breaker_cooldown_ms: int = 300000

    # Logging
    log_level: str = "info"

    # Agent loop
    health_interval_s: int = 60
    shutdown_timeout_ms: int = 2000

    @property
    def identity(self) -> ServiceIdentity:
        return ServiceIdentity(
            service=self.service_name,
            version=self.service_version,
            repository_url=self.repository_url,
            organisation_id=self.organisation_id,
            project_id=self.project_id,
        )


# section -> {option: (attribute, parser)}
INI_MAPPINGS: dict[str, dict[str, tuple[str, Callable[[str], Any]]]] = {
    'service': {
        'name': ('service_name', str),
        'version': ('service_version', str),
        'environment': ('environment', str),
        'repository_url': ('repository_url', str),
    },
    'backend': {
        'url': ('backend_url', str),
        'api_key': ('api_key', str),
        'organisation_id': ('organisation_id', str),
        'project_id': ('project_id', str),
        'timeout_ms': ('http_timeout_ms', int),
    },
    'transmission': {
        'enabled': ('transmission_enabled', parse_bool),
        'batch_size': ('batch_max_size', int),
        'batch_timeout_ms': ('batch_max_wait_ms', int),
        'retry_attempts': ('retry_attempts', int),
        'retry_delay_ms': ('retry_delay_ms', int),
    },
    'circuit_breaker': {
        'failure_threshold': ('circuit_breaker_threshold', int),
        'cooldown_ms': ('circuit_breaker_cooldown_ms', int),
    },
    'logging': {
        'level': ('log_level', str),
    },
    'agent': {
        'health_interval_s': ('health_interval_s', int),
        'shutdown_timeout_ms': ('shutdown_timeout_ms', int),
    },
}

ENV_MAPPINGS: dict[str, tuple[str, Callable[[str], Any]]] = {
    'SERVICE_NAME': ('service_name', str),
    'SERVICE_VERSION': ('service_version', str),
    'ENVIRONMENT': ('environment', str),
    'REPOSITORY_URL': ('repository_url', str),
    'BACKEND_URL': ('backend_url', str),
    'OBSERVABILITY_API_KEY': ('api_key', str),
    'ORGANISATION_ID': ('organisation_id', str),
    'PROJECT_ID': ('project_id', str),
    'HTTP_TIMEOUT': ('http_timeout_ms', int),
    'HTTP_TRANSMISSION_ENABLED': ('transmission_enabled', parse_bool),
    'HTTP_BATCH_SIZE': ('batch_max_size', int),
    'HTTP_BATCH_TIMEOUT': ('batch_max_wait_ms', int),
    'HTTP_RETRY_ATTEMPTS': ('retry_attempts', int),
    'HTTP_RETRY_DELAY': ('retry_delay_ms', int),
    'HTTP_CIRCUIT_BREAKER_THRESHOLD': ('circuit_breaker_threshold', int),
    'HTTP_CIRCUIT_BREAKER_COOLDOWN': ('circuit_breaker_cooldown_ms', int),
    'LOG_LEVEL': ('log_level', str),
    'HEALTH_INTERVAL_S': ('health_interval_s', int),
    'SHUTDOWN_TIMEOUT': ('shutdown_timeout_ms', int),
}

# attribute -> minimum accepted value
MINIMUMS = {
    'batch_max_size': 1,
    'retry_attempts': 1,
    'circuit_breaker_threshold': 1,
    'batch_max_wait_ms': 0,
    'retry_delay_ms': 0,
    'http_timeout_ms': 0,
    'circuit_breaker_cooldown_ms': 0,
    'health_interval_s': 1,
    'shutdown_timeout_ms': 0,
}

REQUIRED_SETTINGS = ('backend_url', 'api_key', 'organisation_id', 'project_id')


def _apply(config: Config, attr: str, parse: Callable[[str], Any], raw: str, source: str) -> None:
    try:
        setattr(config, attr, parse(raw))
    except ValueError:
        # Unparsable values keep the default
        logger.warning("config_value_invalid", source=source, setting=attr, value=raw)


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Load configuration from INI file and environment variables.

    Priority:
    1. Environment variables (highest)
    2. INI file
    3. Defaults (lowest)

    Example: BACKEND_URL, OBSERVABILITY_API_KEY, HTTP_BATCH_SIZE
    """
    config = Config()

    # Load from INI file if provided
    if config_path and os.path.exists(config_path):
        parser = configparser.ConfigParser()
        parser.read(config_path)

        for section, options in INI_MAPPINGS.items():
            if not parser.has_section(section):
                continue
            for option, (attr, parse) in options.items():
                if parser.has_option(section, option):
                    _apply(config, attr, parse, parser.get(section, option), f"{section}.{option}")

        logger.info("config_loaded_from_file", path=config_path)

    elif config_path:
        logger.warning("config_file_not_found", path=config_path)

    # Override with environment variables (highest priority)
    for env_var, (attr, parse) in ENV_MAPPINGS.items():
        value = os.environ.get(env_var)
        if value is not None:
            _apply(config, attr, parse, value, env_var)
            logger.debug("config_override_from_env", var=env_var)

    # Enforce lower bounds
    for attr, minimum in MINIMUMS.items():
        requested = getattr(config, attr)
        if requested < minimum:
            logger.warning("config_value_clamped", setting=attr, requested=requested, minimum=minimum)
            setattr(config, attr, minimum)

    return config


def validate_config(config: Config) -> list[str]:
    """
    List required settings that are missing.

    Returns:
        Names of unset required settings (empty when valid)
    """
    return [name for name in REQUIRED_SETTINGS if not getattr(config, name)]
