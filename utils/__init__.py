from .circuit_breaker import CircuitBreaker, CircuitState, FailureKind, classify_failure  # noqa: F401
from .env import load_dotenv_safe  # noqa: F401
from .http_client import HTTPClient, RequestCancelled  # noqa: F401
from .logging_setup import get_logger, setup_logging  # noqa: F401
from .ttl_cache import CacheEntry, TTLCache  # noqa: F401

__all__ = [
    'CacheEntry',
    'CircuitBreaker',
    'CircuitState',
    'FailureKind',
    'HTTPClient',
    'RequestCancelled',
    'TTLCache',
    'classify_failure',
    'get_logger',
    'load_dotenv_safe',
    'setup_logging',
]
