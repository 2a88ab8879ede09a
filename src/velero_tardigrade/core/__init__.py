"""Core utilities and shared components for velero-tardigrade."""

from .config import settings
from .exceptions import ConfigError, TardigradeError
from .observability import get_logger, get_tracer

__all__ = ["settings", "TardigradeError", "ConfigError", "get_logger", "get_tracer"]
