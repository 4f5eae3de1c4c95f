"""Core module - Orchestrator, error taxonomy, and configuration."""

from dagwright.core.config import Settings, get_settings
from dagwright.core.orchestrator import Dagwright

__all__ = [
    "Dagwright",
    "Settings",
    "get_settings",
]
