"""Core configuration and utilities for DoseCalc."""

from dosecalc.core.config import settings
from dosecalc.core.logging import setup_logging

__all__ = ["settings", "setup_logging"]
