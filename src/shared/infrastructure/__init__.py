"""
Infrastructure Layer
=====================

Low-level technical concerns shared by every module:
- Logging setup
- Clock abstraction
"""

from src.shared.infrastructure.clock import Clock, SystemClock, ensure_utc
from src.shared.infrastructure.logging import get_logger, setup_logging, log_latency

__all__ = [
    "Clock",
    "SystemClock",
    "ensure_utc",
    "get_logger",
    "setup_logging",
    "log_latency",
]
