"""
Structured logging system for jobmatch.

Provides centralized logging with console and optional file output,
plus lightweight metrics for monitoring lookup tiers and geocoding
provider health.
"""

import logging
import os
import sys
import threading
from pathlib import Path
from typing import Optional
from datetime import datetime
import json

LOOKUP_TIERS = ("memory", "store", "remote")


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks metrics for monitoring cache tiers and provider calls.
    """

    def __init__(
        self,
        name: str = "jobmatch",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to stderr (stdout is left to command output)
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers.clear()  # Remove existing handlers
        self._lock = threading.Lock()

        # Metrics tracking
        self.metrics = {
            "provider_calls": {},
            "lookup_hits": {tier: 0 for tier in LOOKUP_TIERS},
            "lookup_misses": 0,
            "store_write_failures": 0,
            "errors_by_type": {},
        }

        # Console handler
        if enable_console:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        # File handler
        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"jobmatch_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        """Log info message with optional context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with optional context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with optional context."""
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        """Log critical message with optional context."""
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        """Internal logging method with context."""
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_provider_call(self, provider: str, ok: bool):
        """Record one remote geocoding call and whether it succeeded."""
        with self._lock:
            stats = self.metrics["provider_calls"].setdefault(
                provider, {"attempts": 0, "successes": 0}
            )
            stats["attempts"] += 1
            if ok:
                stats["successes"] += 1

    def record_lookup_hit(self, tier: str):
        """Record a coordinate resolved at the given cache tier."""
        with self._lock:
            self.metrics["lookup_hits"][tier] = self.metrics["lookup_hits"].get(tier, 0) + 1

    def record_lookup_miss(self):
        """Record a coordinate no tier could resolve."""
        with self._lock:
            self.metrics["lookup_misses"] += 1

    def record_store_write_failure(self):
        with self._lock:
            self.metrics["store_write_failures"] += 1

    def record_error(self, error_type: str):
        """Record an absorbed error by type."""
        with self._lock:
            self.metrics["errors_by_type"][error_type] = (
                self.metrics["errors_by_type"].get(error_type, 0) + 1
            )

    def get_metrics(self) -> dict:
        """Return a copy of current metrics."""
        with self._lock:
            metrics_copy = json.loads(json.dumps(self.metrics))
        for provider, stats in metrics_copy["provider_calls"].items():
            if stats["attempts"] > 0:
                stats["success_rate"] = round(
                    stats["successes"] / stats["attempts"], 3
                )

        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        hits = metrics["lookup_hits"]
        total_lookups = sum(hits.values()) + metrics["lookup_misses"]

        self.info("=== Location Lookup Metrics ===")
        self.info(f"Lookups: {total_lookups} ({metrics['lookup_misses']} unresolved)")
        for tier in LOOKUP_TIERS:
            self.info(f"  {tier}: {hits.get(tier, 0)}")

        if metrics["provider_calls"]:
            self.info("Provider Success Rates:")
            for provider, stats in metrics["provider_calls"].items():
                rate = stats.get("success_rate", 0) * 100
                self.info(f"  {provider}: {stats['successes']}/{stats['attempts']} ({rate:.1f}%)")

        if metrics["store_write_failures"]:
            self.info(f"Store write failures: {metrics['store_write_failures']}")

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "jobmatch",
    level: Optional[str] = None,
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Level and file logging default to JOBMATCH_LOG_LEVEL and
    JOBMATCH_LOG_DIR; file output is off unless a directory is given.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        if level is None:
            level = os.getenv("JOBMATCH_LOG_LEVEL", "INFO")
        if "log_dir" not in kwargs and os.getenv("JOBMATCH_LOG_DIR"):
            kwargs["log_dir"] = Path(os.environ["JOBMATCH_LOG_DIR"])
        kwargs.setdefault("enable_file", kwargs.get("log_dir") is not None)
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
