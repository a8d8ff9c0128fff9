"""
Tests for logger functionality.
"""

import logging

from jobmatch.logger import StructuredLogger, get_logger, reset_logger


def quiet_logger(tmp_path, **kwargs):
    return StructuredLogger(name="test", log_dir=tmp_path, enable_console=False, **kwargs)


class TestStructuredLogger:
    """Test structured logging functionality."""

    def test_logger_creation(self, tmp_path):
        """Logger should be created with zeroed metrics."""
        logger = quiet_logger(tmp_path, level="INFO")

        assert logger.logger.name == "test"
        assert logger.metrics["lookup_hits"] == {"memory": 0, "store": 0, "remote": 0}
        assert logger.metrics["lookup_misses"] == 0

    def test_log_methods(self, tmp_path):
        """All log level methods should work."""
        logger = quiet_logger(tmp_path)

        # Should not raise exceptions
        logger.debug("Debug message")
        logger.info("Info message")
        logger.warning("Warning message")
        logger.error("Error message")
        logger.critical("Critical message")

    def test_log_with_context(self, tmp_path):
        """Context is appended to the message as JSON."""
        logger = quiet_logger(tmp_path)
        logger.info("Message with context", city="Fresno", path=tmp_path)

        log_files = list(tmp_path.glob("jobmatch_*.log"))
        assert len(log_files) == 1
        text = log_files[0].read_text(encoding="utf-8")
        assert 'Message with context | Context: {"city": "Fresno"' in text

    def test_file_disabled(self, tmp_path):
        StructuredLogger(name="test", log_dir=tmp_path, enable_file=False, enable_console=False)
        assert list(tmp_path.iterdir()) == []

    def test_level(self, tmp_path):
        logger = quiet_logger(tmp_path, level="warning")
        assert logger.logger.level == logging.WARNING


class TestMetrics:
    """Test metric tracking methods."""

    def test_provider_calls(self, tmp_path):
        """Provider success rate is derived in get_metrics."""
        logger = quiet_logger(tmp_path)
        logger.record_provider_call("rapidapi", ok=True)
        logger.record_provider_call("rapidapi", ok=True)
        logger.record_provider_call("rapidapi", ok=False)

        stats = logger.get_metrics()["provider_calls"]["rapidapi"]
        assert stats["attempts"] == 3
        assert stats["successes"] == 2
        assert stats["success_rate"] == 0.667

    def test_lookup_tiers(self, tmp_path):
        logger = quiet_logger(tmp_path)
        logger.record_lookup_hit("memory")
        logger.record_lookup_hit("memory")
        logger.record_lookup_hit("store")
        logger.record_lookup_miss()

        metrics = logger.get_metrics()
        assert metrics["lookup_hits"] == {"memory": 2, "store": 1, "remote": 0}
        assert metrics["lookup_misses"] == 1

    def test_errors_and_store_failures(self, tmp_path):
        logger = quiet_logger(tmp_path)
        logger.record_error("store_hset")
        logger.record_error("store_hset")
        logger.record_store_write_failure()

        metrics = logger.get_metrics()
        assert metrics["errors_by_type"] == {"store_hset": 2}
        assert metrics["store_write_failures"] == 1

    def test_get_metrics_returns_copy(self, tmp_path):
        logger = quiet_logger(tmp_path)
        metrics = logger.get_metrics()
        metrics["lookup_hits"]["memory"] = 99
        assert logger.metrics["lookup_hits"]["memory"] == 0

    def test_metrics_summary(self, tmp_path):
        """Summary should log without errors."""
        logger = quiet_logger(tmp_path)
        logger.record_provider_call("google", ok=False)
        logger.record_lookup_hit("remote")
        logger.record_error("provider")
        logger.log_metrics_summary()


class TestGlobalLogger:
    """Test the process-wide logger."""

    def test_singleton(self):
        reset_logger()
        try:
            assert get_logger() is get_logger()
        finally:
            reset_logger()

    def test_env_configuration(self, tmp_path, monkeypatch):
        monkeypatch.setenv("JOBMATCH_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("JOBMATCH_LOG_DIR", str(tmp_path / "logs"))
        reset_logger()
        try:
            logger = get_logger()
            assert logger.logger.level == logging.DEBUG
            assert (tmp_path / "logs").is_dir()
        finally:
            reset_logger()

    def test_no_file_by_default(self, tmp_path, monkeypatch):
        monkeypatch.delenv("JOBMATCH_LOG_DIR", raising=False)
        monkeypatch.chdir(tmp_path)
        reset_logger()
        try:
            get_logger()
            assert not (tmp_path / "logs").exists()
        finally:
            reset_logger()
