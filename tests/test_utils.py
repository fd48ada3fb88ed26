"""Tests for configuration helpers and logging setup."""

import logging

import pytest
import structlog

from core.utils import merge_configs, resolve_env_vars, setup_logging


class TestResolveEnvVars:
    """Test ${VAR} resolution."""

    def test_nested_values(self, monkeypatch):
        """Placeholders in nested dicts and lists should be resolved."""
        monkeypatch.setenv("FHIR_BMI_TEST_URL", "https://x/fhir")
        config = {"server": {"url": "${FHIR_BMI_TEST_URL}"}, "list": ["${FHIR_BMI_TEST_URL}", 1]}

        resolved = resolve_env_vars(config)

        assert resolved["server"]["url"] == "https://x/fhir"
        assert resolved["list"] == ["https://x/fhir", 1]

    def test_default_value(self, monkeypatch):
        """The default after ':' applies when the variable is unset."""
        monkeypatch.delenv("FHIR_BMI_TEST_UNSET", raising=False)
        assert resolve_env_vars("${FHIR_BMI_TEST_UNSET:fallback}") == "fallback"
        assert resolve_env_vars("${FHIR_BMI_TEST_UNSET}") is None


class TestMergeConfigs:
    """Test deep merging."""

    def test_deep_merge(self):
        """Nested keys should be merged, overrides win."""
        base = {"server": {"url": "a", "timeout": 60}, "seed": 1}
        merged = merge_configs(base, {"server": {"url": "b"}})

        assert merged == {"server": {"url": "b", "timeout": 60}, "seed": 1}
        assert base["server"]["url"] == "a"


class TestSetupLogging:
    """Test structlog configuration."""

    @pytest.fixture(autouse=True)
    def _restore(self):
        yield
        structlog.reset_defaults()

    def test_returns_logger(self):
        """setup_logging should return a usable structlog logger."""
        logger = setup_logging(level="DEBUG", log_format="json")
        assert hasattr(logger, "info")

    def test_level_applied(self):
        """The stdlib root level should follow the given level."""
        root = logging.getLogger()
        previous_level, previous_handlers = root.level, list(root.handlers)
        root.handlers = []
        try:
            setup_logging(level="WARNING")
            assert root.level == logging.WARNING
        finally:
            root.handlers = previous_handlers
            root.setLevel(previous_level)
