"""
Tests for ruleset settings.
"""

import sys
import os
import pytest
from pydantic import ValidationError

# Add the backend directory to Python path
sys.path.insert(
    0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "backend"))
)

from sagamachine.config import RulesetSettings, get_settings, reset_settings


@pytest.fixture(autouse=True)
def fresh_settings():
    reset_settings()
    yield
    reset_settings()


class TestSettings:
    """Test defaults and environment overrides."""

    def test_defaults(self, monkeypatch):
        """Test the standard ruleset."""
        for name in ("SAGA_STRESS", "SAGA_LEVEL", "SAGA_DOUBLE_ONES", "SAGA_LUCK_LABEL", "SAGA_LUCK_EXP"):
            monkeypatch.delenv(name, raising=False)
        settings = get_settings()
        assert settings.stress is False
        assert settings.luck_label == "Luck"
        assert settings.level == 120
        assert settings.double_ones_threshold == 2

    def test_environment(self, monkeypatch):
        """Test SAGA_* variables switch optional rules."""
        monkeypatch.setenv("SAGA_STRESS", "true")
        monkeypatch.setenv("SAGA_LUCK_LABEL", "Fortune")
        monkeypatch.setenv("SAGA_DOUBLE_ONES", "3")
        monkeypatch.setenv("SAGA_LOG_LEVEL", "debug")
        settings = RulesetSettings.from_env()
        assert settings.stress is True
        assert settings.luck_label == "Fortune"
        assert settings.double_ones_threshold == 3
        assert settings.log_level == "DEBUG"

    def test_cached_until_reset(self, monkeypatch):
        """Test the global settings are read once."""
        first = get_settings()
        monkeypatch.setenv("SAGA_LEVEL", "150")
        assert get_settings() is first
        reset_settings()
        assert get_settings().level == 150

    def test_threshold_must_be_positive(self):
        """Test a zero fumble threshold is rejected."""
        with pytest.raises(ValidationError):
            RulesetSettings(double_ones_threshold=0)
