"""
Ruleset configuration for the Saga Machine core.

Settings are read from environment variables so a host adapter can switch
optional rules (Stress, Luck experience costs) without code changes:

    SAGA_STRESS=true
    SAGA_LUCK_LABEL=Fortune
    SAGA_LEVEL=120
    SAGA_LUCK_EXP=false
    SAGA_DOUBLE_ONES=2
    SAGA_LOG_LEVEL=INFO
"""

import os
import logging
from typing import Optional

from pydantic import BaseModel, Field


_TRUTHY = ("1", "true", "yes", "on")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


class RulesetSettings(BaseModel):
    """World-level switches for optional Saga Machine rules."""

    stress: bool = False  # Stress dice and Panic checks
    luck_label: str = "Luck"
    level: int = 120  # Experience budget of starting stats
    luck_exp: bool = False  # Luck costs experience (Shadows Over Sol)
    double_ones_threshold: int = Field(default=2, ge=1)  # 1s needed to fumble
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "RulesetSettings":
        """Build settings from SAGA_* environment variables."""
        return cls(
            stress=_env_bool("SAGA_STRESS", False),
            luck_label=os.getenv("SAGA_LUCK_LABEL", "Luck"),
            level=int(os.getenv("SAGA_LEVEL", "120")),
            luck_exp=_env_bool("SAGA_LUCK_EXP", False),
            double_ones_threshold=int(os.getenv("SAGA_DOUBLE_ONES", "2")),
            log_level=os.getenv("SAGA_LOG_LEVEL", "INFO").upper(),
        )


# Global settings instance
_settings_instance: Optional[RulesetSettings] = None


def get_settings() -> RulesetSettings:
    """Get the global ruleset settings, loading them from the environment once."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = RulesetSettings.from_env()
    return _settings_instance


def reset_settings() -> None:
    """Forget the cached settings so the next call re-reads the environment."""
    global _settings_instance
    _settings_instance = None


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure root logging for an application entry point.

    Library modules only create named loggers; call this once from the host
    adapter or a script, never from inside the package.
    """
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
