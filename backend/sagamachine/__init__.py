"""Saga Machine test resolution and effect-application engine."""

from .actor_state import Actor, Item
from .config import RulesetSettings, configure_logging, get_settings
from .context import GameContext, World
from .damage import DamageReport, DamageResolver, Hit
from .dice import DiceRoller
from .effects import parse_effect, parse_effects
from .errors import (
    InsufficientLuckError,
    InvalidEffectError,
    SagaMachineError,
    TestStateError,
    TestValidationError,
    UnknownEffectTypeError,
)
from .modifiers import ModifierSet
from .resolution import Test, TestSpec
from .scores import prepare_derived_data
from .wounds import generate_wound

__version__ = "0.1.0"

__all__ = [
    "Actor",
    "DamageReport",
    "DamageResolver",
    "DiceRoller",
    "GameContext",
    "Hit",
    "InsufficientLuckError",
    "InvalidEffectError",
    "Item",
    "ModifierSet",
    "RulesetSettings",
    "SagaMachineError",
    "Test",
    "TestSpec",
    "TestStateError",
    "TestValidationError",
    "UnknownEffectTypeError",
    "World",
    "configure_logging",
    "generate_wound",
    "get_settings",
    "parse_effect",
    "parse_effects",
    "prepare_derived_data",
]
