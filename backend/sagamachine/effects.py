"""
Effects: the consequences of a test.

An effect is one of four kinds (damage, consequence, defense, message),
fires on success, failure or always, and aims at the test's actor ("self")
or its target ("opponent"). Applying an effect renders an HTML fragment into
``message``; damage effects also record the final damage and pierce value
for the damage resolver.

Handlers are registered per type, so new kinds plug in with a decorator.
"""

import json
import logging
from typing import (
    TYPE_CHECKING,
    Annotated,
    Any,
    Callable,
    Dict,
    List,
    Literal,
    Optional,
    Union,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from .actor_state import Actor, STAT_NAMES
from .errors import InvalidEffectError, UnknownEffectTypeError
from .formulas import DamageFormula, parse_damage_formula
from .properties import has_property, parse_properties, property_value

if TYPE_CHECKING:
    from .resolution import Test

logger = logging.getLogger(__name__)

# Pierce sentinel for the Ignores property: bypass all armor
IGNORES_ALL_ARMOR = -1

# Application order; defense TNs must be banked before damage refers to them
EFFECT_ORDER = ["defense", "damage", "consequence", "message"]

EffectWhen = Literal["success", "failure", "always"]
EffectTarget = Literal["self", "opponent"]


# Effect registry for extensibility
EFFECT_HANDLERS: Dict[str, Callable[["BaseEffect", Optional[List[str]]], None]] = {}


def effect_handler(tag: str):
    """Decorator to register effect handlers."""

    def wrap(fn: Callable[["BaseEffect", Optional[List[str]]], None]):
        EFFECT_HANDLERS[tag] = fn
        return fn

    return wrap


def format_message(key: str, value: Any) -> str:
    """Format one line of an effect for a chat card."""
    return f"<div><strong>{key}:</strong> {value}</div>"


class BaseEffect(BaseModel):
    """Fields shared by every effect kind."""

    model_config = ConfigDict(extra="ignore")

    type: str
    when: EffectWhen = "always"
    target: EffectTarget = "self"
    properties: List[str] = Field(default_factory=list)
    message: str = ""

    _test: Any = PrivateAttr(default=None)

    @field_validator("target", mode="before")
    @classmethod
    def _normalize_target(cls, value: Any) -> Any:
        # The host calls the opponent "target"
        return "opponent" if value == "target" else value

    @field_validator("properties", mode="before")
    @classmethod
    def _split_properties(cls, value: Any) -> List[str]:
        return parse_properties(value)

    @property
    def test(self) -> Optional["Test"]:
        return self._test

    def bind(self, test: Optional["Test"]) -> "BaseEffect":
        """Attach the originating test."""
        self._test = test
        return self

    def right_time(self, when: str) -> bool:
        """Whether the effect fires for an outcome of ``when``."""
        return self.when == "always" or self.when == when

    def target_actor(self) -> Optional[Actor]:
        """The actor this effect lands on, if the test knows it."""
        if self._test is None:
            return None
        if self.target == "self":
            return self._test.actor
        return self._test.target

    def reset(self) -> None:
        """Drop whatever an earlier application rendered."""
        self.message = ""

    def apply(self, when: str = "always", properties: Optional[List[str]] = None) -> "BaseEffect":
        """
        Apply this effect if it is the right time to do so.

        Args:
            when: Outcome of the test - success, failure or always
            properties: Attack properties of the originating action; defaults
                to the effect's own properties
        """
        if not self.right_time(when):
            self.reset()
            return self

        handler = EFFECT_HANDLERS.get(self.type)
        if handler is None:
            raise UnknownEffectTypeError(f"Unknown effect type: {self.type}")

        handler(self, properties)
        logger.debug(f"Applied {self.type} effect ({when}): {self.message}")
        return self

    def to_json(self) -> Dict[str, Any]:
        """JSON-safe projection: primitive fields plus the property list."""
        return self.model_dump(mode="json")

    @classmethod
    def from_json(cls, data: Dict[str, Any], test: Optional["Test"] = None) -> "BaseEffect":
        return parse_effect(data, test)


class DamageEffect(BaseEffect):
    """
    Damage dealt on a hit.

    ``value`` is a damage formula ("str+2", 6). The test's margin is added
    unless ``margin`` overrides it.
    """

    type: Literal["damage"] = "damage"
    value: Union[int, str] = 0
    damage_type: str = ""
    margin: Optional[int] = None
    damage: Optional[int] = None  # set on application
    pierce: int = 0  # set on application

    _formula: DamageFormula = PrivateAttr(default_factory=DamageFormula)

    @model_validator(mode="after")
    def _parse_formula(self) -> "DamageEffect":
        self._formula = parse_damage_formula(self.value)
        return self

    def base_damage(self) -> int:
        """Damage before margin: stat references from the test's actor plus constants."""
        actor = self._test.actor if self._test is not None else None
        stats = {name: actor.stat(name) for name in STAT_NAMES} if actor else {}
        return self._formula.evaluate(stats)

    def reset(self) -> None:
        super().reset()
        self.damage = None
        self.pierce = 0


class ConsequenceEffect(BaseEffect):
    """A consequence (Stunned, Prone, Fear (spiders)...) inflicted by the test."""

    type: Literal["consequence"] = "consequence"
    name: Optional[str] = None
    subject: Optional[str] = None

    @property
    def full_name(self) -> str:
        clean_name = self.name or "Unknown"
        return f"{clean_name} ({self.subject})" if self.subject else clean_name


class DefenseEffect(BaseEffect):
    """Banks new Defense and Willpower TNs from a defense roll."""

    type: Literal["defense"] = "defense"


class MessageEffect(BaseEffect):
    """Narrative key/value text."""

    type: Literal["message"] = "message"
    key: Optional[str] = None
    value: Any = ""


Effect = Annotated[
    Union[DamageEffect, ConsequenceEffect, DefenseEffect, MessageEffect],
    Field(discriminator="type"),
]

_EFFECT_ADAPTER = TypeAdapter(Effect)


def parse_effect(data: Union[BaseEffect, Dict[str, Any]], test: Optional["Test"] = None) -> BaseEffect:
    """
    Build one effect from its JSON form and bind it to a test.

    Raises:
        UnknownEffectTypeError: If the type is not one of the four kinds.
        InvalidEffectError: If the fields do not validate.
    """
    if isinstance(data, BaseEffect):
        effect = data
    else:
        if not isinstance(data, dict):
            raise UnknownEffectTypeError(f"Effect is not an object: {data!r}")
        effect_type = data.get("type")
        if effect_type not in EFFECT_ORDER:
            raise UnknownEffectTypeError(f"Unknown type {effect_type}")
        try:
            effect = _EFFECT_ADAPTER.validate_python(data)
        except ValidationError as e:
            raise InvalidEffectError(f"Invalid {effect_type} effect: {e}") from e

    if test is not None:
        effect.bind(test)
    return effect


def parse_effects(raw: Union[str, Dict[str, Any], List[Any], None], test: Optional["Test"] = None) -> List[BaseEffect]:
    """
    Parse a batch of effects (JSON string, single object or list).

    A single bad effect rejects the whole batch.
    """
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        raw = json.loads(raw)
    if not isinstance(raw, list):
        raw = [raw]
    return [parse_effect(e, test) for e in raw]


def sort_effects(effects: List[BaseEffect]) -> List[BaseEffect]:
    """Stable sort into defense, damage, consequence, message order."""
    return sorted(effects, key=lambda e: EFFECT_ORDER.index(e.type))


def get_registered_effects() -> List[str]:
    """Get list of all registered effect types."""
    return list(EFFECT_HANDLERS.keys())


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


@effect_handler("damage")
def apply_damage(effect: DamageEffect, properties: Optional[List[str]]) -> None:
    """Compute final damage and pierce, render the damage line."""
    test = effect.test
    base_damage = effect.base_damage()
    if effect.margin:
        margin = effect.margin
    else:
        margin = test.margin if test is not None and test.margin else 0

    if properties is not None:
        effect.properties = parse_properties(properties)

    # Feeble: margin can't add more than the base damage
    if has_property(effect.properties, "Feeble"):
        margin = min(base_damage, margin)

    if has_property(effect.properties, "Ignores"):
        pierce = IGNORES_ALL_ARMOR
    else:
        pierce = property_value(effect.properties, "Pierce")

    damage = max(base_damage + margin, 0)

    effect.damage = damage
    effect.pierce = pierce
    effect.message = format_message(
        "Damage",
        f'<span class="damage" data-pierce="{pierce}">{damage}</span> '
        f'<span class="damage-type">{effect.damage_type}</span>',
    )


@effect_handler("consequence")
def apply_consequence(effect: ConsequenceEffect, properties: Optional[List[str]]) -> None:
    """Render the consequence, linking to its world definition when one exists."""
    full_name = effect.full_name
    link = full_name

    context = getattr(effect.test, "context", None)
    template = context.find_consequence_template(full_name) if context else None
    if template is not None:
        link = (
            f'<a class="content-link" draggable="true" data-id="{template.id}" '
            f'data-type="Item" data-tooltip="Item">{full_name}</a>'
        )

    effect.message = format_message("Consequence", link)


@effect_handler("defense")
def apply_defense(effect: DefenseEffect, properties: Optional[List[str]]) -> None:
    """Bank new Defense and Willpower TNs: score value + the roll's randomizer."""
    test = effect.test
    if test is None:
        return

    target = effect.target_actor()
    if target is None:
        logger.debug("Defense effect has no target actor; skipping")
        return

    randomizer = test.randomizer or 0
    defense = target.score("defense")
    willpower = target.score("willpower")
    defense.tn = defense.value + randomizer
    willpower.tn = willpower.value + randomizer

    effect.message = format_message("Defense", f"TN {defense.tn}") + format_message(
        "Willpower", f"TN {willpower.tn}"
    )


@effect_handler("message")
def apply_message(effect: MessageEffect, properties: Optional[List[str]]) -> None:
    effect.message = format_message(effect.key or "Message", effect.value)
