"""
Test resolution: the Saga Machine dice state machine.

A Test is built from a TestSpec, validated against its actor, evaluated
once (roll, pairs, total, TN, margin) and then applies its effects:

    test = Test(TestSpec(actor=hero.id, stat="dexterity", skill="Melee",
                         tn="Defense", effects=[...]), world)
    test.evaluate()
    test.apply_effects()

Push-your-luck re-evaluates the same test with an extra boon.
"""

import re
import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .actor_state import Actor
from .config import RulesetSettings, get_settings
from .context import GameContext
from .damage import DamageReport, DamageResolver, Hit
from .dice import DiceRoller, RollResult
from .effects import (
    BaseEffect,
    ConsequenceEffect,
    DamageEffect,
    MessageEffect,
    parse_effects,
    sort_effects,
)
from .errors import InsufficientLuckError, TestStateError, TestValidationError
from .properties import has_property, parse_properties, property_value

logger = logging.getLogger(__name__)

# Symbolic TNs resolved from the target's scores
SYMBOLIC_TNS = ("defense", "willpower")

_SPECIALIZATION_RE = re.compile(r"\(([^)]+)\)")


def _lenient_int(value: Any) -> int:
    """Numbers and numeric strings pass through; anything else counts as 0."""
    if value is None or value == "":
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


class TestSpec(BaseModel):
    """Everything needed to construct a test."""

    __test__ = False

    model_config = ConfigDict(extra="ignore", arbitrary_types_allowed=True)

    actor: Any = None  # Actor, actor id, or {"uuid": id}
    stat: Optional[str] = None  # stat or score name
    skill: Optional[str] = None
    tn: Optional[Union[int, str]] = None
    boons: int = 0
    banes: int = 0
    modifier: int = 0
    stress_boons: int = 0
    tags: List[str] = Field(default_factory=list)
    effects: Any = None  # JSON string, effect dict(s) or parsed effects
    properties: List[str] = Field(default_factory=list)
    action_type: Optional[str] = None
    label: Optional[str] = None
    use_luck: bool = False

    @field_validator("boons", "banes", "modifier", "stress_boons", mode="before")
    @classmethod
    def _coerce_numbers(cls, value: Any) -> int:
        return _lenient_int(value)

    @field_validator("stat", "skill", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        return value or None

    @field_validator("tn", mode="before")
    @classmethod
    def _coerce_tn(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        if isinstance(value, str):
            stripped = value.strip()
            if stripped.lstrip("-").isdigit():
                return int(stripped)
            if stripped.lower() not in SYMBOLIC_TNS:
                raise ValueError(f"TN must be a number, Defense or Willpower: {value!r}")
            return stripped
        return value

    @field_validator("properties", mode="before")
    @classmethod
    def _split_properties(cls, value: Any) -> List[str]:
        return parse_properties(value)


def capitalize(word: str) -> str:
    return word[:1].upper() + word[1:]


class Test:
    """
    A single Saga Machine test.

    States run constructed -> validated -> evaluated -> effects-applied and
    never go backwards. Derived fields (total, success, margin...) are None
    until ``evaluate()`` has run.
    """

    __test__ = False

    def __init__(
        self,
        spec: Union[TestSpec, Dict[str, Any]],
        context: GameContext,
        roller: Optional[DiceRoller] = None,
        settings: Optional[RulesetSettings] = None,
    ):
        if not isinstance(spec, TestSpec):
            try:
                spec = TestSpec.model_validate(spec)
            except ValidationError as e:
                raise TestValidationError(f"Invalid test data: {e}") from e

        self.spec = spec
        self.context = context
        self.roller = roller or DiceRoller()
        self.settings = settings or get_settings()

        self.stat = spec.stat
        self.skill = spec.skill
        self.tn: Optional[Union[int, str]] = spec.tn
        self.boons = spec.boons
        self.banes = spec.banes
        self.modifier = spec.modifier
        self.stress_boons = spec.stress_boons
        self.tags = list(spec.tags)
        self.properties = list(spec.properties)
        self.action_type = spec.action_type
        self.use_luck = spec.use_luck
        self._label = spec.label

        self.actor: Optional[Actor] = None
        self.target: Optional[Actor] = None
        self.target_score: Optional[str] = None
        self.effects: List[BaseEffect] = []

        self.results: Optional[RollResult] = None
        self.pairs: Optional[int] = None
        self.use_pair = False
        self.total: Optional[int] = None
        self.randomizer: Optional[int] = None
        self.stat_value = 0
        self.skill_value = 0
        self.success: Optional[bool] = None
        self.critical: Optional[bool] = None
        self.margin: Optional[int] = None
        self.stressed = 0
        self.panic = False

        self.evaluated = False
        self.effects_evaluated = False
        self.damage_resolved = False
        self.damage_reports: List[DamageReport] = []
        self._applied_properties: Optional[List[str]] = None

        self.validate()

    @property
    def state(self) -> str:
        if self.effects_evaluated:
            return "effects-applied"
        if self.evaluated:
            return "evaluated"
        return "validated"

    @property
    def label(self) -> str:
        """Short name of the test, e.g. "Dexterity-Melee-Defense"."""
        if self._label:
            return self._label
        parts = [capitalize(self.stat) if self.stat else None, self.skill]
        tn = self.target_score or self.tn
        if tn is not None:
            parts.append(capitalize(str(tn)))
        self._label = "-".join(p for p in parts if p)
        return self._label

    def validate(self) -> None:
        """
        Resolve the actor, check the stat and parse the effects.

        Raises:
            TestValidationError: If the actor can't be resolved or lacks the stat.
            UnknownEffectTypeError: If any effect has an unknown type.
            InvalidEffectError: If an effect's fields do not validate.
        """
        actor = self.context.resolve_actor(self.spec.actor)
        if not isinstance(actor, Actor) or (
            self.stat and not actor.has_stat_or_score(self.stat)
        ):
            raise TestValidationError(
                f"Test missing required data: actor={self.spec.actor!r}, stat={self.stat}"
            )
        self.actor = actor
        self.effects = parse_effects(self.spec.effects, self)

    # ------------------------------------------------------------------
    # Evaluation steps
    # ------------------------------------------------------------------

    def roll_syntax(self) -> str:
        """Dice formula after boons and banes cancel out."""
        total = self.boons - self.banes
        if total == 0:
            return "1d10"
        if total > 0:
            return f"{total + 1}d10kh1"
        return f"{-total + 1}d10kl1"

    def make_pairs(self) -> Tuple[Optional[int], bool]:
        """
        Look for pairs among all rolled dice when boons outnumber banes.

        If twice the highest pair beats the kept die, the pair becomes the
        roll total and only the two paired dice stay active.

        Returns:
            Tuple of (highest pair value or None, whether the pair is used)
        """
        if self.banes >= self.boons:
            return None, False

        seen = set()
        highest_pair = 0
        for die in self.results.dice:
            if die.result in seen and die.result > highest_pair:
                highest_pair = die.result
            seen.add(die.result)

        use_pair = highest_pair * 2 > self.results.total
        if use_pair:
            self.results.total = highest_pair * 2
            active = 0
            for die in self.results.dice:
                if die.result == highest_pair and active < 2:
                    die.discarded = False
                    active += 1
                else:
                    die.discarded = True

        return highest_pair or None, use_pair

    def lookup_skill(self) -> int:
        """Rank of the test's skill; "Name (Specialization)" matches both parts."""
        match = _SPECIALIZATION_RE.search(self.skill)
        skills = self.actor.items_of_type("skill")

        if match:
            specialization = match.group(1)
            name = self.skill[: match.start()].strip()
            matching = [
                s for s in skills if s.name == name and s.specialization == specialization
            ]
        else:
            matching = [s for s in skills if s.name == self.skill]

        if not matching:
            matching = [s for s in skills if s.name == self.skill or s.full_name == self.skill]

        return int(matching[0].rank) if matching else 0

    def calc_total(self) -> Tuple[int, int, int, int]:
        """
        Add up the test.

        Returns:
            Tuple of (total, randomizer, stat value, skill value)
        """
        stat = self.actor.stat_or_score(self.stat) if self.stat else 0

        relevant_skill = bool(self.skill)
        skill = self.lookup_skill() if relevant_skill and self.skill != "Unskilled" else 0

        # Unskilled tests halve the stat
        if relevant_skill and not skill:
            stat = stat // 2

        if self.pairs and self.pairs * 2 > self.results.total:
            randomizer = self.pairs * 2
        else:
            randomizer = self.results.total

        total = randomizer + stat + skill + self.modifier
        return total, randomizer, stat, skill

    def check_stress(self) -> Tuple[int, bool]:
        """
        With the Stress rule on, any stress die at or under the actor's
        Stressed total means Panic.

        Returns:
            Tuple of (stressed total, panic)
        """
        if not self.settings.stress:
            return 0, False

        stressed = self.actor.stress() or 0
        stress_dice = self.results.dice[-self.stress_boons :] if self.stress_boons else []
        panic = any(d.result <= stressed for d in stress_dice)
        return stressed, panic

    def lookup_tn(self) -> Tuple[Optional[int], Optional[Actor], Optional[str]]:
        """
        Resolve a symbolic TN against the target's Defense or Willpower.

        A target known from an earlier evaluation is kept. Without a target,
        or when the target lacks the score, the TN is None and the test
        becomes a plain value roll.

        Returns:
            Tuple of (TN, target actor, target score name)
        """
        symbolic = self.target_score
        if symbolic is None and isinstance(self.tn, str):
            symbolic = self.tn.lower()
        if symbolic is None:
            return self.tn, None, None

        target = self.target or self.context.current_target()
        if target is None:
            return None, None, symbolic

        score = target.system.scores.get(symbolic)
        if score is None:
            return None, target, symbolic
        tn = score.tn if score.tn is not None else score.value
        return tn, target, symbolic

    def double_ones(self) -> bool:
        """Whether enough 1s came up to fumble a bane-heavy roll."""
        ones = sum(1 for d in self.results.dice if d.result == 1)
        return ones >= self.settings.double_ones_threshold

    def calc_margin(self) -> Tuple[Optional[bool], Optional[bool], Optional[int]]:
        """
        Returns:
            Tuple of (success, critical, margin); all None without a TN
        """
        if not self.tn:
            return None, None, None

        margin = abs(self.total - self.tn)
        success = self.total >= self.tn
        critical = margin >= self.tn or self.total < self.tn / 2

        # Fumble: double 1s on a bane-heavy roll
        if self.banes > self.boons and self.double_ones():
            success = False
            margin = 0
            critical = True

        return success, critical, margin

    def evaluate(self) -> "Test":
        """Roll and work out the outcome."""
        self.results = self.roller.roll(self.roll_syntax())

        self.pairs, self.use_pair = self.make_pairs()
        self.total, self.randomizer, self.stat_value, self.skill_value = self.calc_total()
        self.stressed, self.panic = self.check_stress()

        self.tn, self.target, self.target_score = self.lookup_tn()
        self.success, self.critical, self.margin = self.calc_margin()

        self.evaluated = True
        logger.debug(
            f"{self.label}: {self.results.values} -> total {self.total} vs TN {self.tn} "
            f"(success={self.success}, critical={self.critical}, margin={self.margin})"
        )
        return self

    # ------------------------------------------------------------------
    # Effects
    # ------------------------------------------------------------------

    def _require_evaluated(self, operation: str) -> None:
        if not self.evaluated:
            raise TestStateError(f"Cannot {operation} before the test is evaluated")

    def basic_attack_damage(self) -> Optional[DamageEffect]:
        """The test's first damage effect, if any."""
        for effect in self.effects:
            if isinstance(effect, DamageEffect):
                return effect
        return None

    def _synthesize_effects(self, properties: List[str]) -> None:
        """Extra hits and ammo for Auto, Stunned for Stun."""
        if has_property(properties, "Auto"):
            base_attack = self.basic_attack_damage()
            value = base_attack.value if base_attack else 0
            damage_type = base_attack.damage_type if base_attack else "sm"

            m_count = (self.margin or 0) - 5
            while m_count > 0:
                self.effects.append(
                    DamageEffect(
                        value=value,
                        damage_type=damage_type,
                        margin=m_count,
                        when="success",
                        target="opponent",
                        properties=properties,
                    ).bind(self)
                )
                m_count -= 5

            shots = property_value(properties, "Auto")
            self.effects.append(
                MessageEffect(
                    key="Ammo", value=f"Automatic fire consumes {shots} shots."
                ).bind(self)
            )

        if has_property(properties, "Stun"):
            self.effects.append(
                ConsequenceEffect(
                    name="Stunned", when="success", target="opponent"
                ).bind(self)
            )

    def apply_effects(
        self,
        properties: Union[str, List[str], None] = None,
        resolve_damage: bool = False,
        resolver: Optional[DamageResolver] = None,
    ) -> "Test":
        """
        Apply the test's effects for its outcome.

        The first call also adds the Auto and Stun effects and sorts
        everything into defense, damage, consequence, message order; later
        calls only re-apply (re-render) the same effects. Damage is resolved
        against the target at most once per test.

        Args:
            properties: Attack properties of the originating action; default
                to the test's own properties
            resolve_damage: Apply the resulting hits to the target right away
            resolver: Damage resolver to use with ``resolve_damage``
        """
        self._require_evaluated("apply effects")

        if properties is not None:
            props = parse_properties(properties)
        elif self.properties:
            props = self.properties
        else:
            props = None
        self._applied_properties = props

        if not self.effects_evaluated:
            self._synthesize_effects(props or [])
            self.effects = sort_effects(self.effects)
            self.effects_evaluated = True

        if self.success:
            when = "success"
        elif self.tn:
            when = "failure"
        else:
            when = "always"

        for effect in self.effects:
            effect.apply(when, props)

        if resolve_damage and self.target is not None and not self.damage_resolved:
            resolver = resolver or DamageResolver(self.context, settings=self.settings)
            self.damage_reports = resolver.apply_hits(self.target, self.hits())
            self.damage_resolved = True

        return self

    def hits(self) -> List[Hit]:
        """
        Damage lines of the applied effects; only the first carries the
        test's critical flag.
        """
        self._require_evaluated("list hits")
        critical = bool(self.critical)
        hits = []
        for effect in self.effects:
            if isinstance(effect, DamageEffect) and effect.damage is not None:
                hits.append(
                    Hit(
                        damage=effect.damage,
                        damage_type=effect.damage_type,
                        critical=critical,
                        pierce=effect.pierce,
                    )
                )
                critical = False
        return hits

    def push_luck(self) -> "Test":
        """
        Spend a point of Luck: add a boon (and a stress boon with the Stress
        rule) and re-roll.

        Raises:
            TestStateError: If the test hasn't been evaluated yet.
            InsufficientLuckError: If the actor has no Luck left.
        """
        self._require_evaluated("push your luck")

        luck = self.actor.score("luck")
        if luck.value <= 0:
            raise InsufficientLuckError(
                f"{self.actor.name} doesn't have enough {self.settings.luck_label}."
            )

        self.boons += 1
        if self.settings.stress:
            self.stress_boons += 1
        self.use_luck = True
        self.evaluate()

        luck.value -= 1
        logger.info(
            f"{self.actor.name} pushed their {self.settings.luck_label}: "
            f"total {self.total} ({luck.value} left)"
        )

        if self.effects_evaluated:
            self.apply_effects(self._applied_properties)
        return self

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    _SCALAR_FIELDS = (
        "stat",
        "skill",
        "tn",
        "boons",
        "banes",
        "modifier",
        "stress_boons",
        "action_type",
        "use_luck",
        "target_score",
        "pairs",
        "use_pair",
        "total",
        "randomizer",
        "stat_value",
        "skill_value",
        "success",
        "critical",
        "margin",
        "stressed",
        "panic",
        "evaluated",
        "effects_evaluated",
        "damage_resolved",
    )

    def to_json(self) -> Dict[str, Any]:
        """JSON-safe form of the test, e.g. for embedding in a chat card."""
        data = {key: getattr(self, key) for key in self._SCALAR_FIELDS}
        data["label"] = self.label
        data["tags"] = list(self.tags)
        data["properties"] = list(self.properties)
        data["actor"] = {"uuid": self.actor.id}
        data["target"] = {"uuid": self.target.id} if self.target else None
        data["results"] = self.results.model_dump() if self.results else None
        data["effects"] = [e.to_json() for e in self.effects]
        return data

    @classmethod
    def from_json(
        cls,
        data: Dict[str, Any],
        context: GameContext,
        roller: Optional[DiceRoller] = None,
        settings: Optional[RulesetSettings] = None,
    ) -> "Test":
        """Rebuild a test, evaluated state included, from ``to_json`` output."""
        spec = TestSpec(
            actor=data.get("actor"),
            stat=data.get("stat"),
            skill=data.get("skill"),
            tn=data.get("target_score") or data.get("tn"),
            boons=data.get("boons"),
            banes=data.get("banes"),
            modifier=data.get("modifier"),
            stress_boons=data.get("stress_boons"),
            tags=data.get("tags") or [],
            effects=data.get("effects") or None,
            properties=data.get("properties") or [],
            action_type=data.get("action_type"),
            label=data.get("label"),
            use_luck=bool(data.get("use_luck")),
        )
        test = cls(spec, context, roller=roller, settings=settings)

        for key in cls._SCALAR_FIELDS:
            if key in data:
                setattr(test, key, data[key])
        if data.get("target"):
            test.target = context.resolve_actor(data["target"])
        if data.get("results"):
            test.results = RollResult.model_validate(data["results"])
        return test
