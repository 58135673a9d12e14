"""
Score derivation for Saga Machine actors.

Every derived score that is not ``custom`` is recomputed on each pass as

    floor(((base + Σmodifier) × (1 + Σpercent/100)) / (Πdivide or 1))

where ``base`` is a fixed number or the median of a few stats, and the
modifier sums come from the actor's stored modifier lists, item grants and
situational modifiers (see gather_modifiers).
"""

import math
import logging
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, Field

from .actor_state import Actor, Item, STAT_NAMES
from .config import RulesetSettings, get_settings
from .formulas import evaluate_formula, formula_variables
from .modifiers import ModifierSet, ModifierTotals
from .properties import has_property, is_attack, is_power, strength_met

logger = logging.getLogger(__name__)

PHYSICAL_STATS = ("strength", "dexterity", "speed", "endurance")

POWER_LEVELS = [
    (150, "Mundane"),
    (200, "Novice"),
    (250, "Exceptional"),
    (300, "Distinguished"),
    (350, "Renowned"),
]


class ModifierQuery(BaseModel):
    """What a set of modifiers is being gathered for: a score or a test."""

    base_score: Optional[str] = None
    stat: Optional[str] = None
    score: Optional[str] = None
    skill: Optional[str] = None
    tn: Optional[Union[int, str]] = None
    boons: int = 0
    banes: int = 0
    modifier: int = 0
    divide: int = 0
    percent: int = 0
    action_type: Optional[str] = None  # "attack", "power", "test"
    properties: List[str] = Field(default_factory=list)


def median(values: Sequence[Union[int, float]]) -> Union[int, float]:
    """Median of a list; even-length lists average the two central values."""
    if not values:
        raise ValueError("median of an empty list")
    nums = sorted(values)
    mid = len(nums) // 2
    if len(nums) % 2:
        return nums[mid]
    return (nums[mid - 1] + nums[mid]) / 2


def stat_cost(value: int, free: int = 0) -> int:
    """Experience cost of a stat or skill value (triangular), minus free ranks."""
    free_total = free * (free + 1) // 2 if free else 0
    return value * (value + 1) // 2 - free_total


def luck_cost(luck: int) -> int:
    """Experience offset of a starting Luck score."""
    return luck * 6 - 30


# ---------------------------------------------------------------------------
# Modifier gathering
# ---------------------------------------------------------------------------


def _granted_modifiers(actor: Actor, path: str) -> List[str]:
    """Evaluate item grants aimed at ``path`` into plain modifier tokens."""
    stats = {name: actor.stat(name) for name in STAT_NAMES}
    granted = []
    for item in actor.items:
        if item.type == "item" and not item.equipped:
            continue
        if item.type not in ("item", "trait", "consequence"):
            continue
        for grant in item.effects:
            if grant.target != path:
                continue
            try:
                granted.append(
                    evaluate_formula(grant.value, formula_variables(item.rank, stats))
                )
            except ValueError as e:
                logger.warning(
                    f"Skipping modifier grant {grant.value!r} on {item.name}: {e}"
                )
    return granted


def _stored(actor: Actor, path: str) -> List[str]:
    return actor.system.modifiers.get(path) + _granted_modifiers(actor, path)


def gather_modifiers(actor: Actor, query: ModifierQuery) -> List[ModifierSet]:
    """
    Collect every modifier relevant to a score or test.

    Picks the stored list for the base score, the attack list for tests
    against Defense/Willpower, the defense list for defense/willpower score
    tests, else the stat's list. Ad-hoc values from the query and
    situational modifiers (Low Str, Fatigue, Bulky, Powered, Auto) are added.
    """
    mods: List[str] = []
    if query.base_score:
        mods = _stored(actor, f"scores.{query.base_score}")
    if isinstance(query.tn, str) and query.tn.lower() in ("defense", "willpower"):
        mods = _stored(actor, "other.attack")
    if not mods and query.score in ("defense", "willpower"):
        mods = _stored(actor, "other.defense")
    if not mods and query.stat:
        mods = _stored(actor, f"stats.{query.stat}")

    # Ad-hoc values passed in by the caller
    if query.boons:
        mods.append(f"boons={query.boons}")
    if query.banes:
        mods.append(f"banes={query.banes}")
    if query.modifier:
        mods.append(f"modifier={query.modifier}")
    if query.divide:
        mods.append(f"divide={query.divide}")
    if query.percent:
        mods.append(f"percent={query.percent}")

    armor = actor.score("armor").properties
    health = actor.score("health")

    if (
        is_attack(query.action_type)
        and not is_power(query.action_type)
        and not strength_met(query.properties, actor.stat("strength"))
    ):
        mods.append("name=Low Str&banes=1")

    if query.stat in PHYSICAL_STATS and health.fatigue and health.value >= health.max:
        mods.append("name=Fatigue&banes=1")

    if (query.stat == "speed" or query.skill == "Athletics") and armor.get("Bulky"):
        mods.append("name=Bulky&banes=1")

    if query.stat == "strength" and armor.get("Powered"):
        mods.append("name=Powered&boons=2")

    if is_attack(query.action_type) and has_property(query.properties, "Auto"):
        mods.append("name=Auto&boons=1")

    return ModifierSet.parse(mods)


def total_modifiers(actor: Actor, query: ModifierQuery) -> ModifierTotals:
    return ModifierSet.total_modifiers(gather_modifiers(actor, query))


# ---------------------------------------------------------------------------
# Score formulas
# ---------------------------------------------------------------------------


def calculate_score(
    actor: Actor,
    name: str,
    stats: Union[int, float, Sequence[Union[int, float]]],
    **other_modifiers: Any,
) -> int:
    """
    Derive one score from a fixed base or the median of a few stat values.

    Args:
        actor: Actor whose stored modifiers apply
        name: Score name, used to look up stored modifiers
        stats: Fixed base or list of stat values to take the median of
        **other_modifiers: Extra ModifierQuery fields (modifier, divide, ...)
    """
    base = median(stats) if isinstance(stats, (list, tuple)) else stats
    mods = total_modifiers(actor, ModifierQuery(base_score=name, **other_modifiers))
    percent = 1 + mods.percent / 100
    return math.floor(((base + mods.modifier) * percent) / (mods.divide or 1))


def calculate_character_scores(
    actor: Actor, settings: Optional[RulesetSettings] = None
) -> None:
    """Recompute every derived score of a character in place."""
    settings = settings or get_settings()
    scores = actor.system.scores
    stat = actor.stat

    scores["armor"].properties = actor.armor_properties()
    if not scores["armor"].custom:
        scores["armor"].value = calculate_score(actor, "armor", actor.armor_value())

    if not scores["defense"].custom:
        scores["defense"].value = calculate_score(
            actor, "defense", [stat("dexterity"), stat("speed"), stat("perception")]
        )

    if not scores["willpower"].custom:
        scores["willpower"].value = calculate_score(
            actor,
            "willpower",
            [stat("intelligence"), stat("charisma"), stat("determination")],
        )

    health = scores["health"]
    if not health.custom:
        health.max = calculate_score(
            actor, "health", stat_cost(stat("strength")) + stat_cost(stat("endurance"))
        )
    health.value = actor.wound_total()
    health.fatigue = actor.fatigue()

    if not scores["move"].custom:
        fatigued = bool(health.fatigue) and health.value >= health.max
        scores["move"].value = calculate_score(
            actor,
            "move",
            [stat("speed"), stat("endurance"), stat("determination")],
            modifier=-scores["armor"].properties.get("Bulky", 0),
            divide=2 if fatigued else 1,
        )

    if not scores["encumbrance"].custom:
        scores["encumbrance"].max = calculate_score(
            actor,
            "encumbrance",
            [stat("strength"), stat("dexterity"), stat("endurance")],
            modifier=scores["armor"].properties.get("Powered", 0),
        )
    scores["encumbrance"].value = actor.encumbrance_total()

    spent = experiences_spent(actor, settings)
    experiences = actor.system.experiences
    experiences.spent = spent["total"]
    experiences.spent_stats = spent["stats"]
    experiences.spent_skills = spent["skills"]
    experiences.spent_traits = spent["traits"]
    experiences.unspent = experiences.total - experiences.spent
    experiences.level = power_level(experiences.spent, settings)


def calculate_stash_scores(actor: Actor) -> None:
    """Wealth and encumbrance totals of a stash or merchant."""
    actor.system.wealth.total = wealth_total(actor)
    actor.score("encumbrance").value = actor.encumbrance_total()


def calculate_vehicle_scores(actor: Actor) -> None:
    """Recompute a vehicle's armor, handling, defense, health and loads."""
    scores = actor.system.scores

    scores["armor"].properties = actor.armor_properties()
    if not scores["armor"].custom:
        scores["armor"].value = calculate_score(actor, "armor", actor.armor_value())

    handling = scores["handling"]
    handling.boons = handling.label.count("+")
    handling.banes = handling.label.count("-")

    size = scores["size"].value
    if not scores["defense"].custom:
        scores["defense"].tn = calculate_score(
            actor, "defense", 10 + handling.boons - (size + handling.banes)
        )

    if not scores["health"].custom:
        scores["health"].max = calculate_score(actor, "health", 15 * (2**size))
    scores["health"].value = actor.wound_total()

    scores["space"].value = loads_total(actor)


def prepare_derived_data(actor: Actor, settings: Optional[RulesetSettings] = None) -> Actor:
    """Run one derivation pass for the actor's type and return the actor."""
    if actor.type == "character":
        calculate_character_scores(actor, settings)
    elif actor.type == "stash":
        calculate_stash_scores(actor)
    elif actor.type == "vehicle":
        calculate_vehicle_scores(actor)
    return actor


# ---------------------------------------------------------------------------
# Totals and experience
# ---------------------------------------------------------------------------


def wealth_total(actor: Actor) -> int:
    items = actor.items_of_type("item")
    return sum(i.cost * i.quantity for i in items) + actor.system.wealth.money


def loads_total(actor: Actor) -> int:
    return sum(i.loads for i in actor.items_of_type("item"))


def experiences_spent(
    actor: Actor, settings: Optional[RulesetSettings] = None
) -> Dict[str, int]:
    """Experiences spent on stats, skills and traits, net of the starting budget."""
    settings = settings or get_settings()

    stats = sum(stat_cost(actor.stat(s)) for s in STAT_NAMES) - settings.level

    skills = 0
    traits = 0
    for item in actor.items:
        if item.type == "skill":
            skills += stat_cost(item.rank, item.free_ranks)
        elif item.type == "trait":
            traits += item.cost * item.rank if item.ranked else item.cost

    luck = luck_cost(actor.score("luck").max) if settings.luck_exp else 0
    total = stats + skills + traits + luck
    return {"total": total, "stats": stats, "skills": skills, "traits": traits}


def power_level(spent: int, settings: Optional[RulesetSettings] = None) -> str:
    settings = settings or get_settings()
    total_spent = spent + settings.level
    for threshold, label in POWER_LEVELS:
        if total_spent < threshold:
            return label
    return "Legendary"


def parry_bonus(actor: Actor) -> int:
    return max((w.parry for w in actor.equipped("Weapons")), default=0)


def primary_weapon(actor: Actor) -> Optional[Item]:
    """Equipped weapon whose first damage effect has the highest numeric value."""
    best: Optional[Item] = None
    best_value = 0
    for weapon in actor.equipped("Weapons"):
        damage = [e for e in weapon.action_effects if e.get("type") == "damage"]
        try:
            value = int(damage[0].get("value", 0)) if damage else 0
        except (TypeError, ValueError):
            value = 0
        if value > best_value:
            best, best_value = weapon, value
    return best
