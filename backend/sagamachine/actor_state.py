"""
Core data structures for Saga Machine actors and their items.

These pydantic models mirror the document shape the host exposes
(``system.stats.<name>.value``, ``system.scores.<name>.{value,max,custom,tn}``
and a typed item collection). Derived values are written back onto the
models by the score calculator; nothing here is persisted by the core.
"""

import uuid
from typing import Any, Dict, List, Literal, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .properties import parse_properties, property_value as _property_value


STAT_NAMES = [
    "strength",
    "dexterity",
    "speed",
    "endurance",
    "intelligence",
    "perception",
    "charisma",
    "determination",
]

# Abbreviations used in damage formulas and item modifier formulas
STAT_ABBREVIATIONS = {
    "str": "strength",
    "dex": "dexterity",
    "spd": "speed",
    "end": "endurance",
    "int": "intelligence",
    "per": "perception",
    "chr": "charisma",
    "det": "determination",
}

CHARACTER_SCORES = ["armor", "defense", "willpower", "health", "move", "encumbrance", "luck"]
VEHICLE_SCORES = ["armor", "defense", "health", "handling", "size", "space", "crew"]
STASH_SCORES = ["encumbrance"]

ItemType = Literal["skill", "trait", "consequence", "item", "action", "origin", "path", "ambition"]
ActorType = Literal["character", "stash", "vehicle"]


def _new_id() -> str:
    return uuid.uuid4().hex[:16]


class Stat(BaseModel):
    """One of the eight primary stats."""

    value: int = 1


class Score(BaseModel):
    """
    A derived score (Health, Defense, Willpower, Move, Encumbrance, Armor...).

    ``custom=True`` freezes the score: the calculator leaves ``value``/``max``
    alone. ``tn`` is the banked target number set by a Defense roll.
    """

    value: int = 0
    max: int = 0
    custom: bool = False
    tn: Optional[int] = None
    fatigue: int = 0  # health only
    properties: Dict[str, Any] = Field(default_factory=dict)  # armor only
    label: str = ""  # vehicle handling, e.g. "++" or "-"
    boons: int = 0
    banes: int = 0


class ModifierGrant(BaseModel):
    """
    A modifier an item grants its owner while held.

    ``target`` names the stored modifier list ("scores.defense",
    "stats.strength", "other.attack") and ``value`` is a modifier token whose
    numbers may use @rank and @str..@det, e.g. "name=Tough&modifier=@rank*2".
    """

    target: str
    value: str


class Item(BaseModel):
    """Skill, trait, consequence, equipment or action owned by an actor or the world."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=_new_id)
    name: str
    type: ItemType
    rank: int = 0
    specialized: bool = False
    specialization: str = ""
    description: str = ""
    ranked: bool = False
    free_ranks: int = 0
    cost: int = 0
    quantity: int = 1
    group: str = ""  # "Armors", "Weapons", ...
    properties: List[str] = Field(default_factory=list)
    equipped: bool = False
    carried: bool = True
    load: bool = False
    parent: Optional[str] = None  # containing item id
    effects: List[ModifierGrant] = Field(default_factory=list)
    action_effects: List[Dict[str, Any]] = Field(default_factory=list)

    @field_validator("properties", mode="before")
    @classmethod
    def _split_properties(cls, value: Any) -> List[str]:
        return parse_properties(value)

    @property
    def full_name(self) -> str:
        name = self.name + (f" ({self.specialization})" if self.specialized else "")
        if self.type == "trait" and self.ranked:
            name += f" {self.rank}"
        return name

    def property_value(self, name: str) -> int:
        return _property_value(self.properties, name)

    @property
    def armor(self) -> int:
        return self.property_value("Armor")

    @property
    def bulky(self) -> int:
        return self.property_value("Bulky")

    @property
    def powered(self) -> int:
        return self.property_value("Powered")

    @property
    def parry(self) -> int:
        return self.property_value("Parry")

    @property
    def unit_encumbrance(self) -> int:
        """Encumbrance of a single unit of this item."""
        if self.load:
            return 100
        if "Neg" in self.properties:
            return 0
        for prop in self.properties:
            if prop.startswith("Implant ") or prop.startswith("Software "):
                return 0
            if prop.startswith("Big "):
                return self.property_value("Big")
        return 1

    @property
    def encumbrance(self) -> int:
        """Encumbrance the stack adds to its carrier."""
        if not self.carried or self.parent:
            return 0
        if self.equipped and "Worn" in self.properties:
            return 0
        return self.unit_encumbrance * self.quantity

    @property
    def loads(self) -> int:
        """Whole loads (100 encumbrance each) in the stack."""
        return (self.unit_encumbrance * self.quantity) // 100


class StoredModifiers(BaseModel):
    """Raw modifier token lists kept on the actor, keyed by score/stat/other."""

    scores: Dict[str, List[str]] = Field(default_factory=dict)
    stats: Dict[str, List[str]] = Field(default_factory=dict)
    other: Dict[str, List[str]] = Field(default_factory=dict)  # attack, defense

    def get(self, path: str) -> List[str]:
        group, _, key = path.partition(".")
        return list(getattr(self, group, {}).get(key, []))


class Wealth(BaseModel):
    money: int = 0
    total: int = 0


class Experiences(BaseModel):
    total: int = 0
    spent: int = 0
    spent_stats: int = 0
    spent_skills: int = 0
    spent_traits: int = 0
    unspent: int = 0
    level: str = "Mundane"


class ActorSystem(BaseModel):
    stats: Dict[str, Stat] = Field(default_factory=dict)
    scores: Dict[str, Score] = Field(default_factory=dict)
    modifiers: StoredModifiers = Field(default_factory=StoredModifiers)
    wealth: Wealth = Field(default_factory=Wealth)
    experiences: Experiences = Field(default_factory=Experiences)


class Actor(BaseModel):
    """A character, vehicle or stash together with its embedded items."""

    id: str = Field(default_factory=_new_id)
    name: str
    type: ActorType = "character"
    system: ActorSystem = Field(default_factory=ActorSystem)
    items: List[Item] = Field(default_factory=list)
    statuses: Set[str] = Field(default_factory=set)

    @model_validator(mode="after")
    def _fill_defaults(self) -> "Actor":
        """Give each actor type the stats and scores its formulas read."""
        if self.type == "character":
            for stat in STAT_NAMES:
                self.system.stats.setdefault(stat, Stat())
            score_names = CHARACTER_SCORES
        elif self.type == "vehicle":
            score_names = VEHICLE_SCORES
        else:
            score_names = STASH_SCORES
        for score in score_names:
            self.system.scores.setdefault(score, Score())
        return self

    # ----- item queries -----

    def items_of_type(self, item_type: str) -> List[Item]:
        return [i for i in self.items if i.type == item_type]

    def get_item(self, item_id: str) -> Optional[Item]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def add_item(self, item: Item, **update: Any) -> Item:
        """Embed a copy of ``item`` (fresh id) and return the embedded copy."""
        copy = item.model_copy(deep=True, update={"id": _new_id(), **update})
        self.items.append(copy)
        return copy

    def remove_items(self, item_ids: List[str]) -> None:
        doomed = set(item_ids)
        self.items = [i for i in self.items if i.id not in doomed]

    def consequences(self, name: str) -> List[Item]:
        return [i for i in self.items if i.type == "consequence" and i.name == name]

    # ----- stats and scores -----

    def stat(self, name: str) -> int:
        stat = self.system.stats.get(name)
        return stat.value if stat else 0

    def score(self, name: str) -> Score:
        """Return the named score, creating an empty one if the actor lacks it."""
        return self.system.scores.setdefault(name, Score())

    def has_stat_or_score(self, name: str) -> bool:
        return name in self.system.stats or name in self.system.scores

    def stat_or_score(self, name: str) -> int:
        """Value of a stat, falling back to a score of the same name."""
        if name in self.system.stats:
            return self.system.stats[name].value
        if name in self.system.scores:
            return self.system.scores[name].value
        return 0

    # ----- traits -----

    def has_trait(self, trait_name: str, specialization: Optional[str] = None) -> bool:
        """
        Check whether the actor has a trait, optionally with a specialization.

        A trait's specialization may list several entries ("cut, pi"); any
        entry matching (case-insensitive) counts.
        """
        matches = [
            i
            for i in self.items
            if i.type == "trait" and i.name.lower() == trait_name.lower()
        ]
        if not specialization:
            return bool(matches)

        wanted = specialization.strip().lower()
        for trait in matches:
            listings = [s.strip().lower() for s in trait.specialization.split(",")]
            if wanted in listings:
                return True
        return False

    def has_immunity(self, damage_type: str) -> bool:
        return self.has_trait("Immunity", damage_type)

    def has_vulnerability(self, damage_type: str) -> bool:
        return self.has_trait("Vulnerability", damage_type)

    def has_resistance(self, damage_type: str) -> bool:
        return self.has_trait("Resistance", damage_type)

    # ----- totals -----

    def _consequence_ranks(self, *names: str) -> int:
        wanted = {n.lower() for n in names}
        return sum(
            i.rank
            for i in self.items
            if i.type == "consequence" and i.name.lower() in wanted
        )

    def wound_total(self) -> int:
        """Sum of Wound, Grave Wound and Fatigue ranks."""
        return self._consequence_ranks("wound", "grave wound", "fatigue")

    def fatigue(self) -> int:
        return self._consequence_ranks("fatigue")

    def stress(self) -> int:
        return self._consequence_ranks("stressed")

    def equipped(self, group: str) -> List[Item]:
        return [
            i
            for i in self.items
            if i.type == "item" and i.group == group and i.equipped
        ]

    def armor_properties(self) -> Dict[str, Any]:
        """Highest Armor, Bulky and Powered values across equipped armor."""
        highest: Dict[str, Any] = {"Armor": 0, "Bulky": 0, "Powered": 0}
        for armor in self.equipped("Armors"):
            highest["Armor"] = max(highest["Armor"], armor.armor)
            highest["Bulky"] = max(highest["Bulky"], armor.bulky)
            highest["Powered"] = max(highest["Powered"], armor.powered)
            if "Sealed" in armor.properties:
                highest["Sealed"] = True
        return highest

    def armor_value(self) -> int:
        cached = self.score("armor").properties.get("Armor")
        if cached:
            return cached
        return max((a.armor for a in self.equipped("Armors")), default=0)

    def encumbrance_total(self) -> int:
        return sum(i.encumbrance for i in self.items_of_type("item"))

    def dying_tn(self) -> int:
        """TN of the test prompted by the Dying consequence."""
        health = self.score("health")
        return abs(min(health.max - health.value, 0))
