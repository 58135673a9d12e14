"""
Helpers for attack and equipment properties.

Properties are short strings attached to actions and items, either bare
("Ignores", "Feeble", "Worn") or carrying a number ("Pierce 3", "Auto 10",
"Armor 4", "Str 5"). Names match case-insensitively.
"""

import re
from typing import Any, Iterable, List, Optional, Union

ATTACK_ACTION_TYPES = ("attack", "power")

_NUMBER_RE = re.compile(r"^-?\d+")


def parse_properties(raw: Union[str, Iterable[Any], None]) -> List[str]:
    """
    Normalize a property list.

    Accepts a comma-separated string ("Pierce 2, Auto 10"), a list of strings,
    or a list of tag dicts ({"value": "Pierce 2"}). Blank entries are dropped.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        parts = raw.split(",")
    else:
        parts = []
        for entry in raw:
            if isinstance(entry, dict):
                entry = entry.get("value", "")
            parts.append(str(entry))
    return [p.strip() for p in parts if p and p.strip()]


def _split(prop: str):
    name, _, rest = prop.strip().partition(" ")
    return name.lower(), rest.strip()


def has_property(properties: Union[str, Iterable[Any], None], name: str) -> bool:
    """Whether the property list contains the named property, with or without a value."""
    wanted = name.lower()
    for prop in parse_properties(properties):
        prop_name, _ = _split(prop)
        if prop.lower() == wanted or prop_name == wanted:
            return True
    return False


def property_value(properties: Union[str, Iterable[Any], None], name: str) -> int:
    """Numeric value of a property such as "Pierce 3"; 0 when absent or bare."""
    wanted = name.lower()
    for prop in parse_properties(properties):
        prop_name, rest = _split(prop)
        if prop_name == wanted and rest:
            match = _NUMBER_RE.match(rest)
            return int(match.group()) if match else 0
    return 0


def is_attack(action_type: Optional[str]) -> bool:
    return (action_type or "").lower() in ATTACK_ACTION_TYPES


def is_power(action_type: Optional[str]) -> bool:
    return (action_type or "").lower() == "power"


def strength_met(properties: Union[str, Iterable[Any], None], strength: int) -> bool:
    """Whether a wielder's Strength meets the weapon's "Str N" requirement."""
    required = property_value(properties, "Str")
    return strength >= required
