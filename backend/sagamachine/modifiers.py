"""
Modifier sets: boons, banes and numeric adjustments gathered from many sources.

Each source stores its modifiers as URL-query-encoded strings:

    name=Aim&description=Took careful aim&boons=1&banes=0&modifier=2

and the UI shows them as compact tags such as "Aim ⊕⊕+1".
"""

import re
import json
import logging
from typing import Any, Dict, List, Optional, Union
from urllib.parse import parse_qsl

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

BOON = "⊕"
BANE = "⊖"

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")
_SIGN_SPACING_RE = re.compile(r"([a-zA-Z0-9])([+-])")


def _to_int(value: Any) -> int:
    """Lenient integer parse: leading digits win, anything else is 0."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    match = _LEADING_INT_RE.match(str(value))
    return int(match.group(1)) if match else 0


class ModifierTotals(BaseModel):
    """Aggregate of a list of modifier sets."""

    boons: int = 0
    banes: int = 0
    modifier: int = 0
    divide: int = 1
    percent: int = 0
    stress_boons: int = 0
    tags: List[str] = Field(default_factory=list)


class ModifierSet(BaseModel):
    """
    One named bundle of modifiers for a score or test.

    ``divide`` of 0 means "no divisor"; it is skipped when totals multiply
    divisors together.
    """

    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    description: Optional[str] = None
    boons: int = 0
    banes: int = 0
    modifier: int = 0
    divide: int = 0
    percent: int = 0
    stress_boons: int = 0

    @classmethod
    def build(cls, **fields: Any) -> "ModifierSet":
        """Construct from loosely typed values (strings, None), coercing numbers."""
        numeric = ("boons", "banes", "modifier", "divide", "percent", "stress_boons")
        values = {k: _to_int(fields.get(k)) for k in numeric}
        return cls(
            name=fields.get("name") or None,
            description=fields.get("description") or None,
            **values,
        )

    def mod_str(self) -> str:
        """Symbols for boons/banes followed by the signed modifier."""
        boons_banes = BOON * self.boons + BANE * self.banes
        mod = f"+{self.modifier}" if self.modifier >= 0 else f"{self.modifier}"
        if not boons_banes:
            return mod
        if not self.modifier:
            return boons_banes
        return boons_banes + mod

    @property
    def display_name(self) -> str:
        return f"{self.name} {self.mod_str()}" if self.name else self.mod_str()

    @property
    def title(self) -> Optional[str]:
        return self.description or self.name

    def tag(self) -> Dict[str, Optional[str]]:
        return {"value": self.display_name, "title": self.title}

    def to_json(self) -> Dict[str, Any]:
        return {
            "boons": self.boons,
            "banes": self.banes,
            "modifier": self.modifier,
            "divide": self.divide,
            "percent": self.percent,
            "stress_boons": self.stress_boons,
            "name": self.display_name,
            "description": self.title,
        }

    def to_query(self) -> str:
        """Encode back into the stored key/value string format."""
        parts = []
        if self.name:
            parts.append(f"name={self.name}")
        if self.description:
            parts.append(f"description={self.description}")
        for key in ("boons", "banes", "modifier", "divide", "percent", "stress_boons"):
            value = getattr(self, key)
            if value:
                parts.append(f"{key}={value}")
        return "&".join(parts)

    @staticmethod
    def parse(raw_mods_list: List[str]) -> List["ModifierSet"]:
        """
        Parse a list of key/value strings into ModifierSet objects.

        Any malformed entry drops the whole list: the roll proceeds with no
        modifiers rather than failing.
        """
        mods_list = []
        try:
            for raw in raw_mods_list:
                if not isinstance(raw, str):
                    raise TypeError(f"modifier entry is not a string: {raw!r}")
                params: Dict[str, str] = {}
                for key, value in parse_qsl(raw, keep_blank_values=True):
                    params.setdefault(key, value)
                mods_list.append(ModifierSet.build(**params))
        except (TypeError, ValueError) as e:
            logger.warning(f"Error parsing modifiers {raw_mods_list!r}: {e}")
            return []
        return mods_list

    @staticmethod
    def total_modifiers(mods_list: List[Union["ModifierSet", "ModifierTotals"]]) -> ModifierTotals:
        """Sum boons, banes, modifier, percent and stress boons; multiply divisors."""
        totals = ModifierTotals()
        for m in mods_list:
            totals.boons += m.boons
            totals.banes += m.banes
            totals.modifier += m.modifier
            totals.percent += m.percent
            totals.stress_boons += m.stress_boons
            if m.divide:
                totals.divide *= m.divide
            if isinstance(m, ModifierSet):
                totals.tags.append(m.display_name)
        return totals

    @staticmethod
    def list_from_string(input_str: Optional[str]) -> List["ModifierSet"]:
        """
        Parse a JSON list of tags into ModifierSet objects.

        Accepts '[{"value":"Dazed ⊖"},{"value":"Skilled +2"}]' or a single tag.
        """
        json_list: Any = None
        if input_str:
            try:
                json_list = json.loads(input_str)
            except json.JSONDecodeError as e:
                logger.warning(f"Error parsing modifier tag list {input_str!r}: {e}")
                return []

        if not json_list:
            return []
        if not isinstance(json_list, list):
            json_list = [json_list]

        return [m for m in (ModifierSet.from_tag(t) for t in json_list) if m is not None]

    @staticmethod
    def from_tag(tag: Union[str, Dict[str, Any]]) -> Optional["ModifierSet"]:
        """
        Parse a display tag such as "Aim ⊕⊕+1", "Dazed ⊖" or "Cover -2".

        The last space-separated chunk holds the symbols and optional signed
        number. A trailing "-" right before the digits makes the number
        negative. Tags whose name starts with "Stress" count their boons as
        stress boons.
        """
        value = tag if isinstance(tag, str) else tag.get("value")
        if not value:
            return None

        spaced = _SIGN_SPACING_RE.sub(r"\1 \2", value)
        parts = spaced.split(" ")
        all_mods = parts.pop()
        name = " ".join(parts)

        digits = re.search(r"\d+", all_mods)
        modifier = int(digits.group()) if digits and int(digits.group()) else None
        leading = re.sub(r"[0-9]", "", all_mods)
        if modifier is not None and leading.endswith("-"):
            modifier *= -1
        if modifier is not None and leading[-1:] in ("+", "-"):
            leading = leading[:-1]

        boons = len(re.findall(r"[+⊕]", leading))
        banes = len(re.findall(r"[-⊖]", leading))
        stress_boons = boons if name.lower().startswith("stress") else 0

        return ModifierSet(
            name=name.replace(BOON, "").replace(BANE, "") or None,
            boons=boons,
            banes=banes,
            modifier=modifier or 0,
            stress_boons=stress_boons,
        )
