"""
Narrative wound descriptors.

Critical hits first consult the host's "Grave Wounds" roll table (whose
entries read "<descriptor>: <rules text>"); otherwise a descriptor is built
from the word tables in tables/wounds.yaml, keyed by damage type.
"""

import os
import random
import logging
from typing import Any, Callable, Dict, List, Optional

import yaml
from pydantic import BaseModel

logger = logging.getLogger(__name__)

GRAVE_WOUNDS_TABLE = "Grave Wounds"

_TABLES_PATH = os.path.join(os.path.dirname(__file__), "tables", "wounds.yaml")
_word_tables: Optional[Dict[str, Any]] = None


class Wound(BaseModel):
    """
    Narrative side of a wound before it becomes a consequence.

    ``descriptor`` becomes the consequence's specialization; ``description``
    its description (used for Grave Wound rules text).
    """

    descriptor: str = ""
    description: str = ""


def load_word_tables(path: str = _TABLES_PATH) -> Dict[str, Any]:
    """Load the wound word tables, caching the default file."""
    global _word_tables
    if path == _TABLES_PATH and _word_tables is not None:
        return _word_tables

    try:
        with open(path, "r", encoding="utf-8") as f:
            tables = yaml.safe_load(f) or {}
        logger.debug(f"Loaded wound tables from {path}")
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load wound tables {path}: {e}")
        tables = {}

    if path == _TABLES_PATH:
        _word_tables = tables
    return tables


def _pick(rng: random.Random, words: List[str]) -> Optional[str]:
    return rng.choice(words) if words else None


def generate_wound(
    damage_type: str,
    critical: bool,
    draw: Optional[Callable[[str], Optional[str]]] = None,
    rng: Optional[random.Random] = None,
) -> Wound:
    """
    Generate a wound descriptor for a damage type.

    Args:
        damage_type: Abbreviated damage type (cut, pi, sm, fat, burn...)
        critical: Whether the wound comes from a critical hit
        draw: Optional table draw, e.g. GameContext.draw_table
        rng: Random source for the word tables

    Returns:
        Wound with descriptor (and description when drawn from the table)
    """
    rng = rng or random.Random()

    if critical and draw is not None:
        text = draw(GRAVE_WOUNDS_TABLE)
        if text:
            return Wound(descriptor=text.split(":")[0], description=text)

    tables = load_word_tables()
    words = []

    if critical:
        words.append(_pick(rng, tables.get("severity", [])))

    if damage_type != "fat":
        words.append(_pick(rng, tables.get("locations", [])))

    injuries = tables.get("injuries", {})
    words.append(_pick(rng, injuries.get(damage_type) or injuries.get("default", [])))

    descriptor = " ".join(w for w in words if w)
    return Wound(descriptor=descriptor or "wound")
