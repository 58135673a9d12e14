"""
Standard consequences and the status bookkeeping around them.

A consequence is a persistent status or injury item on an actor (Wound,
Fatigue, Dying...). Standard ones mirror host status effects, which are
tracked here as slugs in ``Actor.statuses``.
"""

import re
import logging
from typing import Optional

from .actor_state import Actor, Item
from .context import GameContext

logger = logging.getLogger(__name__)

STANDARD_CONSEQUENCES = [
    "Bleeding",
    "Bolstered",
    "Dazed",
    "Defeated",
    "Desire",
    "Disabled",
    "Dying",
    "Fatigue",
    "Fear",
    "Fixation",
    "Grave Wound",
    "Hidden",
    "Hindered",
    "Prone",
    "Stunned",
    "Wound",
]

# Statuses with no backing consequence item
STATUS_ONLY = {"defeated", "unconscious"}

DEFEATED = "defeated"


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def standard_consequence(
    context: GameContext,
    name: str,
    actor: Optional[Actor] = None,
    skip_actor: bool = False,
    skip_global: bool = False,
    skip_new: bool = False,
) -> Optional[Item]:
    """
    Find a consequence to copy: on the actor, then world-level, then new.

    Args:
        context: Host context for world-level lookup and creation
        name: Exact consequence name
        actor: Actor to search first
        skip_actor: Don't search the actor
        skip_global: Don't search world-level definitions
        skip_new: Don't lazily create a definition

    Returns:
        The consequence item, or None if every enabled lookup failed
    """
    consequence = None

    if not skip_actor and actor is not None:
        existing = actor.consequences(name)
        consequence = existing[0] if existing else None

    if not skip_global and consequence is None:
        consequence = context.find_consequence_template(name)

    if not skip_new and consequence is None:
        consequence = context.create_consequence_template(name[:1].upper() + name[1:])

    return consequence


def mark_defeated(actor: Actor, context: GameContext) -> bool:
    """Mark the actor defeated; returns False if it already was."""
    if DEFEATED in actor.statuses:
        return False
    actor.statuses.add(DEFEATED)
    context.notify(f"Dying consequences exceed 3 or more. {actor.name} is dead.")
    logger.info(f"{actor.name} ({actor.id}) is defeated")
    return True


def sync_statuses(actor: Actor) -> None:
    """Mirror standard consequences with rank > 0 as status slugs."""
    wanted = {
        slugify(i.name)
        for i in actor.items
        if i.type == "consequence" and i.rank > 0 and i.name in STANDARD_CONSEQUENCES
    }
    keep = {s for s in actor.statuses if s in STATUS_ONLY}
    actor.statuses = wanted | keep


def sync_encumbrance(actor: Actor, context: GameContext) -> None:
    """Add or remove the Hindered (Encumbered) consequence to match encumbrance."""
    encumbrance = actor.score("encumbrance")
    hindered = [
        c for c in actor.consequences("Hindered") if c.specialization == "Encumbered"
    ]

    if encumbrance.value > encumbrance.max:
        if hindered:
            return
        template = standard_consequence(context, "Hindered", actor, skip_actor=True)
        actor.add_item(template, specialization="Encumbered", specialized=True, rank=1)
        logger.debug(f"{actor.name} is encumbered")
    elif hindered:
        actor.remove_items([c.id for c in hindered])
