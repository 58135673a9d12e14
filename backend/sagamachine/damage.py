"""
Damage resolution against an actor.

Armor and pierce reduce the incoming damage, damage-type traits gate it
(immunity, then vulnerability, then resistance), and whatever remains
becomes a Wound, Grave Wound or Fatigue consequence. Wounds that spill past
the actor's Health escalate to Grave Wounds and Dying.
"""

import random
import logging
from typing import List, Optional

from pydantic import BaseModel, Field

from .actor_state import Actor, Item
from .config import RulesetSettings, get_settings
from .consequences import mark_defeated, standard_consequence, sync_statuses
from .context import GameContext
from .effects import IGNORES_ALL_ARMOR
from .scores import prepare_derived_data
from .wounds import Wound, generate_wound

logger = logging.getLogger(__name__)

DEFEATED_DYING_RANK = 3


class Hit(BaseModel):
    """One damage line of an attack, as read off a test."""

    damage: int
    damage_type: str = ""
    critical: bool = False
    pierce: int = 0


class DamageReport(BaseModel):
    """What a single apply_damage call did to the actor."""

    actor_id: str
    damage: int
    damage_type: str
    pierce: int
    critical: bool
    applied: int = 0
    consequence: Optional[Item] = None
    wound: Optional[Wound] = None
    dying_applied: int = 0
    dying_rank: int = 0
    defeated: bool = False
    notices: List[str] = Field(default_factory=list)


def consequence_name(damage_type: str, critical: bool) -> str:
    """Consequence a wound of this type becomes."""
    if damage_type == "fat":
        return "Fatigue"
    if critical:
        return "Grave Wound"
    return "Wound"


class DamageResolver:
    """Applies damage to actors through a host context."""

    def __init__(
        self,
        context: GameContext,
        rng: Optional[random.Random] = None,
        settings: Optional[RulesetSettings] = None,
    ):
        self.context = context
        self.rng = rng or random.Random()
        self.settings = settings or get_settings()

    def mitigate(self, actor: Actor, damage: int, damage_type: str, pierce: int) -> int:
        """
        Reduce damage by armor (less pierce), then apply trait gates.

        All three gates run in order even when immunity has already zeroed
        the damage.
        """
        if pierce == IGNORES_ALL_ARMOR:
            applied = damage
        else:
            armor = actor.score("armor").value
            applied = damage - max(armor - max(pierce, 0), 0)

        if actor.has_immunity(damage_type):
            self.context.notify("The character has immunity. Ignoring damage.", whisper=True)
            applied = 0
        if actor.has_vulnerability(damage_type):
            self.context.notify("The character has vulnerability. Doubling damage.", whisper=True)
            applied *= 2
        if actor.has_resistance(damage_type):
            self.context.notify("The character has resistance. Halving damage.", whisper=True)
            applied = applied // 2

        return applied

    def apply_damage(
        self,
        actor: Actor,
        damage: int,
        damage_type: str,
        critical: bool = False,
        pierce: int = 0,
    ) -> DamageReport:
        """
        Apply damage to an actor and record the resulting consequences.

        Args:
            actor: Actor taking the damage
            damage: Raw damage amount
            damage_type: Abbreviated damage type (cut, pi, sm, fat...)
            critical: Whether the damage comes from a critical hit
            pierce: Pierce value of the attack, or IGNORES_ALL_ARMOR

        Returns:
            DamageReport; ``applied`` is 0 and nothing changed when armor or
            traits absorbed everything.
        """
        prepare_derived_data(actor, self.settings)
        critical = bool(critical)
        pierce = int(pierce or 0)
        report = DamageReport(
            actor_id=actor.id,
            damage=damage,
            damage_type=damage_type,
            pierce=pierce,
            critical=critical,
        )

        applied = self.mitigate(actor, int(damage), damage_type, pierce)
        report.applied = max(applied, 0)
        if applied <= 0:
            logger.debug(f"No damage applied to {actor.name} ({damage} {damage_type})")
            return report

        health = actor.score("health")
        old_wounds = health.value
        health_max = max(health.max, 1)

        # Wounds reaching Health upgrade to a grave wound
        if old_wounds + applied >= health.max:
            critical = True
            if damage_type == "fat":
                notice = (
                    f"Wound Total exceeds Health. {actor.name} must succeed at an "
                    f"<strong>End-{health.fatigue + applied}</strong> test "
                    f"or fall unconscious for 1d10 hours."
                )
            else:
                notice = f"Wound Total exceeds Health. {actor.name} takes a Grave Wound."
            self.context.notify(notice)
            report.notices.append(notice)
        report.critical = critical

        report.dying_applied = self._apply_dying(actor, report, old_wounds, applied, health_max)

        name = consequence_name(damage_type, critical)
        template = standard_consequence(self.context, name, actor, skip_new=True)
        if template is None:
            template = self.context.create_consequence_template(
                name, specialized=True, specialization="describe injury"
            )
        report.wound = generate_wound(
            damage_type, critical, draw=self.context.draw_table, rng=self.rng
        )
        report.consequence = actor.add_item(
            template,
            rank=applied,
            specialized=True,
            specialization=report.wound.descriptor,
            description=report.wound.description,
        )

        sync_statuses(actor)
        prepare_derived_data(actor, self.settings)
        logger.info(
            f"{actor.name} takes {applied} {damage_type} damage: {name} "
            f"({report.wound.descriptor})"
        )
        return report

    def _apply_dying(
        self, actor: Actor, report: DamageReport, old_wounds: int, applied: int, health_max: int
    ) -> int:
        """Add Dying ranks for each Health increment crossed; returns ranks added."""
        current_increment = old_wounds // health_max
        new_increment = (old_wounds + applied) // health_max
        already_over = 1 if old_wounds > health_max and report.damage_type != "fat" else 0
        dying_to_apply = max(new_increment - current_increment, already_over)
        if report.damage_type == "fat" and current_increment == 0:
            dying_to_apply -= 1

        if dying_to_apply <= 0:
            return 0

        existing = actor.consequences("Dying")
        if existing:
            dying = existing[0]
            dying.rank += dying_to_apply
        else:
            template = standard_consequence(self.context, "Dying", actor, skip_actor=True)
            dying = actor.add_item(template, rank=dying_to_apply)

        report.dying_rank = dying.rank
        if dying.rank >= DEFEATED_DYING_RANK:
            mark_defeated(actor, self.context)
            report.defeated = True
        return dying_to_apply

    def apply_hits(self, actor: Actor, hits: List[Hit]) -> List[DamageReport]:
        """Apply each hit of an attack in order."""
        return [
            self.apply_damage(actor, h.damage, h.damage_type, h.critical, h.pierce)
            for h in hits
        ]

    def finalize_wound(
        self,
        actor: Actor,
        report: DamageReport,
        descriptor: str,
        description: Optional[str] = None,
    ) -> Optional[Item]:
        """
        Overwrite the generated wound descriptor with a user-chosen one.

        A changed descriptor drops the generated description unless a new
        one is given.
        """
        if report.consequence is None:
            return None
        item = actor.get_item(report.consequence.id)
        if item is None:
            return None

        if description is None:
            generated = report.wound.description if report.wound else ""
            same = report.wound is not None and report.wound.descriptor == descriptor
            description = generated if same else ""

        item.specialization = descriptor
        item.description = description
        return item
