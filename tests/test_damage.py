"""
Tests for the damage resolver: armor, pierce, trait gates, overflow, Dying
and wound bookkeeping.
"""

import sys
import os
import random
import pytest

# Add the backend directory to Python path
sys.path.insert(
    0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "backend"))
)

from sagamachine.actor_state import Actor, Item
from sagamachine.config import RulesetSettings
from sagamachine.context import World
from sagamachine.damage import DamageResolver, Hit, consequence_name
from sagamachine.effects import IGNORES_ALL_ARMOR


@pytest.fixture
def world():
    return World(seed=1)


@pytest.fixture
def resolver(world):
    return DamageResolver(world, rng=random.Random(7), settings=RulesetSettings())


def make_character(world, strength=6, endurance=4, items=None):
    actor = Actor(
        name="Target",
        system={"stats": {"strength": {"value": strength}, "endurance": {"value": endurance}}},
        items=items or [],
    )
    return world.add_actor(actor)


def trait(name, specialization):
    return Item(name=name, type="trait", specialized=True, specialization=specialization)


def armored(world, value=5):
    armor = Item(name="Plate", type="item", group="Armors", equipped=True, properties=f"Armor {value}")
    return make_character(world, items=[armor])


class TestEndToEnd:
    """Test the ordinary wound path."""

    def test_cut_becomes_wound(self, world, resolver):
        """Test 10 cut damage on Str 6 / End 4 makes one rank-10 Wound."""
        actor = make_character(world)
        report = resolver.apply_damage(actor, 10, "cut", critical=False, pierce=0)

        assert report.applied == 10
        assert report.critical is False
        wounds = actor.consequences("Wound")
        assert len(wounds) == 1
        assert wounds[0].rank == 10
        assert wounds[0].specialization == report.wound.descriptor
        assert actor.consequences("Dying") == []
        assert actor.system.scores["health"].value == 10
        assert "wound" in actor.statuses

    def test_template_reused(self, world, resolver):
        """Test the world-level Wound definition is created once and reused."""
        actor = make_character(world)
        resolver.apply_damage(actor, 3, "cut")
        resolver.apply_damage(actor, 2, "cut")
        assert len([i for i in world.items if i.name == "Wound"]) == 1
        assert [w.rank for w in actor.consequences("Wound")] == [3, 2]

    def test_critical_is_grave_wound(self, world, resolver):
        """Test critical hits become Grave Wounds."""
        actor = make_character(world)
        resolver.apply_damage(actor, 4, "cut", critical=True)
        assert len(actor.consequences("Grave Wound")) == 1

    def test_consequence_names(self):
        """Test the damage type and critical flag choose the consequence."""
        assert consequence_name("fat", True) == "Fatigue"
        assert consequence_name("cut", True) == "Grave Wound"
        assert consequence_name("pi", False) == "Wound"


class TestArmor:
    """Test armor and pierce."""

    def test_ignores_all_armor(self, world, resolver):
        """Test the sentinel bypasses armor entirely."""
        actor = armored(world)
        assert resolver.apply_damage(actor, 10, "pi", pierce=IGNORES_ALL_ARMOR).applied == 10

    def test_pierce_reduces_armor(self, world, resolver):
        """Test pierce 2 against armor 5 lets 7 through."""
        actor = armored(world)
        assert resolver.apply_damage(actor, 10, "pi", pierce=2).applied == 7

    def test_armor_without_pierce(self, world, resolver):
        """Test plain armor subtracts fully."""
        actor = armored(world)
        assert resolver.apply_damage(actor, 10, "pi").applied == 5

    def test_pierce_beyond_armor(self, world, resolver):
        """Test pierce never adds damage."""
        actor = armored(world)
        assert resolver.apply_damage(actor, 10, "pi", pierce=8).applied == 10

    def test_absorbed_changes_nothing(self, world, resolver):
        """Test fully absorbed damage leaves the actor untouched."""
        actor = armored(world)
        before = len(actor.items)
        report = resolver.apply_damage(actor, 4, "cut")
        assert report.applied == 0
        assert report.consequence is None
        assert len(actor.items) == before


class TestTraits:
    """Test immunity, vulnerability and resistance."""

    def test_immunity_wins(self, world, resolver):
        """Test immunity zeroes damage even with other traits present."""
        actor = make_character(
            world, items=[trait("Immunity", "fire"), trait("Vulnerability", "fire"), trait("Resistance", "fire")]
        )
        report = resolver.apply_damage(actor, 10, "fire")
        assert report.applied == 0
        assert actor.consequences("Wound") == []
        messages = [n.message for n in world.notices]
        assert messages == [
            "The character has immunity. Ignoring damage.",
            "The character has vulnerability. Doubling damage.",
            "The character has resistance. Halving damage.",
        ]
        assert all(n.whisper for n in world.notices)

    def test_vulnerable_and_resistant(self, world, resolver):
        """Test doubling then halving nets the original damage."""
        actor = make_character(world, items=[trait("Vulnerability", "cut"), trait("Resistance", "cut")])
        assert resolver.apply_damage(actor, 10, "cut").applied == 10

    def test_resistance_floors(self, world, resolver):
        """Test resistance halves, rounding down."""
        actor = make_character(world, items=[trait("Resistance", "pi")])
        assert resolver.apply_damage(actor, 7, "pi").applied == 3

    def test_trait_specialization_list(self, world, resolver):
        """Test a trait covering several damage types."""
        actor = make_character(world, items=[trait("Vulnerability", "cut, Pi")])
        assert resolver.apply_damage(actor, 3, "pi").applied == 6
        assert resolver.apply_damage(actor, 3, "sm").applied == 3


class TestOverflow:
    """Test wounds reaching Health, Dying and defeat."""

    def test_overflow_forces_grave_wound(self, world, resolver):
        """Test reaching Health upgrades to a Grave Wound and adds Dying."""
        actor = make_character(world, strength=1, endurance=1)  # Health 2
        report = resolver.apply_damage(actor, 3, "cut")
        assert report.critical is True
        assert len(actor.consequences("Grave Wound")) == 1
        assert report.dying_applied == 1
        assert actor.consequences("Dying")[0].rank == 1
        assert "Target takes a Grave Wound." in world.notices[-1].message

    def test_fatigue_overflow(self, world, resolver):
        """Test fatigue past Health asks for an End test and grants no Dying."""
        actor = make_character(world, strength=1, endurance=1)
        report = resolver.apply_damage(actor, 3, "fat")
        assert len(actor.consequences("Fatigue")) == 1
        assert report.dying_applied == 0
        assert actor.consequences("Dying") == []
        assert "End-3" in world.notices[-1].message

    def test_already_over_health(self, world, resolver):
        """Test any wound past Health adds Dying even within an increment."""
        actor = make_character(
            world, strength=1, endurance=1, items=[Item(name="Grave Wound", type="consequence", rank=4)]
        )
        report = resolver.apply_damage(actor, 1, "cut")
        assert report.dying_applied == 1

    def test_dying_stacks_and_defeats(self, world, resolver):
        """Test Dying ranks add up and three or more defeat the actor once."""
        actor = make_character(world, strength=1, endurance=1)
        resolver.apply_damage(actor, 2, "cut")  # 0 -> 2: one increment
        resolver.apply_damage(actor, 4, "cut")  # 2 -> 6: two increments
        assert actor.consequences("Dying")[0].rank == 3
        assert "defeated" in actor.statuses

        resolver.apply_damage(actor, 2, "cut")
        dead = [n for n in world.notices if "is dead" in n.message]
        assert len(dead) == 1
        assert actor.consequences("Dying")[0].rank == 4
        assert len(actor.consequences("Dying")) == 1


class TestHitsAndWounds:
    """Test multi-hit application and descriptor overrides."""

    def test_apply_hits(self, world, resolver):
        """Test each hit lands in order."""
        actor = make_character(world)
        reports = resolver.apply_hits(
            actor, [Hit(damage=5, damage_type="cut", critical=True), Hit(damage=3, damage_type="cut")]
        )
        assert [r.applied for r in reports] == [5, 3]
        assert len(actor.consequences("Grave Wound")) == 1
        assert len(actor.consequences("Wound")) == 1

    def test_grave_wound_table(self, world, resolver):
        """Test critical wounds draw from the Grave Wounds table."""
        world.tables["Grave Wounds"] = ["Broken Arm: -2 to Dexterity tests."]
        actor = make_character(world)
        report = resolver.apply_damage(actor, 4, "sm", critical=True)
        [grave] = actor.consequences("Grave Wound")
        assert grave.specialization == "Broken Arm"
        assert grave.description == "Broken Arm: -2 to Dexterity tests."
        assert report.wound.descriptor == "Broken Arm"

    def test_finalize_changed_descriptor(self, world, resolver):
        """Test a new descriptor drops the generated description."""
        world.tables["Grave Wounds"] = ["Broken Arm: -2 to Dexterity tests."]
        actor = make_character(world)
        report = resolver.apply_damage(actor, 4, "sm", critical=True)
        item = resolver.finalize_wound(actor, report, "Cracked ribs")
        assert item.specialization == "Cracked ribs"
        assert item.description == ""

    def test_finalize_same_descriptor(self, world, resolver):
        """Test keeping the descriptor keeps the description."""
        world.tables["Grave Wounds"] = ["Broken Arm: -2 to Dexterity tests."]
        actor = make_character(world)
        report = resolver.apply_damage(actor, 4, "sm", critical=True)
        item = resolver.finalize_wound(actor, report, "Broken Arm")
        assert item.description == "Broken Arm: -2 to Dexterity tests."

    def test_finalize_nothing_applied(self, world, resolver):
        """Test there is nothing to finalize after absorbed damage."""
        actor = armored(world)
        report = resolver.apply_damage(actor, 1, "cut")
        assert resolver.finalize_wound(actor, report, "Scratch") is None
