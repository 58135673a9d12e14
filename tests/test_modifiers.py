"""
Tests for ModifierSet parsing, aggregation and tag round-trips.
"""

import sys
import os
import logging

# Add the backend directory to Python path
sys.path.insert(
    0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "backend"))
)

from sagamachine.modifiers import BANE, BOON, ModifierSet


class TestParse:
    """Test parsing of stored key/value modifier strings."""

    def test_parse_single_entry(self):
        """Test every numeric field is decoded."""
        mods = ModifierSet.parse(
            ["name=Aim&boons=2&banes=1&modifier=3&divide=2&percent=50&stress_boons=1"]
        )
        assert len(mods) == 1
        mod = mods[0]
        assert mod.name == "Aim"
        assert (mod.boons, mod.banes, mod.modifier) == (2, 1, 3)
        assert (mod.divide, mod.percent, mod.stress_boons) == (2, 50, 1)

    def test_parse_missing_fields_default_to_zero(self):
        """Test absent fields are zero, including the divisor."""
        [mod] = ModifierSet.parse(["name=Cover&modifier=-2"])
        assert mod.modifier == -2
        assert mod.boons == 0
        assert mod.divide == 0

    def test_parse_url_encoded_name(self):
        """Test names are URL-decoded."""
        [mod] = ModifierSet.parse(["name=Low%20Light&banes=1"])
        assert mod.name == "Low Light"

    def test_malformed_entry_drops_everything(self, caplog):
        """Test a bad entry degrades to no modifiers with a warning."""
        with caplog.at_level(logging.WARNING):
            mods = ModifierSet.parse(["name=Aim&boons=1", None])
        assert mods == []
        assert "Error parsing modifiers" in caplog.text

    def test_parse_empty_list(self):
        """Test an empty list parses to an empty list."""
        assert ModifierSet.parse([]) == []


class TestTotals:
    """Test aggregation of several modifier sets."""

    def test_sums_and_products(self):
        """Test additive fields sum and divisors multiply."""
        mods = ModifierSet.parse(
            [
                "name=A&boons=1&modifier=2&divide=2&percent=10",
                "name=B&banes=1&modifier=-1&divide=3&percent=5&stress_boons=1",
            ]
        )
        totals = ModifierSet.total_modifiers(mods)
        assert totals.boons == 1
        assert totals.banes == 1
        assert totals.modifier == 1
        assert totals.divide == 6
        assert totals.percent == 15
        assert totals.stress_boons == 1

    def test_empty_list_divide_is_one(self):
        """Test the divisor product starts at 1."""
        totals = ModifierSet.total_modifiers([])
        assert totals.divide == 1
        assert totals.tags == []

    def test_zero_divide_is_unset(self):
        """Test a divisor of 0 is skipped rather than zeroing the product."""
        mods = [ModifierSet(name="A", divide=0), ModifierSet(name="B", divide=2)]
        assert ModifierSet.total_modifiers(mods).divide == 2

    def test_tags_are_display_names(self):
        """Test each set contributes its display name as a tag."""
        mods = [ModifierSet(name="Aim", boons=2, modifier=1), ModifierSet(name="Dazed", banes=1)]
        totals = ModifierSet.total_modifiers(mods)
        assert totals.tags == [f"Aim {BOON}{BOON}+1", f"Dazed {BANE}"]


class TestTags:
    """Test display tags."""

    def test_mod_str_variants(self):
        """Test symbols, signed number, or both."""
        assert ModifierSet(modifier=2).mod_str() == "+2"
        assert ModifierSet(modifier=-3).mod_str() == "-3"
        assert ModifierSet(boons=1).mod_str() == BOON
        assert ModifierSet(banes=2, modifier=1).mod_str() == f"{BANE}{BANE}+1"

    def test_from_tag_boons_and_modifier(self):
        """Test "Aim ⊕⊕+1" splits into two boons and +1."""
        mod = ModifierSet.from_tag(f"Aim {BOON}{BOON}+1")
        assert mod.name == "Aim"
        assert mod.boons == 2
        assert mod.banes == 0
        assert mod.modifier == 1

    def test_from_tag_negative_modifier(self):
        """Test a trailing "-" before the digits makes the number negative."""
        mod = ModifierSet.from_tag("Cover -2")
        assert mod.modifier == -2
        assert mod.banes == 0

    def test_from_tag_symbols_only(self):
        """Test a bare symbol run means modifier 0."""
        mod = ModifierSet.from_tag(f"Dazed {BANE}")
        assert mod.banes == 1
        assert mod.modifier == 0

    def test_from_tag_ascii_symbols(self):
        """Test "+" and "-" without digits count as boons and banes."""
        mod = ModifierSet.from_tag("Help ++")
        assert mod.boons == 2
        assert mod.modifier == 0

    def test_from_tag_bane_and_negative(self):
        """Test "⊖-1" is one bane and -1."""
        mod = ModifierSet.from_tag(f"Hurt {BANE}-1")
        assert mod.banes == 1
        assert mod.modifier == -1

    def test_from_tag_stress_boons(self):
        """Test Stress tags count their boons as stress boons."""
        mod = ModifierSet.from_tag(f"Stress {BOON}")
        assert mod.boons == 1
        assert mod.stress_boons == 1

    def test_tag_round_trip(self):
        """Test a set survives display-tag encoding."""
        original = ModifierSet(name="Aim", boons=2, modifier=-1)
        parsed = ModifierSet.from_tag(original.tag())
        assert (parsed.name, parsed.boons, parsed.banes, parsed.modifier) == ("Aim", 2, 0, -1)

    def test_list_from_string(self):
        """Test a JSON tag list from the modifier widget."""
        mods = ModifierSet.list_from_string(
            f'[{{"value": "Dazed {BANE}"}}, {{"value": "Skilled +2"}}]'
        )
        totals = ModifierSet.total_modifiers(mods)
        assert totals.banes == 1
        assert totals.modifier == 2

    def test_list_from_string_bad_json(self, caplog):
        """Test invalid JSON degrades to no modifiers."""
        with caplog.at_level(logging.WARNING):
            assert ModifierSet.list_from_string("[not json") == []
        assert "Error parsing modifier tag list" in caplog.text

    def test_list_from_string_empty(self):
        """Test empty input means no modifiers."""
        assert ModifierSet.list_from_string("") == []
        assert ModifierSet.list_from_string(None) == []

    def test_to_query_round_trip(self):
        """Test encoding back into the stored string format."""
        original = ModifierSet(name="Aim", boons=1, divide=2)
        [parsed] = ModifierSet.parse([original.to_query()])
        assert parsed == original
