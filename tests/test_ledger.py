"""Tests for the conversion ledger and rule registry."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from radioconv.codec.fields import Unknown
from radioconv.converters import (
    ConversionLedger,
    ConversionRule,
    Outcome,
    RuleRegistry,
    RuleResult,
    default_rules,
)
from radioconv.converters.ledger import format_value
from radioconv.errors import LedgerClosedError


@pytest.fixture
def ledger():
    ledger = ConversionLedger()
    ledger.record("radio.contrast", "radio.contrast", 20, None, Outcome.INVALIDATED, "removed in v218")
    ledger.record("models.name", "models[0].name", "GLIDER", "GLIDER", Outcome.UNCHANGED)
    ledger.record("models.mixes.weight", "models[0].mixes[1].weight", 150, 100, Outcome.VERIFY_REQUIRED)
    ledger.record("models.name", "models[1].name", "HELI", "HELI", Outcome.UNCHANGED)
    return ledger


class TestConversionLedger:
    """Test cases for ConversionLedger."""

    def test_sequence(self, ledger):
        assert [event.sequence for event in ledger] == [1, 2, 3, 4]
        assert ledger[0].old == "20"
        assert ledger[0].new == ""

    def test_summaries_include_every_outcome(self, ledger):
        summary = ledger.summaries()
        assert summary == {
            Outcome.UNCHANGED: 2,
            Outcome.CONVERTED: 0,
            Outcome.INVALIDATED: 1,
            Outcome.VERIFY_REQUIRED: 1,
        }

    def test_events_for_concrete_path(self, ledger):
        assert [e.sequence for e in ledger.events_for("models[0].name")] == [2]

    def test_events_for_field_key(self, ledger):
        """Test that an index-free key matches every slot."""
        assert [e.sequence for e in ledger.events_for("models.name")] == [2, 4]

    def test_events_for_prefix(self, ledger):
        """Test that a parent path matches the events below it."""
        assert [e.sequence for e in ledger.events_for("models[0]")] == [2, 3]
        assert ledger.events_for("models[0].mix") == []

    def test_changes_and_review(self, ledger):
        assert [e.sequence for e in ledger.changes()] == [1, 3]
        assert ledger.needs_review
        assert len(ledger.by_outcome(Outcome.UNCHANGED)) == 2

    def test_closed(self, ledger):
        ledger.close()
        assert ledger.closed
        with pytest.raises(LedgerClosedError):
            ledger.record("radio.x", "radio.x", 1, 2, Outcome.CONVERTED)
        assert len(ledger) == 4

    def test_to_records(self, ledger):
        record = ledger.to_records()[2]
        assert record["outcome"] == "verify_required"
        assert record["path"] == "models[0].mixes[1].weight"
        assert record["old"] == "150"

    def test_empty_ledger(self):
        ledger = ConversionLedger()
        assert len(ledger) == 0
        assert not ledger.needs_review
        assert set(ledger.summaries().values()) == {0}


class TestFormatValue:
    """Test cases for event value text."""

    def test_values(self):
        assert format_value(None) == ""
        assert format_value("AIL") == "'AIL'"
        assert format_value(6.5) == "6.5"
        assert format_value(True) == "True"
        assert format_value(["carry_trim", "mix_warn"]) == "['carry_trim', 'mix_warn']"
        assert format_value(Unknown(7)) == "Unknown(7)"


class TestRuleRegistry:
    """Test cases for RuleRegistry."""

    def test_register_and_lookup(self):
        rules = RuleRegistry()
        rule = rules.register(ConversionRule("radio.x", 5, lambda v, old, new: RuleResult(v + 1)))
        assert rules.lookup("radio.x", 5) is rule
        assert rules.lookup("radio.x", 6) is None
        assert ("radio.x", 5) in rules
        assert len(rules) == 1

    def test_duplicate(self):
        rules = RuleRegistry()
        rules.rename("models.b", 3, renamed_from="a")
        with pytest.raises(ValueError):
            rules.rename("models.b", 3, renamed_from="c")

    def test_frozen(self):
        rules = RuleRegistry().freeze()
        assert rules.frozen
        with pytest.raises(ValueError):
            rules.rename("models.b", 3, renamed_from="a")

    def test_rename_rule_keeps_value(self, table):
        rule = ConversionRule("models.throttle_trim", 218, renamed_from="thr_trim")
        result = rule.apply(True, table.resolve("x9d", 217), table.resolve("x9d", 218))
        assert result == RuleResult(True, Outcome.CONVERTED, "renamed from thr_trim")

    def test_plain_return_value(self, table):
        """Test that a rule returning a bare value is recorded as converted."""
        rule = ConversionRule("radio.x", 218, lambda v, old, new: v * 2, note="doubled")
        result = rule.apply(4, table.resolve("x9d", 217), table.resolve("x9d", 218))
        assert result == RuleResult(8, Outcome.CONVERTED, "doubled")

    def test_default_rules(self, table):
        rules = default_rules()
        assert rules.frozen
        assert [r.key for r in rules] == [
            ("models.throttle_trim", 218),
            ("radio.backlight_delay", 218),
            ("radio.speaker_volume", 219),
        ]
        v218, v219 = table.resolve("x9d", 218), table.resolve("x9d", 219)
        volume = rules.lookup("radio.speaker_volume", 219)
        assert volume.apply(12, v218, v219).value == 8
        assert volume.apply(0, v218, v219).outcome == Outcome.UNCHANGED
