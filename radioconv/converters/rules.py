"""
Conversion rules.

A rule is a small pure function that migrates one field into one schema
version. Rules are keyed by the index-free field key and the version being
migrated into:

    ("radio.backlight_delay", 218)   # applied on every step that ends at 218

Fields without a rule fall back to the engine's structural policy (keep,
clamp, default or invalidate).
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Dict, Iterator, NamedTuple, Optional, Tuple

from radioconv.converters.ledger import Outcome
from radioconv.schema.layout import SchemaVersion


class RuleResult(NamedTuple):
    """Value produced by a rule and how to record it."""

    value: Any
    outcome: Outcome = Outcome.CONVERTED
    note: str = ""


RuleFunc = Callable[[Any, SchemaVersion, SchemaVersion], RuleResult]


@dataclass(frozen=True)
class ConversionRule:
    """
    Migration of one field into one version.

    Attributes:
        field: Index-free field key in the new layout ("models.throttle_trim")
        version: Schema version the rule migrates into
        func: func(old_value, old_schema, new_schema) -> RuleResult. May be
            None for a plain rename, which carries the value over.
        renamed_from: Name of the field in the old layout, within the same
            struct, when the field was renamed
        note: Default ledger note
    """

    field: str
    version: int
    func: Optional[RuleFunc] = None
    renamed_from: Optional[str] = None
    note: str = ""

    @property
    def key(self) -> Tuple[str, int]:
        return (self.field, self.version)

    def apply(self, value: Any, old: SchemaVersion, new: SchemaVersion) -> RuleResult:
        if self.func is None:
            note = self.note or (f"renamed from {self.renamed_from}" if self.renamed_from else "")
            return RuleResult(value, Outcome.CONVERTED, note)
        result = self.func(value, old, new)
        if not isinstance(result, RuleResult):
            result = RuleResult(result, Outcome.CONVERTED, self.note)
        elif not result.note and self.note:
            result = result._replace(note=self.note)
        return result


class RuleRegistry:
    """
    Rules by (field, version). Frozen registries reject registration, so a
    registry can be shared between concurrent engines.

    Example:
        rules = RuleRegistry()

        @rules.rule("radio.speaker_volume", 219)
        def rescale(value, old, new):
            return RuleResult(round(value * 15 / 23))

        rules.freeze()
    """

    def __init__(self):
        self._rules: Dict[Tuple[str, int], ConversionRule] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, rule: ConversionRule) -> ConversionRule:
        """
        Add a rule.

        Raises:
            ValueError: Registry frozen, or a rule for the key already exists
        """
        if self._frozen:
            raise ValueError("rule registry is frozen")
        if rule.key in self._rules:
            raise ValueError(f"duplicate rule for {rule.field} v{rule.version}")
        self._rules[rule.key] = rule
        return rule

    def rule(self, field: str, version: int, renamed_from: Optional[str] = None, note: str = ""):
        """Decorator form of register()."""

        def decorator(func: RuleFunc) -> RuleFunc:
            self.register(ConversionRule(field, version, func, renamed_from, note))
            return func

        return decorator

    def rename(self, field: str, version: int, renamed_from: str, note: str = "") -> ConversionRule:
        return self.register(ConversionRule(field, version, None, renamed_from, note))

    def lookup(self, field: str, version: int) -> Optional[ConversionRule]:
        return self._rules.get((field, version))

    def freeze(self) -> "RuleRegistry":
        self._frozen = True
        return self

    def __iter__(self) -> Iterator[ConversionRule]:
        return iter(sorted(self._rules.values(), key=lambda r: (r.version, r.field)))

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, key) -> bool:
        return tuple(key) in self._rules


# Rules for the bundled schema definitions


def _backlight_delay_seconds(value, old, new) -> RuleResult:
    seconds = value * 5
    if seconds == value:
        return RuleResult(seconds, Outcome.UNCHANGED)
    return RuleResult(seconds, Outcome.CONVERTED, "units of 5 seconds to seconds")


def _speaker_volume_rescale(value, old, new) -> RuleResult:
    scaled = round(value * 15 / 23)
    if scaled == value:
        return RuleResult(scaled, Outcome.UNCHANGED)
    return RuleResult(scaled, Outcome.CONVERTED, "volume scale 0-23 to 0-15")


@lru_cache(maxsize=1)
def default_rules() -> RuleRegistry:
    """Frozen registry with the rules for the bundled schemas."""
    rules = RuleRegistry()
    rules.register(ConversionRule("radio.backlight_delay", 218, _backlight_delay_seconds))
    rules.rename("models.throttle_trim", 218, renamed_from="thr_trim")
    rules.register(ConversionRule("radio.speaker_volume", 219, _speaker_volume_rescale))
    return rules.freeze()
