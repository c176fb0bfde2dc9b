"""
Cross-version conversion of radio settings.

This package provides:
- ConversionEngine: decode, encode and convert images between schema versions
- ConversionLedger: the audit trail of every field decision
- RuleRegistry: per-field migration rules keyed by (field, version)

Example:
    from radioconv.converters import ConversionEngine
    from radioconv.schema import default_table

    engine = ConversionEngine(default_table())
    result = engine.convert(image, target_version=219)
    print(result.ledger.summaries())
"""

from radioconv.converters.engine import (
    ConversionEngine,
    ConversionResult,
    ConversionRun,
    ConversionState,
    DecodeResult,
    field_key,
)
from radioconv.converters.ledger import ConversionEvent, ConversionLedger, Outcome
from radioconv.converters.rules import ConversionRule, RuleRegistry, RuleResult, default_rules

__all__ = [
    "ConversionEngine",
    "ConversionEvent",
    "ConversionLedger",
    "ConversionResult",
    "ConversionRule",
    "ConversionRun",
    "ConversionState",
    "DecodeResult",
    "Outcome",
    "RuleRegistry",
    "RuleResult",
    "default_rules",
    "field_key",
]
