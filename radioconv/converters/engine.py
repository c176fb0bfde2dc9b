"""
Conversion engine.

Orchestrates decode (source schema) -> migrate -> encode (target schema)
and records every field decision in a ConversionLedger.

The migration walks the schema chain returned by SchemaTable.chain one step
at a time. Each step first plans the new tree (its dicts and lists are built
up front, one task per field application) and then runs the tasks in order,
so progress can be reported as "task n of total" and cancellation is only
honoured between two fields.

Example:
    engine = ConversionEngine(default_table())
    result = engine.convert(image, target_version=219)
    for event in result.ledger.changes():
        print(event.path, event.outcome.value, event.note)
"""

import logging
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Callable, List, Optional, Union

from radioconv.codec.fields import (
    FieldIssue,
    Unknown,
    clamp_value,
    default_value,
    validate_value,
)
from radioconv.codec.image import decode_image, encode_image
from radioconv.config import DEFAULT_OPTIONS, ConversionOptions
from radioconv.converters.ledger import ConversionLedger, Outcome
from radioconv.converters.rules import ConversionRule, RuleRegistry, default_rules
from radioconv.errors import ConversionRejectedError, NoCompatibleVersionError, RadioDataError
from radioconv.models.image import ContainerKind, RawImage
from radioconv.models.settings import CanonicalSettings
from radioconv.schema.layout import Encoding, FieldLayout, SchemaVersion
from radioconv.schema.table import SchemaTable

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]
CancelCheck = Callable[[], bool]


class ConversionState(str, Enum):
    """States of one conversion run."""

    START = "start"
    VERSION_RESOLVED = "version_resolved"
    DECODING = "decoding"
    MIGRATING = "migrating"
    ENCODED = "encoded"
    REJECTED = "rejected"


_TRANSITIONS = {
    ConversionState.START: (ConversionState.VERSION_RESOLVED,),
    ConversionState.VERSION_RESOLVED: (ConversionState.DECODING,),
    ConversionState.DECODING: (ConversionState.MIGRATING,),
    ConversionState.MIGRATING: (ConversionState.ENCODED,),
    ConversionState.ENCODED: (),
    ConversionState.REJECTED: (),
}


@dataclass
class DecodeResult:
    """Settings decoded without migration, plus decode-time field issues."""

    settings: CanonicalSettings
    ledger: ConversionLedger


@dataclass
class ConversionResult:
    """
    Outcome of a successful conversion run.

    Attributes:
        settings: Tree at the target schema
        ledger: Closed ledger of every field decision
        image: The settings encoded at the target schema
    """

    settings: CanonicalSettings
    ledger: ConversionLedger
    image: RawImage


class ConversionEngine:
    """
    Entry point for decoding, encoding and converting radio images.

    The engine holds only read-only collaborators (table, rules, options), so
    one instance may serve concurrent conversions; all per-run state lives in
    ConversionRun.
    """

    def __init__(
        self,
        table: SchemaTable,
        rules: Optional[RuleRegistry] = None,
        options: Optional[ConversionOptions] = None,
    ):
        self.table = table
        self.rules = rules if rules is not None else default_rules()
        self.options = options or DEFAULT_OPTIONS

    def latest_version(self, board: str) -> int:
        """Newest registered schema version of a board."""
        versions = self.table.versions(board)
        if not versions:
            raise NoCompatibleVersionError(board, 0)
        return versions[-1]

    def decode(self, image: RawImage) -> DecodeResult:
        """
        Decode an image at its own schema, without migrating.

        Out-of-range fields are replaced by their defaults and reported as
        INVALIDATED events; a clean image gives an empty ledger.

        Raises:
            UnknownBoardError, NoCompatibleVersionError: Schema lookup failed
            SizeMismatchError: Payload length differs from the schema size
            CodecError: Structural decode failure
        """
        schema = self.table.resolve(image.board, image.version)
        issues: List[FieldIssue] = []
        settings = decode_image(image.payload, schema, issues)
        settings.metadata = dict(image.metadata)

        ledger = ConversionLedger()
        record_issues(ledger, issues)
        ledger.close()
        return DecodeResult(settings, ledger)

    def encode(self, settings: CanonicalSettings, kind: ContainerKind = ContainerKind.RAW) -> RawImage:
        """
        Encode settings at their own schema.

        Raises:
            NoCompatibleVersionError: The settings version is not registered
            CodecError: A value does not fit its field
        """
        schema = self.table.exact(settings.board, settings.version)
        if schema is None:
            raise NoCompatibleVersionError(settings.board, settings.version)
        payload = encode_image(settings, schema)
        return RawImage.create(
            payload, kind, schema.board, schema.version, metadata=settings.metadata
        )

    def convert(
        self,
        source: Union[RawImage, CanonicalSettings],
        target_board: Optional[str] = None,
        target_version: Optional[int] = None,
        progress: Optional[ProgressCallback] = None,
        should_cancel: Optional[CancelCheck] = None,
    ) -> ConversionResult:
        """
        Convert an image or settings tree to a target board and version.

        Args:
            source: RawImage or CanonicalSettings (never modified)
            target_board: Board to convert to (default: the source board,
                subject to options.board_policy)
            target_version: Version to convert to (default: newest registered)
            progress: Called as progress(current, total) after each field of
                a migration step
            should_cancel: Checked before each field; returning True rejects
                the run

        Raises:
            ConversionRejectedError: The run ended in the REJECTED state
        """
        run = ConversionRun(self, source, target_board, target_version, progress, should_cancel)
        return run.execute()


def record_issues(ledger: ConversionLedger, issues: List[FieldIssue]) -> None:
    """Turn decode-time field issues into INVALIDATED events."""
    for issue in issues:
        ledger.record(
            field_key(issue.path),
            issue.path,
            issue.raw,
            default_value(issue.layout),
            Outcome.INVALIDATED,
            str(issue.error),
        )


def field_key(path: str) -> str:
    """Index-free key of a concrete path: models[2].mixes[0] -> models.mixes"""
    key = []
    depth = 0
    for char in path:
        if char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
        elif depth == 0:
            key.append(char)
    return "".join(key)


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


class ConversionRun:
    """
    One single-use conversion: START -> ... -> ENCODED or REJECTED.
    """

    def __init__(
        self,
        engine: ConversionEngine,
        source: Union[RawImage, CanonicalSettings],
        target_board: Optional[str] = None,
        target_version: Optional[int] = None,
        progress: Optional[ProgressCallback] = None,
        should_cancel: Optional[CancelCheck] = None,
    ):
        self.engine = engine
        self.source = source
        self.target_board = target_board
        self.target_version = target_version
        self.progress = progress
        self.should_cancel = should_cancel
        self.state = ConversionState.START
        self.ledger = ConversionLedger()
        self._started = False

    @property
    def table(self) -> SchemaTable:
        return self.engine.table

    def execute(self) -> ConversionResult:
        if self._started:
            raise ConversionRejectedError(
                "conversion runs are single-use, start a new run", self.state
            )
        self._started = True

        try:
            source_schema, target_schema = self._resolve()
            self._enter(ConversionState.VERSION_RESOLVED)

            self._enter(ConversionState.DECODING)
            settings = self._decode(source_schema)

            self._enter(ConversionState.MIGRATING)
            settings = self._migrate(settings, self.table.chain(source_schema, target_schema))
            payload = encode_image(settings, target_schema)
            self._enter(ConversionState.ENCODED)
        except ConversionRejectedError as e:
            self.state = ConversionState.REJECTED
            logger.info("Conversion rejected: %s", e)
            raise
        except (RadioDataError, ValueError) as e:
            self._reject(str(e), e)
        finally:
            self.ledger.close()

        kind = self.source.kind if isinstance(self.source, RawImage) else ContainerKind.RAW
        image = RawImage.create(
            payload, kind, target_schema.board, target_schema.version, metadata=settings.metadata
        )
        summary = self.ledger.summaries()
        logger.info(
            "Converted %s v%d -> %s v%d: %d events, %d changed",
            source_schema.board,
            source_schema.version,
            target_schema.board,
            target_schema.version,
            len(self.ledger),
            len(self.ledger.changes()),
        )
        if summary[Outcome.VERIFY_REQUIRED]:
            logger.warning("%d fields need verification", summary[Outcome.VERIFY_REQUIRED])
        return ConversionResult(settings, self.ledger, image)

    # State handling

    def _enter(self, state: ConversionState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise ConversionRejectedError(
                f"invalid transition {self.state.value} -> {state.value}", self.state
            )
        logger.debug("Conversion state %s -> %s", self.state.value, state.value)
        self.state = state

    def _reject(self, message: str, cause: Optional[BaseException] = None) -> None:
        failed_in = self.state
        self.state = ConversionState.REJECTED
        logger.info("Conversion rejected in %s: %s", failed_in.value, message)
        raise ConversionRejectedError(message, failed_in, cause) from cause

    # Steps

    def _resolve(self):
        source = self.source
        source_schema = self.table.resolve(source.board, source.version)

        policy = self.engine.options.board_policy
        board = self.target_board or source_schema.board
        if board != source_schema.board:
            if policy == "strict":
                self._reject(
                    f"image board {source_schema.board} does not match target board {board}"
                )
            elif policy == "declared":
                logger.info(
                    "Keeping declared board %s instead of %s", source_schema.board, board
                )
                board = source_schema.board

        if not self.table.compatible(source_schema.board, board):
            self._reject(
                f"cannot convert {source_schema.board} ({source_schema.family}) to "
                f"{board} ({self.table.family_of(board)})"
            )

        version = self.target_version
        if version is None:
            version = self.engine.latest_version(board)
        target_schema = self.table.resolve(board, version)
        if target_schema.version < source_schema.version:
            self._reject(
                f"downgrade from v{source_schema.version} to v{target_schema.version} "
                "is not supported"
            )
        logger.debug("Resolved %s -> %s", source_schema, target_schema)
        return source_schema, target_schema

    def _decode(self, schema: SchemaVersion) -> CanonicalSettings:
        issues: List[FieldIssue] = []
        if isinstance(self.source, RawImage):
            settings = decode_image(self.source.payload, schema, issues)
            settings.metadata = dict(self.source.metadata)
        else:
            # normalise the caller's tree through the codec, leaving it untouched
            payload = encode_image(self.source, schema)
            settings = decode_image(payload, schema, issues)
            settings.metadata = dict(self.source.metadata)
        record_issues(self.ledger, issues)
        return settings

    def _migrate(self, settings: CanonicalSettings, chain: List[SchemaVersion]) -> CanonicalSettings:
        if len(chain) == 1:
            steps = [(chain[0], chain[0])]
        else:
            steps = list(zip(chain, chain[1:]))

        for old, new in steps:
            logger.debug("Migration step %s -> %s", old, new)
            planner = _StepPlanner(self.engine.rules, old, new, self.ledger)
            tree = planner.plan(settings)
            self._run_tasks(planner.tasks)
            settings = CanonicalSettings(
                board=new.board,
                version=new.version,
                radio=tree["radio"],
                models=tree["models"],
                metadata=settings.metadata,
            )
        return settings

    def _run_tasks(self, tasks: List[Callable[[], None]]) -> None:
        total = len(tasks)
        for index, task in enumerate(tasks, 1):
            if self.should_cancel is not None and self.should_cancel():
                self._reject(f"cancelled after {index - 1} of {total} fields")
            task()
            if self.progress is not None:
                self.progress(index, total)


def _compatible(old: FieldLayout, new: FieldLayout) -> bool:
    if old.encoding == new.encoding:
        return True
    return old.encoding.is_numeric and new.encoding.is_numeric


class _StepPlanner:
    """
    Plans one migration step (old schema -> new schema).

    plan() builds the skeleton of the new tree and a list of tasks; each task
    fills one slot of the skeleton and records exactly one event.
    """

    def __init__(
        self,
        rules: RuleRegistry,
        old: SchemaVersion,
        new: SchemaVersion,
        ledger: ConversionLedger,
    ):
        self.rules = rules
        self.old = old
        self.new = new
        self.ledger = ledger
        self.identity = old.key == new.key
        self.tasks: List[Callable[[], None]] = []

    def plan(self, settings: CanonicalSettings) -> dict:
        tree = {}
        self._field(settings.radio, True, self.old.radio, self.new.radio, "radio", "radio", tree, "radio")
        self._field(
            settings.models, True, self.old.models, self.new.models, "models", "models", tree, "models"
        )
        return tree

    def _rule(self, key: str) -> Optional[ConversionRule]:
        # rules migrate into a version; board-only steps have none
        if self.old.version == self.new.version:
            return None
        return self.rules.lookup(key, self.new.version)

    def _task(self, func, *args) -> None:
        self.tasks.append(partial(func, *args))

    # Planning

    def _field(self, value, present, old_layout, new_layout, key, path, parent, slot, rule=None):
        if not present:
            parent[slot] = None
            self._task(self._add_default, new_layout, key, path, parent, slot)
            return
        if rule is not None:
            parent[slot] = None
            self._task(self._apply_rule, rule, value, new_layout, key, path, parent, slot)
            return

        old_encoding, new_encoding = old_layout.encoding, new_layout.encoding
        if old_encoding == Encoding.STRUCT and new_encoding == Encoding.STRUCT:
            out = {}
            parent[slot] = out
            self._struct(value, old_layout, new_layout, key, path, out)
        elif old_encoding == Encoding.ARRAY and new_encoding == Encoding.ARRAY:
            out = []
            parent[slot] = out
            self._array(value, old_layout, new_layout, key, path, out)
        elif old_encoding.is_composite or new_encoding.is_composite:
            parent[slot] = None
            self._task(self._invalidate, value, old_layout, new_layout, key, path, parent, slot)
        else:
            parent[slot] = None
            self._task(self._scalar, value, old_layout, new_layout, key, path, parent, slot)

    def _struct(self, values, old_layout, new_layout, key, path, out) -> None:
        old_names = {child.name for child in old_layout.value_fields}
        new_names = {child.name for child in new_layout.value_fields}
        renamed = {}

        for child in new_layout.value_fields:
            child_key, child_path = _join(key, child.name), _join(path, child.name)
            rule = self._rule(child_key)
            source = child.name
            if (
                rule is not None
                and rule.renamed_from
                and child.name not in old_names
                and rule.renamed_from in old_names
            ):
                source = rule.renamed_from
                renamed[source] = child.name
            present = source in old_names and source in values
            self._field(
                values.get(source),
                present,
                old_layout.child(source) if present else None,
                child,
                child_key,
                child_path,
                out,
                child.name,
                rule,
            )

        for child in old_layout.value_fields:
            if child.name in new_names or child.name not in values:
                continue
            child_key, child_path = _join(key, child.name), _join(path, child.name)
            if child.name in renamed:
                note = f"renamed to {renamed[child.name]}"
                self._task(self._drop, values[child.name], child_key, child_path, Outcome.CONVERTED, note)
            else:
                note = f"removed in v{self.new.version}"
                self._task(self._drop, values[child.name], child_key, child_path, Outcome.INVALIDATED, note)

    def _array(self, items, old_layout, new_layout, key, path, out) -> None:
        if new_layout.is_fixed_count:
            keep = new_layout.length
        else:
            keep = min(len(items), new_layout.length)

        for index in range(keep):
            out.append(None)
            self._field(
                items[index] if index < len(items) else None,
                index < len(items),
                old_layout.element,
                new_layout.element,
                key,
                f"{path}[{index}]",
                out,
                index,
            )

        for index in range(keep, len(items)):
            note = f"beyond capacity of {new_layout.length}"
            self._task(self._drop, items[index], key, f"{path}[{index}]", Outcome.INVALIDATED, note)

    # Tasks

    def _add_default(self, layout, key, path, parent, slot) -> None:
        value = default_value(layout)
        parent[slot] = value
        self.ledger.record(key, path, None, value, Outcome.CONVERTED, "new field, set to default")

    def _apply_rule(self, rule: ConversionRule, value, layout, key, path, parent, slot) -> None:
        try:
            result = rule.apply(value, self.old, self.new)
        except Exception as e:
            raise ConversionRejectedError(
                f"rule for {key} (v{rule.version}) failed on {path}: {e!r}",
                ConversionState.MIGRATING,
                e,
            ) from e
        new_value, outcome, note = result.value, result.outcome, result.note
        problem = validate_value(new_value, layout, path)
        if problem is not None:
            new_value = clamp_value(new_value, layout)
            outcome, note = Outcome.VERIFY_REQUIRED, problem
        parent[slot] = new_value
        self.ledger.record(key, path, value, new_value, outcome, note)

    def _invalidate(self, value, old_layout, new_layout, key, path, parent, slot) -> None:
        new_value = default_value(new_layout)
        parent[slot] = new_value
        note = f"layout changed from {old_layout.encoding.value} to {new_layout.encoding.value}"
        self.ledger.record(key, path, value, new_value, Outcome.INVALIDATED, note)

    def _scalar(self, value, old_layout, new_layout, key, path, parent, slot) -> None:
        if isinstance(value, Unknown):
            if new_layout.encoding == Encoding.ENUM and old_layout.same_shape(new_layout):
                outcome = Outcome.UNCHANGED if self.identity else Outcome.VERIFY_REQUIRED
                self._set(key, path, parent, slot, value, value, outcome, "undeclared enum value kept")
            else:
                new_value = default_value(new_layout)
                self._set(
                    key, path, parent, slot, value, new_value, Outcome.INVALIDATED, "undeclared enum value"
                )
            return

        if not _compatible(old_layout, new_layout):
            self._invalidate(value, old_layout, new_layout, key, path, parent, slot)
            return

        problem = validate_value(value, new_layout, path)
        if problem is None:
            self._set(key, path, parent, slot, value, value, Outcome.UNCHANGED)
        elif new_layout.encoding == Encoding.FLAGS and isinstance(value, list):
            kept = [flag for flag in value if flag in new_layout.flags]
            dropped = [flag for flag in value if flag not in new_layout.flags]
            note = f"flags dropped: {', '.join(dropped)}"
            self._set(key, path, parent, slot, value, kept, Outcome.VERIFY_REQUIRED, note)
        else:
            new_value = clamp_value(value, new_layout)
            self._set(key, path, parent, slot, value, new_value, Outcome.VERIFY_REQUIRED, problem)

    def _drop(self, value, key, path, outcome: Outcome, note: str) -> None:
        self.ledger.record(key, path, value, None, outcome, note)

    def _set(self, key, path, parent, slot, old, new, outcome, note="") -> None:
        parent[slot] = new
        self.ledger.record(key, path, old, new, outcome, note)
