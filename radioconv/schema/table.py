"""
Schema Version Table.

Resolves (board, version) keys to SchemaVersion layouts. The table is built
once (see loader.load_schema_table) and never changes afterwards, so one
instance can be shared by any number of concurrent conversions.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from radioconv.errors import NoCompatibleVersionError, UnknownBoardError
from radioconv.schema.layout import SchemaVersion

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoardInfo:
    """A transmitter hardware variant."""

    name: str
    variant: int
    family: str
    description: str = ""


class SchemaTable:
    """
    Read-only registry of schema versions.

    Example:
        table = load_schema_table()
        schema = table.resolve("x9d", 218)
        print(schema.size, table.versions("x9d"))
    """

    def __init__(self, boards: Dict[str, BoardInfo], schemas: Iterable[SchemaVersion]):
        by_board: Dict[str, List[SchemaVersion]] = defaultdict(list)
        for schema in schemas:
            by_board[schema.board].append(schema)

        self._boards = MappingProxyType(dict(boards))
        self._variants = MappingProxyType({info.variant: name for name, info in boards.items()})
        self._schemas = MappingProxyType(
            {board: tuple(sorted(items, key=lambda s: s.version)) for board, items in by_board.items()}
        )

    @property
    def boards(self) -> Tuple[str, ...]:
        return tuple(sorted(self._boards))

    def board_info(self, board: str) -> BoardInfo:
        info = self._boards.get(board)
        if info is None:
            raise UnknownBoardError(board)
        return info

    def family_of(self, board: str) -> str:
        return self.board_info(board).family

    def board_for_variant(self, variant: int) -> str:
        """
        Map a variant id from an image header to a board name.

        Raises:
            UnknownBoardError: No board uses this variant id
        """
        board = self._variants.get(variant)
        if board is None:
            raise UnknownBoardError(f"variant 0x{variant:04X}")
        return board

    def compatible(self, board_a: str, board_b: str) -> bool:
        """True if both boards belong to the same family."""
        return self.family_of(board_a) == self.family_of(board_b)

    def versions(self, board: str) -> Tuple[int, ...]:
        """Registered versions for a board, oldest first."""
        self.board_info(board)
        return tuple(s.version for s in self._schemas.get(board, ()))

    def schemas(self, board: str) -> Tuple[SchemaVersion, ...]:
        self.board_info(board)
        return self._schemas.get(board, ())

    def exact(self, board: str, version: int) -> Optional[SchemaVersion]:
        for schema in self.schemas(board):
            if schema.version == version:
                return schema
        return None

    def resolve(self, board: str, version: int) -> SchemaVersion:
        """
        Find the layout for a board and version.

        An exact match wins; otherwise the newest registered version older
        than the request is used. A newer version is never selected.

        Raises:
            UnknownBoardError: Board not in the table
            NoCompatibleVersionError: Every registered version is newer
        """
        candidates = [s for s in self.schemas(board) if s.version <= version]
        if not candidates:
            raise NoCompatibleVersionError(board, version)
        schema = candidates[-1]
        if schema.version != version:
            logger.info("No schema for %s v%d, using v%d", board, version, schema.version)
        return schema

    def size_of(self, schema: SchemaVersion) -> int:
        """Expected image size in bytes."""
        return schema.size

    def compare(self, board: str, a: int, b: int) -> int:
        """
        Order two versions within a board family.

        Returns:
            -1 if a < b, 0 if equal, 1 if a > b
        """
        self.board_info(board)
        return (a > b) - (a < b)

    def chain(self, source: SchemaVersion, target: SchemaVersion) -> List[SchemaVersion]:
        """
        The schemas a migration walks, source first.

        Every registered version of the target board between the two
        (exclusive of source, inclusive of target) is visited in order.
        A board change at equal versions is a single step.
        """
        if source.family != target.family:
            raise ValueError(f"{source.board} and {target.board} are not in the same family")
        if target.version < source.version:
            raise ValueError(f"cannot walk down from v{source.version} to v{target.version}")

        steps = [
            s
            for s in self.schemas(target.board)
            if source.version < s.version <= target.version
        ]
        if not steps and target != source:
            steps = [target]
        return [source] + steps

    def __iter__(self) -> Iterator[SchemaVersion]:
        for board in sorted(self._schemas):
            yield from self._schemas[board]

    def __len__(self) -> int:
        return sum(len(items) for items in self._schemas.values())

    def __contains__(self, key) -> bool:
        board, version = key
        return board in self._schemas and self.exact(board, version) is not None

    def __repr__(self) -> str:
        return f"SchemaTable(boards={len(self._boards)}, schemas={len(self)})"
