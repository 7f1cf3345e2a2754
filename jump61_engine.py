"""Grid state and chain-reaction rules for Jump61."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Deque, Iterable, List, Optional, Sequence, Tuple
import re

UNCLAIMED = "-"
PLAYER_A = "A"
PLAYER_B = "B"
PLAYERS = (PLAYER_A, PLAYER_B)

MIN_SIZE = 2
MAX_SIZE = 10
DEFAULT_SIZE = 6
DUMP_DELIMITER = "==="

_SIDE_NAMES = {
    UNCLAIMED: "Unclaimed",
    PLAYER_A: "Player A",
    PLAYER_B: "Player B",
}

_SIDE_ALIASES = {
    "a": PLAYER_A,
    "player-a": PLAYER_A,
    "red": PLAYER_A,
    "r": PLAYER_A,
    "b": PLAYER_B,
    "player-b": PLAYER_B,
    "blue": PLAYER_B,
    "bl": PLAYER_B,
}

_DUMP_FIELD = re.compile(r"(\d+)([-AB])")


class GameError(ValueError):
    """Recoverable error caused by a bad request; the grid is left unchanged."""


class InvalidMove(GameError):
    pass


class InvalidCoordinate(GameError):
    pass


class InvalidIndex(GameError):
    pass


class InvalidSize(GameError):
    pass


class NegativeSpotCount(GameError):
    pass


class NoHistory(GameError):
    pass


class InconsistentMoveOrder(RuntimeError):
    """Raised when search finds the wrong side to move; always a program bug."""


@dataclass(frozen=True)
class Cell:
    side: str
    spots: int


EMPTY_CELL = Cell(UNCLAIMED, 1)

Notifier = Callable[["GridState"], None]


def opponent(side: str) -> str:
    if side == PLAYER_A:
        return PLAYER_B
    if side == PLAYER_B:
        return PLAYER_A
    raise InvalidMove(f"invalid side: {side!r}")


def side_name(side: str) -> str:
    return _SIDE_NAMES.get(side, str(side))


def parse_side(text: str) -> str:
    side = _SIDE_ALIASES.get(text.strip().lower())
    if side is None:
        raise GameError(f"invalid side: {text}")
    return side


def check_size(size: int) -> int:
    if not isinstance(size, int) or size < MIN_SIZE or size > MAX_SIZE:
        raise InvalidSize(f"size must be between {MIN_SIZE} and {MAX_SIZE}")
    return size


@lru_cache(maxsize=None)
def _geometry(size: int) -> Tuple[Tuple[Tuple[int, ...], ...], Tuple[int, ...]]:
    """Neighbour lists (up, left, right, down) and capacities for every square."""
    neighbors: List[Tuple[int, ...]] = []
    for index in range(size * size):
        row, col = divmod(index, size)
        adjacent = []
        if row > 0:
            adjacent.append(index - size)
        if col > 0:
            adjacent.append(index - 1)
        if col < size - 1:
            adjacent.append(index + 1)
        if row < size - 1:
            adjacent.append(index + size)
        neighbors.append(tuple(adjacent))
    return tuple(neighbors), tuple(len(adjacent) for adjacent in neighbors)


class GridState:
    """An N x N Jump61 board together with its undo history.

    Squares are addressed either by 1-based ``(row, col)`` or by a 0-based
    row-major index.  The side to move is derived from the total number of
    spots, so it can never drift out of step with the history.

    An optional notifier is called synchronously after every settled change.
    It must not mutate the grid.
    """

    def __init__(self, size: int = DEFAULT_SIZE, notifier: Optional[Notifier] = None) -> None:
        self._size = check_size(size)
        self._neighbors, self._capacity = _geometry(size)
        self._cells: List[Cell] = [EMPTY_CELL] * (size * size)
        self._owned = {PLAYER_A: 0, PLAYER_B: 0}
        self._total = size * size
        self._history: List[Tuple[Cell, ...]] = [tuple(self._cells)]
        self._notifier = notifier
        self._announcing = False

    @classmethod
    def from_cells(cls, size: int, cells: Sequence[Cell]) -> "GridState":
        """Build a grid from row-major cell contents with a fresh history."""
        grid = cls(size)
        if len(cells) != size * size:
            raise GameError(f"expected {size * size} cells, got {len(cells)}")
        for index, cell in enumerate(cells):
            if cell.side not in _SIDE_NAMES:
                raise GameError(f"invalid side: {cell.side!r}")
            if cell.spots < 1 or (cell.side == UNCLAIMED and cell.spots != 1):
                raise GameError(f"invalid cell contents at square {index}: {cell}")
            grid._put(index, cell.side, cell.spots)
        grid._history = [tuple(grid._cells)]
        return grid

    # -- geometry -----------------------------------------------------------------

    @property
    def size(self) -> int:
        return self._size

    def exists(self, row: int, col: int) -> bool:
        return 1 <= row <= self._size and 1 <= col <= self._size

    def row(self, index: int) -> int:
        return index // self._size + 1

    def col(self, index: int) -> int:
        return index % self._size + 1

    def index(self, row: int, col: int) -> int:
        return (row - 1) * self._size + (col - 1)

    def capacity(self, *where: int) -> int:
        """Number of orthogonal neighbours; a square overflows above this."""
        return self._capacity[self._locate(where)]

    def neighbors(self, index: int) -> Tuple[int, ...]:
        return self._neighbors[self._locate((index,))]

    def _locate(self, where: Tuple[int, ...]) -> int:
        if len(where) == 1:
            index = where[0]
            if not 0 <= index < self._size * self._size:
                raise InvalidIndex(f"invalid square number: {index}")
            return index
        if len(where) == 2:
            row, col = where
            if not self.exists(row, col):
                raise InvalidCoordinate(f"invalid square: {row} {col}")
            return self.index(row, col)
        raise TypeError("expected a square number or a row and column")

    def _in_range(self, where: Tuple[int, ...]) -> bool:
        if len(where) == 1:
            return 0 <= where[0] < self._size * self._size
        if len(where) == 2:
            return self.exists(*where)
        return False

    # -- queries ------------------------------------------------------------------

    def get(self, *where: int) -> Cell:
        return self._cells[self._locate(where)]

    def cells(self) -> Tuple[Cell, ...]:
        return tuple(self._cells)

    def total_spots(self) -> int:
        return self._total

    def owned_count(self, side: str) -> int:
        if side == UNCLAIMED:
            return self._size * self._size - self._owned[PLAYER_A] - self._owned[PLAYER_B]
        return self._owned[side]

    def whose_move(self) -> str:
        """Side to move.  Once the game is won this is the losing side."""
        return PLAYER_A if (self._total + self._size) % 2 == 0 else PLAYER_B

    def winner(self) -> Optional[str]:
        squares = self._size * self._size
        if self._owned[PLAYER_A] == squares:
            return PLAYER_A
        if self._owned[PLAYER_B] == squares:
            return PLAYER_B
        return None

    def is_legal_move(self, side: str, *where: int) -> bool:
        if side not in PLAYERS or self.whose_move() != side:
            return False
        if not where:
            return True
        if not self._in_range(where):
            return False
        return self._cells[self._locate(where)].side in (UNCLAIMED, side)

    def legal_moves(self, side: Optional[str] = None) -> List[int]:
        if side is None:
            side = self.whose_move()
        if self.winner() is not None or not self.is_legal_move(side):
            return []
        return [index for index, cell in enumerate(self._cells) if cell.side in (UNCLAIMED, side)]

    def is_critical(self, *where: int) -> bool:
        index = self._locate(where)
        return self._cells[index].spots > self._capacity[index]

    def history_depth(self) -> int:
        """Number of settled positions that undo can still step back to."""
        return len(self._history) - 1

    # -- mutation -----------------------------------------------------------------

    def place_spot(self, side: str, *where: int) -> None:
        """Add a spot for SIDE and resolve any chain reaction.

        Raises InvalidMove unless it is SIDE's turn and the square is
        unclaimed or already SIDE's; the grid is untouched in that case.
        """
        self._check_not_announcing()
        index = self._locate(where)
        if side not in PLAYERS:
            raise InvalidMove(f"invalid side: {side!r}")
        if self.winner() is not None:
            raise InvalidMove("game is over")
        if self.whose_move() != side:
            raise InvalidMove(f"it is not {side_name(side)}'s move")
        owner = self._cells[index].side
        if owner not in (UNCLAIMED, side):
            raise InvalidMove(
                f"square {self.row(index)} {self.col(index)} belongs to {side_name(owner)}"
            )
        self._add(side, index)

    def add_spot(self, side: str, *where: int) -> None:
        """Add a spot for SIDE without turn or ownership checks.

        Used to set up puzzles and replay recorded games.  Otherwise behaves
        like place_spot, including the history entry.
        """
        self._check_not_announcing()
        index = self._locate(where)
        if side not in PLAYERS:
            raise InvalidMove(f"invalid side: {side!r}")
        self._add(side, index)

    def _add(self, side: str, index: int) -> None:
        self._put(index, side, self._cells[index].spots + 1)
        self._settle(index)
        self._mark()
        self._announce()

    def _settle(self, start: int) -> None:
        if self._cells[start].spots <= self._capacity[start]:
            return
        work: Deque[int] = deque([start])
        while work and self.winner() is None:
            square = work.popleft()
            cell = self._cells[square]
            capacity = self._capacity[square]
            if cell.spots <= capacity:
                # Already drained by an earlier entry in this pass.
                continue
            # Double fill: a square refilled past capacity before its turn keeps
            # the surplus and is queued again below.
            self._put(square, cell.side, cell.spots - capacity)
            for neighbor in self._neighbors[square]:
                self._put(neighbor, cell.side, self._cells[neighbor].spots + 1)
                if self._cells[neighbor].spots > self._capacity[neighbor]:
                    work.append(neighbor)
            if self._cells[square].spots > capacity:
                work.append(square)

    def set_cell(self, row: int, col: int, spots: int, side: str, *, record: bool = False) -> None:
        """Put SPOTS spots of SIDE on a square.

        Zero spots (or an unclaimed side) clears the square to one unclaimed
        spot.  With RECORD the result becomes an undo point.
        """
        self._check_not_announcing()
        index = self._locate((row, col))
        if spots < 0:
            raise NegativeSpotCount(f"cannot put {spots} spots on square {row} {col}")
        if spots == 0 or side == UNCLAIMED:
            self._put(index, UNCLAIMED, 1)
        elif side in PLAYERS:
            self._put(index, side, spots)
        else:
            raise InvalidMove(f"invalid side: {side!r}")
        if record:
            self._mark()
        self._announce()

    def undo(self) -> None:
        """Return to the previous settled position.

        Changes made since the last settled position (by set_cell) are
        discarded first.  Raises NoHistory at the start of the history.
        """
        self._check_not_announcing()
        if tuple(self._cells) == self._history[-1]:
            if len(self._history) < 2:
                raise NoHistory("no move to undo")
            self._history.pop()
        self._restore(self._history[-1])
        self._announce()

    def clear(self, size: Optional[int] = None) -> None:
        """Reset to an empty board, optionally resizing; history starts over."""
        self._check_not_announcing()
        size = self._size if size is None else check_size(size)
        self._size = size
        self._neighbors, self._capacity = _geometry(size)
        self._restore((EMPTY_CELL,) * (size * size))
        self._history = [tuple(self._cells)]
        self._announce()

    def copy_from(self, other: "GridState") -> None:
        """Take OTHER's contents.  History restarts; my notifier is kept."""
        self._check_not_announcing()
        self._size = other._size
        self._neighbors, self._capacity = other._neighbors, other._capacity
        self._restore(tuple(other._cells))
        self._history = [tuple(self._cells)]
        self._announce()

    def copy(self) -> "GridState":
        """Independent copy with a fresh history and no notifier."""
        grid = GridState(self._size)
        grid.copy_from(self)
        return grid

    def set_notifier(self, notifier: Optional[Notifier]) -> None:
        self._notifier = notifier

    def _put(self, index: int, side: str, spots: int) -> None:
        old = self._cells[index]
        if old.side != side:
            if old.side in self._owned:
                self._owned[old.side] -= 1
            if side in self._owned:
                self._owned[side] += 1
        self._total += spots - old.spots
        self._cells[index] = EMPTY_CELL if side == UNCLAIMED else Cell(side, spots)

    def _restore(self, snapshot: Iterable[Cell]) -> None:
        self._cells = list(snapshot)
        self._owned = {PLAYER_A: 0, PLAYER_B: 0}
        self._total = 0
        for cell in self._cells:
            self._total += cell.spots
            if cell.side in self._owned:
                self._owned[cell.side] += 1

    def _mark(self) -> None:
        self._history.append(tuple(self._cells))

    def _check_not_announcing(self) -> None:
        if self._announcing:
            raise RuntimeError("grid mutated from inside its change notifier")

    def _announce(self) -> None:
        if self._notifier is None:
            return
        self._announcing = True
        try:
            self._notifier(self)
        finally:
            self._announcing = False

    # -- text forms ---------------------------------------------------------------

    def dump(self) -> str:
        lines = [DUMP_DELIMITER]
        for start in range(0, self._size * self._size, self._size):
            row = self._cells[start:start + self._size]
            lines.append("   " + "".join(f" {cell.spots}{cell.side}" for cell in row))
        lines.append(DUMP_DELIMITER)
        return "\n".join(lines)

    def to_display_string(self) -> str:
        """Dump with row numbers down the side and column numbers below."""
        rows = self.dump().split("\n")[1:-1]
        lines = [f"{number:2d} {row.strip()}" for number, row in enumerate(rows, start=1)]
        lines.append("  " + "".join(f"{col:3d}" for col in range(1, self._size + 1)))
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.dump()

    def __repr__(self) -> str:
        return f"GridState({grid_key(self)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GridState):
            return NotImplemented
        return self._size == other._size and self._cells == other._cells

    __hash__ = None  # type: ignore[assignment]


def parse_dump(text: str) -> GridState:
    """Read a grid back from the dump format."""
    lines = [line.strip() for line in text.strip().splitlines() if line.strip()]
    if len(lines) < 2 or lines[0] != DUMP_DELIMITER or lines[-1] != DUMP_DELIMITER:
        raise GameError("malformed dump: missing delimiter lines")
    rows = [line.split() for line in lines[1:-1]]
    size = check_size(len(rows))
    cells: List[Cell] = []
    for number, fields in enumerate(rows, start=1):
        if len(fields) != size:
            raise GameError(f"malformed dump: row {number} has {len(fields)} squares")
        for field in fields:
            match = _DUMP_FIELD.fullmatch(field)
            if match is None:
                raise GameError(f"malformed dump: bad square {field!r}")
            cells.append(Cell(match.group(2), int(match.group(1))))
    return GridState.from_cells(size, cells)


def grid_key(grid: GridState) -> str:
    squares = ",".join(f"{cell.spots}{cell.side}" for cell in grid.cells())
    return f"{grid.size}|{squares}"


def key_to_grid(key: str) -> Optional[GridState]:
    parts = key.strip().split("|")
    if len(parts) != 2:
        return None
    try:
        size = int(parts[0])
    except ValueError:
        return None
    cells: List[Cell] = []
    for field in parts[1].split(","):
        match = _DUMP_FIELD.fullmatch(field)
        if match is None:
            return None
        cells.append(Cell(match.group(2), int(match.group(1))))
    try:
        return GridState.from_cells(size, cells)
    except GameError:
        return None
