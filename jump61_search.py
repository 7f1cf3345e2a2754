"""Fixed-depth minimax with alpha-beta pruning for Jump61."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional
import logging
import time

from jump61_engine import (
    PLAYER_A,
    PLAYER_B,
    UNCLAIMED,
    GridState,
    InconsistentMoveOrder,
    InvalidMove,
    grid_key,
    side_name,
)
from jump61_telemetry import (
    NodeBatchEvent,
    SearchEndEvent,
    SearchStartEvent,
    TelemetrySink,
    emit_dataclass_event,
)

INF = 10**9
WIN_VALUE = 10_000
SEARCH_DEPTH = 3
TELEMETRY_NODE_MASK = 0x3FF

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchResult:
    best_move: Optional[int]
    score: int
    depth: int
    nodes: int
    cutoffs: int
    elapsed_ms: int


@dataclass
class _SearchContext:
    start: float
    root_depth: int
    sink: Optional[TelemetrySink] = None
    best_move: Optional[int] = None
    nodes: int = 0
    cutoffs: int = 0
    eval_calls: int = 0
    max_ply: int = 0


def evaluate(grid: GridState) -> int:
    """Static value from Player A's point of view.

    A won grid is worth +/-WIN_VALUE.  Otherwise every owned square counts
    one for its owner, two if it is full enough to overflow on the next spot.
    """
    winner = grid.winner()
    if winner == PLAYER_A:
        return WIN_VALUE
    if winner == PLAYER_B:
        return -WIN_VALUE
    score = 0
    for index, cell in enumerate(grid.cells()):
        if cell.side == UNCLAIMED:
            continue
        weight = 2 if cell.spots >= grid.capacity(index) else 1
        score += weight if cell.side == PLAYER_A else -weight
    return score


@contextmanager
def _applied(work: GridState, side: str, index: int) -> Iterator[None]:
    work.place_spot(side, index)
    try:
        yield
    finally:
        work.undo()


def _elapsed_ms(context: _SearchContext) -> int:
    return int((time.perf_counter() - context.start) * 1000)


def _maybe_emit_batch(context: _SearchContext) -> None:
    if context.sink is None or (context.nodes & TELEMETRY_NODE_MASK) != 0:
        return
    emit_dataclass_event(
        context.sink,
        "node_batch",
        NodeBatchEvent(
            nodes_total=context.nodes,
            cutoffs=context.cutoffs,
            eval_calls=context.eval_calls,
            max_ply=context.max_ply,
            elapsed_ms=_elapsed_ms(context),
        ),
    )


def _minimax(
    work: GridState,
    depth: int,
    record: bool,
    maximizing: bool,
    alpha: int,
    beta: int,
    context: _SearchContext,
) -> int:
    context.nodes += 1
    context.max_ply = max(context.max_ply, context.root_depth - depth)
    _maybe_emit_batch(context)
    if depth == 0 or work.winner() is not None:
        context.eval_calls += 1
        return evaluate(work)

    side = PLAYER_A if maximizing else PLAYER_B
    best = -INF if maximizing else INF
    for index in range(work.size * work.size):
        mover = work.whose_move()
        if mover != side:
            raise InconsistentMoveOrder(
                f"expected {side_name(side)} to move at depth {depth} "
                f"before square {index}, found {side_name(mover)}"
            )
        if not work.is_legal_move(side, index):
            continue
        with _applied(work, side, index):
            value = _minimax(work, depth - 1, False, not maximizing, alpha, beta, context)
            if (value > best) if maximizing else (value < best):
                best = value
                if record:
                    context.best_move = index
                if maximizing:
                    alpha = max(alpha, best)
                else:
                    beta = min(beta, best)
                if alpha >= beta:
                    context.cutoffs += 1
                    return best
    return best


def search_move(
    grid: GridState,
    depth: int = SEARCH_DEPTH,
    side: Optional[str] = None,
    telemetry_sink: Optional[TelemetrySink] = None,
) -> SearchResult:
    """Search GRID to DEPTH plies for SIDE (default: the side to move).

    GRID itself is never modified; the search runs on a copy.  A won grid
    yields no move.  Asking for a side whose turn it is not raises
    InvalidMove.
    """
    if side is None:
        side = grid.whose_move()
    if side not in (PLAYER_A, PLAYER_B):
        raise InvalidMove(f"invalid side: {side!r}")
    depth = max(1, depth)
    context = _SearchContext(start=time.perf_counter(), root_depth=depth, sink=telemetry_sink)
    emit_dataclass_event(
        telemetry_sink,
        "search_start",
        SearchStartEvent(state_key=grid_key(grid), side=side, depth=depth),
    )

    if grid.winner() is not None:
        score = evaluate(grid)
    elif grid.whose_move() != side:
        raise InvalidMove(f"it is not {side_name(side)}'s move")
    else:
        work = grid.copy()
        score = _minimax(work, depth, True, side == PLAYER_A, -INF, INF, context)

    result = SearchResult(
        best_move=context.best_move,
        score=score,
        depth=depth,
        nodes=context.nodes,
        cutoffs=context.cutoffs,
        elapsed_ms=_elapsed_ms(context),
    )
    logger.debug(
        "search %s depth=%d move=%s score=%d nodes=%d cutoffs=%d elapsed_ms=%d",
        side_name(side),
        depth,
        result.best_move,
        result.score,
        result.nodes,
        result.cutoffs,
        result.elapsed_ms,
    )
    emit_dataclass_event(
        telemetry_sink,
        "search_end",
        SearchEndEvent(
            best_move=result.best_move,
            score=result.score,
            depth=result.depth,
            nodes=result.nodes,
            cutoffs=result.cutoffs,
            elapsed_ms=result.elapsed_ms,
        ),
    )
    return result


def choose_move(
    grid: GridState,
    depth: int = SEARCH_DEPTH,
    side: Optional[str] = None,
    telemetry_sink: Optional[TelemetrySink] = None,
) -> Optional[int]:
    """Best square index for SIDE, or None if the game is already won."""
    return search_move(grid, depth=depth, side=side, telemetry_sink=telemetry_sink).best_move
