"""Deterministic benchmark harness for the Jump61 search."""

from __future__ import annotations

import argparse
import gc
import math
import platform
import random
import statistics
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from jump61_engine import DEFAULT_SIZE, MAX_SIZE, MIN_SIZE, GridState, grid_key, key_to_grid
from jump61_search import SEARCH_DEPTH, search_move


def _generate_positions(*, positions: int, max_plies: int, size: int, seed: int) -> List[GridState]:
    rng = random.Random(seed)
    out: List[GridState] = []
    while len(out) < positions:
        grid = GridState(size)
        plies = rng.randint(0, max_plies)
        for _ in range(plies):
            if grid.winner() is not None:
                break
            side = grid.whose_move()
            grid.place_spot(side, rng.choice(grid.legal_moves(side)))
        if grid.winner() is None:
            out.append(grid.copy())
    return out


def _load_positions(path: Path, limit: int) -> List[GridState]:
    grids: List[GridState] = []
    with path.open("r", encoding="utf-8") as handle:
        for line_no, raw in enumerate(handle, start=1):
            key = raw.strip()
            if not key:
                continue
            grid = key_to_grid(key)
            if grid is None:
                raise ValueError(f"invalid grid key at line {line_no}: {key!r}")
            if grid.winner() is not None:
                continue
            grids.append(grid)
            if len(grids) >= limit:
                break
    return grids


def _save_positions(path: Path, positions: Sequence[GridState]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        for grid in positions:
            handle.write(grid_key(grid) + "\n")


def _percentile(values: Sequence[float], percentile: float) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    if len(ordered) == 1:
        return float(ordered[0])
    rank = (len(ordered) - 1) * percentile
    lo = math.floor(rank)
    hi = math.ceil(rank)
    if lo == hi:
        return float(ordered[lo])
    frac = rank - lo
    return float(ordered[lo] * (1.0 - frac) + ordered[hi] * frac)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Deterministic Jump61 search benchmark")
    parser.add_argument("--positions", type=int, default=20, help="number of positions (default: 20)")
    parser.add_argument("--max-plies", type=int, default=30, help="max random plies from start (default: 30)")
    parser.add_argument("--size", type=int, default=DEFAULT_SIZE, help=f"board size (default: {DEFAULT_SIZE})")
    parser.add_argument("--seed", type=int, default=12345, help="random seed for position generation")
    parser.add_argument("--depth", type=int, default=SEARCH_DEPTH, help=f"search depth (default: {SEARCH_DEPTH})")
    parser.add_argument("--repeat", type=int, default=1, help="benchmark repeats for p50/p95 summaries")
    parser.add_argument("--warmup", type=int, default=2, help="number of warmup searches per repeat (not counted)")
    parser.add_argument("--no-gc", action="store_true", help="disable GC during benchmark loop")
    parser.add_argument(
        "--save-positions",
        type=Path,
        default=None,
        help="write sampled benchmark positions (grid keys) to file",
    )
    parser.add_argument(
        "--load-positions",
        type=Path,
        default=None,
        help="load benchmark positions (grid keys) from file",
    )
    args = parser.parse_args(argv)

    if args.positions <= 0:
        print("--positions must be > 0")
        return 2
    if args.max_plies < 0:
        print("--max-plies must be >= 0")
        return 2
    if not MIN_SIZE <= args.size <= MAX_SIZE:
        print(f"--size must be between {MIN_SIZE} and {MAX_SIZE}")
        return 2
    if args.depth <= 0:
        print("--depth must be > 0")
        return 2
    if args.repeat <= 0:
        print("--repeat must be > 0")
        return 2
    if args.warmup < 0:
        print("--warmup must be >= 0")
        return 2
    if args.load_positions is not None and not args.load_positions.exists():
        print(f"--load-positions not found: {args.load_positions}")
        return 2

    if args.load_positions is not None:
        try:
            positions = _load_positions(args.load_positions, args.positions)
        except ValueError as exc:
            print(f"failed to load positions: {exc}")
            return 2
        if len(positions) < args.positions:
            print(
                f"--load-positions provided only {len(positions)} usable unfinished grids; "
                f"need {args.positions}"
            )
            return 2
    else:
        positions = _generate_positions(
            positions=args.positions,
            max_plies=args.max_plies,
            size=args.size,
            seed=args.seed,
        )
    if args.save_positions is not None:
        _save_positions(args.save_positions, positions)

    print(
        f"python={sys.version.split()[0]} platform={platform.platform()} "
        f"depth={args.depth} repeats={args.repeat} warmup={args.warmup}"
    )
    print(f"rep idx side nodes cutoffs search_ms wall_ms best score (positions={len(positions)} seed={args.seed})")

    gc_was_enabled = gc.isenabled()
    repeat_summaries: List[Dict[str, float]] = []
    if args.no_gc and gc_was_enabled:
        gc.disable()
    try:
        for rep in range(1, args.repeat + 1):
            for warm_grid in positions[: min(args.warmup, len(positions))]:
                search_move(warm_grid, depth=args.depth)

            total_nodes = 0
            total_cutoffs = 0
            total_search_ms = 0
            wall_start_ns = time.perf_counter_ns()

            for idx, grid in enumerate(positions, start=1):
                start_ns = time.perf_counter_ns()
                result = search_move(grid, depth=args.depth)
                wall_ms = (time.perf_counter_ns() - start_ns) // 1_000_000
                total_nodes += result.nodes
                total_cutoffs += result.cutoffs
                total_search_ms += result.elapsed_ms
                print(
                    f"{rep:>3d} {idx:03d} {grid.whose_move():>4} {result.nodes:>9d} {result.cutoffs:>7d} "
                    f"{result.elapsed_ms:>9d} {int(wall_ms):>7d} {str(result.best_move):>4} {result.score:>+6d}"
                )

            total_wall_ms = max(1, (time.perf_counter_ns() - wall_start_ns) // 1_000_000)
            nps_wall = int(total_nodes * 1000 / total_wall_ms)
            avg_search_ms = total_search_ms / len(positions)
            avg_nodes = total_nodes / len(positions)
            repeat_summaries.append(
                {
                    "total_nodes": float(total_nodes),
                    "total_wall_ms": float(total_wall_ms),
                    "nps_wall": float(nps_wall),
                    "avg_search_ms": float(avg_search_ms),
                    "avg_nodes": float(avg_nodes),
                }
            )
            print(
                "summary "
                f"rep={rep} positions={len(positions)} total_nodes={total_nodes} cutoffs={total_cutoffs} "
                f"total_search_ms={total_search_ms} total_wall_ms={total_wall_ms} "
                f"nps_wall={nps_wall} avg_search_ms={avg_search_ms:.1f} avg_nodes={avg_nodes:.1f}"
            )
    finally:
        if args.no_gc and gc_was_enabled:
            gc.enable()

    if args.repeat > 1:
        def _print_dist(name: str, key: str, as_int: bool = False) -> None:
            values = [summary[key] for summary in repeat_summaries]
            p50 = _percentile(values, 0.50)
            p95 = _percentile(values, 0.95)
            mean = statistics.fmean(values)
            if as_int:
                print(
                    f"dist {name} min={int(min(values))} p50={int(round(p50))} "
                    f"p95={int(round(p95))} max={int(max(values))} mean={int(round(mean))}"
                )
            else:
                print(
                    f"dist {name} min={min(values):.2f} p50={p50:.2f} "
                    f"p95={p95:.2f} max={max(values):.2f} mean={mean:.2f}"
                )

        _print_dist("nps_wall", "nps_wall", as_int=True)
        _print_dist("avg_nodes", "avg_nodes")
        _print_dist("avg_search_ms", "avg_search_ms")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
