"""Command-line entry point for Jump61."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional, TextIO

from jump61_engine import DEFAULT_SIZE, MAX_SIZE, MIN_SIZE
from jump61_game import VERSION, Game, TextReporter, TextSource
from jump61_search import SEARCH_DEPTH
from jump61_telemetry import StreamTelemetrySink, TelemetrySink

LOG_FORMAT = "[%(levelname)s] %(message)s"


def log_level(debug: int) -> int:
    if debug <= 0:
        return logging.WARNING
    if debug == 1:
        return logging.INFO
    return logging.DEBUG


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jump61",
        description="Play Jump61, a chain-reaction territory game, against the computer or another player.",
    )
    parser.add_argument("inputs", nargs="*", metavar="FILE", help="command files to read in order ('-' = standard input)")
    parser.add_argument("--display", action="store_true", help="use the graphical board instead of text commands")
    parser.add_argument("--strict", action="store_true", help="stop with exit code 1 at the first error")
    parser.add_argument("--log", action="store_true", help="echo each command as it is read")
    parser.add_argument("--version", action="store_true", help="print the version and exit")
    parser.add_argument("--debug", type=int, default=0, metavar="LEVEL", help="debug output level (0-2, default: 0)")
    parser.add_argument("--size", type=int, default=DEFAULT_SIZE, help=f"board size (default: {DEFAULT_SIZE})")
    parser.add_argument(
        "--depth",
        type=int,
        default=SEARCH_DEPTH,
        help=f"computer search depth in moves (default: {SEARCH_DEPTH})",
    )
    parser.add_argument("--telemetry", metavar="PATH", help="append search telemetry as JSON lines to PATH")
    return parser


def open_inputs(names: List[str]) -> Optional[List[TextIO]]:
    streams: List[TextIO] = []
    for name in names:
        if name == "-":
            streams.append(sys.stdin)
            continue
        try:
            streams.append(open(name, encoding="utf-8"))
        except OSError:
            print(f"Could not open {name}", file=sys.stderr)
            _close_all(streams)
            return None
    return streams or [sys.stdin]


def _close_all(streams: List[TextIO]) -> None:
    for stream in streams:
        if stream is not sys.stdin:
            stream.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=log_level(args.debug), format=LOG_FORMAT)

    if args.version:
        print(f"Version {VERSION}", file=sys.stderr)
        return 0
    if not MIN_SIZE <= args.size <= MAX_SIZE:
        print(f"--size must be between {MIN_SIZE} and {MAX_SIZE}", file=sys.stderr)
        return 2
    if args.depth < 1:
        print("--depth must be at least 1", file=sys.stderr)
        return 2

    if args.display:
        from jump61_gui import main as gui_main

        return gui_main(size=args.size, depth=args.depth)

    streams = open_inputs(args.inputs)
    if streams is None:
        return 2

    sink: Optional[TelemetrySink] = None
    try:
        if args.telemetry:
            try:
                sink = StreamTelemetrySink(open(args.telemetry, "a", encoding="utf-8"), close_stream=True)
            except OSError as exc:
                print(f"Could not open telemetry file: {exc}", file=sys.stderr)
                return 2
        game = Game(
            TextSource(streams),
            TextReporter(),
            log_commands=args.log,
            strict=args.strict,
            size=args.size,
            depth=args.depth,
            telemetry_sink=sink,
        )
        return game.play()
    finally:
        if sink is not None:
            sink.close()
        _close_all(streams)


if __name__ == "__main__":
    raise SystemExit(main())
