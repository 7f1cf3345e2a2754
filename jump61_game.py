"""Game session for Jump61: players, command sources, reporters and the command loop."""

from __future__ import annotations

import logging
import re
import sys
from typing import Callable, Dict, List, Optional, Protocol, Sequence, TextIO

from jump61_engine import (
    DEFAULT_SIZE,
    PLAYER_A,
    PLAYER_B,
    UNCLAIMED,
    GameError,
    GridState,
    InvalidMove,
    parse_side,
    side_name,
)
from jump61_search import SEARCH_DEPTH, choose_move
from jump61_telemetry import TelemetrySink

VERSION = "1.0"

COMMAND_NAMES = (
    "auto",
    "board",
    "clear",
    "depth",
    "dump",
    "help",
    "manual",
    "new",
    "q",
    "quiet",
    "quit",
    "redo",
    "seed",
    "set",
    "size",
    "undo",
    "verbose",
)

MOVE_PATTERN = re.compile(r"(-?\d+)(?:\s*:\s*|\s+)(-?\d+)")

HELP_TEXT = """\
Commands (any unique prefix works; '#' starts a comment):
  R C           add a spot to row R, column C (also R:C)
  auto P        let the computer play for P (a or b)
  manual P      take P's moves from input
  new, clear    start a new game on an empty board
  size N        start a new game on an N x N board (2-10)
  set R C N P   put N spots for P on square R C (0 clears it)
  undo          take back the last change
  depth N       look N moves ahead when the computer plays
  board         show the board with row and column numbers
  dump          show the board in dump format
  verbose       show the board after every move
  quiet         stop showing the board after every move
  seed N        accepted for compatibility; play is deterministic
  help          show this message
  quit, q       leave the program"""

logger = logging.getLogger(__name__)


class MissingArgument(GameError):
    """A command was given fewer arguments than it needs."""


class BadNumber(GameError):
    """A command argument that should be an integer is not one."""


def _arg(args: Sequence[str], position: int) -> str:
    if position >= len(args):
        raise MissingArgument(f"missing argument {position + 1}")
    return args[position]


def _int_arg(args: Sequence[str], position: int) -> int:
    text = _arg(args, position)
    try:
        return int(text)
    except ValueError:
        raise BadNumber(f"not a number: {text}") from None


class Reporter(Protocol):
    def announce_win(self, side: str) -> None:
        ...

    def announce_move(self, row: int, col: int) -> None:
        ...

    def msg(self, text: str) -> None:
        ...

    def err(self, text: str) -> None:
        ...


class CommandSource(Protocol):
    def get_command(self, prompt: str) -> Optional[str]:
        ...


class View(Protocol):
    def update(self, grid: GridState) -> None:
        ...


class TextReporter:
    """Reports on text streams; defaults are looked up when writing."""

    def __init__(self, out: Optional[TextIO] = None, errors: Optional[TextIO] = None) -> None:
        self._out = out
        self._errors = errors

    def announce_win(self, side: str) -> None:
        self.msg(f"* {side_name(side)} wins.")

    def announce_move(self, row: int, col: int) -> None:
        self.msg(f"* {row} {col}.")

    def msg(self, text: str) -> None:
        print(text, file=self._out or sys.stdout, flush=True)

    def err(self, text: str) -> None:
        print(text, file=self._errors or sys.stderr, flush=True)


class TextSource:
    """Reads commands a line at a time from a series of streams.

    The prompt is shown only when the current stream is a terminal.
    """

    def __init__(self, streams: Sequence[TextIO], prompt_out: Optional[TextIO] = None) -> None:
        self._streams: List[TextIO] = list(streams)
        self._prompt_out = prompt_out

    def get_command(self, prompt: str) -> Optional[str]:
        while self._streams:
            stream = self._streams[0]
            if _is_interactive(stream):
                print(prompt, end="", file=self._prompt_out or sys.stdout, flush=True)
            line = stream.readline()
            if line:
                return line.strip()
            self._streams.pop(0)
        return None


def _is_interactive(stream: TextIO) -> bool:
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


class Player:
    """Supplies commands for one side."""

    def __init__(self, game: "Game", side: str) -> None:
        self.game = game
        self.side = side

    def get_move(self) -> str:
        raise NotImplementedError


class HumanPlayer(Player):
    def get_move(self) -> str:
        # Non-move commands pass through; illegal moves are re-requested.
        while True:
            command = self.game.get_command()
            match = MOVE_PATTERN.fullmatch(command.strip())
            if match is None:
                return command
            row, col = int(match.group(1)), int(match.group(2))
            if self.game.board.is_legal_move(self.side, row, col):
                return command
            self.game.report_error(f"invalid move: {command.strip()}")
            if self.game.finished:
                return ""


class AIPlayer(Player):
    def __init__(self, game: "Game", side: str, depth: int = SEARCH_DEPTH) -> None:
        super().__init__(game, side)
        self.depth = depth

    def get_move(self) -> str:
        board = self.game.board
        index = choose_move(board, self.depth, self.side, telemetry_sink=self.game.telemetry_sink)
        if index is None:
            raise InvalidMove("game is over")
        return f"{board.row(index)} {board.col(index)}"


class Game:
    """Runs one Jump61 session, reading commands until quit or end of input."""

    def __init__(
        self,
        source: CommandSource,
        reporter: Reporter,
        view: Optional[View] = None,
        *,
        log_commands: bool = False,
        strict: bool = False,
        size: int = DEFAULT_SIZE,
        depth: int = SEARCH_DEPTH,
        telemetry_sink: Optional[TelemetrySink] = None,
    ) -> None:
        self._source = source
        self._reporter = reporter
        self._view = view
        self._log_commands = log_commands
        self._strict = strict
        self.depth = max(1, depth)
        self.telemetry_sink = telemetry_sink
        self.verbose = False
        self._exit: Optional[int] = None
        self._winner_announced = False
        self._board = GridState(size, notifier=self._on_change)
        self._players: Dict[str, Player] = {
            PLAYER_A: HumanPlayer(self, PLAYER_A),
            PLAYER_B: AIPlayer(self, PLAYER_B, self.depth),
        }
        self._commands: Dict[str, Callable[[List[str]], None]] = {
            "auto": self._cmd_auto,
            "board": self._cmd_board,
            "clear": self._cmd_new,
            "depth": self._cmd_depth,
            "dump": self._cmd_dump,
            "help": self._cmd_help,
            "manual": self._cmd_manual,
            "new": self._cmd_new,
            "q": self._cmd_quit,
            "quiet": self._cmd_quiet,
            "quit": self._cmd_quit,
            "redo": self._cmd_redo,
            "seed": self._cmd_seed,
            "set": self._cmd_set,
            "size": self._cmd_size,
            "undo": self._cmd_undo,
            "verbose": self._cmd_verbose,
        }

    @property
    def board(self) -> GridState:
        return self._board

    @property
    def finished(self) -> bool:
        return self._exit is not None

    def player(self, side: str) -> Player:
        return self._players[side]

    def play(self) -> int:
        """Run the command loop; returns the process exit code."""
        self._exit = None
        while self._exit is None:
            winner = self._board.winner()
            if winner is None:
                self._winner_announced = False
                player = self._players[self._board.whose_move()]
                try:
                    command = player.get_move()
                except GameError as exc:
                    self.report_error(str(exc))
                    continue
            else:
                if not self._winner_announced:
                    self._winner_announced = True
                    self._reporter.announce_win(winner)
                command = self.get_command()
            self.execute(command)
        return self._exit

    def prompt(self) -> str:
        if self._board.winner() is not None:
            return "+> "
        return f"{self._board.whose_move()}> "

    def get_command(self) -> str:
        command = self._source.get_command(self.prompt())
        return "quit" if command is None else command

    def execute(self, command: str) -> None:
        """Carry out one command line, reporting any error it causes."""
        if self._log_commands:
            self._reporter.msg(command)
        parts = command.strip().split()
        if not parts or parts[0].startswith("#"):
            return
        logger.debug("command: %s", command.strip())
        try:
            name = self.canonicalize(parts[0].lower())
            handler = self._commands.get(name)
            if handler is None:
                self._cmd_move(parts)
            else:
                handler(parts[1:])
        except MissingArgument:
            self.report_error(f"Argument(s) missing: {command.strip()}")
        except BadNumber:
            self.report_error(f"Bad number in: {command.strip()}")
        except GameError as exc:
            self.report_error(str(exc))

    def canonicalize(self, word: str) -> str:
        """Expand a unique prefix of a command name; other words pass through."""
        if word in self._commands:
            return word
        matches = [name for name in COMMAND_NAMES if name.startswith(word)]
        if len(matches) == 1:
            return matches[0]
        if len(matches) > 1:
            raise GameError(f"{word} is not a unique command abbreviation")
        return word

    def make_move(self, row: int, col: int) -> None:
        side = self._board.whose_move()
        self._board.place_spot(side, row, col)
        self._reporter.announce_move(row, col)
        if self.verbose:
            self._reporter.msg(self._board.to_display_string())

    def report_error(self, text: str) -> None:
        logger.debug("error: %s", text)
        self._reporter.err(text)
        if self._strict:
            self._exit = 1

    def _on_change(self, grid: GridState) -> None:
        if self._view is not None:
            self._view.update(grid)

    def _set_player(self, side: str, player: Player) -> None:
        self._players[side] = player

    def _cmd_move(self, parts: List[str]) -> None:
        match = MOVE_PATTERN.fullmatch(" ".join(parts))
        if match is None:
            if len(parts) == 1 and not parts[0].lstrip("-").isdigit():
                raise GameError(f"Unknown command: {parts[0]}")
            raise GameError(f"Bad move: {' '.join(parts)}")
        self.make_move(int(match.group(1)), int(match.group(2)))

    def _cmd_auto(self, args: List[str]) -> None:
        side = parse_side(_arg(args, 0))
        self._set_player(side, AIPlayer(self, side, self.depth))

    def _cmd_manual(self, args: List[str]) -> None:
        side = parse_side(_arg(args, 0))
        self._set_player(side, HumanPlayer(self, side))

    def _cmd_board(self, args: List[str]) -> None:
        self._reporter.msg(self._board.to_display_string())

    def _cmd_dump(self, args: List[str]) -> None:
        self._reporter.msg(self._board.dump())

    def _cmd_help(self, args: List[str]) -> None:
        self._reporter.msg(HELP_TEXT)

    def _cmd_new(self, args: List[str]) -> None:
        self._board.clear()

    def _cmd_size(self, args: List[str]) -> None:
        self._board.clear(_int_arg(args, 0))

    def _cmd_quit(self, args: List[str]) -> None:
        self._exit = 0

    def _cmd_quiet(self, args: List[str]) -> None:
        self.verbose = False

    def _cmd_verbose(self, args: List[str]) -> None:
        self.verbose = True

    def _cmd_seed(self, args: List[str]) -> None:
        seed = _int_arg(args, 0)
        logger.debug("seed %d ignored; computer play is deterministic", seed)

    def _cmd_depth(self, args: List[str]) -> None:
        depth = _int_arg(args, 0)
        if depth < 1:
            raise GameError("depth must be at least 1")
        self.depth = depth
        for player in self._players.values():
            if isinstance(player, AIPlayer):
                player.depth = depth

    def _cmd_set(self, args: List[str]) -> None:
        row, col, spots = _int_arg(args, 0), _int_arg(args, 1), _int_arg(args, 2)
        side = parse_side(_arg(args, 3)) if spots > 0 else UNCLAIMED
        if not self._board.exists(row, col) or not 0 <= spots <= self._board.capacity(row, col):
            raise GameError(f"invalid request to put {spots} spots on square {row} {col}")
        self._board.set_cell(row, col, spots, side, record=True)

    def _cmd_undo(self, args: List[str]) -> None:
        self._board.undo()

    def _cmd_redo(self, args: List[str]) -> None:
        raise GameError("redo is not supported")
