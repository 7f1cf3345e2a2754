"""PySide6 GUI for Jump61."""

from __future__ import annotations

import multiprocessing as mp
import queue
import sys
from typing import List, Optional

from PySide6.QtCore import QObject, Qt, QSettings, QTimer, Signal, Slot
from PySide6.QtGui import QFont
from PySide6.QtWidgets import (
    QApplication,
    QCheckBox,
    QFrame,
    QGridLayout,
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QPushButton,
    QSpinBox,
    QVBoxLayout,
    QWidget,
)

from jump61_engine import (
    DEFAULT_SIZE,
    MAX_SIZE,
    MIN_SIZE,
    PLAYER_A,
    PLAYER_B,
    UNCLAIMED,
    GameError,
    GridState,
    opponent,
    side_name,
)
from jump61_search import SEARCH_DEPTH, SearchResult, search_move
from jump61_telemetry import CallbackTelemetrySink, TelemetryEnvelope

AI_MOVE_DELAY_MS = 150
SEARCH_EVENT_POLL_MS = 10
SEARCH_CLOSE_TIMEOUT_MS = 500
MAX_GUI_DEPTH = 5
SETTINGS_ORG = "jump61"
SETTINGS_APP = "jump61"

_OWNER_PROPERTY = {PLAYER_A: "a", PLAYER_B: "b", UNCLAIMED: "none"}


def _search_process_worker(
    commands: "mp.Queue[dict]",
    events: "mp.Queue[tuple]",
    latest_request_id: "mp.Value",
) -> None:
    def _put_event(event: tuple) -> None:
        try:
            events.put_nowait(event)
        except queue.Full:
            return

    def _is_stale(request_id: int) -> bool:
        return request_id != latest_request_id.value

    while True:
        cmd = commands.get()
        cmd_type = cmd.get("type")
        if cmd_type == "shutdown":
            break
        if cmd_type != "search":
            continue
        request_id = int(cmd.get("request_id", 0))
        grid = cmd.get("grid")
        if not isinstance(grid, GridState):
            _put_event(("error", request_id, "Invalid search grid payload"))
            continue
        if _is_stale(request_id):
            continue

        def _on_telemetry(envelope: TelemetryEnvelope, rid: int = request_id) -> None:
            if envelope.event != "node_batch":
                return
            _put_event(("progress", rid, int(envelope.data["nodes_total"]), int(envelope.data["elapsed_ms"])))

        try:
            result = search_move(
                grid,
                int(cmd.get("depth", SEARCH_DEPTH)),
                cmd.get("side"),
                telemetry_sink=CallbackTelemetrySink(_on_telemetry),
            )
        except Exception as exc:
            _put_event(("error", request_id, f"{type(exc).__name__}: {exc}"))
            continue
        if _is_stale(request_id):
            continue
        _put_event(("result", request_id, result))


class SearchWorker(QObject):
    """Runs computer searches in a child process and relays the results as signals."""

    result_ready = Signal(int, object)
    progress = Signal(int, int, int)
    search_failed = Signal(int, str)

    def __init__(self) -> None:
        super().__init__()
        self.latest_request_id = 0
        self._command_queue: "mp.Queue[dict]" = mp.Queue()
        self._event_queue: "mp.Queue[tuple]" = mp.Queue(maxsize=512)
        self._latest_request_id_value = mp.Value("i", 0, lock=False)
        self._process: Optional[mp.Process] = None
        self._active_request_id: Optional[int] = None
        self._closed = False
        self._event_timer = QTimer(self)
        self._event_timer.setInterval(SEARCH_EVENT_POLL_MS)
        self._event_timer.timeout.connect(self._drain_events)
        self._event_timer.start()

    def _ensure_process(self) -> bool:
        if self._closed:
            return False
        if self._process is not None and self._process.is_alive():
            return True
        if self._process is not None:
            self._process.join(timeout=0.05)
            self._process = None
        try:
            process = mp.Process(
                target=_search_process_worker,
                args=(self._command_queue, self._event_queue, self._latest_request_id_value),
                name="jump61-search",
                daemon=True,
            )
            process.start()
        except OSError:
            self._process = None
            return False
        self._process = process
        return True

    def _send_command(self, cmd: dict) -> bool:
        if not self._ensure_process():
            return False
        self._command_queue.put(cmd)
        return True

    def _drain_events(self) -> None:
        while True:
            try:
                event = self._event_queue.get_nowait()
            except queue.Empty:
                break

            kind = event[0] if event else None
            if kind == "progress":
                _, request_id, nodes, elapsed_ms = event
                self.progress.emit(int(request_id), int(nodes), int(elapsed_ms))
                continue
            if kind == "result":
                _, request_id, result = event
                if self._active_request_id == int(request_id):
                    self._active_request_id = None
                self.result_ready.emit(int(request_id), result)
                continue
            if kind == "error":
                _, request_id, text = event
                if self._active_request_id == int(request_id):
                    self._active_request_id = None
                self.search_failed.emit(int(request_id), str(text))

    def set_latest_request_id(self, request_id: int) -> None:
        self.latest_request_id = request_id
        self._latest_request_id_value.value = int(request_id)
        if self._active_request_id is not None and self._active_request_id != int(request_id):
            self._active_request_id = None

    @Slot(object, str, int, int)
    def search(self, grid: GridState, side: str, depth: int, request_id: int) -> None:
        if request_id != self.latest_request_id:
            return
        if not self._send_command(
            {
                "type": "search",
                "grid": grid,
                "side": side,
                "depth": int(depth),
                "request_id": int(request_id),
            }
        ):
            self.search_failed.emit(request_id, "Failed to start search process")
            return
        self._active_request_id = int(request_id)

    def shutdown(self, timeout_ms: int) -> bool:
        self._active_request_id = None
        self._event_timer.stop()
        process = self._process
        if process is None:
            return True
        self._command_queue.put({"type": "shutdown"})
        process.join(timeout=max(0, timeout_ms) / 1000.0)
        if process.is_alive():
            process.terminate()
            process.join(timeout=0.25)
        stopped = not process.is_alive()
        self._process = None
        return stopped

    def close(self) -> None:
        self.shutdown(SEARCH_CLOSE_TIMEOUT_MS)
        self._closed = True


class CellButton(QPushButton):
    def __init__(self, index: int, row: int, col: int, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.index = index
        self.row = row
        self.col = col
        self.setProperty("owner", "none")
        self.setCursor(Qt.PointingHandCursor)
        self.setMinimumSize(48, 48)

    def set_cell(self, side: str, spots: int, capacity: int) -> None:
        self.setText("" if side == UNCLAIMED else str(spots))
        self.setToolTip(f"Row {self.row}, column {self.col}: {spots} of {capacity} before overflow")
        owner = _OWNER_PROPERTY.get(side, "none")
        if self.property("owner") == owner:
            return
        self.setProperty("owner", owner)
        self.style().unpolish(self)
        self.style().polish(self)


class Jump61Window(QMainWindow):
    search_requested = Signal(object, str, int, int)

    def __init__(self, size: Optional[int] = None, depth: Optional[int] = None) -> None:
        super().__init__()
        self.setWindowTitle("Jump61")
        self.setMinimumSize(640, 480)

        self.settings = QSettings(SETTINGS_ORG, SETTINGS_APP)
        self.grid = GridState(DEFAULT_SIZE)
        self.cell_buttons: List[CellButton] = []
        self.last_move_desc = "-"
        self.message = ""
        self.search_request_id = 0
        self.search_target: Optional[GridState] = None
        self.searching = False
        self.search_nodes = 0
        self.closing = False

        self._build_ui()
        self.ai_timer = QTimer(self)
        self.ai_timer.setSingleShot(True)
        self.ai_timer.setInterval(AI_MOVE_DELAY_MS)
        self.ai_timer.timeout.connect(self.request_ai_move)
        self._setup_search()
        self._apply_style()
        self._load_persistent_settings()
        if size is not None:
            self.size_spin.setValue(size)
        if depth is not None:
            self.depth_spin.setValue(depth)

        self.grid.set_notifier(self._on_grid_changed)
        self.reset_game()

    def _build_ui(self) -> None:
        root = QWidget(self)
        self.setCentralWidget(root)
        main_layout = QHBoxLayout(root)
        main_layout.setContentsMargins(18, 18, 18, 18)
        main_layout.setSpacing(16)

        board_frame = QFrame()
        board_frame.setObjectName("Board")
        self.board_layout = QGridLayout(board_frame)
        self.board_layout.setContentsMargins(12, 12, 12, 12)
        self.board_layout.setSpacing(6)
        main_layout.addWidget(board_frame, 1)

        side_widget = QFrame()
        side_widget.setObjectName("SidePanel")
        side_panel = QVBoxLayout(side_widget)
        side_panel.setContentsMargins(12, 12, 12, 12)
        side_panel.setSpacing(12)

        size_label = QLabel("Board size")
        size_label.setObjectName("SideHeader")
        side_panel.addWidget(size_label)

        self.size_spin = QSpinBox()
        self.size_spin.setRange(MIN_SIZE, MAX_SIZE)
        self.size_spin.setValue(DEFAULT_SIZE)
        side_panel.addWidget(self.size_spin)

        depth_label = QLabel("Search depth")
        depth_label.setObjectName("SideHeader")
        side_panel.addWidget(depth_label)

        self.depth_spin = QSpinBox()
        self.depth_spin.setRange(1, MAX_GUI_DEPTH)
        self.depth_spin.setValue(SEARCH_DEPTH)
        side_panel.addWidget(self.depth_spin)

        players_label = QLabel("Computer plays")
        players_label.setObjectName("SideHeader")
        side_panel.addWidget(players_label)

        self.ai_a_check = QCheckBox(side_name(PLAYER_A))
        self.ai_a_check.setChecked(False)
        self.ai_a_check.toggled.connect(lambda _: self._on_players_changed())
        side_panel.addWidget(self.ai_a_check)

        self.ai_b_check = QCheckBox(side_name(PLAYER_B))
        self.ai_b_check.setChecked(True)
        self.ai_b_check.toggled.connect(lambda _: self._on_players_changed())
        side_panel.addWidget(self.ai_b_check)

        self.new_button = QPushButton("New Game")
        self.new_button.setObjectName("ActionButton")
        self.new_button.clicked.connect(self.reset_game)
        side_panel.addWidget(self.new_button)

        self.undo_button = QPushButton("Undo")
        self.undo_button.setObjectName("ActionButton")
        self.undo_button.clicked.connect(self.undo_move)
        side_panel.addWidget(self.undo_button)

        self.turn_label = QLabel("")
        self.turn_label.setObjectName("TurnLabel")
        side_panel.addWidget(self.turn_label)

        self.last_move_label = QLabel("")
        self.last_move_label.setObjectName("LastMove")
        side_panel.addWidget(self.last_move_label)

        self.message_label = QLabel("")
        self.message_label.setObjectName("Message")
        self.message_label.setWordWrap(True)
        side_panel.addWidget(self.message_label)

        side_panel.addStretch(1)
        main_layout.addWidget(side_widget)

    def _rebuild_board(self) -> None:
        for button in self.cell_buttons:
            self.board_layout.removeWidget(button)
            button.deleteLater()
        self.cell_buttons = []
        size = self.grid.size
        for index in range(size * size):
            row, col = self.grid.row(index), self.grid.col(index)
            button = CellButton(index, row, col)
            button.clicked.connect(lambda _, b=button: self.handle_cell_click(b))
            self.board_layout.addWidget(button, row - 1, col - 1)
            self.cell_buttons.append(button)

    def _apply_style(self) -> None:
        app = QApplication.instance()
        if app is not None:
            app.setStyle("Fusion")
            app.setFont(QFont("Avenir", 11))

        self.setStyleSheet(
            """
            QMainWindow { background: #1f2a36; }
            QLabel { color: #eef2f6; }
            QLabel#SideHeader { font-weight: 600; margin-top: 8px; }
            QLabel#TurnLabel { font-size: 14px; font-weight: 700; }
            QLabel#LastMove { color: #c9d3dd; }
            QLabel#Message { color: #f0c27a; }
            QFrame#Board {
                background: #2b3a4a;
                border-radius: 12px;
            }
            QFrame#SidePanel {
                background: rgba(10, 16, 24, 0.4);
                border: 1px solid rgba(255, 255, 255, 0.08);
                border-radius: 14px;
            }
            QPushButton {
                background: #e9edf1;
                border: 2px solid #9aa8b6;
                border-radius: 8px;
                color: #1d2733;
                font-size: 16px;
                font-weight: 700;
            }
            QPushButton:disabled {
                background: #c9d0d7;
                color: #7d8a97;
            }
            QPushButton[owner="a"] {
                background: #e06a5f;
                border-color: #a3392f;
                color: #ffffff;
            }
            QPushButton[owner="b"] {
                background: #5f8fe0;
                border-color: #2f56a3;
                color: #ffffff;
            }
            QPushButton#ActionButton {
                font-size: 12px;
                min-height: 32px;
            }
            QCheckBox { color: #eef2f6; }
            QSpinBox {
                background: #f5f7f9;
                color: #1d2733;
                border-radius: 6px;
                padding: 4px 6px;
            }
            """
        )

    def is_ai(self, side: str) -> bool:
        if side == PLAYER_A:
            return self.ai_a_check.isChecked()
        if side == PLAYER_B:
            return self.ai_b_check.isChecked()
        return False

    def _setup_search(self) -> None:
        self.search_worker = SearchWorker()
        self.search_worker.set_latest_request_id(self.search_request_id)
        self.search_requested.connect(self.search_worker.search)
        self.search_worker.progress.connect(self.on_search_progress)
        self.search_worker.result_ready.connect(self.on_search_result)
        self.search_worker.search_failed.connect(self.on_search_failed)

    def _cancel_search(self) -> None:
        self.ai_timer.stop()
        self.search_request_id += 1
        self.search_worker.set_latest_request_id(self.search_request_id)
        self.searching = False
        self.search_target = None
        self.search_nodes = 0

    def _on_players_changed(self) -> None:
        self._cancel_search()
        self.update_status()
        self.schedule_ai_if_needed()

    def reset_game(self) -> None:
        self._cancel_search()
        self.last_move_desc = "-"
        self.message = ""
        self.grid.clear(self.size_spin.value())
        self.schedule_ai_if_needed()

    def undo_move(self) -> None:
        self._cancel_search()
        if self.grid.history_depth() == 0:
            self.message = "Nothing to undo."
            self.update_status()
            return
        self.message = ""
        self.last_move_desc = "-"
        self.grid.undo()
        # Step back past the computer's reply so the human is to move again.
        mover = self.grid.whose_move()
        if self.is_ai(mover) and not self.is_ai(opponent(mover)) and self.grid.history_depth() > 0:
            self.grid.undo()
        self.schedule_ai_if_needed()

    def handle_cell_click(self, button: CellButton) -> None:
        if self.grid.winner() is not None:
            return
        side = self.grid.whose_move()
        if self.is_ai(side):
            return
        self._cancel_search()
        self.apply_move(side, button.index)

    def apply_move(self, side: str, index: int) -> None:
        try:
            self.grid.place_spot(side, index)
        except GameError as exc:
            self.message = str(exc)
            self.update_status()
            return
        self.message = ""
        self.last_move_desc = f"{side_name(side)}: {self.grid.row(index)} {self.grid.col(index)}"
        self.update_status()
        self.schedule_ai_if_needed()

    def schedule_ai_if_needed(self) -> None:
        if self.closing or self.searching:
            return
        if self.grid.winner() is not None:
            return
        if not self.is_ai(self.grid.whose_move()):
            return
        if not self.ai_timer.isActive():
            self.ai_timer.start()

    def request_ai_move(self) -> None:
        if self.closing or self.searching or self.grid.winner() is not None:
            return
        side = self.grid.whose_move()
        if not self.is_ai(side):
            return
        self.search_request_id += 1
        self.search_worker.set_latest_request_id(self.search_request_id)
        self.search_target = self.grid.copy()
        self.searching = True
        self.search_nodes = 0
        self.update_status()
        self.search_requested.emit(self.search_target, side, self.depth_spin.value(), self.search_request_id)

    @Slot(int, int, int)
    def on_search_progress(self, request_id: int, nodes: int, elapsed_ms: int) -> None:
        if self.closing or request_id != self.search_request_id:
            return
        self.search_nodes = max(self.search_nodes, nodes)
        self.update_status()

    @Slot(int, object)
    def on_search_result(self, request_id: int, result: object) -> None:
        if self.closing or request_id != self.search_request_id:
            return
        if not isinstance(result, SearchResult):
            return
        target = self.search_target
        self.searching = False
        self.search_target = None
        self.search_nodes = 0
        if target is None or target != self.grid:
            self.update_status()
            self.schedule_ai_if_needed()
            return
        side = self.grid.whose_move()
        if result.best_move is None or not self.is_ai(side):
            self.update_status()
            return
        self.apply_move(side, result.best_move)

    @Slot(int, str)
    def on_search_failed(self, request_id: int, error_text: str) -> None:
        if self.closing or request_id != self.search_request_id:
            return
        self.searching = False
        self.search_target = None
        self.search_nodes = 0
        self.message = f"Search failed: {error_text}"
        self.update_status()

    def _on_grid_changed(self, grid: GridState) -> None:
        self.refresh_ui()

    def refresh_ui(self) -> None:
        if len(self.cell_buttons) != self.grid.size * self.grid.size:
            self._rebuild_board()
        for button, cell in zip(self.cell_buttons, self.grid.cells()):
            button.set_cell(cell.side, cell.spots, self.grid.capacity(button.index))
        self.update_status()

    def update_status(self) -> None:
        winner = self.grid.winner()
        if winner is not None:
            self.turn_label.setText(f"{side_name(winner)} wins!")
        else:
            mover = self.grid.whose_move()
            suffix = " (computer)" if self.is_ai(mover) else ""
            if self.searching:
                suffix = " (computer thinking)"
                if self.search_nodes:
                    suffix = f" (computer thinking, {self.search_nodes} positions)"
            self.turn_label.setText(f"{side_name(mover)} to move{suffix}")
        self.last_move_label.setText(f"Last move: {self.last_move_desc}")
        self.message_label.setText(self.message)
        self.undo_button.setEnabled(self.grid.history_depth() > 0)
        for button in self.cell_buttons:
            button.setEnabled(winner is None)

    @staticmethod
    def _to_bool(value: object, default: bool) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, int):
            return value != 0
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in {"1", "true", "yes", "on"}:
                return True
            if lowered in {"0", "false", "no", "off"}:
                return False
        return default

    @staticmethod
    def _to_int(value: object, default: int) -> int:
        try:
            return int(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return default

    def _load_persistent_settings(self) -> None:
        geometry = self.settings.value("window/geometry")
        if geometry is not None:
            self.restoreGeometry(geometry)
        self.size_spin.setValue(self._to_int(self.settings.value("game/size"), self.size_spin.value()))
        self.depth_spin.setValue(self._to_int(self.settings.value("game/depth"), self.depth_spin.value()))
        self.ai_a_check.setChecked(self._to_bool(self.settings.value("players/ai_a"), self.ai_a_check.isChecked()))
        self.ai_b_check.setChecked(self._to_bool(self.settings.value("players/ai_b"), self.ai_b_check.isChecked()))

    def _save_persistent_settings(self) -> None:
        self.settings.setValue("window/geometry", self.saveGeometry())
        self.settings.setValue("game/size", self.size_spin.value())
        self.settings.setValue("game/depth", self.depth_spin.value())
        self.settings.setValue("players/ai_a", self.ai_a_check.isChecked())
        self.settings.setValue("players/ai_b", self.ai_b_check.isChecked())
        self.settings.sync()

    def closeEvent(self, event) -> None:
        self.closing = True
        self._cancel_search()
        self.search_worker.close()
        self._save_persistent_settings()
        super().closeEvent(event)


def main(size: Optional[int] = None, depth: Optional[int] = None) -> int:
    app = QApplication.instance() or QApplication(sys.argv)
    window = Jump61Window(size=size, depth=depth)
    window.show()
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(main())
