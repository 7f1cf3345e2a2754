import os
import queue
import tempfile
import types
import unittest
from unittest.mock import patch

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

try:
    from PySide6.QtCore import QSettings
    from PySide6.QtWidgets import QApplication

    import jump61_gui as gui_mod
    import jump61_search as search_mod
    from jump61_engine import PLAYER_A, PLAYER_B, GridState
    from jump61_search import SearchResult, search_move

    HAS_QT = True
except Exception:
    HAS_QT = False


if HAS_QT:
    class _DummyWorker:
        def __init__(self) -> None:
            self.latest_request_id = 0
            self.search_calls = []
            self.closed = False

        def set_latest_request_id(self, request_id: int) -> None:
            self.latest_request_id = request_id

        def search(self, *args) -> None:
            self.search_calls.append(args)

        def close(self) -> None:
            self.closed = True


    def _fake_setup_search(window: "gui_mod.Jump61Window") -> None:
        window.search_worker = _DummyWorker()
        window.search_worker.set_latest_request_id(window.search_request_id)
        window.search_requested.connect(window.search_worker.search)


@unittest.skipUnless(HAS_QT, "PySide6 is required for GUI integration tests")
class TestGUIIntegration(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.app = QApplication.instance() or QApplication([])

    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.prev_format = QSettings.defaultFormat()
        QSettings.setDefaultFormat(QSettings.IniFormat)
        QSettings.setPath(QSettings.IniFormat, QSettings.UserScope, self.temp_dir.name)
        QSettings.setPath(QSettings.NativeFormat, QSettings.UserScope, self.temp_dir.name)

        self.org_patch = patch.object(gui_mod, "SETTINGS_ORG", "jump61_test_org")
        self.app_patch = patch.object(gui_mod, "SETTINGS_APP", "jump61_test_app")
        self.setup_patch = patch.object(gui_mod.Jump61Window, "_setup_search", _fake_setup_search)
        self.org_patch.start()
        self.app_patch.start()
        self.setup_patch.start()

        self.window = gui_mod.Jump61Window(depth=1)
        self.window.ai_timer.stop()

    def tearDown(self) -> None:
        if self.window is not None:
            self.window.close()
            self.app.processEvents()
        self.setup_patch.stop()
        self.app_patch.stop()
        self.org_patch.stop()
        QSettings.setDefaultFormat(self.prev_format)
        self.temp_dir.cleanup()

    def _click(self, row: int, col: int) -> None:
        grid = self.window.grid
        self.window.handle_cell_click(self.window.cell_buttons[grid.index(row, col)])

    def _finish_search(self, call=None) -> None:
        grid, side, depth, request_id = call or self.window.search_worker.search_calls[-1]
        self.window.on_search_result(request_id, search_move(grid, depth, side))

    def test_click_places_spot_and_requests_computer_move(self) -> None:
        self._click(1, 1)
        grid = self.window.grid
        self.assertEqual(grid.get(1, 1).spots, 2)
        self.assertEqual(grid.whose_move(), PLAYER_B)
        self.assertTrue(self.window.ai_timer.isActive())
        self.assertEqual(self.window.cell_buttons[0].property("owner"), "a")
        self.assertEqual(self.window.cell_buttons[0].text(), "2")

        self.window.ai_timer.stop()
        self.window.request_ai_move()
        self.assertTrue(self.window.searching)
        searched, side, depth, request_id = self.window.search_worker.search_calls[-1]
        self.assertEqual(searched, grid)
        self.assertIsNot(searched, grid)
        self.assertEqual((side, depth, request_id), (PLAYER_B, 1, self.window.search_request_id))
        self.assertEqual(grid.whose_move(), PLAYER_B)
        self.assertIn("thinking", self.window.turn_label.text())

        self._finish_search()
        self.assertFalse(self.window.searching)
        self.assertEqual(grid.whose_move(), PLAYER_A)
        self.assertEqual(grid.owned_count(PLAYER_B), 1)
        self.assertEqual(grid.total_spots(), 36 + 2)

    def test_undo_steps_back_over_computer_reply(self) -> None:
        self._click(1, 1)
        self.window.ai_timer.stop()
        self.window.request_ai_move()
        self._finish_search()
        self.window.undo_move()
        self.assertEqual(self.window.grid, GridState(6))
        self.assertFalse(self.window.undo_button.isEnabled())

        self.window.undo_move()
        self.assertEqual(self.window.message, "Nothing to undo.")

    def test_clicks_and_undo_respond_while_search_pending(self) -> None:
        self._click(1, 1)
        self.window.ai_timer.stop()
        self.window.request_ai_move()
        pending = self.window.search_worker.search_calls[-1]

        self.window.undo_move()
        self.assertFalse(self.window.searching)
        self.assertEqual(self.window.grid, GridState(6))
        self.assertEqual(self.window.search_worker.latest_request_id, self.window.search_request_id)

        self._click(2, 2)
        self.window.ai_timer.stop()
        self.assertEqual(self.window.grid.get(2, 2).spots, 2)

        self._finish_search(pending)
        self.assertEqual(self.window.grid.total_spots(), 36 + 1)
        self.assertEqual(self.window.grid.whose_move(), PLAYER_B)

    def test_result_for_changed_grid_is_discarded(self) -> None:
        self._click(1, 1)
        self.window.ai_timer.stop()
        self.window.request_ai_move()
        self.window.grid.place_spot(PLAYER_B, 3, 3)
        snapshot = self.window.grid.copy()

        self._finish_search()
        self.assertFalse(self.window.searching)
        self.assertEqual(self.window.grid, snapshot)
        self.assertFalse(self.window.ai_timer.isActive())

    def test_search_progress_and_failure_shown(self) -> None:
        self._click(1, 1)
        self.window.ai_timer.stop()
        self.window.request_ai_move()
        request_id = self.window.search_request_id
        self.window.on_search_progress(request_id, 2048, 5)
        self.assertIn("2048 positions", self.window.turn_label.text())
        self.window.on_search_progress(request_id - 1, 4096, 5)
        self.assertIn("2048 positions", self.window.turn_label.text())

        self.window.on_search_failed(request_id, "InconsistentMoveOrder: bad order")
        self.assertFalse(self.window.searching)
        self.assertIn("Search failed", self.window.message_label.text())
        self.assertEqual(self.window.grid.whose_move(), PLAYER_B)

    def test_turning_computer_off_cancels_search(self) -> None:
        self._click(1, 1)
        self.window.ai_timer.stop()
        self.window.request_ai_move()
        pending = self.window.search_worker.search_calls[-1]
        self.window.ai_b_check.setChecked(False)
        self.assertFalse(self.window.searching)

        self._finish_search(pending)
        self.assertEqual(self.window.grid.whose_move(), PLAYER_B)
        self._click(2, 2)
        self.assertEqual(self.window.grid.get(2, 2).side, PLAYER_B)

    def test_clicks_ignored_on_computer_turn(self) -> None:
        self.window.ai_a_check.setChecked(True)
        self.window.ai_timer.stop()
        self._click(2, 2)
        self.assertEqual(self.window.grid, GridState(6))

    def test_illegal_click_shows_message(self) -> None:
        self.window.ai_b_check.setChecked(False)
        self._click(1, 1)
        self._click(1, 1)
        self.assertEqual(self.window.grid.get(1, 1).spots, 2)
        self.assertIn("belongs to Player A", self.window.message_label.text())

    def test_new_game_resizes_board(self) -> None:
        self.window.size_spin.setValue(3)
        self.window.reset_game()
        self.window.ai_timer.stop()
        self.assertEqual(self.window.grid.size, 3)
        self.assertEqual(len(self.window.cell_buttons), 9)

    def test_win_is_shown_and_board_locked(self) -> None:
        self.window.ai_b_check.setChecked(False)
        self.window.size_spin.setValue(2)
        self.window.reset_game()
        for row, col in ((1, 1), (2, 2), (1, 1), (2, 2)):
            self._click(row, col)
        self.assertEqual(self.window.grid.winner(), PLAYER_B)
        self.assertEqual(self.window.turn_label.text(), "Player B wins!")
        self.assertFalse(any(button.isEnabled() for button in self.window.cell_buttons))

    def test_settings_persist_across_windows(self) -> None:
        self.window.size_spin.setValue(4)
        self.window.depth_spin.setValue(2)
        self.window.ai_a_check.setChecked(True)
        self.window.ai_b_check.setChecked(False)
        self.window.ai_timer.stop()
        self.window._save_persistent_settings()
        self.window.close()
        self.window = None

        restored = gui_mod.Jump61Window()
        restored.ai_timer.stop()
        self.assertEqual(restored.size_spin.value(), 4)
        self.assertEqual(restored.depth_spin.value(), 2)
        self.assertTrue(restored.ai_a_check.isChecked())
        self.assertFalse(restored.ai_b_check.isChecked())
        self.assertEqual(restored.grid.size, 4)

        settings = QSettings(gui_mod.SETTINGS_ORG, gui_mod.SETTINGS_APP)
        self.assertIsNotNone(settings.value("window/geometry"))
        restored.ai_timer.stop()
        restored.close()
        self.window = None


@unittest.skipUnless(HAS_QT, "PySide6 is required for GUI integration tests")
class TestSearchProcessWorker(unittest.TestCase):
    def _run(self, commands, latest_request_id: int) -> list:
        command_queue: "queue.Queue[dict]" = queue.Queue()
        for cmd in commands:
            command_queue.put(cmd)
        command_queue.put({"type": "shutdown"})
        events: "queue.Queue[tuple]" = queue.Queue()
        gui_mod._search_process_worker(command_queue, events, types.SimpleNamespace(value=latest_request_id))
        drained = []
        while not events.empty():
            drained.append(events.get_nowait())
        return drained

    def test_reports_progress_and_result_for_latest_request(self) -> None:
        grid = GridState(3)
        grid.place_spot(PLAYER_A, 1, 1)
        search = {"type": "search", "grid": grid.copy(), "side": PLAYER_B, "depth": 2}
        with patch.object(search_mod, "TELEMETRY_NODE_MASK", 0):
            events = self._run([dict(search, request_id=1), dict(search, request_id=2)], 2)

        self.assertNotIn(1, [event[1] for event in events])
        progress = [event for event in events if event[0] == "progress"]
        self.assertTrue(progress)
        self.assertEqual(progress[0][2], 1)
        kind, request_id, result = events[-1]
        self.assertEqual((kind, request_id), ("result", 2))
        self.assertIsInstance(result, SearchResult)
        expected = search_move(grid, 2, PLAYER_B)
        self.assertEqual((result.best_move, result.score, result.nodes), (expected.best_move, expected.score, expected.nodes))

    def test_reports_errors(self) -> None:
        grid = GridState(3)
        events = self._run(
            [
                {"type": "search", "grid": "not a grid", "side": PLAYER_A, "depth": 1, "request_id": 4},
                {"type": "search", "grid": grid, "side": PLAYER_B, "depth": 1, "request_id": 4},
            ],
            4,
        )
        self.assertEqual(events[0], ("error", 4, "Invalid search grid payload"))
        self.assertEqual(events[1][:2], ("error", 4))
        self.assertIn("InvalidMove", events[1][2])


if __name__ == "__main__":
    unittest.main()
