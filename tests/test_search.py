import random
import unittest
from unittest.mock import patch

from jump61_engine import (
    PLAYER_A,
    PLAYER_B,
    GridState,
    InconsistentMoveOrder,
    InvalidMove,
)
from jump61_search import INF, WIN_VALUE, choose_move, evaluate, search_move


def plain_minimax(grid, depth, maximizing):
    if depth == 0 or grid.winner() is not None:
        return evaluate(grid), None
    side = PLAYER_A if maximizing else PLAYER_B
    best = -INF if maximizing else INF
    best_move = None
    for index in grid.legal_moves(side):
        child = grid.copy()
        child.place_spot(side, index)
        value, _ = plain_minimax(child, depth - 1, not maximizing)
        if (value > best) if maximizing else (value < best):
            best = value
            best_move = index
    return best, best_move


def random_positions(size, count, seed, max_plies=12):
    rng = random.Random(seed)
    out = []
    while len(out) < count:
        grid = GridState(size)
        for _ in range(rng.randint(0, max_plies)):
            if grid.winner() is not None:
                break
            side = grid.whose_move()
            grid.place_spot(side, rng.choice(grid.legal_moves(side)))
        if grid.winner() is None:
            out.append(grid)
    return out


def a_wins_in_one():
    grid = GridState(2)
    grid.set_cell(1, 1, 2, PLAYER_A)
    grid.set_cell(2, 1, 2, PLAYER_B)
    return grid


class TestEvaluate(unittest.TestCase):
    def test_empty_grid_is_even(self):
        self.assertEqual(evaluate(GridState(3)), 0)

    def test_full_squares_count_double(self):
        grid = GridState(3)
        grid.set_cell(1, 1, 2, PLAYER_A)
        self.assertEqual(evaluate(grid), 2)
        grid.set_cell(2, 2, 1, PLAYER_B)
        self.assertEqual(evaluate(grid), 1)
        grid.set_cell(1, 2, 3, PLAYER_B)
        self.assertEqual(evaluate(grid), -1)

    def test_won_grid_scores_win_value(self):
        grid = GridState(2)
        grid.add_spot(PLAYER_B, 1, 1)
        grid.add_spot(PLAYER_A, 1, 2)
        grid.add_spot(PLAYER_B, 2, 1)
        grid.add_spot(PLAYER_B, 1, 2)
        self.assertEqual(evaluate(grid), -WIN_VALUE)


class TestSearch(unittest.TestCase):
    def test_finds_immediate_win_for_player_a(self):
        grid = a_wins_in_one()
        result = search_move(grid, depth=3)
        self.assertEqual(result.best_move, 0)
        self.assertEqual(result.score, WIN_VALUE)

    def test_finds_immediate_win_for_player_b(self):
        grid = GridState(2)
        grid.set_cell(1, 1, 2, PLAYER_B)
        grid.set_cell(2, 1, 2, PLAYER_A)
        grid.set_cell(2, 2, 2, PLAYER_A)
        self.assertEqual(grid.whose_move(), PLAYER_B)
        result = search_move(grid, depth=3, side=PLAYER_B)
        self.assertEqual(result.best_move, 0)
        self.assertEqual(result.score, -WIN_VALUE)

    def test_search_does_not_change_grid(self):
        for grid in random_positions(4, 5, seed=7):
            before = grid.copy()
            depth = grid.history_depth()
            choose_move(grid, depth=3)
            self.assertEqual(grid, before)
            self.assertEqual(grid.history_depth(), depth)

    def test_search_is_deterministic_and_legal(self):
        for grid in random_positions(4, 5, seed=11):
            first = search_move(grid, depth=2)
            second = search_move(grid, depth=2)
            self.assertEqual((first.best_move, first.score), (second.best_move, second.score))
            self.assertTrue(grid.is_legal_move(grid.whose_move(), first.best_move))

    def test_pruning_matches_plain_minimax(self):
        for size, depth in ((3, 3), (4, 2)):
            for grid in random_positions(size, 6, seed=size * 10 + depth):
                maximizing = grid.whose_move() == PLAYER_A
                expected_score, expected_move = plain_minimax(grid, depth, maximizing)
                result = search_move(grid, depth=depth)
                self.assertEqual(result.score, expected_score)
                self.assertEqual(result.best_move, expected_move)

    def test_wrong_side_is_rejected(self):
        with self.assertRaises(InvalidMove):
            choose_move(GridState(3), side=PLAYER_B)

    def test_won_grid_has_no_move(self):
        grid = GridState(2)
        grid.add_spot(PLAYER_B, 1, 1)
        grid.add_spot(PLAYER_A, 1, 2)
        grid.add_spot(PLAYER_B, 2, 1)
        grid.add_spot(PLAYER_B, 1, 2)
        result = search_move(grid)
        self.assertIsNone(result.best_move)
        self.assertEqual(result.score, -WIN_VALUE)

    def test_depth_is_at_least_one(self):
        result = search_move(GridState(3), depth=0)
        self.assertEqual(result.depth, 1)
        self.assertEqual(result.best_move, 0)
        self.assertGreater(result.nodes, 1)

    def test_inconsistent_move_order_is_a_bug_not_a_game_error(self):
        with patch.object(GridState, "undo", lambda self: None):
            with self.assertRaises(InconsistentMoveOrder):
                search_move(GridState(3), depth=2)

    def test_search_logs_summary(self):
        with self.assertLogs("jump61_search", level="DEBUG") as captured:
            search_move(a_wins_in_one(), depth=2)
        self.assertTrue(any("move=0" in line for line in captured.output))


if __name__ == "__main__":
    unittest.main()
