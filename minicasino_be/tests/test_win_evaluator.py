import unittest
import logging
from decimal import Decimal

from minicasino_be.utils.grid_manager import grid_from_symbols
from minicasino_be.utils.win_evaluator import evaluate_grid, lookup_payout, winning_positions

FILLER = ('crown', 'ring', 'chalice', 'mask', 'purple', 'blue', 'green', 'yellow')


def build_rows(leading, rows=5, cols=6, filler=FILLER):
    """Row-major 5x6 board: ``leading`` symbols first, the rest cycled from ``filler``."""
    flat = list(leading)
    i = 0
    while len(flat) < rows * cols:
        flat.append(filler[i % len(filler)])
        i += 1
    return [flat[r * cols:(r + 1) * cols] for r in range(rows)]


class TestEvaluateGrid(unittest.TestCase):

    def test_full_board_of_one_symbol(self):
        grid = grid_from_symbols([['crown'] * 6 for _ in range(5)])
        wins = evaluate_grid(grid, 100)
        self.assertEqual(len(wins), 1)
        self.assertEqual(wins[0].symbol, 'crown')
        self.assertEqual(wins[0].count, 30)
        # 100 x 5000 x 12
        self.assertEqual(wins[0].payout, Decimal('6000000'))
        self.assertEqual(len(wins[0].positions), 30)

    def test_positions_are_irrelevant(self):
        rows = build_rows(['red'] * 8)
        wins = evaluate_grid(grid_from_symbols(rows), 100)
        self.assertEqual([(w.symbol, w.count) for w in wins], [('red', 8)])
        self.assertEqual(wins[0].payout, Decimal('50'))  # 100 x 0.25 x 2

    def test_below_minimum_cluster_pays_nothing(self):
        rows = build_rows(['red'] * 7)
        self.assertEqual(evaluate_grid(grid_from_symbols(rows), 100), [])

    def test_scatter_never_pays_as_cluster(self):
        rows = build_rows(['zeus'] * 12)
        self.assertEqual(evaluate_grid(grid_from_symbols(rows), 100), [])

    def test_multiple_winning_symbols(self):
        rows = build_rows(['red'] * 8 + ['blue'] * 10, filler=('crown', 'ring', 'chalice', 'mask'))
        wins = {w.symbol: w for w in evaluate_grid(grid_from_symbols(rows), 20)}
        self.assertEqual(set(wins), {'red', 'blue'})
        self.assertEqual(wins['blue'].payout, Decimal('20') * Decimal('1') * Decimal('1.6'))
        self.assertEqual(len(winning_positions(list(wins.values()))), 18)

    def test_empty_cells_are_ignored(self):
        rows = build_rows([None] * 10 + ['green'] * 8)
        wins = evaluate_grid(grid_from_symbols(rows), 100)
        self.assertEqual([w.symbol for w in wins], ['green'])


class TestLookupPayout(unittest.TestCase):

    def test_exact_and_above_maximum(self):
        table = {8: Decimal('1'), 10: Decimal('2'), 12: Decimal('5')}
        self.assertEqual(lookup_payout(10, table), Decimal('2'))
        self.assertEqual(lookup_payout(40, table), Decimal('5'))

    def test_gap_falls_back_to_nearest_lower_count(self):
        table = {8: Decimal('1'), 10: Decimal('2')}
        with self.assertLogs('minicasino_be.utils.win_evaluator', level=logging.WARNING):
            self.assertEqual(lookup_payout(9, table), Decimal('1'))

    def test_count_below_table_uses_lowest_entry(self):
        table = {10: Decimal('2'), 12: Decimal('5')}
        with self.assertLogs('minicasino_be.utils.win_evaluator', level=logging.WARNING):
            self.assertEqual(lookup_payout(8, table), Decimal('2'))


if __name__ == '__main__':
    unittest.main()
