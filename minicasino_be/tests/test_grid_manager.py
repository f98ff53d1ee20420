import unittest
import random
import itertools

from minicasino_be.utils.grid_manager import (
    Cell,
    clear_positions,
    collapse_grid,
    count_symbol,
    grid_from_symbols,
    grid_snapshot,
    has_gravity_gaps,
    initialize_grid,
    symbol_positions,
)


def column(grid, c):
    return [row[c] for row in grid]


def fixed_factory(symbol='yellow'):
    counter = itertools.count()
    return lambda r, c: Cell(symbol=symbol, cell_id=f'new-{next(counter)}')


class TestGridGeneration(unittest.TestCase):

    def test_initialize_grid_shape_and_unique_ids(self):
        grid = initialize_grid(5, 6, rng=random.Random(1))
        self.assertEqual(len(grid), 5)
        self.assertTrue(all(len(row) == 6 for row in grid))
        ids = [cell.cell_id for row in grid for cell in row]
        self.assertEqual(len(ids), len(set(ids)))
        self.assertFalse(any(cell.is_empty for row in grid for cell in row))

    def test_initialize_grid_uses_factory_coordinates(self):
        grid = initialize_grid(2, 3, cell_factory=lambda r, c: Cell(symbol=f'{r}{c}', cell_id=f'{r}-{c}'))
        self.assertEqual(grid[1][2].symbol, '12')
        self.assertEqual(grid[0][1].cell_id, '0-1')

    def test_grid_from_symbols_places_multipliers(self):
        grid = grid_from_symbols([['red', 'blue'], ['green', 'red']], multipliers={(1, 0): 5})
        self.assertEqual(grid[1][0].multiplier, 5)
        self.assertIsNone(grid[0][0].multiplier)
        self.assertEqual(count_symbol(grid, 'red'), 2)
        self.assertEqual(symbol_positions(grid, 'red'), [(0, 0), (1, 1)])


class TestCollapse(unittest.TestCase):

    def setUp(self):
        self.grid = grid_from_symbols([
            ['a1', 'b1', 'c1'],
            ['a2', 'b2', 'c2'],
            ['a3', 'b3', 'c3'],
            ['a4', 'b4', 'c4'],
        ])

    def test_clear_positions_returns_new_grid(self):
        cleared = clear_positions(self.grid, [(0, 0), (2, 1)])
        self.assertTrue(cleared[0][0].is_empty)
        self.assertTrue(cleared[2][1].is_empty)
        self.assertEqual(self.grid[0][0].symbol, 'a1')
        self.assertIs(cleared[3][2], self.grid[3][2])

    def test_clear_positions_ignores_out_of_range(self):
        cleared = clear_positions(self.grid, [(9, 9), (-1, 0)])
        self.assertEqual([c.symbol for c in column(cleared, 0)], ['a1', 'a2', 'a3', 'a4'])

    def test_collapse_keeps_survivor_order_and_fills_top(self):
        cleared = clear_positions(self.grid, [(1, 0), (3, 0), (2, 2)])
        collapsed = collapse_grid(cleared, cell_factory=fixed_factory())

        self.assertEqual([c.symbol for c in column(collapsed, 0)], ['yellow', 'yellow', 'a1', 'a3'])
        self.assertEqual([c.symbol for c in column(collapsed, 1)], ['b1', 'b2', 'b3', 'b4'])
        self.assertEqual([c.symbol for c in column(collapsed, 2)], ['yellow', 'c1', 'c2', 'c4'])
        self.assertFalse(has_gravity_gaps(collapsed))

    def test_collapse_keeps_cell_identity_of_survivors(self):
        cleared = clear_positions(self.grid, [(3, 1)])
        collapsed = collapse_grid(cleared, cell_factory=fixed_factory())
        self.assertEqual(collapsed[3][1].cell_id, self.grid[2][1].cell_id)
        self.assertEqual(collapsed[1][1].cell_id, self.grid[0][1].cell_id)

    def test_collapse_does_not_mutate_input(self):
        cleared = clear_positions(self.grid, [(0, 0)])
        collapse_grid(cleared, cell_factory=fixed_factory())
        self.assertTrue(cleared[0][0].is_empty)

    def test_collapse_with_random_refill_never_leaves_gaps(self):
        rng = random.Random(11)
        grid = initialize_grid(5, 6, rng=rng)
        for _ in range(20):
            positions = [(r, c) for r in range(5) for c in range(6) if rng.random() < 0.4]
            grid = collapse_grid(clear_positions(grid, positions), rng=rng)
            self.assertFalse(any(cell.is_empty for row in grid for cell in row))

    def test_has_gravity_gaps(self):
        self.assertTrue(has_gravity_gaps(clear_positions(self.grid, [(2, 0)])))
        # Empty cells stacked at the top are not a gap
        self.assertFalse(has_gravity_gaps(clear_positions(self.grid, [(0, 0), (1, 0)])))
        self.assertFalse(has_gravity_gaps([]))


def test_grid_snapshot_uses_empty_string_for_cleared_cells():
    grid = clear_positions(grid_from_symbols([['red', 'blue']], multipliers={(0, 1): 3}), [(0, 0)])
    snapshot = grid_snapshot(grid)
    assert snapshot[0][0]['symbol'] == ''
    assert snapshot[0][1] == {'symbol': 'blue', 'id': grid[0][1].cell_id, 'multiplier': 3}


if __name__ == '__main__':
    unittest.main()
