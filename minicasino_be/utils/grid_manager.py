"""
Grid management for the tumbling slot: generation, removal and gravity collapse.

Grids are lists of rows (row 0 is the top). Functions here never mutate the grid
they are given; they return new grids so every cascade step can be kept as a snapshot.
"""
import secrets
import uuid
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple

from minicasino_be.utils.tumble_symbols import (
    DEFAULT_TUMBLE_CONFIG, TumbleConfig, draw_symbol, roll_multiplier
)

Position = Tuple[int, int]


@dataclass(frozen=True)
class Cell:
    symbol: Optional[str]  # None marks a cell emptied mid-cascade
    cell_id: str
    multiplier: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return self.symbol is None


Grid = List[List[Cell]]
CellFactory = Callable[[int, int], Cell]


def _new_cell_id() -> str:
    return uuid.uuid4().hex


def empty_cell() -> Cell:
    return Cell(symbol=None, cell_id=_new_cell_id())


def new_cell(bonus_mode: bool, rng=None, config: TumbleConfig = DEFAULT_TUMBLE_CONFIG) -> Cell:
    """Generates a fresh cell with an independent multiplier roll."""
    symbol = draw_symbol(bonus_mode, rng, config)
    multiplier = roll_multiplier(bonus_mode, rng, config)
    return Cell(symbol=symbol.id, cell_id=_new_cell_id(), multiplier=multiplier)


def _default_factory(bonus_mode, rng, config) -> CellFactory:
    rng = rng or secrets.SystemRandom()
    return lambda row, col: new_cell(bonus_mode, rng, config)


def initialize_grid(rows: int, cols: int, bonus_mode: bool = False, rng=None,
                    config: TumbleConfig = DEFAULT_TUMBLE_CONFIG,
                    cell_factory: Optional[CellFactory] = None) -> Grid:
    factory = cell_factory or _default_factory(bonus_mode, rng, config)
    return [[factory(r, c) for c in range(cols)] for r in range(rows)]


def grid_from_symbols(symbol_rows: Iterable[Iterable[Optional[str]]], multipliers=None) -> Grid:
    """
    Builds a grid from nested symbol ids. ``multipliers`` maps (row, col) to a value.
    Mostly used to replay or construct specific boards.
    """
    multipliers = multipliers or {}
    return [
        [Cell(symbol=s, cell_id=_new_cell_id(), multiplier=multipliers.get((r, c)))
         for c, s in enumerate(row)]
        for r, row in enumerate(symbol_rows)
    ]


def clear_positions(grid: Grid, positions: Iterable[Position]) -> Grid:
    new_grid = [row[:] for row in grid]
    rows = len(new_grid)
    cols = len(new_grid[0]) if rows else 0
    for r, c in positions:
        if 0 <= r < rows and 0 <= c < cols:
            new_grid[r][c] = empty_cell()
    return new_grid


def collapse_grid(grid: Grid, bonus_mode: bool = False, rng=None,
                  config: TumbleConfig = DEFAULT_TUMBLE_CONFIG,
                  cell_factory: Optional[CellFactory] = None) -> Grid:
    """
    Lets non-empty cells fall to the bottom of each column (keeping their order)
    and fills the vacated top cells with newly generated ones.
    """
    if not grid:
        return []
    factory = cell_factory or _default_factory(bonus_mode, rng, config)
    rows = len(grid)
    cols = len(grid[0])
    new_grid = [[None] * cols for _ in range(rows)]

    for c in range(cols):
        survivors = [grid[r][c] for r in range(rows) if not grid[r][c].is_empty]
        vacant = rows - len(survivors)
        for offset, cell in enumerate(survivors):
            new_grid[vacant + offset][c] = cell
        for r in range(vacant):
            new_grid[r][c] = factory(r, c)
    return new_grid


def has_gravity_gaps(grid: Grid) -> bool:
    """True if any column has an empty cell above a non-empty one."""
    if not grid:
        return False
    for c in range(len(grid[0])):
        seen_filled = False
        for r in range(len(grid)):
            if grid[r][c].is_empty:
                if seen_filled:
                    return True
            else:
                seen_filled = True
    return False


def count_symbol(grid: Grid, symbol_id: str) -> int:
    return sum(1 for row in grid for cell in row if cell.symbol == symbol_id)


def symbol_positions(grid: Grid, symbol_id: str) -> List[Position]:
    return [(r, c) for r, row in enumerate(grid) for c, cell in enumerate(row) if cell.symbol == symbol_id]


def grid_snapshot(grid: Grid) -> List[List[dict]]:
    """JSON-friendly copy of the grid for the presentation layer."""
    return [
        [{'symbol': cell.symbol or '', 'id': cell.cell_id, 'multiplier': cell.multiplier} for cell in row]
        for row in grid
    ]
