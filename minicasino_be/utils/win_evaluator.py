"""
Scatter-pays win evaluation: a symbol wins when enough copies land anywhere on the grid.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import FrozenSet, List

from minicasino_be.utils.grid_manager import Grid, Position
from minicasino_be.utils.tumble_symbols import DEFAULT_TUMBLE_CONFIG, TumbleConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WinInfo:
    symbol: str
    count: int
    positions: FrozenSet[Position]
    payout: Decimal  # before the cascade multiplier

    def to_dict(self):
        return {
            'symbol': self.symbol,
            'count': self.count,
            'positions': sorted([list(p) for p in self.positions]),
            'payout': float(self.payout),
        }


def lookup_payout(count: int, payout_table) -> Decimal:
    """
    Returns the table multiplier for ``count`` matching symbols.

    Counts above the largest key use the largest entry. A missing count falls back
    to the nearest lower defined count; if there is none, the lowest entry is used.
    """
    if count in payout_table:
        return payout_table[count]
    keys = sorted(payout_table)
    if count > keys[-1]:
        return payout_table[keys[-1]]
    lower = [k for k in keys if k < count]
    if lower:
        logger.warning(f"Payout table has no entry for count {count}; using count {lower[-1]}.")
        return payout_table[lower[-1]]
    logger.warning(f"Payout table has no entry at or below count {count}; using lowest count {keys[0]}.")
    return payout_table[keys[0]]


def evaluate_grid(grid: Grid, bet_per_unit, config: TumbleConfig = DEFAULT_TUMBLE_CONFIG) -> List[WinInfo]:
    """
    Scans the grid for every non-scatter symbol reaching the minimum cluster size.
    Position and adjacency are irrelevant, only the total count matters.
    """
    bet = Decimal(bet_per_unit)
    positions_by_symbol = {}
    for r, row in enumerate(grid):
        for c, cell in enumerate(row):
            if cell.symbol is not None:
                positions_by_symbol.setdefault(cell.symbol, []).append((r, c))

    wins = []
    for symbol in config.symbols:
        if symbol.is_scatter:
            continue
        positions = positions_by_symbol.get(symbol.id, [])
        count = len(positions)
        if count < config.min_cluster:
            continue
        multiplier = lookup_payout(count, config.payout_table)
        wins.append(WinInfo(
            symbol=symbol.id,
            count=count,
            positions=frozenset(positions),
            payout=bet * multiplier * symbol.value,
        ))
    return wins


def winning_positions(wins: List[WinInfo]) -> FrozenSet[Position]:
    positions = set()
    for win in wins:
        positions.update(win.positions)
    return frozenset(positions)
