"""
Cascade (tumble) resolution for a single spin.

The loop evaluates the grid, removes winning symbols, collapses the columns and
evaluates again until no cluster qualifies. ``iter_cascade`` exposes every state
transition as a lazy sequence so a presentation layer can replay it at its own pace;
``resolve_cascade`` simply drains it.
"""
import enum
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import FrozenSet, Iterator, Optional, Tuple

from minicasino_be.utils.grid_manager import (
    CellFactory, Grid, Position, clear_positions, collapse_grid, grid_snapshot
)
from minicasino_be.utils.tumble_symbols import DEFAULT_TUMBLE_CONFIG, TumbleConfig
from minicasino_be.utils.win_evaluator import WinInfo, evaluate_grid, winning_positions

logger = logging.getLogger(__name__)


class CascadePhase(enum.Enum):
    EVALUATING = 'evaluating'
    REMOVING = 'removing'
    COLLAPSING = 'collapsing'
    DONE = 'done'


@dataclass(frozen=True)
class CascadeStep:
    phase: CascadePhase
    iteration: int
    grid: Grid
    wins: Tuple[WinInfo, ...]
    positions: FrozenSet[Position]
    multiplier: int
    step_payout: Decimal
    total_payout: Decimal

    def to_dict(self):
        return {
            'phase': self.phase.value,
            'iteration': self.iteration,
            'grid': grid_snapshot(self.grid),
            'wins': [w.to_dict() for w in self.wins],
            'winning_positions': sorted([list(p) for p in self.positions]),
            'multiplier': self.multiplier,
            'step_payout': float(self.step_payout),
            'total_payout': float(self.total_payout),
        }


@dataclass(frozen=True)
class CascadeResult:
    total_payout: Decimal
    multiplier: int
    grid: Grid
    steps: Tuple[CascadeStep, ...]
    iterations: int
    hit_ceiling: bool = False

    @property
    def wins(self) -> Tuple[WinInfo, ...]:
        return tuple(w for step in self.steps if step.phase is CascadePhase.EVALUATING for w in step.wins)


def iter_cascade(grid: Grid, bet_per_unit, bonus_mode: bool = False, rng=None,
                 config: TumbleConfig = DEFAULT_TUMBLE_CONFIG,
                 cell_factory: Optional[CellFactory] = None,
                 max_iterations: Optional[int] = None) -> Iterator[CascadeStep]:
    """
    Yields one CascadeStep per transition. The last step is always DONE and carries
    the final grid, running multiplier and total payout.

    The running multiplier starts at 1 and is multiplied by every multiplier cell
    that belongs to a winning cluster; each such cell is removed afterwards, so it
    contributes exactly once.
    """
    ceiling = max_iterations if max_iterations is not None else config.max_cascade_iterations
    current = grid
    multiplier = 1
    total = Decimal('0')
    iteration = 0
    no_wins = ()
    nothing = frozenset()

    while True:
        wins = evaluate_grid(current, bet_per_unit, config)
        if not wins:
            yield CascadeStep(CascadePhase.DONE, iteration, current, no_wins, nothing,
                              multiplier, Decimal('0'), total)
            return
        if iteration >= ceiling:
            logger.warning(f"Cascade stopped at iteration ceiling {ceiling} with {len(wins)} pending win(s).")
            yield CascadeStep(CascadePhase.DONE, iteration, current, no_wins, nothing,
                              multiplier, Decimal('0'), total)
            return

        iteration += 1
        positions = winning_positions(wins)
        for r, c in sorted(positions):
            cell_multiplier = current[r][c].multiplier
            if cell_multiplier:
                multiplier *= cell_multiplier

        step_payout = sum((w.payout for w in wins), Decimal('0')) * multiplier
        total += step_payout
        yield CascadeStep(CascadePhase.EVALUATING, iteration, current, tuple(wins), positions,
                          multiplier, step_payout, total)

        current = clear_positions(current, positions)
        yield CascadeStep(CascadePhase.REMOVING, iteration, current, no_wins, positions,
                          multiplier, Decimal('0'), total)

        current = collapse_grid(current, bonus_mode, rng, config, cell_factory)
        yield CascadeStep(CascadePhase.COLLAPSING, iteration, current, no_wins, nothing,
                          multiplier, Decimal('0'), total)


def resolve_cascade(grid: Grid, bet_per_unit, bonus_mode: bool = False, rng=None,
                    config: TumbleConfig = DEFAULT_TUMBLE_CONFIG,
                    cell_factory: Optional[CellFactory] = None,
                    max_iterations: Optional[int] = None) -> CascadeResult:
    steps = tuple(iter_cascade(grid, bet_per_unit, bonus_mode, rng, config, cell_factory, max_iterations))
    final = steps[-1]
    ceiling = max_iterations if max_iterations is not None else config.max_cascade_iterations
    hit_ceiling = final.iteration >= ceiling and bool(evaluate_grid(final.grid, bet_per_unit, config))
    return CascadeResult(
        total_payout=final.total_payout,
        multiplier=final.multiplier,
        grid=final.grid,
        steps=steps,
        iterations=final.iteration,
        hit_ceiling=hit_ceiling,
    )
