import logging
import secrets
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional, Tuple

from minicasino_be.services.autoplay_service import can_afford_autoplay
from minicasino_be.services.bonus_service import (
    BonusState, check_bonus_trigger, consume_free_spin, enter_bonus, purchase_bonus, purchase_rejection
)
from minicasino_be.utils.cascade_engine import CascadeStep, resolve_cascade
from minicasino_be.utils.grid_manager import CellFactory, Grid, grid_snapshot, initialize_grid
from minicasino_be.utils.session_context import SessionContext
from minicasino_be.utils.tumble_symbols import DEFAULT_TUMBLE_CONFIG, TumbleConfig

logger = logging.getLogger(__name__)

REJECT_INSUFFICIENT_BALANCE = 'insufficient_balance'
REJECT_SPIN_IN_PROGRESS = 'spin_in_progress'

SOUND_SPIN_START = 'spin-start'
SOUND_WIN = 'win'
SOUND_LOSE = 'lose'


@dataclass(frozen=True)
class SpinOutcome:
    accepted: bool
    reason: Optional[str] = None
    is_bonus_spin: bool = False
    wager: Decimal = Decimal('0')
    payout: Decimal = Decimal('0')
    multiplier: int = 1
    balance_before: Decimal = Decimal('0')
    balance_after: Decimal = Decimal('0')
    initial_grid: Optional[Grid] = None
    final_grid: Optional[Grid] = None
    steps: Tuple[CascadeStep, ...] = ()
    cascade_iterations: int = 0
    bonus_triggered: Optional[int] = None
    bonus: BonusState = BonusState()

    @property
    def sound(self) -> Optional[str]:
        if not self.accepted:
            return None
        return SOUND_WIN if self.payout > 0 else SOUND_LOSE

    def to_dict(self, include_steps=True):
        data = {
            'accepted': self.accepted,
            'reason': self.reason,
            'is_bonus_spin': self.is_bonus_spin,
            'wager': float(self.wager),
            'win_amount': float(self.payout),
            'multiplier': self.multiplier,
            'balance_before': float(self.balance_before),
            'balance_after': float(self.balance_after),
            'cascade_iterations': self.cascade_iterations,
            'bonus_triggered': self.bonus_triggered is not None,
            'free_spins_awarded': self.bonus_triggered or 0,
            'bonus': self.bonus.to_dict(),
        }
        if self.initial_grid is not None:
            data['initial_grid'] = grid_snapshot(self.initial_grid)
        if self.final_grid is not None:
            data['grid'] = grid_snapshot(self.final_grid)
        if include_steps:
            data['cascade_steps'] = [step.to_dict() for step in self.steps]
        return data


def _rejected(context: SessionContext, reason: str, wager=Decimal('0')) -> Tuple[SessionContext, SpinOutcome]:
    logger.info(f"Spin rejected ({reason}): balance {context.balance}, wager {wager}.")
    return context, SpinOutcome(
        accepted=False, reason=reason, wager=Decimal(wager),
        balance_before=context.balance, balance_after=context.balance, bonus=context.bonus,
    )


def spin_wager(context: SessionContext, config: TumbleConfig = DEFAULT_TUMBLE_CONFIG) -> Decimal:
    """Amount the next spin debits: nothing during free spins, bet plus ante surcharge otherwise."""
    if context.bonus.active and context.bonus.remaining > 0:
        return Decimal('0')
    return config.total_wager(context.bet, context.ante_bet)


def spin_rejection(context: SessionContext, config: TumbleConfig = DEFAULT_TUMBLE_CONFIG) -> Optional[str]:
    if context.spin_in_progress:
        return REJECT_SPIN_IN_PROGRESS
    if context.balance < spin_wager(context, config):
        return REJECT_INSUFFICIENT_BALANCE
    return None


def handle_spin(context: SessionContext, config: TumbleConfig = DEFAULT_TUMBLE_CONFIG, rng=None,
                cell_factory: Optional[CellFactory] = None,
                initial_grid: Optional[Grid] = None) -> Tuple[SessionContext, SpinOutcome]:
    """
    Resolves one complete tumble spin and returns the new context with its outcome.

    The wager is debited first (skipped in bonus mode), the bonus trigger is checked on
    the freshly generated grid, the cascade runs to completion and its total payout is
    credited. A rejected spin returns the context unchanged.

    Args:
        context: Session state before the spin.
        config: Tumble slot configuration.
        rng: random.Random compatible generator. Defaults to secrets.SystemRandom.
        cell_factory: Optional generator for refill cells, ``(row, col) -> Cell``.
        initial_grid: Optional pre-built grid to use instead of a random one.
    """
    reason = spin_rejection(context, config)
    if reason:
        return _rejected(context, reason, spin_wager(context, config))

    rng = rng or secrets.SystemRandom()
    is_bonus_spin = context.bonus.active and context.bonus.remaining > 0
    wager = spin_wager(context, config)
    balance_before = context.balance
    balance = balance_before - wager

    grid = initial_grid if initial_grid is not None else initialize_grid(
        config.rows, config.cols, bonus_mode=is_bonus_spin, rng=rng, config=config
    )

    # Scatter trigger is decided on the grid as dealt, never on cascade refills.
    free_spins = None if is_bonus_spin else check_bonus_trigger(grid, config)

    cascade = resolve_cascade(grid, context.bet, bonus_mode=is_bonus_spin, rng=rng,
                              config=config, cell_factory=cell_factory)
    balance += cascade.total_payout

    if is_bonus_spin:
        bonus = consume_free_spin(context.bonus)
    elif free_spins:
        bonus = enter_bonus(context.bonus, free_spins)
    else:
        bonus = context.bonus

    stats = context.stats.record_spin(wager, cascade.total_payout, cascade.multiplier, paid=not is_bonus_spin)

    new_context = replace(context, balance=balance, bonus=bonus, stats=stats,
                          grid=cascade.grid, spin_in_progress=False)
    outcome = SpinOutcome(
        accepted=True,
        is_bonus_spin=is_bonus_spin,
        wager=wager,
        payout=cascade.total_payout,
        multiplier=cascade.multiplier,
        balance_before=balance_before,
        balance_after=balance,
        initial_grid=grid,
        final_grid=cascade.grid,
        steps=cascade.steps,
        cascade_iterations=cascade.iterations,
        bonus_triggered=free_spins,
        bonus=bonus,
    )
    logger.debug(f"Spin resolved: wager={wager}, payout={cascade.total_payout}, "
                 f"multiplier={cascade.multiplier}, iterations={cascade.iterations}, bonus={bonus}")
    return new_context, outcome


def handle_bonus_purchase(context: SessionContext, config: TumbleConfig = DEFAULT_TUMBLE_CONFIG):
    return purchase_bonus(context, config)


def _bet_change_rejection(context: SessionContext) -> Optional[str]:
    if context.spin_in_progress:
        return REJECT_SPIN_IN_PROGRESS
    if context.autoplay.active:
        return 'autoplay_active'
    if context.bonus.active:
        return 'bonus_active'
    return None


def select_bet(context: SessionContext, bet: int, config: TumbleConfig = DEFAULT_TUMBLE_CONFIG):
    """
    Changes the base bet. Returns ``(context, reason)``.

    Raises:
        ValueError: If ``bet`` is not one of the configured bet options.
    """
    if bet not in config.bet_options:
        raise ValueError(f"Bet {bet} is not one of {list(config.bet_options)}.")
    reason = _bet_change_rejection(context)
    if reason:
        return context, reason
    return replace(context, bet=bet), None


def toggle_ante_bet(context: SessionContext, enabled: Optional[bool] = None):
    """Flips (or sets) the ante bet flag. Returns ``(context, reason)``."""
    reason = _bet_change_rejection(context)
    if reason:
        return context, reason
    value = (not context.ante_bet) if enabled is None else bool(enabled)
    return replace(context, ante_bet=value), None


def available_actions(context: SessionContext, config: TumbleConfig = DEFAULT_TUMBLE_CONFIG) -> dict:
    """Disabled-action flags for the client; insufficient funds never raise, they disable."""
    wager = config.total_wager(context.bet, context.ante_bet)
    return {
        'can_spin': spin_rejection(context, config) is None and not context.autoplay.active,
        'can_buy_bonus': purchase_rejection(context, config) is None,
        'can_start_autoplay': (not context.spin_in_progress and not context.autoplay.active
                               and can_afford_autoplay(context.balance, wager)),
        'can_change_bet': _bet_change_rejection(context) is None,
    }
