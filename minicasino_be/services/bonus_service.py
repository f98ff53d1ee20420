"""
Free-spin bonus flow for the tumbling slot: scatter triggers, purchases and spin consumption.

All functions are pure: they take a session context (or bonus state) and return a new one.
"""
import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional

from minicasino_be.utils.grid_manager import Grid, count_symbol
from minicasino_be.utils.tumble_symbols import DEFAULT_TUMBLE_CONFIG, TumbleConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BonusState:
    active: bool = False
    remaining: int = 0

    def to_dict(self):
        return {'active': self.active, 'remaining': self.remaining}


@dataclass(frozen=True)
class BonusPurchase:
    accepted: bool
    cost: Decimal
    spins_awarded: int = 0
    reason: Optional[str] = None


def count_scatters(grid: Grid, config: TumbleConfig = DEFAULT_TUMBLE_CONFIG) -> int:
    return count_symbol(grid, config.scatter_symbol.id)


def free_spins_for(scatter_count: int, config: TumbleConfig = DEFAULT_TUMBLE_CONFIG) -> int:
    """Award for a scatter count; counts above the largest key get the largest award."""
    if scatter_count < config.scatter_trigger_min:
        return 0
    eligible = [k for k in config.free_spin_awards if k <= scatter_count]
    if not eligible:
        return 0
    return config.free_spin_awards[max(eligible)]


def check_bonus_trigger(grid: Grid, config: TumbleConfig = DEFAULT_TUMBLE_CONFIG) -> Optional[int]:
    """
    Returns the number of free spins awarded by ``grid``, or None when it does not trigger.

    Must be called with the grid as generated, before any cascade runs, so that
    scatters dropped in by refills never count.
    """
    scatters = count_scatters(grid, config)
    awarded = free_spins_for(scatters, config)
    if not awarded:
        return None
    logger.info(f"Bonus triggered by {scatters} scatters: {awarded} free spins.")
    return awarded


def enter_bonus(bonus: BonusState, spins: int) -> BonusState:
    return BonusState(active=True, remaining=spins)


def consume_free_spin(bonus: BonusState) -> BonusState:
    """Called once a bonus spin has fully resolved."""
    if not bonus.active:
        return bonus
    remaining = max(0, bonus.remaining - 1)
    if remaining == 0:
        logger.info("Free spins exhausted, leaving bonus mode.")
        return BonusState()
    return BonusState(active=True, remaining=remaining)


def purchase_rejection(context, config: TumbleConfig = DEFAULT_TUMBLE_CONFIG) -> Optional[str]:
    """Reason a bonus purchase is not allowed right now, or None."""
    if context.bonus.active:
        return 'bonus_active'
    if context.spin_in_progress:
        return 'spin_in_progress'
    if context.autoplay.active:
        return 'autoplay_active'
    if context.balance < config.bonus_buy_cost(context.bet):
        return 'insufficient_balance'
    return None


def purchase_bonus(context, config: TumbleConfig = DEFAULT_TUMBLE_CONFIG):
    """
    Buys straight into bonus mode for ``bonus_buy_cost_multiplier`` times the bet.

    Returns ``(context, BonusPurchase)``. A rejected purchase returns the context untouched.
    The cost is not counted as wagered in the session stats.
    """
    cost = config.bonus_buy_cost(context.bet)
    reason = purchase_rejection(context, config)
    if reason:
        logger.info(f"Bonus purchase rejected ({reason}): cost {cost}, balance {context.balance}.")
        return context, BonusPurchase(accepted=False, cost=cost, reason=reason)

    new_context = replace(
        context,
        balance=context.balance - cost,
        bonus=enter_bonus(context.bonus, config.bonus_buy_spins),
    )
    return new_context, BonusPurchase(accepted=True, cost=cost, spins_awarded=config.bonus_buy_spins)
