"""
Symbol catalog and weighted random generation for the tumbling scatter-pays slot.

Weighted tables are kept as single ordered lists of ``(item, weight)`` pairs so that
values and weights can never drift out of sync.
"""
import logging
import secrets
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Optional, Sequence, Tuple

from minicasino_be.exceptions import SlotConfigurationError

logger = logging.getLogger(__name__)

SLOT_NAME = 'tumble'


@dataclass(frozen=True)
class Symbol:
    id: str
    name: str
    value: Decimal
    base_weight: float
    bonus_weight: float
    is_scatter: bool = False
    icon: str = ''


# Catalog order matters: weighted draws walk it front to back.
SYMBOL_CATALOG = (
    Symbol('zeus', 'Zeus', Decimal('50'), 2, 8, is_scatter=True, icon='⚡'),
    Symbol('crown', 'Crown', Decimal('12'), 5, 5, icon='👑'),
    Symbol('ring', 'Ring', Decimal('10'), 5, 5, icon='💍'),
    Symbol('chalice', 'Chalice', Decimal('8'), 6, 6, icon='🏆'),
    Symbol('mask', 'Mask', Decimal('7'), 7, 7, icon='🎭'),
    Symbol('red', 'Red Gem', Decimal('2'), 10, 10, icon='🔴'),
    Symbol('purple', 'Purple Gem', Decimal('1.8'), 11, 11, icon='🟣'),
    Symbol('blue', 'Blue Gem', Decimal('1.6'), 12, 12, icon='🔵'),
    Symbol('green', 'Green Gem', Decimal('1.4'), 13, 13, icon='🟢'),
    Symbol('yellow', 'Yellow Gem', Decimal('1.2'), 14, 14, icon='🟡'),
)

# Count of identical symbols anywhere on the grid -> multiplier of (bet x symbol value)
PAYOUT_TABLE = {
    8: Decimal('0.25'), 9: Decimal('0.5'), 10: Decimal('1'), 11: Decimal('1.5'),
    12: Decimal('2'), 13: Decimal('5'), 14: Decimal('10'), 15: Decimal('25'),
    16: Decimal('50'), 17: Decimal('100'), 18: Decimal('150'), 19: Decimal('200'),
    20: Decimal('250'), 21: Decimal('300'), 22: Decimal('400'), 23: Decimal('500'),
    24: Decimal('750'), 25: Decimal('1000'), 26: Decimal('1500'), 27: Decimal('2000'),
    28: Decimal('2500'), 29: Decimal('3000'), 30: Decimal('5000'),
}

BASE_MULTIPLIER_WEIGHTS = (
    (2, 30), (3, 25), (4, 20), (5, 15), (6, 12), (8, 10), (10, 8), (12, 6),
    (15, 5), (20, 4), (25, 3), (50, 2), (100, 1), (250, 0.5), (500, 0.2),
)

# Free spins shift weight toward the large multipliers.
BONUS_MULTIPLIER_WEIGHTS = (
    (2, 20), (3, 18), (4, 16), (5, 14), (6, 12), (8, 10), (10, 9), (12, 8),
    (15, 7), (20, 6), (25, 5), (50, 4), (100, 2), (250, 1), (500, 0.5),
)

FREE_SPIN_AWARDS = {4: 15, 5: 20, 6: 30}

BET_OPTIONS = (20, 50, 100, 200, 500, 1000, 2000)


@dataclass(frozen=True)
class TumbleConfig:
    symbols: Tuple[Symbol, ...] = SYMBOL_CATALOG
    rows: int = 5
    cols: int = 6
    min_cluster: int = 8
    payout_table: Dict[int, Decimal] = field(default_factory=lambda: dict(PAYOUT_TABLE))
    base_multiplier_weights: Tuple[Tuple[int, float], ...] = BASE_MULTIPLIER_WEIGHTS
    bonus_multiplier_weights: Tuple[Tuple[int, float], ...] = BONUS_MULTIPLIER_WEIGHTS
    base_multiplier_chance: float = 0.15
    bonus_multiplier_chance: float = 0.30
    scatter_trigger_min: int = 4
    free_spin_awards: Dict[int, int] = field(default_factory=lambda: dict(FREE_SPIN_AWARDS))
    bonus_buy_cost_multiplier: int = 100
    bonus_buy_spins: int = 15
    bet_options: Tuple[int, ...] = BET_OPTIONS
    default_bet: int = 100
    ante_bet_surcharge: Decimal = Decimal('0.25')

    @property
    def scatter_symbol(self) -> Symbol:
        return next(s for s in self.symbols if s.is_scatter)

    @property
    def symbols_by_id(self) -> Dict[str, Symbol]:
        return {s.id: s for s in self.symbols}

    @property
    def max_cascade_iterations(self) -> int:
        return self.rows * self.cols

    def total_wager(self, bet, ante_bet=False) -> Decimal:
        """Wager debited per paid spin; the ante bet adds a fixed surcharge."""
        wager = Decimal(bet)
        if ante_bet:
            wager += wager * self.ante_bet_surcharge
        return wager

    def bonus_buy_cost(self, bet) -> Decimal:
        return Decimal(bet) * self.bonus_buy_cost_multiplier


def validate_tumble_config(config: TumbleConfig, slot_short_name: str = SLOT_NAME) -> TumbleConfig:
    """
    Validates the structure of a tumble slot configuration.

    Raises:
        SlotConfigurationError: If any check fails.
    """
    prefix = f"Config validation error for slot '{slot_short_name}'"
    if config.rows <= 0 or config.cols <= 0:
        raise SlotConfigurationError(f"{prefix}: rows and cols must be positive integers.")
    if not config.symbols:
        raise SlotConfigurationError(f"{prefix}: symbols must be a non-empty list.")

    seen_ids = set()
    for i, sym in enumerate(config.symbols):
        if not sym.id or sym.id in seen_ids:
            raise SlotConfigurationError(f"{prefix}: symbols[{i}].id must be a unique non-empty string.")
        seen_ids.add(sym.id)
        if sym.value <= 0:
            raise SlotConfigurationError(f"{prefix}: symbols[{i}].value must be positive.")
        if sym.base_weight <= 0 or sym.bonus_weight <= 0:
            raise SlotConfigurationError(f"{prefix}: symbols[{i}] weights must be positive.")

    scatter_count = sum(1 for s in config.symbols if s.is_scatter)
    if scatter_count != 1:
        raise SlotConfigurationError(f"{prefix}: exactly one scatter symbol is required (found {scatter_count}).")

    if config.min_cluster <= 0:
        raise SlotConfigurationError(f"{prefix}: min_cluster must be a positive integer.")
    if not config.payout_table:
        raise SlotConfigurationError(f"{prefix}: payout_table must not be empty.")
    previous = None
    for count in sorted(config.payout_table):
        multiplier = config.payout_table[count]
        if multiplier <= 0:
            raise SlotConfigurationError(f"{prefix}: payout_table[{count}] must be positive.")
        if previous is not None and multiplier < previous:
            raise SlotConfigurationError(f"{prefix}: payout_table must be non-decreasing (count {count}).")
        previous = multiplier
    if min(config.payout_table) > config.min_cluster:
        # Reachable counts below the first key still pay via the lowest entry, see lookup_payout.
        logger.warning(f"{prefix}: payout_table starts at {min(config.payout_table)}, above min_cluster {config.min_cluster}.")

    for name in ('base_multiplier_weights', 'bonus_multiplier_weights'):
        table = getattr(config, name)
        if not table or any(value <= 0 or weight <= 0 for value, weight in table):
            raise SlotConfigurationError(f"{prefix}: {name} must be a non-empty list of positive (value, weight) pairs.")
    for name in ('base_multiplier_chance', 'bonus_multiplier_chance'):
        if not 0 <= getattr(config, name) <= 1:
            raise SlotConfigurationError(f"{prefix}: {name} must be between 0 and 1.")

    if config.scatter_trigger_min <= 0 or not config.free_spin_awards:
        raise SlotConfigurationError(f"{prefix}: scatter trigger settings are invalid.")
    if config.default_bet not in config.bet_options:
        raise SlotConfigurationError(f"{prefix}: default_bet must be one of bet_options.")
    return config


DEFAULT_TUMBLE_CONFIG = TumbleConfig()


def weighted_choice(pairs: Sequence[Tuple[object, float]], rng=None):
    """
    Picks an item from an ordered list of ``(item, weight)`` pairs.

    The last item is returned if floating point accumulation never brings the
    remainder to zero or below.
    """
    if not pairs:
        raise ValueError("Cannot draw from an empty weighted table.")
    rng = rng or secrets.SystemRandom()
    total_weight = sum(weight for _, weight in pairs)
    remainder = rng.random() * total_weight
    for item, weight in pairs:
        remainder -= weight
        if remainder <= 0:
            return item
    return pairs[-1][0]


def symbol_weights(config: TumbleConfig, bonus_mode: bool):
    if bonus_mode:
        return [(s, s.bonus_weight) for s in config.symbols]
    return [(s, s.base_weight) for s in config.symbols]


def draw_symbol(bonus_mode: bool, rng=None, config: TumbleConfig = DEFAULT_TUMBLE_CONFIG) -> Symbol:
    return weighted_choice(symbol_weights(config, bonus_mode), rng)


def roll_multiplier(bonus_mode: bool, rng=None, config: TumbleConfig = DEFAULT_TUMBLE_CONFIG) -> Optional[int]:
    """Returns a multiplier value for a freshly generated cell, or None."""
    rng = rng or secrets.SystemRandom()
    chance = config.bonus_multiplier_chance if bonus_mode else config.base_multiplier_chance
    if rng.random() >= chance:
        return None
    table = config.bonus_multiplier_weights if bonus_mode else config.base_multiplier_weights
    return weighted_choice(table, rng)


def get_paytable(config: TumbleConfig = DEFAULT_TUMBLE_CONFIG) -> dict:
    """Client-facing description of symbols, payouts and bonus rules."""
    return {
        'symbols': [
            {
                'id': s.id, 'name': s.name, 'icon': s.icon,
                'value': float(s.value), 'is_scatter': s.is_scatter,
            }
            for s in config.symbols
        ],
        'payout_table': {str(count): float(mult) for count, mult in sorted(config.payout_table.items())},
        'min_cluster': config.min_cluster,
        'free_spin_awards': {str(k): v for k, v in sorted(config.free_spin_awards.items())},
        'bonus_buy_cost_multiplier': config.bonus_buy_cost_multiplier,
        'bonus_buy_spins': config.bonus_buy_spins,
        'bet_options': list(config.bet_options),
        'ante_bet_surcharge': float(config.ante_bet_surcharge),
        'layout': {'rows': config.rows, 'columns': config.cols},
    }
