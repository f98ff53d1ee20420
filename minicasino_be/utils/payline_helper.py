"""
Classic 5-reel, 3-row slot with 25 fixed paylines.

Wins are counted as consecutive matching symbols along a payline starting from the
leftmost reel. There are no cascades and no bonus rounds; the session context,
stats and autoplay rules are shared with the tumble slot.
"""
import logging
import secrets
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from minicasino_be.exceptions import SlotConfigurationError
from minicasino_be.services.autoplay_service import can_afford_autoplay
from minicasino_be.utils.session_context import ClassicSessionContext
from minicasino_be.utils.tumble_symbols import weighted_choice

logger = logging.getLogger(__name__)

SLOT_NAME = 'classic'


@dataclass(frozen=True)
class ClassicSymbol:
    id: str
    icon: str
    value: Decimal
    weight: float


CLASSIC_SYMBOLS = (
    ClassicSymbol('seven', '7️⃣', Decimal('20'), 1),
    ClassicSymbol('diamond', '💎', Decimal('15'), 2),
    ClassicSymbol('bell', '🔔', Decimal('12'), 3),
    ClassicSymbol('cherry', '🍒', Decimal('10'), 5),
    ClassicSymbol('lemon', '🍋', Decimal('8'), 7),
    ClassicSymbol('watermelon', '🍉', Decimal('7'), 9),
    ClassicSymbol('grape', '🍇', Decimal('6'), 11),
    ClassicSymbol('A', 'A', Decimal('4'), 14),
    ClassicSymbol('K', 'K', Decimal('3'), 18),
    ClassicSymbol('Q', 'Q', Decimal('2'), 20),
)

# Row index (0 = top) for each of the five reels.
PAYLINES = (
    (1, 1, 1, 1, 1), (0, 0, 0, 0, 0), (2, 2, 2, 2, 2), (0, 1, 2, 1, 0), (2, 1, 0, 1, 2),
    (0, 0, 1, 0, 0), (2, 2, 1, 2, 2), (1, 0, 0, 0, 1), (1, 2, 2, 2, 1), (1, 0, 1, 0, 1),
    (1, 2, 1, 2, 1), (0, 1, 0, 1, 0), (2, 1, 2, 1, 2), (0, 1, 1, 1, 0), (2, 1, 1, 1, 2),
    (1, 1, 0, 1, 1), (1, 1, 2, 1, 1), (0, 0, 2, 0, 0), (2, 2, 0, 2, 2), (0, 2, 2, 2, 0),
    (2, 0, 0, 0, 2), (1, 0, 2, 0, 1), (1, 2, 0, 2, 1), (0, 2, 0, 2, 0), (2, 0, 2, 0, 2),
)

# Match count -> line multiplier.
DEFAULT_LINE_MULTIPLIERS = {3: 5, 4: 10, 5: 25}
SEVEN_LINE_MULTIPLIERS = {3: 10, 4: 50, 5: 200}

BET_PER_LINE_OPTIONS = (1, 2, 5, 10, 25, 50)
LINE_OPTIONS = (1, 5, 10, 15, 20, 25)


@dataclass(frozen=True)
class ClassicConfig:
    symbols: Tuple[ClassicSymbol, ...] = CLASSIC_SYMBOLS
    rows: int = 3
    reels: int = 5
    paylines: Tuple[Tuple[int, ...], ...] = PAYLINES
    min_match: int = 3
    line_multipliers: Dict[int, int] = field(default_factory=lambda: dict(DEFAULT_LINE_MULTIPLIERS))
    symbol_line_multipliers: Dict[str, Dict[int, int]] = field(
        default_factory=lambda: {'seven': dict(SEVEN_LINE_MULTIPLIERS)})
    bet_per_line_options: Tuple[int, ...] = BET_PER_LINE_OPTIONS
    line_options: Tuple[int, ...] = LINE_OPTIONS
    default_bet_per_line: int = 1
    default_lines: int = 25

    @property
    def symbols_by_id(self):
        return {s.id: s for s in self.symbols}

    def multipliers_for(self, symbol_id: str) -> Dict[int, int]:
        return self.symbol_line_multipliers.get(symbol_id, self.line_multipliers)

    def total_wager(self, bet_per_line, lines) -> Decimal:
        return Decimal(bet_per_line) * lines


def validate_classic_config(config: ClassicConfig, slot_short_name: str = SLOT_NAME) -> ClassicConfig:
    prefix = f"Config validation error for slot '{slot_short_name}'"
    if config.rows <= 0 or config.reels <= 0:
        raise SlotConfigurationError(f"{prefix}: rows and reels must be positive integers.")
    if not config.symbols or any(s.weight <= 0 or s.value <= 0 for s in config.symbols):
        raise SlotConfigurationError(f"{prefix}: symbols must be non-empty with positive values and weights.")
    for i, line in enumerate(config.paylines):
        if len(line) != config.reels or any(not 0 <= row < config.rows for row in line):
            raise SlotConfigurationError(f"{prefix}: paylines[{i}] does not fit a {config.reels}x{config.rows} layout.")
    if max(config.line_options) > len(config.paylines):
        raise SlotConfigurationError(f"{prefix}: line_options exceed the number of paylines.")
    if config.default_bet_per_line not in config.bet_per_line_options or config.default_lines not in config.line_options:
        raise SlotConfigurationError(f"{prefix}: defaults must be among the bet and line options.")
    return config


DEFAULT_CLASSIC_CONFIG = ClassicConfig()


@dataclass(frozen=True)
class LineWin:
    line_number: int  # 1-based
    symbol: str
    count: int
    positions: Tuple[Tuple[int, int], ...]  # (row, reel)
    payout: Decimal

    def to_dict(self):
        return {
            'line_number': self.line_number,
            'symbol': self.symbol,
            'count': self.count,
            'positions': [list(p) for p in self.positions],
            'payout': float(self.payout),
        }


def generate_reels(config: ClassicConfig = DEFAULT_CLASSIC_CONFIG, rng=None) -> List[List[str]]:
    """Returns a rows x reels grid of symbol ids, row 0 on top."""
    rng = rng or secrets.SystemRandom()
    pairs = [(s.id, s.weight) for s in config.symbols]
    return [[weighted_choice(pairs, rng) for _ in range(config.reels)] for _ in range(config.rows)]


def evaluate_paylines(grid: Sequence[Sequence[str]], bet_per_line, lines: int,
                      config: ClassicConfig = DEFAULT_CLASSIC_CONFIG) -> List[LineWin]:
    """
    Checks the first ``lines`` paylines for runs of identical symbols from the leftmost reel.

    Payout per line is ``bet_per_line x symbol value x multiplier(count)``.
    """
    bet = Decimal(bet_per_line)
    symbols = config.symbols_by_id
    wins = []
    for index, payline in enumerate(config.paylines[:lines]):
        line_symbols = [grid[row][reel] for reel, row in enumerate(payline)]
        first = line_symbols[0]
        count = 1
        for symbol in line_symbols[1:]:
            if symbol != first:
                break
            count += 1
        if count < config.min_match:
            continue

        multipliers = config.multipliers_for(first)
        multiplier = multipliers.get(count)
        if multiplier is None:
            # Longest defined run pays for anything longer.
            multiplier = multipliers[max(k for k in multipliers if k <= count)]
        wins.append(LineWin(
            line_number=index + 1,
            symbol=first,
            count=count,
            positions=tuple((row, reel) for reel, row in enumerate(payline[:count])),
            payout=bet * symbols[first].value * multiplier,
        ))
    return wins


@dataclass(frozen=True)
class ClassicSpinOutcome:
    accepted: bool
    reason: Optional[str] = None
    wager: Decimal = Decimal('0')
    payout: Decimal = Decimal('0')
    balance_before: Decimal = Decimal('0')
    balance_after: Decimal = Decimal('0')
    grid: Optional[List[List[str]]] = None
    line_wins: Tuple[LineWin, ...] = ()

    @property
    def sound(self) -> Optional[str]:
        if not self.accepted:
            return None
        return 'win' if self.payout > 0 else 'lose'

    def to_dict(self):
        return {
            'accepted': self.accepted,
            'reason': self.reason,
            'wager': float(self.wager),
            'win_amount': float(self.payout),
            'balance_before': float(self.balance_before),
            'balance_after': float(self.balance_after),
            'grid': self.grid,
            'winning_lines': [w.to_dict() for w in self.line_wins],
        }


def classic_wager(context: ClassicSessionContext, config: ClassicConfig = DEFAULT_CLASSIC_CONFIG) -> Decimal:
    return config.total_wager(context.bet, context.lines)


def handle_classic_spin(context: ClassicSessionContext, config: ClassicConfig = DEFAULT_CLASSIC_CONFIG,
                        rng=None, initial_grid=None):
    """Resolves one classic spin. Returns ``(context, ClassicSpinOutcome)``."""
    wager = classic_wager(context, config)
    if context.spin_in_progress or context.balance < wager:
        reason = 'spin_in_progress' if context.spin_in_progress else 'insufficient_balance'
        logger.info(f"Classic spin rejected ({reason}): balance {context.balance}, wager {wager}.")
        return context, ClassicSpinOutcome(accepted=False, reason=reason, wager=wager,
                                           balance_before=context.balance, balance_after=context.balance)

    grid = initial_grid if initial_grid is not None else generate_reels(config, rng)
    wins = evaluate_paylines(grid, context.bet, context.lines, config)
    payout = sum((w.payout for w in wins), Decimal('0'))
    balance = context.balance - wager + payout

    new_context = replace(context, balance=balance, stats=context.stats.record_spin(wager, payout),
                          spin_in_progress=False)
    return new_context, ClassicSpinOutcome(
        accepted=True, wager=wager, payout=payout,
        balance_before=context.balance, balance_after=balance,
        grid=[list(row) for row in grid], line_wins=tuple(wins),
    )


def select_classic_bet(context: ClassicSessionContext, bet_per_line: Optional[int] = None,
                       lines: Optional[int] = None, config: ClassicConfig = DEFAULT_CLASSIC_CONFIG):
    """
    Returns ``(context, reason)``.

    Raises:
        ValueError: If a value is not among the configured options.
    """
    if bet_per_line is not None and bet_per_line not in config.bet_per_line_options:
        raise ValueError(f"Bet per line {bet_per_line} is not one of {list(config.bet_per_line_options)}.")
    if lines is not None and lines not in config.line_options:
        raise ValueError(f"Lines {lines} is not one of {list(config.line_options)}.")
    if context.spin_in_progress:
        return context, 'spin_in_progress'
    if context.autoplay.active:
        return context, 'autoplay_active'
    return replace(
        context,
        bet=context.bet if bet_per_line is None else bet_per_line,
        lines=context.lines if lines is None else lines,
    ), None


def classic_actions(context: ClassicSessionContext, config: ClassicConfig = DEFAULT_CLASSIC_CONFIG) -> dict:
    wager = classic_wager(context, config)
    idle = not context.spin_in_progress and not context.autoplay.active
    return {
        'can_spin': idle and context.balance >= wager,
        'can_start_autoplay': idle and can_afford_autoplay(context.balance, wager),
        'can_change_bet': idle,
    }


def get_classic_paytable(config: ClassicConfig = DEFAULT_CLASSIC_CONFIG) -> dict:
    return {
        'symbols': [
            {
                'id': s.id, 'icon': s.icon, 'value': float(s.value),
                'line_multipliers': {str(k): v for k, v in sorted(config.multipliers_for(s.id).items())},
            }
            for s in config.symbols
        ],
        'paylines': [list(line) for line in config.paylines],
        'bet_per_line_options': list(config.bet_per_line_options),
        'line_options': list(config.line_options),
        'layout': {'rows': config.rows, 'reels': config.reels},
    }
