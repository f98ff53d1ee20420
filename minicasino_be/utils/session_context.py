"""
Immutable per-game session state. Every game operation takes a context and returns a new one.
"""
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Optional

from minicasino_be.services.autoplay_service import AutoplayState
from minicasino_be.services.bonus_service import BonusState
from minicasino_be.utils.grid_manager import Grid


@dataclass(frozen=True)
class SessionStats:
    total_spins: int = 0
    total_wagered: Decimal = Decimal('0')
    total_won: Decimal = Decimal('0')
    biggest_win: Decimal = Decimal('0')
    biggest_multiplier: int = 1

    def record_spin(self, wager, payout, multiplier=1, paid=True) -> 'SessionStats':
        """
        Accumulates one resolved spin. Spin and wager totals only move on paid spins;
        the biggest-win records only move on winning spins.
        """
        stats = self
        if paid:
            stats = replace(stats, total_spins=stats.total_spins + 1,
                            total_wagered=stats.total_wagered + Decimal(wager))
        if payout > 0:
            stats = replace(stats,
                            total_won=stats.total_won + payout,
                            biggest_win=max(stats.biggest_win, payout),
                            biggest_multiplier=max(stats.biggest_multiplier, multiplier))
        return stats

    def to_dict(self):
        return {
            'totalSpins': self.total_spins,
            'totalWagered': float(self.total_wagered),
            'totalWon': float(self.total_won),
            'biggestWin': float(self.biggest_win),
            'biggestMultiplier': self.biggest_multiplier,
        }


@dataclass(frozen=True)
class SessionContext:
    balance: Decimal
    bet: int
    ante_bet: bool = False
    bonus: BonusState = field(default_factory=BonusState)
    autoplay: AutoplayState = field(default_factory=AutoplayState)
    stats: SessionStats = field(default_factory=SessionStats)
    spin_in_progress: bool = False
    grid: Optional[Grid] = None


@dataclass(frozen=True)
class ClassicSessionContext(SessionContext):
    """``bet`` is the bet per line."""
    lines: int = 25
