"""
Process-wide owners of the slot game sessions.

Each service holds the current immutable session context of one game, serialises
every state change behind a lock, persists stats and balance after each committed
spin or purchase, and forwards results to the presentation and sound collaborators.
"""
import logging
import secrets
import threading
from dataclasses import replace
from decimal import Decimal

from sqlalchemy import select

from minicasino_be.error_codes import ErrorCodes
from minicasino_be.exceptions import GameLogicException, InsufficientFundsException, ValidationException
from minicasino_be.models import db, SlotSpin
from minicasino_be.schemas import SlotSpinSchema
from minicasino_be.services.autoplay_service import (
    STOP_INSUFFICIENT_BALANCE, AutoplayRunner, AutoplayTick, after_spin, start_autoplay, stop_autoplay
)
from minicasino_be.services.session_store import SessionStore
from minicasino_be.utils.game_event_logger import GameEventLogger
from minicasino_be.utils.payline_helper import (
    DEFAULT_CLASSIC_CONFIG, ClassicConfig, classic_actions, classic_wager, get_classic_paytable,
    handle_classic_spin, select_classic_bet, validate_classic_config
)
from minicasino_be.utils.session_context import ClassicSessionContext, SessionContext
from minicasino_be.utils.spin_handler import (
    SOUND_LOSE, SOUND_SPIN_START, SOUND_WIN, available_actions, handle_bonus_purchase, handle_spin,
    select_bet, spin_rejection, toggle_ante_bet
)
from minicasino_be.utils.grid_manager import grid_snapshot
from minicasino_be.utils.tumble_symbols import (
    DEFAULT_TUMBLE_CONFIG, TumbleConfig, get_paytable, validate_tumble_config
)

logger = logging.getLogger(__name__)

_REJECTION_CODES = {
    'spin_in_progress': ErrorCodes.SPIN_IN_PROGRESS,
    'autoplay_active': ErrorCodes.AUTOPLAY_ACTIVE,
    'bonus_active': ErrorCodes.BONUS_ACTIVE,
}

_spin_history_schema = SlotSpinSchema(many=True)


def _raise_for_rejection(reason, action, details=None):
    """Maps a rejected transition to the matching AppException."""
    if reason == 'insufficient_balance':
        raise InsufficientFundsException(
            status_message=f"Insufficient balance to {action}.", details=details or {}
        )
    if reason == 'invalid_count':
        raise ValidationException(status_message="Invalid autoplay count.", details=details or {})
    raise GameLogicException(
        status_message=f"Cannot {action} right now ({reason.replace('_', ' ')}).",
        details=details or {},
        status_code=409,
        error_code=_REJECTION_CODES.get(reason, ErrorCodes.GAME_LOGIC_ERROR),
    )


class SlotGameService:
    game_name = None

    def __init__(self, store: SessionStore, notifier=None, rng=None, socketio=None, app=None,
                 autoplay_delay=1.0, run_autoplay_inline=False):
        self.store = store
        self.notifier = notifier
        self.rng = rng or secrets.SystemRandom()
        self.socketio = socketio
        self.app = app
        self.autoplay_delay = autoplay_delay
        self.run_autoplay_inline = run_autoplay_inline
        self._lock = threading.RLock()
        self._context = None
        self._runner = None

    # --- hooks for the concrete games ---
    def new_context(self, stats, balance):
        raise NotImplementedError

    def play(self, context):
        raise NotImplementedError

    def autoplay_wager(self, context) -> Decimal:
        raise NotImplementedError

    def accepts_spin(self, context) -> bool:
        raise NotImplementedError

    def actions(self, context) -> dict:
        raise NotImplementedError

    def paytable(self) -> dict:
        raise NotImplementedError

    # --- state ---
    @property
    def context(self):
        if self._context is None:
            with self._lock:
                if self._context is None:
                    stats, balance = self.store.load()
                    self._context = self.new_context(stats, balance)
        return self._context

    def state(self) -> dict:
        context = self.context
        data = {
            'game': self.game_name,
            'balance': float(context.balance),
            'bet': context.bet,
            'wager': float(self.autoplay_wager(context)),
            'bonus': context.bonus.to_dict(),
            'autoplay': context.autoplay.to_dict(),
            'stats': context.stats.to_dict(),
            'actions': self.actions(context),
            'grid': None,
        }
        return data

    def _commit(self, context):
        self._context = context
        self.store.save(context.stats, context.balance)

    def _notify(self, method, *args, **kwargs):
        if self.notifier is None:
            return
        try:
            getattr(self.notifier, method)(self.game_name, *args, **kwargs)
        except Exception as e:
            logger.warning(f"Presentation notification '{method}' for {self.game_name} failed: {e}")

    def reset(self):
        with self._lock:
            if self._context is not None and self._context.autoplay.active:
                self._context = stop_autoplay(self._context)
            stats, balance = self.store.reset()
            self._context = self.new_context(stats, balance)
            logger.info(f"Session for '{self.game_name}' reset to defaults (balance {balance}).")
            return self._context

    # --- spins ---
    def spin(self):
        """Manual spin. Rejected while autoplay is armed or another spin resolves."""
        with self._lock:
            context = self.context
            if context.spin_in_progress:
                _raise_for_rejection('spin_in_progress', 'spin')
            if context.autoplay.active:
                _raise_for_rejection('autoplay_active', 'spin')
            outcome = self._resolve_spin(context)
        if not outcome.accepted:
            _raise_for_rejection(outcome.reason, 'spin', details={
                'balance': float(outcome.balance_before), 'wager': float(outcome.wager),
            })
        return outcome

    def _resolve_spin(self, context, is_autoplay=False):
        if self.accepts_spin(context):
            self._notify('notify_sound', SOUND_SPIN_START)
        self._context = replace(context, spin_in_progress=True)
        try:
            new_context, outcome = self.play(context)
        except Exception:
            self._context = context
            raise
        if not outcome.accepted:
            self._context = context
            return outcome

        self._record_spin(outcome, is_autoplay)
        try:
            self._commit(new_context)
        except Exception:
            self._context = context
            raise
        self._after_commit(outcome)
        return outcome

    def _record_spin(self, outcome, is_autoplay):
        raise NotImplementedError

    def _after_commit(self, outcome):
        GameEventLogger.log_financial_event(
            'spin_settled', self.game_name, amount=outcome.payout - outcome.wager,
            balance_before=outcome.balance_before, balance_after=outcome.balance_after,
        )
        self._emit_steps(outcome)
        self._notify('emit_spin_result', outcome.to_dict())
        self._notify('notify_sound', SOUND_WIN if outcome.payout > 0 else SOUND_LOSE)

    def _emit_steps(self, outcome):
        pass

    def history(self, limit=50):
        rows = db.session.scalars(
            select(SlotSpin).filter_by(game=self.game_name).order_by(SlotSpin.id.desc()).limit(limit)
        ).all()
        return _spin_history_schema.dump(rows)

    # --- autoplay ---
    def start_autoplay(self, count: int):
        with self._lock:
            context = self.context
            new_context, reason = start_autoplay(context, count, self.autoplay_wager(context))
            if reason:
                _raise_for_rejection(reason, 'start autoplay', details={
                    'balance': float(context.balance),
                    'required_balance': float(self.autoplay_wager(context) * 10),
                })
            self._context = new_context
        GameEventLogger.log_autoplay_event('started', self.game_name, remaining=count)
        self._notify('emit_autoplay_state', new_context.autoplay.to_dict())
        self._start_runner()
        return self.context.autoplay

    def _start_runner(self):
        with self._lock:
            if self._runner is not None and self._runner.running:
                return
            if self.run_autoplay_inline:
                runner = AutoplayRunner(self, delay_seconds=self.autoplay_delay, sleep=lambda _: None)
            else:
                runner = AutoplayRunner(self, socketio=self.socketio, app=self.app,
                                        delay_seconds=self.autoplay_delay)
            runner.running = True
            self._runner = runner
        runner.start()

    def release_runner(self, runner) -> bool:
        """
        Called by a runner that has seen autoplay stop. Returns True when autoplay was
        armed again in the meantime, in which case the same runner keeps spinning.
        """
        with self._lock:
            if self._context is not None and self._context.autoplay.active:
                return True
            runner.running = False
            return False

    def stop_autoplay(self):
        with self._lock:
            context = self.context
            remaining = context.autoplay.remaining
            self._context = stop_autoplay(context)
        if remaining:
            GameEventLogger.log_autoplay_event('stopped_by_user', self.game_name, remaining=remaining)
        self._notify('emit_autoplay_state', self._context.autoplay.to_dict(), 'stopped_by_user')
        return self._context.autoplay

    def autoplay_spin(self) -> AutoplayTick:
        """One autoplay cycle: spin, then advance or halt autoplay."""
        with self._lock:
            context = self.context
            if not context.autoplay.active:
                return AutoplayTick(continue_playing=False)

            outcome = self._resolve_spin(context, is_autoplay=True)
            if not outcome.accepted:
                self._context = stop_autoplay(self._context)
                tick = AutoplayTick(False, outcome.reason)
            else:
                self._context, tick = after_spin(self._context, self.autoplay_wager(self._context))
            autoplay = self._context.autoplay

        if tick.stopped_reason == STOP_INSUFFICIENT_BALANCE:
            GameEventLogger.log_autoplay_event('stopped_insufficient_balance', self.game_name,
                                               details={'balance': self._context.balance})
            self._notify('notify_sound', SOUND_LOSE)
        elif tick.stopped_reason:
            GameEventLogger.log_autoplay_event(tick.stopped_reason, self.game_name, remaining=0)
        self._notify('emit_autoplay_state', autoplay.to_dict(), tick.stopped_reason)
        return tick


class TumbleGameService(SlotGameService):
    game_name = 'tumble'

    def __init__(self, store, config: TumbleConfig = DEFAULT_TUMBLE_CONFIG, cell_factory=None, **kwargs):
        super().__init__(store, **kwargs)
        self.config = validate_tumble_config(config)
        self.cell_factory = cell_factory

    def new_context(self, stats, balance):
        return SessionContext(balance=balance, bet=self.config.default_bet, stats=stats)

    def play(self, context):
        return handle_spin(context, self.config, self.rng, cell_factory=self.cell_factory)

    def accepts_spin(self, context):
        return spin_rejection(context, self.config) is None

    def autoplay_wager(self, context):
        return self.config.total_wager(context.bet, context.ante_bet)

    def actions(self, context):
        return available_actions(context, self.config)

    def paytable(self):
        return get_paytable(self.config)

    def state(self):
        data = super().state()
        context = self.context
        data['ante_bet'] = context.ante_bet
        data['bonus_buy_cost'] = float(self.config.bonus_buy_cost(context.bet))
        data['grid'] = grid_snapshot(context.grid) if context.grid else None
        return data

    def _record_spin(self, outcome, is_autoplay):
        db.session.add(SlotSpin(
            game=self.game_name,
            spin_result=grid_snapshot(outcome.initial_grid),
            final_grid=grid_snapshot(outcome.final_grid),
            bet_amount=outcome.wager,
            win_amount=outcome.payout,
            balance_after=outcome.balance_after,
            is_bonus_spin=outcome.is_bonus_spin,
            bonus_triggered=outcome.bonus_triggered is not None,
            multiplier=outcome.multiplier,
            cascade_iterations=outcome.cascade_iterations,
            is_autoplay=is_autoplay,
        ))

    def _after_commit(self, outcome):
        GameEventLogger.log_game_event(
            'bonus_spin' if outcome.is_bonus_spin else 'spin', self.game_name,
            bet_amount=outcome.wager, win_amount=outcome.payout,
            details={'multiplier': outcome.multiplier, 'cascade_iterations': outcome.cascade_iterations,
                     'free_spins_awarded': outcome.bonus_triggered or 0},
        )
        super()._after_commit(outcome)
        if outcome.bonus_triggered or outcome.is_bonus_spin:
            self._notify('emit_bonus_state', outcome.bonus.to_dict())

    def _emit_steps(self, outcome):
        for step in outcome.steps:
            self._notify('emit_cascade_step', step.to_dict())

    def purchase_bonus(self):
        with self._lock:
            context = self.context
            new_context, purchase = handle_bonus_purchase(context, self.config)
            if not purchase.accepted:
                _raise_for_rejection(purchase.reason, 'buy the bonus', details={
                    'balance': float(context.balance), 'cost': float(purchase.cost),
                })
            try:
                self._commit(new_context)
            except Exception:
                self._context = context
                raise
        GameEventLogger.log_financial_event(
            'bonus_purchase', self.game_name, amount=-purchase.cost,
            balance_before=context.balance, balance_after=new_context.balance,
            details={'free_spins': purchase.spins_awarded},
        )
        self._notify('emit_bonus_state', new_context.bonus.to_dict())
        self._notify('notify_sound', SOUND_WIN)
        return purchase

    def select_bet(self, bet):
        with self._lock:
            try:
                new_context, reason = select_bet(self.context, bet, self.config)
            except ValueError as e:
                raise ValidationException(status_message=str(e), error_code=ErrorCodes.INVALID_BET)
            if reason:
                _raise_for_rejection(reason, 'change the bet')
            self._context = new_context
        return new_context

    def toggle_ante_bet(self, enabled=None):
        with self._lock:
            new_context, reason = toggle_ante_bet(self.context, enabled)
            if reason:
                _raise_for_rejection(reason, 'change the ante bet')
            self._context = new_context
        return new_context


class ClassicGameService(SlotGameService):
    game_name = 'classic'

    def __init__(self, store, config: ClassicConfig = DEFAULT_CLASSIC_CONFIG, **kwargs):
        super().__init__(store, **kwargs)
        self.config = validate_classic_config(config)

    def new_context(self, stats, balance):
        return ClassicSessionContext(balance=balance, bet=self.config.default_bet_per_line,
                                     lines=self.config.default_lines, stats=stats)

    def play(self, context):
        return handle_classic_spin(context, self.config, self.rng)

    def accepts_spin(self, context):
        return not context.spin_in_progress and context.balance >= classic_wager(context, self.config)

    def autoplay_wager(self, context):
        return classic_wager(context, self.config)

    def actions(self, context):
        return classic_actions(context, self.config)

    def paytable(self):
        return get_classic_paytable(self.config)

    def state(self):
        data = super().state()
        data['lines'] = self.context.lines
        data['bet_per_line'] = self.context.bet
        return data

    def _record_spin(self, outcome, is_autoplay):
        db.session.add(SlotSpin(
            game=self.game_name,
            spin_result=outcome.grid,
            bet_amount=outcome.wager,
            win_amount=outcome.payout,
            balance_after=outcome.balance_after,
            is_autoplay=is_autoplay,
        ))

    def _after_commit(self, outcome):
        GameEventLogger.log_game_event(
            'spin', self.game_name, bet_amount=outcome.wager, win_amount=outcome.payout,
            details={'winning_lines': len(outcome.line_wins)},
        )
        super()._after_commit(outcome)

    def select_bet(self, bet_per_line=None, lines=None):
        with self._lock:
            try:
                new_context, reason = select_classic_bet(self.context, bet_per_line, lines, self.config)
            except ValueError as e:
                raise ValidationException(status_message=str(e), error_code=ErrorCodes.INVALID_BET)
            if reason:
                _raise_for_rejection(reason, 'change the bet')
            self._context = new_context
        return new_context
