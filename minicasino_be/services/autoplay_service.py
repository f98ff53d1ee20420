"""
Autoplay sequencing shared by the slot games.

The state transitions are pure functions over the session context. ``AutoplayRunner``
drives them: it asks the game service for one spin at a time and waits a cosmetic delay
between spins, never starting a spin before the previous one has been committed.
"""
import logging
import time
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional

logger = logging.getLogger(__name__)

AUTOPLAY_COUNTS = (10, 20, 50, 100)
AUTOPLAY_BALANCE_MARGIN = 10

STOP_COMPLETED = 'completed'
STOP_INSUFFICIENT_BALANCE = 'insufficient_balance'
STOP_REQUESTED = 'stopped_by_user'


@dataclass(frozen=True)
class AutoplayState:
    active: bool = False
    remaining: int = 0

    def to_dict(self):
        return {'active': self.active, 'remaining': self.remaining}


IDLE = AutoplayState()


@dataclass(frozen=True)
class AutoplayTick:
    """What happened to autoplay after a spin resolved."""
    continue_playing: bool
    stopped_reason: Optional[str] = None


def can_afford_autoplay(balance, wager) -> bool:
    return Decimal(balance) >= Decimal(wager) * AUTOPLAY_BALANCE_MARGIN


def start_rejection(context, count: int, wager) -> Optional[str]:
    if count not in AUTOPLAY_COUNTS:
        return 'invalid_count'
    if context.spin_in_progress:
        return 'spin_in_progress'
    if context.autoplay.active:
        return 'autoplay_active'
    if not can_afford_autoplay(context.balance, wager):
        return STOP_INSUFFICIENT_BALANCE
    return None


def start_autoplay(context, count: int, wager):
    """
    Arms autoplay with ``count`` spins. Returns ``(context, reason)``; when ``reason`` is
    not None the request was a no-op and the context is returned unchanged.
    """
    reason = start_rejection(context, count, wager)
    if reason:
        logger.info(f"Autoplay start rejected ({reason}): count={count}, balance={context.balance}, wager={wager}.")
        return context, reason
    return replace(context, autoplay=AutoplayState(active=True, remaining=count)), None


def stop_autoplay(context):
    if not context.autoplay.active:
        return context
    logger.info(f"Autoplay stopped with {context.autoplay.remaining} spin(s) remaining.")
    return replace(context, autoplay=IDLE)


def after_spin(context, wager):
    """
    Advances autoplay once a spin has been committed.

    Decrements the remaining count and goes idle at zero. Otherwise re-checks the
    balance margin for the next spin; on failure autoplay is forced idle and the
    remaining count is discarded.
    """
    autoplay = context.autoplay
    if not autoplay.active:
        return context, AutoplayTick(continue_playing=False)

    remaining = autoplay.remaining - 1
    if remaining <= 0:
        return replace(context, autoplay=IDLE), AutoplayTick(False, STOP_COMPLETED)

    if not can_afford_autoplay(context.balance, wager):
        logger.info(f"Autoplay stopped: insufficient balance {context.balance} for wager {wager}, "
                    f"discarding {remaining} remaining spin(s).")
        return replace(context, autoplay=IDLE), AutoplayTick(False, STOP_INSUFFICIENT_BALANCE)

    return replace(context, autoplay=AutoplayState(active=True, remaining=remaining)), AutoplayTick(True)


class AutoplayRunner:
    """
    Runs armed autoplay for a game service.

    With a SocketIO instance the loop runs as a background task inside an app context;
    without one, ``run`` executes inline, which is what the tests use.
    """

    def __init__(self, game_service, socketio=None, app=None, delay_seconds=1.0, sleep=None):
        self.game_service = game_service
        self.socketio = socketio
        self.app = app
        self.delay_seconds = delay_seconds
        if sleep is not None:
            self._sleep = sleep
        elif socketio is not None:
            self._sleep = socketio.sleep
        else:
            self._sleep = time.sleep
        self.running = False

    def start(self):
        self.running = True
        if self.socketio is not None:
            self.socketio.start_background_task(self._run_in_app_context)
        else:
            self.run()

    def _run_in_app_context(self):
        if self.app is None:
            self.run()
            return
        with self.app.app_context():
            self.run()

    def run(self):
        """
        Spins until the service reports autoplay is no longer armed.

        The runner only exits through ``game_service.release_runner``, which keeps it
        going when autoplay was armed again while the last spin was being reported.
        """
        self.running = True
        try:
            while True:
                try:
                    tick = self.game_service.autoplay_spin()
                except Exception as e:
                    logger.error(f"Error in autoplay loop for '{self.game_service.game_name}': {e}", exc_info=True)
                    self.game_service.stop_autoplay()
                    tick = None
                if tick is not None and tick.continue_playing:
                    if self.delay_seconds:
                        self._sleep(self.delay_seconds)
                    continue
                if not self.game_service.release_runner(self):
                    break
                logger.info(f"Autoplay for '{self.game_service.game_name}' re-armed, runner continues")
        finally:
            self.running = False
