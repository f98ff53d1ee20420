import unittest
import random
import itertools
from dataclasses import replace
from decimal import Decimal
from unittest.mock import MagicMock, call, patch

from sqlalchemy.exc import SQLAlchemyError

from minicasino_be.app import create_app
from minicasino_be.config import TestingConfig
from minicasino_be.error_codes import ErrorCodes
from minicasino_be.exceptions import GameLogicException, InsufficientFundsException, ValidationException
from minicasino_be.models import db, SlotSpin
from minicasino_be.services.autoplay_service import AutoplayState
from minicasino_be.services.session_store import SessionStore, TUMBLE_STORAGE_KEY, CLASSIC_STORAGE_KEY
from minicasino_be.services.slot_game_service import ClassicGameService, TumbleGameService
from minicasino_be.utils.grid_manager import Cell, grid_from_symbols
from minicasino_be.utils.spin_handler import handle_spin

NON_WINNING_CYCLE = ('crown', 'ring', 'chalice', 'mask', 'red', 'purple', 'blue', 'green', 'yellow')


def losing_board():
    source = itertools.cycle(NON_WINNING_CYCLE)
    return grid_from_symbols([[next(source) for _ in range(6)] for _ in range(5)])


class LosingTumbleService(TumbleGameService):
    """Every spin deals the same board with no wins."""

    def play(self, context):
        source = itertools.cycle(NON_WINNING_CYCLE)
        factory = lambda r, c: Cell(symbol=next(source), cell_id=f'{r}-{c}')
        return handle_spin(context, self.config, self.rng, cell_factory=factory, initial_grid=losing_board())


class GameServiceTestCase(unittest.TestCase):

    def setUp(self):
        self.app, _ = create_app(TestingConfig)
        self.app_context = self.app.app_context()
        self.app_context.push()
        db.drop_all()
        db.create_all()
        self.notifier = MagicMock()

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.app_context.pop()

    def _tumble(self, balance='10000', service_class=TumbleGameService):
        return service_class(SessionStore(TUMBLE_STORAGE_KEY, Decimal(balance)), notifier=self.notifier,
                             rng=random.Random(8), autoplay_delay=0, run_autoplay_inline=True)

    def _classic(self, balance='1000'):
        return ClassicGameService(SessionStore(CLASSIC_STORAGE_KEY, Decimal(balance)), notifier=self.notifier,
                                  rng=random.Random(8), autoplay_delay=0, run_autoplay_inline=True)


class TestTumbleGameService(GameServiceTestCase):

    def test_spin_commits_and_persists(self):
        service = self._tumble()
        outcome = service.spin()

        self.assertEqual(service.context.balance, Decimal('10000') - outcome.wager + outcome.payout)
        self.assertFalse(service.context.spin_in_progress)
        stats, balance = service.store.load()
        self.assertEqual(balance, service.context.balance)
        self.assertEqual(stats.total_spins, 1)

        row = db.session.query(SlotSpin).one()
        self.assertEqual(row.game, 'tumble')
        self.assertEqual(Decimal(row.bet_amount), Decimal('100'))
        self.assertFalse(row.is_autoplay)

    def test_presentation_receives_steps_then_result_and_sounds(self):
        service = self._tumble(service_class=LosingTumbleService)
        service.spin()

        calls = self.notifier.mock_calls
        self.assertEqual(calls[0], call.notify_sound('tumble', 'spin-start'))
        self.assertEqual(calls[1][0], 'emit_cascade_step')
        self.assertEqual(calls[1][1][1]['phase'], 'done')
        self.assertEqual(calls[2][0], 'emit_spin_result')
        self.assertEqual(calls[3], call.notify_sound('tumble', 'lose'))

    def test_notifier_failure_does_not_break_spin(self):
        self.notifier.notify_sound.side_effect = RuntimeError('audio device gone')
        service = self._tumble()
        with self.assertLogs('minicasino_be.services.slot_game_service', level='WARNING'):
            outcome = service.spin()
        self.assertTrue(outcome.accepted)
        self.assertEqual(service.store.load()[0].total_spins, 1)

    def test_failed_persistence_restores_context(self):
        service = self._tumble()
        before = service.context
        with patch.object(service.store, 'save', side_effect=SQLAlchemyError('disk full')):
            with self.assertRaises(SQLAlchemyError):
                service.spin()
        self.assertIs(service.context, before)
        self.assertFalse(service.context.spin_in_progress)

    def test_failed_persistence_restores_context_after_bonus_purchase(self):
        service = self._tumble()
        before = service.context
        with patch.object(service.store, 'save', side_effect=SQLAlchemyError('disk full')):
            with self.assertRaises(SQLAlchemyError):
                service.purchase_bonus()
        self.assertIs(service.context, before)
        self.assertEqual(service.context.balance, Decimal('10000'))
        self.assertFalse(service.context.bonus.active)
        self.assertEqual(service.store.load()[1], Decimal('10000'))
        self.assertNotIn(call.notify_sound('tumble', 'win'), self.notifier.mock_calls)

    def test_spin_start_sound_precedes_resolution(self):
        notifier = self.notifier

        class RecordingService(LosingTumbleService):
            def play(self, context):
                self.sounds_before_play = list(notifier.notify_sound.call_args_list)
                return super().play(context)

        service = self._tumble(service_class=RecordingService)
        service.spin()
        self.assertEqual(service.sounds_before_play, [call('tumble', 'spin-start')])

    def test_rejected_spin_plays_no_spin_start(self):
        service = self._tumble(balance='50')
        with self.assertRaises(InsufficientFundsException):
            service.spin()
        self.notifier.notify_sound.assert_not_called()

    def test_insufficient_balance(self):
        service = self._tumble(balance='50')
        with self.assertRaises(InsufficientFundsException):
            service.spin()
        self.assertEqual(service.context.balance, Decimal('50'))
        self.assertEqual(db.session.query(SlotSpin).count(), 0)

    def test_manual_spin_rejected_during_autoplay(self):
        service = self._tumble()
        service._context = replace(service.context, autoplay=AutoplayState(active=True, remaining=5))
        with self.assertRaises(GameLogicException) as ctx:
            service.spin()
        self.assertEqual(ctx.exception.status_code, 409)
        self.assertEqual(ctx.exception.error_code, ErrorCodes.AUTOPLAY_ACTIVE)

    def test_autoplay_runs_requested_spins(self):
        service = self._tumble(balance='100000', service_class=LosingTumbleService)
        service.start_autoplay(10)

        self.assertFalse(service.context.autoplay.active)
        self.assertEqual(service.context.balance, Decimal('99000'))
        rows = db.session.query(SlotSpin).all()
        self.assertEqual(len(rows), 10)
        self.assertTrue(all(row.is_autoplay for row in rows))
        last_state = [c for c in self.notifier.mock_calls if c[0] == 'emit_autoplay_state'][-1]
        self.assertEqual(last_state, call.emit_autoplay_state('tumble', {'active': False, 'remaining': 0}, 'completed'))

    def test_autoplay_stops_when_balance_margin_is_lost(self):
        service = self._tumble(balance='1100', service_class=LosingTumbleService)
        service.start_autoplay(10)

        self.assertEqual(db.session.query(SlotSpin).count(), 2)
        self.assertEqual(service.context.balance, Decimal('900'))
        self.assertFalse(service.context.autoplay.active)
        self.assertEqual(self.notifier.mock_calls[-2], call.notify_sound('tumble', 'lose'))
        self.assertEqual(self.notifier.mock_calls[-1], call.emit_autoplay_state(
            'tumble', {'active': False, 'remaining': 0}, 'insufficient_balance'))

    def test_autoplay_restarted_on_completion_keeps_running(self):
        service = self._tumble(balance='100000', service_class=LosingTumbleService)
        restarted = []

        def restart_on_completion(game, state, reason=None):
            if reason == 'completed' and not restarted:
                restarted.append(True)
                service.start_autoplay(10)

        self.notifier.emit_autoplay_state.side_effect = restart_on_completion
        service.start_autoplay(10)

        self.assertEqual(restarted, [True])
        self.assertEqual(db.session.query(SlotSpin).count(), 20)
        self.assertFalse(service.context.autoplay.active)
        self.assertFalse(service._runner.running)
        self.assertEqual(service.context.balance, Decimal('98000'))
        service.spin()

    def test_autoplay_start_rejections(self):
        service = self._tumble(balance='999')
        with self.assertRaises(InsufficientFundsException):
            service.start_autoplay(10)
        with self.assertRaises(ValidationException):
            service.start_autoplay(11)

    def test_purchase_bonus(self):
        service = self._tumble()
        purchase = service.purchase_bonus()
        self.assertEqual(purchase.cost, Decimal('10000'))
        self.assertEqual(service.context.balance, Decimal('0'))
        self.assertEqual(service.store.load()[1], Decimal('0'))
        self.assertIn(call.notify_sound('tumble', 'win'), self.notifier.mock_calls)

        with self.assertRaises(GameLogicException) as ctx:
            service.purchase_bonus()
        self.assertEqual(ctx.exception.error_code, ErrorCodes.BONUS_ACTIVE)

        outcome = service.spin()
        self.assertTrue(outcome.is_bonus_spin)
        self.assertEqual(outcome.wager, Decimal('0'))
        self.assertEqual(service.store.load()[0].total_wagered, Decimal('0'))

    def test_select_bet(self):
        service = self._tumble()
        service.select_bet(500)
        self.assertEqual(service.state()['bet'], 500)
        self.assertEqual(service.state()['bonus_buy_cost'], 50000.0)
        with self.assertRaises(ValidationException) as ctx:
            service.select_bet(7)
        self.assertEqual(ctx.exception.error_code, ErrorCodes.INVALID_BET)

    def test_reset(self):
        service = self._tumble()
        service.spin()
        context = service.reset()
        self.assertEqual(context.balance, Decimal('10000'))
        self.assertEqual(context.stats.total_spins, 0)


class TestClassicGameService(GameServiceTestCase):

    def test_spin_persists_under_classic_key(self):
        service = self._classic()
        outcome = service.spin()
        self.assertEqual(outcome.wager, Decimal('25'))
        self.assertEqual(service.context.balance, Decimal('1000') - Decimal('25') + outcome.payout)
        self.assertEqual(service.store.load()[1], service.context.balance)
        self.assertEqual(db.session.query(SlotSpin).filter_by(game='classic').count(), 1)

    def test_state_includes_lines(self):
        state = self._classic().state()
        self.assertEqual(state['lines'], 25)
        self.assertEqual(state['bet_per_line'], 1)
        self.assertEqual(state['wager'], 25.0)

    def test_select_bet(self):
        service = self._classic()
        service.select_bet(lines=10)
        self.assertEqual(service.state()['wager'], 10.0)
        with self.assertRaises(ValidationException):
            service.select_bet(bet_per_line=3)


if __name__ == '__main__':
    unittest.main()
