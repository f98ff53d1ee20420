import unittest
from decimal import Decimal

from minicasino_be.app import create_app
from minicasino_be.config import TestingConfig
from minicasino_be.models import db, KeyValueEntry
from minicasino_be.services.session_store import SessionStore, TUMBLE_STORAGE_KEY
from minicasino_be.utils.session_context import SessionStats


class SessionStoreTestCase(unittest.TestCase):

    def setUp(self):
        self.app, _ = create_app(TestingConfig)
        self.app_context = self.app.app_context()
        self.app_context.push()
        db.drop_all()
        db.create_all()
        self.store = SessionStore(TUMBLE_STORAGE_KEY, Decimal('10000'))

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.app_context.pop()

    def _put_raw(self, value):
        db.session.add(KeyValueEntry(key=TUMBLE_STORAGE_KEY, value=value))
        db.session.commit()

    def test_defaults_when_nothing_stored(self):
        stats, balance = self.store.load()
        self.assertEqual(stats, SessionStats())
        self.assertEqual(balance, Decimal('10000'))

    def test_save_and_load(self):
        stats = SessionStats(total_spins=3, total_wagered=Decimal('300'), total_won=Decimal('1250.5'),
                             biggest_win=Decimal('1000'), biggest_multiplier=12)
        payload = self.store.save(stats, Decimal('10950.5'))

        self.assertEqual(payload['stats']['totalSpins'], 3)
        self.assertEqual(payload['stats']['totalWon'], '1250.5')
        self.assertEqual(payload['balance'], '10950.5')

        loaded_stats, balance = self.store.load()
        self.assertEqual(loaded_stats, stats)
        self.assertEqual(balance, Decimal('10950.5'))

    def test_save_overwrites_existing_entry(self):
        self.store.save(SessionStats(total_spins=1, total_wagered=Decimal('100')), Decimal('9900'))
        self.store.save(SessionStats(total_spins=2, total_wagered=Decimal('200')), Decimal('9800'))
        self.assertEqual(db.session.query(KeyValueEntry).count(), 1)
        self.assertEqual(self.store.load()[1], Decimal('9800'))

    def test_zero_balance_is_kept(self):
        self.store.save(SessionStats(), Decimal('0'))
        self.assertEqual(self.store.load()[1], Decimal('0'))

    def test_corrupt_stats_fall_back_to_defaults(self):
        self._put_raw({'stats': 'not-an-object', 'balance': '500'})
        with self.assertLogs('minicasino_be.services.session_store', level='WARNING'):
            stats, balance = self.store.load()
        self.assertEqual(stats, SessionStats())
        self.assertEqual(balance, Decimal('10000'))

    def test_negative_balance_falls_back_to_defaults(self):
        self._put_raw({
            'stats': {'totalSpins': 1, 'totalWagered': '100', 'totalWon': '0', 'biggestWin': '0'},
            'balance': '-5',
        })
        with self.assertLogs('minicasino_be.services.session_store', level='WARNING'):
            self.assertEqual(self.store.load()[1], Decimal('10000'))

    def test_missing_multiplier_defaults_to_one(self):
        self._put_raw({
            'stats': {'totalSpins': 4, 'totalWagered': '80', 'totalWon': '10', 'biggestWin': '10'},
            'balance': '930',
        })
        stats, balance = self.store.load()
        self.assertEqual(stats.total_spins, 4)
        self.assertEqual(stats.biggest_multiplier, 1)
        self.assertEqual(balance, Decimal('930'))

    def test_non_object_document_falls_back_to_defaults(self):
        self._put_raw(['garbage'])
        with self.assertLogs('minicasino_be.services.session_store', level='WARNING'):
            self.assertEqual(self.store.load(), (SessionStats(), Decimal('10000')))

    def test_reset(self):
        self.store.save(SessionStats(total_spins=9, total_wagered=Decimal('900')), Decimal('5'))
        self.store.reset()
        self.assertEqual(self.store.load(), (SessionStats(), Decimal('10000')))


if __name__ == '__main__':
    unittest.main()
