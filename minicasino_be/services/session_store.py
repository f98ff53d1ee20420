"""
Load/save of a game's ``{stats, balance}`` document in the key/value table.

Stored data that fails validation never breaks the game: the session falls back to
default stats and the default balance and a warning is logged.
"""
import logging
from decimal import Decimal

from marshmallow import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from minicasino_be.models import db, KeyValueEntry
from minicasino_be.schemas import PersistedStateSchema
from minicasino_be.utils.session_context import SessionStats

logger = logging.getLogger(__name__)

TUMBLE_STORAGE_KEY = 'tumble_slot_stats'
CLASSIC_STORAGE_KEY = 'slot_machine_stats'

_state_schema = PersistedStateSchema()


class SessionStore:
    def __init__(self, key: str, default_balance):
        self.key = key
        self.default_balance = Decimal(default_balance)

    def defaults(self):
        return SessionStats(), self.default_balance

    def load(self):
        """Returns ``(SessionStats, balance)``; defaults when nothing valid is stored."""
        entry = db.session.get(KeyValueEntry, self.key)
        if entry is None:
            return self.defaults()
        try:
            data = _state_schema.load(entry.value if isinstance(entry.value, dict) else {})
        except ValidationError as e:
            logger.warning(f"Stored state for '{self.key}' is invalid, using defaults: {e.messages}")
            return self.defaults()
        return SessionStats(**data['stats']), data['balance']

    def save(self, stats: SessionStats, balance):
        payload = _state_schema.dump({
            'stats': {
                'total_spins': stats.total_spins,
                'total_wagered': stats.total_wagered,
                'total_won': stats.total_won,
                'biggest_win': stats.biggest_win,
                'biggest_multiplier': stats.biggest_multiplier,
            },
            'balance': Decimal(balance),
        })
        try:
            entry = db.session.get(KeyValueEntry, self.key)
            if entry is None:
                db.session.add(KeyValueEntry(key=self.key, value=payload))
            else:
                entry.value = payload
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.error(f"Failed to persist state for '{self.key}'", exc_info=True)
            raise
        return payload

    def reset(self):
        stats, balance = self.defaults()
        self.save(stats, balance)
        return stats, balance
