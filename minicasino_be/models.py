from flask_sqlalchemy import SQLAlchemy
from datetime import datetime, timezone
from sqlalchemy import JSON, Numeric

db = SQLAlchemy()


class KeyValueEntry(db.Model):
    """Single-key persisted documents, e.g. a game's stats and balance."""
    __tablename__ = 'key_value_entry'
    key = db.Column(db.String(100), primary_key=True)
    value = db.Column(JSON, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    def __repr__(self):
        return f"<KeyValueEntry {self.key}>"


class SlotSpin(db.Model):
    __tablename__ = 'slot_spin'
    id = db.Column(db.Integer, primary_key=True)
    game = db.Column(db.String(20), nullable=False, index=True)
    spin_result = db.Column(JSON, nullable=False)  # grid as dealt
    final_grid = db.Column(JSON, nullable=True)
    bet_amount = db.Column(Numeric(18, 2), nullable=False)
    win_amount = db.Column(Numeric(18, 2), nullable=False)
    balance_after = db.Column(Numeric(18, 2), nullable=False)
    is_bonus_spin = db.Column(db.Boolean, default=False, nullable=False)
    bonus_triggered = db.Column(db.Boolean, default=False, nullable=False)
    multiplier = db.Column(db.Integer, default=1, nullable=False)
    cascade_iterations = db.Column(db.Integer, default=0, nullable=False)
    is_autoplay = db.Column(db.Boolean, default=False, nullable=False)
    spin_time = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False, index=True)

    def __repr__(self):
        return f"<SlotSpin {self.id} ({self.game}, Bet: {self.bet_amount}, Win: {self.win_amount})>"
