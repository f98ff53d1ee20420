from marshmallow import Schema, fields, ValidationError, validates_schema, EXCLUDE
from marshmallow_sqlalchemy import SQLAlchemyAutoSchema
from marshmallow.validate import OneOf, Range

from .models import db, SlotSpin
from .services.autoplay_service import AUTOPLAY_COUNTS
from .utils.payline_helper import BET_PER_LINE_OPTIONS, LINE_OPTIONS
from .utils.tumble_symbols import BET_OPTIONS


# --- Request Schemas ---
class TumbleBetSchema(Schema):
    bet = fields.Int(required=True, validate=OneOf(BET_OPTIONS, error="Bet must be one of {choices}."))


class ClassicBetSchema(Schema):
    bet_per_line = fields.Int(validate=OneOf(BET_PER_LINE_OPTIONS, error="Bet per line must be one of {choices}."))
    lines = fields.Int(validate=OneOf(LINE_OPTIONS, error="Lines must be one of {choices}."))

    @validates_schema
    def validate_not_empty(self, data, **kwargs):
        if 'bet_per_line' not in data and 'lines' not in data:
            raise ValidationError('Provide bet_per_line, lines or both.')


class AnteBetSchema(Schema):
    enabled = fields.Boolean(load_default=None, allow_none=True)


class AutoplayStartSchema(Schema):
    count = fields.Int(required=True, validate=OneOf(AUTOPLAY_COUNTS, error="Autoplay count must be one of {choices}."))


class HistoryQuerySchema(Schema):
    limit = fields.Int(load_default=50, validate=Range(min=1, max=50))


# --- Persisted State Schemas ---
class SessionStatsSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    total_spins = fields.Int(required=True, data_key='totalSpins', validate=Range(min=0), strict=True)
    total_wagered = fields.Decimal(required=True, data_key='totalWagered', as_string=True, validate=Range(min=0))
    total_won = fields.Decimal(required=True, data_key='totalWon', as_string=True, validate=Range(min=0))
    biggest_win = fields.Decimal(required=True, data_key='biggestWin', as_string=True, validate=Range(min=0))
    biggest_multiplier = fields.Int(load_default=1, data_key='biggestMultiplier', validate=Range(min=1))


class PersistedStateSchema(Schema):
    """``{"stats": {...}, "balance": ...}`` as stored per game."""
    class Meta:
        unknown = EXCLUDE

    stats = fields.Nested(SessionStatsSchema, required=True)
    balance = fields.Decimal(required=True, as_string=True, validate=Range(min=0))


# --- Response Schemas ---
class SlotSpinSchema(SQLAlchemyAutoSchema):
    class Meta:
        model = SlotSpin
        load_instance = True
        sqla_session = db.session
        exclude = ('final_grid',)

    bet_amount = fields.Float()
    win_amount = fields.Float()
    balance_after = fields.Float()
    spin_time = fields.DateTime(format='iso')

