"""
Application configuration with fail-fast validation.

Values are read from the environment (``.env`` is loaded by the app module) and
validated once when this module is imported.
"""
from decimal import Decimal

from minicasino_be.config_validator import validate_startup_config


class Config:
    """Configuration for running the game server."""

    _validated_config = validate_startup_config()

    SECRET_KEY = _validated_config['SECRET_KEY']

    # Database Configuration
    SQLALCHEMY_DATABASE_URI = _validated_config['SQLALCHEMY_DATABASE_URI']
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Rate Limiter Storage URI
    RATELIMIT_STORAGE_URI = _validated_config['RATELIMIT_STORAGE_URI']
    SPIN_RATE_LIMIT = "120 per minute"

    DEBUG = _validated_config['DEBUG']

    CORS_ORIGINS_LIST = _validated_config['CORS_ORIGINS']

    # Game settings
    AUTOPLAY_SPIN_DELAY_SECONDS = float(_validated_config['AUTOPLAY_SPIN_DELAY_SECONDS'])
    TUMBLE_STARTING_BALANCE = _validated_config['TUMBLE_STARTING_BALANCE']
    CLASSIC_STARTING_BALANCE = _validated_config['CLASSIC_STARTING_BALANCE']
    SPIN_HISTORY_LIMIT = 50
    AUTOPLAY_RUN_INLINE = False


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Disable rate limiting for tests
    RATELIMIT_ENABLED = False
    RATELIMIT_DEFAULT_LIMITS_ENABLED = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'connect_args': {'check_same_thread': False}
    }
    AUTOPLAY_SPIN_DELAY_SECONDS = 0.0
    AUTOPLAY_RUN_INLINE = True
    TUMBLE_STARTING_BALANCE = Decimal('10000')
    CLASSIC_STARTING_BALANCE = Decimal('1000')
