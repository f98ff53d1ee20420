"""
Configuration validation and startup checks.

Environment values are parsed once at startup. Malformed numbers fail fast instead of
surfacing later as a broken spin; production deployments must also provide the
secrets and origins that have development fallbacks.
"""

import os
import sys
import warnings
import secrets
from decimal import Decimal, InvalidOperation
from typing import List, Optional


class ConfigValidationError(Exception):
    """Raised when critical configuration is missing or invalid."""
    pass


class ConfigValidator:
    """Validates application configuration read from the environment."""

    def __init__(self, is_production: bool = None):
        """
        Args:
            is_production: If None, production is assumed only when FLASK_ENV=production.
        """
        if is_production is None:
            is_production = os.getenv('FLASK_ENV', '').lower() == 'production'

        self.is_production = is_production
        self.is_testing = os.getenv('TESTING', 'False').lower() in ('true', '1', 't')
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def validate_secret_key(self) -> str:
        secret_key = os.getenv('SECRET_KEY')
        if not secret_key:
            if self.is_production:
                raise ConfigValidationError("SECRET_KEY is required in production")
            secret_key = secrets.token_urlsafe(32)
            self.warnings.append("SECRET_KEY not set - generated a random key for this process")
        elif len(secret_key) < 32:
            error_msg = "SECRET_KEY should be at least 32 characters long"
            if self.is_production:
                self.errors.append(f"CRITICAL: {error_msg}")
            else:
                self.warnings.append(f"WARNING: {error_msg}")
        return secret_key

    def validate_database_config(self) -> str:
        database_url = os.getenv('DATABASE_URL', 'sqlite:///minicasino.db')
        if not database_url.startswith(('postgresql://', 'postgresql+psycopg2://', 'sqlite://')):
            self.errors.append("CRITICAL: DATABASE_URL must use a supported database driver")
        return database_url

    def validate_decimal(self, var_name: str, default: str, minimum: Decimal = Decimal('0')) -> Optional[Decimal]:
        raw = os.getenv(var_name, default)
        try:
            value = Decimal(raw)
        except (InvalidOperation, TypeError):
            self.errors.append(f"CRITICAL: {var_name} must be a number (got '{raw}')")
            return None
        if not value.is_finite() or value < minimum:
            self.errors.append(f"CRITICAL: {var_name} must be a finite number >= {minimum} (got '{raw}')")
            return None
        return value

    def validate_rate_limiting_config(self) -> str:
        rate_limit_uri = os.getenv('RATELIMIT_STORAGE_URI', 'memory://')
        if rate_limit_uri == 'memory://' and self.is_production:
            self.warnings.append(
                "Rate limiting uses memory:// storage in production. "
                "This is not suitable for multi-process deployments."
            )
        return rate_limit_uri

    def validate_cors_config(self) -> List[str]:
        cors_origins = os.getenv('CORS_ORIGINS', '')
        if not cors_origins:
            if self.is_production:
                self.errors.append(
                    "CRITICAL: CORS_ORIGINS must be set in production to specify allowed frontend domains"
                )
            return []

        origins = [origin.strip() for origin in cors_origins.split(',') if origin.strip()]
        for origin in origins:
            if not origin.startswith(('http://', 'https://')):
                self.warnings.append(f"CORS origin '{origin}' should include protocol (http:// or https://)")
        return origins

    def validate_all(self) -> dict:
        """
        Returns:
            Dictionary containing validated configuration values

        Raises:
            ConfigValidationError: If any value is missing or malformed
        """
        config = {}

        try:
            config['SECRET_KEY'] = self.validate_secret_key()
            config['SQLALCHEMY_DATABASE_URI'] = self.validate_database_config()
            config['RATELIMIT_STORAGE_URI'] = self.validate_rate_limiting_config()
            config['CORS_ORIGINS'] = self.validate_cors_config()
            config['AUTOPLAY_SPIN_DELAY_SECONDS'] = self.validate_decimal('AUTOPLAY_SPIN_DELAY_SECONDS', '1.0')
            config['TUMBLE_STARTING_BALANCE'] = self.validate_decimal('TUMBLE_STARTING_BALANCE', '10000')
            config['CLASSIC_STARTING_BALANCE'] = self.validate_decimal('CLASSIC_STARTING_BALANCE', '1000')
            config['DEBUG'] = os.getenv('DEBUG', os.getenv('FLASK_DEBUG', 'False')).lower() in ('true', '1', 't')

            if self.is_production and config['DEBUG']:
                self.errors.append("CRITICAL: DEBUG mode must be disabled in production")

            if self.errors:
                error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in self.errors)
                if self.warnings:
                    error_msg += "\n\nWarnings:\n" + "\n".join(f"  - {warning}" for warning in self.warnings)
                raise ConfigValidationError(error_msg)

            if self.warnings and not self.is_testing:
                for warning in self.warnings:
                    warnings.warn(warning, UserWarning)

            return config

        except Exception as e:
            if isinstance(e, ConfigValidationError):
                raise
            raise ConfigValidationError(f"Configuration validation error: {str(e)}") from e


def validate_startup_config() -> dict:
    """
    Validates configuration with fail-fast behavior.

    Raises:
        SystemExit: If validation fails.
    """
    try:
        validator = ConfigValidator()
        return validator.validate_all()
    except ConfigValidationError as e:
        print("\nCONFIGURATION VALIDATION FAILED\n", file=sys.stderr)
        print(str(e), file=sys.stderr)
        print("\nApplication startup ABORTED\n", file=sys.stderr)
        sys.exit(1)
