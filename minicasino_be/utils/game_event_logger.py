"""
Game Event Logging
Structured audit lines for spins, bonus purchases, balance movements and autoplay
"""

import logging
from datetime import datetime, timezone
from flask import current_app, g, request
import json


def _request_context_info():
    try:
        request_id = g.get('request_id', 'N/A')
        ip_address = request.remote_addr if request else None
    except RuntimeError:
        # Outside request context (autoplay background task)
        request_id = 'N/A'
        ip_address = None
    return request_id, ip_address


class GameEventLogger:
    """Centralized game event logging"""

    @staticmethod
    def log_game_event(event_type: str, game_type: str, bet_amount=None, win_amount=None,
                       details: dict = None):
        request_id, ip_address = _request_context_info()
        event_data = {
            'event_type': 'game',
            'sub_type': event_type,
            'game_type': game_type,
            'bet_amount': None if bet_amount is None else str(bet_amount),
            'win_amount': None if win_amount is None else str(win_amount),
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'request_id': request_id,
            'ip_address': ip_address,
            'details': details or {}
        }
        current_app.logger.info(f"GAME_EVENT: {json.dumps(event_data, default=str)}")

    @staticmethod
    def log_financial_event(event_type: str, game_type: str, amount=None,
                            balance_before=None, balance_after=None, details: dict = None):
        request_id, ip_address = _request_context_info()
        event_data = {
            'event_type': 'financial',
            'sub_type': event_type,
            'game_type': game_type,
            'amount': None if amount is None else str(amount),
            'balance_before': None if balance_before is None else str(balance_before),
            'balance_after': None if balance_after is None else str(balance_after),
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'request_id': request_id,
            'ip_address': ip_address,
            'details': details or {}
        }
        current_app.logger.info(f"FINANCIAL_EVENT: {json.dumps(event_data, default=str)}")

    @staticmethod
    def log_autoplay_event(event_type: str, game_type: str, remaining: int = None, details: dict = None):
        request_id, _ = _request_context_info()
        event_data = {
            'event_type': 'autoplay',
            'sub_type': event_type,
            'game_type': game_type,
            'remaining': remaining,
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'request_id': request_id,
            'details': details or {}
        }
        level = logging.WARNING if event_type == 'stopped_insufficient_balance' else logging.INFO
        current_app.logger.log(level, f"GAME_EVENT: {json.dumps(event_data, default=str)}")
