from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from flask import Flask, request, jsonify, current_app, g
import uuid
from flask_cors import CORS
from flask_socketio import SocketIO
from sqlalchemy.exc import SQLAlchemyError # For database errors
from werkzeug.exceptions import HTTPException as WerkzeugHTTPException # Renamed to avoid conflict
from minicasino_be.exceptions import AppException
from minicasino_be.error_codes import ErrorCodes
import logging
from pythonjsonlogger import jsonlogger
from marshmallow import ValidationError
from http import HTTPStatus
import click # For CLI commands

# Custom Logging Filter for Request ID
class RequestIdFilter(logging.Filter):
    def filter(self, record):
        try:
            record.request_id = g.get('request_id', 'N/A')
        except RuntimeError:
            # Outside application context (autoplay background task startup)
            record.request_id = 'N/A'
        return True

from .models import db
from .extensions import limiter
from .config import Config
from .services.session_store import SessionStore, TUMBLE_STORAGE_KEY, CLASSIC_STORAGE_KEY
from .services.slot_game_service import TumbleGameService, ClassicGameService
from .routes.tumble import tumble_bp
from .routes.classic import classic_bp

GAME_NAMES = ('tumble', 'classic')


def create_app(config_class=Config):
    """Application factory. Returns ``(app, socketio)``."""
    app = Flask(__name__)
    app.config.from_object(config_class)

    # --- CORS Setup ---
    allowed_origins = []

    # Development origins
    if app.debug:
        allowed_origins.extend([
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:8080",
            "http://127.0.0.1:8080"
        ])

    if getattr(config_class, 'CORS_ORIGINS_LIST', None):
        allowed_origins.extend(config_class.CORS_ORIGINS_LIST)

    if allowed_origins:
        CORS(app,
             origins=allowed_origins,
             methods=['GET', 'POST', 'OPTIONS'],
             allow_headers=['Content-Type'],
             expose_headers=['X-RateLimit-Limit', 'X-RateLimit-Remaining'],
             max_age=86400)
        app.logger.info(f"CORS configured for origins: {allowed_origins}")
    else:
        app.logger.warning("No CORS origins configured - API will reject cross-origin requests")

    # --- Logging Configuration ---
    if not app.debug:
        logger = app.logger
        handler = logging.StreamHandler()
        formatter = jsonlogger.JsonFormatter(
            '%(asctime)s %(levelname)s %(request_id)s %(module)s %(funcName)s %(lineno)d %(message)s'
        )
        handler.setFormatter(formatter)
        handler.addFilter(RequestIdFilter())
        if logger.hasHandlers():
            logger.handlers.clear()
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    else:
        # Basic logging for debug mode if not already configured
        if not app.logger.handlers:
            logging.basicConfig(level=logging.DEBUG)

    @app.before_request
    def assign_request_id():
        g.request_id = str(uuid.uuid4())

    # --- Rate Limiter Setup ---
    if app.config.get("TESTING"):
        app.config['RATELIMIT_ENABLED'] = False
        app.config['RATELIMIT_DEFAULT_LIMITS_ENABLED'] = False
    else:
        app.config.setdefault('RATELIMIT_ENABLED', True)
        app.config.setdefault('RATELIMIT_DEFAULT_LIMITS_ENABLED', True)
        app.config.setdefault('RATELIMIT_DEFAULT', "600 per hour")
    limiter.init_app(app) # Relies entirely on app.config values set above

    # --- Database Setup ---
    db.init_app(app)
    with app.app_context():
        db.create_all()

    # --- WebSocket Setup ---
    socketio = SocketIO(app,
                        cors_allowed_origins=allowed_origins,
                        async_mode='threading',
                        logger=app.logger,
                        engineio_logger=app.logger)

    from .services.websocket_manager import websocket_manager
    websocket_manager.socketio = socketio
    websocket_manager.init_app(app)

    # --- Game Services ---
    service_options = dict(
        notifier=websocket_manager,
        socketio=socketio,
        app=app,
        autoplay_delay=app.config.get('AUTOPLAY_SPIN_DELAY_SECONDS', 1.0),
        run_autoplay_inline=app.config.get('AUTOPLAY_RUN_INLINE', False),
    )
    app.extensions['minicasino_games'] = {
        'tumble': TumbleGameService(
            SessionStore(TUMBLE_STORAGE_KEY, app.config['TUMBLE_STARTING_BALANCE']), **service_options
        ),
        'classic': ClassicGameService(
            SessionStore(CLASSIC_STORAGE_KEY, app.config['CLASSIC_STARTING_BALANCE']), **service_options
        ),
    }
    app.socketio = socketio

    # --- Error Handlers ---
    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        # Marshmallow errors that escaped a route are formatted like ValidationException.
        request_id = g.get('request_id', 'N/A')
        current_app.logger.warning(
            f"Request ID: {request_id} - Validation error: {e.messages} - Error Code: {ErrorCodes.VALIDATION_ERROR}"
        )
        return jsonify({
            'request_id': request_id,
            'status': False,
            'error_code': ErrorCodes.VALIDATION_ERROR,
            'status_message': 'Input validation failed.',
            'details': {'errors': e.messages},
            'action_button': None
        }), HTTPStatus.UNPROCESSABLE_ENTITY

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(e):
        request_id = g.get('request_id', 'N/A')
        db.session.rollback()
        current_app.logger.error(
            f"Request ID: {request_id} - Database error. Error Code: {ErrorCodes.INTERNAL_SERVER_ERROR}",
            exc_info=True
        )
        return jsonify({
            'request_id': request_id,
            'status': False,
            'error_code': ErrorCodes.INTERNAL_SERVER_ERROR,
            'status_message': 'A database error occurred. Please try again later.',
            'details': {},
            'action_button': None
        }), HTTPStatus.INTERNAL_SERVER_ERROR

    @app.errorhandler(WerkzeugHTTPException)
    def handle_werkzeug_http_exception(e):
        request_id = g.get('request_id', 'N/A')
        error_code = ErrorCodes.GENERIC_ERROR
        if e.code == 404:
            error_code = ErrorCodes.NOT_FOUND
        elif e.code == 405:
            error_code = ErrorCodes.METHOD_NOT_ALLOWED
        elif e.code == 429:
            error_code = ErrorCodes.RATE_LIMITED
        elif e.code >= 500:
            error_code = ErrorCodes.INTERNAL_SERVER_ERROR

        current_app.logger.warning(
            f"Request ID: {request_id} - Werkzeug HTTPException: {e.code} - {e.name}: {e.description} - Error Code: {error_code}"
        )
        response_data = {
            'request_id': request_id,
            'status': False,
            'error_code': error_code,
            'status_message': e.name,
            'details': {'description': e.description},
            'action_button': None
        }
        response = e.get_response()
        response.data = jsonify(response_data).data
        response.content_type = "application/json"
        return response

    # --- Global Error Handler ---
    @app.errorhandler(Exception)
    def handle_global_exception(e):
        request_id = g.get('request_id', 'N/A')

        if isinstance(e, AppException):
            log = current_app.logger.error if e.status_code >= 500 else current_app.logger.warning
            log(
                f"Request ID: {request_id} - AppException: {e.error_code} - {e.status_message} - Details: {e.details}",
                exc_info=e.status_code >= 500 # Stack trace for server errors only
            )
            return jsonify({
                'request_id': request_id,
                'status': False,
                'error_code': e.error_code,
                'status_message': e.status_message,
                'details': e.details,
                'action_button': e.action_button
            }), e.status_code

        if isinstance(e, WerkzeugHTTPException):
            return handle_werkzeug_http_exception(e)

        current_app.logger.critical(
            f"Request ID: {request_id} - Unhandled Critical Exception. Error Code: {ErrorCodes.INTERNAL_SERVER_ERROR}",
            exc_info=True
        )
        return jsonify({
            'request_id': request_id,
            'status': False,
            'error_code': ErrorCodes.INTERNAL_SERVER_ERROR,
            'status_message': 'An unexpected internal server error occurred. Please try again later.',
            'details': {},
            'action_button': None
        }), HTTPStatus.INTERNAL_SERVER_ERROR

    @app.errorhandler(404) # Catches werkzeug.exceptions.NotFound
    def handle_flask_not_found(e):
        request_id = g.get('request_id', 'N/A')
        current_app.logger.warning(
            f"Request ID: {request_id} - HTTP 404 Not Found: {request.url} - Error Code: {ErrorCodes.NOT_FOUND}"
        )
        return jsonify({
            'request_id': request_id,
            'status': False,
            'error_code': ErrorCodes.NOT_FOUND,
            'status_message': 'The requested resource was not found.',
            'details': {'path': request.path},
            'action_button': None
        }), HTTPStatus.NOT_FOUND

    # Register Blueprints
    app.register_blueprint(tumble_bp)
    app.register_blueprint(classic_bp)

    # --- CLI command for resetting a stored session ---
    @app.cli.command("reset-session")
    @click.option('-g', '--game', type=click.Choice(GAME_NAMES), required=True, help='Game whose session is reset')
    def reset_session_command(game):
        """Resets a game's stored stats and balance to the defaults."""
        service = app.extensions['minicasino_games'][game]
        context = service.reset()
        click.echo(f"Session for '{game}' reset. Balance: {context.balance}")

    return app, socketio


if __name__ == '__main__':
    app, socketio = create_app()
    socketio.run(app, host='0.0.0.0', port=5000, debug=app.debug, allow_unsafe_werkzeug=True)
