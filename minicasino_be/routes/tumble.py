from flask import Blueprint, request, jsonify, current_app
from http import HTTPStatus
from marshmallow import ValidationError

from ..extensions import limiter
from ..schemas import TumbleBetSchema, AnteBetSchema, AutoplayStartSchema, HistoryQuerySchema
from ..exceptions import ValidationException

tumble_bp = Blueprint('tumble', __name__, url_prefix='/api/tumble')


def _service():
    return current_app.extensions['minicasino_games']['tumble']


def _spin_rate_limit():
    return current_app.config.get('SPIN_RATE_LIMIT', '120 per minute')


def _load(schema, data):
    try:
        return schema.load(data if data is not None else {})
    except ValidationError as e:
        raise ValidationException(status_message="Input validation failed.", details=e.messages)


@tumble_bp.route('/state', methods=['GET'])
def get_state():
    return jsonify({'status': True, 'state': _service().state()}), HTTPStatus.OK


@tumble_bp.route('/paytable', methods=['GET'])
def get_paytable():
    return jsonify({'status': True, 'paytable': _service().paytable()}), HTTPStatus.OK


@tumble_bp.route('/bet', methods=['POST'])
def set_bet():
    data = _load(TumbleBetSchema(), request.get_json(silent=True))
    _service().select_bet(data['bet'])
    current_app.logger.info(f"Tumble bet set to {data['bet']}")
    return jsonify({'status': True, 'state': _service().state()}), HTTPStatus.OK


@tumble_bp.route('/ante', methods=['POST'])
def set_ante_bet():
    data = _load(AnteBetSchema(), request.get_json(silent=True))
    context = _service().toggle_ante_bet(data.get('enabled'))
    current_app.logger.info(f"Tumble ante bet {'enabled' if context.ante_bet else 'disabled'}")
    return jsonify({'status': True, 'state': _service().state()}), HTTPStatus.OK


@tumble_bp.route('/spin', methods=['POST'])
@limiter.limit(_spin_rate_limit)
def spin():
    outcome = _service().spin()
    return jsonify({
        'status': True,
        'result': outcome.to_dict(),
        'state': _service().state(),
    }), HTTPStatus.OK


@tumble_bp.route('/buy-bonus', methods=['POST'])
@limiter.limit(_spin_rate_limit)
def buy_bonus():
    purchase = _service().purchase_bonus()
    return jsonify({
        'status': True,
        'cost': float(purchase.cost),
        'free_spins': purchase.spins_awarded,
        'state': _service().state(),
    }), HTTPStatus.OK


@tumble_bp.route('/autoplay/start', methods=['POST'])
def start_autoplay():
    data = _load(AutoplayStartSchema(), request.get_json(silent=True))
    _service().start_autoplay(data['count'])
    return jsonify({'status': True, 'state': _service().state()}), HTTPStatus.OK


@tumble_bp.route('/autoplay/stop', methods=['POST'])
def stop_autoplay():
    _service().stop_autoplay()
    return jsonify({'status': True, 'state': _service().state()}), HTTPStatus.OK


@tumble_bp.route('/history', methods=['GET'])
def get_history():
    args = _load(HistoryQuerySchema(), request.args.to_dict())
    limit = min(args['limit'], current_app.config.get('SPIN_HISTORY_LIMIT', 50))
    return jsonify({'status': True, 'spins': _service().history(limit)}), HTTPStatus.OK
