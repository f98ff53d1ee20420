from flask import Blueprint, request, jsonify, current_app
from http import HTTPStatus
from marshmallow import ValidationError

from ..extensions import limiter
from ..schemas import ClassicBetSchema, AutoplayStartSchema, HistoryQuerySchema
from ..exceptions import ValidationException

classic_bp = Blueprint('classic', __name__, url_prefix='/api/classic')


def _service():
    return current_app.extensions['minicasino_games']['classic']


def _spin_rate_limit():
    return current_app.config.get('SPIN_RATE_LIMIT', '120 per minute')


@classic_bp.route('/state', methods=['GET'])
def get_state():
    return jsonify({'status': True, 'state': _service().state()}), HTTPStatus.OK


@classic_bp.route('/paytable', methods=['GET'])
def get_paytable():
    return jsonify({'status': True, 'paytable': _service().paytable()}), HTTPStatus.OK


@classic_bp.route('/bet', methods=['POST'])
def set_bet():
    try:
        data = ClassicBetSchema().load(request.get_json(silent=True) or {})
    except ValidationError as e:
        raise ValidationException(status_message="Input validation failed.", details=e.messages)
    context = _service().select_bet(data.get('bet_per_line'), data.get('lines'))
    current_app.logger.info(f"Classic bet set to {context.bet} x {context.lines} lines")
    return jsonify({'status': True, 'state': _service().state()}), HTTPStatus.OK


@classic_bp.route('/spin', methods=['POST'])
@limiter.limit(_spin_rate_limit)
def spin():
    outcome = _service().spin()
    return jsonify({
        'status': True,
        'result': outcome.to_dict(),
        'state': _service().state(),
    }), HTTPStatus.OK


@classic_bp.route('/autoplay/start', methods=['POST'])
def start_autoplay():
    try:
        data = AutoplayStartSchema().load(request.get_json(silent=True) or {})
    except ValidationError as e:
        raise ValidationException(status_message="Input validation failed.", details=e.messages)
    _service().start_autoplay(data['count'])
    return jsonify({'status': True, 'state': _service().state()}), HTTPStatus.OK


@classic_bp.route('/autoplay/stop', methods=['POST'])
def stop_autoplay():
    _service().stop_autoplay()
    return jsonify({'status': True, 'state': _service().state()}), HTTPStatus.OK


@classic_bp.route('/history', methods=['GET'])
def get_history():
    try:
        args = HistoryQuerySchema().load(request.args.to_dict())
    except ValidationError as e:
        raise ValidationException(status_message="Input validation failed.", details=e.messages)
    limit = min(args['limit'], current_app.config.get('SPIN_HISTORY_LIMIT', 50))
    return jsonify({'status': True, 'spins': _service().history(limit)}), HTTPStatus.OK
