import pytest
from minicasino_be.exceptions import (
    AppException,
    ValidationException,
    InsufficientFundsException,
    GameLogicException,
    SlotConfigurationError,
)
from minicasino_be.error_codes import ErrorCodes
from minicasino_be.services.slot_game_service import _raise_for_rejection

def test_app_exception_instantiation():
    details = {"field": "value"}
    action_button = {"text": "Retry", "actionType": "RETRY_ACTION"}

    exc = AppException(
        error_code="TEST_001",
        status_message="Test message",
        status_code=400,
        details=details,
        action_button=action_button
    )

    assert exc.error_code == "TEST_001"
    assert exc.status_message == "Test message"
    assert exc.status_code == 400
    assert exc.details == details
    assert exc.action_button == action_button
    assert str(exc) == "Test message"

def test_app_exception_defaults():
    exc = AppException(error_code="TEST_002", status_message="Default test", status_code=500)
    assert exc.details == {}
    assert exc.action_button == {}

def test_validation_exception():
    details = {"bet": ["Bet must be one of 20, 50, 100."]}
    exc = ValidationException(status_message="Input is invalid", details=details)
    assert exc.error_code == ErrorCodes.VALIDATION_ERROR
    assert exc.status_code == 422
    assert exc.details == details
    with pytest.raises(ValidationException):
        raise exc

def test_validation_exception_custom_code():
    exc = ValidationException(status_message="Bad bet", error_code=ErrorCodes.INVALID_BET)
    assert exc.error_code == ErrorCodes.INVALID_BET
    assert exc.status_code == 422

def test_insufficient_funds_exception():
    exc = InsufficientFundsException(status_message="Not enough money")
    assert exc.error_code == ErrorCodes.INSUFFICIENT_FUNDS
    assert exc.status_code == 400
    assert exc.status_message == "Not enough money"
    with pytest.raises(InsufficientFundsException):
        raise exc

def test_game_logic_exception_conflict():
    exc = GameLogicException(status_message="Spin already running", status_code=409,
                             error_code=ErrorCodes.SPIN_IN_PROGRESS)
    assert exc.status_code == 409
    assert exc.error_code == ErrorCodes.SPIN_IN_PROGRESS
    assert isinstance(exc, AppException)

def test_game_logic_exception_defaults():
    exc = GameLogicException()
    assert exc.status_code == 400
    assert exc.error_code == ErrorCodes.GAME_LOGIC_ERROR

def test_slot_configuration_error_is_value_error():
    with pytest.raises(ValueError):
        raise SlotConfigurationError("scatter missing")

@pytest.mark.parametrize("reason,exc_type,status,code", [
    ('insufficient_balance', InsufficientFundsException, 400, ErrorCodes.INSUFFICIENT_FUNDS),
    ('invalid_count', ValidationException, 422, ErrorCodes.VALIDATION_ERROR),
    ('spin_in_progress', GameLogicException, 409, ErrorCodes.SPIN_IN_PROGRESS),
    ('autoplay_active', GameLogicException, 409, ErrorCodes.AUTOPLAY_ACTIVE),
    ('bonus_active', GameLogicException, 409, ErrorCodes.BONUS_ACTIVE),
    ('something_else', GameLogicException, 409, ErrorCodes.GAME_LOGIC_ERROR),
])
def test_rejection_reasons_map_to_exceptions(reason, exc_type, status, code):
    with pytest.raises(exc_type) as excinfo:
        _raise_for_rejection(reason, 'spin', details={'balance': 5.0})
    assert excinfo.value.status_code == status
    assert excinfo.value.error_code == code
    assert excinfo.value.details == {'balance': 5.0}
