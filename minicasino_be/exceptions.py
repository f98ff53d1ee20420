from minicasino_be.error_codes import ErrorCodes

class AppException(Exception):
    def __init__(self, error_code, status_message, status_code, details=None, action_button=None):
        super().__init__(status_message)
        self.error_code = error_code
        self.status_message = status_message
        self.status_code = status_code
        self.details = details if details is not None else {}
        self.action_button = action_button if action_button is not None else {}

class ValidationException(AppException):
    def __init__(self, status_message="Validation failed", details=None, action_button=None,
                 error_code=ErrorCodes.VALIDATION_ERROR):
        super().__init__(
            error_code=error_code,
            status_message=status_message,
            status_code=422,
            details=details,
            action_button=action_button
        )

class InsufficientFundsException(AppException):
    def __init__(self, status_message="Insufficient funds", details=None, action_button=None):
        super().__init__(
            error_code=ErrorCodes.INSUFFICIENT_FUNDS,
            status_message=status_message,
            status_code=400,
            details=details,
            action_button=action_button
        )

class GameLogicException(AppException):
    def __init__(self, status_message="Game logic error", details=None, action_button=None, status_code=400,
                 error_code=ErrorCodes.GAME_LOGIC_ERROR):
        super().__init__(
            error_code=error_code,
            status_message=status_message,
            status_code=status_code, # 400 for rule violations, 409 for concurrent spins
            details=details,
            action_button=action_button
        )

class SlotConfigurationError(ValueError):
    """Raised when a slot configuration is structurally unusable."""
    pass
