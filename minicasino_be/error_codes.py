class ErrorCodes:
    GENERIC_ERROR = "GENERIC_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"

    # Game specific
    GAME_LOGIC_ERROR = "GAME_LOGIC_ERROR"
    INVALID_BET = "INVALID_BET"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    SPIN_IN_PROGRESS = "SPIN_IN_PROGRESS"
    AUTOPLAY_ACTIVE = "AUTOPLAY_ACTIVE"
    BONUS_ACTIVE = "BONUS_ACTIVE"
