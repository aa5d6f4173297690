class ErrorCode:
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED_ACTOR = "UNAUTHORIZED_ACTOR"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    FORBIDDEN_TRANSITION = "FORBIDDEN_TRANSITION"
    ADMISSION_REJECTED = "ADMISSION_REJECTED"
    LOCKED = "LOCKED"
    REDEMPTION_LIMIT = "REDEMPTION_LIMIT"
    CONFLICT = "CONFLICT"
