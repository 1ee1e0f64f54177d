"""
Custom exceptions for the statistics engine with user-friendly error messages.
"""

class StatsException(Exception):
    """Base exception for ranking and statistics errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message

class StatsValidationError(StatsException):
    """Raised when session input, sort fields, periods or game modes are invalid."""
    def __init__(self, field: str, reason: str):
        super().__init__(
            f"Invalid {field}: {reason}",
            f"❌ {reason}"
        )
        self.field = field

class TransientPersistenceError(StatsException):
    """Raised for storage failures expected to resolve on retry (lock contention, conflicts)."""
    def __init__(self, operation: str, details: str = None):
        super().__init__(
            f"Transient database error during {operation}: {details}",
            "❌ The server is busy. Please try again."
        )

class FatalPersistenceError(StatsException):
    """Raised when database operations fail in a way retrying cannot fix."""
    def __init__(self, operation: str, details: str = None):
        super().__init__(
            f"Database error during {operation}: {details}",
            "❌ Database error occurred. Please try again later."
        )

class RetryExhaustedError(StatsException):
    """Raised when a transactional operation keeps failing transiently."""
    def __init__(self, operation: str, attempts: int):
        super().__init__(
            f"Transaction failed for {operation} after {attempts} attempts",
            "❌ Failed to save statistics. Please try again later."
        )
        self.attempts = attempts
