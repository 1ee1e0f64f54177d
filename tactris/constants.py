"""
Engine-wide constants for the Tactris statistics engine.

This module contains the magic numbers of the rating model and the storage
bounds enforced on incoming session data.
"""

class RatingConstants:
    """Constants for the additive rating model."""
    
    # Per-term caps, each term is capped independently before summing
    SCORE_TERM_CAP = 20
    SCORE_TERM_DIVISOR = 100
    LINES_TERM_CAP = 15
    LINES_TERM_DIVISOR = 10
    DURATION_TERM_CAP = 10
    DURATION_TERM_DIVISOR = 100  # Applied to score-per-minute
    
    # Efficiency bonus thresholds (strictly greater than)
    HIGH_EFFICIENCY_THRESHOLD = 80
    HIGH_EFFICIENCY_BONUS = 10
    MEDIUM_EFFICIENCY_THRESHOLD = 60
    MEDIUM_EFFICIENCY_BONUS = 5

class StorageConstants:
    """Bounds of the persisted columns."""
    
    # Per-session values land in 32-bit integer columns (best_score, best_lines_cleared, ...)
    MAX_SESSION_VALUE = 2_147_483_647
    
    MIN_PLACEMENT_EFFICIENCY = 0.0
    MAX_PLACEMENT_EFFICIENCY = 100.0
    
    MAX_GAME_MODE_LENGTH = 50
    MAX_DISPLAY_NAME_LENGTH = 100

class SummaryConstants:
    """Constants for derived statistics views."""
    
    # Decimal places kept on derived averages
    AVERAGE_PRECISION = 2
    SECONDS_PER_MINUTE = 60
