import math

from tactris.config import Config
from tactris.constants import RatingConstants

class RatingCalculator:
    """Handles the additive rating model applied after each game session"""

    @staticmethod
    def calculate_score_term(score: int) -> int:
        """
        Rating points earned from the session score

        Args:
            score: Session score

        Returns:
            floor(score / 100), capped at 20
        """
        return min(RatingConstants.SCORE_TERM_CAP, score // RatingConstants.SCORE_TERM_DIVISOR)

    @staticmethod
    def calculate_lines_term(lines_cleared: int) -> float:
        """Rating points from lines cleared. Fractional, not floored."""
        return min(float(RatingConstants.LINES_TERM_CAP), lines_cleared / RatingConstants.LINES_TERM_DIVISOR)

    @staticmethod
    def calculate_efficiency_term(placement_efficiency: float) -> int:
        if placement_efficiency > RatingConstants.HIGH_EFFICIENCY_THRESHOLD:
            return RatingConstants.HIGH_EFFICIENCY_BONUS
        if placement_efficiency > RatingConstants.MEDIUM_EFFICIENCY_THRESHOLD:
            return RatingConstants.MEDIUM_EFFICIENCY_BONUS
        return 0

    @staticmethod
    def calculate_duration_term(score: int, duration: int) -> int:
        """
        Capped bonus on score-per-minute

        Args:
            score: Session score
            duration: Session duration in seconds

        Returns:
            0 for a zero duration, else floor(score_per_minute / 100) capped at 10
        """
        if duration == 0:
            return 0
        score_per_minute = (score / duration) * 60
        return min(RatingConstants.DURATION_TERM_CAP, math.floor(score_per_minute / RatingConstants.DURATION_TERM_DIVISOR))

    @staticmethod
    def calculate_rating_change(score: int, lines_cleared: int, placement_efficiency: float, duration: int) -> float:
        """
        Calculate the rating delta for one session

        Each term is capped independently, then summed. The delta is never
        negative: the model has no decay path.
        """
        return (
            RatingCalculator.calculate_score_term(score)
            + RatingCalculator.calculate_lines_term(lines_cleared)
            + RatingCalculator.calculate_efficiency_term(placement_efficiency)
            + RatingCalculator.calculate_duration_term(score, duration)
        )

    @staticmethod
    def apply_rating_change(current_rating: float, rating_change: float) -> float:
        """Apply a delta, flooring the result at the minimum rating"""
        return max(Config.RATING_FLOOR, current_rating + rating_change)

    @staticmethod
    def format_rating_change(rating_change: float) -> str:
        """
        Format rating change for display

        Args:
            rating_change: The rating delta

        Returns:
            Formatted string with an explicit sign
        """
        if rating_change > 0:
            return f"+{rating_change:g}"
        elif rating_change < 0:
            return f"{rating_change:g}"
        else:
            return "±0"
