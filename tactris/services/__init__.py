"""
Services package for the Tactris stats engine.

Statistics updates and leaderboard queries on top of the shared retry layer.
"""

from .base import BaseService
from .leaderboard import LeaderboardService
from .statistics import StatisticsService

__all__ = ['BaseService', 'LeaderboardService', 'StatisticsService']
