import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Stats engine configuration settings"""
    
    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///tactris_stats.db')
    DATABASE_LOCK_TIMEOUT = float(os.getenv('DATABASE_LOCK_TIMEOUT', 5.0))  # Seconds, sqlite busy timeout
    
    # Logging settings
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
    LOG_DIR = os.getenv('LOG_DIR', 'logs')  # Empty string disables the file handler
    
    # Rating settings
    DEFAULT_RATING = 1000
    RATING_FLOOR = 100
    
    # Statistics update retry settings
    STATS_UPDATE_MAX_RETRIES = int(os.getenv('STATS_UPDATE_MAX_RETRIES', 3))
    STATS_RETRY_BASE_DELAY = float(os.getenv('STATS_RETRY_BASE_DELAY', 0.1))
    STATS_RETRY_MAX_DELAY = float(os.getenv('STATS_RETRY_MAX_DELAY', 1.0))
    
    # Leaderboard settings
    LEADERBOARD_CACHE_TTL = int(os.getenv('LEADERBOARD_CACHE_TTL', 180))  # 3 minutes
    LEADERBOARD_DEFAULT_LIMIT = 10
    LEADERBOARD_MAX_LIMIT = int(os.getenv('LEADERBOARD_MAX_LIMIT', 100))
    GAME_MODES = os.getenv('GAME_MODES', 'classic,challenge')
    
    @classmethod
    def get_async_database_url(cls, database_url: str = None) -> str:
        """Get the database URL (configured one by default) with an async driver for sqlite"""
        database_url = database_url or cls.DATABASE_URL
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')
        return database_url
    
    @classmethod
    def get_game_modes(cls):
        """Get list of known game modes"""
        return [mode.strip() for mode in cls.GAME_MODES.split(',') if mode.strip()]
    
    @classmethod
    def validate(cls):
        """Validate that configuration values are usable"""
        if not cls.DATABASE_URL:
            raise ValueError("DATABASE_URL is required")
        if cls.STATS_UPDATE_MAX_RETRIES < 1:
            raise ValueError("STATS_UPDATE_MAX_RETRIES must be at least 1")
        if cls.STATS_RETRY_BASE_DELAY < 0 or cls.STATS_RETRY_MAX_DELAY < 0:
            raise ValueError("Retry delays cannot be negative")
        if cls.LEADERBOARD_MAX_LIMIT < 1:
            raise ValueError("LEADERBOARD_MAX_LIMIT must be at least 1")
        if not cls.get_game_modes():
            raise ValueError("GAME_MODES must list at least one game mode")
