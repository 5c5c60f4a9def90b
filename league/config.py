import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Engine configuration settings"""

    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///league.db')

    # Runtime settings
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
    LOG_DIR = os.getenv('LOG_DIR', 'logs')

    # Standings settings
    POINTS_PER_WIN = int(os.getenv('POINTS_PER_WIN', 3))

    # Competition codes used in fight identifiers and competition metas
    LEAGUE_CODE = os.getenv('LEAGUE_CODE', 'IFC')
    CHAMPIONS_CUP_CODE = os.getenv('CHAMPIONS_CUP_CODE', 'CC')
    INVICTA_CUP_CODE = os.getenv('INVICTA_CUP_CODE', 'IC')

    # Global ranking settings
    RANKING_LOCK_TTL_SECONDS = int(os.getenv('RANKING_LOCK_TTL_SECONDS', 60))

    # Event bus settings
    EVENT_QUEUE_SIZE = int(os.getenv('EVENT_QUEUE_SIZE', 1000))

    @classmethod
    def get_async_database_url(cls) -> str:
        """Get the database URL with an async driver"""
        database_url = cls.DATABASE_URL
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')
        elif database_url == 'sqlite://':
            database_url = 'sqlite+aiosqlite://'
        return database_url

    @classmethod
    def get_cup_codes(cls):
        """Get the codes of the two cups linked to every league season"""
        return [cls.CHAMPIONS_CUP_CODE, cls.INVICTA_CUP_CODE]

    @classmethod
    def validate(cls):
        """Validate that configuration values are usable"""
        if cls.POINTS_PER_WIN <= 0:
            raise ValueError("POINTS_PER_WIN must be a positive integer")
        if cls.CHAMPIONS_CUP_CODE == cls.INVICTA_CUP_CODE:
            raise ValueError("CHAMPIONS_CUP_CODE and INVICTA_CUP_CODE must differ")
        if cls.LEAGUE_CODE in cls.get_cup_codes():
            raise ValueError("LEAGUE_CODE must differ from the cup codes")
        if cls.RANKING_LOCK_TTL_SECONDS <= 0:
            raise ValueError("RANKING_LOCK_TTL_SECONDS must be positive")
