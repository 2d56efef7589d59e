import os
import warnings

from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, ".env"))


class Config:
    # Database configuration - built from environment at initialization
    def __init__(self):
        """Initialize configuration with dynamic database URI"""
        self.SQLALCHEMY_DATABASE_URI = self._build_database_uri()

    def _build_database_uri(self):
        """Build database URI from environment variables"""
        database_url = os.environ.get("DATABASE_URL")

        if database_url:
            return database_url

        db_type = os.environ.get("DB_TYPE", "sqlite")

        if db_type.lower() == "postgresql":
            db_host = os.environ.get("DB_HOST") or "localhost"
            db_port = os.environ.get("DB_PORT") or "5432"
            db_name = os.environ.get("DB_NAME") or "pickem_scoring_db"
            db_user = os.environ.get("DB_USER") or "pickem_user"
            db_password = os.environ.get("DB_PASSWORD") or "pickem_password"

            return f"postgresql+psycopg://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"
        else:
            # Default to SQLite for development
            return "sqlite:///" + os.path.join(basedir, "app.db")

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Results feed configuration
    ESPN_API_BASE_URL = (
        os.environ.get("ESPN_API_BASE_URL")
        or "https://site.api.espn.com/apis/site/v2/sports/football/nfl"
    )
    FEED_MAX_CALLS = int(os.environ.get("FEED_MAX_CALLS") or 10)
    FEED_PERIOD_SECONDS = float(os.environ.get("FEED_PERIOD_SECONDS") or 60)
    FEED_MAX_RETRIES = int(os.environ.get("FEED_MAX_RETRIES") or 3)
    FEED_TIMEOUT = int(os.environ.get("FEED_TIMEOUT") or 30)

    # Season settings
    SEASON_YEAR = int(os.environ.get("SEASON_YEAR") or 2025)
    SEASON_START_DATE = os.environ.get("SEASON_START_DATE", "2025-09-04")

    # Caching configuration
    CACHE_TYPE = os.environ.get("CACHE_TYPE", "RedisCache")
    CACHE_DEFAULT_TIMEOUT = int(
        os.environ.get("CACHE_DEFAULT_TIMEOUT", 300)
    )  # 5 minutes
    CACHE_REDIS_URL = os.environ.get("CACHE_REDIS_URL", "redis://localhost:6379/0")
    CACHE_KEY_PREFIX = "pickem_scoring:"

    # Scheduler configuration
    SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "True").lower() == "true"
    RESULTS_SYNC_MINUTES = int(os.environ.get("RESULTS_SYNC_MINUTES") or 5)
    LINES_SNAPSHOT_MINUTES = int(os.environ.get("LINES_SNAPSHOT_MINUTES") or 10)
    RECOMPUTE_RETRY_MINUTES = int(os.environ.get("RECOMPUTE_RETRY_MINUTES") or 2)

    # Socket.IO
    SOCKETIO_ASYNC_MODE = os.environ.get("SOCKETIO_ASYNC_MODE", "eventlet")
    SOCKETIO_CORS_ORIGINS = os.environ.get("SOCKETIO_CORS_ORIGINS", "*")

    # Logging configuration
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_TO_CONSOLE = os.environ.get("LOG_TO_CONSOLE", "True").lower() == "true"
    LOG_TO_FILE = os.environ.get("LOG_TO_FILE", "True").lower() == "true"
    LOG_DIR = os.environ.get("LOG_DIR", "logs")

    # Environment detection
    FLASK_ENV = os.environ.get("FLASK_ENV", "development")
    DEBUG = FLASK_ENV == "development"
    TESTING = False


class DevelopmentConfig(Config):
    """Development configuration with helpful defaults"""

    DEBUG = True
    SQLALCHEMY_ECHO = os.environ.get("SQLALCHEMY_ECHO", "False").lower() == "true"

    def __init__(self):
        super().__init__()
        # Fallback to SimpleCache if Redis isn't available in development
        try:
            import redis

            redis_client = redis.Redis.from_url(self.CACHE_REDIS_URL)
            redis_client.ping()
        except redis.exceptions.ConnectionError:
            self.CACHE_TYPE = "SimpleCache"
            warnings.warn(
                "Redis not available, falling back to SimpleCache for development.",
                UserWarning,
            )


class ProductionConfig(Config):
    """Production configuration"""

    DEBUG = False

    def __init__(self):
        super().__init__()  # Call parent __init__ to build database URI

        if not os.environ.get("DATABASE_URL") and os.environ.get("DB_TYPE") != "postgresql":
            warnings.warn(
                "PRODUCTION WARNING: no DATABASE_URL or DB_TYPE=postgresql set, "
                "falling back to SQLite.",
                UserWarning,
            )


class TestingConfig(Config):
    """Testing configuration"""

    TESTING = True
    DEBUG = False
    CACHE_TYPE = "SimpleCache"
    SCHEDULER_ENABLED = False
    SOCKETIO_ASYNC_MODE = "threading"
    LOG_TO_FILE = False
    LOG_LEVEL = "WARNING"

    def _build_database_uri(self):
        return "sqlite:///:memory:"


# Configuration mapping
config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}
