# config/settings.py
"""
Environment-based application configuration for GiftGenie

Values are read from the process environment, with a .env file loaded
first so local development does not need exported variables.
"""

import os
import secrets
from datetime import timedelta

from dotenv import load_dotenv

from config.security import SecurityConfig

load_dotenv()


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def normalize_database_url(url: str) -> str:
    """
    Rewrite Heroku/Neon style URLs so SQLAlchemy picks the psycopg 3 driver

    Args:
        url: Raw database URL from the environment

    Returns:
        URL usable by SQLAlchemy
    """
    if not url:
        return url
    if url.startswith('postgres://'):
        url = 'postgresql://' + url[len('postgres://'):]
    if url.startswith('postgresql://'):
        url = 'postgresql+psycopg://' + url[len('postgresql://'):]
    return url


class Config(SecurityConfig):
    """Base configuration shared by every environment"""

    APP_NAME = 'GiftGenie API'
    VERSION = os.environ.get('APP_VERSION', '1.0.0')

    SECRET_KEY = (os.environ.get('SECRET_KEY') or os.environ.get('SESSION_SECRET')
                  or secrets.token_urlsafe(32))

    # Storage
    DATABASE_URL = normalize_database_url(os.environ.get('DATABASE_URL', ''))
    STORAGE_BACKEND = os.environ.get('STORAGE_BACKEND') or ('database' if DATABASE_URL else 'memory')
    SQLALCHEMY_DATABASE_URI = DATABASE_URL or 'sqlite:///giftgenie.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    DB_POOL_SIZE = int(os.environ.get('DB_POOL_SIZE', 10))
    DB_MAX_OVERFLOW = int(os.environ.get('DB_MAX_OVERFLOW', 20))
    SLOW_QUERY_THRESHOLD = 1.0

    # Redis / Celery
    REDIS_URL = os.environ.get('REDIS_URL', '')
    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI') or REDIS_URL or 'memory://'
    CELERY_BROKER_URL = os.environ.get('CELERY_BROKER_URL') or REDIS_URL or 'redis://localhost:6379/0'
    CELERY_RESULT_BACKEND = os.environ.get('CELERY_RESULT_BACKEND') or CELERY_BROKER_URL
    CELERY_TASK_ALWAYS_EAGER = False
    REMINDER_CHECK_HOUR = int(os.environ.get('REMINDER_CHECK_HOUR', 9))

    # Recommendation and image providers
    OPENAI_API_KEY = os.environ.get('OPENAI_API_KEY', '').strip()
    OPENAI_MODEL = os.environ.get('OPENAI_MODEL', 'gpt-4o').strip()
    UNSPLASH_ACCESS_KEY = os.environ.get('UNSPLASH_ACCESS_KEY', '')
    PEXELS_API_KEY = os.environ.get('PEXELS_API_KEY', '')
    AMAZON_ACCESS_KEY = os.environ.get('AMAZON_ACCESS_KEY', '')
    AMAZON_SECRET_KEY = os.environ.get('AMAZON_SECRET_KEY', '')
    AMAZON_PARTNER_TAG = os.environ.get('AMAZON_PARTNER_TAG', '')
    IMAGE_LOOKUP_ENABLED = _env_flag('IMAGE_LOOKUP_ENABLED')
    GOOGLE_IMAGES_ENABLED = _env_flag('GOOGLE_IMAGES_ENABLED')

    # Email
    EMAIL_HOST = os.environ.get('EMAIL_HOST', '')
    EMAIL_PORT = int(os.environ.get('EMAIL_PORT', 587))
    EMAIL_SECURE = _env_flag('EMAIL_SECURE')
    EMAIL_USER = os.environ.get('EMAIL_USER', '')
    EMAIL_PASS = os.environ.get('EMAIL_PASS', '')
    EMAIL_FROM = os.environ.get('EMAIL_FROM', '')
    WEBAPP_URL = os.environ.get('WEBAPP_URL', 'http://localhost:3000')

    # Uploads and client
    UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER', os.path.join(os.getcwd(), 'uploads'))
    CLIENT_BUILD_DIR = os.environ.get('CLIENT_BUILD_DIR', os.path.join(os.getcwd(), 'dist', 'public'))
    CORS_ORIGINS = [o.strip() for o in os.environ.get('CORS_ORIGINS', 'http://localhost:3000,http://localhost:5173').split(',') if o.strip()]

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_FILE = os.environ.get('LOG_FILE', '')
    SLOW_REQUEST_THRESHOLD = 1000

    ANALYTICS_CACHE_TTL = 300


class DevelopmentConfig(Config):
    DEBUG = True
    SESSION_COOKIE_SECURE = False
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'DEBUG')


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = 'testing-secret-key'
    SESSION_COOKIE_SECURE = False
    WTF_CSRF_ENABLED = False
    RATELIMIT_ENABLED = False
    RATELIMIT_STORAGE_URI = 'memory://'
    STORAGE_BACKEND = 'memory'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    DATABASE_URL = ''
    REDIS_URL = ''
    CELERY_BROKER_URL = 'memory://'
    CELERY_RESULT_BACKEND = 'cache+memory://'
    CELERY_TASK_ALWAYS_EAGER = True
    OPENAI_API_KEY = ''
    IMAGE_LOOKUP_ENABLED = False
    GOOGLE_IMAGES_ENABLED = False
    EMAIL_HOST = ''
    EMAIL_USER = ''
    EMAIL_PASS = ''
    LOG_FILE = ''
    PERMANENT_SESSION_LIFETIME = timedelta(days=7)


class ProductionConfig(Config):
    DEBUG = False
    PREFERRED_URL_SCHEME = 'https'


CONFIGS = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
}


def get_config(config_name: str = None):
    """Resolve a configuration class by environment name"""
    config_name = config_name or os.environ.get('FLASK_ENV', 'production')
    return CONFIGS.get(config_name, ProductionConfig)
