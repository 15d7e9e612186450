import os

basedir = os.path.abspath(os.path.dirname(__file__))


def _env_bool(name, default=False):
    raw = os.environ.get(name)
    if raw is None:
        return default
    return str(raw).strip().lower() in {'1', 'true', 'yes', 'on'}


def _env_int(name, default):
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def _env_float(name, default):
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


def _normalize_database_url(raw_url):
    if not raw_url:
        return raw_url
    if raw_url.startswith('postgres://'):
        return raw_url.replace('postgres://', 'postgresql://', 1)
    return raw_url


class BaseConfig:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-prod')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JWT_EXPIRATION_HOURS = _env_int('JWT_EXPIRATION_HOURS', 24 * 7)
    DISCORD_WEBHOOK_URL = os.environ.get('DISCORD_WEBHOOK_URL', '')
    DISCORD_TIMEOUT_SECONDS = _env_float('DISCORD_TIMEOUT_SECONDS', 10.0)
    SITE_ACCESS_PIN = os.environ.get('SITE_ACCESS_PIN', '')
    SITE_ACCESS_COOKIE_DAYS = _env_int('SITE_ACCESS_COOKIE_DAYS', 30)
    SITE_ACCESS_COOKIE_SECURE = _env_bool('SITE_ACCESS_COOKIE_SECURE', False)
    SESSION_CODE_MAX_ATTEMPTS = _env_int('SESSION_CODE_MAX_ATTEMPTS', 10)
    RP_SUM_PAGE_LIMIT = _env_int('RP_SUM_PAGE_LIMIT', 500)
    CORS_ALLOWED_ORIGINS = os.environ.get('CORS_ALLOWED_ORIGINS', '*')
    SOCKETIO_ASYNC_MODE = os.environ.get('SOCKETIO_ASYNC_MODE', 'threading')


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _normalize_database_url(
        os.environ.get(
            'DATABASE_URL',
            'sqlite:///' + os.path.join(basedir, '..', 'trio_tracker_dev.db')
        )
    )


class TestingConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SITE_ACCESS_PIN = '2468'
    DISCORD_WEBHOOK_URL = 'https://discord.test/api/webhooks/1/abc'


class ProductionConfig(BaseConfig):
    DEBUG = False
    SITE_ACCESS_COOKIE_SECURE = _env_bool('SITE_ACCESS_COOKIE_SECURE', True)
    SQLALCHEMY_DATABASE_URI = _normalize_database_url(os.environ.get('DATABASE_URL'))


config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
}
