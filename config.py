import os
import configparser
from pathlib import Path
import sys

from sqlalchemy.engine import make_url


class Config:
    if getattr(sys, 'frozen', False):
        BASE_DIR = Path(sys.executable).parent
    else:
        BASE_DIR = Path(__file__).resolve().parent

    CONFIG_FILE_RUNTIME = BASE_DIR / 'db_config.ini'

    config_parser = configparser.ConfigParser()
    if CONFIG_FILE_RUNTIME.exists():
        config_parser.read(CONFIG_FILE_RUNTIME)

    if config_parser.sections():
        DATABASE_URL = config_parser.get('database', 'url', fallback='')
        DATABASE_PASSWORD = config_parser.get('database', 'password', fallback='')
        DEBUG = config_parser.getboolean('app', 'debug', fallback=False)
        TOP_BUYERS_LIMIT = config_parser.getint('app', 'top_buyers_limit', fallback=5)
        BASIC_USER = config_parser.get('auth', 'username', fallback='')
        BASIC_PASS = config_parser.get('auth', 'password', fallback='')
    else:
        DATABASE_URL = os.environ.get('DATABASE_URL', '')
        DATABASE_PASSWORD = os.environ.get('DATABASE_PASSWORD', '')
        DEBUG = os.environ.get('FLASK_DEBUG', 'False').lower() == 'true'
        TOP_BUYERS_LIMIT = int(os.environ.get('TOP_BUYERS_LIMIT', 5))
        BASIC_USER = os.environ.get('BASIC_USER', '')
        BASIC_PASS = os.environ.get('BASIC_PASS', '')

    # Both the endpoint and the credential are required. Without them the app
    # still boots: reads return empty data and writes answer 500
    # "Database not configured".
    DB_CONFIGURED = bool(DATABASE_URL and DATABASE_PASSWORD)

    if DB_CONFIGURED:
        SQLALCHEMY_DATABASE_URI = make_url(DATABASE_URL).set(password=DATABASE_PASSWORD).render_as_string(hide_password=False)
        SQLALCHEMY_ENGINE_OPTIONS = {
            'pool_pre_ping': True,
            'pool_recycle': 280,
            'pool_size': 10,
            'max_overflow': 20,
            'connect_args': {
                'connect_timeout': 10,
            }
        }
    else:
        print("WARNING: DATABASE_URL / DATABASE_PASSWORD not configured. Reads return empty data, writes are refused.")
        SQLALCHEMY_DATABASE_URI = 'sqlite://'
        SQLALCHEMY_ENGINE_OPTIONS = {}

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    SECRET_KEY = None
    if config_parser.sections():
        SECRET_KEY = config_parser.get('app', 'secret_key', fallback=None)
        if SECRET_KEY == 'AUTO_GENERATED':
            SECRET_KEY = None
    if not SECRET_KEY:
        SECRET_KEY = os.environ.get('SECRET_KEY') or os.urandom(32).hex()

    # HTTP Basic auth is enabled only when both values are present
    LOGIN_DISABLED = not (BASIC_USER and BASIC_PASS)

    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')
    EXPORT_RATE_LIMIT = os.environ.get('EXPORT_RATE_LIMIT', '30 per minute')
