import configparser
import sys
from pathlib import Path


def get_base_dir():
    if getattr(sys, 'frozen', False):
        return Path(sys.executable).parent
    return Path(__file__).parent


def build_config(database_url, database_password, username='', password='',
                 top_buyers_limit=5, debug=False):
    """ConfigParser holding the sections config.Config reads from db_config.ini."""
    if not database_url:
        raise ValueError("Database URL is required")
    try:
        limit = int(top_buyers_limit)
    except (TypeError, ValueError):
        raise ValueError("Top buyers limit must be a whole number")
    if limit < 0:
        raise ValueError("Top buyers limit cannot be negative")

    config = configparser.ConfigParser()
    # ConfigParser interpolation: a literal '%' is written as '%%'
    config['database'] = {
        'url': database_url.replace('%', '%%'),
        'password': database_password.replace('%', '%%'),
    }
    config['app'] = {
        'secret_key': 'AUTO_GENERATED',
        'debug': 'True' if debug else 'False',
        'top_buyers_limit': str(limit),
    }
    config['auth'] = {
        'username': username.replace('%', '%%'),
        'password': password.replace('%', '%%'),
    }
    return config


def write_config(config, base_dir=None):
    config_file = Path(base_dir or get_base_dir()) / 'db_config.ini'
    with open(config_file, 'w') as f:
        config.write(f)
    return config_file


def run_setup():
    print("=" * 60)
    print("Granite Ledger - First Time Setup")
    print("=" * 60)

    print("\n[DATABASE CONFIGURATION]")
    db_url = input("Database URL [postgresql+psycopg2://postgres@localhost:5432/granite]: ").strip() \
        or 'postgresql+psycopg2://postgres@localhost:5432/granite'
    db_pass = input("Database Password: ").strip()

    print("\n[APPLICATION SETTINGS]")
    top_buyers = input("Top buyers shown on dashboards [5]: ").strip() or '5'

    print("\n[DASHBOARD LOGIN] (leave empty to disable authentication)")
    username = input("Username: ").strip()
    password = input("Password: ").strip() if username else ''

    config = build_config(db_url, db_pass, username=username, password=password,
                          top_buyers_limit=top_buyers)
    config_file = write_config(config)

    print(f"\nConfiguration saved to {config_file}")
    print("\nYou can now start the server with: python run.py")
    input("\nPress Enter to continue...")


if __name__ == '__main__':
    run_setup()
