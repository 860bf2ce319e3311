import os
import sys
import socket
import logging
from pathlib import Path

from config import Config
from app import create_app, seed_essential_data
from models import db


def get_lan_ip() -> str:
    """Return the host's LAN IP (best-effort), fallback to 127.0.0.1."""
    s = None
    try:
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        # Doesn't need to be reachable; used to pick the right interface
        s.connect(('8.8.8.8', 80))
        ip = s.getsockname()[0]
    except OSError:
        ip = '127.0.0.1'
    finally:
        if s is not None:
            s.close()
    return ip


def get_log_directory():
    """
    Get a suitable log directory with write permissions.

    Priority:
    1. GRANITE_LOG_DIR environment variable
    2. User's AppData/Roaming (Windows) or ~/.local/share (Linux)
    3. Fallback to BASE_DIR/logs if writable
    """
    env_log_dir = os.environ.get('GRANITE_LOG_DIR')
    if env_log_dir:
        log_dir = Path(env_log_dir)
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            test_file = log_dir / '.write_test'
            test_file.touch()
            test_file.unlink()
            return log_dir
        except OSError:
            logging.warning(f"Cannot write to GRANITE_LOG_DIR: {log_dir}")

    try:
        if os.name == 'nt':
            base = Path(os.environ.get('APPDATA', Path.home() / 'AppData' / 'Roaming'))
            log_dir = base / 'GraniteLedger' / 'logs'
        else:
            log_dir = Path.home() / '.local' / 'share' / 'granite-ledger' / 'logs'
        log_dir.mkdir(parents=True, exist_ok=True)
        return log_dir
    except OSError:
        pass

    try:
        log_dir = Config.BASE_DIR / 'logs'
        log_dir.mkdir(exist_ok=True)
        return log_dir
    except OSError:
        # Last resort: temp directory
        import tempfile
        return Path(tempfile.gettempdir()) / 'granite_ledger_logs'


def configure_logging():
    from logging.handlers import RotatingFileHandler

    log_dir = get_log_directory()
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        print(f"WARNING: Could not create log directory {log_dir}: {e}")
        import tempfile
        log_dir = Path(tempfile.gettempdir())

    logfile = log_dir / 'granite-ledger.log'

    file_handler = RotatingFileHandler(
        logfile,
        maxBytes=10*1024*1024,  # 10 MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setLevel(logging.INFO)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)

    logging.basicConfig(
        level=os.environ.get('LOGLEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
        handlers=[file_handler, console_handler]
    )
    return logfile


def initialize_database(app):
    """Create missing tables and seed the default suppliers."""
    if not app.config.get('DB_CONFIGURED'):
        logging.warning("Skipping database initialization: DATABASE_URL / DATABASE_PASSWORD not set")
        return
    with app.app_context():
        try:
            db.create_all()
            logging.info("Database tables verified")
        except Exception as e:
            logging.exception(f"Error initializing database: {e}")
            raise
    seed_essential_data(app)


if __name__ == '__main__':
    logfile = configure_logging()
    logging.info(f"Logging to: {logfile}")
    logging.info(f"Running from: {Config.BASE_DIR}")

    app = create_app()

    logging.info("Checking database initialization...")
    try:
        initialize_database(app)
    except Exception as e:
        logging.error(f"Failed to initialize database: {e}")
        logging.error("Please check your database configuration in db_config.ini")
        sys.exit(1)

    host_bind = os.environ.get('FLASK_HOST', '0.0.0.0')
    port = int(os.environ.get('FLASK_PORT', '5000'))
    url = f'http://{get_lan_ip()}:{port}/api'

    # Prefer Waitress for production serving
    use_waitress = os.environ.get('USE_WAITRESS', '1') not in ('0', 'false', 'False')
    if use_waitress:
        try:
            from waitress import serve
            threads = int(os.environ.get('WAITRESS_THREADS', '8'))
            logging.info(f"Starting Granite Ledger at {url} (Waitress, threads={threads})")
            serve(app, host=host_bind, port=port, threads=threads)
        except Exception:
            logging.exception("Waitress failed; falling back to Flask dev server")
            app.run(host=host_bind, port=port, debug=Config.DEBUG, use_reloader=False)
    else:
        # Dev-only fallback
        logging.info(f"Starting Granite Ledger at {url} (Flask dev server)")
        app.run(host=host_bind, port=port, debug=Config.DEBUG, use_reloader=False)
