import hmac
import logging

from flask import Flask, jsonify, request
from flask_login import LoginManager, UserMixin
from flask_migrate import Migrate

from models import db, GraniteSupplier
from config import Config
from extensions import limiter

logger = logging.getLogger(__name__)


class ApiUser(UserMixin):
    """The single dashboard operator authenticated by HTTP Basic credentials."""

    def __init__(self, username):
        self.id = username


def _check_basic_auth(app, auth):
    if auth is None or auth.type != 'basic':
        return None
    expected_user = app.config.get('BASIC_USER') or ''
    expected_pass = app.config.get('BASIC_PASS') or ''
    user_ok = hmac.compare_digest((auth.username or '').encode(), expected_user.encode())
    pass_ok = hmac.compare_digest((auth.password or '').encode(), expected_pass.encode())
    if user_ok and pass_ok:
        return ApiUser(auth.username)
    return None


def create_app(config_overrides=None):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)
    app.json.sort_keys = False

    limiter.init_app(app)

    # Register blueprints (lazy imports to avoid circulars)
    try:
        from routes.ledger import ledger_bp
        app.register_blueprint(ledger_bp)
    except Exception:
        logger.exception("Failed to import/register ledger_bp")
        raise
    try:
        from routes.granite import granite_bp
        app.register_blueprint(granite_bp)
    except Exception:
        logger.exception("Failed to import/register granite_bp")
        raise
    try:
        from routes.analytics import analytics_bp
        app.register_blueprint(analytics_bp)
    except Exception:
        logger.exception("Failed to import/register analytics_bp")
        raise
    try:
        from routes.expenses import expenses_bp
        app.register_blueprint(expenses_bp)
    except Exception:
        logger.exception("Failed to import/register expenses_bp")
        raise
    try:
        from routes.calculator import calculator_bp
        app.register_blueprint(calculator_bp)
    except Exception:
        logger.exception("Failed to import/register calculator_bp")
        raise

    # DB and migrations
    db.init_app(app)
    Migrate(app, db)

    # --- Login Manager (HTTP Basic, no sessions) ---
    login_manager = LoginManager()
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        if user_id and user_id == app.config.get('BASIC_USER'):
            return ApiUser(user_id)
        return None

    @login_manager.request_loader
    def load_user_from_request(req):
        try:
            return _check_basic_auth(app, req.authorization)
        except Exception:
            logger.exception("Failed to parse Authorization header")
            return None

    @login_manager.unauthorized_handler
    def unauthorized():
        logger.warning("Unauthorized request to %s from %s", request.path, request.remote_addr)
        response = jsonify({'error': 'Authentication required'})
        response.status_code = 401
        response.headers['WWW-Authenticate'] = 'Basic realm="Granite"'
        return response

    # --- JSON error pages ---
    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({'error': f'Rate limit exceeded: {e.description}'}), 429

    @app.errorhandler(500)
    def internal_error(e):
        db.session.rollback()
        return jsonify({'error': 'Internal server error'}), 500

    if not app.config.get('DB_CONFIGURED'):
        logger.warning("Database not configured: reads return empty data, writes are refused.")

    return app


FALLBACK_SUPPLIERS = [
    {'name': 'Rising Sun Exports', 'contact_person': 'Manager',
     'email': 'manager@risingsun.com', 'phone': '+91-9876543210'},
    {'name': 'Bargandy Quarry', 'contact_person': 'Sales Head',
     'email': 'sales@bargandy.com', 'phone': '+91-9876543211'},
    {'name': 'Local Granite Quarry', 'contact_person': 'Owner',
     'email': 'owner@localquarry.com', 'phone': '+91-9876543212'},
]


def seed_essential_data(app):
    """Seeds the default granite suppliers if the supplier table is empty."""
    if not app.config.get('DB_CONFIGURED'):
        return
    with app.app_context():
        if GraniteSupplier.query.count() == 0:
            print("Seeding granite suppliers...")
            try:
                for supplier in FALLBACK_SUPPLIERS:
                    db.session.add(GraniteSupplier(**supplier))
                db.session.commit()
                print("Granite suppliers seeded.")
            except Exception as e:
                db.session.rollback()
                print(f"Error seeding granite suppliers: {e}")
