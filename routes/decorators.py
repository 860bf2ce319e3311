from functools import wraps
from flask import current_app, jsonify, request


def db_configured():
    return bool(current_app.config.get('DB_CONFIGURED'))


def require_database(f):
    """
    Refuse writes when DATABASE_URL / DATABASE_PASSWORD are missing.
    Example: @require_database
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not db_configured():
            return jsonify({'error': 'Database not configured'}), 500
        return f(*args, **kwargs)
    return decorated_function


def empty_when_unconfigured(default):
    """
    Serve `default` instead of querying when the database is not configured.
    `default` may be a callable producing the payload.
    Example: @empty_when_unconfigured([])
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not db_configured():
                payload = default() if callable(default) else default
                return jsonify(payload)
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def read_or_write(default):
    """
    Combined guard for routes serving GET and write methods from one view:
    GET answers `default`, everything else 500.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not db_configured():
                if request.method == 'GET':
                    payload = default() if callable(default) else default
                    return jsonify(payload)
                return jsonify({'error': 'Database not configured'}), 500
            return f(*args, **kwargs)
        return decorated_function
    return decorator
