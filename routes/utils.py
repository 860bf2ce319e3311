from flask import request, jsonify
from models import db, DocumentSequence
from sqlalchemy import exc
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP, getcontext
import logging

getcontext().prec = 28

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger('granite.audit')


def to_decimal(value, places='0.01'):
    """Coerce value (None, float, int, str, Decimal) -> Decimal quantized to `places`.

    - Accepts strings with commas "1,234.56", parentheses for negatives "(1,234.56)".
    - Returns Decimal zero for None / empty string.
    - Raises ValueError for anything that is not a number, so request
      handlers can answer 400 instead of silently storing 0.
    """
    quant = Decimal(places)
    if value is None or value == '':
        return Decimal('0').quantize(quant)
    if isinstance(value, bool):
        raise ValueError(f"Invalid numeric value: {value!r}")
    if isinstance(value, Decimal):
        return value.quantize(quant, rounding=ROUND_HALF_UP)
    if isinstance(value, int):
        return Decimal(value).quantize(quant, rounding=ROUND_HALF_UP)
    try:
        if isinstance(value, str):
            s = value.strip().replace(',', '')
            if s.startswith('(') and s.endswith(')'):
                s = '-' + s[1:-1]
            d = Decimal(s)
        else:
            # float goes through str() to avoid binary-float artifacts
            d = Decimal(str(value))
    except Exception:
        raise ValueError(f"Invalid numeric value: {value!r}")
    if not d.is_finite():
        raise ValueError(f"Invalid numeric value: {value!r}")
    return d.quantize(quant, rounding=ROUND_HALF_UP)


def to_measure(value):
    """Meters / square feet: 3 decimal places."""
    return to_decimal(value, places='0.001')


def jsonable(value):
    """Decimals (also nested in dicts/lists) -> float for jsonify()."""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {k: jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [jsonable(v) for v in value]
    return value


def safe_int(value, default=None):
    try:
        if value is None or (isinstance(value, str) and value.strip() == ''):
            return default
        return int(value)
    except (ValueError, TypeError):
        return default


def parse_date(date_str):
    """'YYYY-MM-DD' -> date, None for empty/invalid input."""
    try:
        return datetime.strptime(str(date_str)[:10], "%Y-%m-%d").date()
    except (ValueError, TypeError):
        return None


def require_date(data, field):
    value = parse_date(data.get(field))
    if value is None:
        raise ValueError(f"{field} is required (YYYY-MM-DD)")
    return value


def json_body():
    """Request JSON as a dict; a missing or malformed body is a 400."""
    data = request.get_json(silent=True)
    if data is None:
        raise ValueError("Request body must be JSON")
    return data


def date_range_args():
    """(from, to) dates from the query string; both optional and inclusive."""
    start = request.args.get('from') or request.args.get('start_date')
    end = request.args.get('to') or request.args.get('end_date')
    start_date = parse_date(start) if start else None
    end_date = parse_date(end) if end else None
    if start and start_date is None:
        raise ValueError("Invalid 'from' date, expected YYYY-MM-DD")
    if end and end_date is None:
        raise ValueError("Invalid 'to' date, expected YYYY-MM-DD")
    return start_date, end_date


def next_document_number(name, prefix, width=6, separator='-'):
    """
    Reserve the next number of the `name` sequence, e.g. GS-000001.

    - Locks the counter row so concurrent inserts never get the same number.
    - Does not commit (caller's transaction owns the reservation).
    """
    seq = (DocumentSequence.query
           .filter_by(name=name)
           .with_for_update()
           .first())
    if seq is None:
        seq = DocumentSequence(name=name, next_value=1)
        db.session.add(seq)
        db.session.flush()
    value = seq.next_value
    seq.next_value = value + 1
    return f"{prefix}{separator}{value:0{width}d}"


def get_or_404(model, object_id, label=None):
    """Row by primary key; LookupError (-> 404) when missing."""
    obj = db.session.get(model, object_id) if object_id is not None else None
    if obj is None:
        raise LookupError(f"{label or model.__name__} {object_id} not found")
    return obj


def api_error(e, action):
    """
    Roll back and turn an exception into a JSON error response.

    ValueError -> 400, IntegrityError -> 400 (driver message),
    LookupError -> 404, anything else -> 500 (logged with traceback).
    """
    db.session.rollback()
    if isinstance(e, exc.IntegrityError):
        logger.warning("%s: integrity error: %s", action, e.orig)
        return jsonify({'error': str(e.orig)}), 400
    if type(e) is LookupError:
        return jsonify({'error': str(e)}), 404
    if isinstance(e, ValueError):
        return jsonify({'error': str(e)}), 400
    logger.exception("Failed to %s", action)
    return jsonify({'error': str(e)}), 500


def log_action(action_description, user=None):
    """
    Record a write action in the audit log.

    - Never raises; a logging failure must not break the request.
    """
    try:
        user_name = user
        if user_name is None:
            try:
                from flask_login import current_user
                if getattr(current_user, 'is_authenticated', False):
                    user_name = current_user.get_id()
            except Exception:
                user_name = None

        try:
            ip_addr = request.remote_addr
        except RuntimeError:
            ip_addr = None

        audit_logger.info("%s | user=%s ip=%s", action_description, user_name or 'anonymous', ip_addr)
    except Exception:
        logger.exception("Failed to write audit log for action: %s", action_description)
