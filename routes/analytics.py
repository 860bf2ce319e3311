from flask import Blueprint, jsonify, current_app, request
from flask_login import login_required
from models import GraniteConsignment, GraniteBlock, GraniteBlockPart, GraniteSale
from routes.decorators import empty_when_unconfigured
from routes.utils import jsonable, safe_int, api_error
from routes.granite_utils import granite_overview, granite_dashboard

analytics_bp = Blueprint('analytics', __name__, url_prefix='/api')


def _top_buyers_limit():
    """?limit= overrides the configured TOP_BUYERS_LIMIT."""
    limit = safe_int(request.args.get('limit'))
    if limit is None or limit < 0:
        limit = current_app.config.get('TOP_BUYERS_LIMIT', 5)
    return limit


def _empty_overview():
    return jsonable(granite_overview([], [], [], []))


def _empty_dashboard():
    return jsonable(granite_dashboard([], [], [], []))


def _load_all():
    consignments = GraniteConsignment.query.order_by(GraniteConsignment.arrival_date.desc(),
                                                     GraniteConsignment.id.desc()).all()
    blocks = GraniteBlock.query.all()
    parts = GraniteBlockPart.query.all()
    sales = GraniteSale.query.order_by(GraniteSale.sale_date.desc(), GraniteSale.id.desc()).all()
    return consignments, blocks, parts, sales


@analytics_bp.route('/analytics', methods=['GET'])
@login_required
@empty_when_unconfigured(_empty_overview)
def analytics():
    try:
        consignments, blocks, parts, sales = _load_all()
        return jsonify(jsonable(granite_overview(consignments, blocks, parts, sales,
                                                 limit=_top_buyers_limit())))
    except Exception as e:
        return api_error(e, 'build analytics')


@analytics_bp.route('/granite/dashboard', methods=['GET'])
@login_required
@empty_when_unconfigured(_empty_dashboard)
def dashboard():
    try:
        consignments, blocks, parts, sales = _load_all()
        return jsonify(jsonable(granite_dashboard(consignments, blocks, parts, sales,
                                                  limit=_top_buyers_limit())))
    except Exception as e:
        return api_error(e, 'build dashboard')
