from flask import Blueprint, request, jsonify
from flask_login import login_required
from models import db, ConsignmentCalculation
from routes.decorators import require_database, empty_when_unconfigured
from routes.utils import safe_int, json_body, jsonable, get_or_404, api_error, log_action
from routes.calculator_utils import clean_calculation_inputs, calculate_consignment

calculator_bp = Blueprint('calculator', __name__, url_prefix='/api')


def _with_results(calculation):
    data = calculation.to_dict()
    data['results'] = jsonable(calculate_consignment(calculation.inputs()))
    return data


def _apply_inputs(calculation, inputs):
    for field in ConsignmentCalculation.INPUT_FIELDS:
        setattr(calculation, field, inputs.get(field))


@calculator_bp.route('/consignment-calculations', methods=['GET'])
@login_required
@empty_when_unconfigured({'data': []})
def list_calculations():
    rows = ConsignmentCalculation.query.order_by(ConsignmentCalculation.created_at.desc(),
                                                 ConsignmentCalculation.id.desc()).all()
    return jsonify({'data': [_with_results(c) for c in rows]})


@calculator_bp.route('/consignment-calculations/preview', methods=['POST'])
@login_required
def preview_calculation():
    """Evaluate inputs without saving them."""
    try:
        inputs = clean_calculation_inputs(json_body())
        return jsonify({'data': jsonable(calculate_consignment(inputs))})
    except Exception as e:
        return api_error(e, 'preview consignment calculation')


@calculator_bp.route('/consignment-calculations', methods=['POST'])
@login_required
@require_database
def create_calculation():
    try:
        data = json_body()
        name = str(data.get('calculation_name') or '').strip()
        if not name:
            raise ValueError('Missing required fields: calculation_name')
        inputs = clean_calculation_inputs(data)
        calculation = ConsignmentCalculation(calculation_name=name, description=data.get('description') or None)
        _apply_inputs(calculation, inputs)
        db.session.add(calculation)
        db.session.commit()
        log_action(f'Saved consignment calculation: {name}')
        return jsonify({'message': 'Consignment calculation created successfully',
                        'data': _with_results(calculation)}), 201
    except Exception as e:
        return api_error(e, 'create consignment calculation')


@calculator_bp.route('/consignment-calculations', methods=['PUT'])
@login_required
@require_database
def update_calculation():
    try:
        data = json_body()
        calc_id = safe_int(data.get('id'))
        if not calc_id:
            raise ValueError('Calculation ID is required for updates')
        calculation = get_or_404(ConsignmentCalculation, calc_id, 'Consignment calculation')
        inputs = clean_calculation_inputs({k: v for k, v in data.items() if k != 'id'},
                                          current=calculation.inputs())
        _apply_inputs(calculation, inputs)
        if 'calculation_name' in data:
            name = str(data.get('calculation_name') or '').strip()
            if not name:
                raise ValueError('calculation_name cannot be empty')
            calculation.calculation_name = name
        if 'description' in data:
            calculation.description = data.get('description') or None
        db.session.commit()
        log_action(f'Updated consignment calculation #{calculation.id}')
        return jsonify({'message': 'Consignment calculation updated successfully',
                        'data': _with_results(calculation)})
    except Exception as e:
        return api_error(e, 'update consignment calculation')


@calculator_bp.route('/consignment-calculations', methods=['DELETE'])
@login_required
@require_database
def delete_calculation():
    try:
        calc_id = safe_int(request.args.get('id'))
        if not calc_id:
            raise ValueError('Calculation ID is required for deletion')
        calculation = get_or_404(ConsignmentCalculation, calc_id, 'Consignment calculation')
        db.session.delete(calculation)
        db.session.commit()
        log_action(f'Deleted consignment calculation #{calc_id}')
        return jsonify({'message': 'Consignment calculation deleted successfully'})
    except Exception as e:
        return api_error(e, 'delete consignment calculation')
