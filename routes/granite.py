from flask import Blueprint, request, jsonify, Response, current_app
from flask_login import login_required
from models import db, GraniteSupplier, GraniteConsignment, GraniteBlock, GraniteBlockPart, GraniteSale
from routes.decorators import require_database, empty_when_unconfigured, read_or_write
from routes.utils import (safe_int, require_date, json_body, date_range_args,
                          next_document_number, get_or_404, api_error, log_action, to_decimal)
from routes.granite_utils import (check_status_transition, refresh_consignment_totals, record_production,
                                  create_block_part, update_block_part, delete_block_part,
                                  replace_block_parts, lock_part, record_sale, reverse_sale)
from extensions import limiter
from datetime import datetime
from decimal import Decimal
import csv
import io

granite_bp = Blueprint('granite', __name__, url_prefix='/api')

SUPPLIER_FIELDS = ('name', 'contact_person', 'email', 'phone', 'address')
# rates applied when a new consignment leaves them out (or sends 0)
CONSIGNMENT_RATE_DEFAULTS = {
    'rate_per_meter': Decimal('30000'),
    'payment_cash_rate': Decimal('19000'),
    'payment_upi_rate': Decimal('11000'),
    'transport_cost': Decimal('0'),
    'production_cost_per_sqft': Decimal('40'),
}


def _id_arg(data=None):
    """id from the JSON body or ?id= (the list endpoints take both)."""
    object_id = safe_int((data or {}).get('id')) or safe_int(request.args.get('id'))
    if not object_id:
        raise ValueError('id is required')
    return object_id


def _part_row(part):
    """Part with block / consignment / supplier labels flattened in."""
    row = part.to_dict()
    block = part.block
    consignment = block.consignment if block else None
    row['block_no'] = block.block_no if block else ''
    row['consignment_id'] = block.consignment_id if block else None
    row['consignment_number'] = consignment.consignment_number if consignment else ''
    row['supplier_name'] = consignment.supplier.name if consignment and consignment.supplier else ''
    row['cost_per_sqft'] = float(consignment.total_cost_per_sqft) if consignment else 0.0
    return row


# ============================================
# SUPPLIERS
# ============================================

@granite_bp.route('/granite-suppliers', methods=['GET', 'POST', 'PUT', 'DELETE'])
@login_required
@read_or_write([])
def granite_suppliers():
    try:
        if request.method == 'GET':
            suppliers = GraniteSupplier.query.order_by(GraniteSupplier.name.asc()).all()
            return jsonify([s.to_dict() for s in suppliers])

        if request.method == 'DELETE':
            supplier = get_or_404(GraniteSupplier, _id_arg(), 'Supplier')
            if supplier.consignments.count():
                raise ValueError(f"Supplier '{supplier.name}' has consignments and cannot be deleted")
            name = supplier.name
            db.session.delete(supplier)
            db.session.commit()
            log_action(f"Deleted granite supplier: {name}")
            return jsonify({'success': True})

        data = json_body()
        if request.method == 'POST':
            supplier = GraniteSupplier()
            db.session.add(supplier)
        else:
            supplier = get_or_404(GraniteSupplier, _id_arg(data), 'Supplier')
        for field in SUPPLIER_FIELDS:
            if request.method == 'POST' or field in data:
                setattr(supplier, field, str(data.get(field) or '').strip() or None)
        if not supplier.name:
            raise ValueError('Supplier name is required')
        db.session.commit()
        log_action(f"{'Added' if request.method == 'POST' else 'Updated'} granite supplier: {supplier.name}")
        return jsonify(supplier.to_dict()), (201 if request.method == 'POST' else 200)
    except Exception as e:
        return api_error(e, f'{request.method} granite supplier')


# ============================================
# CONSIGNMENTS
# ============================================

def _apply_consignment_fields(consignment, data, creating):
    if creating or 'supplier_id' in data:
        supplier_id = safe_int(data.get('supplier_id'))
        if not supplier_id or db.session.get(GraniteSupplier, supplier_id) is None:
            raise ValueError(f"Unknown supplier {data.get('supplier_id')}")
        consignment.supplier_id = supplier_id
    if creating or 'arrival_date' in data:
        consignment.arrival_date = require_date(data, 'arrival_date')
    for field, default in CONSIGNMENT_RATE_DEFAULTS.items():
        value = to_decimal(data.get(field)) if data.get(field) not in (None, '') else None
        if creating:
            setattr(consignment, field, value or default)
        elif value is not None:
            setattr(consignment, field, value)
    if 'status' in data:
        consignment.status = data.get('status')
    if 'notes' in data:
        consignment.notes = data.get('notes')


@granite_bp.route('/granite-consignments', methods=['GET', 'POST', 'PUT', 'DELETE'])
@login_required
@read_or_write([])
def granite_consignments():
    try:
        if request.method == 'GET':
            consignment_id = safe_int(request.args.get('id'))
            if consignment_id:
                consignment = get_or_404(GraniteConsignment, consignment_id, 'Consignment')
                data = consignment.to_dict()
                data['blocks'] = [b.to_dict(with_parts=True) for b in consignment.blocks]
                return jsonify(data)
            rows = GraniteConsignment.query.order_by(GraniteConsignment.created_at.desc(),
                                                     GraniteConsignment.id.desc()).all()
            return jsonify([c.to_dict() for c in rows])

        if request.method == 'DELETE':
            consignment = get_or_404(GraniteConsignment, _id_arg(), 'Consignment')
            if GraniteSale.query.filter_by(consignment_id=consignment.id).count():
                raise ValueError(f'Consignment {consignment.consignment_number} has sales and cannot be deleted')
            number = consignment.consignment_number
            db.session.delete(consignment)
            db.session.commit()
            log_action(f"Deleted granite consignment {number}")
            return jsonify({'success': True})

        data = json_body()
        if request.method == 'POST':
            consignment = GraniteConsignment(
                consignment_number=(data.get('consignment_number') or '').strip()
                or next_document_number('granite_consignment', 'GC'),
            )
            _apply_consignment_fields(consignment, data, creating=True)
            db.session.add(consignment)
        else:
            consignment = get_or_404(GraniteConsignment, _id_arg(data), 'Consignment')
            if (data.get('consignment_number') or '').strip():
                consignment.consignment_number = data['consignment_number'].strip()
            _apply_consignment_fields(consignment, data, creating=False)
        refresh_consignment_totals(consignment)
        db.session.commit()
        log_action(f"{'Added' if request.method == 'POST' else 'Updated'} granite consignment "
                   f"{consignment.consignment_number}: expenditure {consignment.total_expenditure}")
        return jsonify(consignment.to_dict()), (201 if request.method == 'POST' else 200)
    except Exception as e:
        return api_error(e, f'{request.method} granite consignment')


# ============================================
# BLOCKS
# ============================================

@granite_bp.route('/granite-blocks', methods=['GET'])
@login_required
@empty_when_unconfigured([])
def list_blocks():
    query = GraniteBlock.query
    consignment_id = safe_int(request.args.get('consignment_id'))
    if consignment_id:
        query = query.filter(GraniteBlock.consignment_id == consignment_id)
    block_no = (request.args.get('block_no') or '').strip()
    if block_no:
        query = query.filter(GraniteBlock.block_no == block_no)
    status = (request.args.get('status') or '').strip().upper()
    if status:
        query = query.filter(GraniteBlock.status == status)
    blocks = query.order_by(GraniteBlock.created_at.desc(), GraniteBlock.id.desc()).all()
    return jsonify([b.to_dict() for b in blocks])


@granite_bp.route('/granite-blocks', methods=['POST'])
@login_required
@require_database
def create_block():
    try:
        data = json_body()
        consignment = get_or_404(GraniteConsignment, safe_int(data.get('consignment_id')), 'Consignment')
        block_no = str(data.get('block_no') or '').strip()
        if not block_no:
            raise ValueError('block_no is required')
        block = GraniteBlock(
            block_no=block_no,
            grade=data.get('grade'),
            gross_measurement=data.get('gross_measurement'),
            net_measurement=data.get('net_measurement'),
            status='RAW',
        )
        consignment.blocks.append(block)
        refresh_consignment_totals(consignment)
        db.session.commit()
        log_action(f'Added block {block_no} to consignment {consignment.consignment_number}')
        return jsonify(block.to_dict()), 201
    except Exception as e:
        return api_error(e, 'create block')


@granite_bp.route('/granite-blocks/<int:block_id>', methods=['PUT'])
@login_required
@require_database
def update_block(block_id):
    try:
        block = get_or_404(GraniteBlock, block_id, 'Block')
        data = json_body()
        if 'block_no' in data:
            block_no = str(data.get('block_no') or '').strip()
            if not block_no:
                raise ValueError('block_no cannot be empty')
            block.block_no = block_no
        if 'grade' in data:
            block.grade = data.get('grade')
        if 'gross_measurement' in data:
            block.gross_measurement = data.get('gross_measurement')
        if 'net_measurement' in data:
            block.net_measurement = data.get('net_measurement')
        if 'status' in data:
            block.status = check_status_transition(block, data.get('status'))
        refresh_consignment_totals(block.consignment)
        db.session.commit()
        log_action(f'Updated block {block.block_no} ({block.status})')
        return jsonify(block.to_dict())
    except Exception as e:
        return api_error(e, 'update block')


@granite_bp.route('/granite-blocks/<int:block_id>', methods=['DELETE'])
@login_required
@require_database
def delete_block(block_id):
    try:
        block = get_or_404(GraniteBlock, block_id, 'Block')
        if any(p.sold_sqft and p.sold_sqft > 0 for p in block.parts):
            raise ValueError(f'Block {block.block_no} has sales and cannot be deleted')
        consignment = block.consignment
        label = f"{block.block_no} from consignment {consignment.consignment_number}"
        consignment.blocks.remove(block)
        db.session.flush()
        refresh_consignment_totals(consignment)
        db.session.commit()
        log_action(f"Deleted block {label}")
        return jsonify({'success': True})
    except Exception as e:
        return api_error(e, 'delete block')


@granite_bp.route('/available-blocks', methods=['GET'])
@login_required
@empty_when_unconfigured([])
def available_blocks():
    """All blocks (any status) for production entry, by block number."""
    query = GraniteBlock.query
    consignment_id = safe_int(request.args.get('consignment_id'))
    if consignment_id:
        query = query.filter(GraniteBlock.consignment_id == consignment_id)
    blocks = query.order_by(GraniteBlock.block_no.asc()).all()
    return jsonify([b.to_dict() for b in blocks])


# ============================================
# BLOCK PARTS / PRODUCTION
# ============================================

@granite_bp.route('/granite-block-parts', methods=['GET'])
@login_required
@empty_when_unconfigured([])
def list_block_parts():
    try:
        block_id = safe_int(request.args.get('block_id'))
        consignment_id = safe_int(request.args.get('consignment_id'))
        if not block_id and not consignment_id:
            raise ValueError('block_id is required')
        query = GraniteBlockPart.query.join(GraniteBlock)
        if block_id:
            query = query.filter(GraniteBlockPart.block_id == block_id)
        if consignment_id:
            query = query.filter(GraniteBlock.consignment_id == consignment_id)
        parts = query.order_by(GraniteBlock.block_no.asc(), GraniteBlockPart.part_name.asc()).all()
        return jsonify([p.to_dict() for p in parts])
    except Exception as e:
        return api_error(e, 'list block parts')


@granite_bp.route('/granite-block-parts', methods=['POST'])
@login_required
@require_database
def create_part():
    try:
        data = json_body()
        block = get_or_404(GraniteBlock, safe_int(data.get('block_id')), 'Block')
        part = create_block_part(block, data)
        db.session.commit()
        log_action(f'Added part {part.part_name} ({part.sqft} sqft) to block {block.block_no}')
        return jsonify(part.to_dict()), 201
    except Exception as e:
        return api_error(e, 'create block part')


@granite_bp.route('/granite-block-parts/<int:part_id>', methods=['PUT'])
@login_required
@require_database
def update_part(part_id):
    try:
        part = lock_part(part_id)
        update_block_part(part, json_body())
        db.session.commit()
        log_action(f'Updated part {part.part_name} of block {part.block.block_no}')
        return jsonify(part.to_dict())
    except Exception as e:
        return api_error(e, 'update block part')


@granite_bp.route('/granite-block-parts/<int:part_id>', methods=['DELETE'])
@login_required
@require_database
def delete_part(part_id):
    try:
        part = lock_part(part_id)
        label = f'{part.block.block_no}-{part.part_name}'
        delete_block_part(part)
        db.session.commit()
        log_action(f'Deleted block part {label}')
        return jsonify({'success': True})
    except Exception as e:
        return api_error(e, 'delete block part')


@granite_bp.route('/granite-block-parts/available', methods=['GET'])
@login_required
@empty_when_unconfigured([])
def available_parts():
    """Parts that still have sqft to sell."""
    parts = (GraniteBlockPart.query
             .filter(GraniteBlockPart.is_available.is_(True))
             .filter(GraniteBlockPart.remaining_sqft > 0)
             .order_by(GraniteBlockPart.created_at.desc(), GraniteBlockPart.id.desc())
             .all())
    return jsonify([_part_row(p) for p in parts])


@granite_bp.route('/granite-block-parts/bulk', methods=['POST'])
@login_required
@require_database
def bulk_save_parts():
    """Replace the parts of every listed block: [{block_id, parts: [...]}, ...]."""
    try:
        payload = request.get_json(silent=True)
        if not isinstance(payload, list):
            raise ValueError('Array payload required')

        entries = []
        for entry in payload:
            if not isinstance(entry, dict):
                continue
            block_id = safe_int(entry.get('block_id'))
            parts = entry.get('parts')
            if not block_id or not isinstance(parts, list):
                continue
            parts = [p for p in parts if isinstance(p, dict) and p.get('part_name')]
            if parts:
                entries.append((block_id, parts))

        if not entries:
            return jsonify({'message': 'Nothing to save'})

        saved = 0
        for block_id, parts in entries:
            block = get_or_404(GraniteBlock, block_id, 'Block')
            saved += len(replace_block_parts(block, parts))
        db.session.commit()
        log_action(f'Bulk-saved {saved} block parts for {len(entries)} blocks')
        return jsonify({'saved': saved})
    except Exception as e:
        return api_error(e, 'bulk save block parts')


@granite_bp.route('/granite-production', methods=['POST'])
@login_required
@require_database
def granite_production():
    """Record (or correct) the production of one part of a block."""
    try:
        data = json_body()
        block_id = safe_int(data.get('block_id'))
        if not block_id or not data.get('part_name'):
            raise ValueError('block_id and part_name required')
        block = get_or_404(GraniteBlock, block_id, 'Block')
        part, created = record_production(block, data)
        db.session.commit()
        log_action(f"{'Recorded' if created else 'Updated'} production {block.block_no}-{part.part_name}: "
                   f"{part.slabs_count} slabs, {part.sqft} sqft")
        result = {'success': True, 'id': part.id}
        result['created' if created else 'updated'] = True
        return jsonify(result)
    except Exception as e:
        return api_error(e, 'record production')


@granite_bp.route('/slab-processing', methods=['GET', 'POST', 'PUT', 'DELETE'])
@login_required
@read_or_write([])
def slab_processing():
    """Block-part list/CRUD with block and consignment labels."""
    try:
        if request.method == 'GET':
            query = GraniteBlockPart.query.join(GraniteBlock)
            consignment_id = safe_int(request.args.get('consignment_id'))
            if consignment_id:
                query = query.filter(GraniteBlock.consignment_id == consignment_id)
            block_id = safe_int(request.args.get('block_id'))
            if block_id:
                query = query.filter(GraniteBlockPart.block_id == block_id)
            parts = query.order_by(GraniteBlockPart.created_at.desc(), GraniteBlockPart.id.desc()).all()
            return jsonify([_part_row(p) for p in parts])

        if request.method == 'DELETE':
            part_id = _id_arg()
            part = lock_part(part_id, "Slab processing")
            delete_block_part(part)
            db.session.commit()
            log_action(f"Deleted slab processing #{part_id}")
            return jsonify({'success': True})

        data = json_body()
        if request.method == 'POST':
            missing = [f for f in ('block_id', 'part_name', 'slabs_count', 'sqft') if not data.get(f)]
            if missing:
                raise ValueError('Required fields missing')
            block = get_or_404(GraniteBlock, safe_int(data.get('block_id')), 'Block')
            part = create_block_part(block, data)
            db.session.commit()
            log_action(f'Recorded slab processing {block.block_no}-{part.part_name}')
            return jsonify(_part_row(part)), 201

        part = lock_part(_id_arg(data), 'Slab processing')
        update_block_part(part, data)
        db.session.commit()
        log_action(f'Updated slab processing #{part.id}')
        return jsonify(_part_row(part))
    except Exception as e:
        return api_error(e, f'{request.method} slab processing')


# ============================================
# SALES
# ============================================

def _sales_query():
    query = GraniteSale.query
    buyer = (request.args.get('buyer') or '').strip()
    if buyer:
        query = query.filter(GraniteSale.buyer_name.ilike(f'%{buyer}%'))
    consignment_id = safe_int(request.args.get('consignment_id'))
    if consignment_id:
        query = query.filter(GraniteSale.consignment_id == consignment_id)
    start_date, end_date = date_range_args()
    if start_date:
        query = query.filter(GraniteSale.sale_date >= start_date)
    if end_date:
        query = query.filter(GraniteSale.sale_date <= end_date)
    return query


@granite_bp.route('/granite-sales', methods=['GET'])
@login_required
@empty_when_unconfigured([])
def list_sales():
    try:
        sales = _sales_query().order_by(GraniteSale.created_at.desc(), GraniteSale.id.desc()).all()
        return jsonify([s.to_dict() for s in sales])
    except Exception as e:
        return api_error(e, 'list sales')


@granite_bp.route('/granite-sales', methods=['POST'])
@login_required
@require_database
def create_sale():
    try:
        sale = record_sale(json_body())
        db.session.commit()
        log_action(f'Recorded granite sale {sale.sale_number}: {sale.sqft_sold} sqft to {sale.buyer_name} '
                   f'for {sale.total_selling_price}')
        return jsonify(sale.to_dict()), 201
    except Exception as e:
        return api_error(e, 'record sale')


@granite_bp.route('/granite-sales/<int:sale_id>', methods=['DELETE'])
@login_required
@require_database
def delete_sale(sale_id):
    try:
        sale = get_or_404(GraniteSale, sale_id, 'Sale')
        number = sale.sale_number
        reverse_sale(sale)
        db.session.commit()
        log_action(f'Deleted granite sale {number}')
        return jsonify({'success': True})
    except Exception as e:
        return api_error(e, 'delete sale')


@granite_bp.route('/granite-sales/export', methods=['GET'])
@login_required
@limiter.limit(lambda: current_app.config.get('EXPORT_RATE_LIMIT', '30 per minute'))
def export_sales():
    try:
        sales = []
        if current_app.config.get('DB_CONFIGURED'):
            sales = _sales_query().order_by(GraniteSale.sale_date.asc(), GraniteSale.id.asc()).all()

        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(["Sale #", "Date", "Buyer", "Block", "Part", "Sqft", "Rate/Sqft",
                         "Cost/Sqft", "Total", "Profit", "Payment Mode"])
        total_amount = Decimal('0.00')
        total_profit = Decimal('0.00')
        for s in sales:
            writer.writerow([
                s.sale_number,
                s.sale_date.strftime('%Y-%m-%d') if s.sale_date else "",
                s.buyer_name,
                s.block_no or "",
                s.part_name or "",
                f"{s.sqft_sold:.3f}",
                f"{s.rate_per_sqft:.2f}",
                f"{s.cost_per_sqft:.2f}",
                f"{s.total_selling_price:.2f}",
                f"{s.total_profit:.2f}",
                s.payment_mode,
            ])
            total_amount += s.total_selling_price
            total_profit += s.total_profit
        writer.writerow(["TOTAL", "", "", "", "", "", "", "", f"{total_amount:.2f}", f"{total_profit:.2f}", ""])

        filename = f"granite_sales_{datetime.now().strftime('%Y%m%d_%H%M')}.csv"
        return Response(output.getvalue(), mimetype="text/csv",
                        headers={"Content-Disposition": f"attachment; filename={filename}"})
    except Exception as e:
        return api_error(e, 'export sales')
