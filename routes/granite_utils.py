"""
Granite production / sales utilities.

Pure roll-ups (costs, profit, buyer ranking, overview) take plain collections
of rows; the write helpers at the bottom operate on the current session and
never commit.
"""
from models import db, GraniteBlock, GraniteBlockPart, GraniteSale
from routes.utils import to_decimal, to_measure, safe_int, parse_date, next_document_number
from collections import OrderedDict
from datetime import date
from decimal import Decimal, ROUND_HALF_UP, getcontext
import logging

getcontext().prec = 28

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')
ZERO_SQFT = Decimal('0.000')
CENT = Decimal('0.01')


def _d(value):
    if value is None:
        return ZERO
    return value if isinstance(value, Decimal) else Decimal(str(value))


def safe_divide(numerator, denominator, default=ZERO):
    """Decimal division quantized to 2dp; `default` when the denominator is zero."""
    num = _d(numerator)
    denom = _d(denominator)
    if denom == 0:
        return default
    return (num / denom).quantize(CENT, rounding=ROUND_HALF_UP)


def avg_cost_per_sqft(total_expenditure, total_sqft_produced):
    return safe_divide(total_expenditure, total_sqft_produced)


def consignment_costs(total_net_measurement, payment_cash_rate, payment_upi_rate,
                      transport_cost, total_sqft_produced, production_cost_per_sqft):
    """
    Cost figures of one consignment.

    Raw material is paid per net meter, split into a cash and a UPI rate;
    expenditure adds transport on top. Per-sqft figures are 0 until
    something has been produced.
    """
    net = _d(total_net_measurement)
    payment_cash = (net * _d(payment_cash_rate)).quantize(CENT, rounding=ROUND_HALF_UP)
    payment_upi = (net * _d(payment_upi_rate)).quantize(CENT, rounding=ROUND_HALF_UP)
    total_expenditure = payment_cash + payment_upi + _d(transport_cost)
    sqft = _d(total_sqft_produced)
    avg_cost = avg_cost_per_sqft(total_expenditure, sqft)
    raw_cost = safe_divide(payment_cash + payment_upi, sqft)
    total_cost = (avg_cost + _d(production_cost_per_sqft)) if sqft > 0 else ZERO
    return {
        'payment_cash': payment_cash,
        'payment_upi': payment_upi,
        'total_expenditure': total_expenditure,
        'avg_cost_per_sqft': avg_cost,
        'raw_material_cost_per_sqft': raw_cost,
        'total_cost_per_sqft': total_cost,
    }


def sale_figures(rate_per_sqft, cost_per_sqft, sqft_sold):
    """Selling price and profit of one sale. Loss-making sales keep their negative profit."""
    rate = _d(rate_per_sqft)
    cost = _d(cost_per_sqft)
    sqft = _d(sqft_sold)
    return {
        'profit_per_sqft': (rate - cost).quantize(CENT, rounding=ROUND_HALF_UP),
        'total_selling_price': (rate * sqft).quantize(CENT, rounding=ROUND_HALF_UP),
        'total_profit': ((rate - cost) * sqft).quantize(CENT, rounding=ROUND_HALF_UP),
    }


def rank_buyers(sales, limit=5, sort_by='amount'):
    """
    Group sales by buyer_name and return the top `limit` buyers.

    sort_by: 'amount' (total selling price) or 'profit'. Ties keep the
    order in which buyers first appear in `sales`.
    """
    if sort_by not in ('amount', 'profit'):
        raise ValueError("sort_by must be 'amount' or 'profit'")

    buyers = OrderedDict()
    for sale in sales:
        name = sale.buyer_name or 'Unknown'
        stats = buyers.get(name)
        if stats is None:
            stats = buyers[name] = {
                'name': name,
                'sqft_purchased': ZERO_SQFT,
                'total_amount': ZERO,
                'total_profit': ZERO,
                'transactions': 0,
            }
        stats['sqft_purchased'] += _d(sale.sqft_sold)
        stats['total_amount'] += _d(sale.total_selling_price)
        stats['total_profit'] += _d(sale.total_profit)
        stats['transactions'] += 1

    ranked = []
    for stats in buyers.values():
        stats['avg_rate'] = safe_divide(stats['total_amount'], stats['sqft_purchased'])
        ranked.append(stats)

    key = 'total_amount' if sort_by == 'amount' else 'total_profit'
    ranked.sort(key=lambda b: b[key], reverse=True)
    if limit is not None:
        ranked = ranked[:max(int(limit), 0)]
    return ranked


def count_buyers(sales):
    return len({s.buyer_name or 'Unknown' for s in sales})


def _recent_sales(sales, count):
    ordered = sorted(sales, key=lambda s: (s.sale_date or date.min, s.id or 0), reverse=True)
    rows = []
    for s in ordered[:count]:
        sqft = _d(s.sqft_sold)
        rows.append({
            'id': s.id,
            'date': s.sale_date.isoformat() if s.sale_date else None,
            'buyer': s.buyer_name,
            'block_part': f"{s.block_no or ''}-{s.part_name or ''}",
            'sqft': sqft,
            'rate': safe_divide(s.total_selling_price, sqft),
            'profit': _d(s.total_profit),
        })
    return rows


def granite_overview(consignments, blocks, parts, sales, limit=5):
    """Analytics payload: totals, block status counts, part totals, buyers and recent sales."""
    total_expenditure = sum((_d(c.total_expenditure) for c in consignments), ZERO)
    total_sqft_produced = sum((_d(c.total_sqft_produced) for c in consignments), ZERO_SQFT)
    total_sales = sum((_d(s.total_selling_price) for s in sales), ZERO)
    total_profit = sum((_d(s.total_profit) for s in sales), ZERO)
    total_sqft_sold = sum((_d(s.sqft_sold) for s in sales), ZERO_SQFT)

    by_status = {}
    for b in blocks:
        by_status[b.status] = by_status.get(b.status, 0) + 1

    parts_by_name = OrderedDict()
    for p in sorted(parts, key=lambda p: p.part_name or ''):
        row = parts_by_name.setdefault(p.part_name, {
            'total_sqft': ZERO_SQFT, 'sold_sqft': ZERO_SQFT, 'remaining_sqft': ZERO_SQFT, 'count': 0,
        })
        row['total_sqft'] += _d(p.sqft)
        row['sold_sqft'] += _d(p.sold_sqft)
        row['remaining_sqft'] += _d(p.remaining_sqft)
        row['count'] += 1

    return {
        'overview': {
            'total_consignments': len(consignments),
            'total_blocks': len(blocks),
            'total_expenditure': total_expenditure,
            'total_sqft_produced': total_sqft_produced,
            'avg_cost_per_sqft': avg_cost_per_sqft(total_expenditure, total_sqft_produced),
            'total_sales': total_sales,
            'total_profit': total_profit,
            'total_sqft_sold': total_sqft_sold,
            'profit_margin': safe_divide(total_profit * 100, total_sales),
            'avg_selling_rate': safe_divide(total_sales, total_sqft_sold),
            'total_inventory': sum((_d(p.remaining_sqft) for p in parts), ZERO_SQFT),
            'active_blocks': sum(1 for b in blocks if b.status != 'SOLD'),
        },
        'blocks': {'by_status': by_status, 'total': len(blocks)},
        'parts': parts_by_name,
        'buyers': {
            'top_buyers': rank_buyers(sales, limit=limit),
            'total_buyers': count_buyers(sales),
        },
        'recent_sales': _recent_sales(sales, 10),
    }


def consignment_analytics(consignments, sales):
    """Profit and margin per consignment; margin is profit over expenditure."""
    profit_by_consignment = {}
    for s in sales:
        profit_by_consignment[s.consignment_id] = (
            profit_by_consignment.get(s.consignment_id, ZERO) + _d(s.total_profit))

    rows = []
    for c in consignments:
        profit = profit_by_consignment.get(c.id, ZERO)
        rows.append({
            'id': c.id,
            'consignment': c.consignment_number,
            'supplier': c.supplier.name if getattr(c, 'supplier', None) else 'Unknown',
            'blocks': c.total_blocks or 0,
            'net_measurement': _d(c.total_net_measurement),
            'total_cost': _d(c.total_expenditure),
            'cost_per_sqft': _d(c.raw_material_cost_per_sqft),
            'profit': profit,
            'margin': safe_divide(profit * 100, c.total_expenditure),
        })
    return rows


def granite_dashboard(consignments, blocks, parts, sales, limit=5):
    overview = granite_overview(consignments, blocks, parts, sales, limit=limit)['overview']
    return {
        'total_consignments': overview['total_consignments'],
        'total_profit': overview['total_profit'],
        'avg_margin': overview['profit_margin'],
        'total_production': overview['total_sqft_produced'],
        'total_blocks': overview['total_blocks'],
        'avg_cost_per_sqft': overview['avg_cost_per_sqft'],
        'avg_selling_rate': overview['avg_selling_rate'],
        'total_inventory': overview['total_inventory'],
        'active_blocks': overview['active_blocks'],
        'consignment_analytics': consignment_analytics(consignments, sales),
        'top_buyers': rank_buyers(sales, limit=limit, sort_by='profit'),
        'recent_sales': _recent_sales(sales, limit),
    }


# ============================================
# Block status
# ============================================

def check_status_transition(block, new_status):
    """
    Validate a block status change and return the normalized status.

    Moves go forward only (RAW -> CUTTING -> CUT -> PROCESSED -> SOLD, skipping
    allowed). SOLD needs at least one part and nothing left to sell.
    """
    new = (new_status or '').strip().upper()
    if new not in GraniteBlock.STATUSES:
        raise ValueError(f"status must be one of {', '.join(GraniteBlock.STATUSES)}")
    current = block.status or 'RAW'
    order = GraniteBlock.STATUSES
    if order.index(new) < order.index(current):
        raise ValueError(f"Block {block.block_no} cannot move back from {current} to {new}")
    if new == 'SOLD' and current != 'SOLD':
        parts = list(block.parts)
        if not parts:
            raise ValueError(f"Block {block.block_no} has no cut parts to sell")
        if any(_d(p.remaining_sqft) > 0 for p in parts):
            raise ValueError(f"Block {block.block_no} still has unsold sqft")
    return new


def _all_parts_sold(block):
    parts = list(block.parts)
    return bool(parts) and all(_d(p.remaining_sqft) <= 0 for p in parts)


# ============================================
# Derived totals (write helpers, caller commits)
# ============================================

def refresh_block_totals(block):
    gross = _d(block.gross_measurement)
    net = _d(block.net_measurement)
    if net > gross:
        raise ValueError(f"Block {block.block_no}: net measurement cannot exceed gross measurement")
    block.elavance = gross - net
    parts = list(block.parts)
    block.total_sqft = sum((_d(p.sqft) for p in parts), ZERO_SQFT)
    block.total_slabs = sum((p.slabs_count or 0) for p in parts)


def refresh_consignment_totals(consignment):
    """Recompute every derived column of a consignment from its blocks."""
    blocks = list(consignment.blocks)
    for block in blocks:
        refresh_block_totals(block)

    consignment.total_blocks = len(blocks)
    consignment.total_net_measurement = sum((_d(b.net_measurement) for b in blocks), ZERO_SQFT)
    consignment.total_gross_measurement = sum((_d(b.gross_measurement) for b in blocks), ZERO_SQFT)
    consignment.total_elavance = sum((_d(b.elavance) for b in blocks), ZERO_SQFT)
    consignment.total_sqft_produced = sum((_d(b.total_sqft) for b in blocks), ZERO_SQFT)

    costs = consignment_costs(
        consignment.total_net_measurement,
        consignment.payment_cash_rate,
        consignment.payment_upi_rate,
        consignment.transport_cost,
        consignment.total_sqft_produced,
        consignment.production_cost_per_sqft,
    )
    consignment.payment_cash = costs['payment_cash']
    consignment.payment_upi = costs['payment_upi']
    consignment.total_expenditure = costs['total_expenditure']
    consignment.raw_material_cost_per_sqft = costs['raw_material_cost_per_sqft']
    consignment.total_cost_per_sqft = costs['total_cost_per_sqft']
    return costs


def apply_part_fields(part, data, partial=False):
    """Copy part_name / slabs_count / sqft / thickness from request data onto `part`."""
    if not partial or 'part_name' in data:
        part.part_name = data.get('part_name')
    if not partial or 'slabs_count' in data:
        part.slabs_count = data.get('slabs_count') or 0
    if not partial or 'sqft' in data:
        sqft = to_measure(data.get('sqft'))
        if sqft < 0:
            raise ValueError('sqft cannot be negative')
        part.sqft = sqft
    if not partial or 'thickness' in data:
        thickness = data.get('thickness')
        part.thickness = to_measure(thickness) if thickness not in (None, '') else Decimal('20.000')
    if part.sold_sqft is None:
        part.sold_sqft = ZERO_SQFT
    part.refresh_remaining()
    return part


def lock_part(part_id, label='Block part'):
    """Load a part under a row lock with its committed sold_sqft."""
    part = None
    if part_id is not None:
        part = (GraniteBlockPart.query
                .filter_by(id=part_id)
                .with_for_update()
                .populate_existing()
                .first())
    if part is None:
        raise LookupError(f"{label} {part_id} not found")
    return part


def _after_production(block):
    """Totals + status after parts of `block` changed."""
    db.session.flush()
    if block.status in ('RAW', 'CUTTING') and block.parts:
        block.status = 'CUT'
    elif block.status == 'SOLD' and not _all_parts_sold(block):
        block.status = 'PROCESSED'
    refresh_consignment_totals(block.consignment)


def record_production(block, data):
    """
    Create or update the part (block, part_name) and refresh derived totals.
    Returns (part, created).
    """
    part_name = (data.get('part_name') or '').strip().upper().replace(' ', '')
    part = (GraniteBlockPart.query
            .filter_by(block_id=block.id, part_name=part_name)
            .with_for_update()
            .populate_existing()
            .first())
    created = part is None
    if created:
        part = GraniteBlockPart(block=block, sold_sqft=ZERO_SQFT)
        apply_part_fields(part, data)
        db.session.add(part)
    else:
        apply_part_fields(part, data, partial=True)
    _after_production(block)
    return part, created


def create_block_part(block, data):
    """New part on `block`; a part name can only be cut once per block."""
    part_name = (data.get('part_name') or '').strip().upper().replace(' ', '')
    if GraniteBlockPart.query.filter_by(block_id=block.id, part_name=part_name).first():
        raise ValueError(f"Block {block.block_no} already has part {part_name}")
    part = GraniteBlockPart(block=block, sold_sqft=ZERO_SQFT)
    apply_part_fields(part, data)
    db.session.add(part)
    _after_production(block)
    return part


def update_block_part(part, data):
    apply_part_fields(part, data, partial=True)
    _after_production(part.block)
    return part


def delete_block_part(part):
    if _d(part.sold_sqft) > 0:
        raise ValueError(f"Part {part.part_name} has sales and cannot be deleted")
    block = part.block
    block.parts.remove(part)
    db.session.flush()
    refresh_consignment_totals(block.consignment)


def replace_block_parts(block, parts_data):
    """Delete the parts of `block` and insert `parts_data` instead. Sold parts cannot be replaced."""
    existing_parts = (GraniteBlockPart.query
                      .filter_by(block_id=block.id)
                      .with_for_update()
                      .populate_existing()
                      .all())
    for existing in existing_parts:
        if _d(existing.sold_sqft) > 0:
            raise ValueError(f"Block {block.block_no} part {existing.part_name} already has sales")
    block.parts.clear()
    db.session.flush()

    created = []
    for item in parts_data:
        part = GraniteBlockPart(sold_sqft=ZERO_SQFT)
        apply_part_fields(part, item)
        block.parts.append(part)
        created.append(part)
    _after_production(block)
    return created


# ============================================
# Sales (write helpers, caller commits)
# ============================================

def record_sale(data):
    """
    Sell sqft from a block part.

    - Locks the part row so two concurrent sales cannot oversell it.
    - Raises ValueError when sqft_sold exceeds the remaining sqft.
    - cost_per_sqft defaults to the consignment's total cost per sqft.
    Returns the unsaved GraniteSale (added to the session).
    """
    part_id = safe_int(data.get('block_part_id'))
    if not part_id:
        raise ValueError('block_part_id is required')
    buyer_name = (data.get('buyer_name') or '').strip()
    if not buyer_name:
        raise ValueError('buyer_name is required')
    sqft_sold = to_measure(data.get('sqft_sold'))
    if sqft_sold <= 0:
        raise ValueError('sqft_sold must be greater than zero')
    if data.get('rate_per_sqft') in (None, ''):
        raise ValueError('rate_per_sqft is required')
    rate = to_decimal(data.get('rate_per_sqft'))
    if rate < 0:
        raise ValueError('rate_per_sqft cannot be negative')
    sale_date = parse_date(data.get('sale_date')) if data.get('sale_date') else date.today()
    if sale_date is None:
        raise ValueError('Invalid sale_date, expected YYYY-MM-DD')

    part = (GraniteBlockPart.query
            .filter_by(id=part_id)
            .with_for_update()
            .first())
    if part is None:
        raise LookupError(f"Block part {part_id} not found")

    remaining = _d(part.remaining_sqft)
    if sqft_sold > remaining:
        raise ValueError(
            f"Cannot sell {sqft_sold} sqft from block {part.block.block_no} part {part.part_name}: "
            f"only {remaining} sqft remaining")

    block = part.block
    consignment = block.consignment
    if data.get('cost_per_sqft') in (None, ''):
        cost = _d(consignment.total_cost_per_sqft if consignment else ZERO)
    else:
        cost = to_decimal(data.get('cost_per_sqft'))
        if cost < 0:
            raise ValueError('cost_per_sqft cannot be negative')

    figures = sale_figures(rate, cost, sqft_sold)
    sale = GraniteSale(
        sale_number=next_document_number('granite_sale', 'GS'),
        block_part_id=part.id,
        consignment_id=block.consignment_id,
        block_no=block.block_no,
        part_name=part.part_name,
        buyer_name=buyer_name,
        sale_date=sale_date,
        sqft_sold=sqft_sold,
        rate_per_sqft=rate,
        cost_per_sqft=cost,
        profit_per_sqft=figures['profit_per_sqft'],
        total_selling_price=figures['total_selling_price'],
        total_profit=figures['total_profit'],
        payment_mode=data.get('payment_mode'),
        notes=data.get('notes'),
    )
    db.session.add(sale)

    part.sold_sqft = _d(part.sold_sqft) + sqft_sold
    part.refresh_remaining()
    if _all_parts_sold(block):
        block.status = 'SOLD'
    logger.info("Sale %s: %s sqft of %s-%s to %s", sale.sale_number, sqft_sold,
                block.block_no, part.part_name, buyer_name)
    return sale


def reverse_sale(sale):
    """Delete `sale` and return its sqft to the block part."""
    part = (GraniteBlockPart.query
            .filter_by(id=sale.block_part_id)
            .with_for_update()
            .first())
    if part is not None:
        part.sold_sqft = max(_d(part.sold_sqft) - _d(sale.sqft_sold), ZERO_SQFT)
        part.refresh_remaining()
        block = part.block
        if block.status == 'SOLD' and not _all_parts_sold(block):
            block.status = 'PROCESSED'
    db.session.delete(sale)
