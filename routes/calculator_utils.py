"""
What-if consignment calculator.

Estimates the blended cost of a consignment before it is bought: raw material
per net meter plus handling, and processing of the produced sqft into polish,
laputra and whiteline finishes at fixed per-sqft rates.
"""
from collections import OrderedDict
from decimal import Decimal, ROUND_HALF_UP, getcontext

from routes.utils import to_decimal

getcontext().prec = 28

SQFT_PER_METER = Decimal('300')

# processing rate per sqft for each finish
STREAM_RATES = OrderedDict([
    ('polish', Decimal('25')),
    ('laputra', Decimal('30')),
    ('whiteline', Decimal('25')),
])

DEFAULT_LOADING_PER_BLOCK = Decimal('1500')
DEFAULT_TRANSPORT_PER_BLOCK = Decimal('4500')

REQUIRED_FIELDS = ('total_blocks', 'net_meters_per_block', 'gross_meters_per_block', 'cost_per_meter')
PERCENT_FIELDS = tuple(f'{name}_percentage' for name in STREAM_RATES)
NULLABLE_FIELDS = ('loading_charges', 'transport_charges')
NUMERIC_FIELDS = (
    'net_meters_per_block', 'gross_meters_per_block', 'cost_per_meter',
    'loading_charges', 'transport_charges', 'quarry_commission',
) + PERCENT_FIELDS + tuple(f'{name}_sale_price' for name in STREAM_RATES)

CENT = Decimal('0.01')
MILLI = Decimal('0.001')


def _money(value):
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _sqft(value):
    return value.quantize(MILLI, rounding=ROUND_HALF_UP)


def _ratio(numerator, denominator):
    if not denominator:
        return Decimal('0.00')
    return _money(numerator / denominator)


def clean_calculation_inputs(data, current=None):
    """
    Validate calculator inputs and return the complete input set.

    - `current` holds the stored inputs when updating; fields absent from
      `data` keep their current value.
    - `avg_meters_per_block` stands in for net and gross meters not given
      separately.
    - Raises ValueError on missing, negative or out-of-range values, and when
      the three percentages add up to more than 100.
    """
    data = dict(data or {})
    avg = data.pop('avg_meters_per_block', None)
    if avg not in (None, ''):
        for field in ('net_meters_per_block', 'gross_meters_per_block'):
            if data.get(field) in (None, ''):
                data[field] = avg

    if current is None:
        missing = [f for f in REQUIRED_FIELDS if data.get(f) in (None, '')]
        if missing:
            raise ValueError(f"Missing required fields: {', '.join(missing)}")

    cleaned = dict(current or {})

    if 'total_blocks' in data:
        raw = data['total_blocks'] if data['total_blocks'] not in (None, '') else 0
        if isinstance(raw, bool):
            raise ValueError('total_blocks must be a whole number')
        try:
            blocks = Decimal(str(raw).strip())
        except Exception:
            raise ValueError('total_blocks must be a whole number')
        if not blocks.is_finite() or blocks != blocks.to_integral_value():
            raise ValueError('total_blocks must be a whole number')
        if blocks < 0:
            raise ValueError('total_blocks must be a non-negative number')
        cleaned['total_blocks'] = int(blocks)

    for field in NUMERIC_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if value in (None, ''):
            cleaned[field] = None if field in NULLABLE_FIELDS else Decimal('0')
            continue
        try:
            d = to_decimal(value, places='0.001')
        except ValueError:
            raise ValueError(f'{field} must be a non-negative number')
        if d < 0:
            raise ValueError(f'{field} must be a non-negative number')
        if field in PERCENT_FIELDS and d > 100:
            raise ValueError(f'{field} must be between 0 and 100')
        cleaned[field] = d

    cleaned.setdefault('total_blocks', 0)
    for field in NUMERIC_FIELDS:
        if field not in cleaned:
            cleaned[field] = None if field in NULLABLE_FIELDS else Decimal('0')

    total_percentage = sum((cleaned[f] or Decimal('0')) for f in PERCENT_FIELDS)
    if total_percentage > 100:
        raise ValueError('polish, laputra and whiteline percentages cannot add up to more than 100')
    return cleaned


def calculate_consignment(inputs):
    """Derived figures for one set of calculator inputs (see clean_calculation_inputs)."""
    def num(field):
        value = inputs.get(field)
        if value is None:
            return Decimal('0')
        return value if isinstance(value, Decimal) else Decimal(str(value))

    blocks = Decimal(int(inputs.get('total_blocks') or 0))
    loading = inputs.get('loading_charges')
    loading = num('loading_charges') if loading is not None else blocks * DEFAULT_LOADING_PER_BLOCK
    transport = inputs.get('transport_charges')
    transport = num('transport_charges') if transport is not None else blocks * DEFAULT_TRANSPORT_PER_BLOCK
    commission = num('quarry_commission')

    total_sqft = blocks * num('gross_meters_per_block') * SQFT_PER_METER
    raw_material_base = blocks * num('net_meters_per_block') * num('cost_per_meter')
    raw_material_cost = raw_material_base + loading + transport + commission

    result = OrderedDict()
    result['total_sqft'] = _sqft(total_sqft)
    result['raw_material_base'] = _money(raw_material_base)
    result['loading_charges'] = _money(loading)
    result['transport_charges'] = _money(transport)
    result['quarry_commission'] = _money(commission)
    result['raw_material_cost'] = _money(raw_material_cost)

    processing_cost = Decimal('0')
    revenue = Decimal('0')
    for name, rate in STREAM_RATES.items():
        stream_sqft = total_sqft * num(f'{name}_percentage') / 100
        stream_cost = stream_sqft * rate
        stream_revenue = stream_sqft * num(f'{name}_sale_price')
        processing_cost += stream_cost
        revenue += stream_revenue
        result[f'{name}_sqft'] = _sqft(stream_sqft)
        result[f'{name}_cost'] = _money(stream_cost)
        result[f'{name}_revenue'] = _money(stream_revenue)

    total_cost = raw_material_cost + processing_cost
    profit_loss = revenue - total_cost

    result['processing_cost'] = _money(processing_cost)
    result['total_cost'] = _money(total_cost)
    result['cost_per_sqft'] = _ratio(raw_material_cost, total_sqft)
    result['total_cost_per_sqft'] = _ratio(total_cost, total_sqft)
    result['total_revenue'] = _money(revenue)
    result['profit_loss'] = _money(profit_loss)
    result['profit_margin'] = _ratio(profit_loss * 100, revenue)
    return result
