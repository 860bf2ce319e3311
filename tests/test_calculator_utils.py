"""
Tests for the what-if consignment calculator.
"""
from decimal import Decimal

import pytest

from routes.calculator_utils import clean_calculation_inputs, calculate_consignment


BASE_INPUTS = {
    'total_blocks': 10,
    'net_meters_per_block': 2,
    'gross_meters_per_block': 2,
    'cost_per_meter': 1000,
}


class TestCleanInputs:
    def test_required_fields(self):
        with pytest.raises(ValueError, match="Missing required fields: cost_per_meter"):
            clean_calculation_inputs({'total_blocks': 1, 'net_meters_per_block': 1,
                                      'gross_meters_per_block': 1})

    def test_avg_meters_fills_net_and_gross(self):
        cleaned = clean_calculation_inputs({'total_blocks': 4, 'avg_meters_per_block': '2.5',
                                            'cost_per_meter': 900})
        assert cleaned['net_meters_per_block'] == Decimal('2.5')
        assert cleaned['gross_meters_per_block'] == Decimal('2.5')
        assert cleaned['loading_charges'] is None
        assert cleaned['polish_percentage'] == 0

    def test_percentage_out_of_range(self):
        with pytest.raises(ValueError, match="polish_percentage must be between 0 and 100"):
            clean_calculation_inputs(dict(BASE_INPUTS, polish_percentage=120))

    def test_percentages_cannot_exceed_100_together(self):
        with pytest.raises(ValueError, match="more than 100"):
            clean_calculation_inputs(dict(BASE_INPUTS, polish_percentage=60,
                                          laputra_percentage=30, whiteline_percentage=20))

    def test_negative_values_are_rejected(self):
        with pytest.raises(ValueError, match="cost_per_meter must be a non-negative number"):
            clean_calculation_inputs(dict(BASE_INPUTS, cost_per_meter=-5))
        with pytest.raises(ValueError, match="total_blocks"):
            clean_calculation_inputs(dict(BASE_INPUTS, total_blocks=-1))

    def test_block_count_must_be_whole(self):
        with pytest.raises(ValueError, match="whole number"):
            clean_calculation_inputs(dict(BASE_INPUTS, total_blocks='2.7'))
        with pytest.raises(ValueError, match="whole number"):
            clean_calculation_inputs(dict(BASE_INPUTS, total_blocks='ten'))
        assert clean_calculation_inputs(dict(BASE_INPUTS, total_blocks='12'))['total_blocks'] == 12

    def test_partial_update_keeps_current_values(self):
        current = clean_calculation_inputs(dict(BASE_INPUTS, polish_percentage=40))
        updated = clean_calculation_inputs({'cost_per_meter': 1200}, current=current)
        assert updated['cost_per_meter'] == Decimal('1200')
        assert updated['polish_percentage'] == Decimal('40')
        assert updated['total_blocks'] == 10


class TestCalculateConsignment:
    def test_raw_material_with_default_handling(self):
        result = calculate_consignment(clean_calculation_inputs(BASE_INPUTS))
        assert result['total_sqft'] == Decimal('6000')
        assert result['raw_material_base'] == Decimal('20000')
        assert result['loading_charges'] == Decimal('15000')
        assert result['transport_charges'] == Decimal('45000')
        assert result['raw_material_cost'] == Decimal('80000')
        assert result['cost_per_sqft'] == Decimal('13.33')
        assert result['total_revenue'] == 0
        assert result['profit_margin'] == 0

    def test_explicit_zero_handling_is_kept(self):
        result = calculate_consignment(clean_calculation_inputs(
            dict(BASE_INPUTS, loading_charges=0, transport_charges=0)))
        assert result['loading_charges'] == 0
        assert result['transport_charges'] == 0
        assert result['raw_material_cost'] == Decimal('20000')

    def test_processing_streams_and_profit(self):
        inputs = clean_calculation_inputs(dict(
            BASE_INPUTS,
            polish_percentage=50, laputra_percentage=30, whiteline_percentage=20,
            polish_sale_price=60, laputra_sale_price=70, whiteline_sale_price=50,
        ))
        result = calculate_consignment(inputs)

        assert result['polish_sqft'] == Decimal('3000')
        assert result['laputra_sqft'] == Decimal('1800')
        assert result['whiteline_sqft'] == Decimal('1200')
        assert result['polish_cost'] == Decimal('75000')
        assert result['laputra_cost'] == Decimal('54000')
        assert result['whiteline_cost'] == Decimal('30000')
        assert result['processing_cost'] == Decimal('159000')
        assert result['total_cost'] == Decimal('239000')
        assert result['total_cost_per_sqft'] == Decimal('39.83')
        assert result['total_revenue'] == Decimal('366000')
        assert result['profit_loss'] == Decimal('127000')
        assert result['profit_margin'] == Decimal('34.70')

    def test_zero_blocks(self):
        result = calculate_consignment(clean_calculation_inputs(dict(BASE_INPUTS, total_blocks=0)))
        assert result['total_sqft'] == 0
        assert result['total_cost_per_sqft'] == 0
