"""
Tests for the analytics overview and the granite dashboard.
"""


def sell(client, part_id, sqft, rate, buyer, day='2024-04-01'):
    resp = client.post('/api/granite-sales', json={
        'block_part_id': part_id, 'buyer_name': buyer, 'sqft_sold': sqft,
        'rate_per_sqft': rate, 'sale_date': day,
    })
    assert resp.status_code == 201
    return resp.get_json()


def seed_sales(client, block):
    ids = {p.part_name: p.id for p in block.parts}
    sell(client, ids['A'], 40, 600, 'Kumar Tiles')
    sell(client, ids['A'], 20, 500, 'Kumar Tiles', day='2024-04-03')
    sell(client, ids['B'], 10, 900, 'Lakshmi Stones', day='2024-04-02')
    sell(client, ids['B'], 5, 450, 'Patel Marbles', day='2024-04-04')


class TestAnalytics:
    def test_empty_database(self, client):
        data = client.get('/api/analytics').get_json()
        assert data['overview']['total_consignments'] == 0
        assert data['overview']['total_sales'] == 0
        assert data['buyers'] == {'top_buyers': [], 'total_buyers': 0}

    def test_overview(self, client, cut_block):
        seed_sales(client, cut_block)

        data = client.get('/api/analytics').get_json()
        overview = data['overview']

        assert overview['total_consignments'] == 1
        assert overview['total_blocks'] == 1
        assert overview['total_expenditure'] == 65000.0
        assert overview['total_sqft_produced'] == 150.0
        assert overview['avg_cost_per_sqft'] == 433.33
        assert overview['total_sales'] == 45250.0
        assert overview['total_sqft_sold'] == 75.0
        assert overview['total_inventory'] == 75.0
        assert data['blocks'] == {'by_status': {'CUT': 1}, 'total': 1}
        assert data['parts']['B']['sold_sqft'] == 15.0

        buyers = data['buyers']
        assert buyers['total_buyers'] == 3
        kumar = buyers['top_buyers'][0]
        assert kumar['name'] == 'Kumar Tiles'
        assert kumar['transactions'] == 2
        assert kumar['sqft_purchased'] == 60.0
        assert kumar['total_amount'] == 34000.0
        assert kumar['avg_rate'] == 566.67

        assert data['recent_sales'][0]['buyer'] == 'Patel Marbles'
        assert data['recent_sales'][0]['block_part'] == 'B1-B'

    def test_limit_parameter(self, client, cut_block):
        seed_sales(client, cut_block)
        data = client.get('/api/analytics?limit=1').get_json()
        assert len(data['buyers']['top_buyers']) == 1
        assert data['buyers']['total_buyers'] == 3

    def test_configured_limit(self, app, client, cut_block):
        seed_sales(client, cut_block)
        app.config['TOP_BUYERS_LIMIT'] = 2
        data = client.get('/api/analytics').get_json()
        assert [b['name'] for b in data['buyers']['top_buyers']] == ['Kumar Tiles', 'Lakshmi Stones']


class TestDashboard:
    def test_dashboard_ranks_by_profit(self, client, cut_block):
        seed_sales(client, cut_block)

        data = client.get('/api/granite/dashboard').get_json()

        assert data['total_consignments'] == 1
        assert data['total_production'] == 150.0
        assert data['active_blocks'] == 1
        # Kumar: 126.67*40 + 26.67*20; Lakshmi: 426.67*10; Patel: -23.33*5
        assert [b['name'] for b in data['top_buyers']] == ['Kumar Tiles', 'Lakshmi Stones', 'Patel Marbles']
        assert data['top_buyers'][2]['total_profit'] == -116.65

        row = data['consignment_analytics'][0]
        assert row['consignment'] == 'GC-TEST-1'
        assert row['supplier'] == 'Rising Sun Exports'
        assert row['cost_per_sqft'] == 400.0
        assert row['profit'] == 9750.25
        assert row['margin'] == 15.0

    def test_empty_dashboard(self, client):
        data = client.get('/api/granite/dashboard').get_json()
        assert data['consignment_analytics'] == []
        assert data['top_buyers'] == []
        assert data['avg_margin'] == 0
