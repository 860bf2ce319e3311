"""
Without database credentials reads answer empty data and writes are refused.
"""
from io import BytesIO

import pytest
from openpyxl import load_workbook


@pytest.mark.parametrize('url, expected', [
    ('/api/customers', []),
    ('/api/bank-accounts', []),
    ('/api/consignments', []),
    ('/api/transactions', []),
    ('/api/granite-suppliers', []),
    ('/api/granite-consignments', []),
    ('/api/granite-blocks', []),
    ('/api/granite-sales', []),
    ('/api/granite-block-parts/available', []),
    ('/api/expenses', []),
    ('/api/vendors', []),
    ('/api/consignment-calculations', {'data': []}),
])
def test_reads_are_empty(unconfigured_client, url, expected):
    resp = unconfigured_client.get(url)
    assert resp.status_code == 200
    assert resp.get_json() == expected


def test_receivables_are_zero(unconfigured_client):
    data = unconfigured_client.get('/api/receivables').get_json()
    assert data['receivable_total'] == 0
    assert data['overpaid'] is False
    assert data['customers'] == []


def test_analytics_and_dashboard_are_zero(unconfigured_client):
    overview = unconfigured_client.get('/api/analytics').get_json()['overview']
    assert overview['total_sales'] == 0
    dashboard = unconfigured_client.get('/api/granite/dashboard').get_json()
    assert dashboard['top_buyers'] == []


@pytest.mark.parametrize('method, url', [
    ('post', '/api/customers'),
    ('post', '/api/transactions'),
    ('post', '/api/granite-suppliers'),
    ('delete', '/api/granite-suppliers?id=1'),
    ('post', '/api/granite-sales'),
    ('post', '/api/granite-production'),
    ('post', '/api/expenses'),
    ('post', '/api/consignment-calculations'),
])
def test_writes_are_refused(unconfigured_client, method, url):
    resp = getattr(unconfigured_client, method)(url, json={'name': 'x'})
    assert resp.status_code == 500
    assert resp.get_json() == {'error': 'Database not configured'}


def test_preview_and_exports_still_work(unconfigured_client):
    resp = unconfigured_client.post('/api/consignment-calculations/preview', json={
        'total_blocks': 1, 'net_meters_per_block': 1, 'gross_meters_per_block': 1, 'cost_per_meter': 100,
    })
    assert resp.get_json()['data']['total_sqft'] == 300.0

    resp = unconfigured_client.get('/api/ledger/export')
    assert load_workbook(BytesIO(resp.data)).sheetnames == ['Summary', 'Consignments', 'Transactions']

    resp = unconfigured_client.get('/api/granite-sales/export')
    assert resp.get_data(as_text=True).splitlines()[-1].startswith('TOTAL')
