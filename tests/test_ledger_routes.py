"""
Tests for the customer ledger API: customers, consignments, payments, receivables, export.
"""
from io import BytesIO

from openpyxl import load_workbook


def add_consignment(client, customer_id, rtgs, cash, total=None, day='2024-03-01'):
    body = {'customer_id': customer_id, 'date': day, 'rtgs_expected': rtgs, 'cash_expected': cash}
    if total is not None:
        body['total'] = total
    return client.post('/api/consignments', json=body)


def add_payment(client, customer_id, account_id, mode, amount, day='2024-03-05'):
    return client.post('/api/transactions', json={
        'customer_id': customer_id, 'account_id': account_id, 'date': day,
        'mode': mode, 'amount': amount,
    })


class TestCustomers:
    def test_create_and_list(self, client):
        resp = client.post('/api/customers', json={'name': '  Lakshmi Stones '})
        assert resp.status_code == 200
        assert resp.get_json()['name'] == 'Lakshmi Stones'

        names = [c['name'] for c in client.get('/api/customers').get_json()]
        assert names == ['Lakshmi Stones']

    def test_name_is_required(self, client):
        resp = client.post('/api/customers', json={'name': ' '})
        assert resp.status_code == 400
        assert resp.get_json()['error'] == 'name required'

    def test_body_must_be_json(self, client):
        resp = client.post('/api/customers', data='name=x')
        assert resp.status_code == 400

    def test_bank_accounts(self, client):
        assert client.post('/api/bank-accounts', json={'name': 'SBI'}).status_code == 200
        assert client.post('/api/bank-accounts', json={'name': 'Axis'}).status_code == 200
        names = [a['name'] for a in client.get('/api/bank-accounts').get_json()]
        assert names == ['Axis', 'SBI']


class TestConsignments:
    def test_total_is_derived(self, client, customer):
        resp = add_consignment(client, customer.id, '600', '400')
        assert resp.status_code == 200
        assert resp.get_json()['total'] == 1000.0

    def test_mismatching_total_is_rejected(self, client, customer):
        resp = add_consignment(client, customer.id, 600, 400, total=1200)
        assert resp.status_code == 400
        assert 'must equal' in resp.get_json()['error']

    def test_unknown_customer(self, client):
        resp = add_consignment(client, 999, 100, 0)
        assert resp.status_code == 400

    def test_filters(self, client, customer):
        add_consignment(client, customer.id, 100, 0, day='2024-01-15')
        add_consignment(client, customer.id, 200, 0, day='2024-02-15')

        rows = client.get('/api/consignments?from=2024-02-01').get_json()
        assert [r['total'] for r in rows] == [200.0]
        rows = client.get(f'/api/consignments?customerId={customer.id}').get_json()
        assert len(rows) == 2
        assert client.get('/api/consignments?customer_id=all').status_code == 200
        assert client.get('/api/consignments?from=15-01-2024').status_code == 400

    def test_update_recomputes_total(self, client, customer):
        consignment_id = add_consignment(client, customer.id, 100, 50).get_json()['id']
        resp = client.put(f'/api/consignments/{consignment_id}', json={'cash_expected': 150})
        assert resp.status_code == 200
        assert resp.get_json()['total'] == 250.0

    def test_delete(self, client, customer):
        consignment_id = add_consignment(client, customer.id, 100, 0).get_json()['id']
        assert client.delete(f'/api/consignments/{consignment_id}').get_json() == {'success': True}
        assert client.delete(f'/api/consignments/{consignment_id}').status_code == 404


class TestTransactions:
    def test_create_normalizes_mode(self, client, customer, bank_account):
        resp = add_payment(client, customer.id, bank_account.id, 'rtgs', 250)
        assert resp.status_code == 200
        assert resp.get_json()['mode'] == 'RTGS'

    def test_invalid_mode_and_amount(self, client, customer, bank_account):
        assert add_payment(client, customer.id, bank_account.id, 'CHEQUE', 10).status_code == 400
        assert add_payment(client, customer.id, bank_account.id, 'CASH', -10).status_code == 400
        assert add_payment(client, customer.id, bank_account.id, 'CASH', 'abc').status_code == 400

    def test_mode_filter_update_and_delete(self, client, customer, bank_account):
        add_payment(client, customer.id, bank_account.id, 'CASH', 100)
        txn_id = add_payment(client, customer.id, bank_account.id, 'RTGS', 300).get_json()['id']

        rows = client.get('/api/transactions?mode=rtgs').get_json()
        assert [r['amount'] for r in rows] == [300.0]

        resp = client.put(f'/api/transactions/{txn_id}', json={'amount': 350, 'note': 'corrected'})
        assert resp.get_json()['amount'] == 350.0
        assert client.delete(f'/api/transactions/{txn_id}').status_code == 200
        assert len(client.get('/api/transactions').get_json()) == 1


class TestReceivables:
    def test_pending_by_mode(self, client, customer, bank_account):
        add_consignment(client, customer.id, 600, 400)
        add_payment(client, customer.id, bank_account.id, 'RTGS', 250)
        add_payment(client, customer.id, bank_account.id, 'CASH', 400)

        data = client.get(f'/api/receivables?customer_id={customer.id}').get_json()

        assert data['expected_total'] == 1000.0
        assert data['receivable_rtgs'] == 350.0
        assert data['receivable_cash'] == 0.0
        assert data['receivable_total'] == 350.0
        assert data['overpaid'] is False
        assert data['customer_id'] == customer.id

    def test_all_customers_breakdown(self, client, customer, bank_account):
        other_id = client.post('/api/customers', json={'name': 'Another Buyer'}).get_json()['id']
        add_consignment(client, customer.id, 100, 0)
        add_consignment(client, other_id, 0, 50)
        add_payment(client, other_id, bank_account.id, 'CASH', 80)

        data = client.get('/api/receivables').get_json()

        assert data['receivable_total'] == 70.0
        assert data['overpaid'] is True
        by_name = {row['customer_name']: row for row in data['customers']}
        assert by_name['Another Buyer']['receivable_cash'] == -30.0
        assert by_name['Sri Balaji Granites']['receivable_rtgs'] == 100.0


class TestLedgerExport:
    def test_export_workbook(self, client, customer, bank_account):
        add_consignment(client, customer.id, 600, 400)
        add_payment(client, customer.id, bank_account.id, 'RTGS', 250)

        resp = client.get(f'/api/ledger/export?customer_id={customer.id}')

        assert resp.status_code == 200
        assert resp.mimetype == 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
        assert 'granite-ledger-sri-balaji-granites-' in resp.headers['Content-Disposition']
        wb = load_workbook(BytesIO(resp.data))
        assert wb.sheetnames == ['Summary', 'Consignments', 'Transactions']
        assert wb['Transactions']['C2'].value == 'HDFC Current'

    def test_export_unknown_customer(self, client):
        assert client.get('/api/ledger/export?customer_id=42').status_code == 404
