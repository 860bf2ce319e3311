"""
Tests for expense categories, vendors, accounts, expenses and the expense summary.
"""


def add_expense(client, category_id, account_id, amount, tax=0, day='2024-06-10', **extra):
    body = {
        'date': day, 'category_id': category_id, 'account_id': account_id,
        'amount': amount, 'tax_amount': tax, 'description': 'Diesel for loader',
        'payment_method': 'CASH',
    }
    body.update(extra)
    return client.post('/api/expenses', json=body)


class TestCategories:
    def test_create_list_and_deactivate(self, client):
        resp = client.post('/api/expense-categories', json={'name': 'Blades', 'budget_limit': '5000'})
        assert resp.status_code == 200
        category = resp.get_json()
        assert category['color'] == '#6B7280'
        assert category['budget_limit'] == 5000.0

        client.put('/api/expense-categories', json={'id': category['id'], 'is_active': False})
        assert client.get('/api/expense-categories').get_json() == []

    def test_duplicate_name(self, client, expense_category):
        assert client.post('/api/expense-categories', json={'name': 'Diesel'}).status_code == 400

    def test_delete_refused_with_expenses(self, client, expense_category, expense_account):
        add_expense(client, expense_category.id, expense_account.id, 100)
        resp = client.delete(f'/api/expense-categories?id={expense_category.id}')
        assert resp.status_code == 400


class TestVendors:
    def test_vendor_codes(self, client):
        first = client.post('/api/vendors', json={'name': 'Sri Sai Tools'}).get_json()
        second = client.post('/api/vendors', json={'name': 'Anand Diesel'}).get_json()
        assert first['vendor_code'] == 'VEN000001'
        assert second['vendor_code'] == 'VEN000002'
        names = [v['name'] for v in client.get('/api/vendors').get_json()]
        assert names == ['Anand Diesel', 'Sri Sai Tools']

    def test_name_is_required(self, client):
        assert client.post('/api/vendors', json={'phone': '123'}).status_code == 400

    def test_delete(self, client):
        vendor_id = client.post('/api/vendors', json={'name': 'Old Vendor'}).get_json()['id']
        assert client.delete(f'/api/vendors?id={vendor_id}').get_json() == {'success': True}


class TestAccounts:
    def test_create_and_delete(self, client):
        resp = client.post('/api/expense-accounts', json={'name': 'Canara OD', 'account_type': 'bank'})
        assert resp.status_code == 201
        account = resp.get_json()
        assert account['account_type'] == 'BANK'

        resp = client.delete(f"/api/expense-accounts?id={account['id']}")
        assert resp.get_json() == {'message': 'Account deleted successfully'}

    def test_type_is_required(self, client):
        assert client.post('/api/expense-accounts', json={'name': 'Cash'}).status_code == 400


class TestExpenses:
    def test_create_with_items(self, client, expense_category, expense_account):
        resp = add_expense(client, expense_category.id, expense_account.id, '800', tax='100',
                           tags=['loader', 'june'],
                           items=[{'item_name': 'Diesel', 'quantity': 8, 'unit_price': 100, 'unit': 'litre'},
                                  {'name': 'Filter', 'unit_price': 250}])
        assert resp.status_code == 200
        data = resp.get_json()
        assert data['expense_number'] == 'EXP-000001'
        assert data['total_amount'] == 900.0
        assert data['payment_status'] == 'PAID'
        assert data['created_by'] == 'system'
        assert data['tags'] == ['loader', 'june']
        assert data['expense_categories'] == {'name': 'Diesel', 'color': '#EF4444'}
        assert data['expense_accounts']['name'] == 'Petty Cash'
        items = data['expense_items']
        assert items[0]['total_price'] == 800.0
        assert items[1]['quantity'] == 1.0
        assert items[1]['unit'] == 'pcs'

    def test_missing_fields(self, client, expense_category):
        resp = client.post('/api/expenses', json={'category_id': expense_category.id})
        assert resp.status_code == 400
        assert resp.get_json()['error'].startswith('Missing required fields: date')

    def test_unknown_references(self, client, expense_category, expense_account):
        assert add_expense(client, 99, expense_account.id, 10).status_code == 400
        assert add_expense(client, expense_category.id, expense_account.id, 10, vendor_id=99).status_code == 400

    def test_filters_and_delete(self, client, expense_category, expense_account):
        add_expense(client, expense_category.id, expense_account.id, 100, day='2024-05-01')
        pending_id = add_expense(client, expense_category.id, expense_account.id, 200,
                                 payment_status='pending').get_json()['id']

        rows = client.get('/api/expenses?status=PENDING').get_json()
        assert [r['id'] for r in rows] == [pending_id]
        rows = client.get('/api/expenses?from=2024-06-01&to=2024-06-30').get_json()
        assert len(rows) == 1

        assert client.delete(f'/api/expenses/{pending_id}').get_json() == {'success': True}
        assert client.delete(f'/api/expenses/{pending_id}').status_code == 404

    def test_summary(self, client, expense_category, expense_account):
        add_expense(client, expense_category.id, expense_account.id, 800, tax=100, day='2024-05-20')
        add_expense(client, expense_category.id, expense_account.id, 300, day='2024-06-02',
                    payment_status='PENDING')

        data = client.get('/api/expenses/summary').get_json()

        assert data['total_amount'] == 1200.0
        assert data['total_tax'] == 100.0
        assert data['count'] == 2
        assert data['by_status'] == {'PAID': 900.0, 'PENDING': 300.0}
        assert data['by_month'] == {'2024-05': 900.0, '2024-06': 300.0}
        diesel = data['by_category'][0]
        assert diesel['name'] == 'Diesel'
        assert diesel['count'] == 2
        assert diesel['over_budget'] is True
