from flask import Blueprint, request, jsonify, send_file, current_app
from flask_login import login_required
from models import db, Customer, BankAccount, Consignment, Transaction
from routes.decorators import require_database, empty_when_unconfigured, db_configured
from routes.utils import (to_decimal, safe_int, require_date, json_body, date_range_args,
                          jsonable, get_or_404, api_error, log_action)
from routes.ledger_utils import (receivables_summary, receivables_by_customer, check_consignment_split,
                                 build_ledger_workbook, ledger_filename)
from extensions import limiter

ledger_bp = Blueprint('ledger', __name__, url_prefix='/api')


def _customer_filter_arg():
    """customer_id (or customerId) from the query string; None for all customers."""
    raw = request.args.get('customer_id') or request.args.get('customerId')
    if not raw or raw == 'all':
        return None
    customer_id = safe_int(raw)
    if customer_id is None:
        raise ValueError('customer_id must be an integer')
    return customer_id


def _filtered(model, customer_id, start_date, end_date):
    query = model.query
    if customer_id is not None:
        query = query.filter(model.customer_id == customer_id)
    if start_date:
        query = query.filter(model.date >= start_date)
    if end_date:
        query = query.filter(model.date <= end_date)
    return query.order_by(model.date.asc(), model.id.asc())


def _require_customer(customer_id):
    if not customer_id:
        raise ValueError('customer_id is required')
    if db.session.get(Customer, customer_id) is None:
        raise ValueError(f'Unknown customer {customer_id}')
    return customer_id


def _zero_receivables():
    data = jsonable(receivables_summary([], []))
    data['customers'] = []
    return data


# ============================================
# CUSTOMERS & BANK ACCOUNTS
# ============================================

@ledger_bp.route('/customers', methods=['GET'])
@login_required
@empty_when_unconfigured([])
def list_customers():
    customers = Customer.query.order_by(Customer.created_at.desc(), Customer.id.desc()).all()
    return jsonify([c.to_dict() for c in customers])


@ledger_bp.route('/customers', methods=['POST'])
@login_required
@require_database
def create_customer():
    try:
        data = json_body()
        name = str(data.get('name') or '').strip()
        if not name:
            raise ValueError('name required')
        customer = Customer(name=name)
        db.session.add(customer)
        db.session.commit()
        log_action(f'Added customer: {name}')
        return jsonify(customer.to_dict())
    except Exception as e:
        return api_error(e, 'create customer')


@ledger_bp.route('/bank-accounts', methods=['GET'])
@login_required
@empty_when_unconfigured([])
def list_bank_accounts():
    accounts = BankAccount.query.order_by(BankAccount.name.asc()).all()
    return jsonify([a.to_dict() for a in accounts])


@ledger_bp.route('/bank-accounts', methods=['POST'])
@login_required
@require_database
def create_bank_account():
    try:
        data = json_body()
        name = str(data.get('name') or '').strip()
        if not name:
            raise ValueError('name required')
        account = BankAccount(name=name)
        db.session.add(account)
        db.session.commit()
        log_action(f'Added bank account: {name}')
        return jsonify(account.to_dict())
    except Exception as e:
        return api_error(e, 'create bank account')


# ============================================
# CONSIGNMENTS (expected amounts)
# ============================================

@ledger_bp.route('/consignments', methods=['GET'])
@login_required
@empty_when_unconfigured([])
def list_consignments():
    try:
        start_date, end_date = date_range_args()
        rows = _filtered(Consignment, _customer_filter_arg(), start_date, end_date).all()
        return jsonify([c.to_dict() for c in rows])
    except Exception as e:
        return api_error(e, 'list consignments')


def _optional_amount(data, field):
    value = data.get(field)
    return None if value in (None, '') else to_decimal(value)


@ledger_bp.route('/consignments', methods=['POST'])
@login_required
@require_database
def create_consignment():
    try:
        data = json_body()
        customer_id = _require_customer(safe_int(data.get('customer_id')))
        date = require_date(data, 'date')
        total, rtgs, cash = check_consignment_split(
            _optional_amount(data, 'total'),
            to_decimal(data.get('rtgs_expected')),
            to_decimal(data.get('cash_expected')),
        )
        consignment = Consignment(
            customer_id=customer_id,
            date=date,
            total=total,
            rtgs_expected=rtgs,
            cash_expected=cash,
            remarks=data.get('remarks'),
        )
        db.session.add(consignment)
        db.session.commit()
        log_action(f'Added consignment #{consignment.id} for customer #{customer_id}: total {total}')
        return jsonify(consignment.to_dict())
    except Exception as e:
        return api_error(e, 'create consignment')


@ledger_bp.route('/consignments/<int:consignment_id>', methods=['PUT'])
@login_required
@require_database
def update_consignment(consignment_id):
    try:
        consignment = get_or_404(Consignment, consignment_id, 'Consignment')
        data = json_body()
        rtgs = to_decimal(data['rtgs_expected']) if 'rtgs_expected' in data else consignment.rtgs_expected
        cash = to_decimal(data['cash_expected']) if 'cash_expected' in data else consignment.cash_expected
        # a total left out of the update follows the new split
        total, rtgs, cash = check_consignment_split(_optional_amount(data, 'total'), rtgs, cash)
        consignment.total = total
        consignment.rtgs_expected = rtgs
        consignment.cash_expected = cash
        if 'remarks' in data:
            consignment.remarks = data.get('remarks')
        if 'date' in data:
            consignment.date = require_date(data, 'date')
        db.session.commit()
        log_action(f'Updated consignment #{consignment.id}: total {total}')
        return jsonify(consignment.to_dict())
    except Exception as e:
        return api_error(e, 'update consignment')


@ledger_bp.route('/consignments/<int:consignment_id>', methods=['DELETE'])
@login_required
@require_database
def delete_consignment(consignment_id):
    try:
        consignment = get_or_404(Consignment, consignment_id, 'Consignment')
        db.session.delete(consignment)
        db.session.commit()
        log_action(f'Deleted consignment #{consignment_id}')
        return jsonify({'success': True})
    except Exception as e:
        return api_error(e, 'delete consignment')


# ============================================
# TRANSACTIONS (received payments)
# ============================================

@ledger_bp.route('/transactions', methods=['GET'])
@login_required
@empty_when_unconfigured([])
def list_transactions():
    try:
        start_date, end_date = date_range_args()
        query = _filtered(Transaction, _customer_filter_arg(), start_date, end_date)
        mode = (request.args.get('mode') or '').strip().upper()
        if mode:
            query = query.filter(Transaction.mode == mode)
        return jsonify([t.to_dict() for t in query.all()])
    except Exception as e:
        return api_error(e, 'list transactions')


def _require_account(account_id):
    if not account_id:
        raise ValueError('account_id is required')
    if db.session.get(BankAccount, account_id) is None:
        raise ValueError(f'Unknown bank account {account_id}')
    return account_id


@ledger_bp.route('/transactions', methods=['POST'])
@login_required
@require_database
def create_transaction():
    try:
        data = json_body()
        missing = [f for f in ('customer_id', 'date', 'mode', 'account_id', 'amount') if not data.get(f)]
        if missing:
            raise ValueError(f"missing fields: {', '.join(missing)}")
        txn = Transaction(
            customer_id=_require_customer(safe_int(data.get('customer_id'))),
            date=require_date(data, 'date'),
            mode=data.get('mode'),
            account_id=_require_account(safe_int(data.get('account_id'))),
            amount=to_decimal(data.get('amount')),
            note=data.get('note'),
        )
        db.session.add(txn)
        db.session.commit()
        log_action(f'Recorded {txn.mode} payment #{txn.id} of {txn.amount} from customer #{txn.customer_id}')
        return jsonify(txn.to_dict())
    except Exception as e:
        return api_error(e, 'create transaction')


@ledger_bp.route('/transactions/<int:transaction_id>', methods=['PUT'])
@login_required
@require_database
def update_transaction(transaction_id):
    try:
        txn = get_or_404(Transaction, transaction_id, 'Transaction')
        data = json_body()
        if 'date' in data:
            txn.date = require_date(data, 'date')
        if 'mode' in data:
            txn.mode = data.get('mode')
        if 'account_id' in data:
            txn.account_id = _require_account(safe_int(data.get('account_id')))
        if 'amount' in data:
            txn.amount = to_decimal(data.get('amount'))
        if 'note' in data:
            txn.note = data.get('note')
        db.session.commit()
        log_action(f'Updated payment #{txn.id}')
        return jsonify(txn.to_dict())
    except Exception as e:
        return api_error(e, 'update transaction')


@ledger_bp.route('/transactions/<int:transaction_id>', methods=['DELETE'])
@login_required
@require_database
def delete_transaction(transaction_id):
    try:
        txn = get_or_404(Transaction, transaction_id, 'Transaction')
        db.session.delete(txn)
        db.session.commit()
        log_action(f'Deleted payment #{transaction_id}')
        return jsonify({'success': True})
    except Exception as e:
        return api_error(e, 'delete transaction')


# ============================================
# RECEIVABLES
# ============================================

@ledger_bp.route('/receivables', methods=['GET'])
@login_required
@empty_when_unconfigured(_zero_receivables)
def receivables():
    """Expected vs received for one customer, or all customers with a per-customer breakdown."""
    try:
        customer_id = _customer_filter_arg()
        start_date, end_date = date_range_args()
        consignments = _filtered(Consignment, customer_id, start_date, end_date).all()
        transactions = _filtered(Transaction, customer_id, start_date, end_date).all()

        data = jsonable(receivables_summary(consignments, transactions))
        if customer_id is None:
            customers = Customer.query.order_by(Customer.name.asc()).all()
            data['customers'] = jsonable(receivables_by_customer(customers, consignments, transactions))
        else:
            data['customer_id'] = customer_id
        return jsonify(data)
    except Exception as e:
        return api_error(e, 'compute receivables')


@ledger_bp.route('/ledger/export', methods=['GET'])
@login_required
@limiter.limit(lambda: current_app.config.get('EXPORT_RATE_LIMIT', '30 per minute'))
def export_ledger():
    """Excel workbook of the (filtered) ledger."""
    try:
        customer_id = _customer_filter_arg()
        start_date, end_date = date_range_args()
        customer_name = None
        account_names = {}
        if db_configured():
            if customer_id is not None:
                customer_name = get_or_404(Customer, customer_id, 'Customer').name
            consignments = _filtered(Consignment, customer_id, start_date, end_date).all()
            transactions = _filtered(Transaction, customer_id, start_date, end_date).all()
            account_names = {a.id: a.name for a in BankAccount.query.all()}
        else:
            consignments, transactions = [], []

        summary = receivables_summary(consignments, transactions)
        output = build_ledger_workbook(summary, consignments, transactions,
                                       customer_name=customer_name, account_names=account_names)
        return send_file(
            output,
            mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
            as_attachment=True,
            download_name=ledger_filename(customer_name),
        )
    except Exception as e:
        return api_error(e, 'export ledger')
