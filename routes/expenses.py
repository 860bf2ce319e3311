from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user
from models import db, ExpenseCategory, Vendor, ExpenseAccount, Expense, ExpenseItem
from routes.decorators import require_database, empty_when_unconfigured, read_or_write
from routes.utils import (to_decimal, to_measure, safe_int, require_date, json_body, date_range_args,
                          next_document_number, jsonable, get_or_404, api_error, log_action)
from collections import OrderedDict
from decimal import Decimal, ROUND_HALF_UP
import json

expenses_bp = Blueprint('expenses', __name__, url_prefix='/api')

VENDOR_FIELDS = ('name', 'contact_person', 'phone', 'email', 'address', 'gst_number', 'payment_terms')
REQUIRED_EXPENSE_FIELDS = ('date', 'category_id', 'account_id', 'amount', 'description', 'payment_method')


def _clean(value):
    text = str(value).strip() if value is not None else ''
    return text or None


def _id_arg(data=None):
    object_id = safe_int((data or {}).get('id')) or safe_int(request.args.get('id'))
    if not object_id:
        raise ValueError('id is required')
    return object_id


def summarize_expenses(expenses):
    """Totals overall, per category (with budget usage), per payment status and per month."""
    total_amount = Decimal('0.00')
    total_tax = Decimal('0.00')
    by_category = OrderedDict()
    by_status = OrderedDict()
    by_month = OrderedDict()

    for e in sorted(expenses, key=lambda x: (x.date, x.id or 0)):
        amount = e.total_amount or Decimal('0.00')
        total_amount += amount
        total_tax += e.tax_amount or Decimal('0.00')

        cat = by_category.get(e.category_id)
        if cat is None:
            category = e.category
            cat = by_category[e.category_id] = {
                'category_id': e.category_id,
                'name': category.name if category else 'Uncategorized',
                'color': category.color if category else '#6B7280',
                'budget_limit': category.budget_limit if category else None,
                'total': Decimal('0.00'),
                'count': 0,
            }
        cat['total'] += amount
        cat['count'] += 1

        status = e.payment_status or 'PAID'
        by_status[status] = by_status.get(status, Decimal('0.00')) + amount

        month = e.date.strftime('%Y-%m') if e.date else 'unknown'
        by_month[month] = by_month.get(month, Decimal('0.00')) + amount

    categories = sorted(by_category.values(), key=lambda c: c['total'], reverse=True)
    for cat in categories:
        limit = cat['budget_limit']
        cat['over_budget'] = bool(limit is not None and limit > 0 and cat['total'] > limit)

    return {
        'total_amount': total_amount,
        'total_tax': total_tax,
        'count': len(expenses),
        'by_category': categories,
        'by_status': by_status,
        'by_month': by_month,
    }


# ============================================
# CATEGORIES
# ============================================

@expenses_bp.route('/expense-categories', methods=['GET', 'POST', 'PUT', 'DELETE'])
@login_required
@read_or_write([])
def expense_categories():
    try:
        if request.method == 'GET':
            categories = (ExpenseCategory.query.filter_by(is_active=True)
                          .order_by(ExpenseCategory.name.asc()).all())
            return jsonify([c.to_dict() for c in categories])

        if request.method == 'DELETE':
            category = get_or_404(ExpenseCategory, _id_arg(), 'Category')
            if Expense.query.filter_by(category_id=category.id).count():
                raise ValueError(f"Category '{category.name}' has expenses and cannot be deleted")
            name = category.name
            db.session.delete(category)
            db.session.commit()
            log_action(f'Deleted expense category: {name}')
            return jsonify({'success': True})

        data = json_body()
        if request.method == 'POST':
            category = ExpenseCategory(color='#6B7280', is_active=True)
            db.session.add(category)
        else:
            category = get_or_404(ExpenseCategory, _id_arg(data), 'Category')

        if request.method == 'POST' or 'name' in data:
            category.name = _clean(data.get('name'))
        if not category.name:
            raise ValueError('Category name is required')
        if 'description' in data:
            category.description = _clean(data.get('description'))
        if data.get('color'):
            category.color = str(data['color']).strip()
        if 'budget_limit' in data:
            limit = data.get('budget_limit')
            category.budget_limit = to_decimal(limit) if limit not in (None, '') else None
        if 'is_active' in data:
            category.is_active = bool(data.get('is_active'))
        db.session.commit()
        log_action(f"{'Added' if request.method == 'POST' else 'Updated'} expense category: {category.name}")
        return jsonify(category.to_dict())
    except Exception as e:
        return api_error(e, f'{request.method} expense category')


# ============================================
# VENDORS
# ============================================

@expenses_bp.route('/vendors', methods=['GET', 'POST', 'PUT', 'DELETE'])
@login_required
@read_or_write([])
def vendors():
    try:
        if request.method == 'GET':
            rows = Vendor.query.filter_by(is_active=True).order_by(Vendor.name.asc()).all()
            return jsonify([v.to_dict() for v in rows])

        if request.method == 'DELETE':
            vendor = get_or_404(Vendor, _id_arg(), 'Vendor')
            if Expense.query.filter_by(vendor_id=vendor.id).count():
                raise ValueError(f"Vendor '{vendor.name}' has expenses and cannot be deleted")
            name = vendor.name
            db.session.delete(vendor)
            db.session.commit()
            log_action(f'Deleted vendor: {name}')
            return jsonify({'success': True})

        data = json_body()
        if request.method == 'POST':
            vendor = Vendor(vendor_code=next_document_number('vendor', 'VEN', separator=''), is_active=True)
            db.session.add(vendor)
        else:
            vendor = get_or_404(Vendor, _id_arg(data), 'Vendor')

        for field in VENDOR_FIELDS:
            if request.method == 'POST' or field in data:
                setattr(vendor, field, _clean(data.get(field)))
        if not vendor.name:
            raise ValueError('Vendor name is required')
        if 'is_active' in data:
            vendor.is_active = bool(data.get('is_active'))
        db.session.commit()
        log_action(f"{'Added' if request.method == 'POST' else 'Updated'} vendor {vendor.vendor_code}: {vendor.name}")
        return jsonify(vendor.to_dict())
    except Exception as e:
        return api_error(e, f'{request.method} vendor')


# ============================================
# ACCOUNTS
# ============================================

@expenses_bp.route('/expense-accounts', methods=['GET', 'POST', 'PUT', 'DELETE'])
@login_required
@read_or_write([])
def expense_accounts():
    try:
        if request.method == 'GET':
            rows = ExpenseAccount.query.order_by(ExpenseAccount.name.asc()).all()
            return jsonify([a.to_dict() for a in rows])

        if request.method == 'DELETE':
            account = get_or_404(ExpenseAccount, _id_arg(), 'Account')
            if Expense.query.filter_by(account_id=account.id).count():
                raise ValueError(f"Account '{account.name}' has expenses and cannot be deleted")
            name = account.name
            db.session.delete(account)
            db.session.commit()
            log_action(f'Deleted expense account: {name}')
            return jsonify({'message': 'Account deleted successfully'})

        data = json_body()
        if request.method == 'POST':
            if not data.get('name') or not data.get('account_type'):
                raise ValueError('Name and account type are required')
            account = ExpenseAccount(
                name=_clean(data.get('name')),
                account_type=_clean(data.get('account_type')).upper(),
                description=_clean(data.get('description')),
                current_balance=to_decimal(data.get('current_balance')),
            )
            db.session.add(account)
            db.session.commit()
            log_action(f'Added expense account: {account.name}')
            return jsonify(account.to_dict()), 201

        account = get_or_404(ExpenseAccount, _id_arg(data), 'Account')
        if data.get('name'):
            account.name = _clean(data['name'])
        if data.get('account_type'):
            account.account_type = _clean(data['account_type']).upper()
        if 'description' in data:
            account.description = _clean(data.get('description'))
        if 'current_balance' in data:
            account.current_balance = to_decimal(data.get('current_balance'))
        db.session.commit()
        log_action(f'Updated expense account: {account.name}')
        return jsonify(account.to_dict())
    except Exception as e:
        return api_error(e, f'{request.method} expense account')


# ============================================
# EXPENSES
# ============================================

def _expenses_query():
    query = Expense.query
    category_id = safe_int(request.args.get('category_id'))
    if category_id:
        query = query.filter(Expense.category_id == category_id)
    vendor_id = safe_int(request.args.get('vendor_id'))
    if vendor_id:
        query = query.filter(Expense.vendor_id == vendor_id)
    status = (request.args.get('status') or '').strip().upper()
    if status:
        query = query.filter(Expense.payment_status == status)
    start_date, end_date = date_range_args()
    if start_date:
        query = query.filter(Expense.date >= start_date)
    if end_date:
        query = query.filter(Expense.date <= end_date)
    return query


@expenses_bp.route('/expenses', methods=['GET'])
@login_required
@empty_when_unconfigured([])
def list_expenses():
    try:
        rows = _expenses_query().order_by(Expense.date.desc(), Expense.id.desc()).all()
        return jsonify([e.to_dict() for e in rows])
    except Exception as e:
        return api_error(e, 'list expenses')


def _build_items(items):
    built = []
    for item in items or []:
        if not isinstance(item, dict):
            raise ValueError('Each expense item must be an object')
        name = _clean(item.get('item_name') or item.get('name'))
        if not name:
            raise ValueError('Expense item name is required')
        quantity = to_measure(item.get('quantity')) if item.get('quantity') not in (None, '', 0) else Decimal('1.000')
        unit_price = to_decimal(item.get('unit_price'))
        if quantity <= 0 or unit_price < 0:
            raise ValueError(f"Invalid quantity or unit price for item '{name}'")
        built.append(ExpenseItem(
            item_name=name,
            quantity=quantity,
            unit_price=unit_price,
            total_price=(quantity * unit_price).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP),
            unit=_clean(item.get('unit')) or 'pcs',
        ))
    return built


@expenses_bp.route('/expenses', methods=['POST'])
@login_required
@require_database
def create_expense():
    try:
        data = json_body()
        missing = [f for f in REQUIRED_EXPENSE_FIELDS if not data.get(f)]
        if missing:
            raise ValueError(f"Missing required fields: {', '.join(missing)}")

        category_id = safe_int(data.get('category_id'))
        if not category_id or db.session.get(ExpenseCategory, category_id) is None:
            raise ValueError(f"Unknown expense category {data.get('category_id')}")
        account_id = safe_int(data.get('account_id'))
        if not account_id or db.session.get(ExpenseAccount, account_id) is None:
            raise ValueError(f"Unknown expense account {data.get('account_id')}")
        vendor_id = safe_int(data.get('vendor_id'))
        if vendor_id and db.session.get(Vendor, vendor_id) is None:
            raise ValueError(f"Unknown vendor {data.get('vendor_id')}")

        amount = to_decimal(data.get('amount'))
        tax_amount = to_decimal(data.get('tax_amount'))
        if amount <= 0:
            raise ValueError('amount must be greater than zero')
        if tax_amount < 0:
            raise ValueError('tax_amount cannot be negative')

        tags = data.get('tags') or []
        if not isinstance(tags, list):
            raise ValueError('tags must be a list')

        created_by = 'system'
        if getattr(current_user, 'is_authenticated', False) and current_user.get_id():
            created_by = current_user.get_id()

        expense = Expense(
            expense_number=next_document_number('expense', 'EXP'),
            date=require_date(data, 'date'),
            category_id=category_id,
            vendor_id=vendor_id or None,
            account_id=account_id,
            amount=amount,
            tax_amount=tax_amount,
            total_amount=amount + tax_amount,
            description=_clean(data.get('description')),
            invoice_number=_clean(data.get('invoice_number')),
            payment_method=_clean(data.get('payment_method')),
            payment_status=(_clean(data.get('payment_status')) or 'PAID').upper(),
            notes=_clean(data.get('notes')),
            tags_json=json.dumps(tags) if tags else None,
            created_by=created_by,
        )
        expense.items = _build_items(data.get('items'))
        db.session.add(expense)
        db.session.commit()
        log_action(f'Recorded expense {expense.expense_number}: {expense.total_amount} ({expense.description})')
        return jsonify(expense.to_dict())
    except Exception as e:
        return api_error(e, 'create expense')


@expenses_bp.route('/expenses/<int:expense_id>', methods=['DELETE'])
@login_required
@require_database
def delete_expense(expense_id):
    try:
        expense = get_or_404(Expense, expense_id, 'Expense')
        number = expense.expense_number
        db.session.delete(expense)
        db.session.commit()
        log_action(f'Deleted expense {number}')
        return jsonify({'success': True})
    except Exception as e:
        return api_error(e, 'delete expense')


@expenses_bp.route('/expenses/summary', methods=['GET'])
@login_required
@empty_when_unconfigured(lambda: jsonable(summarize_expenses([])))
def expenses_summary():
    try:
        return jsonify(jsonable(summarize_expenses(_expenses_query().all())))
    except Exception as e:
        return api_error(e, 'summarize expenses')
