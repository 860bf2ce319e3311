from flask_sqlalchemy import SQLAlchemy
from datetime import datetime
import json
import logging
from sqlalchemy.orm import validates
from decimal import Decimal, ROUND_HALF_UP, getcontext
from sqlalchemy.types import TypeDecorator, Numeric as SA_Numeric


db = SQLAlchemy()

getcontext().prec = 28

logger = logging.getLogger(__name__)


class Money(TypeDecorator):
    """
    SQLAlchemy TypeDecorator to store Decimal values in a NUMERIC/DECIMAL column.
    - Python value: decimal.Decimal (quantized to 2 decimal places, ROUND_HALF_UP)
    - DB value: Decimal stored in NUMERIC(18,2)
    """
    impl = SA_Numeric(precision=18, scale=2)
    cache_ok = True
    places = Decimal('0.01')

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, Decimal):
            try:
                # Use str() to avoid binary-float surprises
                value = Decimal(str(value))
            except Exception:
                raise ValueError(f"Cannot convert {value!r} to Decimal")
        return value.quantize(self.places, rounding=ROUND_HALF_UP)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        try:
            if isinstance(value, Decimal):
                return value.quantize(self.places, rounding=ROUND_HALF_UP)
            # SQLite hands back floats; go through str to avoid 123.45000000001
            return Decimal(str(value)).quantize(self.places, rounding=ROUND_HALF_UP)
        except Exception:
            logger.exception("%s.process_result_value: failed to parse DB value %r (type=%s)",
                             type(self).__name__, value, type(value))
            return Decimal('0').quantize(self.places)

    @property
    def python_type(self):
        return Decimal


class Measure(Money):
    """Meters and square feet: NUMERIC(14,3), quantized to 3 places."""
    impl = SA_Numeric(precision=14, scale=3)
    cache_ok = True
    places = Decimal('0.001')


def _num(value):
    """Decimal -> float for JSON payloads (None stays None)."""
    if value is None:
        return None
    return float(value)


def _iso(value):
    return value.isoformat() if value is not None else None


class DocumentSequence(db.Model):
    """Counters for generated document numbers (GS-000001, EXP-000001, ...)."""
    __tablename__ = 'document_sequences'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)
    next_value = db.Column(db.Integer, nullable=False, default=1)


# ============================================
# CUSTOMER LEDGER
# ============================================

class Customer(db.Model):
    __tablename__ = 'customers'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    consignments = db.relationship('Consignment', back_populates='customer', lazy='dynamic')
    transactions = db.relationship('Transaction', back_populates='customer', lazy='dynamic')

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'created_at': _iso(self.created_at)}

    __table_args__ = (
        db.Index('idx_customer_name', 'name'),
    )


class BankAccount(db.Model):
    __tablename__ = 'bank_accounts'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, unique=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'created_at': _iso(self.created_at)}


class Consignment(db.Model):
    """Amounts a customer owes for one delivery, split by expected payment mode."""
    __tablename__ = 'consignments'

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('customers.id'), nullable=False)
    customer = db.relationship('Customer', back_populates='consignments')
    date = db.Column(db.Date, nullable=False)
    total = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    rtgs_expected = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    cash_expected = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    remarks = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'customer_id': self.customer_id,
            'date': _iso(self.date),
            'total': _num(self.total),
            'rtgs_expected': _num(self.rtgs_expected),
            'cash_expected': _num(self.cash_expected),
            'remarks': self.remarks,
            'created_at': _iso(self.created_at),
        }

    __table_args__ = (
        db.Index('idx_consignment_customer_date', 'customer_id', 'date'),
    )


class Transaction(db.Model):
    """A payment received from a customer."""
    __tablename__ = 'transactions'
    MODES = ('RTGS', 'CASH')

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('customers.id'), nullable=False)
    customer = db.relationship('Customer', back_populates='transactions')
    date = db.Column(db.Date, nullable=False)
    mode = db.Column(db.String(10), nullable=False)
    account_id = db.Column(db.Integer, db.ForeignKey('bank_accounts.id'), nullable=False)
    account = db.relationship('BankAccount')
    amount = db.Column(Money(), nullable=False)
    note = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    @validates('mode')
    def validate_mode(self, key, value):
        mode = (value or '').strip().upper()
        if mode not in self.MODES:
            raise ValueError(f"mode must be one of {', '.join(self.MODES)}")
        return mode

    @validates('amount')
    def validate_amount(self, key, value):
        if value is None:
            raise ValueError('amount is required')
        d = value if isinstance(value, Decimal) else Decimal(str(value))
        if d <= 0:
            raise ValueError('amount must be greater than zero')
        return d

    def to_dict(self):
        return {
            'id': self.id,
            'customer_id': self.customer_id,
            'date': _iso(self.date),
            'mode': self.mode,
            'account_id': self.account_id,
            'amount': _num(self.amount),
            'note': self.note,
            'created_at': _iso(self.created_at),
        }

    __table_args__ = (
        db.Index('idx_transaction_customer_date', 'customer_id', 'date'),
        db.Index('idx_transaction_mode', 'mode'),
    )


# ============================================
# GRANITE PRODUCTION
# ============================================

class GraniteSupplier(db.Model):
    """Quarries that send raw blocks."""
    __tablename__ = 'granite_suppliers'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    contact_person = db.Column(db.String(200))
    email = db.Column(db.String(100))
    phone = db.Column(db.String(50))
    address = db.Column(db.String(300))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    consignments = db.relationship('GraniteConsignment', back_populates='supplier', lazy='dynamic')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'contact_person': self.contact_person,
            'email': self.email,
            'phone': self.phone,
            'address': self.address,
            'created_at': _iso(self.created_at),
        }

    __table_args__ = (
        db.Index('idx_granite_supplier_name', 'name'),
    )


class GraniteConsignment(db.Model):
    """A truckload of raw blocks bought from a supplier.

    The total_* columns are derived from the consignment's blocks and parts and
    are only written by granite_utils.refresh_consignment_totals().
    """
    __tablename__ = 'granite_consignments'
    STATUSES = ('ACTIVE', 'CLOSED')

    id = db.Column(db.Integer, primary_key=True)
    consignment_number = db.Column(db.String(50), unique=True, nullable=False)
    supplier_id = db.Column(db.Integer, db.ForeignKey('granite_suppliers.id'), nullable=False)
    supplier = db.relationship('GraniteSupplier', back_populates='consignments')
    arrival_date = db.Column(db.Date, nullable=False)

    rate_per_meter = db.Column(Money(), nullable=False, default=Decimal('30000.00'))
    payment_cash_rate = db.Column(Money(), nullable=False, default=Decimal('19000.00'))
    payment_upi_rate = db.Column(Money(), nullable=False, default=Decimal('11000.00'))
    transport_cost = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    production_cost_per_sqft = db.Column(Money(), nullable=False, default=Decimal('40.00'))

    total_blocks = db.Column(db.Integer, nullable=False, default=0)
    total_net_measurement = db.Column(Measure(), nullable=False, default=Decimal('0.000'))
    total_gross_measurement = db.Column(Measure(), nullable=False, default=Decimal('0.000'))
    total_elavance = db.Column(Measure(), nullable=False, default=Decimal('0.000'))
    payment_cash = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    payment_upi = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    total_expenditure = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    total_sqft_produced = db.Column(Measure(), nullable=False, default=Decimal('0.000'))
    raw_material_cost_per_sqft = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    total_cost_per_sqft = db.Column(Money(), nullable=False, default=Decimal('0.00'))

    status = db.Column(db.String(20), nullable=False, default='ACTIVE')
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    blocks = db.relationship('GraniteBlock', back_populates='consignment',
                             cascade='all, delete-orphan', order_by='GraniteBlock.block_no')

    @validates('rate_per_meter', 'payment_cash_rate', 'payment_upi_rate', 'transport_cost', 'production_cost_per_sqft')
    def validate_rates(self, key, value):
        if value is None or (isinstance(value, str) and value.strip() == ''):
            return Decimal('0.00')
        try:
            d = value if isinstance(value, Decimal) else Decimal(str(value).strip().replace(',', ''))
        except Exception:
            raise ValueError(f'{key} must be a numeric value (got {value!r})')
        if d < 0:
            raise ValueError(f'{key} cannot be negative')
        return d.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)

    @validates('status')
    def validate_status(self, key, value):
        status = (value or 'ACTIVE').strip().upper()
        if status not in self.STATUSES:
            raise ValueError(f"status must be one of {', '.join(self.STATUSES)}")
        return status

    def to_dict(self):
        return {
            'id': self.id,
            'consignment_number': self.consignment_number,
            'supplier_id': self.supplier_id,
            'supplier_name': self.supplier.name if self.supplier else 'Unknown Supplier',
            'arrival_date': _iso(self.arrival_date),
            'rate_per_meter': _num(self.rate_per_meter),
            'payment_cash_rate': _num(self.payment_cash_rate),
            'payment_upi_rate': _num(self.payment_upi_rate),
            'transport_cost': _num(self.transport_cost),
            'production_cost_per_sqft': _num(self.production_cost_per_sqft),
            'total_blocks': self.total_blocks,
            'total_net_measurement': _num(self.total_net_measurement),
            'total_gross_measurement': _num(self.total_gross_measurement),
            'total_elavance': _num(self.total_elavance),
            'payment_cash': _num(self.payment_cash),
            'payment_upi': _num(self.payment_upi),
            'total_expenditure': _num(self.total_expenditure),
            'total_sqft_produced': _num(self.total_sqft_produced),
            'raw_material_cost_per_sqft': _num(self.raw_material_cost_per_sqft),
            'total_cost_per_sqft': _num(self.total_cost_per_sqft),
            'status': self.status,
            'notes': self.notes,
            'created_at': _iso(self.created_at),
        }

    __table_args__ = (
        db.Index('idx_granite_consignment_arrival', 'arrival_date'),
        db.Index('idx_granite_consignment_supplier', 'supplier_id'),
    )


class GraniteBlock(db.Model):
    """A raw block; elavance is the gross-to-net trimming loss in meters."""
    __tablename__ = 'granite_blocks'
    STATUSES = ('RAW', 'CUTTING', 'CUT', 'PROCESSED', 'SOLD')

    id = db.Column(db.Integer, primary_key=True)
    consignment_id = db.Column(db.Integer, db.ForeignKey('granite_consignments.id'), nullable=False)
    consignment = db.relationship('GraniteConsignment', back_populates='blocks')
    block_no = db.Column(db.String(50), nullable=False)
    grade = db.Column(db.String(50))
    gross_measurement = db.Column(Measure(), nullable=False, default=Decimal('0.000'))
    net_measurement = db.Column(Measure(), nullable=False, default=Decimal('0.000'))
    elavance = db.Column(Measure(), nullable=False, default=Decimal('0.000'))
    total_sqft = db.Column(Measure(), nullable=False, default=Decimal('0.000'))
    total_slabs = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default='RAW')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    parts = db.relationship('GraniteBlockPart', back_populates='block',
                            cascade='all, delete-orphan', order_by='GraniteBlockPart.part_name')

    @validates('gross_measurement', 'net_measurement')
    def validate_measurement(self, key, value):
        if value is None or (isinstance(value, str) and value.strip() == ''):
            return Decimal('0.000')
        try:
            d = value if isinstance(value, Decimal) else Decimal(str(value))
        except Exception:
            raise ValueError(f'{key} must be a numeric value (got {value!r})')
        if d < 0:
            raise ValueError(f'{key} cannot be negative')
        return d.quantize(Decimal('0.001'), rounding=ROUND_HALF_UP)

    def to_dict(self, with_parts=False):
        data = {
            'id': self.id,
            'consignment_id': self.consignment_id,
            'consignment_number': self.consignment.consignment_number if self.consignment else '',
            'supplier_name': (self.consignment.supplier.name
                              if self.consignment and self.consignment.supplier else ''),
            'block_no': self.block_no,
            'grade': self.grade,
            'gross_measurement': _num(self.gross_measurement),
            'net_measurement': _num(self.net_measurement),
            'elavance': _num(self.elavance),
            'total_sqft': _num(self.total_sqft),
            'total_slabs': self.total_slabs,
            'status': self.status,
            'created_at': _iso(self.created_at),
        }
        if with_parts:
            data['parts'] = [p.to_dict() for p in self.parts]
        return data

    __table_args__ = (
        db.UniqueConstraint('consignment_id', 'block_no', name='uq_block_consignment_block_no'),
        db.Index('idx_granite_block_status', 'status'),
    )


class GraniteBlockPart(db.Model):
    """A cut section (A/B/C/C+D) of a block, sold by the square foot."""
    __tablename__ = 'granite_block_parts'
    PART_NAMES = ('A', 'B', 'C', 'D', 'C+D')

    id = db.Column(db.Integer, primary_key=True)
    block_id = db.Column(db.Integer, db.ForeignKey('granite_blocks.id'), nullable=False)
    block = db.relationship('GraniteBlock', back_populates='parts')
    part_name = db.Column(db.String(10), nullable=False)
    slabs_count = db.Column(db.Integer, nullable=False, default=0)
    sqft = db.Column(Measure(), nullable=False, default=Decimal('0.000'))
    thickness = db.Column(Measure(), nullable=False, default=Decimal('20.000'))
    sold_sqft = db.Column(Measure(), nullable=False, default=Decimal('0.000'))
    remaining_sqft = db.Column(Measure(), nullable=False, default=Decimal('0.000'))
    is_available = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    @validates('part_name')
    def validate_part_name(self, key, value):
        name = (value or '').strip().upper().replace(' ', '')
        if name not in self.PART_NAMES:
            raise ValueError(f"part_name must be one of {', '.join(self.PART_NAMES)}")
        return name

    @validates('slabs_count')
    def validate_slabs_count(self, key, value):
        try:
            v = int(value or 0)
        except (TypeError, ValueError):
            raise ValueError('slabs_count must be an integer')
        if v < 0:
            raise ValueError('slabs_count cannot be negative')
        return v

    def refresh_remaining(self):
        """Recompute remaining_sqft/is_available from sqft and sold_sqft."""
        sqft = self.sqft or Decimal('0.000')
        sold = self.sold_sqft or Decimal('0.000')
        if sold > sqft:
            raise ValueError(f'Part {self.part_name}: sold sqft ({sold}) exceeds produced sqft ({sqft})')
        self.remaining_sqft = sqft - sold
        self.is_available = self.remaining_sqft > 0

    def to_dict(self):
        return {
            'id': self.id,
            'block_id': self.block_id,
            'part_name': self.part_name,
            'slabs_count': self.slabs_count,
            'sqft': _num(self.sqft),
            'thickness': _num(self.thickness),
            'sold_sqft': _num(self.sold_sqft),
            'remaining_sqft': _num(self.remaining_sqft),
            'is_available': self.is_available,
            'created_at': _iso(self.created_at),
        }

    __table_args__ = (
        db.UniqueConstraint('block_id', 'part_name', name='uq_block_part_name'),
        db.Index('idx_block_part_available', 'is_available', 'remaining_sqft'),
    )


class GraniteSale(db.Model):
    """Slab sale against a block part. Block/part labels are copied at sale time."""
    __tablename__ = 'granite_sales'
    PAYMENT_MODES = ('CASH', 'UPI', 'RTGS', 'PENDING')

    id = db.Column(db.Integer, primary_key=True)
    sale_number = db.Column(db.String(50), unique=True, nullable=False)
    block_part_id = db.Column(db.Integer, db.ForeignKey('granite_block_parts.id'), nullable=False)
    block_part = db.relationship('GraniteBlockPart')
    consignment_id = db.Column(db.Integer, db.ForeignKey('granite_consignments.id'), nullable=True)
    block_no = db.Column(db.String(50))
    part_name = db.Column(db.String(10))
    buyer_name = db.Column(db.String(200), nullable=False)
    sale_date = db.Column(db.Date, nullable=False)
    sqft_sold = db.Column(Measure(), nullable=False)
    rate_per_sqft = db.Column(Money(), nullable=False)
    cost_per_sqft = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    profit_per_sqft = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    total_selling_price = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    total_profit = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    payment_mode = db.Column(db.String(20), nullable=False, default='PENDING')
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    @validates('payment_mode')
    def validate_payment_mode(self, key, value):
        mode = (value or 'PENDING').strip().upper()
        if mode not in self.PAYMENT_MODES:
            raise ValueError(f"payment_mode must be one of {', '.join(self.PAYMENT_MODES)}")
        return mode

    def to_dict(self):
        return {
            'id': self.id,
            'sale_number': self.sale_number,
            'block_part_id': self.block_part_id,
            'consignment_id': self.consignment_id,
            'block_no': self.block_no,
            'part_name': self.part_name,
            'buyer_name': self.buyer_name,
            'sale_date': _iso(self.sale_date),
            'sqft_sold': _num(self.sqft_sold),
            'rate_per_sqft': _num(self.rate_per_sqft),
            'cost_per_sqft': _num(self.cost_per_sqft),
            'profit_per_sqft': _num(self.profit_per_sqft),
            'total_selling_price': _num(self.total_selling_price),
            'total_profit': _num(self.total_profit),
            'payment_mode': self.payment_mode,
            'notes': self.notes,
            'created_at': _iso(self.created_at),
        }

    __table_args__ = (
        db.Index('idx_granite_sale_date', 'sale_date'),
        db.Index('idx_granite_sale_buyer', 'buyer_name'),
        db.Index('idx_granite_sale_consignment', 'consignment_id'),
    )


# ============================================
# EXPENSES
# ============================================

class ExpenseCategory(db.Model):
    __tablename__ = 'expense_categories'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    description = db.Column(db.String(300))
    color = db.Column(db.String(20), nullable=False, default='#6B7280')
    budget_limit = db.Column(Money(), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'color': self.color,
            'budget_limit': _num(self.budget_limit),
            'is_active': self.is_active,
            'created_at': _iso(self.created_at),
        }


class Vendor(db.Model):
    __tablename__ = 'vendors'

    id = db.Column(db.Integer, primary_key=True)
    vendor_code = db.Column(db.String(20), unique=True, nullable=False)
    name = db.Column(db.String(200), nullable=False)
    contact_person = db.Column(db.String(200))
    phone = db.Column(db.String(50))
    email = db.Column(db.String(100))
    address = db.Column(db.String(300))
    gst_number = db.Column(db.String(20))
    payment_terms = db.Column(db.String(100))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'vendor_code': self.vendor_code,
            'name': self.name,
            'contact_person': self.contact_person,
            'phone': self.phone,
            'email': self.email,
            'address': self.address,
            'gst_number': self.gst_number,
            'payment_terms': self.payment_terms,
            'is_active': self.is_active,
            'created_at': _iso(self.created_at),
        }

    __table_args__ = (
        db.Index('idx_vendor_name', 'name'),
    )


class ExpenseAccount(db.Model):
    __tablename__ = 'expense_accounts'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    account_type = db.Column(db.String(50), nullable=False)  # e.g. BANK, CASH, CREDIT_CARD
    description = db.Column(db.String(300))
    current_balance = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'account_type': self.account_type,
            'description': self.description,
            'current_balance': _num(self.current_balance),
            'created_at': _iso(self.created_at),
        }


class Expense(db.Model):
    __tablename__ = 'expenses'

    id = db.Column(db.Integer, primary_key=True)
    expense_number = db.Column(db.String(50), unique=True, nullable=False)
    date = db.Column(db.Date, nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey('expense_categories.id'), nullable=False)
    category = db.relationship('ExpenseCategory')
    vendor_id = db.Column(db.Integer, db.ForeignKey('vendors.id'), nullable=True)
    vendor = db.relationship('Vendor')
    account_id = db.Column(db.Integer, db.ForeignKey('expense_accounts.id'), nullable=False)
    account = db.relationship('ExpenseAccount')
    amount = db.Column(Money(), nullable=False)
    tax_amount = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    total_amount = db.Column(Money(), nullable=False)
    description = db.Column(db.String(400), nullable=False)
    invoice_number = db.Column(db.String(100))
    payment_method = db.Column(db.String(50), nullable=False)
    payment_status = db.Column(db.String(20), nullable=False, default='PAID')
    notes = db.Column(db.Text)
    tags_json = db.Column(db.Text)
    created_by = db.Column(db.String(100), default='system')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    items = db.relationship('ExpenseItem', back_populates='expense', cascade='all, delete-orphan')

    def tags(self):
        try:
            if not self.tags_json:
                return []
            return json.loads(self.tags_json)
        except (json.JSONDecodeError, TypeError, ValueError):
            return []

    def to_dict(self):
        return {
            'id': self.id,
            'expense_number': self.expense_number,
            'date': _iso(self.date),
            'category_id': self.category_id,
            'vendor_id': self.vendor_id,
            'account_id': self.account_id,
            'amount': _num(self.amount),
            'tax_amount': _num(self.tax_amount),
            'total_amount': _num(self.total_amount),
            'description': self.description,
            'invoice_number': self.invoice_number,
            'payment_method': self.payment_method,
            'payment_status': self.payment_status,
            'notes': self.notes,
            'tags': self.tags() or None,
            'created_by': self.created_by,
            'created_at': _iso(self.created_at),
            'expense_categories': ({'name': self.category.name, 'color': self.category.color}
                                   if self.category else None),
            'vendors': ({'name': self.vendor.name, 'vendor_code': self.vendor.vendor_code}
                        if self.vendor else None),
            'expense_accounts': ({'name': self.account.name, 'account_type': self.account.account_type}
                                 if self.account else None),
            'expense_items': [i.to_dict() for i in self.items],
        }

    __table_args__ = (
        db.Index('idx_expense_date', 'date'),
        db.Index('idx_expense_category', 'category_id'),
        db.Index('idx_expense_status', 'payment_status'),
    )


class ExpenseItem(db.Model):
    __tablename__ = 'expense_items'

    id = db.Column(db.Integer, primary_key=True)
    expense_id = db.Column(db.Integer, db.ForeignKey('expenses.id'), nullable=False)
    expense = db.relationship('Expense', back_populates='items')
    item_name = db.Column(db.String(200), nullable=False)
    quantity = db.Column(Measure(), nullable=False, default=Decimal('1.000'))
    unit_price = db.Column(Money(), nullable=False)
    total_price = db.Column(Money(), nullable=False)
    unit = db.Column(db.String(20), default='pcs')

    def to_dict(self):
        return {
            'id': self.id,
            'expense_id': self.expense_id,
            'item_name': self.item_name,
            'quantity': _num(self.quantity),
            'unit_price': _num(self.unit_price),
            'total_price': _num(self.total_price),
            'unit': self.unit,
        }


# ============================================
# WHAT-IF CALCULATOR
# ============================================

class ConsignmentCalculation(db.Model):
    """Saved calculator inputs. Derived figures are computed on read."""
    __tablename__ = 'consignment_calculations'

    INPUT_FIELDS = (
        'total_blocks', 'net_meters_per_block', 'gross_meters_per_block', 'cost_per_meter',
        'loading_charges', 'transport_charges', 'quarry_commission',
        'polish_percentage', 'laputra_percentage', 'whiteline_percentage',
        'polish_sale_price', 'laputra_sale_price', 'whiteline_sale_price',
    )

    id = db.Column(db.Integer, primary_key=True)
    calculation_name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    total_blocks = db.Column(db.Integer, nullable=False, default=0)
    net_meters_per_block = db.Column(Measure(), nullable=False, default=Decimal('0.000'))
    gross_meters_per_block = db.Column(Measure(), nullable=False, default=Decimal('0.000'))
    cost_per_meter = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    loading_charges = db.Column(Money(), nullable=True)
    transport_charges = db.Column(Money(), nullable=True)
    quarry_commission = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    polish_percentage = db.Column(Measure(), nullable=False, default=Decimal('0.000'))
    laputra_percentage = db.Column(Measure(), nullable=False, default=Decimal('0.000'))
    whiteline_percentage = db.Column(Measure(), nullable=False, default=Decimal('0.000'))
    polish_sale_price = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    laputra_sale_price = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    whiteline_sale_price = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def inputs(self):
        return {field: getattr(self, field) for field in self.INPUT_FIELDS}

    def to_dict(self):
        data = {
            'id': self.id,
            'calculation_name': self.calculation_name,
            'description': self.description,
        }
        for field in self.INPUT_FIELDS:
            value = getattr(self, field)
            data[field] = value if field == 'total_blocks' else _num(value)
        data['created_at'] = _iso(self.created_at)
        data['updated_at'] = _iso(self.updated_at)
        return data
