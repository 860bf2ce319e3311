"""
Customer receivables: expected vs received amounts split by payment mode.
"""
from collections import defaultdict
from datetime import datetime
from decimal import Decimal, getcontext
from io import BytesIO
import re

from openpyxl import Workbook
from openpyxl.styles import Font

getcontext().prec = 28

ZERO = Decimal('0.00')


def _amount(value):
    if value is None:
        return ZERO
    return value if isinstance(value, Decimal) else Decimal(str(value))


def check_consignment_split(total, rtgs_expected, cash_expected):
    """
    Return (total, rtgs, cash) with total == rtgs + cash.
    A missing total is derived; a mismatching one raises ValueError.
    """
    rtgs = _amount(rtgs_expected)
    cash = _amount(cash_expected)
    if rtgs < 0 or cash < 0:
        raise ValueError('Expected amounts cannot be negative')
    if total is None:
        return rtgs + cash, rtgs, cash
    total = _amount(total)
    if total != rtgs + cash:
        raise ValueError(f'total ({total}) must equal rtgs_expected + cash_expected ({rtgs + cash})')
    return total, rtgs, cash


def receivables_summary(consignments, transactions):
    """
    Roll consignments (expected) and transactions (received) into one summary.

    Receivables are signed: a negative figure means the customer paid more
    than expected for that mode, and `overpaid` is set when any figure is
    below zero. Transactions in an unknown mode count towards neither split.
    """
    expected_total = ZERO
    expected_rtgs = ZERO
    expected_cash = ZERO
    for c in consignments:
        expected_total += _amount(c.total)
        expected_rtgs += _amount(c.rtgs_expected)
        expected_cash += _amount(c.cash_expected)

    received_rtgs = ZERO
    received_cash = ZERO
    for t in transactions:
        mode = (t.mode or '').upper()
        if mode == 'RTGS':
            received_rtgs += _amount(t.amount)
        elif mode == 'CASH':
            received_cash += _amount(t.amount)

    received_total = received_rtgs + received_cash
    receivable_rtgs = expected_rtgs - received_rtgs
    receivable_cash = expected_cash - received_cash
    receivable_total = expected_total - received_total

    return {
        'expected_total': expected_total,
        'expected_rtgs': expected_rtgs,
        'expected_cash': expected_cash,
        'received_rtgs': received_rtgs,
        'received_cash': received_cash,
        'received_total': received_total,
        'receivable_rtgs': receivable_rtgs,
        'receivable_cash': receivable_cash,
        'receivable_total': receivable_total,
        'overpaid': min(receivable_rtgs, receivable_cash, receivable_total) < 0,
    }


def receivables_by_customer(customers, consignments, transactions):
    """Per-customer summaries, in the order `customers` is given."""
    cons_by_customer = defaultdict(list)
    for c in consignments:
        cons_by_customer[c.customer_id].append(c)
    txns_by_customer = defaultdict(list)
    for t in transactions:
        txns_by_customer[t.customer_id].append(t)

    rows = []
    for customer in customers:
        summary = receivables_summary(cons_by_customer[customer.id], txns_by_customer[customer.id])
        summary['customer_id'] = customer.id
        summary['customer_name'] = customer.name
        rows.append(summary)
    return rows


def safe_filename(name):
    cleaned = re.sub(r'[^A-Za-z0-9_-]+', '-', (name or '').strip()).strip('-').lower()
    return cleaned or 'all-customers'


def ledger_filename(customer_name=None, now=None):
    stamp = (now or datetime.utcnow()).strftime('%Y%m%d-%H%M%S')
    return f"granite-ledger-{safe_filename(customer_name)}-{stamp}.xlsx"


def build_ledger_workbook(summary, consignments, transactions, customer_name=None, account_names=None):
    """
    Workbook with Summary, Consignments and Transactions sheets.
    Returns a BytesIO positioned at 0, ready for send_file().
    """
    account_names = account_names or {}
    bold = Font(bold=True)
    wb = Workbook()

    ws = wb.active
    ws.title = 'Summary'
    ws.append(['Customer', customer_name or 'All customers'])
    ws.append([])
    ws.append(['Metric', 'Amount'])
    for cell in ws[3]:
        cell.font = bold
    for label, key in (
        ('Expected Total', 'expected_total'),
        ('Expected RTGS', 'expected_rtgs'),
        ('Expected Cash', 'expected_cash'),
        ('Received RTGS', 'received_rtgs'),
        ('Received Cash', 'received_cash'),
        ('Pending RTGS', 'receivable_rtgs'),
        ('Pending Cash', 'receivable_cash'),
        ('Pending Total', 'receivable_total'),
    ):
        ws.append([label, float(summary[key])])
    ws.column_dimensions['A'].width = 20
    ws.column_dimensions['B'].width = 18

    ws = wb.create_sheet('Consignments')
    ws.append(['Date', 'Total', 'RTGS Expected', 'Cash Expected', 'Remarks'])
    for cell in ws[1]:
        cell.font = bold
    for c in consignments:
        ws.append([
            c.date.isoformat() if c.date else '',
            float(_amount(c.total)),
            float(_amount(c.rtgs_expected)),
            float(_amount(c.cash_expected)),
            c.remarks or '',
        ])

    ws = wb.create_sheet('Transactions')
    ws.append(['Date', 'Mode', 'Account', 'Amount', 'Note'])
    for cell in ws[1]:
        cell.font = bold
    for t in transactions:
        ws.append([
            t.date.isoformat() if t.date else '',
            t.mode,
            account_names.get(t.account_id, ''),
            float(_amount(t.amount)),
            t.note or '',
        ])

    output = BytesIO()
    wb.save(output)
    output.seek(0)
    return output
