"""
Tests for receivables aggregation and the ledger workbook.
"""
from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest
from openpyxl import load_workbook

from routes.ledger_utils import (
    check_consignment_split,
    receivables_summary,
    receivables_by_customer,
    ledger_filename,
    build_ledger_workbook,
)


def consignment(total, rtgs, cash, customer_id=1):
    return SimpleNamespace(customer_id=customer_id, date=date(2024, 3, 1), total=Decimal(total),
                           rtgs_expected=Decimal(rtgs), cash_expected=Decimal(cash), remarks='')


def txn(mode, amount, customer_id=1):
    return SimpleNamespace(customer_id=customer_id, date=date(2024, 3, 5), mode=mode,
                           amount=Decimal(amount), account_id=None, note='')


class TestConsignmentSplit:
    def test_missing_total_is_derived(self):
        total, rtgs, cash = check_consignment_split(None, '600', '400')
        assert total == Decimal('1000')
        assert (rtgs, cash) == (Decimal('600'), Decimal('400'))

    def test_matching_total_is_accepted(self):
        assert check_consignment_split('1000', '600', '400')[0] == Decimal('1000')

    def test_mismatching_total_is_rejected(self):
        with pytest.raises(ValueError, match="must equal"):
            check_consignment_split('1200', '600', '400')

    def test_negative_split_is_rejected(self):
        with pytest.raises(ValueError, match="negative"):
            check_consignment_split(None, '-1', '400')


class TestReceivablesSummary:
    def test_empty_inputs_are_all_zero(self):
        summary = receivables_summary([], [])
        assert summary['expected_total'] == 0
        assert summary['receivable_total'] == 0
        assert summary['overpaid'] is False

    def test_pending_split_by_mode(self):
        cons = [consignment('1000', '600', '400'), consignment('500', '500', '0')]
        txns = [txn('RTGS', '300'), txn('CASH', '100'), txn('cash', '50')]

        summary = receivables_summary(cons, txns)

        assert summary['expected_total'] == Decimal('1500')
        assert summary['expected_rtgs'] == Decimal('1100')
        assert summary['expected_cash'] == Decimal('400')
        assert summary['received_rtgs'] == Decimal('300')
        assert summary['received_cash'] == Decimal('150')
        assert summary['received_total'] == Decimal('450')
        assert summary['receivable_rtgs'] == Decimal('800')
        assert summary['receivable_cash'] == Decimal('250')
        assert summary['receivable_total'] == Decimal('1050')
        assert summary['overpaid'] is False

    def test_overpayment_stays_negative(self):
        summary = receivables_summary([consignment('100', '100', '0')], [txn('RTGS', '150')])
        assert summary['receivable_rtgs'] == Decimal('-50')
        assert summary['receivable_total'] == Decimal('-50')
        assert summary['overpaid'] is True

    def test_cash_overpaid_while_rtgs_pending(self):
        summary = receivables_summary([consignment('1000', '600', '400')], [txn('CASH', '500')])
        assert summary['receivable_cash'] == Decimal('-100')
        assert summary['receivable_rtgs'] == Decimal('600')
        assert summary['overpaid'] is True

    def test_unknown_mode_counts_towards_neither_split(self):
        summary = receivables_summary([consignment('100', '50', '50')], [txn('CHEQUE', '40')])
        assert summary['received_total'] == 0
        assert summary['receivable_total'] == Decimal('100')

    def test_by_customer_keeps_customer_order(self):
        customers = [SimpleNamespace(id=2, name='Zeta'), SimpleNamespace(id=1, name='Alpha')]
        cons = [consignment('100', '100', '0', customer_id=1), consignment('70', '0', '70', customer_id=2)]
        txns = [txn('CASH', '20', customer_id=2)]

        rows = receivables_by_customer(customers, cons, txns)

        assert [r['customer_name'] for r in rows] == ['Zeta', 'Alpha']
        assert rows[0]['receivable_cash'] == Decimal('50')
        assert rows[1]['receivable_rtgs'] == Decimal('100')


class TestLedgerWorkbook:
    def test_filename_defaults_to_all_customers(self):
        name = ledger_filename(now=datetime(2024, 5, 6, 7, 8, 9))
        assert name == 'granite-ledger-all-customers-20240506-070809.xlsx'

    def test_filename_is_sanitised(self):
        name = ledger_filename('Sri Balaji / Granites', now=datetime(2024, 5, 6, 7, 8, 9))
        assert name == 'granite-ledger-sri-balaji-granites-20240506-070809.xlsx'

    def test_workbook_sheets_and_rows(self):
        cons = [consignment('1000', '600', '400')]
        txns = [txn('RTGS', '250')]
        txns[0].account_id = 3
        summary = receivables_summary(cons, txns)

        output = build_ledger_workbook(summary, cons, txns, customer_name='Acme',
                                       account_names={3: 'HDFC Current'})
        wb = load_workbook(output)

        assert wb.sheetnames == ['Summary', 'Consignments', 'Transactions']
        summary_rows = {row[0]: row[1] for row in wb['Summary'].iter_rows(min_row=4, values_only=True)}
        assert summary_rows['Pending RTGS'] == 350
        assert summary_rows['Pending Total'] == 750
        txn_row = list(wb['Transactions'].iter_rows(min_row=2, values_only=True))[0]
        assert txn_row[1:4] == ('RTGS', 'HDFC Current', 250)
