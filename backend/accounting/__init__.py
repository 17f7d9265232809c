# accounting/__init__.py
"""
Accounting app - multi-currency ledger documents.

This app provides:
- Transaction: typed ledger document (sale, purchase, payments, transfers,
  cash in/out, dividend and salary accrual/payment)
- StockItem, CashEntry, DividendEntry, SalaryEntry, ServiceEntry: line groups
- Validator (validators.py) and posting engine (posting.py)

Commands handle all mutations to ensure events are emitted and balances move.
"""
