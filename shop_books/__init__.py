"""
Shop Books

Bookkeeping for a single-operator retail shop: FIFO purchase batches,
sales, the customer credit (Udhaar) ledger and cash accounts, with
Decimal money throughout and ledgers kept consistent under edits.
"""

__version__ = "1.0.0"
