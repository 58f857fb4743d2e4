"""
Receipts & statements → Text extraction → Heuristic parsing → Ledger

A background ingestion pipeline that turns photographed receipts and PDF
bank-statement exports into ledger transactions, with retrying jobs,
per-owner cache invalidation and persisted status records.
"""

__version__ = "0.1.0"
