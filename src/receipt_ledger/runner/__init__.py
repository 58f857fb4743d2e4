"""
CLI runner module.

Provides commands:
- init-config: Write a default config file
- receipt: Ingest a receipt image or PDF
- import: Import a PDF bank statement
- status: Record, import job or pipeline status
- summary: Per-owner ledger aggregates
- worker: Requeue and process unfinished receipts
"""

from .main import create_cli, main, setup_logging

__all__ = [
    "create_cli",
    "main",
    "setup_logging",
]
