"""
CLI main entry point.
"""

import argparse
import logging
import mimetypes
import sys
from pathlib import Path

from ..config import Config, create_default_config, load_config
from ..services import IngestionService, UploadRejected
from ..state_store import RecordNotFound

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_cli() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="receipt-ledger",
        description="Turn receipts and bank statements into ledger transactions",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # init-config command
    subparsers.add_parser("init-config", help="Write a default config file")

    # receipt command
    receipt_parser = subparsers.add_parser("receipt", help="Ingest a receipt image or PDF")
    receipt_parser.add_argument("file", type=Path, help="Receipt file")
    receipt_parser.add_argument("--owner", required=True, help="Owner of the receipt")
    receipt_parser.add_argument(
        "--media-type",
        type=str,
        default=None,
        help="Declared media type (default: guessed from the file name)",
    )

    # import command
    import_parser = subparsers.add_parser("import", help="Import a PDF bank statement")
    import_parser.add_argument("file", type=Path, help="Statement PDF")
    import_parser.add_argument("--owner", required=True, help="Owner of the statement")

    # status command
    status_parser = subparsers.add_parser("status", help="Show record, import or pipeline status")
    target = status_parser.add_mutually_exclusive_group()
    target.add_argument("--record", type=int, help="Ingestion record ID")
    target.add_argument("--import-job", type=int, help="Import job ID")

    # summary command
    summary_parser = subparsers.add_parser("summary", help="Show an owner's ledger summary")
    summary_parser.add_argument("--owner", required=True, help="Owner to summarize")
    summary_parser.add_argument("--from", dest="start", help="Start date (YYYY-MM-DD)")
    summary_parser.add_argument("--to", dest="end", help="End date (YYYY-MM-DD)")
    summary_parser.add_argument(
        "--limit",
        type=int,
        default=5,
        help="Number of top merchants to show (default: 5)",
    )

    # worker command
    worker_parser = subparsers.add_parser(
        "worker", help="Requeue unfinished receipts and process them"
    )
    worker_parser.add_argument(
        "--retry-errors",
        action="store_true",
        help="Also requeue receipts that ended in error",
    )
    worker_parser.add_argument(
        "--forever",
        action="store_true",
        help="Keep polling after the queue is drained (Ctrl+C to stop)",
    )

    return parser


def cmd_init_config(config_path: Path) -> int:
    """Write the default config file."""
    if config_path.exists():
        print(f"⚠️  {config_path} already exists, not overwriting")
        return 1
    create_default_config(config_path)
    print(f"✓ Wrote default config to {config_path}")
    return 0


def _print_record_status(service: IngestionService, record_id: int) -> int:
    status = service.receipt_status(record_id)
    print(f"\n🧾 Receipt {status['id']} ({status['original_name']}): {status['status']}")
    if status["confidence"] is not None:
        print(f"  Confidence: {status['confidence']:.2f}")
    for name, value in (status["parsed_fields"] or {}).items():
        print(f"  {name:<10} {value if value is not None else '-'}")
    if status["error_message"]:
        print(f"  ❌ {status['error_message']}")
    return 0 if status["status"] == "done" else 1


def _print_import_status(service: IngestionService, job_id: int) -> int:
    status = service.import_status(job_id)
    summary = status["summary"]
    print(f"\n📥 Import {status['id']} ({status['original_name']}): {status['status']}")
    print(f"  Imported:   {summary.get('imported', 0)}")
    print(f"  Failed:     {summary.get('failed', 0)}")
    print(f"  Duplicates: {summary.get('duplicates', 0)}")
    for error in summary.get("errors", []):
        print(f"   - {error}")
    if status["error_message"]:
        print(f"  ❌ {status['error_message']}")
    return 0 if status["status"] == "finished" else 1


def cmd_receipt(config: Config, file: Path, owner: str, media_type: str | None) -> int:
    """Ingest one receipt and wait for it to be processed."""
    try:
        data = file.read_bytes()
    except OSError as e:
        print(f"❌ Cannot read {file}: {e}")
        return 1

    media_type = media_type or mimetypes.guess_type(file.name)[0]
    service = IngestionService.from_config(config)
    try:
        submission = service.submit_receipt(owner, file.name, data, media_type)
    except UploadRejected as e:
        print(f"❌ Upload rejected: {e}")
        return 1

    print(f"📤 Receipt {submission.id} queued, processing...")
    service.drain()
    return _print_record_status(service, submission.id)


def cmd_import(config: Config, file: Path, owner: str) -> int:
    """Import one statement and wait for it to finish."""
    try:
        data = file.read_bytes()
    except OSError as e:
        print(f"❌ Cannot read {file}: {e}")
        return 1

    service = IngestionService.from_config(config)
    try:
        submission = service.submit_import(
            owner, file.name, data, mimetypes.guess_type(file.name)[0]
        )
    except UploadRejected as e:
        print(f"❌ Upload rejected: {e}")
        return 1

    print(f"📤 Import job {submission.id} queued, processing...")
    service.drain()
    return _print_import_status(service, submission.id)


def cmd_status(config: Config, record_id: int | None, import_job_id: int | None) -> int:
    """Show status of one record, one import job, or the whole pipeline."""
    service = IngestionService.from_config(config)

    try:
        if record_id is not None:
            return _print_record_status(service, record_id)
        if import_job_id is not None:
            return _print_import_status(service, import_job_id)
    except RecordNotFound as e:
        print(f"❌ {e}")
        return 1

    stats = service.store.get_stats()
    print("\n📊 Pipeline Status")
    print("=" * 40)
    print(f"  Records total:          {stats['records_total']}")
    print(f"  Records done:           {stats['records_done']}")
    print(f"  Records pending:        {stats['records_pending']}")
    print(f"  Records failed:         {stats['records_error']}")
    print(f"  Imports total:          {stats['imports_total']}")
    print(f"  Imports finished:       {stats['imports_finished']}")
    print(f"  Imports failed:         {stats['imports_failed']}")
    print(f"  Transactions (OCR):     {stats['transactions_ocr']}")
    print(f"  Transactions (import):  {stats['transactions_import']}")
    print()

    return 0


def cmd_summary(
    config: Config, owner: str, start: str | None, end: str | None, limit: int
) -> int:
    """Print an owner's income/expense summary."""
    service = IngestionService.from_config(config)
    aggregates = service.aggregates

    summary = aggregates.summary(owner, start, end)
    currency = config.default_currency
    period = f"{start or '…'} to {end or '…'}"

    print(f"\n💰 Summary for {owner} ({period})")
    print("=" * 40)
    income, expense = summary["income"], summary["expense"]
    print(f"  Income:   {income['total']:>12} {currency} ({income['count']})")
    print(f"  Expenses: {expense['total']:>12} {currency} ({expense['count']})")
    print(f"  Net:      {summary['net']:>12} {currency}")

    categories = aggregates.expenses_by_category(owner, start, end)
    if categories:
        print("\n  By category:")
        for row in categories:
            print(f"    {row['category']:<16} {row['total']:>12} ({row['count']})")

    merchants = aggregates.top_merchants(owner, start, end, limit)
    if merchants:
        print("\n  Top merchants:")
        for row in merchants:
            print(f"    {row['merchant']:<24} {row['total']:>12} ({row['count']})")

    print()
    return 0


def cmd_worker(config: Config, retry_errors: bool, forever: bool) -> int:
    """Requeue unfinished receipts and process the queue."""
    service = IngestionService.from_config(config)
    submissions = service.requeue_unfinished(include_errors=retry_errors)
    print(f"🔄 Requeued {len(submissions)} receipt(s)")

    if not forever:
        service.drain()
        failed = sum(1 for s in submissions if service.receipt_status(s.id)["status"] != "done")
        print(f"✓ Processed {len(submissions) - failed}, failed {failed}")
        return 0 if failed == 0 else 1

    print("⏳ Worker running (Ctrl+C to stop)")
    service.start()
    try:
        while service.scheduler.is_running():
            service.scheduler.join(timeout=1.0)
    except KeyboardInterrupt:
        print("\n⏹️  Stopping worker...")
    finally:
        service.stop()
    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_cli()
    parsed = parser.parse_args(args)

    setup_logging(parsed.verbose)

    if not parsed.command:
        parser.print_help()
        return 1

    if parsed.command == "init-config":
        return cmd_init_config(parsed.config)

    # Load config
    try:
        config = load_config(parsed.config)
    except Exception as e:
        print(f"❌ Failed to load config: {e}")
        return 1

    # Route to command
    if parsed.command == "receipt":
        return cmd_receipt(config, parsed.file, parsed.owner, parsed.media_type)
    elif parsed.command == "import":
        return cmd_import(config, parsed.file, parsed.owner)
    elif parsed.command == "status":
        return cmd_status(config, parsed.record, parsed.import_job)
    elif parsed.command == "summary":
        return cmd_summary(config, parsed.owner, parsed.start, parsed.end, parsed.limit)
    elif parsed.command == "worker":
        return cmd_worker(config, parsed.retry_errors, parsed.forever)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
