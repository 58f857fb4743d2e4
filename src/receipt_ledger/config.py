"""
Configuration management (SSOT).

This module defines ALL configuration for the receipt-ledger pipeline.
All config keys are defined here; no other module should invent config keys.

Key invariants:
- Defaults mirror the documented pipeline contract (3 attempts, 2000 ms backoff base,
  1 s poll interval, 10 MiB receipt cap, 50 MiB import cap)
- Environment variables override the YAML file, never the other way round
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

MIB = 1024 * 1024


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


@dataclass
class SchedulerConfig:
    """Background job scheduler settings."""

    # Sleep between scans when no job is runnable
    poll_interval_seconds: float = 1.0
    # Attempts per job before on_exhausted fires
    max_attempts: int = 3
    # First retry delay; doubles on every further failure
    backoff_base_ms: int = 2000


@dataclass
class OCRConfig:
    """Text extraction settings.

    SSOT for confidence defaults:
    - default_confidence: used when the OCR engine reports no word confidence
    - pdf_confidence: fixed score for PDF text-layer extraction
    """

    tesseract_cmd: str | None = None
    language: str = "eng"
    default_confidence: float = 0.85
    pdf_confidence: float = 0.75
    # Read at most this many PDF pages; None reads them all
    pdf_max_pages: int | None = None


@dataclass
class UploadConfig:
    """Upload boundary settings."""

    storage_dir: Path = field(default_factory=lambda: Path("data/uploads"))
    receipt_max_bytes: int = 10 * MIB
    import_max_bytes: int = 50 * MIB


@dataclass
class CacheConfig:
    """Aggregate result cache settings."""

    ttl_seconds: int = 300


@dataclass
class Config:
    """Application configuration (SSOT).

    All configuration is centralized here. No other module should define
    configuration keys or defaults.
    """

    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    ocr: OCRConfig = field(default_factory=OCRConfig)
    uploads: UploadConfig = field(default_factory=UploadConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    state_db_path: Path = field(default_factory=lambda: Path("data/state.db"))
    default_currency: str = "INR"

    def validate(self) -> list[str]:
        """Validate configuration completeness and consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        if self.scheduler.poll_interval_seconds <= 0:
            errors.append("scheduler.poll_interval_seconds must be > 0")
        if self.scheduler.max_attempts < 1:
            errors.append("scheduler.max_attempts must be >= 1")
        if self.scheduler.backoff_base_ms < 0:
            errors.append("scheduler.backoff_base_ms must be >= 0")

        for name in ("default_confidence", "pdf_confidence"):
            value = getattr(self.ocr, name)
            if not 0.0 <= value <= 1.0:
                errors.append(f"ocr.{name} must be between 0 and 1")

        if self.ocr.pdf_max_pages is not None and self.ocr.pdf_max_pages < 1:
            errors.append("ocr.pdf_max_pages must be >= 1")

        if self.uploads.receipt_max_bytes <= 0 or self.uploads.import_max_bytes <= 0:
            errors.append("uploads size caps must be > 0")

        if not self.default_currency:
            errors.append("default_currency is required")

        return errors


def load_config(config_path: Path) -> Config:
    """
    Load configuration from YAML file.

    Environment variables can override config values:
    - RECEIPT_LEDGER_DB (state database path)
    - RECEIPT_LEDGER_UPLOAD_DIR (upload storage directory)
    - RECEIPT_LEDGER_POLL_INTERVAL (seconds)
    - RECEIPT_LEDGER_MAX_ATTEMPTS
    - TESSERACT_CMD (path to the tesseract binary)

    Raises:
        ConfigValidationError: If the resulting configuration is invalid
    """
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}

    # Scheduler config
    scheduler_data = data.get("scheduler", {})
    scheduler = SchedulerConfig(
        poll_interval_seconds=float(
            os.environ.get(
                "RECEIPT_LEDGER_POLL_INTERVAL",
                scheduler_data.get("poll_interval_seconds", 1.0),
            )
        ),
        max_attempts=int(
            os.environ.get("RECEIPT_LEDGER_MAX_ATTEMPTS", scheduler_data.get("max_attempts", 3))
        ),
        backoff_base_ms=int(scheduler_data.get("backoff_base_ms", 2000)),
    )

    # OCR config
    ocr_data = data.get("ocr", {})
    ocr = OCRConfig(
        tesseract_cmd=os.environ.get("TESSERACT_CMD", ocr_data.get("tesseract_cmd")),
        language=ocr_data.get("language", "eng"),
        default_confidence=float(ocr_data.get("default_confidence", 0.85)),
        pdf_confidence=float(ocr_data.get("pdf_confidence", 0.75)),
        pdf_max_pages=ocr_data.get("pdf_max_pages"),
    )

    # Upload config
    upload_data = data.get("uploads", {})
    uploads = UploadConfig(
        storage_dir=Path(
            os.environ.get(
                "RECEIPT_LEDGER_UPLOAD_DIR", upload_data.get("storage_dir", "data/uploads")
            )
        ),
        receipt_max_bytes=int(upload_data.get("receipt_max_bytes", 10 * MIB)),
        import_max_bytes=int(upload_data.get("import_max_bytes", 50 * MIB)),
    )

    cache_data = data.get("cache", {})
    cache = CacheConfig(ttl_seconds=int(cache_data.get("ttl_seconds", 300)))

    state_db = os.environ.get("RECEIPT_LEDGER_DB", data.get("state_db_path", "data/state.db"))

    config = Config(
        scheduler=scheduler,
        ocr=ocr,
        uploads=uploads,
        cache=cache,
        state_db_path=Path(state_db),
        default_currency=data.get("default_currency", "INR"),
    )

    errors = config.validate()
    if errors:
        raise ConfigValidationError("; ".join(errors))

    return config


def create_default_config(config_path: Path) -> None:
    """Create a default configuration file."""
    default_config = """# receipt-ledger pipeline configuration

# Background job scheduler
scheduler:
  poll_interval_seconds: 1.0     # Wait between scans when nothing is runnable
  max_attempts: 3                # Attempts per job before it is marked failed
  backoff_base_ms: 2000          # Retry delay = base * 2^(attempt-1)

# Text extraction
ocr:
  tesseract_cmd: null            # Path to tesseract binary (null = use PATH)
  language: "eng"
  default_confidence: 0.85       # Used when OCR reports no confidence
  pdf_confidence: 0.75           # Fixed score for PDF text layers
  pdf_max_pages: null            # Page limit for PDFs (null = all pages)

# Upload boundary
uploads:
  storage_dir: "data/uploads"
  receipt_max_bytes: 10485760    # 10 MiB, images or PDF
  import_max_bytes: 52428800     # 50 MiB, PDF statements only

# Aggregate result cache
cache:
  ttl_seconds: 300

# State database path
state_db_path: "data/state.db"

# Currency stamped on materialized transactions
default_currency: "INR"
"""

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        f.write(default_config)
