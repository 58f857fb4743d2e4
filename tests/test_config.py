"""Tests for configuration loading."""

from pathlib import Path

import pytest

from receipt_ledger.config import (
    Config,
    ConfigValidationError,
    create_default_config,
    load_config,
)

ENV_VARS = (
    "RECEIPT_LEDGER_DB",
    "RECEIPT_LEDGER_UPLOAD_DIR",
    "RECEIPT_LEDGER_POLL_INTERVAL",
    "RECEIPT_LEDGER_MAX_ATTEMPTS",
    "TESSERACT_CMD",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "missing.yaml")

        assert config.scheduler.max_attempts == 3
        assert config.scheduler.backoff_base_ms == 2000
        assert config.scheduler.poll_interval_seconds == 1.0
        assert config.uploads.receipt_max_bytes == 10 * 1024 * 1024
        assert config.uploads.import_max_bytes == 50 * 1024 * 1024
        assert config.state_db_path == Path("data/state.db")
        assert config.default_currency == "INR"

    def test_default_config_is_valid(self):
        assert Config().validate() == []


class TestLoadConfig:
    """Tests for YAML loading and overrides."""

    def test_yaml_values(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "scheduler:\n"
            "  max_attempts: 5\n"
            "  backoff_base_ms: 500\n"
            "uploads:\n"
            "  storage_dir: /srv/uploads\n"
            "cache:\n"
            "  ttl_seconds: 30\n"
            "default_currency: EUR\n"
        )

        config = load_config(path)

        assert config.scheduler.max_attempts == 5
        assert config.scheduler.backoff_base_ms == 500
        assert config.uploads.storage_dir == Path("/srv/uploads")
        assert config.cache.ttl_seconds == 30
        assert config.default_currency == "EUR"

    def test_pdf_page_limit(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("ocr:\n  pdf_max_pages: 5\n")

        assert load_config(path).ocr.pdf_max_pages == 5

    def test_environment_overrides_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("state_db_path: from-yaml.db\nscheduler:\n  max_attempts: 5\n")
        monkeypatch.setenv("RECEIPT_LEDGER_DB", str(tmp_path / "from-env.db"))
        monkeypatch.setenv("RECEIPT_LEDGER_MAX_ATTEMPTS", "7")
        monkeypatch.setenv("TESSERACT_CMD", "/opt/tesseract")

        config = load_config(path)

        assert config.state_db_path == tmp_path / "from-env.db"
        assert config.scheduler.max_attempts == 7
        assert config.ocr.tesseract_cmd == "/opt/tesseract"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")

        assert load_config(path).cache.ttl_seconds == 300

    def test_invalid_values_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "scheduler:\n  max_attempts: 0\nocr:\n  pdf_confidence: 1.5\n  pdf_max_pages: 0\n"
        )

        with pytest.raises(ConfigValidationError) as exc_info:
            load_config(path)

        assert "max_attempts" in str(exc_info.value)
        assert "pdf_confidence" in str(exc_info.value)
        assert "pdf_max_pages" in str(exc_info.value)


class TestCreateDefaultConfig:
    def test_written_file_loads(self, tmp_path):
        path = tmp_path / "nested" / "config.yaml"

        create_default_config(path)
        config = load_config(path)

        assert path.exists()
        assert config.scheduler.max_attempts == 3
        assert config.ocr.tesseract_cmd is None
        assert config.ocr.language == "eng"
        assert config.ocr.pdf_max_pages is None
