"""Tests for the command line interface."""

from unittest.mock import patch

import pytest

from receipt_ledger.extractors import ExtractedText, MediaKind
from receipt_ledger.runner import create_cli, main


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        f"state_db_path: {tmp_path / 'state.db'}\n"
        f"uploads:\n"
        f"  storage_dir: {tmp_path / 'uploads'}\n"
    )
    return path


class TestCreateCli:
    def test_commands_registered(self):
        parser = create_cli()

        args = parser.parse_args(["receipt", "lunch.png", "--owner", "alice"])
        assert args.command == "receipt"
        assert args.owner == "alice"
        assert args.media_type is None

        args = parser.parse_args(["summary", "--owner", "alice", "--from", "2024-01-01"])
        assert args.start == "2024-01-01"
        assert args.limit == 5

        args = parser.parse_args(["worker", "--retry-errors"])
        assert args.retry_errors is True
        assert args.forever is False

    def test_status_targets_are_exclusive(self):
        with pytest.raises(SystemExit):
            create_cli().parse_args(["status", "--record", "1", "--import-job", "2"])


class TestMain:
    """Tests for command routing."""

    def test_no_command(self):
        assert main([]) == 1

    def test_init_config(self, tmp_path, capsys):
        path = tmp_path / "config.yaml"

        assert main(["-c", str(path), "init-config"]) == 0
        assert path.exists()
        assert main(["-c", str(path), "init-config"]) == 1
        assert "already exists" in capsys.readouterr().out

    def test_status_overview(self, config_file, capsys):
        assert main(["-c", str(config_file), "status"]) == 0
        assert "Pipeline Status" in capsys.readouterr().out

    def test_status_unknown_record(self, config_file, capsys):
        assert main(["-c", str(config_file), "status", "--record", "42"]) == 1
        assert "42" in capsys.readouterr().out

    def test_receipt_missing_file(self, config_file, tmp_path):
        missing = tmp_path / "nope.png"
        assert main(["-c", str(config_file), "receipt", str(missing), "--owner", "alice"]) == 1

    def test_import_rejects_image(self, config_file, tmp_path, png_bytes, capsys):
        image = tmp_path / "statement.png"
        image.write_bytes(png_bytes)

        assert main(["-c", str(config_file), "import", str(image), "--owner", "alice"]) == 1
        assert "rejected" in capsys.readouterr().out

    def test_receipt_then_summary(
        self, config_file, tmp_path, png_bytes, sample_receipt_text, capsys
    ):
        image = tmp_path / "lunch.png"
        image.write_bytes(png_bytes)
        extracted = ExtractedText(sample_receipt_text, 0.9, MediaKind.IMAGE)

        with patch(
            "receipt_ledger.extractors.router.TextExtractor.extract", return_value=extracted
        ):
            code = main(["-c", str(config_file), "receipt", str(image), "--owner", "alice"])

        out = capsys.readouterr().out
        assert code == 0
        assert "done" in out
        assert "11.59" in out

        assert main(["-c", str(config_file), "summary", "--owner", "alice"]) == 0
        out = capsys.readouterr().out
        assert "11.59" in out
        assert "groceries" in out
