"""CLI tests for erpcore."""

import json

import pytest
from click.testing import CliRunner

from erpcore import cli as cli_module
from erpcore.cli import cli
from erpcore.models import ErrorLogEntry, Severity

GRN_CSV = (
    "GRN Number,Item Code,Quantity Received,Unit Rate,Date\n"
    "grn 001,bop-650,10,12.5,46296\n"
    "GRN001,BOP-650,4,12.5,2026-10-02\n"
)


@pytest.fixture
def runner(tmp_path, monkeypatch):
    monkeypatch.setenv("ERPCORE_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setattr(cli_module, "_storage", None)
    return CliRunner()


def test_date_command(runner):
    """Test: Serial numbers and date strings print as YYYY-MM-DD."""
    result = runner.invoke(cli, ["date", "44197"])
    assert result.exit_code == 0
    assert result.output.strip() == "2021-01-01"

    result = runner.invoke(cli, ["date", "15/08/2023"])
    assert result.output.strip() == "2023-08-15"


def test_date_command_invalid(runner):
    """Test: Unparseable dates exit with an error."""
    result = runner.invoke(cli, ["date", "2023-13-45"])
    assert result.exit_code == 1
    assert "Invalid date" in result.output


def test_grn_date_command_warns(runner):
    """Test: Old GRN dates print with a warning."""
    result = runner.invoke(cli, ["grn-date", "01/01/1900"])
    assert result.exit_code == 0
    assert "1900-01-01" in result.output
    assert "GRN date is more than 1 year old" in result.output


def test_item_code_command(runner):
    """Test: Item code validation."""
    result = runner.invoke(cli, ["item-code", "BOP-650"])
    assert result.exit_code == 0
    assert "BOP-650" in result.output

    result = runner.invoke(cli, ["item-code", "bop_650 kg"])
    assert result.exit_code == 1
    assert "Check item code format" in result.output


def test_number_and_grn_number_commands(runner):
    """Test: Number and GRN number normalization."""
    assert runner.invoke(cli, ["number", "₹1,234.56"]).output.strip() == "1234.56"
    assert runner.invoke(cli, ["grn-number", "grn 2024 001"]).output.strip() == "GRN2024001"


def test_config_set_and_show(runner):
    """Test: Configuration values persist between commands."""
    result = runner.invoke(cli, ["config", "set", "max-retries", "5"])
    assert result.exit_code == 0

    cli_module._storage = None
    result = runner.invoke(cli, ["config", "show"])
    assert "max-retries:       5" in result.output


def test_config_set_rejects_bad_input(runner):
    """Test: Unknown keys and bad values exit with an error."""
    assert runner.invoke(cli, ["config", "set", "colour", "blue"]).exit_code == 1
    assert runner.invoke(cli, ["config", "set", "max-retries", "many"]).exit_code == 1


def test_backoff_command(runner):
    """Test: Backoff schedule follows the configured policy."""
    runner.invoke(cli, ["config", "set", "max-retries", "5"])
    result = runner.invoke(cli, ["backoff"])
    lines = [line.split() for line in result.output.splitlines() if line.strip()[:1].isdigit()]
    assert lines == [["1", "1000"], ["2", "2000"], ["3", "4000"], ["4", "8000"], ["5", "10000"]]


def test_import_check(runner, tmp_path):
    """Test: A GRN CSV is staged and scored."""
    path = tmp_path / "grn.csv"
    path.write_text(GRN_CSV, encoding="utf-8")

    result = runner.invoke(cli, ["import", "check", str(path)])

    assert result.exit_code == 0
    assert "GRN001" in result.output
    assert "duplicate" in result.output
    assert "Overall Quality" in result.output
    assert "Remove 1 duplicate records" in result.output


def test_import_check_json(runner, tmp_path):
    """Test: JSON output carries records, metrics and the file hash."""
    path = tmp_path / "grn.csv"
    path.write_text(GRN_CSV, encoding="utf-8")

    result = runner.invoke(cli, ["import", "check", str(path), "--json"])

    assert result.exit_code == 0
    data = json.loads(result.output)
    assert len(data["file_hash"]) == 64
    assert data["records"][0]["date"] == "2026-10-01"
    assert data["records"][1]["is_duplicate"] is True
    assert data["quality"]["consistency_score"] == 50


def test_import_check_bad_structure(runner, tmp_path):
    """Test: Missing required columns reject the file."""
    path = tmp_path / "grn.csv"
    path.write_text("GRN Number,Colour\nGRN1,red\n", encoding="utf-8")

    result = runner.invoke(cli, ["import", "check", str(path)])

    assert result.exit_code == 1
    assert "Missing required column: Item Code" in result.output
    assert "Unknown column: Colour" in result.output


def test_import_check_unreadable_file_is_logged(runner, tmp_path):
    """Test: A file that cannot be decoded is logged and reported."""
    path = tmp_path / "grn.csv"
    path.write_bytes(b"\xff\xfe\x00bad")

    result = runner.invoke(cli, ["import", "check", str(path)])

    assert result.exit_code == 1
    entries = cli_module.get_storage().get_errors()
    assert len(entries) == 1
    assert entries[0].error_type == "UnicodeDecodeError"
    assert entries[0].severity == Severity.MEDIUM


def test_errors_list_and_clear(runner):
    """Test: Logged errors are listed and cleared."""
    assert "No errors logged" in runner.invoke(cli, ["errors", "list"]).output

    storage = cli_module.get_storage()
    storage.add_error(ErrorLogEntry(error_type="operation_failed",
                                    error_message="stock sync failed", severity=Severity.HIGH))
    storage.add_error(ErrorLogEntry(error_type="RuntimeError", error_message="minor glitch"))

    result = runner.invoke(cli, ["errors", "list", "--severity", "high"])
    assert "stock sync failed" in result.output
    assert "minor glitch" not in result.output

    result = runner.invoke(cli, ["errors", "clear"])
    assert "Removed 2 error(s)" in result.output


def test_status_command(runner):
    """Test: Status shows error counts and configuration."""
    result = runner.invoke(cli, ["status"])
    assert result.exit_code == 0
    assert "Logged Errors:  0" in result.output
    assert "Max Retries:  3" in result.output


def test_import_check_malformed_csv_is_logged(runner, tmp_path):
    """Test: A CSV the parser rejects is logged and reported instead of crashing."""
    path = tmp_path / "grn.csv"
    path.write_text("GRN Number,Item Code,Quantity Received\n" + "A" * 200000 + ",X,1\n",
                    encoding="utf-8")

    result = runner.invoke(cli, ["import", "check", str(path)])

    assert result.exit_code == 1
    entries = cli_module.get_storage().get_errors()
    assert len(entries) == 1
    assert entries[0].error_type == "Error"
    assert entries[0].severity == Severity.MEDIUM


def test_commands_without_storage_leave_data_dir_alone(runner, tmp_path):
    """Test: Pure conversion commands do not create the data directory."""
    result = runner.invoke(cli, ["date", "44197"])

    assert result.exit_code == 0
    assert not (tmp_path / "data").exists()


def test_config_set_keeps_environment_for_other_keys(runner, tmp_path, monkeypatch):
    """Test: Setting one key does not pin the others to their current values."""
    monkeypatch.setenv("ERPCORE_MAX_RETRIES", "2")
    assert runner.invoke(cli, ["config", "set", "log-level", "INFO"]).exit_code == 0

    saved = json.loads((tmp_path / "data" / "config.json").read_text())
    assert saved == {"log_level": "INFO"}

    monkeypatch.setenv("ERPCORE_MAX_RETRIES", "6")
    cli_module._storage = None
    result = runner.invoke(cli, ["config", "show"])
    assert "max-retries:       6" in result.output
    assert "log-level:         INFO" in result.output


def test_error_handler_uses_configured_breaker(runner):
    """Test: The CLI error handler takes breaker settings from the configuration."""
    runner.invoke(cli, ["config", "set", "failure-threshold", "2"])
    runner.invoke(cli, ["config", "set", "recovery-time", "500"])

    handler = cli_module.get_error_handler()

    assert handler.failure_threshold == 2
    assert handler.recovery_time_ms == 500
    assert handler.policy.max_retries == 3
