"""Unit tests for the CLI: Typer command registration and end-to-end behavior.

Exercises every command through typer.testing.CliRunner against a local
storage network and a local ledger in a temp directory.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from provtrace.cli.app import app
from provtrace.core.hasher import compute_cid
from provtrace.service import load_deployment

runner = CliRunner()

ALICE = "0x" + "a1" * 20


@pytest.fixture
def data_dir(tmp_path: Path, monkeypatch) -> Path:
    """Point every PROVTRACE_* data path into the temp dir."""
    monkeypatch.chdir(tmp_path)
    data = tmp_path / "data"
    monkeypatch.setenv("PROVTRACE_ENVIRONMENT", "development")
    monkeypatch.setenv("PROVTRACE_DATA_DIR", str(data))
    monkeypatch.setenv("PROVTRACE_BLOB_STORE_PATH", str(data / "blobs"))
    monkeypatch.setenv("PROVTRACE_LEDGER_DB_PATH", str(data / "ledger.db"))
    monkeypatch.setenv("PROVTRACE_SESSION_PATH", str(data / "session.json"))
    monkeypatch.setenv("PROVTRACE_LEDGER_CONTRACT_ADDRESS", "")
    monkeypatch.setenv("PROVTRACE_LOG_LEVEL", "WARNING")
    monkeypatch.setenv("COLUMNS", "200")
    return data


@pytest.fixture
def ready(data_dir: Path) -> Path:
    """Deployed contract and a signed-in actor."""
    assert runner.invoke(app, ["deploy"]).exit_code == 0
    assert runner.invoke(app, ["login", ALICE]).exit_code == 0
    return data_dir


# ---------------------------------------------------------------------------
# Test: CLI help and registration
# ---------------------------------------------------------------------------


class TestCliApp:
    """The CLI must register all expected commands and show help."""

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        # Typer's no_args_is_help may exit with 0 or 2 depending on version
        assert result.exit_code in (0, 2)
        assert "Usage" in result.output or "usage" in result.output.lower()

    def test_help_lists_commands(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for name in ("status", "upload", "register", "add-event", "events", "product"):
            assert name in result.output

    @pytest.mark.parametrize(
        "command",
        [
            "status",
            "deploy",
            "upload",
            "resolve",
            "register",
            "add-event",
            "events",
            "product",
            "verify",
            "login",
            "logout",
        ],
    )
    def test_command_registered(self, command: str):
        result = runner.invoke(app, [command, "--help"])
        assert result.exit_code == 0


# ---------------------------------------------------------------------------
# Test: command behavior
# ---------------------------------------------------------------------------


class TestSessionCommands:
    def test_login_and_logout(self, data_dir: Path):
        result = runner.invoke(app, ["login", ALICE])
        assert result.exit_code == 0
        assert "Signed in" in result.output
        assert (data_dir / "session.json").exists()

        result = runner.invoke(app, ["logout"])
        assert result.exit_code == 0
        assert not (data_dir / "session.json").exists()


class TestLedgerCommands:
    def test_deploy_records_address(self, data_dir: Path):
        result = runner.invoke(app, ["deploy"])
        assert result.exit_code == 0
        assert "Tracer contract deployed" in result.output
        assert load_deployment(data_dir).startswith("0x")

    def test_register_without_login_fails(self, data_dir: Path):
        runner.invoke(app, ["deploy"])
        result = runner.invoke(app, ["register", "Coffee"])
        assert result.exit_code == 1
        assert "AuthorizationError" in result.output

    def test_register_without_deployment_fails(self, data_dir: Path):
        runner.invoke(app, ["login", ALICE])
        result = runner.invoke(app, ["register", "Coffee"])
        assert result.exit_code == 1
        assert "not_deployed" in result.output

    def test_full_product_flow(self, ready: Path, tmp_path: Path):
        photo = tmp_path / "bag.jpg"
        photo.write_bytes(b"\xff\xd8 coffee bag")

        result = runner.invoke(
            app, ["register", "Coffee", "--origin", "Huila", "--file", str(photo)]
        )
        assert result.exit_code == 0, result.output
        assert "Product registered" in result.output

        result = runner.invoke(
            app, ["add-event", "1", "harvested", "--lat", "2.53", "--lng", "-75.52"]
        )
        assert result.exit_code == 0, result.output
        assert "HARVESTED" in result.output

        result = runner.invoke(app, ["add-event", "1", "3"])
        assert result.exit_code == 0, result.output

        result = runner.invoke(app, ["events", "1"])
        assert result.exit_code == 0
        assert result.output.index("HARVESTED") < result.output.index("SHIPPED")

        result = runner.invoke(app, ["product", "1"])
        assert result.exit_code == 0
        assert "Coffee" in result.output

        result = runner.invoke(app, ["verify", "1"])
        assert result.exit_code == 0
        assert "intact" in result.output

    def test_invalid_status(self, ready: Path):
        runner.invoke(app, ["register", "Coffee"])
        result = runner.invoke(app, ["add-event", "1", "LOST"])
        assert result.exit_code == 1
        assert "invalid_input" in result.output

    def test_event_for_unknown_product(self, ready: Path):
        result = runner.invoke(app, ["add-event", "42", "SHIPPED"])
        assert result.exit_code == 1
        assert "invalid_input" in result.output

    def test_location_needs_both_coordinates(self, ready: Path):
        result = runner.invoke(app, ["add-event", "1", "SHIPPED", "--lat", "1.0"])
        assert result.exit_code == 1

    def test_events_for_unknown_product(self, ready: Path):
        result = runner.invoke(app, ["events", "9"])
        assert result.exit_code == 1
        assert "ProductNotFoundError" in result.output

    def test_events_for_product_without_events(self, ready: Path):
        runner.invoke(app, ["register", "Coffee"])
        result = runner.invoke(app, ["events", "1"])
        assert result.exit_code == 0
        assert "no trace events" in result.output


class TestStorageCommands:
    def test_upload_prints_cid(self, data_dir: Path, tmp_path: Path):
        path = tmp_path / "notes.txt"
        path.write_bytes(b"harvest notes")
        result = runner.invoke(app, ["upload", str(path)])
        assert result.exit_code == 0, result.output
        assert compute_cid(b"harvest notes") in result.output

    def test_upload_several_files_as_directory(self, data_dir: Path, tmp_path: Path):
        front = tmp_path / "front.jpg"
        back = tmp_path / "back.jpg"
        front.write_bytes(b"front")
        back.write_bytes(b"back")
        result = runner.invoke(app, ["upload", str(front), str(back)])
        assert result.exit_code == 0, result.output
        output = result.output.replace("\n", "")
        assert "/front.jpg" in output
        assert "/back.jpg" in output
        assert compute_cid(b"front") not in output

    def test_upload_empty_file_fails(self, data_dir: Path, tmp_path: Path):
        path = tmp_path / "empty.txt"
        path.write_bytes(b"")
        result = runner.invoke(app, ["upload", str(path)])
        assert result.exit_code == 1
        assert "invalid_file" in result.output

    def test_resolve_round_trip(self, ready: Path):
        runner.invoke(app, ["register", "Coffee"])
        result = runner.invoke(app, ["product", "1"])
        assert result.exit_code == 0
        assert "Storacha" in result.output

    def test_resolve_missing_cid(self, data_dir: Path):
        result = runner.invoke(app, ["resolve", "bafkreinotthere"])
        assert result.exit_code == 1
        assert "MetadataNotFoundError" in result.output


class TestStatusCommand:
    def test_status_before_deploy(self, data_dir: Path):
        result = runner.invoke(app, ["status"])
        assert result.exit_code == 0
        assert "Storage client" in result.output
        assert "Ledger" in result.output

    def test_status_with_connect(self, ready: Path):
        result = runner.invoke(app, ["status", "--connect"])
        assert result.exit_code == 0
        assert "local" in result.output
