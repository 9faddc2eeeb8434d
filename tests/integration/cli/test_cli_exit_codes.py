"""Integration tests for CLI exit codes and run flags.

Tests verify that:
- Stable exit codes (0,2,3,4,6) are returned
- --local keeps results on disk without pushing
- A failed daily fetch leaves no file behind
"""

from pathlib import Path

import httpx
import pytest

import poolsnap.pipelines.rollup_pipeline as rollup_pipeline
from poolsnap.adapters.pool_api import PoolAPIClient
from poolsnap.cli.__main__ import main as cli_main
from poolsnap.cli.cli_common import ExitCode, exit_code_for
from poolsnap.config.settings import ConfigError
from poolsnap.storage.record_store import RecordStoreError


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch):
    """Run every test against an empty environment and a tmp data dir."""
    for var in ("GITHUB_TOKEN", "POOLSNAP_LOG_DIR", "POOLSNAP_TZ", "POOLSNAP_API_URL", "POOLSNAP_HTTP_TIMEOUT"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("POOLSNAP_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.chdir(tmp_path)


def serve(monkeypatch, handler) -> None:
    """Route the pool API client through an in-memory transport."""

    def client_factory(url, *, timeout=30.0):
        return PoolAPIClient(url, timeout=timeout, transport=httpx.MockTransport(handler))

    monkeypatch.setattr(rollup_pipeline, "PoolAPIClient", client_factory)


class TestExitCodes:
    """Test stable exit codes."""

    def test_success_exit_code(self, tmp_path: Path, monkeypatch, capsys):
        """A successful daily run returns 0 and writes the slot file."""
        serve(monkeypatch, lambda request: httpx.Response(200, json={"pools": [{"pool_id": "X", "tvl_usd": 5}]}))

        exit_code = cli_main(["daily", "--local"])

        assert exit_code == ExitCode.SUCCESS
        daily_files = sorted(p.name for p in (tmp_path / "data" / "daily").glob("*.csv"))
        assert len(daily_files) == 2
        assert any(name.startswith("day-") for name in daily_files)
        assert "Processed 1 pools" in capsys.readouterr().out

    def test_unknown_mode_is_usage_error(self):
        """An unknown mode returns exit code 2."""
        assert cli_main(["hourly"]) == ExitCode.USAGE_ERROR

    def test_invalid_pools_shape(self, tmp_path: Path, monkeypatch, capsys):
        """A response without a pools array fails and writes nothing."""
        serve(monkeypatch, lambda request: httpx.Response(200, json={"pools": "not-an-array"}))

        exit_code = cli_main(["daily", "--local"])

        assert exit_code == ExitCode.VALIDATION_ERROR
        assert list((tmp_path / "data" / "daily").glob("*.csv")) == []
        assert "✗ Error" in capsys.readouterr().err

    def test_unreachable_api(self, tmp_path: Path, monkeypatch):
        """An HTTP error status returns exit code 3."""
        serve(monkeypatch, lambda request: httpx.Response(502, text="bad gateway"))

        assert cli_main(["daily", "--local"]) == ExitCode.FETCH_ERROR
        assert list((tmp_path / "data" / "daily").glob("*.csv")) == []

    def test_config_error_exit_code(self, monkeypatch):
        """Invalid configuration returns exit code 6."""
        monkeypatch.setenv("POOLSNAP_TZ", "Nowhere/Special")

        assert cli_main(["weekly", "--local"]) == ExitCode.CONFIG_ERROR


class TestRunFlags:
    """Test flags that change where results go."""

    def test_weekly_local_run(self, tmp_path: Path, capsys):
        """Weekly with no daily files still writes a header-only file."""
        exit_code = cli_main(["weekly", "--local"])

        assert exit_code == ExitCode.SUCCESS
        weekly_files = list((tmp_path / "data" / "weekly").glob("*.csv"))
        assert len(weekly_files) == 1
        assert weekly_files[0].read_text(encoding="utf-8").startswith("period,pool_id")
        assert "Saved:" in capsys.readouterr().out

    def test_data_dir_option_overrides_env(self, tmp_path: Path):
        exit_code = cli_main(["monthly", "--local", "--data-dir", str(tmp_path / "elsewhere")])

        assert exit_code == ExitCode.SUCCESS
        assert len(list((tmp_path / "elsewhere" / "monthly").glob("*.csv"))) == 1

    def test_help(self, capsys):
        assert cli_main(["--help"]) == ExitCode.SUCCESS
        assert "weekly" in capsys.readouterr().out


@pytest.mark.parametrize(
    "exc,code",
    [
        (ConfigError("bad"), ExitCode.CONFIG_ERROR),
        (RecordStoreError("File not found"), ExitCode.IO_ERROR),
        (PermissionError("denied"), ExitCode.IO_ERROR),
        (RuntimeError("boom"), ExitCode.UNKNOWN_ERROR),
    ],
)
def test_exit_code_for(exc, code):
    assert exit_code_for(exc) == code
