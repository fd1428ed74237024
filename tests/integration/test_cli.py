"""Integration tests for the command line interface."""

import logging
import signal
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from icyripper import __version__
from icyripper.main import cli


@pytest.fixture
def restore_logging():
    """``record`` reconfigures the root logger and SIGTERM; put the harness state back."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    sigterm = signal.getsignal(signal.SIGTERM)
    yield
    signal.signal(signal.SIGTERM, sigterm)
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.mark.integration
class TestCli:

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_tracks_lists_recordings(self, temp_data_dir):
        station_dir = Path(temp_data_dir) / "Jazz"
        station_dir.mkdir()
        (station_dir / "Blue.mp3").write_bytes(b"x" * 2048)

        result = CliRunner().invoke(cli, ["tracks", "--dir", temp_data_dir])

        assert result.exit_code == 0
        assert "Jazz" in result.output
        assert "Blue" in result.output
        assert "2.0 KiB" in result.output

    def test_tracks_prints_storage_summary(self, temp_data_dir):
        for station, title in [("Jazz", "Blue"), ("Jazz", "Green"), ("Rock", "Red")]:
            station_dir = Path(temp_data_dir) / station
            station_dir.mkdir(exist_ok=True)
            (station_dir / f"{title}.mp3").write_bytes(b"x" * 1024)
        (Path(temp_data_dir) / "Rock" / "Loud.mp3.part").write_bytes(b"x")

        result = CliRunner().invoke(cli, ["tracks", "--dir", temp_data_dir])

        assert result.exit_code == 0
        assert "3 tracks in 2 stations, 3.0 KiB, 1 unfinished" in result.output

    def test_record_requires_url(self, temp_data_dir):
        result = CliRunner().invoke(cli, ["record", "--dir", temp_data_dir])

        assert result.exit_code != 0
        assert "url" in result.output

    def test_record_missing_config(self, temp_data_dir):
        missing = str(Path(temp_data_dir) / "missing.yaml")

        result = CliRunner().invoke(cli, ["record", "--config", missing])

        assert result.exit_code != 0
        assert "not found" in result.output

    def test_record_from_config(self, icy_server, temp_data_dir, restore_logging):
        config_path = Path(temp_data_dir) / "config.yaml"
        config_path.write_text(yaml.safe_dump({
            "ripper": {"url": icy_server.url("/stream"), "dir": "recordings"},
            "logging": {"file_path": "logs/icyripper.log", "console_output": False},
        }), encoding="utf-8")

        result = CliRunner().invoke(cli, ["record", "--config", str(config_path)])

        assert result.exit_code == 0, result.output
        station_dir = Path(temp_data_dir) / "recordings" / "Test FM"
        assert (station_dir / "One.mp3").read_bytes() == icy_server.audio[:48]
        assert (station_dir / "Two.mp3").read_bytes() == icy_server.audio[48:]
        log_text = (Path(temp_data_dir) / "logs" / "icyripper.log").read_text(encoding="utf-8")
        assert "Final status" in log_text
        assert "'tracks_started': 2" in log_text

    def test_record_connection_failure(self, icy_server, temp_data_dir, restore_logging):
        config_path = Path(temp_data_dir) / "config.yaml"
        config_path.write_text(yaml.safe_dump({
            "ripper": {"url": icy_server.url("/index.html"), "dir": "recordings"},
            "logging": {"file_path": "logs/icyripper.log", "console_output": False},
        }), encoding="utf-8")

        result = CliRunner().invoke(cli, ["record", "--config", str(config_path)])

        assert result.exit_code == 1
        assert "Failed to start" in result.output
