"""Unit tests for the command-line interface."""

from pathlib import Path

from typer.testing import CliRunner

from topoprint import __version__
from topoprint.cli import app
from topoprint.processing.stl import read_binary_stl

runner = CliRunner()


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_generate_writes_stl(tmp_path: Path, tile_server, monkeypatch):
    monkeypatch.setenv("TOPOPRINT_SOURCES__REGIONAL_ENABLED", "false")
    output = tmp_path / "utah.stl"
    result = runner.invoke(
        app,
        [
            "generate",
            "--north", "40.5",
            "--south", "40.3",
            "--east", "-111.5",
            "--west", "-111.7",
            "--resolution", "low",
            "-o", str(output),
        ],
    )
    assert result.exit_code == 0, result.stdout
    assert output.exists()
    assert len(read_binary_stl(output.read_bytes())) > 0
    assert "terrarium" in result.stdout


def test_generate_rejects_inverted_bounds(tmp_path: Path):
    result = runner.invoke(
        app,
        [
            "generate",
            "--north", "1",
            "--south", "2",
            "--east", "1",
            "--west", "0",
            "-o", str(tmp_path / "x.stl"),
        ],
    )
    assert result.exit_code == 2
    assert not (tmp_path / "x.stl").exists()
