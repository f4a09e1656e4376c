"""Tests for the typer CLI."""

import pytest
from typer.testing import CliRunner

import main
from conftest import image_bytes, write_cbz
from magz.config import load_config

runner = CliRunner()


@pytest.fixture
def cli_env(tmp_path, library, monkeypatch):
    """Point the CLI at a temp config and keep logging setup out of the way."""
    config_path = tmp_path / "config.ini"
    monkeypatch.setattr("magz.config.DEFAULT_CONFIG_PATH", config_path)
    monkeypatch.setattr(main, "DEFAULT_CONFIG_PATH", config_path)
    monkeypatch.setattr(main, "setup_logging", lambda *args, **kwargs: None)
    return config_path


def _init(cli_env, library, tmp_path):
    result = runner.invoke(main.app, ["init", "--library", str(library)])
    assert result.exit_code == 0
    # Keep the cache beside the test config
    text = cli_env.read_text(encoding="utf-8")
    cli_env.write_text(
        text.replace("path = magz_cache.db", f"path = {tmp_path / 'cache.db'}"),
        encoding="utf-8",
    )


def test_commands_require_config(cli_env):
    result = runner.invoke(main.app, ["scan"])
    assert result.exit_code == 1
    assert "config.ini not found" in result.output


def test_init_writes_config(cli_env, library, tmp_path):
    _init(cli_env, library, tmp_path)
    config = load_config(cli_env)
    assert config.library_paths == (library,)


def test_scan_and_stats(cli_env, library, tmp_path):
    _init(cli_env, library, tmp_path)
    write_cbz(library / "Cat" / "a.cbz", {"01.jpg": image_bytes()})

    result = runner.invoke(main.app, ["scan"])
    assert result.exit_code == 0
    assert "1 new" in result.output

    result = runner.invoke(main.app, ["stats"])
    assert result.exit_code == 0
    assert "Total items: 1" in result.output
    assert "Archives: 1" in result.output


def test_reset_requires_confirm(cli_env):
    result = runner.invoke(main.app, ["reset"])
    assert result.exit_code == 1
    assert "--confirm" in result.output
