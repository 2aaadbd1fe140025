"""
Tests for the command-line interface.
"""

from typer.testing import CliRunner

from taskboard import __version__
from taskboard.cli import app
from taskboard.shared.config.settings import get_settings

runner = CliRunner()


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_config_hides_database_password(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg://board:s3cret@db:5432/taskboard")
    get_settings.cache_clear()
    try:
        result = runner.invoke(app, ["config"])
    finally:
        get_settings.cache_clear()

    assert "s3cret" not in result.output
    assert "database_url" in result.output


def test_config_fails_on_production_errors(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("DEBUG", "true")
    get_settings.cache_clear()
    try:
        result = runner.invoke(app, ["config"])
    finally:
        get_settings.cache_clear()

    assert result.exit_code == 1
    assert "DEBUG must be False in production" in result.output
