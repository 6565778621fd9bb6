"""Tests for the CLI module."""

from click.testing import CliRunner
from helpers import FakeRemote

import gmail_domain_cleaner.cli as cli_module
from gmail_domain_cleaner.cache import IndexCache
from gmail_domain_cleaner.cli import cli
from gmail_domain_cleaner.config import Settings


def test_cli_help():
    """CLI --help should work and show commands."""
    runner = CliRunner()
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "run" in result.output
    assert "index" in result.output
    assert "auth" in result.output
    assert "cache" in result.output


def test_cli_version():
    """CLI --version should show version."""
    runner = CliRunner()
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_mailbox_is_required(gdc_home):
    runner = CliRunner()
    result = runner.invoke(cli, ["run"])
    assert result.exit_code != 0
    assert "MAILBOX" in result.output


def test_auth_no_credentials(gdc_home):
    """Auth without the OAuth client file should show a clear error."""
    runner = CliRunner()
    result = runner.invoke(cli, ["auth", "me@gmail.com"])
    assert result.exit_code != 0
    assert "Credentials file not found" in result.output


def test_cache_info_empty(gdc_home):
    """Cache info on empty cache should not crash."""
    runner = CliRunner()
    result = runner.invoke(cli, ["cache", "info", "me@gmail.com"])
    assert result.exit_code == 0
    assert "empty" in result.output.lower()


def test_cache_info_and_clear(gdc_home, foo_bar_index):
    cache = IndexCache(Settings.load().cache_path("me@gmail.com"))
    cache.save(foo_bar_index)

    runner = CliRunner()
    result = runner.invoke(cli, ["cache", "info", "me@gmail.com"])
    assert result.exit_code == 0
    assert "Domains:" in result.output
    assert "Messages: 4" in result.output

    result = runner.invoke(cli, ["cache", "clear", "me@gmail.com"])
    assert result.exit_code == 0
    assert "cleared" in result.output.lower()
    assert cache.load() is None


def test_index_command_builds_and_saves(gdc_home, monkeypatch, foo_bar_messages):
    monkeypatch.setattr(cli_module, "connect", lambda settings, mailbox: FakeRemote(foo_bar_messages))

    runner = CliRunner()
    result = runner.invoke(cli, ["index", "me@gmail.com", "--max-messages", "3"])
    assert result.exit_code == 0, result.output
    assert "foo.com" in result.output

    loaded = IndexCache(Settings.load().cache_path("me@gmail.com")).load()
    assert loaded is not None
    assert loaded.message_count == 3


def test_index_command_reports_remote_failure(gdc_home, monkeypatch):
    from gmail_domain_cleaner.errors import RemoteCallError

    remote = FakeRemote(list_error=RemoteCallError("HTTP 500: backend error", status=500))
    monkeypatch.setattr(cli_module, "connect", lambda settings, mailbox: remote)

    runner = CliRunner()
    result = runner.invoke(cli, ["index", "me@gmail.com"])
    assert result.exit_code != 0
    assert "Indexing me@gmail.com failed" in result.output


def test_negative_max_messages_rejected(gdc_home):
    runner = CliRunner()
    result = runner.invoke(cli, ["index", "me@gmail.com", "-m", "-1"])
    assert result.exit_code != 0
