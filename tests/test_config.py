import logging
from pathlib import Path

from propjournal.config import load_settings
from propjournal.metrics import BlownRule


SUPABASE_ENV = {"SUPABASE_URL": "https://demo.supabase.co", "SUPABASE_KEY": "anon-key"}


def test_defaults_fall_back_to_sqlite(caplog):
    with caplog.at_level(logging.WARNING):
        settings = load_settings({})
    assert settings.backend == "sqlite"
    assert settings.db_path == Path("prop_journal.db")
    assert settings.image_dir == Path("trade_images")
    assert settings.site_url == "http://localhost:8501"
    assert settings.blown_rule is BlownRule.FIXED
    assert settings.debug is False
    assert settings.log_level == "INFO"
    assert "using the local sqlite store" in caplog.text


def test_supabase_chosen_when_configured():
    settings = load_settings(SUPABASE_ENV)
    assert settings.backend == "supabase"
    assert settings.supabase_url == "https://demo.supabase.co"


def test_anon_key_alias():
    settings = load_settings({"SUPABASE_URL": "https://demo.supabase.co", "SUPABASE_ANON_KEY": "k"})
    assert settings.supabase_key == "k"
    assert settings.backend == "supabase"


def test_explicit_sqlite_wins():
    settings = load_settings({**SUPABASE_ENV, "JOURNAL_BACKEND": "sqlite", "JOURNAL_DB_PATH": "/tmp/j.db"})
    assert settings.backend == "sqlite"
    assert settings.db_path == Path("/tmp/j.db")


def test_explicit_supabase_without_credentials_logs_error(caplog):
    with caplog.at_level(logging.ERROR):
        settings = load_settings({"JOURNAL_BACKEND": "Supabase"})
    assert settings.backend == "supabase"
    assert "SUPABASE_URL" in caplog.text


def test_blown_rule_and_flags():
    settings = load_settings({"JOURNAL_BLOWN_RULE": "drawdown", "APP_DEBUG": "yes", "LOG_LEVEL": "debug"})
    assert settings.blown_rule is BlownRule.DRAWDOWN_LIMIT
    assert settings.debug is True
    assert settings.log_level == "DEBUG"


def test_unknown_blown_rule_uses_fixed(caplog):
    with caplog.at_level(logging.WARNING):
        settings = load_settings({"JOURNAL_BLOWN_RULE": "trailing"})
    assert settings.blown_rule is BlownRule.FIXED
    assert "trailing" in caplog.text
