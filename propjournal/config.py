import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from propjournal.metrics import BlownRule


logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
BACKENDS = ("supabase", "sqlite")


@dataclass(frozen=True)
class Settings:
    backend: str
    supabase_url: str
    supabase_key: str
    db_path: Path
    image_dir: Path
    site_url: str
    blown_rule: BlownRule
    debug: bool
    log_level: str


def _first(env: Mapping[str, str], *names: str) -> str:
    for name in names:
        value = str(env.get(name) or "").strip()
        if value:
            return value
    return ""


def _truthy(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "y", "on")


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    if env is None:
        load_dotenv()
        env = os.environ

    supabase_url = _first(env, "SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL")
    supabase_key = _first(env, "SUPABASE_KEY", "SUPABASE_ANON_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY")
    requested = _first(env, "JOURNAL_BACKEND").lower()
    missing = [
        name
        for name, value in (("SUPABASE_URL", supabase_url), ("SUPABASE_KEY", supabase_key))
        if not value
    ]

    if requested == "supabase":
        backend = "supabase"
        if missing:
            logger.error("JOURNAL_BACKEND=supabase but %s not set; requests will fail", ", ".join(missing))
    elif requested == "sqlite":
        backend = "sqlite"
    else:
        if requested:
            logger.warning("Unknown JOURNAL_BACKEND %r, choosing automatically", requested)
        backend = "sqlite" if missing else "supabase"
        if missing:
            logger.warning("%s not set; using the local sqlite store", ", ".join(missing))

    blown_value = _first(env, "JOURNAL_BLOWN_RULE").lower() or BlownRule.FIXED.value
    try:
        blown_rule = BlownRule(blown_value)
    except ValueError:
        logger.warning("Unknown JOURNAL_BLOWN_RULE %r, using %s", blown_value, BlownRule.FIXED.value)
        blown_rule = BlownRule.FIXED

    return Settings(
        backend=backend,
        supabase_url=supabase_url,
        supabase_key=supabase_key,
        db_path=Path(_first(env, "JOURNAL_DB_PATH") or "prop_journal.db"),
        image_dir=Path(_first(env, "JOURNAL_IMAGE_DIR") or "trade_images"),
        site_url=_first(env, "JOURNAL_SITE_URL") or "http://localhost:8501",
        blown_rule=blown_rule,
        debug=_truthy(_first(env, "APP_DEBUG") or "0"),
        log_level=(_first(env, "LOG_LEVEL") or "INFO").upper(),
    )


def configure_logging(level: str = "INFO") -> None:
    numeric = getattr(logging, level, logging.INFO)
    logging.basicConfig(level=numeric, format=LOG_FORMAT)
    logging.getLogger().setLevel(numeric)
