"""Shared helpers: configuration lookup, env files and tolerant field access."""
import logging
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D+")


def read_file(path: Path) -> str:
    """Read file content as UTF-8 text."""
    return path.read_text(encoding="utf-8")


def get_config_value(key: str, default: str = "") -> str:
    """Get a configuration value from Streamlit secrets or environment variables.

    Streamlit secrets win when the console runs as a hosted app; local runs
    and the CLI fall back to the environment.
    """
    try:
        import streamlit as st
        if hasattr(st, "secrets") and key in st.secrets:
            return str(st.secrets[key])
    except (ImportError, FileNotFoundError, KeyError):
        pass

    return os.getenv(key, default)


def load_env_file(path: Path) -> None:
    """Load ``KEY=VALUE`` lines into the environment without overriding it."""
    if not path.exists():
        return

    try:
        with path.open(encoding="utf-8") as handle:
            for raw_line in handle:
                line = raw_line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                key, value = line.split("=", 1)
                key = key.strip()
                if not key or key in os.environ:
                    continue
                os.environ[key] = value.strip().strip('"').strip("'")
    except OSError as exc:
        logger.debug("Could not load env file %s: %s", path, exc)


def normalize_key(key: str) -> str:
    """Lowercase a column name and drop spaces and underscores."""
    return re.sub(r"[\s_]+", "", str(key or "")).lower()


def pick_field(row: Mapping[str, Any], candidates: Iterable[str], default: Any = "") -> Any:
    """Return the first non-empty value among ``candidates``.

    Backend tables name the same column differently ("Order ID", "order_id",
    "orderId"), so exact keys are tried first and a normalized comparison
    second.
    """
    candidates = list(candidates)
    for key in candidates:
        value = row.get(key)
        if value not in (None, ""):
            return value

    wanted = {normalize_key(key) for key in candidates}
    for key, value in row.items():
        if normalize_key(key) in wanted and value not in (None, ""):
            return value
    return default


def digits(value: Any) -> str:
    """Strip everything but digits from a phone number."""
    return _NON_DIGITS.sub("", str(value or ""))


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string with milliseconds."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
