"""Static configuration for history-sanitizer.

All user-editable settings (paths, timings, logging) live in a single JSON
file for quick edits without touching Python. Rules are not configured here;
they live in the state database and are edited through the command API.
"""

import json
import os

from dotenv import load_dotenv

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

load_dotenv()

# SANITIZER_CONFIG may point at another config file (set it in .env).
CONFIG_PATH = os.getenv("SANITIZER_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json; a missing file means all defaults."""

    if not os.path.exists(CONFIG_PATH):
        return {}

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve_path(path: str) -> str:
    path = os.path.expanduser(path)
    if not os.path.isabs(path):
        path = os.path.join(PROJECT_ROOT, path)
    return path


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Where to store the rules/counters/logs key-value database.
STATE_DB_PATH = _resolve_path(_CONFIG.get("state_db", os.path.join(os.path.dirname(__file__), "sanitizer.db")))

# Chromium "History" file to sanitize. Only required by the run command.
HISTORY_DB_PATH = _resolve_path(_CONFIG["history_db"]) if _CONFIG.get("history_db") else None

# Pipeline timing:
# - COMMIT_DELAY_MS: wait before evaluating a committed navigation
# - LOG_WINDOW_DAYS: window used for the recent-deletions count
_pipeline = _CONFIG.get("pipeline", {})
COMMIT_DELAY_MS = int(_pipeline.get("commit_delay_ms", 300))
LOG_WINDOW_DAYS = int(_pipeline.get("log_window_days", 30))

# Poll intervals for the visit and rule-change watchers.
_watchers = _CONFIG.get("watchers", {})
VISIT_POLL_SECONDS = float(_watchers.get("visit_poll_seconds", 2.0))
RULES_POLL_SECONDS = float(_watchers.get("rules_poll_seconds", 1.0))

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
