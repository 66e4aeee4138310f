"""
Paths, logging setup, config load/save, safe_print.
"""

import os
import json
import sys
import logging
from pathlib import Path

from .constants import DEFAULT_SERVER_URL, POLL_INTERVAL_SEC


# ─── Paths ───────────────────────────────────────────────────────
# User-scoped: credentials and history belong to whoever runs the viewer.
_FOLDER_NAME = "MicroscopeViewer"

if os.environ.get("MICROSCOPE_VIEWER_HOME"):
    BASE_DIR = Path(os.environ["MICROSCOPE_VIEWER_HOME"])
elif sys.platform == "win32":
    BASE_DIR = Path(os.environ.get("APPDATA", Path.home())) / _FOLDER_NAME
else:
    BASE_DIR = Path.home() / ".microscope_viewer"

CONFIG_FILE = BASE_DIR / "config.json"
LOG_FILE = BASE_DIR / "viewer.log"
SESSION_FILE = BASE_DIR / "session.bin"
HISTORY_FILE = BASE_DIR / "history.bin"
KEY_FILE = BASE_DIR / "store.key"

DEFAULT_CONFIG = {
    "serverUrl": DEFAULT_SERVER_URL,
    "username": "",
    "pollIntervalSec": POLL_INTERVAL_SEC,
    "validateEachCycle": True,
}

_ENV_OVERRIDES = {
    "MICROSCOPE_VIEWER_SERVER": "serverUrl",
    "MICROSCOPE_VIEWER_USER": "username",
    "MICROSCOPE_VIEWER_PASSWORD": "password",
}


# ─── Safe print (no crash when --noconsole) ──────────────────────

def safe_print(*args, **kwargs):
    try:
        print(*args, **kwargs)
    except Exception:
        pass


# ─── Logging ─────────────────────────────────────────────────────

log = logging.getLogger("viewer")


def setup_logging(log_file=LOG_FILE, level=logging.INFO):
    """File log (truncated past 1 MB) plus an INFO mirror on stdout."""
    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    try:
        if log_file.exists() and log_file.stat().st_size > 1_000_000:
            log_file.write_text("")
    except OSError:
        pass

    logging.basicConfig(
        filename=str(log_file),
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        encoding="utf-8",
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    log.addHandler(console_handler)
    return log


# ─── Config Management ──────────────────────────────────────────

def load_config(path=CONFIG_FILE, environ=None):
    """Load config from disk merged over defaults, then apply env overrides."""
    config = dict(DEFAULT_CONFIG)
    path = Path(path)
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                stored = json.load(f)
            if isinstance(stored, dict):
                config.update(stored)
        except (json.JSONDecodeError, IOError) as e:
            log.warning("Ignoring unreadable config %s: %s", path, e)

    environ = os.environ if environ is None else environ
    for var, key in _ENV_OVERRIDES.items():
        if environ.get(var):
            config[key] = environ[var]

    config["serverUrl"] = str(config.get("serverUrl") or DEFAULT_SERVER_URL).rstrip("/")
    return config


def save_config(config, path=CONFIG_FILE):
    """Save config dict to disk. The password never goes to disk."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    to_store = {k: v for k, v in config.items() if k != "password"}
    with open(path, "w", encoding="utf-8") as f:
        json.dump(to_store, f, indent=2)
    log.info("Config saved to %s", path)
