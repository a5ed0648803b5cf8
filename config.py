"""Configuration settings for Clast."""

import os
import sys
from pathlib import Path
from dotenv import load_dotenv


def _env_flag(name: str, default: bool = False) -> bool:
    """Read a boolean flag from the environment ("true", "1", "yes")."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("true", "1", "yes")


def _env_float(name: str, default: float) -> float:
    """Read a float from the environment, falling back on bad values."""
    value = os.getenv(name, "")
    try:
        return float(value) if value else default
    except ValueError:
        import logging
        logging.getLogger(__name__).warning(
            f"{name}={value!r} is not a number, using {default}"
        )
        return default


def get_user_data_dir() -> Path:
    """
    Get the directory for user-writable data (timer, progress state, history).

    CLAST_DATA_DIR overrides the platform default.

    Returns:
        Path to the user data directory.
    """
    override = os.getenv("CLAST_DATA_DIR", "")
    if override:
        return Path(override).expanduser()

    if sys.platform == 'darwin':
        # macOS: ~/Library/Application Support/Clast
        return Path.home() / "Library" / "Application Support" / "Clast"
    elif sys.platform == 'win32':
        appdata = os.environ.get('APPDATA')
        if appdata:
            return Path(appdata) / "Clast"
        return Path.home() / "AppData" / "Roaming" / "Clast"
    # Linux: ~/.local/share/Clast
    return Path.home() / ".local" / "share" / "Clast"


# Explicitly load from the project root so .env is found regardless of cwd
_env_path = Path(__file__).parent / ".env"
load_dotenv(_env_path)

BASE_DIR = Path(__file__).parent

# User data directory (persisted state survives restarts)
USER_DATA_DIR = get_user_data_dir()
STATE_DIR = USER_DATA_DIR / "state"

# --- Verification service ---
# Placeholder left in fresh checkouts; treated as "not configured"
VERIFICATION_URL_PLACEHOLDER = "YOUR-CLOUD-RUN-URL"
VERIFICATION_BASE_URL = os.getenv("CLAST_API_URL", "").rstrip("/")
VERIFICATION_PATH = os.getenv("CLAST_API_PATH", "/verify-progress")
VERIFICATION_ENDPOINT = f"{VERIFICATION_BASE_URL}{VERIFICATION_PATH}" if VERIFICATION_BASE_URL else ""
VERIFICATION_TIMEOUT = _env_float("CLAST_API_TIMEOUT", 30.0)

# Options: "remote" (HTTP verification service) or "openai" (local judge)
VERIFIER_BACKEND = os.getenv("CLAST_VERIFIER", "remote")

# Options: "tiered" or "linear"
REWARD_POLICY = os.getenv("CLAST_REWARD_POLICY", "tiered")

# When True, the main countdown is frozen during evidence review and breaks
PAUSE_MAIN_TIMER_DURING_BREAK = _env_flag("CLAST_PAUSE_MAIN_TIMER_DURING_BREAK", False)

# --- OpenAI (local judge and image text recognition) ---
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_VISION_MODEL = os.getenv("OPENAI_VISION_MODEL", "gpt-4o-mini")

# --- Session text constants ---
INITIAL_STATE_SUMMARY = "Session just started. No progress has been made yet."
IMAGES_ONLY_NOTE = "(User provided images only)"
IMAGE_TEXT_SEPARATOR = "\n\n---\n\n"
EVIDENCE_JOINER = "\n\n"

# --- Persisted state keys ---
STATE_KEY_ACTIVE_TIMER = "clast_active_timer"
STATE_KEY_PROGRESS = "clast_session_progress_state"
STATE_KEY_HISTORY = "clast_sessions"
STATE_KEY_PENDING_COMPLETION = "clast_pending_completion"

# Orchestrator tick interval (seconds)
TICK_INTERVAL = 1.0

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")  # Can override in .env: DEBUG, INFO, WARNING, ERROR
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def is_verification_configured(endpoint: str = "") -> bool:
    """
    Check if the verification endpoint is usable.

    Args:
        endpoint: Endpoint to check (defaults to VERIFICATION_ENDPOINT).

    Returns:
        True if an endpoint is set and is not the placeholder.
    """
    endpoint = endpoint or VERIFICATION_ENDPOINT
    return bool(endpoint) and VERIFICATION_URL_PLACEHOLDER not in endpoint
