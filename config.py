"""
================================================================
 THREADPULSE CONFIGURATION MODULE
================================================================
 Loads all environment variables, paths, and settings used by the
 bot. This is the *single* source of truth for tokens, channel
 names, and storage locations.
================================================================
"""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

import logging
log = logging.getLogger(__name__)

# ================================================================
# HELPERS
# ================================================================

def _int(env_value: str | None, default: int = 0) -> int:
    """Safely convert an environment variable to int."""
    try:
        return int(env_value) if env_value else default
    except ValueError:
        return default


def _path(env_value: str | None, default: Path | None = None) -> Path | None:
    """Optional path from the environment, relative to the project root."""
    if not env_value:
        return default
    path = Path(env_value)
    return path if path.is_absolute() else BASE_DIR / path


# ================================================================
# PATHS
# ================================================================

BASE_DIR = Path(__file__).resolve().parent

DATA_ROOT = _path(os.getenv("THREADPULSE_DATA_ROOT"), BASE_DIR / "data")

# Streaks and per-day clue lists
THREADPULSE_DATA_FILE = _path(
    os.getenv("THREADPULSE_DATA_FILE"),
    DATA_ROOT / "threadpulse" / "state.json",
)

# None means the bank that ships with the package
THREADPULSE_BANK_FILE = _path(os.getenv("THREADPULSE_BANK_FILE"))

# ================================================================
# DISCORD
# ================================================================

TOKEN: str | None = os.getenv("DISCORD_TOKEN")

if not TOKEN:
    log.warning("DISCORD_TOKEN is not set; the bot will not be able to log in.")

THREADPULSE_CHANNEL = os.getenv("THREADPULSE_CHANNEL", "games")

# UTC hour the new puzzle is announced
THREADPULSE_ANNOUNCE_HOUR = max(0, min(23, _int(os.getenv("THREADPULSE_ANNOUNCE_HOUR"), 0)))

# ================================================================
# LOGGING
# ================================================================

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
