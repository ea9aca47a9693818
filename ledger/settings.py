# ledger/settings.py
# Role: Environment-driven configuration for the ledger service.
#       Values are read once at import time (after loading a local .env file),
#       so the rest of the code base never touches os.environ directly.

"""
Runtime configuration.

Every value can be overridden through the environment or a `.env` file in the
working directory.
"""

import os
from typing import Dict

from dotenv import load_dotenv

load_dotenv()


def _env_truthy(name: str, default: str = "0") -> bool:
    v = os.getenv(name, default)
    return str(v).strip().lower() in ("1", "true", "yes", "y", "on")


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _parse_session_tokens(raw: str) -> Dict[str, str]:
    """
    Parse "token:user,token2:user2" into {token: user_id}.
    Entries without a user part map the token to itself.
    """
    tokens: Dict[str, str] = {}
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        token, _, user = item.partition(":")
        tokens[token.strip()] = user.strip() or token.strip()
    return tokens


# -------------------------------------------------------------------
# Paths & database
# -------------------------------------------------------------------

# Project root (one level above this package)
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# Folder for the default SQLite DB
DB_DIR = os.path.join(BASE_DIR, "database")

# SQLAlchemy connection URL (Postgres or SQLite)
DATABASE_URL = os.getenv("DATABASE_URL", "").strip() or f"sqlite:///{os.path.join(DB_DIR, 'finance.db')}"

# -------------------------------------------------------------------
# Logging
# -------------------------------------------------------------------

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"

# -------------------------------------------------------------------
# Auth boundary
# -------------------------------------------------------------------

# Bearer tokens accepted by the default session resolver
SESSION_TOKENS: Dict[str, str] = _parse_session_tokens(os.getenv("LEDGER_SESSION_TOKENS", ""))

# -------------------------------------------------------------------
# Statement import
# -------------------------------------------------------------------

# 1-based spreadsheet row where transaction data starts (rows above are headers)
STATEMENT_DATA_START_ROW = _env_int("STATEMENT_DATA_START_ROW", 10)

# Merchant prefix the bank uses for not-yet-booked transactions
STATEMENT_PRELIMINARY_MARKER = os.getenv("STATEMENT_PRELIMINARY_MARKER", "Prel")

# -------------------------------------------------------------------
# Listing
# -------------------------------------------------------------------

PAGE_SIZE_DEFAULT = _env_int("PAGE_SIZE_DEFAULT", 25)
PAGE_SIZE_MAX = _env_int("PAGE_SIZE_MAX", 100)

# -------------------------------------------------------------------
# AI suggestions (advisory only)
# -------------------------------------------------------------------

AUTO_CATEGORIZE_AI = _env_truthy("AUTO_CATEGORIZE_AI", "0")
AUTO_CATEGORIZE_MODEL = os.getenv("AUTO_CATEGORIZE_MODEL", "gpt-4.1-mini")
SUGGESTION_BATCH_SIZE = _env_int("SUGGESTION_BATCH_SIZE", 20)
