"""Centralized environment-driven settings.

Keep this module lightweight: stdlib only, no package imports, to avoid circular deps.
"""

from __future__ import annotations

import os


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").upper()


# Replies that failed delivery this many times are no longer handed to the delivery worker.
# Configured via .env: THREADWATCH_MAX_DELIVERY_ATTEMPTS=25
MAX_NOTIFICATION_DELIVERY_ATTEMPTS: int = _int_env("THREADWATCH_MAX_DELIVERY_ATTEMPTS", 25)

# sha3-512 rounds applied to a client user id before it is stored as accounts.account_id
USER_ID_HASH_ITERATIONS: int = _int_env("THREADWATCH_USER_ID_HASH_ITERATIONS", 1)

# Log records buffered by DatabaseLogHandler before they are written to the logs table
LOG_BUFFER_SIZE: int = _int_env("THREADWATCH_LOG_BUFFER_SIZE", 128)

# pg_advisory_xact_lock key held while migrations run
MIGRATION_LOCK_KEY: int = _int_env("THREADWATCH_MIGRATION_LOCK_KEY", 7314)

# Bounds for client supplied identifiers
USER_ID_MIN_LENGTH = 32
USER_ID_MAX_LENGTH = 128
TOKEN_MAX_LENGTH = 1024

# Invites expire this many days after they were generated
INVITE_LIFETIME_DAYS: int = _int_env("THREADWATCH_INVITE_LIFETIME_DAYS", 1)

# valid_until of an account created by accepting an invite
NEW_ACCOUNT_TRIAL_PERIOD_DAYS: int = _int_env("THREADWATCH_TRIAL_PERIOD_DAYS", 7)

INVITE_ID_LENGTH = 256
