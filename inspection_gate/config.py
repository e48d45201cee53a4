"""Environment-driven settings for the inspection gate service."""

import os
from dataclasses import dataclass

GENERIC_PRICE_LIST_ID = "USNATNL"


@dataclass(frozen=True)
class Settings:
    port: int = 8000
    log_level: str = "INFO"

    # Deadline for one complete gate run against the storage collaborator.
    gate_timeout_seconds: float = 10.0

    # Generic national price list; exports on it are flagged for review.
    default_price_list_id: str = GENERIC_PRICE_LIST_ID
    carrier_name: str = "Field Inspection"


def _env_float(name: str, default: float) -> float:
    """Read a float from the environment.

    Args:
        name: Environment variable name.
        default: Value used when unset, blank or unparseable.

    Returns:
        The parsed value or ``default``.
    """
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    """Integer counterpart of ``_env_float``."""
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_settings() -> Settings:
    """Build ``Settings`` from the environment, keeping defaults on bad input."""
    timeout = _env_float("GATE_TIMEOUT_SECONDS", 10.0)
    if timeout <= 0:
        timeout = 10.0

    return Settings(
        port=_env_int("PORT", 8000),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        gate_timeout_seconds=timeout,
        default_price_list_id=os.getenv("DEFAULT_PRICE_LIST_ID", GENERIC_PRICE_LIST_ID).strip()
        or GENERIC_PRICE_LIST_ID,
        carrier_name=os.getenv("CARRIER_NAME", "Field Inspection").strip() or "Field Inspection",
    )
