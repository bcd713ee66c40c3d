# backend/smartstock/config.py
from __future__ import annotations
import os
import re


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}")


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/smartstock.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///smartstock.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LISTEN_ADDR = os.environ.get("LISTEN_ADDR", "127.0.0.1:5000")
    REQUEST_DEADLINE_MS = _env_int("REQUEST_DEADLINE_MS", 30000)
    PASSWORD_HASH_COST = _env_int("PASSWORD_HASH_COST", 10)
    CURRENCY_CODE = os.environ.get("CURRENCY_CODE", "USD")

    SESSION_TTL_HOURS = _env_int("SESSION_TTL_HOURS", 24)
    DEAD_STOCK_DEFAULT_DAYS = _env_int("DEAD_STOCK_DEFAULT_DAYS", 90)

    # Expose internal error text in 500 responses
    DEV_MODE = _env_bool("DEV_MODE")


_LISTEN_ADDR_RE = re.compile(r"^(?P<host>[^:\s]+|\[[0-9a-fA-F:]+\]):(?P<port>\d{1,5})$")


def parse_listen_addr(value: str) -> tuple[str, int]:
    """Split ``host:port`` into its parts."""
    match = _LISTEN_ADDR_RE.match(value or "")
    if not match:
        raise RuntimeError(f"LISTEN_ADDR must look like host:port, got {value!r}")
    port = int(match.group("port"))
    if not 0 < port < 65536:
        raise RuntimeError(f"LISTEN_ADDR port out of range: {port}")
    return match.group("host").strip("[]"), port


def validate_config(config) -> None:
    """Fail fast on option values the rest of the app cannot work with."""
    parse_listen_addr(config["LISTEN_ADDR"])

    deadline = config["REQUEST_DEADLINE_MS"]
    if not isinstance(deadline, int) or deadline <= 0:
        raise RuntimeError("REQUEST_DEADLINE_MS must be a positive integer")

    cost = config["PASSWORD_HASH_COST"]
    # bcrypt accepts 4..31 rounds
    if not isinstance(cost, int) or not 4 <= cost <= 31:
        raise RuntimeError("PASSWORD_HASH_COST must be between 4 and 31")

    currency = config["CURRENCY_CODE"]
    if not isinstance(currency, str) or not re.fullmatch(r"[A-Z]{3}", currency):
        raise RuntimeError("CURRENCY_CODE must be a three-letter ISO-4217 code")
