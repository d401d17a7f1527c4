from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional


# -----------------------------
# Tunables / defaults
# -----------------------------

DEFAULT_PORT: int = 4567
DEFAULT_JOB_WORKERS: int = 4
DEFAULT_MAX_CONCURRENCY: int = 5
DEFAULT_FETCH_TIMEOUT_S: float = 5.0
DEFAULT_SHUTDOWN_GRACE_S: float = 5.0
DEFAULT_LINK_PARSER: str = "regex"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

LINK_PARSERS = ("regex", "soup")


class ConfigurationError(RuntimeError):
    """A required setting is missing or unusable."""


@dataclass(frozen=True)
class Settings:
    base_url: Optional[str] = None
    port: int = DEFAULT_PORT
    job_workers: int = DEFAULT_JOB_WORKERS
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT_S
    link_parser: str = DEFAULT_LINK_PARSER
    shutdown_grace: float = DEFAULT_SHUTDOWN_GRACE_S
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Read settings from the process environment (or the given mapping).
        BASE_URL may be absent here; it is only required when a crawl is requested.
        """
        env = os.environ if env is None else env

        base_url = (env.get("BASE_URL") or "").strip() or None
        link_parser = (env.get("CRAWLER_LINK_PARSER") or DEFAULT_LINK_PARSER).strip().lower()
        if link_parser not in LINK_PARSERS:
            raise ConfigurationError(
                f"CRAWLER_LINK_PARSER must be one of {', '.join(LINK_PARSERS)}, got '{link_parser}'."
            )

        return cls(
            base_url=base_url,
            port=_int_setting(env, "PORT", DEFAULT_PORT),
            job_workers=max(1, _int_setting(env, "CRAWLER_JOB_WORKERS", DEFAULT_JOB_WORKERS)),
            max_concurrency=max(1, _int_setting(env, "CRAWLER_MAX_CONCURRENCY", DEFAULT_MAX_CONCURRENCY)),
            fetch_timeout=_float_setting(env, "CRAWLER_FETCH_TIMEOUT", DEFAULT_FETCH_TIMEOUT_S),
            link_parser=link_parser,
            shutdown_grace=_float_setting(env, "CRAWLER_SHUTDOWN_GRACE", DEFAULT_SHUTDOWN_GRACE_S),
            log_level=(env.get("LOG_LEVEL") or "INFO").strip().upper(),
        )

    def require_base_url(self) -> str:
        if not self.base_url:
            raise ConfigurationError(
                "Server configuration error: BASE_URL environment variable not set."
            )
        return self.base_url


def _int_setting(env: Mapping[str, str], name: str, default: int) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got '{raw}'.") from e


def _float_setting(env: Mapping[str, str], name: str, default: float) -> float:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got '{raw}'.") from e


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
