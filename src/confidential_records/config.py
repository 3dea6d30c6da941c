"""
Environment-driven settings.

Values are read from the process environment after loading an optional
``.env`` file with python-dotenv.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Union

from dotenv import load_dotenv

from .crypto import SecureKey
from .errors import ConfigError, CryptoError

DEFAULT_STORE_IDENTITY = "record-store"


@dataclass
class Settings:
    """Runtime configuration for a record service."""

    database_url: Optional[str] = None
    gateway_key: Optional[SecureKey] = None
    store_identity: str = DEFAULT_STORE_IDENTITY
    unseal_delay: float = 0.0
    log_level: int = logging.INFO
    log_file: Optional[str] = None

    @classmethod
    def from_env(
        cls,
        env_file: Optional[Union[str, Path]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> Settings:
        """
        Build settings from environment variables.

        Args:
            env_file: Optional .env path; the default lookup is used when omitted
            environ: Mapping to read instead of os.environ (dotenv is skipped)

        Returns:
            Settings instance

        Raises:
            ConfigError: If any variable holds an invalid value
        """
        if environ is None:
            if env_file is not None:
                load_dotenv(env_file)
            else:
                load_dotenv()
            environ = os.environ

        return cls(
            database_url=environ.get("DATABASE_URL") or None,
            gateway_key=_parse_key(environ.get("RECORDS_GATEWAY_KEY")),
            store_identity=_parse_identity(environ.get("RECORDS_STORE_IDENTITY")),
            unseal_delay=_parse_delay(environ.get("RECORDS_UNSEAL_DELAY")),
            log_level=_parse_level(environ.get("RECORDS_LOG_LEVEL")),
            log_file=environ.get("RECORDS_LOG_FILE") or None,
        )


def _parse_key(raw: Optional[str]) -> Optional[SecureKey]:
    if not raw:
        return None
    try:
        return SecureKey.from_base64(raw)
    except CryptoError as e:
        raise ConfigError(f"RECORDS_GATEWAY_KEY is invalid: {e}")


def _parse_identity(raw: Optional[str]) -> str:
    if raw is None:
        return DEFAULT_STORE_IDENTITY
    identity = raw.strip()
    if not identity:
        raise ConfigError("RECORDS_STORE_IDENTITY must not be empty")
    return identity


def _parse_delay(raw: Optional[str]) -> float:
    if not raw:
        return 0.0
    try:
        delay = float(raw)
    except ValueError:
        raise ConfigError(f"RECORDS_UNSEAL_DELAY is not a number: {raw!r}")
    if delay < 0:
        raise ConfigError("RECORDS_UNSEAL_DELAY must be >= 0")
    return delay


def _parse_level(raw: Optional[str]) -> int:
    if not raw:
        return logging.INFO
    level = logging.getLevelName(raw.strip().upper())
    if not isinstance(level, int):
        raise ConfigError(f"Unknown RECORDS_LOG_LEVEL: {raw!r}")
    return level
