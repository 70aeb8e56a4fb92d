"""Configuration for the ProKnow SDK.

Environment variables:
- PROKNOW_BASE_URL: Base URL of the organization, e.g. https://example.proknow.com.
- PROKNOW_CREDENTIALS_ID / PROKNOW_CREDENTIALS_SECRET: API token credentials.
- PROKNOW_CREDENTIALS_FILE: Path to the credentials JSON file downloaded from
  ProKnow. Only read when the id/secret variables are not set.
- PROKNOW_LOCK_RENEWAL_BUFFER: Seconds before expiry at which a structure set
  draft lock is renewed (optional; defaults to 30).
- PROKNOW_TIMEOUT_SECONDS: HTTP timeout in seconds (optional; defaults to 30).
- LOG_LEVEL: Logging level used by configure_logging (optional; defaults to INFO).
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

from proknow.errors import ProKnowError

logger = logging.getLogger(__name__)

DEFAULT_LOCK_RENEWAL_BUFFER = 30
DEFAULT_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class Credentials:
    """API token credentials.

    Args:
        id: The id from the ProKnow credentials JSON file.
        secret: The secret from the ProKnow credentials JSON file.
    """

    id: str
    secret: str


@dataclass(frozen=True)
class ProKnowConfig:
    """Connection settings for a ProKnow organization.

    Attributes:
        base_url: Base URL of the organization.
        credentials_id: The id from the credentials file.
        credentials_secret: The secret from the credentials file.
        lock_renewal_buffer: Seconds before expiry at which draft locks are renewed.
        timeout: HTTP timeout in seconds.
        client_name: Optional product name sent in the User-Agent header.
        client_version: Optional product version sent in the User-Agent header.
    """

    base_url: str
    credentials_id: str
    credentials_secret: str
    lock_renewal_buffer: int = DEFAULT_LOCK_RENEWAL_BUFFER
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    client_name: str | None = None
    client_version: str | None = None

    @classmethod
    def from_env(cls) -> "ProKnowConfig":
        """Create ProKnowConfig from environment variables (and a .env file)."""
        load_dotenv(find_dotenv())

        base_url = os.getenv("PROKNOW_BASE_URL", "").strip()
        if not base_url:
            raise ProKnowError("PROKNOW_BASE_URL must be set.")

        credentials_id = os.getenv("PROKNOW_CREDENTIALS_ID")
        credentials_secret = os.getenv("PROKNOW_CREDENTIALS_SECRET")
        if not credentials_id or not credentials_secret:
            credentials_file = os.getenv("PROKNOW_CREDENTIALS_FILE")
            if not credentials_file:
                raise ProKnowError(
                    "Set PROKNOW_CREDENTIALS_ID and PROKNOW_CREDENTIALS_SECRET "
                    "or PROKNOW_CREDENTIALS_FILE."
                )
            credentials = load_credentials_file(credentials_file)
            credentials_id, credentials_secret = credentials.id, credentials.secret

        return cls(
            base_url=base_url,
            credentials_id=credentials_id,
            credentials_secret=credentials_secret,
            lock_renewal_buffer=_read_int_env(
                "PROKNOW_LOCK_RENEWAL_BUFFER", DEFAULT_LOCK_RENEWAL_BUFFER
            ),
            timeout=_read_float_env("PROKNOW_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
            client_name=os.getenv("PROKNOW_CLIENT_NAME") or None,
            client_version=os.getenv("PROKNOW_CLIENT_VERSION") or None,
        )


def load_credentials_file(path: str | Path) -> Credentials:
    """Read API token credentials from a ProKnow credentials JSON file.

    Args:
        path: Path to the credentials file.

    Returns:
        The credentials.

    Raises:
        ProKnowError: If the file is missing, is not valid JSON, or lacks
            the id or secret.
    """
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        message = f"The credentials file '{path}' was not found."
        logger.error(message)
        raise ProKnowError(message) from None
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        message = f"The credentials file '{path}' is not valid JSON."
        logger.error(message)
        raise ProKnowError(message) from None
    if not isinstance(payload, dict) or not payload.get("id") or not payload.get("secret"):
        message = f"The 'id' and/or 'secret' in the credentials file '{path}' are missing."
        logger.error(message)
        raise ProKnowError(message)
    return Credentials(id=str(payload["id"]), secret=str(payload["secret"]))


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for scripts and applications using the SDK.

    Args:
        level: Logging level name; defaults to the LOG_LEVEL env var or INFO.
    """
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_level = getattr(logging, level_name, logging.INFO)
    if not isinstance(log_level, int):
        log_level = logging.INFO

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        force=True,
    )
    logging.getLogger("proknow").setLevel(log_level)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(log_level, logging.WARNING))


def _read_int_env(name: str, default: int) -> int:
    raw_value = os.getenv(name)
    if raw_value is None or not raw_value.strip():
        return default
    try:
        value = int(raw_value)
    except ValueError:
        return default
    return value if value >= 0 else default


def _read_float_env(name: str, default: float) -> float:
    raw_value = os.getenv(name)
    if not raw_value:
        return default
    try:
        value = float(raw_value)
    except ValueError:
        return default
    return value if value > 0 else default
