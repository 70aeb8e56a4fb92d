"""Root client for a ProKnow organization."""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from pathlib import Path

from proknow.config import (
    DEFAULT_LOCK_RENEWAL_BUFFER,
    DEFAULT_TIMEOUT_SECONDS,
    ProKnowConfig,
    load_credentials_file,
)
from proknow.errors import ProKnowError
from proknow.patients import Patients
from proknow.polling import ENTITY_COMPLETION_POLICY, VERSION_READY_POLICY, PollPolicy
from proknow.requestor import Requestor
from proknow.rtv_requestor import RtvRequestor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectionStatus:
    """Result of ProKnow.get_connection_status()."""

    is_valid: bool
    error_message: str | None = None


class ProKnow:
    """Entry point to the ProKnow API.

    Args:
        base_url: Base URL of the organization, e.g. 'https://example.proknow.com'.
        credentials_id: The id from the ProKnow credentials JSON file.
        credentials_secret: The secret from the ProKnow credentials JSON file.
        lock_renewal_buffer: Seconds before expiry at which structure set draft
            locks are renewed. Read once by each new lock renewer.
        timeout: HTTP timeout in seconds.
        client_name: Optional product name for the User-Agent header.
        client_version: Optional product version for the User-Agent header.
        requestor: Optional pre-built API requestor.
        rtv_requestor: Optional pre-built RTV requestor.
    """

    def __init__(
        self,
        base_url: str,
        credentials_id: str,
        credentials_secret: str,
        *,
        lock_renewal_buffer: int = DEFAULT_LOCK_RENEWAL_BUFFER,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client_name: str | None = None,
        client_version: str | None = None,
        requestor: Requestor | None = None,
        rtv_requestor: RtvRequestor | None = None,
    ) -> None:
        """Initialize the client and its requestors."""
        self.lock_renewal_buffer = lock_renewal_buffer
        self.entity_poll_policy: PollPolicy = ENTITY_COMPLETION_POLICY
        self.version_poll_policy: PollPolicy = VERSION_READY_POLICY
        self.requestor = requestor or Requestor(
            base_url,
            credentials_id,
            credentials_secret,
            timeout=timeout,
            client_name=client_name,
            client_version=client_version,
        )
        if rtv_requestor is None:
            token = base64.b64encode(
                f"{credentials_id}:{credentials_secret}".encode("utf-8")
            ).decode("ascii")
            rtv_requestor = RtvRequestor(
                base_url, {"Authorization": f"Basic {token}"}, timeout=timeout
            )
        self.rtv_requestor = rtv_requestor
        self.patients = Patients(self)

    @classmethod
    def from_config(cls, config: ProKnowConfig) -> "ProKnow":
        """Create a client from a ProKnowConfig."""
        return cls(
            config.base_url,
            config.credentials_id,
            config.credentials_secret,
            lock_renewal_buffer=config.lock_renewal_buffer,
            timeout=config.timeout,
            client_name=config.client_name,
            client_version=config.client_version,
        )

    @classmethod
    def from_env(cls) -> "ProKnow":
        """Create a client from environment variables (see proknow.config)."""
        return cls.from_config(ProKnowConfig.from_env())

    @classmethod
    def from_credentials_file(
        cls,
        base_url: str,
        credentials_file: str | Path,
        *,
        lock_renewal_buffer: int = DEFAULT_LOCK_RENEWAL_BUFFER,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> "ProKnow":
        """Create a client from a credentials JSON file downloaded from ProKnow."""
        credentials = load_credentials_file(credentials_file)
        return cls(
            base_url,
            credentials.id,
            credentials.secret,
            lock_renewal_buffer=lock_renewal_buffer,
            timeout=timeout,
        )

    async def __aenter__(self) -> "ProKnow":
        """Enter async context manager scope."""
        return self

    async def __aexit__(self, _exc_type: object, _exc: object, _tb: object) -> None:
        """Exit async context manager scope and close resources."""
        await self.aclose()

    async def aclose(self) -> None:
        """Close both requestors."""
        try:
            await self.requestor.aclose()
        finally:
            await self.rtv_requestor.aclose()

    async def get_connection_status(self) -> ConnectionStatus:
        """Check that the base URL and credentials reach a ProKnow organization."""
        try:
            await self.requestor.get_domain_status()
        except (ProKnowError, ValueError) as exc:
            message = exc.message if isinstance(exc, ProKnowError) else str(exc)
            logger.warning("ProKnow connection check failed: %s", message)
            return ConnectionStatus(is_valid=False, error_message=message)
        return ConnectionStatus(is_valid=True)
