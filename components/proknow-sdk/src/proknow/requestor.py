"""Async HTTP client for the ProKnow REST API."""

from __future__ import annotations

import logging
from http import HTTPStatus
from pathlib import Path
from typing import Any, Mapping

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from proknow.errors import ProKnowError, ProKnowHttpError

logger = logging.getLogger(__name__)

Headers = Mapping[str, str]
Params = Mapping[str, Any]


class _ServerError(Exception):
    """Raised on 5xx GET responses to trigger tenacity retry."""

    def __init__(self, response: httpx.Response) -> None:
        self.response = response
        super().__init__(
            f"Server error {response.status_code}: {response.text[:100]}"
        )


def _reason(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase.replace(" ", "")
    except ValueError:
        return str(status_code)


def http_error_from_response(response: httpx.Response) -> ProKnowHttpError:
    """Map an unsuccessful response to a ProKnowHttpError."""
    return ProKnowHttpError(
        method=response.request.method,
        url=str(response.request.url),
        status_code=response.status_code,
        reason=_reason(response.status_code),
        body=response.text[:500],
    )


def decode_json(response: httpx.Response) -> Any:
    """Decode a JSON response body, returning None for empty bodies."""
    if not response.content:
        return None
    return response.json()


class Requestor:
    """Issues authenticated requests to the ProKnow API.

    Args:
        base_url: Base URL of the organization, e.g. 'https://example.proknow.com'.
        credentials_id: The id from the ProKnow credentials JSON file.
        credentials_secret: The secret from the ProKnow credentials JSON file.
        timeout: HTTP timeout in seconds.
        client_name: Optional product name for the User-Agent header.
        client_version: Optional product version for the User-Agent header.
        transport: Optional httpx transport (used by tests).
    """

    def __init__(
        self,
        base_url: str,
        credentials_id: str,
        credentials_secret: str,
        *,
        timeout: float = 30.0,
        client_name: str | None = None,
        client_version: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the requestor configuration."""
        if not base_url or not base_url.strip():
            raise ValueError("The 'base_url' parameter must be provided.")
        if not credentials_id or not credentials_id.strip():
            raise ValueError("The 'credentials_id' parameter must be provided.")
        if not credentials_secret or not credentials_secret.strip():
            raise ValueError("The 'credentials_secret' parameter must be provided.")

        self.base_url = base_url.rstrip("/")
        self.api_url = f"{self.base_url}/api"
        headers: dict[str, str] = {}
        if client_name:
            user_agent = f"{client_name}/{client_version}" if client_version else client_name
            headers["User-Agent"] = user_agent
        self._http = httpx.AsyncClient(
            base_url=self.api_url,
            auth=httpx.BasicAuth(credentials_id, credentials_secret),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "Requestor":
        """Enter async context manager scope."""
        return self

    async def __aexit__(self, _exc_type: object, _exc: object, _tb: object) -> None:
        """Exit async context manager scope and close resources."""
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._http.aclose()

    async def get(
        self,
        route: str,
        *,
        headers: Headers | None = None,
        params: Params | None = None,
    ) -> Any:
        """Issue a GET request and return the decoded JSON response.

        Raises:
            ProKnowHttpError: If the request fails or the response is the
                ProKnow index page (which indicates a bad base URL).
        """
        response = await self._get_with_retry(route, headers, params)
        content_type = response.headers.get("content-type", "")
        if content_type.startswith("text/html") and response.text[:14].upper() == "<!DOCTYPE HTML":
            raise ProKnowHttpError(
                method="GET",
                url=f"{self.api_url}{route}",
                status_code=404,
                reason="NotFound",
                body=f"Please verify the base URL '{self.base_url}'.",
            )
        return decode_json(response)

    async def get_binary(
        self,
        route: str,
        *,
        headers: Headers | None = None,
        params: Params | None = None,
    ) -> bytes:
        """Issue a GET request and return the raw response body."""
        response = await self._get_with_retry(route, headers, params)
        return response.content

    async def post(
        self, route: str, *, headers: Headers | None = None, json: Any = None
    ) -> Any:
        """Issue a POST request and return the decoded JSON response."""
        return decode_json(await self._send("POST", route, headers=headers, json=json))

    async def put(
        self, route: str, *, headers: Headers | None = None, json: Any = None
    ) -> Any:
        """Issue a PUT request and return the decoded JSON response."""
        return decode_json(await self._send("PUT", route, headers=headers, json=json))

    async def patch(
        self, route: str, *, headers: Headers | None = None, json: Any = None
    ) -> Any:
        """Issue a PATCH request and return the decoded JSON response."""
        return decode_json(await self._send("PATCH", route, headers=headers, json=json))

    async def delete(
        self, route: str, *, headers: Headers | None = None, json: Any = None
    ) -> Any:
        """Issue a DELETE request and return the decoded JSON response."""
        return decode_json(await self._send("DELETE", route, headers=headers, json=json))

    async def stream(
        self, route: str, path: str | Path, *, params: Params | None = None
    ) -> str:
        """Stream a GET response body to a file.

        Args:
            route: API route, e.g. /workspaces/{id}/plans/{id}/dicom.
            path: Destination file. Missing parent directories are created.
            params: Optional query parameters.

        Returns:
            The destination path as a string.

        Raises:
            ProKnowError: If path is an existing directory.
            ProKnowHttpError: If the request fails.
        """
        destination = Path(path)
        if destination.is_dir():
            raise ProKnowError(
                f"Cannot stream '{route}' to '{destination}'.  "
                "It is a path to an existing directory."
            )
        destination.parent.mkdir(parents=True, exist_ok=True)
        opened = False
        try:
            async with self._http.stream("GET", route, params=params) as response:
                if not response.is_success:
                    await response.aread()
                    raise http_error_from_response(response)
                opened = True
                with destination.open("wb") as handle:
                    async for chunk in response.aiter_bytes():
                        handle.write(chunk)
        except BaseException as exc:
            # no partial files on failure or cancellation
            if opened:
                destination.unlink(missing_ok=True)
            if isinstance(exc, httpx.RequestError):
                raise self._transport_error("GET", route, exc) from exc
            raise
        logger.debug("Streamed %s to %s", route, destination)
        return str(destination)

    async def get_domain_status(self) -> Any:
        """Return the response of the unauthenticated /status route."""
        return await self.get("/status")

    async def _get_with_retry(
        self, route: str, headers: Headers | None, params: Params | None
    ) -> httpx.Response:
        try:
            response = await self._request_with_retry(route, headers, params)
        except _ServerError as exc:
            raise http_error_from_response(exc.response) from None
        except httpx.RequestError as exc:
            raise self._transport_error("GET", route, exc) from exc
        if not response.is_success:
            raise http_error_from_response(response)
        return response

    @retry(
        retry=retry_if_exception_type((httpx.RequestError, _ServerError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
        reraise=True,
    )
    async def _request_with_retry(
        self, route: str, headers: Headers | None, params: Params | None
    ) -> httpx.Response:
        """Make a GET request with tenacity retry on transient errors."""
        response = await self._http.get(
            route, headers=dict(headers) if headers else None, params=params
        )
        if response.status_code >= 500:
            logger.warning(
                "ProKnow API %d error, will retry: %s",
                response.status_code,
                response.text[:100],
            )
            raise _ServerError(response)
        return response

    async def _send(
        self,
        method: str,
        route: str,
        *,
        headers: Headers | None = None,
        json: Any = None,
    ) -> httpx.Response:
        try:
            response = await self._http.request(
                method,
                route,
                headers=dict(headers) if headers else None,
                json=json,
            )
        except httpx.RequestError as exc:
            raise self._transport_error(method, route, exc) from exc
        if not response.is_success:
            error = http_error_from_response(response)
            logger.debug("ProKnow API error: %s %s -> %s", method, route, error.message)
            raise error
        return response

    def _transport_error(
        self, method: str, route: str, exc: httpx.RequestError
    ) -> ProKnowHttpError:
        logger.warning("ProKnow API request error: %s %s: %s", method, route, exc)
        return ProKnowHttpError(
            method=method,
            url=f"{self.api_url}{route}",
            status_code=400,
            reason="BadRequest",
            body=f"Exception occurred making HTTP request. {exc}",
        )
