"""Async HTTP client for the RT visualizer (RTV) rendering service.

The RTV service computes derived geometry for image sets and doses. Its
location is published by the ProKnow UI in /ui/variables.js, and the API
version expected for each object type is published at {rtv}/status.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from enum import Enum
from typing import Any, Mapping

import httpx

from proknow.errors import EntityTypeError, ProKnowError, ProKnowHttpError
from proknow.requestor import Headers, decode_json, http_error_from_response

logger = logging.getLogger(__name__)

_RTV_SOURCE_PATTERN = re.compile(r'"rtVisualizerSourceName":\s*"([^,]+)"')


class ObjectType(str, Enum):
    """Entity types understood by the ProKnow API and the RTV service."""

    IMAGE_SET = "image_set"
    STRUCTURE_SET = "structure_set"
    PLAN = "plan"
    DOSE = "dose"

    @property
    def route(self) -> str:
        """Plural route segment in the ProKnow API, e.g. 'imagesets'."""
        return _ROUTES[self]

    @property
    def rtv_name(self) -> str:
        """Name used by the RTV service, e.g. 'imageset'."""
        return _RTV_NAMES[self]

    @classmethod
    def from_entity_type(cls, value: str) -> "ObjectType":
        """Resolve an entity type string.

        Raises:
            EntityTypeError: If value is not a supported entity type.
        """
        try:
            return cls(value)
        except ValueError:
            allowed = ", ".join(member.value for member in cls)
            raise EntityTypeError(
                f"Unsupported entity type '{value}'. Expected one of: {allowed}."
            ) from None


_ROUTES = {
    ObjectType.IMAGE_SET: "imagesets",
    ObjectType.STRUCTURE_SET: "structuresets",
    ObjectType.PLAN: "plans",
    ObjectType.DOSE: "doses",
}

_RTV_NAMES = {
    ObjectType.IMAGE_SET: "imageset",
    ObjectType.STRUCTURE_SET: "structureset",
    ObjectType.PLAN: "plan",
    ObjectType.DOSE: "dose",
}


class RtvRequestor:
    """Issues requests to the RTV service.

    Args:
        base_url: Base URL of the organization, e.g. 'https://example.proknow.com'.
        default_headers: Headers included in every request.
        timeout: HTTP timeout in seconds.
        transport: Optional httpx transport (used by tests).
    """

    def __init__(
        self,
        base_url: str,
        default_headers: Mapping[str, str] | None = None,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the RTV requestor configuration."""
        if not base_url or not base_url.strip():
            raise ValueError("The 'base_url' parameter must be provided.")
        self.base_url = base_url.rstrip("/")
        self.default_headers: dict[str, str] = dict(default_headers or {})
        self.api_versions: dict[ObjectType, str] = {}
        self._rtv_url: str | None = None
        self._discovery_lock = asyncio.Lock()
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def __aenter__(self) -> "RtvRequestor":
        """Enter async context manager scope."""
        return self

    async def __aexit__(self, _exc_type: object, _exc: object, _tb: object) -> None:
        """Exit async context manager scope and close resources."""
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._http.aclose()

    async def get_api_version(self, object_type: ObjectType) -> str:
        """Return the Accept-Version header value for an object type.

        The versions are fetched from the RTV /status route on first use and
        cached for the lifetime of this requestor.
        """
        async with self._discovery_lock:
            if not self.api_versions:
                payload = await self._request("GET", "/status")
                versions = payload["api_version"]
                for member in ObjectType:
                    value = versions[member.rtv_name]
                    self.api_versions[member] = (
                        value if isinstance(value, str) else json.dumps(value)
                    )
                logger.debug("RTV API versions: %s", self.api_versions)
        return self.api_versions[object_type]

    async def post(
        self, route: str, *, headers: Headers | None = None, json: Any = None
    ) -> Any:
        """Issue a POST request and return the decoded JSON response."""
        return await self._request("POST", route, headers=headers, json=json)

    async def get_binary(self, route: str, *, headers: Headers | None = None) -> bytes:
        """Issue a GET request and return the raw response body."""
        response = await self._send("GET", await self._url(route), headers=headers)
        return response.content

    async def _request(
        self,
        method: str,
        route: str,
        *,
        headers: Headers | None = None,
        json: Any = None,
    ) -> Any:
        response = await self._send(method, await self._url(route), headers=headers, json=json)
        return decode_json(response)

    async def _url(self, route: str) -> str:
        if self._rtv_url is None:
            response = await self._send("GET", f"{self.base_url}/ui/variables.js")
            match = _RTV_SOURCE_PATTERN.search(response.text)
            if not match:
                raise ProKnowError("RTV source not found")
            self._rtv_url = f"{self.base_url}/rtv/{match.group(1)}"
            logger.debug("Discovered RTV service at %s", self._rtv_url)
        return f"{self._rtv_url}{route}"

    async def _send(
        self,
        method: str,
        url: str,
        *,
        headers: Headers | None = None,
        json: Any = None,
    ) -> httpx.Response:
        merged = {**self.default_headers, **(headers or {})}
        try:
            response = await self._http.request(method, url, headers=merged, json=json)
        except httpx.RequestError as exc:
            logger.warning("RTV request error: %s %s: %s", method, url, exc)
            raise ProKnowHttpError(
                method=method,
                url=url,
                status_code=400,
                reason="BadRequest",
                body=f"Exception occurred making HTTP request. {exc}",
            ) from exc
        if not response.is_success:
            raise http_error_from_response(response)
        return response
