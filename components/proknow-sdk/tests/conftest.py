from __future__ import annotations

import itertools
import re
from pathlib import Path
from typing import Any, Iterator

import pytest

from proknow.client import ProKnow
from proknow.polling import PollPolicy

WORKSPACE_ID = "ws-1"
PATIENT_ID = "pt-1"
STRUCTURE_SET_ID = "ss-1"
STRUCTURE_SET_ROUTE = f"/workspaces/{WORKSPACE_ID}/structuresets/{STRUCTURE_SET_ID}"


class _Routes:
    """Canned responses keyed by method and route regex.

    A response may be a value, an exception instance (raised), or a callable
    taking (route, **kwargs). When several responses are queued for a route
    they are consumed in order and the last one repeats.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self._routes: list[tuple[str, re.Pattern[str], dict[str, Any] | None, list[Any]]] = []

    def on(
        self,
        method: str,
        route: str,
        *responses: Any,
        params: dict[str, Any] | None = None,
    ) -> None:
        self._routes.insert(0, (method, re.compile(route), params, list(responses)))

    def calls_to(self, method: str, route: str) -> list[dict[str, Any]]:
        pattern = re.compile(route)
        return [
            kwargs
            for call_method, call_route, kwargs in self.calls
            if call_method == method and pattern.fullmatch(call_route)
        ]

    def _dispatch(self, method: str, route: str, **kwargs: Any) -> Any:
        self.calls.append((method, route, kwargs))
        params = kwargs.get("params")
        for entry_method, pattern, entry_params, responses in self._routes:
            if entry_method != method or not pattern.fullmatch(route):
                continue
            if entry_params is not None and dict(params or {}) != entry_params:
                continue
            response = responses.pop(0) if len(responses) > 1 else responses[0]
            if isinstance(response, BaseException):
                raise response
            if callable(response):
                return response(route, **kwargs)
            return response
        raise AssertionError(f"Unexpected request: {method} {route} {kwargs}")


class FakeRequestor(_Routes):
    """In-memory stand-in for proknow.requestor.Requestor."""

    def __init__(self) -> None:
        super().__init__()
        self.files: dict[str, bytes] = {}

    async def get(self, route: str, *, headers: Any = None, params: Any = None) -> Any:
        return self._dispatch("GET", route, headers=headers, params=params)

    async def get_binary(self, route: str, *, headers: Any = None, params: Any = None) -> bytes:
        return self._dispatch("GET", route, headers=headers, params=params)

    async def post(self, route: str, *, headers: Any = None, json: Any = None) -> Any:
        return self._dispatch("POST", route, headers=headers, json=json)

    async def put(self, route: str, *, headers: Any = None, json: Any = None) -> Any:
        return self._dispatch("PUT", route, headers=headers, json=json)

    async def patch(self, route: str, *, headers: Any = None, json: Any = None) -> Any:
        return self._dispatch("PATCH", route, headers=headers, json=json)

    async def delete(self, route: str, *, headers: Any = None, json: Any = None) -> Any:
        return self._dispatch("DELETE", route, headers=headers, json=json)

    async def stream(self, route: str, path: str | Path, *, params: Any = None) -> str:
        self.calls.append(("STREAM", route, {"path": Path(path)}))
        destination = Path(path)
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(self.files.get(route, b"DICM"))
        return str(destination)

    async def get_domain_status(self) -> Any:
        return await self.get("/status")

    async def aclose(self) -> None:
        pass


class FakeRtvRequestor(_Routes):
    """In-memory stand-in for proknow.rtv_requestor.RtvRequestor."""

    def __init__(self, api_version: str = "2") -> None:
        super().__init__()
        self.api_version = api_version

    async def get_api_version(self, object_type: Any) -> str:
        return self.api_version

    async def post(self, route: str, *, headers: Any = None, json: Any = None) -> Any:
        return self._dispatch("POST", route, headers=headers, json=json)

    async def get_binary(self, route: str, *, headers: Any = None) -> bytes:
        return self._dispatch("GET", route, headers=headers)

    async def aclose(self) -> None:
        pass


def draft_lock_payload(lock_id: str, expires_in: int = 300000) -> dict[str, Any]:
    return {
        "id": lock_id,
        "created_at": "2024-01-01T00:00:00.000Z",
        "expires_at": f"2024-01-01T00:05:00.000Z#{lock_id}",
        "expires_in": expires_in,
    }


def renewed_locks(expires_in: int = 300000):
    """PUT handler issuing a new lock on every renewal."""
    counter = itertools.count(1)

    def _handler(route: str, **kwargs: Any) -> dict[str, Any]:
        return draft_lock_payload(f"renewed-{next(counter)}", expires_in)

    return _handler


def structure_set_payload(
    rois: list[dict[str, Any]] | None = None, version: str = "v-1"
) -> dict[str, Any]:
    return {
        "id": STRUCTURE_SET_ID,
        "patient": PATIENT_ID,
        "type": "structure_set",
        "uid": "1.2.3.4",
        "modality": "RTSTRUCT",
        "description": "Planning structures",
        "metadata": {},
        "status": "completed",
        "data": {
            "version": version,
            "label": "Initial",
            "rois": rois
            if rois is not None
            else [
                {
                    "id": "roi-1",
                    "name": "BODY",
                    "color": [0, 255, 0],
                    "type": "EXTERNAL",
                    "number": 1,
                    "algorithm": "AUTOMATIC",
                    "tag": "tag-1",
                }
            ],
        },
    }


@pytest.fixture()
def requestor() -> FakeRequestor:
    return FakeRequestor()


@pytest.fixture()
def rtv_requestor() -> FakeRtvRequestor:
    return FakeRtvRequestor()


@pytest.fixture()
def proknow(requestor: FakeRequestor, rtv_requestor: FakeRtvRequestor) -> Iterator[ProKnow]:
    client = ProKnow(
        "https://example.proknow.com",
        "test-id",
        "test-secret",
        lock_renewal_buffer=0,
        requestor=requestor,
        rtv_requestor=rtv_requestor,
    )
    client.entity_poll_policy = PollPolicy(delay=0, max_retries=25)
    client.version_poll_policy = PollPolicy(delay=0, max_retries=300)
    yield client
