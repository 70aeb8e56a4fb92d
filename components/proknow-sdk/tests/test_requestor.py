import base64
import json
from pathlib import Path

import httpx
import pytest
from tenacity import wait_none

from proknow.errors import ProKnowError, ProKnowHttpError
from proknow.requestor import Requestor

BASE_URL = "https://example.proknow.com"


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(Requestor._request_with_retry.retry, "wait", wait_none())


def _requestor(handler, **kwargs) -> Requestor:
    return Requestor(BASE_URL, "id-1", "secret-1", transport=httpx.MockTransport(handler), **kwargs)


class TestRequestorInit:
    @pytest.mark.parametrize(
        ("args", "name"),
        [
            (("", "id", "secret"), "base_url"),
            ((BASE_URL, " ", "secret"), "credentials_id"),
            ((BASE_URL, "id", ""), "credentials_secret"),
        ],
    )
    def test_requires_arguments(self, args: tuple, name: str) -> None:
        with pytest.raises(ValueError, match=f"The '{name}' parameter must be provided."):
            Requestor(*args)


class TestRequestorGet:
    @pytest.mark.asyncio
    async def test_get_decodes_json_with_basic_auth(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": "ss-1"})

        async with _requestor(handler, client_name="planner", client_version="1.2") as requestor:
            payload = await requestor.get("/workspaces/ws-1/structuresets/ss-1", params={"version": "draft"})

        assert payload == {"id": "ss-1"}
        (request,) = seen
        assert request.url.path == "/api/workspaces/ws-1/structuresets/ss-1"
        assert request.url.params["version"] == "draft"
        expected = base64.b64encode(b"id-1:secret-1").decode("ascii")
        assert request.headers["Authorization"] == f"Basic {expected}"
        assert request.headers["User-Agent"] == "planner/1.2"

    @pytest.mark.asyncio
    async def test_html_index_means_bad_base_url(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, text="<!DOCTYPE html><html></html>", headers={"content-type": "text/html"}
            )

        async with _requestor(handler) as requestor:
            with pytest.raises(ProKnowHttpError) as exc_info:
                await requestor.get("/status")

        assert exc_info.value.status_code == 404
        assert exc_info.value.reason == "NotFound"
        assert f"Please verify the base URL '{BASE_URL}'" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(403, text="Structure set is not currently locked for editing")

        async with _requestor(handler) as requestor:
            with pytest.raises(ProKnowHttpError) as exc_info:
                await requestor.get("/workspaces/ws-1/structuresets/ss-1/draft/lock")

        assert calls == 1
        assert exc_info.value.status_code == 403
        assert exc_info.value.message == (
            "HttpError(Forbidden, Structure set is not currently locked for editing)"
        )

    @pytest.mark.asyncio
    async def test_server_error_is_retried(self) -> None:
        responses = [httpx.Response(503, text="busy"), httpx.Response(200, json={"ok": True})]

        def handler(request: httpx.Request) -> httpx.Response:
            return responses.pop(0)

        async with _requestor(handler) as requestor:
            assert await requestor.get("/status") == {"ok": True}

    @pytest.mark.asyncio
    async def test_server_error_after_retries(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(500, text="Internal Server Error")

        async with _requestor(handler) as requestor:
            with pytest.raises(ProKnowHttpError) as exc_info:
                await requestor.get("/status")

        assert calls == 3
        assert exc_info.value.status_code == 500
        assert exc_info.value.reason == "InternalServerError"

    @pytest.mark.asyncio
    async def test_transport_error_maps_to_bad_request(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _requestor(handler) as requestor:
            with pytest.raises(ProKnowHttpError) as exc_info:
                await requestor.get("/status")

        assert exc_info.value.status_code == 400
        assert "connection refused" in exc_info.value.body

    @pytest.mark.asyncio
    async def test_get_binary(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"\x00\x01")

        async with _requestor(handler) as requestor:
            assert await requestor.get_binary("/imagesets/is-1/images/t-1") == b"\x00\x01"


class TestRequestorWrite:
    @pytest.mark.asyncio
    async def test_post_sends_json_and_headers(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": "roi-1"})

        async with _requestor(handler) as requestor:
            payload = await requestor.post(
                "/workspaces/ws-1/structuresets/ss-1/draft/rois",
                headers={"ProKnow-Lock": "lock-1"},
                json={"name": "PTV"},
            )

        assert payload == {"id": "roi-1"}
        (request,) = seen
        assert request.method == "POST"
        assert request.headers["ProKnow-Lock"] == "lock-1"
        assert json.loads(request.content) == {"name": "PTV"}

    @pytest.mark.asyncio
    async def test_empty_body_decodes_to_none(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200)

        async with _requestor(handler) as requestor:
            assert await requestor.delete("/workspaces/ws-1/entities/e-1") is None
            assert await requestor.put("/workspaces/ws-1/entities/e-1", json={}) is None
            assert await requestor.patch("/workspaces/ws-1/entities/e-1", json={}) is None

    @pytest.mark.asyncio
    async def test_post_errors_are_not_retried(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(502, text="Bad Gateway")

        async with _requestor(handler) as requestor:
            with pytest.raises(ProKnowHttpError) as exc_info:
                await requestor.post("/workspaces/ws-1/structuresets/ss-1/draft")

        assert calls == 1
        assert exc_info.value.reason == "BadGateway"


class TestRequestorStream:
    @pytest.mark.asyncio
    async def test_stream_creates_parent_directories(self, tmp_path: Path) -> None:
        content = bytes(range(256)) * 64

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=content)

        destination = tmp_path / "x" / "y" / "RP.dcm"
        async with _requestor(handler) as requestor:
            path = await requestor.stream("/workspaces/ws-1/plans/pl-1/dicom", destination)

        assert path == str(destination)
        assert destination.read_bytes() == content

    @pytest.mark.asyncio
    async def test_stream_rejects_directory(self, tmp_path: Path) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        async with _requestor(handler) as requestor:
            with pytest.raises(ProKnowError, match="It is a path to an existing directory"):
                await requestor.stream("/workspaces/ws-1/plans/pl-1/dicom", tmp_path)

    @pytest.mark.asyncio
    async def test_stream_error_leaves_no_file(self, tmp_path: Path) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, text="Not found")

        destination = tmp_path / "RD.dcm"
        async with _requestor(handler) as requestor:
            with pytest.raises(ProKnowHttpError) as exc_info:
                await requestor.stream("/workspaces/ws-1/doses/d-1/dicom", destination)

        assert exc_info.value.status_code == 404
        assert not destination.exists()
