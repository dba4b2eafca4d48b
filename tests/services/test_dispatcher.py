import asyncio
import json
from unittest.mock import MagicMock

import httpx
import pytest

from tileload.config import config
from tileload.core.enums import CredentialsMode, RequestMethod, ResponseType, TransportKind
from tileload.core.exceptions import HTTPStatusError, ParseError, TransportError
from tileload.models.request import CompletionResult, RequestDescriptor
from tileload.services.dispatcher import RequestDispatcher, TransportCapabilities


def _collect() -> tuple[list[CompletionResult], MagicMock]:
    results: list[CompletionResult] = []
    callback = MagicMock(side_effect=results.append)
    return results, callback


async def _settle(dispatcher: RequestDispatcher) -> None:
    for _ in range(50):
        if dispatcher.in_flight == 0:
            return
        await asyncio.sleep(0.01)


@pytest.fixture(params=[True, False], ids=["streaming", "buffered"])
def streaming(request: pytest.FixtureRequest) -> bool:
    return request.param


class TestTransportSelection:
    def test_streaming_preferred(self) -> None:
        dispatcher = RequestDispatcher(TransportCapabilities(streaming=True))
        descriptor = RequestDescriptor(url="https://example.com/a")
        assert dispatcher.select_transport(descriptor).kind == TransportKind.STREAMING

    def test_local_file_always_buffered(self) -> None:
        dispatcher = RequestDispatcher(TransportCapabilities(streaming=True))
        descriptor = RequestDescriptor(url="file:///tmp/style.json")
        assert dispatcher.select_transport(descriptor).kind == TransportKind.BUFFERED

    def test_background_with_actor_delegates(self) -> None:
        actor = MagicMock(is_connected=True)
        dispatcher = RequestDispatcher(
            TransportCapabilities(streaming=False, background=True, actor=actor)
        )
        descriptor = RequestDescriptor(url="https://example.com/a")
        assert dispatcher.select_transport(descriptor).kind == TransportKind.DELEGATED

    def test_background_local_file_not_delegated(self) -> None:
        actor = MagicMock(is_connected=True)
        dispatcher = RequestDispatcher(
            TransportCapabilities(streaming=False, background=True, actor=actor)
        )
        descriptor = RequestDescriptor(url="file:///tmp/a.png")
        assert dispatcher.select_transport(descriptor).kind == TransportKind.BUFFERED

    def test_streaming_wins_over_delegation(self) -> None:
        actor = MagicMock(is_connected=True)
        dispatcher = RequestDispatcher(
            TransportCapabilities(streaming=True, background=True, actor=actor)
        )
        descriptor = RequestDescriptor(url="https://example.com/a")
        assert dispatcher.select_transport(descriptor).kind == TransportKind.STREAMING

    @pytest.mark.parametrize(
        "caps",
        [
            TransportCapabilities(streaming=False),
            TransportCapabilities(streaming=False, background=True, actor=None),
            TransportCapabilities(streaming=False, background=False, actor=MagicMock()),
        ],
    )
    def test_falls_back_to_buffered(self, caps: TransportCapabilities) -> None:
        dispatcher = RequestDispatcher(caps)
        descriptor = RequestDescriptor(url="https://example.com/a")
        assert dispatcher.select_transport(descriptor).kind == TransportKind.BUFFERED


class TestDispatch:
    @pytest.mark.asyncio
    async def test_text_response_with_cache_metadata(self, mock_client, streaming: bool) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                text="hello",
                headers={"Cache-Control": "max-age=60", "Expires": "Wed, 21 Oct 2015 07:28:00 GMT"},
            )

        client = mock_client(handler)
        dispatcher = RequestDispatcher(
            TransportCapabilities(streaming=streaming), client=client, anonymous_client=client
        )
        result = await dispatcher.request(RequestDescriptor(url="https://example.com/a.txt"))

        assert result.ok
        assert result.data == "hello"
        assert result.cache_control == "max-age=60"
        assert result.expires == "Wed, 21 Oct 2015 07:28:00 GMT"

    @pytest.mark.asyncio
    async def test_json_sets_accept_header_and_parses(self, mock_client, streaming: bool) -> None:
        seen: dict[str, str] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["accept"] = request.headers.get("accept", "")
            return httpx.Response(200, json={"version": 8})

        client = mock_client(handler)
        dispatcher = RequestDispatcher(
            TransportCapabilities(streaming=streaming), client=client, anonymous_client=client
        )
        results, callback = _collect()
        dispatcher.get_json(RequestDescriptor(url="https://example.com/style.json"), callback)
        await _settle(dispatcher)

        callback.assert_called_once()
        assert results[0].data == {"version": 8}
        assert seen["accept"] == "application/json"

    @pytest.mark.asyncio
    async def test_malformed_json_yields_parse_error(self, mock_client, streaming: bool) -> None:
        client = mock_client(lambda request: httpx.Response(200, text="{not json"))
        dispatcher = RequestDispatcher(
            TransportCapabilities(streaming=streaming), client=client, anonymous_client=client
        )
        result = await dispatcher.request(
            RequestDescriptor(url="https://example.com/style.json", response_type=ResponseType.JSON)
        )
        assert isinstance(result.error, ParseError)

    @pytest.mark.asyncio
    async def test_array_buffer_returns_bytes(self, mock_client, streaming: bool) -> None:
        client = mock_client(lambda request: httpx.Response(200, content=b"\x00\x01\x02"))
        dispatcher = RequestDispatcher(
            TransportCapabilities(streaming=streaming), client=client, anonymous_client=client
        )
        results, callback = _collect()
        dispatcher.get_array_buffer(RequestDescriptor(url="https://example.com/t.pbf"), callback)
        await _settle(dispatcher)
        assert results[0].data == b"\x00\x01\x02"

    @pytest.mark.asyncio
    async def test_http_error_status(self, mock_client, streaming: bool) -> None:
        client = mock_client(lambda request: httpx.Response(404))
        dispatcher = RequestDispatcher(
            TransportCapabilities(streaming=streaming), client=client, anonymous_client=client
        )
        result = await dispatcher.request(RequestDescriptor(url="https://example.com/missing"))
        assert isinstance(result.error, HTTPStatusError)
        assert result.error.status == 404
        assert result.error.message == "Not Found"
        assert result.error.url == "https://example.com/missing"

    @pytest.mark.asyncio
    async def test_unauthorized_first_party_request(self, mock_client) -> None:
        client = mock_client(lambda request: httpx.Response(401))
        dispatcher = RequestDispatcher(client=client, anonymous_client=client)
        result = await dispatcher.request(
            RequestDescriptor(url="https://api.mapbox.com/styles/v1/x?access_token=bad")
        )
        assert isinstance(result.error, HTTPStatusError)
        assert "invalid access token" in result.error.message

    @pytest.mark.asyncio
    async def test_connection_failure_is_transport_error(self, mock_client, streaming: bool) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = mock_client(handler)
        dispatcher = RequestDispatcher(
            TransportCapabilities(streaming=streaming), client=client, anonymous_client=client
        )
        result = await dispatcher.request(RequestDescriptor(url="https://example.com/a"))
        assert isinstance(result.error, TransportError)
        assert result.error.message == "connection refused"

    @pytest.mark.asyncio
    async def test_post_data_sends_body(self, mock_client) -> None:
        seen: dict[str, object] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["body"] = request.content
            return httpx.Response(201, text="created")

        client = mock_client(handler)
        dispatcher = RequestDispatcher(client=client, anonymous_client=client)
        results, callback = _collect()
        dispatcher.post_data(
            RequestDescriptor(url="https://events.example.com/v2", body='{"event":"load"}'),
            callback,
        )
        await _settle(dispatcher)

        assert seen == {"method": "POST", "body": b'{"event":"load"}'}
        assert results[0].data == "created"

    @pytest.mark.asyncio
    async def test_custom_headers_forwarded(self, mock_client) -> None:
        seen: dict[str, str] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["x-custom"] = request.headers.get("x-custom", "")
            return httpx.Response(200)

        client = mock_client(handler)
        dispatcher = RequestDispatcher(client=client, anonymous_client=client)
        await dispatcher.request(
            RequestDescriptor(
                url="https://example.com", method=RequestMethod.PUT, headers={"X-Custom": "1"}
            )
        )
        assert seen["x-custom"] == "1"

    @pytest.mark.asyncio
    async def test_resource_timing_only_when_requested(self, mock_client) -> None:
        client = mock_client(lambda request: httpx.Response(200, text="ok"))
        dispatcher = RequestDispatcher(client=client, anonymous_client=client)

        plain = await dispatcher.request(RequestDescriptor(url="https://example.com/a"))
        timed = await dispatcher.request(
            RequestDescriptor(url="https://example.com/a", collect_resource_timing=True)
        )

        assert plain.resource_timing is None
        assert timed.resource_timing is not None
        assert timed.resource_timing[0]["name"] == "https://example.com/a"
        assert timed.resource_timing[0]["duration_ms"] >= 0

    @pytest.mark.asyncio
    async def test_local_file_read_with_status_zero(self, tmp_path) -> None:
        path = tmp_path / "style.json"
        path.write_text(json.dumps({"layers": []}))
        dispatcher = RequestDispatcher(TransportCapabilities(streaming=True))

        result = await dispatcher.request(
            RequestDescriptor(url=path.as_uri(), response_type=ResponseType.JSON)
        )

        assert result.ok
        assert result.data == {"layers": []}

    @pytest.mark.asyncio
    async def test_missing_local_file_is_transport_error(self, tmp_path) -> None:
        dispatcher = RequestDispatcher()
        result = await dispatcher.request(
            RequestDescriptor(url=(tmp_path / "missing.png").as_uri())
        )
        assert isinstance(result.error, TransportError)

    @pytest.mark.asyncio
    async def test_callback_exception_does_not_escape(self, mock_client) -> None:
        client = mock_client(lambda request: httpx.Response(200))
        dispatcher = RequestDispatcher(client=client, anonymous_client=client)
        callback = MagicMock(side_effect=RuntimeError("boom"))

        dispatcher.dispatch(RequestDescriptor(url="https://example.com"), callback)
        await _settle(dispatcher)

        callback.assert_called_once()
        assert dispatcher.in_flight == 0


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_request_never_completes(self, mock_client, streaming: bool) -> None:
        started = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            started.set()
            await asyncio.sleep(10)
            return httpx.Response(200)

        client = mock_client(handler)
        dispatcher = RequestDispatcher(
            TransportCapabilities(streaming=streaming), client=client, anonymous_client=client
        )
        callback = MagicMock()

        handle = dispatcher.dispatch(RequestDescriptor(url="https://example.com/slow"), callback)
        await asyncio.wait_for(started.wait(), timeout=1)
        handle.cancel()
        handle.cancel()
        await _settle(dispatcher)

        callback.assert_not_called()
        assert dispatcher.in_flight == 0

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, mock_client) -> None:
        handler = MagicMock(return_value=httpx.Response(200))
        client = mock_client(handler)
        dispatcher = RequestDispatcher(client=client, anonymous_client=client)
        callback = MagicMock()

        handle = dispatcher.dispatch(RequestDescriptor(url="https://example.com"), callback)
        handle.cancel()
        await _settle(dispatcher)

        callback.assert_not_called()
        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancel_after_completion_is_noop(self, mock_client) -> None:
        client = mock_client(lambda request: httpx.Response(200, text="done"))
        dispatcher = RequestDispatcher(client=client, anonymous_client=client)
        results, callback = _collect()

        handle = dispatcher.dispatch(RequestDescriptor(url="https://example.com"), callback)
        await _settle(dispatcher)
        handle.cancel()

        callback.assert_called_once()
        assert handle.done

    @pytest.mark.asyncio
    async def test_awaiting_caller_cancellation_aborts_request(self, mock_client) -> None:
        started = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            started.set()
            await asyncio.sleep(10)
            return httpx.Response(200)

        client = mock_client(handler)
        dispatcher = RequestDispatcher(client=client, anonymous_client=client)

        waiter = asyncio.create_task(dispatcher.request(RequestDescriptor(url="https://example.com")))
        await asyncio.wait_for(started.wait(), timeout=1)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
        await _settle(dispatcher)
        assert dispatcher.in_flight == 0


class TestReferrerAndCredentials:
    @pytest.mark.asyncio
    async def test_referrer_from_page_origin(self, mock_client, monkeypatch) -> None:
        monkeypatch.setattr(config, "page_origin", "https://maps.example.com")
        monkeypatch.setattr(config, "page_path", "/view")
        seen: dict[str, str | None] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["referer"] = request.headers.get("referer")
            return httpx.Response(200)

        client = mock_client(handler)
        dispatcher = RequestDispatcher(client=client, anonymous_client=client)
        await dispatcher.request(RequestDescriptor(url="https://tiles.example.com/a.png"))
        assert seen["referer"] == "https://maps.example.com/view"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("origin", ["", "null", "file://"])
    async def test_no_referrer_for_opaque_origins(self, mock_client, monkeypatch, origin) -> None:
        monkeypatch.setattr(config, "page_origin", origin)
        seen: dict[str, str | None] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["referer"] = request.headers.get("referer")
            return httpx.Response(200)

        client = mock_client(handler)
        dispatcher = RequestDispatcher(client=client, anonymous_client=client)
        await dispatcher.request(RequestDescriptor(url="https://tiles.example.com/a.png"))
        assert seen["referer"] is None

    @pytest.mark.asyncio
    async def test_background_context_uses_handed_referrer(self, mock_client, monkeypatch) -> None:
        monkeypatch.setattr(config, "page_origin", "https://maps.example.com")
        seen: dict[str, str | None] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["referer"] = request.headers.get("referer")
            return httpx.Response(200)

        client = mock_client(handler)
        dispatcher = RequestDispatcher(
            TransportCapabilities(background=True, referrer="https://parent.example.com/page"),
            client=client,
            anonymous_client=client,
        )
        await dispatcher.request(RequestDescriptor(url="https://tiles.example.com/a.png"))
        assert seen["referer"] == "https://parent.example.com/page"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "url, credentials, expected",
        [
            ("https://tiles.example.com/a", CredentialsMode.INCLUDE, "credentialed"),
            ("https://tiles.example.com/a", CredentialsMode.SAME_ORIGIN, "anonymous"),
            ("https://maps.example.com/a", CredentialsMode.SAME_ORIGIN, "credentialed"),
        ],
    )
    async def test_client_choice_follows_credentials_mode(
        self, mock_client, monkeypatch, url, credentials, expected
    ) -> None:
        monkeypatch.setattr(config, "page_origin", "https://maps.example.com")
        credentialed = mock_client(lambda request: httpx.Response(200, text="credentialed"))
        anonymous = mock_client(lambda request: httpx.Response(200, text="anonymous"))
        dispatcher = RequestDispatcher(client=credentialed, anonymous_client=anonymous)

        result = await dispatcher.request(RequestDescriptor(url=url, credentials=credentials))

        assert result.data == expected
