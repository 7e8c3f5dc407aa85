"""
Unit tests for the HTTP stream prober.

HTTP is mocked with respx. The no-hang guarantee is checked with an
httpx.MockTransport whose body raises as soon as anything reads it.
"""
import httpx
import pytest
import respx

from models import ProbeErrorKind, ProbeSeverity
from stream_prober import (
    StreamProber,
    check_stream_status,
    classify_body,
    classify_status,
    is_safe_to_read,
)

STREAM_URL = "http://provider.test/live/u/p/100.ts"


class ExplodingStream(httpx.AsyncByteStream):
    """A body that fails the test if it is ever consumed."""

    async def __aiter__(self):
        raise AssertionError("response body must not be read")
        yield b""  # pragma: no cover


def html_response(body: str, status: int = 200) -> httpx.Response:
    return httpx.Response(
        status,
        headers={"content-type": "text/html; charset=utf-8"},
        content=body.encode(),
    )


@pytest.fixture
def prober():
    return StreamProber(timeout=2.0, connect_timeout=1.0)


class TestClassifyStatus:
    def test_success_is_none(self):
        assert classify_status(200) is None
        assert classify_status(206) is None

    @pytest.mark.parametrize("status,reason", [(401, "Unauthorized"), (403, "Forbidden")])
    def test_auth(self, status, reason):
        outcome = classify_status(status, reason)
        assert outcome.kind == ProbeErrorKind.AUTH
        assert outcome.message == f"Access Denied ({status}): {reason}"

    def test_not_found(self):
        outcome = classify_status(404, "Not Found")
        assert outcome.kind == ProbeErrorKind.NOT_FOUND
        assert outcome.message == "Stream Not Found"

    def test_other_error(self):
        outcome = classify_status(502, "Bad Gateway")
        assert outcome.kind == ProbeErrorKind.HTTP
        assert outcome.message == "HTTP Error 502: Bad Gateway"


class TestClassifyBody:
    def test_playlist_is_none(self):
        assert classify_body("#EXTM3U\n#EXTINF:-1,Chan\nhttp://x/1.ts") is None

    def test_html_playlist_marker_is_none(self):
        assert classify_body("<html><body>#EXTM3U</body></html>") is None

    def test_leading_whitespace_and_case(self):
        outcome = classify_body("   \n<!DOCTYPE HTML><html>Error 403</html>")
        assert outcome.message == "Stream Access Denied (Auth Failed)"

    def test_auth_keyword_is_case_sensitive(self):
        outcome = classify_body("<html>forbidden</html>")
        assert outcome.kind == ProbeErrorKind.FORMAT


class TestIsSafeToRead:
    def test_partial_content(self):
        assert is_safe_to_read(httpx.Response(206, headers={"content-type": "video/mp2t"}))

    def test_html(self):
        assert is_safe_to_read(httpx.Response(200, headers={"content-type": "text/html"}))

    def test_small_length(self):
        assert is_safe_to_read(httpx.Response(200, headers={"content-length": "99999"}))

    def test_large_length(self):
        assert not is_safe_to_read(httpx.Response(200, headers={"content-length": "100000"}))

    def test_no_length_no_type(self):
        assert not is_safe_to_read(httpx.Response(200, headers={"content-type": "video/mp2t"}))

    def test_garbage_length(self):
        assert not is_safe_to_read(httpx.Response(200, headers={"content-length": "lots"}))


class TestProbeHttpErrors:
    @pytest.mark.asyncio
    @respx.mock
    async def test_forbidden(self, prober):
        respx.get(STREAM_URL).mock(return_value=httpx.Response(403))
        outcome = await prober.probe(STREAM_URL)
        assert outcome.kind == ProbeErrorKind.AUTH
        assert outcome.severity == ProbeSeverity.HARD
        assert outcome.message == "Access Denied (403): Forbidden"
        assert outcome.is_auth_failure

    @pytest.mark.asyncio
    @respx.mock
    async def test_not_found(self, prober):
        respx.get(STREAM_URL).mock(return_value=httpx.Response(404))
        outcome = await prober.probe(STREAM_URL)
        assert outcome.message == "Stream Not Found"
        assert not outcome.is_auth_failure

    @pytest.mark.asyncio
    @respx.mock
    async def test_server_error(self, prober):
        respx.get(STREAM_URL).mock(return_value=httpx.Response(503))
        outcome = await prober.probe(STREAM_URL)
        assert outcome.message == "HTTP Error 503: Service Unavailable"

    @pytest.mark.asyncio
    @respx.mock
    async def test_connection_error(self, prober):
        respx.get(STREAM_URL).mock(side_effect=httpx.ConnectError("refused"))
        outcome = await prober.probe(STREAM_URL)
        assert outcome.kind == ProbeErrorKind.NETWORK
        assert outcome.message == "Connection failed: refused"

    @pytest.mark.asyncio
    @respx.mock
    async def test_timeout(self, prober):
        respx.get(STREAM_URL).mock(side_effect=httpx.ReadTimeout("timed out"))
        outcome = await prober.probe(STREAM_URL)
        assert outcome.message == "Connection failed: timed out"


class TestProbeSoftErrors:
    @pytest.mark.asyncio
    @respx.mock
    async def test_html_with_auth_keyword(self, prober):
        respx.get(STREAM_URL).mock(
            return_value=html_response("<html><body><h1>Forbidden</h1></body></html>")
        )
        outcome = await prober.probe(STREAM_URL)
        assert outcome.message == "Stream Access Denied (Auth Failed)"
        assert outcome.severity == ProbeSeverity.SOFT
        assert outcome.is_auth_failure

    @pytest.mark.asyncio
    @respx.mock
    async def test_html_without_auth_keyword(self, prober):
        respx.get(STREAM_URL).mock(
            return_value=html_response("<!doctype html><html><body>Welcome to our portal</body></html>")
        )
        outcome = await prober.probe(STREAM_URL)
        assert outcome.message == "Invalid Stream Format (HTML response)"
        assert outcome.kind == ProbeErrorKind.FORMAT

    @pytest.mark.asyncio
    @respx.mock
    async def test_html_typed_playlist_is_ok(self, prober):
        respx.get(STREAM_URL).mock(
            return_value=html_response("<html>\n#EXTM3U\n#EXTINF:-1,Chan\nhttp://x/1.ts</html>")
        )
        assert await prober.probe(STREAM_URL) is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_partial_content_media_is_ok(self, prober):
        respx.get(STREAM_URL).mock(
            return_value=httpx.Response(206, headers={"content-type": "video/mp2t"}, content=b"\x47" * 2049)
        )
        assert await prober.probe(STREAM_URL) is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_small_body_checked_regardless_of_type(self, prober):
        respx.get(STREAM_URL).mock(
            return_value=httpx.Response(
                200,
                headers={"content-type": "application/octet-stream"},
                content=b"<html>Error: account expired</html>",
            )
        )
        outcome = await prober.probe(STREAM_URL)
        assert outcome.message == "Stream Access Denied (Auth Failed)"


class TestProbeRequest:
    @pytest.mark.asyncio
    @respx.mock
    async def test_sends_range_and_cache_headers(self, prober):
        route = respx.get(STREAM_URL).mock(return_value=httpx.Response(206, content=b"ok"))
        await prober.probe(STREAM_URL, user_agent="VLC/3.0.20 LibVLC/3.0.20")

        request = route.calls.last.request
        assert request.headers["Range"] == "bytes=0-2048"
        assert request.headers["Cache-Control"] == "no-cache"
        assert request.headers["User-Agent"] == "VLC/3.0.20 LibVLC/3.0.20"

    @pytest.mark.asyncio
    @respx.mock
    async def test_check_stream_status_returns_message(self):
        respx.get(STREAM_URL).mock(return_value=httpx.Response(401))
        assert await check_stream_status(STREAM_URL) == "Access Denied (401): Unauthorized"


class TestNoHangGuarantee:
    @pytest.mark.asyncio
    async def test_large_live_body_is_never_read(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                headers={"content-type": "video/mp2t", "content-length": "250000000"},
                stream=ExplodingStream(),
            )

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            prober = StreamProber(client=client, timeout=2.0, connect_timeout=1.0)
            assert await prober.probe(STREAM_URL) is None

    @pytest.mark.asyncio
    async def test_unbounded_body_without_length_is_never_read(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers={"content-type": "video/mp2t"}, stream=ExplodingStream())

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            prober = StreamProber(client=client, timeout=2.0, connect_timeout=1.0)
            assert await prober.probe(STREAM_URL) is None
