"""
Unit Tests for the Object Store and Blob Store Clients

HTTP is faked with httpx.MockTransport; every request is recorded so tests
can assert which path (public or signed) was taken.
"""

from datetime import datetime, timezone
from urllib.parse import unquote

import httpx
import pytest

from menu_tts.core.exceptions import StoreUnavailableError
from menu_tts.infrastructure.storage.blob_store import BlobStoreClient
from menu_tts.infrastructure.storage.object_store import ObjectStoreClient, parse_list_response
from menu_tts.infrastructure.storage.request_signer import RequestSigner

ENDPOINT = "https://acct123.r2.cloudflarestorage.com"
PUBLIC_URL = "https://pub.example.com"
KEY = "89f2fb76daa617687e48c7ba21f9e264f24c3560ada727a92aff60e1e4f3021a.mp3"

LIST_XML = """<?xml version="1.0" encoding="UTF-8"?>
<ListBucketResult xmlns="http://s3.amazonaws.com/doc/2006-03-01/">
  <Name>tts-cache</Name>
  <Contents>
    <Key>abc/one.mp3</Key>
    <LastModified>2024-01-15T08:30:00.000Z</LastModified>
    <Size>2048</Size>
  </Contents>
  <Contents>
    <Key>abc/a&amp;b.json</Key>
    <LastModified>2024-01-16T09:00:00.000Z</LastModified>
  </Contents>
  <Contents>
    <Size>10</Size>
  </Contents>
</ListBucketResult>"""


class Recorder:
    """MockTransport handler driven by a routing function."""

    def __init__(self, route):
        self.route = route
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.route(request)

    @property
    def signed(self):
        return [r for r in self.requests if "Authorization" in r.headers]


def make_signer():
    return RequestSigner(
        access_key_id="AKIDEXAMPLE",
        secret_access_key="secret",
        host="acct123.r2.cloudflarestorage.com",
        bucket="tts-cache",
        clock=lambda: datetime(2024, 1, 15, 8, 30, tzinfo=timezone.utc),
    )


def make_client(route, public_url=PUBLIC_URL):
    recorder = Recorder(route)
    http = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    client = ObjectStoreClient(
        signer=make_signer(), endpoint=ENDPOINT, http_client=http, public_url=public_url
    )
    return client, recorder


@pytest.mark.unit
class TestObjectStoreReads:
    async def test_public_hit_skips_signed_path(self):
        client, recorder = make_client(lambda r: httpx.Response(200, content=b"ID3public"))

        assert await client.get(KEY) == b"ID3public"
        assert len(recorder.requests) == 1
        assert recorder.requests[0].url.host == "pub.example.com"
        assert recorder.signed == []

    async def test_public_miss_falls_back_to_signed_get(self):
        def route(request):
            if request.url.host == "pub.example.com":
                return httpx.Response(404)
            return httpx.Response(200, content=b"ID3signed")

        client, recorder = make_client(route)

        assert await client.get(KEY) == b"ID3signed"
        signed = recorder.signed[0]
        assert signed.url.path == f"/tts-cache/{KEY}"
        assert signed.headers["x-amz-date"] == "20240115T083000Z"

    async def test_signed_404_is_none(self):
        client, _ = make_client(lambda r: httpx.Response(404), public_url=None)

        assert await client.get(KEY) is None

    async def test_network_error_is_none(self):
        def route(request):
            raise httpx.ConnectError("refused", request=request)

        client, _ = make_client(route)

        assert await client.get(KEY) is None

    async def test_exists_uses_ranged_public_probe(self):
        client, recorder = make_client(lambda r: httpx.Response(206, content=b"I"))

        assert await client.exists(KEY) is True
        assert recorder.requests[0].headers["Range"] == "bytes=0-0"
        assert recorder.signed == []

    async def test_exists_falls_back_to_signed_head(self):
        def route(request):
            if request.url.host == "pub.example.com":
                return httpx.Response(404)
            assert request.method == "HEAD"
            return httpx.Response(200)

        client, recorder = make_client(route)

        assert await client.exists(KEY) is True
        assert len(recorder.signed) == 1

    async def test_exists_false_when_absent(self):
        client, _ = make_client(lambda r: httpx.Response(404))

        assert await client.exists(KEY) is False

    async def test_probe_public_without_public_url(self):
        client, recorder = make_client(lambda r: httpx.Response(200), public_url=None)

        assert await client.probe_public(KEY) is False
        assert recorder.requests == []


@pytest.mark.unit
class TestObjectStoreWrites:
    async def test_put_is_signed_with_metadata_headers(self):
        client, recorder = make_client(lambda r: httpx.Response(200))

        ok = await client.put(KEY, b"ID3audio", {"text": "上ロース", "prewarmed": "false"})

        assert ok is True
        request = recorder.requests[0]
        assert request.method == "PUT"
        assert request.url.host == "acct123.r2.cloudflarestorage.com"
        assert request.headers["Content-Type"] == "audio/mpeg"
        assert unquote(request.headers["x-amz-meta-text"]) == "上ロース"
        assert request.headers["x-amz-meta-prewarmed"] == "false"
        assert request.content == b"ID3audio"

    async def test_put_failure_status_is_false(self):
        client, _ = make_client(lambda r: httpx.Response(403))

        assert await client.put(KEY, b"ID3audio") is False

    async def test_delete(self):
        client, recorder = make_client(lambda r: httpx.Response(204))

        assert await client.delete(KEY) is True
        assert recorder.requests[0].method == "DELETE"
        assert "Authorization" in recorder.requests[0].headers


@pytest.mark.unit
class TestObjectStoreListing:
    async def test_list_parses_contents(self):
        client, recorder = make_client(lambda r: httpx.Response(200, text=LIST_XML))

        objects = await client.list("abc/")

        request = recorder.requests[0]
        assert request.url.path == "/tts-cache"
        assert request.url.params["list-type"] == "2"
        assert request.url.params["prefix"] == "abc/"
        assert [o.key for o in objects] == ["abc/one.mp3", "abc/a&b.json"]
        assert objects[0].size == 2048
        assert objects[1].size == 0

    async def test_list_failure_raises(self):
        client, _ = make_client(lambda r: httpx.Response(500))

        with pytest.raises(StoreUnavailableError):
            await client.list("abc/")

    async def test_list_network_error_raises(self):
        def route(request):
            raise httpx.ReadTimeout("slow", request=request)

        client, _ = make_client(route)

        with pytest.raises(StoreUnavailableError):
            await client.list()

    def test_parse_empty_listing(self):
        assert parse_list_response("<ListBucketResult></ListBucketResult>") == []


def make_blob(route, token=None):
    recorder = Recorder(route)
    http = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    return BlobStoreClient("https://blob.example.com", http, token=token), recorder


@pytest.mark.unit
class TestBlobStore:
    async def test_audio_url_uses_namespace(self):
        client, _ = make_blob(lambda r: httpx.Response(200))

        assert client.audio_url("abc") == "https://blob.example.com/tts-cache/abc.mp3"

    async def test_get_probes_then_downloads(self):
        client, recorder = make_blob(lambda r: httpx.Response(200, content=b"ID3blob"))

        assert await client.get("abc") == b"ID3blob"
        assert [r.method for r in recorder.requests] == ["HEAD", "GET"]

    async def test_get_absent_skips_download(self):
        client, recorder = make_blob(lambda r: httpx.Response(404))

        assert await client.get("abc") is None
        assert [r.method for r in recorder.requests] == ["HEAD"]

    async def test_put_without_token_is_skipped(self):
        client, recorder = make_blob(lambda r: httpx.Response(200))

        assert await client.put("abc", b"ID3") is False
        assert recorder.requests == []

    async def test_put_with_token_sends_bearer(self):
        client, recorder = make_blob(lambda r: httpx.Response(200), token="rw-token")

        assert await client.put("abc", b"ID3") is True
        assert recorder.requests[0].headers["Authorization"] == "Bearer rw-token"
