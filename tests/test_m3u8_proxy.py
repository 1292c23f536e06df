#!/usr/bin/env python3
"""
M3U8 代理端到端测试
使用内存缓存和预设上游响应，覆盖请求处理的完整流程
"""
from urllib.parse import quote_plus

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from conftest import FakeFetcher, InMemoryCacheStore
from models.cached_entry import CachedEntry
from routes import health, proxy as proxy_routes
from services.cache_store import generate_cache_key
from services.m3u8_proxy import M3U8ProxyService
from services.upstream_fetcher import (
    UpstreamReadError,
    UpstreamResponse,
    UpstreamTimeoutError,
    UpstreamTransportError,
)

PLAYLIST_URL = "https://cdn.example/videos/show/index.m3u8"
SEGMENT_URL = "https://cdn.example/videos/show/seg-000.ts"
IMAGE_URL = "https://cdn.example/videos/show/thumb.png"

PLAYLIST_BODY = b"#EXTM3U\n#EXTINF:9.009,\nseg-000.ts\n#EXTINF:9.009,\nhttps://other.cdn/ad.ts\n"


def upstream(status_code=200, headers=None, content=b""):
    return UpstreamResponse(status_code=status_code, headers=httpx.Headers(headers or {}), content=content)


def proxied(url):
    return "m3u8-proxy?url=" + quote_plus(url, safe="")


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def cache_store():
    return InMemoryCacheStore()


@pytest.fixture
def client(fetcher, cache_store):
    app = FastAPI()
    app.include_router(health.router)
    app.include_router(proxy_routes.router)
    app.state.m3u8_proxy_service = M3U8ProxyService(fetcher=fetcher, cache_store=cache_store)
    with TestClient(app) as test_client:
        yield test_client


class TestRequestValidation:
    """参数校验测试"""

    def test_missing_url(self, client, fetcher):
        response = client.get("/m3u8-proxy")
        assert response.status_code == 400
        assert response.text == "Missing 'url' query parameter"
        assert fetcher.calls == []

    def test_empty_url(self, client):
        response = client.get("/m3u8-proxy", params={"url": ""})
        assert response.status_code == 400
        assert response.text == "Missing 'url' query parameter"

    @pytest.mark.parametrize("url", ["not a url", "ftp://cdn.example/a.m3u8", "/relative/index.m3u8", "https://"])
    def test_invalid_url(self, client, fetcher, url):
        response = client.get("/m3u8-proxy", params={"url": url})
        assert response.status_code == 400
        assert response.text == "Invalid 'url' query parameter"
        assert fetcher.calls == []

    @pytest.mark.parametrize("referer", ["%zz", "https://例え.jp/", "https%3A%2F%2Fsite.example%2F%FF", "a%0D%0Ab"])
    def test_invalid_referer(self, client, fetcher, referer):
        response = client.get("/m3u8-proxy", params={"url": IMAGE_URL, "referer": referer})
        assert response.status_code == 400
        assert response.text == "Invalid 'referer' query parameter"
        assert fetcher.calls == []


class TestPlaylistProxy:
    """播放列表代理测试"""

    def test_playlist_rewritten(self, client, fetcher, cache_store):
        fetcher.responses[PLAYLIST_URL] = upstream(
            headers={
                "Content-Type": "application/vnd.apple.mpegurl",
                "ETag": '"v1"',
                "Set-Cookie": "session=secret",
                "Server": "nginx",
                "Content-Length": str(len(PLAYLIST_BODY)),
            },
            content=PLAYLIST_BODY
        )

        response = client.get("/m3u8-proxy", params={"url": PLAYLIST_URL})

        assert response.status_code == 200
        assert response.text.split("\n") == [
            "#EXTM3U",
            "#EXTINF:9.009,",
            proxied(SEGMENT_URL),
            "#EXTINF:9.009,",
            proxied("https://other.cdn/ad.ts"),
            "",
        ]
        assert response.headers["content-type"] == "application/vnd.apple.mpegurl"
        assert response.headers["etag"] == '"v1"'
        assert "set-cookie" not in response.headers
        assert "server" not in response.headers
        assert response.headers["content-length"] == str(len(response.content))

        # 缓存的是改写后的响应体
        entry = cache_store.entries[generate_cache_key(PLAYLIST_URL)]
        assert entry.status_code == 200
        assert entry.body == response.content
        assert entry.headers["Content-Type"] == ["application/vnd.apple.mpegurl"]
        assert cache_store.writes[0][2] == 3600

    def test_second_request_served_from_cache(self, client, fetcher):
        fetcher.responses[PLAYLIST_URL] = upstream(
            headers={"Content-Type": "application/vnd.apple.mpegurl"},
            content=PLAYLIST_BODY
        )

        first = client.get("/m3u8-proxy", params={"url": PLAYLIST_URL})
        second = client.get("/m3u8-proxy", params={"url": PLAYLIST_URL})

        assert len(fetcher.calls) == 1
        assert second.status_code == first.status_code
        assert second.content == first.content
        assert second.headers["content-type"] == first.headers["content-type"]

    def test_referer_decoded_once_more(self, client, fetcher):
        """referer 参数在查询字符串解码后还会再解码一次"""
        fetcher.responses[PLAYLIST_URL] = upstream(content=b"#EXTM3U\n")

        client.get("/m3u8-proxy", params={"url": PLAYLIST_URL, "referer": "https%3A%2F%2Fsite.example%2F"})

        assert fetcher.calls == [(PLAYLIST_URL, "https://site.example/")]

    def test_no_referer_passes_none(self, client, fetcher):
        fetcher.responses[PLAYLIST_URL] = upstream(content=b"#EXTM3U\n")

        client.get("/m3u8-proxy", params={"url": PLAYLIST_URL})

        assert fetcher.calls == [(PLAYLIST_URL, None)]

    def test_playlist_with_query_not_rewritten(self, client, fetcher):
        """带查询参数的地址不以 .m3u8 结尾，按原样转发"""
        url = PLAYLIST_URL + "?token=abc"
        fetcher.responses[url] = upstream(content=PLAYLIST_BODY)

        response = client.get("/m3u8-proxy", params={"url": url})

        assert response.content == PLAYLIST_BODY

    def test_non_utf8_playlist_rewritten(self, client, fetcher):
        fetcher.responses[PLAYLIST_URL] = upstream(content=b"#EXTM3U\nseg-\xe9.ts\n")

        response = client.get("/m3u8-proxy", params={"url": PLAYLIST_URL})

        assert response.status_code == 200
        assert response.content.endswith(b"%2Fseg-%E9.ts\n")

    def test_transform_error(self, client, fetcher, cache_store):
        body = b"#EXTM3U\n" + b"a" * (64 * 1024 + 1) + b"\n"
        fetcher.responses[PLAYLIST_URL] = upstream(content=body)

        response = client.get("/m3u8-proxy", params={"url": PLAYLIST_URL})

        assert response.status_code == 500
        assert response.text == "Error transforming M3U8 content"
        assert cache_store.entries == {}


class TestPassThrough:
    """非改写响应测试"""

    def test_error_status_not_cached(self, client, fetcher, cache_store):
        fetcher.responses[PLAYLIST_URL] = upstream(
            404,
            headers={"Content-Type": "text/html", "Content-Length": "9", "ETag": '"x"'},
            content=b"not found"
        )

        response = client.get("/m3u8-proxy", params={"url": PLAYLIST_URL})

        assert response.status_code == 404
        assert response.content == b"not found"
        assert response.headers["content-length"] == "9"
        assert "etag" not in response.headers
        assert cache_store.writes == []

    def test_not_modified_without_validators(self, client, fetcher, cache_store):
        fetcher.responses[SEGMENT_URL] = upstream(304, headers={"ETag": '"v1"', "Last-Modified": "x"})

        response = client.get("/m3u8-proxy", params={"url": SEGMENT_URL})

        assert response.status_code == 304
        assert "etag" not in response.headers
        assert "last-modified" not in response.headers
        assert cache_store.writes == []

    def test_partial_segment_cached_untransformed(self, client, fetcher, cache_store):
        body = b"\x47\x40\x00\x10seg-001.ts"
        fetcher.responses[SEGMENT_URL] = upstream(
            206,
            headers={
                "Content-Type": "video/mp2t",
                "Content-Range": "bytes 0-13/1000",
                "Accept-Ranges": "bytes",
                "Content-Length": str(len(body)),
            },
            content=body
        )

        response = client.get("/m3u8-proxy", params={"url": SEGMENT_URL})

        assert response.status_code == 206
        assert response.content == body
        assert response.headers["content-range"] == "bytes 0-13/1000"
        assert response.headers["content-length"] == str(len(body))
        entry = cache_store.entries[generate_cache_key(SEGMENT_URL)]
        assert entry.status_code == 206
        assert entry.body == body

    def test_static_asset_forwards_content_length(self, client, fetcher, cache_store):
        body = b"\x89PNG\r\n\x1a\n"
        fetcher.responses[IMAGE_URL] = upstream(
            headers={"Content-Type": "image/png", "Content-Length": str(len(body))},
            content=body
        )

        response = client.get("/m3u8-proxy", params={"url": IMAGE_URL})

        assert response.status_code == 200
        assert response.content == body
        assert response.headers["content-type"] == "image/png"
        assert response.headers["content-length"] == str(len(body))
        assert generate_cache_key(IMAGE_URL) in cache_store.entries

    def test_encoded_upstream_length_not_forwarded(self, client, fetcher):
        """上游响应经过解压时，Content-Length 按实际响应体计算"""
        body = b"\x89PNG\r\n\x1a\n"
        fetcher.responses[IMAGE_URL] = upstream(
            headers={"Content-Type": "image/png", "Content-Length": "3", "Content-Encoding": "gzip"},
            content=body
        )

        response = client.get("/m3u8-proxy", params={"url": IMAGE_URL})

        assert response.headers["content-length"] == str(len(body))
        assert "content-encoding" not in response.headers


class TestUpstreamErrors:
    """上游错误映射测试"""

    @pytest.mark.parametrize("error, status_code, message", [
        (UpstreamTimeoutError("timeout"), 504, "Upstream server timed out"),
        (UpstreamTransportError("refused"), 502, "Failed to fetch content from upstream server"),
        (UpstreamReadError("reset"), 500, "Failed to read response from upstream server"),
    ])
    def test_error_mapping(self, client, fetcher, cache_store, error, status_code, message):
        fetcher.responses[PLAYLIST_URL] = error

        response = client.get("/m3u8-proxy", params={"url": PLAYLIST_URL})

        assert response.status_code == status_code
        assert response.text == message
        assert cache_store.writes == []


class TestCacheReplay:
    """缓存命中测试"""

    def test_cached_entry_replayed_without_fetch(self, client, fetcher, cache_store):
        cache_store.entries[generate_cache_key(SEGMENT_URL)] = CachedEntry(
            status_code=206,
            headers={"Content-Type": ["video/mp2t"], "Content-Range": ["bytes 0-2/10"]},
            body=b"abc"
        )

        response = client.get("/m3u8-proxy", params={"url": SEGMENT_URL})

        assert fetcher.calls == []
        assert response.status_code == 206
        assert response.content == b"abc"
        assert response.headers["content-type"] == "video/mp2t"
        assert response.headers["content-range"] == "bytes 0-2/10"

    def test_cache_consulted_by_raw_url(self, client, fetcher, cache_store):
        """缓存 key 使用原始 URL，不同 URL 不会互相命中"""
        cache_store.entries[generate_cache_key(PLAYLIST_URL)] = CachedEntry(status_code=200, body=b"#EXTM3U\n")
        fetcher.responses[SEGMENT_URL] = upstream(206, content=b"xyz")

        response = client.get("/m3u8-proxy", params={"url": SEGMENT_URL})

        assert response.content == b"xyz"
        assert fetcher.calls == [(SEGMENT_URL, None)]


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.text == "OK"
