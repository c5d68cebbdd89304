from __future__ import annotations

import http.client
import io
import urllib.error

import pytest

import torblock.fetcher as fetcher
from torblock.errors import HttpStatusError, NetworkError
from torblock.netaddr import parse_ipv4, parse_ipv6


EXIT_ADDRESSES = """\
ExitNode 0011BD2485AD45D984EC4159C88FC066E5E3300E
Published 2024-05-01 12:00:00
LastStatus 2024-05-01 13:00:00
ExitAddress 203.0.113.5 2024-05-01 13:07:45
ExitNode 0091174DE56EAD2CCD5E7C3F1D7F3F3F4A8E2B11
Published 2024-05-01 11:00:00
LastStatus 2024-05-01 12:00:00
ExitAddress 198.51.100.77 2024-05-01 12:30:12
ExitAddress 2001:db8::dead:beef 2024-05-01 12:30:12
"""


class _Resp:
    def __init__(self, data: bytes, status: int = 200, headers=None):
        self._buf = io.BytesIO(data)
        self.status = status
        self.headers = headers or {}

    def read(self, n: int = -1) -> bytes:
        return self._buf.read(n)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def test_extract_candidates_tolerates_surrounding_text():
    tokens = fetcher.extract_candidates(EXIT_ADDRESSES)

    assert "203.0.113.5" in tokens
    assert "198.51.100.77" in tokens
    assert "2001:db8::dead:beef" in tokens
    # 40-char relay fingerprints are not address-shaped.
    assert not any(len(t) == 40 for t in tokens)


def test_classify_and_parse_splits_families_and_skips_bad_tokens():
    v4, v6, rejected = fetcher.classify_and_parse(
        ["203.0.113.5", "203.0.113.256", "2001:db8::1", "12:30:45", "2024"]
    )

    assert set(v4) == {parse_ipv4("203.0.113.5")}
    assert set(v6) == {parse_ipv6("2001:db8::1")}
    assert rejected == 3


def test_classify_and_parse_routes_mapped_tokens_to_ipv4():
    v4, v6, rejected = fetcher.classify_and_parse(["::ffff:c000:201", "::ffff:198.51.100.7"])

    assert set(v4) == {parse_ipv4("192.0.2.1"), parse_ipv4("198.51.100.7")}
    assert len(v6) == 0
    assert rejected == 0


def test_run_with_one_good_and_one_malformed_address():
    body = "ExitAddress 192.0.2.10 2024-05-01\nExitAddress 192.0.2.300 2024-05-01\n"
    f = fetcher.BlocklistFetcher("https://list.example/exit-addresses", fetch=lambda url, timeout: body)

    result = f.run()

    assert set(result.ipv4) == {parse_ipv4("192.0.2.10")}
    assert len(result.ipv6) == 0
    assert result.rejected >= 1


def test_run_parses_realistic_feed_and_uses_configured_timeout():
    seen = {}

    def fake_fetch(url, timeout):
        seen["url"] = url
        seen["timeout"] = timeout
        return EXIT_ADDRESSES

    f = fetcher.BlocklistFetcher("https://list.example/exit-addresses", fetch=fake_fetch)
    result = f.run()

    assert seen == {"url": "https://list.example/exit-addresses", "timeout": 10.0}
    assert set(result.ipv4) == {parse_ipv4("203.0.113.5"), parse_ipv4("198.51.100.77")}
    assert set(result.ipv6) == {parse_ipv6("2001:db8::dead:beef")}


def test_run_propagates_fetch_errors():
    def failing(url, timeout):
        raise HttpStatusError(503, url)

    f = fetcher.BlocklistFetcher("https://list.example/exit-addresses", fetch=failing)
    with pytest.raises(HttpStatusError) as ei:
        f.run()
    assert ei.value.status == 503


def test_fetch_text_returns_body(monkeypatch):
    captured = {}

    def fake_urlopen(req, timeout):
        captured["ua"] = req.get_header("User-agent")
        captured["timeout"] = timeout
        return _Resp(EXIT_ADDRESSES.encode("utf-8"))

    monkeypatch.setattr(fetcher.urllib.request, "urlopen", fake_urlopen)

    body = fetcher.fetch_text("https://list.example/exit-addresses", timeout=10)

    assert body == EXIT_ADDRESSES
    assert captured["timeout"] == 10
    assert captured["ua"] == fetcher.USER_AGENT


def test_fetch_text_non_200_status(monkeypatch):
    monkeypatch.setattr(fetcher.urllib.request, "urlopen", lambda req, timeout: _Resp(b"", status=204))

    with pytest.raises(HttpStatusError) as ei:
        fetcher.fetch_text("https://list.example/exit-addresses")
    assert ei.value.status == 204


def test_fetch_text_http_error_maps_to_status_error(monkeypatch):
    def fake_urlopen(req, timeout):
        raise urllib.error.HTTPError(req.full_url, 502, "Bad Gateway", {}, None)

    monkeypatch.setattr(fetcher.urllib.request, "urlopen", fake_urlopen)

    with pytest.raises(HttpStatusError) as ei:
        fetcher.fetch_text("https://list.example/exit-addresses")
    assert ei.value.status == 502


def test_fetch_text_transport_failure(monkeypatch):
    def fake_urlopen(req, timeout):
        raise urllib.error.URLError("Name or service not known")

    monkeypatch.setattr(fetcher.urllib.request, "urlopen", fake_urlopen)

    with pytest.raises(NetworkError) as ei:
        fetcher.fetch_text("https://badurl.test123/test")
    assert "Name or service not known" in str(ei.value)


def test_fetch_text_timeout_is_network_error(monkeypatch):
    def fake_urlopen(req, timeout):
        raise TimeoutError("timed out")

    monkeypatch.setattr(fetcher.urllib.request, "urlopen", fake_urlopen)

    with pytest.raises(NetworkError):
        fetcher.fetch_text("https://list.example/exit-addresses")


def test_fetch_text_enforces_download_limit(monkeypatch):
    monkeypatch.setenv("TORBLOCK_MAX_DOWNLOAD_BYTES", "16")
    monkeypatch.setattr(fetcher.urllib.request, "urlopen", lambda req, timeout: _Resp(b"x" * 64))

    with pytest.raises(NetworkError):
        fetcher.fetch_text("https://list.example/exit-addresses")


def test_fetch_text_rejects_large_content_length(monkeypatch):
    monkeypatch.setenv("TORBLOCK_MAX_DOWNLOAD_BYTES", "16")
    monkeypatch.setattr(
        fetcher.urllib.request,
        "urlopen",
        lambda req, timeout: _Resp(b"", headers={"Content-Length": "1000"}),
    )

    with pytest.raises(NetworkError):
        fetcher.fetch_text("https://list.example/exit-addresses")


@pytest.mark.parametrize(
    "exc",
    [http.client.InvalidURL("nonnumeric port: 'abc'"), http.client.IncompleteRead(b"partial")],
)
def test_fetch_text_http_client_errors_are_network_errors(monkeypatch, exc):
    def fake_urlopen(req, timeout):
        raise exc

    monkeypatch.setattr(fetcher.urllib.request, "urlopen", fake_urlopen)

    with pytest.raises(NetworkError):
        fetcher.fetch_text("http://list.example:abc/exit-addresses")


def test_fetch_text_truncated_body_is_network_error(monkeypatch):
    class _Truncated(_Resp):
        def read(self, n: int = -1) -> bytes:
            raise http.client.IncompleteRead(b"203.0.", 100)

    monkeypatch.setattr(fetcher.urllib.request, "urlopen", lambda req, timeout: _Truncated(b""))

    with pytest.raises(NetworkError):
        fetcher.fetch_text("https://list.example/exit-addresses")


def test_fetch_text_url_without_scheme_is_network_error():
    with pytest.raises(NetworkError):
        fetcher.fetch_text("list.example/exit-addresses")
