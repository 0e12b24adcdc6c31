"""Tests for header handling in the forwarder."""
import httpx

from corsproxy.forwarder import _strip_hop_by_hop, build_timeout


def test_strip_hop_by_hop_removes_connection_scoped_headers():
    headers = [
        (b"host", b"proxy.local"),
        (b"Connection", b"keep-alive, X-Drop-Me"),
        (b"Keep-Alive", b"timeout=5"),
        (b"Transfer-Encoding", b"chunked"),
        (b"X-Drop-Me", b"1"),
        (b"Accept", b"*/*"),
        (b"Set-Cookie", b"a=1"),
        (b"Set-Cookie", b"b=2"),
    ]
    result = _strip_hop_by_hop(headers, drop=(b"host",))
    assert result == [
        (b"accept", b"*/*"),
        (b"set-cookie", b"a=1"),
        (b"set-cookie", b"b=2"),
    ]


def test_strip_hop_by_hop_keeps_end_to_end_headers():
    headers = [(b"authorization", b"Bearer x"), (b"origin", b"https://app.example.net")]
    assert _strip_hop_by_hop(headers) == headers


def test_build_timeout_defaults_to_none():
    timeout = build_timeout(None, None)
    assert timeout == httpx.Timeout(None)
    assert build_timeout(1.5, 10.0) == httpx.Timeout(10.0, connect=1.5)
