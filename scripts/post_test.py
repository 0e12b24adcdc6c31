#!/usr/bin/env python3
"""
Post-deployment smoke test. Verifies the proxy's authorization and forwarding paths respond correctly.
Upstream targets are served by an in-process mock transport, so no network access is needed.
Run: python scripts/post_test.py
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import httpx
from fastapi.testclient import TestClient

from corsproxy.config import ProxySettings
from corsproxy.main import create_app


def _upstream(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"url": str(request.url)})


settings = ProxySettings(allowed_targets=("https://api.example.com", "https://*.example.org"))
client = TestClient(create_app(settings, transport=httpx.MockTransport(_upstream)))

ORIGIN = {"Origin": "https://app.example.net"}

TESTS = [
    ("GET", "/", {}, lambda r: r.status_code == 200),
    ("GET", "/favicon.ico", {}, lambda r: r.status_code == 200),
    ("GET", "/metrics", {}, lambda r: r.status_code == 200),
    ("GET", "/https://api.example.com/v1/items?page=2", ORIGIN,
     lambda r: r.status_code == 200 and r.json()["url"] == "https://api.example.com/v1/items?page=2"),
    ("GET", "/https://cdn.example.org/lib.js", ORIGIN, lambda r: r.status_code == 200),
    ("GET", "/https://example.net/", ORIGIN, lambda r: r.status_code == 403),
    ("GET", "/http://127.0.0.1:8080/", ORIGIN, lambda r: r.status_code == 403),
    ("GET", "/ftp://api.example.com/", ORIGIN, lambda r: r.status_code == 400),
    ("OPTIONS", "/https://api.example.com/", {**ORIGIN, "Access-Control-Request-Method": "POST"},
     lambda r: r.status_code == 204 and "access-control-allow-methods" in r.headers),
]


def main():
    passed = 0
    for method, path, headers, check in TESTS:
        r = client.request(method, path, headers=headers)
        ok = check(r)
        status = "PASS" if ok else "FAIL"
        print(f"{status} {method} {path} -> {r.status_code}")
        if ok:
            passed += 1
    print("---")
    print(f"Post Test: {passed}/{len(TESTS)} passed")
    return 0 if passed == len(TESTS) else 1


if __name__ == "__main__":
    sys.exit(main())
