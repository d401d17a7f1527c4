"""Shared fixtures: fake sites served through httpx.MockTransport."""

from __future__ import annotations

from collections import Counter
from typing import Dict, Iterable, Optional

import httpx
import pytest

BASE_URL = "http://site.test"


class FakeSite:
    """
    Serves HTML pages keyed by URL path. Paths in `broken` raise a
    connection error; unknown paths return 404. Every request is counted.
    """

    def __init__(self, pages: Dict[str, str], broken: Iterable[str] = ()) -> None:
        self.pages = dict(pages)
        self.broken = set(broken)
        self.hits: Counter = Counter()
        self.user_agents: set = set()

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path or "/"
        self.hits[path] += 1
        self.user_agents.add(request.headers.get("user-agent"))
        if path in self.broken:
            raise httpx.ConnectError("connection refused", request=request)
        body: Optional[str] = self.pages.get(path)
        if body is None:
            return httpx.Response(404, text="not found")
        return httpx.Response(200, text=body, headers={"content-type": "text/html"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def hello_site() -> FakeSite:
    return FakeSite(
        {
            "/": '<html><body>Hello there <a href="/about">About</a></body></html>',
            "/about": "<html><body>Nothing to see.</body></html>",
        }
    )
