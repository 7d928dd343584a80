"""Shared fixtures: a canned Graph client for collector tests."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

import pytest

from m365_copilot_readiness.config import CollectionConfig
from m365_copilot_readiness.graph.client import GraphAPIError

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


class FakeGraph:
    """
    Stands in for GraphClient. Routes are matched on the endpoint string;
    a route value that is an Exception is raised instead of returned.
    """

    def __init__(self, routes: Optional[dict[str, Any]] = None, counts: Optional[dict[str, int]] = None):
        self.routes = routes or {}
        self.counts = counts or {}
        self.calls: list[str] = []

    def _lookup(self, endpoint: str):
        self.calls.append(endpoint)
        if endpoint not in self.routes:
            raise GraphAPIError(404, "no route", endpoint)
        value = self.routes[endpoint]
        if isinstance(value, Exception):
            raise value
        return value

    async def get(self, endpoint: str, params=None, beta: bool = False) -> dict:
        return self._lookup(endpoint)

    async def get_all_pages(self, endpoint: str, params=None, beta: bool = False,
                            top=None, skip_top: bool = False, limit=None) -> list[dict]:
        items = list(self._lookup(endpoint))
        return items[:limit] if limit is not None else items

    async def get_count(self, endpoint: str, beta: bool = False) -> int:
        self.calls.append(endpoint)
        return self.counts.get(endpoint, -1)


@pytest.fixture
def collection_config() -> CollectionConfig:
    return CollectionConfig(max_sites=10, site_concurrency=2)


@pytest.fixture
def now() -> datetime:
    return NOW
