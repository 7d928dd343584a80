"""
Collector plumbing shared by the four audit dimensions: a result container
with run metadata, guarded Graph reads that record permission gaps instead
of raising, and a bounded fan-out over SharePoint sites in which one broken
site never sinks the others.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Optional

from ..config import CollectionConfig
from ..graph.client import GraphAPIError, GraphClient

logger = logging.getLogger("m365_copilot_readiness.collectors")


def _fresh_metadata(collector: str) -> dict[str, Any]:
    return {
        "collector": collector,
        "started_at": None,
        "completed_at": None,
        "duration_seconds": 0,
        "items_collected": 0,
        "endpoints_queried": 0,
        "sites_scanned": 0,
        "errors": [],
        "warnings": [],
        "permission_gaps": [],
        "failed_sites": [],
    }


class CollectorResult:
    """Collected sections plus the bookkeeping analyzers read back as `_metadata`."""

    def __init__(self, collector_name: str):
        self.collector_name = collector_name
        self.data: dict[str, Any] = {}
        self.metadata = _fresh_metadata(collector_name)

    def add_data(self, key: str, value: Any):
        self.data[key] = value
        self.metadata["items_collected"] += len(value) if isinstance(value, list) else 1

    def add_error(self, error: str):
        self.metadata["errors"].append(error)
        logger.error(f"{self.collector_name}: {error}")

    def add_warning(self, warning: str):
        self.metadata["warnings"].append(warning)
        logger.warning(f"{self.collector_name}: {warning}")

    def add_permission_gap(self, endpoint: str):
        gaps = self.metadata["permission_gaps"]
        if endpoint not in gaps:
            gaps.append(endpoint)

    def add_failed_site(self, site_id: str, reason: str):
        self.metadata["failed_sites"].append({"site": site_id, "reason": reason})
        logger.warning(f"{self.collector_name}: skipped site {site_id} ({reason})")

    def to_dict(self) -> dict:
        return {"data": self.data, "metadata": self.metadata}


class BaseCollector(ABC):
    """
    Subclasses fill a CollectorResult in `collect()`. `execute()` adds
    timing and turns an unexpected exception into a recorded error, so the
    orchestrator always gets a result back.
    """

    name: str = "base"
    description: str = ""

    def __init__(
        self,
        graph: GraphClient,
        config: CollectionConfig,
        now: Optional[datetime] = None,
    ):
        self.graph = graph
        self.config = config
        # reference instant for every "days since" attribute in this run
        self.now = now or datetime.now(timezone.utc)

    @abstractmethod
    async def collect(self, result: CollectorResult):
        raise NotImplementedError

    async def execute(self) -> CollectorResult:
        result = CollectorResult(self.name)
        meta = result.metadata
        started = time.monotonic()
        meta["started_at"] = time.time()
        logger.info(f"{self.name}: collecting")

        try:
            await self.collect(result)
        except Exception as e:
            logger.exception(f"{self.name}: collection aborted")
            result.add_error(f"Collection aborted: {type(e).__name__}: {e}")

        meta["completed_at"] = time.time()
        meta["duration_seconds"] = round(time.monotonic() - started, 2)
        logger.info(
            f"{self.name}: {meta['items_collected']} items from "
            f"{meta['endpoints_queried']} endpoints in {meta['duration_seconds']}s"
        )
        return result

    # ─── Guarded reads ──────────────────────────────────────────────────

    async def safe_get(self, endpoint: str, result: CollectorResult, **kwargs) -> dict:
        """GET one resource; failures become metadata and an empty body."""
        body = await self._guarded(endpoint, result, self.graph.get(endpoint, **kwargs))
        if body is None:
            return {"value": []}
        if body.get("_forbidden"):
            self._denied(endpoint, result, body.get("_error_message", "Forbidden"))
        return body

    async def safe_get_all(self, endpoint: str, result: CollectorResult, **kwargs) -> list:
        """Every page of a collection; failures become metadata and an empty list."""
        items = await self._guarded(endpoint, result, self.graph.get_all_pages(endpoint, **kwargs))
        return [] if items is None else items

    async def _guarded(self, endpoint: str, result: CollectorResult, call: Awaitable):
        try:
            value = await call
        except GraphAPIError as e:
            if e.status_code == 403:
                self._denied(endpoint, result, str(e))
            else:
                result.add_error(f"{endpoint}: {e}")
            return None
        except Exception as e:
            result.add_error(f"{endpoint}: {type(e).__name__}: {e}")
            return None
        result.metadata["endpoints_queried"] += 1
        return value

    @staticmethod
    def _denied(endpoint: str, result: CollectorResult, detail: str):
        result.add_warning(f"Permission denied on {endpoint}: {detail}")
        result.add_permission_gap(endpoint)

    # ─── SharePoint fan-out ─────────────────────────────────────────────

    async def list_sites(self, result: CollectorResult) -> list[dict]:
        """Sites visible to the app, stopping at `max_sites`."""
        cap = self.config.max_sites
        sites = await self.safe_get_all(
            "sites",
            result,
            params={"search": "*", "$select": "id,displayName,webUrl,name"},
            limit=cap,
        )
        if len(sites) >= cap:
            result.add_warning(f"Site enumeration capped at {cap} sites; remaining sites were not scanned")
        return sites

    async def scan_sites(
        self,
        sites: Iterable[dict],
        scan: Callable[[dict], Awaitable[list[dict]]],
        result: CollectorResult,
    ) -> list[dict]:
        """
        Apply `scan` to each site, at most `site_concurrency` at a time.
        Rows come back in site order; a site that raises is listed under
        `failed_sites` and adds nothing.
        """
        gate = asyncio.Semaphore(max(self.config.site_concurrency, 1))

        async def one(site: dict) -> list[dict]:
            async with gate:
                return await scan(site)

        sites = list(sites)
        outcomes = await asyncio.gather(*map(one, sites), return_exceptions=True)

        rows: list[dict] = []
        for site, outcome in zip(sites, outcomes):
            if not isinstance(outcome, BaseException):
                result.metadata["sites_scanned"] += 1
                rows.extend(outcome)
                continue
            where = site.get("webUrl") or site.get("id", "?")
            if isinstance(outcome, GraphAPIError) and outcome.status_code == 403:
                result.add_permission_gap(f"sites/{site.get('id')}")
                result.add_failed_site(where, "permission denied")
            elif isinstance(outcome, Exception):
                result.add_failed_site(where, f"{type(outcome).__name__}: {outcome}")
            else:
                raise outcome
        return rows

    async def drive_items(
        self,
        site: dict,
        select: Optional[str] = None,
        beta: bool = False,
    ) -> list[dict]:
        """Files in the default library root and its immediate subfolders, up to `max_items_per_site`."""
        budget = self.config.max_items_per_site
        drive = f"sites/{site['id']}/drive"
        params = {"$select": f"id,name,file,folder,{select}"} if select else None

        files: list[dict] = []
        for entry in await self.graph.get_all_pages(
            f"{drive}/root/children", params=params, beta=beta, limit=budget,
        ):
            remaining = budget - len(files)
            if remaining <= 0:
                break
            if "file" in entry:
                files.append(entry)
            elif (entry.get("folder") or {}).get("childCount"):
                nested = await self.graph.get_all_pages(
                    f"{drive}/items/{entry['id']}/children", params=params, beta=beta, limit=remaining,
                )
                files.extend(child for child in nested if "file" in child)
        return files[:budget]

    def days_since(self, timestamp: Optional[str]) -> Optional[int]:
        """Whole days from an ISO-8601 timestamp to `self.now`; None if unparseable."""
        if not timestamp:
            return None
        try:
            moment = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
        except (ValueError, TypeError):
            return None
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return max((self.now - moment).days, 0)
