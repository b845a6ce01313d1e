"""
Splunk management API client.

Covers search jobs, the index/user/saved-search/app directories and KV store
collections. Payloads are handed to ``normalize`` as-is.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from splunk_mcp.shared.config import SearchDefaultsConfig, SplunkSettings
from splunk_mcp.shared.decoding import entries, entry_content
from splunk_mcp.shared.errors import AdapterError, NotFoundError, require_text
from splunk_mcp.shared.observability import get_logger

from . import normalize
from .base import UpstreamClient
from .records import (
    ConnectionSummary,
    HealthReport,
    IndexesAndSourcetypes,
    IndexList,
    IndexRecord,
    KVStoreCollection,
    SavedSearch,
    SearchJob,
    SearchJobState,
    SplunkApp,
    UserRecord,
)

logger = get_logger(__name__)

JSON_OUTPUT = {"output_mode": "json"}
DEFAULT_USERNAME = "admin"

SOURCETYPE_QUERY = """
| tstats count WHERE index=* BY index, sourcetype
| stats count BY index, sourcetype
| sort - count
"""


def _segment(value: str) -> str:
    return quote(value, safe="")


class SplunkClient(UpstreamClient):
    upstream = "splunk"

    def __init__(
        self,
        settings: SplunkSettings,
        *,
        search_defaults: Optional[SearchDefaultsConfig] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        auth = None
        if settings.token:
            headers["Authorization"] = f"Bearer {settings.token}"
        elif settings.username and settings.password:
            auth = httpx.BasicAuth(settings.username, settings.password)

        super().__init__(
            settings.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
            auth=auth,
            verify=settings.verify_ssl,
        )
        self.settings = settings
        self.search_defaults = search_defaults or SearchDefaultsConfig()

    async def _entries(self, path: str) -> List[Any]:
        payload = await self.get_json(path, params=JSON_OUTPUT)
        return entries(payload)

    # ----- search jobs -----

    async def search_splunk(
        self,
        search_query: str,
        earliest_time: Optional[str] = None,
        latest_time: Optional[str] = None,
        max_results: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Run a blocking search job and return its result rows unchanged."""
        job = SearchJob(query=normalize.prepare_search_query(search_query))
        earliest_time = earliest_time or self.search_defaults.earliest_time
        latest_time = latest_time or self.search_defaults.latest_time
        max_results = max_results or self.search_defaults.max_results

        logger.info(
            "Executing search",
            query=job.query,
            earliest_time=earliest_time,
            latest_time=latest_time,
            max_results=max_results,
        )
        try:
            await self._submit_job(job, earliest_time, latest_time)
            return await self._fetch_results(job, max_results)
        except AdapterError as exc:
            logger.error("Search failed", query=job.query, state=job.state, error=str(exc))
            raise

    async def _submit_job(
        self, job: SearchJob, earliest_time: str, latest_time: str
    ) -> None:
        job.state = SearchJobState.BLOCKING_WAIT
        response = await self.request(
            "POST",
            "/services/search/jobs",
            data={
                "search": job.query,
                "earliest_time": earliest_time,
                "latest_time": latest_time,
                "exec_mode": "blocking",
            },
        )
        job.sid = normalize.extract_sid(response.text)
        job.state = SearchJobState.RESULTS_READY
        logger.debug("Search job finished", sid=job.sid)

    async def _fetch_results(self, job: SearchJob, max_results: int) -> List[Dict[str, Any]]:
        payload = await self.get_json(
            f"/services/search/jobs/{_segment(job.sid)}/results",
            params={**JSON_OUTPUT, "count": max_results},
        )
        return normalize.search_results(payload)

    # ----- indexes -----

    async def list_indexes(self) -> IndexList:
        payload = await self.get_json("/services/data/indexes", params=JSON_OUTPUT)
        indexes = normalize.entry_names(payload)
        logger.info("Listed indexes", count=len(indexes))
        return IndexList(indexes=indexes)

    async def get_index_info(self, index_name: str) -> IndexRecord:
        index_name = require_text(index_name, "Index name is required")
        items = await self._entries(f"/services/data/indexes/{_segment(index_name)}")
        if not items or not isinstance(items[0], Mapping):
            raise NotFoundError("Index", index_name)
        return normalize.parse_index_record(index_name, entry_content(items[0]))

    async def get_indexes_and_sourcetypes(self) -> IndexesAndSourcetypes:
        indexes = (await self.list_indexes()).indexes
        rows = await self.search_splunk(
            SOURCETYPE_QUERY,
            "-24h",
            "now",
            self.search_defaults.sourcetype_max_results,
        )
        result = normalize.build_indexes_and_sourcetypes(
            indexes, rows, self.search_defaults.sourcetype_time_range
        )
        logger.info(
            "Retrieved indexes and sourcetypes",
            total_indexes=result.metadata.total_indexes,
            total_sourcetypes=result.metadata.total_sourcetypes,
        )
        return result

    # ----- saved searches, users, apps -----

    async def list_saved_searches(self) -> List[SavedSearch]:
        items = await self._entries("/services/saved/searches")
        return [
            normalize.parse_saved_search(entry)
            for entry in self._well_formed(items, "saved search")
        ]

    async def _resolve_current_username(self) -> str:
        username = self.settings.username or DEFAULT_USERNAME
        try:
            payload = await self.get_json(
                "/services/authentication/current-context", params=JSON_OUTPUT
            )
        except AdapterError as exc:
            logger.warning(
                "Could not get username from current-context",
                fallback=username,
                error=str(exc),
            )
            return username
        context_username = normalize.current_context_username(payload)
        if context_username:
            logger.debug("Using username from current-context", username=context_username)
            return context_username
        return username

    async def get_current_user(self) -> UserRecord:
        username = await self._resolve_current_username()
        items = await self._entries(f"/services/authentication/users/{_segment(username)}")
        if not items or not isinstance(items[0], Mapping):
            raise NotFoundError("User", username)
        user = normalize.parse_user(items[0], username=username)
        logger.info("Retrieved current user", username=username)
        return user

    async def list_users(self) -> List[UserRecord]:
        items = await self._entries("/services/authentication/users")
        users = [normalize.parse_user(entry) for entry in self._well_formed(items, "user")]
        logger.info("Listed users", count=len(users))
        return users

    async def list_apps(self) -> List[SplunkApp]:
        items = await self._entries("/services/apps/local")
        return [normalize.parse_app(entry) for entry in self._well_formed(items, "app")]

    async def health_check(self) -> HealthReport:
        apps = await self.list_apps()
        logger.info("Health check successful", apps_count=len(apps))
        return HealthReport(
            status="healthy",
            connection=ConnectionSummary(
                host=self.settings.host,
                port=self.settings.port,
                scheme=self.settings.scheme,
                username=self.settings.username or "N/A",
                ssl_verify=self.settings.verify_ssl,
            ),
            apps_count=len(apps),
            apps=apps,
        )

    # ----- KV store -----

    async def _kvstore_stats(self) -> Dict[str, Any]:
        try:
            payload = await self.get_json(
                "/services/server/introspection/kvstore/collectionstats",
                params=JSON_OUTPUT,
            )
        except AdapterError as exc:
            logger.warning("Error retrieving KV store collection stats", error=str(exc))
            return {}
        stats = normalize.parse_kvstore_stats(payload)
        logger.debug("Retrieved KV store collection stats", count=len(stats))
        return stats

    async def list_kvstore_collections(self) -> List[KVStoreCollection]:
        stats = await self._kvstore_stats()
        items = await self._entries("/servicesNS/-/-/storage/collections/config")
        collections = [
            normalize.parse_kvstore_collection(entry, stats)
            for entry in self._well_formed(items, "KV store collection")
        ]
        logger.info("Listed KV store collections", count=len(collections))
        return collections

    @staticmethod
    def _well_formed(items: List[Any], kind: str) -> List[Mapping]:
        kept = []
        for item in items:
            if isinstance(item, Mapping):
                kept.append(item)
            else:
                logger.warning("Skipping malformed entry", kind=kind, entry=repr(item)[:200])
        return kept
