"""
SignalFx APM client: services, operations, traces and service metrics.
"""

from __future__ import annotations

from typing import List, Optional
from urllib.parse import quote

import httpx

from splunk_mcp.shared.config import SignalFxSettings
from splunk_mcp.shared.decoding import as_list, as_mapping
from splunk_mcp.shared.errors import require_text
from splunk_mcp.shared.observability import get_logger

from . import normalize
from .base import UpstreamClient
from .records import (
    ErrorMetrics,
    LatencyMetrics,
    Operation,
    Service,
    Trace,
    TraceSearchCriteria,
    TraceSearchResult,
)

logger = get_logger(__name__)


def _service_path(service: str, operation: Optional[str], metric: str) -> str:
    path = f"/services/{quote(service, safe='')}"
    if operation:
        path += f"/operations/{quote(operation, safe='')}"
    return f"{path}/{metric}"


class SignalFxClient(UpstreamClient):
    upstream = "signalfx"

    def __init__(
        self,
        settings: SignalFxSettings,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not settings.access_token:
            raise ValueError("SignalFx access token is required")
        super().__init__(
            settings.resolved_base_url,
            headers={
                "X-SF-Token": settings.access_token,
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )
        self.settings = settings

    async def list_services(self) -> List[Service]:
        payload = await self.get_json("/services")
        seen_at = normalize.now_ms()
        services = [
            normalize.parse_service(as_mapping(raw), seen_at)
            for raw in as_list(as_mapping(payload).get("services"))
        ]
        logger.info("Listed services", count=len(services))
        return services

    async def get_service_operations(self, service_name: str) -> List[Operation]:
        service_name = require_text(service_name, "Service name is required")
        payload = await self.get_json(
            f"/services/{quote(service_name, safe='')}/operations"
        )
        operations = [
            normalize.parse_operation(as_mapping(raw), service_name)
            for raw in as_list(as_mapping(payload).get("operations"))
        ]
        logger.info("Listed operations", service=service_name, count=len(operations))
        return operations

    async def search_traces(self, criteria: TraceSearchCriteria) -> TraceSearchResult:
        query = normalize.build_trace_query(criteria)
        logger.info("Searching traces", query=query)
        payload = await self.post_json("/traces/search", query)
        result = normalize.parse_trace_search(payload, query)
        logger.info("Found traces", count=len(result.traces), total=result.total_count)
        return result

    async def get_trace_details(self, trace_id: str) -> Trace:
        trace_id = require_text(trace_id, "Trace ID is required")
        payload = await self.get_json(f"/traces/{quote(trace_id, safe='')}")
        trace = normalize.parse_trace(payload)
        logger.info("Retrieved trace", trace_id=trace_id, spans=len(trace.spans))
        return trace

    async def get_latency_metrics(
        self, service: str, operation: Optional[str] = None
    ) -> LatencyMetrics:
        service = require_text(service, "Service name is required")
        payload = await self.get_json(_service_path(service, operation, "latency"))
        logger.info("Retrieved latency metrics", service=service, operation=operation)
        return normalize.parse_latency_metrics(payload, service, operation or None)

    async def get_error_metrics(
        self, service: str, operation: Optional[str] = None
    ) -> ErrorMetrics:
        service = require_text(service, "Service name is required")
        payload = await self.get_json(_service_path(service, operation, "errors"))
        logger.info("Retrieved error metrics", service=service, operation=operation)
        return normalize.parse_error_metrics(payload, service, operation or None)
