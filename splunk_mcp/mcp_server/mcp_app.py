"""
MCP server factory + tool implementations for the STDIO transport.

Each tool is a plain coroutine taking the lifespan ``Deps`` plus its declared
arguments. ``dispatch_tool`` is the single boundary where results are turned
into JSON text and failures into structured error results.
"""

from __future__ import annotations

import inspect
import json
import math
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import anyio
import httpx
import mcp.types as types
from mcp.server.lowlevel.server import Server
from pydantic import BaseModel, ValidationError

from splunk_mcp.clients import SignalFxClient, SplunkClient
from splunk_mcp.clients.records import TraceSearchCriteria
from splunk_mcp.shared.config import Config, Settings, get_config, get_settings
from splunk_mcp.shared.errors import (
    AdapterError,
    InvalidArgumentError,
    UpstreamTimeoutError,
)
from splunk_mcp.shared.observability import get_logger, set_correlation_id
from splunk_mcp.shared.observability.metrics import (
    mcp_tool_calls_total,
    mcp_tool_duration_seconds,
)

logger = get_logger(__name__)

UNKNOWN_TOOL_LABEL = "unknown"


@dataclass
class Deps:
    """Dependencies shared across MCP tool calls via lifespan context."""

    config: Config
    settings: Settings
    splunk: SplunkClient
    signalfx: Optional[SignalFxClient] = None


def create_deps(
    config: Config,
    settings: Settings,
    *,
    splunk_transport: Optional[httpx.AsyncBaseTransport] = None,
    signalfx_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Deps:
    splunk = SplunkClient(
        settings.splunk(),
        search_defaults=config.search,
        timeout=settings.upstream_timeout_seconds,
        transport=splunk_transport,
    )
    signalfx = None
    signalfx_settings = settings.signalfx()
    if signalfx_settings is not None:
        signalfx = SignalFxClient(
            signalfx_settings,
            timeout=settings.upstream_timeout_seconds,
            transport=signalfx_transport,
        )
    return Deps(config=config, settings=settings, splunk=splunk, signalfx=signalfx)


async def close_deps(deps: Deps) -> None:
    await deps.splunk.aclose()
    if deps.signalfx is not None:
        await deps.signalfx.aclose()


def _error_payload(code: str, message: str, details: Optional[dict] = None) -> dict:
    payload = {"error": {"code": code, "message": message}}
    if details:
        payload["error"]["details"] = details
    return payload


def to_jsonable(value: Any) -> Any:
    """Convert records to plain JSON values; non-finite numbers become null."""
    if isinstance(value, BaseModel):
        dump = getattr(value, "to_wire", None)
        value = dump() if callable(dump) else value.model_dump()
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def _tracing(deps: Deps) -> SignalFxClient:
    if deps.signalfx is None:
        raise InvalidArgumentError(
            "SignalFx is not configured (set SIGNALFX_ACCESS_TOKEN)"
        )
    return deps.signalfx


def _validation_errors(exc: ValidationError) -> list[dict[str, str]]:
    return [
        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]


# ===== Splunk tools =====


async def search_splunk(
    deps: Deps,
    search_query: Optional[str] = None,
    earliest_time: Optional[str] = None,
    latest_time: Optional[str] = None,
    max_results: Optional[int] = None,
) -> list:
    return await deps.splunk.search_splunk(
        search_query, earliest_time, latest_time, max_results
    )


async def list_indexes(deps: Deps):
    return await deps.splunk.list_indexes()


async def get_index_info(deps: Deps, index_name: Optional[str] = None):
    return await deps.splunk.get_index_info(index_name)


async def list_saved_searches(deps: Deps):
    return await deps.splunk.list_saved_searches()


async def current_user(deps: Deps):
    return await deps.splunk.get_current_user()


async def list_users(deps: Deps):
    return await deps.splunk.list_users()


async def list_kvstore_collections(deps: Deps):
    return await deps.splunk.list_kvstore_collections()


async def health_check(deps: Deps):
    return await deps.splunk.health_check()


async def get_indexes_and_sourcetypes(deps: Deps):
    return await deps.splunk.get_indexes_and_sourcetypes()


async def ping(deps: Deps) -> dict:
    capabilities = ["splunk"]
    if deps.signalfx is not None:
        capabilities.extend(["signalfx", "traces"])
    timestamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return {
        "status": "ok",
        "server": deps.config.app.name,
        "version": deps.config.app.version,
        "timestamp": timestamp.replace("+00:00", "Z"),
        "protocol": "mcp",
        "capabilities": capabilities,
    }


# ===== SignalFx tools =====


async def list_services(deps: Deps):
    return await _tracing(deps).list_services()


async def get_service_operations(deps: Deps, service_name: Optional[str] = None):
    return await _tracing(deps).get_service_operations(service_name)


async def search_traces(
    deps: Deps,
    service: Optional[str] = None,
    operation: Optional[str] = None,
    tags: Optional[dict] = None,
    min_duration: Optional[float] = None,
    max_duration: Optional[float] = None,
    has_errors: Optional[bool] = None,
    start_time: Optional[float] = None,
    end_time: Optional[float] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
):
    try:
        criteria = TraceSearchCriteria(
            service=service,
            operation=operation,
            tags=tags,
            min_duration=min_duration,
            max_duration=max_duration,
            error=has_errors,
            start_time=start_time,
            end_time=end_time,
            limit=limit,
            offset=offset,
        )
    except ValidationError as exc:
        raise InvalidArgumentError(
            "Invalid trace search criteria",
            details={"errors": _validation_errors(exc)},
        ) from exc
    return await _tracing(deps).search_traces(criteria)


async def get_trace_details(deps: Deps, trace_id: Optional[str] = None):
    return await _tracing(deps).get_trace_details(trace_id)


async def get_latency_metrics(
    deps: Deps, service: Optional[str] = None, operation: Optional[str] = None
):
    return await _tracing(deps).get_latency_metrics(service, operation)


async def get_error_metrics(
    deps: Deps, service: Optional[str] = None, operation: Optional[str] = None
):
    return await _tracing(deps).get_error_metrics(service, operation)


# ===== Tool catalogue =====

NO_ARGS_SCHEMA = {"type": "object", "properties": {}}

SEARCH_SPLUNK_DESCRIPTION = (
    "Execute a Splunk search query and return the results.\n\n"
    "Args:\n"
    "    search_query: The search query to execute\n"
    "    earliest_time: Start time for the search (default: 24 hours ago)\n"
    "    latest_time: End time for the search (default: now)\n"
    "    max_results: Maximum number of results to return (default: 100)"
)

SEARCH_TRACES_DESCRIPTION = (
    "Search for traces in SignalFx based on service, operation, duration, errors, "
    "and other criteria.\n\n"
    "Args:\n"
    "    service: Filter by service name (optional)\n"
    "    operation: Filter by operation name (optional)\n"
    "    min_duration: Minimum duration in milliseconds (optional)\n"
    "    max_duration: Maximum duration in milliseconds (optional)\n"
    "    has_errors: Filter for traces with errors (optional, true/false)\n"
    "    limit: Maximum number of traces to return (default: 100)"
)

HEALTH_DESCRIPTION = "Get basic Splunk connection information and list available apps."


def _search_splunk_schema(config: Config) -> dict:
    return {
        "type": "object",
        "properties": {
            "search_query": {
                "type": "string",
                "description": "The Splunk search query to execute",
            },
            "earliest_time": {
                "type": "string",
                "description": "Start time for the search (e.g., -24h, -7d)",
                "default": config.search.earliest_time,
            },
            "latest_time": {
                "type": "string",
                "description": "End time for the search (e.g., now)",
                "default": config.search.latest_time,
            },
            "max_results": {
                "type": "integer",
                "description": "Maximum number of results to return",
                "default": config.search.max_results,
            },
        },
        "required": ["search_query"],
    }


def _single_string_schema(name: str, description: str) -> dict:
    return {
        "type": "object",
        "properties": {name: {"type": "string", "description": description}},
        "required": [name],
    }


SERVICE_METRICS_SCHEMA = {
    "type": "object",
    "properties": {
        "service": {"type": "string", "description": "Service name"},
        "operation": {"type": "string", "description": "Operation name (optional)"},
    },
    "required": ["service"],
}

SEARCH_TRACES_SCHEMA = {
    "type": "object",
    "properties": {
        "service": {"type": "string", "description": "Service name to filter by"},
        "operation": {"type": "string", "description": "Operation name to filter by"},
        "tags": {
            "type": "object",
            "description": "Span tags that matching traces must carry",
            "additionalProperties": True,
        },
        "min_duration": {
            "type": "number",
            "description": "Minimum duration in milliseconds",
        },
        "max_duration": {
            "type": "number",
            "description": "Maximum duration in milliseconds",
        },
        "has_errors": {
            "type": "boolean",
            "description": "Filter for traces with errors",
        },
        "start_time": {
            "type": "number",
            "description": "Earliest trace start, epoch milliseconds",
        },
        "end_time": {
            "type": "number",
            "description": "Latest trace start, epoch milliseconds",
        },
        "limit": {
            "type": "integer",
            "description": "Maximum number of traces to return",
            "default": 100,
        },
        "offset": {
            "type": "integer",
            "description": "Offset for pagination",
            "default": 0,
        },
    },
}


def tool_specs(config: Config, tracing_enabled: bool) -> list[dict[str, Any]]:
    readonly = types.ToolAnnotations(
        readOnlyHint=True,
        openWorldHint=False,
        idempotentHint=True,
        destructiveHint=False,
    )
    specs = [
        {
            "name": "search_splunk",
            "handler": search_splunk,
            "description": SEARCH_SPLUNK_DESCRIPTION,
            "input_schema": _search_splunk_schema(config),
        },
        {
            "name": "list_indexes",
            "handler": list_indexes,
            "description": "Get a list of all available Splunk indexes.",
            "input_schema": NO_ARGS_SCHEMA,
        },
        {
            "name": "get_index_info",
            "handler": get_index_info,
            "description": "Get metadata for a specific Splunk index.",
            "input_schema": _single_string_schema(
                "index_name", "Name of the index to get metadata for"
            ),
        },
        {
            "name": "list_saved_searches",
            "handler": list_saved_searches,
            "description": "List all saved searches in Splunk.",
            "input_schema": NO_ARGS_SCHEMA,
        },
        {
            "name": "current_user",
            "handler": current_user,
            "description": (
                "Get information about the currently authenticated user including "
                "username, roles, and capabilities."
            ),
            "input_schema": NO_ARGS_SCHEMA,
        },
        {
            "name": "list_users",
            "handler": list_users,
            "description": "List all Splunk users (requires admin privileges).",
            "input_schema": NO_ARGS_SCHEMA,
        },
        {
            "name": "list_kvstore_collections",
            "handler": list_kvstore_collections,
            "description": (
                "List all KV store collections across apps with metadata including "
                "app, fields, and accelerated fields."
            ),
            "input_schema": NO_ARGS_SCHEMA,
        },
        {
            "name": "health_check",
            "handler": health_check,
            "description": HEALTH_DESCRIPTION,
            "input_schema": NO_ARGS_SCHEMA,
        },
        {
            "name": "get_indexes_and_sourcetypes",
            "handler": get_indexes_and_sourcetypes,
            "description": (
                "Get a list of all indexes and their sourcetypes with event counts "
                "and time range information."
            ),
            "input_schema": NO_ARGS_SCHEMA,
        },
        {
            "name": "ping",
            "handler": ping,
            "description": (
                "Simple ping endpoint to check server availability and get basic "
                "server information."
            ),
            "input_schema": NO_ARGS_SCHEMA,
        },
        {
            "name": "health",
            "handler": health_check,
            "description": f"{HEALTH_DESCRIPTION[:-1]} (alias for health_check).",
            "input_schema": NO_ARGS_SCHEMA,
        },
    ]

    if tracing_enabled:
        specs.extend(
            [
                {
                    "name": "list_services",
                    "handler": list_services,
                    "description": (
                        "List all available services in the SignalFx environment "
                        "with operation counts and error status."
                    ),
                    "input_schema": NO_ARGS_SCHEMA,
                },
                {
                    "name": "get_service_operations",
                    "handler": get_service_operations,
                    "description": (
                        "Get operations available for a specific service in SignalFx."
                    ),
                    "input_schema": _single_string_schema(
                        "service_name", "Name of the service to get operations for"
                    ),
                },
                {
                    "name": "search_traces",
                    "handler": search_traces,
                    "description": SEARCH_TRACES_DESCRIPTION,
                    "input_schema": SEARCH_TRACES_SCHEMA,
                },
                {
                    "name": "get_trace_details",
                    "handler": get_trace_details,
                    "description": (
                        "Get detailed information about a specific trace including "
                        "all spans, tags, and timing information."
                    ),
                    "input_schema": _single_string_schema(
                        "trace_id", "The ID of the trace to retrieve"
                    ),
                },
                {
                    "name": "get_latency_metrics",
                    "handler": get_latency_metrics,
                    "description": (
                        "Get latency metrics (p50, p75, p90, p99, mean) for a "
                        "service or operation."
                    ),
                    "input_schema": SERVICE_METRICS_SCHEMA,
                },
                {
                    "name": "get_error_metrics",
                    "handler": get_error_metrics,
                    "description": (
                        "Get error metrics including error count, error rate, and "
                        "error types for a service or operation."
                    ),
                    "input_schema": SERVICE_METRICS_SCHEMA,
                },
            ]
        )

    for spec in specs:
        spec["annotations"] = readonly
    return specs


# ===== Dispatch =====


def _summary_for_tool(name: str, result: Any) -> str:
    if isinstance(result, list):
        return f"{name} returned {len(result)} items."
    if isinstance(result, dict) and isinstance(result.get("indexes"), list):
        return f"{name} returned {len(result['indexes'])} indexes."
    if isinstance(result, dict) and isinstance(result.get("traces"), list):
        return f"{name} returned {len(result['traces'])} traces."
    return f"{name} completed."


async def _invoke_tool(handler, deps: Deps, arguments: dict[str, Any]) -> Any:
    sig = inspect.signature(handler)
    kwargs = {
        k: v
        for k, v in (arguments or {}).items()
        if k in sig.parameters and k != "deps"
    }
    return await handler(deps, **kwargs)


def _text_result(payload: Any, is_error: bool = False) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=json.dumps(payload, indent=2))],
        isError=is_error,
    )


async def dispatch_tool(
    name: str,
    arguments: Optional[dict[str, Any]],
    deps: Deps,
    specs: list[dict[str, Any]],
) -> types.CallToolResult:
    """
    Run one tool call under the tool deadline and render its result.

    Failures never escape: adapter errors keep their code, an expired
    deadline becomes DEADLINE_EXCEEDED and anything else INTERNAL_ERROR.
    """
    set_correlation_id()
    handlers = {spec["name"]: spec["handler"] for spec in specs}
    handler = handlers.get(name)
    if handler is None:
        logger.warning("Unknown tool requested", tool_name=name)
        mcp_tool_calls_total.labels(UNKNOWN_TOOL_LABEL, "error").inc()
        return _text_result(
            _error_payload("INVALID_ARGUMENT", f"Unknown tool '{name}'"), True
        )

    timeout = deps.settings.tool_timeout_seconds
    logger.info("Tool called", tool_name=name, arguments=sorted((arguments or {}).keys()))
    status = "error"
    start = time.perf_counter()
    try:
        with anyio.fail_after(timeout):
            result = await _invoke_tool(handler, deps, arguments or {})
        payload = to_jsonable(result)
        status = "success"
        logger.info(
            "Tool completed",
            tool_name=name,
            summary=_summary_for_tool(name, payload),
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return _text_result(payload)
    except TimeoutError:
        exc = UpstreamTimeoutError(
            f"Tool '{name}' exceeded its {timeout:g}s deadline", upstream="mcp"
        )
        logger.warning("Tool timed out", tool_name=name, timeout_seconds=timeout)
        return _text_result(_error_payload(exc.code, exc.message, exc.details), True)
    except AdapterError as exc:
        logger.warning(
            "Tool failed", tool_name=name, code=exc.code, error=exc.message
        )
        return _text_result(_error_payload(exc.code, exc.message, exc.details), True)
    except Exception as exc:
        logger.error("Tool crashed", tool_name=name, error=str(exc), exc_info=True)
        return _text_result(_error_payload("INTERNAL_ERROR", str(exc)), True)
    finally:
        mcp_tool_calls_total.labels(name, status).inc()
        mcp_tool_duration_seconds.labels(name).observe(time.perf_counter() - start)


def build_mcp_server(
    config: Optional[Config] = None, settings: Optional[Settings] = None
) -> Server:
    config = config or get_config()
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(server: Server) -> AsyncIterator[Deps]:
        """Create the upstream clients once and share them across tool calls."""
        logger.info("STDIO server lifespan: initializing upstream clients")
        deps = create_deps(config, settings)
        try:
            logger.info(
                "STDIO server lifespan: clients ready",
                splunk=deps.splunk.base_url,
                signalfx=deps.signalfx.base_url if deps.signalfx else None,
            )
            yield deps
        finally:
            await close_deps(deps)
            logger.info("STDIO server lifespan: clients closed")

    server = Server(
        config.app.name,
        version=config.app.version,
        instructions=config.app.instructions,
        lifespan=lifespan,
    )
    specs = tool_specs(config, settings.signalfx_enabled)

    @server.list_tools()
    async def _list_tools():
        return [
            types.Tool(
                name=spec["name"],
                description=spec["description"],
                inputSchema=spec["input_schema"],
                annotations=spec.get("annotations"),
            )
            for spec in specs
        ]

    @server.call_tool()
    async def _call_tool(name: str, arguments: dict | None):
        deps = server.request_context.lifespan_context
        return await dispatch_tool(name, arguments, deps, specs)

    return server
