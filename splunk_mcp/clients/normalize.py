"""
Response normalizers: raw upstream payloads in, fixed-shape records out.

Every function here is pure. The clients fetch payloads and hand them over;
nothing in this module performs I/O, so defaults and edge cases can be tested
against literal payloads.
"""

from __future__ import annotations

import json
import math
import re
import time
from collections.abc import Mapping
from typing import Any, Dict, Iterable, List, Optional, Tuple

from splunk_mcp.shared.decoding import (
    Number,
    as_bool,
    as_counter_str,
    as_list,
    as_mapping,
    as_number,
    as_optional_str,
    as_str,
    as_str_list,
    entries,
    entry_content,
    is_absent,
)
from splunk_mcp.shared.errors import ExtractionError, InvalidArgumentError

from .records import (
    ErrorMetrics,
    IndexesAndSourcetypes,
    IndexRecord,
    KVStoreCollection,
    LatencyMetrics,
    Operation,
    SavedSearch,
    Service,
    SourcetypeCount,
    SourcetypeMetadata,
    SpanLog,
    SplunkApp,
    Trace,
    TraceSearchCriteria,
    TraceSearchResult,
    TraceSpan,
    UserRecord,
)

_SID_RE = re.compile(r"<sid>([^<]+)</sid>")

FIELD_PREFIX = "field."
ACCELERATED_FIELD_PREFIX = "accelerated_field."
SPAN_STATUSES = {"ok", "error", "unset"}
DEFAULT_TRACE_LIMIT = 100
DEFAULT_TRACE_OFFSET = 0


# ===== Search jobs =====


def prepare_search_query(search_query: Any) -> str:
    """
    Normalize a query for the search jobs endpoint.

    The search language requires a query to begin with a generating pipe or an
    explicit ``search`` command; bare filter expressions get ``search `` put in
    front of them.
    """
    if search_query is not None and not isinstance(search_query, str):
        raise InvalidArgumentError(
            "Search query must be a string",
            details={"type": type(search_query).__name__},
        )
    if search_query is None or not search_query.strip():
        raise InvalidArgumentError("Search query cannot be empty")
    stripped = search_query.strip()
    if stripped.startswith("|") or stripped.lower().startswith("search"):
        return stripped
    return f"search {stripped}"


def extract_sid(body: str) -> str:
    match = _SID_RE.search(body or "")
    if not match:
        raise ExtractionError("Failed to extract job SID from response")
    return match.group(1)


def search_results(payload: Any) -> List[Any]:
    if not isinstance(payload, Mapping):
        return []
    return as_list(payload.get("results"))


# ===== Directory entries =====


def entry_names(payload: Any) -> List[str]:
    return [
        as_str(entry.get("name"))
        for entry in entries(payload)
        if isinstance(entry, Mapping)
    ]


def parse_index_record(name: str, content: Mapping) -> IndexRecord:
    return IndexRecord(
        name=name,
        total_event_count=as_counter_str(content.get("totalEventCount")),
        current_db_size_mb=as_counter_str(content.get("currentDBSizeMB")),
        max_total_data_size_mb=as_counter_str(content.get("maxTotalDataSizeMB")),
        min_time=as_counter_str(content.get("minTime")),
        max_time=as_counter_str(content.get("maxTime")),
    )


def parse_saved_search(entry: Mapping) -> SavedSearch:
    content = entry_content(entry)
    return SavedSearch(
        name=as_str(entry.get("name")),
        description=as_str(content.get("description")),
        search=as_str(content.get("search")),
    )


def parse_user(entry: Mapping, username: Optional[str] = None) -> UserRecord:
    content = entry_content(entry)
    return UserRecord(
        username=username or as_str(entry.get("name")),
        real_name=as_str(content.get("realname"), "N/A"),
        email=as_str(content.get("email"), "N/A"),
        roles=as_str_list(content.get("roles")),
        capabilities=as_str_list(content.get("capabilities")),
        default_app=as_str(content.get("defaultApp"), "search"),
        type=as_str(content.get("type"), "user"),
    )


def parse_app(entry: Mapping) -> SplunkApp:
    name = as_str(entry.get("name"))
    content = entry_content(entry)
    return SplunkApp(
        name=name,
        label=as_str(content.get("label"), name),
        version=as_str(content.get("version"), "unknown"),
    )


def current_context_username(payload: Any) -> Optional[str]:
    items = entries(payload)
    if not items:
        return None
    return as_optional_str(entry_content(items[0]).get("username"))


# ===== KV store =====


def classify_kv_fields(content: Mapping) -> Tuple[List[str], List[str]]:
    """Split ``field.*`` and ``accelerated_field.*`` keys, in map key order."""
    fields: List[str] = []
    accelerated: List[str] = []
    for key in content:
        if not isinstance(key, str):
            continue
        if key.startswith(FIELD_PREFIX):
            fields.append(key[len(FIELD_PREFIX) :])
        elif key.startswith(ACCELERATED_FIELD_PREFIX):
            accelerated.append(key[len(ACCELERATED_FIELD_PREFIX) :])
    return fields, accelerated


def parse_kvstore_stats(payload: Any) -> Dict[str, Number]:
    """
    Map ``app.collection`` namespaces to record counts.

    ``entry[0].content.data`` holds one item per collection, either a JSON
    string or an object; items without ``ns``/``count`` are skipped.
    """
    stats: Dict[str, Number] = {}
    items = entries(payload)
    if not items:
        return stats
    for raw in as_list(entry_content(items[0]).get("data")):
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except ValueError:
                continue
        if not isinstance(raw, Mapping):
            continue
        namespace = raw.get("ns")
        if is_absent(namespace) or raw.get("count") is None:
            continue
        stats[as_str(namespace)] = as_number(raw.get("count"))
    return stats


def parse_kvstore_collection(
    entry: Mapping, stats: Optional[Mapping[str, Number]] = None
) -> KVStoreCollection:
    name = as_str(entry.get("name"))
    app = as_str(as_mapping(entry.get("acl")).get("app"), "unknown")
    fields, accelerated = classify_kv_fields(entry_content(entry))
    record_count = as_number((stats or {}).get(f"{app}.{name}"))
    return KVStoreCollection(
        name=name,
        app=app,
        fields=fields,
        accelerated_fields=accelerated,
        record_count=record_count,
    )


# ===== Sourcetype inventory =====


def group_sourcetypes(rows: Iterable[Any]) -> Dict[str, List[SourcetypeCount]]:
    grouped: Dict[str, List[SourcetypeCount]] = {}
    for row in rows:
        if not isinstance(row, Mapping):
            continue
        index = as_str(row.get("index"))
        grouped.setdefault(index, []).append(
            SourcetypeCount(
                sourcetype=as_str(row.get("sourcetype")),
                count=as_counter_str(row.get("count")),
            )
        )
    return grouped


def build_indexes_and_sourcetypes(
    indexes: List[str], rows: Iterable[Any], time_range: str
) -> IndexesAndSourcetypes:
    sourcetypes = group_sourcetypes(rows)
    return IndexesAndSourcetypes(
        indexes=indexes,
        sourcetypes=sourcetypes,
        metadata=SourcetypeMetadata(
            total_indexes=len(indexes),
            total_sourcetypes=sum(len(items) for items in sourcetypes.values()),
            search_time_range=time_range,
        ),
    )


# ===== Traces =====


def now_ms() -> int:
    return int(time.time() * 1000)


def parse_service(raw: Mapping, seen_at: Optional[int] = None) -> Service:
    last_seen = as_number(raw.get("lastSeen"))
    return Service(
        name=as_str(raw.get("name")),
        operation_count=as_number(raw.get("operationCount")),
        has_errors=as_bool(raw.get("hasErrors")),
        last_seen=last_seen or (seen_at if seen_at is not None else now_ms()),
    )


def parse_operation(raw: Mapping, service_name: str) -> Operation:
    tags = raw.get("tags")
    return Operation(
        name=as_str(raw.get("name")),
        service_name=service_name,
        span_kind=as_optional_str(raw.get("spanKind")),
        tags=as_mapping(tags) if isinstance(tags, Mapping) else None,
    )


def parse_span_log(raw: Any) -> SpanLog:
    raw = as_mapping(raw)
    return SpanLog(
        timestamp=as_number(raw.get("timestamp")),
        fields=as_mapping(raw.get("fields")),
    )


def parse_span(raw: Mapping) -> TraceSpan:
    status = as_str(raw.get("status"), "unset")
    logs = raw.get("logs")
    return TraceSpan(
        span_id=as_str(raw.get("spanId")),
        trace_id=as_str(raw.get("traceId")),
        parent_span_id=as_optional_str(raw.get("parentSpanId")),
        operation_name=as_str(raw.get("operationName")),
        service_name=as_str(raw.get("serviceName")),
        start_time=as_number(raw.get("startTime")),
        duration=as_number(raw.get("duration")),
        tags=as_mapping(raw.get("tags")),
        logs=[parse_span_log(log) for log in logs] if isinstance(logs, list) else None,
        status=status if status in SPAN_STATUSES else "unset",
        error_message=as_optional_str(raw.get("errorMessage")),
    )


def parse_trace(raw: Any) -> Trace:
    """
    Build a Trace with its derived attributes.

    Parent links are copied as given; cycles and dangling parents are not
    checked. With no spans the start is +inf and the end -inf.
    """
    raw = as_mapping(raw)
    spans = [parse_span(span) for span in as_list(raw.get("spans")) if isinstance(span, Mapping)]

    services: List[str] = []
    for span in spans:
        if span.service_name not in services:
            services.append(span.service_name)

    start_time = min((span.start_time for span in spans), default=math.inf)
    end_time = max((span.end_time for span in spans), default=-math.inf)

    return Trace(
        trace_id=as_str(raw.get("traceId")),
        spans=spans,
        start_time=start_time,
        duration=end_time - start_time,
        services=services,
        operation_name=spans[0].operation_name if spans else None,
    )


def build_trace_query(criteria: TraceSearchCriteria) -> Dict[str, Any]:
    """Request body for a trace search; only filters that were provided are sent.

    A zero or missing ``limit``/``offset`` falls back to 100/0.
    """
    query: Dict[str, Any] = {}
    optional = (
        ("service", criteria.service),
        ("operation", criteria.operation),
        ("tags", criteria.tags),
        ("minDuration", criteria.min_duration),
        ("maxDuration", criteria.max_duration),
        ("error", criteria.error),
        ("startTime", criteria.start_time),
        ("endTime", criteria.end_time),
    )
    for key, value in optional:
        if value is not None:
            query[key] = value
    query["limit"] = criteria.limit or DEFAULT_TRACE_LIMIT
    query["offset"] = criteria.offset or DEFAULT_TRACE_OFFSET
    return query


def parse_trace_search(payload: Any, query: Mapping[str, Any]) -> TraceSearchResult:
    payload = as_mapping(payload)
    traces = [parse_trace(item) for item in as_list(payload.get("traces"))]
    return TraceSearchResult(
        traces=traces,
        total_count=as_number(payload.get("totalCount")) or len(traces),
        limit=query["limit"],
        offset=query["offset"],
    )


# ===== Metrics =====


def parse_latency_metrics(
    payload: Any, service: str, operation: Optional[str] = None
) -> LatencyMetrics:
    payload = as_mapping(payload)
    return LatencyMetrics(
        service=service,
        operation=operation,
        p50=as_number(payload.get("p50")),
        p75=as_number(payload.get("p75")),
        p90=as_number(payload.get("p90")),
        p99=as_number(payload.get("p99")),
        mean=as_number(payload.get("mean")),
        min=as_number(payload.get("min")),
        max=as_number(payload.get("max")),
        sample_count=as_number(payload.get("sampleCount")),
    )


def parse_error_metrics(
    payload: Any, service: str, operation: Optional[str] = None
) -> ErrorMetrics:
    payload = as_mapping(payload)
    return ErrorMetrics(
        service=service,
        operation=operation,
        error_count=as_number(payload.get("errorCount")),
        total_count=as_number(payload.get("totalCount")),
        error_rate=as_number(payload.get("errorRate")),
        error_types=as_mapping(payload.get("errorTypes")),
    )
