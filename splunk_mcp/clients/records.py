"""
Normalized records returned by the upstream clients.

Log-search records keep Splunk's snake_case names; tracing records keep the
camelCase names of the SignalFx APM API. ``to_wire()`` dumps either with the
upstream-facing names.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from splunk_mcp.shared.decoding import Number
from splunk_mcp.shared.models import AdapterBaseModel

# ===== Splunk =====


class SearchJobState(str, Enum):
    SUBMITTED = "submitted"
    BLOCKING_WAIT = "blocking-wait"
    RESULTS_READY = "results-ready"


class SearchJob(AdapterBaseModel):
    sid: Optional[str] = None
    query: str
    state: SearchJobState = SearchJobState.SUBMITTED


class IndexList(AdapterBaseModel):
    indexes: List[str] = Field(default_factory=list)


class IndexRecord(AdapterBaseModel):
    name: str
    total_event_count: str = Field(default="0", alias="totalEventCount")
    current_db_size_mb: str = Field(default="0", alias="currentDBSizeMB")
    max_total_data_size_mb: str = Field(default="0", alias="maxTotalDataSizeMB")
    min_time: str = Field(default="0", alias="minTime")
    max_time: str = Field(default="0", alias="maxTime")


class SavedSearch(AdapterBaseModel):
    name: str
    description: str = ""
    search: str = ""


class UserRecord(AdapterBaseModel):
    username: str
    real_name: str = "N/A"
    email: str = "N/A"
    roles: List[Any] = Field(default_factory=list)
    capabilities: List[Any] = Field(default_factory=list)
    default_app: str = "search"
    type: str = "user"


class SplunkApp(AdapterBaseModel):
    name: str
    label: str
    version: str = "unknown"


class KVStoreCollection(AdapterBaseModel):
    name: str
    app: str = "unknown"
    fields: List[str] = Field(default_factory=list)
    accelerated_fields: List[str] = Field(default_factory=list)
    record_count: Number = 0


class ConnectionSummary(AdapterBaseModel):
    host: str
    port: int
    scheme: str
    username: str = "N/A"
    ssl_verify: bool


class HealthReport(AdapterBaseModel):
    status: str = "healthy"
    connection: ConnectionSummary
    apps_count: int
    apps: List[SplunkApp] = Field(default_factory=list)


class SourcetypeCount(AdapterBaseModel):
    sourcetype: str
    count: str


class SourcetypeMetadata(AdapterBaseModel):
    total_indexes: int
    total_sourcetypes: int
    search_time_range: str


class IndexesAndSourcetypes(AdapterBaseModel):
    indexes: List[str]
    sourcetypes: Dict[str, List[SourcetypeCount]]
    metadata: SourcetypeMetadata


# ===== SignalFx =====

SpanStatus = Literal["ok", "error", "unset"]


class Service(AdapterBaseModel):
    name: str
    operation_count: Number = Field(default=0, alias="operationCount")
    has_errors: bool = Field(default=False, alias="hasErrors")
    last_seen: Number = Field(alias="lastSeen")


class Operation(AdapterBaseModel):
    name: str
    service_name: str = Field(alias="serviceName")
    span_kind: Optional[str] = Field(default=None, alias="spanKind")
    tags: Optional[Dict[str, Any]] = None


class SpanLog(AdapterBaseModel):
    timestamp: Number = 0
    fields: Dict[str, Any] = Field(default_factory=dict)


class TraceSpan(AdapterBaseModel):
    span_id: str = Field(default="", alias="spanId")
    trace_id: str = Field(default="", alias="traceId")
    parent_span_id: Optional[str] = Field(default=None, alias="parentSpanId")
    operation_name: str = Field(default="", alias="operationName")
    service_name: str = Field(default="", alias="serviceName")
    start_time: Number = Field(default=0, alias="startTime")
    duration: Number = 0
    tags: Dict[str, Any] = Field(default_factory=dict)
    logs: Optional[List[SpanLog]] = None
    status: SpanStatus = "unset"
    error_message: Optional[str] = Field(default=None, alias="errorMessage")

    @property
    def end_time(self) -> Number:
        return self.start_time + self.duration


class Trace(AdapterBaseModel):
    """
    A trace and its spans.

    ``services``, ``start_time`` and ``duration`` are derived from the spans.
    A trace without spans keeps the degenerate timing of +inf/-inf; callers
    must treat it as a sentinel rather than a zero-length trace.
    """

    trace_id: str = Field(default="", alias="traceId")
    spans: List[TraceSpan] = Field(default_factory=list)
    start_time: Number = Field(alias="startTime")
    duration: Number
    services: List[str] = Field(default_factory=list)
    operation_name: Optional[str] = Field(default=None, alias="operationName")


class TraceSearchCriteria(AdapterBaseModel):
    service: Optional[str] = None
    operation: Optional[str] = None
    tags: Optional[Dict[str, Any]] = None
    min_duration: Optional[Number] = Field(default=None, alias="minDuration")
    max_duration: Optional[Number] = Field(default=None, alias="maxDuration")
    error: Optional[bool] = None
    start_time: Optional[Number] = Field(default=None, alias="startTime")
    end_time: Optional[Number] = Field(default=None, alias="endTime")
    limit: Optional[int] = None
    offset: Optional[int] = None


class TraceSearchResult(AdapterBaseModel):
    traces: List[Trace] = Field(default_factory=list)
    total_count: Number = Field(default=0, alias="totalCount")
    limit: int
    offset: int


class LatencyMetrics(AdapterBaseModel):
    service: str
    operation: Optional[str] = None
    p50: Number = 0
    p75: Number = 0
    p90: Number = 0
    p99: Number = 0
    mean: Number = 0
    min: Number = 0
    max: Number = 0
    sample_count: Number = Field(default=0, alias="sampleCount")


class ErrorMetrics(AdapterBaseModel):
    service: str
    operation: Optional[str] = None
    error_count: Number = Field(default=0, alias="errorCount")
    total_count: Number = Field(default=0, alias="totalCount")
    error_rate: Number = Field(default=0, alias="errorRate")
    error_types: Dict[str, Any] = Field(default_factory=dict, alias="errorTypes")
