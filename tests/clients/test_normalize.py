"""
Unit tests for the pure response normalizers.

Payloads are literal dicts shaped like the management API and the APM API
return them, including the omissions both APIs make in practice.
"""

import json
import math

import pytest

from splunk_mcp.clients import normalize
from splunk_mcp.clients.records import TraceSearchCriteria
from splunk_mcp.shared.errors import ExtractionError, InvalidArgumentError


class TestPrepareSearchQuery:
    def test_bare_filter_gets_search_prefix(self):
        assert normalize.prepare_search_query("index=main") == "search index=main"

    def test_generating_pipe_unchanged(self):
        assert normalize.prepare_search_query("| stats count") == "| stats count"

    def test_existing_search_command_unchanged(self):
        assert normalize.prepare_search_query("search index=_internal") == (
            "search index=_internal"
        )
        assert normalize.prepare_search_query("SEARCH error") == "SEARCH error"

    def test_surrounding_whitespace_trimmed(self):
        assert normalize.prepare_search_query("  index=main  ") == "search index=main"

    @pytest.mark.parametrize("query", ["", "   ", None])
    def test_empty_rejected(self, query):
        with pytest.raises(InvalidArgumentError, match="Search query cannot be empty"):
            normalize.prepare_search_query(query)

    @pytest.mark.parametrize("query", [42, ["index=main"], {"q": "x"}])
    def test_non_string_rejected(self, query):
        with pytest.raises(InvalidArgumentError, match="must be a string"):
            normalize.prepare_search_query(query)


class TestExtractSid:
    def test_sid_found(self):
        body = "<?xml version='1.0'?>\n<response>\n  <sid>1712345.42</sid>\n</response>"

        assert normalize.extract_sid(body) == "1712345.42"

    def test_missing_sid(self):
        with pytest.raises(ExtractionError, match="Failed to extract job SID"):
            normalize.extract_sid("<response><messages/></response>")


class TestDirectoryEntries:
    def test_index_record_defaults(self):
        record = normalize.parse_index_record(
            "main", {"totalEventCount": 1234, "currentDBSizeMB": "56"}
        )

        assert record.to_wire() == {
            "name": "main",
            "totalEventCount": "1234",
            "currentDBSizeMB": "56",
            "maxTotalDataSizeMB": "0",
            "minTime": "0",
            "maxTime": "0",
        }

    def test_user_with_scalar_role(self):
        entry = {
            "name": "alice",
            "content": {"realname": "Alice", "roles": "admin", "capabilities": None},
        }

        user = normalize.parse_user(entry)

        assert user.username == "alice"
        assert user.real_name == "Alice"
        assert user.email == "N/A"
        assert user.roles == ["admin"]
        assert user.capabilities == []
        assert user.default_app == "search"
        assert user.type == "user"

    def test_user_keeps_role_order(self):
        entry = {"name": "bob", "content": {"roles": ["user", "power", "admin"]}}

        assert normalize.parse_user(entry).roles == ["user", "power", "admin"]

    def test_explicit_username_wins(self):
        user = normalize.parse_user({"name": "ignored", "content": {}}, username="carol")

        assert user.username == "carol"

    def test_app_label_defaults_to_name(self):
        app = normalize.parse_app({"name": "search", "content": {}})

        assert app.label == "search"
        assert app.version == "unknown"

    def test_saved_search(self):
        saved = normalize.parse_saved_search(
            {"name": "Errors", "content": {"search": "index=main error"}}
        )

        assert saved.name == "Errors"
        assert saved.description == ""
        assert saved.search == "index=main error"

    def test_current_context_username(self):
        payload = {"entry": [{"content": {"username": "svc_mcp"}}]}

        assert normalize.current_context_username(payload) == "svc_mcp"
        assert normalize.current_context_username({"entry": []}) is None


class TestKVStore:
    def test_field_classification(self):
        content = {
            "field.id": "number",
            "field.name": "string",
            "accelerated_field.name": "1",
            "disabled": False,
        }

        fields, accelerated = normalize.classify_kv_fields(content)

        assert sorted(fields) == ["id", "name"]
        assert set(accelerated) == {"name"}

    def test_stats_accept_strings_and_objects(self):
        payload = {
            "entry": [
                {
                    "content": {
                        "data": [
                            json.dumps({"ns": "search.lookups", "count": 12}),
                            {"ns": "myapp.sessions", "count": "3"},
                            "not json",
                            {"ns": "myapp.nocount"},
                        ]
                    }
                }
            ]
        }

        stats = normalize.parse_kvstore_stats(payload)

        assert stats == {"search.lookups": 12, "myapp.sessions": 3}

    def test_collection_record_count_from_stats(self):
        entry = {
            "name": "sessions",
            "acl": {"app": "myapp"},
            "content": {"field.user": "string"},
        }

        collection = normalize.parse_kvstore_collection(entry, {"myapp.sessions": 3})

        assert collection.app == "myapp"
        assert collection.fields == ["user"]
        assert collection.record_count == 3

    def test_collection_without_stats(self):
        collection = normalize.parse_kvstore_collection({"name": "orphans"})

        assert collection.app == "unknown"
        assert collection.record_count == 0


class TestSourcetypes:
    def test_rows_grouped_by_index(self):
        rows = [
            {"index": "main", "sourcetype": "syslog", "count": "10"},
            {"index": "main", "sourcetype": "access_combined", "count": 4},
            {"index": "_internal", "sourcetype": "splunkd", "count": "99"},
        ]

        result = normalize.build_indexes_and_sourcetypes(
            ["main", "_internal"], rows, "24 hours"
        )

        assert [s.sourcetype for s in result.sourcetypes["main"]] == [
            "syslog",
            "access_combined",
        ]
        assert result.sourcetypes["main"][1].count == "4"
        assert result.metadata.total_indexes == 2
        assert result.metadata.total_sourcetypes == 3
        assert result.metadata.search_time_range == "24 hours"


class TestTraceAssembly:
    def test_duration_spans_earliest_start_to_latest_end(self):
        raw = {
            "traceId": "t1",
            "spans": [
                {
                    "spanId": "a",
                    "operationName": "GET /checkout",
                    "serviceName": "frontend",
                    "startTime": 1000000,
                    "duration": 150,
                },
                {
                    "spanId": "b",
                    "parentSpanId": "a",
                    "operationName": "charge",
                    "serviceName": "payments",
                    "startTime": 1000010,
                    "duration": 50,
                },
            ],
        }

        trace = normalize.parse_trace(raw)

        assert trace.services == ["frontend", "payments"]
        assert trace.start_time == 1000000
        assert trace.duration == 150
        assert trace.operation_name == "GET /checkout"
        assert trace.spans[1].parent_span_id == "a"

    def test_later_span_end_extends_duration(self):
        raw = {
            "spans": [
                {"serviceName": "a", "startTime": 100, "duration": 10},
                {"serviceName": "a", "startTime": 105, "duration": 20},
            ]
        }

        trace = normalize.parse_trace(raw)

        assert trace.services == ["a"]
        assert trace.duration == 25

    def test_empty_trace_keeps_sentinel_timing(self):
        trace = normalize.parse_trace({"traceId": "empty", "spans": []})

        assert trace.spans == []
        assert trace.services == []
        assert trace.start_time == math.inf
        assert trace.duration == -math.inf
        assert trace.operation_name is None

    def test_invalid_span_status_is_unset(self):
        span = normalize.parse_span({"status": "weird"})

        assert span.status == "unset"
        assert normalize.parse_span({"status": "error"}).status == "error"


class TestTraceQuery:
    def test_only_provided_filters_are_sent(self):
        query = normalize.build_trace_query(
            TraceSearchCriteria(service="checkout", min_duration=250)
        )

        assert query == {
            "service": "checkout",
            "minDuration": 250,
            "limit": 100,
            "offset": 0,
        }

    def test_error_false_is_sent(self):
        query = normalize.build_trace_query(TraceSearchCriteria(error=False))

        assert query["error"] is False

    def test_zero_limit_falls_back_to_default(self):
        query = normalize.build_trace_query(TraceSearchCriteria(limit=0, offset=0))

        assert query["limit"] == 100
        assert query["offset"] == 0

    def test_explicit_paging_kept(self):
        query = normalize.build_trace_query(TraceSearchCriteria(limit=5, offset=20))

        assert query["limit"] == 5
        assert query["offset"] == 20

    def test_search_result_total_falls_back_to_page_size(self):
        query = {"limit": 100, "offset": 0}
        payload = {"traces": [{"traceId": "x", "spans": []}]}

        result = normalize.parse_trace_search(payload, query)

        assert result.total_count == 1
        assert result.limit == 100


class TestTracingCatalogue:
    def test_service_last_seen_defaults_to_fetch_time(self):
        service = normalize.parse_service({"name": "api"}, seen_at=1700000000000)

        assert service.operation_count == 0
        assert service.has_errors is False
        assert service.last_seen == 1700000000000

    def test_operation_carries_service(self):
        op = normalize.parse_operation({"name": "GET /", "spanKind": "SERVER"}, "api")

        assert op.service_name == "api"
        assert op.span_kind == "SERVER"
        assert op.tags is None


class TestMetrics:
    def test_latency_defaults(self):
        metrics = normalize.parse_latency_metrics({"p50": 12.5, "p99": "80"}, "api")

        assert metrics.p50 == 12.5
        assert metrics.p99 == 80
        assert metrics.mean == 0
        assert metrics.sample_count == 0
        assert "operation" not in metrics.to_wire()

    def test_error_metrics(self):
        metrics = normalize.parse_error_metrics(
            {"errorCount": 5, "totalCount": 100, "errorRate": 0.05,
             "errorTypes": {"500": 5}},
            "api",
            "GET /",
        )

        assert metrics.to_wire() == {
            "service": "api",
            "operation": "GET /",
            "errorCount": 5,
            "totalCount": 100,
            "errorRate": 0.05,
            "errorTypes": {"500": 5},
        }
