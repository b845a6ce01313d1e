# Prometheus metrics for tool calls and upstream requests.

from prometheus_client import REGISTRY, Counter, Histogram, generate_latest

# ===== MCP tool metrics =====
mcp_tool_calls_total = Counter(
    "mcp_tool_calls_total",
    "Total MCP tool calls",
    ["tool_name", "status"],
)

mcp_tool_duration_seconds = Histogram(
    "mcp_tool_duration_seconds",
    "MCP tool execution duration in seconds",
    ["tool_name"],
    buckets=(0.01, 0.05, 0.1, 0.2, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 120.0),
)

# ===== Upstream HTTP metrics =====
upstream_requests_total = Counter(
    "upstream_requests_total",
    "Total HTTP requests issued to an upstream",
    ["upstream", "method", "status"],
)

upstream_request_duration_seconds = Histogram(
    "upstream_request_duration_seconds",
    "Upstream HTTP request duration in seconds",
    ["upstream", "method"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)


def get_metrics() -> bytes:
    """Render every registered metric in Prometheus exposition format."""
    return generate_latest(REGISTRY)
