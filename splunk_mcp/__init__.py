"""MCP server exposing Splunk search and SignalFx APM traces as tools."""

__version__ = "0.3.0"

__all__ = ["__version__"]
