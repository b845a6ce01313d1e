# MCP server package
from .mcp_app import Deps, build_mcp_server, dispatch_tool, tool_specs

__all__ = ["Deps", "build_mcp_server", "dispatch_tool", "tool_specs"]
