"""
STDIO MCP Server for Claude Desktop and other MCP hosts.
Runs the low-level MCP server over STDIO transport.
"""

from __future__ import annotations

import builtins
import logging

# --- STDIO-SAFE BOOTSTRAP: Must be at the very top ---
import os
import sys
import warnings

# Unbuffered, UTF-8 (avoids partial writes / encoding surprises)
os.environ.setdefault("PYTHONUNBUFFERED", "1")

# 1) Route all Python logging to STDERR (never STDOUT) until setup_logging runs
root = logging.getLogger()
for h in list(root.handlers):
    root.removeHandler(h)

stderr_handler = logging.StreamHandler(sys.stderr)
stderr_handler.setFormatter(
    logging.Formatter(fmt="%(asctime)s %(levelname)s %(name)s: %(message)s")
)
root.addHandler(stderr_handler)
root.setLevel(logging.INFO)

# 2) Redirect accidental print() calls to STDERR
_builtin_print = builtins.print


def _stderr_print(*args, **kwargs):
    kwargs.setdefault("file", sys.stderr)
    return _builtin_print(*args, **kwargs)


builtins.print = _stderr_print

warnings.simplefilter("default")
# --- END STDIO-SAFE BOOTSTRAP ---

import anyio  # noqa: E402
from mcp.server.lowlevel.server import NotificationOptions  # noqa: E402
from mcp.server.stdio import stdio_server  # noqa: E402

from splunk_mcp.mcp_server.mcp_app import build_mcp_server  # noqa: E402
from splunk_mcp.shared.config import (  # noqa: E402
    Config,
    Settings,
    effective_log_level,
    init_config,
)
from splunk_mcp.shared.observability import get_logger, setup_logging  # noqa: E402

logger = get_logger(__name__)


async def run_stdio_server(config: Config, settings: Settings) -> None:
    server = build_mcp_server(config, settings)
    init_options = server.create_initialization_options(
        notification_options=NotificationOptions()
    )
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, init_options)


def main() -> None:
    try:
        config, settings = init_config()
        setup_logging(effective_log_level(config, settings))
    except (ValueError, OSError) as exc:
        logging.getLogger(__name__).error("Invalid configuration: %s", exc)
        sys.exit(1)

    logger.info(
        "Starting splunk-mcp server with STDIO transport",
        version=config.app.version,
        splunk=settings.splunk().base_url,
        signalfx_enabled=settings.signalfx_enabled,
    )
    anyio.run(run_stdio_server, config, settings)


if __name__ == "__main__":
    main()
