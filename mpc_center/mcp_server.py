from __future__ import annotations

from typing import Any

from mcp.server.fastmcp import FastMCP

from mpc_center.context import AppContext
from mpc_center.tools import DEFAULT_LOG_LIMIT, TOOL_DEFINITIONS, ToolSurface

MCP_SERVER_NAME = "mpc-center"

_DESCRIPTIONS = {tool["name"]: tool["description"] for tool in TOOL_DEFINITIONS}


def build_server(context: AppContext) -> FastMCP:
    surface = ToolSurface(context)
    mcp = FastMCP(MCP_SERVER_NAME)

    @mcp.tool(name="check_status", description=_DESCRIPTIONS["check_status"])
    def check_status() -> dict[str, Any]:
        return surface.call_tool("check_status")

    @mcp.tool(name="run_sync", description=_DESCRIPTIONS["run_sync"])
    def run_sync(keyword: str | None = None) -> dict[str, Any]:
        return surface.call_tool("run_sync", {"keyword": keyword})

    @mcp.tool(name="start_automation", description=_DESCRIPTIONS["start_automation"])
    def start_automation() -> dict[str, Any]:
        return surface.call_tool("start_automation")

    @mcp.tool(name="stop_automation", description=_DESCRIPTIONS["stop_automation"])
    def stop_automation() -> dict[str, Any]:
        return surface.call_tool("stop_automation")

    @mcp.tool(name="get_logs", description=_DESCRIPTIONS["get_logs"])
    def get_logs(limit: int = DEFAULT_LOG_LIMIT) -> dict[str, Any]:
        return surface.call_tool("get_logs", {"limit": limit})

    return mcp


def main() -> None:
    build_server(AppContext.from_env()).run()


if __name__ == "__main__":
    main()
