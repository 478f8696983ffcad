"""Minimal stdio MCP server used by the integration tests.

Usage: python mcp_echo_server.py <suffix>; exposes `tool_<suffix>`.
"""

import sys

from fastmcp import FastMCP

suffix = sys.argv[1] if len(sys.argv) > 1 else "echo"
mcp = FastMCP(name=f"echo-{suffix}")


@mcp.tool(name=f"tool_{suffix}", description="Echo the text back with the server suffix.")
def echo(text: str) -> str:
    return f"{suffix}:{text}"


if __name__ == "__main__":
    mcp.run(transport="stdio")
