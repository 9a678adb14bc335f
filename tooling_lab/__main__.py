"""Run the MCP server: ``python -m tooling_lab``."""

from tooling_lab.mcp_server import main

main()
