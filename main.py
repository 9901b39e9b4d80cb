"""MCP server entry point for the AI workflow kit."""

from aiworkflow.mcp_server import run


if __name__ == "__main__":
    run()
