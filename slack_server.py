# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "mcp>=1.10,<2",
#     "pydantic>=2",
#     "python-dotenv>=1.0",
#     "httpx>=0.27",
# ]
# ///
"""Launcher for the Slack MCP server, used by `uv run slack_server.py`."""
from mcp_slack.app import run

if __name__ == "__main__":
    run()
