"""Helpers for loading .env files for the Slack MCP server and setup script."""
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DOTENV_PATH_ENV = "SLACK_MCP_DOTENV"


def dotenv_candidates(module_dir: Optional[Path] = None) -> list[Path]:
    """SLACK_MCP_DOTENV if set, else mcp_slack/.env then the repo root .env."""
    explicit = os.environ.get(DOTENV_PATH_ENV)
    if explicit:
        return [Path(explicit).expanduser()]
    base_dir = module_dir or Path(__file__).parent
    return [base_dir / ".env", base_dir.parent / ".env"]


def load_slack_dotenv(module_dir: Optional[Path] = None) -> tuple[bool, list[Path]]:
    """Load the first existing candidate without overriding variables already set."""
    paths = dotenv_candidates(module_dir)
    for path in paths:
        if path.is_file() and load_dotenv(path, override=False):
            return True, paths
    return False, paths
