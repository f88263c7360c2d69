"""
Slack MCP setup.

Validates the action environment and prints the MCP configuration that tells
the host how to launch the Slack MCP server. Runs once, before the server
exists, and exits non-zero on any validation failure.
"""
import json
import logging
import os
import sys
import uuid
from pathlib import Path
from typing import Any, Mapping, Optional, TextIO

from mcp_slack.config import (
    DOWNLOAD_DIRECTORY_ENV,
    get_root_from_env,
    get_token_from_env,
)
from mcp_slack.dotenv_utils import load_slack_dotenv
from mcp_slack.errors import ConfigurationError, SlackMcpError, redact_secret
from mcp_slack.validation import validate_download_directory, validate_token

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
ACTION_PATH_ENV = "GITHUB_ACTION_PATH"
GITHUB_OUTPUT_ENV = "GITHUB_OUTPUT"
SERVER_KEY = "slack"
SERVER_ENTRY_FILENAME = "slack_server.py"
DEFAULT_LAUNCHER = "uv"
RUN_SUBCOMMAND = "run"
MASKED_VALUE = "***MASKED***"


def server_entry_path(action_path: Path) -> Path:
    return action_path / SERVER_ENTRY_FILENAME


def validate_server_executable(action_path: Path) -> Path:
    entry = server_entry_path(action_path)
    if not entry.is_file():
        raise ConfigurationError(f"Slack server executable not found at: {entry}")
    return entry


def build_mcp_config(
    action_path: Path,
    download_directory: Path,
    token: str,
    launcher: str = DEFAULT_LAUNCHER,
) -> dict[str, Any]:
    return {
        "mcpServers": {
            SERVER_KEY: {
                "command": launcher,
                "args": [RUN_SUBCOMMAND, str(server_entry_path(action_path))],
                "env": {
                    "SLACK_TOKEN": token,
                    DOWNLOAD_DIRECTORY_ENV: str(download_directory),
                },
            }
        }
    }


def mask_mcp_config(mcp_config: dict[str, Any]) -> dict[str, Any]:
    masked = json.loads(json.dumps(mcp_config))
    for server in masked.get("mcpServers", {}).values():
        env = server.get("env", {})
        if "SLACK_TOKEN" in env:
            env["SLACK_TOKEN"] = MASKED_VALUE
    return masked


def write_github_outputs(output_file: Path, outputs: Mapping[str, str]) -> None:
    """Append outputs using the multi-line `name<<delimiter` syntax."""
    with output_file.open("a", encoding="utf-8") as handle:
        for name, value in outputs.items():
            delimiter = f"ghadelimiter_{uuid.uuid4().hex}"
            handle.write(f"{name}<<{delimiter}\n{value}\n{delimiter}\n")


def generate_config(env: Mapping[str, str]) -> tuple[dict[str, Any], Path]:
    """Validate the environment and return (mcp_config, server_entry)."""
    action_path_value = env.get(ACTION_PATH_ENV)
    if not action_path_value:
        raise ConfigurationError(f"{ACTION_PATH_ENV} environment variable is required")
    action_path = Path(action_path_value).expanduser().resolve()

    logger.info("Validating Slack token...")
    token = validate_token(get_token_from_env(env))

    logger.info("Validating download directory...")
    download_directory = validate_download_directory(
        env.get(DOWNLOAD_DIRECTORY_ENV),
        get_root_from_env(env),
    )

    logger.info("Validating server executable...")
    server_entry = validate_server_executable(action_path)

    logger.info("Generating MCP configuration...")
    return build_mcp_config(action_path, download_directory, token), server_entry


def main(env: Optional[Mapping[str, str]] = None, stdout: Optional[TextIO] = None) -> int:
    env = os.environ if env is None else env
    stdout = sys.stdout if stdout is None else stdout
    token = get_token_from_env(env)
    try:
        mcp_config, server_entry = generate_config(env)
    except SlackMcpError as exc:
        logger.error("Failed to setup Slack MCP server: %s", redact_secret(exc.message, token))
        return 1

    mcp_config_json = json.dumps(mcp_config, indent=2)
    output_file = env.get(GITHUB_OUTPUT_ENV)
    if output_file:
        try:
            write_github_outputs(
                Path(output_file),
                {"mcp_config": mcp_config_json, "server_executable": str(server_entry)},
            )
        except OSError as exc:
            logger.error("Failed to write GitHub outputs to %s: %s", output_file, exc)
            return 1

    stdout.write(mcp_config_json + "\n")
    slack_env = mcp_config["mcpServers"][SERVER_KEY]["env"]
    logger.info("Slack MCP server configured successfully")
    logger.info("Download directory: %s", slack_env[DOWNLOAD_DIRECTORY_ENV])
    logger.debug("Generated MCP config structure:\n%s", json.dumps(mask_mcp_config(mcp_config), indent=2))
    return 0


def run() -> None:
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    load_slack_dotenv(Path(__file__).parent)
    sys.exit(main())


if __name__ == "__main__":
    run()
