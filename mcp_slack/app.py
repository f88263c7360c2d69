"""
Slack MCP server.

Runs locally over stdio and exposes authenticated downloads of files hosted on
files.slack.com, saving them under the configured download directory.
"""
import asyncio
import json
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import CallToolResult, TextContent, Tool
from pydantic import ValidationError

from mcp_slack.config import SERVER_NAME, SERVER_VERSION, ServerConfig
from mcp_slack.dotenv_utils import load_slack_dotenv
from mcp_slack.downloader import Downloader
from mcp_slack.errors import (
    InvalidArgumentsError,
    InvalidPathError,
    InvalidToolError,
    SlackMcpError,
    redact_secret,
)
from mcp_slack.filenames import resolve_target
from mcp_slack.slack_api import SlackApiClient
from mcp_slack.tool_models import (
    DownloadFileOutput,
    DownloadFileRequest,
    ErrorDetail,
    HealthCheckOutput,
)
from mcp_slack.validation import validate_token, validate_url

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
HEALTH_CHECK_FLAG = "--health-check"


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    input_schema: dict[str, Any]
    output_schema: Optional[dict[str, Any]] = None


ERROR_SCHEMA = {
    "type": "object",
    "properties": {
        "code": {"type": "string"},
        "message": {"type": "string"},
    },
    "required": ["code", "message"],
}

DOWNLOAD_FILE_INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "url": {
            "type": "string",
            "description": (
                "Slack file URL to download (e.g., "
                "https://files.slack.com/files-tmb/T05EFSVDCLR-F08TC9CP9B8/screenshot_720.png)"
            ),
        },
        "filename": {
            "type": "string",
            "description": "Optional name for the saved file. Unsafe characters are replaced.",
        },
    },
    "required": ["url"],
}

DOWNLOAD_FILE_OUTPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "saved_path": {"type": "string"},
        "filename": {"type": "string"},
        "download_size": {"type": "integer"},
        "source_url": {"type": "string"},
        "error": ERROR_SCHEMA,
    },
    "additionalProperties": False,
}

HEALTH_CHECK_INPUT_SCHEMA = {
    "type": "object",
    "properties": {},
}

HEALTH_CHECK_OUTPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "token_configured": {"type": "boolean"},
        "download_directory": {"type": "string"},
        "directory_accessible": {"type": "boolean"},
        "version": {"type": "string"},
        "error": ERROR_SCHEMA,
    },
}

TOOL_DEFINITIONS = [
    ToolDefinition(
        name="download_file",
        description=(
            "Download a file from Slack (files.slack.com) using the configured Slack token "
            "and save it to the download directory."
        ),
        input_schema=DOWNLOAD_FILE_INPUT_SCHEMA,
        output_schema=DOWNLOAD_FILE_OUTPUT_SCHEMA,
    ),
    ToolDefinition(
        name="health_check",
        description=(
            "Report whether a Slack token is configured and whether the download "
            "directory is accessible. Does not contact Slack."
        ),
        input_schema=HEALTH_CHECK_INPUT_SCHEMA,
        output_schema=HEALTH_CHECK_OUTPUT_SCHEMA,
    ),
]

# Earlier releases exposed the download tool under this name.
LEGACY_TOOL_ALIASES = {
    "slack_image_download": "download_file",
}


async def handle_list_tools() -> list[Tool]:
    return [
        Tool(
            name=definition.name,
            description=definition.description,
            inputSchema=definition.input_schema,
            outputSchema=definition.output_schema,
        )
        for definition in TOOL_DEFINITIONS
    ]


def _wrap_response(
    payload: dict[str, Any],
    text: Optional[str] = None,
    is_error: Optional[bool] = None,
) -> CallToolResult:
    if is_error is None:
        is_error = isinstance(payload.get("error"), dict)
    return CallToolResult(
        content=[TextContent(type="text", text=text if text is not None else json.dumps(payload))],
        structuredContent=payload,
        isError=is_error,
    )


def _wrap_error(error: dict[str, Any], secret: Optional[str] = None) -> CallToolResult:
    detail = ErrorDetail(
        code=error.get("code", "DOWNLOAD_FAILED"),
        message=redact_secret(str(error.get("message", "")), secret),
    )
    return _wrap_response(
        {"error": detail.model_dump()},
        text=f"Error downloading Slack file: {detail.message}",
        is_error=True,
    )


def format_size(size_bytes: int) -> str:
    if size_bytes < 1024:
        return f"{size_bytes} bytes"
    return f"{round(size_bytes / 1024)} KB"


def is_directory_accessible(path: Path) -> bool:
    return path.is_dir() and os.access(path, os.W_OK | os.X_OK)


def _ensure_directory(path: Path) -> None:
    if path.exists() and not path.is_dir():
        raise InvalidPathError(f"DOWNLOAD_DIRECTORY is not a directory: {path}")
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise InvalidPathError(f"Unable to create download directory {path}: {exc}") from exc


def _parse_download_request(arguments: dict[str, Any]) -> DownloadFileRequest:
    try:
        return DownloadFileRequest(**arguments)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'arguments'}: {error['msg']}"
            for error in exc.errors()
        )
        raise InvalidArgumentsError(f"Invalid arguments: {problems}") from exc


class SlackFileTools:
    """Tool handlers bound to one immutable ServerConfig."""

    def __init__(
        self,
        config: ServerConfig,
        downloader: Optional[Downloader] = None,
        slack_api: Optional[SlackApiClient] = None,
    ):
        self.config = config
        self.downloader = downloader if downloader is not None else Downloader(limits=config.limits)
        self.slack_api = slack_api if slack_api is not None else SlackApiClient()
        self.handlers = {
            "download_file": self.handle_download_file,
            "health_check": self.handle_health_check,
        }

    async def dispatch(self, name: str, arguments: Optional[dict[str, Any]]) -> CallToolResult:
        handler = self.handlers.get(LEGACY_TOOL_ALIASES.get(name, name))
        if handler is None:
            return _wrap_response(
                {"error": InvalidToolError(f"Unknown tool: {name}").to_error_detail()},
                is_error=True,
            )
        try:
            return await handler(arguments or {})
        except Exception as exc:
            logger.exception("Tool %s failed unexpectedly", name)
            return _wrap_error(
                {"code": "INTERNAL_ERROR", "message": str(exc) or exc.__class__.__name__},
                self.config.token,
            )

    async def handle_download_file(self, arguments: dict[str, Any]) -> CallToolResult:
        """Download a Slack file and save it under the download directory.

        Examples:
            - {"url": "https://files.slack.com/files-tmb/T1-F1/shot_720.png"}
              → saved as slack_shot_<timestamp>.png
            - {"url": "...", "filename": "diagram.png"} → saved as diagram.png

        Args:
            - url: files.slack.com URL under /files/, /files-pri/ or /files-tmb/.
            - filename: Optional name for the saved file.

        Returns:
            - content: human-readable summary with path and size.
            - structuredContent: saved_path/filename/download_size/source_url or error.
            - isError: True when validation or the download fails.
        """
        token = self.config.token
        try:
            req = _parse_download_request(arguments)
            token = validate_token(token)
            url = validate_url(req.url)
            _ensure_directory(self.config.download_directory)
            download_url = url
            if self.config.resolve_file_info:
                download_url = await self.slack_api.resolve_download_url(url, token)
            target = resolve_target(url, self.config.download_directory, req.filename)
        except SlackMcpError as exc:
            logger.warning("Rejected download_file request: %s", redact_secret(exc.message, token))
            return _wrap_error(exc.to_error_detail(), token)

        outcome = None
        try:
            outcome = await self.downloader.download(download_url, target.path, token)
        finally:
            if outcome is None or not outcome.ok:
                target.release()
        if not outcome.ok:
            return _wrap_error(outcome.error, token)

        payload = DownloadFileOutput(
            saved_path=str(outcome.path),
            filename=target.filename,
            download_size=outcome.size_bytes,
            source_url=url,
        ).model_dump()
        text = (
            f"Successfully downloaded Slack file to {outcome.path} "
            f"({format_size(outcome.size_bytes)})\nFrom URL: {url}"
        )
        return _wrap_response(payload, text=text, is_error=False)

    def health_report(self) -> HealthCheckOutput:
        directory = self.config.download_directory
        return HealthCheckOutput(
            token_configured=self.config.token_configured,
            download_directory=str(directory),
            directory_accessible=is_directory_accessible(directory),
            version=SERVER_VERSION,
        )

    async def handle_health_check(self, arguments: dict[str, Any]) -> CallToolResult:
        report = self.health_report()
        text = "\n".join(
            [
                f"Slack MCP server {report.version}",
                f"Token configured: {'yes' if report.token_configured else 'no'}",
                f"Download directory: {report.download_directory}",
                f"Directory accessible: {'yes' if report.directory_accessible else 'no'}",
            ]
        )
        return _wrap_response(report.model_dump(), text=text, is_error=False)


def create_server(tools: SlackFileTools) -> Server:
    server = Server(SERVER_NAME, version=SERVER_VERSION)

    @server.list_tools()
    async def _list_tools() -> list[Tool]:
        return await handle_list_tools()

    @server.call_tool()
    async def _call_tool(name: str, arguments: dict[str, Any]) -> CallToolResult:
        return await tools.dispatch(name, arguments)

    return server


async def serve(config: ServerConfig) -> None:
    server = create_server(SlackFileTools(config))
    logger.info(
        "Starting Slack MCP server %s (download directory: %s)",
        SERVER_VERSION,
        config.download_directory,
    )
    async with stdio_server() as streams:
        await server.run(
            streams[0],
            streams[1],
            server.create_initialization_options(),
        )


def run_health_check(config: ServerConfig) -> int:
    report = SlackFileTools(config).health_report()
    print(report.model_dump_json(indent=2))
    return 0 if report.token_configured and report.directory_accessible else 1


def main(argv: Optional[list[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    dotenv_loaded, dotenv_paths = load_slack_dotenv(Path(__file__).parent)
    if not dotenv_loaded:
        logger.debug("No .env file found; searched: %s", ", ".join(str(path) for path in dotenv_paths))

    try:
        config = ServerConfig.from_env()
    except SlackMcpError as exc:
        logger.error("Failed to start Slack MCP server: %s", exc.message)
        return 1

    if HEALTH_CHECK_FLAG in argv:
        return run_health_check(config)

    if not config.token_configured:
        logger.warning("SLACK_TOKEN is not set; download_file will fail until it is configured.")
    asyncio.run(serve(config))
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
