"""Error taxonomy for the Slack file download server.

Every failure raised while handling a tool call is a SlackMcpError. The
dispatcher turns them into `{"error": {"code": ..., "message": ...}}` payloads,
so nothing escapes the tool boundary as an unhandled exception.
"""
from typing import Any, Optional


class SlackMcpError(Exception):
    code = "SLACK_MCP_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_error_detail(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class MissingCredentialError(SlackMcpError):
    """Token absent, too short, or not usable in a header."""
    code = "MISSING_CREDENTIAL"


class InvalidUrlError(SlackMcpError):
    """Wrong scheme, host, path prefix, or malformed URL."""
    code = "INVALID_URL"


class InvalidPathError(SlackMcpError):
    """Download directory escapes the configured root."""
    code = "INVALID_PATH"


PathTraversalError = InvalidPathError


class InvalidFilenameError(SlackMcpError):
    code = "INVALID_FILENAME"


class NetworkFailureError(SlackMcpError):
    """Timeout, non-2xx status, size limit exceeded, or missing HTTP client."""
    code = "NETWORK_FAILURE"


class EmptyPayloadError(SlackMcpError):
    code = "EMPTY_PAYLOAD"


class InvalidArgumentsError(SlackMcpError):
    code = "INVALID_ARGUMENTS"


class InvalidToolError(SlackMcpError):
    code = "INVALID_TOOL"


class ConfigurationError(SlackMcpError):
    """Setup-time problem with the action environment."""
    code = "INVALID_CONFIGURATION"


def redact_secret(text: str, secret: Optional[str], placeholder: str = "***MASKED***") -> str:
    """Replace every occurrence of secret in text."""
    if not secret or not text:
        return text
    return text.replace(secret, placeholder)
