"""Validation of the untrusted inputs: bearer token, file URL, download directory.

URL checks compare parsed components against the trusted Slack file origin.
Directory checks run on the normalized path so that `..` segments hidden behind
mixed separators or redundant components cannot escape the root.
"""
import logging
import re
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlsplit

from mcp_slack.errors import InvalidPathError, InvalidUrlError, MissingCredentialError

logger = logging.getLogger(__name__)

TOKEN_MIN_LENGTH = 50
TOKEN_PREFIXES = ("xoxb-", "xoxp-")

TRUSTED_SCHEME = "https"
TRUSTED_HOST = "files.slack.com"
TRUSTED_PORTS = (None, 443)
TRUSTED_PATH_PREFIXES = ("/files/", "/files-pri/", "/files-tmb/")

# RFC 3986 unreserved + reserved + percent sign.
_URL_CHARS = re.compile(r"^[A-Za-z0-9\-._~:/?#\[\]@!$&'()*+,;=%]+$")
_TOKEN_FORBIDDEN = re.compile(r"[\s\x00-\x1f\x7f]")
_PATH_FORBIDDEN = ("\x00", "\n", "\r")


def validate_token(token: Optional[str]) -> str:
    """Return the token when it is usable as a Slack bearer token."""
    if not token:
        raise MissingCredentialError("SLACK_TOKEN is required")
    if len(token) < TOKEN_MIN_LENGTH:
        raise MissingCredentialError("Slack token appears to be too short to be valid")
    if _TOKEN_FORBIDDEN.search(token):
        raise MissingCredentialError("Slack token contains whitespace or control characters")
    if not token.startswith(TOKEN_PREFIXES):
        logger.warning(
            "Slack token does not appear to be in the expected format (should start with %s)",
            " or ".join(TOKEN_PREFIXES),
        )
    return token


def validate_url(url: Optional[str]) -> str:
    """Return url when it points at the trusted Slack file-serving origin."""
    if not url or not isinstance(url, str):
        raise InvalidUrlError("URL is required")
    if not _URL_CHARS.match(url):
        raise InvalidUrlError("URL contains characters that are not allowed in a URL")
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError as exc:
        raise InvalidUrlError(f"URL is malformed: {exc}") from exc

    if parts.scheme != TRUSTED_SCHEME:
        raise InvalidUrlError(f"URL must use https, got {parts.scheme or 'no scheme'}")
    if parts.username is not None or parts.password is not None:
        raise InvalidUrlError("URL must not contain credentials")
    if (parts.hostname or "").lower() != TRUSTED_HOST:
        raise InvalidUrlError(
            "URL must be a Slack file URL (e.g., https://files.slack.com/files-pri/...)"
        )
    if port not in TRUSTED_PORTS:
        raise InvalidUrlError(f"URL must not use port {port}")
    if not parts.path.startswith(TRUSTED_PATH_PREFIXES):
        raise InvalidUrlError(
            "URL path must start with one of: " + ", ".join(TRUSTED_PATH_PREFIXES)
        )
    return url


def validate_download_directory(directory: Optional[str], root: Union[str, Path]) -> Path:
    """Resolve directory against root and return it if it stays inside root."""
    root_path = Path(root).expanduser().resolve()
    raw = directory or ""
    if any(char in raw for char in _PATH_FORBIDDEN):
        raise InvalidPathError("Download directory contains forbidden characters")
    raw = raw.strip().replace("\\", "/")
    if not raw:
        return root_path

    candidate = Path(raw).expanduser()
    if not candidate.is_absolute():
        candidate = root_path / candidate
    resolved = candidate.resolve()
    if resolved != root_path and not resolved.is_relative_to(root_path):
        raise InvalidPathError(
            f"Download directory resolves outside of {root_path}: {resolved}"
        )
    return resolved
