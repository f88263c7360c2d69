"""Derive safe destination filenames for downloaded Slack files."""
import logging
import os
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlsplit

from mcp_slack.errors import InvalidFilenameError, InvalidPathError

logger = logging.getLogger(__name__)

MAX_FILENAME_LENGTH = 255
FILENAME_PREFIX = "slack"
FALLBACK_STEM = "image"
FALLBACK_EXTENSION = "png"
MAX_COLLISION_SUFFIX = 1000

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")
_LEADING_DOTS = re.compile(r"^\.+")
# screenshot_720.png -> ("screenshot", "720", "png")
_SLACK_NAME = re.compile(r"^(.+?)(?:_(\d+))?\.([A-Za-z0-9]+)$")


@dataclass(frozen=True)
class ResolvedTarget:
    path: Path
    filename: str
    # True when resolve_target created an empty placeholder at path.
    reserved: bool = False

    def release(self) -> None:
        """Remove the placeholder if it was never filled."""
        if not self.reserved:
            return
        try:
            if self.path.stat().st_size == 0:
                self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Unable to release reserved filename %s: %s", self.path, exc)


def sanitize_filename(name: str) -> str:
    sanitized = _UNSAFE_CHARS.sub("_", name)
    sanitized = _LEADING_DOTS.sub("_", sanitized)
    return sanitized[:MAX_FILENAME_LENGTH]


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


def derive_filename_from_url(url: str, timestamp: Optional[int] = None) -> str:
    """Build `slack_<stem>_<timestamp>.<ext>` from the last segment of url."""
    stamp = _timestamp_ms() if timestamp is None else timestamp
    last_segment = unquote(urlsplit(url).path.rsplit("/", 1)[-1])
    match = _SLACK_NAME.match(last_segment)
    if match:
        stem, _size, extension = match.groups()
        return sanitize_filename(f"{FILENAME_PREFIX}_{stem}_{stamp}.{extension}")
    return f"{FILENAME_PREFIX}_{FALLBACK_STEM}_{stamp}.{FALLBACK_EXTENSION}"


def check_supplied_filename(supplied_name: str) -> str:
    sanitized = sanitize_filename(supplied_name)
    if not sanitized.strip("_"):
        raise InvalidFilenameError(f"Filename {supplied_name!r} has no usable characters")
    return sanitized


def _custom_filename(supplied_name: Optional[str]) -> Optional[str]:
    if not supplied_name:
        return None
    try:
        return check_supplied_filename(supplied_name)
    except InvalidFilenameError as exc:
        logger.warning("%s; using a name derived from the URL instead.", exc)
        return None


def resolve_filename(url: str, supplied_name: Optional[str] = None) -> str:
    """Return the sanitized supplied name, or a name derived from url.

    A supplied name that sanitizes to nothing usable falls back to the derived
    name instead of failing the request.
    """
    return _custom_filename(supplied_name) or derive_filename_from_url(url)


def _reserve(path: Path) -> bool:
    """Atomically create an empty placeholder at path; False if the name is taken."""
    try:
        fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
    except FileExistsError:
        return False
    except OSError as exc:
        raise InvalidPathError(f"Unable to create {path.name} in {path.parent}: {exc.strerror or exc}") from exc
    os.close(fd)
    return True


def resolve_target(url: str, download_directory: Path, supplied_name: Optional[str] = None) -> ResolvedTarget:
    """Join the resolved filename to an already validated, existing download directory.

    Caller-supplied names may overwrite an existing file. Derived names are
    reserved on disk before returning, so concurrent requests never share one;
    a taken name gets a numeric suffix. Call `release()` if the download fails.
    """
    custom = _custom_filename(supplied_name)
    filename = resolve_filename(url, custom)
    if custom:
        return ResolvedTarget(path=download_directory / filename, filename=filename)

    candidate = download_directory / filename
    if _reserve(candidate):
        return ResolvedTarget(path=candidate, filename=filename, reserved=True)

    stem = candidate.stem
    suffix = candidate.suffix
    for index in range(1, MAX_COLLISION_SUFFIX):
        fallback_name = sanitize_filename(f"{stem}-{index}{suffix}")
        fallback = download_directory / fallback_name
        if _reserve(fallback):
            return ResolvedTarget(path=fallback, filename=fallback_name, reserved=True)
    raise InvalidFilenameError(f"Unable to find available filename in {download_directory}")
