"""Authenticated fetch-and-save of a single Slack file.

The transfer itself is delegated to a fetcher. The production fetcher runs curl
with a discrete argument vector, so URL or filename content is never parsed by
a shell. The bearer token is handed to curl on stdin (`--header @-`) and never
shows up in the process list.
"""
import asyncio
import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol

from mcp_slack.config import DownloadLimits
from mcp_slack.errors import (
    EmptyPayloadError,
    NetworkFailureError,
    SlackMcpError,
    redact_secret,
)

logger = logging.getLogger(__name__)

CURL_EXECUTABLE = "curl"
# Extra seconds granted to curl beyond --max-time before the process is killed.
KILL_GRACE_SECONDS = 5
STDERR_MAX_CHARS = 500
PARTIAL_NAME_MAX_CHARS = 200

CURL_EXIT_MESSAGES = {
    6: "Could not resolve host",
    7: "Failed to connect to host",
    22: "Server returned an HTTP error status",
    23: "Failed to write the downloaded file",
    28: "Download timed out",
    35: "TLS handshake failed",
    47: "Too many redirects",
    60: "TLS certificate verification failed",
    63: "File exceeds the maximum allowed size",
}


class Fetcher(Protocol):
    async def fetch_to_file(
        self,
        url: str,
        dest_path: Path,
        headers: Mapping[str, str],
        limits: DownloadLimits,
    ) -> None:
        """Write the response body of url to dest_path or raise NetworkFailureError."""


def describe_curl_failure(returncode: int, stderr: str, limits: DownloadLimits) -> str:
    message = CURL_EXIT_MESSAGES.get(returncode, f"curl exited with status {returncode}")
    if returncode == 28:
        message = f"{message} after {limits.timeout_seconds}s"
    elif returncode == 63:
        message = f"{message} ({limits.max_bytes} bytes)"
    detail = stderr.strip()[:STDERR_MAX_CHARS]
    if detail:
        message = f"{message}: {detail}"
    return message


def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        process.kill()
    except ProcessLookupError:
        pass


class CurlFetcher:
    def __init__(self, executable: str = CURL_EXECUTABLE):
        self.executable = executable

    def build_args(self, url: str, dest_path: Path, limits: DownloadLimits) -> list[str]:
        return [
            "--silent",
            "--show-error",
            "--location",
            "--fail",
            "--proto", "=https",
            "--proto-redir", "=https",
            "--max-time", str(limits.timeout_seconds),
            "--max-filesize", str(limits.max_bytes),
            "--header", "@-",
            "--output", str(dest_path),
            url,
        ]

    async def fetch_to_file(
        self,
        url: str,
        dest_path: Path,
        headers: Mapping[str, str],
        limits: DownloadLimits,
    ) -> None:
        args = self.build_args(url, dest_path, limits)
        header_block = "".join(f"{name}: {value}\n" for name, value in headers.items())
        try:
            process = await asyncio.create_subprocess_exec(
                self.executable,
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise NetworkFailureError(f"HTTP client not found: {self.executable}") from exc

        try:
            _stdout, stderr = await asyncio.wait_for(
                process.communicate(header_block.encode("utf-8")),
                timeout=limits.timeout_seconds + KILL_GRACE_SECONDS,
            )
        except asyncio.TimeoutError:
            _kill(process)
            await process.wait()
            raise NetworkFailureError(f"Download timed out after {limits.timeout_seconds}s")
        except BaseException:
            # Cancelled request: curl must not outlive it.
            _kill(process)
            raise

        if process.returncode != 0:
            raise NetworkFailureError(
                describe_curl_failure(
                    process.returncode,
                    stderr.decode("utf-8", errors="replace"),
                    limits,
                )
            )


@dataclass(frozen=True)
class DownloadOutcome:
    path: Optional[Path] = None
    size_bytes: int = 0
    error: Optional[dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, path: Path, size_bytes: int) -> "DownloadOutcome":
        return cls(path=path, size_bytes=size_bytes)

    @classmethod
    def failure(cls, exc: SlackMcpError, secret: Optional[str] = None) -> "DownloadOutcome":
        return cls(error={"code": exc.code, "message": redact_secret(exc.message, secret)})


def payload_size(path: Path) -> int:
    try:
        size = path.stat().st_size
    except FileNotFoundError as exc:
        raise EmptyPayloadError("Download reported success but no file was written") from exc
    if size == 0:
        raise EmptyPayloadError("Download reported success but the file is empty")
    return size


def partial_path(dest_path: Path) -> Path:
    """Hidden sibling of dest_path that curl writes into before the final rename."""
    return dest_path.with_name(f".{dest_path.name[:PARTIAL_NAME_MAX_CHARS]}.{uuid.uuid4().hex[:12]}.part")


def _remove_partial(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Unable to remove partial download %s: %s", path, exc)


def _commit(partial: Path, dest_path: Path) -> None:
    try:
        os.replace(partial, dest_path)
    except OSError as exc:
        raise NetworkFailureError(f"Failed to write the downloaded file: {exc.strerror or exc}") from exc


class Downloader:
    def __init__(self, fetcher: Optional[Fetcher] = None, limits: Optional[DownloadLimits] = None):
        self.fetcher = fetcher if fetcher is not None else CurlFetcher()
        self.limits = limits if limits is not None else DownloadLimits()

    async def download(self, url: str, dest_path: Path, token: str) -> DownloadOutcome:
        """Fetch url into dest_path once. Failures come back as an outcome, not an exception.

        The body lands in a partial file beside dest_path and only replaces
        dest_path once it is complete and non-empty, so a failed request never
        touches an existing file.
        """
        headers = {"Authorization": f"Bearer {token}"}
        partial = partial_path(dest_path)
        try:
            await self.fetcher.fetch_to_file(url, partial, headers, self.limits)
            size = payload_size(partial)
            _commit(partial, dest_path)
        except SlackMcpError as exc:
            logger.warning("Download of %s failed: %s", url, redact_secret(exc.message, token))
            return DownloadOutcome.failure(exc, token)
        finally:
            _remove_partial(partial)
        logger.info("Downloaded %s to %s (%s bytes)", url, dest_path, size)
        return DownloadOutcome.success(dest_path, size)
