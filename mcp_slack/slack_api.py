"""Slack Web API lookup of a file's private download URL."""
import logging
import re
from typing import Optional
from urllib.parse import urlsplit

import httpx

from mcp_slack.errors import NetworkFailureError
from mcp_slack.validation import validate_url

logger = logging.getLogger(__name__)

FILES_INFO_URL = "https://slack.com/api/files.info"
FILES_INFO_TIMEOUT_SECONDS = 30.0

# /files-pri/T123-F456/name.png and /files-tmb/T123-F456/name_720.png
_TEAM_FILE_PATH = re.compile(r"^/files-(?:pri|tmb)/[^-/]+-([^/]+)")
# /files/U123/F456/name.png
_USER_FILE_PATH = re.compile(r"^/files/[^/]+/([^/]+)")


def extract_file_id(url: str) -> Optional[str]:
    path = urlsplit(url).path
    match = _TEAM_FILE_PATH.match(path) or _USER_FILE_PATH.match(path)
    return match.group(1) if match else None


class SlackApiClient:
    def __init__(
        self,
        timeout: float = FILES_INFO_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.transport = transport

    async def fetch_private_download_url(self, file_id: str, token: str) -> str:
        """Ask files.info for url_private_download; the result is re-validated."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(
                    FILES_INFO_URL,
                    params={"file": file_id},
                    headers={"Authorization": f"Bearer {token}"},
                )
        except httpx.HTTPError as exc:
            raise NetworkFailureError(f"Slack files.info request failed: {exc}") from exc

        if response.status_code != 200:
            raise NetworkFailureError(f"Slack files.info returned HTTP {response.status_code}")
        try:
            data = response.json()
        except ValueError as exc:
            raise NetworkFailureError("Slack files.info returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise NetworkFailureError("Slack files.info returned an unexpected payload")

        if not data.get("ok"):
            error = data.get("error") or "Unknown error"
            if error == "missing_scope":
                raise NetworkFailureError(
                    f"Slack bot token missing required scope: {data.get('needed')}. "
                    f"Current scopes: {data.get('provided')}"
                )
            raise NetworkFailureError(f"Slack API error: {error}")

        file_info = data.get("file") or {}
        download_url = file_info.get("url_private_download") if isinstance(file_info, dict) else None
        if not download_url:
            raise NetworkFailureError("No download URL available for this file")
        return validate_url(download_url)

    async def resolve_download_url(self, url: str, token: str) -> str:
        file_id = extract_file_id(url)
        if file_id is None:
            logger.info("No Slack file id in %s; downloading it directly.", url)
            return url
        return await self.fetch_private_download_url(file_id, token)
