"""Process-wide server configuration, read once from the environment."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from mcp_slack.validation import validate_download_directory

SERVER_NAME = "slack-mcp"
SERVER_VERSION = "0.1.0"

# First non-empty wins.
TOKEN_ENV_NAMES = ("SLACK_TOKEN", "SLACK_BOT_TOKEN")
DOWNLOAD_DIRECTORY_ENV = "DOWNLOAD_DIRECTORY"
ROOT_ENV = "GITHUB_WORKSPACE"
RESOLVE_FILE_INFO_ENV = "SLACK_RESOLVE_FILE_INFO"

DOWNLOAD_TIMEOUT_SECONDS = 30
DOWNLOAD_MAX_BYTES = 50_000_000

_TRUTHY = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class DownloadLimits:
    timeout_seconds: int = DOWNLOAD_TIMEOUT_SECONDS
    max_bytes: int = DOWNLOAD_MAX_BYTES


def _get_env(env: Mapping[str, str], name: str, default: Optional[str] = None) -> Optional[str]:
    value = env.get(name)
    return value if value else default


def get_token_from_env(env: Mapping[str, str]) -> Optional[str]:
    for name in TOKEN_ENV_NAMES:
        value = _get_env(env, name)
        if value:
            return value
    return None


def get_root_from_env(env: Mapping[str, str]) -> Path:
    return Path(_get_env(env, ROOT_ENV, os.getcwd())).expanduser().resolve()


@dataclass(frozen=True)
class ServerConfig:
    token: Optional[str]
    download_root: Path
    download_directory: Path
    limits: DownloadLimits = field(default_factory=DownloadLimits)
    resolve_file_info: bool = False

    @property
    def token_configured(self) -> bool:
        return bool(self.token)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        """Build the config; raises InvalidPathError for a directory outside the root."""
        env = os.environ if env is None else env
        root = get_root_from_env(env)
        directory = validate_download_directory(_get_env(env, DOWNLOAD_DIRECTORY_ENV), root)
        resolve_file_info = (_get_env(env, RESOLVE_FILE_INFO_ENV, "") or "").strip().lower() in _TRUTHY
        return cls(
            token=get_token_from_env(env),
            download_root=root,
            download_directory=directory,
            resolve_file_info=resolve_file_info,
        )
