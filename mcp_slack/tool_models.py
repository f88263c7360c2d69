from typing import Optional

from pydantic import BaseModel


class ErrorDetail(BaseModel):
    code: str
    message: str


class DownloadFileRequest(BaseModel):
    url: str
    filename: Optional[str] = None


class DownloadFileOutput(BaseModel):
    saved_path: str
    filename: str
    download_size: int
    source_url: str


class HealthCheckOutput(BaseModel):
    token_configured: bool
    download_directory: str
    directory_accessible: bool
    version: str
