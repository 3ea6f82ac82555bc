from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from platformdirs import user_data_dir, user_downloads_dir


API_URL_ENV = "HEADER_REMOVER_API_URL"
TIMEOUT_ENV = "HEADER_REMOVER_TIMEOUT_SECONDS"
DOWNLOAD_DIR_ENV = "HEADER_REMOVER_DOWNLOAD_DIR"
LOG_DIR_ENV = "HEADER_REMOVER_LOG_DIR"
LOG_LEVEL_ENV = "HEADER_REMOVER_LOG_LEVEL"

APP_NAME = "PdfHeaderRemover"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_API_URL = "http://localhost:8000"
DEFAULT_TIMEOUT_SECONDS = 120.0
REMOVE_HEADERS_PATH = "/remove-headers"


@dataclass(frozen=True)
class ClientConfig:
    api_base_url: str = DEFAULT_API_URL
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    download_dir: Path | None = None
    log_dir: Path | None = None
    log_level: str = DEFAULT_LOG_LEVEL

    @property
    def endpoint_url(self) -> str:
        return self.api_base_url.rstrip("/") + REMOVE_HEADERS_PATH

    def resolved_download_dir(self) -> Path:
        if self.download_dir is not None:
            return Path(self.download_dir).expanduser()
        return Path(user_downloads_dir()).expanduser()

    def resolved_log_dir(self) -> Path:
        if self.log_dir is not None:
            return Path(self.log_dir).expanduser()
        return Path(user_data_dir(APP_NAME)).expanduser() / "logs"


def load_config(environ: Mapping[str, str] | None = None) -> ClientConfig:
    env = os.environ if environ is None else environ
    return ClientConfig(
        api_base_url=_parse_url(env.get(API_URL_ENV)),
        timeout_seconds=_parse_timeout(env.get(TIMEOUT_ENV)),
        download_dir=_parse_path(env.get(DOWNLOAD_DIR_ENV)),
        log_dir=_parse_path(env.get(LOG_DIR_ENV)),
        log_level=_parse_level(env.get(LOG_LEVEL_ENV)),
    )


def _parse_url(value: str | None) -> str:
    if not value or not value.strip():
        return DEFAULT_API_URL
    return value.strip().rstrip("/")


def _parse_timeout(value: str | None) -> float:
    if not value:
        return DEFAULT_TIMEOUT_SECONDS
    try:
        timeout = float(value.strip())
    except ValueError:
        return DEFAULT_TIMEOUT_SECONDS
    if timeout <= 0:
        return DEFAULT_TIMEOUT_SECONDS
    return timeout


def _parse_path(value: str | None) -> Path | None:
    if not value or not value.strip():
        return None
    return Path(value.strip()).expanduser()


def _parse_level(value: str | None) -> str:
    if not value or not value.strip():
        return DEFAULT_LOG_LEVEL
    return value.strip().upper()
