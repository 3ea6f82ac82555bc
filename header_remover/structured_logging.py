from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from header_remover.config import APP_NAME, DEFAULT_LOG_LEVEL, ClientConfig


LOG_FILE_NAME = "client.log"
MAX_LOG_BYTES = 10 * 1024 * 1024
MAX_LOG_FILES = 5
_LEVEL_NAMES = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def _iso_utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class JsonLineFormatter(logging.Formatter):
    """One JSON object per line; records logged outside log_event get a minimal envelope."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = dict(getattr(record, "payload", {}))
        if not payload:
            payload = {
                "level": record.levelname,
                "component": record.name,
                "message": record.getMessage(),
            }
        payload.setdefault("ts", _iso_utc_now())
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=True, default=str)


class StructuredLogger:
    def __init__(
        self,
        component: str,
        level: str = DEFAULT_LOG_LEVEL,
        log_dir: Path | None = None,
    ) -> None:
        self.component = component
        self._logger = logging.getLogger(f"{APP_NAME}.{component}")
        self._logger.setLevel(_coerce_level(level))
        self._logger.handlers.clear()
        self._logger.propagate = False

        resolved_dir = ClientConfig(log_dir=log_dir).resolved_log_dir()
        resolved_dir.mkdir(parents=True, exist_ok=True)
        self.log_file = resolved_dir / LOG_FILE_NAME

        handler = RotatingFileHandler(
            self.log_file,
            maxBytes=MAX_LOG_BYTES,
            backupCount=MAX_LOG_FILES,
            encoding="utf-8",
        )
        handler.setFormatter(JsonLineFormatter())
        self._logger.addHandler(handler)

    @classmethod
    def from_config(cls, component: str, config: ClientConfig) -> "StructuredLogger":
        return cls(component, level=config.log_level, log_dir=config.resolved_log_dir())

    def log_event(
        self,
        level: str,
        event: str,
        message: str,
        **fields: Any,
    ) -> None:
        payload = {
            "ts": _iso_utc_now(),
            "level": level.upper(),
            "component": self.component,
            "event": event,
            "message": message,
        }
        payload.update((key, value) for key, value in fields.items() if value is not None)
        self._logger.log(_coerce_level(level), message, extra={"payload": payload})

    def close(self) -> None:
        for handler in list(self._logger.handlers):
            handler.flush()
            handler.close()
            self._logger.removeHandler(handler)


def _coerce_level(level: str) -> int:
    name = level.upper()
    return getattr(logging, name) if name in _LEVEL_NAMES else logging.INFO
