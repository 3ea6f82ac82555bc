from __future__ import annotations

import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path

from header_remover.structured_logging import StructuredLogger


OUTPUT_SUFFIX = "_noheaders"
PARTIAL_SUFFIX = ".part"
EMPTY_PAYLOAD_MESSAGE = "The service returned an empty document; nothing was saved."

_PDF_EXTENSION = re.compile(r"\.pdf$", re.IGNORECASE)


@dataclass(frozen=True)
class SaveResult:
    saved: bool
    path: Path | None = None
    message: str = ""


def derive_output_name(original_name: str) -> str:
    base = Path(original_name).name
    return _PDF_EXTENSION.sub("", base) + OUTPUT_SUFFIX + ".pdf"


class DownloadTrigger:
    """Save a result payload once into the download folder."""

    def __init__(
        self,
        download_dir: Path,
        logger: StructuredLogger | None = None,
    ) -> None:
        self._download_dir = Path(download_dir).expanduser()
        self._logger = logger

    @property
    def download_dir(self) -> Path:
        return self._download_dir

    def save(self, payload: bytes, original_name: str) -> SaveResult:
        if not payload:
            if self._logger:
                self._logger.log_event(
                    "WARNING",
                    "download_skipped",
                    EMPTY_PAYLOAD_MESSAGE,
                    name=original_name,
                )
            return SaveResult(saved=False, message=EMPTY_PAYLOAD_MESSAGE)

        self._download_dir.mkdir(parents=True, exist_ok=True)
        target = _reserve_target(self._download_dir / derive_output_name(original_name))
        fd, raw_tmp = tempfile.mkstemp(
            prefix=f".{target.stem}-",
            suffix=PARTIAL_SUFFIX,
            dir=self._download_dir,
        )
        tmp_path = Path(raw_tmp)
        moved = False
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
            os.replace(tmp_path, target)
            moved = True
        finally:
            tmp_path.unlink(missing_ok=True)
            if not moved:
                target.unlink(missing_ok=True)

        if self._logger:
            self._logger.log_event(
                "INFO",
                "download_saved",
                "Result saved",
                name=original_name,
                path=str(target),
                payload_bytes=len(payload),
            )
        return SaveResult(saved=True, path=target, message=f"Saved {target.name}")


def _reserve_target(target: Path) -> Path:
    # Exclusive create claims the name; the finished payload replaces the empty placeholder.
    candidate = target
    index = 0
    while True:
        try:
            with open(candidate, "xb"):
                return candidate
        except FileExistsError:
            index += 1
            candidate = target.with_name(f"{target.stem} ({index}){target.suffix}")
