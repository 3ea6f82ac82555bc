from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from header_remover.structured_logging import StructuredLogger


SelectionListener = Callable[["SelectedFile | None"], None]


@dataclass(frozen=True)
class SelectedFile:
    path: Path
    name: str
    size: int

    @classmethod
    def from_path(cls, path: str | os.PathLike[str]) -> "SelectedFile":
        resolved = Path(path).expanduser()
        try:
            size = resolved.stat().st_size
        except OSError:
            size = -1
        return cls(path=resolved, name=resolved.name, size=size)

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()


class SelectionStore:
    """Holds the single chosen file; the only place file identity changes."""

    def __init__(self, logger: StructuredLogger | None = None) -> None:
        self._current: SelectedFile | None = None
        self._listeners: list[SelectionListener] = []
        self._logger = logger

    def current(self) -> SelectedFile | None:
        return self._current

    def select(self, file: SelectedFile | str | os.PathLike[str]) -> None:
        if not isinstance(file, SelectedFile):
            file = SelectedFile.from_path(file)
        self._current = file
        if self._logger:
            self._logger.log_event(
                "INFO",
                "selection_changed",
                "File selected",
                name=file.name,
                size=file.size,
            )
        self._notify()

    def clear(self) -> None:
        if self._current is None:
            return
        self._current = None
        if self._logger:
            self._logger.log_event("INFO", "selection_changed", "Selection cleared")
        self._notify()

    def subscribe(self, listener: SelectionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        current = self._current
        for listener in list(self._listeners):
            listener(current)
