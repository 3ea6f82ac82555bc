"""Revocable preview handles that follow the current selection.

A preview handle is a private snapshot of the selected PDF that a viewer can
load by URL. The manager keeps exactly one live handle while a file is
selected and none otherwise: every change of the selection revokes the old
handle before a new one is created.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Protocol

from header_remover.selection import SelectedFile, SelectionStore
from header_remover.structured_logging import StructuredLogger


PREVIEW_PREFIX = "preview-"

PreviewListener = Callable[["PreviewHandle | None"], None]


@dataclass(eq=False)
class PreviewHandle:
    path: Path
    source_name: str
    _on_revoke: Callable[["PreviewHandle"], None] | None = field(default=None, repr=False)
    _revoked: bool = field(default=False, repr=False)

    @property
    def url(self) -> str:
        return self.path.as_uri()

    @property
    def revoked(self) -> bool:
        return self._revoked

    def revoke(self) -> None:
        if self._revoked:
            raise RuntimeError(f"Preview handle for {self.source_name} already revoked")
        self._revoked = True
        if self._on_revoke is not None:
            self._on_revoke(self)


class PreviewFactory(Protocol):
    def create(self, file: SelectedFile) -> PreviewHandle: ...


class TempFilePreviewFactory:
    def __init__(self, directory: Path | None = None) -> None:
        self._directory = Path(directory) if directory is not None else None
        self._live: set[PreviewHandle] = set()

    @property
    def live_count(self) -> int:
        return len(self._live)

    def create(self, file: SelectedFile) -> PreviewHandle:
        if self._directory is not None:
            self._directory.mkdir(parents=True, exist_ok=True)
        fd, raw_path = tempfile.mkstemp(
            prefix=PREVIEW_PREFIX,
            suffix=".pdf",
            dir=self._directory,
        )
        os.close(fd)
        snapshot = Path(raw_path)
        try:
            shutil.copyfile(file.path, snapshot)
        except OSError:
            snapshot.unlink(missing_ok=True)
            raise
        handle = PreviewHandle(path=snapshot, source_name=file.name, _on_revoke=self._release)
        self._live.add(handle)
        return handle

    def _release(self, handle: PreviewHandle) -> None:
        self._live.discard(handle)
        try:
            handle.path.unlink(missing_ok=True)
        except OSError:
            return


class InPlacePreviewFactory:
    """Handles that point at the selected file itself; revoking only retires them."""

    def __init__(self) -> None:
        self._live: set[PreviewHandle] = set()

    @property
    def live_count(self) -> int:
        return len(self._live)

    def create(self, file: SelectedFile) -> PreviewHandle:
        handle = PreviewHandle(path=file.path.resolve(), source_name=file.name, _on_revoke=self._release)
        self._live.add(handle)
        return handle

    def _release(self, handle: PreviewHandle) -> None:
        self._live.discard(handle)


class PreviewResourceManager:
    def __init__(
        self,
        store: SelectionStore,
        factory: PreviewFactory | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        self._factory = factory or TempFilePreviewFactory()
        self._logger = logger
        self._handle: PreviewHandle | None = None
        self._listeners: list[PreviewListener] = []
        self._closed = False
        self._unsubscribe = store.subscribe(self._on_selection_changed)
        self._on_selection_changed(store.current())

    @property
    def closed(self) -> bool:
        return self._closed

    def current(self) -> PreviewHandle | None:
        return self._handle

    def subscribe(self, listener: PreviewListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._unsubscribe()
        self._release_current()
        self._publish(None)
        self._listeners.clear()

    def _on_selection_changed(self, file: SelectedFile | None) -> None:
        if self._closed:
            return
        self._release_current()
        if file is not None:
            self._handle = self._acquire(file)
        self._publish(self._handle)

    def _acquire(self, file: SelectedFile) -> PreviewHandle | None:
        try:
            handle = self._factory.create(file)
        except OSError as exc:
            if self._logger:
                self._logger.log_event(
                    "WARNING",
                    "preview_failed",
                    "Preview could not be created",
                    name=file.name,
                    error=str(exc),
                )
            return None
        if self._logger:
            self._logger.log_event(
                "INFO",
                "preview_created",
                "Preview created",
                name=file.name,
                url=handle.url,
            )
        return handle

    def _release_current(self) -> None:
        handle = self._handle
        if handle is None:
            return
        self._handle = None
        handle.revoke()
        if self._logger:
            self._logger.log_event(
                "INFO",
                "preview_revoked",
                "Preview revoked",
                name=handle.source_name,
            )

    def _publish(self, handle: PreviewHandle | None) -> None:
        for listener in list(self._listeners):
            listener(handle)
