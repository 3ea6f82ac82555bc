from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable

import httpx

from header_remover.config import ClientConfig
from header_remover.download import DownloadTrigger, SaveResult
from header_remover.error_handling import as_user_facing_error
from header_remover.preview import PreviewFactory, PreviewResourceManager
from header_remover.selection import SelectedFile, SelectionStore
from header_remover.structured_logging import StructuredLogger
from header_remover.submission import (
    InFlightFlag,
    SubmissionFailure,
    SubmissionParameters,
    SubmissionPipeline,
    SubmissionResult,
    SubmissionSuccess,
)


@dataclass(frozen=True)
class Notification:
    level: str
    message: str
    error_code: str | None = None


@dataclass(frozen=True)
class SubmissionOutcome:
    result: SubmissionResult
    saved: SaveResult | None = None

    @property
    def succeeded(self) -> bool:
        return isinstance(self.result, SubmissionSuccess) and bool(self.saved and self.saved.saved)


class HeaderRemovalController:
    """Owns the selection, preview, submission and download state of one view."""

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        notifier: Callable[[Notification], None] | None = None,
        preview_factory: PreviewFactory | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        download_trigger: DownloadTrigger | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        self.config = config or ClientConfig()
        self._notifier = notifier
        self._logger = logger
        self.in_flight = InFlightFlag()
        self.selection = SelectionStore(logger=logger)
        self.preview = PreviewResourceManager(self.selection, factory=preview_factory, logger=logger)
        self.pipeline = SubmissionPipeline(
            self.config,
            in_flight=self.in_flight,
            transport=transport,
            logger=logger,
        )
        self.downloads = download_trigger or DownloadTrigger(
            self.config.resolved_download_dir(),
            logger=logger,
        )

    @property
    def busy(self) -> bool:
        return self.in_flight.value

    def select_file(self, file: SelectedFile | str | os.PathLike[str]) -> None:
        self.selection.select(file)

    def remove_file(self) -> None:
        self.selection.clear()

    async def submit(self, params: SubmissionParameters) -> SubmissionOutcome | None:
        if self.in_flight.value:
            if self._logger:
                self._logger.log_event(
                    "INFO",
                    "submission_ignored",
                    "Submission already in flight",
                )
            return None

        file = self.selection.current()
        result = await self.pipeline.submit(file, params)
        if isinstance(result, SubmissionFailure):
            self._notify(Notification("error", result.message, result.error_code))
            return SubmissionOutcome(result=result)

        assert file is not None
        try:
            saved = self.downloads.save(result.payload, file.name)
        except OSError as exc:
            error = as_user_facing_error(exc)
            saved = SaveResult(saved=False, message=error.summary)
            self._notify(Notification("error", error.summary, error.error_code))
            return SubmissionOutcome(result=result, saved=saved)

        if saved.saved:
            self._notify(Notification("success", f"PDF processed and saved to {saved.path}."))
        else:
            self._notify(Notification("error", saved.message))
        return SubmissionOutcome(result=result, saved=saved)

    def teardown(self) -> None:
        self.preview.close()

    def _notify(self, notification: Notification) -> None:
        if self._notifier is not None:
            self._notifier(notification)
