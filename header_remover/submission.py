from __future__ import annotations

import asyncio
import json
import math
import time
from contextlib import contextmanager
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Iterator, Union

import httpx

from header_remover.config import REMOVE_HEADERS_PATH, ClientConfig
from header_remover.error_handling import as_user_facing_error
from header_remover.selection import SelectedFile
from header_remover.structured_logging import StructuredLogger


BAND_MM_RANGE = (5.0, 120.0)
MARGIN_MM_RANGE = (0.0, 40.0)
DEFAULT_BAND_MM = 25.0
DEFAULT_MARGIN_MM = 0.0
PDF_CONTENT_TYPE = "application/pdf"

NO_FILE_MESSAGE = "No file selected."
NO_HEADER_TEXT_MESSAGE = "No header text supplied."
REQUEST_FAILED_MESSAGE = "Request failed."
UNKNOWN_ERROR_MESSAGE = "An unknown error occurred."


class FailureKind(Enum):
    VALIDATION = "validation"
    TRANSPORT = "transport"
    SERVICE = "service"
    MALFORMED_RESPONSE = "malformed_response"


@dataclass(frozen=True)
class SubmissionParameters:
    header_text: str
    band_mm: float = DEFAULT_BAND_MM
    margin_mm: float = DEFAULT_MARGIN_MM
    ignore_case: bool = False

    @property
    def header_texts(self) -> tuple[str, ...]:
        lines = (line.strip() for line in self.header_text.splitlines())
        return tuple(line for line in lines if line)

    def clamped(self) -> "SubmissionParameters":
        return replace(
            self,
            band_mm=_clamp(self.band_mm, BAND_MM_RANGE, DEFAULT_BAND_MM),
            margin_mm=_clamp(self.margin_mm, MARGIN_MM_RANGE, DEFAULT_MARGIN_MM),
        )

    def form_fields(self) -> dict[str, str]:
        return {
            "header_texts": self.header_text,
            "band_mm": _format_number(self.band_mm),
            "margin_mm": _format_number(self.margin_mm),
            "ignore_case": "true" if self.ignore_case else "false",
        }


@dataclass(frozen=True)
class SubmissionSuccess:
    payload: bytes
    content_type: str = PDF_CONTENT_TYPE


@dataclass(frozen=True)
class SubmissionFailure:
    message: str
    kind: FailureKind
    error_code: str = "APP-001"


SubmissionResult = Union[SubmissionSuccess, SubmissionFailure]


class InFlightFlag:
    """Boolean marker for an outstanding submission."""

    def __init__(self) -> None:
        self._value = False
        self._listeners: list[Callable[[bool], None]] = []

    def __bool__(self) -> bool:
        return self._value

    @property
    def value(self) -> bool:
        return self._value

    def subscribe(self, listener: Callable[[bool], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    @contextmanager
    def hold(self) -> Iterator[None]:
        if self._value:
            raise RuntimeError("A submission is already in flight")
        self._set(True)
        try:
            yield
        finally:
            self._set(False)

    def _set(self, value: bool) -> None:
        self._value = value
        for listener in list(self._listeners):
            listener(value)


class SubmissionPipeline:
    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        in_flight: InFlightFlag | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: StructuredLogger | None = None,
        time_provider: Callable[[], float] | None = None,
    ) -> None:
        self._config = config or ClientConfig()
        self.in_flight = in_flight if in_flight is not None else InFlightFlag()
        self._transport = transport
        self._logger = logger
        self._time = time_provider or time.monotonic

    async def submit(
        self,
        file: SelectedFile | None,
        params: SubmissionParameters,
    ) -> SubmissionResult:
        with self.in_flight.hold():
            failure = _check_preconditions(file, params)
            if failure is not None:
                self._log_failure(failure, file)
                return failure
            assert file is not None
            return await self._send(file, params.clamped())

    async def _send(self, file: SelectedFile, params: SubmissionParameters) -> SubmissionResult:
        start_time = self._time()
        if self._logger:
            self._logger.log_event(
                "INFO",
                "submission_start",
                "Submission started",
                name=file.name,
                size=file.size,
                header_count=len(params.header_texts),
                band_mm=params.band_mm,
                margin_mm=params.margin_mm,
                ignore_case=params.ignore_case,
                url=self._config.endpoint_url,
            )
        try:
            content = await asyncio.to_thread(file.read_bytes)
            async with httpx.AsyncClient(
                base_url=self._config.api_base_url,
                timeout=self._config.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    REMOVE_HEADERS_PATH,
                    files={"file": (file.name, content, PDF_CONTENT_TYPE)},
                    data=params.form_fields(),
                )
            result: SubmissionResult = classify_response(response)
        except httpx.HTTPError as exc:
            error = as_user_facing_error(exc)
            result = SubmissionFailure(
                message=str(exc) or UNKNOWN_ERROR_MESSAGE,
                kind=FailureKind.TRANSPORT,
                error_code=error.error_code,
            )
        except Exception as exc:  # noqa: BLE001
            error = as_user_facing_error(exc)
            result = SubmissionFailure(
                message=error.summary,
                kind=FailureKind.TRANSPORT,
                error_code=error.error_code,
            )

        duration_ms = int((self._time() - start_time) * 1000)
        if isinstance(result, SubmissionFailure):
            self._log_failure(result, file, duration_ms=duration_ms)
        elif self._logger:
            self._logger.log_event(
                "INFO",
                "submission_complete",
                "Submission completed",
                name=file.name,
                content_type=result.content_type,
                payload_bytes=len(result.payload),
                duration_ms=duration_ms,
            )
        return result

    def _log_failure(
        self,
        failure: SubmissionFailure,
        file: SelectedFile | None,
        duration_ms: int | None = None,
    ) -> None:
        if not self._logger:
            return
        self._logger.log_event(
            "ERROR" if failure.kind is not FailureKind.VALIDATION else "WARNING",
            "submission_failed",
            failure.message,
            name=file.name if file is not None else None,
            kind=failure.kind.value,
            error_code=failure.error_code,
            duration_ms=duration_ms,
        )


def classify_response(response: httpx.Response) -> SubmissionResult:
    if response.is_success:
        content_type = response.headers.get("content-type") or PDF_CONTENT_TYPE
        return SubmissionSuccess(payload=response.content, content_type=content_type)

    try:
        data = json.loads(response.content)
    except (ValueError, RecursionError):
        return SubmissionFailure(
            message=REQUEST_FAILED_MESSAGE,
            kind=FailureKind.MALFORMED_RESPONSE,
            error_code="SVC-002",
        )
    return SubmissionFailure(
        message=_error_field(data) or REQUEST_FAILED_MESSAGE,
        kind=FailureKind.SERVICE,
        error_code="SVC-001",
    )


def _error_field(data: object) -> str | None:
    if not isinstance(data, dict):
        return None
    error = data.get("error")
    if not error:
        return None
    return error if isinstance(error, str) else str(error)


def _check_preconditions(
    file: SelectedFile | None,
    params: SubmissionParameters,
) -> SubmissionFailure | None:
    if file is None:
        return SubmissionFailure(
            message=NO_FILE_MESSAGE,
            kind=FailureKind.VALIDATION,
            error_code="VAL-001",
        )
    if not params.header_texts:
        return SubmissionFailure(
            message=NO_HEADER_TEXT_MESSAGE,
            kind=FailureKind.VALIDATION,
            error_code="VAL-002",
        )
    return None


def _clamp(value: float, bounds: tuple[float, float], default: float) -> float:
    number = float(value)
    if not math.isfinite(number):
        return default
    low, high = bounds
    return min(max(number, low), high)


def _format_number(value: float) -> str:
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return repr(number)
