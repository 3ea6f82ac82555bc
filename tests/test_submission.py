from __future__ import annotations

import asyncio
import email
import email.policy
import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import httpx

from header_remover.config import ClientConfig
from header_remover.selection import SelectedFile
from header_remover.submission import (
    NO_FILE_MESSAGE,
    NO_HEADER_TEXT_MESSAGE,
    REQUEST_FAILED_MESSAGE,
    FailureKind,
    InFlightFlag,
    SubmissionFailure,
    SubmissionParameters,
    SubmissionPipeline,
    SubmissionSuccess,
)


def parse_multipart(request: httpx.Request) -> dict[str, tuple[str | None, bytes]]:
    content_type = request.headers["content-type"].encode("ascii")
    message = email.message_from_bytes(
        b"Content-Type: " + content_type + b"\r\n\r\n" + request.content,
        policy=email.policy.HTTP,
    )
    fields: dict[str, tuple[str | None, bytes]] = {}
    for part in message.iter_parts():
        name = part.get_param("name", header="content-disposition")
        filename = part.get_param("filename", header="content-disposition")
        fields[name] = (filename, part.get_payload(decode=True))
    return fields


class _RecordingService:
    def __init__(self, response: httpx.Response | Exception) -> None:
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


class TestSubmissionParameters(unittest.TestCase):
    def test_defaults(self) -> None:
        params = SubmissionParameters(header_text="ACME")
        self.assertEqual(params.band_mm, 25)
        self.assertEqual(params.margin_mm, 0)
        self.assertFalse(params.ignore_case)

    def test_header_texts_trims_and_drops_blank_lines(self) -> None:
        params = SubmissionParameters(header_text="  ACME Corp \n\n CONFIDENTIAL\r\n   \nPage")
        self.assertEqual(params.header_texts, ("ACME Corp", "CONFIDENTIAL", "Page"))

    def test_clamped_bounds(self) -> None:
        params = SubmissionParameters(header_text="x", band_mm=500, margin_mm=-3).clamped()
        self.assertEqual(params.band_mm, 120)
        self.assertEqual(params.margin_mm, 0)
        params = SubmissionParameters(header_text="x", band_mm=1, margin_mm=99).clamped()
        self.assertEqual(params.band_mm, 5)
        self.assertEqual(params.margin_mm, 40)

    def test_non_finite_numbers_fall_back_to_defaults(self) -> None:
        for value in (float("nan"), float("inf"), float("-inf")):
            params = SubmissionParameters(header_text="x", band_mm=value, margin_mm=value).clamped()
            self.assertEqual(params.form_fields()["band_mm"], "25")
            self.assertEqual(params.form_fields()["margin_mm"], "0")

    def test_form_fields_rendering(self) -> None:
        params = SubmissionParameters(header_text="A\nB", band_mm=30.0, margin_mm=2.5, ignore_case=True)
        self.assertEqual(
            params.form_fields(),
            {
                "header_texts": "A\nB",
                "band_mm": "30",
                "margin_mm": "2.5",
                "ignore_case": "true",
            },
        )


class TestInFlightFlag(unittest.TestCase):
    def test_hold_sets_and_clears(self) -> None:
        flag = InFlightFlag()
        changes: list[bool] = []
        flag.subscribe(changes.append)
        with flag.hold():
            self.assertTrue(flag.value)
        self.assertFalse(flag.value)
        self.assertEqual(changes, [True, False])

    def test_hold_clears_on_error(self) -> None:
        flag = InFlightFlag()
        with self.assertRaises(ValueError):
            with flag.hold():
                raise ValueError("boom")
        self.assertFalse(flag)

    def test_reentrant_hold_rejected(self) -> None:
        flag = InFlightFlag()
        with flag.hold():
            with self.assertRaises(RuntimeError):
                with flag.hold():
                    pass
            self.assertTrue(flag.value)


class TestSubmissionPipeline(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmpdir.cleanup)
        path = Path(self._tmpdir.name) / "report.PDF"
        path.write_bytes(b"%PDF-1.4 original")
        self.file = SelectedFile.from_path(path)
        self.params = SubmissionParameters(header_text="ACME Corp\nCONFIDENTIAL", band_mm=30, margin_mm=5)
        self.config = ClientConfig(api_base_url="http://service.test")

    def _pipeline(self, service: _RecordingService) -> SubmissionPipeline:
        return SubmissionPipeline(self.config, transport=httpx.MockTransport(service))

    async def test_no_file_fails_without_network(self) -> None:
        service = _RecordingService(httpx.Response(200, content=b"%PDF"))
        pipeline = self._pipeline(service)
        result = await pipeline.submit(None, self.params)
        self.assertIsInstance(result, SubmissionFailure)
        self.assertEqual(result.message, NO_FILE_MESSAGE)
        self.assertIs(result.kind, FailureKind.VALIDATION)
        self.assertEqual(service.requests, [])
        self.assertFalse(pipeline.in_flight.value)

    async def test_blank_header_text_fails_without_network(self) -> None:
        service = _RecordingService(httpx.Response(200, content=b"%PDF"))
        pipeline = self._pipeline(service)
        for text in ("", "   ", "\n \t\n"):
            result = await pipeline.submit(self.file, SubmissionParameters(header_text=text))
            self.assertIsInstance(result, SubmissionFailure)
            self.assertEqual(result.message, NO_HEADER_TEXT_MESSAGE)
            self.assertIs(result.kind, FailureKind.VALIDATION)
        self.assertEqual(service.requests, [])

    async def test_request_uses_wire_field_names(self) -> None:
        service = _RecordingService(
            httpx.Response(200, content=b"%PDF-1.4 cleaned", headers={"content-type": "application/pdf"})
        )
        pipeline = self._pipeline(service)
        await pipeline.submit(self.file, self.params)

        self.assertEqual(len(service.requests), 1)
        request = service.requests[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(str(request.url), "http://service.test/remove-headers")
        fields = parse_multipart(request)
        self.assertEqual(set(fields), {"file", "header_texts", "band_mm", "margin_mm", "ignore_case"})
        self.assertEqual(fields["file"], ("report.PDF", b"%PDF-1.4 original"))
        self.assertEqual(fields["header_texts"][1], b"ACME Corp\nCONFIDENTIAL")
        self.assertEqual(fields["band_mm"][1], b"30")
        self.assertEqual(fields["margin_mm"][1], b"5")
        self.assertEqual(fields["ignore_case"][1], b"false")

    async def test_out_of_range_numbers_are_clamped(self) -> None:
        service = _RecordingService(httpx.Response(200, content=b"%PDF"))
        pipeline = self._pipeline(service)
        params = SubmissionParameters(header_text="ACME", band_mm=400, margin_mm=-1, ignore_case=True)
        await pipeline.submit(self.file, params)
        fields = parse_multipart(service.requests[0])
        self.assertEqual(fields["band_mm"][1], b"120")
        self.assertEqual(fields["margin_mm"][1], b"0")
        self.assertEqual(fields["ignore_case"][1], b"true")

    async def test_success_returns_payload_and_content_type(self) -> None:
        service = _RecordingService(
            httpx.Response(200, content=b"%PDF-1.4 cleaned", headers={"content-type": "application/pdf"})
        )
        pipeline = self._pipeline(service)
        result = await pipeline.submit(self.file, self.params)
        self.assertIsInstance(result, SubmissionSuccess)
        self.assertEqual(result.payload, b"%PDF-1.4 cleaned")
        self.assertEqual(result.content_type, "application/pdf")
        self.assertFalse(pipeline.in_flight.value)

    async def test_service_error_message_is_surfaced(self) -> None:
        service = _RecordingService(
            httpx.Response(400, content=json.dumps({"error": "bad band_mm"}).encode("utf-8"))
        )
        pipeline = self._pipeline(service)
        result = await pipeline.submit(self.file, self.params)
        self.assertEqual(result, SubmissionFailure("bad band_mm", FailureKind.SERVICE, "SVC-001"))
        self.assertFalse(pipeline.in_flight.value)

    async def test_json_without_error_field_uses_generic_message(self) -> None:
        service = _RecordingService(httpx.Response(500, json={"detail": "boom"}))
        result = await self._pipeline(service).submit(self.file, self.params)
        self.assertIsInstance(result, SubmissionFailure)
        self.assertEqual(result.message, REQUEST_FAILED_MESSAGE)
        self.assertIs(result.kind, FailureKind.SERVICE)

    async def test_unparseable_error_body_degrades_to_generic_message(self) -> None:
        for body in (b"<html>Bad Gateway</html>", b"", b"\xff\xfe\x00"):
            service = _RecordingService(httpx.Response(502, content=body))
            pipeline = self._pipeline(service)
            result = await pipeline.submit(self.file, self.params)
            self.assertIsInstance(result, SubmissionFailure)
            self.assertEqual(result.message, REQUEST_FAILED_MESSAGE)
            self.assertIs(result.kind, FailureKind.MALFORMED_RESPONSE)
            self.assertFalse(pipeline.in_flight.value)

    async def test_deeply_nested_error_body_is_malformed_response(self) -> None:
        service = _RecordingService(httpx.Response(500, content=b"[" * 100000))
        pipeline = self._pipeline(service)
        result = await pipeline.submit(self.file, SubmissionParameters(header_text="A"))
        self.assertIsInstance(result, SubmissionFailure)
        self.assertEqual(result.message, REQUEST_FAILED_MESSAGE)
        self.assertIs(result.kind, FailureKind.MALFORMED_RESPONSE)
        self.assertEqual(result.error_code, "SVC-002")
        self.assertFalse(pipeline.in_flight.value)

    async def test_unexpected_classification_error_becomes_failure(self) -> None:
        service = _RecordingService(httpx.Response(200, content=b"%PDF"))
        pipeline = self._pipeline(service)
        with mock.patch(
            "header_remover.submission.classify_response",
            side_effect=RuntimeError("decoder exploded"),
        ):
            result = await pipeline.submit(self.file, self.params)
        self.assertIsInstance(result, SubmissionFailure)
        self.assertEqual(result.message, "decoder exploded")
        self.assertFalse(pipeline.in_flight.value)

    async def test_file_is_read_off_the_event_loop(self) -> None:
        service = _RecordingService(httpx.Response(200, content=b"%PDF"))
        pipeline = self._pipeline(service)
        with mock.patch(
            "header_remover.submission.asyncio.to_thread",
            wraps=asyncio.to_thread,
        ) as to_thread:
            await pipeline.submit(self.file, self.params)
        to_thread.assert_called_once_with(self.file.read_bytes)
        self.assertEqual(parse_multipart(service.requests[0])["file"][1], b"%PDF-1.4 original")

    async def test_transport_error_carries_message(self) -> None:
        service = _RecordingService(httpx.ConnectError("connection refused"))
        pipeline = self._pipeline(service)
        result = await pipeline.submit(self.file, self.params)
        self.assertIsInstance(result, SubmissionFailure)
        self.assertEqual(result.message, "connection refused")
        self.assertIs(result.kind, FailureKind.TRANSPORT)
        self.assertEqual(result.error_code, "NET-001")
        self.assertFalse(pipeline.in_flight.value)

    async def test_timeout_maps_to_timeout_code(self) -> None:
        service = _RecordingService(httpx.ReadTimeout("timed out"))
        result = await self._pipeline(service).submit(self.file, self.params)
        self.assertIsInstance(result, SubmissionFailure)
        self.assertEqual(result.error_code, "NET-002")

    async def test_missing_file_maps_to_io_failure(self) -> None:
        service = _RecordingService(httpx.Response(200, content=b"%PDF"))
        pipeline = self._pipeline(service)
        missing = SelectedFile.from_path(Path(self._tmpdir.name) / "gone.pdf")
        result = await pipeline.submit(missing, self.params)
        self.assertIsInstance(result, SubmissionFailure)
        self.assertEqual(result.error_code, "IO-001")
        self.assertEqual(service.requests, [])
        self.assertFalse(pipeline.in_flight.value)

    async def test_flag_is_set_while_request_is_outstanding(self) -> None:
        observed: list[bool] = []
        pipeline: SubmissionPipeline

        def handler(request: httpx.Request) -> httpx.Response:
            observed.append(pipeline.in_flight.value)
            return httpx.Response(200, content=b"%PDF")

        pipeline = SubmissionPipeline(self.config, transport=httpx.MockTransport(handler))
        await pipeline.submit(self.file, self.params)
        self.assertEqual(observed, [True])
        self.assertFalse(pipeline.in_flight.value)


if __name__ == "__main__":
    unittest.main()
