"""Incremental multipart reading for upload routes.

The request body is fed to python-multipart one network chunk at a time, and
only when the caller asks for more of the wanted file part. Nothing is
buffered ahead of the consumer, so size limits stop the transfer instead of
running after it.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Optional

import python_multipart
from python_multipart.exceptions import FormParserError
from python_multipart.multipart import parse_options_header
from starlette.requests import ClientDisconnect, Request

from tubely.core.errors import BadInput
from tubely.services.ingest_service import FORM_OVERHEAD_BYTES


def declared_length(request: Request) -> Optional[int]:
    raw = request.headers.get("content-length")
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError as exc:
        raise BadInput("invalid_content_length") from exc
    if value < 0:
        raise BadInput("invalid_content_length")
    return value


class StreamedFormFile:
    """The wanted file part; ``read`` pulls more of the request body on demand."""

    def __init__(self, form: "StreamingForm", *, filename: Optional[str], content_type: Optional[str]):
        self._form = form
        self.filename = filename
        self.content_type = content_type

    async def read(self, size: int = -1) -> bytes:
        return await self._form.read_part(size)


class StreamingForm:
    """Reads one named file field out of a ``multipart/form-data`` request."""

    def __init__(self, request: Request, field_name: str):
        self.field_name = field_name
        self.declared_size = declared_length(request)
        self._request = request
        self._chunks: Optional[AsyncIterator[bytes]] = None
        self._parser: Optional[python_multipart.MultipartParser] = None
        self._exhausted = False

        self._header_name = b""
        self._header_value = b""
        self._part_headers: dict[bytes, bytes] = {}
        self._in_target = False
        self._target: Optional[StreamedFormFile] = None
        self._target_done = False
        self._skipped = 0
        self._buffer = bytearray()

    async def open(self) -> Optional[StreamedFormFile]:
        """Advance to the wanted field's headers; ``None`` when the body has no such field."""
        if not self._start():
            return None
        while self._target is None and not self._exhausted:
            await self._feed()
        return self._target

    async def read_part(self, size: int = -1) -> bytes:
        while not self._buffer and not self._target_done:
            if self._exhausted:
                raise BadInput("incomplete_upload")
            await self._feed()
        if size < 0 or size >= len(self._buffer):
            data = bytes(self._buffer)
            self._buffer.clear()
        else:
            data = bytes(self._buffer[:size])
            del self._buffer[:size]
        return data

    def _start(self) -> bool:
        content_type, params = parse_options_header(self._request.headers.get("content-type"))
        if content_type.strip().lower() != b"multipart/form-data":
            return False
        boundary = params.get(b"boundary")
        if not boundary:
            raise BadInput("malformed_multipart", detail="missing boundary")
        callbacks = {
            "on_part_begin": self._on_part_begin,
            "on_part_data": self._on_part_data,
            "on_part_end": self._on_part_end,
            "on_header_field": self._on_header_field,
            "on_header_value": self._on_header_value,
            "on_header_end": self._on_header_end,
            "on_headers_finished": self._on_headers_finished,
        }
        try:
            self._parser = python_multipart.MultipartParser(boundary, callbacks)
        except FormParserError as exc:
            raise BadInput("malformed_multipart", detail=str(exc)) from exc
        self._chunks = self._request.stream().__aiter__()
        return True

    async def _feed(self) -> None:
        assert self._parser is not None and self._chunks is not None
        try:
            chunk = await self._chunks.__anext__()
        except StopAsyncIteration:
            self._exhausted = True
            return
        except ClientDisconnect as exc:
            raise BadInput("upload_interrupted") from exc
        try:
            if chunk:
                self._parser.write(chunk)
            else:
                self._parser.finalize()
        except FormParserError as exc:
            raise BadInput("malformed_multipart", detail=str(exc)) from exc

    def _on_part_begin(self) -> None:
        self._part_headers = {}

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_name += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def _on_header_end(self) -> None:
        self._part_headers[self._header_name.lower()] = self._header_value
        self._header_name = b""
        self._header_value = b""

    def _on_headers_finished(self) -> None:
        _, options = parse_options_header(self._part_headers.get(b"content-disposition"))
        name = options.get(b"name", b"").decode("latin-1")
        if self._target is not None or name != self.field_name:
            return
        filename = options.get(b"filename")
        content_type = self._part_headers.get(b"content-type")
        self._in_target = True
        self._target = StreamedFormFile(
            self,
            filename=filename.decode("latin-1") if filename is not None else None,
            content_type=content_type.decode("latin-1") if content_type is not None else None,
        )

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        if self._in_target:
            self._buffer.extend(data[start:end])
            return
        self._skipped += end - start
        if self._skipped > FORM_OVERHEAD_BYTES:
            raise BadInput("unexpected_form_data")

    def _on_part_end(self) -> None:
        if self._in_target:
            self._in_target = False
            self._target_done = True


__all__ = ["StreamedFormFile", "StreamingForm", "declared_length"]
