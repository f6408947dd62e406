"""Single-file upload handling.

Form rules:
  - exactly one file, under the ``file`` field
  - an optional ``path`` text field carrying the client's logical path
  - files are capped at ``max_file_size`` bytes, text fields at ``max_field_size``

The body is fed through python-multipart as it arrives; the file part goes
straight into ``<uploads_dir>/<savedAs>`` and the upload is aborted the moment
it passes the size cap. Nothing is indexed besides the file itself.
"""

from __future__ import annotations

import logging
import os
from typing import AsyncIterator, Dict, List, Optional, Tuple

from fastapi import Request
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import Headers

from ..adapters.io.environment import ServerSettings
from ..exceptions import FieldTooLargeError, FileTooLargeError, StorageError, UploadValidationError
from ..models.v1.files_models import UploadedFileRecord
from media_transfer.utils.upload_naming import allocate_filename, is_textual, isoformat_utc, utc_now
from media_transfer.utils.upload_streaming import DiskSink, read_preview

logger = logging.getLogger(__name__)

FILE_FIELD = "file"
PATH_FIELD = "path"
MAX_FIELDS = 1000


class ReceivedFile:
    """The stored ``file`` part once the body has been fully read."""

    def __init__(self, original_name: str, content_type: str, saved_as: str, saved_path: str, size: int) -> None:
        self.original_name = original_name
        self.content_type = content_type
        self.saved_as = saved_as
        self.saved_path = saved_path
        self.size = size


class _TextField:
    def __init__(self, name: str, limit: int) -> None:
        self.name = name
        self.limit = limit
        self.buf = bytearray()

    def feed(self, chunk: bytes) -> None:
        self.buf.extend(chunk)
        if len(self.buf) > self.limit:
            raise FieldTooLargeError(self.limit)


class _Skipped:
    """Part that carries nothing worth keeping (an empty file input)."""

    def feed(self, chunk: bytes) -> None:
        pass


class UploadFormParser:
    """Streaming multipart parser that keeps at most one file, written to disk.

    python-multipart callbacks are synchronous, so they only queue events;
    the queue is drained (and file bytes written) after every body chunk.
    """

    def __init__(self, headers: Headers, stream: AsyncIterator[bytes], settings: ServerSettings) -> None:
        self.headers = headers
        self.stream = stream
        self.settings = settings

        self.fields: Dict[str, str] = {}
        self.file: Optional[ReceivedFile] = None

        self._events: List[Tuple[str, object]] = []
        self._header_field = b""
        self._header_value = b""
        self._part_headers: List[Tuple[bytes, bytes]] = []
        self._current = None
        self._sink: Optional[DiskSink] = None
        self._sink_meta: Optional[Tuple[str, str, str]] = None
        self._files_seen = 0
        self._fields_seen = 0

    # -- python-multipart callbacks ------------------------------------
    def on_part_begin(self) -> None:
        self._part_headers = []

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def on_header_end(self) -> None:
        self._part_headers.append((self._header_field.lower(), self._header_value))
        self._header_field = b""
        self._header_value = b""

    def on_headers_finished(self) -> None:
        self._events.append(("begin", dict(self._part_headers)))

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        self._events.append(("data", data[start:end]))

    def on_part_end(self) -> None:
        self._events.append(("end", None))

    # -- event handling -------------------------------------------------
    async def _begin(self, part_headers: Dict[bytes, bytes]) -> None:
        _, options = parse_options_header(part_headers.get(b"content-disposition", b""))
        name = options.get(b"name", b"").decode("utf-8", errors="replace")

        if b"filename" not in options:
            self._fields_seen += 1
            if self._fields_seen > MAX_FIELDS:
                raise UploadValidationError("Upload error", "Too many fields")
            self._current = _TextField(name, self.settings.max_field_size)
            return

        self._files_seen += 1
        if self._files_seen > 1:
            raise UploadValidationError("Upload error", "Too many files")
        if name != FILE_FIELD:
            raise UploadValidationError("Upload error", f"Unexpected field: {name}")

        filename = options[b"filename"].decode("utf-8", errors="replace")
        # An empty file input still submits a part with an empty filename.
        if not filename:
            self._current = _Skipped()
            return
        if "\x00" in filename:
            raise UploadValidationError("Upload error", "Invalid filename")

        content_type = part_headers.get(b"content-type", b"application/octet-stream").decode("latin-1")
        saved_as = allocate_filename(filename)
        dest = os.path.join(self.settings.uploads_dir, saved_as)

        self._sink = DiskSink(dest, max_bytes=self.settings.max_file_size)
        self._sink_meta = (filename, content_type, saved_as)
        self._current = self._sink
        try:
            await self._sink.open()
        except (OSError, ValueError) as exc:
            raise StorageError("Internal server error", str(exc)) from exc

    async def _data(self, chunk: bytes) -> None:
        if self._current is self._sink and self._sink is not None:
            try:
                await self._sink.write(chunk)
            except (OSError, ValueError) as exc:
                raise StorageError("Internal server error", str(exc)) from exc
        elif self._current is not None:
            self._current.feed(chunk)

    async def _end(self) -> None:
        current, self._current = self._current, None
        if isinstance(current, _TextField):
            self.fields.setdefault(current.name, current.buf.decode("utf-8", errors="replace"))
        elif current is not None and current is self._sink:
            try:
                await self._sink.close()
            except OSError as exc:
                raise StorageError("Internal server error", str(exc)) from exc
            original_name, content_type, saved_as = self._sink_meta
            self.file = ReceivedFile(original_name, content_type, saved_as, self._sink.dest, self._sink.written)

    async def _drain(self) -> None:
        events, self._events = self._events, []
        for kind, payload in events:
            if kind == "begin":
                await self._begin(payload)
            elif kind == "data":
                await self._data(payload)
            else:
                await self._end()

    async def parse(self) -> None:
        _, params = parse_options_header(self.headers.get("content-type"))
        boundary = params.get(b"boundary")
        if not boundary:
            raise UploadValidationError("Upload error", "Missing boundary in multipart form")

        parser = MultipartParser(
            boundary,
            {
                "on_part_begin": self.on_part_begin,
                "on_part_data": self.on_part_data,
                "on_part_end": self.on_part_end,
                "on_header_field": self.on_header_field,
                "on_header_value": self.on_header_value,
                "on_header_end": self.on_header_end,
                "on_headers_finished": self.on_headers_finished,
            },
        )
        try:
            async for chunk in self.stream:
                parser.write(chunk)
                await self._drain()
            parser.finalize()
            await self._drain()
            if self._current is not None:
                raise UploadValidationError("Upload error", "Unexpected end of form")
        except MultipartParseError as exc:
            await self._abort()
            raise UploadValidationError("Upload error", str(exc) or "Malformed multipart body") from exc
        except BaseException:
            await self._abort()
            raise

    async def _abort(self) -> None:
        if self._sink is not None:
            await self._sink.discard()
        self.file = None


def _check_content_length(request: Request, settings: ServerSettings) -> None:
    raw = request.headers.get("content-length")
    if not raw:
        return
    try:
        length = int(raw)
    except ValueError:
        raise UploadValidationError("Upload error", "Invalid Content-Length header")
    if length > settings.max_file_size + settings.max_field_size:
        raise FileTooLargeError(settings.max_file_size)


def _is_multipart(headers: Headers) -> bool:
    content_type, _ = parse_options_header(headers.get("content-type"))
    return content_type == b"multipart/form-data"


async def receive_upload(
    headers: Headers, stream: AsyncIterator[bytes], settings: ServerSettings
) -> UploadFormParser:
    """Parse a request body; the returned parser holds ``file`` and ``fields``.

    Non-multipart bodies cannot carry a file and are left unread.
    """
    form = UploadFormParser(headers, stream, settings)
    if _is_multipart(headers):
        await form.parse()
    return form


def log_preview(record: UploadedFileRecord) -> None:
    """Log the head of a textual upload; failures never reach the client."""
    if not is_textual(record.mimeType, record.originalName):
        return
    try:
        preview = read_preview(record.savedPath)
    except (OSError, ValueError) as exc:
        logger.warning("Could not read file content: %s", exc)
        return
    logger.info("File preview: %s", preview)


async def save_upload(request: Request, settings: ServerSettings) -> UploadedFileRecord:
    """Parse, store and describe the upload carried by ``request``.

    Raises:
        UploadValidationError: client-side problems (400/413).
        StorageError: the file could not be written (500).
    """
    _check_content_length(request, settings)
    form = await receive_upload(request.headers, request.stream(), settings)
    received = form.file
    if received is None:
        raise UploadValidationError("No file uploaded")

    logger.info("Receiving file: %s (%dKB)", received.original_name, round(received.size / 1024))

    record = UploadedFileRecord(
        originalName=received.original_name,
        savedAs=received.saved_as,
        size=received.size,
        mimeType=received.content_type,
        path=form.fields.get(PATH_FIELD) or received.original_name,
        uploadTime=isoformat_utc(utc_now()),
        savedPath=received.saved_path,
    )
    logger.info("File uploaded: %s", record.model_dump())

    await run_in_threadpool(log_preview, record)
    return record
