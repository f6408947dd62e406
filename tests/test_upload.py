import asyncio
import logging
import os
import re

import pytest
from starlette.datastructures import Headers

from media_transfer.app.adapters.io.environment import MiB
from media_transfer.app.exceptions import FileTooLargeError
from media_transfer.app.services import upload_service
from media_transfer.app.startup import ensure_uploads_dir
from media_transfer.utils.upload_streaming import DiskSink

SAVED_JSON = re.compile(r"^report_\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{3}Z\.json$")

BOUNDARY = b"media-transfer-test-boundary"
CONTENT_TYPE = "multipart/form-data; boundary=" + BOUNDARY.decode()


def _part(disposition: bytes, content_type: bytes, data: bytes) -> bytes:
    return (
        b"--" + BOUNDARY + b"\r\n"
        b"Content-Disposition: " + disposition + b"\r\n"
        b"Content-Type: " + content_type + b"\r\n\r\n" + data + b"\r\n"
    )


def _multipart(parts) -> bytes:
    return b"".join(_part(*p) for p in parts) + b"--" + BOUNDARY + b"--\r\n"


def _file_envelope(filename: str):
    """Bytes before and after the payload of a single ``file`` part."""
    head = (
        b"--" + BOUNDARY + b"\r\n"
        b'Content-Disposition: form-data; name="file"; filename="' + filename.encode() + b'"\r\n'
        b"Content-Type: application/octet-stream\r\n\r\n"
    )
    tail = b"\r\n--" + BOUNDARY + b"--\r\n"
    return head, tail


def test_upload_round_trip_json(client, settings):
    r = client.post("/upload", files={"file": ("report.json", b'{"a":1}', "application/json")})
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["message"] == "File uploaded successfully"

    info = body["file"]
    assert info["originalName"] == "report.json"
    assert SAVED_JSON.match(info["savedAs"])
    assert info["size"] == 7
    assert info["mimeType"] == "application/json"
    assert info["path"] == "report.json"
    assert info["savedPath"] == os.path.join(settings.uploads_dir, info["savedAs"])
    with open(info["savedPath"], "rb") as fh:
        assert fh.read() == b'{"a":1}'


def test_upload_size_matches_bytes_on_disk(client):
    payload = os.urandom(300_000)
    r = client.post("/upload", files={"file": ("blob.bin", payload, "application/octet-stream")})
    assert r.status_code == 200
    info = r.json()["file"]
    assert info["size"] == len(payload)
    assert os.path.getsize(info["savedPath"]) == len(payload)


def test_declared_path_is_echoed(client):
    r = client.post(
        "/upload",
        files={"file": ("photo.jpg", b"\xff\xd8\xff", "image/jpeg")},
        data={"path": "albums/2024/photo.jpg"},
    )
    assert r.status_code == 200
    assert r.json()["file"]["path"] == "albums/2024/photo.jpg"


def test_missing_file_is_400(client):
    r = client.post("/upload", data={"path": "nothing.txt"})
    assert r.status_code == 400
    assert r.json() == {"success": False, "error": "No file uploaded"}


def test_empty_body_is_400(client):
    r = client.post("/upload")
    assert r.status_code == 400
    assert r.json()["success"] is False


def test_two_files_rejected(client, settings):
    r = client.post(
        "/upload",
        files=[
            ("file", ("a.txt", b"a", "text/plain")),
            ("file", ("b.txt", b"b", "text/plain")),
        ],
    )
    assert r.status_code == 400
    body = r.json()
    assert body["success"] is False
    assert body["error"] == "Upload error"
    assert body["details"] == "Too many files"
    assert os.listdir(settings.uploads_dir) == []


def test_unexpected_file_field_rejected(client):
    r = client.post("/upload", files={"document": ("a.txt", b"a", "text/plain")})
    assert r.status_code == 400
    assert r.json()["details"] == "Unexpected field: document"


def test_oversized_file_is_413_and_not_kept(client, settings):
    payload = b"x" * (settings.max_file_size + 10)
    r = client.post("/upload", files={"file": ("big.bin", payload, "application/octet-stream")})
    assert r.status_code == 413
    body = r.json()
    assert body["success"] is False
    assert body["error"] == "File too large"
    assert "1MB" in body["details"]
    assert body["maxSize"] == "1MB"
    assert os.listdir(settings.uploads_dir) == []


def test_oversized_request_rejected_from_content_length(client):
    payload = b"x" * (2 * MiB)
    r = client.post("/upload", files={"file": ("huge.bin", payload, "application/octet-stream")})
    assert r.status_code == 413
    assert "exceeds the limit of 1MB" in r.json()["details"]


def test_oversized_field_is_413(client):
    r = client.post(
        "/upload",
        files={"file": ("a.txt", b"a", "text/plain")},
        data={"path": "p" * (16 * 1024)},
    )
    assert r.status_code == 413
    body = r.json()
    assert body["error"] == "Field too large"
    assert body["success"] is False


def test_text_preview_logged(client, caplog):
    caplog.set_level(logging.INFO, logger=upload_service.__name__)
    r = client.post("/upload", files={"file": ("notes.txt", b"hello preview", "text/plain")})
    assert r.status_code == 200
    assert any("hello preview" in rec.getMessage() for rec in caplog.records)


def test_preview_failure_is_swallowed(client, monkeypatch, caplog):
    def broken(path, limit=500):
        raise OSError("gone")

    monkeypatch.setattr(upload_service, "read_preview", broken)
    caplog.set_level(logging.WARNING, logger=upload_service.__name__)
    r = client.post("/upload", files={"file": ("style.css", b"body{}", "text/css")})
    assert r.status_code == 200
    assert any("Could not read file content" in rec.getMessage() for rec in caplog.records)


def test_write_failure_is_500(client, settings, monkeypatch):
    class FullDisk(DiskSink):
        async def write(self, chunk):
            raise OSError("No space left on device")

    monkeypatch.setattr(upload_service, "DiskSink", FullDisk)
    r = client.post("/upload", files={"file": ("a.bin", b"abc", "application/octet-stream")})
    assert r.status_code == 500
    body = r.json()
    assert body == {
        "success": False,
        "error": "Internal server error",
        "details": "No space left on device",
    }
    assert os.listdir(settings.uploads_dir) == []


def test_nul_in_filename_is_400(client, settings):
    body = _multipart([(b'form-data; name="file"; filename="a\x00b.txt"', b"text/plain", b"abc")])
    r = client.post("/upload", content=body, headers={"content-type": CONTENT_TYPE})
    assert r.status_code == 400
    assert r.json() == {"success": False, "error": "Upload error", "details": "Invalid filename"}
    assert os.listdir(settings.uploads_dir) == []


def test_chunked_oversized_upload_is_413(client, settings):
    head, tail = _file_envelope("big.bin")

    def body():
        yield head
        for _ in range(5 * 16):  # 5 MiB in 64 KiB chunks
            yield b"x" * (64 * 1024)
        yield tail

    r = client.post("/upload", content=body(), headers={"content-type": CONTENT_TYPE})
    assert r.status_code == 413
    assert r.json()["maxSize"] == "1MB"
    assert os.listdir(settings.uploads_dir) == []


def test_chunked_upload_within_limit(client):
    head, tail = _file_envelope("small.bin")
    payload = b"y" * (200 * 1024)

    def body():
        yield head
        for i in range(0, len(payload), 4096):
            yield payload[i:i + 4096]
        yield tail

    r = client.post("/upload", content=body(), headers={"content-type": CONTENT_TYPE})
    assert r.status_code == 200
    info = r.json()["file"]
    assert info["size"] == len(payload)
    with open(info["savedPath"], "rb") as fh:
        assert fh.read() == payload


def test_reading_stops_once_file_exceeds_limit(settings):
    ensure_uploads_dir(settings.uploads_dir)
    head, tail = _file_envelope("big.bin")
    pulled = []

    async def body():
        yield head
        for i in range(64):  # 4 MiB against a 1 MiB cap
            pulled.append(i)
            yield b"x" * (64 * 1024)
        yield tail

    headers = Headers({"content-type": CONTENT_TYPE})
    with pytest.raises(FileTooLargeError):
        asyncio.run(upload_service.receive_upload(headers, body(), settings))
    assert len(pulled) < 20
    assert os.listdir(settings.uploads_dir) == []


def test_truncated_body_is_400(client, settings):
    head, _ = _file_envelope("cut.bin")
    r = client.post("/upload", content=head + b"partial", headers={"content-type": CONTENT_TYPE})
    assert r.status_code == 400
    assert r.json()["success"] is False
    assert os.listdir(settings.uploads_dir) == []


def test_missing_boundary_is_400(client):
    r = client.post("/upload", content=b"whatever", headers={"content-type": "multipart/form-data"})
    assert r.status_code == 400
    assert r.json()["error"] == "Upload error"


def test_empty_file_input_counts_as_no_file(client):
    body = _multipart([(b'form-data; name="file"; filename=""', b"application/octet-stream", b"")])
    r = client.post("/upload", content=body, headers={"content-type": CONTENT_TYPE})
    assert r.status_code == 400
    assert r.json()["error"] == "No file uploaded"


def test_same_name_uploads_are_both_kept(client, settings, monkeypatch):
    from datetime import datetime, timedelta, timezone

    moments = iter([
        datetime(2024, 1, 1, tzinfo=timezone.utc),
        datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(milliseconds=1),
    ])
    real = upload_service.allocate_filename
    monkeypatch.setattr(upload_service, "allocate_filename", lambda name: real(name, next(moments)))

    first = client.post("/upload", files={"file": ("dup.txt", b"one", "text/plain")}).json()["file"]
    second = client.post("/upload", files={"file": ("dup.txt", b"two", "text/plain")}).json()["file"]
    assert first["savedAs"] != second["savedAs"]
    assert sorted(os.listdir(settings.uploads_dir)) == sorted([first["savedAs"], second["savedAs"]])
