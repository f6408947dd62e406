"""Helpers for moving uploaded bytes onto disk.

File parts are written straight into their final location as the body
arrives, while the byte count is checked against the configured limit.
Blocking file calls run in the threadpool so a slow disk does not hold up the
event loop.
"""

from __future__ import annotations

import os
from typing import Optional

from starlette.concurrency import run_in_threadpool

from media_transfer.app.exceptions import FileTooLargeError


PREVIEW_CHARS = 500


class DiskSink:
    """Destination file for one uploaded part, capped at ``max_bytes``.

    ``write`` raises FileTooLargeError as soon as the running total passes the
    cap; callers are expected to ``discard`` the sink then.
    """

    def __init__(self, dest: str, *, max_bytes: int) -> None:
        self.dest = dest
        self.max_bytes = max_bytes
        self.written = 0
        self.opened = False
        self._fh = None

    async def open(self) -> None:
        self._fh = await run_in_threadpool(open, self.dest, "wb")
        self.opened = True

    async def write(self, chunk: bytes) -> None:
        self.written += len(chunk)
        if self.written > self.max_bytes:
            raise FileTooLargeError(self.max_bytes)
        await run_in_threadpool(self._fh.write, chunk)

    async def close(self) -> None:
        fh, self._fh = self._fh, None
        if fh is not None:
            await run_in_threadpool(fh.close)

    async def discard(self) -> None:
        """Close and remove the partial file (best-effort)."""
        await self.close()
        if self.opened:
            await run_in_threadpool(safe_unlink, self.dest)


def read_preview(path: str, limit: int = PREVIEW_CHARS) -> str:
    """First ``limit`` characters of a text file, ``...`` appended if cut."""
    with open(path, "r", encoding="utf-8", errors="replace") as fh:
        content = fh.read(limit + 1)
    if len(content) > limit:
        return content[:limit] + "..."
    return content


def safe_unlink(path: Optional[str]) -> None:
    """Best-effort file removal (no exception if it fails)."""
    if not path:
        return
    try:
        os.remove(path)
    except OSError:
        pass
