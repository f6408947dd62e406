from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timezone
from typing import List

from starlette.concurrency import run_in_threadpool

from ..exceptions import StorageError
from ..models.v1.files_models import FileListingEntry
from media_transfer.utils.upload_naming import isoformat_utc

logger = logging.getLogger(__name__)


def _stat_entry(uploads_dir: str, name: str) -> FileListingEntry:
    path = os.path.join(uploads_dir, name)
    st = os.stat(path)
    return FileListingEntry(
        name=name,
        size=st.st_size,
        modified=isoformat_utc(datetime.fromtimestamp(st.st_mtime, tz=timezone.utc)),
        path=path,
    )


async def list_uploads(uploads_dir: str) -> List[FileListingEntry]:
    """Stat every entry of ``uploads_dir`` and return them in listdir order.

    Always reads through to disk; the directory is the only record of what
    has been uploaded.
    """
    try:
        names = await run_in_threadpool(os.listdir, uploads_dir)
        # gather keeps argument order, so results line up with ``names``.
        return list(
            await asyncio.gather(
                *(run_in_threadpool(_stat_entry, uploads_dir, name) for name in names)
            )
        )
    except OSError as exc:
        logger.error("Error listing files: %s", exc)
        raise StorageError("Could not list files", str(exc)) from exc
