"""Destination filenames for uploads.

Stored name rule:
    saved_name = "<base>_<timestamp><ext>"

The timestamp is the upload instant as ISO-8601 UTC (millisecond precision)
with ``:`` and ``.`` replaced by ``-``. Nothing on disk is consulted, so two
uploads of the same name within one millisecond map to the same file and the
last writer wins.
"""

from __future__ import annotations

import os
import re
from datetime import datetime, timezone
from typing import Optional

TEXTUAL_SUFFIXES = (".json", ".js", ".html", ".css")

_UNSAFE_TS_CHARS = re.compile(r"[:.]")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat_utc(moment: datetime) -> str:
    """``2024-05-01T12:30:45.123Z`` style timestamp."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def format_timestamp(moment: Optional[datetime] = None) -> str:
    return _UNSAFE_TS_CHARS.sub("-", isoformat_utc(moment or utc_now()))


def _final_segment(name: str) -> str:
    # Browsers on Windows may send full client paths.
    return name.replace("\\", "/").rsplit("/", 1)[-1]


def split_name(original_name: str) -> tuple[str, str]:
    """Split into (base, ext); ``ext`` keeps its dot and may be empty."""
    name = _final_segment(original_name)
    base, ext = os.path.splitext(name)
    return base, ext


def allocate_filename(original_name: str, moment: Optional[datetime] = None) -> str:
    base, ext = split_name(original_name)
    return f"{base}_{format_timestamp(moment)}{ext}"


def is_textual(mime_type: Optional[str], original_name: str) -> bool:
    """Whether the upload is worth a content preview in the logs."""
    if mime_type and mime_type.startswith("text/"):
        return True
    return original_name.endswith(TEXTUAL_SUFFIXES)
