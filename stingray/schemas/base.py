"""
Shared schema types.

Timestamps are stored as naive UTC values (DATETIME/TIMESTAMP columns); API
responses render them in ISO 8601 with a ``Z`` suffix.
"""

from datetime import datetime
from typing import Annotated

from pydantic import PlainSerializer


def _utc_isoformat(dt: datetime | None) -> str | None:
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ") if dt else None


# Usage: created: UTCDatetimeOptional = None
UTCDatetimeOptional = Annotated[
    datetime | None,
    PlainSerializer(_utc_isoformat, return_type=str | None),
]
