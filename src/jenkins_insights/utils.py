"""Credential obfuscation, secret masking and display formatting helpers."""

import base64
import binascii
import os
import re
from datetime import datetime, timezone

from simple_logger.logger import get_logger

logger = get_logger(name=__name__, level=os.environ.get("LOG_LEVEL", "INFO"))

ENCRYPTION_PREFIX = "JENKINS_INSIGHTS_ENC:"
MASK = "****"

# NOTE: base64 with a tag is obfuscation, not encryption. Stored secrets need
# authenticated encryption with a key kept outside the database.

_SECRET_ASSIGNMENT_PATTERN = re.compile(
    r"(password|token|key|secret|credential)=(?:\"[^\"\n]*\"?|'[^'\n]*'?|[^\s\"']+)",
    re.IGNORECASE,
)
_BEARER_PATTERN = re.compile(r"authorization:\s*bearer\s+\S+", re.IGNORECASE)


def encrypt_data(data: str) -> str:
    """Obfuscate a secret for storage.

    Args:
        data: Plain text value.

    Returns:
        Tagged base64 value, or an empty string for empty input.
    """
    if not data:
        return ""
    encoded = base64.b64encode(data.encode("utf-8")).decode("ascii")
    return f"{ENCRYPTION_PREFIX}{encoded}"


def decrypt_data(data: str) -> str:
    """Reverse :func:`encrypt_data`.

    Values without the tag are returned unchanged so plain values from older
    stores keep working.

    Args:
        data: Stored value.

    Returns:
        Decoded value, the input itself when untagged, or an empty string when
        the tagged payload is corrupt.
    """
    if not data or not data.startswith(ENCRYPTION_PREFIX):
        return data
    try:
        return base64.b64decode(
            data[len(ENCRYPTION_PREFIX) :], validate=True
        ).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        logger.exception("Failed to decrypt data")
        return ""


def mask_sensitive_data(text: str | None) -> str:
    """Mask secret assignments and bearer tokens in console or log text.

    ``password=``, ``token=``, ``key=``, ``secret=`` and ``credential=``
    values become ``name="****"``; ``Authorization: Bearer`` headers keep only
    the scheme.
    """
    if not text:
        return ""
    masked = _SECRET_ASSIGNMENT_PATTERN.sub(
        lambda m: f'{m.group(1)}="{MASK}"', text
    )
    return _BEARER_PATTERN.sub(f"Authorization: Bearer {MASK}", masked)


def format_duration(milliseconds: int | None) -> str:
    """Format a duration like ``2h 30m 15s``."""
    if not milliseconds:
        return "0s"

    seconds = milliseconds // 1000
    minutes = seconds // 60
    hours = minutes // 60

    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes % 60 > 0 or hours > 0:
        parts.append(f"{minutes % 60}m")
    parts.append(f"{seconds % 60}s")
    return " ".join(parts)


def format_timestamp(milliseconds: int | None) -> str:
    """Format an epoch-millisecond timestamp as ISO 8601 (UTC)."""
    if not milliseconds:
        return "N/A"
    return datetime.fromtimestamp(milliseconds / 1000, tz=timezone.utc).isoformat()
