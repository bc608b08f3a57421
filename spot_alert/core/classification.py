"""
Alert classification and object key naming.
"""

import os
import secrets
from datetime import datetime
from enum import Enum
from typing import Optional, Sequence

DEFAULT_FILENAME = "capture.jpg"


class AlertType(Enum):
    """Outcome of matching an image against the face collection."""
    KNOWN_FACE = "known_face"
    UNKNOWN_FACE = "unknown_face"


def classify(matches: Sequence) -> AlertType:
    """Any match means a known face; no match means an unknown face."""
    return AlertType.KNOWN_FACE if len(matches) > 0 else AlertType.UNKNOWN_FACE


def build_storage_key(
    filename: Optional[str],
    now: datetime,
    prefix: str = "uploads/",
    unique: bool = False
) -> str:
    """Build the object key for an uploaded image.

    Keys look like ``uploads/<epoch-millis>_<filename>``. Two uploads of the
    same filename within one millisecond collide unless ``unique`` is set,
    which inserts a random 8-character hex token after the timestamp.

    Args:
        filename: Original client filename; directories are stripped
        now: Upload instant
        prefix: Key prefix (usually ends with "/")
        unique: Add a collision-resistant token

    Returns:
        Object key
    """
    name = os.path.basename((filename or "").replace("\\", "/")).strip()
    if not name:
        name = DEFAULT_FILENAME

    millis = int(now.timestamp() * 1000)
    if unique:
        return f"{prefix}{millis}_{secrets.token_hex(4)}_{name}"
    return f"{prefix}{millis}_{name}"
