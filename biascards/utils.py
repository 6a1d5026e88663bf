"""Small shared helpers."""

import re
import uuid
from datetime import UTC, datetime


def utc_timestamp() -> str:
    """Return the current UTC time as an ISO-8601 string ending in ``Z``."""
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def slugify(text: str) -> str:
    """Convert a display name into a kebab-case slug.

    Example:
        >>> slugify("Confirmation Bias")
        'confirmation-bias'
    """
    slug = re.sub(r"[^a-z0-9]+", "-", text.strip().lower())
    return slug.strip("-")


def generate_activity_id() -> str:
    """Generate a new activity identifier like ``activity-3f2a9c1b7d4e``."""
    return f"activity-{uuid.uuid4().hex[:12]}"
