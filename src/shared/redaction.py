"""PII redaction applied before anything leaves the process.

Every trace detail, published event and persisted reason list goes through
``redact``. It returns a new value and never mutates its input, and applying
it twice yields the same result as applying it once.
"""

import re
from typing import Any

from pydantic import BaseModel

REDACTED = "****REDACTED****"

# PAN-like numbers (13 to 19 digits)
_PAN_RE = re.compile(r"\b\d{13,19}\b")
_EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")


def redact_string(value: str) -> str:
    """Mask card numbers and e-mail addresses in a single string."""
    if not value:
        return value
    value = _PAN_RE.sub(REDACTED, value)
    return _EMAIL_RE.sub(REDACTED, value)


def redact(value: Any) -> Any:
    """Recursively redact every string inside ``value``.

    Pydantic models are dumped to JSON-compatible dicts first, so the result
    is always safe to serialize.
    """
    if isinstance(value, BaseModel):
        return redact(value.model_dump(mode="json"))
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, dict):
        return {key: redact(item) for key, item in value.items()}
    if isinstance(value, list):
        return [redact(item) for item in value]
    if isinstance(value, tuple):
        return tuple(redact(item) for item in value)
    return value
