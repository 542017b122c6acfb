"""
Content hashing helpers.
"""

from __future__ import annotations

import hashlib
import re

_WHITESPACE_RE = re.compile(r"\s+")

STABLE_HASH_WIDTH = 10


def stable_hash(text: str) -> str:
    """
    Whitespace-normalised short hash used to detect meaningful change.

    Runs of whitespace collapse to a single newline and the result is
    trimmed before hashing, so re-indentation alone does not register.
    """

    normalised = _WHITESPACE_RE.sub("\n", text).strip()
    return hashlib.sha1(normalised.encode("utf-8")).hexdigest()[:STABLE_HASH_WIDTH]


def content_hash(data: "str | bytes") -> str:
    """
    Exact SHA-256 of file content, used to compare disk against snapshots.
    """

    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()
