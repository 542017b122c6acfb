"""
Path sandboxing for genops.

Every path-bearing operation coming out of the parser is untrusted. The
helpers here decide whether a path may be used at all and normalise it
to a single forward-slash form relative to the project root. They are
pure: nothing here touches the filesystem.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional, Union

_DRIVE_RE = re.compile(r"^[A-Za-z]:")
_SEPARATORS_RE = re.compile(r"/{2,}")


def validate_path(path: Optional[str]) -> Optional[str]:
    """
    Return the normalised project-relative path, or None if unsafe.

    Rejected: empty paths, absolute paths (leading separator or a drive
    letter), paths containing NUL, and any ".." segment. Accepted paths
    have backslashes turned into "/", repeated separators collapsed and
    "." segments dropped.
    """

    if not path or "\x00" in path:
        return None

    unified = path.replace("\\", "/")
    if unified.startswith("/") or _DRIVE_RE.match(unified):
        return None

    unified = _SEPARATORS_RE.sub("/", unified)
    segments = [seg for seg in unified.split("/") if seg not in ("", ".")]
    if any(seg == ".." for seg in segments):
        return None
    if not segments:
        return None

    return "/".join(segments)


def resolve_in_root(root: Union[str, Path], safe_path: str) -> Path:
    """
    Join a path already accepted by validate_path onto the project root.
    """

    return Path(root).joinpath(*safe_path.split("/"))
