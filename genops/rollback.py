"""
Rollback of a project to the snapshot recorded in an operation log entry.

A rollback targets either the pre-batch or the post-batch snapshot of a
single entry. The set of files to restore is either supplied by the
caller or derived from the operations the entry recorded. Each file is
mapped back to a logical entity with the same folder convention the
applier uses, and that entity's snapshot content is what gets restored.

preview_rollback is a dry run: it only reads. apply_rollback writes the
restored files and returns the snapshot as the new model; persisting
that model and logging the rollback is up to the caller.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from .analysis.entity_mapping import lookup_entity_content
from .analysis.hashing import content_hash
from .domain import OperationLogEntry, RollbackMode, RollbackPreviewItem, RollbackResult
from .errors import RollbackError
from .sandbox import resolve_in_root, validate_path

LOG = logging.getLogger(__name__)

DEFAULT_FILE_LIMIT = 200
VALID_MODES = ("pre", "post")


def resolve_target_files(
    entry: OperationLogEntry,
    files: Optional[Sequence[str]] = None,
    limit: int = DEFAULT_FILE_LIMIT,
) -> List[str]:
    """
    Decide which files a rollback considers.

    An explicit list is validated against the sandbox; otherwise every
    write destination, both sides of every rename and every delete path
    of the entry are used. Either way the result is deduplicated in
    first-seen order and capped at limit.
    """

    if files is not None:
        candidates: Iterable[Optional[str]] = (validate_path(f) for f in files)
    else:
        derived: List[str] = [w.path for w in entry.writes]
        for rename in entry.renames:
            derived.append(rename.from_path)
            derived.append(rename.to_path)
        derived.extend(d.path for d in entry.deletes)
        candidates = derived

    out: List[str] = []
    seen = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        out.append(path)
    return out[: max(0, limit)]


def preview_rollback(
    entry: OperationLogEntry,
    root: Union[str, Path],
    mode: RollbackMode = "post",
    files: Optional[Sequence[str]] = None,
    limit: int = DEFAULT_FILE_LIMIT,
) -> List[RollbackPreviewItem]:
    """
    Report, without writing anything, what a rollback would change.

    For each resolvable file the hash of the current on-disk content
    (None when missing) is compared with the hash of the snapshot
    content. Files with no matching entity in the snapshot are left out.
    """

    root = Path(root)
    items: List[RollbackPreviewItem] = []
    for path, content in _resolve_contents(entry, mode, files, limit):
        target = resolve_in_root(root, path)
        before: Optional[str] = None
        if target.is_file():
            before = content_hash(target.read_bytes())
        after = content_hash(content)
        items.append(
            RollbackPreviewItem(file=path, before_hash=before, after_hash=after, changed=before != after)
        )
    return items


def apply_rollback(
    entry: OperationLogEntry,
    root: Union[str, Path],
    mode: RollbackMode = "post",
    files: Optional[Sequence[str]] = None,
    limit: int = DEFAULT_FILE_LIMIT,
) -> RollbackResult:
    """
    Restore snapshot content for the resolved files.

    In "pre" mode the entry's successful renames are also undone: each
    rename destination that was not just restored is deleted.

    A file that cannot be written is listed in RollbackResult.failed and
    the remaining files are still restored.
    """

    root = Path(root)
    writes: List[str] = []
    failed: List[str] = []
    for path, content in _resolve_contents(entry, mode, files, limit):
        target = resolve_in_root(root, path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content.encode("utf-8"))
        except OSError as exc:
            LOG.warning("Could not restore %s from %s-snapshot: %s", path, mode, exc)
            failed.append(path)
            continue
        writes.append(path)
        LOG.info("Restored %s from %s-snapshot of entry %d", path, mode, entry.id)

    removed: List[str] = []
    if mode == "pre":
        restored = set(writes)
        for rename in entry.renames:
            if not rename.ok or rename.to_path in restored:
                continue
            target = resolve_in_root(root, rename.to_path)
            try:
                target.unlink()
            except OSError as exc:
                LOG.info("Could not remove rename destination %s: %s", rename.to_path, exc)
                continue
            removed.append(rename.to_path)
            LOG.info("Removed rename destination %s", rename.to_path)

    return RollbackResult(
        writes=writes,
        removed=removed,
        restored_model=entry.snapshot(mode).copy(),
        mode=mode,
        failed=failed,
    )


def _resolve_contents(
    entry: OperationLogEntry,
    mode: str,
    files: Optional[Sequence[str]],
    limit: int,
) -> List[Tuple[str, str]]:
    if mode not in VALID_MODES:
        raise RollbackError(f"invalid rollback mode {mode!r}; expected 'pre' or 'post'")

    snapshot = entry.pre_snapshot if mode == "pre" else entry.post_snapshot
    resolved: List[Tuple[str, str]] = []
    for path in resolve_target_files(entry, files, limit):
        content = lookup_entity_content(snapshot, path)
        if content is None:
            LOG.debug("No %s-snapshot entity for %s; skipping", mode, path)
            continue
        resolved.append((path, content))
    return resolved
