"""
Application of a parsed operation batch to a project directory.

The applier is the only component that mutates project files or the
ProjectModel. It works on a copy of the model it is given and returns
the updated copy inside the ApplyResult; persisting either is left to
the caller.

Operations run strictly in the order writes, renames, deletes, then the
dependency merge, so several operations touching the same logical key
always produce the same model. A bad operation never stops the batch:
invalid paths and oversized writes are listed as skipped, and OS-level
rename or delete failures are recorded with ok=False.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from .analysis.entity_mapping import classify_path, upsert_entity
from .config import Config
from .domain import (
    ApplyResult,
    DeleteRecord,
    ParsedBatch,
    ProjectModel,
    RenameRecord,
    SkippedOperation,
    WriteRecord,
)
from .sandbox import resolve_in_root, validate_path

LOG = logging.getLogger(__name__)


def apply_batch(
    batch: ParsedBatch,
    model: ProjectModel,
    root: Union[str, Path],
    config: Optional[Config] = None,
) -> ApplyResult:
    """
    Execute batch against the sandboxed directory root.

    The passed-in model is left untouched; ApplyResult.updated_model is
    the model after the batch.
    """

    config = config or Config()
    root = Path(root)
    updated = model.copy()

    writes: List[WriteRecord] = []
    renames: List[RenameRecord] = []
    deletes: List[DeleteRecord] = []
    skipped: List[SkippedOperation] = []

    for write in batch.writes:
        safe = validate_path(write.path)
        if safe is None:
            LOG.warning("Skipping write with unsafe path %r", write.path)
            skipped.append(SkippedOperation(kind="write", path=write.path, reason="invalid-path"))
            continue

        data = write.content.encode("utf-8")
        if len(data) > config.max_write_bytes:
            LOG.warning(
                "Skipping write to %s: %d bytes exceeds cap of %d",
                safe,
                len(data),
                config.max_write_bytes,
            )
            skipped.append(SkippedOperation(kind="write", path=safe, reason="too-large"))
            continue

        target = resolve_in_root(root, safe)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            LOG.warning("Write to %s failed: %s", safe, exc)
            skipped.append(SkippedOperation(kind="write", path=safe, reason="os-error"))
            continue
        writes.append(WriteRecord(path=safe, bytes=len(data)))
        LOG.info("Wrote %s (%d bytes)", safe, len(data))

        ref = classify_path(safe)
        if ref is not None:
            upsert_entity(updated, ref, write.content)

    for rename in batch.renames:
        from_safe = validate_path(rename.from_path)
        to_safe = validate_path(rename.to_path)
        if from_safe is None or to_safe is None:
            bad = rename.from_path if from_safe is None else rename.to_path
            LOG.warning("Skipping rename with unsafe path %r", bad)
            skipped.append(SkippedOperation(kind="rename", path=bad, reason="invalid-path"))
            continue

        source = resolve_in_root(root, from_safe)
        destination = resolve_in_root(root, to_safe)
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            os.replace(source, destination)
        except OSError as exc:
            LOG.warning("Rename %s -> %s failed: %s", from_safe, to_safe, exc)
            renames.append(RenameRecord(from_path=from_safe, to_path=to_safe, ok=False))
            continue

        renames.append(RenameRecord(from_path=from_safe, to_path=to_safe, ok=True))
        LOG.info("Renamed %s -> %s", from_safe, to_safe)

    for delete in batch.deletes:
        safe = validate_path(delete.path)
        if safe is None:
            LOG.warning("Skipping delete with unsafe path %r", delete.path)
            skipped.append(SkippedOperation(kind="delete", path=delete.path, reason="invalid-path"))
            continue

        try:
            resolve_in_root(root, safe).unlink()
        except OSError as exc:
            LOG.info("Delete of %s failed: %s", safe, exc)
            deletes.append(DeleteRecord(path=safe, ok=False))
            continue

        deletes.append(DeleteRecord(path=safe, ok=True))
        LOG.info("Deleted %s", safe)

    dependencies = list(batch.dependencies)
    if dependencies:
        merge_dependencies(root / config.manifest_name, dependencies, config.dependency_version)

    return ApplyResult(
        writes=writes,
        renames=renames,
        deletes=deletes,
        dependencies=dependencies,
        updated_model=updated,
        skipped=skipped,
    )


def merge_dependencies(
    manifest_path: Path,
    packages: Sequence[str],
    version: str = "*",
) -> List[str]:
    """
    Insert packages missing from the manifest's dependencies.

    Existing entries keep their version. Returns the names that were
    added. A manifest that cannot be read or parsed is left untouched.
    """

    manifest: Dict[str, object] = {}
    if manifest_path.exists():
        try:
            loaded = json.loads(manifest_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            LOG.warning("Cannot read manifest %s, dependencies not merged: %s", manifest_path, exc)
            return []
        if not isinstance(loaded, dict):
            LOG.warning("Manifest %s is not a JSON object, dependencies not merged", manifest_path)
            return []
        manifest = loaded

    deps = manifest.get("dependencies")
    if not isinstance(deps, dict):
        deps = {}
        manifest["dependencies"] = deps

    added: List[str] = []
    for pkg in packages:
        if pkg not in deps:
            deps[pkg] = version
            added.append(pkg)

    if not added and manifest_path.exists():
        return added

    try:
        manifest_path.parent.mkdir(parents=True, exist_ok=True)
        manifest_path.write_text(json.dumps(manifest, indent=2) + "\n", encoding="utf-8")
    except OSError as exc:
        LOG.warning("Cannot write manifest %s: %s", manifest_path, exc)
        return []

    LOG.info("Added dependencies to %s: %s", manifest_path.name, ", ".join(added) or "none")
    return added
