"""
High-level orchestration for genops.

The engine is responsible for:
  - obtaining markup (directly or from a text generator),
  - rejecting truncated markup and parsing the rest,
  - applying the batch inside the project's sandbox directory,
  - persisting the updated model and logging the batch, and
  - serving diffs, rollback previews and rollbacks against the log.

Only one batch or rollback runs per project at a time; the engine keeps
a lock per project for that. Different projects proceed independently.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

from .analysis.entity_mapping import classify_path, lookup_entity_content, upsert_entity
from .applier import apply_batch
from .config import Config
from .diffing import diff_models
from .domain import (
    ApplyResult,
    DeleteRecord,
    DiffResult,
    OperationLogEntry,
    ParsedBatch,
    ProjectModel,
    RollbackMode,
    RollbackPreviewItem,
    RollbackResult,
    WriteRecord,
)
from .errors import GenOpsError, PersistenceError, ProjectNotFoundError
from .generator.interface import TextGenerator
from .op_parser import parse_batch
from .oplog import OperationLog
from .rollback import VALID_MODES, apply_rollback, preview_rollback
from .sandbox import validate_path
from .store import ProjectStore

LOG = logging.getLogger(__name__)


@dataclass
class BatchOutcome:
    batch: ParsedBatch
    result: ApplyResult
    entry: OperationLogEntry


@dataclass
class RollbackOutcome:
    result: RollbackResult
    entry: OperationLogEntry


class ProjectEngine:
    """
    Entry point tying parser, applier, log, diff and rollback together.
    """

    def __init__(self, store: ProjectStore, config: Optional[Config] = None) -> None:
        self.store = store
        self.config = config or Config()
        self.oplog = OperationLog(store, self.config)
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def project_root(self, project_id: str) -> Path:
        safe = validate_path(project_id)
        if safe is None or "/" in safe:
            raise GenOpsError(f"invalid project id {project_id!r}")
        return Path(self.config.projects_dir) / safe

    def create_project(self, project_id: str, name: str = "Session") -> ProjectModel:
        """
        Register a new project with an empty model and sandbox directory.
        """

        root = self.project_root(project_id)
        with self._project_lock(project_id):
            if self.store.has_project(project_id):
                raise GenOpsError(f"project {project_id!r} already exists")
            model = ProjectModel.empty(name)
            self.store.set_project_model(project_id, model)
            root.mkdir(parents=True, exist_ok=True)

        LOG.info("Created project %s at %s", project_id, root)
        return model

    def current_model(self, project_id: str) -> ProjectModel:
        return self.store.get_project_model(project_id)

    def run_batch(self, project_id: str, raw_text: str) -> BatchOutcome:
        """
        Parse raw markup and apply it to the project.

        Truncated markup raises UnclosedWriteError before anything is
        touched. Once the applier returns, its changes stand: failing to
        persist the model or the log entry is only logged.
        """

        batch = parse_batch(raw_text)
        root = self.project_root(project_id)
        LOG.debug("Parsed batch for %s: %d operations", project_id, batch.operation_count)

        with self._project_lock(project_id):
            pre_snapshot = self.oplog.begin(project_id)
            started = time.monotonic()
            result = apply_batch(batch, pre_snapshot, root, self.config)
            duration_ms = int((time.monotonic() - started) * 1000)

            self._save_model(project_id, result.updated_model)
            entry = self.oplog.commit(
                project_id,
                result,
                pre_snapshot,
                summary=batch.summary,
                duration_ms=duration_ms,
            )

        if result.skipped:
            LOG.warning(
                "Batch for %s skipped %d operation(s): %s",
                project_id,
                len(result.skipped),
                ", ".join(f"{s.kind} {s.path} ({s.reason})" for s in result.skipped),
            )
        return BatchOutcome(batch=batch, result=result, entry=entry)

    def generate_and_apply(
        self,
        project_id: str,
        prompt: str,
        generator: TextGenerator,
    ) -> BatchOutcome:
        raw = generator.generate(prompt)
        return self.run_batch(project_id, raw)

    def list_log(
        self,
        project_id: str,
        cursor: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[OperationLogEntry]:
        if not self.store.has_project(project_id):
            raise ProjectNotFoundError(f"unknown project {project_id!r}")
        return self.oplog.list_entries(project_id, cursor=cursor, limit=limit)

    def get_log_entry(self, project_id: str, entry_id: int) -> OperationLogEntry:
        return self.oplog.get_entry(project_id, entry_id)

    def diff_entry(
        self,
        project_id: str,
        entry_id: int,
        mode: RollbackMode = "post",
    ) -> DiffResult:
        """
        How the current model differs from an entry's snapshot.

        The snapshot is the baseline, so "added" means present now but
        not in the snapshot.
        """

        _check_mode(mode)
        entry = self.oplog.get_entry(project_id, entry_id)
        current = self.store.get_project_model(project_id)
        return self._diff(entry.snapshot(mode), current)

    def diff_entries(self, project_id: str, from_id: int, to_id: int) -> DiffResult:
        """
        Compare the post-batch snapshots of two entries.
        """

        baseline = self.oplog.get_entry(project_id, from_id).post_snapshot
        target = self.oplog.get_entry(project_id, to_id).post_snapshot
        return self._diff(baseline, target)

    def preview_rollback(
        self,
        project_id: str,
        entry_id: int,
        mode: RollbackMode = "post",
        files: Optional[Sequence[str]] = None,
    ) -> List[RollbackPreviewItem]:
        with self._project_lock(project_id):
            entry = self.oplog.get_entry(project_id, entry_id)
            return preview_rollback(
                entry,
                self.project_root(project_id),
                mode=mode,
                files=files,
                limit=self.config.rollback_file_limit,
            )

    def rollback(
        self,
        project_id: str,
        entry_id: int,
        mode: RollbackMode = "post",
        files: Optional[Sequence[str]] = None,
    ) -> RollbackOutcome:
        """
        Restore files from an entry's snapshot and record the rollback.

        The restored snapshot becomes the project's current model and a
        new log entry describes the rollback; history is never edited.
        Files that could not be written keep their current content in the
        model and are named in the entry's summary.
        """

        with self._project_lock(project_id):
            entry = self.oplog.get_entry(project_id, entry_id)
            pre_snapshot = self.oplog.begin(project_id)

            started = time.monotonic()
            result = apply_rollback(
                entry,
                self.project_root(project_id),
                mode=mode,
                files=files,
                limit=self.config.rollback_file_limit,
            )
            duration_ms = int((time.monotonic() - started) * 1000)

            # Files that could not be written still hold what they held.
            for path in result.failed:
                ref = classify_path(path)
                content = lookup_entity_content(pre_snapshot, path)
                if ref is not None and content is not None:
                    upsert_entity(result.restored_model, ref, content)

            summary = f"Rollback to entry {entry.id} ({mode})"
            if result.failed:
                summary += f"; not restored: {', '.join(result.failed)}"
                LOG.warning(
                    "Rollback of project %s left %d file(s) unrestored: %s",
                    project_id,
                    len(result.failed),
                    ", ".join(result.failed),
                )

            self._save_model(project_id, result.restored_model)
            as_applied = ApplyResult(
                writes=[
                    WriteRecord(path=p, bytes=_content_size(result.restored_model, p))
                    for p in result.writes
                ],
                renames=[],
                deletes=[DeleteRecord(path=p, ok=True) for p in result.removed],
                dependencies=[],
                updated_model=result.restored_model,
            )
            rollback_entry = self.oplog.commit(
                project_id,
                as_applied,
                pre_snapshot,
                summary=summary,
                duration_ms=duration_ms,
            )

        LOG.info(
            "Rolled back project %s to entry %d (%s): %d restored, %d removed",
            project_id,
            entry.id,
            mode,
            len(result.writes),
            len(result.removed),
        )
        return RollbackOutcome(result=result, entry=rollback_entry)

    def _diff(self, a: ProjectModel, b: ProjectModel) -> DiffResult:
        return diff_models(
            a,
            b,
            semantic=self.config.semantic_diff,
            detail_limit=self.config.diff_detail_limit,
        )

    def _save_model(self, project_id: str, model: ProjectModel) -> None:
        try:
            self.store.set_project_model(project_id, model)
        except PersistenceError as exc:
            LOG.warning("Failed to persist model for project %s: %s", project_id, exc)

    @contextmanager
    def _project_lock(self, project_id: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks.setdefault(project_id, threading.Lock())
        with lock:
            yield


def _check_mode(mode: str) -> None:
    if mode not in VALID_MODES:
        raise GenOpsError(f"invalid snapshot mode {mode!r}; expected 'pre' or 'post'")


def _content_size(model: ProjectModel, path: str) -> int:
    content = lookup_entity_content(model, path)
    return len(content.encode("utf-8")) if content is not None else 0
