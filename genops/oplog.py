"""
Operation log for genops.

Every applied batch is recorded as an OperationLogEntry carrying the
project model before and after the batch plus a few metrics. The log is
an audit and rollback aid layered on top of the applier, not a partner
in a transaction: once the applier has returned, the filesystem change
stands even if the entry cannot be persisted.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .config import Config
from .domain import ApplyResult, OperationLogEntry, ProjectModel
from .errors import PersistenceError
from .store import ProjectStore, require_entry

LOG = logging.getLogger(__name__)


class OperationLog:
    """
    Append-only, per-project log of applied batches.
    """

    def __init__(self, store: ProjectStore, config: Optional[Config] = None) -> None:
        self.store = store
        self.config = config or Config()
        self._lock = threading.Lock()
        self._last_ids: Dict[str, int] = {}

    def begin(self, project_id: str) -> ProjectModel:
        """
        Capture the pre-batch snapshot: a deep copy of the current model.
        """

        return self.store.get_project_model(project_id).copy()

    def commit(
        self,
        project_id: str,
        apply_result: ApplyResult,
        pre_snapshot: ProjectModel,
        summary: Optional[str] = None,
        duration_ms: int = 0,
    ) -> OperationLogEntry:
        """
        Record an applied batch and return the new entry.

        A persistence failure is logged as a warning; the entry is still
        returned so the caller can report the mutation that happened.
        """

        successful_write_paths = {w.path for w in apply_result.writes}
        files_touched = (
            len(successful_write_paths)
            + len(apply_result.applied_renames)
            + sum(1 for d in apply_result.deletes if d.ok)
        )
        bytes_written = sum(w.bytes for w in apply_result.writes)

        entry = OperationLogEntry(
            id=self._next_id(project_id),
            project_id=project_id,
            writes=tuple(apply_result.writes),
            renames=tuple(apply_result.renames),
            deletes=tuple(apply_result.deletes),
            dependencies=tuple(apply_result.dependencies),
            summary=summary,
            pre_snapshot=pre_snapshot.copy(),
            post_snapshot=apply_result.updated_model.copy(),
            files_touched=files_touched,
            bytes_written=bytes_written,
            duration_ms=max(0, int(duration_ms)),
            created_at=datetime.now(timezone.utc).isoformat(),
        )

        try:
            self.store.append_log_entry(entry)
        except PersistenceError as exc:
            LOG.warning(
                "Failed to persist log entry %d for project %s; the applied changes stand: %s",
                entry.id,
                project_id,
                exc,
            )
        else:
            LOG.info(
                "Logged entry %d for project %s (%d files, %d bytes)",
                entry.id,
                project_id,
                files_touched,
                bytes_written,
            )

        return entry

    def list_entries(
        self,
        project_id: str,
        cursor: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[OperationLogEntry]:
        """
        Most recent entries first, at most config.log_page_limit per page.
        """

        cap = self.config.log_page_limit
        page_size = cap if limit is None else max(0, min(limit, cap))
        return self.store.list_log_entries(project_id, cursor=cursor, limit=page_size)

    def get_entry(self, project_id: str, entry_id: int) -> OperationLogEntry:
        return require_entry(self.store, project_id, entry_id)

    def _next_id(self, project_id: str) -> int:
        with self._lock:
            last = self._last_ids.get(project_id)
            if last is None:
                last = self._latest_stored_id(project_id)
            next_id = last + 1
            self._last_ids[project_id] = next_id
            return next_id

    def _latest_stored_id(self, project_id: str) -> int:
        try:
            latest = self.store.list_log_entries(project_id, limit=1)
        except PersistenceError as exc:
            LOG.warning("Cannot read log head for project %s: %s", project_id, exc)
            return 0
        return latest[0].id if latest else 0
