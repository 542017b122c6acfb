"""
Project persistence for genops.

The engine talks to storage only through the ProjectStore interface, so
the same code runs against the in-memory store used in tests and the
JSON directory store used by the CLI. The operation log is append-only:
stores never update or delete an entry once it has been appended.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .domain import OperationLogEntry, ProjectModel
from .errors import LogEntryNotFoundError, PersistenceError, ProjectNotFoundError

LOG = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50

_PROJECT_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


class ProjectStore(ABC):
    """
    Abstract persistence interface for project models and log entries.
    """

    @abstractmethod
    def has_project(self, project_id: str) -> bool:
        """Return True if a model has been stored for project_id."""

    @abstractmethod
    def get_project_model(self, project_id: str) -> ProjectModel:
        """
        Return the current model; raise ProjectNotFoundError if unknown.
        """

    @abstractmethod
    def set_project_model(self, project_id: str, model: ProjectModel) -> None:
        """Store model as the project's current state."""

    @abstractmethod
    def append_log_entry(self, entry: OperationLogEntry) -> None:
        """
        Append entry to its project's log.

        Appending an id that already exists is an error; entries are
        never replaced.
        """

    @abstractmethod
    def list_log_entries(
        self,
        project_id: str,
        cursor: Optional[int] = None,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> List[OperationLogEntry]:
        """
        Return entries most recent first.

        cursor, when given, is an exclusive upper bound on entry ids so
        callers can page backwards through history.
        """

    @abstractmethod
    def get_log_entry(self, project_id: str, entry_id: int) -> Optional[OperationLogEntry]:
        """Return a single entry, or None if it does not exist."""


class InMemoryProjectStore(ProjectStore):
    """
    Dict-backed store; models and log entry snapshots are copied in and
    out so callers can never alias stored state.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._models: Dict[str, ProjectModel] = {}
        self._logs: Dict[str, List[OperationLogEntry]] = {}

    def has_project(self, project_id: str) -> bool:
        with self._lock:
            return project_id in self._models

    def get_project_model(self, project_id: str) -> ProjectModel:
        with self._lock:
            model = self._models.get(project_id)
            if model is None:
                raise ProjectNotFoundError(f"unknown project {project_id!r}")
            return model.copy()

    def set_project_model(self, project_id: str, model: ProjectModel) -> None:
        with self._lock:
            self._models[project_id] = model.copy()

    def append_log_entry(self, entry: OperationLogEntry) -> None:
        with self._lock:
            entries = self._logs.setdefault(entry.project_id, [])
            if any(e.id == entry.id for e in entries):
                raise PersistenceError(
                    f"log entry {entry.id} already exists for project {entry.project_id!r}"
                )
            entries.append(entry.copy())

    def list_log_entries(
        self,
        project_id: str,
        cursor: Optional[int] = None,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> List[OperationLogEntry]:
        with self._lock:
            entries = list(self._logs.get(project_id, []))
        entries.sort(key=lambda e: e.id, reverse=True)
        if cursor is not None:
            entries = [e for e in entries if e.id < cursor]
        return [e.copy() for e in entries[: max(0, limit)]]

    def get_log_entry(self, project_id: str, entry_id: int) -> Optional[OperationLogEntry]:
        with self._lock:
            for entry in self._logs.get(project_id, []):
                if entry.id == entry_id:
                    return entry.copy()
        return None


class JsonProjectStore(ProjectStore):
    """
    Store that keeps one directory per project under base_dir:

        <base_dir>/<project_id>/project.json
        <base_dir>/<project_id>/log/<entry id, zero padded>.json

    Files are written to a temporary sibling first and moved into place
    with os.replace, so a crash never leaves a half-written file behind.
    """

    LOG_ID_WIDTH = 8

    def __init__(self, base_dir: Union[str, Path]) -> None:
        self.base_dir = Path(base_dir)

    def has_project(self, project_id: str) -> bool:
        return self._model_path(project_id).is_file()

    def get_project_model(self, project_id: str) -> ProjectModel:
        path = self._model_path(project_id)
        if not path.is_file():
            raise ProjectNotFoundError(f"unknown project {project_id!r}")
        return ProjectModel.from_dict(self._read_json(path))

    def set_project_model(self, project_id: str, model: ProjectModel) -> None:
        self._write_json(self._model_path(project_id), model.to_dict())

    def append_log_entry(self, entry: OperationLogEntry) -> None:
        path = self._entry_path(entry.project_id, entry.id)
        if path.exists():
            raise PersistenceError(
                f"log entry {entry.id} already exists for project {entry.project_id!r}"
            )
        self._write_json(path, entry.to_dict())

    def list_log_entries(
        self,
        project_id: str,
        cursor: Optional[int] = None,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> List[OperationLogEntry]:
        ids = self._entry_ids(project_id)
        if cursor is not None:
            ids = [i for i in ids if i < cursor]
        ids = sorted(ids, reverse=True)[: max(0, limit)]
        return [
            OperationLogEntry.from_dict(self._read_json(self._entry_path(project_id, i)))
            for i in ids
        ]

    def get_log_entry(self, project_id: str, entry_id: int) -> Optional[OperationLogEntry]:
        path = self._entry_path(project_id, entry_id)
        if not path.is_file():
            return None
        return OperationLogEntry.from_dict(self._read_json(path))

    def _project_dir(self, project_id: str) -> Path:
        if not _PROJECT_ID_RE.match(project_id) or ".." in project_id:
            raise PersistenceError(f"invalid project id {project_id!r}")
        return self.base_dir / project_id

    def _model_path(self, project_id: str) -> Path:
        return self._project_dir(project_id) / "project.json"

    def _entry_path(self, project_id: str, entry_id: int) -> Path:
        name = f"{int(entry_id):0{self.LOG_ID_WIDTH}d}.json"
        return self._project_dir(project_id) / "log" / name

    def _entry_ids(self, project_id: str) -> List[int]:
        log_dir = self._project_dir(project_id) / "log"
        if not log_dir.is_dir():
            return []
        ids: List[int] = []
        for child in log_dir.glob("*.json"):
            try:
                ids.append(int(child.stem))
            except ValueError:
                LOG.debug("Ignoring stray file in log directory: %s", child)
        return ids

    def _read_json(self, path: Path) -> Dict[str, Any]:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise PersistenceError(f"failed to read {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise PersistenceError(f"{path} does not contain a JSON object")
        return data

    def _write_json(self, path: Path, data: Dict[str, Any]) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(data, fh, indent=2)
                    fh.write("\n")
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as exc:
            raise PersistenceError(f"failed to write {path}: {exc}") from exc


def require_entry(
    store: ProjectStore,
    project_id: str,
    entry_id: int,
) -> OperationLogEntry:
    """
    Fetch an entry or raise LogEntryNotFoundError.
    """

    entry = store.get_log_entry(project_id, entry_id)
    if entry is None:
        raise LogEntryNotFoundError(f"no log entry {entry_id} for project {project_id!r}")
    return entry
