"""
Core domain models for genops.

These dataclasses describe parsed operation batches, the logical
project model, apply results, operation log entries, diffs and rollback
results. They intentionally avoid any filesystem or storage dependencies
so they can be reused by every part of the system.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Literal, Optional, Tuple

EntityKind = Literal["page", "component", "api"]
DiffType = Literal["added", "removed", "changed"]
RollbackMode = Literal["pre", "post"]


@dataclass(frozen=True)
class WriteOp:
    """
    Full replacement of a single file's content.
    """

    path: str
    content: str
    description: Optional[str] = None


@dataclass(frozen=True)
class RenameOp:
    from_path: str
    to_path: str


@dataclass(frozen=True)
class DeleteOp:
    path: str


@dataclass(frozen=True)
class ParsedBatch:
    """
    One parsed set of operations derived from a single markup submission.

    Paths are stored exactly as they appeared in the markup; sandbox
    validation happens when the batch is applied.
    """

    writes: Tuple[WriteOp, ...] = ()
    renames: Tuple[RenameOp, ...] = ()
    deletes: Tuple[DeleteOp, ...] = ()
    dependencies: Tuple[str, ...] = ()
    summary: Optional[str] = None
    raw: str = field(default="", compare=False, repr=False)

    @property
    def operation_count(self) -> int:
        return (
            len(self.writes)
            + len(self.renames)
            + len(self.deletes)
            + len(self.dependencies)
        )


@dataclass
class Page:
    route: str
    content: str
    title: Optional[str] = None


@dataclass
class Component:
    name: str
    content: str


@dataclass
class ApiRoute:
    route: str
    content: str
    method: str = "GET"


@dataclass
class DataModel:
    name: str
    definition: str


@dataclass
class ProjectModel:
    """
    The logical source of truth for a generated project's contents.

    Pages and API routes are keyed by route, components and data models
    by name. Keys are unique within a collection; list order is
    insertion order and carries no meaning.
    """

    name: str
    pages: List[Page] = field(default_factory=list)
    components: List[Component] = field(default_factory=list)
    api_routes: List[ApiRoute] = field(default_factory=list)
    models: List[DataModel] = field(default_factory=list)

    @classmethod
    def empty(cls, name: str = "Session") -> "ProjectModel":
        return cls(name=name)

    def copy(self) -> "ProjectModel":
        return copy.deepcopy(self)

    def find_page(self, route: str) -> Optional[Page]:
        return next((p for p in self.pages if p.route == route), None)

    def find_component(self, name: str) -> Optional[Component]:
        return next((c for c in self.components if c.name == name), None)

    def find_api_route(self, route: str) -> Optional[ApiRoute]:
        return next((r for r in self.api_routes if r.route == route), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "pages": [
                {"route": p.route, "title": p.title, "content": p.content}
                for p in self.pages
            ],
            "components": [
                {"name": c.name, "content": c.content} for c in self.components
            ],
            "apiRoutes": [
                {"route": r.route, "method": r.method, "content": r.content}
                for r in self.api_routes
            ],
            "models": [
                {"name": m.name, "definition": m.definition} for m in self.models
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectModel":
        """
        Build a model from its serialized form.

        Entries without a key are dropped; later duplicates of a key are
        ignored so the uniqueness invariant holds even for hand-edited
        data.
        """

        model = cls(name=str(data.get("name") or "Session"))

        for item in data.get("pages") or []:
            route = item.get("route")
            if route and model.find_page(route) is None:
                model.pages.append(
                    Page(route=route, content=item.get("content") or "", title=item.get("title"))
                )

        for item in data.get("components") or []:
            name = item.get("name")
            if name and model.find_component(name) is None:
                model.components.append(Component(name=name, content=item.get("content") or ""))

        for item in data.get("apiRoutes") or []:
            route = item.get("route")
            if route and model.find_api_route(route) is None:
                model.api_routes.append(
                    ApiRoute(
                        route=route,
                        content=item.get("content") or "",
                        method=item.get("method") or "GET",
                    )
                )

        seen_models = set()
        for item in data.get("models") or []:
            name = item.get("name")
            if name and name not in seen_models:
                seen_models.add(name)
                model.models.append(DataModel(name=name, definition=item.get("definition") or ""))

        return model


@dataclass(frozen=True)
class WriteRecord:
    path: str
    bytes: int


@dataclass(frozen=True)
class RenameRecord:
    from_path: str
    to_path: str
    ok: bool = True


@dataclass(frozen=True)
class DeleteRecord:
    path: str
    ok: bool


@dataclass(frozen=True)
class SkippedOperation:
    """
    An operation the applier refused before touching disk.

    kind is the markup tag kind ("write", "rename", "delete") and reason
    is a short machine-readable code such as "invalid-path".
    """

    kind: str
    path: str
    reason: str


@dataclass
class ApplyResult:
    """
    Outcome of applying one ParsedBatch to a project directory.
    """

    writes: List[WriteRecord]
    renames: List[RenameRecord]
    deletes: List[DeleteRecord]
    dependencies: List[str]
    updated_model: ProjectModel
    skipped: List[SkippedOperation] = field(default_factory=list)

    @property
    def applied_renames(self) -> List[RenameRecord]:
        return [r for r in self.renames if r.ok]


@dataclass(frozen=True)
class OperationLogEntry:
    """
    Immutable record of one applied batch.

    pre_snapshot and post_snapshot are full copies of the project model
    taken immediately before and after the batch.
    """

    id: int
    project_id: str
    writes: Tuple[WriteRecord, ...]
    renames: Tuple[RenameRecord, ...]
    deletes: Tuple[DeleteRecord, ...]
    dependencies: Tuple[str, ...]
    summary: Optional[str]
    pre_snapshot: ProjectModel
    post_snapshot: ProjectModel
    files_touched: int
    bytes_written: int
    duration_ms: int
    created_at: str

    def snapshot(self, mode: RollbackMode) -> ProjectModel:
        return self.pre_snapshot if mode == "pre" else self.post_snapshot

    def copy(self) -> "OperationLogEntry":
        """
        Same entry with its own copies of the (mutable) snapshots.
        """

        return replace(
            self,
            pre_snapshot=self.pre_snapshot.copy(),
            post_snapshot=self.post_snapshot.copy(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "writes": [{"path": w.path, "bytes": w.bytes} for w in self.writes],
            "renames": [
                {"from": r.from_path, "to": r.to_path, "ok": r.ok} for r in self.renames
            ],
            "deletes": [{"path": d.path, "ok": d.ok} for d in self.deletes],
            "dependencies": list(self.dependencies),
            "summary": self.summary,
            "preSnapshot": self.pre_snapshot.to_dict(),
            "postSnapshot": self.post_snapshot.to_dict(),
            "filesTouched": self.files_touched,
            "bytesWritten": self.bytes_written,
            "durationMs": self.duration_ms,
            "createdAt": self.created_at,
        }

    def to_summary_dict(self) -> Dict[str, Any]:
        """
        Serialized form without the snapshots, for listings.
        """

        data = self.to_dict()
        del data["preSnapshot"]
        del data["postSnapshot"]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OperationLogEntry":
        return cls(
            id=int(data["id"]),
            project_id=str(data["projectId"]),
            writes=tuple(
                WriteRecord(path=w["path"], bytes=int(w["bytes"])) for w in data.get("writes", [])
            ),
            renames=tuple(
                RenameRecord(from_path=r["from"], to_path=r["to"], ok=bool(r.get("ok", True)))
                for r in data.get("renames", [])
            ),
            deletes=tuple(
                DeleteRecord(path=d["path"], ok=bool(d["ok"])) for d in data.get("deletes", [])
            ),
            dependencies=tuple(data.get("dependencies", [])),
            summary=data.get("summary"),
            pre_snapshot=ProjectModel.from_dict(data["preSnapshot"]),
            post_snapshot=ProjectModel.from_dict(data["postSnapshot"]),
            files_touched=int(data.get("filesTouched", 0)),
            bytes_written=int(data.get("bytesWritten", 0)),
            duration_ms=int(data.get("durationMs", 0)),
            created_at=str(data.get("createdAt", "")),
        )


@dataclass(frozen=True)
class DiffDetail:
    type: DiffType
    kind: EntityKind
    key: str
    from_hash: Optional[str] = None
    to_hash: Optional[str] = None
    semantic_note: Optional[str] = None


@dataclass
class DiffResult:
    """
    Structural difference between two project models.

    The counts always reflect the full tally even when details has been
    capped for display; truncated tells the caller that happened.
    """

    added: int = 0
    removed: int = 0
    changed: int = 0
    details: List[DiffDetail] = field(default_factory=list)
    truncated: bool = False

    @property
    def total(self) -> int:
        return self.added + self.removed + self.changed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "added": self.added,
            "removed": self.removed,
            "changed": self.changed,
            "truncated": self.truncated,
            "details": [
                {
                    "type": d.type,
                    "kind": d.kind,
                    "key": d.key,
                    "fromHash": d.from_hash,
                    "toHash": d.to_hash,
                    "semanticNote": d.semantic_note,
                }
                for d in self.details
            ],
        }


@dataclass(frozen=True)
class RollbackPreviewItem:
    file: str
    before_hash: Optional[str]
    after_hash: str
    changed: bool


@dataclass
class RollbackResult:
    writes: List[str]
    removed: List[str]
    restored_model: ProjectModel
    mode: RollbackMode
    failed: List[str] = field(default_factory=list)
