"""
Structural diffing of project models.

The diff compares two ProjectModel snapshots collection by collection
(pages, components, API routes) using keys and stable content hashes.
It is read-only and directional: ``diff_models(a, b)`` describes how to
get from a (the baseline) to b.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence, Tuple

from .analysis.canonical import FORMATTING_ONLY, formatting_only
from .analysis.hashing import stable_hash
from .domain import DiffDetail, DiffResult, EntityKind, ProjectModel

LOG = logging.getLogger(__name__)

DEFAULT_DETAIL_LIMIT = 120

# Pages, components and API routes are .tsx/.ts/.jsx/.js sources.
ENTITY_DIALECT = "ecmascript"


def diff_models(
    a: ProjectModel,
    b: ProjectModel,
    semantic: bool = True,
    detail_limit: int = DEFAULT_DETAIL_LIMIT,
) -> DiffResult:
    """
    Compare two project models.

    Keys present only in b are "added", keys present only in a are
    "removed", and keys whose stable hashes differ are "changed". When
    semantic is enabled, changed entries whose sources canonicalise to
    the same form are annotated as formatting-only.

    The counts always cover every difference; details is capped at
    detail_limit entries and truncated is set when that cap was hit.
    """

    details: List[DiffDetail] = []
    details.extend(_diff_collection("page", _pages(a), _pages(b), semantic))
    details.extend(_diff_collection("component", _components(a), _components(b), semantic))
    details.extend(_diff_collection("api", _api_routes(a), _api_routes(b), semantic))

    result = DiffResult(
        added=sum(1 for d in details if d.type == "added"),
        removed=sum(1 for d in details if d.type == "removed"),
        changed=sum(1 for d in details if d.type == "changed"),
    )

    limit = max(0, detail_limit)
    result.details = details[:limit]
    result.truncated = len(details) > limit

    LOG.debug(
        "Diff: %d added, %d removed, %d changed (truncated=%s)",
        result.added,
        result.removed,
        result.changed,
        result.truncated,
    )
    return result


def _diff_collection(
    kind: EntityKind,
    entries_a: Sequence[Tuple[str, str]],
    entries_b: Sequence[Tuple[str, str]],
    semantic: bool,
) -> List[DiffDetail]:
    map_a = _index(entries_a)
    map_b = _index(entries_b)

    # Union of keys in first-seen order: baseline keys, then new ones.
    keys = list(map_a)
    keys.extend(k for k in map_b if k not in map_a)

    details: List[DiffDetail] = []
    for key in keys:
        if key not in map_a:
            details.append(
                DiffDetail(type="added", kind=kind, key=key, to_hash=stable_hash(map_b[key]))
            )
            continue

        if key not in map_b:
            details.append(
                DiffDetail(type="removed", kind=kind, key=key, from_hash=stable_hash(map_a[key]))
            )
            continue

        from_hash = stable_hash(map_a[key])
        to_hash = stable_hash(map_b[key])
        if from_hash == to_hash:
            continue

        note = None
        if semantic and formatting_only(map_a[key], map_b[key], dialect=ENTITY_DIALECT):
            note = FORMATTING_ONLY

        details.append(
            DiffDetail(
                type="changed",
                kind=kind,
                key=key,
                from_hash=from_hash,
                to_hash=to_hash,
                semantic_note=note,
            )
        )

    return details


def _index(entries: Sequence[Tuple[str, str]]) -> Dict[str, str]:
    index: Dict[str, str] = {}
    for key, content in entries:
        if key and key not in index:
            index[key] = content
    return index


def _pages(model: ProjectModel) -> List[Tuple[str, str]]:
    return [(p.route, p.content) for p in model.pages]


def _components(model: ProjectModel) -> List[Tuple[str, str]]:
    return [(c.name, c.content) for c in model.components]


def _api_routes(model: ProjectModel) -> List[Tuple[str, str]]:
    return [(r.route, r.content) for r in model.api_routes]
