"""
Mapping between sandbox paths and logical project entities.

Generated projects follow a simple folder convention: files under
``pages/`` are routed pages, files under ``components/`` are components
named after the file, and files under ``api/`` are API route handlers.
The applier uses this mapping to keep the ProjectModel in step with
writes, and the rollback controller uses it in reverse to find the
snapshot content for a file.

The reverse direction is a naming heuristic rather than a bijection:
two files with the same base name in different component folders share
one component key, and component names are matched case-insensitively.
A file that was renamed and later deleted can therefore map to an entity
that no longer describes it.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional

from ..domain import ApiRoute, Component, EntityKind, Page, ProjectModel

PAGES_ROOT = "pages/"
COMPONENTS_ROOT = "components/"
API_ROOT = "api/"

SOURCE_EXTENSIONS = (".tsx", ".ts", ".jsx", ".js")


@dataclass(frozen=True)
class EntityRef:
    kind: EntityKind
    key: str


def classify_path(safe_path: str) -> Optional[EntityRef]:
    """
    Return the logical entity a validated path belongs to, if any.
    """

    if safe_path.startswith(PAGES_ROOT):
        rest = strip_source_extension(safe_path[len(PAGES_ROOT) :])
        if not rest:
            return None
        return EntityRef(kind="page", key=page_route(rest))

    if safe_path.startswith(COMPONENTS_ROOT):
        name = strip_source_extension(PurePosixPath(safe_path).name)
        if not name:
            return None
        return EntityRef(kind="component", key=name)

    if safe_path.startswith(API_ROOT):
        rest = strip_source_extension(safe_path[len(API_ROOT) :])
        if not rest:
            return None
        return EntityRef(kind="api", key=f"/api/{rest}")

    return None


def page_route(rel: str) -> str:
    """
    Derive a route from a page path relative to the pages root.

    "index" -> "/", "blog/index" -> "/blog", "blog/post" -> "/blog/post".
    """

    segments = rel.split("/")
    if segments and segments[-1] == "index":
        segments = segments[:-1]
    return "/" + "/".join(segments)


def strip_source_extension(name: str) -> str:
    for ext in SOURCE_EXTENSIONS:
        if name.endswith(ext):
            return name[: -len(ext)]
    return name


def upsert_entity(model: ProjectModel, ref: EntityRef, content: str) -> None:
    """
    Replace the content of the entity for ref, appending it if new.
    """

    if ref.kind == "page":
        page = model.find_page(ref.key)
        if page is not None:
            page.content = content
        else:
            title = "Home" if ref.key == "/" else ref.key[1:]
            model.pages.append(Page(route=ref.key, content=content, title=title))
    elif ref.kind == "component":
        component = model.find_component(ref.key)
        if component is not None:
            component.content = content
        else:
            model.components.append(Component(name=ref.key, content=content))
    else:
        api_route = model.find_api_route(ref.key)
        if api_route is not None:
            api_route.content = content
        else:
            model.api_routes.append(ApiRoute(route=ref.key, content=content, method="GET"))


def lookup_entity_content(model: ProjectModel, safe_path: str) -> Optional[str]:
    """
    Reverse-map a path to the content recorded for it in model.

    Returns None when the path does not classify or the model has no
    matching entity, which callers treat as "nothing to restore".
    """

    ref = classify_path(safe_path)
    if ref is None:
        return None

    if ref.kind == "page":
        page = model.find_page(ref.key)
        return page.content if page is not None else None

    if ref.kind == "component":
        wanted = ref.key.lower()
        for component in model.components:
            if component.name.lower() == wanted:
                return component.content
        return None

    api_route = model.find_api_route(ref.key)
    return api_route.content if api_route is not None else None
