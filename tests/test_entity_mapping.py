from genops.analysis.entity_mapping import (
    EntityRef,
    classify_path,
    lookup_entity_content,
    upsert_entity,
)
from genops.domain import Component, ProjectModel


def test_page_routes_collapse_index():
    assert classify_path("pages/index.tsx") == EntityRef(kind="page", key="/")
    assert classify_path("pages/about.tsx") == EntityRef(kind="page", key="/about")
    assert classify_path("pages/blog/index.jsx") == EntityRef(kind="page", key="/blog")
    assert classify_path("pages/blog/post.js") == EntityRef(kind="page", key="/blog/post")


def test_components_keyed_by_base_name():
    assert classify_path("components/Nav.tsx") == EntityRef(kind="component", key="Nav")
    assert classify_path("components/ui/Button.tsx") == EntityRef(kind="component", key="Button")


def test_api_routes_keep_remaining_path():
    assert classify_path("api/users.ts") == EntityRef(kind="api", key="/api/users")
    assert classify_path("api/users/[id].ts") == EntityRef(kind="api", key="/api/users/[id]")


def test_other_paths_do_not_classify():
    assert classify_path("lib/util.ts") is None
    assert classify_path("package.json") is None
    assert classify_path("pagesfoo/x.tsx") is None


def test_upsert_replaces_existing_entity():
    model = ProjectModel.empty()
    upsert_entity(model, EntityRef(kind="page", key="/"), "v1")
    upsert_entity(model, EntityRef(kind="page", key="/"), "v2")
    upsert_entity(model, EntityRef(kind="api", key="/api/ping"), "pong")

    assert len(model.pages) == 1
    assert model.pages[0].content == "v2"
    assert model.pages[0].title == "Home"
    assert model.api_routes[0].method == "GET"


def test_lookup_matches_component_names_case_insensitively():
    model = ProjectModel(name="p", components=[Component(name="NavBar", content="nav")])
    assert lookup_entity_content(model, "components/navbar.tsx") == "nav"
    assert lookup_entity_content(model, "components/Footer.tsx") is None


def test_component_key_ignores_folder():
    # Two files with the same base name share one logical component; the
    # reverse mapping cannot tell them apart.
    model = ProjectModel(name="p", components=[Component(name="Button", content="shared")])
    assert lookup_entity_content(model, "components/a/Button.tsx") == "shared"
    assert lookup_entity_content(model, "components/b/Button.tsx") == "shared"
