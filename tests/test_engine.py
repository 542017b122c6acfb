import logging
import threading

from genops.config import Config
from genops.engine import ProjectEngine
from genops.errors import GenOpsError, PersistenceError, UnclosedWriteError
from genops.generator.replay import ReplayGenerator
from genops.store import InMemoryProjectStore


def _engine(tmp_path, **config):
    store = InMemoryProjectStore()
    engine = ProjectEngine(store, Config(projects_dir=str(tmp_path / "generated"), **config))
    engine.create_project("p1")
    return engine


def test_create_project_twice_fails(tmp_path):
    engine = _engine(tmp_path)
    assert engine.project_root("p1").is_dir()
    try:
        engine.create_project("p1")
    except GenOpsError:
        pass
    else:
        raise AssertionError("expected GenOpsError to be raised")


def test_project_root_rejects_nested_or_unsafe_ids(tmp_path):
    engine = _engine(tmp_path)
    for bad in ("../p", "a/b", ""):
        try:
            engine.project_root(bad)
        except GenOpsError:
            continue
        raise AssertionError(f"expected GenOpsError for {bad!r}")


def test_run_batch_updates_model_and_logs_entry(tmp_path):
    engine = _engine(tmp_path)
    raw = (
        "<op-summary>Add home</op-summary>\n"
        '<op-write path="pages/index.tsx">home</op-write>\n'
        '<op-add-dependency packages="zod" />'
    )

    outcome = engine.run_batch("p1", raw)

    model = engine.current_model("p1")
    assert model == outcome.entry.post_snapshot
    assert model.find_page("/").content == "home"
    assert outcome.entry.pre_snapshot.pages == []
    assert outcome.entry.summary == "Add home"
    assert outcome.entry.dependencies == ("zod",)
    assert outcome.entry.files_touched == 1
    assert [e.id for e in engine.list_log("p1")] == [1]
    assert engine.get_log_entry("p1", 1) == outcome.entry


def test_unclosed_write_applies_nothing(tmp_path):
    engine = _engine(tmp_path)
    raw = (
        '<op-write path="pages/a.tsx">A</op-write>\n'
        '<op-write path="pages/b.tsx">B'
    )
    try:
        engine.run_batch("p1", raw)
    except UnclosedWriteError as exc:
        assert exc.opens == 2
        assert exc.closes == 1
    else:
        raise AssertionError("expected UnclosedWriteError to be raised")

    assert not (engine.project_root("p1") / "pages" / "a.tsx").exists()
    assert engine.current_model("p1").pages == []
    assert engine.list_log("p1") == []


def test_generate_and_apply_uses_generator_output(tmp_path):
    engine = _engine(tmp_path)
    generator = ReplayGenerator(['<op-write path="components/Nav.tsx">nav</op-write>'])

    outcome = engine.generate_and_apply("p1", "add a nav bar", generator)

    assert generator.prompts == ["add a nav bar"]
    assert outcome.result.updated_model.find_component("Nav").content == "nav"
    try:
        engine.generate_and_apply("p1", "again", generator)
    except GenOpsError:
        pass
    else:
        raise AssertionError("expected GenOpsError to be raised")


def test_rollback_restores_model_and_records_new_entry(tmp_path):
    engine = _engine(tmp_path)
    root = engine.project_root("p1")
    engine.run_batch("p1", '<op-write path="pages/index.tsx">v1</op-write>')
    second = engine.run_batch("p1", '<op-write path="pages/index.tsx">v2</op-write>')

    preview = engine.preview_rollback("p1", second.entry.id, mode="pre")
    assert [item.changed for item in preview] == [True]
    assert (root / "pages" / "index.tsx").read_text() == "v2"

    outcome = engine.rollback("p1", second.entry.id, mode="pre")

    assert (root / "pages" / "index.tsx").read_text() == "v1"
    assert engine.current_model("p1").find_page("/").content == "v1"
    assert outcome.entry.id == 3
    assert outcome.entry.summary == "Rollback to entry 2 (pre)"
    assert outcome.entry.writes[0].path == "pages/index.tsx"
    assert outcome.entry.writes[0].bytes == 2
    # History is appended to, never rewritten.
    assert engine.get_log_entry("p1", 2) == second.entry
    assert [e.id for e in engine.list_log("p1")] == [3, 2, 1]


def test_model_persistence_failure_is_only_a_warning(tmp_path, monkeypatch, caplog):
    engine = _engine(tmp_path)

    def failing_set(project_id, model):
        raise PersistenceError("disk full")

    monkeypatch.setattr(engine.store, "set_project_model", failing_set)

    with caplog.at_level(logging.WARNING, logger="genops.engine"):
        outcome = engine.run_batch("p1", '<op-write path="pages/index.tsx">home</op-write>')

    assert (engine.project_root("p1") / "pages" / "index.tsx").read_text() == "home"
    assert outcome.entry.id == 1
    assert "disk full" in caplog.text


def test_diff_entry_compares_snapshot_with_current_model(tmp_path):
    engine = _engine(tmp_path)
    first = engine.run_batch("p1", '<op-write path="pages/index.tsx">home</op-write>')
    engine.run_batch(
        "p1",
        '<op-write path="pages/index.tsx">home v2</op-write>\n'
        '<op-write path="components/Nav.tsx">nav</op-write>',
    )

    result = engine.diff_entry("p1", first.entry.id, mode="post")
    assert (result.added, result.removed, result.changed) == (1, 0, 1)

    against_pre = engine.diff_entry("p1", first.entry.id, mode="pre")
    assert (against_pre.added, against_pre.removed, against_pre.changed) == (2, 0, 0)

    between = engine.diff_entries("p1", 1, 2)
    assert between.total == 2

    try:
        engine.diff_entry("p1", first.entry.id, mode="middle")
    except GenOpsError:
        pass
    else:
        raise AssertionError("expected GenOpsError to be raised")


def test_batches_on_one_project_are_serialised(tmp_path):
    engine = _engine(tmp_path)
    errors = []

    def worker(i):
        try:
            engine.run_batch("p1", f'<op-write path="components/C{i}.tsx">c{i}</op-write>')
        except Exception as exc:  # pragma: no cover - surfaced by the assert below
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    ids = sorted(e.id for e in engine.list_log("p1"))
    assert ids == list(range(1, 9))
    assert len(engine.current_model("p1").components) == 8


def test_rollback_with_unwritable_file_is_still_logged(tmp_path):
    engine = _engine(tmp_path)
    root = engine.project_root("p1")
    engine.run_batch(
        "p1",
        '<op-write path="components/Nav.tsx">nav v1</op-write>\n'
        '<op-write path="pages/about.tsx">about v1</op-write>',
    )
    engine.run_batch(
        "p1",
        '<op-write path="components/Nav.tsx">nav v2</op-write>\n'
        '<op-write path="pages/about.tsx">about v2</op-write>',
    )
    (root / "pages" / "about.tsx").unlink()
    (root / "pages" / "about.tsx").mkdir()

    outcome = engine.rollback("p1", 1, mode="post")

    assert outcome.result.failed == ["pages/about.tsx"]
    assert [w.path for w in outcome.entry.writes] == ["components/Nav.tsx"]
    assert "not restored: pages/about.tsx" in outcome.entry.summary
    assert [e.id for e in engine.list_log("p1")] == [3, 2, 1]

    model = engine.current_model("p1")
    assert model.find_component("Nav").content == "nav v1"
    # The page could not be restored, so the model keeps its current content.
    assert model.find_page("/about").content == "about v2"
    assert model == outcome.entry.post_snapshot


def test_returned_log_entries_do_not_alias_history(tmp_path):
    engine = _engine(tmp_path)
    outcome = engine.run_batch("p1", '<op-write path="pages/index.tsx">home</op-write>')

    outcome.entry.post_snapshot.pages[0].content = "edited"
    engine.get_log_entry("p1", 1).post_snapshot.pages[0].content = "edited"

    assert engine.get_log_entry("p1", 1).post_snapshot.find_page("/").content == "home"
