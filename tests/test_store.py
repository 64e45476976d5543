import json

import pytest

from issuesync.models import Issue
from issuesync.store import LocalStore


def _store(tmp_path):
    store = LocalStore(tmp_path)
    store.ensure_layout()
    return store


def test_layout(tmp_path):
    store = _store(tmp_path)
    assert store.open_dir == tmp_path / ".issues" / "open"
    assert store.closed_dir.is_dir()
    assert store.originals_dir == tmp_path / ".issues" / ".sync" / "originals"
    assert store.mapping_path.name == "mapping.json"
    assert store.exists()


def test_write_issue_places_file_by_state_and_moves_on_close(tmp_path):
    store = _store(tmp_path)
    written = store.write_issue(None, Issue(number="4", title="Crash on save"))
    assert written.path == store.open_dir / "4-crash-on-save.md"

    closed = store.write_issue(written, written.issue.copy(state="closed", state_reason="completed"))
    assert closed.path == store.closed_dir / "4-crash-on-save.md"
    assert not written.path.exists()


def test_load_issues_collects_parse_errors(tmp_path):
    store = _store(tmp_path)
    store.write_issue(None, Issue(number="1", title="Good"))
    (store.open_dir / "2-bad.md").write_text("no front matter\n", encoding="utf-8")

    files, errors = store.load_issues()

    assert [f.number for f in files] == ["1"]
    assert len(errors) == 1
    assert errors[0].path.endswith("2-bad.md")


def test_select_by_number_hash_and_path(tmp_path):
    store = _store(tmp_path)
    one = store.write_issue(None, Issue(number="1", title="One"))
    store.write_issue(None, Issue(number="2", title="Two"))
    store.write_issue(None, Issue(number="3", title="Three"))
    files, _ = store.load_issues()

    selected, unmatched = store.select(files, ["#2", str(one.path), "99"])

    assert [f.number for f in selected] == ["1", "2"]
    assert unmatched == ["99"]
    everything, _ = store.select(files, [])
    assert len(everything) == 3


def test_write_issues_is_all_or_nothing(tmp_path, monkeypatch):
    store = _store(tmp_path)
    a = store.write_issue(None, Issue(number="1", title="A", body="see #T1\n"))
    b = store.write_issue(None, Issue(number="2", title="B", body="see #T1\n"))

    import issuesync.store as store_module

    real_render = store_module.render
    calls = {"n": 0}

    def flaky_render(issue):
        calls["n"] += 1
        if calls["n"] == 2:
            raise OSError("disk full")
        return real_render(issue)

    monkeypatch.setattr(store_module, "render", flaky_render)
    with pytest.raises(OSError):
        store.write_issues(
            [(a, a.issue.copy(body="see #42\n")), (b, b.issue.copy(body="see #42\n"))]
        )

    assert "#T1" in a.path.read_text(encoding="utf-8")
    assert "#T1" in b.path.read_text(encoding="utf-8")
    assert not list(store.open_dir.glob(".*staged"))


def test_write_issues_renames_materialized_file(tmp_path):
    store = _store(tmp_path)
    draft = store.write_issue(None, Issue(number="Tdeadbeef", title="New thing"))
    (written,) = store.write_issues([(draft, draft.issue.copy(number="42"))])
    assert written.path.name == "42-new-thing.md"
    assert not draft.path.exists()


def test_create_issue_uses_provisional_identifier(tmp_path):
    store = _store(tmp_path)
    created = store.create_issue("Add dark mode", labels=["ui"], body="Please\n")
    assert created.issue.is_provisional
    assert created.path.parent == store.open_dir
    assert created.issue.labels == ["ui"]


def test_originals_round_trip_and_corruption(tmp_path):
    store = _store(tmp_path)
    issue = Issue(number="8", title="Snapshot", labels=["x"])
    store.write_original(issue)
    assert store.read_original("8") == issue
    assert store.read_original("9") is None

    store.original_path("8").write_text("garbage", encoding="utf-8")
    assert store.read_original("8") is None


def test_orphaned_originals(tmp_path):
    store = _store(tmp_path)
    store.write_issue(None, Issue(number="1", title="Live"))
    store.write_original(Issue(number="1", title="Live"))
    store.write_original(Issue(number="2", title="Gone"))
    assert [p.name for p in store.orphaned_originals()] == ["2.md"]


def test_mapping_persistence(tmp_path):
    store = _store(tmp_path)
    assert store.load_mapping() == {}
    store.save_mapping({"Tdeadbeef": "42"})
    assert json.loads(store.mapping_path.read_text()) == {"mapping": {"Tdeadbeef": "42"}}
    assert store.load_mapping() == {"Tdeadbeef": "42"}

    store.mapping_path.write_text("{not json", encoding="utf-8")
    assert store.load_mapping() == {}


def test_pending_comments(tmp_path):
    store = _store(tmp_path)
    comment = store.add_comment("42", "Looks good\n")
    (store.comments_dir / "43-empty.md").write_text("  \n", encoding="utf-8")

    pending = store.pending_comments()

    assert [(c.number, c.body) for c in pending] == [("42", "Looks good\n")]
    store.delete_comment(comment)
    assert store.pending_comments() == []


def test_cache_round_trip(tmp_path):
    store = _store(tmp_path)
    assert store.load_cache("labels") is None
    store.save_cache("labels", {"synced_at": "now", "labels": []})
    assert store.load_cache("labels") == {"synced_at": "now", "labels": []}
