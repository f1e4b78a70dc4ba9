"""Tests for the ownership aggregator."""

import pytest

from conftest import ALICE, BOB, CAROL, change, day, make_commit
from repo_risk.errors import EmptyHistoryError
from repo_risk.analysis.ownership import OwnershipAggregator

A = "alice@example.com"
B = "bob@example.com"
C = "carol@example.com"


def fold(*commits):  # type: ignore[no-untyped-def]
    return OwnershipAggregator().fold_all(commits)


class TestFolding:
    def test_empty_stream(self):
        with pytest.raises(EmptyHistoryError):
            OwnershipAggregator().fold_all([])

    def test_conservation_of_added_lines(self):
        commits = [
            make_commit(ALICE, day(0), change("a.py", 10), change("b.py", 4)),
            make_commit(BOB, day(1), change("a.py", 3, 8)),
            make_commit(ALICE, day(2), change("a.py", 2, 1), change("b.py", 0, 2)),
            make_commit(CAROL, day(3), change("b.py", 5)),
        ]
        agg = fold(*commits)
        for path, entry in agg.files.items():
            expected = sum(c.added for commit in commits for c in commit.changes if c.path == path)
            assert entry.total_lines == expected
        assert agg.files["a.py"].lines_by_contributor == {A: 12, B: 3}

    def test_author_activity(self):
        agg = fold(
            make_commit(ALICE, day(0), change("a.py", 10, 2)),
            make_commit(ALICE, day(0), change("a.py", 1, 1)),
            make_commit(ALICE, day(5), change("b.py", 4)),
        )
        alice = agg.authors[A]
        assert alice.commit_count == 3
        assert alice.lines_added == 15
        assert alice.lines_deleted == 3
        assert len(alice.active_dates) == 2
        assert alice.first_commit == day(0)
        assert alice.last_commit == day(5)

    def test_commit_counts_and_authors(self):
        agg = fold(
            make_commit(ALICE, day(0), change("a.py", 1)),
            make_commit(BOB, day(1), change("a.py", 1)),
            make_commit(ALICE, day(2), change("a.py", 1)),
        )
        entry = agg.files["a.py"]
        assert entry.commit_count == 3
        assert entry.authors == [A, B]
        assert entry.last_modified == day(2)
        assert entry.last_touched == {A: day(2), B: day(1)}

    def test_same_identity_with_different_email_case(self):
        agg = fold(
            make_commit(("Alice", "Alice@Example.com"), day(0), change("a.py", 1)),
            make_commit(ALICE, day(1), change("a.py", 1)),
        )
        assert list(agg.authors) == [A]


class TestRenames:
    def test_rename_moves_ownership(self):
        agg = fold(
            make_commit(ALICE, day(0), change("src/a.py", 10)),
            make_commit(BOB, day(1), change("lib/a.py", 2, renamed_from="src/a.py")),
        )
        assert "src/a.py" not in agg.files
        entry = agg.files["lib/a.py"]
        assert entry.lines_by_contributor == {A: 10, B: 2}
        assert entry.previous_paths == ["src/a.py"]
        assert entry.commit_count == 2

    def test_rename_chain_matches_collapsed_rename(self):
        incremental = fold(
            make_commit(ALICE, day(0), change("a.py", 10)),
            make_commit(BOB, day(1), change("a.py", 5)),
            make_commit(ALICE, day(2), change("b.py", 0, renamed_from="a.py")),
            make_commit(BOB, day(3), change("c.py", 3, renamed_from="b.py")),
        )
        collapsed = fold(
            make_commit(ALICE, day(0), change("a.py", 10)),
            make_commit(BOB, day(1), change("a.py", 5)),
            make_commit(BOB, day(3), change("c.py", 3, renamed_from="a.py")),
        )
        assert set(incremental.files) == set(collapsed.files) == {"c.py"}
        assert incremental.files["c.py"].lines_by_contributor == collapsed.files["c.py"].lines_by_contributor
        assert incremental.files["c.py"].lines_by_contributor == {A: 10, B: 8}

    def test_rename_onto_existing_path_merges(self):
        agg = fold(
            make_commit(ALICE, day(0), change("old.py", 6)),
            make_commit(BOB, day(1), change("new.py", 4)),
            make_commit(CAROL, day(2), change("new.py", 1, renamed_from="old.py")),
        )
        assert agg.files["new.py"].lines_by_contributor == {A: 6, B: 4, C: 1}
        assert "old.py" in agg.files["new.py"].previous_paths

    def test_rename_of_unseen_path(self):
        agg = fold(make_commit(ALICE, day(0), change("new.py", 3, renamed_from="outside-window.py")))
        assert agg.files["new.py"].lines_by_contributor == {A: 3}


class TestBinaryAndDeleted:
    def test_binary_files_tracked_without_lines(self):
        agg = fold(
            make_commit(ALICE, day(0), change("logo.png", binary=True), change("a.py", 2)),
            make_commit(BOB, day(1), change("logo.png", binary=True)),
        )
        logo = agg.files["logo.png"]
        assert logo.binary
        assert logo.total_lines == 0
        assert logo.authors == [A, B]
        assert logo in agg.live_files
        assert logo not in agg.attributed_files

    def test_deleted_files_leave_live_set(self):
        agg = fold(
            make_commit(ALICE, day(0), change("a.py", 5), change("b.py", 5)),
            make_commit(BOB, day(1), change("b.py", 0, 5, deleted=True)),
        )
        assert agg.files["b.py"].deleted
        assert [f.path for f in agg.live_files] == ["a.py"]
        assert agg.commit_count == 2
        assert agg.files["b.py"].commit_count == 2

    def test_recreated_file_is_live_again(self):
        agg = fold(
            make_commit(ALICE, day(0), change("a.py", 5)),
            make_commit(ALICE, day(1), change("a.py", 0, 5, deleted=True)),
            make_commit(BOB, day(2), change("a.py", 2)),
        )
        assert agg.files["a.py"].is_live
