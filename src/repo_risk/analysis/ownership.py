"""Ownership aggregation — folds the commit stream into per-file line attribution."""

from collections.abc import Iterable

from repo_risk.errors import EmptyHistoryError
from repo_risk.logging import get_logger
from repo_risk.models import AuthorActivity, CommitDiff, FileChange, FileOwnership

logger = get_logger("ownership")


class OwnershipAggregator:
    """Builds the FileOwnership map and per-author activity from CommitDiffs.

    Commits must be folded oldest first. A file's identity is the terminal
    path of its rename chain: when a change carries ``renamed_from``, the
    ownership accumulated under the old path moves to the new path before
    the change's own lines are applied.
    """

    def __init__(self) -> None:
        self.files: dict[str, FileOwnership] = {}
        self.authors: dict[str, AuthorActivity] = {}
        self.commit_count = 0

    # ── Folding ───────────────────────────────────────────────────────────

    def fold(self, commit: CommitDiff) -> None:
        """Apply one commit."""
        self.commit_count += 1
        key = commit.author_key
        activity = self.authors.get(key)
        if activity is None:
            activity = AuthorActivity(key=key, name=commit.author_name, email=commit.author_email)
            self.authors[key] = activity

        activity.commit_count += 1
        activity.active_dates.add(commit.timestamp.date())
        if activity.first_commit is None or commit.timestamp < activity.first_commit:
            activity.first_commit = commit.timestamp
        if activity.last_commit is None or commit.timestamp > activity.last_commit:
            activity.last_commit = commit.timestamp

        for change in commit.changes:
            activity.lines_added += change.added
            activity.lines_deleted += change.removed
            self._apply(key, commit, change)

    def fold_all(self, commits: Iterable[CommitDiff]) -> "OwnershipAggregator":
        """Fold a whole stream; an empty stream is an EmptyHistoryError."""
        for commit in commits:
            self.fold(commit)
        if self.commit_count == 0:
            raise EmptyHistoryError("commit stream was empty")
        logger.info(
            f"Aggregated {self.commit_count} commits into {len(self.files)} files "
            f"({len(self.authors)} authors)"
        )
        return self

    def _apply(self, author: str, commit: CommitDiff, change: FileChange) -> None:
        if change.renamed_from and change.renamed_from != change.path:
            self._rename(change.renamed_from, change.path)

        entry = self.files.get(change.path)
        if entry is None:
            entry = FileOwnership(path=change.path)
            self.files[change.path] = entry

        entry.commit_count += 1
        if author not in entry.authors:
            entry.authors.append(author)
        if entry.last_modified is None or commit.timestamp > entry.last_modified:
            entry.last_modified = commit.timestamp
        previous = entry.last_touched.get(author)
        if previous is None or commit.timestamp > previous:
            entry.last_touched[author] = commit.timestamp

        if change.binary:
            if not entry.binary:
                logger.debug(f"{change.path} is binary; excluded from line attribution")
            entry.binary = True
        elif change.added:
            entry.lines_by_contributor[author] = entry.lines_by_contributor.get(author, 0) + change.added

        entry.deleted = change.deleted

    def _rename(self, old_path: str, new_path: str) -> None:
        moved = self.files.pop(old_path, None)
        if moved is None:
            # History before the rename is outside the analysed window
            return
        target = self.files.get(new_path)
        if target is None:
            moved.path = new_path
            moved.previous_paths.append(old_path)
            self.files[new_path] = moved
            return
        _merge_into(target, moved)
        target.previous_paths.append(old_path)

    # ── Views ─────────────────────────────────────────────────────────────

    @property
    def live_files(self) -> list[FileOwnership]:
        return [f for f in self.files.values() if f.is_live]

    @property
    def attributed_files(self) -> list[FileOwnership]:
        return [f for f in self.files.values() if f.is_attributed]


def _merge_into(target: FileOwnership, source: FileOwnership) -> None:
    """Fold *source*'s accumulated ownership into *target* (rename onto an existing path)."""
    for author, lines in source.lines_by_contributor.items():
        target.lines_by_contributor[author] = target.lines_by_contributor.get(author, 0) + lines
    for author, ts in source.last_touched.items():
        if author not in target.last_touched or ts > target.last_touched[author]:
            target.last_touched[author] = ts
    for author in source.authors:
        if author not in target.authors:
            target.authors.append(author)
    if source.last_modified and (target.last_modified is None or source.last_modified > target.last_modified):
        target.last_modified = source.last_modified
    target.commit_count += source.commit_count
    target.binary = target.binary or source.binary
    target.previous_paths.extend(p for p in source.previous_paths if p not in target.previous_paths)
