"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Union

import git
import pytest

from repo_risk.models import CommitDiff, FileChange

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

ALICE = ("Alice", "alice@example.com")
BOB = ("Bob", "bob@example.com")
CAROL = ("Carol", "carol@example.com")


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio backend for async tests."""
    return "asyncio"


def day(n: int) -> datetime:
    """T0 plus *n* days."""
    return T0 + timedelta(days=n)


def make_commit(
    author: tuple[str, str],
    when: datetime,
    *changes: FileChange,
    sha: Optional[str] = None,
) -> CommitDiff:
    name, email = author
    return CommitDiff(
        sha=sha or f"{abs(hash((name, when, changes))):040x}"[:40],
        author_name=name,
        author_email=email,
        timestamp=when,
        changes=changes,
    )


def change(path: str, added: int = 0, removed: int = 0, **kw) -> FileChange:  # type: ignore[no-untyped-def]
    return FileChange(path=path, added=added, removed=removed, **kw)


class RepoBuilder:
    """Builds a throw-away git repository with controlled authors and dates."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.repo = git.Repo.init(path)
        with self.repo.config_writer() as cw:
            cw.set_value("user", "name", "Fixture")
            cw.set_value("user", "email", "fixture@example.com")
            cw.set_value("commit", "gpgsign", "false")

    def write(self, rel: str, content: Union[str, bytes]) -> None:
        target = self.path / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            target.write_bytes(content)
        else:
            target.write_text(content)

    def append(self, rel: str, lines: int, tag: str = "line") -> None:
        target = self.path / rel
        existing = target.read_text() if target.exists() else ""
        self.write(rel, existing + "".join(f"{tag} {i}\n" for i in range(lines)))

    def remove(self, rel: str) -> None:
        (self.path / rel).unlink()

    def move(self, old: str, new: str) -> None:
        (self.path / new).parent.mkdir(parents=True, exist_ok=True)
        self.repo.git.mv(old, new)

    @staticmethod
    def _env(author: tuple[str, str], when: datetime) -> dict[str, str]:
        name, email = author
        stamp = f"{int(when.timestamp())} +0000"
        return {
            "GIT_AUTHOR_NAME": name,
            "GIT_AUTHOR_EMAIL": email,
            "GIT_AUTHOR_DATE": stamp,
            "GIT_COMMITTER_NAME": name,
            "GIT_COMMITTER_EMAIL": email,
            "GIT_COMMITTER_DATE": stamp,
        }

    def commit(self, author: tuple[str, str], when: datetime, message: str = "change") -> str:
        self.repo.git.add("-A")
        self.repo.git.commit("-m", message, env=self._env(author, when))
        return self.repo.head.commit.hexsha

    def branch(self, name: str) -> None:
        self.repo.git.checkout("-b", name)

    def checkout(self, name: str) -> None:
        self.repo.git.checkout(name)

    def merge(self, branch: str, author: tuple[str, str], when: datetime) -> str:
        self.repo.git.merge("--no-ff", branch, "-m", f"Merge {branch}", env=self._env(author, when))
        return self.repo.head.commit.hexsha

    @property
    def current_branch(self) -> str:
        return self.repo.active_branch.name


@pytest.fixture
def repo_builder(tmp_path):
    builder = RepoBuilder(tmp_path / "repo")
    yield builder
    builder.repo.close()


@pytest.fixture
def scenario_repo(repo_builder):
    """A owns ~90% of x.py and all of y.py over 10 commits each; B adds 10% of x.py once."""
    b = repo_builder
    for i in range(10):
        b.append("src/x.py", 9, tag=f"a{i}")
        b.append("src/y.py", 10, tag=f"a{i}")
        b.commit(ALICE, day(i), f"alice {i}")
    b.append("src/x.py", 10, tag="b")
    b.commit(BOB, day(10), "bob")
    b.write("README.md", "# scenario\n")
    b.commit(ALICE, day(11), "readme")
    return b
