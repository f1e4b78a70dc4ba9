"""History extraction — turns a git repository into a stream of CommitDiffs."""

import re
import shutil
import tempfile
from collections.abc import Iterator
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import git  # GitPython
from pydantic import ValidationError

from repo_risk.errors import AggregationError, EmptyHistoryError, ExtractionError
from repo_risk.logging import get_logger
from repo_risk.models import CommitDiff, FileChange

logger = get_logger("extractor")

RECORD_SEP = "\x1e"
FIELD_SEP = "\x1f"
LOG_FORMAT = f"--format={RECORD_SEP}%H{FIELD_SEP}%an{FIELD_SEP}%ae{FIELD_SEP}%at"

_SHORTHAND = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")
_BRACE_RENAME = re.compile(r"^(.*)\{(.*) => (.*)\}(.*)$")
_AUTH_HINTS = ("authentication failed", "could not read username", "403", "permission denied")


def is_remote(location: str) -> bool:
    """True if *location* must be cloned rather than opened in place."""
    if "://" in location or location.startswith("git@"):
        return True
    return bool(_SHORTHAND.match(location)) and not Path(location).exists()


def _clone_url(location: str) -> str:
    if _SHORTHAND.match(location) and "://" not in location:
        return f"https://github.com/{location.removesuffix('.git')}.git"
    return location


def _with_token(url: str, token: Optional[str]) -> str:
    if not token or not token.strip() or not url.startswith("https://github.com/"):
        return url
    return url.replace("https://", f"https://x-access-token:{token}@", 1)


def clean_text(text: str) -> str:
    """Replace bytes that are not valid UTF-8 with U+FFFD.

    GitPython keeps undecodable bytes as lone surrogates, which cannot be
    serialized to JSON.
    """
    return text.encode("utf-8", "surrogateescape").decode("utf-8", "replace")


def _unquote(path: str) -> str:
    if len(path) >= 2 and path.startswith('"') and path.endswith('"'):
        return path[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    return path


def split_rename(raw: str) -> tuple[Optional[str], str]:
    """Split a numstat path into ``(renamed_from, path)``.

    Handles both ``old => new`` and ``dir/{old => new}/file`` notations.
    """
    if " => " not in raw:
        return None, _unquote(raw)
    match = _BRACE_RENAME.match(raw)
    if match:
        prefix, old, new, suffix = match.groups()
        old_path = re.sub("/+", "/", f"{prefix}{old}{suffix}").lstrip("/")
        new_path = re.sub("/+", "/", f"{prefix}{new}{suffix}").lstrip("/")
        return old_path, new_path
    old_path, new_path = raw.split(" => ", 1)
    return _unquote(old_path), _unquote(new_path)


def parse_numstat_line(line: str) -> FileChange:
    """Parse one ``--numstat`` line into a FileChange.

    Counts that cannot be decoded flag the change like a binary one, so the
    file is tracked but gets no attributed lines. A line without three
    fields is corrupt and raises AggregationError.
    """
    parts = line.split("\t", 2)
    if len(parts) != 3:
        raise AggregationError(f"malformed numstat line: {line!r}")
    added_raw, removed_raw, raw_path = parts
    renamed_from, path = split_rename(raw_path)
    if added_raw == "-" and removed_raw == "-":
        return FileChange(path=path, renamed_from=renamed_from, binary=True)
    try:
        added, removed = int(added_raw), int(removed_raw)
    except ValueError:
        logger.warning(f"Undecodable line counts for {path!r}, excluding it from attribution: {line!r}")
        return FileChange(path=path, renamed_from=renamed_from, binary=True)
    try:
        return FileChange(path=path, added=added, removed=removed, renamed_from=renamed_from)
    except ValidationError as e:
        raise AggregationError(f"invalid file change {path!r}: {e}") from e


def parse_log_record(record: str) -> CommitDiff:
    """Parse one ``RECORD_SEP``-delimited chunk of ``git log`` output."""
    lines = record.splitlines()
    header = lines[0].split(FIELD_SEP)
    if len(header) != 4:
        raise AggregationError(f"malformed commit header: {lines[0]!r}")
    sha, name, email, epoch = header

    changes: dict[str, FileChange] = {}
    deleted: set[str] = set()
    for line in lines[1:]:
        if not line.strip():
            continue
        if line.startswith(" "):
            summary = line.strip()
            if summary.startswith("delete mode"):
                deleted.add(_unquote(summary.split(" ", 3)[3]))
            continue
        change = parse_numstat_line(line)
        changes[change.path] = change

    for path in deleted:
        if path in changes:
            changes[path] = changes[path].model_copy(update={"deleted": True})

    try:
        return CommitDiff(
            sha=sha,
            author_name=name or "Unknown",
            author_email=email,
            timestamp=datetime.fromtimestamp(int(epoch), tz=timezone.utc),
            changes=tuple(changes.values()),
        )
    except (ValueError, ValidationError) as e:
        raise AggregationError(f"invalid commit record {sha[:7]}: {e}") from e


class HistoryExtractor:
    """Opens (or clones) a repository and walks its non-merge history oldest first."""

    def __init__(
        self,
        location: str,
        token: Optional[str] = None,
        max_commits: Optional[int] = None,
        since: Optional[datetime] = None,
        rev: str = "HEAD",
    ) -> None:
        self.location = location
        self.token = token
        self.max_commits = max_commits
        self.since = since
        self.rev = rev
        self._repo: Optional[git.Repo] = None
        self._clone_dir: Optional[Path] = None

    @property
    def clone_path(self) -> Optional[Path]:
        return self._clone_dir

    @property
    def repo(self) -> git.Repo:
        if self._repo is None:
            raise ExtractionError("repository has not been opened")
        return self._repo

    # ── Opening ───────────────────────────────────────────────────────────

    def open(self) -> int:
        """Resolve the repository and return the number of commits in scope.

        Raises ExtractionError when the location cannot be read and
        EmptyHistoryError when nothing is left to analyse.
        """
        if self._repo is None:
            self._repo = self._clone() if is_remote(self.location) else self._open_local()

        if not self._repo.head.is_valid():
            raise EmptyHistoryError(f"{self.location} has no commits")

        try:
            count = int(self._repo.git.rev_list("--count", *self._range_args()))
        except git.exc.GitCommandError as e:
            raise ExtractionError(f"could not read history of {self.location}: {str(e.stderr).strip()}") from e
        if count == 0:
            raise EmptyHistoryError(f"{self.location} has no commits in the requested window")
        logger.info(f"Opened {self.location}: {count} non-merge commits in scope")
        return count

    def _open_local(self) -> git.Repo:
        try:
            return git.Repo(self.location)
        except git.exc.NoSuchPathError as e:
            raise ExtractionError(f"repository path does not exist: {self.location}") from e
        except git.exc.InvalidGitRepositoryError as e:
            raise ExtractionError(f"not a git repository: {self.location}") from e

    def _clone(self) -> git.Repo:
        url = _clone_url(self.location)
        auth_url = _with_token(url, self.token)
        env = {"GIT_TERMINAL_PROMPT": "0"}  # Never prompt for credentials

        self._clone_dir = Path(tempfile.mkdtemp(prefix="repo-risk-"))
        logger.info(f"Cloning {url} into {self._clone_dir}")
        try:
            return git.Repo.clone_from(auth_url, str(self._clone_dir), single_branch=True, env=env)
        except git.exc.GitCommandError as first:
            if auth_url == url:
                self.cleanup()
                raise self._clone_error(url, first) from first
            # Token rejected (e.g. SAML-protected org), retry anonymously
            logger.warning(f"Authenticated clone of {url} failed, retrying without token")
            shutil.rmtree(self._clone_dir, ignore_errors=True)
            self._clone_dir = Path(tempfile.mkdtemp(prefix="repo-risk-"))
            try:
                return git.Repo.clone_from(url, str(self._clone_dir), single_branch=True, env=env)
            except git.exc.GitCommandError as second:
                self.cleanup()
                raise self._clone_error(url, second) from second

    @staticmethod
    def _clone_error(url: str, err: git.exc.GitCommandError) -> ExtractionError:
        stderr = str(err.stderr or "").strip()
        if any(hint in stderr.lower() for hint in _AUTH_HINTS):
            return ExtractionError(f"authentication failed for {url}")
        return ExtractionError(f"could not clone {url}: {stderr or err}")

    def cleanup(self) -> None:
        """Close the repository and remove any temporary clone."""
        if self._repo is not None:
            self._repo.close()
            self._repo = None
        if self._clone_dir and self._clone_dir.exists():
            shutil.rmtree(self._clone_dir, ignore_errors=True)
        self._clone_dir = None

    # ── Walking ───────────────────────────────────────────────────────────

    def _range_args(self) -> list[str]:
        args = ["--no-merges"]
        if self.max_commits:
            args.append(f"--max-count={self.max_commits}")
        if self.since:
            args.append(f"--since={self.since.isoformat()}")
        args.append(self.rev)
        return args

    def commits(self) -> Iterator[CommitDiff]:
        """Yield CommitDiffs oldest first.

        Every call re-reads the repository. Merge commits are skipped so their
        changes are only counted once, on the commits that introduced them.
        """
        try:
            output = self.repo.git(c="core.quotepath=off").log(
                "--reverse", "--numstat", "--summary", "-M", "--no-color", LOG_FORMAT, *self._range_args()
            )
        except git.exc.GitCommandError as e:
            raise ExtractionError(f"git log failed for {self.location}: {str(e.stderr).strip()}") from e

        for record in clean_text(output).split(RECORD_SEP):
            if not record.strip():
                continue
            commit = parse_log_record(record)
            if any(c.binary for c in commit.changes):
                logger.debug(f"Commit {commit.short_sha} touches binary files")
            yield commit

    def __enter__(self) -> "HistoryExtractor":
        return self

    def __exit__(self, *exc: object) -> None:
        self.cleanup()
