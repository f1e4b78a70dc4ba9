"""Tests for the risk analyzer."""

import pytest

from conftest import ALICE, BOB, change, day, make_commit
from repo_risk.analysis.ownership import OwnershipAggregator
from repo_risk.analysis.people import build_contributor_profiles
from repo_risk.analysis.recommendations import build_mitigation_actions
from repo_risk.analysis.risk import (
    analyze_risk,
    at_risk_files,
    classify_contributor_risk,
    compute_bus_factor,
    file_bus_factor,
    has_majority_owner,
    rank_hot_spots,
    risk_level_for,
    what_if,
)
from repo_risk.config import AnalysisSettings
from repo_risk.models import FileOwnership, RiskLevel

A = "alice@example.com"
B = "bob@example.com"


@pytest.fixture
def settings():
    return AnalysisSettings()


def owned(path: str, **lines: int) -> FileOwnership:
    return FileOwnership(path=path, lines_by_contributor=dict(lines), authors=list(lines))


def scenario():  # type: ignore[no-untyped-def]
    """A owns 90% of x.py and y.py over 10 commits each; B owns 10% of x.py after one commit."""
    commits = [
        make_commit(ALICE, day(i), change("x.py", 9), change("y.py", 10))
        for i in range(10)
    ]
    commits.append(make_commit(BOB, day(10), change("x.py", 10)))
    commits.append(make_commit(ALICE, day(11), change("untouched.md", 1)))
    return OwnershipAggregator().fold_all(commits)


class TestRiskLevel:
    @pytest.mark.parametrize(
        "bus, level",
        [(None, "unknown"), (1, "critical"), (2, "high"), (3, "medium"), (4, "low"), (10, "low")],
    )
    def test_levels(self, bus, level):
        assert risk_level_for(bus) == level


class TestFileBusFactor:
    def test_single_owner(self):
        assert file_bus_factor(owned("a", a=10)) == 1

    def test_even_split(self):
        assert file_bus_factor(owned("a", a=1, b=1, c=1, d=1)) == 3

    def test_two_way_split_has_no_single_owner(self):
        assert file_bus_factor(owned("a", a=50, b=50)) == 2
        assert file_bus_factor(owned("a", a=51, b=49)) == 1

    def test_threshold_is_configurable(self):
        f = owned("a", a=6, b=4)
        assert file_bus_factor(f) == 1
        assert file_bus_factor(f, threshold=0.7) == 2

    def test_empty(self):
        assert file_bus_factor(FileOwnership(path="a")) == 0


class TestMajority:
    def test_strict_majority(self):
        f = owned("a", a=5, b=5)
        assert not has_majority_owner(f)
        assert has_majority_owner(owned("a", a=6, b=4))

    def test_exclusion_keeps_original_totals(self):
        f = owned("a", a=6, b=4)
        assert not has_majority_owner(f, excluded={"a"})


class TestBusFactor:
    def test_single_owner_of_everything(self, settings):
        files = [owned(f"f{i}.py", a=10 + i) for i in range(5)]
        assert compute_bus_factor(files, settings) == 1

    def test_undefined_without_attributed_files(self, settings):
        assert compute_bus_factor([], settings) is None
        assert compute_bus_factor([FileOwnership(path="logo.png", binary=True)], settings) is None

    def test_disjoint_owners(self, settings):
        files = [owned(f"f{i}.py", **{f"c{i}": 10}) for i in range(4)]
        assert compute_bus_factor(files, settings) == 3

    def test_monotonic_in_distinct_contributors(self, settings):
        previous = 0
        for n in range(1, 9):
            files = [owned(f"f{i}.py", **{f"c{i}": 10}) for i in range(n)]
            current = compute_bus_factor(files, settings)
            assert current is not None and current >= previous
            previous = current

    def test_coverage_fraction_is_configurable(self):
        files = [owned(f"f{i}.py", **{f"c{i}": 10}) for i in range(4)]
        strict = AnalysisSettings(coverage_fraction=0.2)
        assert compute_bus_factor(files, strict) == 1

    def test_deleted_files_ignored(self, settings):
        files = [owned("live.py", a=10), FileOwnership(path="gone.py", lines_by_contributor={"b": 99}, deleted=True)]
        assert compute_bus_factor(files, settings) == 1


class TestContributorRisk:
    def test_unbacked_majority_is_high(self, settings):
        files = [owned("a.py", a=90, b=10)]
        assert classify_contributor_risk("a", files, settings) == RiskLevel.high
        assert at_risk_files("a", files, settings) == (["a.py"], [])

    def test_backed_majority_is_medium(self, settings):
        files = [owned("a.py", a=70, b=30)]
        assert classify_contributor_risk("a", files, settings) == RiskLevel.medium
        assert at_risk_files("a", files, settings) == ([], ["a.py"])

    def test_minority_owner_is_low(self, settings):
        files = [owned("a.py", a=70, b=30)]
        assert classify_contributor_risk("b", files, settings) == RiskLevel.low


class TestHotSpots:
    def test_few_people_many_commits_first(self, settings):
        files = [
            FileOwnership(path="busy-shared.py", authors=["a", "b", "c"], commit_count=30),
            FileOwnership(path="busy-solo.py", authors=["a"], commit_count=20),
            FileOwnership(path="quiet-solo.py", authors=["a"], commit_count=3),
            FileOwnership(path="once.py", authors=["a"], commit_count=1),
            FileOwnership(path="gone.py", authors=["a"], commit_count=50, deleted=True),
        ]
        assert rank_hot_spots(files, settings) == ["busy-solo.py", "quiet-solo.py", "busy-shared.py"]

    def test_limit(self):
        files = [FileOwnership(path=f"f{i}.py", authors=["a"], commit_count=5) for i in range(20)]
        assert len(rank_hot_spots(files, AnalysisSettings(hot_spot_limit=4))) == 4


class TestWhatIf:
    def test_orphaned_files(self, settings):
        files = [owned("a.py", a=9, b=1), owned("b.py", a=4, b=6), owned("c.py", a=5, b=5)]
        assert what_if("a", files, settings) == ["a.py"]
        assert what_if("b", files, settings) == ["b.py"]


class TestAnalyzeRisk:
    def test_two_contributor_scenario(self, settings):
        agg = scenario()
        profiles = build_contributor_profiles(agg.files, agg.authors, settings)
        assessment = analyze_risk(agg.files, profiles, settings)

        assert assessment.bus_factor == 1
        assert assessment.risk_level == "critical"
        by_name = {p.username: p for p in profiles}
        assert by_name["Alice"].bus_factor_risk == RiskLevel.high
        assert by_name["Bob"].bus_factor_risk == RiskLevel.low
        assert assessment.hot_spots == ["y.py", "x.py"]
        assert assessment.at_risk_files[A] == ["untouched.md", "x.py", "y.py"]
        assert B not in assessment.at_risk_files
        assert assessment.file_bus_factors == {"x.py": 1, "y.py": 1, "untouched.md": 1}

    def test_even_split_hot_spot_gets_no_second_owner_action(self, settings):
        f = FileOwnership(path="a.py", lines_by_contributor={"a": 50, "b": 50}, authors=["a", "b"], commit_count=5)
        assessment = analyze_risk({"a.py": f}, [], settings)

        assert assessment.hot_spots == ["a.py"]
        assert assessment.file_bus_factors == {"a.py": 2}
        assert build_mitigation_actions([], assessment) == []

    def test_file_bus_factors_follow_majority_threshold(self):
        f = FileOwnership(path="a.py", lines_by_contributor={"a": 60, "b": 40}, authors=["a", "b"], commit_count=3)
        assert analyze_risk({"a.py": f}, [], AnalysisSettings()).file_bus_factors == {"a.py": 1}
        strict = AnalysisSettings(majority_threshold=0.7)
        assert analyze_risk({"a.py": f}, [], strict).file_bus_factors == {"a.py": 2}
