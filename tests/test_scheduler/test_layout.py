"""Tests for timeline layout."""

from __future__ import annotations

from datetime import date, timedelta

from festflow.scheduler.layout import (
    Placement,
    compute_dates,
    compute_timeline,
    critical_path,
    pack_lanes,
)
from tests.conftest import make_task

DAY0 = date(2025, 6, 2)


def day(n: int) -> date:
    return DAY0 + timedelta(days=n)


def test_sequential_dependency():
    tasks = [
        make_task("a", estimated_duration=2),
        make_task("b", depends_on=["a"], estimated_duration=3),
    ]
    timeline = compute_timeline(tasks, DAY0)
    assert (timeline["a"].start, timeline["a"].end) == (day(0), day(1))
    assert (timeline["b"].start, timeline["b"].end) == (day(2), day(4))
    assert timeline.total_days == 5
    assert timeline.fallback_ids == ()


def test_start_waits_for_latest_dependency():
    tasks = [
        make_task("short", estimated_duration=1),
        make_task("long", estimated_duration=4),
        make_task("join", depends_on=["short", "long"]),
    ]
    timeline = compute_timeline(tasks, DAY0)
    assert timeline["join"].start == day(4)


def test_fixed_start_date_wins():
    tasks = [
        make_task("a", estimated_duration=5),
        make_task("b", depends_on=["a"], start_date=day(1)),
        make_task("c", depends_on=["b"]),
    ]
    timeline = compute_timeline(tasks, DAY0)
    assert timeline["b"].start == day(1)
    assert timeline["c"].start == day(2)


def test_unknown_dependency_ignored_for_dates():
    timeline = compute_timeline([make_task("a", depends_on=["ghost"])], DAY0)
    assert timeline["a"].start == DAY0
    assert not timeline["a"].fallback


def test_two_cycle_falls_back_to_anchor(caplog):
    tasks = [
        make_task("x", depends_on=["y"], title="Book band"),
        make_task("y", depends_on=["x"], title="Print posters"),
    ]
    with caplog.at_level("WARNING", logger="festflow.scheduler.layout"):
        timeline = compute_timeline(tasks, DAY0)

    assert timeline["x"].start == DAY0
    assert timeline["y"].start == DAY0
    assert timeline["x"].fallback and timeline["y"].fallback
    assert set(timeline.fallback_ids) == {"x", "y"}
    assert "Dependency cycle detected" in caplog.text
    assert "Book band" in caplog.text
    assert "Print posters" in caplog.text


def test_cycle_member_keeps_fixed_start(caplog):
    tasks = [
        make_task("x", depends_on=["y"]),
        make_task("y", depends_on=["x"], start_date=day(3)),
    ]
    with caplog.at_level("WARNING", logger="festflow.scheduler.layout"):
        timeline = compute_timeline(tasks, DAY0)
    # y is seeded by its fixed start; x is then released by y.
    assert timeline["y"].start == day(3)
    assert timeline["x"].start == day(4)
    assert timeline.fallback_ids == ()


def test_downstream_of_cycle_gets_a_date():
    tasks = [
        make_task("x", depends_on=["y"]),
        make_task("y", depends_on=["x"]),
        make_task("after", depends_on=["x"]),
        make_task("free"),
    ]
    timeline = compute_timeline(tasks, DAY0)
    assert len(timeline) == 4
    assert set(timeline.fallback_ids) == {"x", "y", "after"}
    assert not timeline["free"].fallback


def test_compute_dates_reports_unreached():
    tasks = [make_task("x", depends_on=["x2"]), make_task("x2", depends_on=["x"])]
    dates, unreached = compute_dates(tasks, DAY0)
    assert dates == {}
    assert unreached == ["x", "x2"]


def test_pack_lanes_reuses_free_lane():
    lanes = pack_lanes(
        [
            ("a", day(0), day(1)),
            ("b", day(0), day(2)),
            ("c", day(2), day(3)),
            ("d", day(3), day(3)),
        ]
    )
    # c starts on a's last day + 1, so it reuses lane 0; d overlaps c and b has ended.
    assert lanes == {"a": 0, "b": 1, "c": 0, "d": 1}


def test_pack_lanes_same_day_end_and_start_overlap():
    lanes = pack_lanes([("a", day(0), day(1)), ("b", day(1), day(1))])
    assert lanes == {"a": 0, "b": 1}


def test_timeline_properties():
    tasks = [
        make_task("a", estimated_duration=2),
        make_task("b", estimated_duration=2),
        make_task("c", depends_on=["a"], estimated_duration=1),
    ]
    timeline = compute_timeline(tasks, DAY0)
    assert timeline.lane_count == 2
    assert timeline.start == DAY0
    assert timeline.end == day(2)
    assert "a" in timeline
    assert isinstance(timeline["a"], Placement)
    assert timeline["a"].duration == 2


def test_critical_path_follows_latest_chain():
    tasks = [
        make_task("a", estimated_duration=1),
        make_task("b", estimated_duration=3),
        make_task("c", depends_on=["a", "b"], estimated_duration=2),
    ]
    dates, _ = compute_dates(tasks, DAY0)
    assert critical_path(tasks, dates) == ("b", "c")
    assert compute_timeline(tasks, DAY0).critical_path == ("b", "c")


def test_empty_timeline():
    timeline = compute_timeline([], DAY0)
    assert len(timeline) == 0
    assert timeline.total_days == 0
    assert timeline.lane_count == 0
    assert timeline.critical_path == ()
