from manager_status_util import (compute_over_estimate_days, estimate_minutes_for_date,
                                 get_manager_status, report_duration_minutes, to_percent)
from models import db, AgendaCustomTask, AgendaTaskRemoval, AgendaTemplate, WorkReport

TEMPLATES = [
    {"id": "t1", "schedule_days": ["SU", "MO"], "estimated_minutes": 120},
    {"id": "t2", "schedule_days": ["SU"], "estimated_minutes": 30},
]
CUSTOM_TASKS = [
    {"id": "c1", "report_date": "2026-03-01", "estimated_minutes": 200, "is_active": True},
]
REMOVALS = [
    {"report_date": "2026-03-01", "task_id": "t2", "is_removed": True},
]
REPORTS = [
    {"user_id": "u1", "report_date": "2026-03-01", "start_time": "09:00", "end_time": "13:00"},
    {"user_id": "u1", "report_date": "2026-03-02", "start_time": "09:00", "end_time": "10:30"},
    {"user_id": "u2", "report_date": "2026-03-01", "start_time": "09:00", "end_time": "15:30"},
]


def test_percent_of_days_above_estimate():
    result = compute_over_estimate_days(["2026-03-01", "2026-03-02"], TEMPLATES, CUSTOM_TASKS,
                                        REMOVALS, REPORTS)
    assert result == {"comparable_days": 2, "over_estimate_days": 1, "over_estimate_pct": 50}


def test_estimate_for_date_applies_removals_and_custom_tasks():
    assert estimate_minutes_for_date("2026-03-01", TEMPLATES, CUSTOM_TASKS, REMOVALS) == 320
    assert estimate_minutes_for_date("2026-03-02", TEMPLATES, CUSTOM_TASKS, REMOVALS) == 120
    assert estimate_minutes_for_date("garbage", TEMPLATES, CUSTOM_TASKS, REMOVALS) == 0


def test_ignores_days_without_valid_duration_or_estimate():
    result = compute_over_estimate_days(
        ["2026-03-03"],
        [{"id": "t1", "schedule_days": ["MO"], "estimated_minutes": None}],
        [], [],
        [{"user_id": "u1", "report_date": "2026-03-03", "start_time": None, "end_time": "12:00"}],
    )
    assert result == {"comparable_days": 0, "over_estimate_days": 0, "over_estimate_pct": 0}


def test_overnight_shift_wraps_midnight():
    assert report_duration_minutes({"start_time": "22:00", "end_time": "02:00"}) == 240
    assert report_duration_minutes({"start_time": "09:00", "end_time": "09:00"}) is None
    assert report_duration_minutes({"start_time": "25:00", "end_time": "09:00"}) is None


def test_reports_outside_window_are_ignored():
    reports = [{"user_id": "u1", "report_date": "2026-03-09", "start_time": "08:00",
                "end_time": "18:00"}]
    result = compute_over_estimate_days(["2026-03-02"], TEMPLATES, [], [], reports)
    assert result["comparable_days"] == 0


def test_estimate_counts_only_strictly_active_custom_tasks():
    custom = [
        {"id": "c1", "report_date": "2026-03-02", "estimated_minutes": 200, "is_active": 1},
        {"id": "c2", "report_date": "2026-03-02", "estimated_minutes": 15, "is_active": True},
    ]
    assert estimate_minutes_for_date("2026-03-02", [], custom, []) == 15


def test_removal_user_does_not_matter():
    removals = [{"user_id": "someone-else", "report_date": "2026-03-02", "task_id": "t1",
                 "is_removed": True}]
    assert estimate_minutes_for_date("2026-03-02", TEMPLATES, [], removals) == 0


def test_percent_rounds_half_up():
    assert to_percent(1, 8) == 13
    assert to_percent(1, 3) == 33
    assert to_percent(2, 3) == 67
    assert to_percent(0, 0) == 0


def test_get_manager_status_reads_the_window(app):
    db.session.add_all([
        AgendaTemplate(id="t1", title="Startupplägg", schedule_days="SU,MO", estimated_minutes=120),
        AgendaTemplate(id="t2", title="App", schedule_days="SU", estimated_minutes=30),
        AgendaCustomTask(report_date="2026-03-01", title="Ring kunder", estimated_minutes=200),
        AgendaCustomTask(report_date="2026-03-01", title="Inaktiv", estimated_minutes=500,
                         is_active=False),
        AgendaTaskRemoval(user_id="manager-1", report_date="2026-03-01", task_id="t2"),
        WorkReport(user_id="u1", report_date="2026-03-01", start_time="09:00", end_time="13:00"),
        WorkReport(user_id="u1", report_date="2026-03-02", start_time="09:00:00", end_time="10:30:00"),
        WorkReport(user_id="u2", report_date="2026-03-01", start_time="09:00", end_time="15:30"),
    ])
    db.session.commit()

    result = get_manager_status("2026-03-02", 2)
    assert result == {
        "comparable_days": 2,
        "over_estimate_days": 1,
        "over_estimate_pct": 50,
        "start_key": "2026-03-01",
        "end_key": "2026-03-02",
        "days": 2,
    }


def test_get_manager_status_empty_window(app):
    assert get_manager_status("not-a-date", 7) is None
