import logging
from collections import defaultdict

from agenda_util import is_custom_task_for, is_scheduled_on, removed_task_ids
from date_util import build_date_keys, get_weekday_code, parse_time_minutes
from models import AgendaCustomTask, AgendaTaskRemoval, AgendaTemplate, WorkReport

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60


def _minutes(value):
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    return 0


def to_percent(num, den):
    # half up
    if den <= 0:
        return 0
    return int(num * 100 / den + 0.5)


def estimate_minutes_for_date(date_key, templates, custom_tasks, removals):
    """
    Planned agenda minutes for one date.

    Removals for the date apply to everybody. An unparseable date has
    no weekday and is estimated at 0.
    """
    day_code = get_weekday_code(date_key)
    if day_code is None:
        return 0

    removed_ids = removed_task_ids(removals, date_key)
    template_minutes = sum(
        _minutes(t.get('estimated_minutes'))
        for t in templates
        if is_scheduled_on(t, day_code) and t.get('id') not in removed_ids
    )
    custom_minutes = sum(
        _minutes(task.get('estimated_minutes'))
        for task in custom_tasks
        if is_custom_task_for(task, date_key)
    )
    return template_minutes + custom_minutes


def report_duration_minutes(report):
    """Worked minutes of one report, None when the times are unusable."""
    start = parse_time_minutes(report.get('start_time'))
    end = parse_time_minutes(report.get('end_time'))
    if start is None or end is None:
        return None

    duration = end - start
    if duration < 0:
        # shift crossed midnight
        duration += MINUTES_PER_DAY
    if duration <= 0:
        return None
    return duration


def compute_over_estimate_days(date_keys, templates, custom_tasks, removals, reports):
    """
    Count days where the longest logged shift ran over the planned agenda.

    A day is comparable when it has both a positive estimate and at least
    one valid report. The longest shift is taken across all users of that
    day, not per user.
    """
    templates = templates or []
    custom_tasks = custom_tasks or []
    removals = removals or []
    wanted = set(date_keys)

    estimated_by_date = {
        date_key: estimate_minutes_for_date(date_key, templates, custom_tasks, removals)
        for date_key in date_keys
    }

    longest_by_date = defaultdict(int)
    for report in reports or []:
        report_date = report.get('report_date')
        if report_date not in wanted:
            continue
        duration = report_duration_minutes(report)
        if duration is None:
            continue
        if duration > longest_by_date[report_date]:
            longest_by_date[report_date] = duration

    comparable_days = 0
    over_estimate_days = 0
    for date_key in date_keys:
        estimated = estimated_by_date.get(date_key, 0)
        duration = longest_by_date.get(date_key, 0)
        if not duration or estimated <= 0:
            continue
        comparable_days += 1
        if duration > estimated:
            over_estimate_days += 1

    return {
        'comparable_days': comparable_days,
        'over_estimate_days': over_estimate_days,
        'over_estimate_pct': to_percent(over_estimate_days, comparable_days),
    }


def get_manager_status(end_key: str, days: int = 7):
    """
    Load the window ending at ``end_key`` and run the variance check on it.

    Returns None when the window is empty (bad date or days).
    """
    date_keys = build_date_keys(end_key, days)
    if not date_keys:
        return None
    start_key, last_key = date_keys[0], date_keys[-1]

    # --- rows for the window ---
    templates = [t.to_row() for t in AgendaTemplate.query.all()]
    custom_tasks = [
        t.to_row() for t in AgendaCustomTask.query.filter(
            AgendaCustomTask.is_active.is_(True),
            AgendaCustomTask.report_date >= start_key,
            AgendaCustomTask.report_date <= last_key,
        ).all()
    ]
    removals = [
        r.to_row() for r in AgendaTaskRemoval.query.filter(
            AgendaTaskRemoval.report_date >= start_key,
            AgendaTaskRemoval.report_date <= last_key,
        ).all()
    ]
    reports = [
        r.to_row() for r in WorkReport.query.filter(
            WorkReport.report_date >= start_key,
            WorkReport.report_date <= last_key,
        ).all()
    ]
    logger.debug(
        "manager status %s..%s: %d templates, %d custom, %d removals, %d reports",
        start_key, last_key, len(templates), len(custom_tasks), len(removals), len(reports),
    )

    result = compute_over_estimate_days(date_keys, templates, custom_tasks, removals, reports)
    result.update({'start_key': start_key, 'end_key': last_key, 'days': len(date_keys)})
    return result
