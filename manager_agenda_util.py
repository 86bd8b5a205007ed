import re
import logging
from collections import defaultdict
from datetime import time

from agenda_util import estimated_minutes_of, templates_for_day
from date_util import (get_weekday_code, get_workweek_date_keys, local_datetime,
                       parse_time_of_day, parse_timestamp, to_utc_iso)
from manager_status_util import to_percent
from models import AgendaCompletionItem, AgendaTemplate, Profile, WorkReport

logger = logging.getLogger(__name__)

# quality-check tasks
QUALITY_CHECK_TITLES = frozenset({'startupplägg', 'uppföljningsupplägg', 'ärenden', 'app'})

DEFAULT_START_TIME = time(8, 0)

_WHITESPACE = re.compile(r'\s+')


def normalize_title(value):
    return _WHITESPACE.sub(' ', (value or '').lower()).strip()


def requires_quality_check(title):
    return normalize_title(title) in QUALITY_CHECK_TITLES


def build_anchor_time(date_key, report=None, tz_name=None):
    """
    Start of the working day as a UTC ISO timestamp.

    Uses the start_time of the day's report, local time in ``tz_name``.
    A missing report or an unusable start_time falls back to 08:00.
    Returns None when ``date_key`` is not a date.
    """
    start = parse_time_of_day((report or {}).get('start_time')) or DEFAULT_START_TIME
    anchor = local_datetime(date_key, start, tz_name)
    return to_utc_iso(anchor) if anchor else None


def is_slow_task(completed_at, anchor_time, estimated_minutes, tz_name=None):
    """True when the task was checked off more than its estimate after the anchor."""
    estimated = estimated_minutes_of(estimated_minutes)
    if not estimated:
        return False
    completed = parse_timestamp(completed_at, tz_name)
    anchor = parse_timestamp(anchor_time, tz_name)
    if completed is None or anchor is None:
        return False
    return (completed - anchor).total_seconds() > estimated * 60


def build_daily_agenda_summary(date_key, staff, templates, completion_items,
                               reports_by_user, tz_name=None):
    """
    Per staff member status of the recurring tasks due on ``date_key``.

    Returns {'by_user': {user_id: {'total', 'completed', 'last_completed_at',
    'tasks'}}}. Each task row says whether it was checked, by whom and when,
    whether it took longer than estimated and whether it needs a quality
    check.
    """
    items_by_user = defaultdict(dict)
    for item in completion_items or []:
        items_by_user[item.get('user_id')][item.get('task_id')] = item

    day_templates = templates_for_day(templates, get_weekday_code(date_key))
    reports_by_user = reports_by_user or {}

    by_user = {}
    for member in staff or []:
        user_id = member.get('id')
        by_task = items_by_user.get(user_id, {})
        anchor = build_anchor_time(date_key, reports_by_user.get(user_id), tz_name)

        tasks = []
        for template in day_templates:
            done = by_task.get(template.get('id'))
            tasks.append({
                'task_id': template.get('id'),
                'title': template.get('title'),
                'is_completed': done is not None,
                'completed_at': done.get('completed_at') if done else None,
                'completed_by': done.get('completed_by') if done else None,
                'completion_source': done.get('source') if done else None,
                'is_slow': bool(done) and is_slow_task(
                    done.get('completed_at'), anchor, template.get('estimated_minutes'), tz_name),
                'requires_quality_check': requires_quality_check(template.get('title')),
            })

        completed_times = sorted(t['completed_at'] for t in tasks if t['completed_at'])
        by_user[user_id] = {
            'total': len(tasks),
            'completed': sum(1 for t in tasks if t['is_completed']),
            'last_completed_at': completed_times[-1] if completed_times else None,
            'tasks': tasks,
        }

    return {'by_user': by_user}


def _performance_totals(metrics):
    totals = {
        'expected_tasks': 0, 'completed_tasks': 0,
        'report_days': 0, 'expected_report_days': 0,
        'quality_expected': 0, 'quality_completed': 0,
        'slow_tasks': 0,
    }
    for user in metrics:
        for key in totals:
            totals[key] += user[key]
    totals['adherence_pct'] = to_percent(totals['completed_tasks'], totals['expected_tasks'])
    totals['report_coverage_pct'] = to_percent(totals['report_days'], totals['expected_report_days'])
    totals['quality_coverage_pct'] = to_percent(totals['quality_completed'], totals['quality_expected'])
    return totals


def compute_weekly_performance(date_keys, staff, templates, completion_items, reports,
                               tz_name=None):
    """
    Agenda adherence per staff member over ``date_keys``.

    - adherence: checked tasks against scheduled templates
    - report coverage: days with a work report against days with any template
    - quality coverage: checked quality-check templates against scheduled ones
    - slow tasks: checked templates that took longer than their estimate
    """
    templates_by_date = {
        date_key: templates_for_day(templates, get_weekday_code(date_key))
        for date_key in date_keys
    }
    template_by_id = {t.get('id'): t for t in templates or []}
    report_by_user_date = {(r.get('user_id'), r.get('report_date')): r for r in reports or []}

    items_by_user_date = defaultdict(dict)
    for item in completion_items or []:
        key = (item.get('user_id'), item.get('report_date'))
        items_by_user_date[key].setdefault(item.get('task_id'), item)

    by_user = {}
    for member in staff or []:
        user_id = member.get('id')
        m = {
            'expected_tasks': 0, 'completed_tasks': 0,
            'report_days': 0, 'expected_report_days': 0,
            'quality_expected': 0, 'quality_completed': 0,
            'slow_tasks': 0,
        }

        for date_key in date_keys:
            scheduled = templates_by_date.get(date_key) or []
            if scheduled:
                m['expected_report_days'] += 1
            m['expected_tasks'] += len(scheduled)

            done = items_by_user_date.get((user_id, date_key), {})
            m['completed_tasks'] += len(done)

            report = report_by_user_date.get((user_id, date_key))
            if report:
                m['report_days'] += 1

            for template in scheduled:
                if requires_quality_check(template.get('title')):
                    m['quality_expected'] += 1
                    if template.get('id') in done:
                        m['quality_completed'] += 1

            # --- slow tasks ---
            anchor = build_anchor_time(date_key, report, tz_name)
            for task_id, item in done.items():
                template = template_by_id.get(task_id)
                if template and is_slow_task(item.get('completed_at'), anchor,
                                             template.get('estimated_minutes'), tz_name):
                    m['slow_tasks'] += 1

        m['adherence_pct'] = to_percent(m['completed_tasks'], m['expected_tasks'])
        m['report_coverage_pct'] = to_percent(m['report_days'], m['expected_report_days'])
        m['quality_coverage_pct'] = to_percent(m['quality_completed'], m['quality_expected'])
        by_user[user_id] = m

    return {'by_user': by_user, 'totals': _performance_totals(by_user.values())}


def load_staff_rows():
    return [
        p.to_row() for p in
        Profile.query.filter(Profile.is_staff.is_(True)).order_by(Profile.name, Profile.id).all()
    ]


def get_daily_agenda_summary(date_key, tz_name=None):
    templates = [t.to_row() for t in AgendaTemplate.query.all()]
    items = [
        i.to_row() for i in
        AgendaCompletionItem.query.filter_by(report_date=date_key).order_by(AgendaCompletionItem.id).all()
    ]
    reports_by_user = {
        r.user_id: r.to_row() for r in WorkReport.query.filter_by(report_date=date_key).all()
    }

    summary = build_daily_agenda_summary(date_key, load_staff_rows(), templates, items,
                                         reports_by_user, tz_name)
    summary.update({'date': date_key, 'day_code': get_weekday_code(date_key)})
    return summary


def get_weekly_performance(date_key, tz_name=None):
    """Performance for the Monday-Friday week of ``date_key``, None for a bad date."""
    date_keys = get_workweek_date_keys(date_key)
    if not date_keys:
        return None
    start_key, end_key = date_keys[0], date_keys[-1]

    # --- rows for the week ---
    templates = [t.to_row() for t in AgendaTemplate.query.all()]
    items = [
        i.to_row() for i in AgendaCompletionItem.query.filter(
            AgendaCompletionItem.report_date >= start_key,
            AgendaCompletionItem.report_date <= end_key,
        ).order_by(AgendaCompletionItem.id).all()
    ]
    reports = [
        r.to_row() for r in WorkReport.query.filter(
            WorkReport.report_date >= start_key,
            WorkReport.report_date <= end_key,
        ).all()
    ]
    logger.debug("weekly performance %s..%s: %d items, %d reports",
                 start_key, end_key, len(items), len(reports))

    result = compute_weekly_performance(date_keys, load_staff_rows(), templates, items, reports, tz_name)
    result['date_keys'] = date_keys
    return result
