import math
import logging
from collections import defaultdict
from datetime import time, timedelta

from agenda_util import estimated_minutes_of, sort_order_of, templates_for_day
from date_util import (build_date_keys, get_weekday_code, local_datetime, parse_timestamp,
                       to_utc_iso)
from manager_status_util import to_percent
from manager_agenda_util import load_staff_rows
from models import AgendaCompletionItem, AgendaTemplate, ManagerAlertOverride, WorkReport

logger = logging.getLogger(__name__)

WARNING_MINUTES = 15
CRITICAL_MINUTES = 45

# plan starts here
PLAN_START_TIME = time(9, 0)


def _round_half_up(value):
    return int(math.floor(value + 0.5))


def minutes_between(later, earlier, tz_name=None):
    """Whole minutes from ``earlier`` to ``later``, 0 when either is unreadable."""
    a = parse_timestamp(later, tz_name)
    b = parse_timestamp(earlier, tz_name)
    if a is None or b is None:
        return 0
    return _round_half_up((a - b).total_seconds() / 60)


def build_expected_completed_at(date_key, minute_offset, tz_name=None):
    start = local_datetime(date_key, PLAN_START_TIME, tz_name)
    if start is None:
        return None
    return to_utc_iso(start + timedelta(minutes=minute_offset))


def classify_auto_level(is_completed, is_past_date, delta_minutes,
                        warning_minutes=WARNING_MINUTES, critical_minutes=CRITICAL_MINUTES):
    """Returns (level, is_alarming)."""
    if not is_completed:
        if is_past_date:
            return 'missing', True
        return 'pending', False

    delta = delta_minutes or 0
    if delta > critical_minutes:
        return 'critical', True
    if delta > warning_minutes:
        return 'warning', True
    return 'ok', False


def apply_override(auto_level, override):
    # --- manager verdict wins ---
    if override is None:
        return auto_level
    if not override.get('is_alarming'):
        return 'ok'
    if auto_level in ('ok', 'pending'):
        return 'warning'
    return auto_level


def _empty_totals():
    return {
        'scheduled_tasks': 0,
        'completed_tasks': 0,
        'completion_pct': 0,
        'avg_delta_minutes': 0,
        'alarming_tasks': 0,
        'warning_tasks': 0,
        'critical_tasks': 0,
        'missing_tasks': 0,
        'report_days': 0,
        'expected_report_days': 0,
        'report_coverage_pct': 0,
    }


def _average(values):
    return _round_half_up(sum(values) / len(values)) if values else 0


def build_task_delta_analysis(current_date_key, date_keys, staff, templates, completion_items,
                              reports, overrides, warning_minutes=WARNING_MINUTES,
                              critical_minutes=CRITICAL_MINUTES, tz_name=None):
    """
    Compare when each scheduled task was checked off with when it was due.

    A task is due at 09:00 plus the estimates of itself and every task
    before it that day. Unchecked tasks on days before ``current_date_key``
    are missing, on later days pending. A manager override can silence an
    alert or raise one.

    Returns {'rows', 'by_user', 'totals'}. Rows are newest date first, then
    by user and sort_order.
    """
    report_by_key = {(r.get('user_id'), r.get('report_date')): r for r in reports or []}
    override_by_key = {
        (o.get('user_id'), o.get('report_date'), o.get('task_id')): o for o in overrides or []
    }
    items_by_key = defaultdict(dict)
    for item in completion_items or []:
        items_by_key[(item.get('user_id'), item.get('report_date'))][item.get('task_id')] = item

    templates_by_date = {
        date_key: templates_for_day(templates, get_weekday_code(date_key))
        for date_key in date_keys
    }

    rows = []
    for member in staff or []:
        user_id = member.get('id')
        for date_key in date_keys:
            report = report_by_key.get((user_id, date_key))
            done = items_by_key.get((user_id, date_key), {})
            is_past_date = date_key < current_date_key

            cumulative = 0
            previous_completed_at = None
            for template in templates_by_date.get(date_key) or []:
                estimated = estimated_minutes_of(template.get('estimated_minutes'))
                cumulative += estimated or 0

                completion = done.get(template.get('id'))
                completed_at = completion.get('completed_at') if completion else None
                expected_at = build_expected_completed_at(date_key, cumulative, tz_name)
                delta = minutes_between(completed_at, expected_at, tz_name) if completion else None
                auto_level, auto_alarming = classify_auto_level(
                    completion is not None, is_past_date, delta, warning_minutes, critical_minutes)

                override = override_by_key.get((user_id, date_key, template.get('id')))
                gap = None
                if completion and previous_completed_at:
                    gap = minutes_between(completed_at, previous_completed_at, tz_name)
                if completion:
                    previous_completed_at = completed_at

                rows.append({
                    'user_id': user_id,
                    'report_date': date_key,
                    'task_id': template.get('id'),
                    'title': template.get('title'),
                    'sort_order': sort_order_of(template.get('sort_order')),
                    'estimated_minutes': estimated,
                    'expected_completed_at': expected_at,
                    'completed_at': completed_at,
                    'delta_minutes': delta,
                    'gap_since_previous_minutes': gap,
                    'report_exists': report is not None,
                    'auto_level': auto_level,
                    'final_level': apply_override(auto_level, override),
                    'auto_is_alarming': auto_alarming,
                    'final_is_alarming': bool(override['is_alarming']) if override else auto_alarming,
                    'manager_is_alarming': bool(override['is_alarming']) if override else None,
                    'manager_reason': override.get('reason') if override else None,
                })

    # newest date first, then user, then sort_order
    rows.sort(key=lambda r: r['sort_order'])
    rows.sort(key=lambda r: r['user_id'] or '')
    rows.sort(key=lambda r: r['report_date'], reverse=True)

    by_user = {}
    deltas_by_user = defaultdict(list)
    report_days = defaultdict(set)
    expected_days = defaultdict(set)
    for row in rows:
        user_id = row['user_id']
        user = by_user.setdefault(user_id, _empty_totals())
        user['scheduled_tasks'] += 1
        if row['completed_at']:
            user['completed_tasks'] += 1
        if row['final_is_alarming']:
            user['alarming_tasks'] += 1
        if row['final_level'] in ('warning', 'critical', 'missing'):
            user[f"{row['final_level']}_tasks"] += 1
        expected_days[user_id].add(row['report_date'])
        if row['report_exists']:
            report_days[user_id].add(row['report_date'])
        if row['delta_minutes'] is not None:
            deltas_by_user[user_id].append(row['delta_minutes'])

    for user_id, user in by_user.items():
        user['completion_pct'] = to_percent(user['completed_tasks'], user['scheduled_tasks'])
        user['avg_delta_minutes'] = _average(deltas_by_user[user_id])
        user['expected_report_days'] = len(expected_days[user_id])
        user['report_days'] = len(report_days[user_id])
        user['report_coverage_pct'] = to_percent(user['report_days'], user['expected_report_days'])

    totals = _empty_totals()
    for user in by_user.values():
        for key in ('scheduled_tasks', 'completed_tasks', 'alarming_tasks', 'warning_tasks',
                    'critical_tasks', 'missing_tasks', 'report_days', 'expected_report_days'):
            totals[key] += user[key]
    totals['completion_pct'] = to_percent(totals['completed_tasks'], totals['scheduled_tasks'])
    totals['avg_delta_minutes'] = _average(
        [row['delta_minutes'] for row in rows if row['delta_minutes'] is not None])
    totals['report_coverage_pct'] = to_percent(totals['report_days'], totals['expected_report_days'])
    totals['manager_overrides'] = len(overrides or [])

    return {'rows': rows, 'by_user': by_user, 'totals': totals}


def get_task_delta_analysis(current_date_key, end_key, days=7, tz_name=None):
    """Load the window ending at ``end_key`` and analyse it. None for an empty window."""
    date_keys = build_date_keys(end_key, days)
    if not date_keys:
        return None
    start_key, last_key = date_keys[0], date_keys[-1]

    # --- rows for the window ---
    staff = load_staff_rows()
    templates = [t.to_row() for t in AgendaTemplate.query.all()]
    items = [
        i.to_row() for i in AgendaCompletionItem.query.filter(
            AgendaCompletionItem.report_date >= start_key,
            AgendaCompletionItem.report_date <= last_key,
        ).all()
    ]
    reports = [
        r.to_row() for r in WorkReport.query.filter(
            WorkReport.report_date >= start_key,
            WorkReport.report_date <= last_key,
        ).all()
    ]
    overrides = [
        o.to_row() for o in ManagerAlertOverride.query.filter(
            ManagerAlertOverride.report_date >= start_key,
            ManagerAlertOverride.report_date <= last_key,
        ).all()
    ]
    logger.debug("task delta %s..%s: %d items, %d overrides",
                 start_key, last_key, len(items), len(overrides))

    result = build_task_delta_analysis(current_date_key, date_keys, staff, templates, items,
                                       reports, overrides, tz_name=tz_name)
    result.update({'start_key': start_key, 'end_key': last_key})
    return result
