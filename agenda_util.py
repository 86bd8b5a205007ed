import json
import logging
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

INPUT_TYPES = ('none', 'count', 'text')
CUSTOM_TASK_PREFIX = 'custom:'
CUSTOM_SORT_OFFSET = 10000


def _as_list(value):
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return []


def sort_order_of(value):
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return 0


def estimated_minutes_of(value):
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    return None


def is_scheduled_on(template, day_code):
    return day_code in _as_list(template.get('schedule_days'))


def templates_for_day(templates, day_code):
    """Templates scheduled on ``day_code``, stable-sorted by sort_order."""
    scheduled = [t for t in templates or [] if is_scheduled_on(t, day_code)]
    return sorted(scheduled, key=lambda t: sort_order_of(t.get('sort_order')))


def is_custom_task_for(task, date_key):
    # strict bool
    return task.get('is_active') is True and task.get('report_date') == date_key


def removed_task_ids(removals, date_key):
    """Template ids hidden on ``date_key``, whoever requested the removal."""
    return {
        row.get('task_id')
        for row in removals or []
        if row.get('is_removed') is True and row.get('report_date') == date_key
    }


def _unique_task_ids(values):
    # keep first-seen order
    return list(dict.fromkeys(v for v in values if isinstance(v, str) and v))


def build_agenda_items_for_date(date_key, day_code, templates, custom_tasks,
                                current_user_id=None, removals=None):
    """
    Build the ordered agenda for one date.

    Templates scheduled on ``day_code`` come first, ordered by sort_order,
    followed by the active custom tasks of ``date_key`` in input order.

    Removal rows are date-global: any ``is_removed`` row for ``date_key``
    hides the template for every viewer, whoever created it. The
    ``current_user_id`` of the viewer therefore does not narrow the set.
    """
    removed_ids = removed_task_ids(removals, date_key)

    scheduled = [
        t for t in templates_for_day(templates, day_code)
        if t.get('id') not in removed_ids
    ]

    items = []
    for template in scheduled:
        input_type = template.get('input_type')
        items.append({
            'id': template.get('id'),
            'title': template.get('title'),
            'input_type': input_type if input_type in INPUT_TYPES else 'none',
            'sort_order': sort_order_of(template.get('sort_order')),
            'count': None,
            'estimated_minutes': estimated_minutes_of(template.get('estimated_minutes')),
        })

    day_tasks = [task for task in custom_tasks or [] if is_custom_task_for(task, date_key)]
    for index, task in enumerate(day_tasks):
        items.append({
            'id': f"{CUSTOM_TASK_PREFIX}{task.get('id')}",
            'title': task.get('title'),
            'input_type': 'none',
            'sort_order': CUSTOM_SORT_OFFSET + index,
            'count': None,
            'estimated_minutes': estimated_minutes_of(task.get('estimated_minutes')),
        })

    return items


def parse_completed_task_ids(raw):
    """
    Read the legacy completed_task_ids column.

    The column holds either a list or its JSON text depending on who
    wrote it. Anything that is not a list of ids gives [].
    """
    if isinstance(raw, (list, tuple)):
        return _unique_task_ids(raw)
    if not isinstance(raw, str) or not raw.strip():
        return []
    try:
        parsed = json.loads(raw)
    except ValueError:
        logger.debug("ignoring unparseable completed_task_ids: %r", raw)
        return []
    if isinstance(parsed, list):
        return _unique_task_ids(parsed)
    return []


def resolve_completed_task_ids(completion_items_available, completion_item_rows,
                               legacy_completed_task_ids):
    # --- items table wins once it exists ---
    if completion_items_available:
        return _unique_task_ids(row.get('task_id') for row in completion_item_rows or [])
    return _unique_task_ids(_as_list(legacy_completed_task_ids))


def build_agenda_custom_task_range(selected_date_key, workweek_date_keys):
    """
    Inclusive date range to fetch custom tasks for.

    Covers the workweek shown in the picker and the selected date, which
    can sit in another week. Date keys sort chronologically as strings.
    """
    keys = sorted(k for k in [selected_date_key, *(workweek_date_keys or [])] if k)
    if not keys:
        return {'start_key': None, 'end_key': None}
    return {'start_key': keys[0], 'end_key': keys[-1]}


def build_completion_item_action(was_checked, user_id, report_date, task_id,
                                 actor_user_id=None, source='staff', now=None):
    """
    Decide the write for toggling one agenda task.

    Unchecking deletes the completion item, checking inserts one. The
    actor is recorded as completed_by so manager writes stay traceable.
    """
    if was_checked:
        return {
            'type': 'delete',
            'selector': {'user_id': user_id, 'report_date': report_date, 'task_id': task_id},
        }

    completed_at = now or datetime.now(timezone.utc)
    return {
        'type': 'insert',
        'payload': {
            'user_id': user_id,
            'report_date': report_date,
            'task_id': task_id,
            'completed_at': completed_at.isoformat(),
            'completed_by': actor_user_id or user_id,
            'source': source or 'staff',
        },
    }


def apply_completed_task_toggle(ids, task_id, is_currently_completed):
    current = {i for i in ids or [] if i}
    if is_currently_completed:
        current.discard(task_id)
    else:
        current.add(task_id)
    return sorted(current)


def build_task_removal_set(rows):
    # --- replay in order ---
    removed = set()
    for row in rows or []:
        key = (row.get('user_id'), row.get('report_date'), row.get('task_id'))
        if row.get('is_removed'):
            removed.add(key)
        else:
            removed.discard(key)
    return removed


def is_task_removed(removed, user_id, report_date, task_id):
    return (user_id, report_date, task_id) in removed


def summarize_week(date_keys, templates_by_day, completions_by_user):
    """
    Count completed agenda tasks per user over a set of days.

    Args:
        date_keys: days to include.
        templates_by_day: {date_key: [template rows due that day]}.
        completions_by_user: {user_id: {date_key: [completed task ids]}}.

    Returns:
        {'by_user': {user_id: {'completed', 'total'}},
         'total_completed', 'total_tasks'}
    """
    by_user = {}
    total_completed = 0
    total_tasks = 0

    for date_key in date_keys:
        day_templates = templates_by_day.get(date_key) or []
        total_tasks += len(day_templates)

        for user_id, per_day in completions_by_user.items():
            completed_ids = set(per_day.get(date_key) or [])
            completed = sum(1 for t in day_templates if t.get('id') in completed_ids)

            summary = by_user.setdefault(user_id, {'completed': 0, 'total': 0})
            summary['completed'] += completed
            summary['total'] += len(day_templates)
            total_completed += completed

    return {
        'by_user': by_user,
        'total_completed': total_completed,
        'total_tasks': total_tasks,
    }
