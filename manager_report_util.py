import logging
from collections import defaultdict

from agenda_util import (CUSTOM_TASK_PREFIX, estimated_minutes_of, is_custom_task_for,
                         templates_for_day)
from date_util import get_weekday_code
from models import (AgendaCompletionItem, AgendaCustomTask, AgendaTaskRemoval, AgendaTemplate,
                    ManagerNote, WorkReport)

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 30


def build_historical_report_summaries(reports, templates, completions, custom_tasks, removals):
    """
    Planned against completed tasks for each work report.

    The plan of a day is its scheduled templates minus the ones removed for
    that date, plus the active custom tasks of the date. Removal rows are
    replayed in order, so a later is_removed=False restores the template.

    Each summary is the report row plus key, planned_count, completed_count,
    completion_label ("2/3"), status and planned_tasks. Status is 'no_plan'
    when nothing was planned, 'complete' when everything was checked and
    'incomplete' otherwise.
    """
    completed_by_user_day = defaultdict(set)
    for row in completions or []:
        completed_by_user_day[(row.get('user_id'), row.get('report_date'))].add(row.get('task_id'))

    # --- date-global removals ---
    removed = set()
    for row in removals or []:
        key = (row.get('report_date'), row.get('task_id'))
        if row.get('is_removed'):
            removed.add(key)
        else:
            removed.discard(key)

    custom_by_day = defaultdict(list)
    for task in custom_tasks or []:
        if is_custom_task_for(task, task.get('report_date')):
            custom_by_day[task.get('report_date')].append(task)

    summaries = []
    for report in reports or []:
        report_date = report.get('report_date')
        day_code = get_weekday_code(report_date)
        day_templates = [
            t for t in templates_for_day(templates, day_code)
            if (report_date, t.get('id')) not in removed
        ] if day_code else []
        done = completed_by_user_day.get((report.get('user_id'), report_date), set())

        planned = [{
            'id': t.get('id'),
            'title': t.get('title'),
            'estimated_minutes': estimated_minutes_of(t.get('estimated_minutes')),
            'is_completed': t.get('id') in done,
            'kind': 'template',
        } for t in day_templates]
        for task in custom_by_day.get(report_date, []):
            task_id = f"{CUSTOM_TASK_PREFIX}{task.get('id')}"
            planned.append({
                'id': task_id,
                'title': task.get('title'),
                'estimated_minutes': estimated_minutes_of(task.get('estimated_minutes')),
                'is_completed': task_id in done,
                'kind': 'custom',
            })

        planned_count = len(planned)
        completed_count = sum(1 for task in planned if task['is_completed'])
        if planned_count == 0:
            status = 'no_plan'
        elif completed_count >= planned_count:
            status = 'complete'
        else:
            status = 'incomplete'

        summaries.append({
            **report,
            'key': f"{report.get('user_id')}:{report_date}",
            'planned_count': planned_count,
            'completed_count': completed_count,
            'completion_label': f"{completed_count}/{planned_count}",
            'status': status,
            'planned_tasks': planned,
        })

    return summaries


def group_notes_by_user_date(notes):
    """{user_id: {report_date: [notes in input order]}}"""
    grouped = {}
    for note in notes or []:
        per_user = grouped.setdefault(note.get('user_id'), {})
        per_user.setdefault(note.get('report_date'), []).append(note)
    return grouped


def get_historical_reports(user_id, limit=HISTORY_LIMIT):
    """The latest ``limit`` reports of one user, newest first, with their plan."""
    reports = [
        r.to_row() for r in WorkReport.query.filter_by(user_id=user_id)
        .order_by(WorkReport.report_date.desc()).limit(limit).all()
    ]
    if not reports:
        return []
    date_keys = [r['report_date'] for r in reports]
    start_key, end_key = min(date_keys), max(date_keys)

    # --- rows for the covered dates ---
    templates = [t.to_row() for t in AgendaTemplate.query.all()]
    completions = [
        i.to_row() for i in AgendaCompletionItem.query.filter(
            AgendaCompletionItem.user_id == user_id,
            AgendaCompletionItem.report_date.in_(date_keys),
        ).all()
    ]
    custom_tasks = [
        t.to_row() for t in AgendaCustomTask.query.filter(
            AgendaCustomTask.is_active.is_(True),
            AgendaCustomTask.report_date >= start_key,
            AgendaCustomTask.report_date <= end_key,
        ).order_by(AgendaCustomTask.created_at, AgendaCustomTask.id).all()
    ]
    removals = [
        r.to_row() for r in AgendaTaskRemoval.query.filter(
            AgendaTaskRemoval.report_date >= start_key,
            AgendaTaskRemoval.report_date <= end_key,
        ).order_by(AgendaTaskRemoval.id).all()
    ]
    logger.debug("history for %s: %d reports %s..%s", user_id, len(reports), start_key, end_key)

    return build_historical_report_summaries(reports, templates, completions, custom_tasks, removals)


def get_notes_for_date(date_key):
    notes = [
        n.to_row() for n in
        ManagerNote.query.filter_by(report_date=date_key).order_by(ManagerNote.id).all()
    ]
    return group_notes_by_user_date(notes)
