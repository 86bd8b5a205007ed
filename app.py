import os
import logging
from datetime import datetime

from flask import Flask, request, jsonify
from flask_migrate import Migrate

from models import (db, Profile, AgendaTemplate, AgendaCustomTask, AgendaTaskRemoval,
                    AgendaCompletion, AgendaCompletionItem, ManagerAlertOverride, ManagerNote)
from agenda_util import (build_agenda_items_for_date, build_agenda_custom_task_range,
                         build_completion_item_action, apply_completed_task_toggle,
                         parse_completed_task_ids, resolve_completed_task_ids,
                         summarize_week)
from date_util import get_weekday_code, get_workweek_date_keys, parse_date_key, format_date_key
from manager_status_util import get_manager_status
from manager_agenda_util import get_daily_agenda_summary, get_weekly_performance
from manager_analytics_util import get_task_delta_analysis
from manager_report_util import get_historical_reports, get_notes_for_date
from staff_util import resolve_intranet_mirror_user_id

# Directory of this file (app.py)
BASE_DIR = os.path.abspath(os.path.dirname(__file__))

# Shared db directory one level up
DB_DIR = os.path.join(os.path.abspath(os.path.join(BASE_DIR, '..')), 'db')
DB_PATH = os.path.join(DB_DIR, 'agenda.db')

DATABASE_URI = os.getenv('AGENDA_DATABASE_URI')
if not DATABASE_URI:
    os.makedirs(DB_DIR, exist_ok=True)
    DATABASE_URI = f'sqlite:///{DB_PATH}'

logging.basicConfig(
    level=os.getenv('AGENDA_LOG_LEVEL', 'INFO').upper(),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config['SQLALCHEMY_DATABASE_URI'] = DATABASE_URI
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
app.config['AGENDA_COMPLETION_ITEMS_AVAILABLE'] = (
    os.getenv('AGENDA_COMPLETION_ITEMS_AVAILABLE', 'true').lower() in ('1', 'true', 'yes')
)
app.config['AGENDA_TIME_ZONE'] = os.getenv('AGENDA_TIME_ZONE', 'Europe/Stockholm')
app.secret_key = os.getenv('AGENDA_SECRET_KEY', 'dev-secret-key')
db.init_app(app)

migrate = Migrate(app, db)

MAX_STATUS_DAYS = 90
MAX_HISTORY_REPORTS = 100


def _truthy(value):
    return value in (True, 'true', '1', 1, 'yes')


def _date_arg(value):
    """Validated date key from a request value, None when unusable."""
    date_obj = parse_date_key(value)
    return format_date_key(date_obj) if date_obj else None


def _int_arg(name, default):
    """Integer query arg, ValueError when it does not parse."""
    raw = request.args.get(name)
    if raw is None or raw.strip() == '':
        return default
    return int(raw)


def _time_zone():
    return app.config['AGENDA_TIME_ZONE']


def _completion_items_available():
    return app.config['AGENDA_COMPLETION_ITEMS_AVAILABLE']


def load_completed_task_ids(user_id, date_key):
    items = AgendaCompletionItem.query.filter_by(user_id=user_id, report_date=date_key).all()
    legacy = AgendaCompletion.query.filter_by(user_id=user_id, report_date=date_key).first()
    return resolve_completed_task_ids(
        _completion_items_available(),
        [item.to_row() for item in items],
        parse_completed_task_ids(legacy.completed_task_ids if legacy else None),
    )


def load_agenda_rows(date_key):
    """Templates, custom tasks and removals needed to build the agenda of one date."""
    task_range = build_agenda_custom_task_range(date_key, get_workweek_date_keys(date_key))
    start_key, end_key = task_range['start_key'], task_range['end_key']

    templates = [t.to_row() for t in AgendaTemplate.query.all()]
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
        ).all()
    ]
    return templates, custom_tasks, removals


# Agenda for one user and day
@app.route('/api/agenda')
def api_agenda():
    user_id = request.args.get('user_id')
    if not user_id:
        return jsonify({'error': 'user_id is required'}), 400

    date_key = _date_arg(request.args.get('date', datetime.now().strftime('%Y-%m-%d')))
    if not date_key:
        return jsonify({'error': 'invalid date format'}), 400

    # --- manager mirrors a staff agenda ---
    is_manager = _truthy(request.args.get('is_manager'))
    staff = [p.to_row() for p in Profile.query.order_by(Profile.name, Profile.id).all()]
    agenda_user_id = resolve_intranet_mirror_user_id(user_id, is_manager, staff)

    templates, custom_tasks, removals = load_agenda_rows(date_key)
    items = build_agenda_items_for_date(
        date_key, get_weekday_code(date_key), templates, custom_tasks,
        current_user_id=agenda_user_id, removals=removals,
    )
    completed_ids = load_completed_task_ids(agenda_user_id, date_key)
    completed = set(completed_ids)
    for item in items:
        item['is_completed'] = item['id'] in completed

    return jsonify({
        'user_id': agenda_user_id,
        'date': date_key,
        'day_code': get_weekday_code(date_key),
        'items': items,
        'completed_task_ids': completed_ids,
        'estimated_minutes_total': sum(item['estimated_minutes'] or 0 for item in items),
    })


# Workweek and custom task range
@app.route('/api/agenda/week')
def api_agenda_week():
    date_key = _date_arg(request.args.get('date'))
    if not date_key:
        return jsonify({'error': 'date is required'}), 400

    workweek = get_workweek_date_keys(date_key)
    return jsonify({
        'date': date_key,
        'workweek': workweek,
        'range': build_agenda_custom_task_range(date_key, workweek),
    })


# Check / uncheck one agenda task
@app.route('/api/agenda/toggle', methods=['POST'])
def api_agenda_toggle():
    data = request.get_json(silent=True) or {}
    user_id = data.get('user_id')
    task_id = data.get('task_id')
    date_key = _date_arg(data.get('date'))
    if not user_id or not task_id or not date_key:
        return jsonify({'error': 'user_id, task_id and date are required'}), 400

    completed_ids = load_completed_task_ids(user_id, date_key)
    was_checked = task_id in completed_ids

    if _completion_items_available():
        action = build_completion_item_action(
            was_checked, user_id, date_key, task_id,
            actor_user_id=data.get('actor_user_id'),
            source=data.get('source', 'staff'),
        )
        if action['type'] == 'insert':
            payload = action['payload']
            item = AgendaCompletionItem.query.filter_by(
                user_id=user_id, report_date=date_key, task_id=task_id).first()
            if item:
                item.completed_at = payload['completed_at']
                item.completed_by = payload['completed_by']
                item.source = payload['source']
            else:
                db.session.add(AgendaCompletionItem(**payload))
        else:
            AgendaCompletionItem.query.filter_by(**action['selector']).delete()

    # --- legacy list sync ---
    updated = apply_completed_task_toggle(completed_ids, task_id, was_checked)
    legacy = AgendaCompletion.query.filter_by(user_id=user_id, report_date=date_key).first()
    if legacy is None:
        legacy = AgendaCompletion(user_id=user_id, report_date=date_key)
        db.session.add(legacy)
    legacy.set_task_ids(updated)

    db.session.commit()
    logger.info("agenda task %s %s for %s on %s",
                task_id, 'unchecked' if was_checked else 'checked', user_id, date_key)
    return jsonify({'status': 'success', 'is_completed': not was_checked,
                    'completed_task_ids': updated})


# Hide or restore a recurring task on one date
@app.route('/api/agenda/removal', methods=['POST'])
def api_agenda_removal():
    data = request.get_json(silent=True) or {}
    user_id = data.get('user_id')
    task_id = data.get('task_id')
    date_key = _date_arg(data.get('date'))
    if not user_id or not task_id or not date_key:
        return jsonify({'error': 'user_id, task_id and date are required'}), 400

    db.get_or_404(AgendaTemplate, task_id)
    is_removed = _truthy(data.get('is_removed', True))

    record = AgendaTaskRemoval.query.filter_by(
        user_id=user_id, report_date=date_key, task_id=task_id).first()
    if record:
        record.is_removed = is_removed
    else:
        record = AgendaTaskRemoval(user_id=user_id, report_date=date_key,
                                   task_id=task_id, is_removed=is_removed)
        db.session.add(record)

    db.session.commit()
    return jsonify({'status': 'success', 'removal': record.to_row()})


# One-off task for a date
@app.route('/api/agenda/custom_task', methods=['POST'])
def api_agenda_custom_task():
    data = request.get_json(silent=True) or {}
    date_key = _date_arg(data.get('date'))
    title = (data.get('title') or '').strip()
    if not date_key or not title:
        return jsonify({'error': 'date and title are required'}), 400

    estimated_minutes = data.get('estimated_minutes')
    if estimated_minutes is not None:
        try:
            estimated_minutes = int(estimated_minutes)
        except (ValueError, TypeError):
            return jsonify({'error': 'estimated_minutes must be an integer'}), 400
        if estimated_minutes < 0:
            return jsonify({'error': 'estimated_minutes must not be negative'}), 400

    task = AgendaCustomTask(report_date=date_key, title=title,
                            estimated_minutes=estimated_minutes, is_active=True)
    db.session.add(task)
    db.session.commit()
    return jsonify({'status': 'success', 'task': task.to_row()}), 201


# Over-estimate days
@app.route('/api/manager/status')
def api_manager_status():
    date_key = _date_arg(request.args.get('date', datetime.now().strftime('%Y-%m-%d')))
    if not date_key:
        return jsonify({'error': 'invalid date format'}), 400

    try:
        days = _int_arg('days', 7)
    except ValueError:
        return jsonify({'error': 'days must be an integer'}), 400
    if days < 1 or days > MAX_STATUS_DAYS:
        return jsonify({'error': f'days must be between 1 and {MAX_STATUS_DAYS}'}), 400

    return jsonify(get_manager_status(date_key, days))


# Weekly completion summary
@app.route('/api/manager/week')
def api_manager_week():
    date_key = _date_arg(request.args.get('date'))
    if not date_key:
        return jsonify({'error': 'date is required'}), 400

    date_keys = get_workweek_date_keys(date_key)
    templates, custom_tasks, removals = load_agenda_rows(date_key)
    agenda_by_day = {
        key: build_agenda_items_for_date(key, get_weekday_code(key), templates,
                                         custom_tasks, removals=removals)
        for key in date_keys
    }

    staff = Profile.query.filter(Profile.is_staff.is_(True)).order_by(Profile.name, Profile.id).all()
    completions_by_user = {
        member.id: {key: load_completed_task_ids(member.id, key) for key in date_keys}
        for member in staff
    }

    summary = summarize_week(date_keys, agenda_by_day, completions_by_user)
    summary['date_keys'] = date_keys
    return jsonify(summary)


# Daily task status
@app.route('/api/manager/daily')
def api_manager_daily():
    date_key = _date_arg(request.args.get('date', datetime.now().strftime('%Y-%m-%d')))
    if not date_key:
        return jsonify({'error': 'invalid date format'}), 400

    summary = get_daily_agenda_summary(date_key, _time_zone())
    summary['notes'] = get_notes_for_date(date_key)
    return jsonify(summary)


# Weekly performance
@app.route('/api/manager/performance')
def api_manager_performance():
    date_key = _date_arg(request.args.get('date', datetime.now().strftime('%Y-%m-%d')))
    if not date_key:
        return jsonify({'error': 'invalid date format'}), 400

    return jsonify(get_weekly_performance(date_key, _time_zone()))


# Task delta analysis
@app.route('/api/manager/analytics')
def api_manager_analytics():
    today_key = datetime.now().strftime('%Y-%m-%d')
    date_key = _date_arg(request.args.get('date', today_key))
    if not date_key:
        return jsonify({'error': 'invalid date format'}), 400

    try:
        days = _int_arg('days', 7)
    except ValueError:
        return jsonify({'error': 'days must be an integer'}), 400
    if days < 1 or days > MAX_STATUS_DAYS:
        return jsonify({'error': f'days must be between 1 and {MAX_STATUS_DAYS}'}), 400

    current_key = _date_arg(request.args.get('today', today_key))
    if not current_key:
        return jsonify({'error': 'invalid date format'}), 400

    return jsonify(get_task_delta_analysis(current_key, date_key, days, _time_zone()))


# Alert override
@app.route('/api/manager/alert_override', methods=['POST'])
def api_manager_alert_override():
    data = request.get_json(silent=True) or {}
    user_id = data.get('user_id')
    task_id = data.get('task_id')
    date_key = _date_arg(data.get('date'))
    if not user_id or not task_id or not date_key or 'is_alarming' not in data:
        return jsonify({'error': 'user_id, task_id, date and is_alarming are required'}), 400

    is_alarming = _truthy(data.get('is_alarming'))
    reason = (data.get('reason') or '').strip() or None

    record = ManagerAlertOverride.query.filter_by(
        user_id=user_id, report_date=date_key, task_id=task_id).first()
    if record:
        record.is_alarming = is_alarming
        record.reason = reason
    else:
        record = ManagerAlertOverride(user_id=user_id, report_date=date_key, task_id=task_id,
                                      is_alarming=is_alarming, reason=reason)
        db.session.add(record)

    db.session.commit()
    logger.info("alert override %s on %s for %s: alarming=%s",
                task_id, date_key, user_id, is_alarming)
    return jsonify({'status': 'success', 'override': record.to_row()})


# Report history
@app.route('/api/manager/history')
def api_manager_history():
    user_id = request.args.get('user_id')
    if not user_id:
        return jsonify({'error': 'user_id is required'}), 400

    try:
        limit = _int_arg('limit', 30)
    except ValueError:
        return jsonify({'error': 'limit must be an integer'}), 400
    if limit < 1 or limit > MAX_HISTORY_REPORTS:
        return jsonify({'error': f'limit must be between 1 and {MAX_HISTORY_REPORTS}'}), 400

    return jsonify({'user_id': user_id, 'reports': get_historical_reports(user_id, limit)})


# Manager notes
@app.route('/api/manager/notes', methods=['GET', 'POST'])
def api_manager_notes():
    if request.method == 'GET':
        date_key = _date_arg(request.args.get('date'))
        if not date_key:
            return jsonify({'error': 'date is required'}), 400
        return jsonify({'date': date_key, 'notes': get_notes_for_date(date_key)})

    data = request.get_json(silent=True) or {}
    user_id = data.get('user_id')
    date_key = _date_arg(data.get('date'))
    note = (data.get('note') or '').strip()
    if not user_id or not date_key or not note:
        return jsonify({'error': 'user_id, date and note are required'}), 400

    record = ManagerNote(user_id=user_id, report_date=date_key, task_id=data.get('task_id'),
                         note=note, created_by=data.get('created_by'))
    db.session.add(record)
    db.session.commit()
    return jsonify({'status': 'success', 'note': record.to_row()}), 201


if __name__ == '__main__':
    with app.app_context():
        db.create_all()
    app.run(host='0.0.0.0', port=5000, debug=True)
