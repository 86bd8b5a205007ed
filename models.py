import json
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

from date_util import WEEKDAY_CODES

db = SQLAlchemy()


def _utcnow():
    return datetime.now(timezone.utc)


class Profile(db.Model):
    __tablename__ = 'profiles'

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(100))
    is_staff = db.Column(db.Boolean)        # NULL = unknown
    is_manager = db.Column(db.Boolean)

    def to_row(self):
        return {'id': self.id, 'is_staff': self.is_staff, 'is_manager': self.is_manager}


class AgendaTemplate(db.Model):
    __tablename__ = 'agenda_templates'

    id = db.Column(db.String(64), primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    schedule_days = db.Column(db.String(40))       # e.g. "MO,WE,FR"
    sort_order = db.Column(db.Integer)
    input_type = db.Column(db.String(10), default='none')
    estimated_minutes = db.Column(db.Integer)

    @property
    def schedule_day_list(self):
        if not self.schedule_days:
            return []
        codes = [code.strip().upper() for code in self.schedule_days.split(',')]
        return [code for code in codes if code in WEEKDAY_CODES]

    def to_row(self):
        return {
            'id': self.id,
            'title': self.title,
            'schedule_days': self.schedule_day_list,
            'sort_order': self.sort_order,
            'input_type': self.input_type or 'none',
            'estimated_minutes': self.estimated_minutes,
        }


class AgendaCustomTask(db.Model):
    __tablename__ = 'agenda_manager_custom_tasks'

    id = db.Column(db.Integer, primary_key=True)
    report_date = db.Column(db.String(10), nullable=False, index=True)   # "2026-03-02"
    title = db.Column(db.String(200), nullable=False)
    estimated_minutes = db.Column(db.Integer)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_row(self):
        return {
            'id': str(self.id),
            'report_date': self.report_date,
            'title': self.title,
            'estimated_minutes': self.estimated_minutes,
            'is_active': bool(self.is_active),
        }


class AgendaTaskRemoval(db.Model):
    __tablename__ = 'agenda_manager_task_removals'
    __table_args__ = (db.UniqueConstraint('user_id', 'report_date', 'task_id'),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False)
    report_date = db.Column(db.String(10), nullable=False, index=True)
    task_id = db.Column(db.String(64), nullable=False)
    is_removed = db.Column(db.Boolean, default=True, nullable=False)

    def to_row(self):
        return {
            'user_id': self.user_id,
            'report_date': self.report_date,
            'task_id': self.task_id,
            'is_removed': bool(self.is_removed),
        }


class AgendaCompletion(db.Model):
    """Legacy per-day completion record, one JSON list per user and date."""
    __tablename__ = 'agenda_completions'
    __table_args__ = (db.UniqueConstraint('user_id', 'report_date'),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False)
    report_date = db.Column(db.String(10), nullable=False)
    completed_task_ids = db.Column(db.Text, default='[]')
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def set_task_ids(self, ids):
        self.completed_task_ids = json.dumps(list(ids))


class AgendaCompletionItem(db.Model):
    __tablename__ = 'agenda_completion_items'
    __table_args__ = (db.UniqueConstraint('user_id', 'report_date', 'task_id'),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False)
    report_date = db.Column(db.String(10), nullable=False, index=True)
    task_id = db.Column(db.String(64), nullable=False)
    completed_at = db.Column(db.String(40))
    completed_by = db.Column(db.String(64))
    source = db.Column(db.String(10), default='staff')   # 'staff' / 'manager'

    def to_row(self):
        return {
            'user_id': self.user_id,
            'report_date': self.report_date,
            'task_id': self.task_id,
            'completed_at': self.completed_at,
            'completed_by': self.completed_by,
            'source': self.source,
        }


class WorkReport(db.Model):
    __tablename__ = 'work_reports'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False)
    report_date = db.Column(db.String(10), nullable=False, index=True)
    start_time = db.Column(db.String(8))   # "HH:MM" or "HH:MM:SS"
    end_time = db.Column(db.String(8))
    did = db.Column(db.Text)
    handover = db.Column(db.Text)

    def to_row(self):
        return {
            'user_id': self.user_id,
            'report_date': self.report_date,
            'did': self.did,
            'handover': self.handover,
            'start_time': self.start_time,
            'end_time': self.end_time,
        }


class ManagerNote(db.Model):
    __tablename__ = 'agenda_manager_notes'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False)
    report_date = db.Column(db.String(10), nullable=False, index=True)
    task_id = db.Column(db.String(64))     # NULL = note on the whole day
    note = db.Column(db.Text, nullable=False)
    created_by = db.Column(db.String(64))
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_row(self):
        return {
            'id': str(self.id),
            'user_id': self.user_id,
            'report_date': self.report_date,
            'task_id': self.task_id,
            'note': self.note,
            'created_by': self.created_by,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class ManagerAlertOverride(db.Model):
    """Manager verdict on whether one task of one day is worth an alert."""
    __tablename__ = 'agenda_manager_alert_overrides'
    __table_args__ = (db.UniqueConstraint('user_id', 'report_date', 'task_id'),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False)
    report_date = db.Column(db.String(10), nullable=False, index=True)
    task_id = db.Column(db.String(64), nullable=False)
    is_alarming = db.Column(db.Boolean, nullable=False)
    reason = db.Column(db.Text)

    def to_row(self):
        return {
            'user_id': self.user_id,
            'report_date': self.report_date,
            'task_id': self.task_id,
            'is_alarming': bool(self.is_alarming),
            'reason': self.reason,
        }
