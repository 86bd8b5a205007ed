import csv
import logging
import re
import sys

from app import app
from date_util import WEEKDAY_CODES
from models import db, AgendaTemplate

logger = logging.getLogger(__name__)

CSV_PATH = 'static/agenda_templates.csv'  # id,title,schedule_days,sort_order,input_type,estimated_minutes


def _int_or_none(value):
    value = (value or '').strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _schedule_days(value):
    codes = [code.upper() for code in re.split(r'[\s,;]+', value or '') if code]
    return ','.join(code for code in codes if code in WEEKDAY_CODES)


def import_templates(csv_path=CSV_PATH):
    """
    Insert or update agenda templates from a CSV file.

    Returns (created, updated) counts. Rows without an id or title are skipped.
    """
    created = updated = 0
    with open(csv_path, encoding='utf-8') as f:
        reader = csv.DictReader(f)
        for row in reader:
            template_id = (row.get('id') or '').strip()
            title = (row.get('title') or '').strip()
            if not template_id or not title:
                logger.warning("skipping template row without id/title: %r", row)
                continue

            input_type = (row.get('input_type') or '').strip() or 'none'
            if input_type not in ('none', 'count', 'text'):
                input_type = 'none'

            record = db.session.get(AgendaTemplate, template_id)
            if record is None:
                record = AgendaTemplate(id=template_id)
                db.session.add(record)
                created += 1
            else:
                updated += 1

            record.title = title
            record.schedule_days = _schedule_days(row.get('schedule_days'))
            record.sort_order = _int_or_none(row.get('sort_order'))
            record.input_type = input_type
            minutes = _int_or_none(row.get('estimated_minutes'))
            record.estimated_minutes = minutes if minutes is None or minutes >= 0 else None

    db.session.commit()
    return created, updated


if __name__ == '__main__':
    path = sys.argv[1] if len(sys.argv) > 1 else CSV_PATH
    with app.app_context():  # work inside the Flask app context
        db.create_all()
        try:
            created, updated = import_templates(path)
        except FileNotFoundError:
            logger.error("CSV file not found: %s", path)
            sys.exit(1)
    logger.info("CSV -> DB import finished: %d created, %d updated", created, updated)
