"""
Celery Beat Schedule Configuration

Defines periodic tasks that run on a schedule.
"""

from celery.schedules import crontab

# Schedule configuration
beat_schedule = {
    # Quote delivery - top of every hour. Readiness is "at or after the
    # scheduled time and not yet delivered today", so a missed run is
    # picked up by the next one and extra runs deliver nothing twice.
    'deliver-due-quotes': {
        'task': 'tasks.deliver_due_quotes',
        'schedule': crontab(minute=0),
    },
}
