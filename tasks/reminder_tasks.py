# tasks/reminder_tasks.py
"""
Celery worker for gift reminder delivery

A beat schedule runs check_due_reminders once a day at REMINDER_CHECK_HOUR
(UTC). send_reminder delivers a single reminder and retries with backoff
when the SMTP server cannot be reached. Every task runs inside the Flask
application context so storage and configuration are available.
"""

from typing import Any, Dict, Optional

from celery import Celery, Task
from celery.schedules import crontab
from celery.signals import task_prerun, task_postrun, task_failure
from celery.utils.log import get_task_logger
from kombu import Queue

from services.email import EmailConnectionError

# Configure task logger
logger = get_task_logger(__name__)

# Flask application bound by configure_celery
flask_app = None


class ContextTask(Task):
    """Make celery tasks work with Flask app context"""

    def __call__(self, *args, **kwargs):
        if flask_app is None:
            return self.run(*args, **kwargs)
        with flask_app.app_context():
            return self.run(*args, **kwargs)


celery_app = Celery('giftgenie', task_cls=ContextTask)
celery_app.conf.update({
    # Serialization
    'task_serializer': 'json',
    'result_serializer': 'json',
    'accept_content': ['json'],

    # Timezone
    'timezone': 'UTC',
    'enable_utc': True,

    # Task Execution
    'task_acks_late': True,
    'task_reject_on_worker_lost': True,
    'worker_prefetch_multiplier': 1,
    'result_expires': 3600,

    # Routing
    'task_default_queue': 'default',
    'task_queues': (
        Queue('reminders', routing_key='reminders'),
        Queue('default', routing_key='default'),
    ),
    'task_routes': {
        'tasks.reminder_tasks.check_due_reminders': {'queue': 'reminders'},
        'tasks.reminder_tasks.send_reminder': {'queue': 'reminders'},
    },

    # Monitoring
    'worker_send_task_events': True,
    'task_send_sent_event': True,
    'worker_hijack_root_logger': False,
})


def configure_celery(app) -> Celery:
    """
    Bind the Celery app to a Flask application

    Args:
        app: Flask application providing broker settings and REMINDER_CHECK_HOUR

    Returns:
        The configured Celery application
    """
    global flask_app
    flask_app = app

    celery_app.conf.update({
        'broker_url': app.config['CELERY_BROKER_URL'],
        'result_backend': app.config['CELERY_RESULT_BACKEND'],
        'task_always_eager': app.config.get('CELERY_TASK_ALWAYS_EAGER', False),
        'beat_schedule': {
            'check-due-reminders': {
                'task': 'tasks.reminder_tasks.check_due_reminders',
                'schedule': crontab(hour=app.config.get('REMINDER_CHECK_HOUR', 9), minute=0),
            },
        },
    })

    app.extensions['celery'] = celery_app
    app.logger.info(f"Celery configured, daily reminder check at {app.config.get('REMINDER_CHECK_HOUR', 9)}:00 UTC")
    return celery_app


@celery_app.task(name='tasks.reminder_tasks.check_due_reminders')
def check_due_reminders() -> Dict[str, int]:
    """Deliver every reminder due today"""
    from services.reminders import get_reminder_service

    summary = get_reminder_service().check_due_reminders()
    logger.info(f"Daily reminder check finished: {summary}")
    return summary


@celery_app.task(bind=True, max_retries=3, default_retry_delay=60,
                 name='tasks.reminder_tasks.send_reminder')
def send_reminder(self, reminder_id: str) -> Dict[str, Any]:
    """
    Deliver one reminder

    Args:
        reminder_id: Id of the reminder to send

    Returns:
        Dict with reminder_id and result ('sent', 'skipped', 'failed', 'missing')
    """
    from core.storage import get_storage
    from services.reminders import get_reminder_service

    reminder: Optional[Dict[str, Any]] = get_storage().get_reminder(reminder_id)
    if reminder is None:
        logger.warning(f"Reminder {reminder_id} no longer exists")
        return {'reminder_id': reminder_id, 'result': 'missing'}

    try:
        outcome = get_reminder_service().process_reminder(reminder, raise_on_connection_error=True)
    except EmailConnectionError as e:
        countdown = 60 * (2 ** self.request.retries)
        logger.warning(f"SMTP unavailable for reminder {reminder_id}, retrying in {countdown}s: {str(e)}")
        raise self.retry(exc=e, countdown=countdown)

    return {'reminder_id': reminder_id, 'result': outcome}


# Celery signal handlers for monitoring
@task_prerun.connect
def task_prerun_handler(sender=None, task_id=None, task=None, args=None, kwargs=None, **extras):
    """Handle task pre-run events"""
    logger.info(f"Task {task.name} [{task_id}] starting")


@task_postrun.connect
def task_postrun_handler(sender=None, task_id=None, task=None, args=None, kwargs=None,
                         retval=None, state=None, **extras):
    """Handle task post-run events"""
    logger.info(f"Task {task.name} [{task_id}] completed with state: {state}")


@task_failure.connect
def task_failure_handler(sender=None, task_id=None, exception=None, einfo=None, **extras):
    """Handle task failure events"""
    logger.error(f"Task {sender.name} [{task_id}] failed: {exception}")
