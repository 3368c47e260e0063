# wsgi.py
"""
WSGI entry point

    gunicorn wsgi:application
    celery -A wsgi:celery_app worker -B -Q reminders,default
"""

from app import create_app

# Production WSGI application
application = create_app()
celery_app = application.extensions['celery']
