"""
Celery configuration for the payments service.

Background work handled here:
- Monthly settlement runs (scheduled via django-celery-beat)
- Settlement payouts to sellers and verifiers
- Replaying webhook events that failed processing
- Closing subscriptions that were cancelled at period end

This configuration uses Redis as both the message broker and result backend.
Tasks are auto-discovered from all installed Django apps.

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
