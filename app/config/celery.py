"""
Celery application.

Redis is both broker and result backend. Tasks are discovered from each
installed app's tasks module; periodic schedules live in the database
(django-celery-beat DatabaseScheduler) and are created by migrations.

Periodic tasks (see earnings/migrations/0002_add_periodic_tasks.py):
    - earnings.workers.escrow_release.release_matured_earnings
    - earnings.tasks.retry_failed_gateway_events
    - earnings.tasks.cleanup_stuck_gateway_events
    - earnings.tasks.sync_stale_payout_requests
    - earnings.tasks.audit_seller_balances

https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Picks up <app>/tasks.py; worker modules are listed explicitly
app.autodiscover_tasks()
app.autodiscover_tasks(["earnings.workers"], related_name="escrow_release")
