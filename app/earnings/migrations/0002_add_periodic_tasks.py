"""
Add celery-beat schedules for earnings maintenance tasks.

This migration creates periodic task schedules for:
- Releasing earnings whose escrow hold has ended
- Retrying failed webhook events and resetting stuck ones
- Syncing payout requests that stayed in processing too long
- Auditing seller balances
"""

from django.db import migrations

TASK_NAMES = [
    "Earnings: Release Matured Earnings",
    "Earnings: Retry Failed Gateway Events",
    "Earnings: Cleanup Stuck Gateway Events",
    "Earnings: Sync Stale Payout Requests",
    "Earnings: Audit Seller Balances",
]


def create_periodic_tasks(apps, schema_editor):
    """Create periodic tasks for earnings maintenance."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    CrontabSchedule = apps.get_model("django_celery_beat", "CrontabSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    schedule_15min, _ = IntervalSchedule.objects.get_or_create(
        every=15,
        period="minutes",
    )
    schedule_30min, _ = IntervalSchedule.objects.get_or_create(
        every=30,
        period="minutes",
    )
    schedule_1hour, _ = IntervalSchedule.objects.get_or_create(
        every=1,
        period="hours",
    )

    # Daily at 3 AM UTC
    crontab_daily_3am, _ = CrontabSchedule.objects.get_or_create(
        minute="0",
        hour="3",
        day_of_week="*",
        day_of_month="*",
        month_of_year="*",
    )

    PeriodicTask.objects.get_or_create(
        name="Earnings: Release Matured Earnings",
        defaults={
            "task": "earnings.workers.escrow_release.release_matured_earnings",
            "interval": schedule_15min,
            "enabled": True,
            "description": (
                "Moves earnings past their release date from escrow to the "
                "seller's available balance."
            ),
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Earnings: Retry Failed Gateway Events",
        defaults={
            "task": "earnings.tasks.retry_failed_gateway_events",
            "interval": schedule_15min,
            "enabled": True,
            "description": (
                "Re-applies PayPal webhook events that failed processing and "
                "have not exceeded MAX_WEBHOOK_RETRIES."
            ),
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Earnings: Cleanup Stuck Gateway Events",
        defaults={
            "task": "earnings.tasks.cleanup_stuck_gateway_events",
            "interval": schedule_30min,
            "enabled": True,
            "description": "Marks webhook events stuck in processing as failed.",
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Earnings: Sync Stale Payout Requests",
        defaults={
            "task": "earnings.tasks.sync_stale_payout_requests",
            "interval": schedule_1hour,
            "enabled": True,
            "description": (
                "Fetches PayPal batch status for payout requests still "
                "processing after PAYOUT_STALE_AFTER_HOURS."
            ),
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Earnings: Audit Seller Balances",
        defaults={
            "task": "earnings.tasks.audit_seller_balances",
            "crontab": crontab_daily_3am,
            "enabled": True,
            "description": (
                "Checks every seller's balances against their earnings, payouts "
                "and clawback debts; locks payouts on a mismatch."
            ),
        },
    )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(name__in=TASK_NAMES).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("earnings", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
