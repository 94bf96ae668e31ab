"""
Add celery-beat schedules for settlement and maintenance tasks.

- Monthly settlement: 02:00 UTC on the 1st, settles the previous month
- Failed webhook replay: every 15 minutes
- Subscription period rollover: hourly
"""

from django.db import migrations

MONTHLY_SETTLEMENT = "Run Monthly Settlement"
RETRY_WEBHOOKS = "Retry Failed Webhooks"
EXPIRE_SUBSCRIPTIONS = "Expire Cancelled Subscriptions"


def create_periodic_tasks(apps, schema_editor):
    CrontabSchedule = apps.get_model("django_celery_beat", "CrontabSchedule")
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    monthly, _ = CrontabSchedule.objects.get_or_create(
        minute="0",
        hour="2",
        day_of_month="1",
        month_of_year="*",
        day_of_week="*",
        timezone="UTC",
    )
    PeriodicTask.objects.get_or_create(
        name=MONTHLY_SETTLEMENT,
        defaults={
            "task": "payments.tasks.run_monthly_settlement",
            "crontab": monthly,
            "enabled": True,
            "description": (
                "Creates seller and verifier settlements for the previous "
                "calendar month."
            ),
        },
    )

    every_15_minutes, _ = IntervalSchedule.objects.get_or_create(
        every=15,
        period="minutes",
    )
    PeriodicTask.objects.get_or_create(
        name=RETRY_WEBHOOKS,
        defaults={
            "task": "payments.tasks.retry_failed_webhooks",
            "interval": every_15_minutes,
            "enabled": True,
            "description": "Replays webhook events that failed processing.",
        },
    )

    hourly, _ = IntervalSchedule.objects.get_or_create(
        every=1,
        period="hours",
    )
    PeriodicTask.objects.get_or_create(
        name=EXPIRE_SUBSCRIPTIONS,
        defaults={
            "task": "payments.tasks.expire_cancelled_subscriptions",
            "interval": hourly,
            "enabled": True,
            "description": (
                "Cancels subscriptions scheduled to end whose period is over."
            ),
        },
    )


def remove_periodic_tasks(apps, schema_editor):
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name__in=[MONTHLY_SETTLEMENT, RETRY_WEBHOOKS, EXPIRE_SUBSCRIPTIONS],
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("payments", "0002_seed_plans"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
