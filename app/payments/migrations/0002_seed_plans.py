"""
Seed the subscription plan catalogue.
"""

from django.db import migrations

from payments.plans import DEFAULT_PLANS


def create_plans(apps, schema_editor):
    Plan = apps.get_model("payments", "Plan")

    for plan in DEFAULT_PLANS:
        Plan.objects.update_or_create(
            tier=plan["tier"],
            defaults={key: value for key, value in plan.items() if key != "tier"},
        )


def remove_plans(apps, schema_editor):
    Plan = apps.get_model("payments", "Plan")
    Plan.objects.filter(tier__in=[plan["tier"] for plan in DEFAULT_PLANS]).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("payments", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(create_plans, remove_plans),
    ]
