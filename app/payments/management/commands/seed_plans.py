"""
Create or update the default subscription plans.

Usage:
    python manage.py seed_plans
"""

from __future__ import annotations

from django.core.management.base import BaseCommand
from django.db import transaction

from payments.models import Plan
from payments.plans import DEFAULT_PLANS


class Command(BaseCommand):
    help = "Upsert the default plan catalogue (FREE, BASIC, PRO, ENTERPRISE)"

    @transaction.atomic
    def handle(self, *args, **options):
        for data in DEFAULT_PLANS:
            fields = {key: value for key, value in data.items() if key != "tier"}
            plan, created = Plan.objects.update_or_create(tier=data["tier"], defaults=fields)
            self.stdout.write(f"{'Created' if created else 'Updated'} plan {plan.tier}")

        self.stdout.write(self.style.SUCCESS(f"Seeded {len(DEFAULT_PLANS)} plans"))
