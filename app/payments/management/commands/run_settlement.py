"""
Run the settlement batch for the previous calendar month.

Usage:
    python manage.py run_settlement
    python manage.py run_settlement --seller <user id>
    python manage.py run_settlement --reference 2026-10-01T00:00:00Z
"""

from __future__ import annotations

import json

from django.core.management.base import BaseCommand, CommandError
from django.utils.dateparse import parse_datetime

from authentication.models import User
from payments.services import SettlementService, previous_month_period


class Command(BaseCommand):
    help = "Create settlements for the calendar month before --reference (default: now)"

    def add_arguments(self, parser):
        parser.add_argument("--seller", help="Settle a single payee by user id")
        parser.add_argument(
            "--reference",
            help="ISO timestamp inside the month after the one to settle",
        )

    def handle(self, *args, **options):
        reference = None
        if options["reference"]:
            reference = parse_datetime(options["reference"])
            if reference is None:
                raise CommandError(f"Invalid --reference: {options['reference']}")

        seller = None
        if options["seller"]:
            try:
                seller = User.objects.get(pk=options["seller"])
            except (User.DoesNotExist, ValueError) as e:
                raise CommandError(f"Unknown seller: {options['seller']}") from e

        period_start, period_end = previous_month_period(reference)
        summary = SettlementService.run_settlements(period_start, period_end, seller=seller)

        self.stdout.write(json.dumps(summary.to_dict(), indent=2, default=str))
        if summary.errors:
            raise CommandError(f"{len(summary.errors)} payees failed to settle")
        self.stdout.write(
            self.style.SUCCESS(
                f"Created {len(summary.created)} settlements, skipped {len(summary.skipped)}"
            )
        )
