"""
Management command for checking benefit counters against redemption records.

Usage:
    python manage.py reconcile_benefits
    python manage.py reconcile_benefits --repair
"""

from __future__ import annotations

from typing import Any

from django.core.management.base import BaseCommand, CommandParser

from apps.promotions.ledger import RedemptionLedger
from apps.promotions.models import Benefit


class Command(BaseCommand):
    help = "Recompute benefit redemption counts and budget usage from redemption records"

    def add_arguments(self, parser: CommandParser) -> None:
        parser.add_argument(
            "--repair",
            action="store_true",
            help="Overwrite drifted counters with the recomputed values",
        )

    def handle(self, *args: Any, **options: Any) -> None:
        repair = options["repair"]
        drifted = 0
        for benefit_id in Benefit.objects.values_list("pk", flat=True):
            report = RedemptionLedger.reconcile(benefit_id, repair=repair)
            if report.in_sync:
                continue
            drifted += 1
            self.stdout.write(
                self.style.WARNING(
                    f"  {report.benefit_id}: count {report.stored_count} vs {report.recorded_count}, "
                    f"budget_used {report.stored_budget_used} vs {report.recorded_budget_used}"
                    + (" (repaired)" if report.repaired else "")
                )
            )
        self.stdout.write(self.style.SUCCESS(f"Reconciliation finished: {drifted} benefits drifted"))
