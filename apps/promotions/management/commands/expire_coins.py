"""
Management command for retiring lapsed Aggre Coins.

Intended to run daily from cron. Safe to re-run: each lapsed credit is
expired at most once.

Usage:
    python manage.py expire_coins
    python manage.py expire_coins --customer C1001
"""

from __future__ import annotations

import logging
from typing import Any

from django.core.management.base import BaseCommand, CommandParser

from apps.promotions.accounts import CoinAccountService

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Expire Aggre Coins whose expiry date has passed"

    def add_arguments(self, parser: CommandParser) -> None:
        parser.add_argument(
            "--customer",
            type=str,
            help="Only expire coins for this customer",
        )

    def handle(self, *args: Any, **options: Any) -> None:
        customer_id = options.get("customer")
        if customer_id:
            entries = CoinAccountService.expire_coins(customer_id)
            results = {customer_id: -sum(entry.amount for entry in entries)} if entries else {}
        else:
            results = CoinAccountService.expire_all()

        total = sum(results.values())
        for expired_customer, coins in sorted(results.items()):
            self.stdout.write(f"  {expired_customer}: {coins} coins expired")
        self.stdout.write(self.style.SUCCESS(f"Expired {total} coins across {len(results)} accounts"))
        logger.info("Coin expiry run finished: %d coins, %d accounts", total, len(results))
