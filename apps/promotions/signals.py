"""
Signals for promotion events.

Lifecycle transitions and commits use conditional UPDATEs, which bypass
post_save, so the services send these signals explicitly. The receivers
below write the audit trail to the promotions audit logger.
"""

from __future__ import annotations

import logging
from typing import Any

from django.dispatch import Signal, receiver

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("apps.promotions.audit")

# sender=Benefit, kwargs: benefit, old_status, new_status, actor
benefit_status_changed = Signal()

# sender=RedemptionRecord, kwargs: record, replayed
redemption_committed = Signal()

# sender=CoinTransaction, kwargs: transaction
coin_transaction_recorded = Signal()


@receiver(benefit_status_changed)
def log_benefit_status_change(sender: Any, benefit: Any, old_status: str, new_status: str, **kwargs: Any) -> None:
    audit_logger.info(
        "Benefit %s status changed: %s -> %s",
        benefit.pk,
        old_status,
        new_status,
        extra={
            "event": "benefit_status_changed",
            "benefit_id": str(benefit.pk),
            "old_status": old_status,
            "new_status": new_status,
            "actor": kwargs.get("actor") or "",
        },
    )


@receiver(redemption_committed)
def log_redemption(sender: Any, record: Any, replayed: bool = False, **kwargs: Any) -> None:
    if replayed:
        return
    audit_logger.info(
        "Redemption %s of benefit %s by %s",
        record.pk,
        record.benefit_id,
        record.customer_id,
        extra={
            "event": "redemption_committed",
            "redemption_id": str(record.pk),
            "benefit_id": str(record.benefit_id),
            "customer_id": record.customer_id,
            "order_id": record.order_id,
            "discount_applied": record.discount_applied,
        },
    )


@receiver(coin_transaction_recorded)
def log_coin_transaction(sender: Any, transaction: Any, **kwargs: Any) -> None:
    audit_logger.info(
        "Coin transaction %s: %s %+d (balance %d)",
        transaction.pk,
        transaction.transaction_type,
        transaction.amount,
        transaction.balance_after,
        extra={
            "event": "coin_transaction_recorded",
            "transaction_id": str(transaction.pk),
            "account_id": str(transaction.account_id),
            "transaction_type": transaction.transaction_type,
            "amount": transaction.amount,
        },
    )
