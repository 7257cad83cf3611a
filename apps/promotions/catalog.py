"""
Benefit catalog: creation, lookup and lifecycle administration.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from django.core.exceptions import ValidationError
from django.db.models import Q, QuerySet
from django.utils import timezone

from apps.common.types import ActorId, Err, Ok, Result

from .exceptions import NotFoundError, storage_errors
from .models import Benefit, normalize_code
from .signals import benefit_status_changed

logger = logging.getLogger(__name__)

# Stored status transitions; "expired" is derived from valid_until and never stored
VALID_TRANSITIONS: dict[str, tuple[str, ...]] = {
    Benefit.STATUS_DRAFT: (Benefit.STATUS_PENDING_APPROVAL, Benefit.STATUS_ACTIVE),
    Benefit.STATUS_PENDING_APPROVAL: (Benefit.STATUS_ACTIVE, Benefit.STATUS_REJECTED),
    Benefit.STATUS_ACTIVE: (Benefit.STATUS_PAUSED,),
    Benefit.STATUS_PAUSED: (Benefit.STATUS_ACTIVE,),
    Benefit.STATUS_REJECTED: (Benefit.STATUS_PENDING_APPROVAL,),
    Benefit.STATUS_EXPIRED: (),
}


@dataclass
class StatusChangeData:
    """Parameters of one lifecycle transition."""

    new_status: str
    actor: ActorId = ""
    notes: str = ""
    reason: str = ""


class BenefitCatalogService:
    """Service for benefit definitions and their lifecycle."""

    @staticmethod
    def create_benefit(created_by: ActorId = "", **fields: Any) -> Benefit:
        """
        Create a benefit in draft.

        Coupons without a code get a generated one.

        Raises:
            ValidationError: If the configuration is invalid.
        """
        fields.pop("status", None)
        benefit = Benefit(created_by=created_by, status=Benefit.STATUS_DRAFT, **fields)
        if benefit.benefit_type == Benefit.TYPE_COUPON and not benefit.code:
            benefit.code = Benefit.generate_code()
        if benefit.code:
            benefit.code = normalize_code(benefit.code)
        benefit.full_clean()
        with storage_errors("create_benefit"):
            benefit.save()

        logger.info(
            "Benefit created: %s (%s)",
            benefit.title,
            benefit.benefit_type,
            extra={"benefit_id": str(benefit.pk), "code": benefit.code, "created_by": created_by},
        )
        return benefit

    @staticmethod
    def get_benefit(benefit_id_or_code: Any) -> Benefit:
        """Look a benefit up by primary key or coupon code."""
        value = str(benefit_id_or_code).strip()
        lookup = Q(code=normalize_code(value))
        try:
            benefit = Benefit.objects.filter(Q(pk=value) | lookup).first()
        except ValidationError:
            # Not a UUID
            benefit = Benefit.objects.filter(lookup).first()
        if benefit is None:
            raise NotFoundError("Benefit not found", benefit=value)
        return benefit

    @staticmethod
    def list_active(now: datetime | None = None) -> QuerySet[Benefit]:
        """Benefits that are active and inside their validity window."""
        now = now or timezone.now()
        return Benefit.objects.filter(
            status=Benefit.STATUS_ACTIVE,
            valid_from__lte=now,
            valid_until__gte=now,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @staticmethod
    def submit(benefit: Benefit, actor: ActorId = "") -> Result[Benefit, str]:
        return BenefitCatalogService.change_status(
            benefit, StatusChangeData(new_status=Benefit.STATUS_PENDING_APPROVAL, actor=actor)
        )

    @staticmethod
    def approve(benefit: Benefit, reviewer: ActorId, notes: str = "") -> Result[Benefit, str]:
        if benefit.status == Benefit.STATUS_DRAFT and benefit.is_supplier_scoped:
            return Err("Supplier promotions must be submitted for approval first")
        return BenefitCatalogService.change_status(
            benefit, StatusChangeData(new_status=Benefit.STATUS_ACTIVE, actor=reviewer, notes=notes)
        )

    @staticmethod
    def reject(benefit: Benefit, reviewer: ActorId, reason: str) -> Result[Benefit, str]:
        if not reason.strip():
            return Err("Rejection reason is required")
        return BenefitCatalogService.change_status(
            benefit, StatusChangeData(new_status=Benefit.STATUS_REJECTED, actor=reviewer, reason=reason)
        )

    @staticmethod
    def pause(benefit: Benefit, actor: ActorId = "") -> Result[Benefit, str]:
        return BenefitCatalogService.change_status(
            benefit, StatusChangeData(new_status=Benefit.STATUS_PAUSED, actor=actor)
        )

    @staticmethod
    def resume(benefit: Benefit, actor: ActorId = "") -> Result[Benefit, str]:
        if benefit.status == Benefit.STATUS_PAUSED and benefit.effective_status() == Benefit.STATUS_EXPIRED:
            return Err("Benefit has expired and cannot be resumed")
        return BenefitCatalogService.change_status(
            benefit, StatusChangeData(new_status=Benefit.STATUS_ACTIVE, actor=actor)
        )

    @staticmethod
    def change_status(benefit: Benefit, change: StatusChangeData) -> Result[Benefit, str]:
        """
        Apply one lifecycle transition.

        The UPDATE is conditioned on the status read and bumps the version, so
        redemptions in flight against the old status lose their commit and
        re-check.
        """
        old_status = benefit.status
        if not BenefitCatalogService._is_valid_status_transition(old_status, change.new_status):
            return Err(f"Invalid status transition from {old_status} to {change.new_status}")

        now = timezone.now()
        updates: dict[str, Any] = {"status": change.new_status, "updated_at": now}
        if change.new_status == Benefit.STATUS_PENDING_APPROVAL:
            updates.update(submitted_at=now, rejection_reason="")
        elif old_status in (Benefit.STATUS_DRAFT, Benefit.STATUS_PENDING_APPROVAL):
            # approve or reject
            updates.update(reviewed_by=change.actor, reviewed_at=now, review_notes=change.notes)
            if change.new_status == Benefit.STATUS_REJECTED:
                updates["rejection_reason"] = change.reason

        with storage_errors("change_status"):
            updated = Benefit.objects.filter(pk=benefit.pk, status=old_status, version=benefit.version).update(
                version=benefit.version + 1, **updates
            )
            if not updated:
                return Err("Benefit was modified concurrently, reload and retry")
            benefit.refresh_from_db()

        logger.info(
            "Benefit %s: %s -> %s",
            benefit.pk,
            old_status,
            change.new_status,
            extra={"benefit_id": str(benefit.pk), "actor": change.actor},
        )
        benefit_status_changed.send(
            sender=Benefit,
            benefit=benefit,
            old_status=old_status,
            new_status=change.new_status,
            actor=change.actor,
        )
        return Ok(benefit)

    @staticmethod
    def _is_valid_status_transition(old_status: str, new_status: str) -> bool:
        return new_status in VALID_TRANSITIONS.get(old_status, ())
