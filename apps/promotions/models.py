"""
Promotion and loyalty models for the Aggrekart marketplace.
Durable records behind the redemption engine.

Supports:
- Supplier promotions and platform coupons (single catalog, lifecycle gated)
- Targeting by customer type, membership tier, state and city
- Order value, category, quantity, weekday and hour conditions
- Usage caps (total, per customer, per day) and monetary budgets
- Immutable redemption records with idempotency keys
- Aggre Coin accounts with an append-only transaction ledger
- Coupon grants, milestone achievements and referrals
"""

from __future__ import annotations

import logging
import re
import secrets
import string
import uuid
from dataclasses import dataclass
from datetime import datetime, time
from decimal import Decimal
from typing import Any, ClassVar

from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import F, Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

logger = logging.getLogger(__name__)

# ===============================================================================
# Constants
# ===============================================================================

COUPON_CODE_LENGTH = 8
COUPON_CODE_CHARS = string.ascii_uppercase + string.digits
COUPON_CODE_PATTERN = re.compile(r"^[A-Z0-9]{4,15}$")
REFERRAL_CODE_LENGTH = 8
MAX_CODE_GENERATION_ATTEMPTS = 100

CUSTOMER_TYPES: tuple[tuple[str, Any], ...] = (
    ("house_owner", _("House Owner")),
    ("mason", _("Mason")),
    ("builder_contractor", _("Builder / Contractor")),
    ("others", _("Others")),
)

MEMBERSHIP_TIERS: tuple[tuple[str, Any], ...] = (
    ("silver", _("Silver")),
    ("gold", _("Gold")),
    ("platinum", _("Platinum")),
)

PRODUCT_CATEGORIES: tuple[tuple[str, Any], ...] = (
    ("aggregate", _("Aggregate")),
    ("sand", _("Sand")),
    ("tmt_steel", _("TMT Steel")),
    ("bricks_blocks", _("Bricks & Blocks")),
    ("cement", _("Cement")),
)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def normalize_code(code: str) -> str:
    """Normalize coupon and referral codes to uppercase and trimmed."""
    return code.upper().strip()


def _normalize_place(value: str) -> str:
    return value.strip().casefold()


# ===============================================================================
# Typed views over the benefit's rule columns
# ===============================================================================


@dataclass(frozen=True)
class Targeting:
    """
    Who a benefit is for.

    Every set is one targeting axis. An empty set means the axis is
    unrestricted; a non-empty set admits only its members.
    """

    customer_types: frozenset[str] = frozenset()
    membership_tiers: frozenset[str] = frozenset()
    states: frozenset[str] = frozenset()
    cities: frozenset[str] = frozenset()
    new_customers_only: bool = False
    returning_customers_only: bool = False

    @staticmethod
    def admits(axis: frozenset[str], value: str | None) -> bool:
        """True when the axis is unrestricted or contains value."""
        if not axis:
            return True
        return value is not None and value in axis

    def admits_state(self, state: str | None) -> bool:
        return self.admits(self.states, _normalize_place(state) if state else None)

    def admits_city(self, city: str | None) -> bool:
        return self.admits(self.cities, _normalize_place(city) if city else None)


@dataclass(frozen=True)
class Conditions:
    """Order-shape requirements of a benefit."""

    min_order_value: Decimal = Decimal("0")
    max_order_value: Decimal | None = None
    eligible_categories: frozenset[str] = frozenset()
    min_quantity: int = 1
    valid_days: frozenset[str] = frozenset()
    valid_hours_start: time | None = None
    valid_hours_end: time | None = None


@dataclass(frozen=True)
class Reward:
    """What a benefit gives once it applies."""

    kind: str
    value: Decimal
    cap_amount: Decimal | None = None


# ===============================================================================
# Benefit Model
# ===============================================================================


class Benefit(models.Model):
    """
    A supplier promotion or platform coupon.
    Carries targeting, conditions, reward, validity, caps, budget and lifecycle.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Identity
    title = models.CharField(max_length=100)
    description = models.TextField(blank=True)

    # Ownership
    OWNER_PLATFORM = "platform"
    OWNER_SUPPLIER = "supplier"
    OWNER_TYPES: ClassVar[tuple[tuple[str, Any], ...]] = (
        (OWNER_PLATFORM, _("Platform")),
        (OWNER_SUPPLIER, _("Supplier")),
    )
    owner_type = models.CharField(max_length=20, choices=OWNER_TYPES, default=OWNER_PLATFORM)
    supplier_id = models.CharField(max_length=64, blank=True, help_text=_("Owning supplier for supplier promotions"))

    TYPE_DISCOUNT = "discount"
    TYPE_COUPON = "coupon"
    BENEFIT_TYPES: ClassVar[tuple[tuple[str, Any], ...]] = (
        (TYPE_DISCOUNT, _("Discount")),
        (TYPE_COUPON, _("Coupon")),
        ("free_delivery", _("Free Delivery")),
        ("bulk_discount", _("Bulk Discount")),
        ("seasonal", _("Seasonal")),
        ("referral", _("Referral")),
    )
    benefit_type = models.CharField(max_length=20, choices=BENEFIT_TYPES, default=TYPE_DISCOUNT)

    code = models.CharField(
        max_length=15,
        unique=True,
        null=True,
        blank=True,
        help_text=_("Coupon code (case-insensitive, coupons only)"),
    )

    # Targeting (empty list = unrestricted)
    target_customer_types = models.JSONField(default=list, blank=True)
    target_membership_tiers = models.JSONField(default=list, blank=True)
    target_states = models.JSONField(default=list, blank=True)
    target_cities = models.JSONField(default=list, blank=True)
    new_customers_only = models.BooleanField(default=False)
    returning_customers_only = models.BooleanField(default=False)

    # Conditions
    min_order_value = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0"), validators=[MinValueValidator(0)]
    )
    max_order_value = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True, validators=[MinValueValidator(0)]
    )
    eligible_categories = models.JSONField(default=list, blank=True)
    min_quantity = models.PositiveIntegerField(default=1)
    valid_days = models.JSONField(default=list, blank=True, help_text=_("Weekday names; empty = every day"))
    valid_hours_start = models.TimeField(null=True, blank=True)
    valid_hours_end = models.TimeField(null=True, blank=True)

    # Reward
    REWARD_PERCENTAGE = "percentage"
    REWARD_FIXED_AMOUNT = "fixed_amount"
    REWARD_FREE_DELIVERY = "free_delivery"
    REWARD_COINS_MULTIPLIER = "coins_multiplier"
    REWARD_KINDS: ClassVar[tuple[tuple[str, Any], ...]] = (
        (REWARD_PERCENTAGE, _("Percentage")),
        (REWARD_FIXED_AMOUNT, _("Fixed Amount")),
        (REWARD_FREE_DELIVERY, _("Free Delivery")),
        (REWARD_COINS_MULTIPLIER, _("Coins Multiplier")),
    )
    reward_kind = models.CharField(max_length=20, choices=REWARD_KINDS, default=REWARD_PERCENTAGE)
    reward_value = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0"), validators=[MinValueValidator(0)]
    )
    reward_cap_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(0)],
        help_text=_("Maximum discount (caps percentage rewards)"),
    )

    # Validity
    valid_from = models.DateTimeField(default=timezone.now)
    valid_until = models.DateTimeField()

    # Usage limits
    total_cap = models.PositiveIntegerField(
        null=True, blank=True, help_text=_("Maximum redemptions (null = unlimited)")
    )
    per_user_cap = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    daily_cap = models.PositiveIntegerField(null=True, blank=True)
    redemption_count = models.PositiveIntegerField(default=0, help_text=_("Denormalized count of redemption records"))

    # Budget (whole currency units)
    budget_total = models.BigIntegerField(null=True, blank=True, validators=[MinValueValidator(0)])
    budget_used = models.BigIntegerField(default=0, validators=[MinValueValidator(0)])

    # Optimistic concurrency token for counters, budget and lifecycle
    version = models.PositiveBigIntegerField(default=0)

    # Lifecycle
    STATUS_DRAFT = "draft"
    STATUS_PENDING_APPROVAL = "pending_approval"
    STATUS_ACTIVE = "active"
    STATUS_PAUSED = "paused"
    STATUS_EXPIRED = "expired"
    STATUS_REJECTED = "rejected"
    STATUS_CHOICES: ClassVar[tuple[tuple[str, Any], ...]] = (
        (STATUS_DRAFT, _("Draft")),
        (STATUS_PENDING_APPROVAL, _("Pending Approval")),
        (STATUS_ACTIVE, _("Active")),
        (STATUS_PAUSED, _("Paused")),
        (STATUS_EXPIRED, _("Expired")),
        (STATUS_REJECTED, _("Rejected")),
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_DRAFT)

    # Approval
    submitted_at = models.DateTimeField(null=True, blank=True)
    reviewed_by = models.CharField(max_length=64, blank=True)
    reviewed_at = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.TextField(blank=True)
    review_notes = models.TextField(blank=True)

    metadata = models.JSONField(default=dict, blank=True)

    # Audit
    created_by = models.CharField(max_length=64, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "promotion_benefits"
        verbose_name = _("Benefit")
        verbose_name_plural = _("Benefits")
        ordering: ClassVar[tuple[str, ...]] = ("-created_at",)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["status", "valid_from", "valid_until"], name="idx_benefit_validity"),
            models.Index(fields=["owner_type", "supplier_id", "status"], name="idx_benefit_owner"),
            models.Index(fields=["benefit_type", "status"], name="idx_benefit_type"),
        )
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.CheckConstraint(
                condition=Q(budget_total__isnull=True) | Q(budget_used__lte=F("budget_total")),
                name="benefit_budget_within_total",
            ),
            models.CheckConstraint(
                condition=Q(total_cap__isnull=True) | Q(redemption_count__lte=F("total_cap")),
                name="benefit_redemptions_within_cap",
            ),
        )

    def __str__(self) -> str:
        return f"{self.code} - {self.title}" if self.code else self.title

    def save(self, *args: Any, **kwargs: Any) -> None:
        """Normalize code before saving."""
        if self.code:
            self.code = normalize_code(self.code)
        else:
            self.code = None
        super().save(*args, **kwargs)

    def clean(self) -> None:
        """Validate benefit configuration."""
        super().clean()
        self._validate_code()
        self._validate_reward()
        self._validate_targeting()
        self._validate_conditions()
        self._validate_dates()
        if self.owner_type == self.OWNER_SUPPLIER and not self.supplier_id:
            raise ValidationError("Supplier promotions require supplier_id")

    def _validate_code(self) -> None:
        if self.benefit_type == self.TYPE_COUPON:
            if not self.code:
                raise ValidationError("Coupon benefits require a code")
            if not COUPON_CODE_PATTERN.match(normalize_code(self.code)):
                raise ValidationError("Coupon code must be 4-15 characters of letters and digits")
        elif self.code:
            raise ValidationError("Only coupon benefits carry a code")

    def _validate_reward(self) -> None:
        if self.reward_kind == self.REWARD_PERCENTAGE and not (0 < self.reward_value <= 100):
            raise ValidationError("Percentage reward must be greater than 0 and at most 100")
        if self.reward_kind == self.REWARD_FIXED_AMOUNT and self.reward_value <= 0:
            raise ValidationError("Fixed amount reward must be positive")
        if self.reward_kind == self.REWARD_COINS_MULTIPLIER and not (1 <= self.reward_value <= 5):
            raise ValidationError("Coins multiplier must be between 1 and 5")

    def _validate_targeting(self) -> None:
        if self.new_customers_only and self.returning_customers_only:
            raise ValidationError("A benefit cannot target only new and only returning customers")
        for field_name, choices in (
            ("target_customer_types", CUSTOMER_TYPES),
            ("target_membership_tiers", MEMBERSHIP_TIERS),
        ):
            allowed = {value for value, _label in choices}
            unknown = set(getattr(self, field_name)) - allowed
            if unknown:
                raise ValidationError(f"Unknown values in {field_name}: {sorted(unknown)}")

    def _validate_conditions(self) -> None:
        if self.max_order_value is not None and self.max_order_value < self.min_order_value:
            raise ValidationError("max_order_value must not be below min_order_value")
        allowed_categories = {value for value, _label in PRODUCT_CATEGORIES}
        unknown = set(self.eligible_categories) - allowed_categories
        if unknown:
            raise ValidationError(f"Unknown categories: {sorted(unknown)}")
        unknown_days = {day.lower() for day in self.valid_days} - set(WEEKDAYS)
        if unknown_days:
            raise ValidationError(f"Unknown weekdays: {sorted(unknown_days)}")
        if (self.valid_hours_start is None) != (self.valid_hours_end is None):
            raise ValidationError("valid_hours needs both start and end")

    def _validate_dates(self) -> None:
        if self.valid_until and self.valid_from and self.valid_until < self.valid_from:
            raise ValidationError("valid_until must be after valid_from")

    # -------------------------------------------------------------------------
    # Typed views
    # -------------------------------------------------------------------------

    @property
    def targeting(self) -> Targeting:
        return Targeting(
            customer_types=frozenset(self.target_customer_types),
            membership_tiers=frozenset(self.target_membership_tiers),
            states=frozenset(_normalize_place(s) for s in self.target_states),
            cities=frozenset(_normalize_place(c) for c in self.target_cities),
            new_customers_only=self.new_customers_only,
            returning_customers_only=self.returning_customers_only,
        )

    @property
    def conditions(self) -> Conditions:
        return Conditions(
            min_order_value=self.min_order_value,
            max_order_value=self.max_order_value,
            eligible_categories=frozenset(self.eligible_categories),
            min_quantity=self.min_quantity,
            valid_days=frozenset(day.lower() for day in self.valid_days),
            valid_hours_start=self.valid_hours_start,
            valid_hours_end=self.valid_hours_end,
        )

    @property
    def reward(self) -> Reward:
        return Reward(kind=self.reward_kind, value=self.reward_value, cap_amount=self.reward_cap_amount)

    # -------------------------------------------------------------------------
    # Lifecycle helpers
    # -------------------------------------------------------------------------

    def effective_status(self, now: datetime | None = None) -> str:
        """Stored status, reported as expired once the validity window has closed."""
        now = now or timezone.now()
        if self.status in (self.STATUS_ACTIVE, self.STATUS_PAUSED) and now > self.valid_until:
            return self.STATUS_EXPIRED
        return self.status

    @property
    def is_supplier_scoped(self) -> bool:
        return self.owner_type == self.OWNER_SUPPLIER

    @property
    def remaining_budget(self) -> int | None:
        """Get remaining budget, or None if uncapped."""
        if self.budget_total is None:
            return None
        return max(0, self.budget_total - self.budget_used)

    @property
    def remaining_uses(self) -> int | None:
        """Get remaining total uses, or None if unlimited."""
        if self.total_cap is None:
            return None
        return max(0, self.total_cap - self.redemption_count)

    @classmethod
    def generate_code(cls, length: int = COUPON_CODE_LENGTH, prefix: str = "") -> str:
        """
        Generate a unique coupon code.

        Raises:
            ValueError: If a unique code cannot be generated within MAX_CODE_GENERATION_ATTEMPTS.
        """
        prefix = normalize_code(prefix)
        for _attempt in range(MAX_CODE_GENERATION_ATTEMPTS):
            random_part = "".join(secrets.choice(COUPON_CODE_CHARS) for _ in range(length))
            code = f"{prefix}{random_part}"[:15]
            if not cls.objects.filter(code=code).exists():
                return code

        raise ValueError(f"Could not generate unique coupon code after {MAX_CODE_GENERATION_ATTEMPTS} attempts")


# ===============================================================================
# Redemption Record Model
# ===============================================================================


class RedemptionRecord(models.Model):
    """
    One successful application of a benefit. Never updated after insert.
    The record set is the source of truth for usage counts.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    benefit = models.ForeignKey(Benefit, on_delete=models.PROTECT, related_name="redemptions")
    customer_id = models.CharField(max_length=64)
    order_id = models.CharField(max_length=64, null=True, blank=True)
    idempotency_key = models.CharField(max_length=128, null=True, blank=True)

    # Outcome snapshot
    discount_applied = models.BigIntegerField(default=0)
    free_delivery = models.BooleanField(default=False)
    coins_multiplier = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("1"))
    order_value = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))

    occurred_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "promotion_redemption_records"
        verbose_name = _("Redemption Record")
        verbose_name_plural = _("Redemption Records")
        ordering: ClassVar[tuple[str, ...]] = ("-occurred_at",)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["benefit", "customer_id"], name="idx_redemption_customer"),
            models.Index(fields=["benefit", "occurred_at"], name="idx_redemption_daily"),
            models.Index(fields=["customer_id", "-occurred_at"], name="idx_redemption_history"),
        )
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            # Same logical redemption must never be written twice
            models.UniqueConstraint(
                fields=["benefit", "customer_id", "idempotency_key"],
                condition=Q(idempotency_key__isnull=False),
                name="unique_redemption_idempotency_key",
            ),
        )

    def __str__(self) -> str:
        return f"{self.benefit_id} by {self.customer_id}: {self.discount_applied}"

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            raise ValueError("Redemption records are immutable")
        super().save(*args, **kwargs)


# ===============================================================================
# Coin Account Models
# ===============================================================================


class CoinAccount(models.Model):
    """
    Customer's Aggre Coin balance and referral state.
    Balance fields change only through CoinAccountService.append_transaction.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    customer_id = models.CharField(max_length=64, unique=True)

    balance = models.BigIntegerField(default=0)
    total_earned = models.BigIntegerField(default=0)
    total_redeemed = models.BigIntegerField(default=0)
    total_expired = models.BigIntegerField(default=0)
    version = models.PositiveBigIntegerField(default=0)

    # Referral state
    referral_code = models.CharField(max_length=12, unique=True, null=True, blank=True)
    referred_by_customer_id = models.CharField(max_length=64, null=True, blank=True)
    referred_by_code = models.CharField(max_length=12, blank=True)
    referral_reward_claimed = models.BooleanField(default=False, help_text=_("Welcome bonus paid"))

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "promotion_coin_accounts"
        verbose_name = _("Coin Account")
        verbose_name_plural = _("Coin Accounts")
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.CheckConstraint(condition=Q(balance__gte=0), name="coin_balance_non_negative"),
            models.CheckConstraint(
                condition=Q(balance=F("total_earned") - F("total_redeemed") - F("total_expired")),
                name="coin_balance_matches_totals",
            ),
        )

    def __str__(self) -> str:
        return f"{self.customer_id}: {self.balance} coins"

    @classmethod
    def generate_referral_code(cls) -> str:
        for _attempt in range(MAX_CODE_GENERATION_ATTEMPTS):
            code = "".join(secrets.choice(COUPON_CODE_CHARS) for _ in range(REFERRAL_CODE_LENGTH))
            if not cls.objects.filter(referral_code=code).exists():
                return code
        raise ValueError(f"Could not generate unique referral code after {MAX_CODE_GENERATION_ATTEMPTS} attempts")


class CoinTransaction(models.Model):
    """
    Append-only coin ledger entry.
    Amount is signed: credits positive, redemptions and expiries negative.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    account = models.ForeignKey(CoinAccount, on_delete=models.PROTECT, related_name="transactions")
    sequence = models.PositiveBigIntegerField(help_text=_("Account version produced by this entry"))

    EARNED = "earned"
    REDEEMED = "redeemed"
    EXPIRED = "expired"
    BONUS = "bonus"
    REFERRAL = "referral"
    ADMIN_AWARD = "admin_award"
    COUPON_AWARDED = "coupon_awarded"
    COUPON_USED = "coupon_used"
    TRANSACTION_TYPES: ClassVar[tuple[tuple[str, Any], ...]] = (
        (EARNED, _("Coins Earned")),
        (REDEEMED, _("Coins Redeemed")),
        (EXPIRED, _("Coins Expired")),
        (BONUS, _("Bonus Coins")),
        (REFERRAL, _("Referral Reward")),
        (ADMIN_AWARD, _("Admin Award")),
        (COUPON_AWARDED, _("Coupon Awarded")),
        (COUPON_USED, _("Coupon Used")),
    )
    CREDIT_TYPES: ClassVar[frozenset[str]] = frozenset({EARNED, BONUS, REFERRAL, ADMIN_AWARD})
    MARKER_TYPES: ClassVar[frozenset[str]] = frozenset({COUPON_AWARDED, COUPON_USED})
    transaction_type = models.CharField(max_length=20, choices=TRANSACTION_TYPES)

    amount = models.BigIntegerField(help_text=_("Coins change (positive or negative)"))
    balance_after = models.BigIntegerField()
    description = models.TextField(blank=True)

    # Related objects
    order_id = models.CharField(max_length=64, null=True, blank=True)
    benefit = models.ForeignKey(Benefit, on_delete=models.SET_NULL, null=True, blank=True, related_name="+")
    coupon_grant = models.ForeignKey(
        "CouponGrant", on_delete=models.SET_NULL, null=True, blank=True, related_name="transactions"
    )
    source_transaction = models.OneToOneField(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="expiry_entry",
        help_text=_("Credit this expiry entry retires"),
    )

    expires_at = models.DateTimeField(null=True, blank=True)
    idempotency_key = models.CharField(max_length=128, null=True, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_by = models.CharField(max_length=64, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "promotion_coin_transactions"
        verbose_name = _("Coin Transaction")
        verbose_name_plural = _("Coin Transactions")
        ordering: ClassVar[tuple[str, ...]] = ("account", "sequence")
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["transaction_type", "-created_at"], name="idx_coin_txn_type"),
            models.Index(fields=["expires_at"], name="idx_coin_txn_expiry"),
            models.Index(fields=["order_id"], name="idx_coin_txn_order"),
        )
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.UniqueConstraint(fields=["account", "sequence"], name="unique_coin_txn_sequence"),
            models.UniqueConstraint(
                fields=["account", "idempotency_key"],
                condition=Q(idempotency_key__isnull=False),
                name="unique_coin_txn_idempotency_key",
            ),
        )

    def __str__(self) -> str:
        return f"{self.transaction_type}: {self.amount:+d} coins"

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            raise ValueError("Coin transactions are append-only")
        super().save(*args, **kwargs)


class CouponGrant(models.Model):
    """
    Award of a coupon benefit to one customer.
    At most one unused grant per benefit and customer.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    benefit = models.ForeignKey(Benefit, on_delete=models.PROTECT, related_name="grants")
    customer_id = models.CharField(max_length=64)

    awarded_at = models.DateTimeField(default=timezone.now)
    awarded_by = models.CharField(max_length=64, blank=True)
    reason = models.TextField(blank=True)
    award_key = models.CharField(max_length=128, null=True, blank=True)

    used = models.BooleanField(default=False)
    used_at = models.DateTimeField(null=True, blank=True)
    used_in_order = models.CharField(max_length=64, null=True, blank=True)
    discount_applied = models.BigIntegerField(null=True, blank=True)

    class Meta:
        db_table = "promotion_coupon_grants"
        verbose_name = _("Coupon Grant")
        verbose_name_plural = _("Coupon Grants")
        ordering: ClassVar[tuple[str, ...]] = ("-awarded_at",)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["customer_id", "used"], name="idx_grant_customer"),
        )
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.UniqueConstraint(
                fields=["benefit", "customer_id"],
                condition=Q(used=False),
                name="unique_unused_grant_per_customer",
            ),
            models.UniqueConstraint(
                fields=["benefit", "customer_id", "award_key"],
                condition=Q(award_key__isnull=False),
                name="unique_grant_award_key",
            ),
        )

    def __str__(self) -> str:
        state = "used" if self.used else "unused"
        return f"{self.benefit_id} for {self.customer_id} ({state})"


# ===============================================================================
# Milestones and Referrals
# ===============================================================================


class Milestone(models.TextChoices):
    FIRST_ORDER = "first_order", _("First Order")
    ORDERS_5 = "orders_5", _("5 Orders")
    ORDERS_20 = "orders_20", _("20 Orders")
    ORDERS_50 = "orders_50", _("50 Orders")
    ORDERS_100 = "orders_100", _("100 Orders")
    VALUE_10K = "value_10k", _("₹10,000 Ordered")
    VALUE_50K = "value_50k", _("₹50,000 Ordered")
    VALUE_100K = "value_100k", _("₹1,00,000 Ordered")


class MilestoneAchievement(models.Model):
    """Milestone reached by a customer, recorded once."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    account = models.ForeignKey(CoinAccount, on_delete=models.PROTECT, related_name="milestones")
    milestone = models.CharField(max_length=20, choices=Milestone.choices)
    reward = models.PositiveIntegerField(default=0)
    achieved_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "promotion_milestone_achievements"
        verbose_name = _("Milestone Achievement")
        verbose_name_plural = _("Milestone Achievements")
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.UniqueConstraint(fields=["account", "milestone"], name="unique_milestone_per_account"),
        )

    def __str__(self) -> str:
        return f"{self.account.customer_id}: {self.milestone}"


class Referral(models.Model):
    """A referred customer, pending until their first order."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    referrer = models.ForeignKey(CoinAccount, on_delete=models.PROTECT, related_name="referrals")
    referred_customer_id = models.CharField(max_length=64, unique=True)
    code = models.CharField(max_length=12)

    STATUS_PENDING = "pending"
    STATUS_COMPLETED = "completed"
    STATUS_CHOICES: ClassVar[tuple[tuple[str, Any], ...]] = (
        (STATUS_PENDING, _("Pending")),
        (STATUS_COMPLETED, _("Completed")),
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    reward_earned = models.PositiveIntegerField(default=0, validators=[MaxValueValidator(100_000)])

    created_at = models.DateTimeField(default=timezone.now)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "promotion_referrals"
        verbose_name = _("Referral")
        verbose_name_plural = _("Referrals")
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["referrer", "-created_at"], name="idx_referral_referrer"),
        )

    def __str__(self) -> str:
        return f"{self.code} -> {self.referred_customer_id} ({self.status})"
