# Generated manually for Promotions App - Redemption Engine

import uuid
from decimal import Decimal

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models

MILESTONE_CHOICES = [
    ("first_order", "First Order"),
    ("orders_5", "5 Orders"),
    ("orders_20", "20 Orders"),
    ("orders_50", "50 Orders"),
    ("orders_100", "100 Orders"),
    ("value_10k", "₹10,000 Ordered"),
    ("value_50k", "₹50,000 Ordered"),
    ("value_100k", "₹1,00,000 Ordered"),
]

TRANSACTION_TYPE_CHOICES = [
    ("earned", "Coins Earned"),
    ("redeemed", "Coins Redeemed"),
    ("expired", "Coins Expired"),
    ("bonus", "Bonus Coins"),
    ("referral", "Referral Reward"),
    ("admin_award", "Admin Award"),
    ("coupon_awarded", "Coupon Awarded"),
    ("coupon_used", "Coupon Used"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        # Benefit model
        migrations.CreateModel(
            name="Benefit",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("title", models.CharField(max_length=100)),
                ("description", models.TextField(blank=True)),
                (
                    "owner_type",
                    models.CharField(
                        choices=[("platform", "Platform"), ("supplier", "Supplier")], default="platform", max_length=20
                    ),
                ),
                (
                    "supplier_id",
                    models.CharField(blank=True, help_text="Owning supplier for supplier promotions", max_length=64),
                ),
                (
                    "benefit_type",
                    models.CharField(
                        choices=[
                            ("discount", "Discount"),
                            ("coupon", "Coupon"),
                            ("free_delivery", "Free Delivery"),
                            ("bulk_discount", "Bulk Discount"),
                            ("seasonal", "Seasonal"),
                            ("referral", "Referral"),
                        ],
                        default="discount",
                        max_length=20,
                    ),
                ),
                (
                    "code",
                    models.CharField(
                        blank=True,
                        help_text="Coupon code (case-insensitive, coupons only)",
                        max_length=15,
                        null=True,
                        unique=True,
                    ),
                ),
                ("target_customer_types", models.JSONField(blank=True, default=list)),
                ("target_membership_tiers", models.JSONField(blank=True, default=list)),
                ("target_states", models.JSONField(blank=True, default=list)),
                ("target_cities", models.JSONField(blank=True, default=list)),
                ("new_customers_only", models.BooleanField(default=False)),
                ("returning_customers_only", models.BooleanField(default=False)),
                (
                    "min_order_value",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0"),
                        max_digits=12,
                        validators=[django.core.validators.MinValueValidator(0)],
                    ),
                ),
                (
                    "max_order_value",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        max_digits=12,
                        null=True,
                        validators=[django.core.validators.MinValueValidator(0)],
                    ),
                ),
                ("eligible_categories", models.JSONField(blank=True, default=list)),
                ("min_quantity", models.PositiveIntegerField(default=1)),
                (
                    "valid_days",
                    models.JSONField(blank=True, default=list, help_text="Weekday names; empty = every day"),
                ),
                ("valid_hours_start", models.TimeField(blank=True, null=True)),
                ("valid_hours_end", models.TimeField(blank=True, null=True)),
                (
                    "reward_kind",
                    models.CharField(
                        choices=[
                            ("percentage", "Percentage"),
                            ("fixed_amount", "Fixed Amount"),
                            ("free_delivery", "Free Delivery"),
                            ("coins_multiplier", "Coins Multiplier"),
                        ],
                        default="percentage",
                        max_length=20,
                    ),
                ),
                (
                    "reward_value",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0"),
                        max_digits=12,
                        validators=[django.core.validators.MinValueValidator(0)],
                    ),
                ),
                (
                    "reward_cap_amount",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        help_text="Maximum discount (caps percentage rewards)",
                        max_digits=12,
                        null=True,
                        validators=[django.core.validators.MinValueValidator(0)],
                    ),
                ),
                ("valid_from", models.DateTimeField(default=django.utils.timezone.now)),
                ("valid_until", models.DateTimeField()),
                (
                    "total_cap",
                    models.PositiveIntegerField(
                        blank=True, help_text="Maximum redemptions (null = unlimited)", null=True
                    ),
                ),
                (
                    "per_user_cap",
                    models.PositiveIntegerField(
                        default=1, validators=[django.core.validators.MinValueValidator(1)]
                    ),
                ),
                ("daily_cap", models.PositiveIntegerField(blank=True, null=True)),
                (
                    "redemption_count",
                    models.PositiveIntegerField(default=0, help_text="Denormalized count of redemption records"),
                ),
                (
                    "budget_total",
                    models.BigIntegerField(
                        blank=True, null=True, validators=[django.core.validators.MinValueValidator(0)]
                    ),
                ),
                (
                    "budget_used",
                    models.BigIntegerField(default=0, validators=[django.core.validators.MinValueValidator(0)]),
                ),
                ("version", models.PositiveBigIntegerField(default=0)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("draft", "Draft"),
                            ("pending_approval", "Pending Approval"),
                            ("active", "Active"),
                            ("paused", "Paused"),
                            ("expired", "Expired"),
                            ("rejected", "Rejected"),
                        ],
                        default="draft",
                        max_length=20,
                    ),
                ),
                ("submitted_at", models.DateTimeField(blank=True, null=True)),
                ("reviewed_by", models.CharField(blank=True, max_length=64)),
                ("reviewed_at", models.DateTimeField(blank=True, null=True)),
                ("rejection_reason", models.TextField(blank=True)),
                ("review_notes", models.TextField(blank=True)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_by", models.CharField(blank=True, max_length=64)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Benefit",
                "verbose_name_plural": "Benefits",
                "db_table": "promotion_benefits",
                "ordering": ("-created_at",),
                "indexes": [
                    models.Index(fields=["status", "valid_from", "valid_until"], name="idx_benefit_validity"),
                    models.Index(fields=["owner_type", "supplier_id", "status"], name="idx_benefit_owner"),
                    models.Index(fields=["benefit_type", "status"], name="idx_benefit_type"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("budget_total__isnull", True))
                        | models.Q(("budget_used__lte", models.F("budget_total"))),
                        name="benefit_budget_within_total",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("total_cap__isnull", True))
                        | models.Q(("redemption_count__lte", models.F("total_cap"))),
                        name="benefit_redemptions_within_cap",
                    ),
                ],
            },
        ),
        # CoinAccount model
        migrations.CreateModel(
            name="CoinAccount",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("customer_id", models.CharField(max_length=64, unique=True)),
                ("balance", models.BigIntegerField(default=0)),
                ("total_earned", models.BigIntegerField(default=0)),
                ("total_redeemed", models.BigIntegerField(default=0)),
                ("total_expired", models.BigIntegerField(default=0)),
                ("version", models.PositiveBigIntegerField(default=0)),
                ("referral_code", models.CharField(blank=True, max_length=12, null=True, unique=True)),
                ("referred_by_customer_id", models.CharField(blank=True, max_length=64, null=True)),
                ("referred_by_code", models.CharField(blank=True, max_length=12)),
                ("referral_reward_claimed", models.BooleanField(default=False, help_text="Welcome bonus paid")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Coin Account",
                "verbose_name_plural": "Coin Accounts",
                "db_table": "promotion_coin_accounts",
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("balance__gte", 0)), name="coin_balance_non_negative"),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("balance", models.F("total_earned") - models.F("total_redeemed") - models.F("total_expired"))
                        ),
                        name="coin_balance_matches_totals",
                    ),
                ],
            },
        ),
        # RedemptionRecord model
        migrations.CreateModel(
            name="RedemptionRecord",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("customer_id", models.CharField(max_length=64)),
                ("order_id", models.CharField(blank=True, max_length=64, null=True)),
                ("idempotency_key", models.CharField(blank=True, max_length=128, null=True)),
                ("discount_applied", models.BigIntegerField(default=0)),
                ("free_delivery", models.BooleanField(default=False)),
                ("coins_multiplier", models.DecimalField(decimal_places=2, default=Decimal("1"), max_digits=5)),
                ("order_value", models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=12)),
                ("occurred_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "benefit",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="redemptions",
                        to="promotions.benefit",
                    ),
                ),
            ],
            options={
                "verbose_name": "Redemption Record",
                "verbose_name_plural": "Redemption Records",
                "db_table": "promotion_redemption_records",
                "ordering": ("-occurred_at",),
                "indexes": [
                    models.Index(fields=["benefit", "customer_id"], name="idx_redemption_customer"),
                    models.Index(fields=["benefit", "occurred_at"], name="idx_redemption_daily"),
                    models.Index(fields=["customer_id", "-occurred_at"], name="idx_redemption_history"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("idempotency_key__isnull", False)),
                        fields=("benefit", "customer_id", "idempotency_key"),
                        name="unique_redemption_idempotency_key",
                    ),
                ],
            },
        ),
        # CouponGrant model
        migrations.CreateModel(
            name="CouponGrant",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("customer_id", models.CharField(max_length=64)),
                ("awarded_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("awarded_by", models.CharField(blank=True, max_length=64)),
                ("reason", models.TextField(blank=True)),
                ("award_key", models.CharField(blank=True, max_length=128, null=True)),
                ("used", models.BooleanField(default=False)),
                ("used_at", models.DateTimeField(blank=True, null=True)),
                ("used_in_order", models.CharField(blank=True, max_length=64, null=True)),
                ("discount_applied", models.BigIntegerField(blank=True, null=True)),
                (
                    "benefit",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="grants",
                        to="promotions.benefit",
                    ),
                ),
            ],
            options={
                "verbose_name": "Coupon Grant",
                "verbose_name_plural": "Coupon Grants",
                "db_table": "promotion_coupon_grants",
                "ordering": ("-awarded_at",),
                "indexes": [
                    models.Index(fields=["customer_id", "used"], name="idx_grant_customer"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("used", False)),
                        fields=("benefit", "customer_id"),
                        name="unique_unused_grant_per_customer",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("award_key__isnull", False)),
                        fields=("benefit", "customer_id", "award_key"),
                        name="unique_grant_award_key",
                    ),
                ],
            },
        ),
        # CoinTransaction model
        migrations.CreateModel(
            name="CoinTransaction",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("sequence", models.PositiveBigIntegerField(help_text="Account version produced by this entry")),
                ("transaction_type", models.CharField(choices=TRANSACTION_TYPE_CHOICES, max_length=20)),
                ("amount", models.BigIntegerField(help_text="Coins change (positive or negative)")),
                ("balance_after", models.BigIntegerField()),
                ("description", models.TextField(blank=True)),
                ("order_id", models.CharField(blank=True, max_length=64, null=True)),
                ("expires_at", models.DateTimeField(blank=True, null=True)),
                ("idempotency_key", models.CharField(blank=True, max_length=128, null=True)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_by", models.CharField(blank=True, max_length=64)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transactions",
                        to="promotions.coinaccount",
                    ),
                ),
                (
                    "benefit",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to="promotions.benefit",
                    ),
                ),
                (
                    "coupon_grant",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="transactions",
                        to="promotions.coupongrant",
                    ),
                ),
                (
                    "source_transaction",
                    models.OneToOneField(
                        blank=True,
                        help_text="Credit this expiry entry retires",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="expiry_entry",
                        to="promotions.cointransaction",
                    ),
                ),
            ],
            options={
                "verbose_name": "Coin Transaction",
                "verbose_name_plural": "Coin Transactions",
                "db_table": "promotion_coin_transactions",
                "ordering": ("account", "sequence"),
                "indexes": [
                    models.Index(fields=["transaction_type", "-created_at"], name="idx_coin_txn_type"),
                    models.Index(fields=["expires_at"], name="idx_coin_txn_expiry"),
                    models.Index(fields=["order_id"], name="idx_coin_txn_order"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("account", "sequence"), name="unique_coin_txn_sequence"),
                    models.UniqueConstraint(
                        condition=models.Q(("idempotency_key__isnull", False)),
                        fields=("account", "idempotency_key"),
                        name="unique_coin_txn_idempotency_key",
                    ),
                ],
            },
        ),
        # MilestoneAchievement model
        migrations.CreateModel(
            name="MilestoneAchievement",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("milestone", models.CharField(choices=MILESTONE_CHOICES, max_length=20)),
                ("reward", models.PositiveIntegerField(default=0)),
                ("achieved_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="milestones",
                        to="promotions.coinaccount",
                    ),
                ),
            ],
            options={
                "verbose_name": "Milestone Achievement",
                "verbose_name_plural": "Milestone Achievements",
                "db_table": "promotion_milestone_achievements",
                "constraints": [
                    models.UniqueConstraint(fields=("account", "milestone"), name="unique_milestone_per_account"),
                ],
            },
        ),
        # Referral model
        migrations.CreateModel(
            name="Referral",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("referred_customer_id", models.CharField(max_length=64, unique=True)),
                ("code", models.CharField(max_length=12)),
                (
                    "status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("completed", "Completed")], default="pending", max_length=20
                    ),
                ),
                (
                    "reward_earned",
                    models.PositiveIntegerField(
                        default=0, validators=[django.core.validators.MaxValueValidator(100_000)]
                    ),
                ),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "referrer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="referrals",
                        to="promotions.coinaccount",
                    ),
                ),
            ],
            options={
                "verbose_name": "Referral",
                "verbose_name_plural": "Referrals",
                "db_table": "promotion_referrals",
                "indexes": [
                    models.Index(fields=["referrer", "-created_at"], name="idx_referral_referrer"),
                ],
            },
        ),
    ]
