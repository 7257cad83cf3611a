"""
Tests for Aggre Coin accounts, coupon grants and coin expiry.
"""

from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.core.exceptions import ValidationError
from django.db.models import Sum
from django.test import TestCase
from django.utils import timezone

from apps.promotions.accounts import CoinAccountService
from apps.promotions.exceptions import (
    ContentionError,
    CouponAlreadyUsedError,
    InsufficientBalanceError,
    NotFoundError,
)
from apps.promotions.models import Benefit, CoinAccount, CoinTransaction
from apps.promotions.signals import coin_transaction_recorded
from tests.factories.promotions import create_benefit, create_coupon, create_profile


def assert_balance_invariant(testcase, customer_id):
    account = CoinAccount.objects.get(customer_id=customer_id)
    ledger_total = account.transactions.aggregate(total=Sum('amount'))['total'] or 0
    testcase.assertEqual(account.balance, account.total_earned - account.total_redeemed - account.total_expired)
    testcase.assertEqual(account.balance, ledger_total)
    testcase.assertGreaterEqual(account.balance, 0)


class CoinBalanceTestCase(TestCase):
    """Credits and debits keep the balance equal to the transaction log"""

    def test_add_coins_creates_account_and_entry(self):
        entry = CoinAccountService.add_coins('C1001', 250, description='Order completion')

        account = CoinAccount.objects.get(customer_id='C1001')
        self.assertEqual(account.balance, 250)
        self.assertEqual(account.total_earned, 250)
        self.assertEqual(account.version, 1)
        self.assertEqual(entry.sequence, 1)
        self.assertEqual(entry.balance_after, 250)
        self.assertEqual(entry.transaction_type, CoinTransaction.EARNED)
        self.assertIsNotNone(account.referral_code)

    def test_earned_coins_expire_after_a_year(self):
        entry = CoinAccountService.add_coins('C1001', 100)
        bonus = CoinAccountService.add_coins('C1001', 100, CoinTransaction.BONUS)

        self.assertAlmostEqual(
            entry.expires_at, timezone.now() + timedelta(days=365), delta=timedelta(minutes=1)
        )
        self.assertIsNone(bonus.expires_at)

    def test_redeem_more_than_balance_changes_nothing(self):
        """RedeemCoins 300 with balance 200 fails and leaves the balance at 200"""
        CoinAccountService.add_coins('C1001', 200)

        with self.assertRaises(InsufficientBalanceError) as ctx:
            CoinAccountService.redeem_coins('C1001', 300)

        self.assertEqual(ctx.exception.detail, {'balance': 200, 'requested': 300})
        account = CoinAccount.objects.get(customer_id='C1001')
        self.assertEqual(account.balance, 200)
        self.assertEqual(account.total_redeemed, 0)
        self.assertEqual(account.transactions.count(), 1)

    def test_redeem_without_account(self):
        with self.assertRaises(InsufficientBalanceError):
            CoinAccountService.redeem_coins('C404', 100)

        self.assertFalse(CoinAccount.objects.filter(customer_id='C404').exists())

    def test_balance_invariant_across_operations(self):
        CoinAccountService.add_coins('C1001', 500)
        CoinAccountService.add_coins('C1001', 120, CoinTransaction.BONUS)
        CoinAccountService.redeem_coins('C1001', 300)
        CoinAccountService.add_coins('C1001', 75, CoinTransaction.ADMIN_AWARD, created_by='admin-1')
        CoinAccountService.redeem_coins('C1001', 395)

        assert_balance_invariant(self, 'C1001')
        account = CoinAccount.objects.get(customer_id='C1001')
        self.assertEqual(account.balance, 0)
        self.assertEqual(list(account.transactions.values_list('sequence', flat=True)), [1, 2, 3, 4, 5])

    def test_invalid_amounts_rejected(self):
        for amount in (0, -5, 1.5, True):
            with self.subTest(amount=amount), self.assertRaises(ValidationError):
                CoinAccountService.add_coins('C1001', amount)

        with self.assertRaises(ValidationError):
            CoinAccountService.add_coins('C1001', 10, CoinTransaction.REDEEMED)

    def test_idempotency_key_credits_once(self):
        first = CoinAccountService.add_coins('C1001', 100, idempotency_key='promo-7')
        second = CoinAccountService.add_coins('C1001', 100, idempotency_key='promo-7')

        self.assertEqual(first.pk, second.pk)
        self.assertEqual(CoinAccount.objects.get(customer_id='C1001').balance, 100)

    def test_contention_error_when_account_keeps_changing(self):
        account = CoinAccountService.get_or_create_account('C1001')
        stale = CoinAccount.objects.get(pk=account.pk)
        stale.version = 99

        with mock.patch.object(CoinAccountService, '_load_for_write', return_value=stale):
            with self.assertRaises(ContentionError):
                CoinAccountService.add_coins('C1001', 10)

        account.refresh_from_db()
        self.assertEqual(account.balance, 0)
        self.assertFalse(account.transactions.exists())

    def test_signal_sent_on_commit(self):
        received = []

        def handler(sender, transaction, **kwargs):
            received.append(transaction.pk)

        coin_transaction_recorded.connect(handler, weak=False)
        self.addCleanup(coin_transaction_recorded.disconnect, handler)

        with self.captureOnCommitCallbacks(execute=True):
            entry = CoinAccountService.add_coins('C1001', 10)

        self.assertEqual(received, [entry.pk])


class OrderCoinsTestCase(TestCase):

    def test_award_order_coins_once_per_order(self):
        actor = create_profile('C1001', membership_tier='gold', customer_type='mason')

        first = CoinAccountService.award_order_coins(actor, 'ORD-1', Decimal('10000'))
        again = CoinAccountService.award_order_coins(actor, 'ORD-1', Decimal('10000'))

        self.assertEqual(first.amount, 180)
        self.assertEqual(first.pk, again.pk)
        self.assertEqual(first.metadata['tier_multiplier'], '1.5')
        self.assertEqual(CoinAccount.objects.get(customer_id='C1001').balance, 180)

    def test_tiny_order_earns_nothing(self):
        actor = create_profile('C1001')

        self.assertIsNone(CoinAccountService.award_order_coins(actor, 'ORD-1', Decimal('50')))

    def test_redeem_coins_for_order(self):
        CoinAccountService.add_coins('C1001', 500)

        redemption = CoinAccountService.redeem_coins_for_order('C1001', 300, Decimal('250.75'), 'ORD-1')
        replay = CoinAccountService.redeem_coins_for_order('C1001', 300, Decimal('250.75'), 'ORD-1')

        self.assertEqual(redemption.coins_used, 250)
        self.assertEqual(redemption.discount, 250)
        self.assertEqual(replay.transaction.pk, redemption.transaction.pk)
        self.assertEqual(CoinAccount.objects.get(customer_id='C1001').balance, 250)

    def test_redeem_coins_below_minimum(self):
        CoinAccountService.add_coins('C1001', 500)

        with self.assertRaises(ValidationError):
            CoinAccountService.redeem_coins_for_order('C1001', 50, Decimal('1000'), 'ORD-1')


class CoinExpiryTestCase(TestCase):

    def setUp(self):
        past = timezone.now() - timedelta(days=1)
        self.lapsed = CoinAccountService.add_coins('C1001', 500, expires_at=past)
        CoinAccountService.add_coins('C1001', 100, CoinTransaction.BONUS)
        CoinAccountService.redeem_coins('C1001', 200)

    def test_expiry_retires_only_unspent_part(self):
        entries = CoinAccountService.expire_coins('C1001')

        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0].transaction_type, CoinTransaction.EXPIRED)
        self.assertEqual(entries[0].amount, -300)
        self.assertEqual(entries[0].source_transaction_id, self.lapsed.pk)
        account = CoinAccount.objects.get(customer_id='C1001')
        self.assertEqual(account.balance, 100)
        self.assertEqual(account.total_expired, 300)
        assert_balance_invariant(self, 'C1001')

    def test_expiry_runs_once_per_credit(self):
        CoinAccountService.expire_coins('C1001')

        self.assertEqual(CoinAccountService.expire_coins('C1001'), [])
        self.assertEqual(CoinTransaction.objects.filter(transaction_type=CoinTransaction.EXPIRED).count(), 1)

    def test_expire_all(self):
        CoinAccountService.add_coins('C2002', 80, expires_at=timezone.now() - timedelta(hours=1))
        CoinAccountService.add_coins('C3003', 80)

        results = CoinAccountService.expire_all()

        self.assertEqual(results, {'C1001': 300, 'C2002': 80})

    def test_unknown_customer_has_nothing_to_expire(self):
        self.assertEqual(CoinAccountService.expire_coins('C404'), [])

    def test_spent_credit_leaves_later_awards_alone(self):
        CoinAccountService.add_coins('C2002', 100, expires_at=timezone.now() - timedelta(hours=1))
        CoinAccountService.redeem_coins('C2002', 100)
        CoinAccountService.add_coins('C2002', 100, CoinTransaction.ADMIN_AWARD)

        entries = CoinAccountService.expire_coins('C2002')

        self.assertEqual([entry.amount for entry in entries], [0])
        self.assertEqual(CoinAccount.objects.get(customer_id='C2002').balance, 100)
        self.assertEqual(CoinAccountService.expire_coins('C2002'), [])
        assert_balance_invariant(self, 'C2002')

    def test_partly_spent_credit(self):
        credit = CoinAccountService.add_coins('C2002', 300, expires_at=timezone.now() - timedelta(hours=1))
        CoinAccountService.add_coins('C2002', 50, CoinTransaction.BONUS)
        CoinAccountService.redeem_coins('C2002', 120)

        self.assertEqual(CoinAccountService.unspent_remainder(credit), 180)
        CoinAccountService.expire_coins('C2002')

        self.assertEqual(CoinAccount.objects.get(customer_id='C2002').balance, 50)
        self.assertEqual(CoinAccountService.unspent_remainder(credit), 0)


class CouponGrantTestCase(TestCase):

    def setUp(self):
        self.coupon = create_coupon('WELCOME50', reward_kind=Benefit.REWARD_FIXED_AMOUNT, reward_value=Decimal('50'))

    def test_grant_and_use(self):
        grant = CoinAccountService.grant_coupon('C1001', self.coupon.pk, reason='signup', awarded_by='admin-1')

        self.assertFalse(grant.used)
        awarded = CoinTransaction.objects.get(coupon_grant=grant)
        self.assertEqual(awarded.transaction_type, CoinTransaction.COUPON_AWARDED)
        self.assertEqual(awarded.amount, 0)

        used = CoinAccountService.use_coupon(grant.pk, 'ORD-1', 50)

        self.assertTrue(used.used)
        self.assertEqual(used.used_in_order, 'ORD-1')
        self.assertTrue(
            CoinTransaction.objects.filter(coupon_grant=grant, transaction_type=CoinTransaction.COUPON_USED).exists()
        )
        assert_balance_invariant(self, 'C1001')

    def test_second_use_rejected(self):
        grant = CoinAccountService.grant_coupon('C1001', self.coupon.pk)
        CoinAccountService.use_coupon(grant.pk, 'ORD-1', 50)

        with self.assertRaises(CouponAlreadyUsedError):
            CoinAccountService.use_coupon(grant.pk, 'ORD-2', 50)

    def test_unknown_grant(self):
        with self.assertRaises(NotFoundError):
            CoinAccountService.use_coupon('00000000-0000-0000-0000-000000000000', 'ORD-1', 0)

    def test_unused_grant_is_not_duplicated(self):
        first = CoinAccountService.grant_coupon('C1001', self.coupon.pk)
        second = CoinAccountService.grant_coupon('C1001', self.coupon.pk)

        self.assertEqual(first.pk, second.pk)

    def test_award_key_deduplicates_after_use(self):
        first = CoinAccountService.grant_coupon('C1001', self.coupon.pk, award_key='campaign-1')
        CoinAccountService.use_coupon(first.pk, 'ORD-1', 50)

        again = CoinAccountService.grant_coupon('C1001', self.coupon.pk, award_key='campaign-1')
        fresh = CoinAccountService.grant_coupon('C1001', self.coupon.pk, award_key='campaign-2')

        self.assertEqual(again.pk, first.pk)
        self.assertNotEqual(fresh.pk, first.pk)
        self.assertFalse(fresh.used)

    def test_only_active_coupons_can_be_granted(self):
        discount = create_benefit()
        paused = create_coupon('PAUSED01', status=Benefit.STATUS_PAUSED)

        with self.assertRaises(ValidationError):
            CoinAccountService.grant_coupon('C1001', discount.pk)
        with self.assertRaises(ValidationError):
            CoinAccountService.grant_coupon('C1001', paused.pk)

    def test_summary_lists_active_unused_coupons(self):
        grant = CoinAccountService.grant_coupon('C1001', self.coupon.pk)
        CoinAccountService.add_coins('C1001', 40)

        summary = CoinAccountService.summary('C1001')

        self.assertEqual(summary.balance, 40)
        self.assertEqual([c.grant_id for c in summary.active_coupons], [str(grant.pk)])
        self.assertEqual(summary.active_coupons[0].code, 'WELCOME50')

        CoinAccountService.use_coupon(grant.pk, 'ORD-1', 50)
        self.assertEqual(CoinAccountService.summary('C1001').active_coupons, [])
