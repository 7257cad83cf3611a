"""
Tests for order milestones and referral rewards.
"""

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import SimpleTestCase, TestCase, override_settings

from apps.promotions.accounts import CoinAccountService
from apps.promotions.exceptions import NotFoundError
from apps.promotions.milestones import award_milestones, evaluate_milestones
from apps.promotions.models import CoinAccount, CoinTransaction, Milestone, MilestoneAchievement, Referral
from apps.promotions.referrals import ReferralService


class MilestoneEvaluationTestCase(SimpleTestCase):

    def test_crossed_milestones(self):
        crossed = evaluate_milestones(5, Decimal('12000'), [])

        self.assertEqual(crossed, [Milestone.FIRST_ORDER, Milestone.ORDERS_5, Milestone.VALUE_10K])

    def test_existing_milestones_skipped(self):
        crossed = evaluate_milestones(20, Decimal('50000'), ['first_order', 'orders_5', 'value_10k'])

        self.assertEqual(crossed, [Milestone.ORDERS_20, Milestone.VALUE_50K])

    def test_nothing_before_first_order(self):
        self.assertEqual(evaluate_milestones(0, Decimal('0'), []), [])


class MilestoneAwardTestCase(TestCase):

    def test_each_milestone_rewarded_once(self):
        awarded = award_milestones('C1001', 5, Decimal('12000'))

        self.assertEqual({a.milestone for a in awarded}, {'first_order', 'orders_5', 'value_10k'})
        account = CoinAccount.objects.get(customer_id='C1001')
        self.assertEqual(account.balance, 100 + 250 + 300)

        self.assertEqual(award_milestones('C1001', 5, Decimal('12000')), [])
        account.refresh_from_db()
        self.assertEqual(account.balance, 650)
        self.assertEqual(MilestoneAchievement.objects.filter(account=account).count(), 3)

    def test_later_milestones_added_incrementally(self):
        award_milestones('C1001', 1, Decimal('500'))
        awarded = award_milestones('C1001', 5, Decimal('2500'))

        self.assertEqual([a.milestone for a in awarded], ['orders_5'])
        self.assertEqual(CoinAccount.objects.get(customer_id='C1001').balance, 350)


class ReferralTestCase(TestCase):

    def setUp(self):
        self.code = ReferralService.get_referral_code('REFERRER')

    def test_referral_code_is_stable(self):
        self.assertEqual(ReferralService.get_referral_code('REFERRER'), self.code)

    def test_apply_referral_code_pays_welcome_bonus(self):
        entry = ReferralService.apply_referral_code('NEWBIE', self.code.lower())

        self.assertEqual(entry.amount, 100)
        self.assertEqual(entry.transaction_type, CoinTransaction.BONUS)
        account = CoinAccount.objects.get(customer_id='NEWBIE')
        self.assertEqual(account.referred_by_customer_id, 'REFERRER')
        self.assertTrue(account.referral_reward_claimed)
        referral = Referral.objects.get(referred_customer_id='NEWBIE')
        self.assertEqual(referral.status, Referral.STATUS_PENDING)

    def test_code_can_be_used_only_once(self):
        ReferralService.apply_referral_code('NEWBIE', self.code)

        with self.assertRaises(ValidationError):
            ReferralService.apply_referral_code('NEWBIE', self.code)
        self.assertEqual(CoinAccount.objects.get(customer_id='NEWBIE').balance, 100)

    def test_invalid_and_own_codes_rejected(self):
        with self.assertRaises(NotFoundError):
            ReferralService.apply_referral_code('NEWBIE', 'ZZZZZZZZ')
        with self.assertRaises(ValidationError):
            ReferralService.apply_referral_code('REFERRER', self.code)

    @override_settings(PROMOTIONS={'REFERRAL_MONTHLY_LIMIT': 1})
    def test_monthly_limit(self):
        ReferralService.apply_referral_code('NEWBIE-1', self.code)

        with self.assertRaises(ValidationError):
            ReferralService.apply_referral_code('NEWBIE-2', self.code)

    def test_referrer_paid_once_on_completion(self):
        ReferralService.apply_referral_code('NEWBIE', self.code)

        referral = ReferralService.complete_referral('NEWBIE')

        self.assertEqual(referral.status, Referral.STATUS_COMPLETED)
        self.assertEqual(referral.reward_earned, 100)
        self.assertIsNone(ReferralService.complete_referral('NEWBIE'))
        reward = CoinTransaction.objects.get(account__customer_id='REFERRER')
        self.assertEqual(reward.transaction_type, CoinTransaction.REFERRAL)
        self.assertEqual(reward.amount, 100)
        self.assertEqual(CoinAccountService.get_account('REFERRER').balance, 100)

    def test_complete_without_referral(self):
        self.assertIsNone(ReferralService.complete_referral('LONER'))
