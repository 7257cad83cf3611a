"""
Tests for discount and Aggre Coin calculations.
"""

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import SimpleTestCase

from apps.promotions.calculator import calculate_order_coins, compute, round_half_up
from apps.promotions.models import Benefit, Reward


class DiscountCalculationTestCase(SimpleTestCase):
    """Discount amounts for each reward kind"""

    def test_percentage_with_cap(self):
        """10% capped at 100: large orders hit the cap, small ones do not"""
        reward = Reward(kind=Benefit.REWARD_PERCENTAGE, value=Decimal('10'), cap_amount=Decimal('100'))

        large = compute(reward, Decimal('5000'))
        small = compute(reward, Decimal('500'))

        self.assertEqual(large.amount, 100)
        self.assertTrue(large.breakdown['capped'])
        self.assertEqual(small.amount, 50)
        self.assertFalse(small.breakdown['capped'])
        self.assertEqual(small.description, '10% off')

    def test_percentage_rounds_half_up_once(self):
        reward = Reward(kind=Benefit.REWARD_PERCENTAGE, value=Decimal('10'))
        test_cases = [
            (Decimal('125'), 13),    # 12.5 -> 13
            (Decimal('124'), 12),    # 12.4 -> 12
            (Decimal('124.99'), 12),  # 12.499 -> 12
            (Decimal('0'), 0),
        ]

        for order_value, expected in test_cases:
            with self.subTest(order_value=order_value):
                self.assertEqual(compute(reward, order_value).amount, expected)

    def test_fixed_amount_never_exceeds_order_value(self):
        reward = Reward(kind=Benefit.REWARD_FIXED_AMOUNT, value=Decimal('200'))

        self.assertEqual(compute(reward, Decimal('1500')).amount, 200)
        self.assertEqual(compute(reward, Decimal('150')).amount, 150)

    def test_free_delivery(self):
        result = compute(Reward(kind=Benefit.REWARD_FREE_DELIVERY, value=Decimal('0')), Decimal('2000'))

        self.assertEqual(result.amount, 0)
        self.assertTrue(result.free_delivery)

    def test_coins_multiplier_gives_no_discount(self):
        result = compute(Reward(kind=Benefit.REWARD_COINS_MULTIPLIER, value=Decimal('2')), Decimal('2000'))

        self.assertEqual(result.amount, 0)
        self.assertEqual(result.coins_multiplier, Decimal('2'))
        self.assertEqual(result.description, '2x Aggre Coins')

    def test_negative_order_value_rejected(self):
        reward = Reward(kind=Benefit.REWARD_PERCENTAGE, value=Decimal('10'))

        with self.assertRaises(ValidationError):
            compute(reward, Decimal('-1'))

    def test_unknown_reward_kind_rejected(self):
        with self.assertRaises(ValidationError):
            compute(Reward(kind='cashback', value=Decimal('5')), Decimal('100'))

    def test_round_half_up(self):
        self.assertEqual(round_half_up(Decimal('2.5')), 3)
        self.assertEqual(round_half_up(Decimal('3.5')), 4)
        self.assertEqual(round_half_up(Decimal('2.49')), 2)


class OrderCoinCalculationTestCase(SimpleTestCase):
    """Aggre Coins earned on completed orders"""

    def test_tier_and_customer_type_multipliers(self):
        test_cases = [
            ('silver', 'others', Decimal('10000'), 110),      # 100 x 1.0 x 1.1
            ('gold', 'mason', Decimal('10000'), 180),         # 100 x 1.5 x 1.2
            ('platinum', 'builder_contractor', Decimal('10000'), 260),  # 100 x 2.0 x 1.3
            ('silver', 'house_owner', Decimal('999'), 9),     # 9.99 rounds down
        ]

        for tier, customer_type, order_value, expected in test_cases:
            with self.subTest(tier=tier, customer_type=customer_type):
                earning = calculate_order_coins(order_value, tier, customer_type)
                self.assertEqual(earning.coins, expected)

    def test_promo_multiplier(self):
        earning = calculate_order_coins(Decimal('10000'), 'silver', 'others', Decimal('2'))

        self.assertEqual(earning.coins, 220)
        self.assertEqual(earning.breakdown['promo_multiplier'], '2')

    def test_unknown_tier_counts_as_one(self):
        earning = calculate_order_coins(Decimal('1000'), 'diamond', 'house_owner')

        self.assertEqual(earning.coins, 10)
