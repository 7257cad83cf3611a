"""
Tests for the promotions REST API.
"""

from decimal import Decimal
from unittest import mock

from django.test import TestCase
from django.urls import reverse
from rest_framework.test import APIClient

from apps.promotions.accounts import CoinAccountService
from apps.promotions.exceptions import ContentionError, StorageUnavailableError
from apps.promotions.models import Benefit
from tests.factories.promotions import create_benefit, create_coupon, create_engine, create_profile, create_user


class PromotionsAPITestCase(TestCase):
    """Shared users, benefits and a directory that knows them"""

    def setUp(self):
        self.user = create_user('customer')
        self.staff = create_user('admin', is_staff=True)
        self.customer_id = str(self.user.pk)
        self.coupon = create_coupon('SAVE10')

        self.engine = create_engine(create_profile(self.customer_id), create_profile(str(self.staff.pk)))
        patcher = mock.patch('apps.api.promotions.views.get_engine', return_value=self.engine)
        patcher.start()
        self.addCleanup(patcher.stop)

        self.client = APIClient()
        self.client.force_authenticate(user=self.user)


class ApplyBenefitAPITestCase(PromotionsAPITestCase):

    def test_apply_then_replay_then_cap(self):
        url = reverse('api:promotions:apply')
        payload = {'benefit': 'SAVE10', 'order_id': 'ORD-1', 'order_value': '5000.00'}

        first = self.client.post(url, payload, format='json')
        replay = self.client.post(url, payload, format='json')
        capped = self.client.post(url, {**payload, 'order_id': 'ORD-2'}, format='json')

        self.assertEqual(first.status_code, 201)
        self.assertEqual(first.json()['discount'], 100)
        self.assertFalse(first.json()['replayed'])
        self.assertEqual(replay.status_code, 200)
        self.assertTrue(replay.json()['replayed'])
        self.assertEqual(replay.json()['redemption_id'], first.json()['redemption_id'])
        self.assertEqual(capped.status_code, 409)
        self.assertEqual(capped.json()['reason'], 'usage_cap_exceeded')
        self.assertEqual(capped.json()['detail']['cap'], 'per_user')

    def test_invalid_input(self):
        response = self.client.post(
            reverse('api:promotions:apply'), {'benefit': 'SAVE10', 'order_value': '-10'}, format='json'
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn('order_id', response.json()['details'])

    def test_unknown_benefit(self):
        response = self.client.post(
            reverse('api:promotions:apply'),
            {'benefit': 'NOPE1234', 'order_id': 'ORD-1', 'order_value': '100'},
            format='json',
        )

        self.assertEqual(response.status_code, 404)

    def test_contention_and_storage_errors_are_retryable(self):
        url = reverse('api:promotions:apply')
        payload = {'benefit': 'SAVE10', 'order_id': 'ORD-1', 'order_value': '100'}

        for error in (ContentionError(attempts=5), StorageUnavailableError(operation='redeem')):
            with self.subTest(error=type(error).__name__):
                with mock.patch.object(self.engine, 'apply_benefit', side_effect=error):
                    response = self.client.post(url, payload, format='json')
                self.assertEqual(response.status_code, 503)

    def test_customers_cannot_act_for_others(self):
        response = self.client.post(
            reverse('api:promotions:apply'),
            {'benefit': 'SAVE10', 'order_id': 'ORD-1', 'order_value': '100', 'customer_id': str(self.staff.pk)},
            format='json',
        )

        self.assertEqual(response.status_code, 403)

    def test_authentication_required(self):
        anonymous = APIClient()

        response = anonymous.post(reverse('api:promotions:evaluate'), {}, format='json')

        self.assertIn(response.status_code, (401, 403))


class EvaluateAPITestCase(PromotionsAPITestCase):

    def test_evaluate_reports_denial_without_redeeming(self):
        create_benefit(title='Masons only', target_customer_types=['mason'])
        benefit = Benefit.objects.get(title='Masons only')

        response = self.client.post(
            reverse('api:promotions:evaluate'),
            {'benefit': str(benefit.pk), 'order_value': '2000'},
            format='json',
        )

        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()['eligible'])
        self.assertEqual(response.json()['reason'], 'targeting_mismatch')
        self.assertEqual(response.json()['detail']['axis'], 'customer_type')

    def test_available_benefits(self):
        response = self.client.post(reverse('api:promotions:available'), {'order_value': '5000'}, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['count'], 1)
        self.assertEqual(response.json()['results'][0]['code'], 'SAVE10')
        self.assertEqual(response.json()['results'][0]['discount'], 100)


class AccountAPITestCase(PromotionsAPITestCase):

    def test_account_summary(self):
        CoinAccountService.add_coins(self.customer_id, 420)

        response = self.client.get(reverse('api:promotions:account_summary'))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['balance'], 420)
        self.assertEqual(response.json()['active_coupons'], [])

    def test_redeem_coins_insufficient_balance(self):
        CoinAccountService.add_coins(self.customer_id, 200)

        response = self.client.post(
            reverse('api:promotions:redeem_coins'),
            {'coins': 300, 'order_value': '1000', 'order_id': 'ORD-1'},
            format='json',
        )

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['detail'], {'balance': 200, 'requested': 300})

    def test_redeem_coins(self):
        CoinAccountService.add_coins(self.customer_id, 500)

        response = self.client.post(
            reverse('api:promotions:redeem_coins'),
            {'coins': 300, 'order_value': '1000', 'order_id': 'ORD-1'},
            format='json',
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['discount'], 300)
        self.assertEqual(response.json()['transaction']['balance_after'], 200)


class StaffAPITestCase(PromotionsAPITestCase):

    def test_award_coins_requires_staff(self):
        url = reverse('api:promotions:award_coins')
        payload = {'customer_id': self.customer_id, 'amount': 250, 'reason': 'Goodwill'}

        denied = self.client.post(url, payload, format='json')
        self.client.force_authenticate(user=self.staff)
        awarded = self.client.post(url, payload, format='json')

        self.assertEqual(denied.status_code, 403)
        self.assertEqual(awarded.status_code, 201)
        self.assertEqual(awarded.json()['amount'], 250)
        self.assertEqual(CoinAccountService.get_account(self.customer_id).balance, 250)

    def test_award_coupon(self):
        self.client.force_authenticate(user=self.staff)

        response = self.client.post(
            reverse('api:promotions:award_coupon'),
            {'customer_id': self.customer_id, 'benefit': 'SAVE10', 'reason': 'Loyalty'},
            format='json',
        )

        self.assertEqual(response.status_code, 201)
        self.assertFalse(response.json()['used'])

    def test_staff_can_read_other_account(self):
        self.client.force_authenticate(user=self.staff)

        response = self.client.get(reverse('api:promotions:account_summary'), {'customer_id': self.customer_id})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['customer_id'], self.customer_id)


class BenefitLifecycleAPITestCase(PromotionsAPITestCase):

    def setUp(self):
        super().setUp()
        self.client.force_authenticate(user=self.staff)

    def action_url(self, action):
        return reverse('api:promotions:benefit_action', kwargs={'benefit': 'SAVE10', 'action': action})

    def test_pause_and_resume(self):
        paused = self.client.post(self.action_url('pause'), {}, format='json')
        paused_again = self.client.post(self.action_url('pause'), {}, format='json')
        resumed = self.client.post(self.action_url('resume'), {}, format='json')

        self.assertEqual(paused.status_code, 200)
        self.assertEqual(paused.json()['status'], Benefit.STATUS_PAUSED)
        self.assertEqual(paused_again.status_code, 409)
        self.assertEqual(resumed.json()['status'], Benefit.STATUS_ACTIVE)

    def test_review_flow(self):
        draft = create_benefit(title='Supplier deal', status=Benefit.STATUS_DRAFT)
        submit_url = reverse('api:promotions:benefit_action', kwargs={'benefit': str(draft.pk), 'action': 'submit'})
        reject_url = reverse('api:promotions:benefit_action', kwargs={'benefit': str(draft.pk), 'action': 'reject'})

        self.assertEqual(self.client.post(submit_url, {}, format='json').status_code, 200)
        self.assertEqual(self.client.post(reject_url, {}, format='json').status_code, 400)
        rejected = self.client.post(reject_url, {'reason': 'Budget too high'}, format='json')

        self.assertEqual(rejected.status_code, 200)
        self.assertEqual(rejected.json()['status'], Benefit.STATUS_REJECTED)
        self.assertEqual(rejected.json()['rejection_reason'], 'Budget too high')

    def test_unknown_action_and_benefit(self):
        self.assertEqual(self.client.post(self.action_url('archive'), {}, format='json').status_code, 404)
        missing = reverse('api:promotions:benefit_action', kwargs={'benefit': 'NOPE1234', 'action': 'pause'})
        self.assertEqual(self.client.post(missing, {}, format='json').status_code, 404)

    def test_customers_cannot_change_lifecycle(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.post(self.action_url('pause'), {}, format='json')

        self.assertEqual(response.status_code, 403)

    def test_benefit_detail(self):
        response = self.client.get(reverse('api:promotions:benefit_detail', kwargs={'benefit': 'save10'}))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['code'], 'SAVE10')
        self.assertEqual(response.json()['effective_status'], Benefit.STATUS_ACTIVE)
        self.assertIsNone(response.json()['remaining_budget'])
