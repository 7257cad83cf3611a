"""
Tests for the customer directory collaborators and order context.
"""

from decimal import Decimal
from unittest import mock

import requests
from django.core.exceptions import ValidationError
from django.test import SimpleTestCase

from apps.promotions.directory import (
    ActorProfile,
    HttpCustomerDirectory,
    OrderContext,
    StaticCustomerDirectory,
    get_customer_directory,
)
from apps.promotions.exceptions import NotFoundError, StorageUnavailableError

PROFILE_PAYLOAD = {
    'customerType': 'builder_contractor',
    'membershipTier': 'gold',
    'address': {'state': 'Karnataka', 'city': 'Bengaluru'},
    'orderStats': {'totalOrders': 12, 'totalValue': '84500.50'},
}


def fake_response(status_code=200, payload=None):
    response = mock.Mock()
    response.status_code = status_code
    response.json.return_value = payload or {}
    return response


class HttpCustomerDirectoryTestCase(SimpleTestCase):

    def setUp(self):
        self.directory = HttpCustomerDirectory(base_url='http://users.internal/api/', timeout=2)

    @mock.patch('apps.promotions.directory.requests.get')
    def test_profile_parsed_from_user_service(self, mock_get):
        mock_get.return_value = fake_response(payload=PROFILE_PAYLOAD)

        profile = self.directory.get_profile('C1001')

        mock_get.assert_called_once_with(
            'http://users.internal/api/customers/C1001/profile',
            timeout=2,
            headers={'Accept': 'application/json'},
        )
        self.assertEqual(profile, ActorProfile(
            customer_id='C1001',
            customer_type='builder_contractor',
            membership_tier='gold',
            state='Karnataka',
            city='Bengaluru',
            order_count=12,
            total_order_value=Decimal('84500.50'),
        ))

    @mock.patch('apps.promotions.directory.requests.get')
    def test_missing_fields_use_defaults(self, mock_get):
        mock_get.return_value = fake_response(payload={})

        profile = self.directory.get_profile('C1001')

        self.assertEqual(profile.customer_type, 'others')
        self.assertEqual(profile.membership_tier, 'silver')
        self.assertEqual(profile.order_count, 0)

    @mock.patch('apps.promotions.directory.requests.get')
    def test_unknown_customer(self, mock_get):
        mock_get.return_value = fake_response(status_code=404)

        with self.assertRaises(NotFoundError):
            self.directory.get_profile('C404')

    @mock.patch('apps.promotions.directory.requests.get')
    def test_service_errors_are_retryable(self, mock_get):
        for side_effect in (requests.exceptions.Timeout('slow'), requests.exceptions.ConnectionError('refused')):
            with self.subTest(error=type(side_effect).__name__):
                mock_get.side_effect = side_effect
                with self.assertRaises(StorageUnavailableError):
                    self.directory.get_profile('C1001')

        mock_get.side_effect = None
        mock_get.return_value = fake_response(status_code=502)
        with self.assertRaises(StorageUnavailableError) as ctx:
            self.directory.get_profile('C1001')
        self.assertEqual(ctx.exception.detail['status_code'], 502)

    @mock.patch('apps.promotions.directory.requests.get')
    def test_malformed_body_is_retryable(self, mock_get):
        response = fake_response()
        response.json.side_effect = requests.exceptions.JSONDecodeError('Expecting value', '<html>', 0)
        mock_get.return_value = response

        with self.assertRaises(StorageUnavailableError) as ctx:
            self.directory.get_profile('C1001')
        self.assertEqual(ctx.exception.detail['operation'], 'get_profile')


class StaticCustomerDirectoryTestCase(SimpleTestCase):

    def test_register_and_lookup(self):
        directory = StaticCustomerDirectory()
        directory.register(ActorProfile(customer_id='C1001', customer_type='mason'))

        self.assertEqual(directory.get_profile('C1001').customer_type, 'mason')
        with self.assertRaises(NotFoundError):
            directory.get_profile('C404')

    def test_configured_directory(self):
        self.assertIsInstance(get_customer_directory(), StaticCustomerDirectory)


class OrderContextTestCase(SimpleTestCase):

    def test_values_normalized(self):
        order = OrderContext(value='1250.50', categories=['sand', 'sand', 'cement'])

        self.assertEqual(order.value, Decimal('1250.50'))
        self.assertEqual(order.categories, frozenset({'sand', 'cement'}))

    def test_malformed_orders_rejected(self):
        for kwargs in ({'value': '-1'}, {'value': 'abc'}, {'value': '10', 'quantity': -1}):
            with self.subTest(kwargs=kwargs), self.assertRaises(ValidationError):
                OrderContext(**kwargs)

