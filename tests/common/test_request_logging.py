"""
Tests for request correlation: RequestIDMiddleware feeding RequestIDFilter.
"""

import logging

from django.http import HttpResponse
from django.test import RequestFactory, SimpleTestCase

from apps.common.logging import RequestIDFilter
from apps.common.middleware import RequestIDMiddleware


def make_record():
    return logging.LogRecord('apps.promotions', logging.INFO, __file__, 1, 'message', None, None)


class RequestIDMiddlewareTestCase(SimpleTestCase):

    def setUp(self):
        self.factory = RequestFactory()
        self.filter = RequestIDFilter()
        self.seen = {}

        def view(request):
            record = make_record()
            self.filter.filter(record)
            self.seen['request_id'] = record.request_id
            self.seen['ip_address'] = record.ip_address
            return HttpResponse('ok')

        self.middleware = RequestIDMiddleware(view)

    def test_upstream_request_id_is_honoured(self):
        response = self.middleware(self.factory.get('/', HTTP_X_REQUEST_ID='req-123'))

        self.assertEqual(response['X-Request-ID'], 'req-123')
        self.assertEqual(self.seen['request_id'], 'req-123')
        self.assertEqual(self.seen['ip_address'], '127.0.0.1')

    def test_request_id_generated_when_missing(self):
        response = self.middleware(self.factory.get('/'))

        self.assertEqual(len(response['X-Request-ID']), 36)
        self.assertEqual(self.seen['request_id'], response['X-Request-ID'])

    def test_context_cleared_after_response(self):
        self.middleware(self.factory.get('/', HTTP_X_REQUEST_ID='req-123'))

        record = make_record()
        self.filter.filter(record)

        self.assertEqual(record.request_id, '-')
        self.assertIsNone(record.ip_address)

    def test_explicit_request_id_kept(self):
        record = make_record()
        record.request_id = 'from-extra'

        self.filter.filter(record)

        self.assertEqual(record.request_id, 'from-extra')
