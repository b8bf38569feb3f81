"""
Test suite for the core module
Tests: JWT auth, audit logging, conflict retry decorator and error rendering
"""
from django.db import OperationalError
from django.test import SimpleTestCase, TestCase, RequestFactory, override_settings
from rest_framework import status
from backoffice.core.db_utils import is_serialization_failure, retry_on_conflict
from backoffice.core.exceptions import (
    ConcurrencyConflict, EmptyBasket, InsufficientStock, InvalidItem, InvalidTransition, StockShortfall,
)
from backoffice.core.models import AuditLog
from backoffice.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backoffice.core.utils import create_audit_log, get_client_ip


class _PgError(Exception):
    def __init__(self, sqlstate):
        super().__init__(sqlstate)
        self.sqlstate = sqlstate


def make_operational_error(sqlstate):
    """OperationalError wrapping a driver error the way Django does"""
    error = OperationalError(f'driver error {sqlstate}')
    error.__cause__ = _PgError(sqlstate)
    return error


class AuthAPITests(TestCase):
    """Test login, refresh and current-user endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user(username='clerk', password='secret123')
        self.client = AuthenticatedAPIClient()

    def test_login_returns_token_pair(self):
        response = self.client.post('/api/v1/auth/login/', {'username': 'clerk', 'password': 'secret123'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)

    def test_login_wrong_password(self):
        response = self.client.post('/api/v1/auth/login/', {'username': 'clerk', 'password': 'nope'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_login_inactive_user(self):
        self.user.is_active = False
        self.user.save()
        response = self.client.post('/api/v1/auth/login/', {'username': 'clerk', 'password': 'secret123'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_refresh_returns_new_access_token(self):
        login = self.client.post('/api/v1/auth/login/', {'username': 'clerk', 'password': 'secret123'}, format='json')
        response = self.client.post('/api/v1/auth/refresh/', {'refresh': login.data['refresh']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)

    def test_refresh_with_garbage_token(self):
        response = self.client.post('/api/v1/auth/refresh/', {'refresh': 'not-a-token'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me_requires_authentication(self):
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me_returns_current_user(self):
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['username'], 'clerk')
        self.assertFalse(response.data['is_staff'])


class AuditLogTests(TestCase):
    """Test audit log helper and endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.staff = TestDataFactory.create_staff_user()
        self.factory = RequestFactory()

    def test_create_audit_log_with_request(self):
        request = self.factory.post('/', REMOTE_ADDR='10.0.0.5')
        request.user = self.user
        log = create_audit_log(
            request=request,
            action='order_place',
            model_name='Order',
            object_id=42,
            object_reference='ORD-1',
            changes={'total_amount': '12.00'},
        )
        self.assertIsNotNone(log)
        self.assertEqual(log.user, self.user)
        self.assertEqual(log.object_id, '42')
        self.assertEqual(log.ip_address, '10.0.0.5')
        self.assertEqual(log.changes, {'total_amount': '12.00'})

    def test_create_audit_log_skips_missing_fields(self):
        log = create_audit_log(action='create', model_name='Item')
        self.assertIsNone(log)
        self.assertEqual(AuditLog.objects.count(), 0)

    def test_get_client_ip_prefers_forwarded_header(self):
        request = self.factory.get('/', HTTP_X_FORWARDED_FOR='203.0.113.7, 10.0.0.1', REMOTE_ADDR='10.0.0.1')
        self.assertEqual(get_client_ip(request), '203.0.113.7')

    def test_audit_log_list_requires_staff(self):
        client = AuthenticatedAPIClient().authenticate_user(self.user)
        response = client.get('/api/v1/audit-logs/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_audit_log_list_filters(self):
        create_audit_log(user=self.staff, action='order_place', model_name='Order', object_id=1, object_reference='ORD-A')
        create_audit_log(user=self.staff, action='order_cancel', model_name='Order', object_id=1, object_reference='ORD-A')
        create_audit_log(user=self.staff, action='stock_adjust', model_name='Item', object_id=7)

        client = AuthenticatedAPIClient().authenticate_user(self.staff)
        response = client.get('/api/v1/audit-logs/', {'model_name': 'Order'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 2)

        response = client.get('/api/v1/audit-logs/', {'action': 'stock_adjust'})
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['object_id'], '7')

    def test_audit_log_list_ignores_bad_limit(self):
        create_audit_log(user=self.staff, action='create', model_name='Item', object_id=1)
        client = AuthenticatedAPIClient().authenticate_user(self.staff)
        response = client.get('/api/v1/audit-logs/', {'limit': 'abc'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)

        response = client.get('/api/v1/audit-logs/', {'limit': '-5'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_audit_log_detail(self):
        log = create_audit_log(user=self.staff, action='create', model_name='Item', object_id=3, object_name='Milk')
        client = AuthenticatedAPIClient().authenticate_user(self.staff)
        response = client.get(f'/api/v1/audit-logs/{log.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['object_name'], 'Milk')


class RetryOnConflictTests(SimpleTestCase):
    """Test the serialization-failure retry decorator (no database access)"""

    def test_detects_serialization_failure(self):
        self.assertTrue(is_serialization_failure(make_operational_error('40001')))
        self.assertTrue(is_serialization_failure(make_operational_error('40P01')))
        self.assertFalse(is_serialization_failure(make_operational_error('57014')))
        self.assertFalse(is_serialization_failure(OperationalError('no cause')))

    def test_retries_then_succeeds(self):
        calls = []

        @retry_on_conflict(retries=1)
        def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise make_operational_error('40001')
            return 'ok'

        self.assertEqual(flaky(), 'ok')
        self.assertEqual(len(calls), 2)

    def test_gives_up_with_concurrency_conflict(self):
        calls = []

        @retry_on_conflict(retries=2)
        def always_conflicts():
            calls.append(1)
            raise make_operational_error('40P01')

        with self.assertRaises(ConcurrencyConflict):
            always_conflicts()
        self.assertEqual(len(calls), 3)

    @override_settings(ORDER_CONFLICT_RETRIES=0)
    def test_retry_count_from_settings(self):
        calls = []

        @retry_on_conflict
        def always_conflicts():
            calls.append(1)
            raise make_operational_error('40001')

        with self.assertRaises(ConcurrencyConflict):
            always_conflicts()
        self.assertEqual(len(calls), 1)

    def test_other_operational_errors_propagate(self):
        @retry_on_conflict
        def broken():
            raise make_operational_error('57014')

        with self.assertRaises(OperationalError):
            broken()


class ServiceErrorTests(SimpleTestCase):
    """Test error rendering used by the API views"""

    def test_insufficient_stock_names_every_line(self):
        error = InsufficientStock([
            StockShortfall(1, requested=5, available=2, item_name='Milk'),
            StockShortfall(2, requested=1, available=0, item_name='Bread'),
        ])
        self.assertEqual(error.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(error.item_ids, [1, 2])
        body = error.as_dict()
        self.assertEqual(body['code'], 'insufficient_stock')
        self.assertEqual(body['items'][0]['shortfall'], 3)
        self.assertIn('Milk', body['error'])
        self.assertIn('Bread', body['error'])

    def test_status_codes(self):
        self.assertEqual(InvalidItem([9]).status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(EmptyBasket().status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(InvalidTransition('delivered', 'cancelled').status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(ConcurrencyConflict().status_code, status.HTTP_409_CONFLICT)

    def test_invalid_transition_detail(self):
        body = InvalidTransition('delivered', 'cancelled').as_dict()
        self.assertEqual(body['current_status'], 'delivered')
        self.assertEqual(body['target_status'], 'cancelled')
