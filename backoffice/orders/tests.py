"""
Test suite for the orders module
Tests: order placement, cancellation, availability check, bulk stock update,
order lookups, concurrency and audit trail

The threaded race tests (ConcurrentPlacementTests) need real row locks and
are skipped on SQLite; run the suite with POSTGRES_DB set to exercise them.
The stale-check race in PlaceOrderServiceTests runs on every backend.
"""
import threading
from datetime import timedelta
from decimal import Decimal
from unittest import mock, skipUnless
from django.core.cache import cache
from django.db import DatabaseError, connection
from django.test import TestCase, TransactionTestCase
from django.utils import timezone
from rest_framework import status
from backoffice.core.exceptions import (
    ConcurrencyConflict, DuplicateOrder, EmptyBasket, InsufficientStock, InvalidItem, InvalidTransition,
)
from backoffice.core.models import AuditLog
from backoffice.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backoffice.inventory.availability import check_availability
from backoffice.inventory.models import Item, StockAdjustment
from backoffice.orders import services
from backoffice.orders.models import Order, OrderItem
from backoffice.orders.serializers import PlaceOrderSerializer


class OrderModelTests(TestCase):
    """Test the order lifecycle rules"""

    def setUp(self):
        self.order = TestDataFactory.create_order()

    def test_str(self):
        self.assertEqual(str(self.order), self.order.order_number)

    def test_order_number_format(self):
        prefix, day, suffix = self.order.order_number.split('-')
        self.assertEqual(prefix, 'ORD')
        self.assertEqual(day, timezone.now().strftime('%Y%m%d'))
        self.assertEqual(len(suffix), 8)

    def test_placed_order_can_move_forward_or_cancel(self):
        self.assertTrue(self.order.can_transition_to(Order.STATUS_CONFIRMED))
        self.assertTrue(self.order.can_transition_to(Order.STATUS_DELIVERED))
        self.assertTrue(self.order.can_transition_to(Order.STATUS_CANCELLED))
        self.assertFalse(self.order.can_transition_to(Order.STATUS_PLACED))

    def test_terminal_statuses_allow_nothing(self):
        TestDataFactory.set_order_status(self.order, Order.STATUS_DELIVERED)
        self.assertTrue(self.order.is_terminal)
        self.assertFalse(self.order.can_transition_to(Order.STATUS_CANCELLED))

        TestDataFactory.set_order_status(self.order, Order.STATUS_CANCELLED)
        self.assertFalse(self.order.can_transition_to(Order.STATUS_CONFIRMED))

    def test_no_backward_moves(self):
        TestDataFactory.set_order_status(self.order, Order.STATUS_READY)
        self.assertFalse(self.order.can_transition_to(Order.STATUS_PREPARING))
        self.assertTrue(self.order.can_transition_to(Order.STATUS_OUT_FOR_DELIVERY))


class PlaceOrderServiceTests(TestCase):
    """Test the placement coordinator directly"""

    def setUp(self):
        self.customer = TestDataFactory.create_customer()
        self.milk = TestDataFactory.create_item(name='Milk', quantity=10, price='10.00', unit='litre')
        self.eggs = TestDataFactory.create_item(name='Eggs', quantity=5, price='2.50', unit='dozen')

    def test_place_order_reserves_stock(self):
        order = services.place_order(self.customer, [(self.milk.id, 2), (self.eggs.id, 3)])
        self.milk.refresh_from_db()
        self.eggs.refresh_from_db()
        self.assertEqual(self.milk.quantity, 8)
        self.assertEqual(self.eggs.quantity, 2)
        self.assertEqual(order.status, Order.STATUS_PLACED)
        self.assertEqual(order.item_count, 2)

    def test_total_is_sum_of_line_totals(self):
        order = services.place_order(self.customer, [(self.milk.id, 2), (self.eggs.id, 3)])
        lines = list(order.items.all())
        self.assertEqual(order.total_amount, Decimal('27.50'))
        self.assertEqual(order.total_amount, sum(line.total_price for line in lines))
        for line in lines:
            self.assertEqual(line.total_price, line.unit_price * line.quantity)

    def test_lines_snapshot_item_details(self):
        order = services.place_order(self.customer, [(self.milk.id, 1)])
        Item.objects.filter(pk=self.milk.pk).update(name='Whole Milk', price=Decimal('99.00'))
        line = order.items.get()
        self.assertEqual(line.item_name, 'Milk')
        self.assertEqual(line.unit_price, Decimal('10.00'))
        self.assertEqual(line.unit, 'litre')

    def test_repeated_items_are_merged(self):
        order = services.place_order(self.customer, [(self.milk.id, 2), (self.milk.id, 3)])
        self.assertEqual(order.items.count(), 1)
        self.assertEqual(order.items.get().quantity, 5)
        self.milk.refresh_from_db()
        self.assertEqual(self.milk.quantity, 5)

    def test_insufficient_stock_changes_nothing(self):
        # A has enough, B has none: neither may be touched
        item_a = TestDataFactory.create_item(quantity=5)
        item_b = TestDataFactory.create_item(quantity=0)
        with self.assertRaises(InsufficientStock) as ctx:
            services.place_order(self.customer, [(item_a.id, 1), (item_b.id, 1)])
        self.assertEqual(ctx.exception.item_ids, [item_b.id])
        item_a.refresh_from_db()
        self.assertEqual(item_a.quantity, 5)
        self.assertFalse(Order.objects.exists())
        self.assertFalse(OrderItem.objects.exists())

    def test_insufficient_stock_names_every_short_line(self):
        with self.assertRaises(InsufficientStock) as ctx:
            services.place_order(self.customer, [(self.milk.id, 11), (self.eggs.id, 6)])
        self.assertEqual(sorted(ctx.exception.item_ids), sorted([self.milk.id, self.eggs.id]))

    def test_empty_basket(self):
        with self.assertRaises(EmptyBasket):
            services.place_order(self.customer, [])
        self.assertFalse(Order.objects.exists())

    def test_unknown_item(self):
        with self.assertRaises(InvalidItem) as ctx:
            services.place_order(self.customer, [(self.milk.id, 1), (999999, 1)])
        self.assertEqual(ctx.exception.item_ids, [999999])
        self.milk.refresh_from_db()
        self.assertEqual(self.milk.quantity, 10)

    def test_inactive_item(self):
        inactive = TestDataFactory.create_item(quantity=10, is_active=False)
        with self.assertRaises(InvalidItem):
            services.place_order(self.customer, [(inactive.id, 1)])

    def test_stale_advisory_check_does_not_oversell(self):
        last_unit = TestDataFactory.create_item(quantity=1)

        # Both callers see the last unit as available
        self.assertTrue(check_availability([(last_unit.id, 1)]).all_available)
        self.assertTrue(check_availability([(last_unit.id, 1)]).all_available)

        services.place_order(self.customer, [(last_unit.id, 1)])
        with self.assertRaises(InsufficientStock):
            services.place_order(TestDataFactory.create_customer(), [(last_unit.id, 1)])

        last_unit.refresh_from_db()
        self.assertEqual(last_unit.quantity, 0)
        self.assertEqual(Order.objects.count(), 1)

    def test_reused_external_id_is_duplicate_order(self):
        services.place_order(self.customer, [(self.milk.id, 1)], external_order_id='APP-7')
        with self.assertRaises(DuplicateOrder) as ctx:
            services.place_order(TestDataFactory.create_customer(), [(self.eggs.id, 2)], external_order_id='APP-7')
        self.assertEqual(ctx.exception.external_order_id, 'APP-7')
        self.eggs.refresh_from_db()
        self.assertEqual(self.eggs.quantity, 5)
        self.assertEqual(Order.objects.count(), 1)

    def test_placement_writes_audit_log(self):
        user = TestDataFactory.create_user()
        order = services.place_order(self.customer, [(self.milk.id, 1)], user=user)
        log = AuditLog.objects.get(action='order_place')
        self.assertEqual(log.object_reference, order.order_number)
        self.assertEqual(log.user, user)
        self.assertEqual(log.changes['items'][0]['item_id'], self.milk.id)


class CancelOrderServiceTests(TestCase):
    """Test the cancellation coordinator directly"""

    def setUp(self):
        self.item = TestDataFactory.create_item(quantity=10)
        self.order = TestDataFactory.create_order(lines=[(self.item.id, 4)])

    def test_cancel_restores_stock(self):
        order, changed = services.cancel_order(self.order.id, reason='customer request')
        self.assertTrue(changed)
        self.assertEqual(order.status, Order.STATUS_CANCELLED)
        self.assertEqual(order.cancellation_reason, 'customer request')
        self.assertIsNotNone(order.cancelled_at)
        self.item.refresh_from_db()
        self.assertEqual(self.item.quantity, 10)

    def test_cancel_twice_restores_once(self):
        services.cancel_order(self.order.id)
        order, changed = services.cancel_order(self.order.id)
        self.assertFalse(changed)
        self.assertEqual(order.status, Order.STATUS_CANCELLED)
        self.item.refresh_from_db()
        self.assertEqual(self.item.quantity, 10)
        self.assertEqual(AuditLog.objects.filter(action='order_cancel').count(), 1)

    def test_cancel_in_fulfilment_is_allowed(self):
        TestDataFactory.set_order_status(self.order, Order.STATUS_OUT_FOR_DELIVERY)
        services.cancel_order(self.order.id)
        self.item.refresh_from_db()
        self.assertEqual(self.item.quantity, 10)

    def test_cancel_delivered_order_rejected(self):
        TestDataFactory.set_order_status(self.order, Order.STATUS_DELIVERED)
        with self.assertRaises(InvalidTransition):
            services.cancel_order(self.order.id)
        self.item.refresh_from_db()
        self.assertEqual(self.item.quantity, 6)

    def test_cancel_unknown_order(self):
        with self.assertRaises(Order.DoesNotExist):
            services.cancel_order(999999)


class PlaceOrderAPITests(TestCase):
    """Test the place-order endpoint"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.customer = TestDataFactory.create_customer()
        self.item_a = TestDataFactory.create_item(quantity=5, price='20.00')
        self.item_b = TestDataFactory.create_item(quantity=0, price='5.00')

    def _place(self, items, **extra):
        data = {'customerId': self.customer.id, 'items': items}
        data.update(extra)
        return self.client.post('/api/v1/orders/place-order/', data, format='json')

    def test_place_order(self):
        response = self._place([{'itemId': self.item_a.id, 'quantity': 2}], notes='ring the bell')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], Order.STATUS_PLACED)
        self.assertEqual(Decimal(response.data['total_amount']), Decimal('40.00'))
        self.assertEqual(len(response.data['items']), 1)
        self.assertEqual(response.data['notes'], 'ring the bell')
        self.assertEqual(response.data['created_by'], self.user.id)
        self.item_a.refresh_from_db()
        self.assertEqual(self.item_a.quantity, 3)

    def test_place_order_insufficient_stock(self):
        response = self._place([
            {'itemId': self.item_a.id, 'quantity': 1},
            {'itemId': self.item_b.id, 'quantity': 1},
        ])
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'insufficient_stock')
        self.assertEqual([row['item_id'] for row in response.data['items']], [self.item_b.id])
        self.item_a.refresh_from_db()
        self.assertEqual(self.item_a.quantity, 5)
        self.assertFalse(Order.objects.exists())

    def test_place_order_empty_basket(self):
        response = self._place([])
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'empty_basket')

    def test_place_order_unknown_item(self):
        response = self._place([{'itemId': 999999, 'quantity': 1}])
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid_item')
        self.assertEqual(response.data['item_ids'], [999999])

    def test_place_order_zero_quantity(self):
        response = self._place([{'itemId': self.item_a.id, 'quantity': 0}])
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('items', response.data)

    def test_place_order_inactive_customer(self):
        self.customer.is_active = False
        self.customer.save()
        response = self._place([{'itemId': self.item_a.id, 'quantity': 1}])
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('customerId', response.data)

    def test_place_order_duplicate_external_id(self):
        response = self._place([{'itemId': self.item_a.id, 'quantity': 1}], externalOrderId='APP-100')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['external_order_id'], 'APP-100')

        response = self._place([{'itemId': self.item_a.id, 'quantity': 1}], externalOrderId='APP-100')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('externalOrderId', response.data)
        self.item_a.refresh_from_db()
        self.assertEqual(self.item_a.quantity, 4)

    def test_place_order_invalidates_item_cache(self):
        self.client.get('/api/v1/items/')
        self._place([{'itemId': self.item_a.id, 'quantity': 2}])
        response = self.client.get('/api/v1/items/')
        self.assertEqual(response['X-Cache'], 'MISS')
        row = next(r for r in response.data['results'] if r['id'] == self.item_a.id)
        self.assertEqual(row['quantity'], 3)

    def test_place_order_concurrency_conflict(self):
        with mock.patch('backoffice.orders.services.place_order', side_effect=ConcurrencyConflict()):
            response = self._place([{'itemId': self.item_a.id, 'quantity': 1}])
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'concurrency_conflict')

    def test_place_order_external_id_claimed_after_validation(self):
        TestDataFactory.create_order(lines=[(self.item_a.id, 1)], external_order_id='APP-200')
        # Simulate a concurrent request that passed validation before the first order committed
        with mock.patch.object(PlaceOrderSerializer, 'validate_externalOrderId', lambda self, value: value):
            response = self._place([{'itemId': self.item_a.id, 'quantity': 1}], externalOrderId='APP-200')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'duplicate_order')
        self.item_a.refresh_from_db()
        self.assertEqual(self.item_a.quantity, 4)

    def test_place_order_database_error(self):
        with mock.patch('backoffice.orders.services.place_order', side_effect=DatabaseError('boom')):
            response = self._place([{'itemId': self.item_a.id, 'quantity': 1}])
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data, {'error': 'Internal server error'})

    def test_requires_authentication(self):
        self.client.logout()
        response = self._place([{'itemId': self.item_a.id, 'quantity': 1}])
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class CancelOrderAPITests(TestCase):
    """Test the cancel-order endpoint"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.item = TestDataFactory.create_item(quantity=10)
        self.order = TestDataFactory.create_order(lines=[(self.item.id, 3)])

    def test_cancel_order(self):
        response = self.client.post('/api/v1/orders/cancel-order/', {'orderId': self.order.id, 'reason': 'changed mind'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Order.STATUS_CANCELLED)
        self.assertFalse(response.data['already_cancelled'])
        self.assertEqual(response.data['cancelled_by'], self.user.id)
        self.item.refresh_from_db()
        self.assertEqual(self.item.quantity, 10)

    def test_cancel_order_twice(self):
        self.client.post('/api/v1/orders/cancel-order/', {'orderId': self.order.id}, format='json')
        response = self.client.post('/api/v1/orders/cancel-order/', {'orderId': self.order.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['already_cancelled'])
        self.item.refresh_from_db()
        self.assertEqual(self.item.quantity, 10)

    def test_cancel_delivered_order(self):
        TestDataFactory.set_order_status(self.order, Order.STATUS_DELIVERED)
        response = self.client.post('/api/v1/orders/cancel-order/', {'orderId': self.order.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'invalid_transition')
        self.item.refresh_from_db()
        self.assertEqual(self.item.quantity, 7)

    def test_cancel_unknown_order(self):
        response = self.client.post('/api/v1/orders/cancel-order/', {'orderId': 999999}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_cancel_requires_order_id(self):
        response = self.client.post('/api/v1/orders/cancel-order/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class CheckAvailabilityAPITests(TestCase):
    """Test the check-availability endpoint"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user())
        self.item_a = TestDataFactory.create_item(quantity=5)
        self.item_b = TestDataFactory.create_item(quantity=0)

    def test_all_available(self):
        response = self.client.post('/api/v1/orders/check-availability/', {
            'items': [{'itemId': self.item_a.id, 'quantity': 5}]
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['all_available'])
        self.assertEqual(response.data['unavailable_items'], [])

    def test_reports_unavailable_lines(self):
        response = self.client.post('/api/v1/orders/check-availability/', {
            'items': [
                {'itemId': self.item_a.id, 'quantity': 1},
                {'itemId': self.item_b.id, 'requiredQuantity': 2},
                {'itemId': 999999, 'quantity': 1},
            ]
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['all_available'])
        self.assertEqual(len(response.data['stock_check']), 3)
        self.assertEqual(response.data['stock_check'][1]['requested_quantity'], 2)
        self.assertEqual(
            response.data['unavailable_items'],
            [
                {'item_id': self.item_b.id, 'reason': 'insufficient_stock'},
                {'item_id': 999999, 'reason': 'not_found'},
            ]
        )

    def test_check_changes_nothing(self):
        self.client.post('/api/v1/orders/check-availability/', {
            'items': [{'itemId': self.item_a.id, 'quantity': 5}]
        }, format='json')
        self.item_a.refresh_from_db()
        self.assertEqual(self.item_a.quantity, 5)
        self.assertFalse(Order.objects.exists())

    def test_empty_items_rejected(self):
        response = self.client.post('/api/v1/orders/check-availability/', {'items': []}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_missing_quantity_rejected(self):
        response = self.client.post('/api/v1/orders/check-availability/', {
            'items': [{'itemId': self.item_a.id}]
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class BulkUpdateAPITests(TestCase):
    """Test the bulk stock update endpoint"""

    def setUp(self):
        self.staff = TestDataFactory.create_staff_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.staff)
        self.item_a = TestDataFactory.create_item(quantity=10)
        self.item_b = TestDataFactory.create_item(quantity=2)

    def _update(self, updates):
        return self.client.post('/api/v1/orders/bulk-update/', {'updates': updates}, format='json')

    def test_set_add_subtract(self):
        item_c = TestDataFactory.create_item(quantity=7)
        response = self._update([
            {'itemId': self.item_a.id, 'quantity': 25, 'operation': 'set', 'reason': 'recount'},
            {'itemId': self.item_b.id, 'quantity': 3, 'operation': 'add'},
            {'itemId': item_c.id, 'quantity': 7, 'operation': 'subtract'},
        ])
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['successful']), 3)
        self.assertEqual(response.data['failed'], [])
        first = response.data['successful'][0]
        self.assertEqual(first['previous_quantity'], 10)
        self.assertEqual(first['new_quantity'], 25)

        self.item_a.refresh_from_db()
        self.item_b.refresh_from_db()
        item_c.refresh_from_db()
        self.assertEqual((self.item_a.quantity, self.item_b.quantity, item_c.quantity), (25, 5, 0))
        self.assertEqual(StockAdjustment.objects.count(), 3)
        self.assertEqual(AuditLog.objects.filter(action='stock_adjust').count(), 3)

    def test_partial_failure(self):
        response = self._update([
            {'itemId': self.item_a.id, 'quantity': 1, 'operation': 'add'},
            {'itemId': self.item_b.id, 'quantity': 5, 'operation': 'subtract'},
            {'itemId': 999999, 'quantity': 1, 'operation': 'add'},
        ])
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['successful']), 1)
        self.assertEqual(
            [(row['item_id'], row['code']) for row in response.data['failed']],
            [(self.item_b.id, 'insufficient_stock'), (999999, 'invalid_item')]
        )
        self.item_b.refresh_from_db()
        self.assertEqual(self.item_b.quantity, 2)

    def test_all_lines_fail(self):
        response = self._update([{'itemId': self.item_b.id, 'quantity': 3, 'operation': 'subtract'}])
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['successful'], [])
        self.assertEqual(len(response.data['failed']), 1)

    def test_negative_set_fails_only_its_line(self):
        response = self._update([
            {'itemId': self.item_a.id, 'quantity': 5, 'operation': 'add'},
            {'itemId': self.item_b.id, 'quantity': -1, 'operation': 'set'},
        ])
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['item_id'] for row in response.data['successful']], [self.item_a.id])
        self.assertEqual(
            [(row['item_id'], row['code']) for row in response.data['failed']],
            [(self.item_b.id, 'invalid_quantity')]
        )
        self.item_a.refresh_from_db()
        self.item_b.refresh_from_db()
        self.assertEqual(self.item_a.quantity, 15)
        self.assertEqual(self.item_b.quantity, 2)

    def test_negative_quantity_rejected(self):
        response = self._update([{'itemId': self.item_a.id, 'quantity': -1, 'operation': 'set'}])
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['failed'][0]['code'], 'invalid_quantity')
        self.item_a.refresh_from_db()
        self.assertEqual(self.item_a.quantity, 10)

    def test_unknown_operation_rejected(self):
        response = self._update([{'itemId': self.item_a.id, 'quantity': 1, 'operation': 'multiply'}])
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_requires_staff(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self._update([{'itemId': self.item_a.id, 'quantity': 1, 'operation': 'add'}])
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.item_a.refresh_from_db()
        self.assertEqual(self.item_a.quantity, 10)


class OrderQueryAPITests(TestCase):
    """Test order list, detail and external-id lookup"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user())
        self.alice = TestDataFactory.create_customer(name='Alice', phone='9111111111')
        self.bob = TestDataFactory.create_customer(name='Bob', phone='9222222222')
        self.item = TestDataFactory.create_item(quantity=100)
        self.order_a = TestDataFactory.create_order(customer=self.alice, lines=[(self.item.id, 1)], external_order_id='EXT-1')
        self.order_b = TestDataFactory.create_order(customer=self.bob, lines=[(self.item.id, 2)])
        services.cancel_order(self.order_b.id)

    def test_list_orders(self):
        response = self.client.get('/api/v1/orders/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 2)
        # Newest first
        self.assertEqual(response.data['results'][0]['id'], self.order_b.id)

    def test_filter_by_status(self):
        response = self.client.get('/api/v1/orders/', {'status': Order.STATUS_CANCELLED})
        self.assertEqual([row['id'] for row in response.data['results']], [self.order_b.id])

    def test_filter_by_invalid_status(self):
        response = self.client.get('/api/v1/orders/', {'status': 'lost'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_filter_by_customer(self):
        response = self.client.get('/api/v1/orders/', {'customer': self.alice.id})
        self.assertEqual([row['id'] for row in response.data['results']], [self.order_a.id])

    def test_search(self):
        response = self.client.get('/api/v1/orders/', {'search': 'bob'})
        self.assertEqual([row['id'] for row in response.data['results']], [self.order_b.id])
        response = self.client.get('/api/v1/orders/', {'search': 'EXT-1'})
        self.assertEqual([row['id'] for row in response.data['results']], [self.order_a.id])

    def test_filter_by_date(self):
        today = timezone.localdate()
        response = self.client.get('/api/v1/orders/', {'date_from': today.isoformat()})
        self.assertEqual(response.data['count'], 2)
        response = self.client.get('/api/v1/orders/', {'date_to': (today - timedelta(days=1)).isoformat()})
        self.assertEqual(response.data['count'], 0)

    def test_pagination(self):
        response = self.client.get('/api/v1/orders/', {'limit': 1, 'page': 2})
        self.assertEqual(response.data['page'], 2)
        self.assertEqual(len(response.data['results']), 1)
        self.assertEqual(response.data['previous'], 1)
        self.assertIsNone(response.data['next'])

    def test_order_detail(self):
        response = self.client.get(f'/api/v1/orders/{self.order_a.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['customer_name'], 'Alice')
        self.assertEqual(response.data['items'][0]['item'], self.item.id)

    def test_order_detail_missing(self):
        response = self.client.get('/api/v1/orders/999999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_order_by_external_id(self):
        response = self.client.get('/api/v1/orders/external/EXT-1/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['id'], self.order_a.id)

        response = self.client.get('/api/v1/orders/external/NOPE/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


@skipUnless(connection.vendor == 'postgresql', 'Row locking needs PostgreSQL')
class ConcurrentPlacementTests(TransactionTestCase):
    """Race real transactions for the same stock"""

    def test_parallel_orders_never_oversell(self):
        stock, workers = 3, 8
        item = TestDataFactory.create_item(quantity=stock)
        customers = [TestDataFactory.create_customer() for _ in range(workers)]
        barrier = threading.Barrier(workers)
        outcomes = []
        lock = threading.Lock()

        def place(customer):
            try:
                barrier.wait()
                services.place_order(customer, [(item.id, 1)])
                result = 'placed'
            except (InsufficientStock, ConcurrencyConflict) as e:
                result = e.code
            finally:
                connection.close()
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=place, args=(customer,)) for customer in customers]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        item.refresh_from_db()
        self.assertEqual(outcomes.count('placed'), stock)
        self.assertEqual(item.quantity, 0)
        self.assertEqual(Order.objects.count(), stock)

    def test_two_orders_for_full_stock(self):
        item = TestDataFactory.create_item(quantity=4)
        barrier = threading.Barrier(2)
        outcomes = []

        def place():
            try:
                barrier.wait()
                services.place_order(TestDataFactory.create_customer(), [(item.id, 4)])
                outcomes.append('placed')
            except InsufficientStock:
                outcomes.append('insufficient_stock')
            finally:
                connection.close()

        threads = [threading.Thread(target=place) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        item.refresh_from_db()
        self.assertEqual(sorted(outcomes), ['insufficient_stock', 'placed'])
        self.assertEqual(item.quantity, 0)

    def test_parallel_cancels_restore_once(self):
        item = TestDataFactory.create_item(quantity=5)
        order = TestDataFactory.create_order(lines=[(item.id, 2)])
        barrier = threading.Barrier(4)
        changed_flags = []

        def cancel():
            try:
                barrier.wait()
                _, changed = services.cancel_order(order.id)
                changed_flags.append(changed)
            finally:
                connection.close()

        threads = [threading.Thread(target=cancel) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        item.refresh_from_db()
        self.assertEqual(item.quantity, 5)
        self.assertEqual(changed_flags.count(True), 1)
