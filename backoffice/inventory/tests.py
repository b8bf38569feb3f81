"""
Test suite for the inventory module
Tests: stock ledger, availability checker, item API, stock adjustments and stock report command
"""
from io import StringIO
from decimal import Decimal
from django.core.cache import cache
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase
from rest_framework import status
from backoffice.core.exceptions import InsufficientStock, InvalidItem
from backoffice.core.models import AuditLog
from backoffice.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backoffice.inventory import ledger
from backoffice.inventory.availability import check_availability, merge_lines
from backoffice.inventory.models import Item, StockAdjustment


class StockLedgerTests(TestCase):
    """Test reserve, release and adjust"""

    def setUp(self):
        self.item = TestDataFactory.create_item(quantity=5)

    def test_reserve_decrements_stock(self):
        ledger.reserve(self.item.id, 3)
        self.item.refresh_from_db()
        self.assertEqual(self.item.quantity, 2)

    def test_reserve_exact_stock_leaves_zero(self):
        ledger.reserve(self.item.id, 5)
        self.item.refresh_from_db()
        self.assertEqual(self.item.quantity, 0)

    def test_reserve_more_than_on_hand_changes_nothing(self):
        with self.assertRaises(InsufficientStock) as ctx:
            ledger.reserve(self.item.id, 6)
        shortfall = ctx.exception.shortfalls[0]
        self.assertEqual(shortfall.item_id, self.item.id)
        self.assertEqual(shortfall.requested, 6)
        self.assertEqual(shortfall.available, 5)
        self.item.refresh_from_db()
        self.assertEqual(self.item.quantity, 5)

    def test_reserve_unknown_item(self):
        with self.assertRaises(InvalidItem):
            ledger.reserve(999999, 1)

    def test_reserve_rejects_non_positive_quantity(self):
        with self.assertRaises(ValueError):
            ledger.reserve(self.item.id, 0)
        with self.assertRaises(ValueError):
            ledger.reserve(self.item.id, -2)

    def test_release_increments_stock(self):
        ledger.release(self.item.id, 4)
        self.item.refresh_from_db()
        self.assertEqual(self.item.quantity, 9)

    def test_release_unknown_item(self):
        with self.assertRaises(InvalidItem):
            ledger.release(999999, 1)

    def test_adjust_set(self):
        user = TestDataFactory.create_staff_user()
        adjustment = ledger.adjust(self.item.id, 'set', 40, user=user, reason='recount')
        self.item.refresh_from_db()
        self.assertEqual(self.item.quantity, 40)
        self.assertEqual(adjustment.previous_quantity, 5)
        self.assertEqual(adjustment.new_quantity, 40)
        self.assertEqual(adjustment.change, 35)
        self.assertEqual(adjustment.created_by, user)

    def test_adjust_add_and_subtract(self):
        ledger.adjust(self.item.id, 'add', 10)
        ledger.adjust(self.item.id, 'subtract', 12)
        self.item.refresh_from_db()
        self.assertEqual(self.item.quantity, 3)
        self.assertEqual(StockAdjustment.objects.filter(item=self.item).count(), 2)

    def test_adjust_subtract_below_zero_rejected(self):
        with self.assertRaises(InsufficientStock):
            ledger.adjust(self.item.id, 'subtract', 6)
        self.item.refresh_from_db()
        self.assertEqual(self.item.quantity, 5)
        self.assertFalse(StockAdjustment.objects.exists())

    def test_adjust_unknown_operation(self):
        with self.assertRaises(ValueError):
            ledger.adjust(self.item.id, 'multiply', 2)

    def test_adjust_unknown_item(self):
        with self.assertRaises(InvalidItem):
            ledger.adjust(999999, 'add', 1)


class AvailabilityCheckTests(TestCase):
    """Test the advisory availability checker"""

    def setUp(self):
        self.milk = TestDataFactory.create_item(name='Milk', quantity=5)
        self.bread = TestDataFactory.create_item(name='Bread', quantity=0)

    def test_all_available(self):
        report = check_availability([(self.milk.id, 5)])
        self.assertTrue(report.all_available)
        self.assertEqual(report.unavailable, [])

    def test_reports_each_line(self):
        report = check_availability([(self.milk.id, 2), (self.bread.id, 1)])
        self.assertFalse(report.all_available)
        data = report.as_dict()
        self.assertEqual(len(data['stock_check']), 2)
        self.assertTrue(data['stock_check'][0]['is_available'])
        bread_line = data['stock_check'][1]
        self.assertFalse(bread_line['is_available'])
        self.assertEqual(bread_line['current_quantity'], 0)
        self.assertEqual(bread_line['shortfall'], 1)
        self.assertEqual(data['unavailable_items'], [{'item_id': self.bread.id, 'reason': 'insufficient_stock'}])

    def test_unknown_and_inactive_items(self):
        inactive = TestDataFactory.create_item(quantity=50, is_active=False)
        report = check_availability([(999999, 1), (inactive.id, 1)])
        reasons = [v.reason for v in report.verdicts]
        self.assertEqual(reasons, ['not_found', 'inactive'])
        self.assertEqual(report.invalid_item_ids, [999999, inactive.id])

    def test_repeated_item_is_judged_on_total_demand(self):
        report = check_availability([(self.milk.id, 3), (self.milk.id, 3)])
        self.assertFalse(report.all_available)
        self.assertEqual(len(report.shortfalls()), 2)

    def test_split_lines_report_shortfall_of_total_demand(self):
        report = check_availability([(self.milk.id, 3), (self.milk.id, 3)])
        lines = report.as_dict()['stock_check']
        self.assertEqual([line['is_available'] for line in lines], [False, False])
        self.assertEqual([line['shortfall'] for line in lines], [1, 1])
        self.assertEqual([line['requested_quantity'] for line in lines], [3, 3])
        self.assertEqual(report.shortfalls()[0].shortfall, 1)

    def test_check_does_not_change_stock(self):
        check_availability([(self.milk.id, 5)])
        self.milk.refresh_from_db()
        self.assertEqual(self.milk.quantity, 5)

    def test_merge_lines(self):
        lines = merge_lines([(2, 1), (1, 4), (2, 3)])
        self.assertEqual([(line.item_id, line.quantity) for line in lines], [(2, 4), (1, 4)])


class ItemAPITests(TestCase):
    """Test Item API endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_requires_authentication(self):
        self.client.logout()
        response = self.client.get('/api/v1/items/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_create_item(self):
        data = {'name': 'Rice', 'price': '55.00', 'unit': 'kg', 'category': 'Grains', 'quantity': 20}
        response = self.client.post('/api/v1/items/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['quantity'], 20)
        self.assertTrue(AuditLog.objects.filter(action='create', model_name='Item').exists())

    def test_create_item_rejects_negative_price(self):
        data = {'name': 'Rice', 'price': '-1.00', 'unit': 'kg'}
        response = self.client.post('/api/v1/items/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('price', response.data)

    def test_create_item_rejects_unknown_unit(self):
        data = {'name': 'Rice', 'price': '1.00', 'unit': 'barrel'}
        response = self.client.post('/api/v1/items/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_items_paginated_and_cached(self):
        for _ in range(3):
            TestDataFactory.create_item()
        response = self.client.get('/api/v1/items/', {'limit': 2})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 3)
        self.assertEqual(len(response.data['results']), 2)
        self.assertEqual(response.data['total_pages'], 2)
        self.assertEqual(response['X-Cache'], 'MISS')

        response = self.client.get('/api/v1/items/', {'limit': 2})
        self.assertEqual(response['X-Cache'], 'HIT')

    def test_item_change_invalidates_list_cache(self):
        item = TestDataFactory.create_item(name='Tea')
        self.client.get('/api/v1/items/')
        self.client.patch(f'/api/v1/items/{item.id}/', {'name': 'Green Tea'}, format='json')
        response = self.client.get('/api/v1/items/')
        self.assertEqual(response['X-Cache'], 'MISS')
        self.assertEqual(response.data['results'][0]['name'], 'Green Tea')

    def test_list_items_search_and_active_filter(self):
        TestDataFactory.create_item(name='Basmati Rice')
        TestDataFactory.create_item(name='Sugar', is_active=False)
        response = self.client.get('/api/v1/items/', {'search': 'rice'})
        self.assertEqual(response.data['count'], 1)
        response = self.client.get('/api/v1/items/', {'active': 'false'})
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['name'], 'Sugar')

    def test_update_item_cannot_change_quantity(self):
        item = TestDataFactory.create_item(quantity=7)
        response = self.client.patch(f'/api/v1/items/{item.id}/', {'quantity': 100}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        item.refresh_from_db()
        self.assertEqual(item.quantity, 7)

    def test_update_item_price(self):
        item = TestDataFactory.create_item(price='10.00')
        response = self.client.patch(f'/api/v1/items/{item.id}/', {'price': '12.50'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        item.refresh_from_db()
        self.assertEqual(item.price, Decimal('12.50'))

        log = AuditLog.objects.get(action='update', model_name='Item')
        self.assertEqual(log.object_id, str(item.id))
        self.assertEqual(log.user, self.user)
        self.assertEqual(log.changes, {'price': {'old': '10.00', 'new': '12.50'}})

    def test_update_without_changes_writes_no_audit(self):
        item = TestDataFactory.create_item(name='Salt')
        response = self.client.patch(f'/api/v1/items/{item.id}/', {'name': 'Salt'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(AuditLog.objects.filter(action='update').exists())

    def test_delete_item(self):
        item = TestDataFactory.create_item()
        response = self.client.delete(f'/api/v1/items/{item.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Item.objects.filter(id=item.id).exists())

    def test_delete_item_with_orders_conflicts(self):
        item = TestDataFactory.create_item(quantity=5)
        TestDataFactory.create_order(lines=[(item.id, 1)])
        response = self.client.delete(f'/api/v1/items/{item.id}/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertTrue(Item.objects.filter(id=item.id).exists())

    def test_low_stock(self):
        low = TestDataFactory.create_item(quantity=3, min_stock_level=5)
        TestDataFactory.create_item(quantity=50, min_stock_level=5)
        response = self.client.get('/api/v1/items/low-stock/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['id'] for row in response.data], [low.id])
        self.assertTrue(response.data[0]['is_low_stock'])

    def test_out_of_stock(self):
        empty = TestDataFactory.create_item(quantity=0)
        TestDataFactory.create_item(quantity=1)
        response = self.client.get('/api/v1/items/out-of-stock/')
        self.assertEqual([row['id'] for row in response.data], [empty.id])


class StockAdjustmentAPITests(TestCase):
    """Test the stock adjustment history endpoint"""

    def setUp(self):
        self.staff = TestDataFactory.create_staff_user()
        self.item = TestDataFactory.create_item(quantity=5)
        ledger.adjust(self.item.id, 'add', 5, user=self.staff, reason='delivery')

    def test_list_requires_staff(self):
        client = AuthenticatedAPIClient().authenticate_user(TestDataFactory.create_user())
        response = client.get('/api/v1/stock-adjustments/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_filtered_by_item(self):
        other = TestDataFactory.create_item()
        ledger.adjust(other.id, 'set', 1)
        client = AuthenticatedAPIClient().authenticate_user(self.staff)
        response = client.get('/api/v1/stock-adjustments/', {'item_id': self.item.id})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        row = response.data['results'][0]
        self.assertEqual(row['operation'], 'add')
        self.assertEqual(row['change'], 5)
        self.assertEqual(row['reason'], 'delivery')


class CheckStockLevelsCommandTests(TestCase):
    """Test the check_stock_levels management command"""

    def setUp(self):
        self.low = TestDataFactory.create_item(name='Low Item', quantity=2, min_stock_level=5)
        self.empty = TestDataFactory.create_item(name='Empty Item', quantity=0)
        self.healthy = TestDataFactory.create_item(name='Healthy Item', quantity=100)

    def test_reports_items_needing_reorder(self):
        out = StringIO()
        call_command('check_stock_levels', stdout=out)
        output = out.getvalue()
        self.assertIn('Low Item', output)
        self.assertIn('Empty Item', output)
        self.assertIn('OUT OF STOCK', output)
        self.assertNotIn('Healthy Item', output)
        self.assertIn('Items needing reorder: 2', output)

    def test_show_all(self):
        out = StringIO()
        call_command('check_stock_levels', '--show-all', stdout=out)
        self.assertIn('Healthy Item', out.getvalue())

    def test_single_item(self):
        out = StringIO()
        call_command('check_stock_levels', '--item-id', str(self.healthy.id), stdout=out)
        output = out.getvalue()
        self.assertIn('Healthy Item', output)
        self.assertIn('Items needing reorder: 0', output)

    def test_unknown_item(self):
        with self.assertRaises(CommandError):
            call_command('check_stock_levels', '--item-id', '999999', stdout=StringIO())
