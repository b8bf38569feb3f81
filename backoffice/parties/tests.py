"""
Test suite for the parties module
Tests: Customer API endpoints
"""
from django.test import TestCase
from rest_framework import status
from backoffice.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backoffice.parties.models import Customer


class CustomerAPITests(TestCase):
    """Test Customer API endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_customer(self):
        data = {'name': 'Asha Rao', 'phone': '9876543210', 'email': 'asha@test.com'}
        response = self.client.post('/api/v1/customers/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(Customer.objects.filter(phone='9876543210').exists())

    def test_create_customer_duplicate_phone(self):
        TestDataFactory.create_customer(phone='9876543210')
        data = {'name': 'Someone Else', 'phone': '9876543210'}
        response = self.client.post('/api/v1/customers/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('phone', response.data)

    def test_list_customers_search(self):
        TestDataFactory.create_customer(name='Ravi Kumar', phone='9000000001')
        TestDataFactory.create_customer(name='Meena Shah', phone='9000000002')
        response = self.client.get('/api/v1/customers/', {'search': 'ravi'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['name'], 'Ravi Kumar')

        response = self.client.get('/api/v1/customers/', {'search': '0002'})
        self.assertEqual(response.data['count'], 1)

    def test_retrieve_customer(self):
        customer = TestDataFactory.create_customer()
        response = self.client.get(f'/api/v1/customers/{customer.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['phone'], customer.phone)

    def test_retrieve_missing_customer(self):
        response = self.client.get('/api/v1/customers/999999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_deactivate_customer(self):
        customer = TestDataFactory.create_customer()
        response = self.client.patch(f'/api/v1/customers/{customer.id}/', {'is_active': False}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        customer.refresh_from_db()
        self.assertFalse(customer.is_active)

    def test_requires_authentication(self):
        self.client.logout()
        response = self.client.get('/api/v1/customers/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
