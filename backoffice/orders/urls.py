from django.urls import path
from .views import (
    place_order, cancel_order, check_stock_availability, bulk_update_quantities,
    order_list, order_detail, order_by_external_id,
)

urlpatterns = [
    # Stock-moving operations
    path('orders/place-order/', place_order, name='order-place'),
    path('orders/cancel-order/', cancel_order, name='order-cancel'),
    path('orders/check-availability/', check_stock_availability, name='order-check-availability'),
    path('orders/bulk-update/', bulk_update_quantities, name='order-bulk-update'),

    # Order lookups
    path('orders/', order_list, name='order-list'),
    path('orders/external/<str:external_id>/', order_by_external_id, name='order-by-external-id'),
    path('orders/<int:pk>/', order_detail, name='order-detail'),
]
