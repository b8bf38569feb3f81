from django.urls import path
from .views import (
    item_list_create, item_detail, item_low_stock, item_out_of_stock,
    stock_adjustment_list,
)

urlpatterns = [
    # Item endpoints
    path('items/', item_list_create, name='item-list-create'),
    path('items/low-stock/', item_low_stock, name='item-low-stock'),
    path('items/out-of-stock/', item_out_of_stock, name='item-out-of-stock'),
    path('items/<int:pk>/', item_detail, name='item-detail'),

    # StockAdjustment endpoints (read-only; adjustments are made via orders/bulk-update/)
    path('stock-adjustments/', stock_adjustment_list, name='stock-adjustment-list'),
]
