from django.contrib import admin
from .models import Item, StockAdjustment


@admin.register(Item)
class ItemAdmin(admin.ModelAdmin):
    list_display = ['name', 'category', 'unit', 'price', 'discount', 'quantity', 'min_stock_level', 'is_active', 'updated_at']
    list_filter = ['is_active', 'unit', 'category']
    search_fields = ['name', 'category']
    ordering = ['name']
    # Stock is moved by orders and bulk updates only
    readonly_fields = ['quantity', 'created_at', 'updated_at']


@admin.register(StockAdjustment)
class StockAdjustmentAdmin(admin.ModelAdmin):
    list_display = ['item', 'operation', 'quantity', 'previous_quantity', 'new_quantity', 'reason', 'created_by', 'created_at']
    list_filter = ['operation', 'created_at']
    search_fields = ['item__name', 'reason']
    ordering = ['-created_at']
    readonly_fields = ['item', 'operation', 'quantity', 'previous_quantity', 'new_quantity', 'reason', 'created_by', 'created_at']
