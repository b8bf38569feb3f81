from django.contrib import admin
from .models import Order, OrderItem


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    can_delete = False
    readonly_fields = ['item', 'item_name', 'quantity', 'unit_price', 'total_price', 'unit', 'created_at']


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['order_number', 'external_order_id', 'customer', 'status', 'item_count', 'total_amount', 'order_placed_at']
    list_filter = ['status', 'order_placed_at']
    search_fields = ['order_number', 'external_order_id', 'customer__name', 'customer__phone']
    ordering = ['-order_placed_at']
    # Placement and cancellation go through the API so stock stays consistent
    readonly_fields = ['order_number', 'customer', 'status', 'item_count', 'total_amount', 'cancelled_at',
                       'cancelled_by', 'created_by', 'order_placed_at', 'updated_at']
    inlines = [OrderItemInline]

    def has_add_permission(self, request):
        return False
