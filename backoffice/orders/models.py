from django.db import models
from decimal import Decimal
from backoffice.core.models import User
from backoffice.inventory.models import Item
from backoffice.parties.models import Customer


class Order(models.Model):
    """Customer delivery orders"""
    STATUS_PLACED = 'placed'
    STATUS_CONFIRMED = 'confirmed'
    STATUS_PREPARING = 'preparing'
    STATUS_READY = 'ready'
    STATUS_OUT_FOR_DELIVERY = 'out_for_delivery'
    STATUS_DELIVERED = 'delivered'
    STATUS_CANCELLED = 'cancelled'

    STATUS_CHOICES = [
        (STATUS_PLACED, 'Placed'),
        (STATUS_CONFIRMED, 'Confirmed'),
        (STATUS_PREPARING, 'Preparing'),
        (STATUS_READY, 'Ready'),
        (STATUS_OUT_FOR_DELIVERY, 'Out for Delivery'),
        (STATUS_DELIVERED, 'Delivered'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    # Fulfilment moves forward through this sequence; cancellation may
    # interrupt it anywhere before delivery
    FULFILMENT_SEQUENCE = [
        STATUS_PLACED,
        STATUS_CONFIRMED,
        STATUS_PREPARING,
        STATUS_READY,
        STATUS_OUT_FOR_DELIVERY,
        STATUS_DELIVERED,
    ]
    TERMINAL_STATUSES = {STATUS_DELIVERED, STATUS_CANCELLED}

    order_number = models.CharField(max_length=100, unique=True)
    external_order_id = models.CharField(max_length=100, unique=True, null=True, blank=True)
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name='orders')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PLACED)
    item_count = models.PositiveIntegerField(default=0)
    total_amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    notes = models.TextField(blank=True)
    cancellation_reason = models.TextField(blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='cancelled_orders')
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='placed_orders')
    order_placed_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.order_number

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    def can_transition_to(self, target):
        """Whether the order lifecycle permits moving from the current status to ``target``"""
        if self.is_terminal:
            return False
        if target == self.STATUS_CANCELLED:
            return True
        if target not in self.FULFILMENT_SEQUENCE:
            return False
        return self.FULFILMENT_SEQUENCE.index(target) > self.FULFILMENT_SEQUENCE.index(self.status)

    class Meta:
        db_table = 'orders'
        ordering = ['-order_placed_at', '-id']
        indexes = [
            models.Index(fields=['customer', 'status'], name='idx_orders_customer_status'),
            models.Index(fields=['-order_placed_at'], name='idx_orders_placed_at'),
        ]


class OrderItem(models.Model):
    """Order lines: item name, price and unit are copied at placement time"""
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name='order_items')
    item_name = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    total_price = models.DecimalField(max_digits=10, decimal_places=2)
    unit = models.CharField(max_length=50)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.item_name} x{self.quantity}"

    class Meta:
        db_table = 'order_items'
        ordering = ['id']
        constraints = [
            models.CheckConstraint(condition=models.Q(quantity__gt=0), name='order_items_quantity_positive'),
        ]
