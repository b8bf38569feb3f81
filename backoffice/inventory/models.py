from django.db import models
from decimal import Decimal


class Item(models.Model):
    """Sellable inventory item with its on-hand stock"""
    UNIT_CHOICES = [
        ('kg', 'Kilogram'),
        ('grams', 'Grams'),
        ('ml', 'Millilitre'),
        ('litre', 'Litre'),
        ('pieces', 'Pieces'),
        ('dozen', 'Dozen'),
        ('packet', 'Packet'),
        ('bottle', 'Bottle'),
        ('can', 'Can'),
    ]

    name = models.CharField(max_length=255, db_index=True)
    description = models.TextField(blank=True)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    discount = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0.00'))
    unit = models.CharField(max_length=50, choices=UNIT_CHOICES)
    category = models.CharField(max_length=100, blank=True)
    # On-hand stock; only the stock ledger may change it
    quantity = models.PositiveIntegerField(default=0)
    min_stock_level = models.PositiveIntegerField(default=10, help_text='Reorder threshold (informational)')
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    @property
    def is_low_stock(self):
        return self.quantity <= self.min_stock_level

    class Meta:
        db_table = 'items'
        ordering = ['name']
        constraints = [
            models.CheckConstraint(condition=models.Q(quantity__gte=0), name='items_quantity_non_negative'),
            models.CheckConstraint(condition=models.Q(price__gte=0), name='items_price_non_negative'),
        ]
        indexes = [
            models.Index(fields=['is_active', 'quantity'], name='idx_items_active_quantity'),
            models.Index(fields=['category'], name='idx_items_category'),
        ]


class StockAdjustment(models.Model):
    """Administrative stock correction applied through bulk update"""
    OPERATION_CHOICES = [
        ('set', 'Set'),
        ('add', 'Add'),
        ('subtract', 'Subtract'),
    ]

    item = models.ForeignKey(Item, on_delete=models.CASCADE, related_name='adjustments')
    operation = models.CharField(max_length=10, choices=OPERATION_CHOICES)
    quantity = models.PositiveIntegerField(help_text='Amount given with the operation')
    previous_quantity = models.PositiveIntegerField()
    new_quantity = models.PositiveIntegerField()
    reason = models.CharField(max_length=255, blank=True)
    created_by = models.ForeignKey('core.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='stock_adjustments')
    created_at = models.DateTimeField(auto_now_add=True)

    @property
    def change(self):
        return self.new_quantity - self.previous_quantity

    class Meta:
        db_table = 'stock_adjustments'
        ordering = ['-created_at']
