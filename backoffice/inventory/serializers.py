from rest_framework import serializers
from .models import Item, StockAdjustment


class ItemSerializer(serializers.ModelSerializer):
    is_low_stock = serializers.BooleanField(read_only=True)

    class Meta:
        model = Item
        fields = ['id', 'name', 'description', 'price', 'discount', 'unit', 'category', 'quantity',
                  'min_stock_level', 'is_low_stock', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def validate_price(self, value):
        if value < 0:
            raise serializers.ValidationError('Price cannot be negative')
        return value

    def validate_discount(self, value):
        if value < 0 or value > 100:
            raise serializers.ValidationError('Discount must be between 0 and 100')
        return value

    def validate(self, attrs):
        # Initial stock may be given on create; afterwards stock moves only through the ledger
        if self.instance is not None and 'quantity' in attrs and attrs['quantity'] != self.instance.quantity:
            raise serializers.ValidationError({
                'quantity': 'Stock cannot be edited directly. Use bulk stock update instead.'
            })
        return attrs


class StockAdjustmentSerializer(serializers.ModelSerializer):
    item_name = serializers.CharField(source='item.name', read_only=True)
    change = serializers.IntegerField(read_only=True)

    class Meta:
        model = StockAdjustment
        fields = ['id', 'item', 'item_name', 'operation', 'quantity', 'previous_quantity', 'new_quantity',
                  'change', 'reason', 'created_by', 'created_at']
