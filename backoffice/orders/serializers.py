from rest_framework import serializers
from backoffice.inventory.ledger import BULK_OPERATIONS
from backoffice.parties.models import Customer
from .models import Order, OrderItem


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = ['id', 'item', 'item_name', 'quantity', 'unit_price', 'total_price', 'unit', 'created_at']


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    customer_name = serializers.CharField(source='customer.name', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = Order
        fields = ['id', 'order_number', 'external_order_id', 'customer', 'customer_name', 'status', 'status_display',
                  'item_count', 'total_amount', 'notes', 'cancellation_reason', 'cancelled_at', 'cancelled_by',
                  'created_by', 'order_placed_at', 'updated_at', 'items']
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.name', read_only=True)

    class Meta:
        model = Order
        fields = ['id', 'order_number', 'external_order_id', 'customer', 'customer_name', 'status',
                  'item_count', 'total_amount', 'order_placed_at']
        read_only_fields = fields


class BasketLineSerializer(serializers.Serializer):
    itemId = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1)


class PlaceOrderSerializer(serializers.Serializer):
    """Request body for placing an order: {customerId, items: [{itemId, quantity}], notes?, externalOrderId?}"""
    customerId = serializers.PrimaryKeyRelatedField(
        queryset=Customer.objects.filter(is_active=True),
        error_messages={'does_not_exist': 'Customer "{pk_value}" does not exist or is inactive.'},
    )
    # Emptiness is reported by the placement coordinator as EmptyBasket
    items = BasketLineSerializer(many=True, allow_empty=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    externalOrderId = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=100)

    def validate_externalOrderId(self, value):
        if value and Order.objects.filter(external_order_id=value).exists():
            raise serializers.ValidationError('An order with this external order id already exists.')
        return value or None

    def basket_lines(self):
        return [(line['itemId'], line['quantity']) for line in self.validated_data['items']]


class CancelOrderSerializer(serializers.Serializer):
    orderId = serializers.IntegerField(min_value=1)
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class AvailabilityLineSerializer(serializers.Serializer):
    itemId = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1, required=False)
    requiredQuantity = serializers.IntegerField(min_value=1, required=False)

    def validate(self, attrs):
        # "requiredQuantity" is the older spelling still sent by some clients
        quantity = attrs.get('quantity', attrs.get('requiredQuantity'))
        if quantity is None:
            raise serializers.ValidationError({'quantity': 'This field is required.'})
        return {'itemId': attrs['itemId'], 'quantity': quantity}


class CheckAvailabilitySerializer(serializers.Serializer):
    items = AvailabilityLineSerializer(many=True, allow_empty=False)

    def basket_lines(self):
        return [(line['itemId'], line['quantity']) for line in self.validated_data['items']]


class StockUpdateSerializer(serializers.Serializer):
    itemId = serializers.IntegerField(min_value=1)
    # Negative quantities are rejected per line by the ledger, not for the whole batch
    quantity = serializers.IntegerField()
    operation = serializers.ChoiceField(choices=BULK_OPERATIONS)
    reason = serializers.CharField(required=False, allow_blank=True, default='', max_length=255)


class BulkUpdateSerializer(serializers.Serializer):
    updates = StockUpdateSerializer(many=True, allow_empty=False)

    def ledger_updates(self):
        return [
            {
                'item_id': update['itemId'],
                'quantity': update['quantity'],
                'operation': update['operation'],
                'reason': update['reason'],
            }
            for update in self.validated_data['updates']
        ]
