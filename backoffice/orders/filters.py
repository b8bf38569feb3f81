import django_filters
from django.db.models import Q
from .models import Order


class OrderFilter(django_filters.FilterSet):
    """Filters for the order list endpoint"""
    search = django_filters.CharFilter(method='filter_search', label='Search')
    status = django_filters.MultipleChoiceFilter(choices=Order.STATUS_CHOICES)
    customer = django_filters.NumberFilter(field_name='customer_id', lookup_expr='exact')
    date_from = django_filters.DateFilter(field_name='order_placed_at', lookup_expr='date__gte')
    date_to = django_filters.DateFilter(field_name='order_placed_at', lookup_expr='date__lte')

    class Meta:
        model = Order
        fields = ['search', 'status', 'customer', 'date_from', 'date_to']

    def filter_search(self, queryset, name, value):
        """Match order number, external order id or customer name/phone"""
        value = value.strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(order_number__icontains=value) |
            Q(external_order_id__icontains=value) |
            Q(customer__name__icontains=value) |
            Q(customer__phone__icontains=value)
        )
