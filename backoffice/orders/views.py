from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, IsAdminUser
from django.db import DatabaseError
from django.shortcuts import get_object_or_404
import logging

from backoffice.core.exceptions import ServiceError
from backoffice.core.pagination import paginate
from backoffice.inventory.availability import check_availability
from .filters import OrderFilter
from .models import Order
from .serializers import (
    OrderSerializer, OrderListSerializer, PlaceOrderSerializer, CancelOrderSerializer,
    CheckAvailabilitySerializer, BulkUpdateSerializer,
)
from . import services

logger = logging.getLogger(__name__)


def _service_error_response(error):
    return Response(error.as_dict(), status=error.status_code)


def _internal_error_response():
    return Response({'error': 'Internal server error'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def place_order(request):
    """Reserve stock for a basket and create the order (all-or-nothing)"""
    serializer = PlaceOrderSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        order = services.place_order(
            customer=serializer.validated_data['customerId'],
            lines=serializer.basket_lines(),
            notes=serializer.validated_data.get('notes', ''),
            external_order_id=serializer.validated_data.get('externalOrderId'),
            user=request.user,
            request=request,
        )
    except ServiceError as e:
        logger.info(f"Order placement rejected: {e.code} {e.message}")
        return _service_error_response(e)
    except DatabaseError as e:
        logger.error(f"Order placement failed: {str(e)}", exc_info=True)
        return _internal_error_response()

    order = Order.objects.select_related('customer').prefetch_related('items').get(pk=order.pk)
    return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cancel_order(request):
    """Cancel an order and return its stock; cancelling twice is a no-op"""
    serializer = CancelOrderSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        order, changed = services.cancel_order(
            serializer.validated_data['orderId'],
            reason=serializer.validated_data.get('reason', ''),
            user=request.user,
            request=request,
        )
    except Order.DoesNotExist:
        return Response({'error': 'Order not found'}, status=status.HTTP_404_NOT_FOUND)
    except ServiceError as e:
        logger.info(f"Order cancellation rejected: {e.code} {e.message}")
        return _service_error_response(e)
    except DatabaseError as e:
        logger.error(f"Order cancellation failed: {str(e)}", exc_info=True)
        return _internal_error_response()

    order = Order.objects.select_related('customer').prefetch_related('items').get(pk=order.pk)
    data = OrderSerializer(order).data
    data['already_cancelled'] = not changed
    return Response(data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def check_stock_availability(request):
    """Advisory per-line stock check; never changes stock"""
    serializer = CheckAvailabilitySerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    report = check_availability(serializer.basket_lines())
    return Response(report.as_dict())


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminUser])
def bulk_update_quantities(request):
    """Administrative stock corrections (set/add/subtract), applied line by line"""
    serializer = BulkUpdateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        successful, failed = services.bulk_update_quantities(
            serializer.ledger_updates(), user=request.user, request=request
        )
    except DatabaseError as e:
        logger.error(f"Bulk stock update failed: {str(e)}", exc_info=True)
        return _internal_error_response()

    data = {
        'message': f'Bulk update processed. {len(successful)} items updated successfully.',
        'successful': successful,
        'failed': failed,
    }
    if failed and not successful:
        data['message'] = 'Bulk update failed'
        return Response(data, status=status.HTTP_400_BAD_REQUEST)
    return Response(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def order_list(request):
    """List orders with filtering (status, customer, date range, search) and pagination"""
    queryset = Order.objects.select_related('customer')
    filterset = OrderFilter(request.query_params, queryset=queryset)
    if not filterset.is_valid():
        return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
    return Response(paginate(request, filterset.qs, OrderListSerializer))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def order_detail(request, pk):
    """Retrieve an order with its lines"""
    order = get_object_or_404(
        Order.objects.select_related('customer').prefetch_related('items'), pk=pk
    )
    return Response(OrderSerializer(order).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def order_by_external_id(request, external_id):
    """Retrieve an order by the id the calling system gave it"""
    order = get_object_or_404(
        Order.objects.select_related('customer').prefetch_related('items'), external_order_id=external_id
    )
    return Response(OrderSerializer(order).data)
