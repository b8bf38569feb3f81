from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, IsAdminUser
from django.db.models import F, Q, ProtectedError
from django.shortcuts import get_object_or_404
import logging

from backoffice.core.cache_utils import (
    ITEMS_CACHE_PREFIX, LOW_STOCK_CACHE_PREFIX, ITEMS_LIST_CACHE_TTL, LOW_STOCK_CACHE_TTL,
    get_cached, set_cached,
)
from backoffice.core.pagination import paginate
from backoffice.core.utils import create_audit_log
from .models import Item, StockAdjustment
from .serializers import ItemSerializer, StockAdjustmentSerializer

logger = logging.getLogger(__name__)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def item_list_create(request):
    """List items (paginated, cached) or create a new item"""
    if request.method == 'GET':
        search = request.query_params.get('search', '').strip()
        category = request.query_params.get('category', '').strip()
        active = request.query_params.get('active', '').strip().lower()

        cached_data, cache_key = get_cached(
            ITEMS_CACHE_PREFIX, search, category, active,
            request.query_params.get('page'), request.query_params.get('limit'),
        )
        if cached_data is not None:
            response = Response(cached_data)
            response['X-Cache'] = 'HIT'
            return response

        queryset = Item.objects.all()
        if search:
            queryset = queryset.filter(Q(name__icontains=search) | Q(category__icontains=search))
        if category:
            queryset = queryset.filter(category__iexact=category)
        if active in ('true', '1'):
            queryset = queryset.filter(is_active=True)
        elif active in ('false', '0'):
            queryset = queryset.filter(is_active=False)

        data = paginate(request, queryset.order_by('name', 'id'), ItemSerializer)
        set_cached(cache_key, data, ITEMS_LIST_CACHE_TTL)
        response = Response(data)
        response['X-Cache'] = 'MISS'
        return response
    else:  # POST
        serializer = ItemSerializer(data=request.data)
        if serializer.is_valid():
            item = serializer.save()
            create_audit_log(
                request=request,
                action='create',
                model_name='Item',
                object_id=str(item.id),
                object_name=item.name,
                changes={'price': str(item.price), 'quantity': item.quantity, 'unit': item.unit},
            )
            return Response(ItemSerializer(item).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def item_detail(request, pk):
    """Retrieve, update or delete an item"""
    item = get_object_or_404(Item, pk=pk)

    if request.method == 'GET':
        return Response(ItemSerializer(item).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = ItemSerializer(item, data=request.data, partial=(request.method == 'PATCH'))
        if serializer.is_valid():
            changes = {
                field: {'old': str(getattr(item, field)), 'new': str(value)}
                for field, value in serializer.validated_data.items()
                if getattr(item, field) != value
            }
            serializer.save()
            if changes:
                create_audit_log(
                    request=request,
                    action='update',
                    model_name='Item',
                    object_id=str(item.id),
                    object_name=item.name,
                    changes=changes,
                )
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        item_id, item_name = item.id, item.name
        try:
            item.delete()
        except ProtectedError:
            return Response({
                'error': 'Item is referenced by existing orders and cannot be deleted',
                'message': 'Deactivate the item instead (is_active=false)'
            }, status=status.HTTP_409_CONFLICT)
        create_audit_log(
            request=request,
            action='delete',
            model_name='Item',
            object_id=str(item_id),
            object_name=item_name,
        )
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def item_low_stock(request):
    """Active items at or below their minimum stock level"""
    cached_data, cache_key = get_cached(LOW_STOCK_CACHE_PREFIX)
    if cached_data is not None:
        return Response(cached_data)

    items = Item.objects.filter(is_active=True, quantity__lte=F('min_stock_level')).order_by('quantity', 'name')
    data = ItemSerializer(items, many=True).data
    set_cached(cache_key, data, LOW_STOCK_CACHE_TTL)
    logger.info(f"Low stock query returned {len(data)} items")
    return Response(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def item_out_of_stock(request):
    """Items with no stock on hand"""
    items = Item.objects.filter(quantity=0).order_by('name')
    return Response(ItemSerializer(items, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminUser])
def stock_adjustment_list(request):
    """List stock corrections, optionally for a single item"""
    queryset = StockAdjustment.objects.select_related('item')
    item_id = request.query_params.get('item_id')
    if item_id:
        queryset = queryset.filter(item_id=item_id)
    return Response(paginate(request, queryset, StockAdjustmentSerializer, default_limit=50))
