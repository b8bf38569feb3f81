from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Q
from django.shortcuts import get_object_or_404
from backoffice.core.pagination import paginate
from .models import Customer
from .serializers import CustomerSerializer


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def customer_list_create(request):
    """List customers (optional search by name/phone) or create a customer"""
    if request.method == 'GET':
        queryset = Customer.objects.all().order_by('name', 'id')
        search = request.query_params.get('search', '').strip()
        if search:
            queryset = queryset.filter(Q(name__icontains=search) | Q(phone__icontains=search))
        return Response(paginate(request, queryset, CustomerSerializer))
    else:  # POST
        serializer = CustomerSerializer(data=request.data)
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH'])
@permission_classes([IsAuthenticated])
def customer_detail(request, pk):
    """Retrieve or update a customer"""
    customer = get_object_or_404(Customer, pk=pk)

    if request.method == 'GET':
        return Response(CustomerSerializer(customer).data)
    serializer = CustomerSerializer(customer, data=request.data, partial=(request.method == 'PATCH'))
    if serializer.is_valid():
        serializer.save()
        return Response(serializer.data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
