from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db import transaction
from django.shortcuts import get_object_or_404
from .models import Address
from .serializers import AddressSerializer


def set_primary_address(address):
    """Make the address primary and clear the flag on the user's other addresses"""
    Address.objects.filter(user_id=address.user_id, is_primary=True).exclude(pk=address.pk).update(is_primary=False)
    if not address.is_primary:
        address.is_primary = True
        address.save(update_fields=['is_primary', 'updated_at'])


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def address_list_create(request):
    """List the current user's addresses or add a new one"""
    if request.method == 'GET':
        addresses = Address.objects.filter(user=request.user)
        serializer = AddressSerializer(addresses, many=True)
        return Response(serializer.data)
    else:
        serializer = AddressSerializer(data=request.data)
        if serializer.is_valid():
            with transaction.atomic():
                is_first = not Address.objects.filter(user=request.user).exists()
                make_primary = is_first or serializer.validated_data.get('is_primary', False)
                address = serializer.save(user=request.user, is_primary=False)
                if make_primary:
                    set_primary_address(address)
            return Response(AddressSerializer(address).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def address_detail(request, pk):
    """Retrieve, update or delete one of the current user's addresses"""
    address = get_object_or_404(Address, pk=pk, user=request.user)

    if request.method == 'GET':
        serializer = AddressSerializer(address)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = AddressSerializer(address, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            wants_primary = serializer.validated_data.pop('is_primary', None)
            with transaction.atomic():
                address = serializer.save()
                if wants_primary:
                    set_primary_address(address)
            return Response(AddressSerializer(address).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        with transaction.atomic():
            was_primary = address.is_primary
            user_id = address.user_id
            address.delete()
            if was_primary:
                # Promote the most recent remaining address
                replacement = Address.objects.filter(user_id=user_id).order_by('-created_at').first()
                if replacement:
                    set_primary_address(replacement)
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['PUT', 'PATCH', 'POST'])
@permission_classes([IsAuthenticated])
def address_set_default(request, pk):
    """Mark an address as the user's primary address"""
    address = get_object_or_404(Address, pk=pk, user=request.user)
    with transaction.atomic():
        set_primary_address(address)
    return Response(AddressSerializer(address).data)
