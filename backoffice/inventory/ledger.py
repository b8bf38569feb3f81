"""
Stock ledger: the only code path allowed to change ``Item.quantity``.

``reserve`` and ``release`` are single conditional UPDATE statements, so the
database serialises concurrent writers on the item row and on-hand stock can
never go below zero no matter how many requests race for the last unit.
Callers that touch several items must wrap the calls in one
``transaction.atomic()`` block so a failure rolls every line back.
"""
from django.db import transaction
from django.db.models import F
from django.utils import timezone
import logging

from backoffice.core.exceptions import InsufficientStock, InvalidItem, StockShortfall
from .models import Item, StockAdjustment

logger = logging.getLogger(__name__)

BULK_OPERATIONS = ('set', 'add', 'subtract')


def _validate_quantity(quantity):
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise ValueError(f'Quantity must be a positive integer, got {quantity!r}')


def reserve(item_id, quantity):
    """
    Decrement on-hand stock by ``quantity``.

    Raises InsufficientStock when fewer than ``quantity`` units are on hand
    and InvalidItem when the item does not exist. Nothing is changed on
    failure.
    """
    _validate_quantity(quantity)
    updated = Item.objects.filter(pk=item_id, quantity__gte=quantity).update(
        quantity=F('quantity') - quantity,
        updated_at=timezone.now(),
    )
    if updated:
        return

    current = Item.objects.filter(pk=item_id).values('name', 'quantity').first()
    if current is None:
        raise InvalidItem([item_id])
    logger.info(f"Reserve rejected: item_id={item_id} requested={quantity} available={current['quantity']}")
    raise InsufficientStock([
        StockShortfall(item_id, requested=quantity, available=current['quantity'], item_name=current['name'])
    ])


def release(item_id, quantity):
    """Increment on-hand stock by ``quantity`` (stock coming back from a cancelled order)"""
    _validate_quantity(quantity)
    updated = Item.objects.filter(pk=item_id).update(
        quantity=F('quantity') + quantity,
        updated_at=timezone.now(),
    )
    if not updated:
        raise InvalidItem([item_id])


def adjust(item_id, operation, quantity, user=None, reason=''):
    """
    Apply an administrative stock correction to one item.

    ``set`` replaces the on-hand quantity, ``add`` and ``subtract`` move it
    by ``quantity``. The non-negative invariant holds here too: a negative
    target or a subtraction beyond on-hand stock is rejected.

    Returns the recorded StockAdjustment.
    """
    if operation not in BULK_OPERATIONS:
        raise ValueError(f'Operation must be one of {", ".join(BULK_OPERATIONS)}')
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 0:
        raise ValueError(f'Quantity must be a non-negative integer, got {quantity!r}')

    with transaction.atomic():
        try:
            item = Item.objects.select_for_update().get(pk=item_id)
        except Item.DoesNotExist:
            raise InvalidItem([item_id])

        previous = item.quantity
        if operation == 'set':
            new_quantity = quantity
        elif operation == 'add':
            new_quantity = previous + quantity
        else:
            new_quantity = previous - quantity
            if new_quantity < 0:
                raise InsufficientStock(
                    [StockShortfall(item.pk, requested=quantity, available=previous, item_name=item.name)],
                    message=f'Cannot subtract {quantity} from current quantity {previous}. Result would be negative.'
                )

        Item.objects.filter(pk=item.pk).update(quantity=new_quantity, updated_at=timezone.now())
        adjustment = StockAdjustment.objects.create(
            item=item,
            operation=operation,
            quantity=quantity,
            previous_quantity=previous,
            new_quantity=new_quantity,
            reason=reason or '',
            created_by=user if user is not None and user.is_authenticated else None,
        )

    logger.info(f"Stock adjusted: item_id={item.pk} operation={operation} quantity={quantity} {previous} -> {new_quantity}")
    return adjustment
