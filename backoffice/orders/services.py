"""
Order placement and cancellation coordinators.

Placement locks every item in the basket, re-checks availability against the
locked rows, reserves stock through the ledger and writes the order with its
line snapshots, all inside one transaction: either the whole basket is
reserved and recorded or nothing changes. Cancellation returns the reserved
stock and marks the order cancelled in one transaction as well.
"""
from decimal import Decimal
import logging
import uuid

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from backoffice.core.cache_utils import invalidate_items_cache
from backoffice.core.db_utils import retry_on_conflict
from backoffice.core.exceptions import (
    DuplicateOrder, EmptyBasket, InsufficientStock, InvalidItem, InvalidTransition,
)
from backoffice.core.utils import create_audit_log
from backoffice.inventory import ledger
from backoffice.inventory.availability import check_availability, merge_lines
from .models import Order, OrderItem

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal('0.01')


def generate_order_number():
    prefix = getattr(settings, 'ORDER_NUMBER_PREFIX', 'ORD')
    order_number = f"{prefix}-{timezone.now().strftime('%Y%m%d')}-{str(uuid.uuid4())[:8].upper()}"
    while Order.objects.filter(order_number=order_number).exists():
        order_number = f"{prefix}-{timezone.now().strftime('%Y%m%d')}-{str(uuid.uuid4())[:8].upper()}"
    return order_number


@retry_on_conflict
def place_order(customer, lines, notes='', external_order_id=None, user=None, request=None):
    """
    Reserve stock for a basket and create the order.

    Args:
        customer: Customer placing the order
        lines: iterable of ``(item_id, quantity)`` pairs; repeated items are merged
        notes: free-text order notes
        external_order_id: optional id of the order in the calling system
        user: staff user acting on behalf of the customer, if any
        request: request used for audit logging

    Returns the created Order.

    Raises EmptyBasket, InvalidItem (unknown or inactive item),
    InsufficientStock (naming every short line) or DuplicateOrder (external
    order id already used); on any error no stock is reserved and no order
    exists.
    """
    lines = merge_lines(lines)
    if not lines:
        raise EmptyBasket()

    with transaction.atomic():
        # Re-check against locked rows; an earlier advisory check may be stale
        report = check_availability(lines, lock=True)
        if report.invalid_item_ids:
            raise InvalidItem(report.invalid_item_ids)
        if not report.all_available:
            raise InsufficientStock(report.shortfalls())

        try:
            # Savepoint keeps the transaction usable for the duplicate lookup below
            with transaction.atomic():
                order = Order.objects.create(
                    order_number=generate_order_number(),
                    external_order_id=external_order_id or None,
                    customer=customer,
                    status=Order.STATUS_PLACED,
                    notes=notes or '',
                    created_by=user if user is not None and user.is_authenticated else None,
                )
        except IntegrityError:
            # A concurrent placement may claim the external id after request validation
            if external_order_id and Order.objects.filter(external_order_id=external_order_id).exists():
                raise DuplicateOrder(external_order_id)
            raise

        order_items = []
        total_amount = Decimal('0.00')
        for line in lines:
            item = report.items[line.item_id]
            ledger.reserve(item.pk, line.quantity)
            line_total = (item.price * line.quantity).quantize(TWO_PLACES)
            total_amount += line_total
            order_items.append(OrderItem(
                order=order,
                item=item,
                item_name=item.name,
                quantity=line.quantity,
                unit_price=item.price,
                total_price=line_total,
                unit=item.unit,
            ))
        OrderItem.objects.bulk_create(order_items)

        order.item_count = len(order_items)
        order.total_amount = total_amount
        order.save(update_fields=['item_count', 'total_amount', 'updated_at'])

    invalidate_items_cache()
    logger.info(f"Order placed: order={order.order_number} customer_id={customer.pk} "
                f"lines={order.item_count} total={order.total_amount}")
    create_audit_log(
        request=request,
        user=user,
        action='order_place',
        model_name='Order',
        object_id=str(order.id),
        object_name=f"Order {order.order_number}",
        object_reference=order.order_number,
        changes={
            'customer_id': customer.pk,
            'external_order_id': order.external_order_id,
            'total_amount': str(order.total_amount),
            'items': [
                {'item_id': oi.item_id, 'item_name': oi.item_name, 'quantity': oi.quantity}
                for oi in order_items
            ],
        }
    )
    return order


@retry_on_conflict
def cancel_order(order_id, reason='', user=None, request=None):
    """
    Cancel an order and return its reserved stock.

    Returns ``(order, changed)``; ``changed`` is False when the order was
    already cancelled, which is treated as success without touching stock.

    Raises Order.DoesNotExist for an unknown id and InvalidTransition when the
    order has been delivered.
    """
    with transaction.atomic():
        # Row lock serialises concurrent cancellations of the same order
        order = Order.objects.select_for_update().get(pk=order_id)

        if order.status == Order.STATUS_CANCELLED:
            logger.info(f"Order {order.order_number} already cancelled, nothing to do")
            return order, False
        if not order.can_transition_to(Order.STATUS_CANCELLED):
            raise InvalidTransition(order.status, Order.STATUS_CANCELLED)

        previous_status = order.status
        lines = list(order.items.all())
        for line in lines:
            ledger.release(line.item_id, line.quantity)

        order.status = Order.STATUS_CANCELLED
        order.cancellation_reason = reason or ''
        order.cancelled_at = timezone.now()
        order.cancelled_by = user if user is not None and user.is_authenticated else None
        order.save(update_fields=['status', 'cancellation_reason', 'cancelled_at', 'cancelled_by', 'updated_at'])

    invalidate_items_cache()
    logger.info(f"Order cancelled: order={order.order_number} previous_status={previous_status} "
                f"restocked_lines={len(lines)}")
    create_audit_log(
        request=request,
        user=user,
        action='order_cancel',
        model_name='Order',
        object_id=str(order.id),
        object_name=f"Order {order.order_number}",
        object_reference=order.order_number,
        changes={
            'previous_status': previous_status,
            'reason': order.cancellation_reason,
            'restocked': [{'item_id': line.item_id, 'quantity': line.quantity} for line in lines],
        }
    )
    return order, True


def bulk_update_quantities(updates, user=None, request=None):
    """
    Apply administrative stock corrections line by line.

    Each update is ``{'item_id', 'quantity', 'operation', 'reason'?}``. Lines
    succeed or fail independently; a failed line changes nothing.

    Returns ``(successful, failed)`` lists of result dicts.
    """
    successful = []
    failed = []
    for update in updates:
        item_id = update['item_id']
        try:
            adjustment = ledger.adjust(
                item_id,
                update['operation'],
                update['quantity'],
                user=user,
                reason=update.get('reason', ''),
            )
        except (InvalidItem, InsufficientStock) as e:
            failed.append({'item_id': item_id, 'error': e.message, 'code': e.code})
            continue
        except ValueError as e:
            failed.append({'item_id': item_id, 'error': str(e), 'code': 'invalid_quantity'})
            continue

        successful.append({
            'item_id': item_id,
            'operation': adjustment.operation,
            'previous_quantity': adjustment.previous_quantity,
            'change_amount': adjustment.quantity,
            'new_quantity': adjustment.new_quantity,
        })
        create_audit_log(
            request=request,
            user=user,
            action='stock_adjust',
            model_name='Item',
            object_id=str(item_id),
            object_name=adjustment.item.name,
            changes={
                'operation': adjustment.operation,
                'quantity': adjustment.quantity,
                'previous_quantity': adjustment.previous_quantity,
                'new_quantity': adjustment.new_quantity,
                'reason': adjustment.reason,
            }
        )

    if successful:
        invalidate_items_cache()
    logger.info(f"Bulk stock update: {len(successful)} applied, {len(failed)} rejected")
    return successful, failed
