"""
Availability checker

Answers "can this basket be served from current stock?" without changing
anything. All items in a basket are read with a single query, so every line
is judged against the same snapshot of stock.
"""
from collections import OrderedDict, namedtuple

from backoffice.core.exceptions import StockShortfall
from .models import Item

BasketLine = namedtuple('BasketLine', ['item_id', 'quantity'])

REASON_NOT_FOUND = 'not_found'
REASON_INACTIVE = 'inactive'
REASON_INSUFFICIENT = 'insufficient_stock'


def merge_lines(lines):
    """Collapse repeated items into one line each, keeping first-seen order"""
    merged = OrderedDict()
    for item_id, quantity in lines:
        merged[item_id] = merged.get(item_id, 0) + quantity
    return [BasketLine(item_id, quantity) for item_id, quantity in merged.items()]


class LineVerdict:
    """Outcome for one basket line"""

    def __init__(self, item_id, requested, available, is_available, reason=None, item_name=None, demand=None):
        self.item_id = item_id
        self.item_name = item_name
        self.requested = requested
        # Total asked for this item across the basket; equals requested unless the item repeats
        self.demand = requested if demand is None else demand
        self.available = available
        self.is_available = is_available
        self.reason = reason

    @property
    def shortfall(self):
        if self.is_available or self.available is None:
            return 0
        return max(self.demand - self.available, 0)

    def as_dict(self):
        return {
            'item_id': self.item_id,
            'item_name': self.item_name,
            'requested_quantity': self.requested,
            'current_quantity': self.available,
            'is_available': self.is_available,
            'shortfall': self.shortfall,
            'reason': self.reason,
        }


class AvailabilityReport:
    def __init__(self, verdicts, items):
        self.verdicts = verdicts
        # Items keyed by id, as read for this check (locked rows when lock=True)
        self.items = items

    @property
    def all_available(self):
        return all(v.is_available for v in self.verdicts)

    @property
    def unavailable(self):
        return [v for v in self.verdicts if not v.is_available]

    @property
    def invalid_item_ids(self):
        """Ids that are unknown or inactive, in basket order without repeats"""
        seen = []
        for v in self.verdicts:
            if v.reason in (REASON_NOT_FOUND, REASON_INACTIVE) and v.item_id not in seen:
                seen.append(v.item_id)
        return seen

    def shortfalls(self):
        return [
            StockShortfall(v.item_id, requested=v.demand, available=v.available, item_name=v.item_name)
            for v in self.verdicts if v.reason == REASON_INSUFFICIENT
        ]

    def as_dict(self):
        return {
            'all_available': self.all_available,
            'stock_check': [v.as_dict() for v in self.verdicts],
            'unavailable_items': [
                {'item_id': v.item_id, 'reason': v.reason} for v in self.unavailable
            ],
        }


def check_availability(lines, lock=False):
    """
    Judge each ``(item_id, quantity)`` line against current stock.

    A line is available when the item exists, is active and its on-hand
    quantity covers the total demanded for that item across the whole
    basket, so splitting one item over several lines cannot oversell it.

    With ``lock=True`` the item rows are locked (SELECT ... FOR UPDATE, in
    id order to avoid deadlocks); the caller must be inside
    ``transaction.atomic()``.
    """
    lines = [BasketLine(item_id, quantity) for item_id, quantity in lines]
    demand = {}
    for line in lines:
        demand[line.item_id] = demand.get(line.item_id, 0) + line.quantity

    queryset = Item.objects.filter(pk__in=list(demand.keys()))
    if lock:
        queryset = queryset.select_for_update().order_by('pk')
    items = {item.pk: item for item in queryset}

    verdicts = []
    for line in lines:
        item = items.get(line.item_id)
        if item is None:
            verdicts.append(LineVerdict(line.item_id, line.quantity, None, False, REASON_NOT_FOUND))
            continue
        if not item.is_active:
            verdicts.append(LineVerdict(line.item_id, line.quantity, item.quantity, False, REASON_INACTIVE, item.name))
            continue
        enough = demand[line.item_id] <= item.quantity
        verdicts.append(LineVerdict(
            line.item_id, line.quantity, item.quantity, enough,
            None if enough else REASON_INSUFFICIENT, item.name, demand[line.item_id]
        ))

    return AvailabilityReport(verdicts, items)
