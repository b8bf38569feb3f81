"""
Business errors raised by the stock ledger and the order coordinators.

Each error knows the HTTP status it maps to and how to render itself as a
response body, so views only need one ``except ServiceError`` branch.
"""
from rest_framework import status


class ServiceError(Exception):
    """Base class for recoverable business-rule failures"""
    status_code = status.HTTP_400_BAD_REQUEST
    code = 'service_error'
    default_message = 'Request could not be processed'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def detail(self):
        return {}

    def as_dict(self):
        data = {'error': self.message, 'code': self.code}
        data.update(self.detail())
        return data


class StockShortfall:
    """One basket line that cannot be satisfied from on-hand stock"""

    def __init__(self, item_id, requested, available, item_name=None):
        self.item_id = item_id
        self.item_name = item_name
        self.requested = requested
        self.available = available

    @property
    def shortfall(self):
        return max(self.requested - self.available, 0)

    def as_dict(self):
        return {
            'item_id': self.item_id,
            'item_name': self.item_name,
            'requested': self.requested,
            'available': self.available,
            'shortfall': self.shortfall,
        }

    def __repr__(self):
        return f"StockShortfall(item_id={self.item_id}, requested={self.requested}, available={self.available})"


class InsufficientStock(ServiceError):
    status_code = status.HTTP_409_CONFLICT
    code = 'insufficient_stock'

    def __init__(self, shortfalls, message=None):
        self.shortfalls = list(shortfalls)
        if message is None:
            names = ', '.join(str(s.item_name or s.item_id) for s in self.shortfalls)
            message = f'Insufficient stock for: {names}'
        super().__init__(message)

    @property
    def item_ids(self):
        return [s.item_id for s in self.shortfalls]

    def detail(self):
        return {'items': [s.as_dict() for s in self.shortfalls]}


class InvalidItem(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = 'invalid_item'

    def __init__(self, item_ids, message=None):
        self.item_ids = list(item_ids)
        if message is None:
            message = f"Unknown or inactive item(s): {', '.join(str(i) for i in self.item_ids)}"
        super().__init__(message)

    def detail(self):
        return {'item_ids': self.item_ids}


class EmptyBasket(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = 'empty_basket'
    default_message = 'Order must contain at least one item'


class InvalidTransition(ServiceError):
    status_code = status.HTTP_409_CONFLICT
    code = 'invalid_transition'

    def __init__(self, current_status, target_status, message=None):
        self.current_status = current_status
        self.target_status = target_status
        if message is None:
            message = f'Order cannot move from "{current_status}" to "{target_status}"'
        super().__init__(message)

    def detail(self):
        return {'current_status': self.current_status, 'target_status': self.target_status}


class ConcurrencyConflict(ServiceError):
    status_code = status.HTTP_409_CONFLICT
    code = 'concurrency_conflict'
    default_message = 'The request conflicted with a concurrent update, please retry'


class DuplicateOrder(ServiceError):
    status_code = status.HTTP_409_CONFLICT
    code = 'duplicate_order'

    def __init__(self, external_order_id, message=None):
        self.external_order_id = external_order_id
        if message is None:
            message = f'An order with external order id "{external_order_id}" already exists'
        super().__init__(message)

    def detail(self):
        return {'external_order_id': self.external_order_id}
