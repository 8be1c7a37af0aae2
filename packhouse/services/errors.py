# packhouse/services/errors.py


class StoreError(Exception):
    """A document store rejected or failed a read/write."""

    def __init__(self, store: str, op: str, cause: Exception = None):
        self.store = store
        self.op = op
        self.cause = cause
        msg = f"{store}.{op} failed"
        if cause is not None:
            msg = f"{msg}: {cause}"
        super().__init__(msg)


class OrderValidationError(ValueError):
    """Order input rejected before anything was written."""

    def __init__(self, message: str, details=None):
        super().__init__(message)
        self.details = details or []


class OrderNotFound(LookupError):
    def __init__(self, order_id: str):
        super().__init__(f"order not found: {order_id}")
        self.order_id = order_id
