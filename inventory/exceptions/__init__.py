"""Custom exceptions for the inventory application."""


class InventoryError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class BusinessLogicError(InventoryError):
    """Rejected request; nothing was written and the caller can fix the input."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class ValidationError(BusinessLogicError):
    """Malformed input (bad quantity, unknown product, ...)."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class ProductNotFoundError(ValidationError):
    """Raised when a movement references a missing or inactive product."""
    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found", status_code=404,
                         payload={'product_id': product_id})


def _fmt_qty(value):
    return f"{int(value)}" if value % 1 == 0 else f"{value:.2f}".rstrip('0').rstrip('.')


class InsufficientStockError(BusinessLogicError):
    """Raised when a stock-out exceeds the current balance."""
    def __init__(self, product_name, requested, available, product_id=None):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        message = (
            f"Insufficient stock for {product_name}: "
            f"requested {_fmt_qty(requested)}, available {_fmt_qty(available)}"
        )
        super().__init__(message, status_code=409, payload={
            'product_id': product_id,
            'requested': requested,
            'available': available,
        })


class InvalidAdjustmentError(BusinessLogicError):
    """Raised when an adjustment would drive the balance below zero."""
    def __init__(self, product_name, delta, available, product_id=None):
        self.product_id = product_id
        self.delta = delta
        self.available = available
        message = (
            f"Adjustment of {delta:+d} for {product_name} would leave a negative "
            f"balance (available {_fmt_qty(available)})"
        )
        super().__init__(message, status_code=409, payload={
            'product_id': product_id,
            'delta': delta,
            'available': available,
        })


class NotFoundError(InventoryError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class AuthenticationError(InventoryError):
    """Raised when the request has no valid login."""
    def __init__(self, message="Authentication required"):
        super().__init__(message, 401)


class UnauthorizedError(InventoryError):
    """Raised when a user lacks permission for an action."""
    def __init__(self, message="Unauthorized access"):
        super().__init__(message, 403)


class ConfigurationError(InventoryError):
    """Raised at startup when required configuration is missing."""
    def __init__(self, message):
        super().__init__(message, 500)


class PersistenceError(InventoryError):
    """
    The store failed while recording a request.

    ``compensated`` tells whether any partial write was undone, i.e. whether
    the ledger and the balance are known to agree after the failure.
    """
    def __init__(self, message="The system failed to record your request", compensated=True,
                 status_code=503, payload=None):
        self.compensated = compensated
        payload = dict(payload or ())
        payload['compensated'] = compensated
        super().__init__(message, status_code, payload)


class OperationTimeoutError(PersistenceError):
    """Raised when a movement could not start in time; nothing was written."""
    def __init__(self, product_id, timeout):
        self.product_id = product_id
        self.timeout = timeout
        super().__init__(
            f"Timed out after {timeout}s waiting to record a movement for product {product_id}",
            compensated=True,
            payload={'product_id': product_id},
        )


class ReconciliationError(PersistenceError):
    """
    Compensation failed: the ledger keeps a row the balance does not reflect.

    Must be logged and repaired out of band (``flask reconcile-stock``).
    """
    def __init__(self, product_id, transaction_id, cause=None):
        self.product_id = product_id
        self.transaction_id = transaction_id
        self.cause = cause
        super().__init__(
            f"Stock ledger and balance diverged for product {product_id} "
            f"(orphaned transaction {transaction_id})",
            compensated=False,
            status_code=500,
            payload={'product_id': product_id, 'transaction_id': transaction_id},
        )
