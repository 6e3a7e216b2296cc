"""Custom exceptions for the marketplace application."""

class MarketplaceError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['error'] = self.message
        rv['status'] = 'error'
        return rv

class BusinessLogicError(MarketplaceError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)

class NotFoundError(MarketplaceError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class InsufficientStockError(BusinessLogicError):
    """Raised when an operation fails due to lack of stock."""
    def __init__(self, product_name, required, available):
        message = f"Insufficient stock for {product_name}: requested {required}, available {available}"
        super().__init__(message, status_code=409, payload={
            'requested': required,
            'available': available,
        })

class UnauthorizedError(MarketplaceError):
    """Raised when a user lacks permission for an action."""
    def __init__(self, message="Unauthorized access"):
        super().__init__(message, 403)

class InvalidTransitionError(BusinessLogicError):
    """Raised when an RFQ, quote or order cannot move to the requested status."""
    def __init__(self, entity, current, target):
        message = f"Cannot move {entity} from '{current}' to '{target}'"
        super().__init__(message, status_code=409, payload={
            'current_status': current,
            'requested_status': target,
        })
