"""Custom exceptions for the QuoteVoice application."""

class QuoteVoiceError(Exception):
    """Base exception for all application errors."""
    code = 'INTERNAL_ERROR'

    def __init__(self, message="An internal error occurred", status_code=500, payload=None, code=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload
        if code:
            self.code = code

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['code'] = self.code
        rv['status'] = 'error'
        return rv

class ValidationError(QuoteVoiceError):
    """Raised when input is missing or malformed."""
    code = 'VALIDATION_ERROR'

    def __init__(self, message, field=None, payload=None):
        payload = dict(payload or ())
        if field:
            payload['field'] = field
        super().__init__(message, 400, payload)
        self.field = field

class ConflictError(QuoteVoiceError):
    """Raised when an operation conflicts with the current state of a resource."""
    code = 'CONFLICT'

    def __init__(self, message, payload=None):
        super().__init__(message, 409, payload)

class ImmutableError(ConflictError):
    """Raised when mutating a quote that is finalized, exported or archived."""
    code = 'IMMUTABLE'

class InvalidTransitionError(ConflictError):
    """Raised when a status change is not allowed by the lifecycle."""
    code = 'INVALID_TRANSITION'

    def __init__(self, resource, current, target):
        super().__init__(
            f"Cannot move {resource} from '{current}' to '{target}'",
            payload={'current_status': current, 'target_status': target}
        )

class DuplicateStandardInvoiceError(ConflictError):
    """Raised when a quote already has its standard invoice."""
    code = 'DUPLICATE_STANDARD_INVOICE'

    def __init__(self, quote_id):
        super().__init__('A standard invoice already exists for this quote', payload={'quote_id': quote_id})

class NoBalanceRemainingError(ConflictError):
    """Raised when deposits already cover the quote total."""
    code = 'NO_BALANCE_REMAINING'

    def __init__(self, quote_id):
        super().__init__('No balance remaining', payload={'quote_id': quote_id})

class NotFoundError(QuoteVoiceError):
    """Exception raised when a resource is not found (or not visible to the tenant)."""
    code = 'NOT_FOUND'

    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class UnauthorizedError(QuoteVoiceError):
    """Raised when a user lacks permission for an action."""
    code = 'FORBIDDEN'

    def __init__(self, message="Unauthorized access", payload=None):
        super().__init__(message, 403, payload)

class PlanFeatureError(UnauthorizedError):
    """Raised when the tenant's subscription tier does not include a feature."""
    code = 'PLAN_REQUIRED'

    def __init__(self, feature, tier):
        super().__init__(
            f"Feature '{feature}' is not available on the '{tier}' plan",
            payload={'feature': feature, 'tier': tier}
        )

class StorageError(QuoteVoiceError):
    """Raised when the database rejects a write; the detail stays in the logs."""
    code = 'STORAGE_ERROR'

    def __init__(self, detail):
        super().__init__('A storage error occurred', 500)
        self.detail = detail

class RateLimitExceeded(QuoteVoiceError):
    """Raised when a caller exceeds its request limit."""
    code = 'RATE_LIMITED'

    def __init__(self, limit, reset_in):
        super().__init__('Too many requests. Please retry later.', 429,
                         payload={'limit': limit, 'retry_after': reset_in})
        self.limit = limit
        self.reset_in = reset_in
