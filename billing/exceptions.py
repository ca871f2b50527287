"""Domain errors raised by the billing services."""


class BillingError(Exception):
    """Base class for billing domain errors."""


class NotFoundError(BillingError):
    """A referenced record does not exist."""


class InvalidTransitionError(BillingError):
    """A state change was requested from a state that does not allow it."""


class DuplicateReferenceError(BillingError):
    """A payment with the same external reference already exists."""


class PermissionDeniedError(BillingError):
    """The acting user does not own the record."""


class ValidationError(BillingError):
    """Request values are outside what the operation accepts."""


class ProvisioningError(BillingError):
    """The purchased item could not be provisioned after payment."""


class GatewayError(BillingError):
    """The payment gateway could not be reached or answered badly."""


class GatewayTimeoutError(GatewayError):
    """The gateway did not answer in time. Transient, retry later."""
