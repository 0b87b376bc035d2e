"""
Domain-specific exceptions for the purchases app.

These exceptions represent business rule violations and should be
caught in views and converted to appropriate HTTP responses.
"""


class PurchaseServiceError(Exception):
    """Base exception for all purchases service errors."""
    pass


class PurchaseNotFoundError(PurchaseServiceError):
    """Raised when a purchase does not exist."""
    pass


class ContributionNotFoundError(PurchaseServiceError):
    """Raised when a contribution does not exist."""
    pass


class MeterReadingValidationError(PurchaseServiceError):
    """
    Raised when a meter reading breaks the chronology of recorded readings.

    Carries the bounds a corrected reading must respect so the client can
    offer them to the user.
    """

    def __init__(self, message, suggested_minimum=None, suggested_maximum=None, context=None):
        super().__init__(message)
        self.suggested_minimum = suggested_minimum
        self.suggested_maximum = suggested_maximum
        self.context = context


class InconsistentConsumptionError(PurchaseServiceError):
    """Raised when tokens consumed is implausible for the submitted meter reading."""
    pass


class DuplicateContributionError(PurchaseServiceError):
    """Raised when a purchase already has its contribution."""
    pass


class SequentialContributionError(PurchaseServiceError):
    """
    Raised when an older purchase must be settled first: a contribution
    targets a purchase other than the oldest unsettled one, or a new
    purchase is recorded while the one before it is unsettled.
    """

    def __init__(self, message, next_available_purchase_id=None):
        super().__init__(message)
        self.next_available_purchase_id = next_available_purchase_id


class PurchaseLockedError(PurchaseServiceError):
    """Raised when editing or deleting a purchase that already has a contribution."""
    pass


class InsufficientPermissionsError(PurchaseServiceError):
    """Raised when a user lacks required permissions for an action."""
    pass
