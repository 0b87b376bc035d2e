"""
HTTP exceptions for the purchases app.

Service-layer errors (see ``services/exceptions.py``) are translated into
these by ``to_api_exception`` so every error response carries a stable
``code`` next to the human readable ``error``.
"""
from rest_framework.exceptions import APIException

from .services.exceptions import (
    ContributionNotFoundError,
    DuplicateContributionError,
    InconsistentConsumptionError,
    InsufficientPermissionsError,
    MeterReadingValidationError,
    PurchaseLockedError,
    PurchaseNotFoundError,
    SequentialContributionError,
)


class PurchasesAPIException(APIException):
    """Base for purchases HTTP errors; renders ``{'error', 'code', ...extra}``."""

    status_code = 400
    default_detail = 'Request could not be processed.'
    default_code = 'error'

    def __init__(self, detail=None, **extra):
        payload = {
            'error': detail or self.default_detail,
            'code': self.default_code,
        }
        payload.update({key: value for key, value in extra.items() if value is not None})
        super().__init__(detail=payload, code=self.default_code)


class InvalidMeterReading(PurchasesAPIException):
    """Meter reading breaks the recorded chronology."""
    status_code = 400
    default_detail = 'Invalid meter reading.'
    default_code = 'invalid_meter_reading'


class InconsistentConsumption(PurchasesAPIException):
    """Tokens consumed does not fit the meter reading."""
    status_code = 400
    default_detail = 'Tokens consumed is not plausible for this meter reading.'
    default_code = 'inconsistent_consumption'


class SequentialContributionRequired(PurchasesAPIException):
    """An older purchase must be settled first."""
    status_code = 400
    default_detail = 'You must contribute to older purchases first.'
    default_code = 'sequential_contribution_required'


class ContributionAlreadyExists(PurchasesAPIException):
    """Purchase already has its contribution."""
    status_code = 409
    default_detail = 'Contribution already exists for this purchase.'
    default_code = 'duplicate_contribution'


class PurchaseLocked(PurchasesAPIException):
    """Purchase has a contribution and cannot change."""
    status_code = 409
    default_detail = 'Purchase has a contribution and cannot be changed.'
    default_code = 'purchase_locked'


class PurchaseNotFound(PurchasesAPIException):
    """Purchase not found."""
    status_code = 404
    default_detail = 'Purchase not found.'
    default_code = 'purchase_not_found'


class ContributionNotFound(PurchasesAPIException):
    """Contribution not found."""
    status_code = 404
    default_detail = 'Contribution not found.'
    default_code = 'contribution_not_found'


class InsufficientPermissions(PurchasesAPIException):
    """User doesn't have permission for operation."""
    status_code = 403
    default_detail = 'You do not have permission to perform this action.'
    default_code = 'insufficient_permissions'


def to_api_exception(error):
    """Map a purchases service error onto its HTTP exception."""
    message = str(error)

    if isinstance(error, MeterReadingValidationError):
        return InvalidMeterReading(
            message,
            suggested_minimum=error.suggested_minimum,
            suggested_maximum=error.suggested_maximum,
            context=error.context,
        )
    if isinstance(error, SequentialContributionError):
        return SequentialContributionRequired(
            message,
            next_available_purchase_id=error.next_available_purchase_id,
        )
    if isinstance(error, InconsistentConsumptionError):
        return InconsistentConsumption(message)
    if isinstance(error, DuplicateContributionError):
        return ContributionAlreadyExists(message)
    if isinstance(error, PurchaseLockedError):
        return PurchaseLocked(message)
    if isinstance(error, PurchaseNotFoundError):
        return PurchaseNotFound(message)
    if isinstance(error, ContributionNotFoundError):
        return ContributionNotFound(message)
    if isinstance(error, InsufficientPermissionsError):
        return InsufficientPermissions(message)
    return PurchasesAPIException(message)
