"""
Domain exceptions for analytics app.

This module defines domain-specific exceptions that are raised by the
cost allocation and balance projection code. These exceptions represent
inputs the engine cannot compute over, separate from HTTP concerns.

Exception Hierarchy:
    AnalyticsServiceError (base)
    ├── CostComputationError
    ├── DuplicateSettlementError
    └── UserNotFoundError

The HTTP layer maps computation errors onto ``CannotCompute`` (422).

Usage:
    from apps.analytics.exceptions import CostComputationError

    if purchase.total_tokens <= 0:
        raise CostComputationError("Purchase has no tokens")
"""
from rest_framework.exceptions import APIException, NotFound


class AnalyticsServiceError(Exception):
    """
    Base exception for all analytics service errors.

    All domain-specific exceptions in the analytics app inherit from this
    class, making it easy to catch all analytics errors in views:

        try:
            data = AnalyticsQueries.cost_breakdown()
        except AnalyticsServiceError as e:
            raise to_api_exception(e)
    """

    pass


class CostComputationError(AnalyticsServiceError):
    """
    Raised when a cost figure is undefined for the given input.

    Typically a purchase with zero tokens (no unit cost), an empty
    contribution set for a summary, or no purchases to derive a
    historical rate from.

    Example:
        raise CostComputationError("Purchase abc has no tokens; unit cost is undefined")
    """

    pass


class DuplicateSettlementError(AnalyticsServiceError):
    """
    Raised when a batch of contributions settles the same purchase twice.

    The database already prevents this; the engine checks again because it
    also runs on hand-built snapshots.
    """

    pass


class UserNotFoundError(AnalyticsServiceError):
    """
    Raised when the specified user does not exist.

    Example:
        raise UserNotFoundError("User not found")
    """

    pass


class CannotCompute(APIException):
    """Engine could not produce a figure for the current data."""
    status_code = 422
    default_detail = 'The requested figures cannot be computed from the current data.'
    default_code = 'cannot_compute'

    def __init__(self, detail=None):
        super().__init__(
            detail={'error': detail or self.default_detail, 'code': self.default_code},
            code=self.default_code,
        )


class InvalidAnalyticsRequest(APIException):
    """Analytics request parameters are inconsistent."""
    status_code = 400
    default_detail = 'Invalid analytics request.'
    default_code = 'invalid_request'

    def __init__(self, detail=None):
        super().__init__(
            detail={'error': detail or self.default_detail, 'code': self.default_code},
            code=self.default_code,
        )


def to_api_exception(error):
    """Map an analytics service error onto its HTTP exception."""
    if isinstance(error, (CostComputationError, DuplicateSettlementError)):
        return CannotCompute(str(error))
    if isinstance(error, UserNotFoundError):
        return NotFound(str(error))
    return InvalidAnalyticsRequest(str(error))
