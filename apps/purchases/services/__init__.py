"""
Purchases app services layer.

Services contain business logic and orchestrate operations across models.
All state-changing operations use transactions and concurrency protection.
"""

from .exceptions import (
    PurchaseServiceError,
    PurchaseNotFoundError,
    ContributionNotFoundError,
    MeterReadingValidationError,
    InconsistentConsumptionError,
    DuplicateContributionError,
    SequentialContributionError,
    PurchaseLockedError,
    InsufficientPermissionsError,
)

from .purchase_management import (
    create_purchase,
    update_purchase,
    delete_purchase,
    get_purchase_by_id,
    get_purchase_context,
)

from .contribution_management import (
    create_contribution,
    update_contribution,
    delete_contribution,
    get_contribution_by_id,
)

from .meter_reading_management import (
    create_meter_reading,
    get_latest_meter_reading,
    get_current_meter_value,
)


__all__ = [
    # Exceptions
    'PurchaseServiceError',
    'PurchaseNotFoundError',
    'ContributionNotFoundError',
    'MeterReadingValidationError',
    'InconsistentConsumptionError',
    'DuplicateContributionError',
    'SequentialContributionError',
    'PurchaseLockedError',
    'InsufficientPermissionsError',

    # Purchase Management
    'create_purchase',
    'update_purchase',
    'delete_purchase',
    'get_purchase_by_id',
    'get_purchase_context',

    # Contribution Management
    'create_contribution',
    'update_contribution',
    'delete_contribution',
    'get_contribution_by_id',

    # Meter Readings
    'create_meter_reading',
    'get_latest_meter_reading',
    'get_current_meter_value',
]
